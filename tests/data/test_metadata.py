# Copyright 2026 Firefly Software Solutions Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Tests for EntityModel primary-key resolution."""

import uuid

import pytest
from sqlalchemy import String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from genrepo.data.metadata import EntityMetadata, EntityModel, KeyProperty, entity_model
from genrepo.kernel.exceptions import ConfigurationError, InvalidArgumentError


class Model(DeclarativeBase):
    pass


class Customer(Model):
    __tablename__ = "meta_customers"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(50))


class Ticket(Model):
    __tablename__ = "meta_tickets"

    code: Mapped[uuid.UUID] = mapped_column("ticket_code", primary_key=True)


class OrderLine(Model):
    __tablename__ = "meta_order_lines"

    order_id: Mapped[int] = mapped_column(primary_key=True)
    line_no: Mapped[int] = mapped_column(primary_key=True)
    sku: Mapped[str] = mapped_column(String(20))


class Unmapped:
    id = 1


class TestResolveFromMapper:
    def test_single_integer_key(self):
        metadata = EntityModel().resolve(Customer)
        assert metadata.primary_key == (KeyProperty("id", int),)
        assert metadata.primary_key_property.python_type is int

    def test_attribute_name_differs_from_column_name(self):
        metadata = EntityModel().resolve(Ticket)
        assert metadata.primary_key_property == KeyProperty("code", uuid.UUID)

    def test_composite_key_in_declared_order(self):
        metadata = EntityModel().resolve(OrderLine)
        assert [k.name for k in metadata.primary_key] == ["order_id", "line_no"]
        assert metadata.primary_key_property.name == "order_id"

    def test_resolution_is_memoised(self):
        model = EntityModel()
        assert model.resolve(Customer) is model.resolve(Customer)

    def test_shared_model_instance(self):
        assert isinstance(entity_model.resolve(Customer), EntityMetadata)


class TestResolveFailures:
    def test_none_type_raises_invalid_argument(self):
        with pytest.raises(InvalidArgumentError):
            EntityModel().resolve(None)  # type: ignore[arg-type]

    def test_unmapped_type_is_not_part_of_model(self):
        with pytest.raises(ConfigurationError, match="Unmapped is not part of the model") as exc_info:
            EntityModel().resolve(Unmapped)
        assert exc_info.value.code == "REPO_NOT_IN_MODEL"

    def test_keyless_type_raises(self):
        model = EntityModel()
        model.register_keyless(Customer)
        with pytest.raises(ConfigurationError, match="has no primary key defined") as exc_info:
            model.resolve(Customer)
        assert exc_info.value.code == "REPO_NO_PRIMARY_KEY"

    def test_keyless_type_resolves_when_key_not_required(self):
        model = EntityModel()
        model.register_keyless(Customer)
        metadata = model.resolve(Customer, require_key=False)
        assert not metadata.has_primary_key
        with pytest.raises(ConfigurationError):
            _ = metadata.primary_key_property

    def test_contains(self):
        model = EntityModel()
        assert Customer in model
        assert Unmapped not in model


class TestExplicitRegistration:
    def test_register_plain_class_with_keys(self):
        class LegacyRow:
            def __init__(self, code: str) -> None:
                self.code = code

        model = EntityModel()
        model.register(LegacyRow, keys=[("code", str)])
        metadata = model.resolve(LegacyRow)
        assert metadata.key_value(LegacyRow("A-1")) == "A-1"
        assert metadata.key_values(LegacyRow("A-1")) == ("A-1",)

    def test_register_key_accessor(self):
        model = EntityModel()
        model.register(Customer, key_accessor=lambda c: c.id * 10)
        metadata = model.resolve(Customer)
        assert metadata.primary_key == (KeyProperty("id", int),)
        assert metadata.key_value(Customer(id=4, name="x")) == 40

    def test_registration_replaces_cached_entry(self):
        model = EntityModel()
        model.resolve(Customer)
        model.register_keyless(Customer)
        with pytest.raises(ConfigurationError):
            model.resolve(Customer)

    def test_key_values_reads_all_columns(self):
        metadata = EntityModel().resolve(OrderLine)
        assert metadata.key_values(OrderLine(order_id=7, line_no=2, sku="x")) == (7, 2)
        assert metadata.key_value(OrderLine(order_id=7, line_no=2, sku="x")) == 7
