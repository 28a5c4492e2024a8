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
"""Tests for MutationTracker: identity-checked updates, inserts and deletes."""

import uuid
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import String
from sqlalchemy.exc import InvalidRequestError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from genrepo.data.metadata import EntityModel
from genrepo.data.tracking import MutationTracker, default_key_value, is_default_key
from genrepo.kernel.exceptions import ConfigurationError, InvalidArgumentError, StateError


class Model(DeclarativeBase):
    pass


class Product(Model):
    __tablename__ = "tracking_products"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(50))
    price: Mapped[float] = mapped_column(default=0.0)


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tracking.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Model.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def model():
    return EntityModel()


@pytest.fixture
def tracker(session, model):
    return MutationTracker(session, model)


async def _seed(session, **fields) -> int:
    product = Product(**fields)
    session.add(product)
    await session.commit()
    session.expunge(product)
    return product.id


async def _stored(session_factory, product_id: int) -> Product | None:
    async with session_factory() as fresh:
        return await fresh.get(Product, product_id)


class TestDefaultKeys:
    @pytest.mark.parametrize(
        ("python_type", "expected"),
        [(int, 0), (float, 0.0), (Decimal, Decimal(0)), (str, ""), (bool, False), (uuid.UUID, uuid.UUID(int=0))],
    )
    def test_default_values(self, python_type, expected):
        assert default_key_value(python_type) == expected

    def test_types_without_zero_value(self):
        assert default_key_value(object) is None
        assert default_key_value(datetime) is None

    def test_is_default_key(self):
        assert is_default_key(None, int)
        assert is_default_key(0, int)
        assert is_default_key("", str)
        assert not is_default_key(7, int)
        assert not is_default_key("x", object)


class TestIsTracked:
    async def test_added_instance_is_tracked(self, session, tracker):
        product = Product(name="a")
        assert tracker.is_tracked(product) is False
        session.add(product)
        assert tracker.is_tracked(product) is True

    async def test_tracking_is_by_reference(self, session, tracker):
        product_id = await _seed(session, name="a")
        loaded = await session.get(Product, product_id)
        twin = Product(id=product_id, name="a")
        assert tracker.is_tracked(loaded) is True
        assert tracker.is_tracked(twin) is False


class TestUpdate:
    async def test_none_raises(self, tracker):
        with pytest.raises(InvalidArgumentError):
            tracker.update(None)

    async def test_tracked_entity_with_default_key_succeeds(self, session, tracker):
        product = Product(name="draft")
        session.add(product)
        assert product.id is None
        tracker.update(product)
        assert tracker.is_tracked(product)

    @pytest.mark.parametrize("key", [None, 0])
    async def test_untracked_entity_with_default_key_raises(self, tracker, key):
        with pytest.raises(StateError) as exc_info:
            tracker.update(Product(id=key, name="ghost"))
        assert exc_info.value.code == "REPO_INVALID_IDENTITY"
        assert exc_info.value.context["entity"] == "Product"

    async def test_untracked_entity_with_key_is_attached_as_modified(self, session, session_factory, tracker):
        product_id = await _seed(session, name="before", price=1.0)

        stale = Product(id=product_id, name="after", price=2.5)
        tracker.update(stale)
        assert tracker.is_tracked(stale)
        await session.commit()

        stored = await _stored(session_factory, product_id)
        assert stored.name == "after"
        assert stored.price == 2.5

    async def test_detached_instance_is_reattached(self, session, session_factory, tracker):
        product_id = await _seed(session, name="before")
        product = await session.get(Product, product_id)
        session.expunge(product)

        product.name = "after"
        tracker.update(product)
        await session.commit()

        assert (await _stored(session_factory, product_id)).name == "after"

    async def test_different_instance_for_tracked_row_is_rejected_by_session(self, session, tracker):
        product_id = await _seed(session, name="a")
        await session.get(Product, product_id)

        with pytest.raises(InvalidRequestError):
            tracker.update(Product(id=product_id, name="b"))

    async def test_keyless_entity_raises_configuration_error(self, model, tracker):
        model.register_keyless(Product)
        with pytest.raises(ConfigurationError):
            tracker.update(Product(id=1, name="a"))

    async def test_update_all_skips_identity_validation(self, session, session_factory, tracker):
        first = await _seed(session, name="one")
        second = await _seed(session, name="two")
        loaded = await session.get(Product, first)
        loaded.name = "ONE"

        tracker.update_all([loaded, Product(id=second, name="TWO")])
        await session.commit()

        assert (await _stored(session_factory, first)).name == "ONE"
        assert (await _stored(session_factory, second)).name == "TWO"

    async def test_update_all_none_raises(self, tracker):
        with pytest.raises(InvalidArgumentError):
            tracker.update_all(None)


class TestInsert:
    async def test_insert_returns_generated_key(self, tracker):
        product = Product(name="new")
        keys = await tracker.insert(product)
        assert keys == (product.id,)
        assert isinstance(keys[0], int)

    async def test_insert_none_raises(self, tracker):
        with pytest.raises(InvalidArgumentError):
            await tracker.insert(None)

    async def test_insert_all_only_stages(self, session, tracker):
        products = [Product(name="a"), Product(name="b")]
        tracker.insert_all(products)
        assert set(session.new) == set(products)
        assert all(p.id is None for p in products)


class TestDelete:
    async def test_delete_tracked(self, session, session_factory, tracker):
        product_id = await _seed(session, name="a")
        product = await session.get(Product, product_id)
        await tracker.delete(product)
        await session.commit()
        assert await _stored(session_factory, product_id) is None

    async def test_delete_untracked_with_key(self, session, session_factory, tracker):
        product_id = await _seed(session, name="a")
        await tracker.delete(Product(id=product_id, name="a"))
        await session.commit()
        assert await _stored(session_factory, product_id) is None

    async def test_delete_pending_forgets_it(self, session, tracker):
        product = Product(name="a")
        session.add(product)
        await tracker.delete(product)
        assert product not in session.new
        assert not tracker.is_tracked(product)

    async def test_delete_all(self, session, session_factory, tracker):
        ids = [await _seed(session, name=n) for n in ("a", "b", "c")]
        await tracker.delete_all([Product(id=i, name="x") for i in ids[:2]])
        await session.commit()
        assert await _stored(session_factory, ids[0]) is None
        assert await _stored(session_factory, ids[1]) is None
        assert await _stored(session_factory, ids[2]) is not None


class TestDetachAll:
    async def test_detach_all(self, session, tracker):
        product_id = await _seed(session, name="a")
        loaded = await session.get(Product, product_id)
        pending = Product(name="b")
        session.add(pending)

        tracker.detach_all()

        assert not tracker.is_tracked(loaded)
        assert not tracker.is_tracked(pending)
