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
"""Primary-key metadata for arbitrary entity types.

The repository never hard-codes a key column: it asks an :class:`EntityModel`
which properties form the primary key of a type and how to read the key off
an instance. Metadata comes from the SQLAlchemy mapper by default and can be
overridden per type with an explicit registration::

    entity_model.register(Invoice, key_accessor=lambda invoice: invoice.number)
    entity_model.register(LegacyRow, keys=[("code", str)])
    entity_model.register_keyless(MonthlyReport)

Resolved metadata is memoised for the lifetime of the model; mappings do not
change at runtime.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy import inspect
from sqlalchemy.orm import Mapper

from genrepo.kernel.exceptions import ConfigurationError, InvalidArgumentError

logger = structlog.get_logger("genrepo.data.metadata")

KeyAccessor = Callable[[Any], Any]


@dataclass(frozen=True)
class KeyProperty:
    """A single primary-key property: attribute name and declared Python type."""

    name: str
    python_type: type = object


@dataclass(frozen=True)
class EntityMetadata:
    """Primary-key description of one entity type."""

    entity_type: type
    primary_key: tuple[KeyProperty, ...]
    key_accessor: KeyAccessor | None = None

    @property
    def has_primary_key(self) -> bool:
        return bool(self.primary_key)

    @property
    def primary_key_property(self) -> KeyProperty:
        """The first key property, the only one that takes part in lookups."""
        if not self.primary_key:
            raise _no_primary_key(self.entity_type)
        return self.primary_key[0]

    def key_value(self, entity: Any) -> Any:
        """Read the first key property off *entity*."""
        prop = self.primary_key_property
        if self.key_accessor is not None:
            return self.key_accessor(entity)
        return getattr(entity, prop.name)

    def key_values(self, entity: Any) -> tuple[Any, ...]:
        """Read every key property off *entity*, in declared order."""
        return tuple(getattr(entity, prop.name) for prop in self.primary_key)


def _no_primary_key(entity_type: type) -> ConfigurationError:
    return ConfigurationError(
        f"{entity_type.__name__} has no primary key defined",
        code="REPO_NO_PRIMARY_KEY",
        context={"entity": entity_type.__name__},
    )


def _as_key_property(spec: KeyProperty | tuple[str, type] | str) -> KeyProperty:
    if isinstance(spec, KeyProperty):
        return spec
    if isinstance(spec, str):
        return KeyProperty(spec)
    name, python_type = spec
    return KeyProperty(name, python_type)


class EntityModel:
    """Registry resolving :class:`EntityMetadata` per entity type."""

    def __init__(self) -> None:
        self._resolved: dict[type, EntityMetadata] = {}

    def register(
        self,
        entity_type: type,
        keys: Iterable[KeyProperty | tuple[str, type] | str] | None = None,
        key_accessor: KeyAccessor | None = None,
    ) -> EntityMetadata:
        """Register key metadata for *entity_type* explicitly.

        Args:
            entity_type: The entity class.
            keys: Key properties in declared order. When omitted they are
                read from the SQLAlchemy mapper.
            key_accessor: Function returning the (first) key value of an
                instance. Defaults to reading the first key attribute.
        """
        if keys is None:
            primary_key = self._from_mapper(entity_type).primary_key
        else:
            primary_key = tuple(_as_key_property(k) for k in keys)
        metadata = EntityMetadata(entity_type, primary_key, key_accessor)
        self._resolved[entity_type] = metadata
        logger.debug(
            "entity_registered",
            entity=entity_type.__name__,
            keys=[k.name for k in primary_key],
            custom_accessor=key_accessor is not None,
        )
        return metadata

    def register_keyless(self, entity_type: type) -> EntityMetadata:
        """Declare that *entity_type* has no usable primary key."""
        return self.register(entity_type, keys=())

    def resolve(self, entity_type: type, *, require_key: bool = True) -> EntityMetadata:
        """Return the key metadata of *entity_type*.

        Raises:
            InvalidArgumentError: If *entity_type* is ``None``.
            ConfigurationError: If the type is not part of the model, or has
                no primary key and *require_key* is set.
        """
        if entity_type is None:
            raise InvalidArgumentError("entity_type is required", code="REPO_INVALID_ARGUMENT")

        metadata = self._resolved.get(entity_type)
        if metadata is None:
            metadata = self._from_mapper(entity_type)
            self._resolved[entity_type] = metadata

        if require_key and not metadata.has_primary_key:
            raise _no_primary_key(entity_type)
        return metadata

    def __contains__(self, entity_type: object) -> bool:
        if entity_type in self._resolved:
            return True
        return isinstance(entity_type, type) and _mapper_of(entity_type) is not None

    @staticmethod
    def _from_mapper(entity_type: type) -> EntityMetadata:
        mapper = _mapper_of(entity_type)
        if mapper is None:
            name = getattr(entity_type, "__name__", repr(entity_type))
            raise ConfigurationError(
                f"{name} is not part of the model",
                code="REPO_NOT_IN_MODEL",
                context={"entity": name},
            )

        keys: list[KeyProperty] = []
        for column in mapper.primary_key:
            prop = mapper.get_property_by_column(column)
            try:
                python_type = column.type.python_type
            except NotImplementedError:
                python_type = object
            keys.append(KeyProperty(prop.key, python_type))
        return EntityMetadata(entity_type, tuple(keys))


def _mapper_of(entity_type: type) -> Mapper[Any] | None:
    mapper = inspect(entity_type, raiseerr=False)
    return mapper if isinstance(mapper, Mapper) else None


entity_model = EntityModel()
"""Process-wide default model shared by repositories that are not given one."""
