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
"""Primary-key equality predicates built from loosely-typed key values.

Callers hand the repository identifiers in whatever shape they arrived in
(a route segment, a JSON number, a UUID object). Before a lookup the value is
coerced to the key's declared Python type so the comparison is typed and the
engine can bind it natively::

    predicate = build_equals_primary_key(Order, "42")
    stmt = select(Order).where(predicate)     # orders.id = 42
    predicate(order)                          # True when order.id == 42
"""

from __future__ import annotations

import enum
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import ColumnElement

from genrepo.data.metadata import EntityMetadata, EntityModel, KeyProperty, entity_model
from genrepo.kernel.exceptions import InvalidArgumentError, TypeMismatchError

_TRUE_TOKENS = frozenset({"true", "1", "yes", "y", "on"})
_FALSE_TOKENS = frozenset({"false", "0", "no", "n", "off"})


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, Decimal):
        if value != value.to_integral_value():
            raise ValueError(f"{value!r} is not integral")
        return int(value)
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"{value!r} is not integral")
        return int(value)
    if isinstance(value, (str, bytes)):
        return int(value.strip())
    raise TypeError(f"unsupported source type {type(value).__name__}")


def _to_float(value: Any) -> float:
    if isinstance(value, (str, bytes)):
        return float(value.strip())
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    raise TypeError(f"unsupported source type {type(value).__name__}")


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, float):
        return Decimal(repr(value))
    if isinstance(value, str):
        return Decimal(value.strip())
    if isinstance(value, int):
        return Decimal(value)
    raise TypeError(f"unsupported source type {type(value).__name__}")


def _to_str(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        token = value.strip().lower()
        if token in _TRUE_TOKENS:
            return True
        if token in _FALSE_TOKENS:
            return False
        raise ValueError(f"{value!r} is not a boolean literal")
    if isinstance(value, (int, float, Decimal)):
        return value != 0
    raise TypeError(f"unsupported source type {type(value).__name__}")


def _to_uuid(value: Any) -> uuid.UUID:
    if isinstance(value, str):
        return uuid.UUID(value.strip())
    if isinstance(value, bytes):
        return uuid.UUID(bytes=value)
    if isinstance(value, int) and not isinstance(value, bool):
        return uuid.UUID(int=value)
    raise TypeError(f"unsupported source type {type(value).__name__}")


def _to_datetime(value: Any) -> datetime:
    if isinstance(value, str):
        return datetime.fromisoformat(value.strip())
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    raise TypeError(f"unsupported source type {type(value).__name__}")


def _to_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str):
        return date.fromisoformat(value.strip())
    raise TypeError(f"unsupported source type {type(value).__name__}")


def _to_enum(value: Any, target_type: type[enum.Enum]) -> enum.Enum:
    try:
        return target_type(value)
    except ValueError:
        if isinstance(value, str):
            return target_type[value.strip()]
        raise


_CONVERTERS: dict[type, Callable[[Any], Any]] = {
    int: _to_int,
    float: _to_float,
    Decimal: _to_decimal,
    str: _to_str,
    bool: _to_bool,
    uuid.UUID: _to_uuid,
    datetime: _to_datetime,
    date: _to_date,
}


def coerce_key(value: Any, target_type: type) -> Any:
    """Convert *value* to *target_type* without locale-dependent parsing.

    Raises:
        TypeMismatchError: If the value cannot be represented as *target_type*.
    """
    if target_type is object or type(value) is target_type:
        return value

    try:
        converter = _CONVERTERS.get(target_type)
        if converter is not None:
            return converter(value)
        if isinstance(target_type, type) and issubclass(target_type, enum.Enum):
            return _to_enum(value, target_type)
        if isinstance(value, target_type):
            return value
        return target_type(value)
    except (TypeError, ValueError, KeyError, ArithmeticError) as exc:
        source_name = type(value).__name__
        target_name = getattr(target_type, "__name__", repr(target_type))
        raise TypeMismatchError(
            f"Cannot assign a value of type {source_name} to a key of type {target_name}",
            code="REPO_TYPE_MISMATCH",
            context={"source_type": source_name, "target_type": target_name},
        ) from exc


@dataclass(frozen=True)
class KeyPredicate:
    """``entity.<key> == value`` as both a SQL criterion and a Python callable.

    Instances can be passed straight to ``Select.where``; SQLAlchemy picks up
    the criterion through ``__clause_element__``.
    """

    metadata: EntityMetadata
    key: KeyProperty
    value: Any

    @property
    def entity_type(self) -> type:
        return self.metadata.entity_type

    @property
    def clause(self) -> ColumnElement[bool]:
        return getattr(self.entity_type, self.key.name) == self.value

    def __clause_element__(self) -> ColumnElement[bool]:
        return self.clause

    def __call__(self, entity: Any) -> bool:
        if not isinstance(entity, self.entity_type):
            return False
        return bool(self.metadata.key_value(entity) == self.value)


def build_equals_primary_key(
    entity_type: type,
    key_value: Any,
    model: EntityModel = entity_model,
) -> KeyPredicate:
    """Build a primary-key equality predicate for *entity_type*.

    Only the first key property participates; composite keys are matched on
    their leading column.

    Raises:
        InvalidArgumentError: If *key_value* is ``None``.
        ConfigurationError: If the type is not in the model or has no key.
        TypeMismatchError: If *key_value* cannot be coerced to the key type.
    """
    if key_value is None:
        raise InvalidArgumentError("id is required", code="REPO_INVALID_ARGUMENT", context={"argument": "id"})

    metadata = model.resolve(entity_type)
    key = metadata.primary_key_property
    return KeyPredicate(metadata, key, coerce_key(key_value, key.python_type))
