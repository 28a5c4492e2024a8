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
"""Projection marker and selector resolution for projected queries."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, get_type_hints

from sqlalchemy import Select, select

from genrepo.kernel.exceptions import InvalidArgumentError

_PROJECTION_MARKER = "__genrepo_projection__"

Selector = Any
"""A column, a sequence of columns, a callable ``(root) -> column(s)`` or a projection class."""


def projection(cls: type) -> type:
    """Mark a Protocol class as a projection interface.

    Projections declare a subset of entity fields. Projected queries select
    only those columns and return rows exposing them as attributes.

    Usage::

        @projection
        class OrderSummary(Protocol):
            id: int
            status: str
            total: float
    """
    setattr(cls, _PROJECTION_MARKER, True)
    return cls


def is_projection(cls: Any) -> bool:
    """Check if a type is marked as a projection."""
    return getattr(cls, _PROJECTION_MARKER, False) is True


def projection_fields(cls: type) -> list[str]:
    """Get the field names declared on a projection type."""
    hints = get_type_hints(cls)
    return [name for name in hints if not name.startswith("_")]


@dataclass(frozen=True)
class ResolvedProjection:
    """Columns to select, and whether results are bare scalars or rows."""

    columns: tuple[Any, ...]
    scalar: bool


def _column(root: type, name: str) -> Any:
    try:
        return getattr(root, name)
    except AttributeError as exc:
        raise InvalidArgumentError(
            f"{root.__name__} has no property '{name}' to project",
            code="REPO_INVALID_ARGUMENT",
            context={"entity": root.__name__, "property": name},
        ) from exc


def resolve_selector(selector: Selector, root: type) -> ResolvedProjection:
    """Resolve *selector* against entity class *root*.

    Raises:
        InvalidArgumentError: If *selector* is ``None``, empty, or names an
            unknown property.
    """
    if selector is None:
        raise InvalidArgumentError(
            "selector is required", code="REPO_INVALID_ARGUMENT", context={"argument": "selector"}
        )

    if isinstance(selector, type) and is_projection(selector):
        names = projection_fields(selector)
        if not names:
            raise InvalidArgumentError(
                f"Projection {selector.__name__} declares no fields",
                code="REPO_INVALID_ARGUMENT",
                context={"projection": selector.__name__},
            )
        return ResolvedProjection(tuple(_column(root, name) for name in names), scalar=False)

    if isinstance(selector, str):
        return ResolvedProjection((_column(root, selector),), scalar=True)

    if hasattr(selector, "__clause_element__"):
        return ResolvedProjection((selector,), scalar=True)

    if isinstance(selector, Sequence):
        if not selector:
            raise InvalidArgumentError(
                "selector must name at least one column",
                code="REPO_INVALID_ARGUMENT",
                context={"argument": "selector"},
            )
        columns = tuple(_column(root, item) if isinstance(item, str) else item for item in selector)
        return ResolvedProjection(columns, scalar=False)

    if callable(selector):
        return resolve_selector(selector(root), root)

    # Literal SQL expressions such as ``func.count()``.
    return ResolvedProjection((selector,), scalar=True)


def projected_query(entity_type: type, selector: Selector) -> tuple[Select[Any], ResolvedProjection]:
    """A fresh ``SELECT <columns> FROM <entity>`` for *selector*."""
    resolved = resolve_selector(selector, entity_type)
    return select(*resolved.columns).select_from(entity_type), resolved
