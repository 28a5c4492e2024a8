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
"""Declarative, reusable query descriptions.

A :class:`Specification` bundles everything a list query needs besides the
entity type: a filter, eager-load steps, an ordering chain and a page window.
It is immutable; every builder method returns a new specification, so a base
specification can be shared and refined freely::

    recent_paid = (
        Specification[Order]()
        .where(lambda o: o.status == "paid")
        .include(selectinload(Order.lines))
        .order_by(Order.created_at, descending=True)
        .then_by("id")
        .page(skip=20, take=10)
    )
    orders = await repo.get_list_by_spec(Order, recent_paid)

Filters compose with ``&`` (AND), ``|`` (OR) and ``~`` (NOT)::

    paid = Specification[Order]().where(Order.status == "paid")
    large = Specification[Order]().where(Order.total > 1000)
    await repo.get_list_by_spec(Order, paid & ~large)
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any, Generic, TypeVar

from sqlalchemy import ColumnElement, Select, and_, not_, or_
from sqlalchemy.sql.base import ExecutableOption

from genrepo.data.pageable import Pageable, Sort
from genrepo.kernel.exceptions import InvalidArgumentError

T = TypeVar("T")

Condition = Any
"""A SQL boolean expression, or a callable ``(root) -> expression``."""

IncludeStep = Callable[[Select[Any]], Select[Any]]
"""An eager-load step: receives the statement and returns it with loaders applied."""


def resolve_condition(condition: Condition | None, root: type) -> Any:
    """Turn a condition into a SQL expression for entity class *root*."""
    if condition is None:
        return None
    if hasattr(condition, "__clause_element__") or not callable(condition):
        return condition
    return condition(root)


def _combine(combinator: Callable[..., Any], left: Condition, right: Condition) -> Condition:
    return lambda root: combinator(resolve_condition(left, root), resolve_condition(right, root))


def as_include_step(loader: Any) -> IncludeStep:
    if isinstance(loader, ExecutableOption):
        return lambda query: query.options(loader)
    if callable(loader):
        return loader
    raise InvalidArgumentError(
        f"include expects a loader option or a callable, got {type(loader).__name__}",
        code="REPO_INVALID_ARGUMENT",
        context={"argument": "include"},
    )


@dataclass(frozen=True)
class Ordering:
    """One link of an ordering chain.

    ``key`` is a mapped attribute, a column expression, a property name, or a
    callable ``(root) -> expression``.
    """

    key: Any
    descending: bool = False

    def resolve(self, root: type) -> ColumnElement[Any]:
        if isinstance(self.key, str):
            try:
                expression = getattr(root, self.key)
            except AttributeError as exc:
                raise InvalidArgumentError(
                    f"{root.__name__} has no property '{self.key}' to order by",
                    code="REPO_INVALID_ARGUMENT",
                    context={"entity": root.__name__, "property": self.key},
                ) from exc
        elif hasattr(self.key, "__clause_element__") or not callable(self.key):
            expression = self.key
        else:
            expression = self.key(root)
        return expression.desc() if self.descending else expression.asc()


@dataclass(frozen=True, kw_only=True)
class Paging:
    """A ``skip``/``take`` window over the ordered result."""

    skip: int = 0
    take: int

    def __post_init__(self) -> None:
        if self.skip < 0:
            raise InvalidArgumentError(f"skip must be >= 0, got {self.skip}", code="REPO_INVALID_ARGUMENT")
        if self.take < 1:
            raise InvalidArgumentError(f"take must be >= 1, got {self.take}", code="REPO_INVALID_ARGUMENT")


@dataclass(frozen=True)
class Specification(Generic[T]):
    """Immutable description of a query: filter, includes, ordering and paging."""

    condition: Condition | None = None
    includes: tuple[IncludeStep, ...] = ()
    orderings: tuple[Ordering, ...] = ()
    paging: Paging | None = None

    # ------------------------------------------------------------------
    # Builder
    # ------------------------------------------------------------------

    def where(self, condition: Condition) -> Specification[T]:
        """Replace the filter."""
        return replace(self, condition=condition)

    def and_where(self, condition: Condition) -> Specification[T]:
        """AND *condition* onto the current filter."""
        if self.condition is None:
            return self.where(condition)
        return replace(self, condition=_combine(and_, self.condition, condition))

    def include(self, *loaders: Any) -> Specification[T]:
        """Append eager-load steps.

        Each loader is an ORM loader option such as
        ``selectinload(Order.lines).joinedload(Line.product)`` or a callable
        ``(Select) -> Select``.
        """
        steps = tuple(as_include_step(loader) for loader in loaders)
        return replace(self, includes=self.includes + steps)

    def order_by(self, key: Any, descending: bool = False) -> Specification[T]:
        """Start a new ordering chain with *key* as the primary sort."""
        return replace(self, orderings=(Ordering(key, descending),))

    def then_by(self, key: Any, descending: bool = False) -> Specification[T]:
        """Append a secondary sort; becomes the primary sort if none is set."""
        return replace(self, orderings=self.orderings + (Ordering(key, descending),))

    def order_by_sort(self, sort: Sort) -> Specification[T]:
        """Replace the ordering chain with the orders of *sort*."""
        orderings = tuple(Ordering(order.property, order.descending) for order in sort.orders)
        return replace(self, orderings=orderings)

    def page(self, *, skip: int = 0, take: int) -> Specification[T]:
        """Window the result: skip *skip* rows, then take at most *take*."""
        return replace(self, paging=Paging(skip=skip, take=take))

    def page_of(self, pageable: Pageable) -> Specification[T]:
        """Window the result to one page; the page's sort, if any, replaces the ordering."""
        spec = self.order_by_sort(pageable.sort) if pageable.sort else self
        return spec.page(skip=pageable.offset, take=pageable.size)

    def unpaged(self) -> Specification[T]:
        return replace(self, paging=None)

    def resolve_condition(self, root: type) -> Any:
        """The filter as a SQL expression for entity class *root* (``None`` if absent)."""
        return resolve_condition(self.condition, root)

    # ------------------------------------------------------------------
    # Combinators
    # ------------------------------------------------------------------

    def __and__(self, other: Specification[T]) -> Specification[T]:
        """Both filters must match. Includes of *other* are appended."""
        if other.condition is None:
            condition = self.condition
        elif self.condition is None:
            condition = other.condition
        else:
            condition = _combine(and_, self.condition, other.condition)
        return replace(self, condition=condition, includes=self.includes + other.includes)

    def __or__(self, other: Specification[T]) -> Specification[T]:
        """Either filter may match; a side without a filter matches everything."""
        if self.condition is None or other.condition is None:
            condition = None
        else:
            condition = _combine(or_, self.condition, other.condition)
        return replace(self, condition=condition, includes=self.includes + other.includes)

    def __invert__(self) -> Specification[T]:
        """Negate the filter. A specification without a filter is returned unchanged."""
        if self.condition is None:
            return self
        negated = self.condition
        return replace(self, condition=lambda root: not_(resolve_condition(negated, root)))


def where(condition: Condition) -> Specification[Any]:
    """Shorthand for ``Specification().where(condition)``."""
    return Specification(condition=condition)
