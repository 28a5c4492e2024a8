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
"""Page requests and sort orders expressed by property name."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from genrepo.kernel.exceptions import InvalidArgumentError

Direction = Literal["asc", "desc"]


@dataclass(frozen=True)
class Order:
    """A single sort order: property name + direction."""

    property: str
    direction: Direction = "asc"

    @property
    def descending(self) -> bool:
        return self.direction == "desc"

    @staticmethod
    def asc(property: str) -> Order:
        return Order(property=property, direction="asc")

    @staticmethod
    def desc(property: str) -> Order:
        return Order(property=property, direction="desc")


@dataclass(frozen=True)
class Sort:
    """Ordered collection of sort orders; the first one is the primary sort."""

    orders: tuple[Order, ...] = ()

    @staticmethod
    def by(*properties: str) -> Sort:
        """Ascending sort by the given properties, in order."""
        return Sort(orders=tuple(Order.asc(p) for p in properties))

    @staticmethod
    def parse(*expressions: str) -> Sort:
        """Build a sort from ``"name"``, ``"name,desc"`` or ``"-name"`` expressions."""
        orders: list[Order] = []
        for expression in expressions:
            if expression.startswith("-"):
                orders.append(Order.desc(expression[1:]))
                continue
            name, _, direction = expression.partition(",")
            orders.append(Order.desc(name) if direction.strip().lower() == "desc" else Order.asc(name))
        return Sort(orders=tuple(orders))

    def and_then(self, other: Sort) -> Sort:
        """Append *other*'s orders after this sort's orders."""
        return Sort(orders=self.orders + other.orders)

    def __bool__(self) -> bool:
        return bool(self.orders)


@dataclass(frozen=True)
class Pageable:
    """Request for one page of results.

    Attributes:
        page: Page number (1-based).
        size: Maximum items per page.
        sort: Ordering applied before the page is cut.
    """

    page: int = 1
    size: int = 20
    sort: Sort = field(default_factory=Sort)

    def __post_init__(self) -> None:
        if self.page < 1:
            raise InvalidArgumentError(f"page must be >= 1, got {self.page}", code="REPO_INVALID_ARGUMENT")
        if self.size < 1:
            raise InvalidArgumentError(f"size must be >= 1, got {self.size}", code="REPO_INVALID_ARGUMENT")

    @staticmethod
    def of(page: int, size: int, sort: Sort | None = None) -> Pageable:
        return Pageable(page=page, size=size, sort=sort or Sort())

    @property
    def offset(self) -> int:
        """Number of rows skipped before this page."""
        return (self.page - 1) * self.size

    def next(self) -> Pageable:
        return Pageable(page=self.page + 1, size=self.size, sort=self.sort)

    def previous(self) -> Pageable:
        return Pageable(page=max(1, self.page - 1), size=self.size, sort=self.sort)
