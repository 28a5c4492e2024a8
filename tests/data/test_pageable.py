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
"""Tests for Pageable, Sort and Page types."""

from __future__ import annotations

import pytest

from genrepo.data.page import Page
from genrepo.data.pageable import Order, Pageable, Sort
from genrepo.kernel.exceptions import InvalidArgumentError

# ---------------------------------------------------------------------------
# Order / Sort
# ---------------------------------------------------------------------------


class TestOrder:
    def test_factories(self) -> None:
        assert Order.asc("name") == Order("name", "asc")
        assert Order.desc("age").descending is True
        assert Order(property="email").descending is False

    def test_frozen(self) -> None:
        order = Order.asc("name")
        with pytest.raises(AttributeError):
            order.direction = "desc"  # type: ignore[misc]


class TestSort:
    def test_by_multiple_properties(self) -> None:
        sort = Sort.by("name", "age")
        assert [o.property for o in sort.orders] == ["name", "age"]
        assert not any(o.descending for o in sort.orders)

    def test_parse_expressions(self) -> None:
        sort = Sort.parse("name", "age,desc", "-created_at", "email, ASC")
        assert sort.orders == (
            Order.asc("name"),
            Order.desc("age"),
            Order.desc("created_at"),
            Order.asc("email"),
        )

    def test_and_then(self) -> None:
        combined = Sort.by("name").and_then(Sort.parse("-age"))
        assert combined.orders == (Order.asc("name"), Order.desc("age"))

    def test_truthiness(self) -> None:
        assert not Sort()
        assert Sort.by("id")


# ---------------------------------------------------------------------------
# Pageable
# ---------------------------------------------------------------------------


class TestPageable:
    def test_defaults(self) -> None:
        pageable = Pageable()
        assert (pageable.page, pageable.size, pageable.offset) == (1, 20, 0)

    def test_offset_calculation(self) -> None:
        assert Pageable.of(2, 20).offset == 20
        assert Pageable.of(5, 25).offset == 100

    def test_next_and_previous(self) -> None:
        pageable = Pageable.of(3, 10, Sort.by("id"))
        assert pageable.next().page == 4
        assert pageable.previous().page == 2
        assert pageable.next().sort == pageable.sort
        assert Pageable.of(1, 10).previous().page == 1

    @pytest.mark.parametrize(("page", "size"), [(0, 10), (1, 0), (-3, 5)])
    def test_validation(self, page: int, size: int) -> None:
        with pytest.raises(InvalidArgumentError):
            Pageable.of(page, size)


# ---------------------------------------------------------------------------
# Page
# ---------------------------------------------------------------------------


class TestPage:
    def test_metadata(self) -> None:
        page = Page(items=[1, 2, 3], total=7, pageable=Pageable.of(2, 3))
        assert page.page == 2
        assert page.size == 3
        assert page.total_pages == 3
        assert page.has_next is True
        assert page.has_previous is True
        assert list(page) == [1, 2, 3]
        assert len(page) == 3

    def test_empty(self) -> None:
        page: Page[int] = Page(items=[], total=0, pageable=Pageable())
        assert page.total_pages == 0
        assert page.has_next is False
        assert page.has_previous is False

    def test_map_keeps_metadata(self) -> None:
        page = Page(items=[1, 2], total=2, pageable=Pageable.of(1, 5))
        mapped = page.map(str)
        assert mapped.items == ["1", "2"]
        assert mapped.total == 2
        assert mapped.pageable == page.pageable
