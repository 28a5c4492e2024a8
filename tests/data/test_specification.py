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
"""Tests for the immutable Specification builder."""

import pytest
from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, selectinload

from genrepo.data.pageable import Order, Pageable, Sort
from genrepo.data.specification import Ordering, Paging, Specification, where
from genrepo.kernel.exceptions import InvalidArgumentError


class Model(DeclarativeBase):
    pass


class Author(Model):
    __tablename__ = "spec_authors"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(50))
    books: Mapped[list["Book"]] = relationship(back_populates="author")


class Book(Model):
    __tablename__ = "spec_books"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(100))
    pages: Mapped[int] = mapped_column(default=0)
    author_id: Mapped[int] = mapped_column(ForeignKey("spec_authors.id"))
    author: Mapped[Author] = relationship(back_populates="books")


def _sql(expression) -> str:
    return str(expression.compile(compile_kwargs={"literal_binds": True}))


class TestBuilder:
    def test_empty_specification(self):
        spec = Specification[Book]()
        assert spec.condition is None
        assert spec.includes == ()
        assert spec.orderings == ()
        assert spec.paging is None

    def test_builder_returns_new_instances(self):
        base = Specification[Book]()
        filtered = base.where(Book.pages > 100)
        assert base.condition is None
        assert filtered is not base
        assert filtered.condition is not None

    def test_where_replaces(self):
        spec = Specification[Book]().where(Book.pages > 100).where(Book.pages < 10)
        assert _sql(spec.resolve_condition(Book)) == "spec_books.pages < 10"

    def test_and_where_combines(self):
        spec = Specification[Book]().where(Book.pages > 100).and_where(lambda b: b.title == "x")
        assert _sql(spec.resolve_condition(Book)) == "spec_books.pages > 100 AND spec_books.title = 'x'"

    def test_and_where_without_filter_sets_it(self):
        spec = Specification[Book]().and_where(Book.pages > 1)
        assert _sql(spec.resolve_condition(Book)) == "spec_books.pages > 1"

    def test_callable_condition_receives_root(self):
        spec = where(lambda root: root.title == "Dune")
        assert _sql(spec.resolve_condition(Book)) == "spec_books.title = 'Dune'"

    def test_include_accepts_loader_options_and_callables(self):
        spec = Specification[Book]().include(selectinload(Book.author), lambda q: q)
        assert len(spec.includes) == 2
        assert all(callable(step) for step in spec.includes)

    def test_include_rejects_other_values(self):
        with pytest.raises(InvalidArgumentError):
            Specification[Book]().include("author")

    def test_order_by_starts_new_chain(self):
        spec = Specification[Book]().order_by(Book.title).then_by(Book.id).order_by(Book.pages, descending=True)
        assert spec.orderings == (Ordering(Book.pages, True),)

    def test_then_by_without_primary_becomes_primary(self):
        spec = Specification[Book]().then_by("title")
        assert spec.orderings == (Ordering("title", False),)

    def test_then_by_appends_secondary(self):
        spec = Specification[Book]().order_by("title").then_by("id", descending=True)
        assert [o.key for o in spec.orderings] == ["title", "id"]
        assert [o.descending for o in spec.orderings] == [False, True]

    def test_order_by_sort(self):
        spec = Specification[Book]().order_by("id").order_by_sort(Sort.parse("title", "-pages"))
        assert spec.orderings == (Ordering("title", False), Ordering("pages", True))

    def test_page(self):
        spec = Specification[Book]().page(skip=20, take=10)
        assert spec.paging == Paging(skip=20, take=10)

    @pytest.mark.parametrize(("skip", "take"), [(-1, 10), (0, 0), (5, -2)])
    def test_page_validation(self, skip, take):
        with pytest.raises(InvalidArgumentError):
            Specification[Book]().page(skip=skip, take=take)

    def test_page_of_uses_pageable_window_and_sort(self):
        pageable = Pageable.of(3, 10, Sort(orders=(Order.desc("pages"),)))
        spec = Specification[Book]().order_by("title").page_of(pageable)
        assert spec.paging == Paging(skip=20, take=10)
        assert spec.orderings == (Ordering("pages", True),)

    def test_page_of_without_sort_keeps_ordering(self):
        spec = Specification[Book]().order_by("title").page_of(Pageable(page=1, size=5))
        assert spec.orderings == (Ordering("title", False),)
        assert spec.paging == Paging(skip=0, take=5)

    def test_unpaged(self):
        assert Specification[Book]().page(take=3).unpaged().paging is None


class TestOrderingResolve:
    def test_property_name(self):
        assert _sql(Ordering("title").resolve(Book)) == "spec_books.title ASC"

    def test_descending_attribute(self):
        assert _sql(Ordering(Book.pages, True).resolve(Book)) == "spec_books.pages DESC"

    def test_callable_key(self):
        assert _sql(Ordering(lambda b: b.id).resolve(Book)) == "spec_books.id ASC"

    def test_unknown_property_raises(self):
        with pytest.raises(InvalidArgumentError, match="no property 'isbn'"):
            Ordering("isbn").resolve(Book)


class TestCombinators:
    def test_and(self):
        spec = where(Book.pages > 100) & where(Book.title == "x")
        assert _sql(spec.resolve_condition(Book)) == "spec_books.pages > 100 AND spec_books.title = 'x'"

    def test_or(self):
        spec = where(Book.pages > 100) | where(Book.pages < 10)
        assert _sql(spec.resolve_condition(Book)) == "spec_books.pages > 100 OR spec_books.pages < 10"

    def test_not(self):
        spec = ~where(Book.pages > 100)
        assert _sql(spec.resolve_condition(Book)) == "spec_books.pages <= 100"

    def test_and_with_empty_side_keeps_other_filter(self):
        spec = Specification[Book]() & where(Book.pages > 1)
        assert _sql(spec.resolve_condition(Book)) == "spec_books.pages > 1"

    def test_or_with_empty_side_matches_everything(self):
        spec = where(Book.pages > 1) | Specification[Book]()
        assert spec.condition is None

    def test_not_of_empty_is_unchanged(self):
        spec = Specification[Book]().order_by("id")
        assert ~spec is spec

    def test_left_operand_keeps_ordering_and_paging_and_includes_are_appended(self):
        left = where(Book.pages > 1).order_by("title").page(take=5).include(selectinload(Book.author))
        right = where(Book.id > 2).order_by("id").include(lambda q: q)
        combined = left & right
        assert combined.orderings == left.orderings
        assert combined.paging == left.paging
        assert len(combined.includes) == 2
