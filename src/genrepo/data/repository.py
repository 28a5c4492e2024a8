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
"""Entity-agnostic async repository built on SQLAlchemy 2.0.

One :class:`Repository` wraps one ``AsyncSession`` and serves any mapped
entity type; every query method takes the entity class as its first
argument::

    repo = Repository(session)
    order = await repo.get_by_id(Order, "42")
    paid = await repo.get_list(Order, Order.status == "paid", includes=selectinload(Order.lines))
    repo.update(order)
    await repo.save_changes()
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Any, TypeVar

import structlog
from sqlalchemy import Select, func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from genrepo.data.composer import Includes, QueryComposer, apply_condition, is_no_tracking
from genrepo.data.metadata import EntityModel, entity_model
from genrepo.data.page import Page
from genrepo.data.pageable import Pageable
from genrepo.data.predicate import build_equals_primary_key
from genrepo.data.projection import ResolvedProjection, Selector, projected_query
from genrepo.data.specification import Condition, Specification
from genrepo.data.tracking import MutationTracker
from genrepo.data.transactions import Isolation, TransactionRegistry, commit_without_expiry
from genrepo.kernel.exceptions import InvalidArgumentError

T = TypeVar("T")
R = TypeVar("R")

logger = structlog.get_logger("genrepo.data.repository")


class Repository:
    """Generic CRUD, query, projection and transaction operations over a session.

    Args:
        session: The unit of work all operations run against.
        model: Primary-key metadata source. Defaults to the shared model.
        default_isolation: Isolation used by :meth:`open_transaction` when
            the caller does not pass one.
    """

    def __init__(
        self,
        session: AsyncSession,
        model: EntityModel = entity_model,
        *,
        default_isolation: Isolation | str = Isolation.DEFAULT,
    ) -> None:
        if session is None:
            raise InvalidArgumentError("session is required", code="REPO_INVALID_ARGUMENT")
        self._session = session
        self._model = model
        self._composer = QueryComposer()
        self._tracker = MutationTracker(session, model)
        self._transactions = TransactionRegistry(session)
        self._default_isolation = Isolation.parse(default_isolation)

    @property
    def session(self) -> AsyncSession:
        return self._session

    @property
    def model(self) -> EntityModel:
        return self._model

    @property
    def transactions(self) -> TransactionRegistry:
        """The named transactions open on this repository's session."""
        return self._transactions

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_queryable(self, entity_type: type[T]) -> Select[tuple[T]]:
        """The base ``SELECT`` for *entity_type*, for callers composing by hand."""
        self._model.resolve(entity_type, require_key=False)
        return select(entity_type)

    async def get_list(
        self,
        entity_type: type[T],
        condition: Condition | None = None,
        includes: Includes | None = None,
        as_no_tracking: bool = False,
    ) -> list[T]:
        """Every entity matching *condition*.

        With *as_no_tracking* the results are detached from the session. Like
        a tracked read, the query first autoflushes staged changes unless the
        session was created with ``autoflush=False``.
        """
        query = self._composer.compose(
            self.get_queryable(entity_type), condition, includes, as_no_tracking, root=entity_type
        )
        return await self._fetch_all(query)

    async def get_list_by_spec(
        self,
        entity_type: type[T],
        specification: Specification[T] | None,
        as_no_tracking: bool = False,
    ) -> list[T]:
        query = self._composer.apply(self.get_queryable(entity_type), specification, as_no_tracking, root=entity_type)
        return await self._fetch_all(query)

    async def get(
        self,
        entity_type: type[T],
        condition: Condition | None = None,
        includes: Includes | None = None,
        as_no_tracking: bool = False,
    ) -> T | None:
        """First entity matching *condition*, or ``None``."""
        query = self._composer.compose(
            self.get_queryable(entity_type), condition, includes, as_no_tracking, root=entity_type
        )
        return await self._fetch_first(query)

    async def get_by_spec(
        self,
        entity_type: type[T],
        specification: Specification[T] | None,
        as_no_tracking: bool = False,
    ) -> T | None:
        query = self._composer.apply(self.get_queryable(entity_type), specification, as_no_tracking, root=entity_type)
        return await self._fetch_first(query)

    async def get_by_id(
        self,
        entity_type: type[T],
        id: Any,
        includes: Includes | None = None,
        as_no_tracking: bool = False,
    ) -> T | None:
        """Entity whose primary key equals *id*, or ``None``.

        *id* is coerced to the declared key type first, so ``"42"`` finds the
        row with integer key ``42``.

        Raises:
            InvalidArgumentError: If *id* is ``None``.
            ConfigurationError: If the type is not in the model or has no key.
            TypeMismatchError: If *id* cannot be coerced to the key type.
        """
        predicate = build_equals_primary_key(entity_type, id, self._model)
        return await self.get(entity_type, predicate.clause, includes, as_no_tracking)

    # ------------------------------------------------------------------
    # Projections
    # ------------------------------------------------------------------

    async def get_projected_list(
        self,
        entity_type: type[T],
        selector: Selector,
        condition: Condition | None = None,
    ) -> list[Any]:
        """Selected columns of every entity matching *condition*.

        A single-column selector yields bare values; several columns (or a
        ``@projection`` class) yield rows with attribute access.
        """
        query, projection = self._projected(entity_type, selector)
        query = apply_condition(query, condition, entity_type)
        return await self._fetch_projected(query, projection)

    async def get_projected_list_by_spec(
        self,
        entity_type: type[T],
        specification: Specification[T] | None,
        selector: Selector,
    ) -> list[Any]:
        query, projection = self._projected(entity_type, selector)
        query = self._composer.apply(query, _without_includes(specification), root=entity_type)
        return await self._fetch_projected(query, projection)

    async def get_projected(
        self,
        entity_type: type[T],
        selector: Selector,
        condition: Condition | None = None,
    ) -> Any | None:
        query, projection = self._projected(entity_type, selector)
        query = apply_condition(query, condition, entity_type)
        return _first(await self._fetch_projected(query.limit(1), projection))

    async def get_projected_by_spec(
        self,
        entity_type: type[T],
        specification: Specification[T] | None,
        selector: Selector,
    ) -> Any | None:
        query, projection = self._projected(entity_type, selector)
        query = self._composer.apply(query, _without_includes(specification), root=entity_type)
        return _first(await self._fetch_projected(query.limit(1), projection))

    async def get_projected_by_id(self, entity_type: type[T], id: Any, selector: Selector) -> Any | None:
        predicate = build_equals_primary_key(entity_type, id, self._model)
        return await self.get_projected(entity_type, selector, predicate.clause)

    # ------------------------------------------------------------------
    # Paging
    # ------------------------------------------------------------------

    async def get_page(
        self,
        entity_type: type[T],
        pageable: Pageable,
        specification: Specification[T] | None = None,
        as_no_tracking: bool = False,
    ) -> Page[T]:
        """One page of *entity_type*, plus the total number of matches.

        The pageable's sort, when present, replaces the specification's
        ordering; its window replaces the specification's paging.
        """
        if pageable is None:
            raise InvalidArgumentError("pageable is required", code="REPO_INVALID_ARGUMENT")
        specification = specification or Specification()

        filtered = self._composer.apply(
            self.get_queryable(entity_type), Specification(condition=specification.condition), root=entity_type
        )
        total = (await self._session.execute(select(func.count()).select_from(filtered.subquery()))).scalar_one()

        items = await self.get_list_by_spec(entity_type, specification.page_of(pageable), as_no_tracking)
        return Page(items=items, total=total, pageable=pageable)

    # ------------------------------------------------------------------
    # Exists / count
    # ------------------------------------------------------------------

    async def exists(self, entity_type: type[T], condition: Condition | None = None) -> bool:
        """Whether any entity matches *condition* (any entity at all without one)."""
        query = apply_condition(self.get_queryable(entity_type), condition, entity_type)
        result = await self._session.execute(select(query.exists()))
        return bool(result.scalar())

    async def count(self, entity_type: type[T], *conditions: Condition) -> int:
        """Number of entities matching every condition (ANDed)."""
        self._model.resolve(entity_type, require_key=False)
        query = select(func.count()).select_from(entity_type)
        for condition in conditions:
            query = apply_condition(query, condition, entity_type)
        return int((await self._session.execute(query)).scalar_one())

    async def long_count(self, entity_type: type[T], *conditions: Condition) -> int:
        """Alias of :meth:`count`; Python integers do not overflow."""
        return await self.count(entity_type, *conditions)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def insert(self, entity: T) -> tuple[Any, ...]:
        """Stage *entity* for insertion; returns its primary-key values in declared order."""
        return await self._tracker.insert(entity)

    def insert_all(self, entities: Iterable[T]) -> None:
        self._tracker.insert_all(entities)

    def update(self, entity: T) -> None:
        """Mark *entity* as modified. See :meth:`MutationTracker.update`."""
        self._tracker.update(entity)

    def update_all(self, entities: Iterable[T]) -> None:
        self._tracker.update_all(entities)

    async def delete(self, entity: T) -> None:
        await self._tracker.delete(entity)

    async def delete_all(self, entities: Iterable[T]) -> None:
        await self._tracker.delete_all(entities)

    # ------------------------------------------------------------------
    # Raw SQL
    # ------------------------------------------------------------------

    async def execute_sql(self, sql: str, **params: Any) -> int:
        """Execute a parameterized statement; returns the affected-row count.

        Parameters are bound by name: ``execute_sql("DELETE FROM t WHERE id = :id", id=3)``.
        """
        if not sql:
            raise InvalidArgumentError("sql is required", code="REPO_INVALID_ARGUMENT", context={"argument": "sql"})
        result = await self._session.execute(text(sql), params)
        logger.debug("sql_executed", rowcount=result.rowcount)
        return result.rowcount

    def execute_sql_sync(self, sql: str, **params: Any) -> int:
        """Blocking counterpart of :meth:`execute_sql`.

        Only callable from the session's synchronous side, i.e. from a function
        passed to :meth:`run_sync`.
        """
        if not sql:
            raise InvalidArgumentError("sql is required", code="REPO_INVALID_ARGUMENT", context={"argument": "sql"})
        result = self._session.sync_session.execute(text(sql), params)
        logger.debug("sql_executed", rowcount=result.rowcount, sync=True)
        return result.rowcount

    async def run_sync(self, fn: Callable[..., R], *args: Any, **kwargs: Any) -> R:
        """Run blocking *fn* on the session's synchronous side."""
        return await self._session.run_sync(lambda _session: fn(*args, **kwargs))

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    def reset_context_state(self) -> None:
        """Detach every tracked entity; pending changes are discarded."""
        self._tracker.detach_all()

    async def save_changes(self, timeout: float | None = None) -> int:
        """Write staged changes; returns the number of entities written.

        With a named transaction active the changes are flushed into it and
        become durable when it is closed with ``commit=True``. Otherwise the
        session's own transaction is committed.

        Raises:
            TimeoutError: If *timeout* seconds elapse first.
        """
        session = self._session
        written = len(session.new) + len(session.deleted)
        written += sum(1 for entity in session.dirty if session.is_modified(entity))

        async with asyncio.timeout(timeout):
            if self._transactions.active_name is not None:
                await session.flush()
            else:
                await commit_without_expiry(session)
        logger.debug("changes_saved", written=written, transaction=self._transactions.active_name)
        return written

    # ------------------------------------------------------------------
    # Named transactions
    # ------------------------------------------------------------------

    async def open_transaction(self, name: str, isolation: Isolation | str | None = None) -> None:
        await self._transactions.open(name, self._default_isolation if isolation is None else isolation)

    async def switch_current_transaction(self, name: str) -> None:
        await self._transactions.switch_to(name)

    async def close_transaction(self, name: str, commit: bool) -> None:
        await self._transactions.close(name, commit)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Roll back any open named transactions and close the session."""
        await self._transactions.close_all(commit=False)
        await self._session.close()

    async def __aenter__(self) -> Repository:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _projected(self, entity_type: type[Any], selector: Selector) -> tuple[Select[Any], ResolvedProjection]:
        self._model.resolve(entity_type, require_key=False)
        return projected_query(entity_type, selector)

    async def _fetch_all(self, query: Select[Any]) -> list[Any]:
        if is_no_tracking(query):
            async with self._detached_reader() as reader:
                result = await reader.execute(query)
                return list(result.unique().scalars().all())
        result = await self._session.execute(query)
        return list(result.unique().scalars().all())

    async def _fetch_first(self, query: Select[Any]) -> Any | None:
        return _first(await self._fetch_all(query.limit(1)))

    async def _fetch_projected(self, query: Select[Any], projection: ResolvedProjection) -> list[Any]:
        result = await self._session.execute(query)
        if projection.scalar:
            return list(result.scalars().all())
        return list(result.all())

    @asynccontextmanager
    async def _detached_reader(self) -> AsyncIterator[AsyncSession]:
        """A throwaway session on the current connection.

        Entities it loads never enter this repository's identity map and are
        detached once it closes. Pending changes are flushed first, as the
        session's autoflush would for a tracked read.
        """
        if self._session.sync_session.autoflush:
            await self._session.flush()
        connection = await self._session.connection()
        reader = AsyncSession(bind=connection, expire_on_commit=False, autoflush=False)
        try:
            yield reader
        finally:
            await reader.close()


def _first(items: list[Any]) -> Any | None:
    return items[0] if items else None


def _without_includes(specification: Specification[Any] | None) -> Specification[Any] | None:
    # Column projections load no entities, so eager loaders have nothing to attach to.
    if specification is None or not specification.includes:
        return specification
    return replace(specification, includes=())
