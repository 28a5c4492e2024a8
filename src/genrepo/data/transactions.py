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
"""Named transactions held open side by side on one session.

Each named transaction owns a dedicated connection checked out from the
session's engine. At most one of them is *active*: the session is bound to
its connection, so every query and flush issued through the session runs
inside it. Switching only moves the session between connections; no
transaction is committed or rolled back by a switch.

Changes staged on the session but not yet flushed travel with it: opening a
transaction carries them into the new one, and closing the active one with
``commit=False`` discards them along with everything it wrote.

Usage::

    await registry.open("import", Isolation.SERIALIZABLE)
    ...  # work inside "import"
    await registry.open("audit")
    ...  # work inside "audit"
    await registry.switch_to("import")
    await registry.close("import", commit=True)
    await registry.close("audit", commit=False)
"""

from __future__ import annotations

import enum
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncSession, AsyncTransaction

from genrepo.kernel.exceptions import (
    ConfigurationError,
    DuplicateKeyError,
    InvalidArgumentError,
    NotFoundError,
)

logger = structlog.get_logger("genrepo.data.transactions")


class Isolation(enum.Enum):
    """Transaction isolation level."""

    DEFAULT = "DEFAULT"
    READ_UNCOMMITTED = "READ UNCOMMITTED"
    READ_COMMITTED = "READ COMMITTED"
    REPEATABLE_READ = "REPEATABLE READ"
    SERIALIZABLE = "SERIALIZABLE"
    AUTOCOMMIT = "AUTOCOMMIT"

    @classmethod
    def parse(cls, value: str | Isolation) -> Isolation:
        """Accept a member, its name (``READ_COMMITTED``) or its SQL value (``READ COMMITTED``)."""
        if isinstance(value, Isolation):
            return value
        normalized = str(value).strip().upper().replace("-", "_")
        for member in cls:
            if normalized in (member.name, member.value.replace(" ", "_")):
                return member
        raise InvalidArgumentError(
            f"Unknown isolation level '{value}'",
            code="REPO_INVALID_ARGUMENT",
            context={"isolation": value},
        )


@dataclass(frozen=True)
class NamedTransaction:
    name: str
    connection: AsyncConnection
    transaction: AsyncTransaction
    isolation: Isolation


async def commit_without_expiry(session: AsyncSession) -> None:
    """Commit the session's own transaction, keeping loaded instances usable.

    When the session is bound to a connection that already carries an outer
    transaction, the ORM joins it in rollback-only mode: this flushes into the
    outer transaction without committing it.
    """
    sync_session = session.sync_session
    expire_on_commit = sync_session.expire_on_commit
    sync_session.expire_on_commit = False
    try:
        await session.commit()
    finally:
        sync_session.expire_on_commit = expire_on_commit


async def _settle_keeping_staged(session: AsyncSession) -> None:
    """Commit statements already sent through *session*, leaving staged changes pending.

    Staged instances are set aside across the commit and re-attached after it,
    so they flush into whatever the session is bound to next.
    """
    sync_session = session.sync_session
    added = list(sync_session.new)
    modified = list(sync_session.dirty)
    removed = list(sync_session.deleted)
    for instance in (*added, *modified, *removed):
        if instance in sync_session:
            sync_session.expunge(instance)

    await commit_without_expiry(session)

    sync_session.add_all(added + modified)
    for instance in removed:
        sync_session.add(instance)
        await session.delete(instance)


class TransactionRegistry:
    """Per-session table of named, concurrently open transactions.

    Not safe for concurrent use; like the session it wraps, a registry serves
    one unit of work at a time.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._entries: dict[str, NamedTransaction] = {}
        self._active: str | None = None
        self._original_bind: Any = None

    @property
    def names(self) -> list[str]:
        """Registered transaction names, in opening order."""
        return list(self._entries)

    @property
    def active_name(self) -> str | None:
        return self._active

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self.names)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self, name: str, isolation: Isolation = Isolation.DEFAULT) -> None:
        """Begin a transaction on a new connection and make it active.

        Raises:
            InvalidArgumentError: If *name* is empty.
            DuplicateKeyError: If *name* is already registered.
            ConfigurationError: If the session is not bound to an engine.
        """
        if not name:
            raise InvalidArgumentError("name is required", code="REPO_INVALID_ARGUMENT", context={"argument": "name"})
        if name in self._entries:
            raise DuplicateKeyError(
                f"A transaction named '{name}' is already open",
                code="REPO_DUPLICATE_TRANSACTION",
                context={"name": name},
            )
        isolation = Isolation.parse(isolation)
        engine = self._engine()

        connection = await engine.connect()
        try:
            if isolation is not Isolation.DEFAULT:
                connection = await connection.execution_options(isolation_level=isolation.value)
            transaction = await connection.begin()
        except BaseException:
            await connection.close()
            raise

        previous = self._active
        try:
            await self._activate(NamedTransaction(name, connection, transaction, isolation))
        except BaseException:
            await transaction.rollback()
            await connection.close()
            raise
        logger.info("transaction_opened", name=name, isolation=isolation.name, previous=previous)

    async def switch_to(self, name: str) -> None:
        """Make the transaction registered under *name* the active one.

        Raises:
            NotFoundError: If *name* is not registered.
        """
        entry = self._lookup(name)
        if self._active == name:
            return
        previous = self._active
        await self._activate(entry)
        logger.info("transaction_switched", name=name, previous=previous)

    async def close(self, name: str, commit: bool) -> None:
        """Commit or roll back *name*, release its connection and forget it.

        Closing the active transaction returns the session to its original
        bind; closing any other leaves the active transaction untouched.
        With ``commit=False`` the session's pending changes are discarded, not
        flushed. The entry is released even when the commit fails.

        Raises:
            NotFoundError: If *name* is not registered.
        """
        entry = self._lookup(name)
        was_active = self._active == name

        try:
            if was_active:
                await self._release_session(commit)
            if commit:
                await entry.transaction.commit()
            elif entry.transaction.is_active:
                await entry.transaction.rollback()
        except BaseException:
            if entry.transaction.is_active:
                await entry.transaction.rollback()
            raise
        finally:
            await entry.connection.close()
            del self._entries[name]
            if was_active:
                self._session.sync_session.bind = self._original_bind
                self._active = None
        logger.info("transaction_closed", name=name, committed=commit, was_active=was_active)

    async def close_all(self, commit: bool = False) -> None:
        """Close every registered transaction, the active one last."""
        names = [n for n in self._entries if n != self._active]
        if self._active is not None:
            names.append(self._active)
        for name in names:
            await self.close(name, commit)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lookup(self, name: str) -> NamedTransaction:
        try:
            return self._entries[name]
        except KeyError:
            raise NotFoundError(
                f"No transaction named '{name}' is open",
                code="REPO_UNKNOWN_TRANSACTION",
                context={"name": name, "open": self.names},
            ) from None

    def _engine(self) -> AsyncEngine:
        bind = self._session.bind
        if isinstance(bind, AsyncEngine):
            return bind
        if isinstance(bind, AsyncConnection):
            return bind.engine
        raise ConfigurationError(
            "Named transactions require a session bound to an engine or connection",
            code="REPO_NO_ENGINE",
            context={"bind": type(bind).__name__},
        )

    async def _release_session(self, commit: bool) -> None:
        # Pending changes belong to the transaction being closed.
        if not commit:
            await self._session.rollback()
            return
        try:
            await commit_without_expiry(self._session)
        except BaseException:
            await self._session.rollback()
            raise

    async def _activate(self, entry: NamedTransaction) -> None:
        if self._active is not None:
            # Flush into the outgoing named transaction; it stays open.
            await commit_without_expiry(self._session)
        else:
            self._original_bind = self._session.sync_session.bind
            await _settle_keeping_staged(self._session)
        self._entries[entry.name] = entry
        self._session.sync_session.bind = entry.connection.sync_connection
        self._active = entry.name


