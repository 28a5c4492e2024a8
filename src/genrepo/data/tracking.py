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
"""Change-tracking-aware staging of inserts, updates and deletes.

The session's identity map is the tracked set. An instance is *tracked*
when this exact object is registered with the session; another object that
represents the same row is not, and goes through full identity validation
before it is attached.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from typing import Any

import structlog
from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import make_transient_to_detached
from sqlalchemy.orm.attributes import flag_modified

from genrepo.data.metadata import EntityModel, entity_model
from genrepo.kernel.exceptions import InvalidArgumentError, StateError

logger = structlog.get_logger("genrepo.data.tracking")


def default_key_value(python_type: type) -> Any:
    """The zero value of a key type, or ``None`` when the type has none."""
    if python_type is uuid.UUID:
        return uuid.UUID(int=0)
    if python_type is object:
        return None
    try:
        return python_type()
    except (TypeError, ValueError):
        return None


def is_default_key(value: Any, python_type: type) -> bool:
    if value is None:
        return True
    zero = default_key_value(python_type)
    return zero is not None and value == zero


def _require(value: Any, argument: str) -> None:
    if value is None:
        raise InvalidArgumentError(
            f"{argument} is required", code="REPO_INVALID_ARGUMENT", context={"argument": argument}
        )


class MutationTracker:
    """Stages mutations on an ``AsyncSession`` for the next flush."""

    def __init__(self, session: AsyncSession, model: EntityModel = entity_model) -> None:
        self._session = session
        self._model = model

    def is_tracked(self, entity: Any) -> bool:
        """Whether this exact instance is registered with the session."""
        return entity in self._session

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update(self, entity: Any) -> None:
        """Stage *entity* as modified.

        A tracked instance needs nothing further: the session already observes
        its changes. An untracked one must carry a non-default primary key,
        otherwise it was never persisted and an UPDATE would silently match
        nothing.

        Raises:
            InvalidArgumentError: If *entity* is ``None``.
            ConfigurationError: If the type is not in the model or has no key.
            StateError: If the untracked entity's key is the type's default.
        """
        _require(entity, "entity")
        if self.is_tracked(entity):
            logger.debug("update_tracked", entity=type(entity).__name__)
            return

        metadata = self._model.resolve(type(entity))
        key = metadata.primary_key_property
        value = metadata.key_value(entity)
        if is_default_key(value, key.python_type):
            raise StateError(
                "The primary key value of the entity to be updated is not valid",
                code="REPO_INVALID_IDENTITY",
                context={"entity": type(entity).__name__, "key": key.name, "value": value},
            )

        self._attach_modified(entity)
        logger.debug("update_attached", entity=type(entity).__name__, key=value)

    def update_all(self, entities: Iterable[Any]) -> None:
        """Stage every entity as modified, without identity validation."""
        _require(entities, "entities")
        for entity in entities:
            if self.is_tracked(entity):
                self._flag_columns(entity)
            else:
                self._attach_modified(entity)

    def _attach_modified(self, entity: Any) -> None:
        # Transient objects carrying a key become detached identities so that
        # the session adds them as persistent rows instead of pending inserts.
        if inspect(entity).transient:
            make_transient_to_detached(entity)
        self._session.add(entity)
        self._flag_columns(entity)

    @staticmethod
    def _flag_columns(entity: Any) -> None:
        state = inspect(entity)
        key_columns = set(state.mapper.primary_key)
        for attr in state.mapper.column_attrs:
            if attr.key in state.dict and not key_columns.intersection(attr.columns):
                flag_modified(entity, attr.key)

    # ------------------------------------------------------------------
    # Insert
    # ------------------------------------------------------------------

    async def insert(self, entity: Any) -> tuple[Any, ...]:
        """Stage *entity* for insertion and return its primary-key values.

        The session is flushed so that column defaults and database-generated
        keys are assigned; all key columns are returned in declared order.
        """
        _require(entity, "entity")
        metadata = self._model.resolve(type(entity), require_key=False)
        self._session.add(entity)
        await self._session.flush()
        keys = metadata.key_values(entity)
        logger.debug("insert_staged", entity=type(entity).__name__, keys=keys)
        return keys

    def insert_all(self, entities: Iterable[Any]) -> None:
        """Stage every entity for insertion."""
        _require(entities, "entities")
        self._session.add_all(list(entities))

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete(self, entity: Any) -> None:
        """Stage *entity* for removal, whatever its tracking state."""
        _require(entity, "entity")
        state = inspect(entity)
        if state.pending:
            # Never flushed: removing it is just forgetting it.
            self._session.expunge(entity)
            return
        if state.transient:
            make_transient_to_detached(entity)
        await self._session.delete(entity)

    async def delete_all(self, entities: Iterable[Any]) -> None:
        _require(entities, "entities")
        for entity in list(entities):
            await self.delete(entity)

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def detach_all(self) -> None:
        """Detach every tracked instance from the session."""
        count = len(self._session.identity_map) + len(self._session.new)
        self._session.expunge_all()
        logger.debug("context_reset", detached=count)
