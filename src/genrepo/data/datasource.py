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
"""Engine, session factory and schema lifecycle for repositories."""

from __future__ import annotations

import structlog
from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from genrepo.config.properties.data import DataProperties
from genrepo.core.config import Config
from genrepo.data.entity import Base
from genrepo.data.metadata import EntityModel, entity_model
from genrepo.data.repository import Repository
from genrepo.data.transactions import Isolation

logger = structlog.get_logger("genrepo.data.datasource")


class DataSource:
    """Owns the async engine and hands out session-backed repositories.

    On ``start()``, applies the ``ddl-auto`` schema strategy:

    * ``create``: create tables that do not exist yet
    * ``create-drop``: create on start, drop on ``stop()``
    * ``none``: skip DDL (for migration-managed databases)

    Usage::

        source = DataSource.from_config(Config.from_file("genrepo.yaml"))
        await source.start()
        async with source.repository() as repo:
            ...
        await source.stop()
    """

    _VALID_DDL_MODES = {"none", "create", "create-drop"}

    def __init__(
        self,
        properties: DataProperties | None = None,
        *,
        engine: AsyncEngine | None = None,
        metadata: MetaData | None = None,
    ) -> None:
        self._properties = properties or DataProperties()
        ddl_auto = self._properties.ddl_auto
        if ddl_auto not in self._VALID_DDL_MODES:
            logger.warning("unknown_ddl_auto", value=ddl_auto, fallback="none")
            ddl_auto = "none"
        self._ddl_auto = ddl_auto
        self._isolation = Isolation.parse(self._properties.isolation)
        self._metadata = metadata if metadata is not None else Base.metadata
        self._engine = engine or create_async_engine(
            self._properties.url,
            echo=self._properties.echo,
            pool_pre_ping=self._properties.pool_pre_ping,
        )
        self._session_factory = async_sessionmaker(
            self._engine,
            expire_on_commit=self._properties.expire_on_commit,
            autoflush=self._properties.autoflush,
        )

    @classmethod
    def from_config(cls, config: Config) -> DataSource:
        """Build a data source from the ``genrepo.data`` section of *config*."""
        return cls(config.bind(DataProperties))

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory

    @property
    def ddl_auto(self) -> str:
        return self._ddl_auto

    async def start(self) -> None:
        """Create tables from the metadata when ``ddl-auto`` asks for it."""
        if self._ddl_auto in ("create", "create-drop"):
            logger.info("schema_initializing", ddl_auto=self._ddl_auto)
            async with self._engine.begin() as conn:
                await conn.run_sync(self._metadata.create_all)
            logger.info("schema_initialized", tables=len(self._metadata.tables))

    async def stop(self) -> None:
        """Drop the schema under ``create-drop`` and dispose the connection pool."""
        if self._ddl_auto == "create-drop":
            logger.info("schema_dropping", ddl_auto=self._ddl_auto)
            async with self._engine.begin() as conn:
                await conn.run_sync(self._metadata.drop_all)
        await self._engine.dispose()

    def session(self) -> AsyncSession:
        """A new session; the caller owns and closes it."""
        return self._session_factory()

    def repository(self, model: EntityModel = entity_model) -> Repository:
        """A repository over a new session. Close it (or use ``async with``) when done."""
        return Repository(self.session(), model, default_isolation=self._isolation)
