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
"""Apply specifications onto SQLAlchemy ``Select`` statements.

Composition never executes anything; it only returns a refined statement.
Steps are always applied in the same order so that equal inputs generate
identical SQL:

1. filter (``WHERE``)
2. includes (loader options)
3. orderings (first is the primary sort, the rest are secondary)
4. paging (``OFFSET`` then ``LIMIT``)
5. no-tracking marker
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import structlog
from sqlalchemy import Select
from sqlalchemy.sql.base import ExecutableOption

from genrepo.data.specification import (
    Condition,
    IncludeStep,
    Specification,
    as_include_step,
    resolve_condition,
)

logger = structlog.get_logger("genrepo.data.composer")

NO_TRACKING_OPTION = "genrepo_no_tracking"

Includes = Any
"""A loader option, an include step, or an iterable of either."""


def mark_no_tracking(query: Select[Any]) -> Select[Any]:
    """Mark *query* so its results are returned detached from the session."""
    return query.execution_options(**{NO_TRACKING_OPTION: True})


def is_no_tracking(query: Select[Any]) -> bool:
    return bool(query.get_execution_options().get(NO_TRACKING_OPTION, False))


def include_steps(includes: Includes | None) -> tuple[IncludeStep, ...]:
    """Normalise the ``includes`` argument of the parameter overloads."""
    if includes is None:
        return ()
    if isinstance(includes, ExecutableOption) or callable(includes):
        return (as_include_step(includes),)
    if isinstance(includes, Iterable):
        return tuple(as_include_step(item) for item in includes)
    return (as_include_step(includes),)


def root_entity(query: Select[Any]) -> type:
    """The entity class a ``select(Entity)`` statement is rooted at."""
    return query.column_descriptions[0]["entity"]


class QueryComposer:
    """Builds composed statements from specifications or loose parameters."""

    def apply(
        self,
        query: Select[Any],
        specification: Specification[Any] | None,
        as_no_tracking: bool = False,
        root: type | None = None,
    ) -> Select[Any]:
        """Apply *specification* to *query*; ``None`` leaves the query unfiltered."""
        if specification is None:
            return self.finish(query, as_no_tracking)
        root = root or root_entity(query)
        steps: list[str] = []

        condition = specification.resolve_condition(root)
        if condition is not None:
            query = query.where(condition)
            steps.append("filter")

        for include in specification.includes:
            query = include(query)
        if specification.includes:
            steps.append(f"include[{len(specification.includes)}]")

        if specification.orderings:
            query = query.order_by(*(ordering.resolve(root) for ordering in specification.orderings))
            steps.append(f"order[{len(specification.orderings)}]")

        if specification.paging is not None:
            query = query.offset(specification.paging.skip).limit(specification.paging.take)
            steps.append("page")

        if as_no_tracking:
            steps.append("no-tracking")
        logger.debug("query_composed", entity=root.__name__, steps=steps)
        return self.finish(query, as_no_tracking)

    def compose(
        self,
        query: Select[Any],
        condition: Condition | None = None,
        includes: Includes | None = None,
        as_no_tracking: bool = False,
        root: type | None = None,
    ) -> Select[Any]:
        """Parameter form of :meth:`apply`; converges on the same step order."""
        root = root or root_entity(query)
        specification: Specification[Any] = Specification(condition=condition, includes=include_steps(includes))
        return self.apply(query, specification, as_no_tracking, root)

    def finish(self, query: Select[Any], as_no_tracking: bool) -> Select[Any]:
        """Last composition step: the optional no-tracking marker."""
        return mark_no_tracking(query) if as_no_tracking else query


def apply_condition(query: Select[Any], condition: Condition | None, root: type) -> Select[Any]:
    """Add a single filter to *query* (no-op for ``None``)."""
    clause = resolve_condition(condition, root)
    return query if clause is None else query.where(clause)
