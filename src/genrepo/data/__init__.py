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
"""genrepo Data — entity-agnostic repository over SQLAlchemy async sessions.

The repository composes declarative specifications into ``Select``
statements, resolves primary keys from mapper metadata, stages mutations on
the session's unit of work, and juggles named transactions on dedicated
connections.
"""

from genrepo.data.composer import QueryComposer, is_no_tracking, mark_no_tracking
from genrepo.data.datasource import DataSource
from genrepo.data.entity import Base, BaseEntity
from genrepo.data.metadata import EntityMetadata, EntityModel, KeyProperty, entity_model
from genrepo.data.page import Page
from genrepo.data.pageable import Order, Pageable, Sort
from genrepo.data.predicate import KeyPredicate, build_equals_primary_key, coerce_key
from genrepo.data.projection import is_projection, projection, projection_fields
from genrepo.data.repository import Repository
from genrepo.data.specification import Ordering, Paging, Specification, where
from genrepo.data.tracking import MutationTracker
from genrepo.data.transactions import Isolation, TransactionRegistry

__all__ = [
    # Entities and metadata
    "Base",
    "BaseEntity",
    "EntityMetadata",
    "EntityModel",
    "KeyProperty",
    "entity_model",
    # Predicates
    "KeyPredicate",
    "build_equals_primary_key",
    "coerce_key",
    # Queries
    "Ordering",
    "Paging",
    "QueryComposer",
    "Specification",
    "is_no_tracking",
    "mark_no_tracking",
    "where",
    # Paging
    "Order",
    "Page",
    "Pageable",
    "Sort",
    # Projections
    "is_projection",
    "projection",
    "projection_fields",
    # Unit of work
    "Isolation",
    "MutationTracker",
    "TransactionRegistry",
    # Facade
    "DataSource",
    "Repository",
]
