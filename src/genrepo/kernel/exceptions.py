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
"""Unified exception hierarchy for genrepo.

All repository errors inherit from GenRepoException, enabling unified
error handling: catch GenRepoException to handle every failure raised by
the data-access layer, or catch a specific subclass for targeted handling.

Each concrete error also derives from the closest built-in exception so
that idiomatic callers (``except KeyError``, ``except ValueError``) keep
working without importing this module.

Categories:
- BusinessException: caller mistakes and invalid entity state
- InfrastructureException: model / mapping configuration problems
"""

from __future__ import annotations

from typing import Any

# =============================================================================
# Base Exception
# =============================================================================


class GenRepoException(Exception):
    """Base exception for all genrepo errors.

    Carries an optional error code and context dict for structured error data.

    Args:
        message: Human-readable error description.
        code: Machine-readable error code (e.g. "REPO_TYPE_MISMATCH").
        context: Arbitrary key-value pairs for error context and debugging.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.context: dict[str, Any] = context if context is not None else {}

    def __str__(self) -> str:
        # KeyError renders its argument with repr(); keep messages readable.
        return self.message


# =============================================================================
# Business Exceptions
# =============================================================================


class BusinessException(GenRepoException):
    """Caller errors and entity state violations."""


class InvalidArgumentError(BusinessException, ValueError):
    """A required argument was absent or outside its allowed range."""


class TypeMismatchError(BusinessException, ValueError, TypeError):
    """A supplied key value cannot be converted to the declared key type."""


class StateError(BusinessException, RuntimeError):
    """The entity is not in a state that allows the operation."""


class NotFoundError(BusinessException, KeyError):
    """A named resource (e.g. a transaction) is not registered."""


class DuplicateKeyError(BusinessException, KeyError):
    """A named resource is already registered under the same name."""


# =============================================================================
# Infrastructure Exceptions
# =============================================================================


class InfrastructureException(GenRepoException):
    """Problems with the model, mapping or engine configuration."""


class ConfigurationError(InfrastructureException):
    """The entity type is not part of the model or has no primary key."""
