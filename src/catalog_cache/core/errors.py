"""
Structured error types for the catalog cache.

Every failure the cache can surface is a :class:`CatalogError` carrying a
category, an explicit retry decision, and structured context. The remote
client, the sync engine, and the query engine all raise from this hierarchy
so callers can tell a flaky network apart from a malformed record or an
overlapping sync pass without string matching.

Manifesto:
    - **Typed taxonomy:** One class per way the cache can fail
    - **Explicit retry semantics:** Each error knows if it's retryable
    - **Rich context:** Resource, URL, HTTP status travel with the error
    - **Error chaining:** The original exception is kept as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                        CatalogError                          │
        │     (category, retryable, retry_after, context, cause)      │
        ├─────────────────────────────────────────────────────────────┤
        │                                                              │
        │  TransportError      ClientError        ValidationError     │
        │  (NETWORK, retry)    (CLIENT)           (VALIDATION)        │
        │       │                   │                                  │
        │  RateLimitError      NotFoundError                           │
        │  (429, retry_after)  (404)                                   │
        │                                                              │
        │  StorageError        StaleLockError     ConfigError         │
        │  (STORAGE)           (SYNC)             (CONFIG)            │
        └─────────────────────────────────────────────────────────────┘

Examples:
    >>> error = TransportError("catalog returned 503")
    >>> error.retryable
    True
    >>> error.with_context(resource="companies", http_status=503).context.http_status
    503

Tags:
    error-handling, exception-hierarchy, retry-logic, catalog-cache
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    # Infrastructure (usually transient)
    NETWORK = "NETWORK"           # Connection, timeout, 5xx, 429
    STORAGE = "STORAGE"           # sqlite failures

    # Upstream / data
    CLIENT = "CLIENT"             # 4xx responses other than 429
    VALIDATION = "VALIDATION"     # Schema, constraint violations

    # Coordination
    SYNC = "SYNC"                 # Overlapping passes, lock conflicts

    # Configuration
    CONFIG = "CONFIG"

    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """Structured metadata attached to a :class:`CatalogError`.

    Attributes:
        resource: Sync resource type (``companies``, ``drift`` ...)
        record_id: Identifier of the record involved, if any
        url: URL that was being accessed
        http_status: HTTP status code if applicable
        metadata: Additional key-value pairs
    """

    resource: str | None = None
    record_id: str | None = None
    url: str | None = None
    http_status: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["resource", "record_id", "url", "http_status"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class CatalogError(Exception):
    """Base exception for all catalog cache errors.

    Subclasses set ``default_category`` and ``default_retryable`` so that
    raising the right type is enough to get the right retry behaviour.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: float | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> CatalogError:
        """
        Add context to this error (fluent API).

        Usage:
            raise ClientError("Bad request").with_context(
                resource="companies",
                url="https://api.example/v1/catalog/companies",
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# REMOTE ERRORS
# =============================================================================


class TransportError(CatalogError):
    """Network failure, timeout, or 5xx response. Retried with backoff."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class RateLimitError(TransportError):
    """429 Too Many Requests."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        *,
        retry_after: float | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, retry_after=retry_after, **kwargs)


class ClientError(CatalogError):
    """4xx response other than 429. Surfaced immediately, never retried."""

    default_category = ErrorCategory.CLIENT
    default_retryable = False


class NotFoundError(ClientError):
    """404 Not Found."""


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(CatalogError):
    """
    A record failed its schema contract.

    Never retryable - the data itself must change.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        constraint: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value
        self.constraint = constraint

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        if self.constraint:
            result["constraint"] = self.constraint
        return result


# =============================================================================
# LOCAL ERRORS
# =============================================================================


class StorageError(CatalogError):
    """Storage statement or transaction failure."""

    default_category = ErrorCategory.STORAGE
    default_retryable = False


class StaleLockError(CatalogError):
    """A sync pass for this resource is already in flight."""

    default_category = ErrorCategory.SYNC
    default_retryable = False

    def __init__(self, resource: str, message: str | None = None, **kwargs: Any):
        self.resource = resource
        super().__init__(
            message or f"Sync already in progress for resource: {resource}",
            **kwargs,
        )
        self.context.resource = resource


class ConfigError(CatalogError):
    """Missing or invalid configuration."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, CatalogError):
        return error.retryable
    return False


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "CatalogError",
    "TransportError",
    "RateLimitError",
    "ClientError",
    "NotFoundError",
    "ValidationError",
    "StorageError",
    "StaleLockError",
    "ConfigError",
    "is_retryable",
]
