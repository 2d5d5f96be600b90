"""
Structured error types for warmspine.

Every failure the warming and cutover pipeline can produce has a typed
exception carrying the metadata needed for retry decisions, per-category
accounting and operator-facing reporting.

Manifesto:
    - **Typed taxonomy:** Row, category, store and cutover failures are
      distinct types so callers branch on type, never on log text
    - **Explicit retry semantics:** Each error knows if it's retryable
    - **Rich context:** Errors carry job, category and key metadata
    - **Error chaining:** Driver exceptions are preserved as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                      WarmspineError                              │
        │  (category, retryable, retry_after, context, cause)             │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  SourceError           CacheError             ValidationError   │
        │  (SOURCE)              (CACHE)                (VALIDATION)      │
        │       │                     │                       │           │
        │  SourceUnavailable     CacheTransient         MalformedRow      │
        │  QueryTimeout          CachePermanent         ValidationFailed  │
        │                        CacheStoreUnavailable                    │
        │                                                                  │
        │  CutoverError          ConfigError            AuthError         │
        │  (CUTOVER)             (CONFIG)               (AUTH)            │
        │       │                     │                       │           │
        │  ProvisioningFailed    InvalidConfig          AuthorizationError│
        │  RoutingFailed                                                  │
        │  IllegalTransition     JobConflictError       StorageError      │
        │                        ConnectivityError      (STORAGE)         │
        └─────────────────────────────────────────────────────────────────┘

Propagation:
    - ``MalformedRowError`` and ``CachePermanentError`` are counted as row
      failures by the Category Warmer and never abort a batch.
    - ``SourceUnavailableError`` / ``QueryTimeoutError`` are retried by the
      warmer, then abort only that category.
    - ``CacheStoreUnavailableError`` is the only error fatal to a job.

Examples:
    >>> error = CacheTransientError("connection reset")
    >>> error.retryable
    True
    >>> error.with_context(key="catalog:42").context.metadata["key"]
    'catalog:42'

Tags:
    error-handling, exception-hierarchy, retry-logic, warmspine
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    # Infrastructure errors (usually transient)
    NETWORK = "NETWORK"           # Connection, timeout, DNS
    DATABASE = "DATABASE"         # Connection pool, query timeout
    CACHE = "CACHE"               # Cache store round-trips
    STORAGE = "STORAGE"           # Report / decision persistence

    # Source/data errors
    SOURCE = "SOURCE"             # Relational source store
    VALIDATION = "VALIDATION"     # Malformed rows, failed gates

    # Configuration errors (never retryable)
    CONFIG = "CONFIG"
    AUTH = "AUTH"

    # Application errors
    WARMING = "WARMING"           # Job-level orchestration
    CUTOVER = "CUTOVER"           # Deploy / switch / teardown

    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Typed fields cover the identifiers that appear in almost every warming
    failure; anything else goes into ``metadata``.

    Attributes:
        job_id: Warming job identifier
        category: Data category being warmed
        key: Cache key involved, if any
        environment_id: Cutover environment involved, if any
        offset: Source page offset, if any
        metadata: Additional key-value pairs
    """

    job_id: str | None = None
    category: str | None = None
    key: str | None = None
    environment_id: str | None = None
    offset: int | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for name in ["job_id", "category", "key", "environment_id", "offset"]:
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class WarmspineError(Exception):
    """
    Base exception for all warmspine errors.

    Subclasses set ``default_category`` and ``default_retryable`` so that
    raising sites only pass what differs from the defaults.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: int | None = None,
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

    def with_context(self, **kwargs: Any) -> WarmspineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise SourceUnavailableError("refused").with_context(
                category="catalog", offset=100
            )
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
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
# SOURCE ERRORS
# =============================================================================


class SourceError(WarmspineError):
    """Error reading from the relational source store."""

    default_category = ErrorCategory.SOURCE
    default_retryable = False


class SourceUnavailableError(SourceError):
    """Source store unreachable or refusing connections."""

    default_retryable = True


class QueryTimeoutError(SourceError):
    """A paged source query exceeded its per-call timeout."""

    default_category = ErrorCategory.DATABASE
    default_retryable = True


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(WarmspineError):
    """Data or health validation error. Never retryable."""

    default_category = ErrorCategory.VALIDATION
    default_retryable = False


class MalformedRowError(ValidationError):
    """A source row could not be turned into a cache record."""

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        return result


class ValidationFailedError(ValidationError):
    """The Validation Gate rejected a warming report."""

    def __init__(self, message: str, *, reasons: list[str] | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.reasons = list(reasons or [])

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["reasons"] = self.reasons
        return result


# =============================================================================
# CACHE ERRORS
# =============================================================================


class CacheError(WarmspineError):
    """Error talking to the cache store."""

    default_category = ErrorCategory.CACHE
    default_retryable = False


class CacheTransientError(CacheError):
    """Connection reset, timeout or similar. Retried with backoff."""

    default_retryable = True


class CachePermanentError(CacheError):
    """Malformed key, value too large or a rejected command."""

    default_retryable = False


class CacheStoreUnavailableError(CacheError):
    """The cache store is completely unreachable. Fatal to the job."""

    default_category = ErrorCategory.NETWORK
    default_retryable = False


# =============================================================================
# WARMING / CUTOVER ERRORS
# =============================================================================


class WarmingError(WarmspineError):
    """Job-level orchestration error."""

    default_category = ErrorCategory.WARMING
    default_retryable = False


class JobConflictError(WarmingError):
    """A job for an overlapping category set is already running."""

    def __init__(self, categories: list[str], *, held_by: str | None = None, **kwargs: Any):
        self.categories = list(categories)
        self.held_by = held_by
        owner = f" (held by job {held_by})" if held_by else ""
        super().__init__(
            f"Warming already in progress for: {', '.join(self.categories)}{owner}",
            **kwargs,
        )


class ConnectivityError(WarmingError):
    """Preflight could not reach the source or the cache store."""

    default_category = ErrorCategory.NETWORK


class CutoverError(WarmspineError):
    """Cutover attempt error."""

    default_category = ErrorCategory.CUTOVER
    default_retryable = False


class ProvisioningFailedError(CutoverError):
    """The provisioning API failed to deploy or tear down an environment."""

    def __init__(self, message: str, *, environment_id: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.environment_id = environment_id
        if environment_id is not None:
            self.context.environment_id = environment_id


class RoutingFailedError(CutoverError):
    """The traffic router failed to switch traffic."""

    pass


class IllegalTransitionError(CutoverError):
    """A state machine transition outside the allowed table was requested."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Illegal cutover transition: {current} -> {requested}")


# =============================================================================
# CONFIGURATION / AUTH ERRORS
# =============================================================================


class ConfigError(WarmspineError):
    """Configuration error. Never retryable."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


class AuthError(WarmspineError):
    """Authentication or authorization error."""

    default_category = ErrorCategory.AUTH
    default_retryable = False


class AuthorizationError(AuthError):
    """Not authorized to perform action."""

    pass


# =============================================================================
# STORAGE ERRORS
# =============================================================================


class StorageError(WarmspineError):
    """Report / decision persistence error."""

    default_category = ErrorCategory.STORAGE
    default_retryable = False


class RecordNotFoundError(StorageError):
    """No persisted record for the requested job."""

    def __init__(self, kind: str, job_id: str | None = None):
        self.kind = kind
        self.job_id = job_id
        target = f" for job {job_id}" if job_id else ""
        super().__init__(f"No {kind} found{target}")


class DuplicateRecordError(StorageError):
    """Persisted records are immutable; a second write for a job was refused."""

    def __init__(self, kind: str, job_id: str):
        self.kind = kind
        self.job_id = job_id
        super().__init__(f"A {kind} for job {job_id} already exists")


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, WarmspineError):
        return error.retryable
    retryable_types = (
        ConnectionError,
        ConnectionResetError,
        ConnectionRefusedError,
        BrokenPipeError,
        TimeoutError,
    )
    return isinstance(error, retryable_types)


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, WarmspineError):
        return error.category
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorCategory.NETWORK
    if isinstance(error, ValueError):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "WarmspineError",
    # Source
    "SourceError",
    "SourceUnavailableError",
    "QueryTimeoutError",
    # Validation
    "ValidationError",
    "MalformedRowError",
    "ValidationFailedError",
    # Cache
    "CacheError",
    "CacheTransientError",
    "CachePermanentError",
    "CacheStoreUnavailableError",
    # Warming / cutover
    "WarmingError",
    "JobConflictError",
    "ConnectivityError",
    "CutoverError",
    "ProvisioningFailedError",
    "RoutingFailedError",
    "IllegalTransitionError",
    # Config / auth
    "ConfigError",
    "InvalidConfigError",
    "AuthError",
    "AuthorizationError",
    # Storage
    "StorageError",
    "RecordNotFoundError",
    "DuplicateRecordError",
    # Utilities
    "is_retryable",
    "categorize_error",
]
