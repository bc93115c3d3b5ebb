"""
Structured error types for alert-spine.

Every failure the poller can hit is one of a handful of typed errors that
carry a category, a retryable flag, structured context and the chained
cause. The scheduler decides what to do with a failure by its type:

    ┌─────────────────────────────────────────────────────────────────┐
    │                      AlertSpineError                             │
    │  (category, retryable, context, cause)                          │
    ├─────────────────────────────────────────────────────────────────┤
    │  ConfigurationError     TransportError     FormatError           │
    │  (CONFIG, fatal)        (NETWORK)          (PARSE)               │
    │       │                                                          │
    │  InvalidScheduleError   DispatchError                            │
    │                         (DISPATCH)                               │
    └─────────────────────────────────────────────────────────────────┘

Only ``ConfigurationError`` raised while registering jobs stops the
process. ``TransportError``, ``FormatError`` and ``DispatchError`` end a
single firing; the job keeps its schedule and the next tick is the retry.

Usage:
    from alertspine.core.errors import TransportError

    try:
        response = client.get(url)
    except httpx.HTTPError as e:
        raise TransportError("failed to fetch alerts", cause=e).with_context(url=url)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories used for classification in logs."""

    NETWORK = "NETWORK"
    PARSE = "PARSE"
    CONFIG = "CONFIG"
    DISPATCH = "DISPATCH"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Attributes:
        job: Scheduled job the error belongs to
        source_name: Alert backend name or URL host
        url: URL that was being accessed
        http_status: HTTP status code if applicable
        metadata: Additional key-value pairs
    """

    job: str | None = None
    source_name: str | None = None
    url: str | None = None
    http_status: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["job", "source_name", "url", "http_status"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class AlertSpineError(Exception):
    """Base exception for all alert-spine errors.

    Subclasses set ``default_category`` and ``default_retryable``.

    Examples:
        >>> error = AlertSpineError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(job="nightly").context.job
        'nightly'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> AlertSpineError:
        """Add context to this error (fluent API)."""
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
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS (fatal at startup)
# =============================================================================


class ConfigurationError(AlertSpineError):
    """Missing or invalid configuration. Halts scheduler startup."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class InvalidScheduleError(ConfigurationError):
    """Schedule string is empty, malformed, or not a valid cron expression."""

    def __init__(self, message: str, *, schedule: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.schedule = schedule
        if schedule is not None:
            self.context.metadata["schedule"] = schedule


# =============================================================================
# PER-FIRING ERRORS (logged, scoped to one firing)
# =============================================================================


class TransportError(AlertSpineError):
    """Network failure or non-success response from an alert backend."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class FormatError(AlertSpineError):
    """Alert backend returned a body that does not match the wire contract."""

    default_category = ErrorCategory.PARSE
    default_retryable = False


class DispatchError(AlertSpineError):
    """The delivery pipeline rejected or failed to accept an incident."""

    default_category = ErrorCategory.DISPATCH
    default_retryable = True


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, AlertSpineError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "AlertSpineError",
    "ConfigurationError",
    "InvalidScheduleError",
    "TransportError",
    "FormatError",
    "DispatchError",
    "is_retryable",
]
