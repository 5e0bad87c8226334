"""Provider error types and the error classifier.

Every failure seen by the orchestration core is mapped onto the closed
:class:`~reverie.types.ErrorKind` taxonomy together with a recovery policy
(retry locally, fall back to the next provider, or surface to the caller).
"""

from __future__ import annotations

import asyncio
import logging
import time
from email.utils import parsedate_to_datetime
from typing import Any, Sequence

import httpx

from reverie.types import ErrorClassification, ErrorKind, ProviderAttempt

_logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ProviderError(Exception):
    """A provider adapter call failed (HTTP error, bad payload, etc.)."""

    def __init__(
        self,
        message: str,
        *,
        provider: str = "",
        status_code: int | None = None,
        code: str = "",
        retry_after: float | None = None,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.status_code = status_code
        self.code = code
        self.retry_after = retry_after
        self.body = body

    def __str__(self) -> str:
        prefix = f"[{self.provider}] " if self.provider else ""
        status = f"HTTP {self.status_code}: " if self.status_code else ""
        return f"{prefix}{status}{self.message}"


class ToolExecutionError(Exception):
    """A tool executor failed or the tool is not registered.

    *message* is the complete text fed back to the model.
    """

    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(message)
        self.tool_name = tool_name
        self.message = message


class GenerationError(Exception):
    """Terminal failure of a generation invocation.

    Parameters
    ----------
    classification:
        Kind and remediation of the failure.
    cause:
        Classification of the last provider failure, when the terminal error
        summarises a chain of attempts.
    attempts:
        The per-invocation provider attempt ledger.
    """

    def __init__(
        self,
        classification: ErrorClassification,
        *,
        cause: ErrorClassification | None = None,
        attempts: Sequence[ProviderAttempt] = (),
    ) -> None:
        super().__init__(classification.message)
        self.classification = classification
        self.cause = cause
        self.attempts = tuple(attempts)

    @property
    def kind(self) -> ErrorKind:
        return self.classification.kind

    @property
    def message(self) -> str:
        return self.classification.message

    @property
    def remediation(self) -> str:
        return self.classification.remediation

    def __str__(self) -> str:
        if self.remediation:
            return f"{self.message} ({self.remediation})"
        return self.message


class GenerationCancelled(GenerationError):
    """The caller cancelled the invocation."""

    def __init__(self, attempts: Sequence[ProviderAttempt] = ()) -> None:
        super().__init__(
            ErrorClassification(
                kind=ErrorKind.CANCELLED,
                message="Generation cancelled",
                remediation="retry the request",
            ),
            attempts=attempts,
        )


def no_available_models(reason: str = "No enabled providers configured") -> GenerationError:
    return GenerationError(
        ErrorClassification(
            kind=ErrorKind.NO_AVAILABLE_MODELS,
            message=reason,
            remediation="check configuration",
        )
    )


def max_fallbacks_exceeded(
    cause: ErrorClassification | None,
    attempts: Sequence[ProviderAttempt],
) -> GenerationError:
    providers = list(dict.fromkeys(a.provider for a in attempts))
    detail = f": {cause.message}" if cause and cause.message else ""
    return GenerationError(
        ErrorClassification(
            kind=ErrorKind.MAX_FALLBACKS_EXCEEDED,
            message=f"All providers failed ({', '.join(providers)}){detail}",
            remediation=cause.remediation if cause and cause.remediation else "retry the request",
        ),
        cause=cause,
        attempts=attempts,
    )


# ---------------------------------------------------------------------------
# Retry-After parsing
# ---------------------------------------------------------------------------

def parse_retry_after(value: str | None) -> float | None:
    """Parse a ``Retry-After`` header (delta-seconds or HTTP date)."""
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when is None:
        return None
    return max(0.0, when.timestamp() - time.time())


# ---------------------------------------------------------------------------
# Error classifier
# ---------------------------------------------------------------------------

_QUOTA_MARKERS = (
    "quota",
    "insufficient_quota",
    "billing",
    "exceeded your current",
    "credit",
)

_RATE_LIMIT_MARKERS = ("rate limit", "rate_limit", "too many requests")

# Default backoff hints (seconds) when the provider gives no Retry-After
_RATE_LIMIT_BACKOFF = 1.0
_TRANSIENT_BACKOFF = 0.5


class ErrorClassifier:
    """Map raw failures onto :class:`ErrorKind` plus a recovery policy.

    ``classify()`` is pure: it inspects the error and returns a new
    :class:`ErrorClassification` without side effects.
    """

    def classify(self, raw_error: BaseException) -> ErrorClassification:
        if isinstance(raw_error, GenerationError):
            return raw_error.classification
        if isinstance(raw_error, asyncio.CancelledError):
            return ErrorClassification(
                kind=ErrorKind.CANCELLED,
                message="Generation cancelled",
                remediation="retry the request",
            )
        if isinstance(raw_error, ToolExecutionError):
            return ErrorClassification(
                kind=ErrorKind.TOOL_EXECUTION_ERROR,
                message=raw_error.message,
                remediation="check tool arguments",
            )
        if isinstance(raw_error, ProviderError):
            return self._classify_provider_error(raw_error)
        if isinstance(raw_error, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError)):
            return self._timeout(str(raw_error) or "Provider request timed out")
        if isinstance(raw_error, httpx.TransportError):
            return ErrorClassification(
                kind=ErrorKind.SERVER_ERROR,
                retryable=True,
                backoff_seconds=_TRANSIENT_BACKOFF,
                message=f"Provider unreachable: {raw_error}",
                remediation="retry the request",
            )
        return self._from_message(str(raw_error), type(raw_error).__name__)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _classify_provider_error(self, err: ProviderError) -> ErrorClassification:
        status = err.status_code
        text = f"{err.code} {err.message}".lower()
        label = str(err)

        if status == 402 or (
            status in (403, 429, None) and any(m in text for m in _QUOTA_MARKERS)
        ):
            return self._quota(label)
        if status == 429 or any(m in text for m in _RATE_LIMIT_MARKERS):
            return self._rate_limit(label, err.retry_after)
        if status in (408, 504):
            return self._timeout(label, err.retry_after)
        if status in (401, 403):
            return ErrorClassification(
                kind=ErrorKind.AUTHENTICATION,
                message=label,
                remediation="check configuration",
            )
        if status is not None and status >= 500:
            return ErrorClassification(
                kind=ErrorKind.SERVER_ERROR,
                retryable=True,
                backoff_seconds=err.retry_after if err.retry_after is not None else _TRANSIENT_BACKOFF,
                message=label,
                remediation="retry the request",
            )
        if status is None:
            return self._from_message(err.message, label)
        return ErrorClassification(
            kind=ErrorKind.UNKNOWN,
            message=label,
            remediation="check configuration",
        )

    def _from_message(self, message: str, label: str) -> ErrorClassification:
        lower = message.lower()
        if any(m in lower for m in _QUOTA_MARKERS):
            return self._quota(message or label)
        if any(m in lower for m in _RATE_LIMIT_MARKERS):
            return self._rate_limit(message or label, None)
        if "timed out" in lower or "timeout" in lower:
            return self._timeout(message or label)
        return ErrorClassification(
            kind=ErrorKind.UNKNOWN,
            message=message or label,
            remediation="retry the request",
        )

    @staticmethod
    def _quota(message: str) -> ErrorClassification:
        return ErrorClassification(
            kind=ErrorKind.QUOTA_EXCEEDED,
            message=message,
            remediation="check plan or billing",
        )

    @staticmethod
    def _rate_limit(message: str, retry_after: float | None) -> ErrorClassification:
        return ErrorClassification(
            kind=ErrorKind.RATE_LIMIT,
            retryable=True,
            backoff_seconds=retry_after if retry_after is not None else _RATE_LIMIT_BACKOFF,
            message=message,
            remediation="wait and retry",
        )

    @staticmethod
    def _timeout(message: str, retry_after: float | None = None) -> ErrorClassification:
        return ErrorClassification(
            kind=ErrorKind.TIMEOUT,
            retryable=True,
            backoff_seconds=retry_after if retry_after is not None else _TRANSIENT_BACKOFF,
            message=message,
            remediation="retry the request",
        )
