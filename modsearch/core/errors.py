"""Error taxonomy for the search pipeline."""

import asyncio


class SearchError(Exception):
    """Base for pipeline failures. ``cancelled`` classifies caller cancellation."""

    cancelled: bool = False

    def __init__(self, message: str, cause: BaseException | None = None):
        self.message = message
        self.cause = cause
        super().__init__(message)


class Cancelled(SearchError):
    """The caller no longer wants the result. Never retried, never shown to users."""

    cancelled = True

    def __init__(self, message: str = "Request cancelled", cause: BaseException | None = None):
        super().__init__(message, cause)


class UpstreamUnavailable(SearchError):
    """Retries against the upstream were exhausted."""

    def __init__(self, message: str, attempts: int, cause: BaseException | None = None):
        self.attempts = attempts
        super().__init__(message, cause)


class BadUpstreamResponse(SearchError):
    """Upstream answered with a non-2xx status or an unusable body."""

    def __init__(self, message: str, status_code: int | None = None, cause: BaseException | None = None):
        self.status_code = status_code
        super().__init__(message, cause)


class PerRecordFailure(SearchError):
    """One upstream record could not be processed; siblings are unaffected."""

    def __init__(self, message: str, record_id: str | int | None = None, cause: BaseException | None = None):
        self.record_id = record_id
        super().__init__(message, cause)


class InvalidInput(SearchError):
    """Rejected before any upstream call is made."""


def is_cancellation(exc: BaseException) -> bool:
    if isinstance(exc, asyncio.CancelledError):
        return True
    return bool(getattr(exc, "cancelled", False))
