"""Error kinds raised by the cross-reference engine.

"No history found" is never an error: it is an empty list. Everything
here means the lookup itself could not be completed, and callers must
surface it as such rather than showing an officer an empty history.
"""

from __future__ import annotations


class CrossReferenceError(Exception):
    """Base class for all cross-reference failures.

    ``safe_message`` is suitable for returning to API clients; the full
    message (which may carry backend details) is only logged.
    """

    def __init__(self, message: str, *, safe_message: str | None = None) -> None:
        super().__init__(message)
        self._safe_message = safe_message or message

    @property
    def safe_message(self) -> str:
        return self._safe_message


class SourceUnavailable(CrossReferenceError):
    """A roster scan or case-directory lookup failed.

    Raised when:
    - the backing store returns a transport error or non-2xx status
      after the adapter's retries are exhausted
    - an injected source raises an unexpected exception
    """

    def __init__(self, source: str, message: str) -> None:
        super().__init__(
            f"{source}: {message}",
            safe_message=f"History lookup failed: {source} is unavailable. Please retry.",
        )
        self.source = source


class Cancelled(CrossReferenceError):
    """The enrichment deadline fired or the caller cancelled mid fan-out."""

    def __init__(self, message: str = "Cross-reference lookup was cancelled") -> None:
        super().__init__(
            message,
            safe_message="History lookup timed out before completing. Please retry.",
        )
