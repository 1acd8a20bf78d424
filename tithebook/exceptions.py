"""Exception types raised inside the pipeline."""

from typing import Any


class TithebookError(Exception):
    """Base error for the tithe-book pipeline."""
    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.details = details


class ExtractionError(TithebookError):
    """The OCR collaborator failed or returned an unusable payload."""


class RateLimitError(TithebookError):
    """A rate-limited key has no free slot."""
    def __init__(self, message: str, retry_after_seconds: float):
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class StoreError(TithebookError):
    """The local durable store could not complete an operation."""


class SyncTransportError(TithebookError):
    """A remote apply failed; the action stays queued and may be retried."""


class SyncOfflineError(TithebookError):
    """Connectivity was lost; the running sync cycle stops."""
