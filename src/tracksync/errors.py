"""Error taxonomy for tracker synchronization.

Setup failures (bad credentials, missing workspace objects, invalid input)
propagate out of the orchestrator and abort the operation. Per-item failures
inside a batch are caught and counted by the orchestrator instead.
"""

from __future__ import annotations

from enum import Enum


class TrackerErrorCode(str, Enum):
    """Structured classification of a tracker API rejection."""

    INVALID_LEAD = "invalid_lead"
    KEY_CONFLICT = "key_conflict"
    PERMISSION_DENIED = "permission_denied"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    UNKNOWN = "unknown"


class ProjectCreationFailure(str, Enum):
    """User-facing categories for a failed tracker project creation."""

    INVALID_LEAD = "invalid_lead"
    KEY_CONFLICT = "key_conflict"
    PERMISSION_DENIED = "permission_denied"
    GENERIC = "generic"


class SyncError(Exception):
    """Base exception for all synchronization errors."""


# =============================================================================
# Tracker errors
# =============================================================================


class TrackerError(SyncError):
    """Base exception for tracker client errors."""


class TrackerConnectionError(TrackerError):
    """The tracker could not be reached (network failure or timeout)."""


class TrackerApiError(TrackerError):
    """The tracker answered with a non-2xx response."""

    def __init__(
        self,
        message: str,
        status_code: int,
        body: str = "",
        code: TrackerErrorCode = TrackerErrorCode.UNKNOWN,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.code = code


class TrackerAuthError(TrackerApiError):
    """Authentication or authorization with the tracker failed (401/403)."""


class TrackerNotFoundError(TrackerApiError):
    """Requested tracker resource not found (404)."""


class TrackerRateLimitError(TrackerApiError):
    """Tracker rate limit exceeded after retries (429)."""

    def __init__(self, message: str, retry_after: int | None = None, body: str = "") -> None:
        super().__init__(message, status_code=429, body=body, code=TrackerErrorCode.RATE_LIMITED)
        self.retry_after = retry_after  # Seconds to wait before retry


# =============================================================================
# Local errors
# =============================================================================


class ValidationError(SyncError):
    """Caller input is missing or inconsistent (no tasks, no project selected)."""


class NotFoundError(SyncError):
    """A local workspace, space, project or integration does not exist."""


class ConflictError(SyncError):
    """A uniqueness constraint rejected a write (duplicate mapping).

    Recoverable: callers treat it as a benign race and re-read the winner.
    """


class ConversionError(SyncError):
    """A tracker payload has a shape the converter does not recognize."""


class ProjectCreationError(SyncError):
    """Creating the destination project in the tracker failed."""

    def __init__(self, message: str, category: ProjectCreationFailure) -> None:
        super().__init__(message)
        self.category = category
