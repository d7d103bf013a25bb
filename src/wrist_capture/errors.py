"""Exception hierarchy for the capture-and-upload pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import SensorRole


class CaptureError(Exception):
    """Base class for all capture pipeline errors."""


class SensorUnavailable(CaptureError):
    """A motion sensor required for capture does not exist.

    Fatal to the current capture cycle only: the state machine aborts back to
    idle and reports the message to the display.
    """

    def __init__(self, role: "SensorRole", detail: str | None = None) -> None:
        self.role = role
        self.detail = detail
        message = f"{role.label} not available"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class AlreadySealed(CaptureError):
    """The session buffer was sealed and can no longer be read or appended."""


class UploadError(CaptureError):
    """Base class for upload outcomes that must be shown to the user."""


class NetworkFailure(UploadError):
    """The request never produced an HTTP response."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Network error: {reason}")


class ServerRejected(UploadError):
    """The collector answered with a non-2xx status code."""

    def __init__(self, status: int) -> None:
        self.status = status
        super().__init__(f"Server error: {status}")
