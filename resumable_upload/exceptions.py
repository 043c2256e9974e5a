"""
Error taxonomy for the resumable upload client.
"""
from typing import Optional


class UploadError(Exception):
    """Base class for all upload errors."""


class Cancelled(UploadError):
    """The current attempt was stopped by a pause or abort request.

    Not a failure: progress recorded so far stays valid.
    """


class TransferError(UploadError):
    """A single part transfer attempt failed; safe to retry."""


class ExhaustedRetries(UploadError):
    """A part kept failing across every allowed attempt."""

    def __init__(self, part_number: int, last_error: Optional[BaseException]):
        self.part_number = part_number
        self.last_error = last_error
        super().__init__(f"Part {part_number} failed: {last_error}")


class InvalidSession(UploadError):
    """A persisted session does not belong to the current target."""


class CollaboratorError(UploadError):
    """The upload service rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class FinalizeError(UploadError):
    """The storage side refused to assemble the uploaded parts."""


class UploadStateError(UploadError):
    """An operation was requested in a state that does not allow it."""
