"""Exception classes for the folder copy service."""

from typing import Optional


class FolderCopyError(Exception):
    """Base exception for all folder copy errors.

    Every subclass carries the HTTP status the API answers with when the
    error reaches the request boundary.
    """

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthError(FolderCopyError):
    """Raised when the request carries a missing or wrong API key."""

    status_code = 401


class InputValidationError(FolderCopyError):
    """Raised when required parameters are missing or malformed."""

    status_code = 400


class FolderAccessError(FolderCopyError):
    """Raised when a folder id cannot be found or is not accessible."""

    status_code = 403


class RateLimitError(FolderCopyError):
    """Raised when a caller sends requests faster than the cooldown allows."""

    status_code = 429


class LockTimeoutError(FolderCopyError):
    """Raised when the queue lock cannot be acquired in time."""

    status_code = 503


class StorageError(FolderCopyError):
    """Raised when the storage service rejects or fails an operation."""

    status_code = 502

    def __init__(self, message: str, response_status: Optional[int] = None):
        super().__init__(message)
        self.response_status = response_status
