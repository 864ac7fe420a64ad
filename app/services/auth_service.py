"""Request checks that run before any storage call."""

import re
import secrets
from typing import Optional
from urllib.parse import urlparse
from app.config import settings
from app.exceptions import AuthError, InputValidationError
from app.utils.logger import setup_logger

logger = setup_logger(__name__)


class AuthService:
    """Validates API keys and folder IDs of incoming requests."""

    def __init__(self, api_key: Optional[str] = None, folder_id_pattern: Optional[str] = None):
        """Initialize the auth service.

        Args:
            api_key: Expected API key (defaults to settings.api_key)
            folder_id_pattern: Regex folder IDs must match
        """
        self.api_key = api_key if api_key is not None else settings.api_key
        self._id_regex = re.compile(folder_id_pattern or settings.folder_id_pattern)

    def verify_api_key(self, api_key: Optional[str]) -> None:
        """Check the API key sent by the caller.

        Raises:
            AuthError: If the key is missing or does not match
        """
        if not api_key or not self.api_key or not secrets.compare_digest(
            api_key.encode("utf-8"), self.api_key.encode("utf-8")
        ):
            logger.warning("Rejected request with invalid API key")
            raise AuthError("Unauthorized. Invalid API key.")

    def validate_folder_ids(
        self, source_folder_id: Optional[str], destination_folder_id: Optional[str]
    ) -> None:
        """Check that both folder IDs are present and well-formed.

        Raises:
            InputValidationError: If an ID is missing or has invalid characters
        """
        if not source_folder_id or not destination_folder_id:
            raise InputValidationError(
                "Missing required parameters: sourceFolderId and destinationFolderId."
            )

        if not self._id_regex.fullmatch(source_folder_id) or not self._id_regex.fullmatch(destination_folder_id):
            raise InputValidationError(
                "Invalid input format. Folder IDs should only contain letters, numbers, "
                "hyphens, underscores and exclamation marks."
            )

    def validate_callback_url(self, callback_url: str) -> None:
        """Check that a callback URL is an absolute http(s) URL.

        Raises:
            InputValidationError: If the URL is not usable
        """
        parsed = urlparse(callback_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise InputValidationError("Invalid callbackUrl. Expected an absolute http(s) URL.")
