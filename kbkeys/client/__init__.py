"""Key directory client."""

from .client import DirectoryClient
from .transport import classify_api_status, classify_request_error, classify_status_error, parse_retry_after
from .types import UserPublicKey
from .validation import validate_username

__all__ = [
    "DirectoryClient", "UserPublicKey", "validate_username",
    "classify_request_error", "classify_status_error", "classify_api_status", "parse_retry_after",
]
