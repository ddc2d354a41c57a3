"""Exception types for the kbkeys library."""

from enum import Enum


class ErrorKind(str, Enum):
    """Classification of a directory lookup failure."""

    UNKNOWN = "UnknownError"
    NETWORK = "NetworkError"
    TIMEOUT = "TimeoutError"
    RATE_LIMIT = "RateLimitError"
    NOT_FOUND = "NotFoundError"
    INVALID_INPUT = "InvalidInputError"
    SERVER_ERROR = "ServerError"
    INVALID_RESPONSE = "InvalidResponseError"

    def __str__(self) -> str:
        return self.value


def is_retryable(kind: ErrorKind) -> bool:
    """Return True if a failure of this kind may be retried."""
    match kind:
        case ErrorKind.NETWORK | ErrorKind.TIMEOUT | ErrorKind.SERVER_ERROR | ErrorKind.RATE_LIMIT:
            return True
        case ErrorKind.NOT_FOUND | ErrorKind.INVALID_INPUT | ErrorKind.INVALID_RESPONSE | ErrorKind.UNKNOWN:
            return False


class KeyringError(Exception):
    """Base exception for all kbkeys errors."""
    pass


class DirectoryError(KeyringError):
    """Classified failure of a key directory lookup.

    Instances are never mutated after construction. The originating
    exception, if any, is chained as ``__cause__``.
    """

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.UNKNOWN, status_code: int | None = None,
                 temporary: bool = False, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.status_code = status_code
        self.temporary = temporary
        self.retry_after = retry_after

    def __str__(self) -> str:
        if self.status_code:
            return f"{self.kind} (HTTP {self.status_code}): {self.message}"
        return f"{self.kind}: {self.message}"

    @property
    def retryable(self) -> bool:
        return is_retryable(self.kind)

    @property
    def is_rate_limit(self) -> bool:
        return self.kind is ErrorKind.RATE_LIMIT

    @property
    def is_timeout(self) -> bool:
        return self.kind is ErrorKind.TIMEOUT

    @property
    def is_network_error(self) -> bool:
        return self.kind is ErrorKind.NETWORK


class CacheError(KeyringError):
    """Key cache could not be created, read, parsed or written."""
    pass


class DecryptionError(KeyringError):
    """Ciphertext could not be decrypted."""
    pass


class ReEncryptionError(KeyringError):
    """Re-encryption request was invalid or encryption failed."""
    pass


class ConfigError(KeyringError):
    """Configuration file error."""
    pass
