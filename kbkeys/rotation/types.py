"""Type definitions for key rotation detection and lazy re-encryption."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Protocol, Sequence


@dataclass(frozen=True)
class KeyUsageInfo:
    """Decryption metadata reported by the cipher.

    ``receiver_key_id`` identifies the recipient key that opened the
    message; ``sender_key_id`` the key that sealed it, if not anonymous.
    """
    receiver_key_id: str
    sender_key_id: Optional[str] = None
    sender_is_anonymous: bool = False


class Cipher(Protocol):
    """Encrypt/decrypt capability supplied by the caller.

    ``decrypt`` raises on failure.
    """

    def encrypt(self, plaintext: bytes, public_keys: Sequence[str]) -> bytes: ...

    def decrypt(self, ciphertext: bytes) -> tuple[bytes, KeyUsageInfo]: ...


class KeyState(str, Enum):
    CURRENT = "current"
    RETIRED = "retired"
    UNKNOWN = "unknown"
    ANONYMOUS = "anonymous"


@dataclass(frozen=True)
class RotationInfo:
    """Outcome of one rotation check. Built fresh per call, never stored."""
    receiver_key_state: KeyState
    sender_key_state: KeyState
    detected_at: datetime
    reason: str = ""
    needs_re_encryption: bool = False
    receiver_key_id: Optional[str] = None
    sender_key_id: Optional[str] = None
    receiver_username: Optional[str] = None
    recipients: tuple[str, ...] = ()
    error: Optional[Exception] = None

    @property
    def receiver_key_retired(self) -> bool:
        return self.receiver_key_state is KeyState.RETIRED

    @property
    def sender_key_retired(self) -> Optional[bool]:
        """True/False only when the sender key state is known, otherwise None."""
        if self.sender_key_state is KeyState.RETIRED:
            return True
        if self.sender_key_state is KeyState.CURRENT:
            return False
        return None

    @property
    def degraded(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class ReEncryptionRequest:
    plaintext: bytes
    recipients: tuple[str, ...] = ()
    rotation_info: Optional[RotationInfo] = None


@dataclass(frozen=True)
class ReEncryptionResult:
    ciphertext: bytes
    recipients: tuple[str, ...]
    re_encrypted_at: datetime
    previous_rotation_info: Optional[RotationInfo] = None


@dataclass(frozen=True)
class LazyReEncryption:
    """Plaintext plus the re-encryption performed, or None when none was needed."""
    plaintext: bytes
    rotation_info: RotationInfo
    re_encryption: Optional[ReEncryptionResult] = None

    @property
    def performed(self) -> bool:
        return self.re_encryption is not None

    @property
    def new_ciphertext(self) -> Optional[bytes]:
        return self.re_encryption.ciphertext if self.re_encryption else None


@dataclass(frozen=True)
class MigrationResult:
    """Per-item result of a bulk migration.

    ``new_ciphertext`` is present exactly when rotation was detected and no
    error occurred.
    """
    plaintext: Optional[bytes] = None
    new_ciphertext: Optional[bytes] = None
    rotation_detected: bool = False
    rotation_info: Optional[RotationInfo] = None
    error: Optional[Exception] = None

    def __post_init__(self) -> None:
        expect_ciphertext = self.rotation_detected and self.error is None
        if expect_ciphertext != (self.new_ciphertext is not None):
            raise ValueError("new_ciphertext must be present iff rotation was detected without error")

    @property
    def ok(self) -> bool:
        return self.error is None
