"""Key rotation detection and lazy re-encryption."""

from .detector import KeyRotationDetector
from .types import (
    Cipher, KeyState, KeyUsageInfo, LazyReEncryption, MigrationResult, ReEncryptionRequest, ReEncryptionResult,
    RotationInfo,
)
from .workflow import LazyReEncryptor

__all__ = [
    "KeyRotationDetector", "LazyReEncryptor",
    "Cipher", "KeyUsageInfo", "KeyState", "RotationInfo",
    "ReEncryptionRequest", "ReEncryptionResult", "LazyReEncryption", "MigrationResult",
]
