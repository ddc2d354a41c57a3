"""Lazy re-encryption: decrypt, check for key rotation, re-encrypt only when stale."""
import logging
from datetime import datetime, timezone
from typing import Mapping, Optional, Sequence

from kbkeys.exceptions import DecryptionError, KeyringError, ReEncryptionError
from kbkeys.rotation.detector import KeyRotationDetector
from kbkeys.rotation.types import (
    Cipher, KeyUsageInfo, LazyReEncryption, MigrationResult, ReEncryptionRequest, ReEncryptionResult, RotationInfo,
)
from kbkeys.state.manager import CacheManager

logger = logging.getLogger(__name__)


class LazyReEncryptor:
    """Keeps stored ciphertext encrypted to the recipients' current keys.

    Re-encryption happens only when a ciphertext is touched and found to
    have been opened with a retired receiver key.
    """

    def __init__(self, manager: CacheManager, cipher: Cipher, recipients: Sequence[str],
                 detector: Optional[KeyRotationDetector] = None) -> None:
        if not recipients:
            raise ValueError("at least one recipient is required")
        self._manager = manager
        self._cipher = cipher
        self._recipients = tuple(recipients)
        self._detector = detector or KeyRotationDetector(manager)

    @property
    def recipients(self) -> tuple[str, ...]:
        return self._recipients

    async def re_encrypt(self, request: ReEncryptionRequest) -> ReEncryptionResult:
        """Encrypt ``request.plaintext`` to the current keys of its recipients.

        Falls back to the configured recipients when the request names none.
        Never decrypts anything.

        Raises:
            ReEncryptionError: If the request is invalid or encryption fails.
            DirectoryError: If current keys cannot be resolved.
        """
        if not request.plaintext:
            raise ReEncryptionError("plaintext cannot be empty")
        recipients = tuple(request.recipients) or self._recipients
        keys = await self._manager.get_public_keys(recipients)
        try:
            ciphertext = self._cipher.encrypt(request.plaintext, [k.public_key for k in keys])
        except Exception as e:
            raise ReEncryptionError(f"re-encryption failed: {e}") from e
        logger.info("Re-encrypted payload for %d recipient(s)", len(recipients))
        return ReEncryptionResult(ciphertext=ciphertext, recipients=recipients,
                                  re_encrypted_at=datetime.now(timezone.utc),
                                  previous_rotation_info=request.rotation_info)

    async def decrypt_and_detect_rotation(self, ciphertext: bytes) -> tuple[bytes, KeyUsageInfo, RotationInfo]:
        """Decrypt *ciphertext* and check the key that opened it.

        Rotation check failures are reported inside the RotationInfo; only
        decryption failures raise.
        """
        if not ciphertext:
            raise DecryptionError("ciphertext cannot be empty")
        try:
            plaintext, usage = self._cipher.decrypt(ciphertext)
        except Exception as e:
            raise DecryptionError(f"decryption failed: {e}") from e
        if not isinstance(usage, KeyUsageInfo):
            raise DecryptionError(f"cipher returned no key usage info (got {type(usage).__name__})")
        if not isinstance(plaintext, bytes):
            raise DecryptionError(f"cipher returned non-bytes plaintext (got {type(plaintext).__name__})")
        info = await self._detector.detect_rotation(usage, self._recipients)
        return plaintext, usage, info

    async def perform_lazy_re_encryption(self, old_ciphertext: bytes) -> LazyReEncryption:
        """Decrypt, detect rotation and re-encrypt only if it is needed."""
        plaintext, _, info = await self.decrypt_and_detect_rotation(old_ciphertext)
        if not info.needs_re_encryption:
            return LazyReEncryption(plaintext=plaintext, rotation_info=info)
        result = await self.re_encrypt(ReEncryptionRequest(plaintext=plaintext, rotation_info=info))
        return LazyReEncryption(plaintext=plaintext, rotation_info=info, re_encryption=result)

    async def migrate_encrypted_data(self, ciphertexts: Mapping[str, bytes]) -> dict[str, MigrationResult]:
        """Run the lazy workflow on every item; one failure does not stop the rest."""
        results: dict[str, MigrationResult] = {}
        for item_id, ciphertext in ciphertexts.items():
            results[item_id] = await self._migrate_one(ciphertext)
        migrated = sum(1 for r in results.values() if r.new_ciphertext is not None)
        failed = sum(1 for r in results.values() if not r.ok)
        logger.info("Migration finished: %d item(s), %d re-encrypted, %d failed", len(results), migrated, failed)
        return results

    async def _migrate_one(self, ciphertext: bytes) -> MigrationResult:
        try:
            plaintext, _, info = await self.decrypt_and_detect_rotation(ciphertext)
        except KeyringError as e:
            return MigrationResult(error=e)
        if not info.needs_re_encryption:
            return MigrationResult(plaintext=plaintext, rotation_info=info)
        try:
            result = await self.re_encrypt(ReEncryptionRequest(plaintext=plaintext, rotation_info=info))
        except KeyringError as e:
            return MigrationResult(plaintext=plaintext, rotation_detected=True, rotation_info=info, error=e)
        return MigrationResult(plaintext=plaintext, new_ciphertext=result.ciphertext, rotation_detected=True,
                               rotation_info=info)
