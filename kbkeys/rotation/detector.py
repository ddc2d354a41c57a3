"""Detect messages decrypted with a key that is no longer a recipient's current key."""
import logging
from datetime import datetime, timezone
from typing import Optional, Sequence

from kbkeys.exceptions import KeyringError
from kbkeys.rotation.types import KeyState, KeyUsageInfo, RotationInfo
from kbkeys.state.manager import CacheManager

logger = logging.getLogger(__name__)


def _same_key_id(a: str, b: str) -> bool:
    return bool(a) and a.lower() == b.lower()


class KeyRotationDetector:
    """Compares the key that decrypted a message with recipients' current keys.

    Current keys are always re-fetched from the directory, bypassing the
    cache. Fetch failures do not raise: they yield a RotationInfo whose
    receiver state is UNKNOWN and whose ``error`` is set.

    The sender key is never classified as current or retired because there
    is no mapping from a sender key back to a username; a non-anonymous
    sender is always reported as UNKNOWN.
    """

    def __init__(self, manager: CacheManager) -> None:
        self._manager = manager

    async def detect_rotation(self, usage: KeyUsageInfo, recipients: Sequence[str],
                              timeout: Optional[float] = None) -> RotationInfo:
        if usage is None:
            raise ValueError("usage info cannot be None")
        anonymous = usage.sender_is_anonymous
        common = dict(
            sender_key_state=KeyState.ANONYMOUS if anonymous else KeyState.UNKNOWN,
            detected_at=datetime.now(timezone.utc),
            receiver_key_id=usage.receiver_key_id or None,
            sender_key_id=None if anonymous else usage.sender_key_id,
            recipients=tuple(recipients),
        )
        if not recipients:
            return RotationInfo(receiver_key_state=KeyState.UNKNOWN,
                                reason="no recipients configured; receiver key not checked", **common)
        if not usage.receiver_key_id:
            return RotationInfo(receiver_key_state=KeyState.UNKNOWN,
                                reason="decryption metadata does not identify the receiver key", **common)
        try:
            current = await self._manager.refresh_users(recipients, timeout=timeout)
        except KeyringError as e:
            logger.warning("Rotation check degraded to unknown: %s", e)
            return RotationInfo(receiver_key_state=KeyState.UNKNOWN,
                                reason=f"could not fetch current recipient keys: {e}", error=e, **common)

        match = next((k for k in current if _same_key_id(k.key_id, usage.receiver_key_id)), None)
        if match is None:
            logger.info("Receiver key %s is retired for recipients %s", usage.receiver_key_id, ", ".join(recipients))
            return RotationInfo(receiver_key_state=KeyState.RETIRED, needs_re_encryption=True,
                                reason="receiver key no longer matches any configured recipient", **common)
        return RotationInfo(receiver_key_state=KeyState.CURRENT, receiver_username=match.username,
                            reason=f"receiver key is the current key of {match.username}", **common)
