"""Value types returned by the directory client."""

from dataclasses import dataclass


@dataclass(frozen=True)
class UserPublicKey:
    """A user's current primary public key as published by the directory."""
    username: str
    public_key: str
    key_id: str
