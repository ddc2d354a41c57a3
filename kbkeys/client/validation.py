"""Identity validation for directory lookups."""

import re

_USERNAME_RE = re.compile(r"[A-Za-z0-9_]+")


def validate_username(username: str) -> str:
    """Validate and return a directory username. Raises ValueError if invalid.

    Usernames are ASCII letters, digits and underscores only.
    """
    if not username:
        raise ValueError("username cannot be empty")
    if not _USERNAME_RE.fullmatch(username):
        bad = next(ch for ch in username if not (ch.isascii() and (ch.isalnum() or ch == "_")))
        raise ValueError(f"username contains invalid character: {bad!r}")
    return username
