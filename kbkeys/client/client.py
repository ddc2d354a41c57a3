"""DirectoryClient: batched username to public key lookups."""

import asyncio
import logging
from typing import Any, Sequence

import httpx

from kbkeys.config import ClientConfig, default_client_config
from kbkeys.exceptions import DirectoryError, ErrorKind

from .models import LookupResponse
from .transport import Transport
from .types import UserPublicKey
from .validation import validate_username

logger = logging.getLogger(__name__)

LOOKUP_PATH = "/user/lookup.json"
LOOKUP_FIELDS = "public_keys"


class DirectoryClient:
    """Client for the key directory lookup endpoint.

    Holds no per-call state beyond its immutable configuration, so a single
    instance may serve concurrent lookups. Use as an async context manager
    to share one connection pool across calls.
    """

    def __init__(self, config: ClientConfig | None = None,
                 transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._config = (config or default_client_config()).normalized()
        self._transport = Transport(self._config, transport)

    @property
    def config(self) -> ClientConfig:
        return self._config

    async def __aenter__(self) -> "DirectoryClient":
        await self._transport.__aenter__()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self._transport.__aexit__(*args)

    async def aclose(self) -> None:
        await self._transport.aclose()

    async def lookup_users(self, usernames: Sequence[str], timeout: float | None = None) -> list[UserPublicKey]:
        """Fetch the primary public key of every user in *usernames*.

        One batched request is made per attempt. *timeout* bounds the whole
        call including retry waits; when it expires a TIMEOUT error is
        raised. Every requested user must be present in the response.

        Raises:
            DirectoryError: classified by ``kind``.
        """
        if not usernames:
            raise DirectoryError("no usernames provided", ErrorKind.INVALID_INPUT)
        for username in usernames:
            try:
                validate_username(username)
            except ValueError as e:
                raise DirectoryError(f"invalid username {username!r}: {e}", ErrorKind.INVALID_INPUT) from e

        url = f"{self._config.endpoint}{LOOKUP_PATH}"
        params = {"usernames": ",".join(usernames), "fields": LOOKUP_FIELDS}
        logger.info("Looking up %d user(s) in key directory", len(usernames))
        try:
            async with asyncio.timeout(timeout):
                response = await self._transport.lookup(url, params)
        except TimeoutError as e:
            raise DirectoryError("operation timed out", ErrorKind.TIMEOUT, temporary=True) from e
        return _reconcile(response, usernames)


def _not_found(usernames: Sequence[str], many_prefix: str) -> DirectoryError:
    if len(usernames) == 1:
        return DirectoryError(f'user "{usernames[0]}" not found in key directory', ErrorKind.NOT_FOUND)
    return DirectoryError(f"{many_prefix}: {', '.join(usernames)}", ErrorKind.NOT_FOUND)


def _reconcile(response: LookupResponse, requested: Sequence[str]) -> list[UserPublicKey]:
    """Extract keys from *response*, checking every requested user is present."""
    users = [u for u in response.them or [] if u is not None and u.basics.username]
    if not users:
        raise _not_found(list(dict.fromkeys(requested)), "none of the requested users were found")

    results: list[UserPublicKey] = []
    found: set[str] = set()
    for user in users:
        name = user.basics.username
        found.add(name)
        primary = user.primary_key
        if primary is None or not primary.bundle:
            raise DirectoryError(f'user "{name}" exists but has no primary public key configured',
                                 ErrorKind.INVALID_RESPONSE)
        results.append(UserPublicKey(username=name, public_key=primary.bundle, key_id=primary.kid))

    missing = [u for u in dict.fromkeys(requested) if u not in found]
    if missing:
        raise _not_found(missing, "users not found in key directory")
    return results
