"""CacheManager: cache-first public key resolution backed by the key directory."""
import logging
from typing import Any, Optional, Sequence

from kbkeys.client import DirectoryClient, UserPublicKey
from kbkeys.config import ManagerConfig, default_manager_config
from kbkeys.exceptions import CacheError, DirectoryError, ErrorKind
from kbkeys.state.cache import KeyCache
from kbkeys.state.models import CacheStats, PublicKeyRecord

logger = logging.getLogger(__name__)


def _to_user_key(record: PublicKeyRecord) -> UserPublicKey:
    return UserPublicKey(username=record.username, public_key=record.public_key, key_id=record.key_id)


class CacheManager:
    """Resolves usernames to public keys, preferring unexpired cache entries.

    Offline mode is fixed at construction: an offline manager has no
    directory client, answers only from the cache and rejects refreshes.
    A lookup that fails never adds anything to the cache.
    """

    def __init__(self, cache: KeyCache, client: Optional[DirectoryClient] = None, offline: bool = False) -> None:
        if client is None and not offline:
            raise ValueError("an online CacheManager requires a DirectoryClient")
        self._cache = cache
        self._client = None if offline else client
        self._offline = offline

    @classmethod
    def from_config(cls, config: Optional[ManagerConfig] = None, **client_kwargs: Any) -> "CacheManager":
        """Build a manager, its cache and (when online) its directory client."""
        config = config or default_manager_config()
        cache = KeyCache(config.cache)
        if config.offline:
            return cls(cache, offline=True)
        return cls(cache, DirectoryClient(config.client, **client_kwargs))

    @property
    def cache(self) -> KeyCache:
        return self._cache

    @property
    def is_offline(self) -> bool:
        return self._offline

    async def __aenter__(self) -> "CacheManager":
        if self._client is not None:
            await self._client.__aenter__()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def get_public_key(self, username: str, timeout: Optional[float] = None) -> UserPublicKey:
        """Return the key for *username* from cache, fetching it on a miss."""
        record = self._cache.get(username)
        if record is not None:
            logger.debug("Cache hit for %s", username)
            return _to_user_key(record)
        if self._offline:
            raise DirectoryError(f'offline mode: public key for user "{username}" not found in cache',
                                 ErrorKind.NOT_FOUND)
        logger.debug("Cache miss for %s", username)
        keys = await self._client.lookup_users([username], timeout=timeout)
        key = next((k for k in keys if k.username == username), None)
        if key is None:
            raise DirectoryError(f'no public key found for user "{username}"', ErrorKind.NOT_FOUND)
        self._store(key)
        return key

    async def get_public_keys(self, usernames: Sequence[str], timeout: Optional[float] = None) -> list[UserPublicKey]:
        """Return keys for *usernames* in the same order.

        Cached users are served locally; the rest are fetched with a single
        batched directory call.
        """
        if not usernames:
            raise DirectoryError("no usernames provided", ErrorKind.INVALID_INPUT)

        resolved: dict[str, UserPublicKey] = {}
        need_fetch: list[str] = []
        for username in dict.fromkeys(usernames):
            record = self._cache.get(username)
            if record is not None:
                resolved[username] = _to_user_key(record)
            else:
                need_fetch.append(username)
        logger.debug("Batch lookup: %d cached, %d to fetch", len(resolved), len(need_fetch))

        if need_fetch:
            if self._offline:
                raise DirectoryError("offline mode: public keys not found in cache for users: "
                                     + ", ".join(need_fetch), ErrorKind.NOT_FOUND)
            for key in await self._client.lookup_users(need_fetch, timeout=timeout):
                self._store(key)
                resolved[key.username] = key

        missing = [u for u in dict.fromkeys(usernames) if u not in resolved]
        if missing:
            raise DirectoryError(f"no public key found for users: {', '.join(missing)}", ErrorKind.NOT_FOUND)
        return [resolved[u] for u in usernames]

    def invalidate_user(self, username: str) -> None:
        self._cache.delete(username)

    def invalidate_all(self) -> None:
        self._cache.clear()

    def prune_expired(self) -> int:
        return self._cache.prune_expired()

    def stats(self) -> CacheStats:
        return self._cache.stats()

    async def refresh_user(self, username: str, timeout: Optional[float] = None) -> UserPublicKey:
        """Drop any cached key for *username* and fetch it again."""
        self._ensure_online()
        self._cache.delete(username)
        return await self.get_public_key(username, timeout=timeout)

    async def refresh_users(self, usernames: Sequence[str], timeout: Optional[float] = None) -> list[UserPublicKey]:
        """Drop cached keys for *usernames* and fetch them again in one call."""
        self._ensure_online()
        for username in dict.fromkeys(usernames):
            self._cache.delete(username)
        return await self.get_public_keys(usernames, timeout=timeout)

    def _ensure_online(self) -> None:
        if self._offline:
            raise DirectoryError("offline mode: cannot refresh keys from key directory", ErrorKind.NETWORK)

    def _store(self, key: UserPublicKey) -> None:
        try:
            self._cache.set(key.username, key.public_key, key.key_id)
        except CacheError as e:
            logger.warning("Failed to cache public key for %s: %s", key.username, e)
