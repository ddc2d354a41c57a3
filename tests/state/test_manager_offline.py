"""Tests for CacheManager in offline mode."""

from datetime import timedelta
from pathlib import Path

import pytest

from kbkeys.config import CacheConfig, ManagerConfig
from kbkeys.exceptions import DirectoryError, ErrorKind
from kbkeys.state import CacheManager, KeyCache

from conftest import FakeDirectory


@pytest.fixture
def offline(cache: KeyCache) -> CacheManager:
    cache.set("alice", "bundle_alice", "kid_alice")
    return CacheManager(cache, offline=True)


class TestOfflineManager:
    def test_is_offline(self, offline: CacheManager) -> None:
        assert offline.is_offline

    @pytest.mark.asyncio
    async def test_cached_key_is_served(self, offline: CacheManager) -> None:
        key = await offline.get_public_key("alice")
        assert key.public_key == "bundle_alice"

    @pytest.mark.asyncio
    async def test_miss_is_not_found(self, offline: CacheManager) -> None:
        with pytest.raises(DirectoryError) as exc_info:
            await offline.get_public_key("bob")
        assert exc_info.value.kind is ErrorKind.NOT_FOUND
        assert exc_info.value.message == 'offline mode: public key for user "bob" not found in cache'

    @pytest.mark.asyncio
    async def test_batch_with_misses_names_them(self, offline: CacheManager) -> None:
        with pytest.raises(DirectoryError) as exc_info:
            await offline.get_public_keys(["alice", "bob", "charlie"])
        assert exc_info.value.kind is ErrorKind.NOT_FOUND
        assert exc_info.value.message.endswith("bob, charlie")

    @pytest.mark.asyncio
    async def test_batch_fully_cached(self, offline: CacheManager) -> None:
        keys = await offline.get_public_keys(["alice"])
        assert keys[0].key_id == "kid_alice"

    @pytest.mark.asyncio
    async def test_refresh_is_rejected(self, offline: CacheManager) -> None:
        for refresh in (offline.refresh_user("alice"), offline.refresh_users(["alice"])):
            with pytest.raises(DirectoryError) as exc_info:
                await refresh
            assert exc_info.value.kind is ErrorKind.NETWORK
            assert "offline mode" in exc_info.value.message
        assert offline.cache.get("alice") is not None

    @pytest.mark.asyncio
    async def test_client_is_ignored(self, cache: KeyCache, client, directory: FakeDirectory) -> None:
        manager = CacheManager(cache, client, offline=True)
        with pytest.raises(DirectoryError):
            await manager.get_public_key("alice")
        assert directory.calls == 0

    @pytest.mark.asyncio
    async def test_from_config(self, tmp_path: Path) -> None:
        config = ManagerConfig(cache=CacheConfig(path=tmp_path / "c.json", ttl=timedelta(hours=1)), offline=True)
        async with CacheManager.from_config(config) as manager:
            assert manager.is_offline
            with pytest.raises(DirectoryError) as exc_info:
                await manager.get_public_key("alice")
        assert exc_info.value.kind is ErrorKind.NOT_FOUND
