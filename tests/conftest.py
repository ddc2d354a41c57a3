"""Shared fixtures: a scripted key directory and a fake cipher."""
from datetime import timedelta
from pathlib import Path
from typing import Optional, Sequence

import httpx
import pytest

from kbkeys.client import DirectoryClient
from kbkeys.config import CacheConfig, ClientConfig
from kbkeys.rotation import KeyUsageInfo
from kbkeys.state import CacheManager, KeyCache


def user_entry(username: str, bundle: str, kid: str) -> dict:
    """Build one ``them`` entry of a lookup response."""
    return {"basics": {"username": username}, "public_keys": {"primary": {"kid": kid, "bundle": bundle}}}


def lookup_body(*entries: Optional[dict], code: int = 0, name: str = "OK") -> dict:
    return {"status": {"code": code, "name": name}, "them": list(entries)}


class FakeDirectory:
    """In-process key directory served through ``httpx.MockTransport``.

    Scripted responses are returned first, in order; after that requests
    are answered from ``users``.
    """

    def __init__(self) -> None:
        self.users: dict[str, tuple[str, str]] = {}
        self.requests: list[httpx.Request] = []
        self.scripted: list[httpx.Response] = []

    def add_user(self, username: str, bundle: Optional[str] = None, kid: Optional[str] = None) -> None:
        self.users[username] = (bundle or f"bundle_{username}", kid or f"kid_{username}")

    def rotate(self, username: str, suffix: str = "v2") -> None:
        self.users[username] = (f"bundle_{username}_{suffix}", f"kid_{username}_{suffix}")

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.scripted:
            return self.scripted.pop(0)
        names = request.url.params["usernames"].split(",")
        them = [user_entry(n, *self.users[n]) for n in names if n in self.users]
        return httpx.Response(200, json=lookup_body(*them))

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    @property
    def calls(self) -> int:
        return len(self.requests)

    def requested_usernames(self, index: int = -1) -> list[str]:
        return self.requests[index].url.params["usernames"].split(",")


class FakeCipher:
    """Deterministic stand-in for the encrypt/decrypt capability.

    Ciphertext is ``sealed:<bundle>|<bundle>:<plaintext>``. Decryption
    reports the first bundle's key id (``bundle_x`` opens as ``kid_x``)
    as the receiver key.
    """

    def __init__(self, sender_key_id: Optional[str] = None, anonymous: bool = True) -> None:
        self.sender_key_id = sender_key_id
        self.anonymous = anonymous
        self.encrypt_calls: list[tuple[bytes, list[str]]] = []
        self.fail_encrypt = False

    def encrypt(self, plaintext: bytes, public_keys: Sequence[str]) -> bytes:
        if self.fail_encrypt:
            raise RuntimeError("encryption backend unavailable")
        self.encrypt_calls.append((plaintext, list(public_keys)))
        return b"sealed:" + "|".join(public_keys).encode() + b":" + plaintext

    def decrypt(self, ciphertext: bytes) -> tuple[bytes, KeyUsageInfo]:
        if not ciphertext.startswith(b"sealed:"):
            raise ValueError("not a sealed message")
        _, _, rest = ciphertext.partition(b":")
        bundles, _, plaintext = rest.partition(b":")
        first = bundles.decode().split("|")[0]
        usage = KeyUsageInfo(receiver_key_id=first.replace("bundle_", "kid_", 1), sender_key_id=self.sender_key_id,
                             sender_is_anonymous=self.anonymous)
        return plaintext, usage


@pytest.fixture
def directory() -> FakeDirectory:
    d = FakeDirectory()
    for name in ("alice", "bob", "charlie"):
        d.add_user(name)
    return d


@pytest.fixture
def client_config() -> ClientConfig:
    return ClientConfig(endpoint="https://directory.test/_/api/1.0", timeout=5.0, max_retries=3, retry_delay=0.01)


@pytest.fixture
def client(directory: FakeDirectory, client_config: ClientConfig) -> DirectoryClient:
    return DirectoryClient(client_config, transport=directory.transport)


@pytest.fixture
def cache_config(tmp_path: Path) -> CacheConfig:
    return CacheConfig(path=tmp_path / "kbkeys" / "keyring_cache.json", ttl=timedelta(hours=1))


@pytest.fixture
def cache(cache_config: CacheConfig) -> KeyCache:
    return KeyCache(cache_config)


@pytest.fixture
def manager(cache: KeyCache, client: DirectoryClient) -> CacheManager:
    return CacheManager(cache, client)


@pytest.fixture
def cipher() -> FakeCipher:
    return FakeCipher()
