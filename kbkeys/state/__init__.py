"""Public key cache and cache manager."""
from kbkeys.state.cache import KeyCache
from kbkeys.state.locking import ReadWriteLock
from kbkeys.state.manager import CacheManager
from kbkeys.state.models import CacheStats, PublicKeyRecord
__all__ = ["KeyCache", "CacheManager", "CacheStats", "PublicKeyRecord", "ReadWriteLock"]
