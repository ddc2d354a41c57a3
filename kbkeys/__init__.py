"""kbkeys: cached public key resolution and key rotation handling for a key directory."""

from .client import DirectoryClient, UserPublicKey, validate_username
from .config import (
    CacheConfig, ClientConfig, ManagerConfig, default_cache_config, default_client_config, default_manager_config,
    load_config_file, load_config_from_env,
)
from .exceptions import (
    CacheError, ConfigError, DecryptionError, DirectoryError, ErrorKind, KeyringError, ReEncryptionError,
)
from .rotation import (
    Cipher, KeyRotationDetector, KeyState, KeyUsageInfo, LazyReEncryption, LazyReEncryptor, MigrationResult,
    ReEncryptionRequest, ReEncryptionResult, RotationInfo,
)
from .state import CacheManager, CacheStats, KeyCache, PublicKeyRecord

__version__ = "0.1.0"

__all__ = [
    "DirectoryClient", "UserPublicKey", "validate_username",
    "ClientConfig", "CacheConfig", "ManagerConfig", "default_client_config", "default_cache_config",
    "default_manager_config", "load_config_from_env", "load_config_file",
    "KeyringError", "DirectoryError", "ErrorKind", "CacheError", "DecryptionError", "ReEncryptionError", "ConfigError",
    "KeyCache", "CacheManager", "CacheStats", "PublicKeyRecord",
    "KeyRotationDetector", "LazyReEncryptor", "Cipher", "KeyUsageInfo", "KeyState", "RotationInfo",
    "ReEncryptionRequest", "ReEncryptionResult", "LazyReEncryption", "MigrationResult",
]
