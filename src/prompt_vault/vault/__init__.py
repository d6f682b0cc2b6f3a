# Vault module: encrypted, versioned prompt and chain storage.

from .encryption import EncryptionService, KdfParams, init_key_file, read_key_file
from .exceptions import (
    AmbiguousTitle,
    AuthenticationFailed,
    CorruptContainer,
    InvalidVersion,
    NotFound,
    VaultError,
    VaultExists,
    VaultLocked,
)
from .models import ChainDefinition, Prompt, VersionRecord
from .vault_manager import VaultSnapshot, VaultStore, create_vault, open_vault

__all__ = [
    "EncryptionService",
    "KdfParams",
    "init_key_file",
    "read_key_file",
    "VaultError",
    "AuthenticationFailed",
    "CorruptContainer",
    "VaultExists",
    "VaultLocked",
    "NotFound",
    "AmbiguousTitle",
    "InvalidVersion",
    "Prompt",
    "VersionRecord",
    "ChainDefinition",
    "VaultSnapshot",
    "VaultStore",
    "create_vault",
    "open_vault",
]
