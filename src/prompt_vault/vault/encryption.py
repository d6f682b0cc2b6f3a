# Prompt Vault - Encryption Service
#
# Master password -> encryption key (scrypt, memory-hard)
# Container encryption (AES-256-GCM, header bound as associated data)
# Generated key file for password-less vaults

import logging
import os
import secrets
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from .exceptions import AuthenticationFailed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KdfParams:
    """scrypt cost parameters stored in the container header.

    N = 2**log2_n. The defaults cost roughly 128 MiB and a fraction of a
    second per derivation.
    """
    log2_n: int = 17
    r: int = 8
    p: int = 1

    @property
    def n(self) -> int:
        return 1 << self.log2_n


class EncryptionService:
    """
    Key derivation and authenticated encryption for the vault container.

    Flow:
    1. User supplies a master password (or a generated key file is used)
    2. scrypt derives a 256-bit key from password + per-container salt
    3. AES-256-GCM encrypts the serialized collection
    4. Every encryption uses a fresh random nonce
    """

    KEY_LENGTH = 32  # 256 bits for AES-256
    SALT_LENGTH = 16
    NONCE_LENGTH = 12  # 96-bit nonce for GCM (recommended)
    TAG_LENGTH = 16

    @staticmethod
    def derive_key(password: str, salt: bytes, params: KdfParams = KdfParams()) -> bytes:
        """
        Derive an encryption key from a master password using scrypt.

        Same password, salt and params always yield the same key.

        Args:
            password: Master password
            salt: Random salt (stored in the container header)
            params: scrypt cost parameters

        Returns:
            256-bit encryption key
        """
        kdf = Scrypt(
            salt=salt,
            length=EncryptionService.KEY_LENGTH,
            n=params.n,
            r=params.r,
            p=params.p,
        )
        return kdf.derive(password.encode("utf-8"))

    @staticmethod
    def generate_salt() -> bytes:
        """Generate cryptographically random salt."""
        return os.urandom(EncryptionService.SALT_LENGTH)

    @staticmethod
    def generate_key() -> bytes:
        """Generate a random 256-bit key (key-file mode)."""
        return secrets.token_bytes(EncryptionService.KEY_LENGTH)

    @staticmethod
    def encrypt(
        key: bytes,
        plaintext: bytes,
        associated_data: Optional[bytes] = None,
    ) -> Tuple[bytes, bytes, bytes]:
        """
        Encrypt plaintext using AES-256-GCM.

        Args:
            key: 256-bit encryption key
            plaintext: Bytes to encrypt
            associated_data: Cleartext bytes authenticated alongside (the header)

        Returns:
            Tuple of (nonce, ciphertext, tag)
        """
        # Must be unique per encryption under the same key
        nonce = os.urandom(EncryptionService.NONCE_LENGTH)

        sealed = AESGCM(key).encrypt(nonce, plaintext, associated_data)
        ciphertext = sealed[:-EncryptionService.TAG_LENGTH]
        tag = sealed[-EncryptionService.TAG_LENGTH:]
        return nonce, ciphertext, tag

    @staticmethod
    def decrypt(
        key: bytes,
        nonce: bytes,
        ciphertext: bytes,
        tag: bytes,
        associated_data: Optional[bytes] = None,
    ) -> bytes:
        """
        Verify and decrypt in one step.

        Raises:
            AuthenticationFailed: Wrong key, or any corruption of nonce,
                ciphertext, tag or associated data
        """
        if len(nonce) != EncryptionService.NONCE_LENGTH or len(tag) != EncryptionService.TAG_LENGTH:
            raise AuthenticationFailed()
        try:
            return AESGCM(key).decrypt(nonce, ciphertext + tag, associated_data)
        except InvalidTag:
            raise AuthenticationFailed() from None


def init_key_file(key_path: Path) -> Path:
    """Generate a new key file (mode 600). Idempotent: an existing file is kept."""
    key_path = Path(key_path)
    if key_path.exists():
        return key_path
    key_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        os.chmod(key_path.parent, stat.S_IRWXU)  # 700
    except OSError:
        logger.warning(f"Could not restrict permissions on {key_path.parent}")

    tmp_path = key_path.with_name(key_path.name + ".tmp")
    fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(EncryptionService.generate_key())
        os.replace(tmp_path, key_path)
    except Exception:
        if tmp_path.exists():
            tmp_path.unlink()
        raise

    logger.info(f"Generated vault key file at {key_path}")
    return key_path


def read_key_file(key_path: Path) -> bytes:
    """Load a raw key from disk."""
    key_path = Path(key_path)
    if not key_path.exists():
        raise FileNotFoundError(
            f"Vault key file not found at {key_path}. "
            "Run 'prompt-vault init' without a password to generate one."
        )
    key = key_path.read_bytes()
    if len(key) != EncryptionService.KEY_LENGTH:
        raise ValueError(
            f"Vault key file must hold {EncryptionService.KEY_LENGTH} bytes, got {len(key)}"
        )
    return key
