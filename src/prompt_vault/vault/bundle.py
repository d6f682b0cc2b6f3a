"""Passphrase-encrypted prompt bundles for moving prompts between vaults.

- PBKDF2-SHA256 (600k iterations by default) for key derivation
- AES-256-GCM for authenticated encryption
- Random 32-byte salt + 12-byte nonce per bundle

Bundle format: magic(4) + iterations(u32) + salt(32) + nonce(12) + ciphertext+tag.
The plaintext is UTF-8 JSON: {"format": 1, "prompts": [...]}.
"""

import json
import os
import struct
from pathlib import Path
from typing import List, Sequence

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .exceptions import AuthenticationFailed, CorruptContainer
from .models import Prompt

BUNDLE_MAGIC = b"PVBN"
BUNDLE_FORMAT = 1
_ITERATIONS = struct.Struct(">I")


class BundleCrypto:
    """Encrypt/decrypt bundles with a user-provided passphrase."""

    PBKDF2_ITERATIONS = 600_000
    MAX_PBKDF2_ITERATIONS = 4 * 600_000  # ceiling for counts read from a bundle header
    KEY_LENGTH = 32
    SALT_LENGTH = 32
    NONCE_LENGTH = 12

    _HEADER_SIZE = len(BUNDLE_MAGIC) + _ITERATIONS.size + SALT_LENGTH + NONCE_LENGTH

    @staticmethod
    def derive_key(passphrase: str, salt: bytes, iterations: int) -> bytes:
        """Derive a 256-bit key from passphrase + salt via PBKDF2-SHA256."""
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=BundleCrypto.KEY_LENGTH,
            salt=salt,
            iterations=iterations,
        )
        return kdf.derive(passphrase.encode("utf-8"))

    @classmethod
    def encrypt_bytes(cls, data: bytes, passphrase: str) -> bytes:
        iterations = cls.PBKDF2_ITERATIONS
        salt = os.urandom(cls.SALT_LENGTH)
        nonce = os.urandom(cls.NONCE_LENGTH)
        key = cls.derive_key(passphrase, salt, iterations)
        ciphertext = AESGCM(key).encrypt(nonce, data, BUNDLE_MAGIC)
        return BUNDLE_MAGIC + _ITERATIONS.pack(iterations) + salt + nonce + ciphertext

    @classmethod
    def decrypt_bytes(cls, blob: bytes, passphrase: str) -> bytes:
        """Decrypt a bundle blob.

        Raises:
            CorruptContainer: Not a bundle, too short to hold a header, or
                an iteration count outside 1..MAX_PBKDF2_ITERATIONS
            AuthenticationFailed: Wrong passphrase or damaged data
        """
        if len(blob) < cls._HEADER_SIZE or not blob.startswith(BUNDLE_MAGIC):
            raise CorruptContainer("Not a prompt bundle (bad magic or truncated header)")
        offset = len(BUNDLE_MAGIC)
        (iterations,) = _ITERATIONS.unpack_from(blob, offset)
        offset += _ITERATIONS.size
        salt = blob[offset:offset + cls.SALT_LENGTH]
        offset += cls.SALT_LENGTH
        nonce = blob[offset:offset + cls.NONCE_LENGTH]
        offset += cls.NONCE_LENGTH
        if not 1 <= iterations <= cls.MAX_PBKDF2_ITERATIONS:
            raise CorruptContainer(f"Bundle header has an invalid iteration count ({iterations})")

        key = cls.derive_key(passphrase, salt, iterations)
        try:
            return AESGCM(key).decrypt(nonce, blob[offset:], BUNDLE_MAGIC)
        except InvalidTag:
            raise AuthenticationFailed() from None


def export_bundle(path: Path, passphrase: str, prompts: Sequence[Prompt]) -> int:
    """Write ``prompts`` (with history) to an encrypted bundle. Returns the count."""
    if not passphrase:
        raise ValueError("A bundle passphrase is required")
    payload = json.dumps(
        {"format": BUNDLE_FORMAT, "prompts": [p.to_dict() for p in prompts]},
        ensure_ascii=False,
    ).encode("utf-8")
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(BundleCrypto.encrypt_bytes(payload, passphrase))
    return len(prompts)


def read_bundle(path: Path, passphrase: str) -> List[Prompt]:
    """Decrypt and parse a bundle written by ``export_bundle``."""
    plaintext = BundleCrypto.decrypt_bytes(Path(path).read_bytes(), passphrase)
    try:
        data = json.loads(plaintext.decode("utf-8"))
        if data.get("format") != BUNDLE_FORMAT:
            raise CorruptContainer(f"Unsupported bundle format {data.get('format')!r}")
        return [Prompt.from_dict(item) for item in data["prompts"]]
    except (ValueError, KeyError, TypeError) as e:
        raise CorruptContainer(f"Bundle payload is malformed: {e}") from e
