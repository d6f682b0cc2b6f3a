"""On-disk vault container format.

Layout (big-endian)::

    magic        4   b"PVLT"
    version      1   format version
    kdf_id       1   0 = raw key file, 1 = scrypt
    salt_len     1
    salt         salt_len
    log2_n       1   scrypt cost (0 when kdf_id == 0)
    r            4
    p            4
    nonce        12
    ciphertext   *
    tag          16

Everything before the nonce is the cleartext header. It carries no secret
material and is bound to the ciphertext as AES-GCM associated data, so
header tampering fails authentication like any other corruption.
"""

import struct
from dataclasses import dataclass, field
from typing import Tuple, Union

from .encryption import EncryptionService, KdfParams
from .exceptions import AuthenticationFailed, CorruptContainer

MAGIC = b"PVLT"
FORMAT_VERSION = 1
SUPPORTED_VERSIONS = (1,)

KDF_NONE = 0
KDF_SCRYPT = 1

_PARAMS = struct.Struct(">BII")

# Upper bounds on scrypt cost accepted from an unauthenticated header.
MAX_LOG2_N = 24
MAX_SCRYPT_MEMORY = 1 << 30

# A password (str) is run through the KDF; raw key bytes are used directly.
Secret = Union[str, bytes]


@dataclass(frozen=True)
class ContainerHeader:
    kdf_id: int
    salt: bytes = b""
    kdf_params: KdfParams = field(default_factory=KdfParams)
    format_version: int = FORMAT_VERSION

    @classmethod
    def for_secret(cls, secret: Secret, kdf_params: KdfParams = KdfParams()) -> "ContainerHeader":
        """Fresh header for a secret: new salt for passwords, no KDF for raw keys."""
        if isinstance(secret, bytes):
            return cls(kdf_id=KDF_NONE, salt=b"", kdf_params=KdfParams(0, 0, 0))
        if not _kdf_params_in_range(kdf_params.log2_n, kdf_params.r, kdf_params.p):
            raise ValueError(f"scrypt parameters out of range: {kdf_params}")
        return cls(
            kdf_id=KDF_SCRYPT,
            salt=EncryptionService.generate_salt(),
            kdf_params=kdf_params,
        )

    @property
    def uses_password(self) -> bool:
        return self.kdf_id == KDF_SCRYPT

    def encode(self) -> bytes:
        p = self.kdf_params
        return (
            MAGIC
            + bytes([self.format_version, self.kdf_id, len(self.salt)])
            + self.salt
            + _PARAMS.pack(p.log2_n, p.r, p.p)
        )

    @classmethod
    def parse(cls, data: bytes) -> Tuple["ContainerHeader", int]:
        """Parse the header from the front of ``data``.

        Returns the header and the offset where the nonce begins.

        Raises:
            CorruptContainer: bad magic, unsupported version or kdf id,
                scrypt cost out of range, or data too short
        """
        if len(data) < len(MAGIC) + 3 or data[:len(MAGIC)] != MAGIC:
            raise CorruptContainer("Not a prompt vault container (bad magic)")

        pos = len(MAGIC)
        version, kdf_id, salt_len = data[pos], data[pos + 1], data[pos + 2]
        pos += 3
        if version not in SUPPORTED_VERSIONS:
            raise CorruptContainer(f"Unsupported container format version {version}")
        if kdf_id not in (KDF_NONE, KDF_SCRYPT):
            raise CorruptContainer(f"Unknown key derivation id {kdf_id}")

        end = pos + salt_len + _PARAMS.size
        if len(data) < end + EncryptionService.NONCE_LENGTH + EncryptionService.TAG_LENGTH:
            raise CorruptContainer("Container is truncated")

        salt = bytes(data[pos:pos + salt_len])
        log2_n, r, p = _PARAMS.unpack_from(data, pos + salt_len)
        if kdf_id == KDF_SCRYPT and (not salt or not _kdf_params_in_range(log2_n, r, p)):
            raise CorruptContainer("Invalid key derivation parameters in header")

        header = cls(
            kdf_id=kdf_id,
            salt=salt,
            kdf_params=KdfParams(log2_n, r, p),
            format_version=version,
        )
        return header, end

    def derive_key(self, secret: Secret) -> bytes:
        """Turn a secret into the container key.

        A secret of the wrong kind (password for a key-file vault or the
        reverse) fails exactly like a wrong password.
        """
        if self.kdf_id == KDF_NONE:
            if not isinstance(secret, bytes) or len(secret) != EncryptionService.KEY_LENGTH:
                raise AuthenticationFailed()
            return secret
        if not isinstance(secret, str):
            raise AuthenticationFailed()
        return EncryptionService.derive_key(secret, self.salt, self.kdf_params)


def _kdf_params_in_range(log2_n: int, r: int, p: int) -> bool:
    if not 1 <= log2_n <= MAX_LOG2_N or r < 1 or p < 1:
        return False
    if r * p >= 1 << 30:
        return False
    return 128 * r * (1 << log2_n) <= MAX_SCRYPT_MEMORY


def seal(key: bytes, header: ContainerHeader, payload: bytes) -> bytes:
    """Encrypt ``payload`` into a complete container blob."""
    header_bytes = header.encode()
    nonce, ciphertext, tag = EncryptionService.encrypt(key, payload, header_bytes)
    return header_bytes + nonce + ciphertext + tag


def unseal(key: bytes, data: bytes) -> bytes:
    """Authenticate and decrypt a container blob with an already-derived key."""
    _, offset = ContainerHeader.parse(data)
    return _open_body(key, data, offset)


def read_header(data: bytes) -> ContainerHeader:
    header, _ = ContainerHeader.parse(data)
    return header


def unseal_with_secret(secret: Secret, data: bytes) -> Tuple[ContainerHeader, bytes, bytes]:
    """Parse, derive the key and decrypt.

    Returns:
        (header, key, payload)
    """
    header, offset = ContainerHeader.parse(data)
    key = header.derive_key(secret)
    return header, key, _open_body(key, data, offset)


def _open_body(key: bytes, data: bytes, offset: int) -> bytes:
    nonce_end = offset + EncryptionService.NONCE_LENGTH
    nonce = data[offset:nonce_end]
    ciphertext = data[nonce_end:-EncryptionService.TAG_LENGTH]
    tag = data[-EncryptionService.TAG_LENGTH:]
    return EncryptionService.decrypt(key, nonce, ciphertext, tag, data[:offset])
