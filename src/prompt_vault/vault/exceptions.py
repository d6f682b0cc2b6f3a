"""
Vault Exception Classes
"""

from typing import Optional


class VaultError(Exception):
    """Base exception for vault operations"""
    pass


class AuthenticationFailed(VaultError):
    """Raised when the container cannot be authenticated.

    Wrong password, wrong key and tampered or corrupted ciphertext all
    produce this same error with the same message.
    """

    def __init__(self, message: str = "Authentication failed: wrong password or key, or damaged vault"):
        super().__init__(message)


class CorruptContainer(VaultError):
    """Raised when the container header is malformed or its version is unsupported"""
    pass


class VaultExists(VaultError):
    """Raised when creating a vault over an existing container"""
    pass


class VaultLocked(VaultError):
    """Raised when operating on a store whose handle has been closed"""
    pass


class NotFound(VaultError):
    """Raised when a prompt or chain id (or title) does not exist"""

    def __init__(self, kind: str, ident: str):
        self.kind = kind
        self.ident = ident
        super().__init__(f"{kind.capitalize()} '{ident}' not found")


class AmbiguousTitle(VaultError):
    """Raised when a title lookup matches more than one prompt or chain"""

    def __init__(self, kind: str, title: str, matches: Optional[list] = None):
        self.kind = kind
        self.title = title
        self.matches = matches or []
        super().__init__(
            f"{kind.capitalize()} title '{title}' is ambiguous "
            f"({len(self.matches)} matches: {', '.join(self.matches)})"
        )


class InvalidVersion(VaultError):
    """Raised when a revert target is outside the prompt's version range"""

    def __init__(self, ident: str, version: int, current_version: int):
        self.ident = ident
        self.version = version
        self.current_version = current_version
        super().__init__(
            f"Version {version} of '{ident}' does not exist "
            f"(valid: 1..{current_version})"
        )
