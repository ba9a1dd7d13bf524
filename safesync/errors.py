"""
Error taxonomy for SafeSync.

Every error carries a ``kind`` discriminant so recovery code can switch
on what went wrong instead of inspecting messages.
"""

from enum import Enum


class ErrorKind(Enum):
    """What class of failure an error represents."""
    DERIVATION = "derivation"
    FORMAT = "format"
    INTEGRITY = "integrity"
    NETWORK = "network"


class SyncError(Exception):
    """Base class for all SafeSync errors."""
    kind: ErrorKind = None


class DerivationError(SyncError):
    """Invalid key-derivation input (empty passphrase, bad length)."""
    kind = ErrorKind.DERIVATION


class FormatError(SyncError):
    """Malformed envelope, or plaintext that is not JSON."""
    kind = ErrorKind.FORMAT


class IntegrityError(SyncError):
    """
    Authentication failed.

    MAC mismatch and AEAD tag failure both raise this with the same
    message; callers must not be able to tell them apart.
    """
    kind = ErrorKind.INTEGRITY

    def __init__(self, message: str = "integrity check failed"):
        super().__init__(message)


class NetworkError(SyncError):
    """Transport failure or unexpected HTTP status."""
    kind = ErrorKind.NETWORK

    def __init__(self, message: str, status: int = None):
        super().__init__(message)
        self.status = status
