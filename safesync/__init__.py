"""
SafeSync — Encrypted State Sync
Client-side encryption and versioned sync for JSON state.

SafeSync provides two tightly coupled layers:
1. Envelope — passphrase-derived AES-256-GCM + HMAC-SHA256 (the lock)
2. SyncClient — debounced saves and fallback-recovering loads against a
   versioned blob store (the transport)

The store only ever sees ciphertext and a passphrase-derived bucket id.

Usage:
    from safesync import SyncClient, SyncSettings
    async with SyncClient(SyncSettings(base_url="https://...")) as client:
        client.schedule_save("my-passphrase", {"key": "value"})
        outcome = await client.load("my-passphrase")
"""

from safesync.errors import (
    ErrorKind,
    SyncError,
    DerivationError,
    FormatError,
    IntegrityError,
    NetworkError,
)
from safesync.kdf import derive, derive_keys, DerivedKeyTriple
from safesync.envelope import Envelope, encrypt, decrypt, derive_identity, IDENTITY_SALT
from safesync.config import SyncSettings
from safesync.attestation import AttestationIssuer
from safesync.sync import SyncClient, SyncOutcome, LoadError
from safesync.reconcile import prefer_newer, Resolution
from safesync.connectors import (
    BlobStore,
    MemoryBlobStore,
    DirectoryBlobStore,
    LocalStoreTransport,
)

__version__ = "0.1.0"
__all__ = [
    "ErrorKind",
    "SyncError",
    "DerivationError",
    "FormatError",
    "IntegrityError",
    "NetworkError",
    "derive",
    "derive_keys",
    "DerivedKeyTriple",
    "Envelope",
    "encrypt",
    "decrypt",
    "derive_identity",
    "IDENTITY_SALT",
    "SyncSettings",
    "AttestationIssuer",
    "SyncClient",
    "SyncOutcome",
    "LoadError",
    "prefer_newer",
    "Resolution",
    "BlobStore",
    "MemoryBlobStore",
    "DirectoryBlobStore",
    "LocalStoreTransport",
]
