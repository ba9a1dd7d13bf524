"""
Blob store connectors.
Each connector backs the versioned sync API with one kind of storage.
"""

from safesync.connectors.base import BlobStore
from safesync.connectors.memory import MemoryBlobStore
from safesync.connectors.self_hosted import DirectoryBlobStore
from safesync.connectors.transport import LocalStoreTransport

__all__ = [
    "BlobStore",
    "MemoryBlobStore",
    "DirectoryBlobStore",
    "LocalStoreTransport",
]
