"""
Base class for all blob store connectors.
Every store that can back the sync HTTP surface implements this interface.
"""

from abc import ABC, abstractmethod


class BlobStore(ABC):
    """
    Abstract versioned blob store.

    Each identity owns an append-only set of versions keyed by timestamp
    plus one overwritable "latest" pointer. Bodies are stored as given;
    the store never interprets an envelope.
    """

    @abstractmethod
    def put_version(self, identity: str, ts: int, body) -> None:
        """
        Store one version body.

        Args:
            identity: Bucket identifier.
            ts: Version timestamp (epoch ms).
            body: The JSON-decoded request body.
        """

    @abstractmethod
    def get_version(self, identity: str, ts: int):
        """Return the stored body for a version, or None if absent."""

    @abstractmethod
    def put_pointer(self, identity: str, ts: int) -> None:
        """Point "latest" at a version timestamp."""

    @abstractmethod
    def get_pointer(self, identity: str):
        """Return the stored pointer body (normally ``{"ts": ...}``), or None."""

    @abstractmethod
    def list_versions(self, identity: str, limit: int) -> list[dict]:
        """Return up to ``limit`` descriptors ``{"ts": ...}``, newest first."""

    @abstractmethod
    def get_info(self) -> dict:
        """Get metadata about this store (kind, location, counts)."""
