"""
In-memory blob store.
Holds everything in dictionaries; nothing survives the process.
"""

import copy

from safesync.connectors.base import BlobStore


class MemoryBlobStore(BlobStore):
    """Dictionary-backed store, handy for tests and offline sessions."""

    def __init__(self):
        self._versions: dict[str, dict[int, object]] = {}
        self._pointers: dict[str, object] = {}

    def put_version(self, identity: str, ts: int, body) -> None:
        self._versions.setdefault(identity, {})[ts] = copy.deepcopy(body)

    def get_version(self, identity: str, ts: int):
        body = self._versions.get(identity, {}).get(ts)
        return copy.deepcopy(body)

    def delete_version(self, identity: str, ts: int) -> bool:
        """Remove a version, leaving any pointer to it dangling."""
        return self._versions.get(identity, {}).pop(ts, None) is not None

    def put_pointer(self, identity: str, ts: int) -> None:
        self._pointers[identity] = {"ts": ts}

    def set_pointer_body(self, identity: str, body) -> None:
        """Store an arbitrary pointer body, bypassing validation."""
        self._pointers[identity] = copy.deepcopy(body)

    def get_pointer(self, identity: str):
        return copy.deepcopy(self._pointers.get(identity))

    def list_versions(self, identity: str, limit: int) -> list[dict]:
        stamps = sorted(self._versions.get(identity, {}), reverse=True)
        return [{"ts": ts} for ts in stamps[:limit]]

    def get_info(self) -> dict:
        return {
            "store": "memory",
            "identities": len(self._versions),
            "versions": sum(len(v) for v in self._versions.values()),
            "pointers": len(self._pointers),
        }
