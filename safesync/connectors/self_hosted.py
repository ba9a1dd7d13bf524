"""
Self-hosted blob store.
Runs on infrastructure we control: plain files in a directory.

Layout:
  {root}/{identity}/v1/{ts}.json      one envelope per version
  {root}/{identity}/v1/latest.json    the latest pointer

Versions are written once and never deleted. Only the pointer is
overwritten, atomically via a temp file + rename.
"""

import json
import os
import re
import tempfile
from pathlib import Path

from safesync.connectors.base import BlobStore


# Identities are base64url strings; anything else could escape the root
_IDENTITY_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")
_POINTER_NAME = "latest.json"


class DirectoryBlobStore(BlobStore):
    """
    File-backed versioned store.

    Args:
        root: Directory holding one sub-directory per identity.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _bucket(self, identity: str) -> Path:
        if not isinstance(identity, str) or not _IDENTITY_PATTERN.match(identity):
            raise ValueError(f"invalid identity: {identity!r}")
        return self.root / identity / "v1"

    def _write(self, path: Path, body) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(body, f)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    @staticmethod
    def _read(path: Path):
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def put_version(self, identity: str, ts: int, body) -> None:
        self._write(self._bucket(identity) / f"{int(ts)}.json", body)

    def get_version(self, identity: str, ts: int):
        return self._read(self._bucket(identity) / f"{int(ts)}.json")

    def put_pointer(self, identity: str, ts: int) -> None:
        self._write(self._bucket(identity) / _POINTER_NAME, {"ts": ts})

    def get_pointer(self, identity: str):
        return self._read(self._bucket(identity) / _POINTER_NAME)

    def list_versions(self, identity: str, limit: int) -> list[dict]:
        bucket = self._bucket(identity)
        if not bucket.exists():
            return []
        stamps = sorted(
            (int(p.stem) for p in bucket.glob("*.json") if p.stem.isdigit()),
            reverse=True,
        )
        return [{"ts": ts} for ts in stamps[:limit]]

    def get_info(self) -> dict:
        """Get self-hosted store info."""
        identities = [p.name for p in self.root.iterdir() if (p / "v1").is_dir()]
        versions = sum(
            1
            for name in identities
            for p in (self.root / name / "v1").glob("*.json")
            if p.stem.isdigit()
        )
        return {
            "store": "self-hosted",
            "root": str(self.root),
            "identities": len(identities),
            "versions": versions,
        }
