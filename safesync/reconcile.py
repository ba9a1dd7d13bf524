"""
Reconciling cloud state with local state.

Most recent timestamp wins: the cloud copy replaces the local one only
when the version it came from is newer than the local state's own
modification time.
"""

from dataclasses import dataclass
from typing import Any

from safesync.sync import SyncOutcome


LOCAL_TIMESTAMP_KEY = "_lastModified"


@dataclass(frozen=True)
class Resolution:
    """Which copy of the state to use."""
    state: Any
    source: str      # "cloud" or "local"
    reason: str

    @property
    def from_cloud(self) -> bool:
        return self.source == "cloud"


def local_timestamp(local_state, key: str = LOCAL_TIMESTAMP_KEY) -> int:
    """Modification time stored in local state (epoch ms), 0 when unknown."""
    if not isinstance(local_state, dict):
        return 0
    ts = local_state.get(key)
    if isinstance(ts, bool) or not isinstance(ts, (int, float)):
        return 0
    return int(ts)


def prefer_newer(local_state, outcome: SyncOutcome, key: str = LOCAL_TIMESTAMP_KEY) -> Resolution:
    """
    Choose between local state and a load outcome.

    Args:
        local_state: The state currently held locally (may be None).
        outcome: Result of SyncClient.load().
        key: Field in local state holding its modification time.

    Returns:
        Resolution naming the state to use and why.
    """
    if not outcome.found:
        reason = "no cloud state" if outcome.ok else f"cloud {outcome.error.value} error"
        return Resolution(state=local_state, source="local", reason=reason)

    local_ts = local_timestamp(local_state, key)
    cloud_ts = outcome.ts or 0
    if cloud_ts > local_ts:
        return Resolution(state=outcome.state, source="cloud", reason="cloud is newer")
    return Resolution(state=local_state, source="local", reason="local is newer or equal")
