"""
Sync client configuration.

Settings come from keyword arguments or from SAFESYNC_* environment
variables via SyncSettings.from_env().
"""

import os
from dataclasses import dataclass

from safesync.envelope import IDENTITY_SALT


DEFAULT_DEBOUNCE_MS = 500
DEFAULT_LIST_LIMIT = 20
DEFAULT_TIMEOUT = 10.0
DEFAULT_ATTESTATION_HEADER = "X-Firebase-AppCheck"

ENV_PREFIX = "SAFESYNC_"


@dataclass
class SyncSettings:
    """Configuration for a SyncClient."""
    base_url: str = ""          # Root of the versioned blob store API
    debounce_ms: int = DEFAULT_DEBOUNCE_MS
    list_limit: int = DEFAULT_LIST_LIMIT    # Versions scanned by list fallback
    timeout: float = DEFAULT_TIMEOUT        # Per-request, seconds
    attestation_header: str = DEFAULT_ATTESTATION_HEADER
    identity_salt: bytes = IDENTITY_SALT

    def __post_init__(self):
        if self.debounce_ms < 0:
            raise ValueError(f"debounce_ms must be >= 0, got {self.debounce_ms}")
        if self.list_limit <= 0:
            raise ValueError(f"list_limit must be > 0, got {self.list_limit}")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {self.timeout}")
        if not self.attestation_header:
            raise ValueError("attestation_header must not be empty")

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000

    @classmethod
    def from_env(cls, environ: dict = None) -> "SyncSettings":
        """
        Build settings from SAFESYNC_* environment variables.

        Unset variables keep their defaults. Malformed numbers raise
        ValueError naming the variable.
        """
        env = os.environ if environ is None else environ
        kwargs = {}

        def read(name, convert):
            raw = env.get(ENV_PREFIX + name)
            if raw is None or raw.strip() == "":
                return None
            try:
                return convert(raw.strip())
            except ValueError as exc:
                raise ValueError(f"{ENV_PREFIX}{name}: invalid value {raw!r}") from exc

        for field_name, env_name, convert in (
            ("base_url", "BASE_URL", str),
            ("debounce_ms", "DEBOUNCE_MS", int),
            ("list_limit", "LIST_LIMIT", int),
            ("timeout", "TIMEOUT", float),
            ("attestation_header", "ATTESTATION_HEADER", str),
        ):
            value = read(env_name, convert)
            if value is not None:
                kwargs[field_name] = value

        return cls(**kwargs)
