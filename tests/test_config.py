"""Tests for SyncSettings."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from safesync.config import (
    DEFAULT_ATTESTATION_HEADER,
    DEFAULT_DEBOUNCE_MS,
    DEFAULT_LIST_LIMIT,
    SyncSettings,
)
from safesync.envelope import IDENTITY_SALT


def test_defaults():
    settings = SyncSettings(base_url="http://store.test")
    assert settings.debounce_ms == DEFAULT_DEBOUNCE_MS == 500
    assert settings.list_limit == DEFAULT_LIST_LIMIT == 20
    assert settings.attestation_header == DEFAULT_ATTESTATION_HEADER
    assert settings.identity_salt == IDENTITY_SALT
    assert settings.debounce_seconds == 0.5


def test_from_env():
    settings = SyncSettings.from_env({
        "SAFESYNC_BASE_URL": "https://sync.example.com/api",
        "SAFESYNC_DEBOUNCE_MS": "250",
        "SAFESYNC_LIST_LIMIT": "5",
        "SAFESYNC_TIMEOUT": "2.5",
        "SAFESYNC_ATTESTATION_HEADER": "X-Attest",
        "UNRELATED": "ignored",
    })
    assert settings.base_url == "https://sync.example.com/api"
    assert settings.debounce_ms == 250
    assert settings.list_limit == 5
    assert settings.timeout == 2.5
    assert settings.attestation_header == "X-Attest"


def test_from_env_blank_values_keep_defaults():
    settings = SyncSettings.from_env({"SAFESYNC_DEBOUNCE_MS": "  "})
    assert settings.debounce_ms == DEFAULT_DEBOUNCE_MS
    assert settings.base_url == ""


def test_from_env_names_bad_variable():
    with pytest.raises(ValueError, match="SAFESYNC_LIST_LIMIT"):
        SyncSettings.from_env({"SAFESYNC_LIST_LIMIT": "lots"})


@pytest.mark.parametrize("kwargs", [
    {"debounce_ms": -1},
    {"list_limit": 0},
    {"timeout": 0},
    {"attestation_header": ""},
])
def test_invalid_settings(kwargs):
    with pytest.raises(ValueError):
        SyncSettings(**kwargs)


def test_zero_debounce_allowed():
    assert SyncSettings(debounce_ms=0).debounce_seconds == 0
