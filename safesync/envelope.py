"""
Envelope — Authenticated Encryption for JSON State

Each save produces a fresh envelope:

  {v: 1, ts, salt, iv, ct, mac}

  salt → 16 random bytes, feeds key derivation
  iv   → 12 random bytes, AES-256-GCM nonce
  ct   → AES-256-GCM ciphertext (tag included)
  mac  → HMAC-SHA256(salt || iv || ct), independent of the GCM tag

Byte fields travel as base64url without padding. On load the MAC is
checked before AES-GCM is touched: a tampered envelope never reaches
the cipher.
"""

import base64
import binascii
import hashlib
import hmac
import json
import math
import os
import re
import time
from dataclasses import dataclass
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from safesync.errors import FormatError, IntegrityError
from safesync.kdf import derive, derive_keys, ID_SIZE, LABEL_ID, SALT_SIZE


FORMAT_VERSION = 1
NONCE_SIZE = 12  # AES-256-GCM standard
MAC_SIZE = 32
TAG_SIZE = 16

# Published constant so one passphrase always addresses one bucket
IDENTITY_SALT = hashlib.sha256(b"safesync/identity/v1").digest()[:SALT_SIZE]

_B64URL_CHARS = re.compile(r"[A-Za-z0-9_-]*")


def b64url_encode(data: bytes) -> str:
    """Encode bytes as base64url without padding."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def b64url_decode(text: str) -> bytes:
    """Strictly decode unpadded base64url. Raises FormatError on bad input."""
    if not isinstance(text, str) or not _B64URL_CHARS.fullmatch(text):
        raise FormatError("expected a base64url string")
    try:
        padded = text + "=" * (-len(text) % 4)
        return base64.b64decode(padded.encode("ascii"), altchars=b"-_", validate=True)
    except (binascii.Error, ValueError) as exc:
        raise FormatError("invalid base64url data") from exc


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


def _mac(mac_key: bytes, salt: bytes, iv: bytes, ct: bytes) -> bytes:
    return hmac.new(mac_key, salt + iv + ct, hashlib.sha256).digest()


@dataclass(frozen=True)
class Envelope:
    """One encrypted, authenticated version of the state."""
    ts: int
    salt: bytes
    iv: bytes
    ct: bytes
    mac: bytes
    v: int = FORMAT_VERSION

    def to_dict(self) -> dict:
        return {
            "v": self.v,
            "ts": self.ts,
            "salt": b64url_encode(self.salt),
            "iv": b64url_encode(self.iv),
            "ct": b64url_encode(self.ct),
            "mac": b64url_encode(self.mac),
        }

    @classmethod
    def from_dict(cls, payload) -> "Envelope":
        """
        Validate and decode the wire form.

        Raises:
            FormatError: Wrong version, missing fields, a non-numeric or
                non-finite ts, or byte fields that are not well-formed
                base64url of the expected length.
        """
        if not isinstance(payload, dict):
            raise FormatError("envelope must be a JSON object")

        version = payload.get("v")
        if isinstance(version, bool) or version != FORMAT_VERSION:
            raise FormatError(f"unsupported envelope version: {version!r}")

        ts = payload.get("ts")
        if isinstance(ts, bool) or not isinstance(ts, (int, float)):
            raise FormatError("envelope ts must be numeric")
        if isinstance(ts, float) and not math.isfinite(ts):
            raise FormatError(f"envelope ts must be finite, got {ts!r}")

        salt = b64url_decode(payload.get("salt"))
        iv = b64url_decode(payload.get("iv"))
        ct = b64url_decode(payload.get("ct"))
        mac = b64url_decode(payload.get("mac"))

        if len(salt) != SALT_SIZE:
            raise FormatError(f"salt must be {SALT_SIZE} bytes")
        if len(iv) != NONCE_SIZE:
            raise FormatError(f"iv must be {NONCE_SIZE} bytes")
        if len(ct) < TAG_SIZE:
            raise FormatError("ciphertext too short to contain a tag")
        if len(mac) != MAC_SIZE:
            raise FormatError(f"mac must be {MAC_SIZE} bytes")

        return cls(ts=int(ts), salt=salt, iv=iv, ct=ct, mac=mac, v=version)


def serialize(value) -> bytes:
    """Canonical JSON bytes: sorted keys, compact separators, UTF-8."""
    try:
        text = json.dumps(
            value,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
    except (TypeError, ValueError) as exc:
        raise FormatError(f"state is not JSON-serializable: {exc}") from exc
    return text.encode("utf-8")


def encrypt(value, passphrase, ts: Optional[int] = None) -> Envelope:
    """
    Encrypt a JSON-serializable value under a passphrase.

    Args:
        value: Any JSON-serializable value.
        passphrase: The user's passphrase.
        ts: Creation time in epoch ms. Defaults to now.

    Returns:
        A fresh Envelope. Salt and IV are never reused.
    """
    plaintext = serialize(value)

    salt = os.urandom(SALT_SIZE)
    iv = os.urandom(NONCE_SIZE)
    keys = derive_keys(passphrase, salt)

    ct = AESGCM(keys.enc_key).encrypt(iv, plaintext, None)
    mac = _mac(keys.mac_key, salt, iv, ct)

    return Envelope(
        ts=now_ms() if ts is None else ts,
        salt=salt,
        iv=iv,
        ct=ct,
        mac=mac,
    )


def decrypt(envelope, passphrase):
    """
    Verify and decrypt an envelope.

    Args:
        envelope: An Envelope, or its wire dict.
        passphrase: The passphrase it was encrypted under.

    Returns:
        The decrypted JSON value.

    Raises:
        FormatError: Malformed envelope or plaintext that is not JSON.
        IntegrityError: MAC mismatch or AES-GCM authentication failure.
    """
    if not isinstance(envelope, Envelope):
        envelope = Envelope.from_dict(envelope)
    elif envelope.v != FORMAT_VERSION:
        raise FormatError(f"unsupported envelope version: {envelope.v!r}")

    keys = derive_keys(passphrase, envelope.salt)

    expected = _mac(keys.mac_key, envelope.salt, envelope.iv, envelope.ct)
    if not hmac.compare_digest(expected, envelope.mac):
        raise IntegrityError()

    try:
        plaintext = AESGCM(keys.enc_key).decrypt(envelope.iv, envelope.ct, None)
    except InvalidTag as exc:
        raise IntegrityError() from exc

    try:
        return json.loads(plaintext.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise FormatError("decrypted payload is not JSON") from exc


def derive_identity(passphrase, salt: bytes = IDENTITY_SALT) -> str:
    """
    Derive the bucket identifier for a passphrase.

    Uses a fixed salt, so the same passphrase always maps to the same
    identifier.
    """
    return b64url_encode(derive(passphrase, LABEL_ID, ID_SIZE, salt))
