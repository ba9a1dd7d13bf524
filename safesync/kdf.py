"""
Key Derivation — Passphrase to Domain-Separated Keys

Two-stage derivation:
  Passphrase + salt → stretched key (via PBKDF2-HMAC-SHA256)
  Stretched key + salt + label → output bytes (via HKDF-SHA256)

Labels separate the uses drawn from one stretched key:
  "id"  → 16-byte bucket identifier
  "enc" → 32-byte AES-256-GCM key
  "mac" → 32-byte HMAC-SHA256 key

Knowing one output reveals nothing about the others.
"""

from dataclasses import dataclass

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from safesync.errors import DerivationError


# Fixed so that existing envelopes keep decrypting
PBKDF2_ITERATIONS = 100_000
STRETCHED_KEY_SIZE = 32
HKDF_MAX_LENGTH = 255 * 32

SALT_SIZE = 16
ID_SIZE = 16
KEY_SIZE = 32    # 256 bits

LABEL_ID = "id"
LABEL_ENC = "enc"
LABEL_MAC = "mac"


@dataclass(frozen=True)
class DerivedKeyTriple:
    """The three keys drawn from one (passphrase, salt) pair."""
    id_bytes: bytes
    enc_key: bytes
    mac_key: bytes


def _check_inputs(passphrase, salt: bytes) -> bytes:
    if isinstance(passphrase, str):
        passphrase = passphrase.encode("utf-8")
    if not isinstance(passphrase, (bytes, bytearray)):
        raise DerivationError("passphrase must be str or bytes")
    if not passphrase:
        raise DerivationError("passphrase must not be empty")
    if not isinstance(salt, (bytes, bytearray)):
        raise DerivationError("salt must be bytes")
    return bytes(passphrase)


def stretch(passphrase, salt: bytes) -> bytes:
    """Stretch a passphrase into a 32-byte key using PBKDF2."""
    secret = _check_inputs(passphrase, salt)
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=STRETCHED_KEY_SIZE,
        salt=bytes(salt),
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(secret)


def expand(stretched: bytes, label: str, length: int, salt: bytes) -> bytes:
    """Draw ``length`` bytes for ``label`` from a stretched key using HKDF."""
    if not isinstance(length, int) or isinstance(length, bool) or length <= 0:
        raise DerivationError(f"output length must be a positive integer, got {length!r}")
    if length > HKDF_MAX_LENGTH:
        raise DerivationError(f"output length {length} exceeds HKDF maximum of {HKDF_MAX_LENGTH}")
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=length,
        salt=bytes(salt),
        info=label.encode("utf-8"),
    )
    return hkdf.derive(stretched)


def derive(passphrase, label: str, length: int, salt: bytes) -> bytes:
    """
    Derive ``length`` bytes from a passphrase for one labelled purpose.

    Pure and deterministic: the same inputs always give the same bytes.

    Args:
        passphrase: The user's passphrase (str is encoded as UTF-8).
        label: Purpose label, e.g. "id", "enc" or "mac".
        length: Number of output bytes.
        salt: Per-operation salt.

    Raises:
        DerivationError: Empty passphrase, non-bytes salt, or a length
            outside 1..HKDF_MAX_LENGTH.
    """
    # Validate the cheap inputs before paying for the stretch
    _check_inputs(passphrase, salt)
    if not isinstance(length, int) or isinstance(length, bool) or length <= 0:
        raise DerivationError(f"output length must be a positive integer, got {length!r}")
    return expand(stretch(passphrase, salt), label, length, salt)


def derive_keys(passphrase, salt: bytes) -> DerivedKeyTriple:
    """
    Derive the id, encryption and MAC keys for one salt.

    Stretches once and expands three times, so the result matches three
    separate ``derive`` calls at a third of the cost.
    """
    stretched = stretch(passphrase, salt)
    return DerivedKeyTriple(
        id_bytes=expand(stretched, LABEL_ID, ID_SIZE, salt),
        enc_key=expand(stretched, LABEL_ENC, KEY_SIZE, salt),
        mac_key=expand(stretched, LABEL_MAC, KEY_SIZE, salt),
    )
