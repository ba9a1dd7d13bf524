"""
Bundle Blobs — the static payload format opened before sync starts.

A bundle blob is a JSON object:

  {salt, iv, tag, ciphertext}     (standard base64)

The AES-256-GCM key comes straight from PBKDF2-HMAC-SHA256 over the
passphrase (210,000 iterations); there is no separate MAC. Decrypted
payloads may carry trailing bytes after the JSON document, so
extract_payload() parses up to the last closing brace.
"""

import base64
import binascii
import json
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from safesync.errors import DerivationError, FormatError, IntegrityError


BUNDLE_PBKDF2_ITERATIONS = 210_000
BUNDLE_SALT_SIZE = 16
BUNDLE_NONCE_SIZE = 12
BUNDLE_TAG_SIZE = 16
KEY_SIZE = 32


def derive_bundle_key(passphrase: str, salt: bytes) -> bytes:
    """Derive the bundle AES key from a passphrase using PBKDF2."""
    if not passphrase:
        raise DerivationError("passphrase must not be empty")
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=BUNDLE_PBKDF2_ITERATIONS,
    )
    return kdf.derive(passphrase.encode("utf-8"))


def _field(blob: dict, name: str) -> bytes:
    value = blob.get(name)
    if not isinstance(value, str):
        raise FormatError(f"bundle field {name!r} missing or not a string")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise FormatError(f"bundle field {name!r} is not valid base64") from exc


def encrypt_blob(text: str, passphrase: str) -> dict:
    """Encrypt text into a bundle blob."""
    salt = os.urandom(BUNDLE_SALT_SIZE)
    iv = os.urandom(BUNDLE_NONCE_SIZE)
    key = derive_bundle_key(passphrase, salt)
    sealed = AESGCM(key).encrypt(iv, text.encode("utf-8"), None)
    ciphertext, tag = sealed[:-BUNDLE_TAG_SIZE], sealed[-BUNDLE_TAG_SIZE:]
    return {
        "salt": base64.b64encode(salt).decode(),
        "iv": base64.b64encode(iv).decode(),
        "tag": base64.b64encode(tag).decode(),
        "ciphertext": base64.b64encode(ciphertext).decode(),
    }


def decrypt_blob(blob: dict, passphrase: str) -> str:
    """
    Decrypt a bundle blob to text.

    Raises:
        FormatError: Missing or malformed fields, or non-UTF-8 plaintext.
        IntegrityError: Wrong passphrase or tampered blob.
    """
    if not isinstance(blob, dict):
        raise FormatError("bundle blob must be a JSON object")

    salt = _field(blob, "salt")
    iv = _field(blob, "iv")
    tag = _field(blob, "tag")
    ciphertext = _field(blob, "ciphertext")
    if len(iv) != BUNDLE_NONCE_SIZE:
        raise FormatError(f"bundle iv must be {BUNDLE_NONCE_SIZE} bytes")
    if len(tag) != BUNDLE_TAG_SIZE:
        raise FormatError(f"bundle tag must be {BUNDLE_TAG_SIZE} bytes")

    key = derive_bundle_key(passphrase, salt)
    try:
        plaintext = AESGCM(key).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as exc:
        raise IntegrityError() from exc

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise FormatError("bundle plaintext is not UTF-8") from exc


def extract_payload(text: str):
    """
    Parse the JSON document at the start of a decrypted bundle.

    Everything after the last closing brace is ignored.

    Raises:
        FormatError: No closing brace, or the text up to it is not JSON.
    """
    last_brace = text.rfind("}")
    if last_brace == -1:
        raise FormatError("no closing brace found in decrypted data")
    try:
        return json.loads(text[:last_brace + 1])
    except ValueError as exc:
        raise FormatError(f"decrypted data is not valid JSON: {exc}") from exc


def open_payload(blob: dict, passphrase: str):
    """Decrypt a bundle blob and parse its JSON payload."""
    return extract_payload(decrypt_blob(blob, passphrase))
