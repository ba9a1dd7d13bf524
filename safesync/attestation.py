"""
Attestation Tokens
Unlinkable request tokens for the blob store.

The sync client attaches a token to each request when a provider can
supply one. This issuer provides HMAC-based tokens that prove "issued by
a holder of the secret" without linking individual requests together.
A store sharing the secret can verify them (see LocalStoreTransport).
"""

import base64
import binascii
import hashlib
import hmac
import os


TOKEN_DATA_SIZE = 32


class AttestationIssuer:
    """
    Issues and verifies unlinkable attestation tokens.

    Calling the issuer (``await issuer()``) returns one fresh token, so an
    instance can be handed straight to SyncClient as its provider.

    Args:
        secret: HMAC signing secret. Generated randomly if not provided.
    """

    def __init__(self, secret: bytes = None):
        self.secret = secret or os.urandom(32)
        self._issued_count = 0

    def issue(self) -> str:
        """Issue a single token."""
        self._issued_count += 1
        token_data = os.urandom(TOKEN_DATA_SIZE)
        tag = hmac.new(self.secret, token_data, hashlib.sha256).digest()
        return base64.urlsafe_b64encode(token_data + tag).decode()

    def issue_batch(self, count: int = 10) -> list[str]:
        """
        Issue a batch of single-use tokens.

        Args:
            count: Number of tokens to issue.

        Returns:
            List of base64url-encoded tokens.
        """
        return [self.issue() for _ in range(count)]

    def verify(self, token: str) -> bool:
        """
        Verify a token without identifying who it was issued to.

        Args:
            token: Base64url-encoded token string.

        Returns:
            True if the token is valid.
        """
        try:
            raw = base64.urlsafe_b64decode(token)
        except (binascii.Error, TypeError, ValueError):
            return False
        if len(raw) != TOKEN_DATA_SIZE + hashlib.sha256().digest_size:
            return False
        token_data, provided = raw[:TOKEN_DATA_SIZE], raw[TOKEN_DATA_SIZE:]
        expected = hmac.new(self.secret, token_data, hashlib.sha256).digest()
        return hmac.compare_digest(provided, expected)

    async def __call__(self) -> str:
        return self.issue()

    @property
    def issued_count(self) -> int:
        """Total number of tokens issued."""
        return self._issued_count
