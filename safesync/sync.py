"""
Sync Client — Encrypted State Over a Versioned Blob Store

Flow for saving state:
1. Debounce: bursts of saves for one identity collapse into the last one
2. Encrypt the state into a fresh envelope
3. PUT the envelope under its timestamp
4. PUT the latest pointer at that timestamp

Flow for loading state:
1. Follow the latest pointer to a version and decrypt it
2. If the pointer is missing, dangling or undecryptable, list recent
   versions and try them newest first
3. Report the result as a SyncOutcome; load never raises

The two PUTs are not atomic. A version written without its pointer is
still found by the list scan.
"""

import dataclasses
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

import httpx

from safesync.config import SyncSettings
from safesync.debounce import DebounceRegistry
from safesync.envelope import Envelope, decrypt, derive_identity, encrypt, now_ms
from safesync.errors import ErrorKind, FormatError, NetworkError, SyncError

logger = logging.getLogger("safesync.sync")

AttestationProvider = Callable[[], Union[Optional[str], Awaitable[Optional[str]]]]


class LoadError(Enum):
    """Why a load produced no state (NONE: no error)."""
    NONE = "none"
    NETWORK = "network"
    INTEGRITY = "integrity"


@dataclass(frozen=True)
class SyncOutcome:
    """
    Result of a load attempt.

    ``found`` tells a stored JSON null apart from "no state". With
    ``error`` NONE and ``found`` False the bucket is simply empty.
    """
    state: Any = None
    error: LoadError = LoadError.NONE
    found: bool = False
    ts: Optional[int] = None

    @classmethod
    def recovered(cls, state, ts: int) -> "SyncOutcome":
        return cls(state=state, error=LoadError.NONE, found=True, ts=ts)

    @classmethod
    def absent(cls, error: LoadError = LoadError.NONE) -> "SyncOutcome":
        return cls(state=None, error=error, found=False)

    @property
    def ok(self) -> bool:
        return self.error is LoadError.NONE

    def to_dict(self) -> dict:
        return {
            "state": self.state,
            "error": None if self.error is LoadError.NONE else self.error.value,
        }


def _expect_success(response: httpx.Response, what: str) -> None:
    if not response.is_success:
        raise NetworkError(f"{what} failed: HTTP {response.status_code}", status=response.status_code)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class SyncClient:
    """
    Debounced, encrypted state sync against a versioned blob store.

    Use as an async context manager so pending saves are flushed and the
    HTTP client is closed on exit.

    Args:
        settings: Client configuration. Read from the environment if omitted.
        transport: Custom httpx transport (e.g. LocalStoreTransport).
        attestation: Zero-argument callable returning a token, None, or
            an awaitable of either. Failures never block a request.
        http_client: Pre-built httpx.AsyncClient. Not closed by this client.
    """

    def __init__(
        self,
        settings: SyncSettings = None,
        *,
        transport: httpx.AsyncBaseTransport = None,
        attestation: AttestationProvider = None,
        http_client: httpx.AsyncClient = None,
    ):
        # Own copy, so set_debounce stays local to this client
        self.settings = dataclasses.replace(settings) if settings is not None else SyncSettings.from_env()

        if http_client is None:
            if not self.settings.base_url:
                raise ValueError("SyncClient requires settings.base_url")
            http_client = httpx.AsyncClient(
                base_url=self.settings.base_url,
                timeout=self.settings.timeout,
                transport=transport,
            )
            self._owns_http = True
        else:
            self._owns_http = False
        self._http = http_client

        self._attestation = attestation
        self._attestation_error_logged = False
        self._timers = DebounceRegistry(on_error=self._on_save_error)
        self._last_save_ts = 0

        # Stats
        self.saves_scheduled = 0
        self.saves_completed = 0
        self.saves_failed = 0
        self.loads = 0
        self.fallback_recoveries = 0
        self.last_save_error: Optional[BaseException] = None

    async def __aenter__(self) -> "SyncClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Flush pending saves, then close the HTTP client if we own it."""
        try:
            await self.flush()
        finally:
            if self._owns_http:
                await self._http.aclose()

    # ------------------------------------------------------------------
    # Identity and configuration
    # ------------------------------------------------------------------

    def identity(self, passphrase) -> str:
        """Bucket identifier for a passphrase."""
        return derive_identity(passphrase, self.settings.identity_salt)

    def set_debounce(self, ms: int) -> None:
        """Change the save debounce delay. Applies to timers armed afterwards."""
        if ms < 0:
            raise ValueError(f"debounce must be >= 0 ms, got {ms}")
        self.settings.debounce_ms = ms

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------

    def schedule_save(self, passphrase, state) -> str:
        """
        Save ``state`` after the debounce delay.

        A later call for the same identity before the timer fires replaces
        this one. Returns immediately with the identity; errors from the
        eventual save are logged and kept in ``last_save_error``.

        Must be called from a running event loop.
        """
        ident = self.identity(passphrase)
        self._timers.schedule(
            ident,
            self.settings.debounce_seconds,
            lambda: self.perform_save(passphrase, state),
        )
        self.saves_scheduled += 1
        return ident

    def save_pending(self, passphrase) -> bool:
        """True when a debounced save for this passphrase has not fired yet."""
        return self._timers.is_pending(self.identity(passphrase))

    async def flush(self) -> None:
        """Run every pending save now and wait for all in-flight saves."""
        await self._timers.flush()

    def _on_save_error(self, ident: str, exc: BaseException) -> None:
        self.last_save_error = exc
        logger.error("Cloud save for %s failed: %s", ident, exc)

    def _next_version_ts(self) -> int:
        # Strictly increasing per client: one version key per save
        ts = max(now_ms(), self._last_save_ts + 1)
        self._last_save_ts = ts
        return ts

    async def perform_save(self, passphrase, state) -> Envelope:
        """
        Encrypt and upload ``state`` immediately.

        Returns:
            The envelope that was stored.

        Raises:
            NetworkError: Transport failure or a non-2xx response to either PUT.
            FormatError: ``state`` is not JSON-serializable.
            DerivationError: Empty passphrase.
        """
        try:
            envelope = encrypt(state, passphrase, ts=self._next_version_ts())
            ident = self.identity(passphrase)
            headers = await self._headers()

            response = await self._request(
                "PUT", f"/{ident}/v1/{envelope.ts}", headers=headers, json=envelope.to_dict()
            )
            _expect_success(response, "version upload")

            response = await self._request(
                "PUT", f"/{ident}/v1/latest", headers=headers, json={"ts": envelope.ts}
            )
            _expect_success(response, "latest pointer update")
        except SyncError:
            self.saves_failed += 1
            raise

        self.saves_completed += 1
        logger.info("Saved version %s for %s", envelope.ts, ident)
        return envelope

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self, passphrase) -> SyncOutcome:
        """
        Load the most recent decryptable state.

        Never raises. Returns:
            (state, NONE)         recovered a version
            (absent, NONE)        nothing stored yet
            (absent, NETWORK)     the store could not be reached properly
            (absent, INTEGRITY)   versions exist but none decrypts
        """
        self.loads += 1
        try:
            return await self._load(passphrase)
        except SyncError as exc:
            if exc.kind is ErrorKind.NETWORK:
                logger.warning("Cloud load failed: %s", exc)
                return SyncOutcome.absent(LoadError.NETWORK)
            logger.warning("Cloud load could not open state: %s", exc)
            return SyncOutcome.absent(LoadError.INTEGRITY)
        except Exception:
            logger.exception("Unexpected error while loading state")
            return SyncOutcome.absent(LoadError.NETWORK)

    async def _load(self, passphrase) -> SyncOutcome:
        ident = self.identity(passphrase)
        headers = await self._headers()
        undecryptable: set[int] = set()

        latest_ts = await self._read_pointer(ident, headers)

        if latest_ts is not None:
            try:
                outcome = await self._open_version(ident, latest_ts, passphrase, headers)
            except SyncError as exc:
                if exc.kind is ErrorKind.NETWORK:
                    raise
                logger.warning("Latest version %s failed to open (%s); scanning history", latest_ts, exc)
                undecryptable.add(latest_ts)
            else:
                if outcome is not None:
                    return outcome
                logger.warning("Latest pointer for %s names missing version %s", ident, latest_ts)

        # List fallback
        response = await self._request(
            "GET", f"/{ident}/v1", headers=headers, params={"limit": self.settings.list_limit}
        )
        _expect_success(response, "version listing")
        stamps = self._parse_listing(response)
        if not stamps:
            return SyncOutcome.absent(LoadError.NONE)

        for ts in stamps:
            if ts in undecryptable:
                continue
            try:
                outcome = await self._open_version(ident, ts, passphrase, headers)
            except SyncError as exc:
                if exc.kind is ErrorKind.NETWORK:
                    raise
                logger.warning("Version %s failed to open (%s); trying older", ts, exc)
                continue
            if outcome is None:
                continue
            self.fallback_recoveries += 1
            logger.info("Recovered version %s for %s from history", ts, ident)
            return outcome

        # Versions were listed but none could be opened
        return SyncOutcome.absent(LoadError.INTEGRITY)

    async def _read_pointer(self, ident: str, headers: dict) -> Optional[int]:
        """Latest version timestamp, or None when there is no usable pointer."""
        response = await self._request("GET", f"/{ident}/v1/latest", headers=headers)
        if response.status_code == 404:
            return None
        _expect_success(response, "latest pointer fetch")
        try:
            body = response.json()
        except ValueError as exc:
            raise NetworkError("latest pointer response is not JSON", status=response.status_code) from exc
        ts = body.get("ts") if isinstance(body, dict) else None
        return ts if _is_int(ts) else None

    async def _open_version(self, ident: str, ts: int, passphrase, headers: dict) -> Optional[SyncOutcome]:
        """Fetch and decrypt one version. None when the store has no such version."""
        response = await self._request("GET", f"/{ident}/v1/{ts}", headers=headers)
        if response.status_code == 404:
            return None
        _expect_success(response, f"version {ts} fetch")
        try:
            payload = response.json()
        except ValueError as exc:
            raise FormatError(f"version {ts} is not JSON") from exc
        return SyncOutcome.recovered(decrypt(payload, passphrase), ts)

    @staticmethod
    def _parse_listing(response: httpx.Response) -> list[int]:
        """Version timestamps from a listing, newest first."""
        try:
            body = response.json()
        except ValueError as exc:
            raise NetworkError("version listing is not JSON", status=response.status_code) from exc
        if not isinstance(body, list):
            return []
        stamps = {item["ts"] for item in body if isinstance(item, dict) and _is_int(item.get("ts"))}
        return sorted(stamps, reverse=True)

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    async def _attestation_token(self) -> Optional[str]:
        if self._attestation is None:
            return None
        try:
            token = self._attestation()
            if inspect.isawaitable(token):
                token = await token
        except Exception as exc:
            # Log once per client to avoid spam
            if not self._attestation_error_logged:
                logger.warning("Attestation token unavailable: %s", exc)
                self._attestation_error_logged = True
            return None
        return token or None

    async def _headers(self) -> dict:
        headers = {}
        token = await self._attestation_token()
        if token:
            headers[self.settings.attestation_header] = token
        return headers

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise NetworkError(f"{method} {path} failed: {exc}") from exc

    def stats(self) -> dict:
        """Get operational statistics."""
        return {
            "saves_scheduled": self.saves_scheduled,
            "saves_completed": self.saves_completed,
            "saves_failed": self.saves_failed,
            "saves_pending": len(self._timers),
            "loads": self.loads,
            "fallback_recoveries": self.fallback_recoveries,
        }
