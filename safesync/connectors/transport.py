"""
Local store transport.
Serves the versioned blob store HTTP API from a BlobStore, in-process.

Plug it into httpx (and therefore SyncClient) to sync against a
directory or memory store with no server:

  PUT  .../{id}/v1/{ts}       body: envelope  → 200
  PUT  .../{id}/v1/latest     body: {ts}      → 200
  GET  .../{id}/v1/latest                     → 200 {ts} | 404
  GET  .../{id}/v1/{ts}                       → 200 envelope | 404
  GET  .../{id}/v1?limit=N                    → 200 [{ts}, ...]

Any path prefix before {id} (the base URL's own path) is ignored.
"""

import json
import logging

import httpx

from safesync.attestation import AttestationIssuer
from safesync.config import DEFAULT_ATTESTATION_HEADER, DEFAULT_LIST_LIMIT
from safesync.connectors.base import BlobStore

logger = logging.getLogger("safesync.connectors.transport")

LATEST = "latest"


def _json_response(status: int, body) -> httpx.Response:
    # Stored bodies go back as written, NaN and Infinity included
    return httpx.Response(
        status,
        content=json.dumps(body).encode("utf-8"),
        headers={"Content-Type": "application/json"},
    )


def _error(status: int, message: str) -> httpx.Response:
    return _json_response(status, {"error": message})


class LocalStoreTransport(httpx.AsyncBaseTransport):
    """
    httpx transport answering sync API requests from a BlobStore.

    Args:
        store: Where versions and pointers live.
        verifier: Checks attestation tokens. When set, a request carrying
            an invalid token is refused with 401; a request without a
            token is always served.
        attestation_header: Header the token travels in.
    """

    def __init__(
        self,
        store: BlobStore,
        verifier: AttestationIssuer = None,
        attestation_header: str = DEFAULT_ATTESTATION_HEADER,
    ):
        self.store = store
        self.verifier = verifier
        self.attestation_header = attestation_header
        self.requests: list[tuple[str, str]] = []
        self.attested_requests = 0

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        await request.aread()
        self.requests.append((request.method, request.url.path))
        return self.dispatch(request)

    def dispatch(self, request: httpx.Request) -> httpx.Response:
        token = request.headers.get(self.attestation_header)
        if token is not None:
            if self.verifier is not None and not self.verifier.verify(token):
                return _error(401, "invalid attestation token")
            self.attested_requests += 1

        segments = [s for s in request.url.path.split("/") if s]

        if len(segments) >= 2 and segments[-1] == "v1":
            if request.method != "GET":
                return _error(405, "method not allowed")
            return self._list(segments[-2], request)

        if len(segments) >= 3 and segments[-2] == "v1":
            identity, key = segments[-3], segments[-1]
            if key == LATEST:
                return self._pointer(identity, request)
            if key.isdigit():
                return self._version(identity, int(key), request)

        return _error(404, "not found")

    def _list(self, identity: str, request: httpx.Request) -> httpx.Response:
        raw_limit = request.url.params.get("limit", str(DEFAULT_LIST_LIMIT))
        try:
            limit = int(raw_limit)
        except ValueError:
            return _error(400, "limit must be an integer")
        if limit <= 0:
            return _error(400, "limit must be positive")
        return self._call(lambda: _json_response(200, self.store.list_versions(identity, limit)))

    def _pointer(self, identity: str, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            def read():
                pointer = self.store.get_pointer(identity)
                if pointer is None:
                    return _error(404, "no pointer")
                return _json_response(200, pointer)
            return self._call(read)

        if request.method == "PUT":
            body = self._body(request)
            ts = body.get("ts") if isinstance(body, dict) else None
            if isinstance(ts, bool) or not isinstance(ts, int):
                return _error(400, "pointer body must be {\"ts\": <int>}")

            def write():
                self.store.put_pointer(identity, ts)
                return _json_response(200, {"ts": ts})
            return self._call(write)

        return _error(405, "method not allowed")

    def _version(self, identity: str, ts: int, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            def read():
                body = self.store.get_version(identity, ts)
                if body is None:
                    return _error(404, "no such version")
                return _json_response(200, body)
            return self._call(read)

        if request.method == "PUT":
            body = self._body(request)
            if body is None:
                return _error(400, "version body must be JSON")

            def write():
                self.store.put_version(identity, ts, body)
                return _json_response(200, {"ts": ts})
            return self._call(write)

        return _error(405, "method not allowed")

    @staticmethod
    def _body(request: httpx.Request):
        try:
            return json.loads(request.content)
        except (UnicodeDecodeError, ValueError):
            return None

    @staticmethod
    def _call(handler) -> httpx.Response:
        # Store-level rejections (bad identity) become client errors
        try:
            return handler()
        except ValueError as exc:
            return _error(400, str(exc))
        except OSError as exc:
            logger.error("Blob store I/O failed: %s", exc)
            return _error(500, "storage failure")
