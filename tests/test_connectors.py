"""Tests for blob store connectors and the local store transport."""

import sys
import tempfile
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from safesync.attestation import AttestationIssuer
from safesync.connectors.memory import MemoryBlobStore
from safesync.connectors.self_hosted import DirectoryBlobStore
from safesync.connectors.transport import LocalStoreTransport

IDENTITY = "Zm9vYmFyYmF6cXV4MTIzNA"


def _exercise_store(store):
    assert store.get_version(IDENTITY, 1) is None
    assert store.get_pointer(IDENTITY) is None
    assert store.list_versions(IDENTITY, 20) == []

    for ts in (100, 300, 200):
        store.put_version(IDENTITY, ts, {"ts": ts, "body": f"v{ts}"})
    store.put_pointer(IDENTITY, 300)

    assert store.get_version(IDENTITY, 200) == {"ts": 200, "body": "v200"}
    assert store.get_pointer(IDENTITY) == {"ts": 300}
    assert store.list_versions(IDENTITY, 20) == [{"ts": 300}, {"ts": 200}, {"ts": 100}]
    assert store.list_versions(IDENTITY, 2) == [{"ts": 300}, {"ts": 200}]


def test_memory_store_basics():
    """Memory store: versions, pointer, newest-first listing with limit."""
    _exercise_store(MemoryBlobStore())
    print("  [PASS] Memory store basics")


def test_memory_store_copies_bodies():
    """Stored bodies are isolated from later mutation by the caller."""
    store = MemoryBlobStore()
    body = {"nested": {"x": 1}}
    store.put_version(IDENTITY, 1, body)
    body["nested"]["x"] = 2
    fetched = store.get_version(IDENTITY, 1)
    assert fetched == {"nested": {"x": 1}}
    fetched["nested"]["x"] = 3
    assert store.get_version(IDENTITY, 1) == {"nested": {"x": 1}}


def test_memory_store_dangling_pointer():
    store = MemoryBlobStore()
    store.put_version(IDENTITY, 5, {"a": 1})
    store.put_pointer(IDENTITY, 5)
    assert store.delete_version(IDENTITY, 5)
    assert not store.delete_version(IDENTITY, 5)
    assert store.get_pointer(IDENTITY) == {"ts": 5}
    assert store.get_version(IDENTITY, 5) is None


def test_directory_store_basics():
    """Self-hosted store: same contract as memory, on disk."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = DirectoryBlobStore(tmpdir)
        _exercise_store(store)
        assert (Path(tmpdir) / IDENTITY / "v1" / "300.json").exists()
        assert (Path(tmpdir) / IDENTITY / "v1" / "latest.json").exists()
        print("  [PASS] Directory store basics")


def test_directory_store_survives_reopen():
    with tempfile.TemporaryDirectory() as tmpdir:
        DirectoryBlobStore(tmpdir).put_version(IDENTITY, 7, {"a": 1})
        DirectoryBlobStore(tmpdir).put_pointer(IDENTITY, 7)

        reopened = DirectoryBlobStore(tmpdir)
        assert reopened.get_version(IDENTITY, 7) == {"a": 1}
        assert reopened.get_pointer(IDENTITY) == {"ts": 7}
        assert not list(Path(tmpdir).rglob("*.tmp"))


def test_directory_store_rejects_bad_identity():
    """Identities that could escape the root are refused."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = DirectoryBlobStore(tmpdir)
        for bad in ("..", "../etc", "a/b", "", "has space"):
            with pytest.raises(ValueError):
                store.put_version(bad, 1, {})


def test_directory_store_info():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = DirectoryBlobStore(tmpdir)
        store.put_version(IDENTITY, 1, {})
        store.put_version(IDENTITY, 2, {})
        store.put_pointer(IDENTITY, 2)
        info = store.get_info()
        assert info["store"] == "self-hosted"
        assert info["identities"] == 1
        assert info["versions"] == 2


def test_memory_store_info():
    store = MemoryBlobStore()
    store.put_version(IDENTITY, 1, {})
    info = store.get_info()
    assert info == {"store": "memory", "identities": 1, "versions": 1, "pointers": 0}


def _client(transport, base_url="http://store.test"):
    return httpx.AsyncClient(base_url=base_url, transport=transport)


@pytest.mark.asyncio
async def test_transport_serves_sync_api():
    """Transport answers the five sync routes from the store."""
    store = MemoryBlobStore()
    transport = LocalStoreTransport(store)
    async with _client(transport) as http:
        assert (await http.get(f"/{IDENTITY}/v1/latest")).status_code == 404
        assert (await http.get(f"/{IDENTITY}/v1/123")).status_code == 404
        listing = await http.get(f"/{IDENTITY}/v1", params={"limit": 20})
        assert listing.status_code == 200
        assert listing.json() == []

        put = await http.put(f"/{IDENTITY}/v1/123", json={"v": 1, "ts": 123})
        assert put.status_code == 200
        put = await http.put(f"/{IDENTITY}/v1/latest", json={"ts": 123})
        assert put.status_code == 200

        assert (await http.get(f"/{IDENTITY}/v1/latest")).json() == {"ts": 123}
        assert (await http.get(f"/{IDENTITY}/v1/123")).json() == {"v": 1, "ts": 123}
        assert (await http.get(f"/{IDENTITY}/v1", params={"limit": 5})).json() == [{"ts": 123}]

    assert transport.requests[0] == ("GET", f"/{IDENTITY}/v1/latest")
    assert len(transport.requests) == 8


@pytest.mark.asyncio
async def test_transport_ignores_base_path_prefix():
    store = MemoryBlobStore()
    async with _client(LocalStoreTransport(store), base_url="http://store.test/api/state") as http:
        await http.put(f"/{IDENTITY}/v1/9", json={"a": 1})
    assert store.get_version(IDENTITY, 9) == {"a": 1}


@pytest.mark.asyncio
async def test_transport_rejects_bad_requests():
    transport = LocalStoreTransport(MemoryBlobStore())
    async with _client(transport) as http:
        assert (await http.put(f"/{IDENTITY}/v1/latest", json={"ts": "soon"})).status_code == 400
        assert (await http.put(f"/{IDENTITY}/v1/latest", content=b"{oops")).status_code == 400
        assert (await http.put(f"/{IDENTITY}/v1/5", content=b"not json")).status_code == 400
        assert (await http.get(f"/{IDENTITY}/v1", params={"limit": "many"})).status_code == 400
        assert (await http.get(f"/{IDENTITY}/v1", params={"limit": 0})).status_code == 400
        assert (await http.delete(f"/{IDENTITY}/v1/5")).status_code == 405
        assert (await http.post(f"/{IDENTITY}/v1")).status_code == 405
        assert (await http.get(f"/{IDENTITY}/v2/5")).status_code == 404
        assert (await http.get("/")).status_code == 404


@pytest.mark.asyncio
async def test_transport_bad_identity_is_client_error():
    with tempfile.TemporaryDirectory() as tmpdir:
        transport = LocalStoreTransport(DirectoryBlobStore(tmpdir))
        async with _client(transport) as http:
            response = await http.put("/bad%20id/v1/5", json={"a": 1})
            assert response.status_code == 400


@pytest.mark.asyncio
async def test_transport_attestation():
    """Valid tokens pass, invalid tokens are refused, missing tokens never block."""
    issuer = AttestationIssuer()
    transport = LocalStoreTransport(MemoryBlobStore(), verifier=issuer)
    header = transport.attestation_header
    async with _client(transport) as http:
        ok = await http.get(f"/{IDENTITY}/v1", headers={header: issuer.issue()})
        assert ok.status_code == 200

        forged = await http.get(f"/{IDENTITY}/v1", headers={header: AttestationIssuer().issue()})
        assert forged.status_code == 401

        anonymous = await http.get(f"/{IDENTITY}/v1")
        assert anonymous.status_code == 200

    assert transport.attested_requests == 1


if __name__ == "__main__":
    print("Testing blob store connectors...\n")
    test_memory_store_basics()
    test_directory_store_basics()
    print(f"\n{'='*50}")
    print("Connector store checks passed!")
