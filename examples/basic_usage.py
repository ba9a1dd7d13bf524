"""
SafeSync — Basic Usage Example

Demonstrates debounced, encrypted saves of app state and recovery on a
fresh client. The store is a local directory served through
LocalStoreTransport, so no server is needed. Point SyncSettings.base_url
at a real store and drop the transport to sync over HTTP.
"""

import asyncio
import json
import logging
import shutil
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from safesync import DirectoryBlobStore, LocalStoreTransport, SyncClient, SyncSettings

STORE_DIR = Path("./example-store")


def make_client() -> SyncClient:
    transport = LocalStoreTransport(DirectoryBlobStore(STORE_DIR))
    return SyncClient(
        SyncSettings(base_url="http://localhost/state", debounce_ms=200),
        transport=transport,
    )


async def run():
    # Your passphrase — the only key to your data
    passphrase = "my-secret-passphrase-change-this"

    print("=" * 50)
    print("  SafeSync — Encrypted State Sync")
    print("=" * 50)

    my_state = {
        "journal": [
            {"date": "2026-02-10", "text": "Had a breakthrough idea today."},
        ],
        "settings": {"theme": "dark", "language": "en"},
    }

    async with make_client() as client:
        # Rapid edits collapse into one upload
        for n in range(3):
            my_state["journal"].append({"date": "2026-02-11", "text": f"Edit {n}"})
            ident = client.schedule_save(passphrase, json.loads(json.dumps(my_state)))
        print(f"\nBucket id: {ident}")
        print(f"Save pending: {client.save_pending(passphrase)}")
        await client.flush()
        print(f"Stats: {client.stats()}")

    stored = sorted((STORE_DIR / ident / "v1").iterdir())
    print(f"\nFiles in the store: {[p.name for p in stored]}")

    # A new client (simulates restart) finds the latest version
    async with make_client() as client:
        outcome = await client.load(passphrase)
        print(f"\nLoaded {len(outcome.state['journal'])} journal entries (version {outcome.ts})")
        assert outcome.state == my_state

        print("\nAttempting load with wrong passphrase...")
        other = await client.load("wrong-passphrase")
        print(f"  {other.to_dict()} — different passphrase, different (empty) bucket")

    shutil.rmtree(STORE_DIR, ignore_errors=True)
    print("\nCleaned up example files.")


def main():
    logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")
    asyncio.run(run())


if __name__ == "__main__":
    main()
