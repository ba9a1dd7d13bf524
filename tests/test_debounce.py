"""Tests for the per-key debounce registry."""

import asyncio
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from safesync.debounce import DebounceRegistry


def _recorder(calls, label, gate: asyncio.Event = None):
    async def run():
        calls.append(("start", label))
        if gate is not None:
            await gate.wait()
        calls.append(("end", label))
    return run


@pytest.mark.asyncio
async def test_reschedule_replaces_pending_work():
    """Two schedules inside the window run only the second."""
    registry = DebounceRegistry()
    calls = []
    registry.schedule("k", 0.05, _recorder(calls, "first"))
    registry.schedule("k", 0.05, _recorder(calls, "second"))
    assert registry.is_pending("k")
    assert len(registry) == 1

    await asyncio.sleep(0.2)
    assert calls == [("start", "second"), ("end", "second")]
    assert "k" not in registry


@pytest.mark.asyncio
async def test_keys_are_independent():
    registry = DebounceRegistry()
    calls = []
    registry.schedule("a", 0.01, _recorder(calls, "a"))
    registry.schedule("b", 0.01, _recorder(calls, "b"))
    await registry.flush()
    assert sorted(label for kind, label in calls if kind == "end") == ["a", "b"]
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_running_task_is_not_cancelled_by_reschedule():
    """Scheduling while a task runs arms a new timer beside it."""
    registry = DebounceRegistry()
    calls = []
    gate = asyncio.Event()
    registry.schedule("k", 0.01, _recorder(calls, "first", gate))
    await asyncio.sleep(0.05)
    assert registry.is_running("k")

    registry.schedule("k", 0.01, _recorder(calls, "second"))
    assert registry.is_pending("k")

    gate.set()
    await registry.flush()
    assert calls == [
        ("start", "first"),
        ("end", "first"),
        ("start", "second"),
        ("end", "second"),
    ] or calls == [
        ("start", "first"),
        ("start", "second"),
        ("end", "second"),
        ("end", "first"),
    ]
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_finished_task_keeps_newer_entry():
    """A task finishing must not remove an entry armed after it fired."""
    registry = DebounceRegistry()
    calls = []
    gate = asyncio.Event()
    registry.schedule("k", 0.01, _recorder(calls, "first", gate))
    await asyncio.sleep(0.05)

    registry.schedule("k", 10, _recorder(calls, "second"))
    gate.set()
    await asyncio.sleep(0.05)
    assert registry.is_pending("k")
    assert registry.cancel("k")
    assert "k" not in registry


@pytest.mark.asyncio
async def test_flush_fires_pending_immediately():
    registry = DebounceRegistry()
    calls = []
    registry.schedule("k", 60, _recorder(calls, "only"))
    await registry.flush()
    assert calls == [("start", "only"), ("end", "only")]


@pytest.mark.asyncio
async def test_cancel_pending():
    registry = DebounceRegistry()
    calls = []
    registry.schedule("k", 0.02, _recorder(calls, "never"))
    assert registry.cancel("k")
    assert not registry.cancel("k")
    await asyncio.sleep(0.06)
    assert calls == []


@pytest.mark.asyncio
async def test_errors_reach_callback():
    errors = []
    registry = DebounceRegistry(on_error=lambda key, exc: errors.append((key, exc)))

    async def boom():
        raise RuntimeError("upload failed")

    registry.schedule("k", 0.01, boom)
    await registry.flush()
    assert len(errors) == 1
    assert errors[0][0] == "k"
    assert isinstance(errors[0][1], RuntimeError)
    assert len(registry) == 0


def test_schedule_requires_running_loop():
    registry = DebounceRegistry()
    with pytest.raises(RuntimeError):
        registry.schedule("k", 0.01, _recorder([], "x"))
