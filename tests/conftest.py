"""Shared fixtures for the storyweave core tests."""

from __future__ import annotations

from typing import Any, Callable

import pytest

from storyweave.media import LocalMediaStore
from storyweave.persistence import LocalPersistence, SettingsStore
from storyweave.session import StorySession
from storyweave.stores import MemoryBlobStore, MemoryKeyValueStore


class FakeHandle:
    def __init__(self, when: float, callback: Callable[[], Any]) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Deterministic stand-in for loop.call_later / loop.time."""

    def __init__(self) -> None:
        self.now = 0.0
        self.handles: list[FakeHandle] = []

    def __call__(self, delay: float, callback: Callable[[], Any]) -> FakeHandle:
        handle = FakeHandle(self.now + delay, callback)
        self.handles.append(handle)
        return handle

    def clock(self) -> float:
        return self.now

    @property
    def pending(self) -> list[FakeHandle]:
        return [h for h in self.handles if not h.cancelled and not h.fired]

    def advance(self, seconds: float) -> None:
        """Move time forward, firing due callbacks in deadline order."""
        target = self.now + seconds
        while True:
            due = [h for h in self.pending if h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self.now = handle.when
            handle.fired = True
            handle.callback()
        self.now = target


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def blobs() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
def media_store(blobs) -> LocalMediaStore:
    return LocalMediaStore(blobs)


@pytest.fixture
def make_session(kv, media_store, scheduler):
    """Build a local-variant session on in-memory stores and the fake scheduler."""
    notes = []

    def _make(**overrides) -> StorySession:
        options = dict(
            persistence=LocalPersistence(kv),
            settings_store=SettingsStore(kv),
            media_store=media_store,
            scheduler=scheduler,
            clock=scheduler.clock,
            notify=notes.append,
        )
        options.update(overrides)
        return StorySession(**options)

    return _make
