"""
Shared pytest fixtures for reverie tests.

Provides in-memory backends and fake capture devices so tests never
touch the network, a database server or real hardware.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest

from reverie.errors import StorageError
from reverie.store import EntryStore
from reverie.types import Principal, format_timestamp


# -----------------------------------------------------------------------------
# Entry table
# -----------------------------------------------------------------------------

BASE_TIME = datetime(2025, 4, 10, 12, 0, tzinfo=timezone.utc)


class MemoryEntryTable:
    """
    In-memory EntryTable with sequential ids.

    Set ``fail`` to an exception to make every call raise it, or
    ``hang`` to make every call block (for timeout tests).
    """

    def __init__(self, next_id: int = 1):
        self.rows: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple] = []
        self.fail: Optional[Exception] = None
        self.hang = False
        self._next_id = next_id
        self._ticks = 0

    def _stamp(self) -> str:
        self._ticks += 1
        return format_timestamp(BASE_TIME + timedelta(minutes=self._ticks))

    async def _enter(self, op: str, *args) -> None:
        self.calls.append((op, *args))
        if self.hang:
            await asyncio.sleep(3600)
        if self.fail is not None:
            raise self.fail

    def seed(self, user_id: str, title: str, created_at: datetime, **fields) -> dict[str, Any]:
        """Add a row directly, bypassing call tracking."""
        id = str(self._next_id)
        self._next_id += 1
        row = {
            "id": id,
            "user_id": user_id,
            "title": title,
            "content": "",
            "tags": [],
            "type": "text",
            "media_url": None,
            "summary": None,
            "wallpaper": "default",
            "created_at": format_timestamp(created_at),
            "updated_at": format_timestamp(created_at),
        }
        row.update(fields)
        self.rows[id] = row
        return row

    async def select(self, user_id: str) -> list[dict[str, Any]]:
        await self._enter("select", user_id)
        rows = [dict(r) for r in self.rows.values() if r["user_id"] == user_id]
        rows.sort(key=lambda r: r["created_at"], reverse=True)
        return rows

    async def insert(self, row: dict[str, Any]) -> dict[str, Any]:
        await self._enter("insert", dict(row))
        id = str(self._next_id)
        self._next_id += 1
        now = self._stamp()
        stored = {**row, "id": id, "updated_at": now}
        stored.setdefault("created_at", now)
        self.rows[id] = stored
        return dict(stored)

    async def update(self, id: str, user_id: str, changes: dict[str, Any]):
        await self._enter("update", id, user_id, dict(changes))
        row = self.rows.get(id)
        if row is None or row["user_id"] != user_id:
            return None
        row.update(changes)
        return dict(row)

    async def delete(self, id: str, user_id: str) -> bool:
        await self._enter("delete", id, user_id)
        row = self.rows.get(id)
        if row is None or row["user_id"] != user_id:
            return False
        del self.rows[id]
        return True

    async def close(self) -> None:
        pass

    def ops(self) -> list[str]:
        return [c[0] for c in self.calls]


# -----------------------------------------------------------------------------
# Object storage
# -----------------------------------------------------------------------------

class MemoryStorage:
    """In-memory create-only ObjectStorage."""

    def __init__(self):
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.uploads: list[tuple[str, str, bool]] = []
        self.fail: Optional[Exception] = None
        self.hang = False

    async def upload(self, key: str, data: bytes, *, content_type: str, upsert: bool = False) -> None:
        self.uploads.append((key, content_type, upsert))
        if self.hang:
            await asyncio.sleep(3600)
        if self.fail is not None:
            raise self.fail
        if key in self.objects and not upsert:
            raise StorageError(f"Object already exists: {key}")
        self.objects[key] = (data, content_type)

    def public_url(self, key: str) -> str:
        return f"https://media.test/journal-media/{key}"

    async def close(self) -> None:
        pass


# -----------------------------------------------------------------------------
# Capture devices
# -----------------------------------------------------------------------------

class FakeTrack:
    def __init__(self, kind: str):
        self.kind = kind
        self.stop_calls = 0

    def stop(self) -> None:
        self.stop_calls += 1


class FakeStream:
    """
    Yields the configured chunks, then waits until its tracks stop.
    Chunks still queued when the tracks stop are never delivered.

    With ``fail_with`` set, raises that exception after the chunks.
    """

    def __init__(
        self,
        chunks=(),
        *,
        mime_type: str = "audio/webm;codecs=opus",
        video: bool = False,
        fail_with: Optional[Exception] = None,
    ):
        self._chunks = list(chunks)
        self._mime_type = mime_type
        self._tracks = [FakeTrack("audio")]
        if video:
            self._tracks.append(FakeTrack("video"))
        self.fail_with = fail_with
        self.time_slices: list[float] = []

    @property
    def mime_type(self) -> str:
        return self._mime_type

    @property
    def tracks(self) -> list[FakeTrack]:
        return self._tracks

    @property
    def stopped(self) -> bool:
        return all(t.stop_calls for t in self._tracks)

    async def chunks(self, time_slice: float):
        self.time_slices.append(time_slice)
        for chunk in self._chunks:
            await asyncio.sleep(0)
            if self.stopped:
                return
            yield chunk
        if self.fail_with is not None:
            raise self.fail_with
        while not self.stopped:
            await asyncio.sleep(0.001)


class FakeDevices:
    """MediaDevices that hands out one prepared stream, or raises."""

    def __init__(self, stream: Optional[FakeStream] = None, error: Optional[Exception] = None):
        self.stream = stream if stream is not None else FakeStream()
        self.error = error
        self.requests: list[tuple[bool, bool]] = []

    async def get_user_media(self, *, audio: bool, video: bool) -> FakeStream:
        self.requests.append((audio, video))
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return self.stream


class FakePortAudio:
    def __init__(self):
        self.terminated = 0

    def terminate(self):
        self.terminated += 1


class FakeInput:
    """PortAudio input stream whose next pending frames are always available."""

    def __init__(self, pending):
        self.pending = list(pending)
        self.closed = False

    def get_read_available(self):
        return len(self.pending[0]) if self.pending else 0

    def read(self, n, exception_on_overflow=True):
        return self.pending.pop(0)

    def stop_stream(self):
        pass

    def close(self):
        self.closed = True


async def let_recorder_run(seconds: float = 0.02) -> None:
    """Give a recorder's pump task time to deliver queued chunks."""
    await asyncio.sleep(seconds)


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def table():
    return MemoryEntryTable()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def principal():
    return Principal(id="u1", email="p@example.com")


@pytest.fixture
def errors():
    """Collects errors reported through a store's on_error notifier."""
    return []


@pytest.fixture
def store(table, errors):
    return EntryStore(table, on_error=errors.append, timeout=1.0)
