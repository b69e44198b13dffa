"""Tests for the SQLite entry table and directory storage."""

import pytest

from reverie.errors import RemoteError, StorageError
from reverie.local import LocalEntryTable, LocalStorage
from reverie.types import entry_from_row


@pytest.fixture
def db(tmp_path):
    return LocalEntryTable(tmp_path / "entries.db")


def make_row(user_id="u1", title="Day", **extra):
    row = {
        "user_id": user_id,
        "title": title,
        "content": "text",
        "tags": ["work"],
        "type": "text",
        "media_url": None,
        "summary": None,
        "wallpaper": "default",
    }
    row.update(extra)
    return row


class TestLocalEntryTable:

    @pytest.mark.asyncio
    async def test_insert_issues_id_and_timestamps(self, db):
        stored = await db.insert(make_row())

        assert stored["id"] == "1"
        assert stored["tags"] == ["work"]
        assert stored["created_at"]
        entry = entry_from_row(stored)
        assert entry.title == "Day"

    @pytest.mark.asyncio
    async def test_explicit_created_at_is_kept(self, db):
        stored = await db.insert(make_row(created_at="2025-04-10T08:00:00+00:00"))
        assert stored["created_at"] == "2025-04-10T08:00:00+00:00"

    @pytest.mark.asyncio
    async def test_select_scoped_and_newest_first(self, db):
        await db.insert(make_row(title="old", created_at="2025-04-01T08:00:00+00:00"))
        await db.insert(make_row(title="new", created_at="2025-04-09T08:00:00+00:00"))
        await db.insert(make_row(user_id="u2", title="theirs"))

        rows = await db.select("u1")
        assert [r["title"] for r in rows] == ["new", "old"]

    @pytest.mark.asyncio
    async def test_update(self, db):
        stored = await db.insert(make_row())

        updated = await db.update(stored["id"], "u1", {"title": "Edited", "tags": ["a", "b"]})

        assert updated["title"] == "Edited"
        assert updated["tags"] == ["a", "b"]
        assert updated["created_at"] == stored["created_at"]

    @pytest.mark.asyncio
    async def test_update_other_owner(self, db):
        stored = await db.insert(make_row())
        assert await db.update(stored["id"], "u2", {"title": "x"}) is None
        assert (await db.select("u1"))[0]["title"] == "Day"

    @pytest.mark.asyncio
    async def test_update_immutable_column(self, db):
        stored = await db.insert(make_row())
        with pytest.raises(RemoteError):
            await db.update(stored["id"], "u1", {"user_id": "u2"})

    @pytest.mark.asyncio
    async def test_delete(self, db):
        stored = await db.insert(make_row())

        assert not await db.delete(stored["id"], "u2")
        assert await db.delete(stored["id"], "u1")
        assert not await db.delete(stored["id"], "u1")
        assert await db.select("u1") == []

    @pytest.mark.asyncio
    async def test_persists_across_connections(self, tmp_path):
        first = LocalEntryTable(tmp_path / "entries.db")
        await first.insert(make_row())
        await first.close()

        second = LocalEntryTable(tmp_path / "entries.db")
        assert len(await second.select("u1")) == 1
        await second.close()


class TestLocalStorage:

    @pytest.mark.asyncio
    async def test_create_only(self, tmp_path):
        storage = LocalStorage(tmp_path / "media")
        await storage.upload("u1/audio_1.webm", b"one", content_type="audio/webm")

        with pytest.raises(StorageError, match="already exists"):
            await storage.upload("u1/audio_1.webm", b"two", content_type="audio/webm")
        assert (tmp_path / "media" / "u1" / "audio_1.webm").read_bytes() == b"one"

    @pytest.mark.asyncio
    async def test_public_url(self, tmp_path):
        storage = LocalStorage(tmp_path / "media")
        await storage.upload("u1/video_1.mp4", b"v", content_type="video/mp4")

        url = storage.public_url("u1/video_1.mp4")
        assert url.startswith("file://")
        assert url.endswith("/media/u1/video_1.mp4")

    @pytest.mark.asyncio
    async def test_key_outside_root(self, tmp_path):
        storage = LocalStorage(tmp_path / "media")
        with pytest.raises(StorageError):
            await storage.upload("../escape.webm", b"x", content_type="audio/webm")
