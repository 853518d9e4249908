"""
Tests for the entity stores.
"""

from unittest.mock import patch

import pytest
from pydantic import BaseModel

from qa_recorder.core.exceptions import StorageError
from qa_recorder.recording.models import RecordingSession, SessionStatus
from qa_recorder.storage.store import InMemoryStore, JsonFileStore
from qa_recorder.synthesis.models import TestCase


class Unsupported(BaseModel):
    id: str = "x"


class TestInMemoryStore:
    """Test cases for InMemoryStore."""

    @pytest.mark.asyncio
    async def test_save_and_list_by_owner(self, store, sample_session, make_test_case):
        """Entities are listed per kind and owner."""
        await store.save(sample_session)
        await store.save(make_test_case())
        await store.save(make_test_case(id="other", session_id="session_other"))

        sessions = await store.list("session", "alice")
        test_cases = await store.list("test_case", sample_session.id)

        assert [s.id for s in sessions] == [sample_session.id]
        assert [tc.id for tc in test_cases] == ["test_session_20240501-abc_0"]
        assert await store.list("session", "bob") == []

    @pytest.mark.asyncio
    async def test_save_replaces(self, store, sample_session):
        """Saving the same id again replaces the stored entity."""
        await store.save(sample_session)
        sample_session.status = SessionStatus.COMPLETED
        await store.save(sample_session)

        sessions = await store.list("session", "alice")
        assert len(sessions) == 1
        assert sessions[0].status == SessionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_stored_copies_are_isolated(self, store, sample_session):
        """Mutating the caller's object does not change the stored one."""
        await store.save(sample_session)
        sample_session.interactions.clear()

        stored = store.get("session", sample_session.id)
        assert len(stored.interactions) == 2

    @pytest.mark.asyncio
    async def test_unsupported_entity(self, store):
        """Only known entity types can be saved."""
        with pytest.raises(StorageError, match="Unsupported entity type"):
            await store.save(Unsupported())

    @pytest.mark.asyncio
    async def test_unknown_kind(self, store):
        """Listing an unknown kind fails."""
        with pytest.raises(StorageError, match="Unknown entity kind"):
            await store.list("widget", "alice")


class TestJsonFileStore:
    """Test cases for JsonFileStore."""

    @pytest.mark.asyncio
    async def test_round_trip(self, tmp_path, sample_session, make_test_case):
        """Entities are written as JSON files and read back intact."""
        store = JsonFileStore(tmp_path / "data")
        sample_session.test_cases = [make_test_case()]

        await store.save(sample_session)

        path = tmp_path / "data" / "session" / f"{sample_session.id}.json"
        assert path.exists()
        loaded = await store.list("session", "alice")
        assert loaded == [sample_session]
        assert isinstance(loaded[0].test_cases[0], TestCase)

    @pytest.mark.asyncio
    async def test_ids_are_sanitized(self, tmp_path, make_test_case):
        """Ids cannot escape the store directory."""
        store = JsonFileStore(tmp_path / "data")

        await store.save(make_test_case(id="../../evil"))

        files = list((tmp_path / "data" / "test_case").glob("*.json"))
        assert [f.name for f in files] == [".._.._evil.json"]

    @pytest.mark.asyncio
    async def test_list_empty(self, tmp_path):
        """Listing a kind that was never written returns nothing."""
        store = JsonFileStore(tmp_path / "data")

        assert await store.list("session", "alice") == []

    @pytest.mark.asyncio
    async def test_unreadable_files_skipped(self, tmp_path, sample_session, caplog):
        """Corrupt files are skipped with a warning."""
        store = JsonFileStore(tmp_path / "data")
        await store.save(sample_session)
        (tmp_path / "data" / "session" / "broken.json").write_text("{not json", encoding="utf-8")

        sessions = await store.list("session", "alice")

        assert [s.id for s in sessions] == [sample_session.id]
        assert "Skipping unreadable session file broken.json" in caplog.text

    @pytest.mark.asyncio
    async def test_undecodable_files_skipped(self, tmp_path, sample_session, caplog):
        """Files that are not UTF-8 are skipped like any other corrupt file."""
        store = JsonFileStore(tmp_path / "data")
        await store.save(sample_session)
        (tmp_path / "data" / "session" / "binary.json").write_bytes(b"\xff\xfe\x00bad")

        sessions = await store.list("session", "alice")

        assert [s.id for s in sessions] == [sample_session.id]
        assert "Skipping unreadable session file binary.json" in caplog.text

    @pytest.mark.asyncio
    async def test_write_failure(self, tmp_path, sample_session):
        """OS errors surface as StorageError."""
        store = JsonFileStore(tmp_path / "data")

        with patch.object(JsonFileStore, "_write", side_effect=OSError("disk full")):
            with pytest.raises(StorageError) as exc_info:
                await store.save(sample_session)

        assert exc_info.value.kind == "session"
        assert exc_info.value.entity_id == sample_session.id
        assert exc_info.value.operation == "save"

    @pytest.mark.asyncio
    async def test_unknown_kind(self, tmp_path):
        """Listing an unknown kind fails."""
        store = JsonFileStore(tmp_path / "data")

        with pytest.raises(StorageError):
            await store.list("widget", "alice")

    @pytest.mark.asyncio
    async def test_owner_filtering(self, tmp_path):
        """Only the owner's sessions are returned."""
        store = JsonFileStore(tmp_path / "data")
        for user in ("alice", "bob"):
            await store.save(
                RecordingSession(
                    id=f"session_{user}",
                    user_id=user,
                    url="https://example.com",
                    start_time="2024-05-01T12:00:00Z",
                )
            )

        sessions = await store.list("session", "bob")

        assert [s.id for s in sessions] == ["session_bob"]
