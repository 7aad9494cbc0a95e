"""Tests for saved-state backends and the session store."""

import json

import pytest

from onboarding_flow.config.settings import PersistenceConfig
from onboarding_flow.engine.persistence import (
    FileStateBackend,
    InMemoryStateBackend,
    create_state_backend,
)
from onboarding_flow.engine.session_store import SessionStore
from onboarding_flow.enums import DeveloperRole, UserType
from onboarding_flow.exceptions import ErrorCode, RecoveryError, SessionIdGenerationError
from onboarding_flow.models.domain import Session, SessionProgress


def make_session(session_id: str = "s-1", user_id: str = "u-1") -> Session:
    return Session(
        session_id=session_id,
        user_id=user_id,
        user_type=UserType.HUMAN,
        role=DeveloperRole.BACKEND,
        current_step="repository-clone",
        completed_steps=["environment-setup"],
        progress=SessionProgress(total_steps=10, completed_count=1, estimated_time_remaining=120),
    )


class TestFileStateBackend:
    """Tests for FileStateBackend."""

    @pytest.mark.asyncio
    async def test_save_and_load(self, file_backend):
        """A saved snapshot loads back equal."""
        snapshot = make_session().snapshot()

        await file_backend.save(snapshot)
        loaded = await file_backend.load("s-1")

        assert loaded == snapshot
        assert loaded.progress.percent_complete == 10

    @pytest.mark.asyncio
    async def test_file_layout(self, file_backend):
        """One JSON file per session; no temporary file is left behind."""
        await file_backend.save(make_session().snapshot())

        files = sorted(p.name for p in file_backend.state_dir.iterdir())
        assert files == ["s-1.json"]
        data = json.loads((file_backend.state_dir / "s-1.json").read_text())
        assert data["completed_steps"] == ["environment-setup"]
        assert data["role"] == "backend"

    @pytest.mark.asyncio
    async def test_save_replaces(self, file_backend):
        """Saving again overwrites the previous snapshot."""
        session = make_session()
        await file_backend.save(session.snapshot())
        session.completed_steps.append("repository-clone")
        await file_backend.save(session.snapshot())

        loaded = await file_backend.load("s-1")
        assert loaded.completed_steps == ("environment-setup", "repository-clone")

    @pytest.mark.asyncio
    async def test_missing_and_corrupt(self, file_backend):
        """Missing state loads as None; corrupt state raises RecoveryError."""
        assert await file_backend.load("nobody") is None

        (file_backend.state_dir / "broken.json").write_text("{not json")
        with pytest.raises(RecoveryError) as exc_info:
            await file_backend.load("broken")
        assert exc_info.value.code == ErrorCode.SESSION_RECOVERY_FAILED

    @pytest.mark.asyncio
    async def test_undecodable_state(self, file_backend):
        """State files that are not valid UTF-8 raise RecoveryError."""
        (file_backend.state_dir / "garbled.json").write_bytes(b"\xff\xfe\x00garbage")
        with pytest.raises(RecoveryError) as exc_info:
            await file_backend.load("garbled")
        assert exc_info.value.code == ErrorCode.SESSION_RECOVERY_FAILED
        assert exc_info.value.context["session_id"] == "garbled"

    @pytest.mark.asyncio
    async def test_delete_and_list(self, file_backend):
        """Deleted sessions disappear from the listing."""
        await file_backend.save(make_session("b").snapshot())
        await file_backend.save(make_session("a").snapshot())

        assert await file_backend.list_session_ids() == ["a", "b"]
        assert await file_backend.delete("a")
        assert not await file_backend.delete("a")
        assert await file_backend.list_session_ids() == ["b"]


class TestInMemoryStateBackend:
    """Tests for InMemoryStateBackend."""

    @pytest.mark.asyncio
    async def test_round_trip(self):
        """Snapshots are stored as-is."""
        backend = InMemoryStateBackend()
        snapshot = make_session().snapshot()
        await backend.save(snapshot)
        assert await backend.load("s-1") is snapshot
        assert await backend.list_session_ids() == ["s-1"]
        assert await backend.delete("s-1")
        assert await backend.load("s-1") is None


class TestCreateStateBackend:
    """Tests for create_state_backend()."""

    def test_file(self, tmp_path):
        """The file backend uses the configured directory."""
        backend = create_state_backend(PersistenceConfig(backend="file", state_directory=str(tmp_path / "s")))
        assert isinstance(backend, FileStateBackend)
        assert backend.state_dir == tmp_path / "s"

    def test_memory(self):
        """The memory backend needs no directory."""
        assert isinstance(create_state_backend(PersistenceConfig(backend="memory")), InMemoryStateBackend)


class TestSessionStore:
    """Tests for SessionStore."""

    def test_add_and_get(self):
        """Sessions are kept in insertion order."""
        store = SessionStore()
        store.add(make_session("b"))
        store.add(make_session("a"))

        assert len(store) == 2
        assert "a" in store
        assert [s.session_id for s in store] == ["b", "a"]
        assert store.get("missing") is None

    def test_collision(self):
        """Adding an existing id raises."""
        store = SessionStore()
        store.add(make_session())
        with pytest.raises(SessionIdGenerationError):
            store.add(make_session())

    def test_sessions_for_user(self):
        """Sessions are looked up by user."""
        store = SessionStore()
        store.add(make_session("s-1", "u-1"))
        store.add(make_session("s-2", "u-2"))
        assert [s.session_id for s in store.sessions_for_user("u-2")] == ["s-2"]

    def test_stores_are_isolated(self):
        """Two stores never share sessions."""
        first, second = SessionStore(), SessionStore()
        first.add(make_session())
        assert "s-1" not in second

    def test_checkpoints_are_values(self):
        """Checkpoints do not follow later changes to the live session."""
        store = SessionStore()
        session = make_session()
        store.add(session)
        store.put_checkpoint("cp", session.snapshot())

        session.completed_steps.append("repository-clone")

        assert store.get_checkpoint("s-1", "cp").completed_steps == ("environment-setup",)
        assert store.get_checkpoint("s-2", "cp") is None
        assert store.checkpoint_ids("s-1") == ["cp"]

    @pytest.mark.asyncio
    async def test_save_and_load_snapshot(self, file_backend):
        """Saved state goes through the backend."""
        store = SessionStore(file_backend)
        store.add(make_session())

        saved = await store.save_snapshot("s-1")

        assert (await store.load_snapshot("s-1")) == saved
        assert await store.save_snapshot("missing") is None
