"""
Saved-state backends for onboarding sessions.

``save_session_state`` keeps exactly one snapshot per session: saving again
replaces it. Two backends are provided:

- :class:`InMemoryStateBackend` keeps frozen snapshots in a dict. Snapshots
  are immutable values, so no copying or serialization is involved.
- :class:`FileStateBackend` writes one JSON document per session,
  ``{session_id}.json``, using a temporary file and an atomic rename so a
  crash mid-write never leaves a truncated state file behind.

File Structure::

    {
        "session_id": "0b6f...",
        "user_type": "human",
        "role": "backend",
        "completed_steps": ["environment-setup", "repository-clone"],
        "progress": {"total_steps": 10, "completed_count": 2, ...},
        ...
    }
"""

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path

import aiofiles
import structlog
from pydantic import ValidationError

from onboarding_flow.config.settings import PersistenceConfig
from onboarding_flow.exceptions import ErrorCode, RecoveryError
from onboarding_flow.models.domain import SessionSnapshot

log = structlog.get_logger(__name__)


class StateBackend(ABC):
    """Storage for the most recent saved snapshot of each session."""

    @abstractmethod
    async def save(self, snapshot: SessionSnapshot) -> None:
        """Store ``snapshot``, replacing any earlier one for the same session."""

    @abstractmethod
    async def load(self, session_id: str) -> SessionSnapshot | None:
        """Most recent snapshot, or ``None`` if nothing was saved.

        Raises:
            RecoveryError: If saved data exists but cannot be read
        """

    @abstractmethod
    async def delete(self, session_id: str) -> bool:
        """Forget the saved snapshot. Returns False if there was none."""

    @abstractmethod
    async def list_session_ids(self) -> list[str]:
        """Ids of every session with saved state, sorted."""


class InMemoryStateBackend(StateBackend):
    """Keep saved snapshots in process memory."""

    def __init__(self) -> None:
        self._snapshots: dict[str, SessionSnapshot] = {}

    async def save(self, snapshot: SessionSnapshot) -> None:
        self._snapshots[snapshot.session_id] = snapshot

    async def load(self, session_id: str) -> SessionSnapshot | None:
        return self._snapshots.get(session_id)

    async def delete(self, session_id: str) -> bool:
        return self._snapshots.pop(session_id, None) is not None

    async def list_session_ids(self) -> list[str]:
        return sorted(self._snapshots)


class FileStateBackend(StateBackend):
    """Persist saved snapshots as JSON files with atomic writes.

    Attributes:
        state_dir: Directory where state files are stored.

    Thread Safety:
        Designed for single-threaded asyncio usage. Writes for one session
        are serialized by a per-session lock; different sessions write
        concurrently.
    """

    def __init__(self, state_dir: str | Path) -> None:
        """Initialize the backend, creating ``state_dir`` if needed."""
        self.state_dir = Path(state_dir)
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self._locks: dict[str, asyncio.Lock] = {}

    def _get_lock(self, session_id: str) -> asyncio.Lock:
        if session_id not in self._locks:
            self._locks[session_id] = asyncio.Lock()
        return self._locks[session_id]

    def _get_state_path(self, session_id: str) -> Path:
        return self.state_dir / f"{session_id}.json"

    async def save(self, snapshot: SessionSnapshot) -> None:
        path = self._get_state_path(snapshot.session_id)
        async with self._get_lock(snapshot.session_id):
            tmp_path = path.with_suffix(".tmp")
            async with aiofiles.open(tmp_path, "w") as f:
                await f.write(snapshot.model_dump_json(indent=2))
            # Atomic rename - safe on POSIX when same filesystem
            tmp_path.replace(path)
        log.debug("session_state_written", session_id=snapshot.session_id, path=str(path))

    async def load(self, session_id: str) -> SessionSnapshot | None:
        path = self._get_state_path(session_id)
        if not path.exists():
            return None

        async with self._get_lock(session_id):
            try:
                async with aiofiles.open(path) as f:
                    content = await f.read()
            except OSError as e:
                raise RecoveryError(
                    f"Cannot read saved state for session {session_id}",
                    ErrorCode.SESSION_RECOVERY_FAILED,
                    {"session_id": session_id, "path": str(path)},
                ) from e
            except UnicodeDecodeError as e:
                log.warning("invalid_session_state_file", session_id=session_id, path=str(path), error=str(e))
                raise RecoveryError(
                    f"Saved state for session {session_id} is corrupt",
                    ErrorCode.SESSION_RECOVERY_FAILED,
                    {"session_id": session_id, "path": str(path)},
                ) from e

        try:
            return SessionSnapshot.model_validate_json(content)
        except ValidationError as e:
            log.warning("invalid_session_state_file", session_id=session_id, path=str(path), error=str(e))
            raise RecoveryError(
                f"Saved state for session {session_id} is corrupt",
                ErrorCode.SESSION_RECOVERY_FAILED,
                {"session_id": session_id, "path": str(path)},
            ) from e

    async def delete(self, session_id: str) -> bool:
        path = self._get_state_path(session_id)
        async with self._get_lock(session_id):
            if not path.exists():
                return False
            path.unlink()
        log.info("session_state_deleted", session_id=session_id)
        return True

    async def list_session_ids(self) -> list[str]:
        return sorted(path.stem for path in self.state_dir.glob("*.json"))


def create_state_backend(config: PersistenceConfig) -> StateBackend:
    """Build the backend named by ``config.backend``."""
    if config.backend == "file":
        return FileStateBackend(config.state_directory)
    return InMemoryStateBackend()
