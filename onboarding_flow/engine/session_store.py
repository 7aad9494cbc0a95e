"""
Session store: explicit owner of live sessions, checkpoints and saved state.

There is no module-level store. Each :class:`SessionStore` is constructed by
its caller and passed to the orchestrator, so tests and embedding
applications can run any number of isolated stores side by side.

Checkpoints are kept in memory as frozen :class:`SessionSnapshot` values keyed
by ``(session_id, checkpoint_id)``. Saved state goes through a pluggable
:class:`~onboarding_flow.engine.persistence.StateBackend`.
"""

from collections.abc import Iterator

import structlog

from onboarding_flow.engine.persistence import InMemoryStateBackend, StateBackend
from onboarding_flow.exceptions import ErrorCode, SessionIdGenerationError
from onboarding_flow.models.domain import Session, SessionSnapshot

log = structlog.get_logger(__name__)


class SessionStore:
    """Ordered map of live sessions plus their checkpoints.

    Args:
        backend: Saved-state backend, in-memory by default
    """

    def __init__(self, backend: StateBackend | None = None) -> None:
        self.backend = backend or InMemoryStateBackend()
        self._sessions: dict[str, Session] = {}
        self._checkpoints: dict[tuple[str, str], SessionSnapshot] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self._sessions.values()))

    def add(self, session: Session) -> None:
        """Insert a new session.

        Raises:
            SessionIdGenerationError: If the id is already taken
        """
        if session.session_id in self._sessions:
            raise SessionIdGenerationError(
                f"Generated session id already exists: {session.session_id}",
                ErrorCode.SESSION_ID_COLLISION,
                {"session_id": session.session_id},
            )
        self._sessions[session.session_id] = session

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def replace(self, session: Session) -> None:
        """Install ``session`` as the live session for its id."""
        self._sessions[session.session_id] = session

    def sessions_for_user(self, user_id: str) -> list[Session]:
        return [s for s in self._sessions.values() if s.user_id == user_id]

    def put_checkpoint(self, checkpoint_id: str, snapshot: SessionSnapshot) -> None:
        key = (snapshot.session_id, checkpoint_id)
        if key in self._checkpoints:
            log.debug("checkpoint_overwritten", session_id=snapshot.session_id, checkpoint_id=checkpoint_id)
        self._checkpoints[key] = snapshot

    def get_checkpoint(self, session_id: str, checkpoint_id: str) -> SessionSnapshot | None:
        return self._checkpoints.get((session_id, checkpoint_id))

    def checkpoint_ids(self, session_id: str) -> list[str]:
        """Checkpoint ids of a session in creation order."""
        return [cid for sid, cid in self._checkpoints if sid == session_id]

    async def save_snapshot(self, session_id: str) -> SessionSnapshot | None:
        """Snapshot the live session into the backend. ``None`` if unknown."""
        session = self._sessions.get(session_id)
        if session is None:
            return None
        snapshot = session.snapshot()
        await self.backend.save(snapshot)
        return snapshot

    async def load_snapshot(self, session_id: str) -> SessionSnapshot | None:
        """Most recent saved snapshot from the backend.

        Raises:
            RecoveryError: If the backend holds unreadable data
        """
        return await self.backend.load(session_id)
