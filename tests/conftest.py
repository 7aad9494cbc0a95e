"""Pytest configuration and shared fixtures."""

import itertools
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from onboarding_flow.config.settings import OnboardingSettings
from onboarding_flow.engine.orchestrator import OnboardingOrchestrator
from onboarding_flow.engine.persistence import FileStateBackend
from onboarding_flow.engine.session_store import SessionStore
from onboarding_flow.integrations.base import GitMonitoringInfo, RoleDocumentation


class FakeClock:
    """Controllable clock for circuit breaker cooldowns."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeDocumentationManager:
    """In-memory documentation collaborator that can be told to fail."""

    def __init__(self) -> None:
        self.fail = False
        self.steps: dict[str, str] = {}
        self.progress: list[tuple[str, str]] = []
        self.initialized = 0

    def _check(self) -> None:
        if self.fail:
            raise OSError("documentation store offline")

    async def initialize_structure(self, project_path: Path | None = None) -> list[str]:
        self._check()
        self.initialized += 1
        return ["docs/onboarding"]

    async def get_role_specific_documentation(self, role: str) -> RoleDocumentation:
        self._check()
        return RoleDocumentation(role=role, sections=("Overview",), content="## Overview\n")

    async def get_step_documentation(self, step_id: str) -> str | None:
        self._check()
        return self.steps.get(step_id)

    async def record_progress(self, session_id: str, step_id: str) -> None:
        self._check()
        self.progress.append((session_id, step_id))


class FakeVersionControl:
    """Version-control collaborator returning a fixed branch."""

    def __init__(self) -> None:
        self.fail = False

    async def initialize_git_monitoring(self) -> GitMonitoringInfo:
        if self.fail:
            raise RuntimeError("git unavailable")
        return GitMonitoringInfo(is_git_repository=True, branch="main", commit="abc123")


@pytest.fixture
def settings(tmp_path: Path) -> OnboardingSettings:
    """Settings with memory persistence and a fixed platform."""
    return OnboardingSettings(
        persistence={"backend": "memory", "state_directory": str(tmp_path / "state")},
        session={"default_platform": "linux"},
    )


@pytest.fixture
def store() -> SessionStore:
    """Empty in-memory session store."""
    return SessionStore()


@pytest.fixture
def orchestrator(store: SessionStore, settings: OnboardingSettings) -> OnboardingOrchestrator:
    """Orchestrator with predictable session ids (session-1, session-2, ...)."""
    counter = itertools.count(1)
    return OnboardingOrchestrator(store, settings=settings, id_factory=lambda: f"session-{next(counter)}")


@pytest.fixture
def file_backend(tmp_path: Path) -> FileStateBackend:
    """File state backend in a temp directory."""
    return FileStateBackend(tmp_path / "state")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def documentation() -> FakeDocumentationManager:
    return FakeDocumentationManager()


@pytest.fixture
def version_control() -> FakeVersionControl:
    return FakeVersionControl()
