"""Collaborator protocols used by the orchestrator and resilience coordinator."""

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


@dataclass(frozen=True)
class RoleDocumentation:
    role: str
    sections: tuple[str, ...]
    content: str


@dataclass(frozen=True)
class GitMonitoringInfo:
    is_git_repository: bool
    branch: str | None = None
    commit: str | None = None


class DocumentationManager(Protocol):
    """Source of onboarding documentation."""

    async def initialize_structure(self, project_path: Path | None = None) -> list[str]:
        """Create the documentation layout if missing.

        Returns:
            Paths that were created
        """
        ...

    async def get_role_specific_documentation(self, role: str) -> RoleDocumentation:
        """Documentation for one developer role."""
        ...

    async def get_step_documentation(self, step_id: str) -> str | None:
        """Long-form documentation for a step, or None if there is none."""
        ...

    async def record_progress(self, session_id: str, step_id: str) -> None:
        """Note a completed step in the session's progress log."""
        ...


class VersionControlIntegration(Protocol):
    """Read-only view of the project's version control state."""

    async def initialize_git_monitoring(self) -> GitMonitoringInfo:
        """Inspect the repository the project lives in."""
        ...
