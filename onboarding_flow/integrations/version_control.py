"""Git integration backed by the ``git`` executable."""

from pathlib import Path

import structlog

from onboarding_flow.exceptions import CollaboratorError, ErrorCode
from onboarding_flow.integrations.base import GitMonitoringInfo
from onboarding_flow.utils.async_subprocess import run_command

log = structlog.get_logger(__name__)

GIT_TIMEOUT_SECONDS = 10.0


class GitVersionControl:
    """Inspect a git working tree.

    Args:
        repo_path: Directory expected to be inside a git working tree
    """

    name = "version_control"

    def __init__(self, repo_path: str | Path = ".") -> None:
        self.repo_path = Path(repo_path)

    async def _git(self, *args: str) -> tuple[str, int]:
        try:
            stdout, _, code = await run_command(
                "git", *args, cwd=self.repo_path, check=False, timeout=GIT_TIMEOUT_SECONDS
            )
        except FileNotFoundError as e:
            raise CollaboratorError(
                f"Cannot run git in {self.repo_path}", self.name, ErrorCode.COLLABORATOR_FAILED
            ) from e
        return stdout.strip(), code

    async def initialize_git_monitoring(self) -> GitMonitoringInfo:
        inside, code = await self._git("rev-parse", "--is-inside-work-tree")
        if code != 0 or inside != "true":
            log.info("git_repository_not_found", path=str(self.repo_path))
            return GitMonitoringInfo(is_git_repository=False)

        branch, _ = await self._git("rev-parse", "--abbrev-ref", "HEAD")
        commit, commit_code = await self._git("rev-parse", "HEAD")
        info = GitMonitoringInfo(
            is_git_repository=True,
            branch=branch or None,
            # A fresh repository has no HEAD commit yet
            commit=commit if commit_code == 0 else None,
        )
        log.info("git_monitoring_initialized", branch=info.branch, commit=info.commit)
        return info
