"""
Filesystem-backed documentation manager.

Layout under the documentation root::

    docs/onboarding/
        README.md
        roles/<role>.md
        steps/<step-id>.md
        progress/<session-id>.md

Role documents are split into sections on ``## `` headings.
"""

from datetime import UTC, datetime
from pathlib import Path

import aiofiles
import structlog

from onboarding_flow.integrations.base import RoleDocumentation

log = structlog.get_logger(__name__)

DEFAULT_DOCS_DIR = Path("docs") / "onboarding"

_README = """# Onboarding

Role guides live in `roles/`, step guides in `steps/`.
"""


class FileSystemDocumentationManager:
    """Read onboarding documentation from markdown files.

    Args:
        project_path: Project root the documentation directory lives in
        docs_dir: Documentation directory relative to the project root
    """

    def __init__(self, project_path: str | Path = ".", docs_dir: str | Path = DEFAULT_DOCS_DIR) -> None:
        self.project_path = Path(project_path)
        self.docs_dir = Path(docs_dir)

    @property
    def root(self) -> Path:
        return self.project_path / self.docs_dir

    async def initialize_structure(self, project_path: Path | None = None) -> list[str]:
        if project_path is not None:
            self.project_path = Path(project_path)

        created: list[str] = []
        for directory in (self.root, self.root / "roles", self.root / "steps"):
            if not directory.exists():
                directory.mkdir(parents=True)
                created.append(str(directory))

        readme = self.root / "README.md"
        if not readme.exists():
            async with aiofiles.open(readme, "w") as f:
                await f.write(_README)
            created.append(str(readme))

        log.info("documentation_structure_initialized", root=str(self.root), created=len(created))
        return created

    async def get_role_specific_documentation(self, role: str) -> RoleDocumentation:
        path = self.root / "roles" / f"{role}.md"
        if not path.exists():
            log.debug("role_documentation_missing", role=role, path=str(path))
            return RoleDocumentation(role=role, sections=(), content="")

        async with aiofiles.open(path) as f:
            content = await f.read()
        sections = tuple(
            line[3:].strip() for line in content.splitlines() if line.startswith("## ")
        )
        return RoleDocumentation(role=role, sections=sections, content=content)

    async def get_step_documentation(self, step_id: str) -> str | None:
        path = self.root / "steps" / f"{step_id}.md"
        if not path.exists():
            return None
        async with aiofiles.open(path) as f:
            return await f.read()

    async def record_progress(self, session_id: str, step_id: str) -> None:
        progress_dir = self.root / "progress"
        progress_dir.mkdir(parents=True, exist_ok=True)
        path = progress_dir / f"{session_id}.md"
        async with aiofiles.open(path, "a") as f:
            await f.write(f"- [x] {step_id} ({datetime.now(UTC).isoformat()})\n")
        log.debug("documentation_progress_recorded", session_id=session_id, step_id=step_id)
