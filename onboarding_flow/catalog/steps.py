"""
Step catalog generation.

:func:`generate` turns a (user type, role, platform) request into an ordered
list of :class:`StepDefinition`. Output is deterministic and always a valid
dependency graph listed in topological order, so the first step of every
catalog has no dependencies and is the session's initial step.

Catalog sizes: agent 3, human without role 5, frontend 8, backend 10,
devops 12, fullstack 15. The fullstack catalog contains every frontend and
backend step id.
"""

from collections.abc import Sequence

import structlog

from onboarding_flow.catalog.platforms import help_for, instructions_for
from onboarding_flow.catalog.templates import STEP_TEMPLATES
from onboarding_flow.enums import DeveloperRole, UserType
from onboarding_flow.exceptions import CatalogError, ErrorCode
from onboarding_flow.models.domain import StepDefinition

log = structlog.get_logger(__name__)

Layout = tuple[tuple[str, tuple[str, ...]], ...]

_COMMON: Layout = (
    ("environment-setup", ()),
    ("repository-clone", ("environment-setup",)),
    ("dependency-install", ("repository-clone",)),
)

AGENT_LAYOUT: Layout = (
    ("context-loading", ()),
    ("schema-validation", ("context-loading",)),
    ("integration-test", ("schema-validation",)),
)

UNASSIGNED_LAYOUT: Layout = (
    ("role-selection", ()),
    ("environment-setup", ("role-selection",)),
    ("repository-clone", ("environment-setup",)),
    ("dependency-install", ("repository-clone",)),
    ("documentation-review", ("dependency-install",)),
)

ROLE_LAYOUTS: dict[DeveloperRole, Layout] = {
    DeveloperRole.FRONTEND: _COMMON
    + (
        ("dev-server-start", ("dependency-install",)),
        ("frontend-build-verification", ("dev-server-start",)),
        ("lint-check", ("dependency-install",)),
        ("first-change", ("frontend-build-verification", "lint-check")),
        ("documentation-review", ("first-change",)),
    ),
    DeveloperRole.BACKEND: _COMMON
    + (
        ("environment-config", ("dependency-install",)),
        ("database-setup", ("dependency-install",)),
        ("backend-start", ("database-setup", "environment-config")),
        ("api-test", ("backend-start",)),
        ("lint-check", ("dependency-install",)),
        ("first-change", ("api-test", "lint-check")),
        ("documentation-review", ("first-change",)),
    ),
    DeveloperRole.DEVOPS: _COMMON
    + (
        ("docker-setup", ("dependency-install",)),
        ("infrastructure-setup", ("docker-setup",)),
        ("kubernetes-deployment", ("infrastructure-setup",)),
        ("ci-cd-setup", ("docker-setup",)),
        ("monitoring-setup", ("kubernetes-deployment",)),
        ("security-setup", ("infrastructure-setup",)),
        ("backup-setup", ("infrastructure-setup",)),
        ("deployment", ("kubernetes-deployment", "ci-cd-setup")),
        ("documentation-review", ("deployment", "monitoring-setup", "security-setup", "backup-setup")),
    ),
    DeveloperRole.FULLSTACK: _COMMON
    + (
        ("dev-server-start", ("dependency-install",)),
        ("frontend-build-verification", ("dev-server-start",)),
        ("environment-config", ("dependency-install",)),
        ("database-setup", ("dependency-install",)),
        ("backend-start", ("database-setup", "environment-config")),
        ("api-test", ("backend-start",)),
        ("lint-check", ("dependency-install",)),
        ("integration-test", ("frontend-build-verification", "api-test")),
        ("deployment-setup", ("integration-test",)),
        ("monitoring-setup", ("deployment-setup",)),
        ("first-change", ("integration-test", "lint-check")),
        ("documentation-review", ("first-change",)),
    ),
}

# Must agree with the first step of each layout (checked in tests).
INITIAL_STEPS: dict[tuple[UserType, DeveloperRole | None], str] = {
    (UserType.AGENT, None): "context-loading",
    (UserType.HUMAN, None): "role-selection",
    (UserType.HUMAN, DeveloperRole.FRONTEND): "environment-setup",
    (UserType.HUMAN, DeveloperRole.BACKEND): "environment-setup",
    (UserType.HUMAN, DeveloperRole.DEVOPS): "environment-setup",
    (UserType.HUMAN, DeveloperRole.FULLSTACK): "environment-setup",
}

EXPECTED_MINUTES: dict[tuple[UserType, DeveloperRole | None], int] = {
    (UserType.AGENT, None): 2,
    (UserType.HUMAN, None): 30,
    (UserType.HUMAN, DeveloperRole.FRONTEND): 45,
    (UserType.HUMAN, DeveloperRole.BACKEND): 60,
    (UserType.HUMAN, DeveloperRole.DEVOPS): 90,
    (UserType.HUMAN, DeveloperRole.FULLSTACK): 120,
}


def _key(user_type: UserType, role: DeveloperRole | None) -> tuple[UserType, DeveloperRole | None]:
    # Agents follow one catalog regardless of any declared role
    return (user_type, None) if user_type == UserType.AGENT else (user_type, role)


def layout_for(user_type: UserType, role: DeveloperRole | None) -> Layout:
    if user_type == UserType.AGENT:
        return AGENT_LAYOUT
    if role is None:
        return UNASSIGNED_LAYOUT
    return ROLE_LAYOUTS[role]


def initial_step_for(user_type: UserType, role: DeveloperRole | None) -> str:
    """Initial step for a new session of this user type and role."""
    return INITIAL_STEPS[_key(user_type, role)]


def expected_time_for(user_type: UserType, role: DeveloperRole | None) -> int:
    """Expected onboarding duration in minutes, used for efficiency metrics."""
    return EXPECTED_MINUTES[_key(user_type, role)]


def generate(
    role: DeveloperRole | None,
    platform: str,
    user_type: UserType = UserType.HUMAN,
) -> list[StepDefinition]:
    """Generate the ordered step catalog for a role on a platform.

    Args:
        role: Developer role, ``None`` for humans who have not picked one
        platform: ``darwin``, ``linux`` or ``win32``; others fall back to linux
        user_type: AGENT gets the agent catalog whatever the role

    Returns:
        Steps in topological order with platform instructions and role help
        resolved.

    Raises:
        CatalogError: If the layout is not a valid dependency graph
    """
    layout = layout_for(user_type, role)
    role_name = role.value if role is not None else None
    steps = []
    for step_id, dependencies in layout:
        template = STEP_TEMPLATES[step_id]
        steps.append(
            StepDefinition(
                id=step_id,
                title=template.title,
                description=template.description,
                dependencies=frozenset(dependencies),
                estimated_time=template.estimated_time,
                validation_criteria=template.validation_criteria,
                instructions=template.instructions,
                code_examples=template.code_examples,
                categories=template.categories,
                platform_instructions=instructions_for(step_id, platform),
                contextual_help=help_for(step_id, role_name),
                validator=template.validator,
            )
        )

    validate_catalog(steps)
    return steps


def validate_catalog(steps: Sequence[StepDefinition]) -> None:
    """Check that steps form a DAG listed in topological order.

    Raises:
        CatalogError: On duplicate ids, unknown dependencies, cycles, or a
            dependency listed after its dependent
    """
    by_id: dict[str, StepDefinition] = {}
    for step in steps:
        if step.id in by_id:
            raise CatalogError(f"Duplicate step id in catalog: {step.id}", ErrorCode.INVALID_CATALOG)
        by_id[step.id] = step

    for step in steps:
        for dep_id in step.dependencies:
            if dep_id not in by_id:
                raise CatalogError(
                    f"Invalid dependency: {dep_id} referenced by {step.id} but not found",
                    ErrorCode.INVALID_CATALOG,
                    {"step_id": step.id, "dependency": dep_id},
                )

    def has_cycle(step_id: str, visited: set[str], rec_stack: set[str]) -> bool:
        visited.add(step_id)
        rec_stack.add(step_id)
        for dep_id in by_id[step_id].dependencies:
            if dep_id not in visited:
                if has_cycle(dep_id, visited, rec_stack):
                    return True
            elif dep_id in rec_stack:
                log.error("circular_dependency_detected", step_id=step_id, dependency=dep_id)
                return True
        rec_stack.remove(step_id)
        return False

    visited: set[str] = set()
    for step_id in by_id:
        if step_id not in visited and has_cycle(step_id, visited, set()):
            raise CatalogError(
                f"Circular dependency detected involving step {step_id}",
                ErrorCode.INVALID_CATALOG,
                {"step_id": step_id},
            )

    seen: set[str] = set()
    for step in steps:
        late = step.dependencies - seen
        if late:
            raise CatalogError(
                f"Step {step.id} is listed before its dependencies: {sorted(late)}",
                ErrorCode.INVALID_CATALOG,
                {"step_id": step.id, "dependencies": sorted(late)},
            )
        seen.add(step.id)
