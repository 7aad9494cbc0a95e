"""
Domain models for onboarding sessions and steps.

Catalog entries and operation outcomes are frozen dataclasses. Sessions are
Pydantic models so they serialize to JSON for the file state backend, and
their checkpoints are frozen :class:`SessionSnapshot` values: taking a
snapshot copies the session into tuples and frozen progress, restoring one
builds a fresh mutable :class:`Session`. A snapshot never shares mutable
state with the live session it came from.

Example:
    Checkpointing a session and restoring it later::

        snapshot = session.snapshot()
        session.completed_steps.append("repository-clone")
        restored = snapshot.restore()
        assert "repository-clone" not in restored.completed_steps
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from onboarding_flow.enums import DeveloperRole, StepStatus, UserType
from onboarding_flow.models.achievements import MilestoneAchievement


@dataclass(frozen=True)
class ValidationCriterion:
    """A single check a step's completion is judged against."""

    type: str
    """Kind of check: ``version``, ``file_exists``, ``command_success``, ..."""

    value: str
    """Expected value, path or command."""

    description: str = ""


@dataclass(frozen=True)
class StepDefinition:
    """Catalog entry for one onboarding step.

    Catalog entries are immutable and shared between every session that is
    bound to the same catalog. Runtime status lives on :class:`ChecklistStep`.
    """

    id: str
    title: str
    description: str
    dependencies: frozenset[str] = frozenset()
    estimated_time: int = 5
    """Estimate in minutes."""

    validation_criteria: tuple[ValidationCriterion, ...] = ()
    instructions: tuple[str, ...] = ()
    code_examples: tuple[str, ...] = ()
    categories: tuple[str, ...] = ()
    platform_instructions: tuple[str, ...] = ()
    """Instructions resolved for the platform the catalog was generated for."""

    contextual_help: tuple[str, ...] = ()
    """Role-specific help and troubleshooting tips."""

    validator: str | None = None
    """Key of the completion validator, ``None`` accepts any data."""


@dataclass
class ChecklistStep:
    """A catalog step bound to one session, carrying its runtime status."""

    definition: StepDefinition
    status: StepStatus = StepStatus.LOCKED

    @property
    def id(self) -> str:
        return self.definition.id

    @property
    def dependencies(self) -> frozenset[str]:
        return self.definition.dependencies


class SessionProgress(BaseModel):
    """Progress counters of a session. Immutable; replaced on every change."""

    model_config = ConfigDict(frozen=True)

    total_steps: int = 0
    completed_count: int = 0
    estimated_time_remaining: int = 0

    @property
    def percent_complete(self) -> int:
        return percent_of(self.completed_count, self.total_steps)


def percent_of(completed: int, total: int) -> int:
    """Whole-number percentage, rounding halves up (2 of 8 -> 25, 1 of 8 -> 13)."""
    if total <= 0:
        return 0
    return (200 * completed + total) // (2 * total)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Session(BaseModel):
    """Live onboarding session.

    Owned exclusively by a :class:`~onboarding_flow.engine.session_store.SessionStore`.
    ``completed_steps`` is append-only and never holds duplicates; the
    orchestrator is the only writer.
    """

    session_id: str
    user_id: str
    user_type: UserType
    role: DeveloperRole | None = None
    platform: str = "linux"
    start_time: datetime = Field(default_factory=_utcnow)
    last_activity: datetime = Field(default_factory=_utcnow)
    current_step: str | None = None
    completed_steps: list[str] = Field(default_factory=list)
    is_complete: bool = False
    completed_at: datetime | None = None
    failure_count: int = 0
    recovery_count: int = 0
    progress: SessionProgress = Field(default_factory=SessionProgress)

    def touch(self) -> None:
        """Mark activity on the session."""
        self.last_activity = _utcnow()

    def snapshot(self) -> SessionSnapshot:
        """Take an immutable value copy of this session."""
        return SessionSnapshot(
            session_id=self.session_id,
            user_id=self.user_id,
            user_type=self.user_type,
            role=self.role,
            platform=self.platform,
            start_time=self.start_time,
            last_activity=self.last_activity,
            current_step=self.current_step,
            completed_steps=tuple(self.completed_steps),
            is_complete=self.is_complete,
            completed_at=self.completed_at,
            failure_count=self.failure_count,
            recovery_count=self.recovery_count,
            progress=self.progress,
        )


class SessionSnapshot(BaseModel):
    """Frozen copy of a :class:`Session` at one point in time."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    user_id: str
    user_type: UserType
    role: DeveloperRole | None = None
    platform: str = "linux"
    start_time: datetime
    last_activity: datetime
    current_step: str | None = None
    completed_steps: tuple[str, ...] = ()
    is_complete: bool = False
    completed_at: datetime | None = None
    failure_count: int = 0
    recovery_count: int = 0
    progress: SessionProgress = Field(default_factory=SessionProgress)
    captured_at: datetime = Field(default_factory=_utcnow)

    def restore(self) -> Session:
        """Build a fresh mutable session from this snapshot."""
        return Session(
            session_id=self.session_id,
            user_id=self.user_id,
            user_type=self.user_type,
            role=self.role,
            platform=self.platform,
            start_time=self.start_time,
            last_activity=self.last_activity,
            current_step=self.current_step,
            completed_steps=list(self.completed_steps),
            is_complete=self.is_complete,
            completed_at=self.completed_at,
            failure_count=self.failure_count,
            recovery_count=self.recovery_count,
            progress=self.progress,
        )


@dataclass(frozen=True)
class StepValidationResult:
    """Outcome of a step validator."""

    is_valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    suggestions: tuple[str, ...] = ()


@dataclass(frozen=True)
class ProgressUpdate:
    """Result of a successful checklist update."""

    session_id: str
    step_id: str
    status: StepStatus
    percent_complete: int
    next_step: str | None
    unlocked_steps: tuple[str, ...]


@dataclass(frozen=True)
class ChecklistProgress:
    """Read-only checklist view of a session."""

    session_id: str
    percent_complete: int
    total_steps: int
    completed_steps: tuple[str, ...]
    unlocked_steps: tuple[str, ...]


@dataclass(frozen=True)
class StepCompletion:
    """Result of completing (or re-completing) a step."""

    session_id: str
    step_id: str
    completed_count: int
    percent_complete: int
    next_step: str | None
    already_completed: bool = False
    warnings: tuple[str, ...] = ()
    new_milestones: tuple[MilestoneAchievement, ...] = ()

    @property
    def all_steps_completed(self) -> bool:
        return self.percent_complete == 100


@dataclass(frozen=True)
class SessionProgressView:
    """Session-level progress as reported by the orchestrator."""

    session_id: str
    current_step: str | None
    completed_steps: tuple[str, ...]
    total_steps: int
    percent_complete: int
    estimated_time_remaining: int
    is_complete: bool


@dataclass(frozen=True)
class CheckpointReset:
    """Result of restoring a session from a checkpoint."""

    checkpoint_id: str
    reset_to_step: str | None
    preserved_progress: bool = True


@dataclass(frozen=True)
class SessionResume:
    """Result of recovering a saved session."""

    session: SessionSnapshot
    was_interrupted: bool
    resume_step: str | None


@dataclass(frozen=True)
class StepContent:
    """Everything a user needs to work through one step."""

    step_id: str
    title: str
    description: str
    instructions: tuple[str, ...]
    code_examples: tuple[str, ...]
    platform_instructions: tuple[str, ...] = ()
    contextual_help: tuple[str, ...] = ()
    documentation: str | None = None
    is_fallback: bool = False
    fallback_reason: str | None = None


@dataclass(frozen=True)
class UserDetection:
    """Result of classifying an incoming onboarding request."""

    user_type: UserType
    recommended_role: DeveloperRole | None
    confidence: float


@dataclass(frozen=True)
class SessionHistoryEntry:
    """One past or current session of a user."""

    session_id: str
    role: DeveloperRole | None
    start_time: datetime
    last_activity: datetime
    is_complete: bool
    completion_percentage: int


@dataclass(frozen=True)
class AnalyticsReport:
    """Aggregate statistics across all sessions in a store."""

    total_sessions: int
    completed_sessions: int
    completion_rate: float
    average_duration_minutes: float
    role_breakdown: dict[str, int] = field(default_factory=dict)
    success_metrics: dict[str, Any] = field(default_factory=dict)
