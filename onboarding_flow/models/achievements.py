"""
Milestone and certificate models.

Milestones are declared per ``(milestone_id, user_type)`` pair as a fixed
list of required step ids. A milestone is valid for a session once every
required step is in the session's completed steps.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from onboarding_flow.enums import DeveloperRole, MilestoneSignificance, UserType


@dataclass(frozen=True)
class MilestoneDefinition:
    milestone_id: str
    user_type: UserType
    name: str
    description: str
    category: str
    required_steps: tuple[str, ...]


@dataclass(frozen=True)
class MilestoneValidation:
    """Which requirements of a milestone a session has met."""

    milestone_id: str
    completed_requirements: tuple[str, ...]
    missing_requirements: tuple[str, ...]

    @property
    def is_valid(self) -> bool:
        return not self.missing_requirements


@dataclass(frozen=True)
class MilestoneAchievement:
    milestone_id: str
    session_id: str
    name: str
    description: str
    category: str
    significance: MilestoneSignificance
    achieved_at: datetime
    context: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CertificateMetrics:
    completion_time: int
    """Minutes from session start to completion."""

    efficiency: float
    """``min(1, expected / actual)``, two decimals."""

    success_rate: float
    """Percentage of first-time successes, two decimals."""


@dataclass(frozen=True)
class CompletionCertificate:
    """Certificate issued for a completed onboarding session."""

    certificate_id: str
    session_id: str
    user_id: str
    user_type: UserType
    role: DeveloperRole | None
    issued_at: datetime
    completed_steps: tuple[str, ...]
    achievements: tuple[str, ...]
    milestones: tuple[MilestoneAchievement, ...]
    skills_validated: tuple[str, ...]
    metrics: CertificateMetrics
    certificate_hash: str

    @property
    def total_time(self) -> int:
        return self.metrics.completion_time


@dataclass(frozen=True)
class ProgressReport:
    session_id: str
    percent_complete: int
    completed_steps: tuple[str, ...]
    next_steps: tuple[str, ...]
    blockers: tuple[str, ...]
    recommendations: tuple[str, ...]
    estimated_time_to_completion: int
    milestones_achieved: int
    total_milestones: int
    recent_milestones: tuple[MilestoneAchievement, ...] = ()
