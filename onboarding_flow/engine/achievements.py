"""
Achievement tracking, milestone validation and completion certificates.

Everything a certificate reports is derived from the session itself
(completed steps, failure and recovery counts, timestamps) plus the
milestones the tracker recorded, so issuing a certificate twice for the
same session yields the same achievements and metrics. Only
``certificate_id``, ``issued_at`` and the hash differ.
"""

import hashlib
import uuid
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

import structlog

from onboarding_flow.catalog.steps import expected_time_for
from onboarding_flow.enums import DeveloperRole, MilestoneSignificance, StepStatus, UserType
from onboarding_flow.exceptions import ErrorCode, NotFoundError, PreconditionError
from onboarding_flow.models.achievements import (
    CertificateMetrics,
    CompletionCertificate,
    MilestoneAchievement,
    MilestoneDefinition,
    MilestoneValidation,
    ProgressReport,
)
from onboarding_flow.models.domain import ChecklistStep, Session
from onboarding_flow.result import Ok, Result, err

log = structlog.get_logger(__name__)

MILESTONES: dict[tuple[str, UserType], MilestoneDefinition] = {
    (definition.milestone_id, definition.user_type): definition
    for definition in (
        MilestoneDefinition(
            "basic-setup",
            UserType.AGENT,
            "Agent Context Ready",
            "Project context loaded and validated",
            "setup",
            ("context-loading", "schema-validation"),
        ),
        MilestoneDefinition(
            "agent-integration",
            UserType.AGENT,
            "Agent Integrated",
            "Context validated and integration tests passing",
            "integration",
            ("context-loading", "schema-validation", "integration-test"),
        ),
        MilestoneDefinition(
            "environment-ready",
            UserType.HUMAN,
            "Environment Ready",
            "Development tools installed",
            "setup",
            ("environment-setup",),
        ),
        MilestoneDefinition(
            "basic-setup",
            UserType.HUMAN,
            "Project Setup Complete",
            "Repository cloned and dependencies installed",
            "setup",
            ("environment-setup", "repository-clone", "dependency-install"),
        ),
        MilestoneDefinition(
            "first-contribution",
            UserType.HUMAN,
            "First Contribution",
            "First change made through the contribution workflow",
            "contribution",
            ("first-change",),
        ),
        MilestoneDefinition(
            "documentation-reviewed",
            UserType.HUMAN,
            "Documentation Reviewed",
            "Architecture and contribution guides read",
            "learning",
            ("documentation-review",),
        ),
    )
}

SIGNIFICANCE: dict[str, MilestoneSignificance] = {
    "environment-ready": MilestoneSignificance.CRITICAL,
    "agent-integration": MilestoneSignificance.CRITICAL,
    "basic-setup": MilestoneSignificance.MAJOR,
    "first-contribution": MilestoneSignificance.MAJOR,
}

STEP_SKILLS: dict[str, str] = {
    "context-loading": "Project context ingestion",
    "schema-validation": "Schema validation",
    "integration-test": "Integration testing",
    "environment-setup": "Development environment configuration",
    "repository-clone": "Version control",
    "dependency-install": "Package management",
    "lint-check": "Code quality tooling",
    "first-change": "Contribution workflow",
    "dev-server-start": "Frontend development workflow",
    "frontend-build-verification": "Frontend build tooling",
    "environment-config": "Application configuration",
    "database-setup": "Database administration",
    "backend-start": "Backend services",
    "api-test": "API testing",
    "deployment-setup": "Application deployment",
    "monitoring-setup": "Observability",
    "docker-setup": "Containerization",
    "infrastructure-setup": "Infrastructure as code",
    "kubernetes-deployment": "Kubernetes operations",
    "ci-cd-setup": "CI/CD pipelines",
    "security-setup": "Security operations",
    "backup-setup": "Backup and restore",
    "deployment": "Release management",
}

MAKING_PROGRESS_THRESHOLD = 5
RECENT_MILESTONES = 3


def _utcnow() -> datetime:
    return datetime.now(UTC)


class AchievementTracker:
    """Record milestones per session and issue certificates."""

    def __init__(self) -> None:
        self._achievements: dict[str, list[MilestoneAchievement]] = {}

    @staticmethod
    def milestones_for(user_type: UserType) -> list[MilestoneDefinition]:
        return [d for (_, kind), d in MILESTONES.items() if kind == user_type]

    def validate_milestone(self, session: Session, milestone_id: str) -> Result[MilestoneValidation]:
        """Compare a milestone's required steps with the session's completed steps."""
        definition = MILESTONES.get((milestone_id, session.user_type))
        if definition is None:
            return err(
                NotFoundError,
                f"Milestone {milestone_id} is not defined for {session.user_type} users",
                ErrorCode.MILESTONE_NOT_FOUND,
                milestone_id=milestone_id,
                user_type=str(session.user_type),
            )

        completed = set(session.completed_steps)
        return Ok(
            MilestoneValidation(
                milestone_id=milestone_id,
                completed_requirements=tuple(s for s in definition.required_steps if s in completed),
                missing_requirements=tuple(s for s in definition.required_steps if s not in completed),
            )
        )

    def track_milestone(
        self,
        session: Session,
        milestone_id: str,
        context: dict[str, Any] | None = None,
    ) -> Result[MilestoneAchievement]:
        """Record a milestone as achieved. Tracking it again returns the first record."""
        validation = self.validate_milestone(session, milestone_id)
        if not validation.is_success:
            return validation
        if not validation.value.is_valid:
            return err(
                PreconditionError,
                f"Milestone {milestone_id} requirements not met",
                ErrorCode.PREREQUISITES_NOT_MET,
                milestone_id=milestone_id,
                missing_requirements=list(validation.value.missing_requirements),
            )

        recorded = self._achievements.setdefault(session.session_id, [])
        for achievement in recorded:
            if achievement.milestone_id == milestone_id:
                return Ok(achievement)

        definition = MILESTONES[(milestone_id, session.user_type)]
        achievement = MilestoneAchievement(
            milestone_id=milestone_id,
            session_id=session.session_id,
            name=definition.name,
            description=definition.description,
            category=definition.category,
            significance=SIGNIFICANCE.get(milestone_id, MilestoneSignificance.MINOR),
            achieved_at=_utcnow(),
            context=dict(context or {}),
        )
        recorded.append(achievement)
        log.info(
            "milestone_achieved",
            session_id=session.session_id,
            milestone_id=milestone_id,
            significance=str(achievement.significance),
        )
        return Ok(achievement)

    def check_new_milestones(self, session: Session) -> list[MilestoneAchievement]:
        """Track every milestone that became valid and was not recorded yet."""
        recorded = {a.milestone_id for a in self._achievements.get(session.session_id, [])}
        new: list[MilestoneAchievement] = []
        for definition in self.milestones_for(session.user_type):
            if definition.milestone_id in recorded:
                continue
            result = self.track_milestone(session, definition.milestone_id)
            if result.is_success:
                new.append(result.value)
        return new

    def achievements_for(self, session_id: str) -> list[MilestoneAchievement]:
        return list(self._achievements.get(session_id, []))

    def forget(self, session_id: str) -> None:
        self._achievements.pop(session_id, None)

    def reconcile(self, session: Session) -> list[MilestoneAchievement]:
        """Bring recorded milestones in line with the session's completed steps.

        Called after the completed steps were replaced wholesale (checkpoint
        reset, recovery, role transition). Milestones whose requirements are
        no longer met are dropped; the rest keep their original record.
        Returns the dropped achievements.
        """
        recorded = self._achievements.get(session.session_id, [])
        completed = set(session.completed_steps)
        kept: list[MilestoneAchievement] = []
        dropped: list[MilestoneAchievement] = []
        for achievement in recorded:
            definition = MILESTONES.get((achievement.milestone_id, session.user_type))
            if definition is not None and set(definition.required_steps) <= completed:
                kept.append(achievement)
            else:
                dropped.append(achievement)

        if kept:
            self._achievements[session.session_id] = kept
        else:
            self._achievements.pop(session.session_id, None)
        if dropped:
            log.info(
                "milestones_revoked",
                session_id=session.session_id,
                milestone_ids=[a.milestone_id for a in dropped],
            )
        self.check_new_milestones(session)
        return dropped

    @staticmethod
    def calculate_achievements(session: Session) -> list[str]:
        """Named achievements derived purely from session state."""
        achievements = []
        if session.completed_steps:
            achievements.append("First Steps Completed")
        if len(session.completed_steps) >= MAKING_PROGRESS_THRESHOLD:
            achievements.append("Making Progress")
        if session.is_complete:
            achievements.append("Onboarding Complete")
        if session.role == DeveloperRole.FULLSTACK:
            achievements.append("Full Stack Explorer")
        return achievements

    def calculate_metrics(self, session: Session, milestone_count: int) -> CertificateMetrics:
        """Completion time, efficiency and success rate of a session."""
        end = session.completed_at or session.last_activity
        completion_time = max(0, round((end - session.start_time).total_seconds() / 60))

        expected = expected_time_for(session.user_type, session.role)
        efficiency = round(min(1.0, expected / max(1, completion_time)), 2)

        # Every failed validation and every retry counts against first-time success
        attempts = milestone_count + session.failure_count + session.recovery_count
        success_rate = round(100.0 * milestone_count / attempts, 2) if attempts else 100.0

        return CertificateMetrics(completion_time, efficiency, success_rate)

    def generate_certificate(self, session: Session) -> CompletionCertificate:
        """Issue a certificate. The caller checks the session is complete."""
        self.check_new_milestones(session)
        milestones = tuple(self._achievements.get(session.session_id, []))
        issued_at = _utcnow()
        certificate_id = str(uuid.uuid4())
        skills = tuple(dict.fromkeys(STEP_SKILLS[s] for s in session.completed_steps if s in STEP_SKILLS))

        digest = hashlib.sha256(
            "|".join(
                [
                    certificate_id,
                    session.session_id,
                    session.user_id,
                    ",".join(session.completed_steps),
                    issued_at.isoformat(),
                ]
            ).encode()
        ).hexdigest()

        certificate = CompletionCertificate(
            certificate_id=certificate_id,
            session_id=session.session_id,
            user_id=session.user_id,
            user_type=session.user_type,
            role=session.role,
            issued_at=issued_at,
            completed_steps=tuple(session.completed_steps),
            achievements=tuple(self.calculate_achievements(session)),
            milestones=milestones,
            skills_validated=skills,
            metrics=self.calculate_metrics(session, len(milestones)),
            certificate_hash=digest,
        )
        log.info(
            "certificate_generated",
            session_id=session.session_id,
            certificate_id=certificate_id,
            milestones=len(milestones),
        )
        return certificate

    def generate_progress_report(self, session: Session, steps: Sequence[ChecklistStep]) -> ProgressReport:
        """Summarize where a session stands and what to do next."""
        remaining = [s for s in steps if s.status != StepStatus.COMPLETED]
        next_steps = tuple(s.id for s in remaining if s.status != StepStatus.LOCKED)
        blockers = tuple(s.id for s in remaining if s.status == StepStatus.LOCKED)

        total = len(steps)
        completed = total - len(remaining)
        # Users speed up as they go; never assume more than a 30% speed-up
        efficiency_factor = max(0.7, 1 - (completed / total) * 0.3) if total else 1.0
        estimate = round(sum(s.definition.estimated_time for s in remaining) * efficiency_factor)

        recommendations = []
        if session.failure_count:
            recommendations.append("Review the troubleshooting tips for steps that failed validation")
        if next_steps:
            titles = {s.id: s.definition.title for s in steps}
            recommendations.append(f"Continue with {titles[next_steps[0]]}")
        if not remaining and not session.is_complete:
            recommendations.append("Mark the session complete to receive your certificate")

        achievements = self._achievements.get(session.session_id, [])
        return ProgressReport(
            session_id=session.session_id,
            percent_complete=session.progress.percent_complete,
            completed_steps=tuple(session.completed_steps),
            next_steps=next_steps,
            blockers=blockers,
            recommendations=tuple(recommendations),
            estimated_time_to_completion=estimate,
            milestones_achieved=len(achievements),
            total_milestones=len(self.milestones_for(session.user_type)),
            recent_milestones=tuple(achievements[-RECENT_MILESTONES:]),
        )
