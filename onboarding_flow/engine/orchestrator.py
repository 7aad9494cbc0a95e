"""
Onboarding orchestrator: session lifecycle on top of the session store.

The orchestrator owns no state of its own beyond what it is given. Live
sessions and checkpoints live in the injected
:class:`~onboarding_flow.engine.session_store.SessionStore`, step statuses
in the injected :class:`~onboarding_flow.engine.checklist.ChecklistEngine`,
milestones in the :class:`~onboarding_flow.engine.achievements.AchievementTracker`.

Both the orchestrator and the checklist engine read the same generated
catalog. The orchestrator checks prerequisites against the session's own
``completed_steps`` before it touches the checklist, so a step whose
prerequisites are unmet is rejected with PREREQUISITES_NOT_MET even though
the checklist would also report it as locked.

Concurrency Model:
    Operations are cooperative coroutines or plain functions on a single
    event loop and take no per-session lock. ``complete_step`` suspends
    while an asynchronous validator runs; callers must serialize operations
    on the same session. Two overlapping completions of the same step still
    append it only once, because preconditions are re-checked after
    validation resolves. Any other interleaving on one session is
    unsupported.

Example:
    >>> store = SessionStore()
    >>> orchestrator = OnboardingOrchestrator(store)
    >>> session = orchestrator.start_onboarding(UserType.HUMAN, DeveloperRole.FRONTEND).unwrap()
    >>> result = await orchestrator.complete_step(session.session_id, "environment-setup")
    >>> result.value.percent_complete
    13
"""

import inspect
import uuid
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

from onboarding_flow.catalog.steps import generate, initial_step_for
from onboarding_flow.catalog.validators import get_validator
from onboarding_flow.config.settings import OnboardingSettings
from onboarding_flow.engine.achievements import AchievementTracker
from onboarding_flow.engine.checklist import ChecklistEngine
from onboarding_flow.engine.session_store import SessionStore
from onboarding_flow.enums import DeveloperRole, StepStatus, UserType
from onboarding_flow.exceptions import (
    ErrorCode,
    NotFoundError,
    OnboardingError,
    PreconditionError,
    RecoveryError,
    StepValidationError,
)
from onboarding_flow.models.achievements import (
    CompletionCertificate,
    MilestoneValidation,
    ProgressReport,
)
from onboarding_flow.models.domain import (
    AnalyticsReport,
    CheckpointReset,
    ChecklistStep,
    Session,
    SessionHistoryEntry,
    SessionProgress,
    SessionProgressView,
    SessionResume,
    SessionSnapshot,
    StepCompletion,
    StepContent,
    StepDefinition,
    StepValidationResult,
)
from onboarding_flow.monitoring.metrics import MetricsCollector
from onboarding_flow.result import Err, Ok, Result, err

log = structlog.get_logger(__name__)


def _session_not_found(session_id: str) -> Err:
    return err(NotFoundError, f"Session not found: {session_id}", ErrorCode.SESSION_NOT_FOUND, session_id=session_id)


class OnboardingOrchestrator:
    """Create sessions and drive them through their step catalogs.

    Args:
        store: Session store holding live sessions, checkpoints and saved state
        checklist: Checklist engine for step statuses; a private one by default
        achievements: Milestone tracker; a private one by default
        settings: Onboarding settings (default platform, interruption threshold)
        id_factory: Session id generator, uuid4 strings by default
    """

    def __init__(
        self,
        store: SessionStore,
        checklist: ChecklistEngine | None = None,
        achievements: AchievementTracker | None = None,
        settings: OnboardingSettings | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self.store = store
        self.checklist = checklist or ChecklistEngine()
        self.achievements = achievements or AchievementTracker()
        self.settings = settings or OnboardingSettings()
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))

    # Session lifecycle

    def start_onboarding(
        self,
        user_type: UserType,
        role: DeveloperRole | None = None,
        user_id: str | None = None,
        platform: str | None = None,
    ) -> Result[SessionSnapshot]:
        """Create a session and bind its catalog.

        Raises:
            SessionIdGenerationError: If the generated id is already in use
        """
        platform = platform or self.settings.session.default_platform
        steps = generate(role, platform, user_type)
        session_id = self._id_factory()

        session = Session(
            session_id=session_id,
            user_id=user_id or session_id,
            user_type=user_type,
            role=role,
            platform=platform,
            current_step=initial_step_for(user_type, role),
            progress=SessionProgress(
                total_steps=len(steps),
                completed_count=0,
                estimated_time_remaining=sum(step.estimated_time for step in steps),
            ),
        )
        self.store.add(session)
        self.checklist.bind_to_session(steps, session_id)

        MetricsCollector.record_session_started(str(user_type), role.value if role else None)
        log.info(
            "onboarding_started",
            session_id=session_id,
            user_type=str(user_type),
            role=str(role) if role else None,
            platform=platform,
            total_steps=len(steps),
        )
        return Ok(session.snapshot())

    def get_session(self, session_id: str) -> Result[SessionSnapshot]:
        session = self.store.get(session_id)
        if session is None:
            return _session_not_found(session_id)
        return Ok(session.snapshot())

    def mark_session_complete(self, session_id: str) -> Result[SessionSnapshot]:
        """Mark a session complete. Repeated calls keep the first completion time."""
        session = self.store.get(session_id)
        if session is None:
            return _session_not_found(session_id)

        if not session.is_complete:
            session.is_complete = True
            session.completed_at = datetime.now(UTC)
            session.touch()
            MetricsCollector.record_session_completed(
                str(session.user_type), session.role.value if session.role else None
            )
            log.info(
                "session_completed",
                session_id=session_id,
                completed_steps=len(session.completed_steps),
                total_steps=session.progress.total_steps,
            )
        return Ok(session.snapshot())

    def transition_role(self, session_id: str, role: DeveloperRole) -> Result[SessionSnapshot]:
        """Move a human session to another role's catalog.

        Completed steps that also exist in the new catalog are kept as long
        as all of their dependencies are kept too.
        """
        session = self.store.get(session_id)
        if session is None:
            return _session_not_found(session_id)
        if session.is_complete:
            return err(
                PreconditionError,
                f"Session {session_id} is already complete",
                ErrorCode.SESSION_ALREADY_COMPLETE,
                session_id=session_id,
            )
        if session.user_type == UserType.AGENT:
            return err(
                PreconditionError,
                "Agent sessions have no developer role",
                ErrorCode.INVALID_ROLE_TRANSITION,
                session_id=session_id,
            )

        steps = generate(role, session.platform, session.user_type)
        previously_completed = set(session.completed_steps)
        kept: list[str] = []
        for step in steps:
            if step.id in previously_completed and step.dependencies <= set(kept):
                kept.append(step.id)

        previous_role = session.role
        session.role = role
        session.completed_steps = kept
        self.checklist.bind_to_session(steps, session_id)
        self.checklist.restore_progress(session_id, kept)
        session.progress = self._progress_for(steps, kept)
        session.current_step = next((s.id for s in steps if s.id not in kept), steps[-1].id)
        session.touch()
        self.achievements.reconcile(session)

        log.info(
            "role_transitioned",
            session_id=session_id,
            from_role=str(previous_role) if previous_role else None,
            to_role=str(role),
            kept_steps=len(kept),
            dropped_steps=len(previously_completed) - len(kept),
        )
        return Ok(session.snapshot())

    # Step completion

    async def complete_step(
        self,
        session_id: str,
        step_id: str,
        validation_data: Mapping[str, Any] | None = None,
    ) -> Result[StepCompletion]:
        """Complete a step after checking prerequisites and validation data.

        Returns:
            ``Ok(StepCompletion)``; re-completing a completed step is a
            successful no-op with ``already_completed=True``. Errors:
            SESSION_NOT_FOUND, SESSION_ALREADY_COMPLETE, STEP_NOT_FOUND,
            PREREQUISITES_NOT_MET, STEP_VALIDATION_FAILED.
        """
        checked = self._check_completable(session_id, step_id)
        if isinstance(checked, Err):
            return checked
        if isinstance(checked, StepCompletion):
            return Ok(checked)
        session, definition = checked

        warnings: tuple[str, ...] = ()
        if validation_data is not None:
            validation = await self._validate(definition, validation_data)
            if not validation.is_valid:
                # The live session may have been replaced while validating
                current = self.store.get(session_id) or session
                current.failure_count += 1
                MetricsCollector.record_validation_failure(step_id)
                log.warning(
                    "step_validation_failed",
                    session_id=session_id,
                    step_id=step_id,
                    errors=list(validation.errors),
                    failure_count=current.failure_count,
                )
                return Err(
                    StepValidationError(
                        f"Validation failed for step {step_id}",
                        errors=list(validation.errors),
                        warnings=list(validation.warnings),
                        suggestions=list(validation.suggestions),
                    )
                )
            warnings = validation.warnings

            checked = self._check_completable(session_id, step_id)
            if isinstance(checked, Err):
                return checked
            if isinstance(checked, StepCompletion):
                return Ok(checked)
            session, definition = checked

        update = self.checklist.update_progress(session_id, step_id, StepStatus.COMPLETED)
        if not update.is_success:
            return update

        session.completed_steps.append(step_id)
        steps = self._definitions(session)
        session.progress = self._progress_for(steps, session.completed_steps)
        session.current_step = update.value.next_step or step_id
        session.touch()
        new_milestones = tuple(self.achievements.check_new_milestones(session))

        MetricsCollector.record_step_completed(step_id)
        log.info(
            "step_completed",
            session_id=session_id,
            step_id=step_id,
            completed_count=session.progress.completed_count,
            percent_complete=session.progress.percent_complete,
        )
        return Ok(
            StepCompletion(
                session_id=session_id,
                step_id=step_id,
                completed_count=session.progress.completed_count,
                percent_complete=session.progress.percent_complete,
                next_step=update.value.next_step,
                warnings=warnings,
                new_milestones=new_milestones,
            )
        )

    async def retry_failed_step(
        self,
        session_id: str,
        step_id: str,
        validation_data: Mapping[str, Any] | None = None,
    ) -> Result[StepCompletion]:
        """Count a recovery attempt, then complete the step as usual."""
        session = self.store.get(session_id)
        if session is None:
            return _session_not_found(session_id)

        session.recovery_count += 1
        log.info("step_retry", session_id=session_id, step_id=step_id, recovery_count=session.recovery_count)
        result = await self.complete_step(session_id, step_id, validation_data)
        MetricsCollector.record_recovery_attempt("step_retry", result.is_success)
        return result

    def _check_completable(
        self, session_id: str, step_id: str
    ) -> Err | StepCompletion | tuple[Session, StepDefinition]:
        session = self.store.get(session_id)
        if session is None:
            return _session_not_found(session_id)
        if session.is_complete:
            return err(
                PreconditionError,
                f"Session {session_id} is already complete",
                ErrorCode.SESSION_ALREADY_COMPLETE,
                session_id=session_id,
            )

        definition = next((s for s in self._definitions(session) if s.id == step_id), None)
        if definition is None:
            return err(
                NotFoundError,
                f"Step {step_id} is not part of this session's catalog",
                ErrorCode.STEP_NOT_FOUND,
                session_id=session_id,
                step_id=step_id,
            )

        if step_id in session.completed_steps:
            log.debug("step_already_completed", session_id=session_id, step_id=step_id)
            return StepCompletion(
                session_id=session_id,
                step_id=step_id,
                completed_count=session.progress.completed_count,
                percent_complete=session.progress.percent_complete,
                next_step=session.current_step,
                already_completed=True,
            )

        missing = sorted(dep for dep in definition.dependencies if dep not in session.completed_steps)
        if missing:
            return err(
                PreconditionError,
                f"Prerequisites not met for step {step_id}: {', '.join(missing)}",
                ErrorCode.PREREQUISITES_NOT_MET,
                session_id=session_id,
                step_id=step_id,
                missing_prerequisites=missing,
            )
        return session, definition

    @staticmethod
    async def _validate(definition: StepDefinition, data: Mapping[str, Any]) -> StepValidationResult:
        outcome = get_validator(definition.validator)(data)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        return outcome

    # Saved state and checkpoints

    async def save_session_state(self, session_id: str) -> Result[SessionSnapshot]:
        """Save the session's current state, replacing any earlier save."""
        if session_id not in self.store:
            return _session_not_found(session_id)
        try:
            snapshot = await self.store.save_snapshot(session_id)
        except OSError as e:
            log.error("session_persist_failed", session_id=session_id, error=str(e))
            return err(
                OnboardingError,
                f"Could not save session {session_id}: {e}",
                ErrorCode.SESSION_PERSIST_FAILED,
                session_id=session_id,
            )
        log.info("session_state_saved", session_id=session_id)
        return Ok(snapshot)

    async def recover_session(self, session_id: str) -> Result[SessionResume]:
        """Reinstate the most recently saved state of a session.

        The recovered session replaces any live session with the same id.
        ``was_interrupted`` reports whether the session had been idle longer
        than the configured interruption threshold.
        """
        try:
            snapshot = await self.store.load_snapshot(session_id)
        except RecoveryError as e:
            log.warning("session_recovery_failed", session_id=session_id, error=e.message)
            return Err(e)

        if snapshot is None:
            log.warning("session_recovery_failed", session_id=session_id, error="no saved state")
            return err(
                RecoveryError,
                f"No saved state for session {session_id}",
                ErrorCode.SESSION_RECOVERY_FAILED,
                session_id=session_id,
            )

        threshold = timedelta(minutes=self.settings.session.interruption_threshold_minutes)
        was_interrupted = datetime.now(UTC) - snapshot.last_activity > threshold

        session = snapshot.restore()
        session.touch()
        self.store.replace(session)
        self._rebind(session)

        log.info(
            "session_recovered",
            session_id=session_id,
            was_interrupted=was_interrupted,
            completed_steps=len(session.completed_steps),
        )
        return Ok(SessionResume(session.snapshot(), was_interrupted, session.current_step))

    def create_checkpoint(self, session_id: str, checkpoint_id: str) -> Result[SessionSnapshot]:
        """Snapshot the session under ``checkpoint_id``; reusing an id overwrites it."""
        session = self.store.get(session_id)
        if session is None:
            return _session_not_found(session_id)
        snapshot = session.snapshot()
        self.store.put_checkpoint(checkpoint_id, snapshot)
        log.info(
            "checkpoint_created",
            session_id=session_id,
            checkpoint_id=checkpoint_id,
            completed_steps=len(snapshot.completed_steps),
        )
        return Ok(snapshot)

    def reset_to_checkpoint(self, session_id: str, checkpoint_id: str) -> Result[CheckpointReset]:
        """Replace the live session wholesale with a checkpoint's snapshot."""
        if session_id not in self.store:
            return _session_not_found(session_id)
        snapshot = self.store.get_checkpoint(session_id, checkpoint_id)
        if snapshot is None:
            return err(
                NotFoundError,
                f"Checkpoint {checkpoint_id} not found for session {session_id}",
                ErrorCode.CHECKPOINT_NOT_FOUND,
                session_id=session_id,
                checkpoint_id=checkpoint_id,
            )

        session = snapshot.restore()
        self.store.replace(session)
        self._rebind(session)

        reset_to_step = snapshot.completed_steps[-1] if snapshot.completed_steps else snapshot.current_step
        log.info(
            "checkpoint_restored",
            session_id=session_id,
            checkpoint_id=checkpoint_id,
            reset_to_step=reset_to_step,
        )
        return Ok(CheckpointReset(checkpoint_id=checkpoint_id, reset_to_step=reset_to_step))

    def list_checkpoints(self, session_id: str) -> Result[list[str]]:
        if session_id not in self.store:
            return _session_not_found(session_id)
        return Ok(self.store.checkpoint_ids(session_id))

    # Views

    def get_progress(self, session_id: str) -> Result[SessionProgressView]:
        session = self.store.get(session_id)
        if session is None:
            return _session_not_found(session_id)
        return Ok(
            SessionProgressView(
                session_id=session_id,
                current_step=session.current_step,
                completed_steps=tuple(session.completed_steps),
                total_steps=session.progress.total_steps,
                percent_complete=session.progress.percent_complete,
                estimated_time_remaining=session.progress.estimated_time_remaining,
                is_complete=session.is_complete,
            )
        )

    def get_available_steps(self, session_id: str) -> Result[list[ChecklistStep]]:
        session = self.store.get(session_id)
        if session is None:
            return _session_not_found(session_id)
        self._ensure_bound(session)
        return self.checklist.get_available_steps(session_id)

    def get_step_content(self, session_id: str, step_id: str) -> Result[StepContent]:
        """Catalog content for a step, resolved for the session's platform and role."""
        session = self.store.get(session_id)
        if session is None:
            return _session_not_found(session_id)
        definition = next((s for s in self._definitions(session) if s.id == step_id), None)
        if definition is None:
            return err(NotFoundError, f"Step not found: {step_id}", ErrorCode.STEP_NOT_FOUND, step_id=step_id)
        return Ok(
            StepContent(
                step_id=definition.id,
                title=definition.title,
                description=definition.description,
                instructions=definition.instructions,
                code_examples=definition.code_examples,
                platform_instructions=definition.platform_instructions,
                contextual_help=definition.contextual_help,
            )
        )

    def validate_milestone(self, session_id: str, milestone_id: str) -> Result[MilestoneValidation]:
        session = self.store.get(session_id)
        if session is None:
            return _session_not_found(session_id)
        return self.achievements.validate_milestone(session, milestone_id)

    def generate_certificate(self, session_id: str) -> Result[CompletionCertificate]:
        """Issue a completion certificate for a complete session."""
        session = self.store.get(session_id)
        if session is None:
            return _session_not_found(session_id)
        if not session.is_complete:
            return err(
                PreconditionError,
                f"Session {session_id} is not complete",
                ErrorCode.SESSION_INCOMPLETE,
                session_id=session_id,
                completed_steps=len(session.completed_steps),
                total_steps=session.progress.total_steps,
            )
        return Ok(self.achievements.generate_certificate(session))

    def generate_progress_report(self, session_id: str) -> Result[ProgressReport]:
        session = self.store.get(session_id)
        if session is None:
            return _session_not_found(session_id)
        self._ensure_bound(session)
        steps = self.checklist.get_steps(session_id)
        if not steps.is_success:
            return steps
        return Ok(self.achievements.generate_progress_report(session, steps.value))

    def get_session_history(self, user_id: str) -> list[SessionHistoryEntry]:
        """Every session of a user, oldest first."""
        sessions = sorted(self.store.sessions_for_user(user_id), key=lambda s: s.start_time)
        return [
            SessionHistoryEntry(
                session_id=s.session_id,
                role=s.role,
                start_time=s.start_time,
                last_activity=s.last_activity,
                is_complete=s.is_complete,
                completion_percentage=s.progress.percent_complete,
            )
            for s in sessions
        ]

    def generate_analytics_report(self) -> AnalyticsReport:
        """Aggregate statistics over every session in the store."""
        sessions = list(self.store)
        total = len(sessions)
        completed = [s for s in sessions if s.is_complete and s.completed_at is not None]

        role_breakdown: dict[str, int] = {}
        for s in sessions:
            key = "agent" if s.user_type == UserType.AGENT else (s.role.value if s.role else "unassigned")
            role_breakdown[key] = role_breakdown.get(key, 0) + 1

        durations = [(s.completed_at - s.start_time).total_seconds() / 60 for s in completed]
        return AnalyticsReport(
            total_sessions=total,
            completed_sessions=len(completed),
            completion_rate=round(100.0 * len(completed) / total, 2) if total else 0.0,
            average_duration_minutes=round(sum(durations) / len(durations), 2) if durations else 0.0,
            role_breakdown=role_breakdown,
            success_metrics={
                "total_failures": sum(s.failure_count for s in sessions),
                "total_recoveries": sum(s.recovery_count for s in sessions),
                "average_percent_complete": (
                    round(sum(s.progress.percent_complete for s in sessions) / total, 2) if total else 0.0
                ),
            },
        )

    # Internals

    def _definitions(self, session: Session) -> list[StepDefinition]:
        self._ensure_bound(session)
        steps = self.checklist.get_steps(session.session_id)
        return [s.definition for s in steps.value] if steps.is_success else []

    def _ensure_bound(self, session: Session) -> None:
        # Sessions recovered in a fresh process have no checklist yet
        if not self.checklist.is_bound(session.session_id):
            self._rebind(session)

    def _rebind(self, session: Session) -> None:
        steps = generate(session.role, session.platform, session.user_type)
        self.checklist.bind_to_session(steps, session.session_id)
        self.checklist.restore_progress(session.session_id, session.completed_steps)
        self.achievements.reconcile(session)

    @staticmethod
    def _progress_for(steps: list[StepDefinition], completed: list[str]) -> SessionProgress:
        done = set(completed)
        return SessionProgress(
            total_steps=len(steps),
            completed_count=len(done),
            estimated_time_remaining=sum(s.estimated_time for s in steps if s.id not in done),
        )
