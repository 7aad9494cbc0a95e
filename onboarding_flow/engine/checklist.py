"""
Checklist engine: per-session step statuses and dependency locking.

A step is locked while at least one of its declared dependencies has any
status other than COMPLETED. Lock state is recomputed from scratch on every
update, so completing a step immediately unlocks its dependents. Sessions
are fully independent of each other.

Example:
    >>> engine = ChecklistEngine()
    >>> engine.bind_to_session(generate(DeveloperRole.FRONTEND, "linux"), "s-1")
    >>> result = engine.update_progress("s-1", "environment-setup", StepStatus.COMPLETED)
    >>> result.value.unlocked_steps
    ('environment-setup', 'repository-clone')
"""

from collections.abc import Iterable, Sequence

import structlog

from onboarding_flow.catalog.steps import validate_catalog
from onboarding_flow.enums import StepStatus
from onboarding_flow.exceptions import ErrorCode, NotFoundError, PreconditionError
from onboarding_flow.models.domain import (
    ChecklistProgress,
    ChecklistStep,
    ProgressUpdate,
    StepDefinition,
    percent_of,
)
from onboarding_flow.result import Ok, Result, err

log = structlog.get_logger(__name__)


class ChecklistEngine:
    """Track step statuses for many sessions at once.

    The engine owns one ordered list of :class:`ChecklistStep` per bound
    session. Catalog order is the tie-break for ``next_step`` and the order
    of every returned step list.
    """

    def __init__(self) -> None:
        self._steps: dict[str, list[ChecklistStep]] = {}

    def bind_to_session(self, steps: Sequence[StepDefinition], session_id: str) -> list[ChecklistStep]:
        """Bind an ordered catalog to a session.

        Rebinding a session replaces its previous steps. Steps without
        unmet dependencies start AVAILABLE, all others LOCKED.

        Raises:
            CatalogError: If the steps are not a valid dependency graph
        """
        validate_catalog(steps)
        bound = [ChecklistStep(definition=step) for step in steps]
        self._steps[session_id] = bound
        self._refresh_locks(bound)
        log.info("checklist_bound", session_id=session_id, step_count=len(bound))
        return list(bound)

    def unbind(self, session_id: str) -> None:
        self._steps.pop(session_id, None)

    def is_bound(self, session_id: str) -> bool:
        return session_id in self._steps

    def update_progress(self, session_id: str, step_id: str, status: StepStatus) -> Result[ProgressUpdate]:
        """Record a new status for a step.

        Returns:
            ``Ok(ProgressUpdate)`` or ``Err`` with SESSION_NOT_FOUND,
            STEP_NOT_FOUND, STEP_ALREADY_COMPLETED (completed steps never
            move back) or STEP_LOCKED
        """
        steps = self._steps.get(session_id)
        if steps is None:
            return err(NotFoundError, f"Session not bound: {session_id}", ErrorCode.SESSION_NOT_FOUND, session_id=session_id)

        by_id = {step.id: step for step in steps}
        step = by_id.get(step_id)
        if step is None:
            return err(NotFoundError, f"Step not found: {step_id}", ErrorCode.STEP_NOT_FOUND, step_id=step_id)

        if step.status == StepStatus.COMPLETED and status != StepStatus.COMPLETED:
            return err(
                PreconditionError,
                f"Step {step_id} is already completed",
                ErrorCode.STEP_ALREADY_COMPLETED,
                step_id=step_id,
            )

        blocking = sorted(dep for dep in step.dependencies if by_id[dep].status != StepStatus.COMPLETED)
        if blocking:
            log.debug("step_locked", session_id=session_id, step_id=step_id, blocking=blocking)
            return err(
                PreconditionError,
                f"Step {step_id} is locked until {', '.join(blocking)} completed",
                ErrorCode.STEP_LOCKED,
                step_id=step_id,
                blocking_steps=blocking,
            )

        step.status = status
        self._refresh_locks(steps)

        update = ProgressUpdate(
            session_id=session_id,
            step_id=step_id,
            status=status,
            percent_complete=self._percent(steps),
            next_step=self._next_step(steps),
            unlocked_steps=self._unlocked(steps),
        )
        log.info(
            "checklist_progress_updated",
            session_id=session_id,
            step_id=step_id,
            status=str(status),
            percent_complete=update.percent_complete,
        )
        return Ok(update)

    def get_progress(self, session_id: str) -> Result[ChecklistProgress]:
        """Read-only progress of a bound session."""
        steps = self._steps.get(session_id)
        if steps is None:
            return err(NotFoundError, f"Session not bound: {session_id}", ErrorCode.SESSION_NOT_FOUND, session_id=session_id)

        return Ok(
            ChecklistProgress(
                session_id=session_id,
                percent_complete=self._percent(steps),
                total_steps=len(steps),
                completed_steps=tuple(s.id for s in steps if s.status == StepStatus.COMPLETED),
                unlocked_steps=self._unlocked(steps),
            )
        )

    def get_steps(self, session_id: str) -> Result[list[ChecklistStep]]:
        """Copies of the bound steps with their current status."""
        steps = self._steps.get(session_id)
        if steps is None:
            return err(NotFoundError, f"Session not bound: {session_id}", ErrorCode.SESSION_NOT_FOUND, session_id=session_id)
        return Ok([ChecklistStep(definition=s.definition, status=s.status) for s in steps])

    def get_available_steps(self, session_id: str) -> Result[list[ChecklistStep]]:
        """Unlocked steps that are not completed yet, in catalog order."""
        result = self.get_steps(session_id)
        if not result.is_success:
            return result
        return Ok([s for s in result.value if s.status in (StepStatus.AVAILABLE, StepStatus.IN_PROGRESS)])

    def restore_progress(self, session_id: str, completed_steps: Iterable[str]) -> None:
        """Reset step statuses so exactly ``completed_steps`` are COMPLETED.

        Used when a session is replaced wholesale from a checkpoint or saved
        state. IN_PROGRESS marks are not part of a snapshot and are dropped.
        """
        steps = self._steps.get(session_id)
        if steps is None:
            return
        completed = set(completed_steps)
        for step in steps:
            step.status = StepStatus.COMPLETED if step.id in completed else StepStatus.LOCKED
        self._refresh_locks(steps)
        log.debug("checklist_restored", session_id=session_id, completed=len(completed))

    @staticmethod
    def _refresh_locks(steps: list[ChecklistStep]) -> None:
        by_id = {step.id: step for step in steps}
        for step in steps:
            if step.status in (StepStatus.COMPLETED, StepStatus.IN_PROGRESS):
                continue
            satisfied = all(by_id[dep].status == StepStatus.COMPLETED for dep in step.dependencies)
            step.status = StepStatus.AVAILABLE if satisfied else StepStatus.LOCKED

    @staticmethod
    def _percent(steps: list[ChecklistStep]) -> int:
        completed = sum(1 for s in steps if s.status == StepStatus.COMPLETED)
        return percent_of(completed, len(steps))

    @staticmethod
    def _next_step(steps: list[ChecklistStep]) -> str | None:
        return next((s.id for s in steps if s.status != StepStatus.COMPLETED), None)

    @staticmethod
    def _unlocked(steps: list[ChecklistStep]) -> tuple[str, ...]:
        by_id = {step.id: step for step in steps}
        return tuple(
            s.id
            for s in steps
            if all(by_id[dep].status == StepStatus.COMPLETED for dep in s.dependencies)
        )
