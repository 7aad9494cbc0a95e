"""
Resilience coordinator: wraps cross-component calls in circuit breakers.

Every collaborator (the orchestrator itself, the documentation manager,
the version-control integration) is registered under a name and gets its
own :class:`~onboarding_flow.resilience.circuit_breaker.CircuitBreaker`.
Collaborator exceptions are caught at this boundary, counted against the
breaker and turned into failed results; they never propagate to the code
that asked for a step to be completed.

Health Rules:
    A component is FAILED from its first failure until it is recovered, and
    whenever its breaker is not closed or its health score is 0. It is
    DEGRADED when its health score is below the degradation threshold. The
    system is HEALTHY when no component failed, DEGRADED when fewer
    components failed than are healthy, and CRITICAL otherwise.

Example:
    >>> coordinator = ResilienceCoordinator(orchestrator, documentation=FileSystemDocumentationManager("."))
    >>> await coordinator.initialize_system()
    >>> coordinator.simulate_component_failure("documentation")
    >>> coordinator.get_circuit_breaker_status("documentation").value.failure_count
    1
"""

import inspect
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import structlog

from onboarding_flow.config.settings import OnboardingSettings
from onboarding_flow.engine.orchestrator import OnboardingOrchestrator
from onboarding_flow.enums import CircuitState, DeveloperRole, EventType, HealthStatus, UserType
from onboarding_flow.exceptions import CollaboratorError, ErrorCode, NotFoundError, OnboardingError
from onboarding_flow.integrations.base import DocumentationManager, VersionControlIntegration
from onboarding_flow.models.domain import SessionSnapshot, StepContent
from onboarding_flow.models.health import (
    CircuitBreakerStatus,
    ComponentDataSync,
    ComponentHealth,
    ComponentRecoveryResult,
    EventDistributionResult,
    OnboardingEvent,
    StepCoordinationResult,
    SystemHealthReport,
    SystemInitialization,
    SystemRecoveryResult,
    WorkflowResult,
)
from onboarding_flow.monitoring.metrics import MetricsCollector
from onboarding_flow.resilience.circuit_breaker import CircuitBreaker, Clock, utc_now
from onboarding_flow.result import Err, Ok, Result, err

log = structlog.get_logger(__name__)

ORCHESTRATOR = "orchestrator"
DOCUMENTATION = "documentation"
VERSION_CONTROL = "version_control"

COMPLETE_ONBOARDING = "complete_onboarding"
RECOVERY_OPTIONS = ("resume", "restart")

EventHandler = Callable[[OnboardingEvent], Any]
RecoveryAction = Callable[[], Any]


@dataclass
class _Component:
    breaker: CircuitBreaker
    recoverable: bool = True
    recovery_action: RecoveryAction | None = None


class ResilienceCoordinator:
    """Coordinate the orchestrator and its collaborators behind circuit breakers.

    Args:
        orchestrator: Orchestrator whose operations are coordinated
        documentation: Optional documentation collaborator
        version_control: Optional version-control collaborator
        settings: Resilience thresholds; the orchestrator's settings by default
        clock: Time source for breaker cooldowns
    """

    def __init__(
        self,
        orchestrator: OnboardingOrchestrator,
        documentation: DocumentationManager | None = None,
        version_control: VersionControlIntegration | None = None,
        settings: OnboardingSettings | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.orchestrator = orchestrator
        self.documentation = documentation
        self.version_control = version_control
        self.settings = settings or orchestrator.settings
        self._clock = clock
        self._components: dict[str, _Component] = {}
        self._handlers: dict[EventType, list[tuple[str, EventHandler]]] = {}
        self._interruptions: dict[str, str] = {}
        self._running: set[str] = set()
        self._project_path: Path | None = None
        self.initialized = False

        self.register_component(ORCHESTRATOR)
        if documentation is not None:
            self.register_component(DOCUMENTATION, recovery_action=self._reinitialize_documentation)
        if version_control is not None:
            self.register_component(VERSION_CONTROL, recovery_action=version_control.initialize_git_monitoring)

    # Components and breakers

    def register_component(
        self,
        name: str,
        recoverable: bool = True,
        recovery_action: RecoveryAction | None = None,
    ) -> None:
        """Track a component under its own circuit breaker. Re-registering resets it."""
        resilience = self.settings.resilience
        breaker = CircuitBreaker(
            name,
            failure_threshold=resilience.failure_threshold,
            cooldown=timedelta(seconds=resilience.cooldown_seconds),
            clock=self._clock,
        )
        self._components[name] = _Component(breaker, recoverable, recovery_action)
        log.debug("component_registered", component=name, recoverable=recoverable)

    def _unknown_component(self, name: str) -> Err:
        return err(NotFoundError, f"Unknown component: {name}", ErrorCode.COMPONENT_NOT_FOUND, component=name)

    def record_component_failure(self, name: str, error: str | None = None) -> Result[CircuitBreakerStatus]:
        """Count one failure against a component's breaker."""
        component = self._components.get(name)
        if component is None:
            return self._unknown_component(name)
        state = component.breaker.record_failure(error)
        log.warning(
            "component_failure_recorded",
            component=name,
            failure_count=component.breaker.failure_count,
            state=str(state),
            error=error,
        )
        return Ok(component.breaker.status())

    def simulate_component_failure(self, name: str) -> Result[CircuitBreakerStatus]:
        """Inject a failure, as if a call to the component had raised."""
        return self.record_component_failure(name, "simulated failure")

    def simulate_component_degradation(self, name: str, health_score: float) -> Result[CircuitBreakerStatus]:
        """Set a component's degradation score, clamped to [0, 1]."""
        component = self._components.get(name)
        if component is None:
            return self._unknown_component(name)
        component.breaker.degrade(health_score)
        return Ok(component.breaker.status())

    def get_circuit_breaker_status(self, name: str) -> Result[CircuitBreakerStatus]:
        component = self._components.get(name)
        if component is None:
            return self._unknown_component(name)
        return Ok(component.breaker.status())

    def get_component_status(self) -> dict[str, CircuitBreakerStatus]:
        return {name: c.breaker.status() for name, c in self._components.items()}

    async def call_component(
        self,
        name: str,
        operation: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> Result[Any]:
        """Call a collaborator through its breaker.

        Open breakers refuse the call with COMPONENT_UNAVAILABLE. A call that
        raises is counted as a failure and returned as COLLABORATOR_FAILED. A
        successful probe through a half-open breaker closes it.
        """
        component = self._components.get(name)
        if component is None:
            return self._unknown_component(name)

        breaker = component.breaker
        if not breaker.allow_request():
            log.info("component_call_refused", component=name, next_retry_time=str(breaker.next_retry_time))
            return Err(
                CollaboratorError(
                    f"Component {name} is unavailable (circuit open)",
                    name,
                    ErrorCode.COMPONENT_UNAVAILABLE,
                    {"next_retry_time": breaker.next_retry_time.isoformat() if breaker.next_retry_time else None},
                )
            )

        probing = breaker.state == CircuitState.HALF_OPEN
        try:
            value = operation(*args, **kwargs)
            if inspect.isawaitable(value):
                value = await value
        except Exception as e:
            self.record_component_failure(name, str(e))
            return Err(CollaboratorError(f"Component {name} failed: {e}", name, ErrorCode.COLLABORATOR_FAILED))

        if probing:
            log.info("circuit_probe_succeeded", component=name)
            breaker.reset()
            MetricsCollector.record_recovery_attempt("circuit_probe", True)
        return Ok(value)

    async def attempt_component_recovery(self, name: str) -> Result[ComponentRecoveryResult]:
        """Reset a recoverable component, running its recovery action first.

        The reset happens whatever the recovery action does. Unknown and
        non-recoverable components report ``recovery_successful=False``.
        """
        component = self._components.get(name)
        if component is None or not component.recoverable:
            log.warning("component_recovery_unavailable", component=name)
            MetricsCollector.record_recovery_attempt("component", False)
            return Ok(
                ComponentRecoveryResult(
                    component=name,
                    recovery_successful=False,
                    component_status=self._component_health(name).status if component else HealthStatus.FAILED,
                )
            )

        actions: list[str] = []
        if component.recovery_action is not None:
            try:
                outcome = component.recovery_action()
                if inspect.isawaitable(outcome):
                    await outcome
                actions.append("reinitialize")
            except Exception as e:
                log.warning("component_recovery_action_failed", component=name, error=str(e))
                actions.append("reinitialize_failed")

        component.breaker.reset()
        actions.extend(["reset_circuit_breaker", "clear_degradation"])
        MetricsCollector.record_recovery_attempt("component", True)
        log.info("component_recovered", component=name, actions=actions)
        return Ok(
            ComponentRecoveryResult(
                component=name,
                recovery_successful=True,
                component_status=HealthStatus.HEALTHY,
                recovery_actions=tuple(actions),
            )
        )

    # Health

    def _component_health(self, name: str) -> ComponentHealth:
        breaker = self._components[name].breaker
        state = breaker.state
        if state != CircuitState.CLOSED or breaker.failure_count > 0 or breaker.health_score == 0:
            status = HealthStatus.FAILED
        elif breaker.health_score < self.settings.resilience.degradation_threshold:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.HEALTHY
        return ComponentHealth(name, status, state, breaker.failure_count, breaker.health_score)

    @staticmethod
    def _overall(failed: int, healthy: int) -> HealthStatus:
        if failed == 0:
            return HealthStatus.HEALTHY
        if failed < healthy:
            return HealthStatus.DEGRADED
        return HealthStatus.CRITICAL

    def perform_health_check(self) -> SystemHealthReport:
        components = {name: self._component_health(name) for name in self._components}
        counts = {status: 0 for status in (HealthStatus.HEALTHY, HealthStatus.DEGRADED, HealthStatus.FAILED)}
        for health in components.values():
            counts[health.status] += 1

        overall = self._overall(counts[HealthStatus.FAILED], counts[HealthStatus.HEALTHY])
        log.info(
            "health_check_completed",
            overall_status=str(overall),
            healthy=counts[HealthStatus.HEALTHY],
            degraded=counts[HealthStatus.DEGRADED],
            failed=counts[HealthStatus.FAILED],
        )
        return SystemHealthReport(
            overall_status=overall,
            components=components,
            healthy_count=counts[HealthStatus.HEALTHY],
            degraded_count=counts[HealthStatus.DEGRADED],
            failed_count=counts[HealthStatus.FAILED],
            checked_at=datetime.now(UTC),
        )

    async def attempt_system_recovery(self) -> Result[SystemRecoveryResult]:
        """Recover every component that is not healthy."""
        recovered: list[str] = []
        unrecoverable: list[str] = []
        for name in list(self._components):
            if self._component_health(name).status == HealthStatus.HEALTHY:
                continue
            result = await self.attempt_component_recovery(name)
            (recovered if result.value.recovery_successful else unrecoverable).append(name)

        report = self.perform_health_check()
        log.info(
            "system_recovery_completed",
            recovered=recovered,
            unrecoverable=unrecoverable,
            overall_status=str(report.overall_status),
        )
        return Ok(SystemRecoveryResult(tuple(recovered), tuple(unrecoverable), report.overall_status))

    # Events

    def register_event_handler(self, event_type: EventType, handler: EventHandler, name: str | None = None) -> None:
        handler_name = name or getattr(handler, "__name__", repr(handler))
        self._handlers.setdefault(event_type, []).append((handler_name, handler))

    async def distribute_event(self, event: OnboardingEvent) -> Result[EventDistributionResult]:
        """Invoke every handler of the event's type; failures are collected, not raised."""
        notified = 0
        failed: list[str] = []
        for handler_name, handler in list(self._handlers.get(event.event_type, [])):
            try:
                outcome = handler(event)
                if inspect.isawaitable(outcome):
                    await outcome
                notified += 1
            except Exception as e:
                log.warning(
                    "event_handler_failed",
                    event_type=str(event.event_type),
                    handler=handler_name,
                    error=str(e),
                )
                failed.append(handler_name)

        log.debug(
            "event_distributed",
            event_type=str(event.event_type),
            session_id=event.session_id,
            handlers_notified=notified,
            failed_handlers=len(failed),
        )
        return Ok(EventDistributionResult(event.event_type, notified, tuple(failed)))

    # System lifecycle

    async def _reinitialize_documentation(self) -> Any:
        return await self.documentation.initialize_structure(self._project_path)

    async def initialize_system(self, project_path: str | Path | None = None) -> Result[SystemInitialization]:
        """Initialize collaborators through their breakers."""
        self._project_path = Path(project_path) if project_path is not None else None
        initialized = [ORCHESTRATOR]
        failed: list[str] = []
        git_info = None
        doc_paths: tuple[str, ...] = ()

        if self.documentation is not None:
            result = await self.call_component(
                DOCUMENTATION, self.documentation.initialize_structure, self._project_path
            )
            if result.is_success:
                initialized.append(DOCUMENTATION)
                doc_paths = tuple(result.value)
            else:
                failed.append(DOCUMENTATION)

        if self.version_control is not None:
            result = await self.call_component(VERSION_CONTROL, self.version_control.initialize_git_monitoring)
            if result.is_success:
                initialized.append(VERSION_CONTROL)
                git_info = result.value
            else:
                failed.append(VERSION_CONTROL)

        status = self._overall(len(failed), len(initialized))
        self.initialized = True
        log.info(
            "system_initialized",
            status=str(status),
            initialized=initialized,
            failed=failed,
        )
        return Ok(SystemInitialization(status, tuple(initialized), tuple(failed), git_info, doc_paths))

    async def shutdown(self) -> None:
        """Drop handlers and pending interruptions."""
        self._handlers.clear()
        self._interruptions.clear()
        self._running.clear()
        self.initialized = False
        log.info("system_shutdown", components=list(self._components))

    # Coordinated operations

    async def start_onboarding(
        self,
        user_type: UserType,
        role: DeveloperRole | None = None,
        user_id: str | None = None,
        platform: str | None = None,
    ) -> Result[SessionSnapshot]:
        """Start a session and announce it to ``session_started`` handlers."""
        result = self.orchestrator.start_onboarding(user_type, role, user_id, platform)
        if result.is_success:
            await self.distribute_event(
                OnboardingEvent(
                    EventType.SESSION_STARTED,
                    result.value.session_id,
                    {"user_type": str(user_type), "role": str(role) if role else None},
                )
            )
        return result

    async def coordinate_step_completion(
        self,
        session_id: str,
        step_id: str,
        validation_data: Mapping[str, Any] | None = None,
    ) -> Result[StepCoordinationResult]:
        """Complete a step and propagate it to every collaborator.

        Always returns ``Ok``; step errors and collaborator failures are
        reported in the result.
        """
        involved = [ORCHESTRATOR]
        try:
            completion = await self.orchestrator.complete_step(session_id, step_id, validation_data)
        except Exception as e:
            self.record_component_failure(ORCHESTRATOR, str(e))
            log.error("orchestrator_step_failed", session_id=session_id, step_id=step_id, error=str(e))
            return Ok(
                StepCoordinationResult(
                    session_id, step_id, False, False, False, tuple(involved),
                    errors=(str(e),), error_code=ErrorCode.COLLABORATOR_FAILED.value,
                )
            )

        if not completion.is_success:
            return Ok(
                StepCoordinationResult(
                    session_id, step_id, False, False, False, tuple(involved),
                    errors=(completion.error.message,), error_code=completion.error.code.value,
                )
            )

        errors: list[str] = []
        documentation_updated = False
        if self.documentation is not None and not completion.value.already_completed:
            involved.append(DOCUMENTATION)
            doc_result = await self.call_component(
                DOCUMENTATION, self.documentation.record_progress, session_id, step_id
            )
            documentation_updated = doc_result.is_success
            if not doc_result.is_success:
                errors.append(doc_result.error.message)

        if not completion.value.already_completed:
            await self.distribute_event(
                OnboardingEvent(
                    EventType.STEP_COMPLETED,
                    session_id,
                    {"step_id": step_id, "percent_complete": completion.value.percent_complete},
                )
            )
            for milestone in completion.value.new_milestones:
                await self.distribute_event(
                    OnboardingEvent(
                        EventType.MILESTONE_ACHIEVED,
                        session_id,
                        {"milestone_id": milestone.milestone_id, "significance": str(milestone.significance)},
                    )
                )

        return Ok(
            StepCoordinationResult(
                session_id=session_id,
                step_id=step_id,
                step_completed=True,
                documentation_updated=documentation_updated,
                progress_tracked=True,
                components_involved=tuple(involved),
                errors=tuple(errors),
                milestones=tuple(m.milestone_id for m in completion.value.new_milestones),
            )
        )

    async def get_step_content_with_fallback(self, session_id: str, step_id: str) -> Result[StepContent]:
        """Step content enriched by the documentation collaborator.

        Falls back to catalog content when the collaborator is missing,
        refused by its breaker, or failing.
        """
        base = self.orchestrator.get_step_content(session_id, step_id)
        if not base.is_success:
            return base

        if self.documentation is None:
            reason = "Documentation component unavailable: not configured"
        else:
            doc = await self.call_component(DOCUMENTATION, self.documentation.get_step_documentation, step_id)
            if doc.is_success:
                return Ok(replace(base.value, documentation=doc.value))
            reason = f"Documentation component unavailable: {doc.error.message}"

        log.info("step_content_fallback", session_id=session_id, step_id=step_id, reason=reason)
        return Ok(replace(base.value, is_fallback=True, fallback_reason=reason))

    async def synchronize_component_data(self, session_id: str) -> Result[ComponentDataSync]:
        """Persist the session and refresh what collaborators know about it."""
        session = self.orchestrator.get_session(session_id)
        if not session.is_success:
            return session

        synchronized: list[str] = []
        errors: list[str] = []

        saved = await self.orchestrator.save_session_state(session_id)
        if saved.is_success:
            synchronized.append(ORCHESTRATOR)
        else:
            errors.append(saved.error.message)

        if self.documentation is not None:
            topic = str(session.value.role) if session.value.role else str(session.value.user_type)
            doc = await self.call_component(DOCUMENTATION, self.documentation.get_role_specific_documentation, topic)
            if doc.is_success:
                synchronized.append(DOCUMENTATION)
            else:
                errors.append(doc.error.message)

        if self.version_control is not None:
            vc = await self.call_component(VERSION_CONTROL, self.version_control.initialize_git_monitoring)
            if vc.is_success:
                synchronized.append(VERSION_CONTROL)
            else:
                errors.append(vc.error.message)

        log.info("component_data_synchronized", session_id=session_id, components=synchronized, errors=len(errors))
        return Ok(ComponentDataSync(session_id, tuple(synchronized), tuple(errors)))

    # Workflows

    def interrupt_workflow(self, session_id: str, reason: str = "interrupted by user") -> bool:
        """Ask a running workflow for ``session_id`` to stop before its next step.

        Returns ``False`` and records nothing when no workflow is running for
        the session.
        """
        if session_id not in self._running:
            log.warning("workflow_interrupt_ignored", session_id=session_id, reason=reason)
            return False
        self._interruptions[session_id] = reason
        log.info("workflow_interrupt_requested", session_id=session_id, reason=reason)
        return True

    async def execute_workflow(
        self,
        session_id: str,
        workflow_type: str = COMPLETE_ONBOARDING,
        validation_data: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> Result[WorkflowResult]:
        """Drive a session through its available steps in catalog order.

        Interruptions are honoured between steps. An interrupted run saves
        the session so it can be recovered, and reports ``resume`` and
        ``restart`` as recovery options. A run that completes every step
        marks the session complete.

        Args:
            session_id: Session to drive
            workflow_type: Only ``complete_onboarding`` is supported
            validation_data: Validation data per step id
        """
        if workflow_type != COMPLETE_ONBOARDING:
            return err(
                OnboardingError,
                f"Unknown workflow type: {workflow_type}",
                ErrorCode.UNKNOWN_WORKFLOW,
                workflow_type=workflow_type,
            )

        log.info("workflow_started", session_id=session_id, workflow_type=workflow_type)
        self._running.add(session_id)
        try:
            return await self._drive_workflow(session_id, workflow_type, validation_data or {})
        finally:
            self._running.discard(session_id)
            self._interruptions.pop(session_id, None)

    async def _drive_workflow(
        self,
        session_id: str,
        workflow_type: str,
        data: Mapping[str, Mapping[str, Any]],
    ) -> Result[WorkflowResult]:
        executed: list[str] = []
        while True:
            if session_id in self._interruptions:
                reason = self._interruptions.pop(session_id)
                saved = await self.orchestrator.save_session_state(session_id)
                errors = () if saved.is_success else (saved.error.message,)
                log.warning(
                    "workflow_interrupted",
                    session_id=session_id,
                    reason=reason,
                    steps_executed=len(executed),
                    saved=saved.is_success,
                )
                return Ok(
                    WorkflowResult(
                        session_id=session_id,
                        workflow_type=workflow_type,
                        steps_executed=tuple(executed),
                        workflow_completed=False,
                        workflow_interrupted=True,
                        interruption_reason=reason,
                        recovery_options=RECOVERY_OPTIONS,
                        errors=errors,
                    )
                )

            available = self.orchestrator.get_available_steps(session_id)
            if not available.is_success:
                return available
            if not available.value:
                break

            step_id = available.value[0].id
            outcome = await self.coordinate_step_completion(session_id, step_id, data.get(step_id))
            if not outcome.value.step_completed:
                log.warning("workflow_step_failed", session_id=session_id, step_id=step_id)
                return Ok(
                    WorkflowResult(
                        session_id=session_id,
                        workflow_type=workflow_type,
                        steps_executed=tuple(executed),
                        workflow_completed=False,
                        errors=outcome.value.errors,
                    )
                )
            executed.append(step_id)

        completed = self.orchestrator.mark_session_complete(session_id)
        if completed.is_success:
            await self.distribute_event(
                OnboardingEvent(EventType.SESSION_COMPLETED, session_id, {"steps_executed": len(executed)})
            )
        log.info("workflow_completed", session_id=session_id, steps_executed=len(executed))
        return Ok(
            WorkflowResult(
                session_id=session_id,
                workflow_type=workflow_type,
                steps_executed=tuple(executed),
                workflow_completed=True,
            )
        )
