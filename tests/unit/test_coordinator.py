"""Tests for ResilienceCoordinator.

Tests cover:
1. Circuit breakers around collaborator calls
2. Health checks and recovery
3. Event distribution
4. Coordinated step completion and content fallback
5. Workflow execution and interruption
"""

from unittest.mock import AsyncMock

import pytest

from onboarding_flow.enums import CircuitState, DeveloperRole, EventType, HealthStatus, UserType
from onboarding_flow.exceptions import ErrorCode
from onboarding_flow.models.health import OnboardingEvent
from onboarding_flow.resilience.coordinator import (
    DOCUMENTATION,
    ORCHESTRATOR,
    VERSION_CONTROL,
    ResilienceCoordinator,
)


@pytest.fixture
def coordinator(orchestrator, documentation, version_control, clock) -> ResilienceCoordinator:
    """Coordinator with fake collaborators and a controllable clock."""
    return ResilienceCoordinator(
        orchestrator,
        documentation=documentation,
        version_control=version_control,
        clock=clock,
    )


@pytest.fixture
def events(coordinator) -> list[OnboardingEvent]:
    """Every event the coordinator distributes."""
    received: list[OnboardingEvent] = []
    for event_type in EventType:
        coordinator.register_event_handler(event_type, received.append, name=f"collect-{event_type}")
    return received


class TestCircuitBreakers:
    """Tests for failure recording and guarded calls."""

    def test_components_registered(self, coordinator):
        """Configured collaborators each get a breaker."""
        assert set(coordinator.get_component_status()) == {ORCHESTRATOR, DOCUMENTATION, VERSION_CONTROL}

    def test_only_configured_collaborators_registered(self, orchestrator):
        """Missing collaborators are not tracked."""
        assert set(ResilienceCoordinator(orchestrator).get_component_status()) == {ORCHESTRATOR}

    def test_third_failure_opens(self, coordinator):
        """The third recorded failure opens the breaker."""
        coordinator.simulate_component_failure(DOCUMENTATION)
        status = coordinator.simulate_component_failure(DOCUMENTATION).value
        assert status.state == CircuitState.CLOSED
        status = coordinator.simulate_component_failure(DOCUMENTATION).value
        assert status.state == CircuitState.OPEN
        assert status.failure_count == 3

    def test_unknown_component(self, coordinator):
        """Unknown component names are reported."""
        assert coordinator.simulate_component_failure("cache").code == ErrorCode.COMPONENT_NOT_FOUND
        assert coordinator.get_circuit_breaker_status("cache").code == ErrorCode.COMPONENT_NOT_FOUND
        assert coordinator.simulate_component_degradation("cache", 0.5).code == ErrorCode.COMPONENT_NOT_FOUND

    @pytest.mark.asyncio
    async def test_call_failure_is_counted(self, coordinator, documentation):
        """A raising collaborator becomes a failed result and a recorded failure."""
        documentation.fail = True

        result = await coordinator.call_component(DOCUMENTATION, documentation.get_step_documentation, "x")

        assert result.code == ErrorCode.COLLABORATOR_FAILED
        assert result.error.component == DOCUMENTATION
        status = coordinator.get_circuit_breaker_status(DOCUMENTATION).value
        assert status.failure_count == 1
        assert "documentation store offline" in status.last_error

    @pytest.mark.asyncio
    async def test_open_breaker_refuses_calls(self, coordinator, documentation):
        """Open breakers do not reach the collaborator."""
        documentation.get_step_documentation = AsyncMock(return_value="doc")
        for _ in range(3):
            coordinator.simulate_component_failure(DOCUMENTATION)

        result = await coordinator.call_component(DOCUMENTATION, documentation.get_step_documentation, "x")

        assert result.code == ErrorCode.COMPONENT_UNAVAILABLE
        documentation.get_step_documentation.assert_not_called()

    @pytest.mark.asyncio
    async def test_successful_probe_closes(self, coordinator, documentation, clock):
        """A successful call after the cooldown closes the breaker."""
        for _ in range(3):
            coordinator.simulate_component_failure(DOCUMENTATION)
        clock.advance(60)
        assert coordinator.get_circuit_breaker_status(DOCUMENTATION).value.state == CircuitState.HALF_OPEN

        result = await coordinator.call_component(DOCUMENTATION, documentation.get_step_documentation, "x")

        assert result.is_success
        status = coordinator.get_circuit_breaker_status(DOCUMENTATION).value
        assert status.state == CircuitState.CLOSED
        assert status.failure_count == 0

    @pytest.mark.asyncio
    async def test_sync_operations_supported(self, coordinator):
        """Plain callables can be guarded too."""
        result = await coordinator.call_component(ORCHESTRATOR, lambda a, b: a + b, 2, 3)
        assert result.value == 5


class TestHealthAndRecovery:
    """Tests for perform_health_check() and recovery."""

    @pytest.mark.asyncio
    async def test_recovery_after_five_failures(self, coordinator):
        """Five failures then recovery leaves the component healthy."""
        for _ in range(5):
            coordinator.simulate_component_failure(DOCUMENTATION)

        result = (await coordinator.attempt_component_recovery(DOCUMENTATION)).unwrap()

        assert result.recovery_successful
        assert result.component_status == HealthStatus.HEALTHY
        assert "reset_circuit_breaker" in result.recovery_actions
        assert coordinator.get_circuit_breaker_status(DOCUMENTATION).value.state == CircuitState.CLOSED
        report = coordinator.perform_health_check()
        assert report.components[DOCUMENTATION].status == HealthStatus.HEALTHY
        assert report.overall_status == HealthStatus.HEALTHY

    def test_all_healthy(self, coordinator):
        """Fresh components are healthy."""
        report = coordinator.perform_health_check()
        assert report.overall_status == HealthStatus.HEALTHY
        assert report.healthy_count == 3

    def test_single_failure_fails_component(self, coordinator):
        """One unrecovered failure marks the component failed while its breaker stays closed."""
        coordinator.simulate_component_failure(VERSION_CONTROL)
        report = coordinator.perform_health_check()
        assert report.components[VERSION_CONTROL].status == HealthStatus.FAILED
        assert report.components[VERSION_CONTROL].circuit_state == CircuitState.CLOSED
        assert report.failed_count == 1
        assert report.overall_status == HealthStatus.DEGRADED

    @pytest.mark.asyncio
    async def test_recovery_clears_single_failure(self, coordinator):
        """Recovering a component with one failure makes it healthy again."""
        coordinator.simulate_component_failure(VERSION_CONTROL)
        (await coordinator.attempt_component_recovery(VERSION_CONTROL)).unwrap()
        report = coordinator.perform_health_check()
        assert report.components[VERSION_CONTROL].status == HealthStatus.HEALTHY
        assert report.overall_status == HealthStatus.HEALTHY

    @pytest.mark.parametrize("score,expected", [(0.69, HealthStatus.DEGRADED), (0.7, HealthStatus.HEALTHY)])
    def test_degradation_threshold(self, coordinator, score, expected):
        """Scores below 0.7 degrade a component."""
        coordinator.simulate_component_degradation(DOCUMENTATION, score)
        assert coordinator.perform_health_check().components[DOCUMENTATION].status == expected

    def test_zero_score_fails(self, coordinator):
        """A zero health score counts as failed."""
        coordinator.simulate_component_degradation(DOCUMENTATION, 0.0)
        report = coordinator.perform_health_check()
        assert report.components[DOCUMENTATION].status == HealthStatus.FAILED
        assert report.overall_status == HealthStatus.DEGRADED

    def test_majority_failed_is_critical(self, coordinator):
        """More failed than healthy components is critical."""
        for name in (DOCUMENTATION, VERSION_CONTROL):
            for _ in range(3):
                coordinator.simulate_component_failure(name)
        report = coordinator.perform_health_check()
        assert report.failed_count == 2
        assert report.overall_status == HealthStatus.CRITICAL

    @pytest.mark.asyncio
    async def test_recovery_runs_recovery_action(self, coordinator, documentation):
        """Documentation recovery reinitializes the documentation structure."""
        await coordinator.attempt_component_recovery(DOCUMENTATION)
        assert documentation.initialized == 1

    @pytest.mark.asyncio
    async def test_failing_recovery_action_still_resets(self, coordinator, documentation):
        """The breaker is reset even when the recovery action fails."""
        for _ in range(3):
            coordinator.simulate_component_failure(DOCUMENTATION)
        documentation.fail = True

        result = (await coordinator.attempt_component_recovery(DOCUMENTATION)).value

        assert result.recovery_successful
        assert result.recovery_actions[0] == "reinitialize_failed"
        assert coordinator.get_circuit_breaker_status(DOCUMENTATION).value.failure_count == 0

    @pytest.mark.asyncio
    async def test_unrecoverable_components(self, coordinator):
        """Unknown and non-recoverable components are not recovered."""
        coordinator.register_component("cache", recoverable=False)
        for _ in range(3):
            coordinator.simulate_component_failure("cache")

        assert not (await coordinator.attempt_component_recovery("cache")).value.recovery_successful
        assert not (await coordinator.attempt_component_recovery("missing")).value.recovery_successful
        assert coordinator.get_circuit_breaker_status("cache").value.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_system_recovery(self, coordinator):
        """System recovery recovers every unhealthy recoverable component."""
        coordinator.register_component("cache", recoverable=False)
        for _ in range(3):
            coordinator.simulate_component_failure(DOCUMENTATION)
            coordinator.simulate_component_failure("cache")
        coordinator.simulate_component_degradation(VERSION_CONTROL, 0.3)

        result = (await coordinator.attempt_system_recovery()).unwrap()

        assert result.recovered_components == (DOCUMENTATION, VERSION_CONTROL)
        assert result.unrecoverable_components == ("cache",)
        assert result.overall_status == HealthStatus.DEGRADED


class TestEvents:
    """Tests for distribute_event()."""

    @pytest.mark.asyncio
    async def test_handler_failures_are_collected(self, coordinator):
        """Failing handlers are reported and the rest still run."""
        received = []

        async def async_handler(event):
            received.append(("async", event.session_id))

        def broken(event):
            raise ValueError("handler bug")

        coordinator.register_event_handler(EventType.STEP_COMPLETED, broken)
        coordinator.register_event_handler(EventType.STEP_COMPLETED, async_handler)
        coordinator.register_event_handler(EventType.STEP_COMPLETED, lambda e: received.append(("sync", e.session_id)))

        result = (await coordinator.distribute_event(OnboardingEvent(EventType.STEP_COMPLETED, "s-1"))).unwrap()

        assert result.handlers_notified == 2
        assert result.failed_handlers == ("broken",)
        assert received == [("async", "s-1"), ("sync", "s-1")]

    @pytest.mark.asyncio
    async def test_no_handlers(self, coordinator):
        """Events without handlers notify nobody."""
        result = (await coordinator.distribute_event(OnboardingEvent(EventType.SESSION_COMPLETED, "s-1"))).value
        assert result.handlers_notified == 0

    @pytest.mark.asyncio
    async def test_start_onboarding_emits_event(self, coordinator, events):
        """Starting through the coordinator announces the session."""
        session = (await coordinator.start_onboarding(UserType.HUMAN, DeveloperRole.BACKEND)).unwrap()
        assert [(e.event_type, e.session_id) for e in events] == [(EventType.SESSION_STARTED, session.session_id)]
        assert events[0].payload == {"user_type": "human", "role": "backend"}

    @pytest.mark.asyncio
    async def test_shutdown_drops_handlers(self, coordinator, events):
        """Handlers are gone after shutdown."""
        await coordinator.shutdown()
        await coordinator.distribute_event(OnboardingEvent(EventType.STEP_COMPLETED, "s-1"))
        assert events == []
        assert not coordinator.initialized


class TestInitialization:
    """Tests for initialize_system()."""

    @pytest.mark.asyncio
    async def test_all_components_initialize(self, coordinator, documentation):
        """Every collaborator initializes."""
        result = (await coordinator.initialize_system("/tmp/project")).unwrap()

        assert result.status == HealthStatus.HEALTHY
        assert result.initialized_components == (ORCHESTRATOR, DOCUMENTATION, VERSION_CONTROL)
        assert result.git.branch == "main"
        assert result.documentation_paths == ("docs/onboarding",)
        assert documentation.initialized == 1
        assert coordinator.initialized

    @pytest.mark.asyncio
    async def test_failing_collaborator(self, coordinator, version_control):
        """A failing collaborator degrades initialization without aborting it."""
        version_control.fail = True

        result = (await coordinator.initialize_system()).unwrap()

        assert result.failed_components == (VERSION_CONTROL,)
        assert result.status == HealthStatus.DEGRADED
        assert result.git is None
        assert coordinator.get_circuit_breaker_status(VERSION_CONTROL).value.failure_count == 1


class TestCoordinatedSteps:
    """Tests for coordinate_step_completion() and content fallback."""

    @pytest.mark.asyncio
    async def test_step_propagates_to_collaborators(self, coordinator, documentation, events):
        """Completion records documentation progress and emits events."""
        session = (await coordinator.start_onboarding(UserType.HUMAN, DeveloperRole.FRONTEND)).unwrap()

        result = (await coordinator.coordinate_step_completion(session.session_id, "environment-setup")).unwrap()

        assert result.step_completed
        assert result.documentation_updated
        assert result.progress_tracked
        assert result.components_involved == (ORCHESTRATOR, DOCUMENTATION)
        assert result.milestones == ("environment-ready",)
        assert documentation.progress == [(session.session_id, "environment-setup")]
        assert [e.event_type for e in events] == [
            EventType.SESSION_STARTED,
            EventType.STEP_COMPLETED,
            EventType.MILESTONE_ACHIEVED,
        ]

    @pytest.mark.asyncio
    async def test_documentation_failure_does_not_fail_step(self, coordinator, documentation):
        """Collaborator failures are reported, not propagated."""
        session = (await coordinator.start_onboarding(UserType.HUMAN, DeveloperRole.FRONTEND)).unwrap()
        documentation.fail = True

        result = (await coordinator.coordinate_step_completion(session.session_id, "environment-setup")).unwrap()

        assert result.step_completed
        assert not result.documentation_updated
        assert len(result.errors) == 1
        assert coordinator.orchestrator.get_session(session.session_id).value.completed_steps == (
            "environment-setup",
        )

    @pytest.mark.asyncio
    async def test_step_error_is_reported(self, coordinator, documentation):
        """Orchestrator errors come back with their code."""
        session = (await coordinator.start_onboarding(UserType.HUMAN, DeveloperRole.BACKEND)).unwrap()

        result = (await coordinator.coordinate_step_completion(session.session_id, "database-setup")).unwrap()

        assert not result.step_completed
        assert result.error_code == ErrorCode.PREREQUISITES_NOT_MET
        assert documentation.progress == []

    @pytest.mark.asyncio
    async def test_orchestrator_crash_is_contained(self, coordinator):
        """Unexpected orchestrator exceptions count against its breaker."""
        coordinator.orchestrator.complete_step = AsyncMock(side_effect=RuntimeError("bug"))

        result = (await coordinator.coordinate_step_completion("s-1", "environment-setup")).unwrap()

        assert not result.step_completed
        assert result.error_code == ErrorCode.COLLABORATOR_FAILED
        assert coordinator.get_circuit_breaker_status(ORCHESTRATOR).value.failure_count == 1

    @pytest.mark.asyncio
    async def test_content_includes_documentation(self, coordinator, documentation):
        """Documentation is attached when the collaborator responds."""
        documentation.steps["environment-setup"] = "# Environment setup\n"
        session = (await coordinator.start_onboarding(UserType.HUMAN, DeveloperRole.FRONTEND)).unwrap()

        content = (await coordinator.get_step_content_with_fallback(session.session_id, "environment-setup")).unwrap()

        assert content.documentation == "# Environment setup\n"
        assert not content.is_fallback

    @pytest.mark.asyncio
    async def test_content_falls_back_when_breaker_open(self, coordinator):
        """An open documentation breaker yields catalog content."""
        session = (await coordinator.start_onboarding(UserType.HUMAN, DeveloperRole.FRONTEND)).unwrap()
        for _ in range(3):
            coordinator.simulate_component_failure(DOCUMENTATION)

        content = (await coordinator.get_step_content_with_fallback(session.session_id, "environment-setup")).unwrap()

        assert content.is_fallback
        assert "component unavailable" in content.fallback_reason
        assert content.platform_instructions

    @pytest.mark.asyncio
    async def test_content_without_documentation(self, orchestrator):
        """Without a documentation collaborator, content is always a fallback."""
        coordinator = ResilienceCoordinator(orchestrator)
        session = orchestrator.start_onboarding(UserType.AGENT).unwrap()

        content = (await coordinator.get_step_content_with_fallback(session.session_id, "context-loading")).unwrap()

        assert content.is_fallback
        missing = await coordinator.get_step_content_with_fallback(session.session_id, "nope")
        assert missing.code == ErrorCode.STEP_NOT_FOUND

    @pytest.mark.asyncio
    async def test_synchronize_component_data(self, coordinator):
        """Synchronization saves the session and touches every collaborator."""
        session = (await coordinator.start_onboarding(UserType.HUMAN, DeveloperRole.FRONTEND)).unwrap()

        result = (await coordinator.synchronize_component_data(session.session_id)).unwrap()

        assert result.synchronized_components == (ORCHESTRATOR, DOCUMENTATION, VERSION_CONTROL)
        assert result.errors == ()
        assert (await coordinator.orchestrator.recover_session(session.session_id)).is_success
        missing = await coordinator.synchronize_component_data("missing")
        assert missing.code == ErrorCode.SESSION_NOT_FOUND


class TestWorkflows:
    """Tests for execute_workflow() and interrupt_workflow()."""

    @pytest.mark.asyncio
    async def test_agent_workflow_completes(self, coordinator, events):
        """A workflow runs every step and completes the session."""
        session = (await coordinator.start_onboarding(UserType.AGENT)).unwrap()

        result = (await coordinator.execute_workflow(session.session_id)).unwrap()

        assert result.workflow_completed
        assert result.steps_executed == ("context-loading", "schema-validation", "integration-test")
        assert coordinator.orchestrator.get_session(session.session_id).value.is_complete
        assert events[-1].event_type == EventType.SESSION_COMPLETED

    @pytest.mark.asyncio
    async def test_workflow_follows_dependencies(self, coordinator):
        """Steps run in catalog order across branches."""
        session = (await coordinator.start_onboarding(UserType.HUMAN, DeveloperRole.FRONTEND)).unwrap()

        result = (await coordinator.execute_workflow(session.session_id)).unwrap()

        assert len(result.steps_executed) == 8
        assert result.steps_executed[-1] == "documentation-review"
        certificate = coordinator.orchestrator.generate_certificate(session.session_id)
        assert certificate.is_success

    @pytest.mark.asyncio
    async def test_interrupt_between_steps(self, coordinator):
        """An interrupt stops the workflow and saves the session for resuming."""
        session = (await coordinator.start_onboarding(UserType.AGENT)).unwrap()
        sid = session.session_id
        coordinator.register_event_handler(
            EventType.STEP_COMPLETED, lambda event: coordinator.interrupt_workflow(sid, "user paused")
        )

        result = (await coordinator.execute_workflow(sid)).unwrap()

        assert result.workflow_interrupted
        assert not result.workflow_completed
        assert result.interruption_reason == "user paused"
        assert result.steps_executed == ("context-loading",)
        assert result.recovery_options == ("resume", "restart")
        resume = (await coordinator.orchestrator.recover_session(sid)).unwrap()
        assert resume.resume_step == "schema-validation"

    @pytest.mark.asyncio
    async def test_interrupt_without_running_workflow(self, coordinator):
        """Interrupts for idle sessions are ignored and do not stop a later run."""
        session = (await coordinator.start_onboarding(UserType.AGENT)).unwrap()
        sid = session.session_id

        assert not coordinator.interrupt_workflow(sid, "too early")
        result = (await coordinator.execute_workflow(sid)).unwrap()

        assert result.workflow_completed
        assert not result.workflow_interrupted
        assert len(result.steps_executed) == 3

    @pytest.mark.asyncio
    async def test_late_interrupt_does_not_leak(self, coordinator):
        """An interrupt arriving as a run finishes does not affect the next run."""
        first = (await coordinator.start_onboarding(UserType.AGENT)).unwrap()
        coordinator.register_event_handler(
            EventType.SESSION_COMPLETED, lambda event: coordinator.interrupt_workflow(event.session_id, "late")
        )
        assert (await coordinator.execute_workflow(first.session_id)).unwrap().workflow_completed

        result = (await coordinator.execute_workflow(first.session_id)).unwrap()

        assert not result.workflow_interrupted
        assert result.steps_executed == ()

    @pytest.mark.asyncio
    async def test_interrupt_reports_failed_save(self, coordinator, store):
        """A save failure on interruption is reported with the result."""
        session = (await coordinator.start_onboarding(UserType.AGENT)).unwrap()
        sid = session.session_id
        store.backend.save = AsyncMock(side_effect=OSError("disk full"))
        coordinator.register_event_handler(EventType.STEP_COMPLETED, lambda event: coordinator.interrupt_workflow(sid))

        result = (await coordinator.execute_workflow(sid)).unwrap()

        assert result.workflow_interrupted
        assert result.steps_executed == ("context-loading",)
        assert len(result.errors) == 1
        assert sid in result.errors[0]

    @pytest.mark.asyncio
    async def test_failed_step_stops_workflow(self, coordinator):
        """A step that fails validation ends the workflow."""
        session = (await coordinator.start_onboarding(UserType.AGENT)).unwrap()

        result = (
            await coordinator.execute_workflow(
                session.session_id, validation_data={"context-loading": {"context_loaded": False}}
            )
        ).unwrap()

        assert not result.workflow_completed
        assert result.steps_executed == ()
        assert result.errors == ("Validation failed for step context-loading",)

    @pytest.mark.asyncio
    async def test_unknown_workflow_type(self, coordinator):
        """Only the complete onboarding workflow exists."""
        result = await coordinator.execute_workflow("s-1", workflow_type="speedrun")
        assert result.code == ErrorCode.UNKNOWN_WORKFLOW

    @pytest.mark.asyncio
    async def test_unknown_session(self, coordinator):
        """Workflows for unknown sessions report SESSION_NOT_FOUND."""
        assert (await coordinator.execute_workflow("missing")).code == ErrorCode.SESSION_NOT_FOUND
