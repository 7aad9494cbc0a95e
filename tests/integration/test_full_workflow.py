"""End-to-end onboarding runs against real collaborators."""

import itertools

import pytest

from onboarding_flow.engine.orchestrator import OnboardingOrchestrator
from onboarding_flow.engine.persistence import FileStateBackend
from onboarding_flow.engine.session_store import SessionStore
from onboarding_flow.enums import DeveloperRole, EventType, HealthStatus, UserType
from onboarding_flow.exceptions import ErrorCode
from onboarding_flow.integrations.documentation import FileSystemDocumentationManager
from onboarding_flow.resilience.coordinator import ResilienceCoordinator

pytestmark = pytest.mark.integration

AGENT_DATA = {
    "context-loading": {"context_loaded": True},
    "schema-validation": {"schema_version": "1.0"},
}


@pytest.fixture
def backend(tmp_path):
    return FileStateBackend(tmp_path / "state")


@pytest.fixture
def make_orchestrator(backend, settings):
    counter = itertools.count(1)

    def factory() -> OnboardingOrchestrator:
        return OnboardingOrchestrator(
            SessionStore(backend), settings=settings, id_factory=lambda: f"run-{next(counter)}"
        )

    return factory


@pytest.fixture
def docs(tmp_path):
    return FileSystemDocumentationManager(tmp_path)


class TestAgentWorkflow:
    """Agents run the whole workflow in one go."""

    @pytest.mark.asyncio
    async def test_complete_onboarding(self, make_orchestrator, docs, settings):
        """A workflow completes every step, logs progress and earns a certificate."""
        orchestrator = make_orchestrator()
        coordinator = ResilienceCoordinator(orchestrator, documentation=docs, settings=settings)
        events = []
        for event_type in EventType:
            coordinator.register_event_handler(event_type, events.append, name=f"recorder-{event_type}")

        init = (await coordinator.initialize_system()).unwrap()
        assert init.status == HealthStatus.HEALTHY

        session = (await coordinator.start_onboarding(UserType.AGENT)).unwrap()
        workflow = (await coordinator.execute_workflow(session.session_id, validation_data=AGENT_DATA)).unwrap()

        assert workflow.workflow_completed
        assert workflow.steps_executed == ("context-loading", "schema-validation", "integration-test")

        progress_log = (docs.root / "progress" / f"{session.session_id}.md").read_text().splitlines()
        assert len(progress_log) == 3

        kinds = [event.event_type for event in events]
        assert kinds[0] == EventType.SESSION_STARTED
        assert kinds.count(EventType.STEP_COMPLETED) == 3
        assert kinds[-1] == EventType.SESSION_COMPLETED

        certificate = orchestrator.generate_certificate(session.session_id).unwrap()
        assert certificate.completed_steps == workflow.steps_executed
        assert len(certificate.certificate_hash) == 64
        assert 0 < certificate.metrics.efficiency <= 1

        await coordinator.shutdown()

    @pytest.mark.asyncio
    async def test_invalid_data_stops_workflow(self, make_orchestrator, docs, settings):
        """Rejected validation data stops the run at that step."""
        orchestrator = make_orchestrator()
        coordinator = ResilienceCoordinator(orchestrator, documentation=docs, settings=settings)
        session = (await coordinator.start_onboarding(UserType.AGENT)).unwrap()

        workflow = (
            await coordinator.execute_workflow(
                session.session_id,
                validation_data={**AGENT_DATA, "schema-validation": {"schema_version": "3"}},
            )
        ).unwrap()

        assert not workflow.workflow_completed
        assert workflow.steps_executed == ("context-loading",)
        assert workflow.errors == ("Validation failed for step schema-validation",)
        result = orchestrator.generate_certificate(session.session_id)
        assert result.code == ErrorCode.SESSION_INCOMPLETE


class TestHumanSessionAcrossRestarts:
    """Human sessions are saved, recovered and rolled back."""

    @pytest.mark.asyncio
    async def test_recover_in_new_process(self, make_orchestrator):
        """A second orchestrator over the same state directory resumes the session."""
        first = make_orchestrator()
        session = first.start_onboarding(UserType.HUMAN, DeveloperRole.BACKEND, user_id="dev-7").unwrap()
        sid = session.session_id
        (await first.complete_step(sid, "environment-setup", {"node_version": "22.1.0"})).unwrap()
        (await first.complete_step(sid, "repository-clone", {"repository_path": "/src/app"})).unwrap()
        (await first.save_session_state(sid)).unwrap()

        second = make_orchestrator()
        resume = (await second.recover_session(sid)).unwrap()

        assert not resume.was_interrupted
        assert resume.resume_step == "dependency-install"
        assert second.get_progress(sid).unwrap().completed_steps == ("environment-setup", "repository-clone")
        assert [s.id for s in second.get_available_steps(sid).unwrap()] == ["dependency-install"]

        completion = (
            await second.complete_step(
                sid, "dependency-install", {"node_modules_exists": True, "package_lock_exists": True}
            )
        ).unwrap()
        assert completion.completed_count == 3

    @pytest.mark.asyncio
    async def test_checkpoint_rollback(self, make_orchestrator):
        """Rolling back to a checkpoint discards later progress."""
        orchestrator = make_orchestrator()
        sid = orchestrator.start_onboarding(UserType.HUMAN, DeveloperRole.FRONTEND).unwrap().session_id
        (await orchestrator.complete_step(sid, "environment-setup")).unwrap()
        orchestrator.create_checkpoint(sid, "after-setup").unwrap()
        (await orchestrator.complete_step(sid, "repository-clone")).unwrap()

        reset = orchestrator.reset_to_checkpoint(sid, "after-setup").unwrap()

        assert reset.reset_to_step == "environment-setup"
        progress = orchestrator.get_progress(sid).unwrap()
        assert progress.completed_steps == ("environment-setup",)
        assert progress.current_step == "repository-clone"
        assert orchestrator.list_checkpoints(sid).unwrap() == ["after-setup"]
