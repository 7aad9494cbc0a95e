"""
Metrics collection for onboarding activity.
Integrates with Prometheus for metrics export.
"""

from prometheus_client import Counter, Gauge, generate_latest
import structlog

from onboarding_flow.enums import CircuitState

log = structlog.get_logger(__name__)

sessions_started = Counter(
    "onboarding_sessions_started_total",
    "Onboarding sessions started",
    ["user_type", "role"],
)

sessions_completed = Counter(
    "onboarding_sessions_completed_total",
    "Onboarding sessions marked complete",
    ["user_type", "role"],
)

steps_completed = Counter(
    "onboarding_steps_completed_total",
    "Steps completed",
    ["step_id"],
)

step_validation_failures = Counter(
    "onboarding_step_validation_failures_total",
    "Step completions rejected by validation",
    ["step_id"],
)

component_failures = Counter(
    "onboarding_component_failures_total",
    "Collaborator failures recorded by circuit breakers",
    ["component"],
)

recovery_attempts = Counter(
    "onboarding_recovery_attempts_total",
    "Recovery attempts",
    ["recovery_type", "success"],
)

circuit_state = Gauge(
    "onboarding_circuit_state",
    "Circuit breaker state per component (0=closed, 1=half-open, 2=open)",
    ["component"],
)

_CIRCUIT_STATE_VALUES = {
    CircuitState.CLOSED: 0,
    CircuitState.HALF_OPEN: 1,
    CircuitState.OPEN: 2,
}


class MetricsCollector:
    """Collect and export metrics."""

    @staticmethod
    def record_session_started(user_type: str, role: str | None) -> None:
        """Record a new session."""
        sessions_started.labels(user_type=user_type, role=role or "none").inc()

    @staticmethod
    def record_session_completed(user_type: str, role: str | None) -> None:
        """Record a completed session."""
        sessions_completed.labels(user_type=user_type, role=role or "none").inc()

    @staticmethod
    def record_step_completed(step_id: str) -> None:
        """Record a completed step."""
        steps_completed.labels(step_id=step_id).inc()
        log.debug("metric_recorded", metric="step_completed", step_id=step_id)

    @staticmethod
    def record_validation_failure(step_id: str) -> None:
        """Record a step validation failure."""
        step_validation_failures.labels(step_id=step_id).inc()

    @staticmethod
    def record_component_failure(component: str) -> None:
        """Record a collaborator failure."""
        component_failures.labels(component=component).inc()
        log.warning("component_failure_metric_recorded", component=component)

    @staticmethod
    def record_recovery_attempt(recovery_type: str, success: bool) -> None:
        """Record recovery attempt."""
        recovery_attempts.labels(recovery_type=recovery_type, success=str(success)).inc()

    @staticmethod
    def update_circuit_state(component: str, state: CircuitState) -> None:
        """Publish the current breaker state of a component."""
        circuit_state.labels(component=component).set(_CIRCUIT_STATE_VALUES[state])

    @staticmethod
    def get_metrics() -> bytes:
        """Get metrics in Prometheus format."""
        return generate_latest()
