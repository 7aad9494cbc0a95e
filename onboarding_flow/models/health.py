"""
Models reported by the resilience coordinator.

All of these are frozen snapshots; the live counters stay inside
:class:`~onboarding_flow.resilience.circuit_breaker.CircuitBreaker`.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from onboarding_flow.enums import CircuitState, EventType, HealthStatus
from onboarding_flow.integrations.base import GitMonitoringInfo


@dataclass(frozen=True)
class CircuitBreakerStatus:
    component: str
    state: CircuitState
    failure_count: int
    health_score: float
    last_failure_time: datetime | None = None
    next_retry_time: datetime | None = None
    last_error: str | None = None


@dataclass(frozen=True)
class ComponentHealth:
    name: str
    status: HealthStatus
    circuit_state: CircuitState
    failure_count: int
    health_score: float


@dataclass(frozen=True)
class SystemHealthReport:
    overall_status: HealthStatus
    components: dict[str, ComponentHealth]
    healthy_count: int
    degraded_count: int
    failed_count: int
    checked_at: datetime


@dataclass(frozen=True)
class ComponentRecoveryResult:
    component: str
    recovery_successful: bool
    component_status: HealthStatus
    recovery_actions: tuple[str, ...] = ()


@dataclass(frozen=True)
class SystemRecoveryResult:
    recovered_components: tuple[str, ...]
    unrecoverable_components: tuple[str, ...]
    overall_status: HealthStatus


@dataclass(frozen=True)
class OnboardingEvent:
    """Something that happened to a session, fanned out to handlers."""

    event_type: EventType
    session_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True)
class EventDistributionResult:
    event_type: EventType
    handlers_notified: int
    failed_handlers: tuple[str, ...] = ()


@dataclass(frozen=True)
class SystemInitialization:
    status: HealthStatus
    initialized_components: tuple[str, ...]
    failed_components: tuple[str, ...]
    git: GitMonitoringInfo | None = None
    documentation_paths: tuple[str, ...] = ()


@dataclass(frozen=True)
class StepCoordinationResult:
    """What happened across components when a step was completed."""

    session_id: str
    step_id: str
    step_completed: bool
    documentation_updated: bool
    progress_tracked: bool
    components_involved: tuple[str, ...]
    errors: tuple[str, ...] = ()
    error_code: str | None = None
    milestones: tuple[str, ...] = ()


@dataclass(frozen=True)
class ComponentDataSync:
    session_id: str
    synchronized_components: tuple[str, ...]
    errors: tuple[str, ...] = ()


@dataclass(frozen=True)
class WorkflowResult:
    session_id: str
    workflow_type: str
    steps_executed: tuple[str, ...]
    workflow_completed: bool
    workflow_interrupted: bool = False
    interruption_reason: str | None = None
    recovery_options: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()
