"""Enumerations shared across the onboarding engine."""

from enum import Enum


class UserType(str, Enum):
    """Kind of user being onboarded."""

    HUMAN = "human"
    AGENT = "agent"

    def __str__(self) -> str:
        return self.value


class DeveloperRole(str, Enum):
    """Developer roles a human can onboard into.

    Each role selects a different step catalog. FULLSTACK covers the union of
    the FRONTEND and BACKEND steps plus integration and deployment work.
    """

    FRONTEND = "frontend"
    BACKEND = "backend"
    DEVOPS = "devops"
    FULLSTACK = "fullstack"

    def __str__(self) -> str:
        return self.value


class StepStatus(str, Enum):
    """Runtime status of a step bound to a session."""

    LOCKED = "locked"
    AVAILABLE = "available"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    def __str__(self) -> str:
        return self.value


class CircuitState(str, Enum):
    """Circuit breaker state for a collaborator."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"

    def __str__(self) -> str:
        return self.value


class HealthStatus(str, Enum):
    """Health of a single component or of the whole system.

    Components report HEALTHY, DEGRADED or FAILED. The aggregated system
    status is HEALTHY, DEGRADED or CRITICAL.
    """

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    FAILED = "failed"
    CRITICAL = "critical"

    def __str__(self) -> str:
        return self.value


class MilestoneSignificance(str, Enum):
    """How significant a milestone is for progress reporting."""

    MINOR = "minor"
    MAJOR = "major"
    CRITICAL = "critical"

    def __str__(self) -> str:
        return self.value


class EventType(str, Enum):
    """Events distributed to registered handlers."""

    SESSION_STARTED = "session_started"
    STEP_COMPLETED = "step_completed"
    MILESTONE_ACHIEVED = "milestone_achieved"
    SESSION_COMPLETED = "session_completed"

    def __str__(self) -> str:
        return self.value
