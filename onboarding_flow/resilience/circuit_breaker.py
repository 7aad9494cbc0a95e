"""
Per-component circuit breaker.

State machine::

    closed --(failure_count >= threshold)--> open
    open   --(cooldown elapsed)------------> half-open
    half-open --(recovery)-----------------> closed
    half-open --(failure)------------------> open

The failure counter and degradation score only move forward; nothing but
:meth:`CircuitBreaker.reset` (explicit recovery) brings them back.
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import structlog

from onboarding_flow.enums import CircuitState
from onboarding_flow.models.health import CircuitBreakerStatus
from onboarding_flow.monitoring.metrics import MetricsCollector

log = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


class CircuitBreaker:
    """Failure counter, degradation score and open/closed state of one component.

    Args:
        component: Component name, used in logs and metrics
        failure_threshold: Failures that open the breaker
        cooldown: Time an open breaker waits before allowing a probe
        clock: Source of the current time, injectable for tests
    """

    def __init__(
        self,
        component: str,
        failure_threshold: int = 3,
        cooldown: timedelta = timedelta(seconds=60),
        clock: Clock = utc_now,
    ) -> None:
        self.component = component
        self.failure_threshold = failure_threshold
        self.cooldown = cooldown
        self._clock = clock
        self.failure_count = 0
        self.health_score = 1.0
        self.last_failure_time: datetime | None = None
        self.next_retry_time: datetime | None = None
        self.last_error: str | None = None
        self._open = False

    @property
    def state(self) -> CircuitState:
        if not self._open:
            return CircuitState.CLOSED
        if self.next_retry_time is not None and self._clock() >= self.next_retry_time:
            return CircuitState.HALF_OPEN
        return CircuitState.OPEN

    def allow_request(self) -> bool:
        """Closed breakers pass calls; half-open ones let a probe through."""
        return self.state != CircuitState.OPEN

    def record_failure(self, error: str | None = None) -> CircuitState:
        now = self._clock()
        self.failure_count += 1
        self.last_failure_time = now
        self.last_error = error

        if self.failure_count >= self.failure_threshold:
            if not self._open:
                log.warning(
                    "circuit_opened",
                    component=self.component,
                    failure_count=self.failure_count,
                    cooldown_seconds=self.cooldown.total_seconds(),
                )
            self._open = True
            self.next_retry_time = now + self.cooldown

        state = self.state
        MetricsCollector.record_component_failure(self.component)
        MetricsCollector.update_circuit_state(self.component, state)
        return state

    def degrade(self, health_score: float) -> float:
        """Set the degradation score, clamped to [0, 1]."""
        self.health_score = min(1.0, max(0.0, health_score))
        log.info("component_degraded", component=self.component, health_score=self.health_score)
        return self.health_score

    def reset(self) -> None:
        """Close the breaker and clear failures and degradation."""
        self.failure_count = 0
        self.health_score = 1.0
        self.last_failure_time = None
        self.next_retry_time = None
        self.last_error = None
        self._open = False
        MetricsCollector.update_circuit_state(self.component, CircuitState.CLOSED)
        log.info("circuit_closed", component=self.component)

    def status(self) -> CircuitBreakerStatus:
        return CircuitBreakerStatus(
            component=self.component,
            state=self.state,
            failure_count=self.failure_count,
            health_score=self.health_score,
            last_failure_time=self.last_failure_time,
            next_retry_time=self.next_retry_time,
            last_error=self.last_error,
        )
