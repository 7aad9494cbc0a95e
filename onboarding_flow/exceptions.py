"""Exception hierarchy for the onboarding engine.

Public engine operations do not raise these for expected failures. They wrap
them in :class:`onboarding_flow.result.Err` so callers branch on
``result.is_success``. Exceptions are raised directly only for programmer
errors (an invalid catalog, bad configuration) and for the single fatal
condition of the store, a session id collision.

Exception Hierarchy:
    OnboardingError (base)
    ├── ConfigurationError
    ├── CatalogError
    ├── NotFoundError
    ├── PreconditionError
    ├── StepValidationError
    ├── RecoveryError
    ├── CollaboratorError
    └── SessionIdGenerationError

Example Usage:
    >>> from onboarding_flow.exceptions import ErrorCode, NotFoundError
    >>> error = NotFoundError("Session not found: abc", ErrorCode.SESSION_NOT_FOUND)
    >>> error.code
    <ErrorCode.SESSION_NOT_FOUND: 'SESSION_NOT_FOUND'>
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable error codes carried by every failed result."""

    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    STEP_NOT_FOUND = "STEP_NOT_FOUND"
    STEP_ALREADY_COMPLETED = "STEP_ALREADY_COMPLETED"
    STEP_LOCKED = "STEP_LOCKED"
    PREREQUISITES_NOT_MET = "PREREQUISITES_NOT_MET"
    STEP_VALIDATION_FAILED = "STEP_VALIDATION_FAILED"
    CHECKPOINT_NOT_FOUND = "CHECKPOINT_NOT_FOUND"
    SESSION_RECOVERY_FAILED = "SESSION_RECOVERY_FAILED"
    SESSION_INCOMPLETE = "SESSION_INCOMPLETE"
    SESSION_ALREADY_COMPLETE = "SESSION_ALREADY_COMPLETE"
    INVALID_ROLE_TRANSITION = "INVALID_ROLE_TRANSITION"
    SESSION_PERSIST_FAILED = "SESSION_PERSIST_FAILED"
    MILESTONE_NOT_FOUND = "MILESTONE_NOT_FOUND"
    COMPONENT_UNAVAILABLE = "COMPONENT_UNAVAILABLE"
    COMPONENT_NOT_FOUND = "COMPONENT_NOT_FOUND"
    UNKNOWN_WORKFLOW = "UNKNOWN_WORKFLOW"
    COLLABORATOR_FAILED = "COLLABORATOR_FAILED"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INVALID_CATALOG = "INVALID_CATALOG"
    SESSION_ID_COLLISION = "SESSION_ID_COLLISION"

    def __str__(self) -> str:
        return self.value


class OnboardingError(Exception):
    """Base exception for all onboarding errors.

    Attributes:
        message: Human-readable error description
        code: Stable machine-readable error code
        context: Extra structured details (missing prerequisites, validation
            errors, component names, ...)
    """

    default_code = ErrorCode.CONFIGURATION_ERROR

    def __init__(
        self,
        message: str,
        code: ErrorCode | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            message: Error message
            code: Error code, defaults to the class default
            context: Optional structured details
        """
        self.message = message
        self.code = code or self.default_code
        self.context = context or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for CLI output and logs."""
        return {"code": self.code.value, "message": self.message, "context": self.context}


class ConfigurationError(OnboardingError):
    """Configuration file or settings are invalid."""

    default_code = ErrorCode.CONFIGURATION_ERROR


class CatalogError(OnboardingError):
    """A generated step catalog is not a valid dependency graph.

    Raised for unknown dependency ids, duplicate step ids and cycles. This
    is a programmer error in a catalog definition, never a user error.
    """

    default_code = ErrorCode.INVALID_CATALOG


class NotFoundError(OnboardingError):
    """A session, step, checkpoint or milestone does not exist."""

    default_code = ErrorCode.SESSION_NOT_FOUND


class PreconditionError(OnboardingError):
    """An operation was attempted before its preconditions hold.

    Covers locked steps, unmet prerequisites and certificate requests for
    incomplete sessions.
    """

    default_code = ErrorCode.PREREQUISITES_NOT_MET


class StepValidationError(OnboardingError):
    """Step completion data did not pass the step's validator."""

    default_code = ErrorCode.STEP_VALIDATION_FAILED

    def __init__(
        self,
        message: str,
        errors: list[str] | None = None,
        warnings: list[str] | None = None,
        suggestions: list[str] | None = None,
    ) -> None:
        self.errors = errors or []
        self.warnings = warnings or []
        self.suggestions = suggestions or []
        super().__init__(
            message,
            ErrorCode.STEP_VALIDATION_FAILED,
            {
                "errors": self.errors,
                "warnings": self.warnings,
                "suggestions": self.suggestions,
            },
        )


class RecoveryError(OnboardingError):
    """Saved session state is missing or unreadable."""

    default_code = ErrorCode.SESSION_RECOVERY_FAILED


class CollaboratorError(OnboardingError):
    """A collaborator call failed or was refused by its circuit breaker.

    Attributes:
        component: Name of the collaborator
    """

    default_code = ErrorCode.COLLABORATOR_FAILED

    def __init__(
        self,
        message: str,
        component: str,
        code: ErrorCode | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.component = component
        super().__init__(message, code, {"component": component, **(context or {})})


class SessionIdGenerationError(OnboardingError):
    """A freshly generated session id collided with an existing session.

    This is the only fatal error of the session store and is raised rather
    than returned.
    """

    default_code = ErrorCode.SESSION_ID_COLLISION
