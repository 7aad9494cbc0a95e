"""Tagged success/failure result returned by public engine operations.

Example:
    >>> result = checklist.get_progress("session-1")
    >>> if result.is_success:
    ...     print(result.value.percent_complete)
    ... else:
    ...     print(result.error.code)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, NoReturn, TypeVar

from onboarding_flow.exceptions import ErrorCode, OnboardingError

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying a value."""

    value: T

    @property
    def is_success(self) -> bool:
        return True

    @property
    def error(self) -> None:
        return None

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    """Failed outcome carrying an :class:`OnboardingError`."""

    error: OnboardingError

    @property
    def is_success(self) -> bool:
        return False

    @property
    def value(self) -> None:
        return None

    @property
    def code(self) -> ErrorCode:
        return self.error.code

    def unwrap(self) -> NoReturn:
        """Raise the carried error."""
        raise self.error


Result = Ok[T] | Err


def err(error_type: type[OnboardingError], message: str, code: ErrorCode, **context: Any) -> Err:
    """Build an ``Err`` from an error class, message, code and context."""
    return Err(error_type(message, code, context or None))
