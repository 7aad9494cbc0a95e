"""User type detection and role parsing for incoming onboarding requests."""

from collections.abc import Mapping
from typing import Any

from onboarding_flow.enums import DeveloperRole, UserType
from onboarding_flow.models.domain import UserDetection

ROLE_ALIASES: dict[str, DeveloperRole] = {
    "frontend": DeveloperRole.FRONTEND,
    "front-end": DeveloperRole.FRONTEND,
    "fe": DeveloperRole.FRONTEND,
    "backend": DeveloperRole.BACKEND,
    "back-end": DeveloperRole.BACKEND,
    "be": DeveloperRole.BACKEND,
    "devops": DeveloperRole.DEVOPS,
    "ops": DeveloperRole.DEVOPS,
    "sre": DeveloperRole.DEVOPS,
    "fullstack": DeveloperRole.FULLSTACK,
    "full-stack": DeveloperRole.FULLSTACK,
    "fs": DeveloperRole.FULLSTACK,
}

AGENT_CONFIDENCE = 0.9
HUMAN_WITH_ROLE_CONFIDENCE = 0.85
DEFAULT_CONFIDENCE = 0.5

_AGENT_MARKERS = ("agent", "bot", "llm")


def parse_role(value: str | None) -> DeveloperRole | None:
    """Map a free-form role name or alias to a :class:`DeveloperRole`."""
    if not value:
        return None
    return ROLE_ALIASES.get(value.strip().lower())


def detect_user_type(request: Mapping[str, Any]) -> UserDetection:
    """Classify a request as coming from a human developer or an AI agent.

    A request is from an agent when it asks for machine context, declares
    agent capabilities, or carries an agent-like user agent string.
    """
    user_agent = str(request.get("user_agent", "")).lower()
    if (
        request.get("request_type") == "context"
        or request.get("capabilities")
        or any(marker in user_agent for marker in _AGENT_MARKERS)
    ):
        return UserDetection(UserType.AGENT, None, AGENT_CONFIDENCE)

    role = parse_role(request.get("role"))
    if role is not None:
        return UserDetection(UserType.HUMAN, role, HUMAN_WITH_ROLE_CONFIDENCE)
    return UserDetection(UserType.HUMAN, None, DEFAULT_CONFIDENCE)
