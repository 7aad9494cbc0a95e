"""onboarding-flow: role-aware developer onboarding workflows."""

__version__ = "0.1.0"
