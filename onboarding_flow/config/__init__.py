"""Configuration system for the onboarding engine.

Example:
    >>> from onboarding_flow.config.settings import OnboardingSettings
    >>> settings = OnboardingSettings.from_yaml("onboarding.yaml")
    >>> settings.resilience.failure_threshold
    3
"""
