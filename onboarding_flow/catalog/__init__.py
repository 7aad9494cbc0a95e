"""Step catalog: role and platform specific onboarding step sequences.

Example:
    >>> from onboarding_flow.catalog.steps import generate
    >>> from onboarding_flow.enums import DeveloperRole
    >>> steps = generate(DeveloperRole.FRONTEND, "darwin")
    >>> [step.id for step in steps][:3]
    ['environment-setup', 'repository-clone', 'dependency-install']
"""
