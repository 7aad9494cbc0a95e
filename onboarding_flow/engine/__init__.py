"""Onboarding engine: checklist state machine, session store and achievements.

Key Components:
    - ChecklistEngine: Per-session step status and lock computation
    - SessionStore: Explicitly constructed owner of live sessions and checkpoints
    - OnboardingOrchestrator: Session lifecycle operations
    - AchievementTracker: Milestones, certificates and progress reports
    - StateBackend: Saved-state persistence (in memory or JSON files)

Example:
    >>> store = SessionStore(InMemoryStateBackend())
    >>> orchestrator = OnboardingOrchestrator(store, ChecklistEngine())
    >>> session = orchestrator.start_onboarding(UserType.HUMAN, DeveloperRole.BACKEND).unwrap()
"""
