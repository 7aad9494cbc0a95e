"""Domain models for the onboarding engine.

Key Models:
    - StepDefinition: Catalog entry for a single onboarding step
    - ChecklistStep: A step bound to a session, with runtime status
    - Session: Live, mutable onboarding session owned by the store
    - SessionSnapshot: Immutable value copy used by checkpoints and saved state
    - CompletionCertificate: Certificate issued for a completed session
    - ComponentHealthReport: Aggregated collaborator health
"""
