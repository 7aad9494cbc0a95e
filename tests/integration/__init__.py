"""Integration tests for onboarding-flow.

These tests wire the orchestrator and resilience coordinator to the real
file-system collaborators and state backend in a temporary directory.

Run with: pytest tests/integration/ -v -m integration
"""
