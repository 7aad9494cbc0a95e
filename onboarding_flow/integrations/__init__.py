"""Collaborator contracts and their real implementations.

The resilience coordinator talks to collaborators only through the
protocols in :mod:`onboarding_flow.integrations.base`; any object with the
same methods can stand in for the filesystem and git implementations.
"""
