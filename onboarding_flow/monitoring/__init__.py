"""Prometheus metrics for onboarding activity."""
