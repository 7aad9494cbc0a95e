"""Resilience layer: circuit breakers, health checks, event fan-out and recovery."""
