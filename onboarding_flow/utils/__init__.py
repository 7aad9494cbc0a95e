"""Shared utilities: logging setup and async subprocess helpers."""
