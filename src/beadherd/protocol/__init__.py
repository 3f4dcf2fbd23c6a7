"""Typed domain values and orchestration events."""
