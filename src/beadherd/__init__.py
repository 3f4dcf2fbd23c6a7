"""Beadherd: session and resource orchestration for parallel agent work on beads."""

__version__ = "0.1.0"
