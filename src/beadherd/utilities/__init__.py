"""Shared utilities."""

from beadherd.utilities.logger import get_logger, setup_logging
from beadherd.utilities.retry import is_retryable, with_retry

__all__ = [
    "get_logger",
    "is_retryable",
    "setup_logging",
    "with_retry",
]
