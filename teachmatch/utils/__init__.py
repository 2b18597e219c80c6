"""Utility modules for TeachMatch."""

from .clock import utc_now
from .logging import get_logger, setup_logging
from .security import generate_token, verify_token
from .validation import validate_email, sanitize_input, normalize_schedule

__all__ = [
    "utc_now",
    "get_logger",
    "setup_logging",
    "generate_token",
    "verify_token",
    "validate_email",
    "sanitize_input",
    "normalize_schedule",
]
