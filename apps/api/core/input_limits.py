"""
Input length limits for free-text fields.

Over-long values are truncated rather than rejected.
"""
import re
from typing import Optional

from core.config import settings

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def clean_text(value: Optional[str], max_length: int) -> Optional[str]:
    """Truncate to max_length and strip; empty results become None."""
    if value is None:
        return None
    cleaned = str(value)[:max_length].strip()
    return cleaned or None


def clean_email(value: Optional[str]) -> Optional[str]:
    cleaned = clean_text(value, settings.EMAIL_MAX_LENGTH)
    return cleaned.lower() if cleaned else None


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email))
