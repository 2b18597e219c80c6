"""Input validation utilities."""

import re
from datetime import datetime
from typing import Dict, List, Optional

from email_validator import EmailNotValidError, validate_email as email_validate


def validate_email(email: str) -> bool:
    """Validate email address format."""
    try:
        email_validate(email, check_deliverability=False)
        return True
    except EmailNotValidError:
        return False


def sanitize_input(text: Optional[str], max_length: int = 1000) -> str:
    """Sanitize input text by removing potentially harmful content."""
    if not text:
        return ""

    # Remove potential script tags and other HTML
    text = re.sub(r'<[^>]*>', '', text)

    # Remove control characters except newlines and tabs
    text = re.sub(r'[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]', '', text)

    if len(text) > max_length:
        text = text[:max_length] + "..."

    return text.strip()


def normalize_schedule(date: str, time: str) -> Dict[str, str]:
    """Return ``{"date": "YYYY-MM-DD", "time": "HH:MM"}`` or raise ValueError."""
    parsed_date = datetime.strptime(date.strip(), "%Y-%m-%d")
    parsed_time = datetime.strptime(time.strip()[:5], "%H:%M")
    return {
        "date": parsed_date.strftime("%Y-%m-%d"),
        "time": parsed_time.strftime("%H:%M"),
    }


def clean_string_list(values: Optional[List[str]], max_length: int = 100) -> List[str]:
    """Strip, sanitize and de-duplicate a list of short labels, keeping order."""
    cleaned: List[str] = []
    for value in values or []:
        item = sanitize_input(value, max_length=max_length)
        if item and item not in cleaned:
            cleaned.append(item)
    return cleaned
