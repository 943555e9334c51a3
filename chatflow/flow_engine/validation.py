"""
Input validators for input nodes (validationType).
"""

import math
import re
from typing import Any, Optional
from urllib.parse import urlparse

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PHONE_PATTERN = re.compile(r'^\+?[\d\s\-()]+$')


def _is_number(value: str) -> bool:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return False
    return not math.isnan(number)


def _is_url(value: str) -> bool:
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return bool(parsed.scheme) and bool(parsed.netloc)


VALIDATORS = {
    'email': lambda value: bool(EMAIL_PATTERN.match(value)),
    'phone': lambda value: bool(PHONE_PATTERN.match(value)),
    'number': _is_number,
    'url': _is_url,
}


def validate_input(value: Any, validation_type: Optional[str]) -> bool:
    """
    Check a user reply against a validation type.

    Unknown or empty validation types accept any input.
    """
    if not validation_type:
        return True
    validator = VALIDATORS.get(validation_type)
    if validator is None:
        return True
    return validator(str(value).strip())
