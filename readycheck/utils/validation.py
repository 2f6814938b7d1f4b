"""
Boundary validation helpers.

Every helper either returns a normalized value or raises ValidationError, so
callers never see a half-checked request.
"""

import math
from typing import Dict, Mapping
from uuid import UUID

from readycheck.exceptions import ValidationError

MAX_EMAIL_LENGTH = 254
MAX_METRIC_NAME_LENGTH = 64


def normalize_email(raw: object) -> str:
    """
    Trim and lower-case an email address after a syntactic check.

    Args:
        raw: Value taken from the request body

    Returns:
        Normalized email string

    Raises:
        ValidationError: If the value is not a plausible email address
    """
    if not isinstance(raw, str):
        raise ValidationError("Email must be a string")

    email = raw.strip().lower()
    if not email or len(email) > MAX_EMAIL_LENGTH:
        raise ValidationError("Invalid email")

    local, sep, domain = email.rpartition("@")
    if not sep or not local or not domain:
        raise ValidationError("Invalid email")
    if any(c.isspace() for c in email):
        raise ValidationError("Invalid email")

    return email


def validate_code(raw: object, length: int) -> str:
    """Check that a sign-in code is exactly `length` ASCII digits."""
    if not isinstance(raw, str):
        raise ValidationError("Code must be a string")

    code = raw.strip()
    if len(code) != length or not (code.isascii() and code.isdigit()):
        raise ValidationError(f"Code must be {length} digits")
    return code


def validate_metrics(raw: Mapping[str, object]) -> Dict[str, float]:
    """Require at least one metric, each a finite number under a sane name."""
    if not raw:
        raise ValidationError("At least one metric is required")

    metrics: Dict[str, float] = {}
    for name, value in raw.items():
        if not name or len(name) > MAX_METRIC_NAME_LENGTH:
            raise ValidationError(f"Invalid metric name: {name!r}")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(f"Metric {name} must be a number")
        if not math.isfinite(value):
            raise ValidationError(f"Metric {name} must be finite")
        metrics[name] = float(value)

    return metrics


def validate_check_id(raw: object) -> str:
    """Check ids are UUIDs; return the canonical lower-case form."""
    if isinstance(raw, UUID):
        return str(raw)
    if not isinstance(raw, str):
        raise ValidationError("Check id must be a string")
    try:
        return str(UUID(raw.strip()))
    except ValueError as e:
        raise ValidationError("Invalid check id") from e
