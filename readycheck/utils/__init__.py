# Utilities module

from .crypto_utils import (
    generate_numeric_code,
    hash_credential,
)
from .http_utils import (
    is_secure_request,
    parse_cookie_header,
)
from .stats_utils import (
    aggregate_risk,
    apply_confidence_penalty,
    baseline_established,
    classify_risk,
    is_baseline_pending,
    next_baseline_stats,
    standardized_deviation,
)
from .validation import (
    normalize_email,
    validate_code,
    validate_metrics,
)

__all__ = [
    "aggregate_risk",
    "apply_confidence_penalty",
    "baseline_established",
    "classify_risk",
    "generate_numeric_code",
    "hash_credential",
    "is_baseline_pending",
    "is_secure_request",
    "next_baseline_stats",
    "normalize_email",
    "parse_cookie_header",
    "standardized_deviation",
    "validate_code",
    "validate_metrics",
]
