"""Data models for the readiness check service."""

from .api_models import (
    CheckCompletionRequest,
    CheckCompletionResponse,
    CheckRecordPayload,
    CheckRecordResponse,
    CheckStartRequest,
    CheckStartResponse,
    CodeVerificationRequest,
    CredentialRequest,
    ErrorResponse,
    ServiceHealthResponse,
    OkResponse,
    ScorePayload,
    ShareRequest,
    UserPayload,
    UserResponse,
)
from .internal_models import (
    CheckRecord,
    Identity,
    MetricBaseline,
    PendingCredential,
    Readiness,
    ScoreResult,
    User,
)

__all__ = [
    "CheckCompletionRequest",
    "CheckCompletionResponse",
    "CheckRecordPayload",
    "CheckRecordResponse",
    "CheckStartRequest",
    "CheckStartResponse",
    "CodeVerificationRequest",
    "CredentialRequest",
    "ErrorResponse",
    "ServiceHealthResponse",
    "OkResponse",
    "ScorePayload",
    "ShareRequest",
    "UserPayload",
    "UserResponse",
    "CheckRecord",
    "Identity",
    "MetricBaseline",
    "PendingCredential",
    "Readiness",
    "ScoreResult",
    "User",
]
