"""Pydantic models for API requests and responses."""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from readycheck.utils.validation import normalize_email, validate_metrics


class CredentialRequest(BaseModel):
    """Request model for the sign-in code endpoint."""

    email: str = Field(..., description="Email address to send the sign-in code to")

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        """Normalize and syntactically check the email."""
        return normalize_email(v)


class CodeVerificationRequest(BaseModel):
    """Request model for the code verification endpoint."""

    email: str = Field(..., description="Email address the code was sent to")
    code: str = Field(..., min_length=1, max_length=16, description="Numeric sign-in code")

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        return normalize_email(v)


class CheckStartRequest(BaseModel):
    """Request model for starting a readiness check."""

    deviceFingerprint: Optional[str] = Field(None, max_length=256, description="Opaque client device identifier")


class CheckCompletionRequest(BaseModel):
    """Request model for submitting a completed check's metric summary."""

    checkId: UUID = Field(..., description="Identifier returned by /api/checks/start")
    metrics: Dict[str, float] = Field(..., description="Metric name to observed value")
    confidence: float = Field(..., ge=0.0, le=100.0, description="Self-reported confidence, 0-100")
    integrity: Optional[float] = Field(None, ge=0.0, le=1.0, description="Client-side integrity score")

    @field_validator('metrics')
    @classmethod
    def validate_metric_values(cls, v):
        """Require at least one finite metric."""
        return validate_metrics(v)

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "checkId": "5f0c6f0e-8a4e-4c55-9a8f-0d1f6b9d2c11",
            "metrics": {"srt_mean_ms": 312.0, "srt_lapse_rate": 0.02, "wm_error_rate": 0.1},
            "confidence": 72,
            "integrity": 1.0
        }
    })


class ShareRequest(BaseModel):
    """Request model for emailing a check result."""

    to: str = Field(..., description="Recipient email address")

    @field_validator('to')
    @classmethod
    def validate_recipient(cls, v):
        return normalize_email(v)


class OkResponse(BaseModel):
    """Bare success acknowledgement."""

    ok: bool = True


class UserPayload(BaseModel):
    id: str
    email: str


class UserResponse(BaseModel):
    """Response model for code verification and session introspection."""

    ok: bool = True
    user: UserPayload


class CheckStartResponse(BaseModel):
    ok: bool = True
    checkId: str


class ScorePayload(BaseModel):
    """Per-check score as stored with the check record."""

    z: Dict[str, float] = Field(..., description="Standardized deviation per metric")
    risk: float = Field(..., ge=0.0, description="Aggregated adverse deviation")
    readiness: str = Field(..., description="GREEN, YELLOW or RED")
    baselineCoverage: int = Field(..., ge=0, description="Metrics with an established baseline")
    baselinePending: bool = Field(..., description="Whether too few baselines exist to trust the flag")


class CheckCompletionResponse(BaseModel):
    """Response model for check completion."""

    ok: bool = True
    readiness: str
    score: ScorePayload

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "ok": True,
            "readiness": "YELLOW",
            "score": {
                "z": {"srt_mean_ms": 2.0, "wm_error_rate": -1.0},
                "risk": 2.0,
                "readiness": "YELLOW",
                "baselineCoverage": 2,
                "baselinePending": True
            }
        }
    })


class CheckRecordPayload(BaseModel):
    id: str
    startedAt: datetime
    endedAt: Optional[datetime] = None
    metricsSnapshot: Optional[Dict[str, Any]] = None
    score: Optional[Dict[str, Any]] = None
    readiness: Optional[str] = None
    integrity: Optional[float] = None


class CheckRecordResponse(BaseModel):
    ok: bool = True
    check: CheckRecordPayload


class ErrorResponse(BaseModel):
    """Standard error response model."""

    ok: bool = False
    error: str = Field(..., description="Error type or category")
    message: str = Field(..., description="Human-readable error message")
    correlation_id: str = Field(..., description="Request correlation ID for tracing")
    timestamp: datetime = Field(..., description="Error timestamp")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "ok": False,
            "error": "Expired",
            "message": "Code expired",
            "correlation_id": "req_1729350000000",
            "timestamp": "2026-10-19T12:00:00Z"
        }
    })


class ServiceHealthResponse(BaseModel):
    """Readiness of the service's collaborators. Never carries secret values."""

    ok: bool
    environment: str
    store: bool = Field(..., description="Whether the database answered")
    emailConfigured: bool = Field(..., description="Whether an email provider API key is set")
    sessionSecretConfigured: bool = Field(..., description="Whether a non-default session secret is set")
    timestamp: datetime
