"""Internal data models for the readiness check service."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class Readiness(str, Enum):
    """Ordered readiness bands, least to most concerning."""

    GREEN = "GREEN"
    YELLOW = "YELLOW"
    RED = "RED"


@dataclass
class PendingCredential:
    """One-time sign-in code awaiting verification. Only its digest is stored."""

    email: str
    code_hash: str
    created_at: datetime
    expires_at: datetime
    consumed_at: Optional[datetime] = None
    id: Optional[str] = None  # Database-generated ID

    def __post_init__(self):
        """Validate the expiry window after initialization."""
        if self.expires_at < self.created_at:
            raise ValueError("Credential expiry must not precede its creation time")

    @property
    def is_consumed(self) -> bool:
        return self.consumed_at is not None

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


@dataclass
class User:
    """Internal user model, keyed by a normalized email."""

    id: str
    email: str
    created_at: datetime


@dataclass
class Identity:
    """Resolved identity carried by a valid session."""

    user_id: str
    email: str
    issued_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


@dataclass
class MetricBaseline:
    """Running mean/std/count of one metric for one user."""

    user_id: str
    metric: str
    mean: float
    std: float
    sample_count: int
    updated_at: Optional[datetime] = None


@dataclass
class ScoreResult:
    """Outcome of scoring one completed check."""

    z: Dict[str, float]
    risk: float
    readiness: Readiness
    baseline_coverage: int
    baseline_pending: bool

    def to_payload(self) -> Dict[str, Any]:
        return {
            "z": dict(self.z),
            "risk": self.risk,
            "readiness": self.readiness.value,
            "baselineCoverage": self.baseline_coverage,
            "baselinePending": self.baseline_pending,
        }


@dataclass
class CheckRecord:
    """A single readiness check, created on start and completed once."""

    user_id: str
    started_at: datetime
    id: Optional[str] = None
    ended_at: Optional[datetime] = None
    device_fingerprint: Optional[str] = None
    metrics_snapshot: Optional[Dict[str, Any]] = None
    score_payload: Optional[Dict[str, Any]] = None
    flag: Optional[Readiness] = None
    integrity: Optional[float] = None

    @property
    def is_completed(self) -> bool:
        return self.ended_at is not None
