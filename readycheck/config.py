"""Configuration management for the readiness check service."""

from typing import FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEV_SESSION_SECRET = "dev-only-session-secret-change-me-before-deploying"

DEFAULT_WORSE_IF_HIGH_METRICS = [
    "srt_mean_ms",
    "srt_lapse_rate",
    "crt_mean_ms",
    "crt_error_rate",
    "gonogo_false_positive_rate",
    "wm_error_rate",
]


class CredentialConfig(BaseModel):
    """Settings consumed by the credential issuer and verifier."""

    model_config = ConfigDict(frozen=True)

    app_name: str = "Cognition"
    code_length: int = 6
    ttl_minutes: int = 10
    invalidate_prior_credentials: bool = False


class SessionConfig(BaseModel):
    """Settings consumed by the session manager."""

    model_config = ConfigDict(frozen=True)

    secret: str
    ttl_days: int = 14
    algorithm: str = "HS256"
    cookie_name: str = "session"
    cookie_secure: Optional[bool] = None
    cookie_samesite: str = "lax"

    @property
    def max_age_seconds(self) -> int:
        return self.ttl_days * 24 * 60 * 60


class ScoringConfig(BaseModel):
    """Baseline and readiness classification parameters."""

    model_config = ConfigDict(frozen=True)

    worse_if_high_metrics: FrozenSet[str] = frozenset(DEFAULT_WORSE_IF_HIGH_METRICS)
    min_samples: int = 5
    min_coverage: int = 3
    coverage_fraction: float = 0.6
    initial_std: float = 1.0
    std_epsilon: float = 1e-6
    write_attempts: int = 5
    confidence_threshold: float = 80.0
    confidence_risk_threshold: float = 3.0
    confidence_penalty: float = 0.5
    red_cutpoint: float = 4.0
    yellow_cutpoint: float = 2.0


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Server configuration
    port: int = 8000
    host: str = "0.0.0.0"
    environment: str = "development"
    web_origin: str = "http://localhost:5173"

    # Supabase configuration
    supabase_url: str = "http://localhost:54321"
    supabase_key: str = "local-service-role-key"
    store_timeout_seconds: float = 10.0

    # Email delivery (Resend)
    resend_api_key: Optional[str] = None
    email_from: str = "Cognition <login@example.com>"
    email_timeout_seconds: float = 10.0
    app_name: str = "Cognition"

    # One-time credentials
    credential_code_length: int = 6
    credential_ttl_minutes: int = 10
    invalidate_prior_credentials: bool = False

    # Sessions
    session_secret: str = DEV_SESSION_SECRET
    session_ttl_days: int = 14
    session_cookie_name: str = "session"
    cookie_secure: Optional[bool] = None
    cookie_samesite: str = "lax"

    # Baselines and readiness
    worse_if_high_metrics: List[str] = DEFAULT_WORSE_IF_HIGH_METRICS
    baseline_min_samples: int = 5
    baseline_min_coverage: int = 3
    baseline_coverage_fraction: float = 0.6
    baseline_initial_std: float = 1.0
    baseline_std_epsilon: float = 1e-6
    baseline_write_attempts: int = 5
    confidence_penalty_threshold: float = 80.0
    confidence_penalty_risk_threshold: float = 3.0
    confidence_penalty: float = 0.5
    red_cutpoint: float = 4.0
    yellow_cutpoint: float = 2.0

    # Rate limiting for credential requests
    rate_limit_max_requests: int = 10
    rate_limit_window_seconds: int = 60

    # Observability
    log_level: str = "INFO"
    otlp_endpoint: Optional[str] = None
    enable_console_export: bool = False

    @field_validator('supabase_url')
    @classmethod
    def validate_supabase_url(cls, v):
        if not v:
            raise ValueError('SUPABASE_URL environment variable is required')
        return v

    @field_validator('supabase_key')
    @classmethod
    def validate_supabase_key(cls, v):
        if not v:
            raise ValueError('SUPABASE_KEY environment variable is required')
        return v

    @field_validator('session_secret')
    @classmethod
    def validate_session_secret(cls, v):
        if len(v) < 32:
            raise ValueError('SESSION_SECRET must be at least 32 characters')
        return v

    @field_validator('credential_ttl_minutes')
    @classmethod
    def validate_credential_ttl(cls, v):
        if not 1 <= v <= 60:
            raise ValueError('CREDENTIAL_TTL_MINUTES must be between 1 and 60')
        return v

    @field_validator('credential_code_length')
    @classmethod
    def validate_code_length(cls, v):
        if not 4 <= v <= 10:
            raise ValueError('CREDENTIAL_CODE_LENGTH must be between 4 and 10')
        return v

    @field_validator('cookie_samesite')
    @classmethod
    def validate_samesite(cls, v):
        v = v.lower()
        if v not in ("lax", "strict"):
            raise ValueError('COOKIE_SAMESITE must be "lax" or "strict"')
        return v

    @field_validator('baseline_std_epsilon', 'baseline_initial_std')
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError('baseline std settings must be positive')
        return v

    @model_validator(mode='after')
    def validate_cross_fields(self):
        if self.red_cutpoint <= self.yellow_cutpoint:
            raise ValueError('RED_CUTPOINT must be greater than YELLOW_CUTPOINT')
        if self.environment == "production" and self.session_secret == DEV_SESSION_SECRET:
            raise ValueError('SESSION_SECRET must be set in production')
        return self

    def credential_config(self) -> CredentialConfig:
        return CredentialConfig(
            app_name=self.app_name,
            code_length=self.credential_code_length,
            ttl_minutes=self.credential_ttl_minutes,
            invalidate_prior_credentials=self.invalidate_prior_credentials,
        )

    def session_config(self) -> SessionConfig:
        return SessionConfig(
            secret=self.session_secret,
            ttl_days=self.session_ttl_days,
            cookie_name=self.session_cookie_name,
            cookie_secure=self.cookie_secure,
            cookie_samesite=self.cookie_samesite,
        )

    def scoring_config(self) -> ScoringConfig:
        return ScoringConfig(
            worse_if_high_metrics=frozenset(self.worse_if_high_metrics),
            min_samples=self.baseline_min_samples,
            min_coverage=self.baseline_min_coverage,
            coverage_fraction=self.baseline_coverage_fraction,
            initial_std=self.baseline_initial_std,
            std_epsilon=self.baseline_std_epsilon,
            write_attempts=self.baseline_write_attempts,
            confidence_threshold=self.confidence_penalty_threshold,
            confidence_risk_threshold=self.confidence_penalty_risk_threshold,
            confidence_penalty=self.confidence_penalty,
            red_cutpoint=self.red_cutpoint,
            yellow_cutpoint=self.yellow_cutpoint,
        )


# Global settings instance
settings = Settings()
