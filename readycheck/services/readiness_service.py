"""
Readiness scoring and the check lifecycle.

This module provides the core business logic for:
- Scoring a check's metric summary against the user's own baselines
- Starting, completing (once) and reading check records
- Advancing baselines after GREEN checks only
- Emailing a completed result to a recipient
"""

import html
import logging
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional

from readycheck.clients.email_client import ResendEmailClient, get_email_client
from readycheck.clients.supabase_client import DatabaseManager, get_database
from readycheck.config import ScoringConfig, settings
from readycheck.exceptions import (
    BaselineUpdateError,
    CheckAlreadyCompletedError,
    CheckNotCompletedError,
    CheckNotFoundError,
    ValidationError,
)
from readycheck.models.internal_models import (
    CheckRecord,
    Identity,
    MetricBaseline,
    Readiness,
    ScoreResult,
)
from readycheck.services.baseline_service import BaselineStore
from readycheck.utils.stats_utils import (
    aggregate_risk,
    apply_confidence_penalty,
    baseline_established,
    classify_risk,
    is_baseline_pending,
    standardized_deviation,
)
from readycheck.utils.validation import normalize_email, validate_check_id, validate_metrics

logger = logging.getLogger(__name__)

DEFAULT_INTEGRITY = 1.0


class ReadinessScorer:
    """Turns a metric summary plus baselines into z-scores, a risk scalar and a flag."""

    def __init__(self, config: ScoringConfig):
        self.config = config

    def score(
        self,
        metrics: Mapping[str, float],
        confidence: float,
        baselines: Mapping[str, MetricBaseline]
    ) -> ScoreResult:
        """
        Score one check.

        Args:
            metrics: Metric name to observed value
            confidence: Self-reported confidence, 0-100
            baselines: Stored baselines keyed by metric name

        Returns:
            ScoreResult with per-metric z, risk, readiness and coverage
        """
        z: Dict[str, float] = {}
        coverage = 0

        for name, observation in metrics.items():
            baseline = baselines.get(name)
            if baseline_established(baseline, self.config.min_samples):
                coverage += 1
            z[name] = standardized_deviation(observation, baseline, self.config.min_samples)

        risk = aggregate_risk(z, self.config.worse_if_high_metrics)
        risk = apply_confidence_penalty(
            risk,
            confidence,
            confidence_threshold=self.config.confidence_threshold,
            risk_threshold=self.config.confidence_risk_threshold,
            penalty=self.config.confidence_penalty
        )
        readiness = classify_risk(risk, self.config.red_cutpoint, self.config.yellow_cutpoint)

        return ScoreResult(
            z=z,
            risk=risk,
            readiness=readiness,
            baseline_coverage=coverage,
            baseline_pending=is_baseline_pending(
                coverage,
                len(metrics),
                self.config.min_coverage,
                self.config.coverage_fraction
            )
        )


def render_result_email(app_name: str, record: CheckRecord, shared_by: str) -> str:
    payload = record.score_payload or {}
    when = record.ended_at.date().isoformat() if record.ended_at else ""
    pending = (
        "<p style=\"color:#666\">Baseline still being established; treat this flag as provisional.</p>"
        if payload.get("baselinePending") else ""
    )
    return (
        '<div style="font-family:ui-sans-serif,system-ui,-apple-system,Segoe UI,Roboto; line-height:1.4">'
        f"<h2>{html.escape(app_name)} result</h2>"
        f"<p>Date: <b>{when}</b></p>"
        f"<p>Flag: <b>{html.escape(record.flag.value)}</b></p>"
        f"<p>Risk: {float(payload.get('risk', 0.0)):.2f}</p>"
        f"<p>Metrics with baseline: {int(payload.get('baselineCoverage', 0))}</p>"
        f"{pending}"
        f"<p style=\"color:#666; font-size:12px;\">Shared by {html.escape(shared_by)}. Non-diagnostic readiness check.</p>"
        "</div>"
    )


class ReadinessService:
    """Check lifecycle: start, complete with scoring, read back and share."""

    def __init__(
        self,
        db: DatabaseManager,
        baseline_store: BaselineStore,
        scorer: ReadinessScorer,
        email_client: ResendEmailClient,
        app_name: str = "Cognition"
    ):
        self.db = db
        self.baselines = baseline_store
        self.scorer = scorer
        self.email_client = email_client
        self.app_name = app_name

    async def start_check(self, identity: Identity, device_fingerprint: Optional[str] = None) -> CheckRecord:
        record = CheckRecord(
            user_id=identity.user_id,
            started_at=datetime.now(timezone.utc),
            device_fingerprint=device_fingerprint
        )
        record = await self.db.checks.create(record)
        logger.info(f"Started check {record.id} for user {identity.user_id}")
        return record

    async def complete_check(
        self,
        identity: Identity,
        check_id: str,
        metrics: Mapping[str, float],
        confidence: float,
        integrity: Optional[float] = None
    ) -> ScoreResult:
        """
        Score a submitted check, store the result once, and advance baselines on GREEN.

        Args:
            identity: Session identity of the submitter
            check_id: Check returned by start_check
            metrics: Metric name to observed value
            confidence: Self-reported confidence, 0-100
            integrity: Optional client integrity score, defaults to 1.0

        Returns:
            ScoreResult for the check

        Raises:
            ValidationError: If the check id, metrics or confidence are malformed
            CheckNotFoundError: If the check is unknown or not the user's
            CheckAlreadyCompletedError: If the check was already scored
            DependencyError: On store failures
        """
        check_id = validate_check_id(check_id)
        metrics = validate_metrics(metrics)
        if not 0.0 <= confidence <= 100.0:
            raise ValidationError("Confidence must be between 0 and 100")

        record = await self.db.checks.get(check_id, identity.user_id)
        if record is None:
            raise CheckNotFoundError(f"Check {check_id} not found")
        if record.is_completed:
            raise CheckAlreadyCompletedError(f"Check {check_id} already completed")

        baselines = await self.baselines.load(identity.user_id, metrics.keys())
        result = self.scorer.score(metrics, confidence, baselines)

        record.ended_at = datetime.now(timezone.utc)
        record.metrics_snapshot = {"metrics": metrics, "confidence": confidence}
        record.score_payload = result.to_payload()
        record.flag = result.readiness
        record.integrity = DEFAULT_INTEGRITY if integrity is None else integrity

        if not await self.db.checks.complete(record):
            raise CheckAlreadyCompletedError(f"Check {check_id} already completed")

        logger.info(
            f"Completed check {check_id} for user {identity.user_id}: "
            f"readiness={result.readiness.value}, risk={result.risk:.3f}, "
            f"coverage={result.baseline_coverage}/{len(metrics)}"
        )

        if result.readiness is Readiness.GREEN:
            try:
                await self.baselines.record_observations(identity.user_id, metrics, baselines)
            except BaselineUpdateError as e:
                # The check is already stored, so the result still goes back to the caller
                logger.error(
                    f"Check {check_id} completed but baselines {sorted(e.failed)} for user "
                    f"{identity.user_id} were not updated: {e}"
                )
        else:
            logger.info(f"Baselines for user {identity.user_id} left unchanged after {result.readiness.value} check")

        return result

    async def get_check(self, identity: Identity, check_id: str) -> CheckRecord:
        check_id = validate_check_id(check_id)
        record = await self.db.checks.get(check_id, identity.user_id)
        if record is None:
            raise CheckNotFoundError(f"Check {check_id} not found")
        return record

    async def share_result(self, identity: Identity, check_id: str, recipient: str) -> None:
        """
        Email a completed check's result.

        Raises:
            ValidationError: If the recipient is malformed
            CheckNotFoundError: If the check is unknown or not the user's
            CheckNotCompletedError: If the check has no score yet
            EmailDeliveryError: If the provider does not accept the email
        """
        recipient = normalize_email(recipient)
        record = await self.get_check(identity, check_id)
        if not record.is_completed or record.flag is None:
            raise CheckNotCompletedError(f"Check {check_id} has no result yet")

        await self.email_client.send(
            to=recipient,
            subject=f"{self.app_name} result: {record.flag.value}",
            html=render_result_email(self.app_name, record, identity.email)
        )
        logger.info(f"Shared check {check_id} of user {identity.user_id}")


# Global service instance
_readiness_service: Optional[ReadinessService] = None


def get_readiness_service() -> ReadinessService:
    """
    Get the global readiness service instance.

    Returns:
        ReadinessService: The global readiness service
    """
    global _readiness_service
    if _readiness_service is None:
        db = get_database()
        config = settings.scoring_config()
        _readiness_service = ReadinessService(
            db=db,
            baseline_store=BaselineStore(db, config),
            scorer=ReadinessScorer(config),
            email_client=get_email_client(),
            app_name=settings.app_name
        )
    return _readiness_service
