"""
Readiness check API endpoints: start, complete, read back and share.
"""

import time
from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Request

from readycheck.api.dependencies import get_current_identity
from readycheck.api.errors import error_response_for
from readycheck.exceptions import ReadyCheckError
from readycheck.middleware import get_correlation_id
from readycheck.models.api_models import (
    CheckCompletionRequest,
    CheckCompletionResponse,
    CheckRecordPayload,
    CheckRecordResponse,
    CheckStartRequest,
    CheckStartResponse,
    OkResponse,
    ScorePayload,
    ShareRequest,
)
from readycheck.models.internal_models import CheckRecord, Identity
from readycheck.observability import record_readiness_check, trace_function
from readycheck.services.readiness_service import ReadinessService, get_readiness_service

logger = structlog.get_logger()
router = APIRouter(prefix="/api/checks", tags=["checks"])


def _record_payload(record: CheckRecord) -> CheckRecordPayload:
    return CheckRecordPayload(
        id=record.id,
        startedAt=record.started_at,
        endedAt=record.ended_at,
        metricsSnapshot=record.metrics_snapshot,
        score=record.score_payload,
        readiness=record.flag.value if record.flag else None,
        integrity=record.integrity
    )


def _log_failure(message: str, error: Exception, correlation_id: str, **fields) -> None:
    if isinstance(error, ReadyCheckError):
        logger.warning(message, error_type=type(error).__name__, error=str(error), correlation_id=correlation_id, **fields)
    else:
        logger.error(message, error_type=type(error).__name__, correlation_id=correlation_id, **fields)


@router.post("/start", response_model=CheckStartResponse)
@trace_function("check_start_endpoint")
async def start_check(
    http_request: Request,
    request: Optional[CheckStartRequest] = None,
    identity: Identity = Depends(get_current_identity),
    service: ReadinessService = Depends(get_readiness_service)
):
    """Create a check record for the signed-in user."""
    correlation_id = get_correlation_id(http_request)
    device_fingerprint = request.deviceFingerprint if request else None

    try:
        record = await service.start_check(identity, device_fingerprint)
    except Exception as e:
        _log_failure("Check start failed", e, correlation_id, user_id=identity.user_id)
        return error_response_for(e, correlation_id)

    logger.info("Check started", check_id=record.id, user_id=identity.user_id, correlation_id=correlation_id)
    return CheckStartResponse(checkId=record.id)


@router.post("/complete", response_model=CheckCompletionResponse)
@trace_function("check_complete_endpoint")
async def complete_check(
    request: CheckCompletionRequest,
    http_request: Request,
    identity: Identity = Depends(get_current_identity),
    service: ReadinessService = Depends(get_readiness_service)
):
    """
    Score a check against the user's baselines and store the result.

    Scoring is relative to the user's own history: each metric is turned
    into a z-score once its baseline has enough samples, adverse
    deviations are summed into a risk scalar, and the risk is classified
    as GREEN, YELLOW or RED. Only GREEN checks advance the baselines.

    Args:
        request: checkId, metric summary, confidence and optional integrity
        http_request: HTTP request for correlation ID extraction

    Returns:
        CheckCompletionResponse with the readiness flag and score
    """
    correlation_id = get_correlation_id(http_request)
    start_time = time.time()

    try:
        result = await service.complete_check(
            identity,
            str(request.checkId),
            request.metrics,
            request.confidence,
            request.integrity
        )
    except Exception as e:
        _log_failure("Check completion failed", e, correlation_id, check_id=str(request.checkId))
        return error_response_for(e, correlation_id)

    record_readiness_check(result.readiness.value, result.risk, result.baseline_pending)
    logger.info(
        "Check completed",
        check_id=str(request.checkId),
        readiness=result.readiness.value,
        risk=round(result.risk, 3),
        baseline_coverage=result.baseline_coverage,
        baseline_pending=result.baseline_pending,
        process_time_ms=round((time.time() - start_time) * 1000, 2),
        correlation_id=correlation_id
    )

    return CheckCompletionResponse(
        readiness=result.readiness.value,
        score=ScorePayload(**result.to_payload())
    )


@router.get("/{check_id}", response_model=CheckRecordResponse)
@trace_function("check_get_endpoint")
async def get_check(
    check_id: UUID,
    http_request: Request,
    identity: Identity = Depends(get_current_identity),
    service: ReadinessService = Depends(get_readiness_service)
):
    """Return one of the signed-in user's check records."""
    correlation_id = get_correlation_id(http_request)

    try:
        record = await service.get_check(identity, str(check_id))
    except Exception as e:
        _log_failure("Check lookup failed", e, correlation_id, check_id=str(check_id))
        return error_response_for(e, correlation_id)

    return CheckRecordResponse(check=_record_payload(record))


@router.post("/{check_id}/share", response_model=OkResponse)
@trace_function("check_share_endpoint")
async def share_check(
    check_id: UUID,
    request: ShareRequest,
    http_request: Request,
    identity: Identity = Depends(get_current_identity),
    service: ReadinessService = Depends(get_readiness_service)
):
    """Email a completed check's result to a recipient."""
    correlation_id = get_correlation_id(http_request)

    try:
        await service.share_result(identity, str(check_id), request.to)
    except Exception as e:
        _log_failure("Check share failed", e, correlation_id, check_id=str(check_id))
        return error_response_for(e, correlation_id)

    logger.info("Check shared", check_id=str(check_id), correlation_id=correlation_id)
    return OkResponse()
