"""
Tests for readiness scoring, baselines and the check lifecycle.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from readycheck.config import ScoringConfig
from readycheck.exceptions import (
    BaselineUpdateError,
    CheckAlreadyCompletedError,
    CheckNotCompletedError,
    CheckNotFoundError,
    ConcurrentUpdateError,
    EmailDeliveryError,
    StoreUnavailableError,
    ValidationError,
)
from readycheck.models.internal_models import CheckRecord, Identity, MetricBaseline, Readiness
from readycheck.services.baseline_service import BaselineStore
from readycheck.services.readiness_service import (
    ReadinessScorer,
    ReadinessService,
    render_result_email,
)


CHECK_ID = "5f0c6f0e-8a4e-4c55-9a8f-0d1f6b9d2c11"


def _baseline(metric, mean, std, n, user_id="user-1"):
    return MetricBaseline(user_id=user_id, metric=metric, mean=mean, std=std, sample_count=n)


@pytest.fixture
def config():
    return ScoringConfig()


@pytest.fixture
def scorer(config):
    return ReadinessScorer(config)


@pytest.fixture
def identity():
    return Identity(user_id="user-1", email="alice@example.com")


@pytest.fixture
def mock_db():
    """Create a mock database manager."""
    db = Mock()
    db.checks = Mock()
    db.checks.create = AsyncMock()
    db.checks.get = AsyncMock()
    db.checks.complete = AsyncMock(return_value=True)
    db.baselines = Mock()
    db.baselines.get_for_metrics = AsyncMock(return_value={})
    db.baselines.get = AsyncMock(return_value=None)
    db.baselines.insert = AsyncMock(return_value=True)
    db.baselines.update_if_unchanged = AsyncMock(return_value=True)
    return db


@pytest.fixture
def mock_email_client():
    email_client = Mock()
    email_client.send = AsyncMock()
    return email_client


@pytest.fixture
def service(mock_db, config, scorer, mock_email_client):
    return ReadinessService(
        db=mock_db,
        baseline_store=BaselineStore(mock_db, config),
        scorer=scorer,
        email_client=mock_email_client
    )


def _open_check(check_id=CHECK_ID, user_id="user-1"):
    return CheckRecord(id=check_id, user_id=user_id, started_at=datetime.now(timezone.utc))


class TestReadinessScorer:
    """Test cases for ReadinessScorer."""

    def test_established_baseline_z_score(self, scorer):
        baselines = {"srt_mean_ms": _baseline("srt_mean_ms", 300.0, 20.0, 5)}

        result = scorer.score({"srt_mean_ms": 360.0}, 50, baselines)

        assert result.z == {"srt_mean_ms": 3.0}
        assert result.risk == 3.0
        assert result.readiness is Readiness.YELLOW
        assert result.baseline_coverage == 1
        assert result.baseline_pending is True

    def test_without_baselines_everything_is_zero(self, scorer):
        metrics = {"srt_mean_ms": 340.0, "wm_error_rate": 0.4, "accuracy": 0.9}

        result = scorer.score(metrics, 95, {})

        assert result.z == {"srt_mean_ms": 0.0, "wm_error_rate": 0.0, "accuracy": 0.0}
        assert result.risk == 0.0
        assert result.readiness is Readiness.GREEN
        assert result.baseline_coverage == 0
        assert result.baseline_pending is True

    def test_young_baseline_does_not_count(self, scorer):
        baselines = {"srt_mean_ms": _baseline("srt_mean_ms", 300.0, 20.0, 4)}

        result = scorer.score({"srt_mean_ms": 500.0}, 50, baselines)

        assert result.z["srt_mean_ms"] == 0.0
        assert result.baseline_coverage == 0

    def test_improvement_does_not_hide_decline(self, scorer):
        baselines = {
            "srt_mean_ms": _baseline("srt_mean_ms", 300.0, 20.0, 5),
            "wm_error_rate": _baseline("wm_error_rate", 0.2, 0.1, 5),
        }

        result = scorer.score({"srt_mean_ms": 340.0, "wm_error_rate": 0.1}, 50, baselines)

        assert result.z["srt_mean_ms"] == pytest.approx(2.0)
        assert result.z["wm_error_rate"] == pytest.approx(-1.0)
        assert result.risk == pytest.approx(2.0)
        assert result.readiness is Readiness.YELLOW

    def test_overconfidence_penalty_stays_yellow(self, scorer):
        baselines = {"srt_mean_ms": _baseline("srt_mean_ms", 300.0, 20.0, 5)}

        result = scorer.score({"srt_mean_ms": 364.0}, 90, baselines)

        assert result.risk == pytest.approx(3.7)
        assert result.readiness is Readiness.YELLOW

    def test_red_at_cutpoint(self, scorer):
        baselines = {"srt_mean_ms": _baseline("srt_mean_ms", 300.0, 20.0, 5)}

        result = scorer.score({"srt_mean_ms": 380.0}, 50, baselines)

        assert result.risk == pytest.approx(4.0)
        assert result.readiness is Readiness.RED

    def test_coverage_rule_over_many_metrics(self, scorer):
        names = [f"m{i}" for i in range(6)]
        baselines = {name: _baseline(name, 1.0, 1.0, 5) for name in names[:3]}

        result = scorer.score({name: 1.0 for name in names}, 50, baselines)

        assert result.baseline_coverage == 3
        assert result.baseline_pending is True

    def test_payload_shape(self, scorer):
        result = scorer.score({"srt_mean_ms": 300.0}, 50, {})

        assert result.to_payload() == {
            "z": {"srt_mean_ms": 0.0},
            "risk": 0.0,
            "readiness": "GREEN",
            "baselineCoverage": 0,
            "baselinePending": True,
        }


class TestBaselineStore:
    """Test cases for optimistic baseline writes."""

    @pytest.mark.asyncio
    async def test_first_observation_inserts(self, mock_db, config):
        store = BaselineStore(mock_db, config)

        updated = await store.record_observations("user-1", {"srt_mean_ms": 340.0})

        written = mock_db.baselines.insert.call_args[0][0]
        assert (written.mean, written.std, written.sample_count) == (340.0, 1.0, 1)
        assert updated["srt_mean_ms"].sample_count == 1
        mock_db.baselines.update_if_unchanged.assert_not_called()

    @pytest.mark.asyncio
    async def test_existing_baseline_updates_conditionally(self, mock_db, config):
        store = BaselineStore(mock_db, config)
        prior = _baseline("srt_mean_ms", 310.0, 20.0, 5)

        updated = await store.record_observations("user-1", {"srt_mean_ms": 340.0}, {"srt_mean_ms": prior})

        candidate, expected_count = mock_db.baselines.update_if_unchanged.call_args[0]
        assert expected_count == 5
        assert candidate.sample_count == 6
        assert candidate.mean == pytest.approx(315.0)
        assert updated["srt_mean_ms"] is candidate

    @pytest.mark.asyncio
    async def test_lost_insert_race_reloads_and_updates(self, mock_db, config):
        store = BaselineStore(mock_db, config)
        mock_db.baselines.insert.return_value = False
        mock_db.baselines.get.return_value = _baseline("srt_mean_ms", 330.0, 1.0, 1)

        updated = await store.record_observations("user-1", {"srt_mean_ms": 340.0})

        assert updated["srt_mean_ms"].sample_count == 2
        assert updated["srt_mean_ms"].mean == pytest.approx(335.0)
        candidate, expected_count = mock_db.baselines.update_if_unchanged.call_args[0]
        assert expected_count == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_configured_attempts(self, mock_db):
        config = ScoringConfig(write_attempts=3)
        store = BaselineStore(mock_db, config)
        prior = _baseline("srt_mean_ms", 310.0, 20.0, 5)
        mock_db.baselines.update_if_unchanged.return_value = False
        mock_db.baselines.get.return_value = prior

        with pytest.raises(BaselineUpdateError) as exc_info:
            await store.record_observations("user-1", {"srt_mean_ms": 340.0}, {"srt_mean_ms": prior})

        assert isinstance(exc_info.value.failed["srt_mean_ms"], ConcurrentUpdateError)
        assert mock_db.baselines.update_if_unchanged.await_count == 3

    @pytest.mark.asyncio
    async def test_failing_metric_does_not_stop_the_others(self, mock_db, config):
        store = BaselineStore(mock_db, config)
        mock_db.baselines.insert.side_effect = lambda baseline: baseline.metric != "b"
        mock_db.baselines.get.return_value = None

        with pytest.raises(BaselineUpdateError) as exc_info:
            await store.record_observations("user-1", {"a": 1.0, "b": 2.0, "c": 3.0})

        assert set(exc_info.value.updated) == {"a", "c"}
        assert set(exc_info.value.failed) == {"b"}
        written = [call.args[0].metric for call in mock_db.baselines.insert.call_args_list]
        assert written.count("a") == 1
        assert written.count("c") == 1

    @pytest.mark.asyncio
    async def test_store_outage_on_one_metric_is_collected(self, mock_db, config):
        store = BaselineStore(mock_db, config)

        async def insert(baseline):
            if baseline.metric == "a":
                raise StoreUnavailableError("Database error 08006")
            return True

        mock_db.baselines.insert.side_effect = insert

        with pytest.raises(BaselineUpdateError) as exc_info:
            await store.record_observations("user-1", {"a": 1.0, "b": 2.0})

        assert isinstance(exc_info.value.failed["a"], StoreUnavailableError)
        assert set(exc_info.value.updated) == {"b"}


class TestReadinessService:
    """Test cases for the check lifecycle."""

    @pytest.mark.asyncio
    async def test_start_check_creates_record(self, service, mock_db, identity):
        mock_db.checks.create.side_effect = lambda record: _with_id(record, "check-9")

        record = await service.start_check(identity, device_fingerprint="fp-1")

        assert record.id == "check-9"
        created = mock_db.checks.create.call_args[0][0]
        assert created.user_id == "user-1"
        assert created.device_fingerprint == "fp-1"
        assert created.ended_at is None

    @pytest.mark.asyncio
    async def test_green_check_is_stored_and_advances_baselines(self, service, mock_db, identity):
        mock_db.checks.get.return_value = _open_check()

        result = await service.complete_check(identity, CHECK_ID, {"srt_mean_ms": 340.0}, 70)

        assert result.readiness is Readiness.GREEN
        stored = mock_db.checks.complete.call_args[0][0]
        assert stored.flag is Readiness.GREEN
        assert stored.integrity == 1.0
        assert stored.metrics_snapshot == {"metrics": {"srt_mean_ms": 340.0}, "confidence": 70}
        assert stored.score_payload["readiness"] == "GREEN"
        assert stored.ended_at is not None
        written = mock_db.baselines.insert.call_args[0][0]
        assert (written.mean, written.std, written.sample_count) == (340.0, 1.0, 1)

    @pytest.mark.asyncio
    async def test_baseline_failure_after_completion_still_returns_result(self, service, mock_db, identity):
        mock_db.checks.get.return_value = _open_check()
        mock_db.baselines.insert.side_effect = lambda baseline: baseline.metric != "b"

        result = await service.complete_check(identity, CHECK_ID, {"a": 1.0, "b": 2.0}, 70)

        assert result.readiness is Readiness.GREEN
        mock_db.checks.complete.assert_awaited_once()
        written = {call.args[0].metric for call in mock_db.baselines.insert.call_args_list}
        assert written == {"a", "b"}

    @pytest.mark.asyncio
    async def test_non_green_check_leaves_baselines_untouched(self, service, mock_db, identity):
        mock_db.checks.get.return_value = _open_check()
        mock_db.baselines.get_for_metrics.return_value = {
            "srt_mean_ms": _baseline("srt_mean_ms", 300.0, 20.0, 5)
        }

        result = await service.complete_check(identity, CHECK_ID, {"srt_mean_ms": 360.0}, 50)

        assert result.readiness is Readiness.YELLOW
        mock_db.checks.complete.assert_awaited_once()
        mock_db.baselines.insert.assert_not_called()
        mock_db.baselines.update_if_unchanged.assert_not_called()

    @pytest.mark.asyncio
    async def test_explicit_integrity_is_kept(self, service, mock_db, identity):
        mock_db.checks.get.return_value = _open_check()

        await service.complete_check(identity, CHECK_ID, {"srt_mean_ms": 340.0}, 70, integrity=0.4)

        assert mock_db.checks.complete.call_args[0][0].integrity == 0.4

    @pytest.mark.asyncio
    async def test_unknown_check(self, service, mock_db, identity):
        mock_db.checks.get.return_value = None

        with pytest.raises(CheckNotFoundError):
            await service.complete_check(identity, "00000000-0000-0000-0000-000000000000", {"srt_mean_ms": 340.0}, 70)

    @pytest.mark.asyncio
    async def test_malformed_check_id_never_reaches_the_store(self, service, mock_db, identity):
        with pytest.raises(ValidationError):
            await service.complete_check(identity, "check-1", {"srt_mean_ms": 340.0}, 70)
        with pytest.raises(ValidationError):
            await service.get_check(identity, "not-a-uuid")

        mock_db.checks.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_completed_check_cannot_be_resubmitted(self, service, mock_db, identity):
        record = _open_check()
        record.ended_at = datetime.now(timezone.utc)
        mock_db.checks.get.return_value = record

        with pytest.raises(CheckAlreadyCompletedError):
            await service.complete_check(identity, CHECK_ID, {"srt_mean_ms": 340.0}, 70)

        mock_db.checks.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_concurrent_completion_loses(self, service, mock_db, identity):
        mock_db.checks.get.return_value = _open_check()
        mock_db.checks.complete.return_value = False

        with pytest.raises(CheckAlreadyCompletedError):
            await service.complete_check(identity, CHECK_ID, {"srt_mean_ms": 340.0}, 70)

        mock_db.baselines.insert.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("metrics, confidence", [
        ({}, 50),
        ({"srt_mean_ms": float("nan")}, 50),
        ({"srt_mean_ms": float("inf")}, 50),
        ({"srt_mean_ms": 300.0}, 101),
        ({"srt_mean_ms": 300.0}, -1),
    ])
    async def test_invalid_submission_writes_nothing(self, service, mock_db, identity, metrics, confidence):
        mock_db.checks.get.return_value = _open_check()

        with pytest.raises(ValidationError):
            await service.complete_check(identity, CHECK_ID, metrics, confidence)

        mock_db.checks.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_share_completed_check(self, service, mock_db, mock_email_client, identity):
        record = _open_check()
        record.ended_at = datetime(2026, 10, 19, tzinfo=timezone.utc)
        record.flag = Readiness.YELLOW
        record.score_payload = {"risk": 2.5, "baselineCoverage": 3, "baselinePending": False}
        mock_db.checks.get.return_value = record

        await service.share_result(identity, CHECK_ID, " Coach@Example.com ")

        kwargs = mock_email_client.send.call_args.kwargs
        assert kwargs["to"] == "coach@example.com"
        assert "YELLOW" in kwargs["subject"]
        assert "2.50" in kwargs["html"]
        assert "2026-10-19" in kwargs["html"]

    @pytest.mark.asyncio
    async def test_share_open_check_is_rejected(self, service, mock_db, mock_email_client, identity):
        mock_db.checks.get.return_value = _open_check()

        with pytest.raises(CheckNotCompletedError):
            await service.share_result(identity, CHECK_ID, "coach@example.com")

        mock_email_client.send.assert_not_called()

    @pytest.mark.asyncio
    async def test_share_to_bad_recipient(self, service, identity):
        with pytest.raises(ValidationError):
            await service.share_result(identity, CHECK_ID, "nobody")

    @pytest.mark.asyncio
    async def test_share_delivery_failure_propagates(self, service, mock_db, mock_email_client, identity):
        record = _open_check()
        record.ended_at = datetime.now(timezone.utc)
        record.flag = Readiness.GREEN
        record.score_payload = {"risk": 0.0, "baselineCoverage": 0, "baselinePending": True}
        mock_db.checks.get.return_value = record
        mock_email_client.send.side_effect = EmailDeliveryError("Email provider returned HTTP 503")

        with pytest.raises(EmailDeliveryError):
            await service.share_result(identity, CHECK_ID, "coach@example.com")


def _with_id(record: CheckRecord, check_id: str) -> CheckRecord:
    record.id = check_id
    return record


def test_result_email_marks_pending_baseline():
    record = _open_check()
    record.ended_at = datetime.now(timezone.utc)
    record.flag = Readiness.GREEN
    record.score_payload = {"risk": 0.0, "baselineCoverage": 0, "baselinePending": True}

    html = render_result_email("Cognition", record, "alice@example.com")

    assert "provisional" in html
    assert "alice@example.com" in html
