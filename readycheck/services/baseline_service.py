"""
Per-user, per-metric baseline storage.

Baselines are only ever advanced by GREEN checks. Writes are optimistic:
an update is conditioned on the sample count that was read, a first insert
relies on the (user_id, metric) unique constraint, and a lost race reloads
the row and recomputes from the fresh state.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, Mapping, Optional

from readycheck.clients.supabase_client import DatabaseManager
from readycheck.config import ScoringConfig
from readycheck.exceptions import BaselineUpdateError, ConcurrentUpdateError, DependencyError
from readycheck.models.internal_models import MetricBaseline
from readycheck.utils.stats_utils import next_baseline_stats

logger = logging.getLogger(__name__)


class BaselineStore:
    """Reads and advances running mean/std/count per (user, metric)."""

    def __init__(self, db: DatabaseManager, config: ScoringConfig):
        self.db = db
        self.config = config

    async def load(self, user_id: str, metrics: Iterable[str]) -> Dict[str, MetricBaseline]:
        """Fetch the baselines of all given metrics for a user."""
        return await self.db.baselines.get_for_metrics(user_id, metrics)

    async def record_observations(
        self,
        user_id: str,
        observations: Mapping[str, float],
        known: Optional[Mapping[str, MetricBaseline]] = None
    ) -> Dict[str, MetricBaseline]:
        """
        Fold one observation per metric into the user's baselines.

        Args:
            user_id: Owner of the baselines
            observations: Metric name to observed value
            known: Baselines already read for this submission, used as the
                first guess of each row's current state

        Returns:
            Metric name to the baseline as written

        Raises:
            BaselineUpdateError: If any metric could not be written; the
                metrics that were written stay written and are listed on
                the error alongside the failures
        """
        known = known or {}
        updated: Dict[str, MetricBaseline] = {}
        failed: Dict[str, DependencyError] = {}
        for metric, observation in observations.items():
            try:
                updated[metric] = await self._record(user_id, metric, observation, known.get(metric))
            except DependencyError as e:
                logger.warning(f"Baseline {metric} for user {user_id} not updated: {e}")
                failed[metric] = e

        if failed:
            raise BaselineUpdateError(
                f"Could not update baselines {sorted(failed)} for user {user_id}",
                updated=updated,
                failed=failed
            )
        return updated

    async def _record(
        self,
        user_id: str,
        metric: str,
        observation: float,
        prior: Optional[MetricBaseline]
    ) -> MetricBaseline:
        for attempt in range(1, self.config.write_attempts + 1):
            mean, std, count = next_baseline_stats(
                prior,
                observation,
                initial_std=self.config.initial_std,
                epsilon=self.config.std_epsilon
            )
            candidate = MetricBaseline(
                user_id=user_id,
                metric=metric,
                mean=mean,
                std=std,
                sample_count=count,
                updated_at=datetime.now(timezone.utc)
            )

            if prior is None:
                written = await self.db.baselines.insert(candidate)
            else:
                written = await self.db.baselines.update_if_unchanged(candidate, prior.sample_count)

            if written:
                logger.debug(f"Baseline {metric} for user {user_id} now n={count}")
                return candidate

            logger.info(
                f"Baseline {metric} for user {user_id} changed concurrently "
                f"(attempt {attempt}/{self.config.write_attempts}), reloading"
            )
            prior = await self.db.baselines.get(user_id, metric)

        raise ConcurrentUpdateError(f"Could not update baseline {metric} after {self.config.write_attempts} attempts")
