"""
Numerical helpers for per-user baselines and readiness risk.

This module provides functions for:
- Standardized deviations against a running baseline
- Aggregating adverse deviations into a risk scalar
- The overconfidence penalty and three-band classification
- The incremental mean/std update applied after GREEN checks
"""

import math
from typing import AbstractSet, Mapping, Optional, Tuple

import numpy as np

from readycheck.models.internal_models import MetricBaseline, Readiness


def baseline_established(baseline: Optional[MetricBaseline], min_samples: int) -> bool:
    """A baseline counts only once it has enough samples and a positive spread."""
    return (
        baseline is not None
        and baseline.sample_count >= min_samples
        and baseline.std > 0
    )


def standardized_deviation(
    observation: float,
    baseline: Optional[MetricBaseline],
    min_samples: int
) -> float:
    """
    Compute the z-score of an observation against a baseline.

    Args:
        observation: Submitted metric value
        baseline: Stored baseline for the metric, if any
        min_samples: Sample count below which the baseline is not trusted

    Returns:
        (observation - mean) / std, or 0.0 when the baseline is not established
    """
    if not baseline_established(baseline, min_samples):
        return 0.0
    return (observation - baseline.mean) / baseline.std


def aggregate_risk(z_scores: Mapping[str, float], worse_if_high: AbstractSet[str]) -> float:
    """
    Sum the adverse deviations of worse-if-high metrics.

    Negative z-scores are clipped to zero, so a strong result on one metric
    never cancels a decline on another. Metrics outside `worse_if_high` do
    not contribute.
    """
    adverse = np.array(
        [z for name, z in z_scores.items() if name in worse_if_high],
        dtype=np.float64
    )
    if adverse.size == 0:
        return 0.0
    return float(np.maximum(adverse, 0.0).sum())


def apply_confidence_penalty(
    risk: float,
    confidence: float,
    confidence_threshold: float,
    risk_threshold: float,
    penalty: float
) -> float:
    """Add `penalty` when self-reported confidence is high while risk already is."""
    if confidence > confidence_threshold and risk > risk_threshold:
        return risk + penalty
    return risk


def classify_risk(risk: float, red_cutpoint: float, yellow_cutpoint: float) -> Readiness:
    if risk >= red_cutpoint:
        return Readiness.RED
    if risk >= yellow_cutpoint:
        return Readiness.YELLOW
    return Readiness.GREEN


def is_baseline_pending(
    coverage: int,
    metric_count: int,
    min_coverage: int,
    coverage_fraction: float
) -> bool:
    return coverage < max(min_coverage, coverage_fraction * metric_count)


def next_baseline_stats(
    prior: Optional[MetricBaseline],
    observation: float,
    initial_std: float,
    epsilon: float
) -> Tuple[float, float, int]:
    """
    Fold one observation into a baseline.

    Args:
        prior: Current baseline, or None for a metric never seen before
        observation: New value to incorporate
        initial_std: Spread assigned to a fresh baseline
        epsilon: Floor applied to the updated std

    Returns:
        Tuple of (mean, std, sample_count)
    """
    if prior is None:
        return observation, initial_std, 1

    n = prior.sample_count
    n_next = n + 1
    mean_next = prior.mean + (observation - prior.mean) / n_next
    variance = (
        prior.std ** 2 * (n - 1) + (observation - prior.mean) * (observation - mean_next)
    ) / max(1, n_next - 1)
    std_next = max(epsilon, math.sqrt(max(0.0, variance)))

    return mean_next, std_next, n_next
