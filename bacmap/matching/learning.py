"""Feedback-driven adaptation of factor weights.

Weights are immutable, versioned snapshots. ``adapt_weights`` is a pure
function over a sample sequence; ``AdaptiveLearner`` owns the bounded sample
buffer and the current snapshot.
"""

from __future__ import annotations

import statistics
import threading
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from bacmap.models import FACTOR_NAMES, ConfidenceFactors, SignatureAnalytics, utcnow

INITIAL_WEIGHTS: dict[str, float] = {
    "point_name_similarity": 0.25,
    "point_count_match": 0.15,
    "point_type_match": 0.20,
    "vendor_model_match": 0.10,
    "equipment_type_match": 0.10,
    "historical_accuracy": 0.08,
    "semantic_similarity": 0.07,
    "structural_consistency": 0.05,
}


@dataclass(slots=True, frozen=True)
class FactorWeights:
    """Weight per factor, aligned with FACTOR_NAMES."""

    values: tuple[float, ...]
    version: int = 0

    @classmethod
    def initial(cls) -> FactorWeights:
        return cls(values=tuple(INITIAL_WEIGHTS[name] for name in FACTOR_NAMES))

    def get(self, name: str) -> float:
        return self.values[FACTOR_NAMES.index(name)]

    def as_dict(self) -> dict[str, float]:
        return dict(zip(FACTOR_NAMES, self.values))


@dataclass(slots=True, frozen=True)
class LearningSample:
    equipment_id: str
    signature_id: str
    confirmed: bool
    confidence: float
    factors: tuple[float, ...]
    timestamp: datetime = field(default_factory=utcnow)

    @classmethod
    def from_factors(
        cls,
        equipment_id: str,
        signature_id: str,
        confirmed: bool,
        confidence: float,
        factors: ConfidenceFactors,
    ) -> LearningSample:
        data = factors.as_dict()
        return cls(
            equipment_id=equipment_id,
            signature_id=signature_id,
            confirmed=confirmed,
            confidence=confidence,
            factors=tuple(data[name] for name in FACTOR_NAMES),
        )


def _correlation(values: list[float], outcomes: list[float]) -> float:
    try:
        return statistics.correlation(values, outcomes)
    except statistics.StatisticsError:
        # Constant input: no linear relationship to learn from
        return 0.0


def adapt_weights(
    samples: Sequence[LearningSample],
    current: FactorWeights,
    learning_rate: float = 0.1,
    min_samples: int = 10,
) -> FactorWeights:
    """Blend correlation-derived target weights into the current weights.

    For each factor, the Pearson correlation between its sampled values and
    the binary outcome (1 confirmed, 0 rejected) is computed; the absolute
    correlations, normalized to sum to 1, form the target vector. The result
    is ``(1 - learning_rate) * current + learning_rate * target``.

    Args:
        samples: Learning samples, oldest first
        current: Weights to adapt from
        learning_rate: Share of the target blended in
        min_samples: Samples required before adapting

    Returns:
        New FactorWeights with version + 1, or ``current`` when there is not
        enough signal to adapt
    """
    if len(samples) < min_samples:
        return current

    outcomes = [1.0 if s.confirmed else 0.0 for s in samples]
    correlations = [
        abs(_correlation([s.factors[i] for s in samples], outcomes))
        for i in range(len(FACTOR_NAMES))
    ]
    total = sum(correlations)
    if total == 0:
        return current

    blended = [
        (1 - learning_rate) * weight + learning_rate * (corr / total)
        for weight, corr in zip(current.values, correlations)
    ]
    norm = sum(blended)
    return FactorWeights(
        values=tuple(w / norm for w in blended),
        version=current.version + 1,
    )


def update_analytics(
    analytics: SignatureAnalytics | None,
    signature_id: str,
    confirmed: bool,
    confidence: float,
) -> SignatureAnalytics:
    """Return analytics with one more feedback outcome folded in."""
    base = analytics or SignatureAnalytics(signature_id=signature_id)
    average = _fold_confidence(base, confidence)
    total = base.total_matches + 1
    accurate = base.accurate_matches + (1 if confirmed else 0)
    feedback = base.user_feedback.model_copy(
        update={
            "positive": base.user_feedback.positive + (1 if confirmed else 0),
            "negative": base.user_feedback.negative + (0 if confirmed else 1),
        }
    )
    return base.model_copy(
        update={
            "total_matches": total,
            "accurate_matches": accurate,
            "accuracy": accurate / total,
            "average_confidence": average,
            "last_used": utcnow(),
            "user_feedback": feedback,
        }
    )


def record_usage(
    analytics: SignatureAnalytics | None, signature_id: str, confidence: float
) -> SignatureAnalytics:
    """Return analytics with one more assignment folded in.

    Assignments raise ``usage_frequency`` and move ``average_confidence``;
    ``total_matches`` and accuracy only change with feedback.
    """
    base = analytics or SignatureAnalytics(signature_id=signature_id)
    return base.model_copy(
        update={
            "usage_frequency": base.usage_frequency + 1,
            "average_confidence": _fold_confidence(base, confidence),
            "last_used": utcnow(),
        }
    )


def _fold_confidence(analytics: SignatureAnalytics, confidence: float) -> float:
    # Every feedback outcome and every assignment contributed one confidence
    seen = analytics.total_matches + analytics.usage_frequency
    return (analytics.average_confidence * seen + confidence) / (seen + 1)


class AdaptiveLearner:
    """Bounded learning-sample buffer with versioned weights."""

    def __init__(
        self,
        learning_rate: float = 0.1,
        min_samples: int = 10,
        max_samples: int = 1000,
        weights: FactorWeights | None = None,
    ) -> None:
        self.learning_rate = learning_rate
        self.min_samples = min_samples
        self._samples: deque[LearningSample] = deque(maxlen=max_samples)
        self._weights = weights or FactorWeights.initial()
        self._lock = threading.Lock()

    @property
    def weights(self) -> FactorWeights:
        return self._weights

    @property
    def samples(self) -> tuple[LearningSample, ...]:
        with self._lock:
            return tuple(self._samples)

    def record(self, sample: LearningSample) -> FactorWeights:
        """Append a sample and adapt weights once enough samples exist."""
        with self._lock:
            self._samples.append(sample)
            self._weights = adapt_weights(
                tuple(self._samples), self._weights, self.learning_rate, self.min_samples
            )
            return self._weights

    def reset(self) -> None:
        with self._lock:
            self._samples.clear()
            self._weights = FactorWeights.initial()

    def summary(self) -> dict[str, Any]:
        with self._lock:
            samples = tuple(self._samples)
            weights = self._weights
        confirmed = sum(1 for s in samples if s.confirmed)
        return {
            "total_samples": len(samples),
            "confirmed": confirmed,
            "rejected": len(samples) - confirmed,
            "confirmation_rate": confirmed / len(samples) if samples else 0.0,
            "weights": weights.as_dict(),
            "weights_version": weights.version,
        }
