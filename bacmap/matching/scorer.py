"""Signature confidence scoring.

Combines the eight factors from ``bacmap.matching.factors`` into a single
0-100 confidence using the learner's current weights, renormalized over the
factors that are non-zero for the pair.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog

from bacmap.config import ScoringConfig
from bacmap.models import (
    FACTOR_NAMES,
    ConfidenceFactors,
    Equipment,
    Signature,
    SignatureAnalytics,
    SignatureMatchResult,
    clamp_confidence,
)
from bacmap.matching.factors import compute_factors
from bacmap.matching.learning import (
    AdaptiveLearner,
    FactorWeights,
    LearningSample,
    update_analytics,
)

logger = structlog.get_logger()


def aggregate(factors: ConfidenceFactors, weights: FactorWeights) -> float:
    """Weighted average over non-zero factors, rounded to 2 decimals."""
    values = factors.as_dict()
    weighted = 0.0
    total_weight = 0.0
    for name in FACTOR_NAMES:
        value = values[name]
        if value > 0:
            weight = weights.get(name)
            weighted += value * weight
            total_weight += weight
    if total_weight == 0:
        return 0.0
    return round(clamp_confidence(weighted / total_weight), 2)


def build_reasoning(factors: ConfidenceFactors, eligible: bool) -> list[str]:
    """Human-readable clauses describing the factor vector."""
    reasoning: list[str] = []

    name = factors.point_name_similarity
    if name > 80:
        reasoning.append(f"High point name similarity ({name:.1f}%)")
    elif name >= 60:
        reasoning.append(f"Moderate point name similarity ({name:.1f}%)")
    elif name < 40:
        reasoning.append(f"Low point name similarity ({name:.1f}%)")

    if factors.point_count_match >= 100:
        reasoning.append("Point counts match exactly")
    elif factors.point_count_match < 50:
        reasoning.append(f"Point counts differ significantly ({factors.point_count_match:.1f}%)")

    if factors.point_type_match > 80:
        reasoning.append("Point kinds and units agree")

    if factors.equipment_type_match == 100:
        reasoning.append("Exact equipment type match")
    elif factors.equipment_type_match > 0:
        reasoning.append("Compatible equipment type")
    else:
        reasoning.append("Equipment type mismatch")

    if factors.vendor_model_match > 0:
        reasoning.append("Vendor/model information available")

    if factors.historical_accuracy > 80:
        reasoning.append(f"Strong historical accuracy ({factors.historical_accuracy:.1f}%)")
    elif factors.historical_accuracy < 40:
        reasoning.append(f"Weak historical accuracy ({factors.historical_accuracy:.1f}%)")

    if factors.semantic_similarity > 70:
        reasoning.append("Point semantics align")
    if factors.structural_consistency > 80:
        reasoning.append("Consistent point structure")

    if eligible:
        reasoning.append("Eligible for auto-assignment")
    return reasoning


class ConfidenceScorer:
    """Scores equipment against signatures and learns from feedback."""

    def __init__(
        self,
        config: ScoringConfig | None = None,
        learner: AdaptiveLearner | None = None,
    ) -> None:
        self.config = config or ScoringConfig()
        self.learner = learner or AdaptiveLearner(
            learning_rate=self.config.learning_rate,
            min_samples=self.config.min_learning_samples,
            max_samples=self.config.max_learning_samples,
        )

    @property
    def weights(self) -> FactorWeights:
        return self.learner.weights

    def is_eligible(self, confidence: float) -> bool:
        return confidence >= self.config.auto_assign_threshold

    def score(
        self,
        equipment: Equipment,
        signature: Signature,
        analytics: SignatureAnalytics | None = None,
    ) -> SignatureMatchResult:
        """Score one equipment against one signature.

        Args:
            equipment: Equipment with (optionally normalized) points
            signature: Candidate signature
            analytics: The signature's persisted analytics, if any

        Returns:
            SignatureMatchResult with factors, confidence and eligibility
        """
        factors = compute_factors(equipment, signature, analytics, self.config)
        confidence = aggregate(factors, self.weights)
        eligible = self.is_eligible(confidence)

        return SignatureMatchResult(
            signature_id=signature.id,
            confidence=confidence,
            factors=factors,
            reasoning=build_reasoning(factors, eligible),
            auto_assignment_eligible=eligible,
        )

    def get_all_signature_matches(
        self,
        equipment: Equipment,
        signatures: list[Signature],
        analytics: Mapping[str, SignatureAnalytics] | None = None,
    ) -> list[SignatureMatchResult]:
        """Score against every signature, highest confidence first."""
        analytics = analytics or {}
        results = [self.score(equipment, s, analytics.get(s.id)) for s in signatures]
        results.sort(key=lambda r: r.confidence, reverse=True)
        return results

    def record_feedback(
        self,
        equipment_id: str,
        signature_id: str,
        confirmed: bool,
        confidence_at_time: float,
        factors: ConfidenceFactors,
        analytics: SignatureAnalytics | None = None,
    ) -> SignatureAnalytics:
        """Record a feedback outcome.

        Appends a learning sample (possibly adapting the weights) and returns
        the signature's analytics with the outcome folded in. Persisting the
        returned analytics is the caller's job.
        """
        sample = LearningSample.from_factors(
            equipment_id, signature_id, confirmed, confidence_at_time, factors
        )
        previous_version = self.weights.version
        weights = self.learner.record(sample)
        if weights.version != previous_version:
            logger.info(
                "weights_adapted",
                version=weights.version,
                samples=len(self.learner.samples),
                weights=weights.as_dict(),
            )

        return update_analytics(analytics, signature_id, confirmed, confidence_at_time)

    def get_learning_data_summary(self) -> dict[str, Any]:
        return self.learner.summary()

    def reset_learning(self) -> None:
        self.learner.reset()
        logger.info("learning_reset")
