"""Confidence scoring of equipment against signatures."""

from bacmap.matching.factors import compute_factors
from bacmap.matching.learning import (
    AdaptiveLearner,
    FactorWeights,
    LearningSample,
    adapt_weights,
)
from bacmap.matching.scorer import ConfidenceScorer, aggregate

__all__ = [
    "AdaptiveLearner",
    "ConfidenceScorer",
    "FactorWeights",
    "LearningSample",
    "adapt_weights",
    "aggregate",
    "compute_factors",
]
