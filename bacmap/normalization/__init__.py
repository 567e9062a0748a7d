"""Point-name normalization: abbreviation expansion, tags and confidence."""

from bacmap.normalization.cache import NormalizationCache
from bacmap.normalization.classifier import classify_point
from bacmap.normalization.engine import (
    NormalizationEngine,
    get_engine,
    normalization_stats,
    normalize_label,
)
from bacmap.normalization.vendor_rules import (
    EquipmentStrategy,
    PatternRule,
    RuleRegistry,
    VendorRuleSet,
    normalize_vendor_name,
)

__all__ = [
    "EquipmentStrategy",
    "NormalizationCache",
    "NormalizationEngine",
    "PatternRule",
    "RuleRegistry",
    "VendorRuleSet",
    "classify_point",
    "get_engine",
    "normalization_stats",
    "normalize_label",
    "normalize_vendor_name",
]
