"""BACnet point-name normalization engine.

Expands raw controller labels ("SaTmp", "RmTmpSpt") into canonical names
("VAV Supply Air Temperature") with semantic tags and a 0-100 confidence.
Steps, in order:

1. Vendor rule table (if the vendor is known): vendor-aware tokenization,
   exact (+20) or in-token (+12) vendor abbreviations, then full-label vendor
   idiom patterns (+8 each). A matched idiom's own confidence is a floor for
   the final score.
2. General dictionary: exact abbreviation (+15) or in-token (+8) per token,
   then up to three whole-string expansion passes (+5 per pass that expanded
   something). Words that are already canonical earn +5, or nothing when the
   vendor pass produced them. Multi-word terms spelled out in the result
   ("Supply Air") contribute their tags.
3. Equipment-type contextual prefix (+5) when not already present.
4. Title-case formatting with an upper-case acronym allow-list.
5. Unit and writable tags (applied after the cache lookup).
6. Confidence clamped to 0-100 and tags de-duplicated in first-seen order.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from bacmap.config import NormalizationConfig
from bacmap.models import (
    DeviceContext,
    Equipment,
    NormalizationMethod,
    NormalizationResult,
    NormalizationSummary,
    Point,
    SemanticMetadata,
    clamp_confidence,
)
from bacmap.normalization.cache import NormalizationCache, make_key
from bacmap.normalization.tokenizer import format_canonical, split_camel_case, tokenize
from bacmap.normalization.vendor_rules import (
    RuleRegistry,
    VendorRuleSet,
    normalize_vendor_name,
)
from bacmap.normalization.vocabulary import (
    DEFAULT_VOCABULARY,
    UPPERCASE_ACRONYMS,
    Vocabulary,
    VocabularyEntry,
    contains_word,
    contextual_prefix,
    phrase_tags,
)

logger = logging.getLogger(__name__)

VENDOR_EXACT_BONUS = 20.0
VENDOR_PARTIAL_BONUS = 12.0
VENDOR_PATTERN_BONUS = 8.0
DICTIONARY_EXACT_BONUS = 15.0
DICTIONARY_PARTIAL_BONUS = 8.0
EXPANSION_PASS_BONUS = 5.0
CANONICAL_WORD_BONUS = 5.0
CONTEXT_PREFIX_BONUS = 5.0
MAX_EXPANSION_PASSES = 3

# A point counts as normalized above this confidence
NORMALIZED_THRESHOLD = 50.0
# Vendor idiom confidence that marks point metadata as vendor-specific
VENDOR_SPECIFIC_THRESHOLD = 80.0


def unit_tags(unit: str | None) -> list[str]:
    """Tags implied by an engineering unit."""
    if not unit:
        return []
    u = unit.lower()
    if "°f" in u or "°c" in u or u in ("degf", "degc", "deg f", "deg c", "f", "c"):
        return ["temp", "sensor"]
    if "cfm" in u or "m³/h" in u or "m3/h" in u:
        return ["flow", "air", "sensor"]
    if "gpm" in u or "l/s" in u:
        return ["flow", "water", "sensor"]
    if "%" in u:
        return ["sensor"]
    if "psi" in u or "inh₂o" in u or "inh2o" in u or "pa" in u:
        return ["pressure", "sensor"]
    return []


def writable_tags(writable: bool) -> list[str]:
    return ["writable", "point"] if writable else ["sensor", "point"]


def dedupe(tags: list[str]) -> list[str]:
    return list(dict.fromkeys(tags))


@dataclass(slots=True)
class _Trace:
    confidence: float = 0.0
    floor: float = 0.0
    tags: list[str] = field(default_factory=list)
    reasoning: list[str] = field(default_factory=list)
    # Lower-cased words already credited by the vendor pass
    vendor_words: set[str] = field(default_factory=set)

    @property
    def score(self) -> float:
        return clamp_confidence(max(self.confidence, self.floor))

    def add(
        self, points: float, tags: tuple[str, ...] | list[str] = (), reason: str | None = None
    ) -> None:
        self.confidence += points
        self.tags.extend(tags)
        if reason:
            self.reasoning.append(reason)


def _splice(prefix: str, entry: VocabularyEntry, suffix: str) -> str:
    return " ".join(part for part in (prefix, entry.expansion, suffix) if part)


def device_context(model_name: str | None, vendor_name: str | None = None) -> DeviceContext:
    """Device flags derived from the controller model and vendor."""
    model = (model_name or "").lower()
    vendor = normalize_vendor_name(vendor_name)
    return DeviceContext(
        is_vfd=any(k in model for k in ("ach580", "vfd", "drive")),
        is_controller=any(k in model for k in ("mp-", "controller", "tb")),
        is_monitoring=any(k in model for k in ("apm", "monitor")) or "setra" in vendor,
        communication_protocol="BACnet",
    )


class NormalizationEngine:
    """Normalizes point labels using vendor rules, context and the dictionary.

    The engine owns its cache; ``clear_cache()`` and ``register_vendor()``
    invalidate it.
    """

    def __init__(
        self,
        config: NormalizationConfig | None = None,
        registry: RuleRegistry | None = None,
        vocabulary: Vocabulary | None = None,
        cache: NormalizationCache | None = None,
    ) -> None:
        self.config = config or NormalizationConfig()

        if registry is None:
            if self.config.vendor_rules_path:
                registry = RuleRegistry.from_yaml(self.config.vendor_rules_path)
            else:
                registry = RuleRegistry()
        self.registry = registry
        self.vocabulary = vocabulary or DEFAULT_VOCABULARY
        self.cache = cache or NormalizationCache(
            max_size=self.config.cache_max_size,
            ttl_seconds=self.config.cache_ttl_seconds,
        )

    def normalize(
        self,
        point: Point,
        source_vendor: str | None = None,
        equipment_type: str | None = None,
    ) -> NormalizationResult:
        """Normalize one point.

        Args:
            point: Point with its raw label, unit and writable flag
            source_vendor: Vendor name of the equipment's controller
            equipment_type: Free-form equipment category ("VAV", "AHU")

        Returns:
            NormalizationResult with canonical name, tags and confidence
        """
        key = make_key(point.label, equipment_type, source_vendor)
        base = self.cache.get(key)
        if base is None:
            base = self._normalize_label(point.label, source_vendor, equipment_type)
            self.cache.set(key, base)

        tags = dedupe(base.tags + unit_tags(point.unit) + writable_tags(point.writable))
        return base.model_copy(update={"tags": tags})

    def _normalize_label(
        self, label: str, source_vendor: str | None, equipment_type: str | None
    ) -> NormalizationResult:
        trace = _Trace()
        method = NormalizationMethod.PATTERN_MATCH
        text = label

        vendor = self.registry.vendor(source_vendor)
        if vendor is not None:
            text, applied = self._apply_vendor_rules(label, vendor, trace)
            if applied:
                method = NormalizationMethod.VENDOR_SPECIFIC

        text = self._apply_dictionary(text, trace)

        prefix = contextual_prefix(equipment_type)
        if prefix and not contains_word(text, prefix):
            text = f"{prefix} {text}".strip()
            trace.add(CONTEXT_PREFIX_BONUS, reason=f"Added {prefix} equipment context")

        canonical = format_canonical(text.split(), UPPERCASE_ACRONYMS) or label
        logger.debug("Normalized %r -> %r (%.1f)", label, canonical, trace.score)

        return NormalizationResult(
            original_name=label,
            canonical_name=canonical,
            tags=dedupe(trace.tags),
            confidence=trace.score,
            method=method,
            reasoning=trace.reasoning,
        )

    def _apply_vendor_rules(
        self, label: str, vendor: VendorRuleSet, trace: _Trace
    ) -> tuple[str, bool]:
        applied = False
        words: list[str] = []
        tokens = tokenize(label, vendor_aware=True)

        i = 0
        while i < len(tokens):
            token = tokens[i]
            entry, consumed = self._lookup(vendor.abbreviations, tokens, i)
            if entry is not None:
                source = "".join(tokens[i:i + consumed])
                words.append(entry.expansion)
                trace.vendor_words.update(entry.expansion.lower().split())
                trace.add(
                    VENDOR_EXACT_BONUS,
                    entry.tags,
                    f"{vendor.name} abbreviation: {source} -> {entry.expansion}",
                )
                applied = True
                i += consumed
                continue

            partial = vendor.abbreviations.partial_match(token)
            if partial is not None:
                words.append(_splice(*partial))
                trace.vendor_words.update(partial[1].expansion.lower().split())
                trace.add(
                    VENDOR_PARTIAL_BONUS,
                    partial[1].tags,
                    f"{vendor.name} partial match: {token} -> {partial[1].expansion}",
                )
                applied = True
                i += 1
                continue

            words.append(token)
            i += 1

        for rule in vendor.patterns:
            if rule.matches(label):
                trace.add(VENDOR_PATTERN_BONUS, rule.tags, f"{vendor.name} idiom: {rule.output}")
                trace.floor = max(trace.floor, rule.confidence)
                applied = True

        return " ".join(words), applied

    @staticmethod
    def _lookup(
        vocabulary: Vocabulary, tokens: list[str], index: int
    ) -> tuple[VocabularyEntry | None, int]:
        """Entry starting at ``tokens[index]``, preferring compound keys."""
        compound = vocabulary.compound_match(tokens, index)
        if compound is not None:
            return compound
        return vocabulary.lookup(tokens[index]), 1

    def _apply_dictionary(self, text: str, trace: _Trace) -> str:
        words: list[str] = []
        tokens = split_camel_case(text)

        i = 0
        while i < len(tokens):
            token = tokens[i]
            entry, consumed = self._lookup(self.vocabulary, tokens, i)
            if entry is not None and entry.is_identity:
                words.append(entry.expansion)
                points = 0.0 if token.lower() in trace.vendor_words else CANONICAL_WORD_BONUS
                trace.add(points, entry.tags)
                i += 1
                continue

            if entry is not None:
                source = "".join(tokens[i:i + consumed])
                words.append(entry.expansion)
                trace.add(
                    DICTIONARY_EXACT_BONUS, entry.tags, f"Expanded {source} -> {entry.expansion}"
                )
                i += consumed
                continue

            i += 1
            partial = self.vocabulary.partial_match(token)
            if partial is not None:
                words.append(_splice(*partial))
                trace.add(
                    DICTIONARY_PARTIAL_BONUS,
                    partial[1].tags,
                    f"Partially expanded {token} -> {partial[1].expansion}",
                )
                continue

            words.append(token)

        text = " ".join(words)
        for pass_number in range(1, MAX_EXPANSION_PASSES + 1):
            text, expanded = self._expansion_pass(text, trace)
            if not expanded:
                break
            trace.add(EXPANSION_PASS_BONUS, reason=f"Expansion pass {pass_number}")
        trace.add(0, phrase_tags(text))
        return text

    def _expansion_pass(self, text: str, trace: _Trace) -> tuple[str, bool]:
        """Expand abbreviations left inside compound tokens.

        An abbreviation is only expanded when its expansion is not already a
        whole word of the string.
        """
        words = text.split()
        expanded = False

        for i, word in enumerate(words):
            if self.vocabulary.is_canonical(word):
                continue
            current = " ".join(words)

            entry = self.vocabulary.lookup(word)
            if (
                entry is not None
                and entry.expansion.lower() != word.lower()
                and not contains_word(current, entry.expansion)
            ):
                words[i] = entry.expansion
                trace.add(0, entry.tags)
                expanded = True
                continue

            partial = self.vocabulary.partial_match(word)
            if partial is not None and not contains_word(current, partial[1].expansion):
                words[i] = _splice(*partial)
                trace.add(0, partial[1].tags)
                expanded = True

        return " ".join(words), expanded

    def semantic_metadata(
        self,
        label: str,
        vendor_name: str | None = None,
        model_name: str | None = None,
        equipment_type: str | None = None,
    ) -> SemanticMetadata:
        """Vendor/model idioms, equipment strategy and device context for a label."""
        reasoning: list[str] = []
        best_vendor_confidence = 0.0

        vendor = self.registry.vendor(vendor_name)
        if vendor is not None:
            reasoning.append(f"Applying {vendor.name} vendor rules")
            for rule in vendor.rules_for_model(model_name):
                if rule.matches(label):
                    best_vendor_confidence = max(best_vendor_confidence, rule.confidence)
                    reasoning.append(f"Model-specific rule: {rule.output}")
            for rule in vendor.patterns:
                if rule.matches(label):
                    best_vendor_confidence = max(best_vendor_confidence, rule.confidence)
                    reasoning.append(f"Vendor pattern: {rule.output}")

        strategy = self.registry.strategy(equipment_type)
        if strategy is not None:
            reasoning.append(f"Applying {strategy.context} equipment strategy")
            for rule in strategy.patterns:
                if rule.matches(label):
                    reasoning.append(f"Equipment pattern: {rule.output}")

        context = device_context(model_name, vendor_name)
        if context.is_vfd:
            reasoning.append("Device identified as VFD")
        if context.is_controller:
            reasoning.append("Device identified as controller")
        if context.is_monitoring:
            reasoning.append("Device identified as monitoring system")

        return SemanticMetadata(
            vendor_specific=best_vendor_confidence > VENDOR_SPECIFIC_THRESHOLD,
            equipment_specific=strategy is not None,
            device_context=context,
            reasoning=reasoning,
        )

    def normalize_equipment(self, equipment: Equipment) -> Equipment:
        """Normalize every point of an equipment.

        Returns a copy whose points carry canonical names, tags, confidence and
        semantic metadata, plus a normalization summary. Running it again on
        the same input produces the same derived fields.
        """
        points: list[Point] = []
        confidences: list[float] = []

        for point in equipment.points:
            result = self.normalize(point, equipment.vendor_name, equipment.equipment_type)
            metadata = self.semantic_metadata(
                point.label,
                equipment.vendor_name,
                equipment.model_name,
                equipment.equipment_type,
            )
            points.append(
                point.model_copy(
                    update={
                        "canonical_name": result.canonical_name,
                        "tags": result.tags,
                        "normalization_confidence": result.confidence,
                        "semantic_metadata": metadata,
                    }
                )
            )
            confidences.append(result.confidence)

        summary = NormalizationSummary(
            total_points=len(points),
            normalized_points=sum(1 for c in confidences if c > NORMALIZED_THRESHOLD),
            average_confidence=round(sum(confidences) / len(confidences), 2)
            if confidences
            else 0.0,
        )
        logger.info(
            "Normalized equipment %s: %d/%d points above threshold",
            equipment.id,
            summary.normalized_points,
            summary.total_points,
        )
        return equipment.model_copy(update={"points": points, "normalization_summary": summary})

    def register_vendor(self, vendor: VendorRuleSet) -> None:
        """Add or replace a vendor rule table and invalidate cached results."""
        self.registry.register_vendor(vendor)
        self.cache.clear()
        logger.info("Registered vendor rules for %s", vendor.name)

    def clear_cache(self) -> None:
        self.cache.clear()

    def cache_stats(self) -> dict[str, Any]:
        return self.cache.stats()


def normalization_stats(results: list[NormalizationResult]) -> dict[str, Any]:
    """Summarize a batch of normalization results.

    Returns:
        Dict with total_points, normalized_points (confidence > 50),
        average_confidence and method_distribution
    """
    total = len(results)
    return {
        "total_points": total,
        "normalized_points": sum(1 for r in results if r.confidence > NORMALIZED_THRESHOLD),
        "average_confidence": round(sum(r.confidence for r in results) / total, 2)
        if total
        else 0.0,
        "method_distribution": dict(Counter(r.method.value for r in results)),
    }


# Default engine (lazy-loaded)
_engine: NormalizationEngine | None = None


def get_engine() -> NormalizationEngine:
    """Get or create the process-wide default engine."""
    global _engine
    if _engine is None:
        from bacmap.config import get_config

        _engine = NormalizationEngine(config=get_config().normalization)
    return _engine


def normalize_label(
    label: str,
    equipment_type: str | None = None,
    vendor: str | None = None,
    engine: NormalizationEngine | None = None,
) -> NormalizationResult:
    """Convenience wrapper normalizing a bare label.

    Args:
        label: Raw point label
        equipment_type: Optional equipment category
        vendor: Optional vendor name
        engine: Engine to use (defaults to the shared engine)

    Returns:
        NormalizationResult for a read-only numeric point with that label
    """
    engine = engine or get_engine()
    point = Point(id=label, label=label)
    return engine.normalize(point, source_vendor=vendor, equipment_type=equipment_type)
