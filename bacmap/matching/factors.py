"""The eight confidence factors for an (equipment, signature) pair.

Every function returns a value in the 0-100 range.
"""

from __future__ import annotations

from bacmap.config import ScoringConfig
from bacmap.models import (
    ConfidenceFactors,
    Equipment,
    Point,
    PointTemplate,
    Signature,
    SignatureAnalytics,
)
from bacmap.matching.similarity import (
    count_ratio,
    extract_keywords,
    jaccard,
    name_similarity,
    structural_bucket,
    units_match,
)

STRUCTURAL_BUCKETS: tuple[str, ...] = ("sensor", "setpoint", "command", "status")

# Symmetric equipment-type compatibility (uppercase)
COMPATIBLE_EQUIPMENT_TYPES: frozenset[frozenset[str]] = frozenset(
    {
        frozenset({"AHU", "RTU"}),
        frozenset({"VAV", "TERMINAL UNIT"}),
        frozenset({"FCU", "TERMINAL UNIT"}),
        frozenset({"CHILLER", "CHILLER PLANT"}),
        frozenset({"BOILER", "BOILER PLANT"}),
    }
)

NEUTRAL_HISTORY = 50.0
VENDOR_BONUS = 30.0
MODEL_BONUS = 20.0
EQUAL_COUNT_BONUS = 10.0
COMPATIBLE_TYPE_SCORE = 75.0


def _best_match(template: PointTemplate, points: list[Point]) -> tuple[Point | None, float]:
    best_point: Point | None = None
    best = 0.0
    for point in points:
        similarity = name_similarity(template.label, point.label, point.canonical_name)
        if similarity > best:
            best_point, best = point, similarity
    return best_point, best


def point_name_similarity(
    points: list[Point], templates: list[PointTemplate], threshold: float = 0.6
) -> float:
    """Mean best-match similarity over templates whose best match clears the threshold."""
    matched = []
    for template in templates:
        _, similarity = _best_match(template, points)
        if similarity > threshold:
            matched.append(similarity)
    if not matched:
        return 0.0
    return sum(matched) / len(matched) * 100


def point_count_match(points: list[Point], templates: list[PointTemplate]) -> float:
    score = count_ratio(len(points), len(templates)) * 100
    if points and len(points) == len(templates):
        score += EQUAL_COUNT_BONUS
    return min(score, 100.0)


def point_type_match(
    points: list[Point], templates: list[PointTemplate], threshold: float = 0.7
) -> float:
    """Kind (60%) and normalized unit (40%) agreement over closely named pairs."""
    pairs: list[tuple[Point, PointTemplate]] = []
    for template in templates:
        point, similarity = _best_match(template, points)
        if point is not None and similarity > threshold:
            pairs.append((point, template))
    if not pairs:
        return 0.0

    kind_matches = sum(1 for p, t in pairs if p.kind == t.kind)
    unit_matches = sum(1 for p, t in pairs if units_match(p.unit, t.unit))
    return (kind_matches / len(pairs)) * 60 + (unit_matches / len(pairs)) * 40


def vendor_model_match(equipment: Equipment, analytics: SignatureAnalytics | None) -> float:
    # Presence check only; no comparison against the signature's own vendor
    if analytics is None:
        return 0.0
    score = 0.0
    if equipment.vendor_name:
        score += VENDOR_BONUS
    if equipment.model_name:
        score += MODEL_BONUS
    return score


def equipment_type_match(equipment_type: str, signature_type: str) -> float:
    left = equipment_type.strip().upper()
    right = signature_type.strip().upper()
    if left == right:
        return 100.0
    if frozenset({left, right}) in COMPATIBLE_EQUIPMENT_TYPES:
        return COMPATIBLE_TYPE_SCORE
    return 0.0


def historical_accuracy(analytics: SignatureAnalytics | None) -> float:
    if analytics is None or analytics.total_matches == 0:
        return NEUTRAL_HISTORY
    return analytics.accuracy * 100


def semantic_similarity(
    points: list[Point], templates: list[PointTemplate], threshold: float = 0.5
) -> float:
    """Share of keyword-bearing templates with a point whose keyword overlap exceeds the threshold."""
    point_keywords = [
        (extract_keywords(p.label), extract_keywords(p.canonical_name)) for p in points
    ]
    considered = 0
    matched = 0
    for template in templates:
        wanted = extract_keywords(template.label)
        if not wanted:
            continue
        considered += 1
        best = max(
            (max(jaccard(wanted, raw), jaccard(wanted, canonical)) for raw, canonical in point_keywords),
            default=0.0,
        )
        if best > threshold:
            matched += 1
    if considered == 0:
        return 0.0
    return matched / considered * 100


def _bucket_counts(names: list[tuple[str, bool]]) -> dict[str, int]:
    counts = dict.fromkeys(STRUCTURAL_BUCKETS, 0)
    for name, writable in names:
        counts[structural_bucket(name, writable)] += 1
    return counts


def structural_consistency(points: list[Point], templates: list[PointTemplate]) -> float:
    """Per-bucket count agreement, 25 points per bucket."""
    equipment_counts = _bucket_counts(
        [(f"{p.label} {p.canonical_name or ''}", p.writable) for p in points]
    )
    signature_counts = _bucket_counts([(t.label, False) for t in templates])

    score = 0.0
    for bucket in STRUCTURAL_BUCKETS:
        ours, theirs = equipment_counts[bucket], signature_counts[bucket]
        # A bucket absent from both sides agrees fully, unlike count_ratio(0, 0)
        score += 25.0 if ours == theirs == 0 else count_ratio(ours, theirs) * 25
    return score


def compute_factors(
    equipment: Equipment,
    signature: Signature,
    analytics: SignatureAnalytics | None = None,
    config: ScoringConfig | None = None,
) -> ConfidenceFactors:
    """Compute the full factor vector for one pair."""
    config = config or ScoringConfig()
    points = equipment.points
    templates = signature.point_signature

    return ConfidenceFactors(
        point_name_similarity=point_name_similarity(points, templates, config.name_match_threshold),
        point_count_match=point_count_match(points, templates),
        point_type_match=point_type_match(points, templates, config.type_match_threshold),
        vendor_model_match=vendor_model_match(equipment, analytics),
        equipment_type_match=equipment_type_match(equipment.equipment_type, signature.equipment_type),
        historical_accuracy=historical_accuracy(analytics),
        semantic_similarity=semantic_similarity(
            points, templates, config.semantic_overlap_threshold
        ),
        structural_consistency=structural_consistency(points, templates),
    )
