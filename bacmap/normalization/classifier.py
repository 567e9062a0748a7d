"""Point classification from canonical names."""

from __future__ import annotations

from dataclasses import dataclass

from bacmap.models import Point, PointClassification


@dataclass(slots=True, frozen=True)
class ClassificationPattern:
    classification: str
    keywords: tuple[str, ...]
    sub_classification: str | None = None


# Function patterns win over measurement patterns when both match
FUNCTION_PATTERNS: tuple[ClassificationPattern, ...] = (
    ClassificationPattern("alarm", ("alm", "alarm", "fault", "warning", "alert")),
    ClassificationPattern("setpoint", ("spt", "sp", "setpoint", "set")),
    ClassificationPattern("command", ("cmd", "command", "pos", "position", "spd", "speed")),
    ClassificationPattern("status", ("sts", "status", "stat", "run", "running", "start", "stop")),
)

MEASUREMENT_PATTERNS: tuple[ClassificationPattern, ...] = (
    ClassificationPattern("sensor", ("temp", "tmp", "temperature"), "temperature"),
    ClassificationPattern("sensor", ("press", "pr", "pressure"), "pressure"),
    ClassificationPattern("sensor", ("flow", "fl", "cfm", "gpm"), "flow"),
    ClassificationPattern("sensor", ("rh", "humidity", "humid"), "humidity"),
)


def _matched_keywords(words: list[str], pattern: ClassificationPattern) -> list[str]:
    matched = []
    for keyword in pattern.keywords:
        # Short keywords must be whole words; longer ones may prefix a word
        if any(w == keyword or (len(keyword) >= 4 and w.startswith(keyword)) for w in words):
            matched.append(keyword)
    return matched


def _best(
    words: list[str], patterns: tuple[ClassificationPattern, ...]
) -> tuple[ClassificationPattern, list[str]] | None:
    best: tuple[ClassificationPattern, list[str]] | None = None
    best_ratio = 0.0
    for pattern in patterns:
        matched = _matched_keywords(words, pattern)
        ratio = len(matched) / len(pattern.keywords)
        if matched and ratio > best_ratio:
            best, best_ratio = (pattern, matched), ratio
    return best


def classify_point(point: Point, canonical_name: str | None = None) -> PointClassification:
    """Classify a point as sensor, setpoint, command, status or alarm.

    Confidence is 60 plus up to 40 for the share of the winning pattern's
    keywords found among the name's words. Writable points with no keyword
    match default to ``command`` at 60.

    Args:
        point: Point being classified
        canonical_name: Normalized name; falls back to the raw label

    Returns:
        PointClassification for the point
    """
    name = canonical_name or point.canonical_name or point.label
    words = name.lower().split()

    function = _best(words, FUNCTION_PATTERNS)
    measurement = _best(words, MEASUREMENT_PATTERNS)
    chosen = function or measurement

    if chosen is None:
        if point.writable:
            return PointClassification(
                point_id=point.id,
                classification="command",
                confidence=60.0,
                reasoning=["Point is writable, likely a command point"],
            )
        return PointClassification(point_id=point.id)

    pattern, matched = chosen
    ratio = len(matched) / len(pattern.keywords)
    reasoning = [f"Matched keywords: {', '.join(matched)}"]
    sub_classification = pattern.sub_classification
    if function is not None and measurement is not None:
        sub_classification = measurement[0].sub_classification
        reasoning.append(f"Measured quantity: {sub_classification}")

    return PointClassification(
        point_id=point.id,
        classification=pattern.classification,
        sub_classification=sub_classification,
        confidence=round(60.0 + 40.0 * ratio, 2),
        reasoning=reasoning,
    )
