"""String, keyword and unit similarity helpers for signature scoring."""

from __future__ import annotations

import re

from rapidfuzz.distance import Levenshtein

from bacmap.normalization.tokenizer import split_camel_case

# Domain keywords used for semantic (Jaccard) similarity
SEMANTIC_KEYWORDS: frozenset[str] = frozenset(
    {
        "temp",
        "flow",
        "pressure",
        "humidity",
        "setpoint",
        "command",
        "status",
        "alarm",
        "sensor",
        "air",
        "water",
        "steam",
        "supply",
        "return",
        "exhaust",
        "outside",
        "room",
        "zone",
    }
)

# Common abbreviations -> keywords they stand for
KEYWORD_ALIASES: dict[str, tuple[str, ...]] = {
    "tmp": ("temp",),
    "temperature": ("temp",),
    "spt": ("setpoint",),
    "stpt": ("setpoint",),
    "sp": ("setpoint",),
    "cmd": ("command",),
    "sts": ("status",),
    "stat": ("status",),
    "alm": ("alarm",),
    "fl": ("flow",),
    "flw": ("flow",),
    "airflow": ("air", "flow"),
    "cfm": ("air", "flow"),
    "gpm": ("water", "flow"),
    "pr": ("pressure",),
    "press": ("pressure",),
    "psi": ("pressure",),
    "rh": ("humidity",),
    "hum": ("humidity",),
    "humid": ("humidity",),
    "sens": ("sensor",),
    "wtr": ("water",),
    "chw": ("water",),
    "hhw": ("water",),
    "hw": ("water",),
    "cw": ("water",),
    "stm": ("steam",),
    "sup": ("supply",),
    "sa": ("supply", "air"),
    "ret": ("return",),
    "rtn": ("return",),
    "ra": ("return", "air"),
    "exh": ("exhaust",),
    "ea": ("exhaust", "air"),
    "oa": ("outside", "air"),
    "outdoor": ("outside",),
    "rm": ("room",),
    "zn": ("zone",),
}

# Canonical unit spellings
UNIT_ALIASES: dict[str, str] = {
    "°f": "°F",
    "degf": "°F",
    "deg f": "°F",
    "f": "°F",
    "fahrenheit": "°F",
    "°c": "°C",
    "degc": "°C",
    "deg c": "°C",
    "c": "°C",
    "celsius": "°C",
    "%": "%",
    "pct": "%",
    "percent": "%",
    "%rh": "%",
    "cfm": "cfm",
    "ft³/min": "cfm",
    "gpm": "gpm",
    "psi": "psi",
    "inh2o": "inH₂O",
    "inh₂o": "inH₂O",
    "in h2o": "inH₂O",
    "inwc": "inH₂O",
    "in. w.c.": "inH₂O",
    "pa": "Pa",
    "kpa": "kPa",
    "kw": "kW",
    "kwh": "kWh",
    "hz": "Hz",
    "rpm": "rpm",
    "ppm": "ppm",
    "a": "A",
    "amps": "A",
    "v": "V",
    "volts": "V",
}

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def normalize_string(text: str | None) -> str:
    """Lowercase and strip everything but letters and digits."""
    return _NON_ALNUM_RE.sub("", (text or "").lower())


def levenshtein_similarity(a: str | None, b: str | None) -> float:
    """(max_len - edit_distance) / max_len over normalized strings, 0-1."""
    left, right = normalize_string(a), normalize_string(b)
    if not left or not right:
        return 0.0
    return Levenshtein.normalized_similarity(left, right)


def name_similarity(template_label: str, label: str, canonical_name: str | None = None) -> float:
    """Best similarity of a template label to a point's raw or canonical name."""
    best = levenshtein_similarity(template_label, label)
    if canonical_name:
        best = max(best, levenshtein_similarity(template_label, canonical_name))
    return best


def extract_keywords(text: str | None) -> frozenset[str]:
    """Semantic keywords found among the words of a point name."""
    keywords: set[str] = set()
    for word in split_camel_case(text or ""):
        lowered = word.lower()
        if lowered in SEMANTIC_KEYWORDS:
            keywords.add(lowered)
        elif lowered in KEYWORD_ALIASES:
            keywords.update(KEYWORD_ALIASES[lowered])
        else:
            keywords.update(k for k in SEMANTIC_KEYWORDS if len(k) >= 4 and lowered.startswith(k))
    return frozenset(keywords)


def jaccard(a: frozenset[str], b: frozenset[str]) -> float:
    if not a and not b:
        return 0.0
    return len(a & b) / len(a | b)


def normalize_unit(unit: str | None) -> str | None:
    if unit is None:
        return None
    cleaned = unit.strip()
    if not cleaned:
        return None
    return UNIT_ALIASES.get(cleaned.lower(), cleaned)


def units_match(a: str | None, b: str | None) -> bool:
    return normalize_unit(a) == normalize_unit(b)


def count_ratio(a: int, b: int) -> float:
    """min/max ratio of two counts; 0 when both are zero."""
    high = max(a, b)
    if high == 0:
        return 0.0
    return min(a, b) / high


def structural_bucket(name: str, writable: bool = False) -> str:
    """Classify a point name into setpoint, command, status or sensor."""
    lowered = name.lower()
    words = set(lowered.split())
    if any(k in lowered for k in ("setpoint", "spt", "stpt")) or "sp" in words:
        return "setpoint"
    if writable or any(k in lowered for k in ("cmd", "command")):
        return "command"
    if any(k in lowered for k in ("status", "sts", "alarm", "alm", "fault")):
        return "status"
    return "sensor"
