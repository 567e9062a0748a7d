"""Point label tokenization."""

from __future__ import annotations

import re

# Room/zone/floor/equipment abbreviations glued to the next upper-case word
# ("RMTEMP", "ZNTmp", "AHUSaTmp") get a boundary before generic splitting.
AMBIGUOUS_SHORT_TOKENS: tuple[str, ...] = ("RM", "ZN", "FLR", "AHU", "VAV", "RTU", "FCU")

_AMBIGUOUS_PREFIX_RE = re.compile(
    r"(?<![A-Za-z])((?i:" + "|".join(AMBIGUOUS_SHORT_TOKENS) + r"))(?=[A-Z])"
)
_SEPARATOR_RE = re.compile(r"[\s_\-.:/]+")


def pre_expand(label: str) -> str:
    """Insert a boundary after ambiguous short tokens."""
    return _AMBIGUOUS_PREFIX_RE.sub(r"\1 ", label)


def split_camel_case(text: str) -> list[str]:
    """Split on camelCase, consecutive capitals, digits and separators.

    Args:
        text: Raw or partially expanded label

    Returns:
        Non-empty tokens in order
    """
    text = re.sub(r"([a-z])([A-Z])", r"\1 \2", text)
    text = re.sub(r"([A-Z])([A-Z][a-z])", r"\1 \2", text)
    text = re.sub(r"([a-zA-Z])(\d)", r"\1 \2", text)
    text = re.sub(r"(\d)([a-zA-Z])", r"\1 \2", text)
    return [part for part in _SEPARATOR_RE.split(text) if part]


def tokenize(label: str, vendor_aware: bool = False) -> list[str]:
    if vendor_aware:
        label = pre_expand(label)
    return split_camel_case(label)


def format_canonical(words: list[str], acronyms: frozenset[str]) -> str:
    """Title-case words, keeping allow-listed acronyms upper-case."""
    formatted = []
    for word in " ".join(words).split():
        if word.upper() in acronyms:
            formatted.append(word.upper())
        else:
            formatted.append(word[:1].upper() + word[1:].lower())
    return " ".join(formatted)
