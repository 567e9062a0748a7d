"""BACnet abbreviation dictionary and semantic tag vocabulary.

The dictionary is closed and hand-maintained (ASHRAE 135 naming practice plus
the abbreviations field controllers emit most often). Lookups are
case-insensitive; every word that appears in an expansion is also registered
as an identity entry so already-canonical words are recognized.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from bacmap.normalization.tokenizer import split_camel_case

BACNET_ABBREVIATIONS: dict[str, str] = {
    # Temperature
    "Tmp": "Temperature",
    "Temp": "Temperature",
    "Sat": "Saturation",
    "Suct": "Suction",
    "Disch": "Discharge",
    "Ent": "Entering",
    "Lvg": "Leaving",
    "Ret": "Return",
    "Rtn": "Return",
    "Sup": "Supply",
    # Air handling
    "Sa": "Supply Air",
    "Ra": "Return Air",
    "Ma": "Mixed Air",
    "Oa": "Outside Air",
    "Ea": "Exhaust Air",
    "Da": "Discharge Air",
    "Exh": "Exhaust",
    "Fl": "Flow",
    "Flw": "Flow",
    "Spd": "Speed",
    "Dpr": "Damper",
    "Dmp": "Damper",
    "Dmpr": "Damper",
    "Pos": "Position",
    "Flt": "Filter",
    # Water systems
    "Chw": "Chilled Water",
    "Hhw": "Hot Water",
    "Hw": "Hot Water",
    "Cw": "Condenser Water",
    "Wtr": "Water",
    "Stm": "Steam",
    "Evap": "Evaporator",
    "Cond": "Condenser",
    "Ref": "Refrigerant",
    # Pressure and flow
    "Pr": "Pressure",
    "Press": "Pressure",
    "StPr": "Static Pressure",
    "DiffPr": "Differential Pressure",
    "Cfm": "CFM",
    "Gpm": "GPM",
    # Control and status
    "Spt": "Setpoint",
    "Sp": "Setpoint",
    "Fb": "Feedback",
    "Sts": "Status",
    "Stat": "Status",
    "Alm": "Alarm",
    "Cmd": "Command",
    "En": "Enable",
    "Enb": "Enable",
    "Occ": "Occupied",
    "Unocc": "Unoccupied",
    "Sens": "Sensor",
    # Equipment
    "Ahu": "Air Handling Unit",
    "Vav": "VAV Box",
    "Fcu": "Fan Coil Unit",
    "Rtu": "Rooftop Unit",
    "Cuh": "Cabinet Unit Heater",
    "Uh": "Unit Heater",
    "Tower": "Cooling Tower",
    "Vfd": "VFD",
    # Coils and components
    "Clg": "Cooling",
    "Htg": "Heating",
    "Pht": "Preheat",
    "Vlv": "Valve",
    "Comp": "Compressor",
    # Measurements
    "Rh": "Relative Humidity",
    "Hum": "Humidity",
    "Humid": "Humidity",
    "Psi": "PSI",
    "Deg": "Degrees",
    "Pct": "Percent",
    "Mins": "Minutes",
    "Hr": "Hours",
    "Sec": "Seconds",
    # Operational states
    "Run": "Running",
    "Auto": "Automatic",
    "Man": "Manual",
    "Hand": "Manual",
    "Ovrrd": "Override",
    # Scheduling
    "Act": "Active",
    "Eff": "Effective",
    "Dly": "Delay",
    # Safety
    "Prt": "Protection",
    "Protect": "Protection",
    "Max": "Maximum",
    "Min": "Minimum",
    # Economizer and energy
    "Econ": "Economizer",
    "Tr": "Trigger",
    "Trig": "Trigger",
    "Ig": "Ignore",
    "Kw": "Kilowatts",
    "Pwr": "Power",
    # Spaces
    "Rm": "Room",
    "Zn": "Zone",
    "Flr": "Floor",
    "Lab": "Laboratory",
}

# Term (lowercase, matched as a substring of an expansion) -> semantic tags
TERM_TAGS: dict[str, list[str]] = {
    "temperature": ["temp", "sensor"],
    "pressure": ["pressure", "sensor"],
    "flow": ["flow", "sensor"],
    "humidity": ["humidity", "sensor"],
    "setpoint": ["sp", "point"],
    "command": ["cmd", "point"],
    "status": ["sensor", "point"],
    "alarm": ["alarm", "point"],
    "supply air": ["supply", "air"],
    "return air": ["return", "air"],
    "mixed air": ["mixed", "air"],
    "outside air": ["outside", "air"],
    "exhaust air": ["exhaust", "air"],
    "discharge air": ["discharge", "air"],
    "chilled water": ["chilled", "water"],
    "hot water": ["hot", "water"],
    "condenser water": ["condenser", "water"],
    "steam": ["steam"],
    "room": ["room"],
    "zone": ["zone"],
    "fan": ["fan", "equip"],
    "damper": ["damper", "equip"],
    "valve": ["valve", "equip"],
    "coil": ["coil", "equip"],
}

# Equipment type (uppercase) -> contextual prefix prepended to canonical names
CONTEXTUAL_PREFIXES: dict[str, str] = {
    "AHU": "AHU",
    "VAV": "VAV",
    "RTU": "RTU",
    "FCU": "FCU",
    "CHILLER": "Chiller",
    "BOILER": "Boiler",
    "PUMP": "Pump",
}

# Words kept upper-case when formatting canonical names
UPPERCASE_ACRONYMS: frozenset[str] = frozenset(
    {"VAV", "AHU", "RTU", "FCU", "VFD", "UPS", "PDU", "BAS", "DDC", "PLC"}
)


def tags_for_term(term: str) -> list[str]:
    """Return the semantic tags owned by an expanded term."""
    lowered = term.lower()
    tags: list[str] = []
    for key, term_tags in TERM_TAGS.items():
        if key in lowered:
            for tag in term_tags:
                if tag not in tags:
                    tags.append(tag)
    return tags


def phrase_tags(text: str) -> list[str]:
    """Tags for every term that appears as a whole-word run in ``text``.

    Catches multi-word terms ("Supply Air") spelled out across several
    tokens, which per-word lookups miss.
    """
    tags: list[str] = []
    for key, term_tags in TERM_TAGS.items():
        if contains_word(text, key):
            for tag in term_tags:
                if tag not in tags:
                    tags.append(tag)
    return tags


def contextual_prefix(equipment_type: str | None) -> str | None:
    if not equipment_type:
        return None
    return CONTEXTUAL_PREFIXES.get(equipment_type.strip().upper())


def contains_word(text: str, word: str) -> bool:
    """Case-insensitive whole-word containment."""
    return re.search(rf"(?<![A-Za-z0-9]){re.escape(word)}(?![A-Za-z0-9])", text, re.I) is not None


@dataclass(slots=True, frozen=True)
class VocabularyEntry:
    key: str
    expansion: str
    tags: tuple[str, ...] = ()

    @property
    def is_identity(self) -> bool:
        """True for already-canonical words registered as themselves."""
        return self.expansion.lower() == self.key.lower()


@dataclass(slots=True)
class Vocabulary:
    """Case-insensitive abbreviation table with partial in-token matching.

    Keys that the tokenizer splits apart ("StPr" -> "St", "Pr") are also
    indexed by their token sequence so they can be matched across tokens.
    """

    entries: dict[str, VocabularyEntry] = field(default_factory=dict)
    canonical_words: frozenset[str] = frozenset()
    compounds: dict[tuple[str, ...], VocabularyEntry] = field(default_factory=dict)

    @classmethod
    def from_mapping(
        cls, mapping: dict[str, str], include_identity: bool = True
    ) -> Vocabulary:
        """Build a vocabulary from an abbreviation -> expansion mapping.

        Args:
            mapping: Abbreviation to expansion
            include_identity: Also register every expansion word as itself

        Returns:
            Vocabulary keyed by lowercase abbreviation
        """
        entries: dict[str, VocabularyEntry] = {}
        for key, expansion in mapping.items():
            entries[key.lower()] = VocabularyEntry(
                key=key, expansion=expansion, tags=tuple(tags_for_term(expansion))
            )

        words = {
            word.lower()
            for expansion in mapping.values()
            for word in re.split(r"[\s\-]+", expansion)
            if word
        }
        if include_identity:
            for word in sorted(words):
                if word not in entries:
                    entries[word] = VocabularyEntry(
                        key=word, expansion=word.title(), tags=tuple(tags_for_term(word))
                    )

        compounds: dict[tuple[str, ...], VocabularyEntry] = {}
        for entry in entries.values():
            parts = tuple(part.lower() for part in split_camel_case(entry.key))
            if len(parts) > 1:
                compounds[parts] = entry

        return cls(entries=entries, canonical_words=frozenset(words), compounds=compounds)

    def lookup(self, token: str) -> VocabularyEntry | None:
        return self.entries.get(token.lower())

    def compound_match(
        self, tokens: list[str], start: int
    ) -> tuple[VocabularyEntry, int] | None:
        """Longest compound key spelled by ``tokens[start:]``.

        Returns:
            (entry, number of tokens consumed), or None
        """
        for parts, entry in sorted(self.compounds.items(), key=lambda item: -len(item[0])):
            window = tokens[start:start + len(parts)]
            if len(window) == len(parts) and tuple(t.lower() for t in window) == parts:
                return entry, len(parts)
        return None

    def is_canonical(self, word: str) -> bool:
        return word.lower() in self.canonical_words

    def by_key_length(self, min_length: int = 3) -> list[VocabularyEntry]:
        """Non-identity entries with keys of at least min_length, longest first."""
        candidates = [
            entry
            for lowered, entry in self.entries.items()
            if len(lowered) >= min_length and entry.expansion.lower() != lowered
        ]
        return sorted(candidates, key=lambda e: (-len(e.key), e.key.lower()))

    def partial_match(
        self, token: str, min_length: int = 3
    ) -> tuple[str, VocabularyEntry, str] | None:
        """Find an abbreviation embedded inside a compound token.

        Canonical words are never split. The expansion must not already be
        part of the token.

        Returns:
            (prefix, entry, suffix) around the first occurrence, or None
        """
        lowered = token.lower()
        if self.is_canonical(lowered):
            return None
        for entry in self.by_key_length(min_length):
            key = entry.key.lower()
            index = lowered.find(key)
            if index < 0 or entry.expansion.lower() in lowered:
                continue
            return token[:index], entry, token[index + len(key):]
        return None

    def __len__(self) -> int:
        return len(self.entries)


DEFAULT_VOCABULARY = Vocabulary.from_mapping(BACNET_ABBREVIATIONS)
