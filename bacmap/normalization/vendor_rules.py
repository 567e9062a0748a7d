"""Vendor and equipment-type rule tables.

Rule tables are plain data: each vendor carries an abbreviation table, an
ordered list of ``{pattern, output, confidence, tags}`` idiom rules and
optional model-specific rules. Equipment strategies carry a context label and
their own pattern list. Defaults ship below; a YAML file with the same shape
can override or extend them.

YAML shape::

    vendors:
      - name: Schneider Electric
        aliases: [schneider]
        abbreviations: {Sa: Supply Air}
        patterns:
          - {pattern: "^(Sa|Supply).*(Tmp|Temp)", output: Supply Air Temperature,
             confidence: 85, tags: [air, temp, supply, sensor]}
        model_rules:
          MP-V-7A: [{pattern: "^Vav", output: VAV Box Control, confidence: 90}]
    equipment:
      - name: VAV
        aliases: [terminal unit]
        context: Terminal
        patterns: [...]
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from bacmap.errors import ConfigurationError
from bacmap.normalization.vocabulary import Vocabulary

logger = logging.getLogger(__name__)

_CORPORATE_SUFFIXES = ("incorporated", "inc", "corporation", "corp", "ltd", "llc", "co")


def normalize_vendor_name(name: str | None) -> str:
    """Registry key for a vendor or equipment name.

    Lowercases, drops punctuation and trailing corporate suffixes:
    "ABB, Inc." -> "abb", "Schneider Electric" -> "schneider electric".
    """
    if not name:
        return ""
    words = re.sub(r"[^a-z0-9]+", " ", name.lower()).split()
    while len(words) > 1 and words[-1] in _CORPORATE_SUFFIXES:
        words.pop()
    return " ".join(words)


@dataclass(slots=True, frozen=True)
class PatternRule:
    pattern: re.Pattern[str]
    output: str
    confidence: float
    tags: tuple[str, ...] = ()

    def matches(self, label: str) -> bool:
        return self.pattern.search(label) is not None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PatternRule:
        return cls(
            pattern=re.compile(data["pattern"], re.IGNORECASE),
            output=str(data["output"]),
            confidence=float(data.get("confidence", 0)),
            tags=tuple(str(t) for t in data.get("tags", [])),
        )


def _rules(*specs: tuple[str, str, float, list[str]]) -> tuple[PatternRule, ...]:
    return tuple(
        PatternRule(re.compile(pattern, re.IGNORECASE), output, confidence, tuple(tags))
        for pattern, output, confidence, tags in specs
    )


@dataclass(slots=True)
class VendorRuleSet:
    """Abbreviations and idiom patterns for one vendor."""

    name: str
    abbreviations: Vocabulary
    patterns: tuple[PatternRule, ...] = ()
    model_rules: dict[str, tuple[PatternRule, ...]] = field(default_factory=dict)
    aliases: tuple[str, ...] = ()

    @property
    def key(self) -> str:
        return normalize_vendor_name(self.name)

    def rules_for_model(self, model_name: str | None) -> tuple[PatternRule, ...]:
        if not model_name:
            return ()
        wanted = model_name.strip().lower()
        for model, rules in self.model_rules.items():
            if model.lower() == wanted:
                return rules
        return ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VendorRuleSet:
        return cls(
            name=str(data["name"]),
            abbreviations=Vocabulary.from_mapping(
                {str(k): str(v) for k, v in (data.get("abbreviations") or {}).items()},
                include_identity=False,
            ),
            patterns=tuple(PatternRule.from_dict(p) for p in data.get("patterns") or []),
            model_rules={
                str(model): tuple(PatternRule.from_dict(p) for p in rules)
                for model, rules in (data.get("model_rules") or {}).items()
            },
            aliases=tuple(str(a) for a in data.get("aliases") or []),
        )


@dataclass(slots=True)
class EquipmentStrategy:
    """Equipment-type context and common point patterns."""

    name: str
    context: str
    patterns: tuple[PatternRule, ...] = ()
    aliases: tuple[str, ...] = ()

    @property
    def key(self) -> str:
        return normalize_vendor_name(self.name)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EquipmentStrategy:
        return cls(
            name=str(data["name"]),
            context=str(data.get("context", data["name"])),
            patterns=tuple(PatternRule.from_dict(p) for p in data.get("patterns") or []),
            aliases=tuple(str(a) for a in data.get("aliases") or []),
        )


DEFAULT_VENDORS: tuple[VendorRuleSet, ...] = (
    VendorRuleSet(
        name="Schneider Electric",
        aliases=("schneider", "se"),
        abbreviations=Vocabulary.from_mapping(
            {
                "Sa": "Supply Air",
                "Ra": "Return Air",
                "Ma": "Mixed Air",
                "Oa": "Outside Air",
                "Tmp": "Temperature",
                "Spt": "Setpoint",
                "Htg": "Heating",
                "Clg": "Cooling",
                "Dmpr": "Damper",
                "Pos": "Position",
                "MP": "Modular Processor",
                "TB": "Terminal Box",
                "SE": "Schneider Electric",
            },
            include_identity=False,
        ),
        patterns=_rules(
            (r"^(Sa|Supply).*(Tmp|Temp|Temperature)", "Supply Air Temperature", 85,
             ["air", "temp", "supply", "sensor"]),
            (r"^(Ra|Return).*(Tmp|Temp|Temperature)", "Return Air Temperature", 85,
             ["air", "temp", "return", "sensor"]),
            (r"^(Ma|Mixed).*(Tmp|Temp|Temperature)", "Mixed Air Temperature", 85,
             ["air", "temp", "mixed", "sensor"]),
            (r"^(Oa|Outside).*(Tmp|Temp|Temperature)", "Outside Air Temperature", 85,
             ["air", "temp", "outside", "sensor"]),
            (r"(Htg|Heat).*(Spt|Setpoint)", "Heating Setpoint", 80,
             ["heating", "sp", "control"]),
            (r"(Clg|Cool).*(Spt|Setpoint)", "Cooling Setpoint", 80,
             ["cooling", "sp", "control"]),
            (r"(Dmpr|Damper).*(Pos|Position)", "Damper Position", 80,
             ["damper", "position", "actuator"]),
            (r"(Fan|Spd|Speed)", "Fan Speed", 75, ["fan", "speed", "control"]),
        ),
        model_rules={
            "MP-V-7A": _rules((r"^Vav", "VAV Box Control", 90, ["vav", "control", "terminal"])),
            "MP-C-36A": _rules(
                (r"^(Ahu|Rtu)", "Air Handler Control", 90, ["ahu", "control", "central"])
            ),
            "MP-C-24A": _rules(
                (r"^(Chw|Hhw)", "Plant System Control", 90, ["plant", "control", "system"])
            ),
        },
    ),
    VendorRuleSet(
        name="ABB",
        aliases=("abb drives",),
        abbreviations=Vocabulary.from_mapping(
            {
                "Eclipse": "Eclipse Drive",
                "ACH": "AC Drive",
                "Vfd": "VFD",
                "Freq": "Frequency",
                "Amps": "Current",
                "Spd": "Speed",
            },
            include_identity=False,
        ),
        patterns=_rules(
            (r"^(Motor|Pump).*(Spd|Speed)", "Motor Speed Control", 85,
             ["motor", "speed", "vfd", "control"]),
            (r"^(Freq|Frequency)", "Frequency Control", 80, ["frequency", "vfd", "control"]),
            (r"^(Current|Amps)", "Motor Current", 80, ["current", "motor", "sensor"]),
            (r"^(Power|Watts)", "Power Consumption", 80, ["power", "energy", "sensor"]),
        ),
        model_rules={
            "ABB ECLIPSE 80 ACH580": _rules(
                (r"^(Drive|Vfd)", "VFD Control", 95, ["vfd", "drive", "control", "motor"])
            ),
        },
    ),
    VendorRuleSet(
        name="Daikin Applied",
        aliases=("daikin",),
        abbreviations=Vocabulary.from_mapping(
            {
                "AGZ": "Air-Cooled Chiller",
                "POL": "Polar Control",
                "Evap": "Evaporator",
                "Cond": "Condenser",
                "Refrig": "Refrigerant",
                "Lvg": "Leaving",
                "Ent": "Entering",
            },
            include_identity=False,
        ),
        patterns=_rules(
            (r"^(Chiller|Chill)", "Chiller Control", 90, ["chiller", "cooling", "plant"]),
            (r"^(Evap|Evaporator)", "Evaporator Control", 85,
             ["evaporator", "cooling", "heat-exchanger"]),
            (r"^(Cond|Condenser)", "Condenser Control", 85,
             ["condenser", "cooling", "heat-exchanger"]),
            (r"^(Refrig|Refrigerant)", "Refrigerant Control", 85,
             ["refrigerant", "cooling", "control"]),
        ),
    ),
    VendorRuleSet(
        name="AERCO",
        aliases=("aerco international",),
        abbreviations=Vocabulary.from_mapping(
            {"G": "Gas Boiler", "Blr": "Boiler", "Flue": "Flue Gas"},
            include_identity=False,
        ),
        patterns=_rules(
            (r"^(Boiler|Blr)", "Boiler Control", 90, ["boiler", "heating", "plant"]),
            (r"^(Gas|Fuel)", "Fuel Control", 85, ["fuel", "gas", "control"]),
            (r"^(Flue|Exhaust)", "Flue Gas Control", 85, ["flue", "exhaust", "combustion"]),
        ),
    ),
    VendorRuleSet(
        name="SETRA",
        aliases=("setra systems",),
        abbreviations=Vocabulary.from_mapping(
            {"Press": "Pressure", "Diff": "Differential", "Dp": "Differential Pressure"},
            include_identity=False,
        ),
        patterns=_rules(
            (r"^(Press|Pressure)", "Pressure Sensor", 90, ["pressure", "sensor", "monitoring"]),
            (r"^(Diff|Differential)", "Differential Pressure", 90,
             ["pressure", "differential", "sensor"]),
            (r"^(Room|Zone|Rm|Zn)", "Room Monitoring", 85, ["room", "zone", "monitoring"]),
        ),
    ),
)

DEFAULT_EQUIPMENT_STRATEGIES: tuple[EquipmentStrategy, ...] = (
    EquipmentStrategy(
        name="VAV",
        context="Terminal",
        aliases=("vav box", "terminal unit"),
        patterns=_rules(
            (r"^(Rmtmp|Room.*Temp|Rm.*Tmp)", "Room Temperature", 85,
             ["room", "temp", "sensor", "zone"]),
            (r"^(Airflow|Flow)", "Airflow Control", 80, ["airflow", "control", "terminal"]),
            (r"^(Occ|Occupancy)", "Occupancy Status", 80, ["occupancy", "sensor", "zone"]),
        ),
    ),
    EquipmentStrategy(
        name="AHU",
        context="Central Air Handler",
        aliases=("rtu", "air handling unit", "rooftop unit"),
        patterns=_rules(
            (r"^(Filter|Flt)", "Filter Status", 80, ["filter", "maintenance", "air-quality"]),
            (r"^(Coil|Htg|Clg)", "Coil Control", 80, ["coil", "control", "heating-cooling"]),
            (r"^(Economizer|Econ)", "Economizer Control", 85,
             ["economizer", "control", "energy-saving"]),
        ),
    ),
    EquipmentStrategy(
        name="Chiller",
        context="Chiller Plant",
        aliases=("chiller plant",),
        patterns=_rules(
            (r"^(Capacity|Cap)", "Cooling Capacity", 85, ["capacity", "cooling", "performance"]),
            (r"^(Efficiency|Eff|Kw/Ton)", "Energy Efficiency", 85,
             ["efficiency", "energy", "performance"]),
        ),
    ),
    EquipmentStrategy(
        name="Boiler",
        context="Boiler Plant",
        aliases=("boiler plant",),
        patterns=_rules(
            (r"^(Firing|Fire)", "Firing Rate", 85, ["firing", "combustion", "control"]),
            (r"^(Stack|Flue)", "Stack Control", 85, ["stack", "flue", "combustion"]),
        ),
    ),
)


class RuleRegistry:
    """Vendor and equipment strategy lookup keyed by normalized name."""

    def __init__(
        self,
        vendors: tuple[VendorRuleSet, ...] | list[VendorRuleSet] = DEFAULT_VENDORS,
        strategies: tuple[EquipmentStrategy, ...] | list[EquipmentStrategy] = (
            DEFAULT_EQUIPMENT_STRATEGIES
        ),
    ) -> None:
        self._vendors: dict[str, VendorRuleSet] = {}
        self._vendor_aliases: dict[str, str] = {}
        self._strategies: dict[str, EquipmentStrategy] = {}
        self._strategy_aliases: dict[str, str] = {}

        for vendor in vendors:
            self.register_vendor(vendor)
        for strategy in strategies:
            self.register_strategy(strategy)

    @classmethod
    def from_yaml(cls, path: Path, include_defaults: bool = True) -> RuleRegistry:
        """Load rule tables from a YAML file.

        Entries in the file replace defaults with the same normalized name.

        Args:
            path: YAML file with ``vendors`` and/or ``equipment`` lists
            include_defaults: Start from the built-in tables

        Returns:
            Populated registry

        Raises:
            ConfigurationError: If the file is missing, unparsable or malformed
        """
        try:
            with open(path) as f:
                config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read vendor rules from {path}: {e}") from e

        if not isinstance(config, dict):
            raise ConfigurationError(f"Vendor rules file {path} must contain a mapping")

        registry = cls() if include_defaults else cls(vendors=(), strategies=())
        try:
            for data in config.get("vendors") or []:
                registry.register_vendor(VendorRuleSet.from_dict(data))
            for data in config.get("equipment") or []:
                registry.register_strategy(EquipmentStrategy.from_dict(data))
        except (KeyError, TypeError, ValueError, AttributeError, re.error) as e:
            raise ConfigurationError(f"Invalid rule entry in {path}: {e}") from e

        logger.info(
            "Loaded rule tables from %s (%d vendors, %d equipment strategies)",
            path,
            len(registry._vendors),
            len(registry._strategies),
        )
        return registry

    def register_vendor(self, vendor: VendorRuleSet) -> None:
        key = vendor.key
        self._vendors[key] = vendor
        for alias in vendor.aliases:
            self._vendor_aliases[normalize_vendor_name(alias)] = key

    def register_strategy(self, strategy: EquipmentStrategy) -> None:
        key = strategy.key
        self._strategies[key] = strategy
        for alias in strategy.aliases:
            self._strategy_aliases[normalize_vendor_name(alias)] = key

    def vendor(self, name: str | None) -> VendorRuleSet | None:
        key = normalize_vendor_name(name)
        if not key:
            return None
        key = self._vendor_aliases.get(key, key)
        return self._vendors.get(key)

    def strategy(self, equipment_type: str | None) -> EquipmentStrategy | None:
        key = normalize_vendor_name(equipment_type)
        if not key:
            return None
        key = self._strategy_aliases.get(key, key)
        return self._strategies.get(key)

    @property
    def vendor_names(self) -> list[str]:
        return sorted(v.name for v in self._vendors.values())

    @property
    def strategy_names(self) -> list[str]:
        return sorted(s.name for s in self._strategies.values())
