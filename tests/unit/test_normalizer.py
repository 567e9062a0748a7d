"""Unit tests for the BACnet point-name normalization engine."""

from __future__ import annotations

import pytest

from bacmap.models import NormalizationMethod, Point, PointKind
from bacmap.normalization.engine import (
    NormalizationEngine,
    normalization_stats,
    normalize_label,
    unit_tags,
)
from bacmap.normalization.tokenizer import format_canonical, pre_expand, split_camel_case
from bacmap.normalization.vendor_rules import VendorRuleSet
from bacmap.normalization.vocabulary import DEFAULT_VOCABULARY, contains_word


class TestTokenizer:
    def test_split_camel_case(self) -> None:
        assert split_camel_case("RmTmpSpt") == ["Rm", "Tmp", "Spt"]

    def test_split_on_separators_and_digits(self) -> None:
        assert split_camel_case("AHU_1-SaTmp.2") == ["AHU", "1", "Sa", "Tmp", "2"]

    def test_consecutive_capitals(self) -> None:
        assert split_camel_case("CHWVlv") == ["CHW", "Vlv"]

    def test_pre_expand_splits_ambiguous_prefix(self) -> None:
        assert pre_expand("ZNTmp") == "ZN Tmp"
        assert pre_expand("AHUSaTmp") == "AHU SaTmp"

    def test_format_canonical_keeps_acronyms(self) -> None:
        assert format_canonical(["vav", "room", "TEMPERATURE"], frozenset({"VAV"})) == (
            "VAV Room Temperature"
        )


class TestVocabulary:
    def test_lookup_is_case_insensitive(self) -> None:
        entry = DEFAULT_VOCABULARY.lookup("TMP")
        assert entry is not None
        assert entry.expansion == "Temperature"
        assert "temp" in entry.tags

    def test_expansion_words_are_canonical(self) -> None:
        assert DEFAULT_VOCABULARY.is_canonical("Temperature")
        assert DEFAULT_VOCABULARY.lookup("temperature").expansion == "Temperature"

    def test_partial_match_inside_compound_token(self) -> None:
        match = DEFAULT_VOCABULARY.partial_match("DmprPos")
        assert match is not None
        prefix, entry, suffix = match
        assert entry.expansion in ("Damper", "Position")

    def test_partial_match_skips_canonical_words(self) -> None:
        assert DEFAULT_VOCABULARY.partial_match("Temperature") is None

    def test_contains_word_is_whole_word(self) -> None:
        assert contains_word("VAV Room Temperature", "room")
        assert not contains_word("VAV Roomy Temperature", "room")


class TestNormalizationEngine:
    def test_room_temperature_setpoint(self, engine: NormalizationEngine) -> None:
        """RmTmpSpt on a VAV expands every token and adds the VAV context."""
        result = normalize_label("RmTmpSpt", equipment_type="VAV", engine=engine)

        assert result.canonical_name == "VAV Room Temperature Setpoint"
        assert result.confidence == 50.0
        assert result.method == NormalizationMethod.PATTERN_MATCH
        assert {"room", "temp", "sp"} <= set(result.tags)

    def test_vendor_specific_supply_air_temperature(self, engine: NormalizationEngine) -> None:
        result = normalize_label(
            "SaTmp", equipment_type="VAV", vendor="Schneider Electric", engine=engine
        )

        assert "Supply Air Temperature" in result.canonical_name
        assert result.confidence >= 85
        assert {"supply", "air", "temp"} <= set(result.tags)
        assert result.method == NormalizationMethod.VENDOR_SPECIFIC

    def test_vendor_alias_resolves(self, engine: NormalizationEngine) -> None:
        by_name = normalize_label("SaTmp", vendor="Schneider Electric", engine=engine)
        by_alias = normalize_label("SaTmp", vendor="schneider", engine=engine)
        assert by_alias.canonical_name == by_name.canonical_name
        assert by_alias.confidence == by_name.confidence

    def test_unknown_vendor_uses_dictionary(self, engine: NormalizationEngine) -> None:
        result = normalize_label("SaTmp", vendor="Nobody Controls", engine=engine)
        assert result.method == NormalizationMethod.PATTERN_MATCH
        assert "Supply Air Temperature" in result.canonical_name

    @pytest.mark.parametrize(
        ("label", "expected"),
        [("StPr", "AHU Static Pressure"), ("DiffPr", "AHU Differential Pressure")],
    )
    def test_compound_abbreviations(
        self, engine: NormalizationEngine, label: str, expected: str
    ) -> None:
        result = normalize_label(label, equipment_type="AHU", engine=engine)

        assert result.canonical_name == expected
        assert {"pressure", "sensor"} <= set(result.tags)
        assert result.confidence == 20.0

    def test_spelling_does_not_change_tags(self, engine: NormalizationEngine) -> None:
        abbreviated = normalize_label("SaTmp", engine=engine)
        spelled_out = normalize_label("SupplyAirTemperature", engine=engine)

        assert abbreviated.canonical_name == spelled_out.canonical_name == "Supply Air Temperature"
        assert set(abbreviated.tags) == set(spelled_out.tags)
        assert {"supply", "air", "temp"} <= set(spelled_out.tags)
        assert spelled_out.confidence == 15.0
        assert abbreviated.confidence == 30.0

    def test_vendor_expanded_words_not_credited_twice(self) -> None:
        engine = NormalizationEngine()
        engine.register_vendor(
            VendorRuleSet.from_dict({"name": "Acme", "abbreviations": {"Zt": "Zone Temperature"}})
        )

        result = normalize_label("Zt", vendor="Acme", engine=engine)

        assert result.canonical_name == "Zone Temperature"
        assert result.confidence == 20.0

    def test_deterministic(self, engine: NormalizationEngine) -> None:
        first = normalize_label("ChwVlvPos", equipment_type="AHU", engine=engine)
        engine.clear_cache()
        second = normalize_label("ChwVlvPos", equipment_type="AHU", engine=engine)
        assert first == second

    def test_cached_result_is_reused(self, engine: NormalizationEngine) -> None:
        normalize_label("RaTmp", equipment_type="AHU", engine=engine)
        normalize_label("RaTmp", equipment_type="AHU", engine=engine)
        stats = engine.cache_stats()
        assert stats["hits"] == 1
        assert stats["size"] == 1

    def test_prefix_not_duplicated(self, engine: NormalizationEngine) -> None:
        result = normalize_label("VAV_RmTmp", equipment_type="VAV", engine=engine)
        assert result.canonical_name.split().count("VAV") == 1

    def test_confidence_bounded(self, engine: NormalizationEngine) -> None:
        result = normalize_label(
            "SaTmpSaTmpSptRmTmpCmdSts",
            equipment_type="VAV",
            vendor="Schneider Electric",
            engine=engine,
        )
        assert 0 <= result.confidence <= 100

    def test_unrecognized_label_keeps_text(self, engine: NormalizationEngine) -> None:
        result = normalize_label("Xyz", engine=engine)
        assert result.canonical_name == "Xyz"
        assert result.confidence == 0

    def test_unit_and_writable_tags(self, engine: NormalizationEngine) -> None:
        point = Point(id="p1", label="DaFlw", unit="cfm", writable=True)
        result = engine.normalize(point)
        assert {"flow", "air", "writable"} <= set(result.tags)
        assert len(result.tags) == len(set(result.tags))

    def test_read_only_points_tagged_sensor(self, engine: NormalizationEngine) -> None:
        result = engine.normalize(Point(id="p1", label="Xyz"))
        assert result.tags == ["sensor", "point"]

    @pytest.mark.parametrize(
        ("unit", "expected"),
        [
            ("°F", ["temp", "sensor"]),
            ("gpm", ["flow", "water", "sensor"]),
            ("psi", ["pressure", "sensor"]),
            ("%", ["sensor"]),
            (None, []),
        ],
    )
    def test_unit_tags(self, unit: str | None, expected: list[str]) -> None:
        assert unit_tags(unit) == expected


class TestNormalizeEquipment:
    def test_points_enriched_and_summarized(self, engine: NormalizationEngine, equipment_factory) -> None:
        equipment = equipment_factory("vav-1", equipment_type="VAV")

        normalized = engine.normalize_equipment(equipment)

        assert all(p.canonical_name for p in normalized.points)
        assert all(p.normalization_confidence is not None for p in normalized.points)
        assert all(p.semantic_metadata is not None for p in normalized.points)
        summary = normalized.normalization_summary
        assert summary is not None
        assert summary.total_points == len(equipment.points)
        assert 0 <= summary.normalized_points <= summary.total_points
        # Input is left untouched
        assert equipment.points[0].canonical_name is None

    def test_idempotent(self, engine: NormalizationEngine, equipment_factory) -> None:
        equipment = equipment_factory("vav-1", equipment_type="VAV")
        once = engine.normalize_equipment(equipment)
        twice = engine.normalize_equipment(once)
        assert [p.canonical_name for p in once.points] == [p.canonical_name for p in twice.points]
        assert once.normalization_summary == twice.normalization_summary

    def test_semantic_metadata_device_context(self, engine: NormalizationEngine) -> None:
        metadata = engine.semantic_metadata(
            "MotorSpd", vendor_name="ABB", model_name="ACH580", equipment_type="AHU"
        )
        assert metadata.device_context.is_vfd
        assert metadata.equipment_specific
        assert any("ABB" in r for r in metadata.reasoning)

    def test_empty_equipment(self, engine: NormalizationEngine, equipment_factory) -> None:
        normalized = engine.normalize_equipment(equipment_factory("e-0", labels=[]))
        assert normalized.normalization_summary.total_points == 0
        assert normalized.normalization_summary.average_confidence == 0.0


class TestNormalizationStats:
    def test_stats(self, engine: NormalizationEngine) -> None:
        results = [
            normalize_label("RmTmpSpt", equipment_type="VAV", engine=engine),
            normalize_label("SaTmp", vendor="Schneider Electric", engine=engine),
            normalize_label("Xyz", engine=engine),
        ]

        stats = normalization_stats(results)

        assert stats["total_points"] == 3
        assert stats["normalized_points"] == 1  # 50 is not above the threshold
        assert stats["method_distribution"] == {"pattern-match": 2, "vendor-specific": 1}

    def test_empty(self) -> None:
        stats = normalization_stats([])
        assert stats["total_points"] == 0
        assert stats["average_confidence"] == 0.0


def test_point_kind_round_trip() -> None:
    point = Point(id="p", label="FanSts", kind="Bool")
    assert point.kind is PointKind.BOOL
