"""Pytest configuration and fixtures for bacmap tests.

Provides common fixtures for testing.
"""

from __future__ import annotations

import pytest
import pytest_asyncio

from bacmap.config import AssignmentConfig
from bacmap.db.memory import InMemoryRepository
from bacmap.models import (
    Equipment,
    FeedbackCounts,
    Point,
    PointKind,
    PointTemplate,
    Signature,
    SignatureAnalytics,
)
from bacmap.normalization.engine import NormalizationEngine

AHU_POINTS = [
    ("SaTmp", PointKind.NUMBER, "°F"),
    ("RaTmp", PointKind.NUMBER, "°F"),
    ("FanSts", PointKind.BOOL, None),
    ("RmTmpSpt", PointKind.NUMBER, "°F"),
]


def make_equipment(
    equipment_id: str,
    equipment_type: str = "AHU",
    labels: list[tuple[str, PointKind, str | None]] | None = None,
    vendor_name: str | None = None,
) -> Equipment:
    """Equipment whose points mirror the given (label, kind, unit) triples."""
    labels = AHU_POINTS if labels is None else labels
    return Equipment(
        id=equipment_id,
        connector_id="connector-1",
        equipment_type=equipment_type,
        vendor_name=vendor_name,
        points=[
            Point(id=f"{equipment_id}-p{i}", label=label, kind=kind, unit=unit)
            for i, (label, kind, unit) in enumerate(labels)
        ],
    )


@pytest.fixture
def ahu_signature() -> Signature:
    """Signature matching the standard AHU point set exactly."""
    return Signature(
        id="sig-ahu",
        name="Standard AHU",
        equipment_type="AHU",
        point_signature=[
            PointTemplate(label=label, kind=kind, unit=unit) for label, kind, unit in AHU_POINTS
        ],
        confidence=90.0,
    )


@pytest.fixture
def ahu_analytics() -> SignatureAnalytics:
    """Analytics good enough to seed the verified pool."""
    return SignatureAnalytics(
        signature_id="sig-ahu",
        total_matches=10,
        accurate_matches=10,
        accuracy=1.0,
        average_confidence=97.0,
        usage_frequency=4,
        user_feedback=FeedbackCounts(positive=5, negative=0),
    )


@pytest.fixture
def ahu_equipment() -> Equipment:
    return make_equipment("ahu-1")


@pytest.fixture
def unrelated_equipment() -> Equipment:
    """Equipment that no signature in the fixtures can match."""
    return make_equipment(
        "boiler-1",
        equipment_type="Boiler",
        labels=[("Xyz1", PointKind.STR, None), ("Qrs2", PointKind.STR, None)],
    )


@pytest.fixture
def engine() -> NormalizationEngine:
    return NormalizationEngine()


@pytest.fixture
def assignment_config() -> AssignmentConfig:
    return AssignmentConfig(batch_item_delay_seconds=0)


@pytest_asyncio.fixture
async def repository(
    ahu_signature: Signature, ahu_analytics: SignatureAnalytics
) -> InMemoryRepository:
    repo = InMemoryRepository()
    await repo.save_signature(ahu_signature)
    await repo.save_analytics(ahu_analytics)
    return repo


@pytest.fixture
def equipment_factory():
    """Build equipment from (label, kind, unit) triples; defaults to the AHU point set."""
    return make_equipment
