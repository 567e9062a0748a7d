"""End-to-end auto-assignment over the SQL repository.

Scenario: a verified AHU signature, a batch of mixed equipment, then user
feedback and a rollback flowing back into analytics.
"""

from __future__ import annotations

import pytest
import pytest_asyncio

from bacmap.assignment.service import SKIP_NO_MATCH, AutoAssignmentService
from bacmap.config import AssignmentConfig, DBConfig
from bacmap.db.connection import create_engine, init_db, make_session_factory
from bacmap.db.sql import SqlRepository
from bacmap.models import AssignmentStatus, Equipment, Signature, SignatureAnalytics


@pytest_asyncio.fixture()
async def sql_service(ahu_signature: Signature, ahu_analytics: SignatureAnalytics):
    engine = create_engine(DBConfig(url="sqlite+aiosqlite:///:memory:"))
    await init_db(engine)
    repo = SqlRepository(make_session_factory(engine))
    await repo.save_signature(ahu_signature)
    await repo.save_analytics(ahu_analytics)

    service = AutoAssignmentService(repo, config=AssignmentConfig(batch_item_delay_seconds=0))
    await service.initialize()
    try:
        yield service
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_batch_feedback_and_rollback(
    sql_service: AutoAssignmentService, equipment_factory, unrelated_equipment: Equipment
) -> None:
    repo = sql_service.repository
    batch = [equipment_factory("ahu-1"), equipment_factory("ahu-2"), unrelated_equipment]

    result = await sql_service.batch_process_equipment(batch, user_id="commissioning")

    assert result.summary.assigned == 2
    assert [s.reason for s in result.skipped] == [SKIP_NO_MATCH]
    signature = await repo.get_signature("sig-ahu")
    assert sorted(signature.matching_equipment_ids) == ["ahu-1", "ahu-2"]

    await sql_service.record_user_feedback("ahu-1", "sig-ahu", True, user_id="tech-1")
    await sql_service.rollback_assignment("ahu-2", "sig-ahu", "VAV, not AHU", user_id="tech-1")

    analytics = await repo.get_analytics("sig-ahu")
    assert analytics.total_matches == 12
    assert analytics.accurate_matches == 11
    assert analytics.usage_frequency == 6
    assert (analytics.user_feedback.positive, analytics.user_feedback.negative) == (6, 1)

    signature = await repo.get_signature("sig-ahu")
    assert signature.matching_equipment_ids == ["ahu-1"]
    stored = await repo.get_assignment("ahu-2", "sig-ahu")
    assert stored.status == AssignmentStatus.ROLLED_BACK
    assert stored.metadata.rollback_reason == "VAV, not AHU"

    metrics = await sql_service.get_performance_metrics()
    assert metrics["successful_assignments"] == 1
    assert metrics["rolled_back_assignments"] == 1
    assert metrics["error_rate"] == 50.0

    actions = [e.action.value for e in sql_service.get_audit_log()]
    assert actions == ["assign", "assign", "feedback", "rollback"]


@pytest.mark.asyncio
async def test_deleting_signature_removes_assignments(
    sql_service: AutoAssignmentService, ahu_equipment: Equipment
) -> None:
    repo = sql_service.repository
    assert await sql_service.process_equipment(ahu_equipment) is not None

    await repo.delete_signature("sig-ahu")

    assert await repo.list_assignments(equipment_id="ahu-1") == []
    assert await sql_service.process_equipment(ahu_equipment) is None
