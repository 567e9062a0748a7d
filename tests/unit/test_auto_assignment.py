"""Unit tests for the auto-assignment orchestrator."""

from __future__ import annotations

import dataclasses

import pytest
import pytest_asyncio

from bacmap.assignment.audit import AuditAction
from bacmap.assignment.service import (
    SKIP_LIMIT_REACHED,
    SKIP_NO_MATCH,
    AutoAssignmentService,
)
from bacmap.assignment.tracking import VerifiedSignature
from bacmap.config import AssignmentConfig
from bacmap.db.memory import InMemoryRepository
from bacmap.errors import (
    InputValidationError,
    NotFoundError,
    PersistenceError,
    StateConflictError,
)
from bacmap.models import AssignmentStatus, Equipment, Signature, SignatureAnalytics


@pytest_asyncio.fixture
async def service(
    repository: InMemoryRepository, assignment_config: AssignmentConfig
) -> AutoAssignmentService:
    svc = AutoAssignmentService(repository, config=assignment_config)
    await svc.initialize()
    return svc


async def assign(service: AutoAssignmentService, equipment: Equipment):
    result = await service.process_equipment(equipment)
    assert result is not None
    return result


class TestInitialize:
    @pytest.mark.asyncio
    async def test_seeds_pool_from_accurate_signatures(
        self, service: AutoAssignmentService
    ) -> None:
        assert "sig-ahu" in service.pool
        entry = service.pool.get("sig-ahu")
        assert entry.success_rate == 1.0
        assert entry.user_confirmations == 5

    @pytest.mark.asyncio
    async def test_skips_inaccurate_signatures(
        self,
        repository: InMemoryRepository,
        ahu_analytics: SignatureAnalytics,
        assignment_config: AssignmentConfig,
    ) -> None:
        await repository.save_analytics(ahu_analytics.model_copy(update={"accuracy": 0.5}))
        svc = AutoAssignmentService(repository, config=assignment_config)

        assert await svc.initialize() == 0


class TestProcessEquipment:
    @pytest.mark.asyncio
    async def test_assigns_exact_match(
        self,
        service: AutoAssignmentService,
        repository: InMemoryRepository,
        ahu_equipment: Equipment,
    ) -> None:
        result = await service.process_equipment(ahu_equipment, user_id="tech-1")

        assert result is not None
        assert result.signature_id == "sig-ahu"
        assert result.status == AssignmentStatus.ASSIGNED
        assert result.auto_assigned
        assert result.confidence == 100.0
        assert not result.requires_review
        assert result.metadata.factors is not None
        assert result.metadata.equipment_type == "AHU"

        stored = await repository.get_assignment("ahu-1", "sig-ahu")
        assert stored == result
        signature = await repository.get_signature("sig-ahu")
        assert signature.matching_equipment_ids == ["ahu-1"]
        analytics = await repository.get_analytics("sig-ahu")
        assert analytics.usage_frequency == 5
        assert analytics.total_matches == 10
        assert analytics.average_confidence == pytest.approx(97.2)

        entries = service.get_audit_log()
        assert len(entries) == 1
        assert entries[0].action == AuditAction.ASSIGN
        assert entries[0].user_id == "tech-1"
        assert entries[0].reason == "Auto-assigned with 100.0% confidence"

    @pytest.mark.asyncio
    async def test_dry_run_has_no_side_effects(
        self,
        service: AutoAssignmentService,
        repository: InMemoryRepository,
        ahu_equipment: Equipment,
    ) -> None:
        result = await service.process_equipment(ahu_equipment, dry_run=True)

        assert result is not None
        assert await repository.get_assignment("ahu-1", "sig-ahu") is None
        assert (await repository.get_analytics("sig-ahu")).usage_frequency == 4
        assert service.get_audit_log() == []

    @pytest.mark.asyncio
    async def test_no_match(
        self, service: AutoAssignmentService, unrelated_equipment: Equipment
    ) -> None:
        assert await service.process_equipment(unrelated_equipment) is None
        assert service.get_audit_log() == []

    @pytest.mark.asyncio
    async def test_already_assigned_pair_is_skipped(
        self, service: AutoAssignmentService, ahu_equipment: Equipment
    ) -> None:
        await assign(service, ahu_equipment)
        assert await service.process_equipment(ahu_equipment) is None

    @pytest.mark.asyncio
    async def test_requires_verified_signature(
        self,
        repository: InMemoryRepository,
        assignment_config: AssignmentConfig,
        ahu_equipment: Equipment,
    ) -> None:
        svc = AutoAssignmentService(repository, config=assignment_config)
        # Pool never initialized
        assert await svc.process_equipment(ahu_equipment) is None

    @pytest.mark.asyncio
    async def test_low_success_rate_blocks_assignment(
        self,
        service: AutoAssignmentService,
        ahu_signature: Signature,
        ahu_equipment: Equipment,
    ) -> None:
        service.pool.set(
            VerifiedSignature(signature=ahu_signature, verification_score=50.0, success_rate=0.5)
        )
        assert await service.process_equipment(ahu_equipment) is None

    @pytest.mark.asyncio
    async def test_review_threshold(
        self,
        repository: InMemoryRepository,
        ahu_equipment: Equipment,
    ) -> None:
        svc = AutoAssignmentService(
            repository, config=AssignmentConfig(batch_item_delay_seconds=0, review_threshold=100.5)
        )
        await svc.initialize()

        result = await svc.process_equipment(ahu_equipment)

        assert result.requires_review

    @pytest.mark.asyncio
    async def test_rejects_malformed_equipment(self, service: AutoAssignmentService) -> None:
        with pytest.raises(InputValidationError):
            await service.process_equipment({"id": "ahu-1"})
        with pytest.raises(InputValidationError):
            await service.process_equipment(Equipment(id=" ", equipment_type="AHU"))

    @pytest.mark.asyncio
    async def test_scoring_failure_means_no_assignment(
        self,
        service: AutoAssignmentService,
        ahu_equipment: Equipment,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def boom(*args, **kwargs):
            raise RuntimeError("scorer exploded")

        monkeypatch.setattr(service.scorer, "get_all_signature_matches", boom)

        assert await service.process_equipment(ahu_equipment) is None

    @pytest.mark.asyncio
    async def test_persistence_errors_propagate(
        self,
        service: AutoAssignmentService,
        repository: InMemoryRepository,
        ahu_equipment: Equipment,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        async def fail():
            raise PersistenceError("database is gone")

        monkeypatch.setattr(repository, "list_signatures", fail)

        with pytest.raises(PersistenceError):
            await service.process_equipment(ahu_equipment)


class TestBatchProcessing:
    @pytest.mark.asyncio
    async def test_limit_and_skip_reasons(
        self,
        service: AutoAssignmentService,
        equipment_factory,
        unrelated_equipment: Equipment,
    ) -> None:
        batch = [
            equipment_factory("ahu-1"),
            unrelated_equipment,
            equipment_factory("ahu-2"),
            equipment_factory("ahu-3"),
        ]

        result = await service.batch_process_equipment(batch, max_assignments=2)

        assert [a.equipment_id for a in result.assignments] == ["ahu-1", "ahu-2"]
        assert {s.equipment_id: s.reason for s in result.skipped} == {
            "boiler-1": SKIP_NO_MATCH,
            "ahu-3": SKIP_LIMIT_REACHED,
        }
        assert result.summary.total == 4
        assert result.summary.assigned == 2
        assert result.summary.skipped == 2
        assert result.summary.assigned + result.summary.skipped == result.summary.total
        assert result.summary.average_confidence == 100.0

    @pytest.mark.asyncio
    async def test_default_limit_is_batch_size(
        self, repository: InMemoryRepository, equipment_factory
    ) -> None:
        svc = AutoAssignmentService(
            repository, config=AssignmentConfig(batch_item_delay_seconds=0, batch_size=1)
        )
        await svc.initialize()

        result = await svc.batch_process_equipment(
            [equipment_factory("ahu-1"), equipment_factory("ahu-2")]
        )

        assert result.summary.assigned == 1
        assert result.skipped[0].reason == SKIP_LIMIT_REACHED

    @pytest.mark.asyncio
    async def test_zero_limit_skips_everything(
        self, service: AutoAssignmentService, equipment_factory
    ) -> None:
        result = await service.batch_process_equipment(
            [equipment_factory("ahu-1")], max_assignments=0
        )
        assert result.assignments == []
        assert result.summary.average_confidence == 0.0

    @pytest.mark.asyncio
    async def test_dry_run_batch(
        self,
        service: AutoAssignmentService,
        repository: InMemoryRepository,
        equipment_factory,
    ) -> None:
        result = await service.batch_process_equipment(
            [equipment_factory("ahu-1"), equipment_factory("ahu-2")], dry_run=True
        )
        assert result.summary.assigned == 2
        assert await repository.list_assignments() == []

    @pytest.mark.asyncio
    async def test_validates_every_item_first(
        self,
        service: AutoAssignmentService,
        repository: InMemoryRepository,
        ahu_equipment: Equipment,
    ) -> None:
        with pytest.raises(InputValidationError):
            await service.batch_process_equipment([ahu_equipment, "not equipment"])
        assert await repository.list_assignments() == []

    @pytest.mark.asyncio
    async def test_empty_batch(self, service: AutoAssignmentService) -> None:
        result = await service.batch_process_equipment([])
        assert result.summary.total == 0


class TestRollback:
    @pytest.mark.asyncio
    async def test_rollback(
        self,
        service: AutoAssignmentService,
        repository: InMemoryRepository,
        ahu_equipment: Equipment,
    ) -> None:
        await assign(service, ahu_equipment)

        rolled_back = await service.rollback_assignment(
            "ahu-1", "sig-ahu", "Wrong equipment class", user_id="tech-1"
        )

        assert rolled_back.status == AssignmentStatus.ROLLED_BACK
        assert rolled_back.metadata.rollback_reason == "Wrong equipment class"
        assert rolled_back.metadata.rollback_user_id == "tech-1"
        assert rolled_back.metadata.rollback_timestamp is not None

        stored = await repository.get_assignment("ahu-1", "sig-ahu")
        assert stored.status == AssignmentStatus.ROLLED_BACK
        assert (await repository.get_signature("sig-ahu")).matching_equipment_ids == []

        analytics = await repository.get_analytics("sig-ahu")
        assert analytics.total_matches == 11
        assert analytics.accurate_matches == 10
        assert analytics.user_feedback.negative == 1

        tracked = service.get_error_rate_tracker()["sig-ahu"]
        assert (tracked.total, tracked.errors) == (1, 1)
        assert service.get_audit_log(action="rollback")[0].reason == "Wrong equipment class"
        assert service.scorer.get_learning_data_summary()["rejected"] == 1
        assert service.pool.get("sig-ahu").success_rate == pytest.approx(10 / 11)

    @pytest.mark.asyncio
    async def test_missing_assignment(self, service: AutoAssignmentService) -> None:
        with pytest.raises(NotFoundError):
            await service.rollback_assignment("ahu-1", "sig-ahu", "reason")

    @pytest.mark.asyncio
    async def test_second_rollback_conflicts_without_side_effects(
        self,
        service: AutoAssignmentService,
        repository: InMemoryRepository,
        ahu_equipment: Equipment,
    ) -> None:
        await assign(service, ahu_equipment)
        await service.rollback_assignment("ahu-1", "sig-ahu", "first")
        analytics_before = await repository.get_analytics("sig-ahu")
        audit_before = len(service.get_audit_log())

        with pytest.raises(StateConflictError):
            await service.rollback_assignment("ahu-1", "sig-ahu", "second")

        assert await repository.get_analytics("sig-ahu") == analytics_before
        assert len(service.get_audit_log()) == audit_before
        assert service.get_error_rate_tracker()["sig-ahu"].total == 1

    @pytest.mark.asyncio
    async def test_rollback_disabled(
        self, repository: InMemoryRepository, ahu_equipment: Equipment
    ) -> None:
        svc = AutoAssignmentService(
            repository, config=AssignmentConfig(batch_item_delay_seconds=0, rollback_enabled=False)
        )
        await svc.initialize()
        await assign(svc, ahu_equipment)

        with pytest.raises(StateConflictError):
            await svc.rollback_assignment("ahu-1", "sig-ahu", "reason")

    @pytest.mark.asyncio
    async def test_reassignment_after_rollback(
        self, service: AutoAssignmentService, ahu_equipment: Equipment
    ) -> None:
        await assign(service, ahu_equipment)
        await service.rollback_assignment("ahu-1", "sig-ahu", "reason")

        again = await service.process_equipment(ahu_equipment)

        assert again is not None
        assert again.status == AssignmentStatus.ASSIGNED

    @pytest.mark.asyncio
    async def test_reassignment_can_be_disabled(
        self, repository: InMemoryRepository, ahu_equipment: Equipment
    ) -> None:
        svc = AutoAssignmentService(
            repository,
            config=AssignmentConfig(
                batch_item_delay_seconds=0, allow_reassignment_after_rollback=False
            ),
        )
        await svc.initialize()
        await assign(svc, ahu_equipment)
        await svc.rollback_assignment("ahu-1", "sig-ahu", "reason")

        assert await svc.process_equipment(ahu_equipment) is None

    @pytest.mark.asyncio
    async def test_rollback_without_learning(
        self, repository: InMemoryRepository, ahu_equipment: Equipment
    ) -> None:
        svc = AutoAssignmentService(
            repository, config=AssignmentConfig(batch_item_delay_seconds=0, enable_learning=False)
        )
        await svc.initialize()
        await assign(svc, ahu_equipment)

        await svc.rollback_assignment("ahu-1", "sig-ahu", "reason")

        assert svc.scorer.get_learning_data_summary()["total_samples"] == 0
        assert (await repository.get_analytics("sig-ahu")).total_matches == 11


class TestUserFeedback:
    @pytest.mark.asyncio
    async def test_confirm(
        self,
        service: AutoAssignmentService,
        repository: InMemoryRepository,
        ahu_equipment: Equipment,
    ) -> None:
        await assign(service, ahu_equipment)

        updated = await service.record_user_feedback(
            "ahu-1", "sig-ahu", True, user_id="tech-1", notes="looks right"
        )

        assert updated.user_feedback.confirmed
        assert updated.user_feedback.notes == "looks right"
        stored = await repository.get_assignment("ahu-1", "sig-ahu")
        assert stored.user_feedback is not None
        analytics = await repository.get_analytics("sig-ahu")
        assert analytics.user_feedback.positive == 6
        assert analytics.accurate_matches == 11
        tracked = service.get_error_rate_tracker()["sig-ahu"]
        assert (tracked.total, tracked.errors) == (1, 0)
        assert (
            service.get_audit_log(action=AuditAction.FEEDBACK)[0].reason
            == "User feedback: confirmed - looks right"
        )

    @pytest.mark.asyncio
    async def test_reject_counts_as_error(
        self, service: AutoAssignmentService, ahu_equipment: Equipment
    ) -> None:
        await assign(service, ahu_equipment)

        await service.record_user_feedback("ahu-1", "sig-ahu", False)

        assert service.get_error_rate_tracker()["sig-ahu"].errors == 1
        assert service.get_audit_log(action="feedback")[0].reason == "User feedback: rejected"

    @pytest.mark.asyncio
    async def test_second_feedback_conflicts(
        self, service: AutoAssignmentService, ahu_equipment: Equipment
    ) -> None:
        await assign(service, ahu_equipment)
        await service.record_user_feedback("ahu-1", "sig-ahu", True)

        with pytest.raises(StateConflictError):
            await service.record_user_feedback("ahu-1", "sig-ahu", False)

        assert service.get_error_rate_tracker()["sig-ahu"].total == 1

    @pytest.mark.asyncio
    async def test_feedback_on_rolled_back_assignment(
        self, service: AutoAssignmentService, ahu_equipment: Equipment
    ) -> None:
        await assign(service, ahu_equipment)
        await service.rollback_assignment("ahu-1", "sig-ahu", "reason")

        with pytest.raises(StateConflictError):
            await service.record_user_feedback("ahu-1", "sig-ahu", True)

    @pytest.mark.asyncio
    async def test_missing_assignment(self, service: AutoAssignmentService) -> None:
        with pytest.raises(NotFoundError):
            await service.record_user_feedback("ahu-1", "sig-ahu", True)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("equipment_id", "signature_id", "confirmed"),
        [("", "sig-ahu", True), ("ahu-1", None, True), ("ahu-1", "sig-ahu", "yes")],
    )
    async def test_validation(
        self, service: AutoAssignmentService, equipment_id, signature_id, confirmed
    ) -> None:
        with pytest.raises(InputValidationError):
            await service.record_user_feedback(equipment_id, signature_id, confirmed)


class TestVerifiedPool:
    @pytest.mark.asyncio
    async def test_pool_listing(self, service: AutoAssignmentService) -> None:
        pool = service.get_verified_signature_pool()
        assert [v.signature.id for v in pool] == ["sig-ahu"]

    @pytest.mark.asyncio
    async def test_pool_requires_confirmations(
        self,
        repository: InMemoryRepository,
        ahu_analytics: SignatureAnalytics,
        assignment_config: AssignmentConfig,
    ) -> None:
        feedback = ahu_analytics.user_feedback.model_copy(update={"positive": 2})
        await repository.save_analytics(ahu_analytics.model_copy(update={"user_feedback": feedback}))
        svc = AutoAssignmentService(repository, config=assignment_config)
        await svc.initialize()

        assert svc.get_verified_signature_pool() == []

    @pytest.mark.asyncio
    async def test_update_signature_learning_rebuilds_pool(
        self, repository: InMemoryRepository, assignment_config: AssignmentConfig
    ) -> None:
        svc = AutoAssignmentService(repository, config=assignment_config)

        assert await svc.update_signature_learning() == 1

        entry = svc.pool.get("sig-ahu")
        assert entry.success_rate == 1.0
        assert entry.user_confirmations == 5

    @pytest.mark.asyncio
    async def test_high_error_rate_evicts(self, service: AutoAssignmentService) -> None:
        for i in range(10):
            service.error_tracker.record("sig-ahu", is_error=i < 2)

        await service.update_signature_learning()

        assert "sig-ahu" not in service.pool

    @pytest.mark.asyncio
    async def test_moderate_error_rate_alerts_only(self, service: AutoAssignmentService) -> None:
        for i in range(10):
            service.error_tracker.record("sig-ahu", is_error=i < 1)

        assert service.check_error_rate_alerts() == ["sig-ahu"]
        assert "sig-ahu" in service.pool

    @pytest.mark.asyncio
    async def test_too_few_attempts_to_alert(self, service: AutoAssignmentService) -> None:
        for _ in range(4):
            service.error_tracker.record("sig-ahu", is_error=True)

        assert service.check_error_rate_alerts() == []
        assert "sig-ahu" in service.pool


class TestReporting:
    @pytest.mark.asyncio
    async def test_audit_log_rejects_unknown_action(self, service: AutoAssignmentService) -> None:
        with pytest.raises(InputValidationError):
            service.get_audit_log(action="bogus")

    @pytest.mark.asyncio
    async def test_recommendations(
        self,
        service: AutoAssignmentService,
        repository: InMemoryRepository,
        ahu_equipment: Equipment,
        unrelated_equipment: Equipment,
    ) -> None:
        recommendations = await service.get_auto_assignment_recommendations(
            [unrelated_equipment, ahu_equipment]
        )

        assert [r.equipment_id for r in recommendations] == ["ahu-1", "boiler-1"]
        best, none = recommendations
        assert best.signature_id == "sig-ahu"
        assert best.signature_name == "Standard AHU"
        assert best.high_confidence
        assert none.signature_id is None
        assert none.reasoning == ["No suitable match found"]
        assert await repository.list_assignments() == []

    @pytest.mark.asyncio
    async def test_recommendations_default_to_stored_equipment(
        self,
        service: AutoAssignmentService,
        repository: InMemoryRepository,
        ahu_equipment: Equipment,
    ) -> None:
        await repository.save_equipment(ahu_equipment)

        recommendations = await service.get_auto_assignment_recommendations()

        assert [r.equipment_id for r in recommendations] == ["ahu-1"]

    @pytest.mark.asyncio
    async def test_performance_metrics(
        self, service: AutoAssignmentService, equipment_factory
    ) -> None:
        await assign(service, equipment_factory("ahu-1"))
        await assign(service, equipment_factory("ahu-2"))
        await service.rollback_assignment("ahu-2", "sig-ahu", "reason")

        metrics = await service.get_performance_metrics()

        assert metrics["total_assignments"] == 2
        assert metrics["successful_assignments"] == 1
        assert metrics["rolled_back_assignments"] == 1
        assert metrics["error_rate"] == 100.0
        assert metrics["verified_signatures"] == 1
        assert metrics["learning_data_points"] == 1
        assert metrics["weights_version"] == 0

    @pytest.mark.asyncio
    async def test_metrics_empty(self, service: AutoAssignmentService) -> None:
        metrics = await service.get_performance_metrics()
        assert metrics["total_assignments"] == 0
        assert metrics["average_confidence"] == 0.0

    @pytest.mark.asyncio
    async def test_audit_log_is_bounded(
        self, repository: InMemoryRepository, equipment_factory
    ) -> None:
        svc = AutoAssignmentService(
            repository, config=AssignmentConfig(batch_item_delay_seconds=0, audit_log_limit=2)
        )
        await svc.initialize()
        for i in range(3):
            await assign(svc, equipment_factory(f"ahu-{i}"))

        entries = svc.get_audit_log()

        assert [e.equipment_id for e in entries] == ["ahu-1", "ahu-2"]
        assert [e.equipment_id for e in svc.get_audit_log(limit=1)] == ["ahu-2"]
        assert svc.get_audit_log(equipment_id="ahu-0") == []

    @pytest.mark.asyncio
    async def test_get_config_returns_copy(self, service: AutoAssignmentService) -> None:
        config = service.get_config()
        config.confidence_threshold = 10.0
        assert service.config.confidence_threshold == 95.0
        assert dataclasses.asdict(service.get_config())["batch_size"] == 10

    @pytest.mark.asyncio
    async def test_clear(self, service: AutoAssignmentService, ahu_equipment: Equipment) -> None:
        await assign(service, ahu_equipment)
        await service.rollback_assignment("ahu-1", "sig-ahu", "reason")

        service.clear()

        assert len(service.pool) == 0
        assert service.get_audit_log() == []
        assert service.get_error_rate_tracker() == {}
