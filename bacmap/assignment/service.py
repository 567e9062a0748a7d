"""Proactive auto-assignment of equipment to verified signatures.

Turns scores into accept/defer/rollback decisions:

- accept when the best eligible match clears the confidence threshold and its
  signature is in the verified pool with a high enough success rate
- rollback and feedback feed the learner, the error-rate tracker and the pool
- every persisted decision is appended to a bounded audit log
"""

from __future__ import annotations

import asyncio
import dataclasses
from typing import Any

import structlog

from bacmap.assignment.audit import AuditAction, AuditEntry, AuditLog
from bacmap.assignment.tracking import (
    ErrorRate,
    ErrorRateTracker,
    VerifiedSignature,
    VerifiedSignaturePool,
    verification_score,
)
from bacmap.config import AssignmentConfig
from bacmap.db.repository import Repository
from bacmap.errors import InputValidationError, NotFoundError, StateConflictError
from bacmap.matching.learning import record_usage, update_analytics
from bacmap.matching.scorer import ConfidenceScorer
from bacmap.models import (
    AssignmentMetadata,
    AssignmentStatus,
    AutoAssignmentResult,
    BatchResult,
    BatchSummary,
    ConfidenceFactors,
    Equipment,
    Recommendation,
    Signature,
    SignatureAnalytics,
    SignatureMatchResult,
    SkippedEquipment,
    UserFeedback,
    utcnow,
)
from bacmap.normalization.engine import NormalizationEngine

logger = structlog.get_logger()

SKIP_LIMIT_REACHED = "Batch size limit reached"
SKIP_NO_MATCH = "No suitable signature match found"


def _require_id(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InputValidationError(f"{name} must be a non-empty string")
    return value


def _optional_str(value: Any, name: str) -> str | None:
    if value is not None and not isinstance(value, str):
        raise InputValidationError(f"{name} must be a string")
    return value


def _require_equipment(equipment: Any) -> Equipment:
    if not isinstance(equipment, Equipment):
        raise InputValidationError("equipment must be an Equipment record")
    _require_id(equipment.id, "equipment.id")
    return equipment


class AutoAssignmentService:
    """Auto-assignment orchestrator.

    Owns the verified-signature pool, the error-rate tracker and the audit
    log. Scoring, normalization and persistence are injected.
    """

    def __init__(
        self,
        repository: Repository,
        scorer: ConfidenceScorer | None = None,
        engine: NormalizationEngine | None = None,
        config: AssignmentConfig | None = None,
    ) -> None:
        self.repository = repository
        self.scorer = scorer or ConfidenceScorer()
        self.engine = engine or NormalizationEngine()
        self.config = config or AssignmentConfig()

        self.pool = VerifiedSignaturePool()
        self.error_tracker = ErrorRateTracker()
        self.audit_log = AuditLog(max_entries=self.config.audit_log_limit)

    async def initialize(self) -> int:
        """Seed the verified pool from persisted analytics.

        Returns:
            Number of signatures in the pool
        """
        signatures = await self.repository.list_signatures()
        for signature in signatures:
            analytics = await self.repository.get_analytics(signature.id)
            if analytics and analytics.accuracy >= self.config.min_success_rate:
                self.pool.set(
                    VerifiedSignature(
                        signature=signature,
                        verification_score=verification_score(analytics),
                        success_rate=analytics.accuracy,
                        user_confirmations=analytics.user_feedback.positive,
                        last_verified=analytics.last_used,
                    )
                )

        logger.info("verified_pool_initialized", size=len(self.pool))
        return len(self.pool)

    async def _load_candidates(
        self,
    ) -> tuple[list[Signature], dict[str, SignatureAnalytics]]:
        signatures = await self.repository.list_signatures()
        analytics = {a.signature_id: a for a in await self.repository.list_analytics()}
        return signatures, analytics

    def _best_match(
        self,
        equipment: Equipment,
        signatures: list[Signature],
        analytics: dict[str, SignatureAnalytics],
    ) -> tuple[SignatureMatchResult | None, float]:
        """Best eligible match and the top confidence seen.

        Raises whatever normalization or scoring raises.
        """
        normalized = self.engine.normalize_equipment(equipment)
        matches = self.scorer.get_all_signature_matches(normalized, signatures, analytics)
        top = matches[0].confidence if matches else 0.0
        for match in matches:
            if (
                match.auto_assignment_eligible
                and match.confidence >= self.config.confidence_threshold
            ):
                return match, top
        return None, top

    def _score_safely(
        self,
        equipment: Equipment,
        signatures: list[Signature],
        analytics: dict[str, SignatureAnalytics],
    ) -> tuple[SignatureMatchResult | None, float]:
        try:
            return self._best_match(equipment, signatures, analytics)
        except Exception:
            # One bad record must not abort the caller; treated as no match
            logger.exception("scoring_failed", equipment_id=equipment.id)
            return None, 0.0

    async def process_equipment(
        self,
        equipment: Equipment,
        dry_run: bool = False,
        user_id: str | None = None,
    ) -> AutoAssignmentResult | None:
        """Try to auto-assign one equipment to its best verified signature.

        Args:
            equipment: Equipment to classify
            dry_run: Build the result without persisting or auditing it
            user_id: Actor recorded in the audit log

        Returns:
            The assignment, or None when no signature qualifies

        Raises:
            InputValidationError: If the equipment record is malformed
            PersistenceError: If the repository fails
        """
        equipment = _require_equipment(equipment)
        user_id = _optional_str(user_id, "user_id")

        signatures, analytics = await self._load_candidates()
        match, top = self._score_safely(equipment, signatures, analytics)
        if match is None:
            logger.info("no_candidate", equipment_id=equipment.id, best_confidence=top)
            return None

        existing = await self.repository.get_assignment(equipment.id, match.signature_id)
        if existing is not None:
            if existing.status == AssignmentStatus.ASSIGNED:
                logger.info(
                    "already_assigned",
                    equipment_id=equipment.id,
                    signature_id=match.signature_id,
                )
                return None
            if (
                existing.status == AssignmentStatus.ROLLED_BACK
                and not self.config.allow_reassignment_after_rollback
            ):
                logger.info(
                    "reassignment_blocked",
                    equipment_id=equipment.id,
                    signature_id=match.signature_id,
                )
                return None

        verified = self.pool.get(match.signature_id)
        if verified is None or verified.success_rate < self.config.min_success_rate:
            logger.info(
                "signature_not_verified",
                equipment_id=equipment.id,
                signature_id=match.signature_id,
            )
            return None

        result = AutoAssignmentResult(
            equipment_id=equipment.id,
            signature_id=match.signature_id,
            confidence=match.confidence,
            reasoning=match.reasoning,
            status=AssignmentStatus.ASSIGNED,
            auto_assigned=True,
            requires_review=match.confidence < self.config.review_threshold,
            metadata=AssignmentMetadata(
                factors=match.factors,
                verification_score=verified.verification_score,
                equipment_type=equipment.equipment_type,
                vendor_name=equipment.vendor_name,
            ),
        )

        if dry_run:
            return result

        await self.repository.save_assignment(result)
        await self._record_usage(
            match.signature_id, analytics.get(match.signature_id), match.confidence
        )
        self.audit_log.append(
            AuditEntry(
                equipment_id=equipment.id,
                signature_id=match.signature_id,
                action=AuditAction.ASSIGN,
                confidence=match.confidence,
                reason=f"Auto-assigned with {match.confidence}% confidence",
                user_id=user_id,
            )
        )
        logger.info(
            "auto_assigned",
            equipment_id=equipment.id,
            signature_id=match.signature_id,
            confidence=match.confidence,
        )
        return result

    async def _record_usage(
        self, signature_id: str, analytics: SignatureAnalytics | None, confidence: float
    ) -> None:
        await self.repository.save_analytics(record_usage(analytics, signature_id, confidence))

    async def batch_process_equipment(
        self,
        equipment_list: list[Equipment],
        dry_run: bool = False,
        user_id: str | None = None,
        max_assignments: int | None = None,
    ) -> BatchResult:
        """Process equipment in order until max_assignments are produced.

        Items after the limit are skipped with "Batch size limit reached";
        items without a qualifying signature with "No suitable signature
        match found". ``assigned + skipped`` always equals the input size.

        Raises:
            InputValidationError: If any record or the limit is malformed
        """
        if not isinstance(equipment_list, list):
            raise InputValidationError("equipment_list must be a list")
        for equipment in equipment_list:
            _require_equipment(equipment)
        if max_assignments is not None and (
            not isinstance(max_assignments, int) or max_assignments < 0
        ):
            raise InputValidationError("max_assignments must be a non-negative integer")

        limit = max_assignments if max_assignments is not None else self.config.batch_size
        assignments: list[AutoAssignmentResult] = []
        skipped: list[SkippedEquipment] = []

        logger.info("batch_started", total=len(equipment_list), limit=limit, dry_run=dry_run)

        for equipment in equipment_list:
            if len(assignments) >= limit:
                skipped.append(SkippedEquipment(equipment_id=equipment.id, reason=SKIP_LIMIT_REACHED))
                continue

            result = await self.process_equipment(equipment, dry_run=dry_run, user_id=user_id)
            if result is not None:
                assignments.append(result)
            else:
                skipped.append(SkippedEquipment(equipment_id=equipment.id, reason=SKIP_NO_MATCH))

            await asyncio.sleep(self.config.batch_item_delay_seconds)

        summary = BatchSummary(
            total=len(equipment_list),
            assigned=len(assignments),
            skipped=len(skipped),
            average_confidence=round(
                sum(a.confidence for a in assignments) / len(assignments), 2
            )
            if assignments
            else 0.0,
        )
        logger.info("batch_completed", **summary.model_dump())
        return BatchResult(assignments=assignments, skipped=skipped, summary=summary)

    async def _apply_outcome(
        self,
        assignment: AutoAssignmentResult,
        confirmed: bool,
        factors: ConfidenceFactors,
    ) -> SignatureAnalytics:
        analytics = await self.repository.get_analytics(assignment.signature_id)
        if self.config.enable_learning:
            return self.scorer.record_feedback(
                assignment.equipment_id,
                assignment.signature_id,
                confirmed,
                assignment.confidence,
                factors,
                analytics,
            )
        return update_analytics(
            analytics, assignment.signature_id, confirmed, assignment.confidence
        )

    async def rollback_assignment(
        self,
        equipment_id: str,
        signature_id: str,
        reason: str,
        user_id: str | None = None,
    ) -> AutoAssignmentResult:
        """Roll back an active auto-assignment.

        Records a negative learning sample with the factor snapshot taken at
        assignment time, counts an error against the signature and refreshes
        its pool entry.

        Returns:
            The rolled-back assignment

        Raises:
            StateConflictError: If rollback is disabled or the assignment is not active
            NotFoundError: If no assignment exists for the pair
            InputValidationError: If an argument is malformed
        """
        if not self.config.rollback_enabled:
            raise StateConflictError("Rollback is disabled in current configuration")
        _require_id(equipment_id, "equipment_id")
        _require_id(signature_id, "signature_id")
        if not isinstance(reason, str):
            raise InputValidationError("reason must be a string")
        user_id = _optional_str(user_id, "user_id")

        assignment = await self.repository.get_assignment(equipment_id, signature_id)
        if assignment is None:
            raise NotFoundError("Assignment", f"{equipment_id}/{signature_id}")
        if assignment.status != AssignmentStatus.ASSIGNED:
            raise StateConflictError(
                f"Assignment {equipment_id}/{signature_id} is {assignment.status.value}, not assigned"
            )

        factors = assignment.metadata.factors or ConfidenceFactors()
        analytics = await self._apply_outcome(assignment, False, factors)

        rolled_back = assignment.model_copy(
            update={
                "status": AssignmentStatus.ROLLED_BACK,
                "metadata": assignment.metadata.model_copy(
                    update={
                        "rollback_reason": reason,
                        "rollback_timestamp": utcnow(),
                        "rollback_user_id": user_id,
                    }
                ),
            }
        )
        await self.repository.save_assignment(rolled_back)
        await self.repository.save_analytics(analytics)

        self.error_tracker.record(signature_id, is_error=True)
        self.pool.refresh(signature_id, analytics)
        self.audit_log.append(
            AuditEntry(
                equipment_id=equipment_id,
                signature_id=signature_id,
                action=AuditAction.ROLLBACK,
                confidence=assignment.confidence,
                reason=reason,
                user_id=user_id,
            )
        )
        logger.info(
            "assignment_rolled_back",
            equipment_id=equipment_id,
            signature_id=signature_id,
            reason=reason,
        )
        return rolled_back

    async def record_user_feedback(
        self,
        equipment_id: str,
        signature_id: str,
        confirmed: bool,
        user_id: str | None = None,
        notes: str | None = None,
    ) -> AutoAssignmentResult:
        """Attach user feedback to an active assignment.

        A rejection counts as an error for the signature. With learning
        enabled the outcome also becomes a learning sample.

        Returns:
            The assignment with feedback attached

        Raises:
            InputValidationError: If ids are missing or confirmed is not a bool
            NotFoundError: If no assignment exists for the pair
            StateConflictError: If feedback was already recorded or the
                assignment is not active
        """
        _require_id(equipment_id, "equipment_id")
        _require_id(signature_id, "signature_id")
        if not isinstance(confirmed, bool):
            raise InputValidationError("confirmed must be a boolean")
        user_id = _optional_str(user_id, "user_id")
        notes = _optional_str(notes, "notes")

        assignment = await self.repository.get_assignment(equipment_id, signature_id)
        if assignment is None:
            raise NotFoundError("Assignment", f"{equipment_id}/{signature_id}")
        if assignment.user_feedback is not None:
            raise StateConflictError(
                f"Feedback already recorded for {equipment_id}/{signature_id}"
            )
        if assignment.status != AssignmentStatus.ASSIGNED:
            raise StateConflictError(
                f"Assignment {equipment_id}/{signature_id} is {assignment.status.value}, not assigned"
            )

        factors = assignment.metadata.factors or ConfidenceFactors()
        analytics = await self._apply_outcome(assignment, confirmed, factors)

        updated = assignment.model_copy(
            update={
                "user_feedback": UserFeedback(confirmed=confirmed, user_id=user_id, notes=notes)
            }
        )
        await self.repository.save_assignment(updated)
        await self.repository.save_analytics(analytics)

        self.error_tracker.record(signature_id, is_error=not confirmed)
        self.pool.refresh(signature_id, analytics)

        verdict = "confirmed" if confirmed else "rejected"
        self.audit_log.append(
            AuditEntry(
                equipment_id=equipment_id,
                signature_id=signature_id,
                action=AuditAction.FEEDBACK,
                confidence=assignment.confidence,
                reason=f"User feedback: {verdict}" + (f" - {notes}" if notes else ""),
                user_id=user_id,
            )
        )
        logger.info(
            "feedback_recorded",
            equipment_id=equipment_id,
            signature_id=signature_id,
            confirmed=confirmed,
        )
        return updated

    async def update_signature_learning(self) -> int:
        """Rebuild pool entries from analytics, then apply error-rate alerts.

        Returns:
            Number of signatures whose entries were rebuilt
        """
        signatures = {s.id: s for s in await self.repository.list_signatures()}
        updated = 0

        for analytics in await self.repository.list_analytics():
            signature = signatures.get(analytics.signature_id)
            if signature is None:
                continue
            success_rate = (
                analytics.accurate_matches / analytics.total_matches
                if analytics.total_matches
                else 0.0
            )
            self.pool.set(
                VerifiedSignature(
                    signature=signature,
                    verification_score=verification_score(analytics),
                    success_rate=success_rate,
                    user_confirmations=analytics.user_feedback.positive,
                )
            )
            updated += 1

        self.check_error_rate_alerts()
        logger.info("signature_learning_updated", signatures=updated, pool_size=len(self.pool))
        return updated

    def check_error_rate_alerts(self) -> list[str]:
        """Warn about high error rates and evict the worst signatures from the pool.

        Returns:
            Ids of signatures that raised an alert
        """
        alerted: list[str] = []
        for signature_id, tracked in self.error_tracker.snapshot().items():
            if (
                tracked.rate > self.config.error_rate_alert_threshold
                and tracked.total >= self.config.min_alert_attempts
            ):
                alerted.append(signature_id)
                logger.warning(
                    "high_error_rate",
                    signature_id=signature_id,
                    error_rate=round(tracked.rate, 1),
                    errors=tracked.errors,
                    total=tracked.total,
                )
                if tracked.rate > self.config.error_rate_eviction_threshold and self.pool.remove(
                    signature_id
                ):
                    logger.warning("signature_evicted", signature_id=signature_id)
        return alerted

    def get_verified_signature_pool(self) -> list[VerifiedSignature]:
        return self.pool.qualified(
            self.config.min_success_rate, self.config.min_pool_confirmations
        )

    async def get_auto_assignment_recommendations(
        self, equipment_list: list[Equipment] | None = None
    ) -> list[Recommendation]:
        """Best eligible signature per equipment, without persisting anything.

        Args:
            equipment_list: Equipment to evaluate; defaults to all stored equipment

        Returns:
            Recommendations sorted by confidence, highest first
        """
        if equipment_list is None:
            equipment_list = await self.repository.list_equipment()
        for equipment in equipment_list:
            _require_equipment(equipment)

        signatures, analytics = await self._load_candidates()
        names = {s.id: s.name for s in signatures}
        recommendations: list[Recommendation] = []

        for equipment in equipment_list:
            match, _ = self._score_safely(equipment, signatures, analytics)
            if match is None:
                recommendations.append(
                    Recommendation(
                        equipment_id=equipment.id, reasoning=["No suitable match found"]
                    )
                )
                continue
            recommendations.append(
                Recommendation(
                    equipment_id=equipment.id,
                    signature_id=match.signature_id,
                    signature_name=names.get(match.signature_id),
                    confidence=match.confidence,
                    reasoning=match.reasoning,
                    high_confidence=match.confidence >= self.config.high_confidence_threshold,
                )
            )

        recommendations.sort(key=lambda r: r.confidence, reverse=True)
        return recommendations

    async def get_performance_metrics(self) -> dict[str, Any]:
        assignments = await self.repository.list_assignments()
        successful = [
            a
            for a in assignments
            if a.status == AssignmentStatus.ASSIGNED
            and (a.user_feedback is None or a.user_feedback.confirmed)
        ]
        rolled_back = [a for a in assignments if a.status == AssignmentStatus.ROLLED_BACK]
        learning = self.scorer.get_learning_data_summary()

        return {
            "total_assignments": len(assignments),
            "successful_assignments": len(successful),
            "rolled_back_assignments": len(rolled_back),
            "average_confidence": round(
                sum(a.confidence for a in assignments) / len(assignments), 2
            )
            if assignments
            else 0.0,
            "error_rate": round(self.error_tracker.global_rate(), 2),
            "verified_signatures": len(self.pool),
            "learning_data_points": learning["total_samples"],
            "weights_version": learning["weights_version"],
        }

    def get_audit_log(
        self,
        equipment_id: str | None = None,
        action: AuditAction | str | None = None,
        limit: int | None = None,
    ) -> list[AuditEntry]:
        return self.audit_log.entries(equipment_id=equipment_id, action=action, limit=limit)

    def get_error_rate_tracker(self) -> dict[str, ErrorRate]:
        return self.error_tracker.snapshot()

    def get_config(self) -> AssignmentConfig:
        return dataclasses.replace(self.config)

    def clear(self) -> None:
        """Drop the pool, error tracking and audit history owned by this service."""
        self.pool.clear()
        self.error_tracker.clear()
        self.audit_log.clear()
