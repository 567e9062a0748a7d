"""Async SQLAlchemy implementation of the Repository protocol."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from bacmap.db.models import (
    AssignmentModel,
    EquipmentModel,
    SignatureAnalyticsModel,
    SignatureModel,
)
from bacmap.errors import NotFoundError, PersistenceError
from bacmap.models import (
    AssignmentMetadata,
    AssignmentStatus,
    AutoAssignmentResult,
    Equipment,
    FeedbackCounts,
    Signature,
    SignatureAnalytics,
    SignatureSource,
    UserFeedback,
)

logger = logging.getLogger(__name__)


def _aware(value: datetime) -> datetime:
    # SQLite drops tzinfo on round-trip
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _to_equipment(row: EquipmentModel) -> Equipment:
    return Equipment.model_validate(
        {
            "id": row.id,
            "connector_id": row.connector_id,
            "equipment_type": row.equipment_type,
            "vendor_name": row.vendor_name,
            "model_name": row.model_name,
            "points": row.points or [],
            "normalization_summary": row.normalization_summary,
        }
    )


def _to_signature(row: SignatureModel) -> Signature:
    return Signature.model_validate(
        {
            "id": row.id,
            "name": row.name,
            "equipment_type": row.equipment_type,
            "point_signature": row.point_signature or [],
            "source": row.source,
            "confidence": row.confidence,
            "matching_equipment_ids": row.matching_equipment_ids or [],
            "detailed_confidence": row.detailed_confidence,
            "learning_data": row.learning_data,
        }
    )


def _to_assignment(row: AssignmentModel) -> AutoAssignmentResult:
    return AutoAssignmentResult(
        equipment_id=row.equipment_id,
        signature_id=row.signature_id,
        confidence=row.confidence,
        reasoning=list(row.reasoning or []),
        status=AssignmentStatus(row.status),
        timestamp=_aware(row.timestamp),
        auto_assigned=row.auto_assigned,
        requires_review=row.requires_review,
        user_feedback=UserFeedback.model_validate(row.user_feedback)
        if row.user_feedback
        else None,
        metadata=AssignmentMetadata.model_validate(row.assignment_metadata or {}),
    )


def _to_analytics(row: SignatureAnalyticsModel) -> SignatureAnalytics:
    return SignatureAnalytics(
        signature_id=row.signature_id,
        total_matches=row.total_matches,
        accurate_matches=row.accurate_matches,
        accuracy=row.accuracy,
        average_confidence=row.average_confidence,
        usage_frequency=row.usage_frequency,
        last_used=_aware(row.last_used),
        user_feedback=FeedbackCounts(
            positive=row.positive_feedback, negative=row.negative_feedback
        ),
    )


class SqlRepository:
    """Repository backed by an async SQLAlchemy session factory.

    Every operation runs in its own session and commits on success.
    SQLAlchemy errors are re-raised as PersistenceError.
    """

    def __init__(self, session_factory: sessionmaker | None = None) -> None:
        if session_factory is None:
            from bacmap.db.connection import get_session_factory

            session_factory = get_session_factory()
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        session: AsyncSession = self._session_factory()
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error("Database operation failed: %s", e)
            raise PersistenceError(str(e)) from e
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    # Equipment

    async def get_equipment(self, equipment_id: str) -> Equipment | None:
        async with self._session() as session:
            row = await session.get(EquipmentModel, equipment_id)
            return _to_equipment(row) if row else None

    async def list_equipment(self) -> list[Equipment]:
        async with self._session() as session:
            result = await session.execute(select(EquipmentModel).order_by(EquipmentModel.id))
            return [_to_equipment(row) for row in result.scalars()]

    async def save_equipment(self, equipment: Equipment) -> Equipment:
        data = equipment.model_dump(mode="json")
        async with self._session() as session:
            await session.merge(
                EquipmentModel(
                    id=equipment.id,
                    connector_id=equipment.connector_id,
                    equipment_type=equipment.equipment_type,
                    vendor_name=equipment.vendor_name,
                    model_name=equipment.model_name,
                    points=data["points"],
                    normalization_summary=data["normalization_summary"],
                )
            )
        return equipment

    # Signatures

    async def get_signature(self, signature_id: str) -> Signature | None:
        async with self._session() as session:
            row = await session.get(SignatureModel, signature_id)
            return _to_signature(row) if row else None

    async def list_signatures(self) -> list[Signature]:
        async with self._session() as session:
            result = await session.execute(select(SignatureModel).order_by(SignatureModel.id))
            return [_to_signature(row) for row in result.scalars()]

    async def save_signature(self, signature: Signature) -> Signature:
        data = signature.model_dump(mode="json")
        async with self._session() as session:
            row = await session.get(SignatureModel, signature.id)
            if row is None:
                # Matching ids are owned by save_assignment; never taken from the caller
                row = SignatureModel(id=signature.id, matching_equipment_ids=[])
                session.add(row)

            row.name = signature.name
            row.equipment_type = signature.equipment_type
            row.point_signature = data["point_signature"]
            row.source = signature.source.value
            row.confidence = signature.confidence
            row.detailed_confidence = data["detailed_confidence"]
            row.learning_data = data["learning_data"]
            stored = _to_signature(row)
        return stored

    async def update_signature(self, signature: Signature) -> Signature:
        if await self.get_signature(signature.id) is None:
            raise NotFoundError("Signature", signature.id)
        updated = signature.model_copy(update={"source": SignatureSource.USER_VALIDATED})
        return await self.save_signature(updated)

    async def delete_signature(self, signature_id: str) -> bool:
        async with self._session() as session:
            row = await session.get(SignatureModel, signature_id)
            if row is None:
                return False
            # Explicit cascade; SQLite does not enforce foreign keys by default
            await session.execute(
                delete(AssignmentModel).where(AssignmentModel.signature_id == signature_id)
            )
            await session.execute(
                delete(SignatureAnalyticsModel).where(
                    SignatureAnalyticsModel.signature_id == signature_id
                )
            )
            await session.delete(row)
        logger.info("Deleted signature %s with its analytics and assignments", signature_id)
        return True

    # Assignments

    async def get_assignment(
        self, equipment_id: str, signature_id: str
    ) -> AutoAssignmentResult | None:
        async with self._session() as session:
            result = await session.execute(
                select(AssignmentModel).where(
                    AssignmentModel.equipment_id == equipment_id,
                    AssignmentModel.signature_id == signature_id,
                )
            )
            row = result.scalar_one_or_none()
            return _to_assignment(row) if row else None

    async def list_assignments(
        self,
        equipment_id: str | None = None,
        signature_id: str | None = None,
        status: AssignmentStatus | None = None,
    ) -> list[AutoAssignmentResult]:
        query = select(AssignmentModel)
        if equipment_id is not None:
            query = query.where(AssignmentModel.equipment_id == equipment_id)
        if signature_id is not None:
            query = query.where(AssignmentModel.signature_id == signature_id)
        if status is not None:
            query = query.where(AssignmentModel.status == status.value)
        query = query.order_by(AssignmentModel.timestamp, AssignmentModel.id)

        async with self._session() as session:
            result = await session.execute(query)
            return [_to_assignment(row) for row in result.scalars()]

    async def save_assignment(self, result: AutoAssignmentResult) -> AutoAssignmentResult:
        data = result.model_dump(mode="json")
        async with self._session() as session:
            signature = await session.get(SignatureModel, result.signature_id)
            if signature is None:
                raise NotFoundError("Signature", result.signature_id)

            existing = await session.execute(
                select(AssignmentModel).where(
                    AssignmentModel.equipment_id == result.equipment_id,
                    AssignmentModel.signature_id == result.signature_id,
                )
            )
            row = existing.scalar_one_or_none()
            if row is None:
                row = AssignmentModel(
                    equipment_id=result.equipment_id, signature_id=result.signature_id
                )
                session.add(row)

            row.confidence = result.confidence
            row.reasoning = data["reasoning"]
            row.status = result.status.value
            row.timestamp = result.timestamp
            row.auto_assigned = result.auto_assigned
            row.requires_review = result.requires_review
            row.user_feedback = data["user_feedback"]
            row.assignment_metadata = data["metadata"]

            matching = [i for i in signature.matching_equipment_ids or [] if i != result.equipment_id]
            if result.status == AssignmentStatus.ASSIGNED:
                matching.append(result.equipment_id)
            # Reassign so the JSON column is flagged dirty
            signature.matching_equipment_ids = matching
        return result

    # Analytics

    async def get_analytics(self, signature_id: str) -> SignatureAnalytics | None:
        async with self._session() as session:
            row = await session.get(SignatureAnalyticsModel, signature_id)
            return _to_analytics(row) if row else None

    async def list_analytics(self) -> list[SignatureAnalytics]:
        async with self._session() as session:
            result = await session.execute(
                select(SignatureAnalyticsModel).order_by(SignatureAnalyticsModel.signature_id)
            )
            return [_to_analytics(row) for row in result.scalars()]

    async def save_analytics(self, analytics: SignatureAnalytics) -> SignatureAnalytics:
        async with self._session() as session:
            await session.merge(
                SignatureAnalyticsModel(
                    signature_id=analytics.signature_id,
                    total_matches=analytics.total_matches,
                    accurate_matches=analytics.accurate_matches,
                    accuracy=analytics.accuracy,
                    average_confidence=analytics.average_confidence,
                    usage_frequency=analytics.usage_frequency,
                    last_used=analytics.last_used,
                    positive_feedback=analytics.user_feedback.positive,
                    negative_feedback=analytics.user_feedback.negative,
                )
            )
        return analytics

    async def reset(self) -> None:
        async with self._session() as session:
            await session.execute(delete(AssignmentModel))
            await session.execute(delete(SignatureAnalyticsModel))
            await session.execute(delete(SignatureModel))
            await session.execute(delete(EquipmentModel))
