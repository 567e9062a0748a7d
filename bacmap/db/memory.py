"""Dict-backed repository for tests, the CLI and single-process use."""

from __future__ import annotations

import asyncio

from bacmap.errors import NotFoundError
from bacmap.models import (
    AssignmentStatus,
    AutoAssignmentResult,
    Equipment,
    Signature,
    SignatureAnalytics,
    SignatureSource,
)


class InMemoryRepository:
    """In-memory implementation of the Repository protocol.

    Stored and returned models are deep copies, so callers can never mutate
    repository state without going through a save method.
    """

    def __init__(self) -> None:
        self._equipment: dict[str, Equipment] = {}
        self._signatures: dict[str, Signature] = {}
        self._assignments: dict[tuple[str, str], AutoAssignmentResult] = {}
        self._analytics: dict[str, SignatureAnalytics] = {}
        self._lock = asyncio.Lock()

    async def get_equipment(self, equipment_id: str) -> Equipment | None:
        equipment = self._equipment.get(equipment_id)
        return equipment.model_copy(deep=True) if equipment else None

    async def list_equipment(self) -> list[Equipment]:
        return [e.model_copy(deep=True) for e in self._equipment.values()]

    async def save_equipment(self, equipment: Equipment) -> Equipment:
        self._equipment[equipment.id] = equipment.model_copy(deep=True)
        return equipment

    async def get_signature(self, signature_id: str) -> Signature | None:
        signature = self._signatures.get(signature_id)
        return signature.model_copy(deep=True) if signature else None

    async def list_signatures(self) -> list[Signature]:
        return [s.model_copy(deep=True) for s in self._signatures.values()]

    async def save_signature(self, signature: Signature) -> Signature:
        async with self._lock:
            existing = self._signatures.get(signature.id)
            # Matching ids are owned by save_assignment; never taken from the caller
            matching = list(existing.matching_equipment_ids) if existing else []
            stored = signature.model_copy(
                update={"matching_equipment_ids": matching}, deep=True
            )
            self._signatures[signature.id] = stored
            return stored.model_copy(deep=True)

    async def update_signature(self, signature: Signature) -> Signature:
        if signature.id not in self._signatures:
            raise NotFoundError("Signature", signature.id)
        updated = signature.model_copy(update={"source": SignatureSource.USER_VALIDATED})
        return await self.save_signature(updated)

    async def delete_signature(self, signature_id: str) -> bool:
        async with self._lock:
            if self._signatures.pop(signature_id, None) is None:
                return False
            self._analytics.pop(signature_id, None)
            for key in [k for k in self._assignments if k[1] == signature_id]:
                del self._assignments[key]
            return True

    async def get_assignment(
        self, equipment_id: str, signature_id: str
    ) -> AutoAssignmentResult | None:
        result = self._assignments.get((equipment_id, signature_id))
        return result.model_copy(deep=True) if result else None

    async def list_assignments(
        self,
        equipment_id: str | None = None,
        signature_id: str | None = None,
        status: AssignmentStatus | None = None,
    ) -> list[AutoAssignmentResult]:
        results = [
            r
            for r in self._assignments.values()
            if (equipment_id is None or r.equipment_id == equipment_id)
            and (signature_id is None or r.signature_id == signature_id)
            and (status is None or r.status == status)
        ]
        results.sort(key=lambda r: r.timestamp)
        return [r.model_copy(deep=True) for r in results]

    async def save_assignment(self, result: AutoAssignmentResult) -> AutoAssignmentResult:
        async with self._lock:
            signature = self._signatures.get(result.signature_id)
            if signature is None:
                raise NotFoundError("Signature", result.signature_id)

            self._assignments[result.key] = result.model_copy(deep=True)

            matching = [i for i in signature.matching_equipment_ids if i != result.equipment_id]
            if result.status == AssignmentStatus.ASSIGNED:
                matching.append(result.equipment_id)
            self._signatures[signature.id] = signature.model_copy(
                update={"matching_equipment_ids": matching}
            )
            return result

    async def get_analytics(self, signature_id: str) -> SignatureAnalytics | None:
        analytics = self._analytics.get(signature_id)
        return analytics.model_copy(deep=True) if analytics else None

    async def list_analytics(self) -> list[SignatureAnalytics]:
        return [a.model_copy(deep=True) for a in self._analytics.values()]

    async def save_analytics(self, analytics: SignatureAnalytics) -> SignatureAnalytics:
        self._analytics[analytics.signature_id] = analytics.model_copy(deep=True)
        return analytics

    async def reset(self) -> None:
        async with self._lock:
            self._equipment.clear()
            self._signatures.clear()
            self._assignments.clear()
            self._analytics.clear()
