"""Repository protocol for equipment, signatures, assignments and analytics.

Implementations must keep ``Signature.matching_equipment_ids`` in sync with
the assignments they store: an equipment id is listed iff an ``assigned``
result exists for that (equipment, signature) pair. Deleting a signature
removes its analytics and every assignment that references it.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from bacmap.models import (
    AssignmentStatus,
    AutoAssignmentResult,
    Equipment,
    Signature,
    SignatureAnalytics,
)


@runtime_checkable
class Repository(Protocol):
    async def get_equipment(self, equipment_id: str) -> Equipment | None: ...

    async def list_equipment(self) -> list[Equipment]: ...

    async def save_equipment(self, equipment: Equipment) -> Equipment: ...

    async def get_signature(self, signature_id: str) -> Signature | None: ...

    async def list_signatures(self) -> list[Signature]: ...

    async def save_signature(self, signature: Signature) -> Signature:
        """Insert or replace a signature, returning the stored record.

        ``matching_equipment_ids`` on the argument is ignored: a new
        signature starts with none, an existing one keeps its stored list.
        """
        ...

    async def update_signature(self, signature: Signature) -> Signature:
        """Persist an edited signature; its source becomes ``user-validated``."""
        ...

    async def delete_signature(self, signature_id: str) -> bool: ...

    async def get_assignment(
        self, equipment_id: str, signature_id: str
    ) -> AutoAssignmentResult | None: ...

    async def list_assignments(
        self,
        equipment_id: str | None = None,
        signature_id: str | None = None,
        status: AssignmentStatus | None = None,
    ) -> list[AutoAssignmentResult]: ...

    async def save_assignment(self, result: AutoAssignmentResult) -> AutoAssignmentResult:
        """Insert or replace the result for its (equipment, signature) pair.

        Raises:
            NotFoundError: If the referenced signature does not exist
        """
        ...

    async def get_analytics(self, signature_id: str) -> SignatureAnalytics | None: ...

    async def list_analytics(self) -> list[SignatureAnalytics]: ...

    async def save_analytics(self, analytics: SignatureAnalytics) -> SignatureAnalytics: ...

    async def reset(self) -> None: ...
