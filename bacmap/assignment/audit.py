"""Bounded in-memory audit trail of assignment decisions."""

from __future__ import annotations

import threading
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from bacmap.errors import InputValidationError
from bacmap.models import utcnow


class AuditAction(str, Enum):
    ASSIGN = "assign"
    ROLLBACK = "rollback"
    FEEDBACK = "feedback"


@dataclass(slots=True, frozen=True)
class AuditEntry:
    equipment_id: str
    signature_id: str
    action: AuditAction
    confidence: float
    reason: str
    user_id: str | None = None
    timestamp: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


class AuditLog:
    """Most-recent-N audit entries, oldest first."""

    def __init__(self, max_entries: int = 1000) -> None:
        self._entries: deque[AuditEntry] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def append(self, entry: AuditEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def entries(
        self,
        equipment_id: str | None = None,
        action: AuditAction | str | None = None,
        limit: int | None = None,
    ) -> list[AuditEntry]:
        """Filtered entries in chronological order.

        Args:
            equipment_id: Only entries for this equipment
            action: Only entries with this action
            limit: Keep only the most recent N matching entries

        Returns:
            Matching entries, oldest first

        Raises:
            InputValidationError: If action is not a known audit action
        """
        try:
            wanted = AuditAction(action) if action is not None else None
        except ValueError as e:
            raise InputValidationError(f"Unknown audit action: {action}") from e
        with self._lock:
            selected = [
                e
                for e in self._entries
                if (equipment_id is None or e.equipment_id == equipment_id)
                and (wanted is None or e.action == wanted)
            ]
        if limit is not None:
            selected = selected[-limit:] if limit > 0 else []
        return selected

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
