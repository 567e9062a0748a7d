"""Auto-assignment of equipment to verified signatures."""

from bacmap.assignment.audit import AuditAction, AuditEntry, AuditLog
from bacmap.assignment.service import AutoAssignmentService
from bacmap.assignment.tracking import (
    ErrorRate,
    ErrorRateTracker,
    VerifiedSignature,
    VerifiedSignaturePool,
    verification_score,
)

__all__ = [
    "AuditAction",
    "AuditEntry",
    "AuditLog",
    "AutoAssignmentService",
    "ErrorRate",
    "ErrorRateTracker",
    "VerifiedSignature",
    "VerifiedSignaturePool",
    "verification_score",
]
