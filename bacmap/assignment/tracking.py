"""Error-rate tracking and the verified-signature pool."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime

from bacmap.models import Signature, SignatureAnalytics, utcnow


def verification_score(analytics: SignatureAnalytics) -> float:
    """accuracy 40% + usage (x10, capped at 100) 30% + positive-feedback ratio 30%.

    The feedback component is a neutral 50 before any feedback exists.
    """
    accuracy_score = analytics.accuracy * 100
    usage_score = min(analytics.usage_frequency * 10, 100)
    feedback = analytics.user_feedback
    feedback_score = feedback.positive / feedback.total * 100 if feedback.total else 50.0
    return accuracy_score * 0.4 + usage_score * 0.3 + feedback_score * 0.3


@dataclass(slots=True, frozen=True)
class ErrorRate:
    total: int = 0
    errors: int = 0

    @property
    def rate(self) -> float:
        """Error rate in percent."""
        return self.errors / self.total * 100 if self.total else 0.0


class ErrorRateTracker:
    """Attempts and errors per signature."""

    def __init__(self) -> None:
        self._rates: dict[str, ErrorRate] = {}
        self._lock = threading.Lock()

    def record(self, signature_id: str, is_error: bool) -> ErrorRate:
        with self._lock:
            current = self._rates.get(signature_id, ErrorRate())
            updated = ErrorRate(
                total=current.total + 1, errors=current.errors + (1 if is_error else 0)
            )
            self._rates[signature_id] = updated
            return updated

    def get(self, signature_id: str) -> ErrorRate:
        with self._lock:
            return self._rates.get(signature_id, ErrorRate())

    def snapshot(self) -> dict[str, ErrorRate]:
        with self._lock:
            return dict(self._rates)

    def global_rate(self) -> float:
        with self._lock:
            total = sum(r.total for r in self._rates.values())
            errors = sum(r.errors for r in self._rates.values())
        return errors / total * 100 if total else 0.0

    def clear(self) -> None:
        with self._lock:
            self._rates.clear()


@dataclass(slots=True)
class VerifiedSignature:
    signature: Signature
    verification_score: float
    success_rate: float
    user_confirmations: int = 0
    last_verified: datetime = field(default_factory=utcnow)


class VerifiedSignaturePool:
    """Signatures trusted for unattended assignment, keyed by signature id."""

    def __init__(self) -> None:
        self._entries: dict[str, VerifiedSignature] = {}
        self._lock = threading.Lock()

    def get(self, signature_id: str) -> VerifiedSignature | None:
        with self._lock:
            return self._entries.get(signature_id)

    def set(self, entry: VerifiedSignature) -> None:
        with self._lock:
            self._entries[entry.signature.id] = entry

    def remove(self, signature_id: str) -> bool:
        with self._lock:
            return self._entries.pop(signature_id, None) is not None

    def refresh(self, signature_id: str, analytics: SignatureAnalytics) -> VerifiedSignature | None:
        """Recompute an existing entry from fresh analytics; absent entries stay absent."""
        with self._lock:
            entry = self._entries.get(signature_id)
            if entry is None:
                return None
            entry.success_rate = analytics.accuracy
            entry.verification_score = verification_score(analytics)
            entry.user_confirmations = analytics.user_feedback.positive
            entry.last_verified = utcnow()
            return entry

    def qualified(self, min_success_rate: float, min_confirmations: int) -> list[VerifiedSignature]:
        """Entries clearing both bars, best verification score first."""
        with self._lock:
            entries = [
                e
                for e in self._entries.values()
                if e.success_rate >= min_success_rate and e.user_confirmations >= min_confirmations
            ]
        return sorted(entries, key=lambda e: e.verification_score, reverse=True)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, signature_id: object) -> bool:
        with self._lock:
            return signature_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
