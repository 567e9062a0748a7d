"""bacmap Pydantic models for type-safe data validation.

Points, equipment and signatures arrive from the ingestion layer already
parsed; the normalization engine fills in the derived point fields and the
orchestrator produces AutoAssignmentResult records.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def clamp_confidence(value: float) -> float:
    """Clamp a confidence value to the 0-100 range."""
    return max(0.0, min(100.0, float(value)))


class PointKind(str, Enum):
    """Data kind of a BACnet point value."""

    NUMBER = "Number"
    BOOL = "Bool"
    STR = "Str"


class NormalizationMethod(str, Enum):
    PATTERN_MATCH = "pattern-match"
    VENDOR_SPECIFIC = "vendor-specific"
    MANUAL_OVERRIDE = "manual-override"


class SignatureSource(str, Enum):
    AUTO_GENERATED = "auto-generated"
    USER_VALIDATED = "user-validated"
    USER_CREATED = "user-created"


class AssignmentStatus(str, Enum):
    """Lifecycle of an (equipment, signature) auto-assignment."""

    PENDING = "pending"
    ASSIGNED = "assigned"
    ROLLED_BACK = "rolled_back"


class DeviceContext(BaseModel):
    is_vfd: bool = False
    is_controller: bool = False
    is_monitoring: bool = False
    communication_protocol: str = "BACnet"


class SemanticMetadata(BaseModel):
    vendor_specific: bool = False
    equipment_specific: bool = False
    device_context: DeviceContext = Field(default_factory=DeviceContext)
    reasoning: list[str] = Field(default_factory=list)


class Point(BaseModel):
    """One sensed or controlled value on a piece of equipment."""

    id: str
    label: str  # raw BACnet display name ("dis")
    current_value: str = ""  # BACnet present-value reference
    kind: PointKind = PointKind.NUMBER
    unit: str | None = None
    writable: bool = False
    description: str = ""

    # Set by the normalization engine
    canonical_name: str | None = None
    tags: list[str] = Field(default_factory=list)
    normalization_confidence: float | None = None
    semantic_metadata: SemanticMetadata | None = None

    @field_validator("normalization_confidence")
    @classmethod
    def validate_confidence(cls, v: float | None) -> float | None:
        return None if v is None else clamp_confidence(v)


class NormalizationSummary(BaseModel):
    total_points: int = 0
    normalized_points: int = 0
    average_confidence: float = 0.0


class Equipment(BaseModel):
    """Physical device instance discovered on a connector."""

    id: str
    connector_id: str = ""
    equipment_type: str
    vendor_name: str | None = None
    model_name: str | None = None
    points: list[Point] = Field(default_factory=list)
    normalization_summary: NormalizationSummary | None = None


class PointTemplate(BaseModel):
    """Expected point inside a signature."""

    label: str
    kind: PointKind = PointKind.NUMBER
    unit: str | None = None


class DetailedConfidence(BaseModel):
    pattern_match: float = 0.0
    vendor_match: float = 0.0
    equipment_type_match: float = 0.0
    historical_accuracy: float = 0.0


class LearningData(BaseModel):
    user_confirmations: int = 0
    user_rejections: int = 0
    last_updated: datetime = Field(default_factory=utcnow)
    accuracy_trend: list[float] = Field(default_factory=list)


class Signature(BaseModel):
    """Reusable template describing the expected point set of an equipment class."""

    id: str
    name: str
    equipment_type: str
    point_signature: list[PointTemplate] = Field(default_factory=list)
    source: SignatureSource = SignatureSource.USER_CREATED
    confidence: float = 0.0
    matching_equipment_ids: list[str] = Field(default_factory=list)
    detailed_confidence: DetailedConfidence | None = None
    learning_data: LearningData | None = None

    @field_validator("confidence")
    @classmethod
    def validate_confidence(cls, v: float) -> float:
        return clamp_confidence(v)


class ConfidenceFactors(BaseModel):
    """Eight-factor similarity vector for one (equipment, signature) pair."""

    point_name_similarity: float = Field(default=0.0, ge=0.0, le=100.0)
    point_count_match: float = Field(default=0.0, ge=0.0, le=100.0)
    point_type_match: float = Field(default=0.0, ge=0.0, le=100.0)
    vendor_model_match: float = Field(default=0.0, ge=0.0, le=100.0)
    equipment_type_match: float = Field(default=0.0, ge=0.0, le=100.0)
    historical_accuracy: float = Field(default=0.0, ge=0.0, le=100.0)
    semantic_similarity: float = Field(default=0.0, ge=0.0, le=100.0)
    structural_consistency: float = Field(default=0.0, ge=0.0, le=100.0)

    def as_dict(self) -> dict[str, float]:
        return self.model_dump()


FACTOR_NAMES: tuple[str, ...] = tuple(ConfidenceFactors.model_fields)


class SignatureMatchResult(BaseModel):
    signature_id: str
    confidence: float
    factors: ConfidenceFactors
    reasoning: list[str] = Field(default_factory=list)
    auto_assignment_eligible: bool = False


class UserFeedback(BaseModel):
    confirmed: bool
    user_id: str | None = None
    timestamp: datetime = Field(default_factory=utcnow)
    notes: str | None = None


class AssignmentMetadata(BaseModel):
    factors: ConfidenceFactors | None = None
    verification_score: float | None = None
    equipment_type: str | None = None
    vendor_name: str | None = None
    rollback_reason: str | None = None
    rollback_timestamp: datetime | None = None
    rollback_user_id: str | None = None


class AutoAssignmentResult(BaseModel):
    """Outcome of matching one equipment to one signature."""

    equipment_id: str
    signature_id: str
    confidence: float
    reasoning: list[str] = Field(default_factory=list)
    status: AssignmentStatus = AssignmentStatus.PENDING
    timestamp: datetime = Field(default_factory=utcnow)
    auto_assigned: bool = False
    requires_review: bool = True
    user_feedback: UserFeedback | None = None
    metadata: AssignmentMetadata = Field(default_factory=AssignmentMetadata)

    @field_validator("confidence")
    @classmethod
    def validate_confidence(cls, v: float) -> float:
        return clamp_confidence(v)

    @property
    def key(self) -> tuple[str, str]:
        return (self.equipment_id, self.signature_id)


class FeedbackCounts(BaseModel):
    positive: int = 0
    negative: int = 0

    @property
    def total(self) -> int:
        return self.positive + self.negative


class SignatureAnalytics(BaseModel):
    """Running usage and accuracy aggregate for one signature."""

    signature_id: str
    total_matches: int = 0
    accurate_matches: int = 0
    accuracy: float = 0.0
    average_confidence: float = 0.0
    usage_frequency: int = 0
    last_used: datetime = Field(default_factory=utcnow)
    user_feedback: FeedbackCounts = Field(default_factory=FeedbackCounts)


class NormalizationResult(BaseModel):
    original_name: str
    canonical_name: str
    tags: list[str] = Field(default_factory=list)
    confidence: float = 0.0
    method: NormalizationMethod = NormalizationMethod.PATTERN_MATCH
    reasoning: list[str] = Field(default_factory=list)


class PointClassification(BaseModel):
    point_id: str
    classification: str = "unknown"  # sensor, setpoint, command, status, alarm, unknown
    sub_classification: str | None = None
    confidence: float = 0.0
    reasoning: list[str] = Field(default_factory=list)


class SkippedEquipment(BaseModel):
    equipment_id: str
    reason: str


class BatchSummary(BaseModel):
    total: int = 0
    assigned: int = 0
    skipped: int = 0
    average_confidence: float = 0.0


class BatchResult(BaseModel):
    """Outcome of a batch auto-assignment run."""

    assignments: list[AutoAssignmentResult] = Field(default_factory=list)
    skipped: list[SkippedEquipment] = Field(default_factory=list)
    summary: BatchSummary = Field(default_factory=BatchSummary)


class Recommendation(BaseModel):
    """Best eligible signature for an equipment, computed without side effects."""

    equipment_id: str
    signature_id: str | None = None
    signature_name: str | None = None
    confidence: float = 0.0
    reasoning: list[str] = Field(default_factory=list)
    high_confidence: bool = False
