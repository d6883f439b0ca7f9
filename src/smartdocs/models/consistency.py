"""
Cross-document consistency models: conflicts, relationships, health checks.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field

from smartdocs.models.document import new_id, utcnow


class ConflictType(str, Enum):
    INTERNAL = "internal"
    CROSS_DOCUMENT = "cross_document"
    VALIDATION = "validation"
    LOGICAL = "logical"


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class ConflictStatus(str, Enum):
    OPEN = "open"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


class RelationshipType(str, Enum):
    SAME_PARTY = "same_party"
    RELATED_TRANSACTION = "related_transaction"
    DEPENDENT = "dependent"
    COMPLEMENTARY = "complementary"
    CONFLICTING = "conflicting"


class HealthStatus(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    NEEDS_ATTENTION = "needs_attention"
    CRITICAL = "critical"


class Conflict(BaseModel):
    """A detected inconsistency within one document or across documents."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=new_id)
    document_id: str
    conflict_type: ConflictType
    severity: Severity
    field1: str
    field2: str | None = None
    value1: str | None = None
    value2: str | None = None
    description: str
    suggestion: str
    related_document_id: str | None = None
    status: ConflictStatus = ConflictStatus.OPEN
    detected_at: datetime = Field(default_factory=utcnow)
    resolved_at: datetime | None = None


class ConflictReport(BaseModel):
    """Conflicts found for a document. Counts always follow the list."""

    document_id: str
    conflicts: list[Conflict] = Field(default_factory=list)
    consistency_score: int = Field(default=100, ge=0, le=100)
    recommendations: list[str] = Field(default_factory=list)
    used_fallback: bool = False

    @computed_field
    @property
    def conflict_count(self) -> int:
        return len(self.conflicts)

    @computed_field
    @property
    def has_conflicts(self) -> bool:
        return self.conflict_count > 0


class Relationship(BaseModel):
    """An inferred connection between two documents."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=new_id)
    source_document_id: str
    related_document_id: str
    related_document_type: str | None = None
    relationship_type: RelationshipType
    strength: float = Field(default=0.5, ge=0, le=1)
    shared_entities: list[str] = Field(default_factory=list)
    description: str = ""
    detected_at: datetime = Field(default_factory=utcnow)


class CrossDocumentSuggestion(BaseModel):
    """A proposal to propagate a value into a related document."""

    target_document_id: str
    target_field_name: str
    suggested_value: str
    source_field_name: str | None = None
    reasoning: str
    confidence: float = Field(default=0.5, ge=0, le=1)
    auto_apply: bool = False


class RelationshipReport(BaseModel):
    """Relationships and propagation suggestions for a document."""

    document_id: str
    relationships: list[Relationship] = Field(default_factory=list)
    suggestions: list[CrossDocumentSuggestion] = Field(default_factory=list)
    insights: list[str] = Field(default_factory=list)
    potential_issues: list[dict[str, Any]] = Field(default_factory=list)
    used_fallback: bool = False

    @computed_field
    @property
    def relationship_count(self) -> int:
        return len(self.relationships)


class HealthScore(BaseModel):
    """Composite readiness score for a document."""

    overall_score: int = Field(ge=0, le=100)
    completeness_score: int = Field(ge=0, le=100)
    consistency_score: int = Field(ge=0, le=100)
    risk_score: int = Field(ge=0, le=100)
    issues: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    status: HealthStatus


class HealthCheck(HealthScore):
    """A persisted health score."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=new_id)
    document_id: str
    source: str = "skill"
    checked_at: datetime = Field(default_factory=utcnow)


HEALTH_BUCKETS: list[tuple[int, HealthStatus]] = [
    (90, HealthStatus.EXCELLENT),
    (75, HealthStatus.GOOD),
    (60, HealthStatus.FAIR),
    (40, HealthStatus.NEEDS_ATTENTION),
]


def status_for_score(score: float) -> HealthStatus:
    """Map an overall score to its health bucket."""
    for threshold, status in HEALTH_BUCKETS:
        if score >= threshold:
            return status
    return HealthStatus.CRITICAL


# Field-name fragments that mark a value as legally significant. Values for
# these fields are never propagated automatically.
CRITICAL_FIELD_TERMS = (
    "name",
    "party",
    "parties",
    "signat",
    "amount",
    "price",
    "fee",
    "valuation",
    "cap",
    "discount",
    "salary",
    "share",
    "equity",
    "date",
    "term",
    "jurisdiction",
    "governing",
)

AUTO_APPLY_THRESHOLD = 0.9


def is_critical_field(field_name: str) -> bool:
    name = field_name.lower()
    return any(term in name for term in CRITICAL_FIELD_TERMS)


def auto_apply_allowed(
    confidence: float,
    field_name: str,
    threshold: float = AUTO_APPLY_THRESHOLD,
) -> bool:
    """A suggestion may auto-apply only above the threshold and on a non-critical field."""
    return confidence > threshold and not is_critical_field(field_name)
