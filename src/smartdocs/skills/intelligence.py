"""
Portfolio-level skills: document relationship discovery and business insights.
"""

from enum import Enum
from typing import Any

from pydantic import Field, model_validator

from smartdocs.models.consistency import RelationshipType, Severity, auto_apply_allowed
from smartdocs.models.task import SkillCategory, TaskType
from smartdocs.skills.base import Skill, SkillConfig
from smartdocs.skills.schema import (
    Confidence,
    Metadata,
    NonEmptyStr,
    OptionalText,
    Score,
    SkillInput,
    SkillSchema,
    StringList,
    Text,
    WholeNumber,
    filtered_list,
    lenient_enum,
)
from smartdocs.skills.validation import PlaceholderSnapshot, format_fields

# =============================================================================
# MultiDocIntelligence
# =============================================================================


class PortfolioDocument(SkillInput):
    document_id: str
    document_type: str | None = None
    status: str | None = None
    placeholders: list[PlaceholderSnapshot] = Field(default_factory=list)


class MultiDocInput(SkillInput):
    document_id: NonEmptyStr
    document_type: NonEmptyStr
    placeholders: list[PlaceholderSnapshot]
    other_documents: list[PortfolioDocument] = Field(default_factory=list)


class DetectedRelationship(SkillSchema):
    related_document_id: NonEmptyStr
    related_document_type: NonEmptyStr
    relationship_type: lenient_enum(RelationshipType, RelationshipType.RELATED_TRANSACTION)
    strength: Confidence = 0.5
    shared_entities: StringList = Field(default_factory=list)
    description: NonEmptyStr


class PropagationSuggestion(SkillSchema):
    target_document_id: NonEmptyStr
    target_field_name: NonEmptyStr
    suggested_value: Text
    source_field_name: OptionalText = None
    reasoning: NonEmptyStr
    confidence: Confidence = 0.5
    auto_apply: bool = False

    @model_validator(mode="after")
    def enforce_auto_apply(self) -> "PropagationSuggestion":
        self.auto_apply = self.auto_apply and auto_apply_allowed(
            self.confidence, self.target_field_name
        )
        return self


class PotentialIssue(SkillSchema):
    severity: lenient_enum(Severity, Severity.INFO)
    description: NonEmptyStr
    affected_documents: list[str]


class MultiDocAnalysis(SkillSchema):
    has_relationships: bool = False
    relationship_count: int = 0
    relationships: filtered_list(DetectedRelationship)
    suggestions: filtered_list(PropagationSuggestion) = Field(default_factory=list)
    insights: StringList = Field(default_factory=list)
    potential_issues: filtered_list(PotentialIssue) = Field(default_factory=list)

    @model_validator(mode="after")
    def recompute_counts(self) -> "MultiDocAnalysis":
        self.relationship_count = len(self.relationships)
        self.has_relationships = self.relationship_count > 0
        return self


def _empty_multidoc(insight: str) -> dict[str, Any]:
    return {
        "hasRelationships": False,
        "relationshipCount": 0,
        "relationships": [],
        "suggestions": [],
        "insights": [insight],
        "potentialIssues": [],
    }


def _no_other_documents(data: MultiDocInput) -> dict | None:
    if data.other_documents:
        return None
    return _empty_multidoc("No other documents available for comparison")


def _multidoc_prompt(data: MultiDocInput) -> str:
    others = "\n\n".join(
        f"Document {d.document_id} ({d.document_type or 'unknown'}, {d.status or 'unknown'}):\n"
        f"{format_fields(d.placeholders)}"
        for d in data.other_documents
    )
    return f"""Current document {data.document_id} ({data.document_type}):
{format_fields(data.placeholders)}

Other documents of this user:
{others}

Find relationships between the current document and the others, values that
should be propagated, and issues that span documents.

Return JSON: {{"hasRelationships", "relationshipCount",
"relationships": [{{"relatedDocumentId", "relatedDocumentType",
"relationshipType": "same_party|related_transaction|dependent|complementary|conflicting",
"strength": 0-1, "sharedEntities": [str], "description"}}],
"suggestions": [{{"targetDocumentId", "targetFieldName", "suggestedValue",
"sourceFieldName", "reasoning", "confidence": 0-1, "autoApply": bool}}],
"insights": [str], "potentialIssues": [{{"severity", "description", "affectedDocuments"}}]}}"""


MULTI_DOC_INTELLIGENCE = Skill(
    config=SkillConfig(
        name="MultiDocIntelligence",
        category=SkillCategory.RECOMMENDER,
        task_type=TaskType.LINK_DOCUMENTS,
        instructions=(
            "You analyze a user's portfolio of legal documents. Identify documents that "
            "share parties or belong to the same transaction, suggest values to carry "
            "between them and flag cross-document issues. Only mark autoApply when "
            "confidence is above 0.9 and the field is not legally significant. Respond "
            "only with valid JSON."
        ),
        temperature=0.3,
        max_tokens=3000,
    ),
    input_model=MultiDocInput,
    build_prompt=_multidoc_prompt,
    output_schema=MultiDocAnalysis,
    fallback=lambda _: _empty_multidoc("Multi-document analysis failed"),
    short_circuit=_no_other_documents,
)

# =============================================================================
# InsightsEngine
# =============================================================================


class PatternType(str, Enum):
    TREND = "trend"
    ANOMALY = "anomaly"
    CORRELATION = "correlation"
    FREQUENCY = "frequency"


class Level(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RecommendationCategory(str, Enum):
    EFFICIENCY = "efficiency"
    COMPLIANCE = "compliance"
    PROCESS = "process"
    DATA_QUALITY = "data_quality"


class InsightsDocument(SkillInput):
    document_id: str
    document_type: str | None = None
    status: str
    created_at: str | None = None
    completed_at: str | None = None
    placeholders: list[PlaceholderSnapshot] = Field(default_factory=list)
    health_score: float | None = None


class InsightsInput(SkillInput):
    user_id: NonEmptyStr
    documents: list[InsightsDocument]
    time_range_start: str | None = None
    time_range_end: str | None = None


def _score_or_zero(v: Any) -> Any:
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        return 0
    return v


class InsightsSummary(SkillSchema):
    total_documents: WholeNumber
    completed_documents: WholeNumber
    average_health_score: Score = 0
    most_common_document_type: str = "N/A"
    documents_by_type: dict[str, Any]
    documents_by_status: dict[str, Any]

    @model_validator(mode="before")
    @classmethod
    def default_health_score(cls, data: Any) -> Any:
        if isinstance(data, dict) and "averageHealthScore" in data:
            data = {**data, "averageHealthScore": _score_or_zero(data["averageHealthScore"])}
        return data


class Pattern(SkillSchema):
    pattern_type: lenient_enum(PatternType, PatternType.TREND) = Field(alias="type")
    title: NonEmptyStr
    description: NonEmptyStr
    significance: lenient_enum(Level, Level.MEDIUM)
    affected_documents: StringList = Field(default_factory=list)
    data_points: Metadata | None = None


class Recommendation(SkillSchema):
    category: lenient_enum(RecommendationCategory, RecommendationCategory.PROCESS)
    priority: lenient_enum(Level, Level.MEDIUM)
    recommendation: NonEmptyStr
    reasoning: NonEmptyStr
    expected_impact: NonEmptyStr


class Risk(SkillSchema):
    severity: lenient_enum(Severity, Severity.INFO)
    risk_type: NonEmptyStr
    description: NonEmptyStr
    affected_documents: StringList = Field(default_factory=list)
    mitigation: NonEmptyStr


class Opportunity(SkillSchema):
    opportunity_type: NonEmptyStr
    description: NonEmptyStr
    potential_value: NonEmptyStr
    action_items: StringList = Field(default_factory=list)


class InsightsReport(SkillSchema):
    summary: InsightsSummary
    patterns: filtered_list(Pattern)
    recommendations: filtered_list(Recommendation)
    risks: filtered_list(Risk)
    opportunities: filtered_list(Opportunity)
    metrics: dict[str, Any]


def minimal_insights(_data: Any = None) -> dict[str, Any]:
    return {
        "summary": {
            "totalDocuments": 0,
            "completedDocuments": 0,
            "averageHealthScore": 0,
            "mostCommonDocumentType": "N/A",
            "documentsByType": {},
            "documentsByStatus": {},
        },
        "patterns": [],
        "recommendations": [
            {
                "category": "process",
                "priority": "low",
                "recommendation": "Start creating documents to enable insights",
                "reasoning": "Insufficient data for pattern analysis",
                "expectedImpact": "Insights will improve with more documents",
            }
        ],
        "risks": [],
        "opportunities": [],
        "metrics": {
            "averageCompletionTime": 0,
            "documentVelocity": 0,
            "errorRate": 0,
            "automationRate": 0,
        },
    }


def _no_documents(data: InsightsInput) -> dict | None:
    return None if data.documents else minimal_insights()


def _insights_prompt(data: InsightsInput) -> str:
    rows = []
    for d in data.documents:
        filled = sum(1 for p in d.placeholders if p.filled_value)
        rows.append(
            f"- {d.document_id}: {d.document_type or 'unknown'}, status {d.status}, "
            f"{filled}/{len(d.placeholders)} fields filled, "
            f"health {d.health_score if d.health_score is not None else 'n/a'}, "
            f"created {d.created_at or 'n/a'}, completed {d.completed_at or 'n/a'}"
        )
    window = ""
    if data.time_range_start or data.time_range_end:
        window = f"\nTime range: {data.time_range_start or '...'} to {data.time_range_end or '...'}"
    return f"""Portfolio of user {data.user_id}: {len(data.documents)} documents.{window}

{chr(10).join(rows)}

Return JSON with summary, patterns, recommendations, risks, opportunities and metrics."""


INSIGHTS_ENGINE = Skill(
    config=SkillConfig(
        name="InsightsEngine",
        category=SkillCategory.ANALYZER,
        task_type=TaskType.ANALYZE_DOCUMENT,
        instructions=(
            "You are a legal operations analyst. From a user's document portfolio derive "
            "a summary, patterns (trend, anomaly, correlation, frequency), prioritized "
            "recommendations, risks with mitigations, opportunities and process metrics. "
            "Respond only with valid JSON."
        ),
        temperature=0.4,
        max_tokens=3500,
    ),
    input_model=InsightsInput,
    build_prompt=_insights_prompt,
    output_schema=InsightsReport,
    fallback=minimal_insights,
    short_circuit=_no_documents,
)
