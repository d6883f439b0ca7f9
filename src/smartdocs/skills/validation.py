"""
Validation skills: compliance review, conflict detection and health scoring.
"""

from typing import Annotated, Any

from pydantic import BeforeValidator, Field, StrictBool, model_validator

from smartdocs.models.consistency import (
    ConflictType,
    HealthStatus,
    Severity,
    status_for_score,
)
from smartdocs.models.task import SkillCategory, TaskType
from smartdocs.skills.base import Skill, SkillConfig
from smartdocs.skills.schema import (
    NonEmptyStr,
    OptionalText,
    Score,
    SkillInput,
    SkillSchema,
    StringList,
    filtered_list,
    lenient_enum,
)


class PlaceholderSnapshot(SkillInput):
    field_name: str
    field_type: str = "text"
    filled_value: str | None = None


class RelatedDocument(SkillInput):
    document_id: str
    document_type: str | None = None
    placeholders: list[PlaceholderSnapshot] = Field(default_factory=list)


def format_fields(placeholders: list[PlaceholderSnapshot]) -> str:
    if not placeholders:
        return "  (none)"
    return "\n".join(
        f"  - {p.field_name} ({p.field_type}): {p.filled_value or '[empty]'}"
        for p in placeholders
    )


# =============================================================================
# ComplianceValidator
# =============================================================================


class ComplianceInput(SkillInput):
    document_id: NonEmptyStr
    document_type: NonEmptyStr
    placeholders: list[PlaceholderSnapshot]


class ComplianceIssue(SkillSchema):
    severity: lenient_enum(Severity, Severity.INFO)
    field: str | None = None
    issue: NonEmptyStr
    suggestion: NonEmptyStr


class ComplianceResult(SkillSchema):
    is_valid: StrictBool
    overall_score: Score
    issues: filtered_list(ComplianceIssue)
    summary: str


def _compliance_prompt(data: ComplianceInput) -> str:
    return f"""Review this {data.document_type} for completeness and compliance.

Fields:
{format_fields(data.placeholders)}

Return JSON: {{"isValid": bool, "overallScore": 0-100,
"issues": [{{"severity": "critical|warning|info", "field": str, "issue": str,
"suggestion": str}}], "summary": str}}"""


COMPLIANCE_VALIDATOR = Skill(
    config=SkillConfig(
        name="ComplianceValidator",
        category=SkillCategory.VALIDATOR,
        task_type=TaskType.CHECK_COMPLIANCE,
        instructions=(
            "You review filled legal documents for missing required values, malformed "
            "values (dates, amounts, emails) and common drafting problems. Report each "
            "problem with a severity and an actionable suggestion. Respond only with "
            "valid JSON."
        ),
        temperature=0.2,
        max_tokens=1500,
    ),
    input_model=ComplianceInput,
    build_prompt=_compliance_prompt,
    output_schema=ComplianceResult,
    fallback=lambda _: {
        "isValid": False,
        "overallScore": 0,
        "issues": [
            {
                "severity": "critical",
                "field": None,
                "issue": "Validation system error",
                "suggestion": "Please retry validation or review document manually",
            }
        ],
        "summary": "Unable to complete validation due to system error",
    },
)

# =============================================================================
# ConflictDetector
# =============================================================================


class ConflictInput(SkillInput):
    document_id: NonEmptyStr
    document_type: str | None = None
    placeholders: list[PlaceholderSnapshot]
    related_documents: list[RelatedDocument] = Field(default_factory=list)


class DetectedConflict(SkillSchema):
    conflict_type: lenient_enum(ConflictType, ConflictType.INTERNAL) = Field(alias="type")
    severity: lenient_enum(Severity, Severity.INFO)
    field1: NonEmptyStr
    field2: OptionalText = None
    value1: OptionalText = None
    value2: OptionalText = None
    description: NonEmptyStr
    suggestion: NonEmptyStr
    related_document_id: OptionalText = None


class ConflictAnalysis(SkillSchema):
    """Conflict detector output. Counts are recomputed from the filtered list."""

    has_conflicts: bool = False
    conflict_count: int = 0
    conflicts: filtered_list(DetectedConflict)
    consistency_score: Score
    recommendations: StringList = Field(default_factory=list)

    @model_validator(mode="after")
    def recompute_counts(self) -> "ConflictAnalysis":
        self.conflict_count = len(self.conflicts)
        self.has_conflicts = self.conflict_count > 0
        return self


def _conflict_prompt(data: ConflictInput) -> str:
    related = "\n\n".join(
        f"Related document {d.document_id} ({d.document_type or 'unknown type'}):\n"
        f"{format_fields(d.placeholders)}"
        for d in data.related_documents
    ) or "(none)"
    return f"""Check this {data.document_type or 'document'} for conflicts.

Fields of document {data.document_id}:
{format_fields(data.placeholders)}

Other documents of the same user:
{related}

Look for contradictory values, illogical date ordering, inconsistent formatting
and values that differ from the same field in related documents.

Return JSON: {{"hasConflicts": bool, "conflictCount": int,
"conflicts": [{{"type": "internal|cross_document|validation|logical",
"severity": "critical|warning|info", "field1", "field2", "value1", "value2",
"description", "suggestion", "relatedDocumentId"}}],
"consistencyScore": 0-100, "recommendations": [str]}}"""


CONFLICT_DETECTOR = Skill(
    config=SkillConfig(
        name="ConflictDetector",
        category=SkillCategory.VALIDATOR,
        task_type=TaskType.DETECT_CONFLICTS,
        instructions=(
            "You detect inconsistencies in legal documents, within one document and "
            "across a user's related documents. Be specific about the fields involved "
            "and give an actionable suggestion for each conflict. Respond only with "
            "valid JSON."
        ),
        temperature=0.2,
        max_tokens=2500,
    ),
    input_model=ConflictInput,
    build_prompt=_conflict_prompt,
    output_schema=ConflictAnalysis,
    fallback=lambda _: {
        "hasConflicts": False,
        "conflictCount": 0,
        "conflicts": [],
        "consistencyScore": 50,
        "recommendations": ["Conflict detection failed - please review document manually"],
    },
)

# =============================================================================
# HealthScoreCalculator
# =============================================================================


class ReportedIssue(SkillInput):
    severity: Severity = Severity.INFO
    issue: str = ""


class HealthInput(SkillInput):
    document_id: NonEmptyStr
    document_type: str | None = None
    total_placeholders: int = Field(ge=0)
    filled_placeholders: int = Field(ge=0)
    validation_issues: list[ReportedIssue] = Field(default_factory=list)
    conflict_count: int = Field(default=0, ge=0)


def _status_or_none(v: Any) -> HealthStatus | None:
    try:
        return HealthStatus(v)
    except (ValueError, TypeError):
        return None


class HealthAssessment(SkillSchema):
    """Health scores. A missing or unknown status is derived from overall_score."""

    overall_score: Score
    completeness_score: Score
    consistency_score: Score
    risk_score: Score
    issues: StringList
    recommendations: StringList
    status: Annotated[HealthStatus | None, BeforeValidator(_status_or_none)] = None

    @model_validator(mode="after")
    def derive_status(self) -> "HealthAssessment":
        if self.status is None:
            self.status = status_for_score(self.overall_score)
        return self


def _health_prompt(data: HealthInput) -> str:
    counts = {s: 0 for s in Severity}
    for item in data.validation_issues:
        counts[item.severity] += 1
    return f"""Score the readiness of {data.document_type or 'this document'} ({data.document_id}).

Placeholders: {data.filled_placeholders} of {data.total_placeholders} filled
Validation issues: {counts[Severity.CRITICAL]} critical, {counts[Severity.WARNING]} warning, {counts[Severity.INFO]} info
Open conflicts: {data.conflict_count}

Return JSON: {{"overallScore", "completenessScore", "consistencyScore", "riskScore"
(all 0-100), "issues": [str], "recommendations": [str],
"status": "excellent|good|fair|needs_attention|critical"}}"""


HEALTH_SCORE_CALCULATOR = Skill(
    config=SkillConfig(
        name="HealthScoreCalculator",
        category=SkillCategory.ANALYZER,
        task_type=TaskType.CALCULATE_HEALTH,
        instructions=(
            "You score legal document readiness. Completeness is the share of filled "
            "fields. Consistency starts at 100 and loses 20 per critical issue, 5 per "
            "warning and 1 per info. Risk adds 30 per critical issue, 10 per warning and "
            "15 per conflict, capped at 100. Overall weighs completeness 40%, consistency "
            "35% and inverse risk 25%. Respond only with valid JSON."
        ),
        temperature=0.1,
        max_tokens=800,
    ),
    input_model=HealthInput,
    build_prompt=_health_prompt,
    output_schema=HealthAssessment,
    fallback=lambda _: {
        "overallScore": 0,
        "completenessScore": 0,
        "consistencyScore": 0,
        "riskScore": 0,
        "issues": ["Health score calculation failed"],
        "recommendations": ["Please retry the health check or review the document manually"],
        "status": "critical",
    },
)
