"""
Document understanding skills: classification, placeholder extraction and
template analysis.
"""

import math
from enum import Enum
from typing import Annotated, Any

from pydantic import BeforeValidator, Field, TypeAdapter

from smartdocs.models.document import FieldType
from smartdocs.models.task import SkillCategory, TaskType
from smartdocs.skills.base import Skill, SkillConfig
from smartdocs.skills.schema import (
    Confidence,
    Metadata,
    NonEmptyStr,
    Score,
    SkillInput,
    SkillSchema,
    StringList,
    WholeNumber,
    filtered_list,
    lenient_enum,
)

ANALYSIS_TEXT_LIMIT = 10000
EXTRACTION_TEXT_LIMIT = 15000
TEMPLATE_TEXT_LIMIT = 15000

# =============================================================================
# DocumentAnalyzer
# =============================================================================


class DocumentTextInput(SkillInput):
    document_id: NonEmptyStr
    text: NonEmptyStr


class DocumentAnalysis(SkillSchema):
    document_type: NonEmptyStr
    confidence: Confidence
    complexity: NonEmptyStr
    metadata: Metadata = Field(default_factory=dict)


def _analysis_prompt(data: DocumentTextInput) -> str:
    return f"""Classify this legal document.

Document text:
{data.text[:ANALYSIS_TEXT_LIMIT]}

Return JSON:
{{"documentType": "...", "confidence": 0.0-1.0, "complexity": "simple|moderate|complex",
  "metadata": {{"parties": [...], "jurisdiction": "...", "keyTerms": [...]}}}}"""


DOCUMENT_ANALYZER = Skill(
    config=SkillConfig(
        name="DocumentAnalyzer",
        category=SkillCategory.ANALYZER,
        task_type=TaskType.ANALYZE_DOCUMENT,
        instructions=(
            "You are a legal document classification expert. Identify the document "
            "type (e.g. SAFE, NDA, Employment Agreement, Stock Purchase Agreement), "
            "your confidence, the drafting complexity and key metadata such as parties "
            "and governing law. Respond only with valid JSON."
        ),
        temperature=0.3,
        max_tokens=1500,
    ),
    input_model=DocumentTextInput,
    build_prompt=_analysis_prompt,
    output_schema=DocumentAnalysis,
    fallback=lambda _: {
        "documentType": "Unknown",
        "confidence": 0.0,
        "complexity": "unknown",
        "metadata": {},
    },
)

# =============================================================================
# PlaceholderExtractor
# =============================================================================


class ExtractedPlaceholder(SkillSchema):
    field_name: NonEmptyStr
    field_type: lenient_enum(FieldType, FieldType.TEXT)
    original_text: NonEmptyStr
    position: WholeNumber = Field(ge=1)
    suggested_question: NonEmptyStr


PlaceholderList = TypeAdapter(filtered_list(ExtractedPlaceholder))


def _extraction_prompt(data: DocumentTextInput) -> str:
    return f"""Find every fillable field in this document.

Document text:
{data.text[:EXTRACTION_TEXT_LIMIT]}

Return a JSON array, in order of appearance, like:
[{{"fieldName": "company_name", "fieldType": "text", "originalText": "[COMPANY NAME]",
   "position": 1, "suggestedQuestion": "What is the company's legal name?"}}]"""


def _order_by_position(output: list[dict[str, Any]], _data: Any) -> list[dict[str, Any]]:
    return sorted(output, key=lambda p: p["position"])


PLACEHOLDER_EXTRACTOR = Skill(
    config=SkillConfig(
        name="PlaceholderExtractor",
        category=SkillCategory.EXTRACTOR,
        task_type=TaskType.EXTRACT_PLACEHOLDERS,
        instructions=(
            "You extract fillable placeholders from legal documents: bracketed markers, "
            "blank lines, and template variables. For each give a snake_case field name, "
            "a field type (text, date, currency, number, email, address), the exact "
            "marker text, its 1-based position and a question to ask the user. "
            "Respond only with a JSON array."
        ),
        temperature=0.2,
        max_tokens=2000,
    ),
    input_model=DocumentTextInput,
    build_prompt=_extraction_prompt,
    output_schema=PlaceholderList,
    fallback=lambda _: [],
    finalize=_order_by_position,
)

# =============================================================================
# TemplateAnalyzer
# =============================================================================


class Complexity(str, Enum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


def _fill_minutes(v: Any) -> Any:
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        raise ValueError("must be a number")
    return max(1, math.floor(v + 0.5))


class TemplateInput(SkillInput):
    template_id: NonEmptyStr
    text: NonEmptyStr
    company_name: str | None = None
    document_type: str | None = None


class TemplatePlaceholder(SkillSchema):
    field_name: NonEmptyStr
    field_type: lenient_enum(FieldType, FieldType.TEXT) = FieldType.TEXT
    description: str = ""
    required: bool = True
    example: str | None = None


class ExtractedEntity(SkillSchema):
    entity_type: NonEmptyStr = Field(alias="type")
    entity_value: NonEmptyStr = Field(alias="value")
    confidence: Confidence = 0.8


class TemplateAnalysis(SkillSchema):
    document_type: NonEmptyStr
    category: NonEmptyStr
    description: str
    complexity: lenient_enum(Complexity, Complexity.MODERATE) = Complexity.MODERATE
    estimated_fill_time: Annotated[int, BeforeValidator(_fill_minutes)]
    placeholders: filtered_list(TemplatePlaceholder)
    sections: StringList = Field(default_factory=list)
    metadata: Metadata = Field(default_factory=dict)
    tags: StringList = Field(default_factory=list)
    entities: filtered_list(ExtractedEntity) = Field(default_factory=list)
    summary: str | None = None
    quality_score: Score | None = None


def _template_prompt(data: TemplateInput) -> str:
    context = []
    if data.company_name:
        context.append(f"Company: {data.company_name}")
    if data.document_type:
        context.append(f"Declared type: {data.document_type}")
    header = "\n".join(context)
    return f"""Analyze this document as a reusable template and extract the facts it records.
{header}

Document text:
{data.text[:TEMPLATE_TEXT_LIMIT]}

Return JSON with documentType, category, description, complexity,
estimatedFillTime (minutes), placeholders [{{fieldName, fieldType, description,
required, example}}], sections, metadata, tags, entities [{{type, value,
confidence}}], summary and qualityScore (0-100)."""


TEMPLATE_ANALYZER = Skill(
    config=SkillConfig(
        name="TemplateAnalyzer",
        category=SkillCategory.ANALYZER,
        task_type=TaskType.ANALYZE_DOCUMENT,
        instructions=(
            "You are a legal template analyst. Describe the template, its sections and "
            "fillable fields, and list the concrete entities (company names, people, "
            "addresses, amounts, dates) the document states. Respond only with valid JSON."
        ),
        temperature=0.2,
        max_tokens=3000,
    ),
    input_model=TemplateInput,
    build_prompt=_template_prompt,
    output_schema=TemplateAnalysis,
    fallback=lambda _: {
        "documentType": "Unknown",
        "category": "Other",
        "description": "Template analysis failed",
        "complexity": "moderate",
        "estimatedFillTime": 30,
        "placeholders": [],
        "sections": [],
        "metadata": {},
        "tags": [],
        "entities": [],
        "summary": None,
        "qualityScore": None,
    },
)
