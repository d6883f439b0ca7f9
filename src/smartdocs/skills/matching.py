"""
EntityMatcher: picks the best knowledge-graph entity for a placeholder.
"""

from pydantic import Field

from smartdocs.models.task import SkillCategory, TaskType
from smartdocs.skills.base import Skill, SkillConfig
from smartdocs.skills.schema import Confidence, NonEmptyStr, SkillInput, SkillSchema


class CandidateEntity(SkillInput):
    entity_type: str
    entity_value: str
    source_document: str = "Knowledge Graph"
    confidence: float = 1.0


class EntityMatchInput(SkillInput):
    placeholder_id: NonEmptyStr
    field_name: NonEmptyStr
    field_type: str = "text"
    entities: list[CandidateEntity] = Field(default_factory=list)


class EntityMatch(SkillSchema):
    suggested_value: str | None = None
    confidence: Confidence
    source: NonEmptyStr
    reasoning: NonEmptyStr


def _match_prompt(data: EntityMatchInput) -> str:
    lines = "\n".join(
        f"{i}. Type: {e.entity_type}, Value: \"{e.entity_value}\", "
        f"Source: {e.source_document}, Confidence: {e.confidence}"
        for i, e in enumerate(data.entities, start=1)
    )
    return f"""Placeholder field: "{data.field_name}" (type: {data.field_type})

Knowledge graph entities:
{lines}

Which entity, if any, should be suggested for this field?"""


def _no_entities(data: EntityMatchInput) -> dict | None:
    if data.entities:
        return None
    return {
        "suggestedValue": None,
        "confidence": 0.0,
        "source": "none",
        "reasoning": "No entities available in knowledge graph",
    }


ENTITY_MATCHER = Skill(
    config=SkillConfig(
        name="EntityMatcher",
        category=SkillCategory.RECOMMENDER,
        task_type=TaskType.SUGGEST_VALUES,
        instructions=(
            "You match document placeholders to entities extracted from company records. "
            "Consider field name and type compatibility, semantic meaning and entity "
            "confidence. Only suggest a value when the match is reasonably certain. "
            'Respond only with JSON: {"suggestedValue": str|null, "confidence": 0-1, '
            '"source": str, "reasoning": str}.'
        ),
        temperature=0.3,
        max_tokens=500,
    ),
    input_model=EntityMatchInput,
    build_prompt=_match_prompt,
    output_schema=EntityMatch,
    fallback=lambda _: {
        "suggestedValue": None,
        "confidence": 0.0,
        "source": "error",
        "reasoning": "Entity matching failed",
    },
    short_circuit=_no_entities,
)
