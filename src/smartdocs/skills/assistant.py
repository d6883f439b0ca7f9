"""
ConversationalAssistant: natural-language turns while filling a document.
"""

from enum import Enum

from pydantic import Field

from smartdocs.models.task import SkillCategory, TaskType
from smartdocs.skills.base import Skill, SkillConfig
from smartdocs.skills.schema import Confidence, NonEmptyStr, SkillInput, SkillSchema, lenient_enum


class AssistantAction(str, Enum):
    FILL_FIELD = "fill_field"
    NEXT_FIELD = "next_field"
    REVIEW = "review"
    COMPLETE = "complete"
    CLARIFY = "clarify"


class HistoryMessage(SkillInput):
    role: str
    content: str


class CurrentField(SkillInput):
    field_name: str
    field_type: str = "text"
    suggested_question: str = ""
    suggested_value: str | None = None


class DocumentContext(SkillInput):
    document_type: str = "document"
    completion_percentage: float = 0
    total_placeholders: int = 0
    filled_placeholders: int = 0


class AssistantInput(SkillInput):
    conversation_history: list[HistoryMessage]
    current_placeholder: CurrentField | None = None
    document_context: DocumentContext


class AssistantReply(SkillSchema):
    message: NonEmptyStr
    suggested_action: lenient_enum(AssistantAction, AssistantAction.CLARIFY) = (
        AssistantAction.CLARIFY
    )
    field_name: str | None = None
    extracted_value: str | None = None
    confidence: Confidence


HISTORY_WINDOW = 10


def _assistant_prompt(data: AssistantInput) -> str:
    ctx = data.document_context
    history = "\n".join(
        f"{m.role}: {m.content}" for m in data.conversation_history[-HISTORY_WINDOW:]
    )
    field = "None (all fields may be filled)"
    if data.current_placeholder:
        p = data.current_placeholder
        field = f"{p.field_name} ({p.field_type}) - {p.suggested_question}"
        if p.suggested_value:
            field += f"\nSuggested value: {p.suggested_value}"
    return f"""Document: {ctx.document_type}
Progress: {ctx.filled_placeholders}/{ctx.total_placeholders} fields ({ctx.completion_percentage}%)
Current field: {field}

Conversation so far:
{history}

Reply to the user's last message."""


ASSISTANT_ACTIONS = [a.value for a in AssistantAction]

CONVERSATIONAL_ASSISTANT = Skill(
    config=SkillConfig(
        name="ConversationalAssistant",
        category=SkillCategory.RECOMMENDER,
        task_type=TaskType.SUGGEST_VALUES,
        instructions=(
            "You are a friendly assistant helping a user fill out a legal document one "
            "field at a time. Keep replies short. When the user gives a value, extract it. "
            f"suggestedAction is one of {', '.join(ASSISTANT_ACTIONS)}. "
            'Respond only with JSON: {"message", "suggestedAction", "fieldName", '
            '"extractedValue", "confidence"}.'
        ),
        temperature=0.7,
        max_tokens=300,
    ),
    input_model=AssistantInput,
    build_prompt=_assistant_prompt,
    output_schema=AssistantReply,
    fallback=lambda _: {
        "message": "I'm having trouble processing that. Could you please rephrase?",
        "suggestedAction": "clarify",
        "fieldName": None,
        "extractedValue": None,
        "confidence": 0.0,
    },
)
