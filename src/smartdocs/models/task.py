"""
Agent and task records.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from smartdocs.models.document import new_id, utcnow


class SkillCategory(str, Enum):
    """Broad role of a skill."""

    EXTRACTOR = "extractor"
    VALIDATOR = "validator"
    ANALYZER = "analyzer"
    RECOMMENDER = "recommender"


class TaskType(str, Enum):
    """Kind of work recorded by a task."""

    ANALYZE_DOCUMENT = "analyze_document"
    EXTRACT_PLACEHOLDERS = "extract_placeholders"
    SUGGEST_VALUES = "suggest_values"
    CHECK_COMPLIANCE = "check_compliance"
    DETECT_CONFLICTS = "detect_conflicts"
    CALCULATE_HEALTH = "calculate_health"
    LINK_DOCUMENTS = "link_documents"
    SEARCH_NL = "search_nl"


class TaskStatus(str, Enum):
    """Task lifecycle status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


class Agent(BaseModel):
    """Persisted identity row for a skill."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=new_id)
    name: str
    category: SkillCategory
    model: str
    instructions: str = ""
    config: dict[str, Any] = Field(default_factory=dict)
    active: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class TokenUsage(BaseModel):
    """Token counts reported by the generative service."""

    prompt: int = 0
    completion: int = 0
    total: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt=self.prompt + other.prompt,
            completion=self.completion + other.completion,
            total=self.total + other.total,
        )


class Task(BaseModel):
    """
    A persisted record of one skill execution.

    Input is written when the task is created. Output, error, tokens and cost
    are written once, when the task reaches a terminal status.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=new_id)
    agent_id: str
    task_type: TaskType
    input: dict[str, Any] = Field(default_factory=dict)
    output: Any = None
    status: TaskStatus = TaskStatus.PENDING
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost: float = 0.0
    used_fallback: bool = False
    attempts: int = 0
    error: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None
