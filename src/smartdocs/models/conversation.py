"""
Conversation models for placeholder-by-placeholder filling.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from smartdocs.models.document import new_id, utcnow


class ConversationStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ConversationMessage(BaseModel):
    """One turn of a conversation."""

    id: str = Field(default_factory=new_id)
    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    metadata: dict[str, Any] = Field(default_factory=dict)


class Conversation(BaseModel):
    """
    A versioned conversation row.

    version is incremented on every write. Writers must present the version
    they read; a mismatch means another writer got there first.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=new_id)
    document_id: str
    user_id: str
    status: ConversationStatus = ConversationStatus.ACTIVE
    current_placeholder_id: str | None = None
    total_placeholders: int = 0
    filled_count: int = 0
    messages: list[ConversationMessage] = Field(default_factory=list)
    version: int = 1
    started_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None


class ConversationTurn(BaseModel):
    """Result of starting a conversation or sending one message."""

    conversation: Conversation
    message: ConversationMessage
    completed: bool = False
