"""Domain models."""

from smartdocs.models.consistency import (
    Conflict,
    ConflictReport,
    ConflictStatus,
    ConflictType,
    CrossDocumentSuggestion,
    HealthCheck,
    HealthScore,
    HealthStatus,
    Relationship,
    RelationshipReport,
    RelationshipType,
    Severity,
    auto_apply_allowed,
    is_critical_field,
    status_for_score,
)
from smartdocs.models.conversation import (
    Conversation,
    ConversationMessage,
    ConversationStatus,
    ConversationTurn,
    MessageRole,
)
from smartdocs.models.document import (
    DataRoomDocument,
    DataRoomStatus,
    Document,
    DocumentStatus,
    FieldType,
    Placeholder,
    ValidationStatus,
)
from smartdocs.models.knowledge import EntitySearchResult, EntitySuggestion, KnowledgeEntity
from smartdocs.models.task import (
    Agent,
    SkillCategory,
    Task,
    TaskStatus,
    TaskType,
    TokenUsage,
)

__all__ = [
    "Agent",
    "Conflict",
    "ConflictReport",
    "ConflictStatus",
    "ConflictType",
    "Conversation",
    "ConversationMessage",
    "ConversationStatus",
    "ConversationTurn",
    "CrossDocumentSuggestion",
    "DataRoomDocument",
    "DataRoomStatus",
    "Document",
    "DocumentStatus",
    "EntitySearchResult",
    "EntitySuggestion",
    "FieldType",
    "HealthCheck",
    "HealthScore",
    "HealthStatus",
    "KnowledgeEntity",
    "MessageRole",
    "Placeholder",
    "Relationship",
    "RelationshipReport",
    "RelationshipType",
    "Severity",
    "SkillCategory",
    "Task",
    "TaskStatus",
    "TaskType",
    "TokenUsage",
    "ValidationStatus",
    "auto_apply_allowed",
    "is_critical_field",
    "status_for_score",
]
