"""
Knowledge graph models.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from smartdocs.models.document import new_id, utcnow


class KnowledgeEntity(BaseModel):
    """
    A deduplicated (entity_type, entity_value) fact.

    usage_count starts at 1 and only grows. Confidence is the highest value
    ever reported for the fact.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=new_id)
    entity_type: str
    entity_value: str
    source_document_id: str | None = None
    source_document_type: str | None = None
    relationships: dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(default=1.0, ge=0, le=1)
    usage_count: int = Field(default=1, ge=1)
    first_seen: datetime = Field(default_factory=utcnow)
    last_updated: datetime = Field(default_factory=utcnow)


class EntitySuggestion(BaseModel):
    """A candidate value for a placeholder."""

    entity_value: str
    confidence: float = Field(ge=0, le=1)
    source: str
    usage_count: int = 0
    last_used: datetime | None = None
    reasoning: str | None = None


class EntitySearchResult(BaseModel):
    """One page of entity search results plus the total match count."""

    entities: list[KnowledgeEntity] = Field(default_factory=list)
    total: int = 0
