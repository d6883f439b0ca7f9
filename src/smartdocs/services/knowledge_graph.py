"""
Knowledge graph service.

Stores deduplicated (entity_type, entity_value) facts taken from processed
documents, and ranks them as fill-in suggestions for placeholders.
"""

from typing import Any

import structlog

from smartdocs.config import get_settings
from smartdocs.exceptions import InputContractError, NotFoundError
from smartdocs.models.document import Placeholder
from smartdocs.models.knowledge import EntitySearchResult, EntitySuggestion, KnowledgeEntity
from smartdocs.services.agent_service import AgentService
from smartdocs.storage.store import Store

logger = structlog.get_logger(__name__)

KNOWLEDGE_GRAPH_SOURCE = "Knowledge Graph"
AI_SUGGESTION_SOURCE = "AI Suggestion"


class KnowledgeGraphService:
    """Upsert, search and suggestion ranking over the knowledge graph."""

    def __init__(
        self,
        store: Store,
        agents: AgentService | None = None,
        suggestion_limit: int | None = None,
    ):
        self.store = store
        self.agents = agents
        self.suggestion_limit = suggestion_limit or get_settings().suggestion_limit

    # =========================================================================
    # Writes
    # =========================================================================

    def add_entity(
        self,
        entity_type: str,
        entity_value: str,
        source_document_id: str | None = None,
        source_document_type: str | None = None,
        confidence: float = 1.0,
        relationships: dict[str, Any] | None = None,
    ) -> KnowledgeEntity:
        """
        Insert a fact or merge it into the existing one.

        On collision the stored confidence becomes max(old, new) and
        usage_count is incremented. Duplicates never raise.
        """
        if not entity_type or not entity_value:
            raise InputContractError("entity_type and entity_value are required")
        if isinstance(confidence, bool) or not 0 <= confidence <= 1:
            raise InputContractError("Confidence must be between 0 and 1")

        entity = self.store.upsert_entity(
            KnowledgeEntity(
                entity_type=entity_type,
                entity_value=entity_value,
                source_document_id=source_document_id,
                source_document_type=source_document_type,
                relationships=relationships or {},
                confidence=confidence,
            )
        )
        logger.debug(
            "entity_upserted",
            entity_type=entity_type,
            usage_count=entity.usage_count,
            confidence=entity.confidence,
        )
        return entity

    def update_entity_usage(self, entity_type: str, entity_value: str) -> KnowledgeEntity:
        """Count one more use of a fact, creating it at confidence 1.0 if missing."""
        if self.store.increment_entity_usage(entity_type, entity_value):
            return self.store.get_entity(entity_type, entity_value)
        logger.info("entity_usage_self_heal", entity_type=entity_type)
        return self.add_entity(entity_type, entity_value, confidence=1.0)

    def delete_entities_by_source_document(self, document_id: str) -> int:
        deleted = self.store.delete_entities_by_source_document(document_id)
        logger.info("entities_deleted", document_id=document_id, count=deleted)
        return deleted

    # =========================================================================
    # Reads
    # =========================================================================

    def search_entities(
        self,
        entity_type: str | None = None,
        term: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> EntitySearchResult:
        """Case-insensitive substring search ordered by usage, then recency."""
        entities, total = self.store.search_entities(
            entity_type=entity_type, term=term, limit=limit, offset=offset
        )
        return EntitySearchResult(entities=entities, total=total)

    def get_entities_by_source_document(self, document_id: str) -> list[KnowledgeEntity]:
        return self.store.get_entities_by_source_document(document_id)

    def get_entity_suggestions(
        self,
        placeholder_id: str,
        user_id: str | None = None,
        use_ai: bool = True,
    ) -> list[EntitySuggestion]:
        """
        Ranked value suggestions for a placeholder.

        Candidates are entities whose type loosely matches the field name or
        type, best by usage then confidence. When an agent service is wired
        in, EntityMatcher may add or promote a value. Results are unique by
        value, at most ``suggestion_limit``, highest confidence first.
        """
        placeholder = self._get_placeholder(placeholder_id, user_id)

        candidates = self.store.find_candidate_entities(
            placeholder.field_name,
            placeholder.field_type.value,
            limit=self.suggestion_limit,
        )
        suggestions = [self._to_suggestion(e) for e in candidates]

        if use_ai and self.agents is not None and candidates:
            ai = self._match_with_ai(placeholder, candidates)
            if ai is not None:
                suggestions.insert(0, ai)

        return self._rank(suggestions)

    def suggest_for_field(self, field_name: str, field_type: str) -> list[EntitySuggestion]:
        """Graph-only suggestions for a field that has not been stored yet."""
        candidates = self.store.find_candidate_entities(
            field_name, field_type, limit=self.suggestion_limit
        )
        return self._rank([self._to_suggestion(e) for e in candidates])

    # =========================================================================
    # Helpers
    # =========================================================================

    def _get_placeholder(self, placeholder_id: str, user_id: str | None) -> Placeholder:
        placeholder = self.store.get_placeholder(placeholder_id)
        if placeholder is None:
            raise NotFoundError("Placeholder not found")
        if user_id is not None:
            document = self.store.get_document(placeholder.document_id)
            if document is None or document.user_id != user_id:
                raise NotFoundError("Placeholder not found")
        return placeholder

    @staticmethod
    def _to_suggestion(entity: KnowledgeEntity) -> EntitySuggestion:
        return EntitySuggestion(
            entity_value=entity.entity_value,
            confidence=entity.confidence,
            source=entity.source_document_type or KNOWLEDGE_GRAPH_SOURCE,
            usage_count=entity.usage_count,
            last_used=entity.last_updated,
        )

    def _match_with_ai(
        self,
        placeholder: Placeholder,
        candidates: list[KnowledgeEntity],
    ) -> EntitySuggestion | None:
        task = self.agents.run(
            "EntityMatcher",
            {
                "placeholder_id": placeholder.id,
                "field_name": placeholder.field_name,
                "field_type": placeholder.field_type.value,
                "entities": [
                    {
                        "entity_type": e.entity_type,
                        "entity_value": e.entity_value,
                        "source_document": e.source_document_type or KNOWLEDGE_GRAPH_SOURCE,
                        "confidence": e.confidence,
                    }
                    for e in candidates
                ],
            },
        )
        match = task.output or {}
        if task.used_fallback or not match.get("suggestedValue"):
            return None
        return EntitySuggestion(
            entity_value=match["suggestedValue"],
            confidence=match["confidence"],
            source=AI_SUGGESTION_SOURCE,
            reasoning=match.get("reasoning"),
        )

    def _rank(self, suggestions: list[EntitySuggestion]) -> list[EntitySuggestion]:
        # First occurrence of a value wins; AI picks are inserted first.
        seen: set[str] = set()
        unique = []
        for s in suggestions:
            if s.entity_value in seen:
                continue
            seen.add(s.entity_value)
            unique.append(s)
        unique.sort(key=lambda s: s.confidence, reverse=True)
        return unique[: self.suggestion_limit]
