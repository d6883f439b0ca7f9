"""
Document workflow service.

Analysis, placeholder extraction, value filling and data-room indexing.
Every generative step runs as a persisted task through the agent service.
"""

from typing import Callable

import structlog

from smartdocs.exceptions import InputContractError, NotFoundError, StateError
from smartdocs.models.document import (
    DataRoomDocument,
    DataRoomStatus,
    Document,
    DocumentStatus,
    Placeholder,
    ValidationStatus,
    utcnow,
)
from smartdocs.services.agent_service import AgentService
from smartdocs.services.knowledge_graph import KnowledgeGraphService
from smartdocs.skills.schema import round_score
from smartdocs.storage.store import Store
from smartdocs.utils.text_extraction import extract_text as default_extract_text

logger = structlog.get_logger(__name__)


def completion_percentage(placeholders: list[Placeholder]) -> int:
    """Share of filled placeholders, 0-100, rounded half up. 0 for none."""
    if not placeholders:
        return 0
    filled = sum(1 for p in placeholders if p.is_filled)
    return round_score(filled / len(placeholders) * 100)


class DocumentService:
    """Document lifecycle on top of the store, skills and knowledge graph."""

    def __init__(
        self,
        store: Store,
        agents: AgentService | None = None,
        knowledge_graph: KnowledgeGraphService | None = None,
        extract_text: Callable[[str], str] | None = None,
    ):
        self.store = store
        self.agents = agents
        self.knowledge_graph = knowledge_graph or KnowledgeGraphService(store, agents)
        self.extract_text = extract_text or default_extract_text

    # =========================================================================
    # Documents
    # =========================================================================

    def create_document(
        self,
        user_id: str,
        filename: str,
        file_path: str | None = None,
    ) -> Document:
        if not user_id or not filename:
            raise InputContractError("user_id and filename are required")
        return self.store.create_document(
            Document(user_id=user_id, filename=filename, file_path=file_path)
        )

    def get_document(self, document_id: str, user_id: str | None = None) -> Document:
        document = self.store.get_document(document_id)
        if document is None or (user_id is not None and document.user_id != user_id):
            raise NotFoundError("Document not found")
        return document

    def get_placeholders(self, document_id: str, user_id: str | None = None) -> list[Placeholder]:
        self.get_document(document_id, user_id)
        return self.store.get_placeholders(document_id)

    def analyze_document(
        self,
        document_id: str,
        text: str | None = None,
        user_id: str | None = None,
    ) -> Document:
        """
        Classify a document with the DocumentAnalyzer.

        Status moves analyzing -> ready. If the task raises, the document
        returns to uploaded and the error propagates.
        """
        agents = self._require_agents()
        document = self.get_document(document_id, user_id)
        text = self._document_text(document, text)

        self.store.update_document(document.id, status=DocumentStatus.ANALYZING)
        try:
            task = agents.run("DocumentAnalyzer", {"document_id": document.id, "text": text})
        except Exception:
            self.store.update_document(document.id, status=DocumentStatus.UPLOADED)
            raise

        analysis = task.output
        self.store.update_document(
            document.id,
            status=DocumentStatus.READY,
            document_type=analysis["documentType"],
            classification_confidence=analysis["confidence"],
        )
        self.store.merge_document_metadata(
            document.id,
            {
                "complexity": analysis["complexity"],
                "analysis": analysis["metadata"],
                "analysis_task_id": task.id,
            },
        )

        logger.info(
            "document_analyzed",
            document_id=document.id,
            document_type=analysis["documentType"],
            used_fallback=task.used_fallback,
        )
        return self.store.get_document(document.id)

    def extract_placeholders(
        self,
        document_id: str,
        text: str | None = None,
        user_id: str | None = None,
    ) -> list[Placeholder]:
        """
        Extract fillable fields and store them in position order.

        Each placeholder is seeded with the best knowledge-graph suggestion
        for its field, when there is one.
        """
        agents = self._require_agents()
        document = self.get_document(document_id, user_id)
        if self.store.get_placeholders(document.id):
            raise StateError("Placeholders already extracted")
        text = self._document_text(document, text)

        task = agents.run("PlaceholderExtractor", {"document_id": document.id, "text": text})

        items = []
        for extracted in task.output:
            placeholder = Placeholder(
                document_id=document.id,
                field_name=extracted["fieldName"],
                field_type=extracted["fieldType"],
                original_text=extracted["originalText"],
                position=extracted["position"],
                suggested_question=extracted["suggestedQuestion"],
                confidence=0.0,
            )
            suggestions = self.knowledge_graph.suggest_for_field(
                placeholder.field_name, placeholder.field_type.value
            )
            if suggestions:
                best = suggestions[0]
                placeholder.suggested_value = best.entity_value
                placeholder.suggestion_source = best.source
                placeholder.confidence = best.confidence
            items.append(placeholder)

        self.store.create_placeholders(items)
        self.store.merge_document_metadata(document.id, {"placeholder_count": len(items)})
        self.store.update_document(document.id, completion_percentage=0)

        logger.info(
            "placeholders_extracted",
            document_id=document.id,
            count=len(items),
            suggested=sum(1 for p in items if p.suggested_value),
            used_fallback=task.used_fallback,
        )
        return self.store.get_placeholders(document.id)

    def fill_placeholder(
        self,
        document_id: str,
        placeholder_id: str,
        value: str,
        user_id: str | None = None,
    ) -> Placeholder:
        """
        Record a value for a placeholder.

        Updates the document's completion percentage and counts one use of
        (field_name, value) in the knowledge graph.
        """
        if value is None or not str(value).strip():
            raise InputContractError("Value is required")

        document = self.get_document(document_id, user_id)
        placeholder = self.store.get_placeholder(placeholder_id)
        if placeholder is None or placeholder.document_id != document.id:
            raise NotFoundError("Placeholder not found")

        self.store.update_placeholder(
            placeholder.id,
            filled_value=value,
            validation_status=ValidationStatus.VALIDATED,
        )
        completion = completion_percentage(self.store.get_placeholders(document.id))
        self.store.update_document(document.id, completion_percentage=completion)
        self.knowledge_graph.update_entity_usage(placeholder.field_name, value)

        logger.info(
            "placeholder_filled",
            document_id=document.id,
            placeholder_id=placeholder.id,
            completion=completion,
        )
        return self.store.get_placeholder(placeholder.id)

    # =========================================================================
    # Data room
    # =========================================================================

    def index_data_room_document(
        self,
        user_id: str,
        company_name: str,
        document_type: str,
        file_path: str,
        filename: str | None = None,
        text: str | None = None,
    ) -> DataRoomDocument:
        """
        Index a reference document into the knowledge graph.

        The TemplateAnalyzer extracts entities, and each one is upserted with
        this document as provenance. A failed analysis leaves the row failed
        and adds nothing to the graph.
        """
        agents = self._require_agents()
        if not company_name or not document_type:
            raise InputContractError("company_name and document_type are required")

        item = self.store.create_data_room_document(
            DataRoomDocument(
                user_id=user_id,
                company_name=company_name,
                document_type=document_type,
                filename=filename or file_path.rsplit("/", 1)[-1],
                file_path=file_path,
            )
        )
        log = logger.bind(data_room_document_id=item.id, company=company_name)
        self.store.update_data_room_document(item.id, status=DataRoomStatus.PROCESSING)

        try:
            if text is None:
                text = self.extract_text(file_path)
            task = agents.run(
                "TemplateAnalyzer",
                {
                    "template_id": item.id,
                    "text": text,
                    "company_name": company_name,
                    "document_type": document_type,
                },
            )
        except Exception as e:
            self.store.update_data_room_document(
                item.id, status=DataRoomStatus.FAILED, error=str(e)
            )
            log.error("data_room_index_failed", error=str(e))
            raise

        if task.used_fallback:
            self.store.update_data_room_document(
                item.id, status=DataRoomStatus.FAILED, error=task.error or "Template analysis failed"
            )
            log.warning("data_room_analysis_fallback")
            return self.store.get_data_room_document(item.id)

        analysis = task.output
        entities = analysis["entities"]
        for entity in entities:
            self.knowledge_graph.add_entity(
                entity["type"],
                entity["value"],
                source_document_id=item.id,
                source_document_type=document_type,
                confidence=entity["confidence"],
            )

        self.store.update_data_room_document(
            item.id,
            status=DataRoomStatus.INDEXED,
            summary=analysis["summary"],
            quality_score=analysis["qualityScore"],
            entity_count=len(entities),
            indexed_at=utcnow(),
        )
        log.info("data_room_indexed", entities=len(entities))
        return self.store.get_data_room_document(item.id)

    def delete_data_room_entities(self, data_room_document_id: str) -> int:
        """Remove every graph entity whose provenance is the given data-room document."""
        if self.store.get_data_room_document(data_room_document_id) is None:
            raise NotFoundError("Data room document not found")
        return self.knowledge_graph.delete_entities_by_source_document(data_room_document_id)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require_agents(self) -> AgentService:
        if self.agents is None:
            raise StateError("No agent service configured")
        return self.agents

    def _document_text(self, document: Document, text: str | None) -> str:
        if text is not None:
            return text
        if not document.file_path:
            raise InputContractError("Document has no file to read")
        return self.extract_text(document.file_path)
