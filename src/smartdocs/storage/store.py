"""
Relational store using SQLAlchemy.
"""

from contextlib import contextmanager
from enum import Enum
from functools import lru_cache
from typing import Any, Generator

import structlog
from pydantic import BaseModel
from sqlalchemy import String, case, create_engine, func, literal, or_, select, text, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from smartdocs.config import get_settings
from smartdocs.models.consistency import (
    Conflict,
    ConflictStatus,
    HealthCheck,
    Relationship,
)
from smartdocs.models.conversation import Conversation
from smartdocs.models.document import (
    DataRoomDocument,
    Document,
    Placeholder,
    utcnow,
)
from smartdocs.models.knowledge import KnowledgeEntity
from smartdocs.models.task import Agent, Task, TaskStatus
from smartdocs.storage.schema import (
    ai_agents,
    ai_tasks,
    conflicts,
    conversations,
    data_room_documents,
    document_relationships,
    documents,
    health_checks,
    knowledge_graph,
    metadata,
    placeholders,
)

logger = structlog.get_logger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _dump(model: BaseModel, **kwargs: Any) -> dict[str, Any]:
    """Column values for a model: python objects, enums reduced to their values."""
    return {
        k: v.value if isinstance(v, Enum) else v
        for k, v in model.model_dump(mode="python", **kwargs).items()
    }


def _escape_like(expr):
    """Escape LIKE wildcards held in a column, using '/' as the escape character."""
    for char in ("/", "%", "_"):
        expr = func.replace(expr, char, "/" + char, type_=String)
    return expr


class Store:
    """
    Relational store for documents, placeholders, tasks, the knowledge graph
    and conversations.

    Every public method runs in its own transaction.
    """

    def __init__(self, database_url: str | None = None, engine: Engine | None = None):
        settings = get_settings()
        self.database_url = database_url or settings.database_url

        if engine is None:
            engine = self._create_engine(self.database_url, echo=settings.database_echo)
        self.engine = engine

        self.session_factory = sessionmaker(self.engine, expire_on_commit=False)

    @staticmethod
    def _create_engine(database_url: str, echo: bool = False) -> Engine:
        if database_url.startswith("sqlite"):
            kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
            if ":memory:" in database_url or database_url == "sqlite://":
                kwargs["poolclass"] = StaticPool
            return create_engine(database_url, echo=echo, **kwargs)
        return create_engine(
            database_url,
            echo=echo,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
        )

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Get a database session."""
        with self.session_factory() as session:
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise

    def create_all(self) -> None:
        """Create all tables that do not exist yet."""
        metadata.create_all(self.engine)
        logger.info("schema_created", tables=len(metadata.tables))

    def close(self) -> None:
        """Close database connections."""
        self.engine.dispose()

    def health_check(self) -> bool:
        """Check database connectivity."""
        try:
            with self.session() as session:
                session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            return False

    # =========================================================================
    # Agent Operations
    # =========================================================================

    def get_agent_by_name(self, name: str) -> Agent | None:
        with self.session() as session:
            row = session.execute(
                select(ai_agents).where(ai_agents.c.name == name)
            ).mappings().first()
            return Agent.model_validate(dict(row)) if row else None

    def get_or_create_agent(self, agent: Agent) -> Agent:
        """Look up an agent row by name, inserting it on first use."""
        existing = self.get_agent_by_name(agent.name)
        if existing:
            return existing

        try:
            with self.session() as session:
                session.execute(
                    ai_agents.insert().values(**_dump(agent))
                )
        except IntegrityError:
            # Registered concurrently under the same name
            existing = self.get_agent_by_name(agent.name)
            if existing is None:
                raise
            return existing

        logger.info("agent_registered", agent=agent.name, model=agent.model)
        return agent

    # =========================================================================
    # Task Operations
    # =========================================================================

    def create_task(self, task: Task) -> Task:
        with self.session() as session:
            session.execute(ai_tasks.insert().values(**_dump(task)))
        return task

    def get_task(self, task_id: str) -> Task | None:
        with self.session() as session:
            row = session.execute(
                select(ai_tasks).where(ai_tasks.c.id == task_id)
            ).mappings().first()
            return Task.model_validate(dict(row)) if row else None

    def finalize_task(
        self,
        task_id: str,
        status: TaskStatus,
        output: Any = None,
        error: str | None = None,
        prompt_tokens: int = 0,
        completion_tokens: int = 0,
        total_tokens: int = 0,
        cost: float = 0.0,
        used_fallback: bool = False,
        attempts: int = 0,
    ) -> bool:
        """
        Write the terminal fields of a task.

        Only a task still in processing can be finalised. Returns False when
        the task was already terminal.
        """
        if not status.is_terminal:
            raise ValueError(f"Cannot finalize task with non-terminal status {status.value}")

        with self.session() as session:
            result = session.execute(
                update(ai_tasks)
                .where(ai_tasks.c.id == task_id)
                .where(ai_tasks.c.status == TaskStatus.PROCESSING.value)
                .values(
                    status=status.value,
                    output=output,
                    error=error,
                    prompt_tokens=prompt_tokens,
                    completion_tokens=completion_tokens,
                    total_tokens=total_tokens,
                    cost=cost,
                    used_fallback=used_fallback,
                    attempts=attempts,
                    completed_at=utcnow(),
                )
            )
            return result.rowcount == 1

    def list_tasks(
        self,
        agent_id: str | None = None,
        status: TaskStatus | None = None,
        limit: int = 100,
    ) -> list[Task]:
        query = select(ai_tasks)
        if agent_id:
            query = query.where(ai_tasks.c.agent_id == agent_id)
        if status:
            query = query.where(ai_tasks.c.status == status.value)
        query = query.order_by(ai_tasks.c.created_at.desc()).limit(limit)

        with self.session() as session:
            rows = session.execute(query).mappings().all()
            return [Task.model_validate(dict(row)) for row in rows]

    # =========================================================================
    # Document Operations
    # =========================================================================

    def create_document(self, document: Document) -> Document:
        values = _dump(document, exclude={"metadata"})
        values["doc_metadata"] = document.metadata
        with self.session() as session:
            session.execute(documents.insert().values(**values))
        logger.info("document_created", document_id=document.id, user_id=document.user_id)
        return document

    def get_document(self, document_id: str) -> Document | None:
        with self.session() as session:
            row = session.execute(
                select(documents).where(documents.c.id == document_id)
            ).mappings().first()
            return self._row_to_document(row) if row else None

    def list_documents(
        self,
        user_id: str,
        exclude_id: str | None = None,
        limit: int = 100,
    ) -> list[Document]:
        query = select(documents).where(documents.c.user_id == user_id)
        if exclude_id:
            query = query.where(documents.c.id != exclude_id)
        query = query.order_by(documents.c.upload_date.desc()).limit(limit)

        with self.session() as session:
            rows = session.execute(query).mappings().all()
            return [self._row_to_document(row) for row in rows]

    def update_document(self, document_id: str, **fields: Any) -> None:
        """Update document columns. ``metadata`` replaces the whole blob."""
        values = self._enum_values(fields)
        if "metadata" in values:
            values["doc_metadata"] = values.pop("metadata")
        values["updated_at"] = utcnow()

        with self.session() as session:
            session.execute(
                update(documents).where(documents.c.id == document_id).values(**values)
            )

    def merge_document_metadata(self, document_id: str, patch: dict[str, Any]) -> dict[str, Any]:
        """Shallow-merge keys into a document's metadata blob."""
        with self.session() as session:
            current = session.execute(
                select(documents.c.doc_metadata).where(documents.c.id == document_id)
            ).scalar_one()
            merged = {**(current or {}), **patch}
            session.execute(
                update(documents)
                .where(documents.c.id == document_id)
                .values(doc_metadata=merged, updated_at=utcnow())
            )
            return merged

    # =========================================================================
    # Placeholder Operations
    # =========================================================================

    def create_placeholders(self, items: list[Placeholder]) -> int:
        """Save multiple placeholders in one transaction."""
        if not items:
            return 0

        with self.session() as session:
            session.execute(
                placeholders.insert(),
                [_dump(p) for p in items],
            )

        logger.info(
            "placeholders_saved",
            document_id=items[0].document_id,
            count=len(items),
        )
        return len(items)

    def get_placeholder(self, placeholder_id: str) -> Placeholder | None:
        with self.session() as session:
            row = session.execute(
                select(placeholders).where(placeholders.c.id == placeholder_id)
            ).mappings().first()
            return Placeholder.model_validate(dict(row)) if row else None

    def get_placeholders(self, document_id: str) -> list[Placeholder]:
        """Placeholders of a document in ascending position order."""
        with self.session() as session:
            rows = session.execute(
                select(placeholders)
                .where(placeholders.c.document_id == document_id)
                .order_by(placeholders.c.position.asc(), placeholders.c.created_at.asc())
            ).mappings().all()
            return [Placeholder.model_validate(dict(row)) for row in rows]

    def update_placeholder(self, placeholder_id: str, **fields: Any) -> None:
        with self.session() as session:
            session.execute(
                update(placeholders)
                .where(placeholders.c.id == placeholder_id)
                .values(**self._enum_values(fields))
            )

    def get_filled_placeholders_for_user(
        self,
        user_id: str,
        exclude_document_id: str | None = None,
    ) -> list[tuple[Document, Placeholder]]:
        """Filled placeholders across a user's documents, paired with their document."""
        docs = {d.id: d for d in self.list_documents(user_id, exclude_id=exclude_document_id)}
        if not docs:
            return []

        with self.session() as session:
            rows = session.execute(
                select(placeholders)
                .where(placeholders.c.document_id.in_(list(docs)))
                .where(placeholders.c.filled_value.is_not(None))
                .order_by(placeholders.c.document_id, placeholders.c.position)
            ).mappings().all()

        result = []
        for row in rows:
            placeholder = Placeholder.model_validate(dict(row))
            result.append((docs[placeholder.document_id], placeholder))
        return result

    # =========================================================================
    # Knowledge Graph Operations
    # =========================================================================

    def upsert_entity(self, entity: KnowledgeEntity) -> KnowledgeEntity:
        """
        Insert an entity or merge it into the existing (type, value) row.

        A single INSERT ... ON CONFLICT DO UPDATE statement, so concurrent
        writers on the same key never produce duplicates. On conflict the
        higher confidence wins and usage_count is incremented.
        """
        insert = _UPSERT_DIALECTS.get(self.engine.dialect.name)
        if insert is None:
            raise NotImplementedError(
                f"Entity upsert not supported on dialect {self.engine.dialect.name}"
            )

        stmt = insert(knowledge_graph).values(**_dump(entity))
        stmt = stmt.on_conflict_do_update(
            index_elements=[knowledge_graph.c.entity_type, knowledge_graph.c.entity_value],
            set_={
                "confidence": case(
                    (
                        knowledge_graph.c.confidence < stmt.excluded.confidence,
                        stmt.excluded.confidence,
                    ),
                    else_=knowledge_graph.c.confidence,
                ),
                "usage_count": knowledge_graph.c.usage_count + 1,
                "last_updated": stmt.excluded.last_updated,
            },
        )

        with self.session() as session:
            session.execute(stmt)
            row = session.execute(
                select(knowledge_graph)
                .where(knowledge_graph.c.entity_type == entity.entity_type)
                .where(knowledge_graph.c.entity_value == entity.entity_value)
            ).mappings().one()
            return KnowledgeEntity.model_validate(dict(row))

    def get_entity(self, entity_type: str, entity_value: str) -> KnowledgeEntity | None:
        with self.session() as session:
            row = session.execute(
                select(knowledge_graph)
                .where(knowledge_graph.c.entity_type == entity_type)
                .where(knowledge_graph.c.entity_value == entity_value)
            ).mappings().first()
            return KnowledgeEntity.model_validate(dict(row)) if row else None

    def increment_entity_usage(self, entity_type: str, entity_value: str) -> bool:
        """Bump usage of an existing entity. Returns False when it does not exist."""
        with self.session() as session:
            result = session.execute(
                update(knowledge_graph)
                .where(knowledge_graph.c.entity_type == entity_type)
                .where(knowledge_graph.c.entity_value == entity_value)
                .values(
                    usage_count=knowledge_graph.c.usage_count + 1,
                    last_updated=utcnow(),
                )
            )
            return result.rowcount > 0

    def search_entities(
        self,
        entity_type: str | None = None,
        term: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[KnowledgeEntity], int]:
        """Page of entities ordered by usage then recency, plus the total match count."""
        conditions = []
        if entity_type:
            conditions.append(knowledge_graph.c.entity_type == entity_type)
        if term:
            conditions.append(knowledge_graph.c.entity_value.icontains(term, autoescape=True))

        query = select(knowledge_graph).where(*conditions)
        count_query = select(func.count()).select_from(knowledge_graph).where(*conditions)

        with self.session() as session:
            rows = session.execute(
                query.order_by(
                    knowledge_graph.c.usage_count.desc(),
                    knowledge_graph.c.last_updated.desc(),
                )
                .limit(limit)
                .offset(offset)
            ).mappings().all()
            total = session.execute(count_query).scalar_one()

        return [KnowledgeEntity.model_validate(dict(row)) for row in rows], total

    def find_candidate_entities(
        self,
        field_name: str,
        field_type: str,
        limit: int = 5,
    ) -> list[KnowledgeEntity]:
        """
        Entities whose type loosely matches a field name or field type.

        Case-insensitive substring match in either direction.
        """
        col = knowledge_graph.c.entity_type
        conditions = []
        for needle in (field_name, field_type):
            if not needle:
                continue
            conditions.append(col.icontains(needle, autoescape=True))
            conditions.append(
                literal(needle, String).ilike("%" + _escape_like(col) + "%", escape="/")
            )

        if not conditions:
            return []

        with self.session() as session:
            rows = session.execute(
                select(knowledge_graph)
                .where(or_(*conditions))
                .order_by(
                    knowledge_graph.c.usage_count.desc(),
                    knowledge_graph.c.confidence.desc(),
                )
                .limit(limit)
            ).mappings().all()
            return [KnowledgeEntity.model_validate(dict(row)) for row in rows]

    def get_entities_by_source_document(self, document_id: str) -> list[KnowledgeEntity]:
        with self.session() as session:
            rows = session.execute(
                select(knowledge_graph)
                .where(knowledge_graph.c.source_document_id == document_id)
                .order_by(knowledge_graph.c.confidence.desc())
            ).mappings().all()
            return [KnowledgeEntity.model_validate(dict(row)) for row in rows]

    def find_entities_by_values(self, values: list[str]) -> dict[str, KnowledgeEntity]:
        """Best-confidence entity for each of the given values that is in the graph."""
        if not values:
            return {}
        with self.session() as session:
            rows = session.execute(
                select(knowledge_graph)
                .where(knowledge_graph.c.entity_value.in_(values))
                .order_by(knowledge_graph.c.confidence.asc())
            ).mappings().all()
        # Ascending order, so the highest confidence per value is written last
        return {row["entity_value"]: KnowledgeEntity.model_validate(dict(row)) for row in rows}

    def delete_entities_by_source_document(self, document_id: str) -> int:
        with self.session() as session:
            result = session.execute(
                knowledge_graph.delete().where(
                    knowledge_graph.c.source_document_id == document_id
                )
            )
            return result.rowcount

    # =========================================================================
    # Consistency Operations
    # =========================================================================

    def save_conflicts(self, items: list[Conflict]) -> int:
        if not items:
            return 0
        with self.session() as session:
            session.execute(conflicts.insert(), [_dump(c) for c in items])
        return len(items)

    def get_conflicts(
        self,
        document_id: str,
        status: ConflictStatus | None = None,
    ) -> list[Conflict]:
        query = select(conflicts).where(conflicts.c.document_id == document_id)
        if status:
            query = query.where(conflicts.c.status == status.value)
        with self.session() as session:
            rows = session.execute(query.order_by(conflicts.c.detected_at.desc())).mappings().all()
            return [Conflict.model_validate(dict(row)) for row in rows]

    def get_conflict(self, conflict_id: str) -> Conflict | None:
        with self.session() as session:
            row = session.execute(
                select(conflicts).where(conflicts.c.id == conflict_id)
            ).mappings().first()
            return Conflict.model_validate(dict(row)) if row else None

    def clear_open_conflicts(self, document_id: str) -> int:
        """Delete a document's open conflicts. Acknowledged and resolved ones stay."""
        with self.session() as session:
            result = session.execute(
                conflicts.delete()
                .where(conflicts.c.document_id == document_id)
                .where(conflicts.c.status == ConflictStatus.OPEN.value)
            )
            return result.rowcount

    def update_conflict_status(self, conflict_id: str, status: ConflictStatus) -> bool:
        resolved_at = utcnow() if status == ConflictStatus.RESOLVED else None
        with self.session() as session:
            result = session.execute(
                update(conflicts)
                .where(conflicts.c.id == conflict_id)
                .values(status=status.value, resolved_at=resolved_at)
            )
            return result.rowcount == 1

    def save_relationships(self, items: list[Relationship]) -> int:
        if not items:
            return 0
        with self.session() as session:
            session.execute(
                document_relationships.insert(),
                [_dump(r) for r in items],
            )
        return len(items)

    def delete_relationships(self, source_document_id: str) -> int:
        with self.session() as session:
            result = session.execute(
                document_relationships.delete().where(
                    document_relationships.c.source_document_id == source_document_id
                )
            )
            return result.rowcount

    def get_relationships(self, document_id: str) -> list[Relationship]:
        with self.session() as session:
            rows = session.execute(
                select(document_relationships)
                .where(document_relationships.c.source_document_id == document_id)
                .order_by(document_relationships.c.strength.desc())
            ).mappings().all()
            return [Relationship.model_validate(dict(row)) for row in rows]

    def save_health_check(self, check: HealthCheck) -> HealthCheck:
        with self.session() as session:
            session.execute(health_checks.insert().values(**_dump(check)))
        return check

    def get_latest_health_check(self, document_id: str) -> HealthCheck | None:
        with self.session() as session:
            row = session.execute(
                select(health_checks)
                .where(health_checks.c.document_id == document_id)
                .order_by(health_checks.c.checked_at.desc())
                .limit(1)
            ).mappings().first()
            return HealthCheck.model_validate(dict(row)) if row else None

    # =========================================================================
    # Conversation Operations
    # =========================================================================

    def create_conversation(self, conversation: Conversation) -> Conversation:
        values = _dump(conversation, exclude={"messages"})
        values["messages"] = [m.model_dump(mode="json") for m in conversation.messages]
        with self.session() as session:
            session.execute(conversations.insert().values(**values))
        return conversation

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        with self.session() as session:
            row = session.execute(
                select(conversations).where(conversations.c.id == conversation_id)
            ).mappings().first()
            return Conversation.model_validate(dict(row)) if row else None

    def update_conversation(self, conversation: Conversation, expected_version: int) -> bool:
        """
        Compare-and-set write of a conversation.

        The row is written only if its stored version still equals
        ``expected_version``; the stored version is then incremented.
        """
        values = _dump(conversation, exclude={"id", "messages", "version", "started_at"})
        values["messages"] = [m.model_dump(mode="json") for m in conversation.messages]
        values["version"] = expected_version + 1
        values["updated_at"] = utcnow()

        with self.session() as session:
            result = session.execute(
                update(conversations)
                .where(conversations.c.id == conversation.id)
                .where(conversations.c.version == expected_version)
                .values(**values)
            )
            return result.rowcount == 1

    # =========================================================================
    # Data Room Operations
    # =========================================================================

    def create_data_room_document(self, item: DataRoomDocument) -> DataRoomDocument:
        with self.session() as session:
            session.execute(data_room_documents.insert().values(**_dump(item)))
        return item

    def get_data_room_document(self, item_id: str) -> DataRoomDocument | None:
        with self.session() as session:
            row = session.execute(
                select(data_room_documents).where(data_room_documents.c.id == item_id)
            ).mappings().first()
            return DataRoomDocument.model_validate(dict(row)) if row else None

    def update_data_room_document(self, item_id: str, **fields: Any) -> None:
        with self.session() as session:
            session.execute(
                update(data_room_documents)
                .where(data_room_documents.c.id == item_id)
                .values(**self._enum_values(fields))
            )

    # =========================================================================
    # Helper Methods
    # =========================================================================

    @staticmethod
    def _enum_values(fields: dict[str, Any]) -> dict[str, Any]:
        return {k: getattr(v, "value", v) for k, v in fields.items()}

    def _row_to_document(self, row: Any) -> Document:
        data = dict(row)
        data["metadata"] = data.pop("doc_metadata") or {}
        return Document.model_validate(data)


@lru_cache()
def get_store() -> Store:
    """Get cached store instance."""
    return Store()
