"""
Relational schema for SmartDocs.

Plain SQLAlchemy Core tables. The same definitions are used against SQLite
(tests, local runs) and PostgreSQL.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
)

metadata = MetaData()

# =============================================================================
# Agents and tasks
# =============================================================================

ai_agents = Table(
    "ai_agents",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(100), nullable=False, unique=True),
    Column("category", String(50), nullable=False),
    Column("model", String(100), nullable=False),
    Column("instructions", Text, nullable=False, default=""),
    Column("config", JSON, nullable=False, default=dict),
    Column("active", Boolean, nullable=False, default=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

ai_tasks = Table(
    "ai_tasks",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("agent_id", String(36), ForeignKey("ai_agents.id"), nullable=False, index=True),
    Column("task_type", String(50), nullable=False),
    Column("input", JSON, nullable=False),
    Column("output", JSON),
    Column("status", String(20), nullable=False, index=True),
    Column("prompt_tokens", Integer, nullable=False, default=0),
    Column("completion_tokens", Integer, nullable=False, default=0),
    Column("total_tokens", Integer, nullable=False, default=0),
    Column("cost", Float, nullable=False, default=0.0),
    Column("used_fallback", Boolean, nullable=False, default=False),
    Column("attempts", Integer, nullable=False, default=0),
    Column("error", Text),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("completed_at", DateTime(timezone=True)),
)

# =============================================================================
# Documents and placeholders
# =============================================================================

documents = Table(
    "documents",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(100), nullable=False, index=True),
    Column("filename", String(500), nullable=False),
    Column("file_path", String(1000)),
    Column("status", String(20), nullable=False),
    Column("document_type", String(200)),
    Column("classification_confidence", Float),
    Column("completion_percentage", Integer, nullable=False, default=0),
    Column("doc_metadata", JSON, nullable=False, default=dict),
    Column("upload_date", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

placeholders = Table(
    "placeholders",
    metadata,
    Column("id", String(36), primary_key=True),
    Column(
        "document_id",
        String(36),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("field_name", String(200), nullable=False),
    Column("field_type", String(20), nullable=False),
    Column("original_text", Text, nullable=False),
    Column("position", Integer, nullable=False),
    Column("suggested_question", Text),
    Column("filled_value", Text),
    Column("suggested_value", Text),
    Column("suggestion_source", String(200)),
    Column("confidence", Float, nullable=False, default=0.0),
    Column("validation_status", String(20), nullable=False),
    Column("validation_notes", Text),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

data_room_documents = Table(
    "data_room_documents",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(100), nullable=False, index=True),
    Column("company_name", String(300), nullable=False),
    Column("document_type", String(200)),
    Column("filename", String(500), nullable=False),
    Column("file_path", String(1000)),
    Column("status", String(20), nullable=False),
    Column("summary", Text),
    Column("quality_score", Integer),
    Column("entity_count", Integer, nullable=False, default=0),
    Column("error", Text),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("indexed_at", DateTime(timezone=True)),
)

# =============================================================================
# Knowledge graph
# =============================================================================

knowledge_graph = Table(
    "knowledge_graph",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("entity_type", String(200), nullable=False, index=True),
    Column("entity_value", Text, nullable=False),
    Column("source_document_id", String(36), index=True),
    Column("source_document_type", String(200)),
    Column("relationships", JSON, nullable=False, default=dict),
    Column("confidence", Float, nullable=False, default=1.0),
    Column("usage_count", Integer, nullable=False, default=1),
    Column("first_seen", DateTime(timezone=True), nullable=False),
    Column("last_updated", DateTime(timezone=True), nullable=False),
    UniqueConstraint("entity_type", "entity_value", name="uq_knowledge_graph_type_value"),
)

# =============================================================================
# Consistency
# =============================================================================

document_relationships = Table(
    "document_relationships",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("source_document_id", String(36), nullable=False, index=True),
    Column("related_document_id", String(36), nullable=False),
    Column("related_document_type", String(200)),
    Column("relationship_type", String(50), nullable=False),
    Column("strength", Float, nullable=False),
    Column("shared_entities", JSON, nullable=False, default=list),
    Column("description", Text, nullable=False, default=""),
    Column("detected_at", DateTime(timezone=True), nullable=False),
)

conflicts = Table(
    "conflicts",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("document_id", String(36), nullable=False, index=True),
    Column("conflict_type", String(30), nullable=False),
    Column("severity", String(20), nullable=False),
    Column("field1", String(200), nullable=False),
    Column("field2", String(200)),
    Column("value1", Text),
    Column("value2", Text),
    Column("description", Text, nullable=False),
    Column("suggestion", Text, nullable=False),
    Column("related_document_id", String(36)),
    Column("status", String(20), nullable=False),
    Column("detected_at", DateTime(timezone=True), nullable=False),
    Column("resolved_at", DateTime(timezone=True)),
)

health_checks = Table(
    "health_checks",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("document_id", String(36), nullable=False, index=True),
    Column("overall_score", Integer, nullable=False),
    Column("completeness_score", Integer, nullable=False),
    Column("consistency_score", Integer, nullable=False),
    Column("risk_score", Integer, nullable=False),
    Column("issues", JSON, nullable=False, default=list),
    Column("recommendations", JSON, nullable=False, default=list),
    Column("status", String(30), nullable=False),
    Column("source", String(20), nullable=False),
    Column("checked_at", DateTime(timezone=True), nullable=False),
)

# =============================================================================
# Conversations
# =============================================================================

conversations = Table(
    "conversations",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("document_id", String(36), nullable=False, index=True),
    Column("user_id", String(100), nullable=False),
    Column("status", String(20), nullable=False),
    Column("current_placeholder_id", String(36)),
    Column("total_placeholders", Integer, nullable=False, default=0),
    Column("filled_count", Integer, nullable=False, default=0),
    Column("messages", JSON, nullable=False, default=list),
    Column("version", Integer, nullable=False, default=1),
    Column("started_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("completed_at", DateTime(timezone=True)),
)
