"""
Document and placeholder models.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class DocumentStatus(str, Enum):
    """Lifecycle status for an uploaded document."""

    UPLOADED = "uploaded"
    ANALYZING = "analyzing"
    READY = "ready"
    FILLING = "filling"
    COMPLETED = "completed"


class FieldType(str, Enum):
    """Type of a fillable field."""

    TEXT = "text"
    DATE = "date"
    CURRENCY = "currency"
    NUMBER = "number"
    EMAIL = "email"
    ADDRESS = "address"


class ValidationStatus(str, Enum):
    """Review state of a placeholder value."""

    PENDING = "pending"
    VALIDATED = "validated"
    FLAGGED = "flagged"


class Document(BaseModel):
    """
    A user's legal document.

    Metadata is free-form JSON. It carries the analysis metadata and the id
    of the conversation currently filling the document.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=new_id)
    user_id: str
    filename: str
    file_path: str | None = None
    status: DocumentStatus = DocumentStatus.UPLOADED
    document_type: str | None = None
    classification_confidence: float | None = Field(default=None, ge=0, le=1)
    completion_percentage: int = Field(default=0, ge=0, le=100)
    metadata: dict[str, Any] = Field(default_factory=dict)
    upload_date: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Placeholder(BaseModel):
    """A fillable field detected in a document."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=new_id)
    document_id: str
    field_name: str
    field_type: FieldType = FieldType.TEXT
    original_text: str
    position: int = Field(ge=1)
    suggested_question: str | None = None
    filled_value: str | None = None
    suggested_value: str | None = None
    suggestion_source: str | None = None
    confidence: float = Field(default=0.0, ge=0, le=1)
    validation_status: ValidationStatus = ValidationStatus.PENDING
    validation_notes: str | None = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_filled(self) -> bool:
        return self.filled_value is not None


class DataRoomStatus(str, Enum):
    """Indexing status of a data-room document."""

    PENDING = "pending"
    PROCESSING = "processing"
    INDEXED = "indexed"
    FAILED = "failed"


class DataRoomDocument(BaseModel):
    """A company record document whose facts feed the knowledge graph."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=new_id)
    user_id: str
    company_name: str
    document_type: str | None = None
    filename: str
    file_path: str | None = None
    status: DataRoomStatus = DataRoomStatus.PENDING
    summary: str | None = None
    quality_score: int | None = Field(default=None, ge=0, le=100)
    entity_count: int = 0
    error: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    indexed_at: datetime | None = None
