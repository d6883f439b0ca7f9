"""
Conversational document filling.

A conversation walks a document's unfilled placeholders in position order,
one question per turn. The conversation is its own versioned row: each
write is a compare-and-set on ``version``, so two concurrent turns can never
both advance the same pointer.
"""

import structlog

from smartdocs.exceptions import (
    ConcurrentUpdateError,
    InputContractError,
    NotFoundError,
    StateError,
)
from smartdocs.models.conversation import (
    Conversation,
    ConversationMessage,
    ConversationStatus,
    ConversationTurn,
    MessageRole,
)
from smartdocs.models.document import Document, DocumentStatus, Placeholder, utcnow
from smartdocs.services.document_service import DocumentService
from smartdocs.storage.store import Store

logger = structlog.get_logger(__name__)

# (field-name fragments, examples). First match wins.
FIELD_EXAMPLES: list[tuple[tuple[str, ...], str]] = [
    (("date", "effective"), '"2025-01-15", "December 31, 2025", "01/15/2025"'),
    (("email",), '"john.smith@company.com", "contact@acmecorp.com"'),
    (("phone", "telephone"), '"+1 (555) 123-4567", "555-1234"'),
    (("address",), '"123 Main Street, New York, NY 10001", "456 Oak Avenue, Suite 200"'),
    (("amount", "price", "fee"), '"$10,000", "5000 USD", "$2,500.00"'),
    (("percentage", "rate"), '"5%", "10.5%", "2.75%"'),
]

TYPE_EXAMPLES = {
    "date": '"2025-01-15", "December 31, 2025"',
    "number": '"100", "1000", "5.5"',
}

DEFAULT_EXAMPLE = "_Please provide the appropriate value for this field._"


def example_for_field(field_name: str, field_type: str) -> str:
    """Example values shown with a question, chosen from the field name, then its type."""
    name = field_name.lower()

    if "name" in name or "party" in name:
        if "company" in name or "organization" in name:
            return '_Examples: "Acme Corporation", "TechStart Inc.", "Global Solutions Ltd"_'
        return '_Examples: "John Smith", "Jane Doe", "Robert Johnson"_'

    for terms, examples in FIELD_EXAMPLES:
        if any(t in name for t in terms):
            return f"_Examples: {examples}_"

    if field_type in TYPE_EXAMPLES:
        return f"_Examples: {TYPE_EXAMPLES[field_type]}_"

    return DEFAULT_EXAMPLE


def _question_metadata(placeholder: Placeholder) -> dict:
    return {
        "placeholder_id": placeholder.id,
        "field_name": placeholder.field_name,
        "field_type": placeholder.field_type.value,
    }


class ConversationService:
    """Start, advance, pause and complete filling conversations."""

    def __init__(self, store: Store, documents: DocumentService | None = None):
        self.store = store
        self.documents = documents or DocumentService(store)

    def start(self, document_id: str, user_id: str | None = None) -> ConversationTurn:
        """
        Open a conversation on the lowest-position unfilled placeholder.

        Raises NotFoundError for an unknown document and StateError when
        nothing is left to fill.
        """
        document = self._get_document(document_id, user_id)
        unfilled = self._unfilled(document.id)
        if not unfilled:
            raise StateError("No placeholders to fill")

        first = unfilled[0]
        count = len(unfilled)
        message = ConversationMessage(
            role=MessageRole.ASSISTANT,
            content=(
                f"Hi! I'll help you fill out this {document.document_type or 'document'}. "
                f"I found {count} field{'s' if count > 1 else ''} to complete.\n\n"
                f"Let's start with: **{first.field_name}**\n"
                f"{example_for_field(first.field_name, first.field_type.value)}\n\n"
                "What value should we use?"
            ),
            metadata=_question_metadata(first),
        )
        conversation = self.store.create_conversation(
            Conversation(
                document_id=document.id,
                user_id=document.user_id,
                current_placeholder_id=first.id,
                total_placeholders=count,
                messages=[message],
            )
        )

        self.store.update_document(document.id, status=DocumentStatus.FILLING)
        self.store.merge_document_metadata(document.id, {"conversation_id": conversation.id})

        logger.info(
            "conversation_started",
            conversation_id=conversation.id,
            document_id=document.id,
            placeholders=count,
        )
        return ConversationTurn(conversation=conversation, message=message)

    def send_message(
        self,
        conversation_id: str,
        text: str,
        user_id: str | None = None,
        expected_version: int | None = None,
    ) -> ConversationTurn:
        """
        Record the answer for the current placeholder and ask the next question.

        The pointer advance is claimed with a compare-and-set before the
        value is written. A stale ``expected_version``, or a concurrent turn
        that wrote first, raises ConcurrentUpdateError and writes nothing.
        A blank answer is rejected, and a fill that fails hands the turn
        back so the same field is asked again.
        """
        if text is None or not text.strip():
            raise InputContractError("Answer is required")

        conversation = self.get(conversation_id, user_id)
        if conversation.status != ConversationStatus.ACTIVE:
            raise StateError("Conversation is not active")
        if expected_version is not None and expected_version != conversation.version:
            raise ConcurrentUpdateError("Conversation was updated by another request")

        current = self.store.get_placeholder(conversation.current_placeholder_id or "")
        if current is None:
            raise NotFoundError("Current placeholder not found")

        remaining = [p for p in self._unfilled(conversation.document_id) if p.id != current.id]
        following = remaining[0] if remaining else None

        user_message = ConversationMessage(role=MessageRole.USER, content=text)
        if following is not None:
            reply = ConversationMessage(
                role=MessageRole.ASSISTANT,
                content=(
                    f'Great! I\'ve recorded "**{text}**" for **{current.field_name}**.\n\n'
                    f"Now, let's fill in: **{following.field_name}**\n"
                    f"{example_for_field(following.field_name, following.field_type.value)}\n\n"
                    "What value should we use?"
                ),
                metadata=_question_metadata(following),
            )
            updated = conversation.model_copy(
                update={
                    "current_placeholder_id": following.id,
                    "filled_count": conversation.filled_count + 1,
                    "messages": [*conversation.messages, user_message, reply],
                }
            )
        else:
            reply = ConversationMessage(
                role=MessageRole.ASSISTANT,
                content=(
                    f'Perfect! I\'ve recorded "{text}" for {current.field_name}. '
                    "That was the last field. Your document is now complete!"
                ),
            )
            updated = conversation.model_copy(
                update={
                    "status": ConversationStatus.COMPLETED,
                    "current_placeholder_id": None,
                    "filled_count": conversation.total_placeholders,
                    "completed_at": utcnow(),
                    "messages": [*conversation.messages, user_message, reply],
                }
            )

        self._write(updated, conversation.version)

        try:
            self.documents.fill_placeholder(conversation.document_id, current.id, text)
        except Exception:
            self._write(conversation, conversation.version + 1)
            raise
        if following is None:
            self.store.update_document(
                conversation.document_id,
                status=DocumentStatus.COMPLETED,
                completion_percentage=100,
            )

        logger.info(
            "conversation_message_processed",
            conversation_id=conversation.id,
            field_name=current.field_name,
            completed=following is None,
        )
        return ConversationTurn(
            conversation=self.store.get_conversation(conversation.id),
            message=reply,
            completed=following is None,
        )

    def complete(self, conversation_id: str, user_id: str | None = None) -> Conversation:
        """Force-finish a conversation and mark its document completed."""
        conversation = self.get(conversation_id, user_id)
        if conversation.status == ConversationStatus.COMPLETED:
            raise StateError("Conversation is already completed")

        self._write(
            conversation.model_copy(
                update={
                    "status": ConversationStatus.COMPLETED,
                    "completed_at": utcnow(),
                }
            ),
            conversation.version,
        )
        self.store.update_document(conversation.document_id, status=DocumentStatus.COMPLETED)
        logger.info("conversation_completed", conversation_id=conversation.id)
        return self.store.get_conversation(conversation.id)

    def pause(self, conversation_id: str, user_id: str | None = None) -> Conversation:
        return self._transition(
            conversation_id, user_id, ConversationStatus.ACTIVE, ConversationStatus.PAUSED
        )

    def resume(self, conversation_id: str, user_id: str | None = None) -> Conversation:
        return self._transition(
            conversation_id, user_id, ConversationStatus.PAUSED, ConversationStatus.ACTIVE
        )

    def get(self, conversation_id: str, user_id: str | None = None) -> Conversation:
        conversation = self.store.get_conversation(conversation_id)
        if conversation is None or (user_id is not None and conversation.user_id != user_id):
            raise NotFoundError("Conversation not found")
        return conversation

    # =========================================================================
    # Helpers
    # =========================================================================

    def _transition(
        self,
        conversation_id: str,
        user_id: str | None,
        source: ConversationStatus,
        target: ConversationStatus,
    ) -> Conversation:
        conversation = self.get(conversation_id, user_id)
        if conversation.status != source:
            raise StateError(f"Conversation is not {source.value}")

        self._write(conversation.model_copy(update={"status": target}), conversation.version)
        logger.info("conversation_status_changed", conversation_id=conversation.id, status=target.value)
        return self.store.get_conversation(conversation.id)

    def _write(self, conversation: Conversation, expected_version: int) -> None:
        if not self.store.update_conversation(conversation, expected_version):
            logger.warning(
                "conversation_version_conflict",
                conversation_id=conversation.id,
                expected_version=expected_version,
            )
            raise ConcurrentUpdateError("Conversation was updated by another request")

    def _get_document(self, document_id: str, user_id: str | None) -> Document:
        document = self.store.get_document(document_id)
        if document is None or (user_id is not None and document.user_id != user_id):
            raise NotFoundError("Document not found")
        return document

    def _unfilled(self, document_id: str) -> list[Placeholder]:
        return [p for p in self.store.get_placeholders(document_id) if not p.is_filled]
