"""Tests for smartdocs/services/conversation.py: filling flow and versioning."""

import pytest
from unittest.mock import patch

from smartdocs.exceptions import (
    ConcurrentUpdateError,
    InputContractError,
    NotFoundError,
    StateError,
)
from smartdocs.models.conversation import ConversationStatus, MessageRole
from smartdocs.models.document import DocumentStatus
from smartdocs.services.conversation import (
    DEFAULT_EXAMPLE,
    ConversationService,
    example_for_field,
)


@pytest.fixture
def service(store):
    return ConversationService(store)


@pytest.fixture
def document(make_document):
    return make_document(fields=[
        ("company_name", "text", None),
        ("purchase_amount", "currency", None),
        ("effective_date", "date", None),
    ])


class TestExampleForField:

    @pytest.mark.parametrize("field_name,field_type,expected", [
        ("company_name", "text", "Acme Corporation"),
        ("investor_name", "text", "John Smith"),
        ("notice_email", "email", "john.smith@company.com"),
        ("purchase_amount", "currency", "$10,000"),
        ("closing", "date", "December 31, 2025"),
        ("shares", "number", '"100"'),
    ])
    def test_examples(self, field_name, field_type, expected):
        assert expected in example_for_field(field_name, field_type)

    def test_default(self):
        assert example_for_field("governing_law", "text") == DEFAULT_EXAMPLE


class TestStart:

    def test_first_question(self, service, store, document):
        turn = service.start(document.id)

        assert turn.message.role == MessageRole.ASSISTANT
        assert "I found 3 fields to complete" in turn.message.content
        assert "**company_name**" in turn.message.content
        assert turn.message.metadata["field_name"] == "company_name"
        assert turn.conversation.total_placeholders == 3
        assert turn.conversation.version == 1

        stored = store.get_document(document.id)
        assert stored.status == DocumentStatus.FILLING
        assert stored.metadata["conversation_id"] == turn.conversation.id

    def test_single_field_wording(self, service, make_document):
        document = make_document(fields=[("company_name", "text", None)])
        assert "I found 1 field to complete" in service.start(document.id).message.content

    def test_skips_filled_fields(self, service, make_document):
        document = make_document(fields=[
            ("company_name", "text", "Acme Corp"),
            ("purchase_amount", "currency", None),
        ])
        turn = service.start(document.id)
        assert turn.message.metadata["field_name"] == "purchase_amount"
        assert turn.conversation.total_placeholders == 1

    def test_nothing_to_fill(self, service, make_document):
        document = make_document(fields=[("company_name", "text", "Acme Corp")])
        with pytest.raises(StateError):
            service.start(document.id)

    def test_unknown_document(self, service):
        with pytest.raises(NotFoundError):
            service.start("missing")

    def test_other_users_document(self, service, document):
        with pytest.raises(NotFoundError):
            service.start(document.id, user_id="user-2")


class TestSendMessage:

    def test_fills_in_order_then_completes(self, service, store, document):
        conversation = service.start(document.id).conversation

        first = service.send_message(conversation.id, "Acme Corp")
        assert first.completed is False
        assert "**purchase_amount**" in first.message.content
        assert first.conversation.filled_count == 1
        assert first.conversation.version == 2
        assert store.get_document(document.id).completion_percentage == 33

        second = service.send_message(conversation.id, "$100,000")
        assert "**effective_date**" in second.message.content

        last = service.send_message(conversation.id, "2025-01-15")
        assert last.completed is True
        assert "Your document is now complete!" in last.message.content
        assert last.conversation.status == ConversationStatus.COMPLETED
        assert last.conversation.current_placeholder_id is None
        assert len(last.conversation.messages) == 7

        values = [p.filled_value for p in store.get_placeholders(document.id)]
        assert values == ["Acme Corp", "$100,000", "2025-01-15"]
        stored = store.get_document(document.id)
        assert stored.status == DocumentStatus.COMPLETED
        assert stored.completion_percentage == 100

    def test_answers_feed_knowledge_graph(self, service, store, document):
        conversation = service.start(document.id).conversation
        service.send_message(conversation.id, "Acme Corp")
        entity = store.get_entity("company_name", "Acme Corp")
        assert entity is not None
        assert entity.usage_count == 1

    def test_completed_conversation_rejects_messages(self, service, make_document):
        document = make_document(fields=[("company_name", "text", None)])
        conversation = service.start(document.id).conversation
        service.send_message(conversation.id, "Acme Corp")
        with pytest.raises(StateError):
            service.send_message(conversation.id, "Another")

    def test_stale_version(self, service, store, document):
        conversation = service.start(document.id).conversation
        service.send_message(conversation.id, "Acme Corp", expected_version=1)

        with pytest.raises(ConcurrentUpdateError):
            service.send_message(conversation.id, "$100,000", expected_version=1)
        assert store.get_placeholders(document.id)[1].filled_value is None

    def test_lost_race_writes_nothing(self, service, store, document):
        conversation = service.start(document.id).conversation
        with patch.object(store, "update_conversation", return_value=False):
            with pytest.raises(ConcurrentUpdateError):
                service.send_message(conversation.id, "Acme Corp")
        assert store.get_placeholders(document.id)[0].filled_value is None

    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_blank_answer_keeps_pointer(self, service, store, document, text):
        conversation = service.start(document.id).conversation

        with pytest.raises(InputContractError):
            service.send_message(conversation.id, text)

        stored = store.get_conversation(conversation.id)
        assert stored.current_placeholder_id == conversation.current_placeholder_id
        assert stored.filled_count == 0
        assert stored.version == 1

    def test_blank_last_answer_does_not_complete(self, service, store, make_document):
        document = make_document(fields=[("company_name", "text", None)])
        conversation = service.start(document.id).conversation

        with pytest.raises(InputContractError):
            service.send_message(conversation.id, "")

        assert store.get_conversation(conversation.id).status == ConversationStatus.ACTIVE
        stored = store.get_document(document.id)
        assert stored.status == DocumentStatus.FILLING
        assert stored.completion_percentage == 0

    def test_failed_fill_hands_turn_back(self, service, store, document):
        conversation = service.start(document.id).conversation

        with patch.object(
            service.documents, "fill_placeholder", side_effect=NotFoundError("Placeholder not found")
        ):
            with pytest.raises(NotFoundError):
                service.send_message(conversation.id, "Acme Corp")

        stored = store.get_conversation(conversation.id)
        assert stored.status == ConversationStatus.ACTIVE
        assert stored.current_placeholder_id == conversation.current_placeholder_id
        assert stored.filled_count == 0
        assert len(stored.messages) == 1

        turn = service.send_message(conversation.id, "Acme Corp")
        assert store.get_placeholders(document.id)[0].filled_value == "Acme Corp"
        assert "**purchase_amount**" in turn.message.content

    def test_unknown_conversation(self, service):
        with pytest.raises(NotFoundError):
            service.send_message("missing", "x")


class TestLifecycle:

    def test_pause_and_resume(self, service, document):
        conversation = service.start(document.id).conversation

        paused = service.pause(conversation.id)
        assert paused.status == ConversationStatus.PAUSED
        with pytest.raises(StateError):
            service.send_message(conversation.id, "Acme Corp")

        resumed = service.resume(conversation.id)
        assert resumed.status == ConversationStatus.ACTIVE
        assert resumed.version == 3

    def test_resume_requires_paused(self, service, document):
        conversation = service.start(document.id).conversation
        with pytest.raises(StateError):
            service.resume(conversation.id)

    def test_complete(self, service, store, document):
        conversation = service.start(document.id).conversation
        completed = service.complete(conversation.id)
        assert completed.status == ConversationStatus.COMPLETED
        assert completed.completed_at is not None
        assert store.get_document(document.id).status == DocumentStatus.COMPLETED
        with pytest.raises(StateError):
            service.complete(conversation.id)

    def test_get_checks_owner(self, service, document):
        conversation = service.start(document.id).conversation
        assert service.get(conversation.id, user_id="user-1").id == conversation.id
        with pytest.raises(NotFoundError):
            service.get(conversation.id, user_id="user-2")
