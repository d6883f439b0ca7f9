"""Tests for smartdocs/services/document_service.py: analyze, extract, fill, index."""

import pytest

from smartdocs.exceptions import (
    InputContractError,
    NotFoundError,
    ProviderError,
    StateError,
    TextExtractionError,
)
from smartdocs.models.document import (
    DataRoomStatus,
    DocumentStatus,
    FieldType,
    ValidationStatus,
)
from smartdocs.services.document_service import DocumentService, completion_percentage

SAFE_TEXT = "SIMPLE AGREEMENT FOR FUTURE EQUITY between [COMPANY NAME] and [INVESTOR NAME]"

ANALYSIS = {
    "documentType": "SAFE Agreement",
    "confidence": 0.93,
    "complexity": "moderate",
    "metadata": {"parties": ["Company", "Investor"]},
}

PLACEHOLDERS = [
    {"fieldName": "investor_name", "fieldType": "text", "originalText": "[INVESTOR NAME]",
     "position": 2, "suggestedQuestion": "Who is the investor?"},
    {"fieldName": "company_name", "fieldType": "text", "originalText": "[COMPANY NAME]",
     "position": 1, "suggestedQuestion": "What is the company's legal name?"},
]

TEMPLATE = {
    "documentType": "Certificate of Incorporation",
    "category": "Corporate",
    "description": "Charter",
    "complexity": "simple",
    "estimatedFillTime": 5,
    "placeholders": [],
    "entities": [
        {"type": "company_name", "value": "Acme Corp", "confidence": 0.95},
        {"type": "state_of_incorporation", "value": "Delaware", "confidence": 0.9},
    ],
    "summary": "Acme Corp charter",
    "qualityScore": 90,
}


@pytest.fixture
def extracted_paths():
    return []


@pytest.fixture
def service(store, agents, knowledge_graph, extracted_paths):
    def fake_extract(path):
        extracted_paths.append(path)
        return SAFE_TEXT

    return DocumentService(store, agents, knowledge_graph, extract_text=fake_extract)


@pytest.fixture
def uploaded(service):
    return service.create_document("user-1", "safe.docx", "/uploads/safe.docx")


class TestCompletionPercentage:

    def test_empty(self):
        assert completion_percentage([]) == 0

    def test_rounded(self, store, make_document):
        document = make_document(fields=[
            ("a", "text", "x"), ("b", "text", None), ("c", "text", None),
        ])
        assert completion_percentage(store.get_placeholders(document.id)) == 33


class TestCreateAndGet:

    def test_create(self, uploaded):
        assert uploaded.status == DocumentStatus.UPLOADED
        assert uploaded.file_path == "/uploads/safe.docx"

    def test_create_requires_filename(self, service):
        with pytest.raises(InputContractError):
            service.create_document("user-1", "")

    def test_owner_check(self, service, uploaded):
        assert service.get_document(uploaded.id, "user-1").id == uploaded.id
        with pytest.raises(NotFoundError):
            service.get_document(uploaded.id, "user-2")


class TestAnalyzeDocument:

    def test_ready_with_type(self, service, uploaded, fake_llm, reply, extracted_paths):
        fake_llm.complete.return_value = reply(ANALYSIS)
        document = service.analyze_document(uploaded.id)

        assert document.status == DocumentStatus.READY
        assert document.document_type == "SAFE Agreement"
        assert document.classification_confidence == 0.93
        assert document.metadata["complexity"] == "moderate"
        assert document.metadata["analysis"] == {"parties": ["Company", "Investor"]}
        assert document.metadata["analysis_task_id"]
        assert extracted_paths == ["/uploads/safe.docx"]

    def test_given_text_skips_extraction(self, service, uploaded, fake_llm, reply, extracted_paths):
        fake_llm.complete.return_value = reply(ANALYSIS)
        service.analyze_document(uploaded.id, text="inline text")
        assert extracted_paths == []
        assert "inline text" in fake_llm.complete.call_args.args[0].user_text

    def test_fallback_still_ready(self, service, uploaded, fake_llm):
        fake_llm.complete.side_effect = ProviderError("down")
        document = service.analyze_document(uploaded.id)
        assert document.status == DocumentStatus.READY
        assert document.document_type == "Unknown"

    def test_task_error_restores_status(self, service, store, uploaded):
        with pytest.raises(InputContractError):
            service.analyze_document(uploaded.id, text="")
        assert store.get_document(uploaded.id).status == DocumentStatus.UPLOADED

    def test_no_file(self, service):
        document = service.create_document("user-1", "notes.txt")
        with pytest.raises(InputContractError):
            service.analyze_document(document.id)

    def test_requires_agents(self, store, uploaded):
        with pytest.raises(StateError):
            DocumentService(store).analyze_document(uploaded.id)

    def test_extraction_error_propagates(self, store, agents, uploaded):
        def broken(path):
            raise TextExtractionError("File does not exist")

        service = DocumentService(store, agents, extract_text=broken)
        with pytest.raises(TextExtractionError):
            service.analyze_document(uploaded.id)


class TestExtractPlaceholders:

    def test_stored_in_position_order(self, service, store, uploaded, fake_llm, reply):
        fake_llm.complete.return_value = reply(PLACEHOLDERS)
        placeholders = service.extract_placeholders(uploaded.id)

        assert [p.field_name for p in placeholders] == ["company_name", "investor_name"]
        assert [p.position for p in placeholders] == [1, 2]
        assert placeholders[0].field_type == FieldType.TEXT
        assert placeholders[0].filled_value is None
        document = store.get_document(uploaded.id)
        assert document.metadata["placeholder_count"] == 2
        assert document.completion_percentage == 0

    def test_seeded_from_knowledge_graph(self, service, knowledge_graph, uploaded, fake_llm, reply):
        knowledge_graph.add_entity(
            "company_name", "Acme Corp", source_document_type="Charter", confidence=0.95
        )
        fake_llm.complete.return_value = reply(PLACEHOLDERS)
        company, investor = service.extract_placeholders(uploaded.id)

        assert company.suggested_value == "Acme Corp"
        assert company.suggestion_source == "Charter"
        assert company.confidence == 0.95
        assert investor.suggested_value is None
        assert investor.confidence == 0.0

    def test_second_extraction_rejected(self, service, uploaded, fake_llm, reply):
        fake_llm.complete.return_value = reply(PLACEHOLDERS)
        service.extract_placeholders(uploaded.id)
        with pytest.raises(StateError):
            service.extract_placeholders(uploaded.id)

    def test_fallback_stores_nothing(self, service, uploaded, fake_llm):
        fake_llm.complete.side_effect = ProviderError("down")
        assert service.extract_placeholders(uploaded.id) == []


class TestFillPlaceholder:

    @pytest.fixture
    def document(self, make_document):
        return make_document(fields=[
            ("company_name", "text", None),
            ("investor_name", "text", None),
        ])

    def test_fill(self, service, store, document):
        placeholder = store.get_placeholders(document.id)[0]
        filled = service.fill_placeholder(document.id, placeholder.id, "Acme Corp")

        assert filled.filled_value == "Acme Corp"
        assert filled.validation_status == ValidationStatus.VALIDATED
        assert store.get_document(document.id).completion_percentage == 50

    def test_usage_counted(self, service, store, knowledge_graph, document):
        knowledge_graph.add_entity("company_name", "Acme Corp", confidence=0.8)
        placeholder = store.get_placeholders(document.id)[0]
        service.fill_placeholder(document.id, placeholder.id, "Acme Corp")

        entity = store.get_entity("company_name", "Acme Corp")
        assert entity.usage_count == 2
        assert entity.confidence == 0.8

    @pytest.mark.parametrize("value", ["", "   ", None])
    def test_value_required(self, service, store, document, value):
        placeholder = store.get_placeholders(document.id)[0]
        with pytest.raises(InputContractError):
            service.fill_placeholder(document.id, placeholder.id, value)

    def test_placeholder_of_other_document(self, service, store, document, make_document):
        other = make_document(fields=[("company_name", "text", None)])
        foreign = store.get_placeholders(other.id)[0]
        with pytest.raises(NotFoundError):
            service.fill_placeholder(document.id, foreign.id, "Acme Corp")


class TestDataRoom:

    def test_indexed(self, service, store, knowledge_graph, fake_llm, reply):
        fake_llm.complete.return_value = reply(TEMPLATE)
        item = service.index_data_room_document(
            "user-1", "Acme Corp", "Certificate of Incorporation", "/data/charter.pdf"
        )

        assert item.status == DataRoomStatus.INDEXED
        assert item.filename == "charter.pdf"
        assert item.entity_count == 2
        assert item.quality_score == 90
        assert item.summary == "Acme Corp charter"
        assert item.indexed_at is not None

        entities = knowledge_graph.get_entities_by_source_document(item.id)
        assert [e.entity_value for e in entities] == ["Acme Corp", "Delaware"]
        assert entities[0].source_document_type == "Certificate of Incorporation"

    def test_fallback_marks_failed(self, service, store, knowledge_graph, fake_llm):
        fake_llm.complete.side_effect = ProviderError("down")
        item = service.index_data_room_document(
            "user-1", "Acme Corp", "Certificate of Incorporation", "/data/charter.pdf"
        )
        assert item.status == DataRoomStatus.FAILED
        assert item.error
        assert knowledge_graph.search_entities().total == 0

    def test_extraction_error_marks_failed(self, store, agents, fake_llm):
        def broken(path):
            raise TextExtractionError("Failed to parse DOCX file: bad zip")

        service = DocumentService(store, agents, extract_text=broken)
        with pytest.raises(TextExtractionError):
            service.index_data_room_document(
                "user-1", "Acme Corp", "Bylaws", "/data/bylaws.docx"
            )
        fake_llm.complete.assert_not_called()

    def test_delete_entities(self, service, knowledge_graph, fake_llm, reply):
        fake_llm.complete.return_value = reply(TEMPLATE)
        item = service.index_data_room_document(
            "user-1", "Acme Corp", "Certificate of Incorporation", "/data/charter.pdf"
        )
        knowledge_graph.add_entity("company_name", "Beta LLC", source_document_id="other")

        assert service.delete_data_room_entities(item.id) == 2
        assert knowledge_graph.search_entities().total == 1

    def test_delete_unknown(self, service):
        with pytest.raises(NotFoundError):
            service.delete_data_room_entities("missing")
