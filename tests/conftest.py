"""Shared pytest fixtures and mocks for the SmartDocs test suite."""

import json

import pytest
from unittest.mock import MagicMock

from smartdocs.config import DEFAULT_MODEL_PRICING
from smartdocs.models.document import Document, FieldType, Placeholder
from smartdocs.models.task import TokenUsage
from smartdocs.services.agent_service import AgentService
from smartdocs.services.knowledge_graph import KnowledgeGraphService
from smartdocs.services.llm_service import LLMResponse
from smartdocs.services.task_executor import TaskExecutor
from smartdocs.skills.base import SkillRunner
from smartdocs.skills.retry import RetryPolicy
from smartdocs.storage.store import Store


# ---------------------------------------------------------------------------
# Singleton cache clearing (autouse)
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def clear_singletons():
    """Clear all @lru_cache singletons between tests."""
    from smartdocs.config import get_settings
    from smartdocs.services.llm_service import get_llm_service
    from smartdocs.skills.registry import get_skill_registry
    from smartdocs.storage.store import get_store

    get_settings.cache_clear()
    get_llm_service.cache_clear()
    get_skill_registry.cache_clear()
    get_store.cache_clear()
    yield


# ---------------------------------------------------------------------------
# Generative service fakes
# ---------------------------------------------------------------------------

def llm_response(payload, prompt=100, completion=50, model="gpt-4"):
    """LLMResponse carrying ``payload`` as JSON text (strings are sent as-is)."""
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return LLMResponse(
        text=text,
        usage=TokenUsage(prompt=prompt, completion=completion, total=prompt + completion),
        model=model,
    )


@pytest.fixture
def fake_llm():
    """MagicMock standing in for LLMService. Script it via complete.return_value / side_effect."""
    llm = MagicMock()
    llm.default_model = "gpt-4"
    return llm


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def retry_policy(sleeps):
    """Default backoff with the sleeps recorded instead of taken."""
    return RetryPolicy(max_attempts=3, base_delay=1.0, multiplier=2.0, sleep=sleeps.append)


@pytest.fixture
def runner(fake_llm, retry_policy):
    return SkillRunner(llm=fake_llm, retry_policy=retry_policy)


# ---------------------------------------------------------------------------
# Storage and services
# ---------------------------------------------------------------------------

@pytest.fixture
def store():
    """In-memory SQLite store with all tables created."""
    s = Store("sqlite://")
    s.create_all()
    yield s
    s.close()


@pytest.fixture
def executor(store, runner):
    return TaskExecutor(store, runner, pricing=dict(DEFAULT_MODEL_PRICING))


@pytest.fixture
def agents(executor):
    return AgentService(executor)


@pytest.fixture
def knowledge_graph(store, agents):
    return KnowledgeGraphService(store, agents)


# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------

@pytest.fixture
def make_document(store):
    """Factory that stores a document with the given placeholders.

    Each placeholder is (field_name, field_type, filled_value); positions
    follow list order starting at 1.
    """

    def _make(user_id="user-1", document_type="SAFE Agreement", fields=(), **kwargs):
        document = store.create_document(
            Document(
                user_id=user_id,
                filename=kwargs.pop("filename", "safe.docx"),
                document_type=document_type,
                **kwargs,
            )
        )
        store.create_placeholders(
            [
                Placeholder(
                    document_id=document.id,
                    field_name=name,
                    field_type=FieldType(field_type),
                    original_text=f"[{name.upper()}]",
                    position=i,
                    filled_value=value,
                )
                for i, (name, field_type, value) in enumerate(fields, start=1)
            ]
        )
        return document

    return _make


@pytest.fixture
def reply():
    """The llm_response builder, for tests that script several calls."""
    return llm_response
