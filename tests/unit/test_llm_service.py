"""Tests for smartdocs/services/llm_service.py: providers, fallback, usage."""

import pytest
from unittest.mock import MagicMock

from smartdocs.exceptions import ProviderError, ProviderNotConfiguredError
from smartdocs.services.llm_service import LLMRequest, LLMService, get_llm_service


@pytest.fixture
def llm_service():
    """LLMService with mocked OpenAI/Anthropic clients."""
    svc = LLMService.__new__(LLMService)
    svc._settings = MagicMock()
    svc.primary_provider = "openai"
    svc.primary_model = "gpt-test"
    svc.fallback_provider = "anthropic"
    svc.fallback_model = "claude-test"

    # Mock OpenAI client
    mock_openai = MagicMock()
    mock_oi_response = MagicMock()
    mock_oi_response.choices = [MagicMock(message=MagicMock(content="Primary response"))]
    mock_oi_response.usage = MagicMock(prompt_tokens=12, completion_tokens=8, total_tokens=20)
    mock_openai.chat.completions.create.return_value = mock_oi_response
    svc._openai = mock_openai

    # Mock Anthropic client
    mock_anthropic = MagicMock()
    mock_response = MagicMock()
    mock_response.content = [MagicMock(type="text", text="Fallback response")]
    mock_response.usage = MagicMock(input_tokens=5, output_tokens=3)
    mock_anthropic.messages.create.return_value = mock_response
    svc._anthropic = mock_anthropic

    return svc


@pytest.fixture
def request_():
    return LLMRequest(instructions="system", user_text="user", temperature=0.2, max_tokens=100)


class TestComplete:

    def test_returns_text_and_usage(self, llm_service, request_):
        response = llm_service.complete(request_)
        assert response.text == "Primary response"
        assert response.model == "gpt-test"
        assert response.usage.prompt == 12
        assert response.usage.completion == 8
        assert response.usage.total == 20

    def test_passes_call_configuration(self, llm_service, request_):
        llm_service.complete(request_)
        kwargs = llm_service._openai.chat.completions.create.call_args.kwargs
        assert kwargs["temperature"] == 0.2
        assert kwargs["max_tokens"] == 100
        assert kwargs["messages"][0] == {"role": "system", "content": "system"}
        assert kwargs["messages"][1] == {"role": "user", "content": "user"}

    def test_request_model_overrides_default(self, llm_service):
        request = LLMRequest(model="gpt-4", instructions="s", user_text="u")
        response = llm_service.complete(request)
        assert response.model == "gpt-4"
        assert llm_service._openai.chat.completions.create.call_args.kwargs["model"] == "gpt-4"

    def test_fallback_to_anthropic(self, llm_service, request_):
        llm_service._openai.chat.completions.create.side_effect = Exception("Always fails")
        response = llm_service.complete(request_)
        assert response.text == "Fallback response"
        assert response.model == "claude-test"
        assert response.usage.total == 8

    def test_all_providers_fail(self, llm_service, request_):
        llm_service._openai.chat.completions.create.side_effect = Exception("Fail")
        llm_service._anthropic.messages.create.side_effect = Exception("Also fail")
        with pytest.raises(ProviderError) as exc:
            llm_service.complete(request_)
        assert "openai: Fail" in str(exc.value)
        assert "anthropic: Also fail" in str(exc.value)

    def test_no_fallback_configured(self, llm_service, request_):
        llm_service.fallback_provider = None
        llm_service._openai.chat.completions.create.side_effect = Exception("Fail")
        with pytest.raises(ProviderError):
            llm_service.complete(request_)
        llm_service._anthropic.messages.create.assert_not_called()

    def test_no_clients(self, llm_service, request_):
        llm_service._openai = None
        llm_service._anthropic = None
        with pytest.raises(ProviderNotConfiguredError):
            llm_service.complete(request_)


class TestClientSetup:

    def test_clients_use_timeout(self, monkeypatch):
        mock_openai_cls = MagicMock()
        monkeypatch.setattr("openai.OpenAI", mock_openai_cls)

        settings = MagicMock()
        settings.openai_api_key = "sk-test"
        settings.anthropic_api_key = ""
        settings.llm_timeout = 30

        svc = LLMService(settings)
        mock_openai_cls.assert_called_once_with(api_key="sk-test", timeout=30)
        assert svc._anthropic is None


class TestSingleton:

    def test_get_llm_service_singleton(self, monkeypatch):
        mock_settings = MagicMock()
        mock_settings.anthropic_api_key = ""
        mock_settings.openai_api_key = ""
        mock_settings.llm_provider = "openai"
        mock_settings.llm_model = "test"
        mock_settings.fallback_llm_provider = None
        mock_settings.fallback_llm_model = None
        monkeypatch.setattr("smartdocs.services.llm_service.get_settings", lambda: mock_settings)

        svc1 = get_llm_service()
        svc2 = get_llm_service()
        assert svc1 is svc2
        assert svc1.default_model == "test"
