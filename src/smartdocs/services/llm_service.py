"""
LLM service: the generative text client used by every skill.

Supports OpenAI (primary by default) and Anthropic, with an optional
fallback provider. Retries are not applied here; callers wrap ``complete``
in a RetryPolicy.
"""

from functools import lru_cache

import structlog
from pydantic import BaseModel, Field

from smartdocs.config import Settings, get_settings
from smartdocs.exceptions import ProviderError, ProviderNotConfiguredError
from smartdocs.models.task import TokenUsage

logger = structlog.get_logger(__name__)


class LLMRequest(BaseModel):
    """One generative-service call."""

    model: str | None = None
    instructions: str
    user_text: str
    temperature: float = Field(default=0.7, ge=0, le=2)
    max_tokens: int = Field(default=2000, ge=1)


class LLMResponse(BaseModel):
    """Text content plus token usage."""

    text: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str


class LLMService:
    """LLM service with primary + fallback providers."""

    def __init__(self, settings: Settings | None = None):
        self._settings = settings or get_settings()
        self._anthropic = None
        self._openai = None

        if self._settings.openai_api_key:
            from openai import OpenAI
            self._openai = OpenAI(
                api_key=self._settings.openai_api_key,
                timeout=self._settings.llm_timeout,
            )

        if self._settings.anthropic_api_key:
            from anthropic import Anthropic
            self._anthropic = Anthropic(
                api_key=self._settings.anthropic_api_key,
                timeout=self._settings.llm_timeout,
            )

        self.primary_provider = self._settings.llm_provider
        self.primary_model = self._settings.llm_model
        self.fallback_provider = self._settings.fallback_llm_provider
        self.fallback_model = self._settings.fallback_llm_model

    @property
    def default_model(self) -> str:
        return self.primary_model

    def _client_for(self, provider: str | None):
        if provider == "openai":
            return self._openai
        if provider == "anthropic":
            return self._anthropic
        return None

    def _call_openai(self, request: LLMRequest, model: str) -> LLMResponse:
        if self._openai is None:
            raise ProviderNotConfiguredError("OpenAI client not configured. Set OPENAI_API_KEY.")
        response = self._openai.chat.completions.create(
            model=model,
            temperature=request.temperature,
            max_tokens=request.max_tokens,
            messages=[
                {"role": "system", "content": request.instructions},
                {"role": "user", "content": request.user_text},
            ],
        )
        usage = response.usage
        return LLMResponse(
            text=response.choices[0].message.content or "",
            usage=TokenUsage(
                prompt=getattr(usage, "prompt_tokens", 0) or 0,
                completion=getattr(usage, "completion_tokens", 0) or 0,
                total=getattr(usage, "total_tokens", 0) or 0,
            ),
            model=model,
        )

    def _call_anthropic(self, request: LLMRequest, model: str) -> LLMResponse:
        if self._anthropic is None:
            raise ProviderNotConfiguredError(
                "Anthropic client not configured. Set ANTHROPIC_API_KEY."
            )
        response = self._anthropic.messages.create(
            model=model,
            max_tokens=request.max_tokens,
            temperature=request.temperature,
            system=request.instructions,
            messages=[{"role": "user", "content": request.user_text}],
        )
        prompt = getattr(response.usage, "input_tokens", 0) or 0
        completion = getattr(response.usage, "output_tokens", 0) or 0
        text = "".join(
            block.text for block in response.content if getattr(block, "type", "text") == "text"
        )
        return LLMResponse(
            text=text,
            usage=TokenUsage(prompt=prompt, completion=completion, total=prompt + completion),
            model=model,
        )

    def _call(self, provider: str, request: LLMRequest, model: str) -> LLMResponse:
        if provider == "anthropic":
            return self._call_anthropic(request, model)
        return self._call_openai(request, model)

    def complete(self, request: LLMRequest) -> LLMResponse:
        """
        Run one generation against the primary provider, then the fallback.

        Raises ProviderError when every configured provider fails.
        """
        model = request.model or self.primary_model
        errors: list[str] = []

        if self._client_for(self.primary_provider) is not None:
            try:
                return self._call(self.primary_provider, request, model)
            except Exception as e:
                logger.warning(
                    "llm_primary_failed",
                    provider=self.primary_provider,
                    model=model,
                    error=str(e),
                )
                errors.append(f"{self.primary_provider}: {e}")

        if (
            self.fallback_provider
            and self.fallback_model
            and self._client_for(self.fallback_provider) is not None
        ):
            try:
                return self._call(self.fallback_provider, request, self.fallback_model)
            except Exception as e:
                logger.warning(
                    "llm_fallback_failed",
                    provider=self.fallback_provider,
                    model=self.fallback_model,
                    error=str(e),
                )
                errors.append(f"{self.fallback_provider}: {e}")

        if not errors:
            raise ProviderNotConfiguredError(
                "No LLM provider available. Set OPENAI_API_KEY or ANTHROPIC_API_KEY."
            )
        raise ProviderError("; ".join(errors))


@lru_cache()
def get_llm_service() -> LLMService:
    """Get cached LLM service singleton."""
    return LLMService()
