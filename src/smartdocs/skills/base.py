"""
Skill contract and the generic skill runner.

A skill is a record: fixed call configuration, a prompt builder, a declared
output schema and a safe fallback. One runner executes every skill: it
validates input, builds the prompt, calls the service under the retry
policy, then parses and validates the JSON response. Provider and parse
failures turn into the skill's fallback output.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable

import structlog
from pydantic import BaseModel, TypeAdapter, ValidationError

from smartdocs.exceptions import InputContractError, ProviderError, SkillParseError
from smartdocs.models.task import SkillCategory, TaskType, TokenUsage
from smartdocs.services.llm_service import LLMRequest, LLMService, get_llm_service
from smartdocs.skills.retry import RetryPolicy

logger = structlog.get_logger(__name__)

_JSON_FENCE = re.compile(r"```json(.*?)(?:```|\Z)", re.IGNORECASE | re.DOTALL)
_FENCE = re.compile(r"```(.*?)(?:```|\Z)", re.DOTALL)


@dataclass(frozen=True)
class SkillConfig:
    """Fixed call configuration for a skill."""

    name: str
    category: SkillCategory
    task_type: TaskType
    instructions: str
    temperature: float = 0.7
    max_tokens: int = 2000
    model: str | None = None


@dataclass(frozen=True)
class Skill:
    """
    One configured wrapper around a single generative-service call.

    ``input_model`` validates caller input. ``output_schema`` is a pydantic
    model, or a TypeAdapter for array outputs. ``short_circuit`` may return
    an output without calling the service. ``finalize`` post-processes a
    parsed output with access to the input.
    """

    config: SkillConfig
    input_model: type[BaseModel]
    build_prompt: Callable[[Any], str]
    output_schema: type[BaseModel] | TypeAdapter
    fallback: Callable[[Any], Any]
    short_circuit: Callable[[Any], Any] | None = None
    finalize: Callable[[Any, Any], Any] | None = None

    @property
    def name(self) -> str:
        return self.config.name

    def parse_input(self, payload: dict[str, Any] | BaseModel) -> BaseModel:
        """Validate caller input. Raises InputContractError."""
        if isinstance(payload, self.input_model):
            return payload
        if isinstance(payload, BaseModel):
            payload = payload.model_dump()
        if not isinstance(payload, dict):
            raise InputContractError(f"{self.name}: input must be an object")
        try:
            return self.input_model.model_validate(payload)
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            raise InputContractError(
                f"{self.name}: invalid input ({fields})", original_error=e
            ) from e

    def parse_output(self, text: str) -> Any:
        """
        Parse service text into this skill's declared shape.

        Returns plain JSON data with camelCase keys. Raises SkillParseError.
        """
        data = parse_json(text)
        try:
            if isinstance(self.output_schema, TypeAdapter):
                value = self.output_schema.validate_python(data)
                return self.output_schema.dump_python(value, mode="json", by_alias=True)
            value = self.output_schema.model_validate(data)
            return value.model_dump(mode="json", by_alias=True)
        except ValidationError as e:
            raise SkillParseError(
                f"{self.name}: response does not match schema: {e.error_count()} error(s)",
                original_error=e,
            ) from e


@dataclass
class SkillOutcome:
    """Result of one skill execution."""

    output: Any
    used_fallback: bool = False
    error: str | None = None
    usage: TokenUsage = field(default_factory=TokenUsage)
    model: str | None = None
    attempts: int = 0
    failed_attempts: list[str] = field(default_factory=list)


def parse_json(text: str) -> Any:
    """Strip a Markdown code fence, then parse JSON. Raises SkillParseError."""
    if text is None:
        raise SkillParseError("Empty response")
    cleaned = text.strip()
    fence = _JSON_FENCE.search(cleaned) or _FENCE.search(cleaned)
    if fence:
        cleaned = fence.group(1).strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise SkillParseError(f"Invalid JSON in response: {e.msg}", original_error=e) from e


class SkillRunner:
    """Executes any skill under one retry policy and one service client."""

    def __init__(
        self,
        llm: LLMService | None = None,
        retry_policy: RetryPolicy | None = None,
    ):
        self._llm = llm
        self.retry_policy = retry_policy or RetryPolicy.from_settings()

    @property
    def llm(self) -> LLMService:
        if self._llm is None:
            self._llm = get_llm_service()
        return self._llm

    def execute(self, skill: Skill, payload: dict[str, Any] | BaseModel) -> SkillOutcome:
        """
        Run a skill.

        Raises InputContractError for bad input. Provider and parse failures
        never raise: they yield the skill's fallback with used_fallback=True.
        """
        data = skill.parse_input(payload)

        if skill.short_circuit is not None:
            short = skill.short_circuit(data)
            if short is not None:
                logger.info("skill_short_circuit", skill=skill.name)
                return SkillOutcome(output=short)

        request = LLMRequest(
            model=skill.config.model,
            instructions=skill.config.instructions,
            user_text=skill.build_prompt(data),
            temperature=skill.config.temperature,
            max_tokens=skill.config.max_tokens,
        )

        try:
            result = self.retry_policy.call(self.llm.complete, request)
        except ProviderError as e:
            logger.error("skill_provider_failed", skill=skill.name, error=str(e))
            return SkillOutcome(
                output=skill.fallback(data),
                used_fallback=True,
                error=str(e),
                attempts=len(getattr(e, "failures", [])) or 1,
                failed_attempts=list(getattr(e, "failures", [])),
            )

        response = result.value
        outcome = SkillOutcome(
            output=None,
            usage=response.usage,
            model=response.model,
            attempts=result.attempts,
            failed_attempts=result.failures,
        )

        try:
            output = skill.parse_output(response.text)
            if skill.finalize is not None:
                output = skill.finalize(output, data)
        except SkillParseError as e:
            logger.warning("skill_parse_failed", skill=skill.name, error=str(e))
            outcome.output = skill.fallback(data)
            outcome.used_fallback = True
            outcome.error = str(e)
            return outcome

        outcome.output = output
        logger.info(
            "skill_executed",
            skill=skill.name,
            model=response.model,
            attempts=result.attempts,
            tokens=response.usage.total,
        )
        return outcome
