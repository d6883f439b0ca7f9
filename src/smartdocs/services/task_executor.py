"""
Task executor: runs a skill inside a persisted task record.
"""

from typing import Any

import structlog
from pydantic import BaseModel

from smartdocs.config import ModelPrice, get_settings
from smartdocs.models.task import Agent, Task, TaskStatus, TokenUsage
from smartdocs.skills.base import Skill, SkillOutcome, SkillRunner
from smartdocs.storage.store import Store

logger = structlog.get_logger(__name__)


def calculate_cost(
    usage: TokenUsage,
    model: str | None,
    pricing: dict[str, ModelPrice],
) -> float:
    """USD cost of a call. Unknown models cost 0."""
    price = pricing.get(model or "")
    if price is None:
        return 0.0
    return (usage.prompt / 1000) * price.prompt + (usage.completion / 1000) * price.completion


class TaskExecutor:
    """
    Wraps each skill execution in a task row.

    processing -> completed (output, tokens, cost) or failed (error). The
    finalised row is always read back and returned.
    """

    def __init__(
        self,
        store: Store,
        runner: SkillRunner | None = None,
        pricing: dict[str, ModelPrice] | None = None,
    ):
        self.store = store
        self.runner = runner or SkillRunner()
        self.pricing = pricing if pricing is not None else get_settings().model_pricing
        self._agents: dict[str, Agent] = {}

    def register(self, skill: Skill) -> Agent:
        """Look up or create the agent row for a skill."""
        cached = self._agents.get(skill.name)
        if cached:
            return cached

        agent = self.store.get_or_create_agent(
            Agent(
                name=skill.name,
                category=skill.config.category,
                model=skill.config.model or self.runner.llm.default_model,
                instructions=skill.config.instructions,
                config={
                    "temperature": skill.config.temperature,
                    "max_tokens": skill.config.max_tokens,
                },
            )
        )
        self._agents[skill.name] = agent
        return agent

    def run(self, skill: Skill, payload: dict[str, Any] | BaseModel) -> Task:
        """
        Execute a skill and persist the task.

        Errors raised by the runner (bad input, unexpected failures) are
        recorded on the task and re-raised.
        """
        agent = self.register(skill)
        task_input = payload.model_dump(mode="json") if isinstance(payload, BaseModel) else payload

        task = self.store.create_task(
            Task(
                agent_id=agent.id,
                task_type=skill.config.task_type,
                input=task_input,
                status=TaskStatus.PROCESSING,
            )
        )
        log = logger.bind(task_id=task.id, skill=skill.name)
        log.info("task_started")

        try:
            outcome = self.runner.execute(skill, payload)
        except Exception as e:
            self.store.finalize_task(task.id, TaskStatus.FAILED, error=str(e))
            log.error("task_failed", error=str(e))
            raise

        self._complete(task.id, outcome)
        log.info(
            "task_completed",
            used_fallback=outcome.used_fallback,
            attempts=outcome.attempts,
            tokens=outcome.usage.total,
        )
        return self.store.get_task(task.id)

    def _complete(self, task_id: str, outcome: SkillOutcome) -> None:
        self.store.finalize_task(
            task_id,
            TaskStatus.COMPLETED,
            output=outcome.output,
            error=outcome.error,
            prompt_tokens=outcome.usage.prompt,
            completion_tokens=outcome.usage.completion,
            total_tokens=outcome.usage.total,
            cost=calculate_cost(outcome.usage, outcome.model, self.pricing),
            used_fallback=outcome.used_fallback,
            attempts=outcome.attempts,
        )
