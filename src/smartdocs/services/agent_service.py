"""
Agent service: routes skill execution requests by name.
"""

from typing import Any

import structlog
from pydantic import BaseModel

from smartdocs.models.task import Task
from smartdocs.services.task_executor import TaskExecutor
from smartdocs.skills.registry import SkillRegistry, get_skill_registry

logger = structlog.get_logger(__name__)


class AgentService:
    """Dispatches a named skill through the task executor."""

    def __init__(self, executor: TaskExecutor, registry: SkillRegistry | None = None):
        self.executor = executor
        self.registry = registry or get_skill_registry()

    def run(self, skill_name: str, payload: dict[str, Any] | BaseModel) -> Task:
        """
        Run a skill by name and return its finalised task.

        Raises InputContractError for a blank name and SkillNotFoundError
        for an unknown one.
        """
        skill = self.registry.get(skill_name)
        return self.executor.run(skill, payload)

    def run_output(self, skill_name: str, payload: dict[str, Any] | BaseModel) -> Any:
        """Run a skill by name and return only its output."""
        return self.run(skill_name, payload).output

    def available_skills(self) -> list[str]:
        return self.registry.names()
