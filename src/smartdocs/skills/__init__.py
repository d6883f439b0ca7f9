"""Generative-service skills."""

from smartdocs.skills.base import Skill, SkillConfig, SkillOutcome, SkillRunner
from smartdocs.skills.registry import BUILTIN_SKILLS, SkillRegistry, get_skill_registry
from smartdocs.skills.retry import RetryPolicy, RetryResult

__all__ = [
    "BUILTIN_SKILLS",
    "RetryPolicy",
    "RetryResult",
    "Skill",
    "SkillConfig",
    "SkillOutcome",
    "SkillRegistry",
    "SkillRunner",
    "get_skill_registry",
]
