"""
Skill registry: maps skill names to skill records.
"""

from functools import lru_cache
from typing import Iterator

from smartdocs.exceptions import InputContractError, SkillNotFoundError
from smartdocs.skills.assistant import CONVERSATIONAL_ASSISTANT
from smartdocs.skills.base import Skill
from smartdocs.skills.extraction import DOCUMENT_ANALYZER, PLACEHOLDER_EXTRACTOR, TEMPLATE_ANALYZER
from smartdocs.skills.intelligence import INSIGHTS_ENGINE, MULTI_DOC_INTELLIGENCE
from smartdocs.skills.matching import ENTITY_MATCHER
from smartdocs.skills.search import NL_SEARCH_AGENT
from smartdocs.skills.validation import (
    COMPLIANCE_VALIDATOR,
    CONFLICT_DETECTOR,
    HEALTH_SCORE_CALCULATOR,
)

BUILTIN_SKILLS: tuple[Skill, ...] = (
    DOCUMENT_ANALYZER,
    PLACEHOLDER_EXTRACTOR,
    ENTITY_MATCHER,
    CONVERSATIONAL_ASSISTANT,
    COMPLIANCE_VALIDATOR,
    HEALTH_SCORE_CALCULATOR,
    TEMPLATE_ANALYZER,
    CONFLICT_DETECTOR,
    MULTI_DOC_INTELLIGENCE,
    NL_SEARCH_AGENT,
    INSIGHTS_ENGINE,
)


class SkillRegistry:
    """Name -> Skill lookup."""

    def __init__(self, skills: tuple[Skill, ...] | list[Skill] = ()):
        self._skills: dict[str, Skill] = {}
        for skill in skills:
            self.register(skill)

    def register(self, skill: Skill) -> None:
        if skill.name in self._skills:
            raise ValueError(f"Skill already registered: {skill.name}")
        self._skills[skill.name] = skill

    def get(self, name: str) -> Skill:
        if not name or not name.strip():
            raise InputContractError("Skill name is required")
        try:
            return self._skills[name]
        except KeyError:
            raise SkillNotFoundError(f"Unknown skill: {name}") from None

    def names(self) -> list[str]:
        return sorted(self._skills)

    def __contains__(self, name: object) -> bool:
        return name in self._skills

    def __iter__(self) -> Iterator[Skill]:
        return iter(self._skills.values())

    def __len__(self) -> int:
        return len(self._skills)


@lru_cache()
def get_skill_registry() -> SkillRegistry:
    """Registry holding every built-in skill."""
    return SkillRegistry(BUILTIN_SKILLS)
