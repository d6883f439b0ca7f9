"""Tests for smartdocs/skills/registry.py and the agent dispatcher."""

import pytest

from smartdocs.exceptions import InputContractError, SkillNotFoundError
from smartdocs.models.task import TaskStatus
from smartdocs.skills.extraction import DOCUMENT_ANALYZER
from smartdocs.skills.registry import BUILTIN_SKILLS, SkillRegistry, get_skill_registry

SKILL_NAMES = [
    "ComplianceValidator",
    "ConflictDetector",
    "ConversationalAssistant",
    "DocumentAnalyzer",
    "EntityMatcher",
    "HealthScoreCalculator",
    "InsightsEngine",
    "MultiDocIntelligence",
    "NLSearchAgent",
    "PlaceholderExtractor",
    "TemplateAnalyzer",
]


class TestSkillRegistry:

    def test_builtin_skills(self):
        registry = get_skill_registry()
        assert len(registry) == 11
        assert registry.names() == SKILL_NAMES

    def test_singleton(self):
        assert get_skill_registry() is get_skill_registry()

    def test_lookup(self):
        assert get_skill_registry().get("DocumentAnalyzer") is DOCUMENT_ANALYZER
        assert "DocumentAnalyzer" in get_skill_registry()

    def test_unknown_name(self):
        with pytest.raises(SkillNotFoundError):
            get_skill_registry().get("Summarizer")

    @pytest.mark.parametrize("name", ["", "   "])
    def test_blank_name(self, name):
        with pytest.raises(InputContractError):
            get_skill_registry().get(name)

    def test_duplicate_registration(self):
        registry = SkillRegistry(BUILTIN_SKILLS)
        with pytest.raises(ValueError):
            registry.register(DOCUMENT_ANALYZER)


class TestAgentService:

    def test_run_by_name(self, agents, fake_llm, reply):
        fake_llm.complete.return_value = reply(
            {"documentType": "NDA", "confidence": 0.9, "complexity": "simple"}
        )
        task = agents.run("DocumentAnalyzer", {"document_id": "d1", "text": "NDA text"})
        assert task.status == TaskStatus.COMPLETED
        assert task.output["documentType"] == "NDA"

    def test_run_output(self, agents):
        output = agents.run_output(
            "EntityMatcher", {"placeholder_id": "p1", "field_name": "company_name"}
        )
        assert output["source"] == "none"

    def test_unknown_skill(self, agents, store):
        with pytest.raises(SkillNotFoundError):
            agents.run("Summarizer", {})
        assert store.list_tasks() == []

    def test_available_skills(self, agents):
        assert agents.available_skills() == SKILL_NAMES
