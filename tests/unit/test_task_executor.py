"""Tests for smartdocs/services/task_executor.py: task records, tokens, cost."""

import pytest

from smartdocs.config import DEFAULT_MODEL_PRICING
from smartdocs.exceptions import InputContractError, ProviderError
from smartdocs.models.task import SkillCategory, TaskStatus, TaskType, TokenUsage
from smartdocs.services.task_executor import TaskExecutor, calculate_cost
from smartdocs.skills.extraction import DOCUMENT_ANALYZER

ANALYSIS = {"documentType": "SAFE Agreement", "confidence": 0.9, "complexity": "moderate"}


class TestCalculateCost:

    def test_gpt4(self):
        usage = TokenUsage(prompt=100, completion=50, total=150)
        assert calculate_cost(usage, "gpt-4", DEFAULT_MODEL_PRICING) == pytest.approx(0.006)

    def test_unknown_model_is_free(self):
        usage = TokenUsage(prompt=1000, completion=1000, total=2000)
        assert calculate_cost(usage, "mystery-model", DEFAULT_MODEL_PRICING) == 0.0

    def test_no_model(self):
        assert calculate_cost(TokenUsage(prompt=10), None, DEFAULT_MODEL_PRICING) == 0.0


class TestTaskExecutor:

    def test_completed_task(self, executor, fake_llm, reply):
        fake_llm.complete.return_value = reply(ANALYSIS)
        task = executor.run(DOCUMENT_ANALYZER, {"document_id": "d1", "text": "SAFE"})

        assert task.status == TaskStatus.COMPLETED
        assert task.task_type == TaskType.ANALYZE_DOCUMENT
        assert task.output["documentType"] == "SAFE Agreement"
        assert task.input == {"document_id": "d1", "text": "SAFE"}
        assert task.prompt_tokens == 100
        assert task.completion_tokens == 50
        assert task.total_tokens == 150
        assert task.cost == pytest.approx(0.006)
        assert task.used_fallback is False
        assert task.attempts == 1
        assert task.completed_at is not None

    def test_fallback_task_is_completed(self, executor, fake_llm):
        fake_llm.complete.side_effect = ProviderError("down")
        task = executor.run(DOCUMENT_ANALYZER, {"document_id": "d1", "text": "SAFE"})

        assert task.status == TaskStatus.COMPLETED
        assert task.used_fallback is True
        assert task.output["documentType"] == "Unknown"
        assert task.error
        assert task.cost == 0.0
        assert task.attempts == 3

    def test_input_error_fails_task(self, executor, store):
        with pytest.raises(InputContractError):
            executor.run(DOCUMENT_ANALYZER, {"document_id": "d1"})

        [task] = store.list_tasks()
        assert task.status == TaskStatus.FAILED
        assert "text" in task.error

    def test_agent_registered_once(self, executor, store, fake_llm, reply):
        fake_llm.complete.return_value = reply(ANALYSIS)
        first = executor.run(DOCUMENT_ANALYZER, {"document_id": "d1", "text": "a"})
        second = executor.run(DOCUMENT_ANALYZER, {"document_id": "d2", "text": "b"})

        assert first.agent_id == second.agent_id
        agent = store.get_agent_by_name("DocumentAnalyzer")
        assert agent.category == SkillCategory.ANALYZER
        assert agent.model == "gpt-4"
        assert agent.config == {"temperature": 0.3, "max_tokens": 1500}
        assert len(store.list_tasks(agent_id=agent.id)) == 2

    def test_agent_reused_across_executors(self, executor, store, runner):
        first = executor.register(DOCUMENT_ANALYZER)
        second = TaskExecutor(store, runner, pricing={}).register(DOCUMENT_ANALYZER)
        assert first.id == second.id
