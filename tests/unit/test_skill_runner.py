"""Tests for smartdocs/skills/base.py and retry.py: parsing, retries, fallbacks."""

import pytest

from smartdocs.exceptions import (
    InputContractError,
    ProviderError,
    ProviderNotConfiguredError,
    RetryExhaustedError,
    SkillParseError,
)
from smartdocs.skills.base import parse_json
from smartdocs.skills.extraction import DOCUMENT_ANALYZER, PLACEHOLDER_EXTRACTOR
from smartdocs.skills.matching import ENTITY_MATCHER
from smartdocs.skills.retry import RetryPolicy

ANALYSIS = {
    "documentType": "SAFE Agreement",
    "confidence": 0.92,
    "complexity": "moderate",
    "metadata": {"parties": ["Acme Corp"]},
}


class TestParseJson:

    def test_plain(self):
        assert parse_json('{"key": "value"}') == {"key": "value"}

    def test_json_fence(self):
        assert parse_json('Here:\n```json\n{"key": "value"}\n```\nDone.') == {"key": "value"}

    def test_generic_fence(self):
        assert parse_json("Result:\n```\n[1, 2, 3]\n```") == [1, 2, 3]

    @pytest.mark.parametrize("tag", ["JSON", "Json"])
    def test_fence_tag_any_case(self, tag):
        assert parse_json(f'```{tag}\n{{"key": "value"}}\n```') == {"key": "value"}

    def test_unclosed_fence(self):
        assert parse_json('```json\n{"key": 1}') == {"key": 1}

    def test_malformed(self):
        with pytest.raises(SkillParseError):
            parse_json("This is not JSON at all")

    def test_truncated(self):
        with pytest.raises(SkillParseError):
            parse_json('{"documentType": "SAFE", "confid')


class TestRetryPolicy:

    def test_default_delays(self):
        assert RetryPolicy().delays() == [1.0, 2.0]

    def test_success_after_failures(self, retry_policy, sleeps):
        calls = {"n": 0}

        def flaky():
            calls["n"] += 1
            if calls["n"] < 3:
                raise ProviderError(f"timeout {calls['n']}")
            return "ok"

        result = retry_policy.call(flaky)
        assert result.value == "ok"
        assert result.attempts == 3
        assert result.failures == ["ProviderError: timeout 1", "ProviderError: timeout 2"]
        assert sleeps == [1.0, 2.0]

    def test_exhausted(self, retry_policy, sleeps):
        def always_fails():
            raise ProviderError("down")

        with pytest.raises(RetryExhaustedError) as exc:
            retry_policy.call(always_fails)
        assert len(exc.value.failures) == 3
        assert len(sleeps) == 2

    def test_not_configured_is_not_retried(self, retry_policy, sleeps):
        calls = {"n": 0}

        def not_configured():
            calls["n"] += 1
            raise ProviderNotConfiguredError("no key")

        with pytest.raises(ProviderNotConfiguredError):
            retry_policy.call(not_configured)
        assert calls["n"] == 1
        assert sleeps == []

    def test_other_errors_propagate(self, retry_policy):
        def broken():
            raise KeyError("bug")

        with pytest.raises(KeyError):
            retry_policy.call(broken)


class TestSkillRunner:

    def test_parses_output(self, runner, fake_llm, reply):
        fake_llm.complete.return_value = reply(ANALYSIS)
        outcome = runner.execute(DOCUMENT_ANALYZER, {"document_id": "d1", "text": "SAFE text"})
        assert outcome.used_fallback is False
        assert outcome.output == ANALYSIS
        assert outcome.usage.total == 150
        assert outcome.attempts == 1

    def test_request_uses_skill_configuration(self, runner, fake_llm, reply):
        fake_llm.complete.return_value = reply(ANALYSIS)
        runner.execute(DOCUMENT_ANALYZER, {"document_id": "d1", "text": "SAFE text"})
        request = fake_llm.complete.call_args.args[0]
        assert request.temperature == 0.3
        assert request.max_tokens == 1500
        assert request.instructions == DOCUMENT_ANALYZER.config.instructions
        assert "SAFE text" in request.user_text

    def test_fenced_output(self, runner, fake_llm, reply):
        fake_llm.complete.return_value = reply("```json\n" + '{"documentType": "NDA", '
                                               '"confidence": 0.8, "complexity": "simple"}' + "\n```")
        outcome = runner.execute(DOCUMENT_ANALYZER, {"document_id": "d1", "text": "t"})
        assert outcome.output["documentType"] == "NDA"
        assert outcome.output["metadata"] == {}

    def test_truncated_output_falls_back(self, runner, fake_llm, reply):
        fake_llm.complete.return_value = reply('{"documentType": "SAFE", "confid')
        outcome = runner.execute(DOCUMENT_ANALYZER, {"document_id": "d1", "text": "t"})
        assert outcome.used_fallback is True
        assert outcome.output["documentType"] == "Unknown"
        assert outcome.output["confidence"] == 0.0
        assert outcome.usage.total == 150

    def test_schema_mismatch_falls_back(self, runner, fake_llm, reply):
        fake_llm.complete.return_value = reply({"documentType": "SAFE"})
        outcome = runner.execute(DOCUMENT_ANALYZER, {"document_id": "d1", "text": "t"})
        assert outcome.used_fallback is True
        assert "schema" in outcome.error

    def test_two_failures_then_success(self, runner, fake_llm, reply, sleeps):
        fake_llm.complete.side_effect = [
            ProviderError("timeout"),
            ProviderError("rate limited"),
            reply(ANALYSIS),
        ]
        outcome = runner.execute(DOCUMENT_ANALYZER, {"document_id": "d1", "text": "t"})
        assert outcome.used_fallback is False
        assert outcome.attempts == 3
        assert len(outcome.failed_attempts) == 2
        assert sleeps == [1.0, 2.0]

    def test_provider_exhausted_falls_back(self, runner, fake_llm):
        fake_llm.complete.side_effect = ProviderError("down")
        outcome = runner.execute(PLACEHOLDER_EXTRACTOR, {"document_id": "d1", "text": "t"})
        assert outcome.used_fallback is True
        assert outcome.output == []
        assert outcome.attempts == 3
        assert fake_llm.complete.call_count == 3

    def test_not_configured_falls_back_once(self, runner, fake_llm):
        fake_llm.complete.side_effect = ProviderNotConfiguredError("no key")
        outcome = runner.execute(DOCUMENT_ANALYZER, {"document_id": "d1", "text": "t"})
        assert outcome.used_fallback is True
        assert fake_llm.complete.call_count == 1

    def test_invalid_input_raises(self, runner, fake_llm):
        with pytest.raises(InputContractError) as exc:
            runner.execute(DOCUMENT_ANALYZER, {"document_id": "d1"})
        assert "text" in str(exc.value)
        fake_llm.complete.assert_not_called()

    def test_non_object_input_raises(self, runner):
        with pytest.raises(InputContractError):
            runner.execute(DOCUMENT_ANALYZER, ["not", "an", "object"])

    def test_short_circuit_skips_service(self, runner, fake_llm):
        outcome = runner.execute(
            ENTITY_MATCHER,
            {"placeholder_id": "p1", "field_name": "company_name", "entities": []},
        )
        assert outcome.output["source"] == "none"
        assert outcome.used_fallback is False
        fake_llm.complete.assert_not_called()
