"""Tests for smartdocs/skills/schema.py: normalisation of untrusted output."""

import pytest
from pydantic import ValidationError

from smartdocs.models.consistency import Severity
from smartdocs.skills.schema import (
    Confidence,
    Metadata,
    OptionalText,
    Score,
    SkillSchema,
    StringList,
    filtered_list,
    lenient_enum,
    round_score,
)


class Item(SkillSchema):
    field_name: str
    confidence: Confidence


class Sample(SkillSchema):
    confidence: Confidence = 0.5
    score: Score = 0
    severity: lenient_enum(Severity, Severity.INFO) = Severity.INFO
    items: filtered_list(Item) = []
    tags: StringList = []
    metadata: Metadata = {}
    note: OptionalText = None


class TestConfidence:

    @pytest.mark.parametrize("raw,expected", [(0.42, 0.42), (1.5, 1.0), (-0.2, 0.0), (1, 1.0)])
    def test_clamped(self, raw, expected):
        assert Sample(confidence=raw).confidence == expected

    @pytest.mark.parametrize("raw", ["high", None, True])
    def test_non_numbers_rejected(self, raw):
        with pytest.raises(ValidationError):
            Sample(confidence=raw)


class TestScore:

    @pytest.mark.parametrize("raw,expected", [(84.5, 85), (84.4, 84), (150, 100), (-3, 0), (72, 72)])
    def test_rounded_and_clamped(self, raw, expected):
        assert Sample(score=raw).score == expected

    def test_string_rejected(self):
        with pytest.raises(ValidationError):
            Sample(score="85")

    def test_round_score_half_up(self):
        assert round_score(0.5) == 1
        assert round_score(2.5) == 3


class TestLenientEnum:

    def test_known_value(self):
        assert Sample(severity="critical").severity == Severity.CRITICAL

    def test_unknown_value_uses_default(self):
        assert Sample(severity="catastrophic").severity == Severity.INFO


class TestFilteredList:

    def test_invalid_items_dropped(self):
        sample = Sample.model_validate(
            {
                "items": [
                    {"fieldName": "company_name", "confidence": 0.9},
                    {"fieldName": "missing_confidence"},
                    "not an object",
                ]
            }
        )
        assert [i.field_name for i in sample.items] == ["company_name"]

    def test_non_list_rejected(self):
        with pytest.raises(ValidationError):
            Sample(items={"fieldName": "x", "confidence": 1})


class TestOtherTypes:

    def test_string_list_keeps_non_empty_strings(self):
        assert Sample(tags=["a", "", 3, None, "b"]).tags == ["a", "b"]

    def test_metadata_non_object_becomes_empty(self):
        assert Sample(metadata=["x"]).metadata == {}

    def test_optional_text_accepts_numbers(self):
        assert Sample(note=25000).note == "25000"

    def test_camel_case_wire_names(self):
        dumped = Item(field_name="x", confidence=1).model_dump(by_alias=True)
        assert dumped == {"fieldName": "x", "confidence": 1.0}
