"""
Reusable field types for skill output schemas.

Generative-service output is untrusted. These annotated types apply the
same normalisation everywhere: confidences clamp to [0, 1], scores round
and clamp to [0, 100], unknown enum values fall back to a default, and list
items that fail their own schema are dropped rather than repaired.
"""

import math
from enum import Enum
from typing import Annotated, Any, TypeVar

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    StringConstraints,
    TypeAdapter,
    ValidationError,
)
from pydantic.alias_generators import to_camel

E = TypeVar("E", bound=Enum)


class SkillSchema(BaseModel):
    """Base for skill output models. Wire names are camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


def _require_number(v: Any) -> float:
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        raise ValueError("must be a number")
    return float(v)


def clamp_unit(v: float) -> float:
    return min(1.0, max(0.0, v))


def round_score(v: Any) -> int:
    """Round half up and clamp to [0, 100]."""
    v = _require_number(v)
    return int(min(100, max(0, math.floor(v + 0.5))))


Confidence = Annotated[float, BeforeValidator(_require_number), AfterValidator(clamp_unit)]
Score = Annotated[int, BeforeValidator(round_score)]
NonEmptyStr = Annotated[str, StringConstraints(min_length=1)]


def lenient_enum(enum_cls: type[E], default: E) -> Any:
    """Enum field that coerces unknown values to ``default``."""

    def coerce(v: Any) -> E:
        try:
            return enum_cls(v)
        except (ValueError, TypeError):
            return default

    return Annotated[enum_cls, BeforeValidator(coerce)]


def filtered_list(item_type: Any) -> Any:
    """List field that silently drops items failing ``item_type``'s schema."""
    adapter = TypeAdapter(item_type)

    def keep_valid(v: Any) -> list:
        if not isinstance(v, list):
            raise ValueError("must be a list")
        kept = []
        for item in v:
            try:
                kept.append(adapter.validate_python(item))
            except ValidationError:
                continue
        return kept

    return Annotated[list[item_type], BeforeValidator(keep_valid)]


def strings(v: Any) -> list[str]:
    """Keep only non-empty string items of a list."""
    if not isinstance(v, list):
        raise ValueError("must be a list")
    return [item for item in v if isinstance(item, str) and item]


StringList = Annotated[list[str], BeforeValidator(strings)]


def _object_or_empty(v: Any) -> dict:
    return v if isinstance(v, dict) else {}


Metadata = Annotated[dict[str, Any], BeforeValidator(_object_or_empty)]


def _whole_number(v: Any) -> int:
    return int(_require_number(v))


WholeNumber = Annotated[int, BeforeValidator(_whole_number)]


class SkillInput(BaseModel):
    """Base for skill input models."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


def _text_or_none(v: Any) -> str | None:
    """Accept strings and numbers as text."""
    if v is None or isinstance(v, str):
        return v
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    raise ValueError("must be text")


OptionalText = Annotated[str | None, BeforeValidator(_text_or_none)]
Text = Annotated[str, BeforeValidator(_text_or_none), StringConstraints(min_length=1)]
