"""
NLSearchAgent: turns a natural-language query into document filters and a
parameterized SQL WHERE clause scoped to the requesting user.
"""

import re
from enum import Enum
from typing import Any

from pydantic import Field, StrictBool, field_validator

from smartdocs.models.task import SkillCategory, TaskType
from smartdocs.skills.base import Skill, SkillConfig
from smartdocs.skills.schema import (
    Confidence,
    NonEmptyStr,
    SkillInput,
    SkillSchema,
    StringList,
    filtered_list,
)

DANGEROUS_SQL = re.compile(r";\s*(DROP|DELETE|INSERT|UPDATE|ALTER|CREATE|TRUNCATE)", re.IGNORECASE)
SQL_COMMENT_OR_TERMINATOR = ("--", "/*", "*/", ";")
_PARAM_RE = re.compile(r"\$(\d+)")


class FilterOperator(str, Enum):
    EQUALS = "equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    BETWEEN = "between"


class SearchInput(SkillInput):
    user_id: NonEmptyStr
    query: NonEmptyStr
    available_document_types: list[str] = Field(default_factory=list)
    available_statuses: list[str] = Field(default_factory=list)


class PlaceholderFilter(SkillSchema):
    field_name: NonEmptyStr
    operator: FilterOperator
    value: str | int | float
    value2: str | int | float | None = None


class DateRange(SkillSchema):
    field: str = "created_at"
    start: str | None = None
    end: str | None = None


def _list_or_empty(v: Any) -> Any:
    return v if isinstance(v, list) else []


class SearchFilters(SkillSchema):
    document_types: StringList = Field(default_factory=list)
    statuses: StringList = Field(default_factory=list)
    date_range: DateRange | None = None
    placeholder_filters: filtered_list(PlaceholderFilter) = Field(default_factory=list)
    text_search: str | None = None
    sort_by: str | None = None
    sort_order: str | None = None
    limit: int | None = None

    @field_validator("document_types", "statuses", "placeholder_filters", mode="before")
    @classmethod
    def lists_only(cls, v: Any) -> Any:
        return _list_or_empty(v)


class SearchPlan(SkillSchema):
    understood: StrictBool
    intent: NonEmptyStr
    filters: SearchFilters
    sql_where: NonEmptyStr
    sql_params: list[str | int | float]
    human_readable: NonEmptyStr
    confidence: Confidence
    suggestions: StringList = Field(default_factory=list)

    @field_validator("suggestions", mode="before")
    @classmethod
    def suggestions_list(cls, v: Any) -> Any:
        return _list_or_empty(v)

    @field_validator("sql_where")
    @classmethod
    def reject_dangerous_sql(cls, v: str) -> str:
        if DANGEROUS_SQL.search(v):
            raise ValueError("potentially dangerous SQL")
        if any(token in v for token in SQL_COMMENT_OR_TERMINATOR):
            raise ValueError("WHERE clause must be a single expression")
        if not _balanced(v):
            raise ValueError("unbalanced parentheses or quotes in WHERE clause")
        return v


def _balanced(where: str) -> bool:
    """Parentheses outside quoted literals never close more than they open."""
    depth = 0
    quoted = False
    for char in where:
        if char == "'":
            quoted = not quoted
        elif quoted:
            continue
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                return False
    return depth == 0 and not quoted


def scope_to_user(where: str, params: list[Any], user_id: str) -> tuple[str, list[Any]]:
    """
    Prefix a WHERE clause with the user filter as $1.

    Existing $n placeholders are shifted to $n+1 so they keep pointing at
    their own parameters.
    """
    where = where.strip()
    if not where or where == "1=1":
        return "user_id = $1", [user_id]
    shifted = _PARAM_RE.sub(lambda m: f"${int(m.group(1)) + 1}", where)
    return f"user_id = $1 AND ({shifted})", [user_id, *params]


def _apply_user_scope(output: dict[str, Any], data: SearchInput) -> dict[str, Any]:
    where, params = scope_to_user(output["sqlWhere"], output["sqlParams"], data.user_id)
    return {**output, "sqlWhere": where, "sqlParams": params}


def _search_prompt(data: SearchInput) -> str:
    doc_types = ", ".join(data.available_document_types) or (
        "SAFE Agreement, NDA, Employment Agreement, Stock Option Agreement, etc."
    )
    statuses = ", ".join(data.available_statuses) or "uploaded, analyzing, ready, filling, completed"
    return f"""User query: "{data.query}"

Available document types: {doc_types}
Available statuses: {statuses}

Schema:
- documents: id, user_id, document_type, status, upload_date, updated_at
- placeholders: id, document_id, field_name, field_type, filled_value

Produce structured filters and a parameterized WHERE clause using $1, $2, ..."""


NL_SEARCH_AGENT = Skill(
    config=SkillConfig(
        name="NLSearchAgent",
        category=SkillCategory.ANALYZER,
        task_type=TaskType.SEARCH_NL,
        instructions=(
            "You translate natural-language document searches into structured filters "
            "and a safe, parameterized SQL WHERE clause. Never emit statements other than "
            "a WHERE clause expression. Respond only with JSON: understood, intent, "
            "filters, sqlWhere, sqlParams, humanReadable, confidence, suggestions."
        ),
        temperature=0.2,
        max_tokens=1500,
    ),
    input_model=SearchInput,
    build_prompt=_search_prompt,
    output_schema=SearchPlan,
    fallback=lambda data: {
        "understood": False,
        "intent": "error",
        "filters": {},
        "sqlWhere": "user_id = $1",
        "sqlParams": [data.user_id],
        "humanReadable": "Search failed - showing all your documents",
        "confidence": 0.0,
        "suggestions": ["Please try rephrasing your query"],
    },
    finalize=_apply_user_scope,
)
