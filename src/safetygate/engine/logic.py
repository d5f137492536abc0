"""
Rule logic grammar -- a small closed set of lexical matchers.

Rule logic is data, not code. Every stored ``logic_json`` must parse into
exactly one of these tagged variants; anything else is rejected at write
time with VALIDATION_ERROR so a malformed rule never reaches evaluation.

  keyword        keyword presence (or required absence) in a text block
  co_occurrence  subject signal present AND a keyword in a text block
  numeric_range  named numeric field outside (or inside) [min, max]
  contradiction  keywords from two mutually exclusive sets in one block

Matching is lexical only (lowercase substring, optional word boundaries).
A keyword rule may list ``denials``: phrases that, when the intake states
them as relevant negatives, contradict the finding without suppressing it.
A ``fallback`` rule only reports when no other rule in the set fired.

Usage:
    matcher = parse_logic({"type": "keyword", "keywords": ["prescribe"]})
    stored = dump_logic(matcher)
"""

import logging
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator, model_validator

from ..errors import RuleValidationError

logger = logging.getLogger(__name__)

EvidenceSourceName = Literal["chat", "intake", "report_section"]


def _clean_terms(values: list[str]) -> list[str]:
    """Lowercase, strip and de-duplicate terms, keeping first-seen order."""
    cleaned: list[str] = []
    for value in values:
        term = value.strip().lower()
        if not term:
            raise ValueError("terms cannot be empty strings")
        if term not in cleaned:
            cleaned.append(term)
    return cleaned


class _MatcherBase(BaseModel):
    """Scope filters shared by every matcher."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    sources: list[EvidenceSourceName] | None = Field(
        None, description="Only consider text blocks from these sources"
    )
    section_keys: list[str] | None = Field(
        None, description="Only consider these report sections (content rules)"
    )
    field_paths: list[str] | None = Field(
        None, description="Only consider these intake field paths"
    )
    fallback: bool = Field(
        False, description="Report only when no other rule in the set fired"
    )


class KeywordMatcher(_MatcherBase):
    type: Literal["keyword"]
    keywords: list[str] = Field(..., min_length=1)
    unless_keywords: list[str] = Field(default_factory=list)
    denials: list[str] = Field(default_factory=list)
    whole_word: bool = False
    presence_is_violation: bool = True

    @field_validator("keywords", "unless_keywords", "denials")
    @classmethod
    def normalize_terms(cls, v: list[str]) -> list[str]:
        return _clean_terms(v)


class CoOccurrenceMatcher(_MatcherBase):
    type: Literal["co_occurrence"]
    signals: list[str] = Field(..., min_length=1)
    keywords: list[str] = Field(..., min_length=1)
    whole_word: bool = False

    @field_validator("signals", "keywords")
    @classmethod
    def normalize_terms(cls, v: list[str]) -> list[str]:
        return _clean_terms(v)


class NumericRangeMatcher(_MatcherBase):
    type: Literal["numeric_range"]
    field: str = Field(..., min_length=1)
    min_value: float | None = None
    max_value: float | None = None
    fire_inside: bool = False
    parser: Literal["number", "duration_minutes", "count"] = "number"
    requires_keywords: list[str] = Field(default_factory=list)

    @field_validator("requires_keywords")
    @classmethod
    def normalize_terms(cls, v: list[str]) -> list[str]:
        return _clean_terms(v)

    @model_validator(mode="after")
    def check_bounds(self) -> "NumericRangeMatcher":
        if self.min_value is None and self.max_value is None:
            raise ValueError("numeric_range needs min_value, max_value, or both")
        if (
            self.min_value is not None
            and self.max_value is not None
            and self.min_value > self.max_value
        ):
            raise ValueError("min_value must not exceed max_value")
        return self


class ContradictionMatcher(_MatcherBase):
    type: Literal["contradiction"]
    first: list[str] = Field(..., min_length=1)
    second: list[str] = Field(..., min_length=1)
    whole_word: bool = False

    @field_validator("first", "second")
    @classmethod
    def normalize_terms(cls, v: list[str]) -> list[str]:
        return _clean_terms(v)

    @model_validator(mode="after")
    def check_disjoint(self) -> "ContradictionMatcher":
        overlap = set(self.first) & set(self.second)
        if overlap:
            raise ValueError(f"contradiction sets overlap: {sorted(overlap)}")
        return self


Matcher = Annotated[
    Union[KeywordMatcher, CoOccurrenceMatcher, NumericRangeMatcher, ContradictionMatcher],
    Field(discriminator="type"),
]

MATCHER_TYPES = ("keyword", "co_occurrence", "numeric_range", "contradiction")

_ADAPTER: TypeAdapter = TypeAdapter(Matcher)


def parse_logic(data: Any) -> Matcher:
    """Parse raw logic JSON into a matcher or raise RuleValidationError."""
    if not isinstance(data, dict):
        raise RuleValidationError("logic must be a JSON object")
    try:
        return _ADAPTER.validate_python(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'logic'}: {err['msg']}"
            for err in e.errors()
        )
        raise RuleValidationError(f"Invalid rule logic: {problems}") from e


def dump_logic(matcher: Matcher) -> dict:
    """Serialize a matcher back to plain JSON for storage."""
    return matcher.model_dump(mode="json", exclude_none=True)
