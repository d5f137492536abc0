"""
Matchers -- run one parsed rule logic against one subject.

Every matcher returns a list of Hits. A Hit names what matched and, when
there is something to point at, carries the EvidenceItem for the exact
block or field that caused it. A Hit with no evidence is allowed (for
example a required keyword that is absent) and yields an unverified finding.

Matching is lexical: lowercase substring, optional word boundaries. No
stemming, no fuzzy matching.
"""

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from .logic import (
    CoOccurrenceMatcher,
    ContradictionMatcher,
    KeywordMatcher,
    Matcher,
    NumericRangeMatcher,
)
from .models import EvidenceItem
from .subjects import DENIAL_FIELD_PATH, EvaluationSubject, NumericField, TextBlock

logger = logging.getLogger(__name__)

EXCERPT_WINDOW = 40


@dataclass(frozen=True)
class Hit:
    """One reason a rule fired."""

    detail: str
    evidence: EvidenceItem | None = None
    section_key: str | None = None


# =============================================================================
# TEXT HELPERS
# =============================================================================


@lru_cache(maxsize=1024)
def _word_pattern(term: str) -> re.Pattern:
    return re.compile(rf"(?<!\w){re.escape(term)}(?!\w)")


def find_term(text_lower: str, term: str, whole_word: bool = False) -> int:
    """Index of the first occurrence of term in already-lowercased text, or -1."""
    if not whole_word:
        return text_lower.find(term)
    match = _word_pattern(term).search(text_lower)
    return match.start() if match else -1


def first_match(text_lower: str, terms: list[str], whole_word: bool = False) -> tuple[str, int] | None:
    """First term (in declared order) found in the text, with its position."""
    for term in terms:
        index = find_term(text_lower, term, whole_word)
        if index >= 0:
            return term, index
    return None


def make_excerpt(text: str, start: int, end: int, window: int = EXCERPT_WINDOW) -> str:
    """Slice the original-case text around [start, end) with a fixed window."""
    lo = max(0, start - window)
    hi = min(len(text), end + window)
    excerpt = text[lo:hi].strip()
    if lo > 0:
        excerpt = "..." + excerpt
    if hi < len(text):
        excerpt = excerpt + "..."
    return excerpt


def _block_evidence(block: TextBlock, start: int, end: int) -> EvidenceItem:
    return EvidenceItem(
        source=block.source,
        source_id=block.source_id,
        excerpt=make_excerpt(block.text, start, end),
        field_path=block.field_path,
    )


def _field_evidence(nf: NumericField) -> EvidenceItem:
    if isinstance(nf.raw, (list, tuple)):
        excerpt = "; ".join(str(item).strip() for item in nf.raw if str(item).strip())
    else:
        excerpt = str(nf.raw).strip()
    return EvidenceItem(
        source=nf.source,
        source_id=nf.source_id,
        excerpt=excerpt,
        field_path=nf.field_path,
    )


# =============================================================================
# VALUE PARSERS
# =============================================================================

_NUMBER = re.compile(r"-?\d+(?:[.,]\d+)?")

_DURATION = re.compile(
    r"(\d+(?:[.,]\d+)?)\s*"
    r"(minuten|minutes|minute|mins|min|stunden|stunde|std|hours|hour|hrs|h|tagen|tage|tag|days|day)\b"
)

_UNIT_MINUTES = {
    "minuten": 1, "minutes": 1, "minute": 1, "mins": 1, "min": 1,
    "stunden": 60, "stunde": 60, "std": 60, "hours": 60, "hour": 60, "hrs": 60, "h": 60,
    "tagen": 1440, "tage": 1440, "tag": 1440, "days": 1440, "day": 1440,
}


def parse_number(raw: Any) -> float | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return float(raw)
    if isinstance(raw, str):
        match = _NUMBER.search(raw)
        if match:
            return float(match.group(0).replace(",", "."))
    return None


def parse_duration_minutes(raw: Any) -> float | None:
    """Parse free-text durations ("30 Minuten", "2 hours", "halbe Stunde") into minutes.

    Bare numbers are taken as minutes. Returns None when nothing parses.
    """
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return float(raw)
    if not isinstance(raw, str):
        return None
    text = raw.strip().lower()
    if not text:
        return None
    match = _DURATION.search(text)
    if match:
        value = float(match.group(1).replace(",", "."))
        return value * _UNIT_MINUTES[match.group(2)]
    if "halb" in text and "stunde" in text:
        return 30.0
    if "half" in text and "hour" in text:
        return 30.0
    if re.fullmatch(r"\d+(?:[.,]\d+)?", text):
        return float(text.replace(",", "."))
    return None


def parse_count(raw: Any) -> float | None:
    if isinstance(raw, (list, tuple)):
        return float(sum(1 for item in raw if str(item).strip()))
    if isinstance(raw, str):
        return 1.0 if raw.strip() else 0.0
    return None


PARSERS = {
    "number": parse_number,
    "duration_minutes": parse_duration_minutes,
    "count": parse_count,
}


# =============================================================================
# SCOPE
# =============================================================================


def _block_in_scope(matcher: Matcher, block: TextBlock) -> bool:
    if matcher.sources is not None and block.source not in matcher.sources:
        return False
    if matcher.section_keys is not None and block.section_key not in matcher.section_keys:
        return False
    if (
        matcher.field_paths is not None
        and block.field_path is not None
        and block.field_path not in matcher.field_paths
    ):
        return False
    return True


def _field_in_scope(matcher: Matcher, nf: NumericField) -> bool:
    if matcher.sources is not None and nf.source not in matcher.sources:
        return False
    if matcher.section_keys is not None and nf.section_key not in matcher.section_keys:
        return False
    if matcher.field_paths is not None and nf.field_path not in matcher.field_paths:
        return False
    return True


def scoped_blocks(matcher: Matcher, subject: EvaluationSubject) -> list[TextBlock]:
    return [b for b in subject.text_blocks() if _block_in_scope(matcher, b)]


# =============================================================================
# MATCHERS
# =============================================================================


def match_keyword(matcher: KeywordMatcher, subject: EvaluationSubject) -> list[Hit]:
    hits = []
    for block in scoped_blocks(matcher, subject):
        lower = block.text.lower()
        if first_match(lower, matcher.unless_keywords, matcher.whole_word):
            continue
        found = first_match(lower, matcher.keywords, matcher.whole_word)
        if found is None:
            continue
        term, index = found
        hits.append(Hit(
            detail=f"mentions '{term}'",
            evidence=_block_evidence(block, index, index + len(term)),
            section_key=block.section_key,
        ))

    if matcher.presence_is_violation:
        return hits
    if hits:
        return []
    return [Hit(detail=f"none of {matcher.keywords} present")]


def match_co_occurrence(matcher: CoOccurrenceMatcher, subject: EvaluationSubject) -> list[Hit]:
    hits = []
    for block in scoped_blocks(matcher, subject):
        present = [s.lower() for s in subject.signals(block.section_key)]
        signal = next(
            (wanted for wanted in matcher.signals if any(wanted in s for s in present)),
            None,
        )
        if signal is None:
            continue
        found = first_match(block.text.lower(), matcher.keywords, matcher.whole_word)
        if found is None:
            continue
        term, index = found
        hits.append(Hit(
            detail=f"signal '{signal}' with '{term}'",
            evidence=_block_evidence(block, index, index + len(term)),
            section_key=block.section_key,
        ))
    return hits


def match_numeric_range(matcher: NumericRangeMatcher, subject: EvaluationSubject) -> list[Hit]:
    if matcher.requires_keywords:
        gate = [
            b for b in subject.text_blocks()
            if matcher.sources is None or b.source in matcher.sources
        ]
        if not any(first_match(b.text.lower(), matcher.requires_keywords) for b in gate):
            return []

    parse = PARSERS[matcher.parser]
    hits = []
    for nf in subject.fields(matcher.field):
        if not _field_in_scope(matcher, nf):
            continue
        value = parse(nf.raw)
        if value is None:
            logger.debug(f"[Matchers] {matcher.field}: unparseable value {nf.raw!r}")
            continue
        inside = (
            (matcher.min_value is None or value >= matcher.min_value)
            and (matcher.max_value is None or value <= matcher.max_value)
        )
        if inside != matcher.fire_inside:
            continue
        bounds = f"[{matcher.min_value if matcher.min_value is not None else '-inf'}, " \
                 f"{matcher.max_value if matcher.max_value is not None else 'inf'}]"
        relation = "inside" if matcher.fire_inside else "outside"
        hits.append(Hit(
            detail=f"{matcher.field} = {value:g} {relation} {bounds}",
            evidence=_field_evidence(nf),
            section_key=nf.section_key,
        ))
    return hits


def match_contradiction(matcher: ContradictionMatcher, subject: EvaluationSubject) -> list[Hit]:
    hits = []
    for block in scoped_blocks(matcher, subject):
        lower = block.text.lower()
        first = first_match(lower, matcher.first, matcher.whole_word)
        second = first_match(lower, matcher.second, matcher.whole_word)
        if first is None or second is None:
            continue
        (term_a, index_a), (term_b, index_b) = first, second
        start = min(index_a, index_b)
        end = max(index_a + len(term_a), index_b + len(term_b))
        hits.append(Hit(
            detail=f"'{term_a}' contradicts '{term_b}'",
            evidence=_block_evidence(block, start, end),
            section_key=block.section_key,
        ))
    return hits


MATCHERS = {
    "keyword": match_keyword,
    "co_occurrence": match_co_occurrence,
    "numeric_range": match_numeric_range,
    "contradiction": match_contradiction,
}


def run_matcher(matcher: Matcher, subject: EvaluationSubject) -> list[Hit]:
    """Dispatch on the matcher's type tag."""
    return MATCHERS[matcher.type](matcher, subject)


def find_denial(matcher: Matcher, subject: EvaluationSubject) -> str | None:
    """First denial phrase the intake lists as a relevant negative, if any."""
    if not isinstance(matcher, KeywordMatcher) or not matcher.denials:
        return None
    for block in subject.text_blocks():
        if block.field_path != DENIAL_FIELD_PATH:
            continue
        found = first_match(block.text.lower(), matcher.denials)
        if found is not None:
            return found[0]
    return None
