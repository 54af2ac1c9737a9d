"""
Extractor -- converts a natural-language question into an ExtractionResult.

Each sub-extractor reads the lowercased question (plus any explicit override)
and consults only the vocabulary; none depends on another's output, so they
may run in any order.  Rule tables are data (see vocabulary_loader); rule
order in the vocabulary is the evaluation order.
"""
from __future__ import annotations

import re
from collections.abc import Callable
from typing import Any

from src.compiler.models import Aggregation, Comparison, DateRange, ExtractionResult
from src.governance.vocabulary_loader import Vocabulary, load_vocabulary
from src.core.logging import get_logger

logger = get_logger(__name__)

_DIGITS_RE = re.compile(r"[0-9]+", re.ASCII)


# ── Department ───────────────────────────────────────────

def extract_department(
    question: str,
    explicit: str | None = None,
    vocabulary: Vocabulary | None = None,
) -> str | None:
    """Explicit override wins; otherwise the first department with a synonym hit."""
    if explicit:
        return explicit.strip().lower()
    vocabulary = vocabulary or load_vocabulary()
    q = question.lower()
    for rule in vocabulary.departments:
        if rule.matches(q):
            return rule.code
    return None


# ── Date range ───────────────────────────────────────────

def parse_date_range(value: str, vocabulary: Vocabulary | None = None) -> DateRange:
    """Resolve an explicit date-range override through the same rule table.

    Accepts a kind tag (``q4``, ``last_month``) or a phrase (``Q4``,
    ``last month``).  Anything unrecognised is a ``custom`` range with no
    predicate.
    """
    vocabulary = vocabulary or load_vocabulary()
    text = value.strip().lower()
    rule = vocabulary.date_range(re.sub(r"[\s-]+", "_", text))
    if rule is None:
        rule = next((r for r in vocabulary.date_ranges if r.matches(text)), None)
    if rule is None:
        logger.info("Unrecognised date range %r -- no date filter applied", value)
        return DateRange(kind="custom")
    return rule.to_date_range()


def extract_date_range(
    question: str,
    explicit: str | None = None,
    vocabulary: Vocabulary | None = None,
) -> DateRange:
    vocabulary = vocabulary or load_vocabulary()
    if explicit and explicit.strip():
        return parse_date_range(explicit, vocabulary)
    q = question.lower()
    for rule in vocabulary.date_ranges:
        if rule.matches(q):
            return rule.to_date_range()
    return DateRange()


# ── Aggregation ──────────────────────────────────────────

def extract_aggregation(question: str, vocabulary: Vocabulary | None = None) -> Aggregation:
    vocabulary = vocabulary or load_vocabulary()
    q = question.lower()
    for rule in vocabulary.aggregations:
        if rule.matches(q):
            return Aggregation(kind=rule.kind, sql_function=rule.function)
    return Aggregation()


# ── Metrics ──────────────────────────────────────────────

def extract_metrics(question: str, vocabulary: Vocabulary | None = None) -> list[str]:
    """Every matching keyword contributes its full metric list, in table order."""
    vocabulary = vocabulary or load_vocabulary()
    q = question.lower()
    found: list[str] = []
    for rule in vocabulary.metrics:
        if rule.keyword in q:
            found.extend(rule.names)
    return found


# ── Comparison ───────────────────────────────────────────

def extract_comparison(question: str, vocabulary: Vocabulary | None = None) -> Comparison:
    vocabulary = vocabulary or load_vocabulary()
    q = question.lower()
    for rule in vocabulary.comparisons:
        if rule.matches(q):
            return Comparison(kind=rule.kind, sort_direction=rule.direction)
    return Comparison()


# ── Limit ────────────────────────────────────────────────

def validate_limit(raw: Any, max_limit: int) -> int:
    """Return *raw* as a bounded non-negative int, or 0 if it is not one.

    Only ASCII digit strings (or plain ints) are accepted; anything else is
    discarded rather than propagated into SQL text.
    """
    if isinstance(raw, bool):
        return 0
    text = str(raw) if isinstance(raw, int) else raw
    if not isinstance(text, str) or not _DIGITS_RE.fullmatch(text):
        logger.warning("Discarding non-numeric limit %r", raw)
        return 0
    value = int(text)
    if value > max_limit:
        logger.warning("Discarding limit %d (exceeds maximum %d)", value, max_limit)
        return 0
    return value


def extract_limit(question: str, vocabulary: Vocabulary | None = None) -> int:
    """Numeric patterns first (first match wins), then the ranked default, else 0."""
    vocabulary = vocabulary or load_vocabulary()
    q = question.lower()
    rules = vocabulary.limits
    for pattern in rules.patterns:
        m = pattern.search(q)
        if m:
            return validate_limit(m.group(1), rules.max_limit)

    if any(kw in q for kw in vocabulary.comparison_keywords()):
        return rules.default_ranked_limit
    return 0


# ── Composition ──────────────────────────────────────────

_Extractor = Callable[[str, Vocabulary, dict[str, Any]], Any]

# field name -> sub-extractor; each is independent of the others
_EXTRACTORS: dict[str, _Extractor] = {
    "department": lambda q, v, o: extract_department(q, o.get("department"), v),
    "date_range": lambda q, v, o: extract_date_range(q, o.get("date_range"), v),
    "aggregation": lambda q, v, o: extract_aggregation(q, v),
    "metrics": lambda q, v, o: extract_metrics(q, v),
    "comparison": lambda q, v, o: extract_comparison(q, v),
    "limit": lambda q, v, o: extract_limit(q, v),
}


def extract(
    question: str,
    department: str | None = None,
    date_range: str | None = None,
    vocabulary: Vocabulary | None = None,
) -> ExtractionResult:
    """Run every sub-extractor over *question* and assemble the result."""
    vocabulary = vocabulary or load_vocabulary()
    overrides = {"department": department, "date_range": date_range}
    q = question.lower().strip()
    fields = {name: fn(q, vocabulary, overrides) for name, fn in _EXTRACTORS.items()}
    result = ExtractionResult(**fields)
    logger.debug("Extractor -> %s", result.model_dump_json())
    return result
