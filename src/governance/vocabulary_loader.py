"""
Loads, validates, and caches the query vocabulary YAML into typed rule objects.

The vocabulary is the single source of truth for:
  - the schema contract  (fact/dimension tables, aliases, columns)
  - department synonyms  (enumeration order = tie-break order)
  - date-range phrases   (priority order, SQL predicate per range)
  - aggregation keywords (SQL function and target column per kind)
  - metric keywords      (keyword -> metric-name list)
  - comparison keywords  (sort direction per kind)
  - limit patterns       (numeric regexes, default and maximum limits)

It is parsed once per process and never mutated afterwards.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from functools import lru_cache
from typing import Any

import yaml

from src.compiler.models import (
    AGGREGATION_KINDS,
    COMPARISON_KINDS,
    DATE_RANGE_KINDS,
    DEPARTMENTS,
    DateRange,
)
from src.core.config import get_settings
from src.core.errors import VocabularyError

_VOCABULARY_PATH = Path(__file__).resolve().parents[2] / "semantic_layer" / "query_vocabulary.yml"

_IDENTIFIER_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*", re.ASCII)
_SQL_FUNCTIONS = {"SUM", "AVG", "COUNT", "MIN", "MAX"}
_DIRECTIONS = {"ASC", "DESC"}


# ── Typed domain objects ─────────────────────────────────

@dataclass(frozen=True)
class FactTable:
    table: str
    alias: str
    department_key: str
    metric_name: str
    metric_value: str
    metric_date: str
    change_percent: str

    def column(self, name: str) -> str:
        """Alias-qualified column reference, e.g. ``m.metric_date``."""
        return f"{self.alias}.{name}"

    @property
    def columns(self) -> tuple[str, ...]:
        return (
            self.department_key, self.metric_name, self.metric_value,
            self.metric_date, self.change_percent,
        )


@dataclass(frozen=True)
class DimensionTable:
    table: str
    alias: str
    key: str
    name: str
    code: str

    def column(self, name: str) -> str:
        return f"{self.alias}.{name}"

    @property
    def columns(self) -> tuple[str, ...]:
        return (self.key, self.name, self.code)


@dataclass(frozen=True)
class SchemaContract:
    """Tables and columns the generated SQL depends on."""

    fact: FactTable
    dimension: DimensionTable

    def required_columns(self) -> dict[str, tuple[str, ...]]:
        return {
            self.fact.table: self.fact.columns,
            self.dimension.table: self.dimension.columns,
        }

    @property
    def tables(self) -> tuple[str, ...]:
        return (self.fact.table, self.dimension.table)


@dataclass(frozen=True)
class DepartmentRule:
    code: str
    synonyms: tuple[str, ...]

    def matches(self, text: str) -> bool:
        return any(s in text for s in self.synonyms)


@dataclass(frozen=True)
class DateRangeRule:
    kind: str
    phrases: tuple[str, ...]
    predicate: str
    label: str

    def matches(self, text: str) -> bool:
        return any(p in text for p in self.phrases)

    def to_date_range(self) -> DateRange:
        return DateRange(kind=self.kind, predicate=self.predicate, bound_params=[])


@dataclass(frozen=True)
class AggregationRule:
    kind: str
    keywords: tuple[str, ...]
    function: str
    column: str   # alias-qualified
    output: str
    label: str

    def matches(self, text: str) -> bool:
        return any(k in text for k in self.keywords)

    @property
    def expression(self) -> str:
        return f"{self.function}({self.column})"


@dataclass(frozen=True)
class MetricRule:
    keyword: str
    names: tuple[str, ...]


@dataclass(frozen=True)
class ComparisonRule:
    kind: str
    keywords: tuple[str, ...]
    direction: str

    def matches(self, text: str) -> bool:
        return any(k in text for k in self.keywords)


@dataclass(frozen=True)
class LimitRules:
    patterns: tuple[re.Pattern[str], ...]
    default_ranked_limit: int
    max_limit: int


@dataclass(frozen=True)
class Vocabulary:
    """Fully parsed query vocabulary."""

    version: int
    schema: SchemaContract
    departments: tuple[DepartmentRule, ...]
    date_ranges: tuple[DateRangeRule, ...]
    aggregations: tuple[AggregationRule, ...]
    metrics: tuple[MetricRule, ...]
    comparisons: tuple[ComparisonRule, ...]
    limits: LimitRules

    # ── Convenience look-ups ─────────────────────────

    def department_codes(self) -> list[str]:
        return [d.code for d in self.departments]

    def date_range(self, kind: str) -> DateRangeRule | None:
        return next((r for r in self.date_ranges if r.kind == kind), None)

    def aggregation(self, kind: str) -> AggregationRule | None:
        return next((r for r in self.aggregations if r.kind == kind), None)

    def comparison(self, kind: str) -> ComparisonRule | None:
        return next((r for r in self.comparisons if r.kind == kind), None)

    def comparison_keywords(self) -> list[str]:
        return [k for r in self.comparisons for k in r.keywords]


# ── Parsing ──────────────────────────────────────────────

def _identifier(raw: dict[str, Any], key: str, section: str) -> str:
    value = raw.get(key)
    if not isinstance(value, str) or not _IDENTIFIER_RE.fullmatch(value):
        raise VocabularyError(f"{section}.{key} must be a plain SQL identifier, got {value!r}")
    return value


def _phrases(raw: dict[str, Any], key: str, section: str) -> tuple[str, ...]:
    values = raw.get(key) or []
    phrases = tuple(str(v).lower().strip() for v in values if str(v).strip())
    if not phrases:
        raise VocabularyError(f"{section} entry has an empty '{key}' list")
    return phrases


def _parse_schema(raw: dict[str, Any] | None) -> SchemaContract:
    if not raw or "fact" not in raw or "dimension" not in raw:
        raise VocabularyError("schema section must declare 'fact' and 'dimension' tables")
    f, d = raw["fact"], raw["dimension"]
    fact = FactTable(**{
        k: _identifier(f, k, "schema.fact")
        for k in ("table", "alias", "department_key", "metric_name",
                  "metric_value", "metric_date", "change_percent")
    })
    dimension = DimensionTable(**{
        k: _identifier(d, k, "schema.dimension")
        for k in ("table", "alias", "key", "name", "code")
    })
    if fact.alias == dimension.alias:
        raise VocabularyError("fact and dimension tables must use distinct aliases")
    return SchemaContract(fact=fact, dimension=dimension)


def _parse_department(raw: dict[str, Any]) -> DepartmentRule:
    code = str(raw.get("code", "")).lower()
    if code not in DEPARTMENTS:
        raise VocabularyError(
            f"Unknown department '{code}'. Allowed: {', '.join(DEPARTMENTS)}"
        )
    return DepartmentRule(code=code, synonyms=_phrases(raw, "synonyms", "departments"))


def _parse_date_range(raw: dict[str, Any], schema: SchemaContract) -> DateRangeRule:
    kind = raw.get("kind")
    if kind not in DATE_RANGE_KINDS or kind in ("none", "custom"):
        raise VocabularyError(f"Invalid date range kind {kind!r}")
    predicate = str(raw.get("predicate", "")).strip()
    if not predicate:
        raise VocabularyError(f"Date range '{kind}' has no predicate")
    date_col = schema.fact.column(schema.fact.metric_date)
    return DateRangeRule(
        kind=kind,
        phrases=_phrases(raw, "phrases", "date_ranges"),
        predicate=predicate.replace("{date}", date_col),
        label=raw.get("label") or kind.replace("_", " "),
    )


def _parse_aggregation(raw: dict[str, Any], schema: SchemaContract) -> AggregationRule:
    kind = raw.get("kind")
    if kind not in AGGREGATION_KINDS or kind == "none":
        raise VocabularyError(f"Invalid aggregation kind {kind!r}")
    function = str(raw.get("function", "")).upper()
    if function not in _SQL_FUNCTIONS:
        raise VocabularyError(f"Aggregation '{kind}' uses unsupported function {function!r}")
    role = raw.get("column", "metric_value")
    if role not in ("metric_value", "change_percent"):
        raise VocabularyError(f"Aggregation '{kind}' targets unknown column role {role!r}")
    return AggregationRule(
        kind=kind,
        keywords=_phrases(raw, "keywords", "aggregations"),
        function=function,
        column=schema.fact.column(getattr(schema.fact, role)),
        output=_identifier(raw, "output", f"aggregations.{kind}"),
        label=raw.get("label") or f"calculate {kind} of",
    )


def _parse_metric(raw: dict[str, Any]) -> MetricRule:
    keyword = str(raw.get("keyword", "")).lower().strip()
    if not keyword:
        raise VocabularyError("metrics entry is missing 'keyword'")
    names = tuple(raw.get("names") or [])
    if not names:
        raise VocabularyError(f"Metric keyword '{keyword}' maps to no metric names")
    return MetricRule(keyword=keyword, names=names)


def _parse_comparison(raw: dict[str, Any]) -> ComparisonRule:
    kind = raw.get("kind")
    if kind not in COMPARISON_KINDS or kind == "none":
        raise VocabularyError(f"Invalid comparison kind {kind!r}")
    direction = str(raw.get("direction", "")).upper()
    if direction not in _DIRECTIONS:
        raise VocabularyError(f"Comparison '{kind}' has invalid direction {direction!r}")
    return ComparisonRule(
        kind=kind,
        keywords=_phrases(raw, "keywords", "comparisons"),
        direction=direction,
    )


def _parse_limits(raw: dict[str, Any] | None) -> LimitRules:
    raw = raw or {}
    patterns: list[re.Pattern[str]] = []
    for p in raw.get("patterns") or []:
        try:
            compiled = re.compile(p, re.ASCII)
        except re.error as exc:
            raise VocabularyError(f"Invalid limit pattern {p!r}: {exc}") from exc
        if compiled.groups < 1:
            raise VocabularyError(f"Limit pattern {p!r} must capture the number")
        patterns.append(compiled)
    default = int(raw.get("default_ranked_limit", 10))
    max_limit = int(raw.get("max_limit", 1000))
    if default < 0 or max_limit < 1 or default > max_limit:
        raise VocabularyError(
            f"Invalid limits: default_ranked_limit={default}, max_limit={max_limit}"
        )
    return LimitRules(patterns=tuple(patterns), default_ranked_limit=default, max_limit=max_limit)


def _unique(kinds: list[str], section: str) -> None:
    dupes = sorted({k for k in kinds if kinds.count(k) > 1})
    if dupes:
        raise VocabularyError(f"Duplicate {section} entries: {', '.join(dupes)}")


def parse_vocabulary(raw_yaml: dict[str, Any]) -> Vocabulary:
    """Build a :class:`Vocabulary` from the decoded YAML mapping."""
    if not isinstance(raw_yaml, dict):
        raise VocabularyError("Vocabulary file must contain a mapping")
    schema = _parse_schema(raw_yaml.get("schema"))
    departments = tuple(_parse_department(d) for d in raw_yaml.get("departments", []))
    date_ranges = tuple(_parse_date_range(r, schema) for r in raw_yaml.get("date_ranges", []))
    aggregations = tuple(_parse_aggregation(a, schema) for a in raw_yaml.get("aggregations", []))
    metrics = tuple(_parse_metric(m) for m in raw_yaml.get("metrics", []))
    comparisons = tuple(_parse_comparison(c) for c in raw_yaml.get("comparisons", []))

    _unique([d.code for d in departments], "department")
    _unique([r.kind for r in date_ranges], "date range")
    _unique([a.kind for a in aggregations], "aggregation")
    _unique([c.kind for c in comparisons], "comparison")

    return Vocabulary(
        version=raw_yaml.get("version", 1),
        schema=schema,
        departments=departments,
        date_ranges=date_ranges,
        aggregations=aggregations,
        metrics=metrics,
        comparisons=comparisons,
        limits=_parse_limits(raw_yaml.get("limits")),
    )


# ── Public API ───────────────────────────────────────────

@lru_cache
def load_vocabulary(path: str | None = None) -> Vocabulary:
    """Load and cache the query vocabulary from YAML.

    *path* overrides the configured ``vocabulary_path`` setting, which in
    turn overrides the bundled ``semantic_layer/query_vocabulary.yml``.
    """
    source = Path(path or get_settings().vocabulary_path or _VOCABULARY_PATH)
    with open(source) as f:
        raw = yaml.safe_load(f)
    return parse_vocabulary(raw)
