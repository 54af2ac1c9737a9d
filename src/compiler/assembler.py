"""
SQL assembler -- renders an ExtractionResult into one parameterized SELECT.

Only identifiers from the vocabulary's schema contract and the vetted
predicate fragments are concatenated into the SQL text.  Department codes
and metric names always travel as bound parameters.  The LIMIT value is the
one literal; it is re-validated as ASCII digits within the configured bound
immediately before concatenation.

Clause order is fixed: SELECT, FROM/JOIN, WHERE, GROUP BY, ORDER BY, LIMIT.
Each clause that fires appends a tag to the pattern trail.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field

from src.compiler.models import PARAM_STYLES, ExtractionResult
from src.governance.vocabulary_loader import Vocabulary, load_vocabulary
from src.core.logging import get_logger

logger = get_logger(__name__)

_LIMIT_LITERAL_RE = re.compile(r"[0-9]+", re.ASCII)


@dataclass(frozen=True)
class AssembledSQL:
    sql: str
    parameters: list[str]
    matched_patterns: list[str]


@dataclass
class _ParameterList:
    """Allocates placeholders in the order values are bound."""

    style: str
    values: list[str] = field(default_factory=list)

    def bind(self, value: str) -> str:
        self.values.append(value)
        if self.style == "qmark":
            return "?"
        return f"${len(self.values)}"


def render_limit(limit: int, max_limit: int) -> str | None:
    """Return the LIMIT literal, or None when *limit* must not be rendered."""
    literal = str(limit)
    if not _LIMIT_LITERAL_RE.fullmatch(literal):
        logger.warning("Refusing to render LIMIT %r", limit)
        return None
    value = int(literal)
    if value == 0 or value > max_limit:
        return None
    return literal


def assemble(
    extraction: ExtractionResult,
    vocabulary: Vocabulary | None = None,
    param_style: str = "dollar",
) -> AssembledSQL:
    """Build the SQL statement, its parameter list, and the pattern trail."""
    if param_style not in PARAM_STYLES:
        raise ValueError(f"Unknown param_style '{param_style}'. Allowed: {', '.join(PARAM_STYLES)}")
    if vocabulary is None:
        vocabulary = load_vocabulary()

    fact = vocabulary.schema.fact
    dim = vocabulary.schema.dimension
    params = _ParameterList(style=param_style)
    patterns: list[str] = []

    dept_name = dim.column(dim.name)
    metric_name = fact.column(fact.metric_name)
    metric_value = fact.column(fact.metric_value)
    metric_date = fact.column(fact.metric_date)

    aggregation = vocabulary.aggregation(extraction.aggregation.kind)
    grouped_by_metric_only = aggregation is not None and extraction.department is not None

    # ── SELECT clause ────────────────────────────────
    if aggregation is None:
        select_parts = [
            f"{dept_name} AS department",
            metric_name,
            metric_value,
            metric_date,
        ]
        patterns.append("basic_selection")
    else:
        # With a department filter the department is not a group key; it is
        # single-valued, so MIN() projects it without a GROUP BY error.
        dept_expr = f"MIN({dept_name})" if grouped_by_metric_only else dept_name
        select_parts = [
            f"{dept_expr} AS department",
            metric_name,
            f"{aggregation.expression} AS {aggregation.output}",
        ]
        patterns.append(f"aggregation_{aggregation.kind}")

    # ── FROM / JOIN ──────────────────────────────────
    from_clause = f"FROM {fact.table} AS {fact.alias}"
    join_clause = (
        f"INNER JOIN {dim.table} AS {dim.alias} "
        f"ON {fact.column(fact.department_key)} = {dim.column(dim.key)}"
    )

    # ── WHERE clause ─────────────────────────────────
    where_parts: list[str] = []

    if extraction.department:
        where_parts.append(f"{dim.column(dim.code)} = {params.bind(extraction.department)}")
        patterns.append("department_filter")

    date_range = extraction.date_range
    if date_range.predicate:
        where_parts.append(date_range.predicate)
        for value in date_range.bound_params:
            params.bind(value)
        patterns.append(f"date_filter_{date_range.kind}")

    if extraction.metrics:
        placeholders = ", ".join(params.bind(name) for name in extraction.metrics)
        where_parts.append(f"{metric_name} IN ({placeholders})")
        patterns.append("metric_filter")

    # ── GROUP BY ─────────────────────────────────────
    group_clause = ""
    if aggregation is not None:
        if grouped_by_metric_only:
            group_clause = f"GROUP BY {metric_name}"
        else:
            group_clause = f"GROUP BY {dept_name}, {metric_name}"

    # ── ORDER BY ─────────────────────────────────────
    comparison = extraction.comparison
    if comparison.kind == "none":
        recency = metric_date if aggregation is None else f"MAX({metric_date})"
        order_clause = f"ORDER BY {recency} DESC"
    else:
        order_col = aggregation.output if aggregation is not None else metric_value
        order_clause = f"ORDER BY {order_col} {comparison.sort_direction}"
        patterns.append(f"comparison_{comparison.kind}")

    # ── LIMIT ────────────────────────────────────────
    limit_literal = None
    if extraction.limit > 0:
        limit_literal = render_limit(extraction.limit, vocabulary.limits.max_limit)
        if limit_literal is not None:
            patterns.append("limit_results")

    # ── Assemble ─────────────────────────────────────
    sql_lines: list[str] = ["SELECT", "  " + ",\n  ".join(select_parts)]
    sql_lines.append(from_clause)
    sql_lines.append(join_clause)
    if where_parts:
        sql_lines.append("WHERE " + "\n  AND ".join(where_parts))
    if group_clause:
        sql_lines.append(group_clause)
    sql_lines.append(order_clause)
    if limit_literal is not None:
        sql_lines.append(f"LIMIT {limit_literal}")

    sql = "\n".join(sql_lines)
    logger.debug("Assembled SQL:\n%s", sql)
    return AssembledSQL(sql=sql, parameters=list(params.values), matched_patterns=patterns)
