"""
Explanation layer.

Builds the plain-language summary of a compiled query from the same decisions
that shaped the SQL: aggregation verb, metric names, department, date window,
ranking, row limit, and ordering.  The text is a pure function of the
ExtractionResult and the pattern trail, so it is reproducible.
"""
from __future__ import annotations

from src.compiler.models import ExtractionResult
from src.governance.vocabulary_loader import Vocabulary, load_vocabulary

_GENERIC_RETRIEVAL = (
    "Retrieve all metric records across every department with no filters applied, "
    "most recent first."
)


def describe_date_range(kind: str, vocabulary: Vocabulary | None = None) -> str:
    """Human label for a date-range kind (``q4`` -> ``Q4 of the current year``)."""
    if kind == "none":
        return "all dates"
    if kind == "custom":
        return "an unrecognised custom range (no date filter applied)"
    vocabulary = vocabulary or load_vocabulary()
    rule = vocabulary.date_range(kind)
    return rule.label if rule else kind.replace("_", " ")


def _is_unfiltered(extraction: ExtractionResult) -> bool:
    return (
        extraction.department is None
        and extraction.date_range.kind == "none"
        and extraction.aggregation.kind == "none"
        and not extraction.metrics
        and extraction.comparison.kind == "none"
        and extraction.limit == 0
    )


def explain(
    extraction: ExtractionResult,
    matched_patterns: list[str],
    vocabulary: Vocabulary | None = None,
) -> str:
    """Return a one-paragraph explanation of how the query was built."""
    trail = f"Matched patterns: {', '.join(matched_patterns)}."
    if _is_unfiltered(extraction):
        return f"{_GENERIC_RETRIEVAL} {trail}"

    vocabulary = vocabulary or load_vocabulary()
    aggregation = vocabulary.aggregation(extraction.aggregation.kind)

    verb = aggregation.label if aggregation else "retrieve"
    parts: list[str] = [verb[:1].upper() + verb[1:]]

    if extraction.metrics:
        parts.append(f"{', '.join(extraction.metrics)} metrics")
    else:
        parts.append("all metrics")

    if extraction.department:
        parts.append(f"for the {extraction.department} department")
    elif aggregation:
        parts.append("per department")

    if extraction.date_range.kind == "custom":
        parts.append("over " + describe_date_range("custom", vocabulary))
    elif extraction.date_range.kind != "none":
        parts.append("during " + describe_date_range(extraction.date_range.kind, vocabulary))

    comparison = extraction.comparison
    if comparison.kind != "none":
        ranked_by = aggregation.output.replace("_", " ") if aggregation else "metric value"
        order = "descending" if comparison.sort_direction == "DESC" else "ascending"
        parts.append(f"showing the {comparison.kind} results by {ranked_by} ({order})")
    else:
        parts.append("ordered most recent first")

    if "limit_results" in matched_patterns:
        parts.append(f"limited to {extraction.limit} rows")

    return " ".join(parts) + f". {trail}"
