"""
Compiler service -- orchestrates validate -> extract -> assemble -> safety -> explain.

``compile_query`` is a pure, single-pass function of its arguments and the
process-wide vocabulary: no cache, no shared mutable state, no I/O.  Identical
inputs always produce byte-identical SQL and parameter lists, so it may be
called concurrently from any number of threads.
"""
from __future__ import annotations

import time
from typing import Any

from src.catalog.schema import coerce_catalog
from src.compiler.assembler import assemble
from src.compiler.explainer import explain
from src.compiler.extractor import extract
from src.compiler.models import PARAM_STYLES, CompiledQuery, CompileRequest
from src.governance.schema_contract import missing_dependencies
from src.governance.sql_safety import check_sql_safety
from src.governance.vocabulary_loader import Vocabulary, load_vocabulary
from src.core.config import get_settings
from src.core.errors import (
    InvalidQuestionError,
    SchemaContractError,
    SchemaNotFoundError,
    UnsafeSQLError,
)
from src.core.logging import get_logger

logger = get_logger(__name__)


def _check_inputs(question: Any, department: str | None, vocabulary: Vocabulary) -> None:
    if not isinstance(question, str) or not question.strip():
        raise InvalidQuestionError("Question must be a non-empty string.")
    if department and department.strip().lower() not in vocabulary.department_codes():
        raise InvalidQuestionError(
            f"Unknown department '{department}'. "
            f"Allowed: {', '.join(vocabulary.department_codes())}",
            details={"department": department},
        )


def compile_query(
    question: str,
    schema: Any,
    department: str | None = None,
    date_range: str | None = None,
    debug: bool = False,
    *,
    vocabulary: Vocabulary | None = None,
    param_style: str | None = None,
) -> CompiledQuery:
    """Compile a business question into a parameterized SQL query.

    Parameters
    ----------
    question : str
        Natural-language business question.
    schema : SchemaCatalog | Mapping | sqlalchemy.MetaData
        Catalog from the schema-discovery step.  ``None`` is a precondition
        failure (:class:`SchemaNotFoundError`).
    department : str | None
        Explicit department override; always beats the inferred one.
    date_range : str | None
        Explicit date range (``q4``, ``last_month`` … or free text).
    debug : bool
        Logs the extraction at INFO.  The result always carries the
        explanation and pattern trail; omitting them is up to the caller
        (see :meth:`CompiledQuery.to_response`).
    vocabulary, param_style
        Override the loaded vocabulary / configured placeholder style.

    Raises
    ------
    SchemaNotFoundError, SchemaContractError, InvalidQuestionError, UnsafeSQLError
    """
    t0 = time.perf_counter()
    if vocabulary is None:
        vocabulary = load_vocabulary()
    style = param_style or get_settings().param_style
    if style not in PARAM_STYLES:
        raise ValueError(f"Unknown param_style '{style}'. Allowed: {', '.join(PARAM_STYLES)}")

    _check_inputs(question, department, vocabulary)

    # 0. Precondition: schema catalog present and satisfying the contract
    catalog = coerce_catalog(schema)
    if catalog is None:
        raise SchemaNotFoundError()
    missing = missing_dependencies(catalog, vocabulary.schema)
    if missing:
        raise SchemaContractError(missing)

    # 1. Extract: NL -> ExtractionResult
    extraction = extract(question, department, date_range, vocabulary)
    if debug:
        logger.info("Extraction | %s", extraction.model_dump_json())

    # 2. Assemble SQL + parameters + pattern trail
    assembled = assemble(extraction, vocabulary, style)

    # 3. Safety gate
    violations = check_sql_safety(assembled.sql, assembled.parameters, style, vocabulary)
    if violations:
        raise UnsafeSQLError(violations)

    # 4. Explain
    explanation = explain(extraction, assembled.matched_patterns, vocabulary)

    result = CompiledQuery(
        sql=assembled.sql,
        parameters=assembled.parameters,
        explanation=explanation,
        matched_patterns=assembled.matched_patterns,
        department_filter=extraction.department,
        date_filter=extraction.date_range.kind,
        aggregation_type=extraction.aggregation.kind,
        limit=extraction.limit if "limit_results" in assembled.matched_patterns else 0,
        param_style=style,
    )

    latency = int((time.perf_counter() - t0) * 1000)
    logger.info(
        "Compiler.compile | question=%s | patterns=%s | params=%d | %dms",
        question, ",".join(result.matched_patterns), len(result.parameters), latency,
    )
    return result


def compile_request(
    request: CompileRequest,
    schema: Any,
    *,
    vocabulary: Vocabulary | None = None,
    param_style: str | None = None,
) -> CompiledQuery:
    """Compile a validated :class:`CompileRequest`."""
    return compile_query(
        request.question,
        schema,
        department=request.department,
        date_range=request.date_range,
        debug=request.debug,
        vocabulary=vocabulary,
        param_style=param_style,
    )
