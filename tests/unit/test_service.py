"""
Unit tests -- compiler service: end-to-end compilation against a catalog.
No database connection is needed; the compiler never executes SQL.
"""
import pytest
from sqlalchemy import Column, Date, Integer, MetaData, Numeric, String, Table

from src.catalog.schema import SchemaCatalog
from src.compiler.service import compile_query, compile_request
from src.compiler.models import CompiledQuery, CompileRequest
from src.core.errors import (
    CompilerError,
    InvalidQuestionError,
    SchemaContractError,
    SchemaNotFoundError,
)
from src.governance.sql_safety import count_placeholders

_QUESTIONS = [
    "hello",
    "What were our Q4 results?",
    "total pipeline this year",
    "show me our top 5 departments",
    "show me pipeline and arr data",
    "average cash runway last month",
    "lowest employee satisfaction this month",
]


def test_returns_compiled_query(catalog):
    result = compile_query("total pipeline this year", catalog)
    assert isinstance(result, CompiledQuery)
    assert result.param_style == "dollar"


# ── Determinism & parity ─────────────────────────────────

@pytest.mark.parametrize("question", _QUESTIONS)
def test_compilation_is_deterministic(question, catalog):
    first = compile_query(question, catalog)
    second = compile_query(question, catalog)
    assert first.sql == second.sql
    assert first.parameters == second.parameters
    assert first == second


@pytest.mark.parametrize("question", _QUESTIONS)
@pytest.mark.parametrize("style", ["dollar", "qmark"])
def test_placeholder_parameter_parity(question, style, catalog):
    result = compile_query(question, catalog, param_style=style)
    assert count_placeholders(result.sql, style) == len(result.parameters)


# ── Override precedence ──────────────────────────────────

def test_explicit_department_beats_inferred(catalog):
    result = compile_query("show me finance numbers", catalog, department="sales")
    assert result.department_filter == "sales"
    assert result.parameters[0] == "sales"
    assert "finance" not in result.parameters


def test_explicit_date_range_beats_inferred(catalog):
    result = compile_query("q1 pipeline", catalog, date_range="q4")
    assert result.date_filter == "q4"
    assert "date_filter_q4" in result.matched_patterns


# ── Testable scenarios ───────────────────────────────────

def test_synonym_mapping(catalog):
    result = compile_query("show me pipeline and arr data", catalog)
    assert result.department_filter == "sales"
    assert result.parameters == ["sales", "total_pipeline", "channel_partner_pipeline"]
    assert "m.metric_name IN ($2, $3)" in result.sql


def test_q4_question(catalog):
    result = compile_query("What were our Q4 results?", catalog)
    assert result.date_filter == "q4"
    assert result.department_filter is None
    assert "EXTRACT(QUARTER FROM m.metric_date) = 4" in result.sql
    assert result.parameters == []


def test_total_pipeline_this_year(catalog):
    result = compile_query("total pipeline this year", catalog)
    assert result.aggregation_type == "sum"
    assert result.date_filter == "this_year"
    assert "SUM(" in result.sql
    assert "GROUP BY" in result.sql
    assert result.matched_patterns == [
        "aggregation_sum", "department_filter", "date_filter_this_year", "metric_filter",
    ]


def test_top_five(catalog):
    result = compile_query("show me our top 5 departments", catalog)
    assert result.limit == 5
    assert result.sql.endswith("LIMIT 5")
    assert "limit_results" in result.matched_patterns
    assert "comparison_top" in result.matched_patterns


def test_ranked_question_gets_default_limit(catalog):
    result = compile_query("what are our top performing departments?", catalog)
    assert result.limit == 10
    assert result.sql.endswith("LIMIT 10")


def test_no_match_falls_back_to_basic_selection(catalog):
    result = compile_query("hello", catalog)
    assert result.matched_patterns == ["basic_selection"]
    assert result.parameters == []
    assert "WHERE" not in result.sql
    assert result.limit == 0
    assert result.explanation.startswith("Retrieve all metric records")


# ── Injection safety ─────────────────────────────────────

def test_free_text_never_reaches_sql(catalog):
    question = "top 5 sales'; DROP TABLE metrics; --"
    result = compile_query(question, catalog)
    assert "DROP" not in result.sql
    assert ";" not in result.sql
    assert "--" not in result.sql
    assert result.sql.endswith("LIMIT 5")


def test_free_text_date_range_is_custom(catalog):
    result = compile_query("revenue", catalog, date_range="'; DROP TABLE metrics")
    assert result.date_filter == "custom"
    assert "DROP" not in result.sql
    assert not any(p.startswith("date_filter") for p in result.matched_patterns)


def test_parameters_are_strings(catalog):
    result = compile_query("top 3 revenue for sales", catalog)
    assert all(isinstance(p, str) for p in result.parameters)


# ── Failure modes ────────────────────────────────────────

def test_schema_absent():
    with pytest.raises(SchemaNotFoundError) as exc:
        compile_query("total pipeline", None)
    payload = exc.value.to_error_response()
    assert payload["error"] == "SCHEMA_NOT_FOUND"
    assert payload["details"] == {"missing": "schema_catalog"}


def test_schema_missing_required_column():
    catalog = SchemaCatalog.from_discovery({
        "tables": [
            {"name": "metrics", "columns": [{"name": "metric_name"}, {"name": "metric_value"}]},
            {"name": "departments", "columns": [{"name": "id"}, {"name": "name"}, {"name": "code"}]},
        ],
    })
    with pytest.raises(SchemaContractError) as exc:
        compile_query("total pipeline", catalog)
    assert "metrics.department_id" in exc.value.missing
    assert exc.value.to_error_response()["error"] == "SCHEMA_CONTRACT_VIOLATION"


@pytest.mark.parametrize("question", ["", "   "])
def test_empty_question_rejected(question, catalog):
    with pytest.raises(InvalidQuestionError):
        compile_query(question, catalog)


def test_unknown_department_rejected(catalog):
    with pytest.raises(InvalidQuestionError, match="marketing"):
        compile_query("show me numbers", catalog, department="marketing")


def test_errors_share_base_class(catalog):
    with pytest.raises(CompilerError):
        compile_query("", catalog)


def test_unknown_param_style_rejected(catalog):
    with pytest.raises(ValueError):
        compile_query("hello", catalog, param_style="named")


# ── Schema inputs ────────────────────────────────────────

def test_accepts_discovery_payload(discovery_payload, catalog):
    assert compile_query("q4 revenue", discovery_payload) == compile_query("q4 revenue", catalog)


def test_accepts_sqlalchemy_metadata():
    metadata = MetaData()
    Table(
        "departments", metadata,
        Column("id", Integer, primary_key=True),
        Column("name", String(255)),
        Column("code", String(50)),
    )
    Table(
        "metrics", metadata,
        Column("id", Integer, primary_key=True),
        Column("department_id", Integer),
        Column("metric_name", String(255)),
        Column("metric_value", Numeric(15, 4)),
        Column("metric_date", Date),
        Column("monthly_change_percent", Numeric(8, 4)),
    )
    result = compile_query("top 3 hiring numbers", metadata)
    assert result.department_filter == "hr"
    assert result.sql.endswith("LIMIT 3")


# ── Request contract & response shape ────────────────────

def test_compile_request(catalog):
    request = CompileRequest(question="show me finance numbers", department="Sales", date_range="last month")
    result = compile_request(request, catalog)
    assert result.department_filter == "sales"
    assert result.date_filter == "last_month"


def test_compile_request_qmark(catalog):
    request = CompileRequest(question="total pipeline this year")
    result = compile_request(request, catalog, param_style="qmark")
    assert "$" not in result.sql
    assert result.sql.count("?") == len(result.parameters)


def test_debug_does_not_change_result(catalog):
    plain = compile_query("total pipeline this year", catalog)
    debugged = compile_query("total pipeline this year", catalog, debug=True)
    assert plain == debugged


def test_response_hides_diagnostics_unless_debug(catalog):
    result = compile_query("total pipeline this year", catalog)
    assert "explanation" not in result.to_response()
    full = result.to_response(debug=True)
    assert full["explanation"] == result.explanation
    assert full["matched_patterns"] == result.matched_patterns
