"""
Unit tests -- extractor: one block per sub-extractor, then composition.
"""
import itertools

import pytest

from src.compiler.extractor import (
    _EXTRACTORS,
    extract,
    extract_aggregation,
    extract_comparison,
    extract_date_range,
    extract_department,
    extract_limit,
    extract_metrics,
    parse_date_range,
    validate_limit,
)
from src.compiler.models import ExtractionResult



def test_department_from_synonym():
    assert extract_department("show me pipeline and arr data") == "sales"


@pytest.mark.parametrize("question, expected", [
    ("what is our cash runway", "finance"),
    ("github community growth", "devrel"),
    ("hiring pace", "hr"),
    ("conference attendees", "events"),
    ("open vulnerabilities", "compliance"),
])
def test_department_synonyms(question, expected):
    assert extract_department(question) == expected


def test_department_first_in_enumeration_wins():
    # "revenue" (sales) and "cash" (finance) both match; sales comes first
    assert extract_department("revenue versus cash") == "sales"


def test_department_explicit_override_wins():
    assert extract_department("show me finance numbers", explicit="sales") == "sales"


def test_department_explicit_is_normalised():
    assert extract_department("anything", explicit=" HR ") == "hr"


def test_department_none_when_no_match():
    assert extract_department("hello") is None


def test_department_case_insensitive():
    assert extract_department("SALES by region") == "sales"



def test_date_q4():
    dr = extract_date_range("what were our q4 results?")
    assert dr.kind == "q4"
    assert "EXTRACT(QUARTER FROM m.metric_date) = 4" in dr.predicate
    assert dr.bound_params == []


def test_date_fourth_quarter_phrase():
    assert extract_date_range("numbers for the fourth quarter").kind == "q4"


@pytest.mark.parametrize("question, kind", [
    ("q1 pipeline", "q1"),
    ("second quarter hiring", "q2"),
    ("q3 events", "q3"),
    ("cash last month", "last_month"),
    ("signups this month", "this_month"),
    ("revenue this year", "this_year"),
])
def test_date_phrases(question, kind):
    assert extract_date_range(question).kind == kind


def test_date_quarter_beats_year():
    assert extract_date_range("q4 of this year").kind == "q4"


def test_date_month_beats_year():
    assert extract_date_range("this month and this year").kind == "this_month"


def test_date_none():
    dr = extract_date_range("hello")
    assert dr.kind == "none"
    assert dr.predicate == ""


def test_date_explicit_override_wins():
    assert extract_date_range("q1 numbers", explicit="q4").kind == "q4"


def test_date_explicit_uses_same_predicate_as_implicit():
    assert parse_date_range("Q4").predicate == extract_date_range("q4").predicate


@pytest.mark.parametrize("value, kind", [
    ("last_month", "last_month"),
    ("last month", "last_month"),
    ("This Year", "this_year"),
    ("third quarter", "q3"),
])
def test_date_explicit_tags_and_phrases(value, kind):
    assert parse_date_range(value).kind == kind


def test_date_explicit_unrecognised_is_custom():
    dr = parse_date_range("since the merger")
    assert dr.kind == "custom"
    assert dr.predicate == ""


def test_date_explicit_blank_falls_back_to_question():
    assert extract_date_range("q2 numbers", explicit="  ").kind == "q2"



@pytest.mark.parametrize("question, kind, fn", [
    ("total pipeline", "sum", "SUM"),
    ("sum of deals", "sum", "SUM"),
    ("average satisfaction", "avg", "AVG"),
    ("avg runway", "avg", "AVG"),
    ("count the meetups", "count", "COUNT"),
    ("number of new hires", "count", "COUNT"),
    ("pipeline growth", "growth", "AVG"),
    ("follower trend", "growth", "AVG"),
])
def test_aggregation(question, kind, fn):
    agg = extract_aggregation(question)
    assert agg.kind == kind
    assert agg.sql_function == fn


def test_aggregation_none():
    agg = extract_aggregation("show me pipeline")
    assert agg.kind == "none"
    assert agg.sql_function == ""



def test_metrics_single_keyword():
    assert extract_metrics("pipeline by department") == ["total_pipeline", "channel_partner_pipeline"]


def test_metrics_multiple_keywords_in_table_order():
    assert extract_metrics("stars and revenue") == ["actual_arr", "potential_arr", "github_stars"]


def test_metrics_empty():
    assert extract_metrics("hello") == []



@pytest.mark.parametrize("question, kind, direction", [
    ("top performers", "top", "DESC"),
    ("best quarter", "top", "DESC"),
    ("highest burn", "top", "DESC"),
    ("bottom teams", "bottom", "ASC"),
    ("worst results", "bottom", "ASC"),
    ("lowest satisfaction", "bottom", "ASC"),
])
def test_comparison(question, kind, direction):
    comp = extract_comparison(question)
    assert comp.kind == kind
    assert comp.sort_direction == direction


def test_comparison_none():
    comp = extract_comparison("hello")
    assert comp.kind == "none"
    assert comp.sort_direction == ""



@pytest.mark.parametrize("question, limit", [
    ("show me our top 5 departments", 5),
    ("first 20 records", 20),
    ("3 best months", 3),
    ("7 worst weeks", 7),
])
def test_limit_numeric(question, limit):
    assert extract_limit(question) == limit


def test_limit_default_when_ranked():
    assert extract_limit("what are our top performing departments?") == 10


def test_limit_default_for_bottom_ranking():
    assert extract_limit("lowest satisfaction scores") == 10


def test_limit_zero_without_ranking():
    assert extract_limit("hello") == 0


def test_limit_first_pattern_wins():
    assert extract_limit("top 3 and first 8") == 3


def test_limit_over_maximum_is_discarded():
    assert extract_limit("top 99999 accounts") == 0


def test_limit_ignores_non_ascii_digits():
    # Arabic-Indic digits are not ASCII [0-9]; the ranked default applies
    assert extract_limit("top ٥ accounts") == 10


@pytest.mark.parametrize("raw, expected", [
    ("5", 5),
    (5, 5),
    ("0", 0),
    ("-5", 0),
    ("5; DROP TABLE metrics", 0),
    ("1e3", 0),
    (True, 0),
    (None, 0),
    ("٥", 0),
])
def test_validate_limit(raw, expected):
    assert validate_limit(raw, max_limit=1000) == expected



def test_extract_full():
    result = extract("total pipeline this year")
    assert isinstance(result, ExtractionResult)
    assert result.department == "sales"
    assert result.date_range.kind == "this_year"
    assert result.aggregation.kind == "sum"
    assert result.metrics == ["total_pipeline", "channel_partner_pipeline"]
    assert result.comparison.kind == "none"
    assert result.limit == 0


def test_extract_no_match():
    assert extract("hello") == ExtractionResult()


def test_extract_overrides():
    result = extract("show me finance numbers", department="sales", date_range="q1")
    assert result.department == "sales"
    assert result.date_range.kind == "q1"


def test_sub_extractors_are_order_independent(vocabulary):
    q = "top 3 total revenue for sales in q4"
    overrides = {"department": None, "date_range": None}
    baseline = {name: fn(q, vocabulary, overrides) for name, fn in _EXTRACTORS.items()}
    for order in itertools.permutations(_EXTRACTORS):
        fields = {name: _EXTRACTORS[name](q, vocabulary, overrides) for name in order}
        assert fields == baseline
