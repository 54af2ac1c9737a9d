"""
Typed records flowing through the compiler.

  CompileRequest    -- caller-facing request contract
  ExtractionResult  -- parsed intent of a question (compiler-internal)
  CompiledQuery     -- SQL + bound parameters + audit trail handed to the executor
"""
from __future__ import annotations

from typing import Any, Literal, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator

Department = Literal["sales", "finance", "devrel", "hr", "events", "compliance"]
DateRangeKind = Literal[
    "none", "q1", "q2", "q3", "q4", "last_month", "this_month", "this_year", "custom",
]
AggregationKind = Literal["none", "sum", "avg", "count", "growth"]
ComparisonKind = Literal["none", "top", "bottom"]
SortDirection = Literal["", "ASC", "DESC"]
ParamStyle = Literal["dollar", "qmark"]

DEPARTMENTS: tuple[str, ...] = get_args(Department)
DATE_RANGE_KINDS: tuple[str, ...] = get_args(DateRangeKind)
AGGREGATION_KINDS: tuple[str, ...] = get_args(AggregationKind)
COMPARISON_KINDS: tuple[str, ...] = get_args(ComparisonKind)
PARAM_STYLES: tuple[str, ...] = get_args(ParamStyle)


class DateRange(BaseModel):
    """A recognised date window and the SQL predicate that implements it."""

    kind: DateRangeKind = "none"
    predicate: str = Field("", description="Parameter-free SQL fragment over the metric date")
    bound_params: list[str] = Field(default_factory=list)


class Aggregation(BaseModel):
    kind: AggregationKind = "none"
    sql_function: str = ""


class Comparison(BaseModel):
    kind: ComparisonKind = "none"
    sort_direction: SortDirection = ""


class ExtractionResult(BaseModel):
    """Parsed representation of a business question."""

    department: Department | None = None
    date_range: DateRange = Field(default_factory=DateRange)
    aggregation: Aggregation = Field(default_factory=Aggregation)
    metrics: list[str] = Field(default_factory=list, description="Metric names; duplicates allowed")
    comparison: Comparison = Field(default_factory=Comparison)
    limit: int = Field(0, ge=0, description="Row limit, 0 = unbounded")


class CompileRequest(BaseModel):
    """Request fields accepted from the caller."""

    question: str = Field(..., min_length=1, max_length=500, description="Natural-language business question")
    department: Department | None = Field(None, description="Explicit department override")
    date_range: str | None = Field(None, description="q1..q4, last_month, this_month, this_year or free text")
    debug: bool = Field(False, description="Include explanation and pattern trail in the response")

    @field_validator("question")
    @classmethod
    def _question_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("question must not be blank")
        return value

    @field_validator("department", mode="before")
    @classmethod
    def _normalise_department(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            return value or None
        return value


class CompiledQuery(BaseModel):
    """The artifact handed to the query executor."""

    model_config = ConfigDict(frozen=True)

    sql: str
    parameters: list[str] = Field(default_factory=list)
    explanation: str
    matched_patterns: list[str] = Field(default_factory=list)
    department_filter: str | None = None
    date_filter: str = "none"
    aggregation_type: str = "none"
    limit: int = 0
    param_style: ParamStyle = "dollar"

    def to_response(self, debug: bool = False) -> dict[str, Any]:
        """Render for the caller; diagnostics are dropped unless *debug*."""
        data = self.model_dump()
        if not debug:
            data.pop("explanation")
            data.pop("matched_patterns")
        return data
