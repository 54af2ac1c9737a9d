"""
Deterministic SQL safety checks for compiled queries.

These checks are the final gate before a CompiledQuery leaves the compiler.
They operate purely on the SQL text, its parameter list, and the schema
contract.

Checks performed:
  1. SQL must be a single SELECT statement (no DDL / DML / multi-statement)
  2. No SELECT *
  3. No dangerous keywords (DROP, ALTER, TRUNCATE, INSERT, UPDATE, DELETE, GRANT …)
  4. No SQL comments (--, /*)
  5. Only contract tables in FROM / JOIN
  6. LIMIT, when present, is a digits-only literal within max_limit
  7. Placeholder count equals len(parameters); $n placeholders run 1..n in order
  8. Bound parameters are strings
"""
from __future__ import annotations

import re

from src.governance.vocabulary_loader import Vocabulary, load_vocabulary
from src.core.logging import get_logger

logger = get_logger(__name__)

# ── Compiled patterns ────────────────────────────────────

_DANGEROUS_KW = re.compile(
    r"\b(DROP|ALTER|TRUNCATE|INSERT|UPDATE|DELETE|MERGE|GRANT|REVOKE|"
    r"CREATE|REPLACE|EXECUTE|EXEC|CALL|COPY|SET\s+ROLE|RESET\s+ROLE)\b",
    re.IGNORECASE,
)

_MULTI_STMT = re.compile(r";")

_COMMENT_INLINE = re.compile(r"--")
_COMMENT_BLOCK = re.compile(r"/\*")

_SELECT_STAR = re.compile(r"\bSELECT\s+\*", re.IGNORECASE)

_LIMIT_RE = re.compile(r"\bLIMIT\s+(\S+)\s*$", re.IGNORECASE)
_LIMIT_DIGITS_RE = re.compile(r"[0-9]+", re.ASCII)

_TABLE_REF_RE = re.compile(
    r"^(?:FROM|(?:INNER\s+|LEFT\s+|RIGHT\s+|FULL\s+|CROSS\s+)?JOIN)\s+([\w.]+)",
    re.IGNORECASE | re.MULTILINE,
)

_DOLLAR_RE = re.compile(r"\$(\d+)")


def count_placeholders(sql: str, param_style: str = "dollar") -> int:
    """Number of positional placeholders in *sql* for the given style."""
    if param_style == "qmark":
        return sql.count("?")
    return len(_DOLLAR_RE.findall(sql))


def check_sql_safety(
    sql: str,
    parameters: list[str],
    param_style: str = "dollar",
    vocabulary: Vocabulary | None = None,
) -> list[str]:
    """Return a list of safety violations (empty list = safe)."""
    if vocabulary is None:
        vocabulary = load_vocabulary()

    errors: list[str] = []
    sql_stripped = sql.strip()

    # ── 1. Must be a single SELECT ───────────────────
    if not sql_stripped.upper().startswith("SELECT"):
        errors.append("SQL must be a SELECT statement.")
    if _MULTI_STMT.search(sql_stripped):
        errors.append("Statement separators (';') are not allowed.")

    # ── 2. No SELECT * ───────────────────────────────
    if _SELECT_STAR.search(sql_stripped):
        errors.append("SELECT * is not allowed. Specify explicit columns.")

    # ── 3. No dangerous keywords ─────────────────────
    m = _DANGEROUS_KW.search(sql_stripped)
    if m:
        errors.append(f"Dangerous keyword detected: '{m.group(1).upper()}'.")

    # ── 4. No SQL comments (injection vector) ────────
    if _COMMENT_INLINE.search(sql_stripped):
        errors.append("Inline comments (--) are not allowed.")
    if _COMMENT_BLOCK.search(sql_stripped):
        errors.append("Block comments (/* */) are not allowed.")

    # ── 5. Contract tables only ──────────────────────
    allowed = {t.lower() for t in vocabulary.schema.tables}
    for ref in _TABLE_REF_RE.findall(sql_stripped):
        if ref.lower().rsplit(".", 1)[-1] not in allowed:
            errors.append(f"Table '{ref}' is not part of the schema contract.")

    # ── 6. LIMIT literal ─────────────────────────────
    if re.search(r"\bLIMIT\b", sql_stripped, re.IGNORECASE):
        limit_match = _LIMIT_RE.search(sql_stripped)
        literal = limit_match.group(1) if limit_match else ""
        if not _LIMIT_DIGITS_RE.fullmatch(literal):
            errors.append(f"LIMIT must be a plain integer literal, got '{literal}'.")
        elif int(literal) > vocabulary.limits.max_limit:
            errors.append(
                f"LIMIT {literal} exceeds maximum allowed ({vocabulary.limits.max_limit})."
            )

    # ── 7. Placeholder / parameter parity ────────────
    n_placeholders = count_placeholders(sql_stripped, param_style)
    if n_placeholders != len(parameters):
        errors.append(
            f"Placeholder count ({n_placeholders}) does not match parameter count ({len(parameters)})."
        )
    elif param_style == "dollar":
        numbers = [int(n) for n in _DOLLAR_RE.findall(sql_stripped)]
        if numbers != list(range(1, len(numbers) + 1)):
            errors.append(f"Placeholders are not numbered 1..n in order: {numbers}.")

    # ── 8. Parameter types ───────────────────────────
    for i, value in enumerate(parameters, 1):
        if not isinstance(value, str):
            errors.append(f"Parameter {i} must be a string, got {type(value).__name__}.")

    if errors:
        logger.warning("SQL safety violations: %s", errors)
    return errors
