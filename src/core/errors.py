"""
Exception hierarchy for the question compiler.

Every failure the compiler surfaces inherits from ``CompilerError`` so the
embedding service can catch one class and map it to an HTTP status or exit
code.  Each error carries a machine-readable ``code`` and a ``details`` dict.
"""
from __future__ import annotations

from typing import Any


class CompilerError(Exception):
    """Base exception for all compiler errors."""

    code = "COMPILER_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = details or {}

    def to_error_response(self) -> dict[str, Any]:
        """Return a structured error payload for the caller."""
        return {
            "error": self.code,
            "message": str(self),
            "details": self.details,
        }


class SchemaNotFoundError(CompilerError):
    """Raised when no schema catalog was supplied to the compiler."""

    code = "SCHEMA_NOT_FOUND"

    def __init__(self, dependency: str = "schema_catalog") -> None:
        super().__init__(
            "Database schema not found. Run schema discovery before compiling questions.",
            details={"missing": dependency},
        )
        self.dependency = dependency


class SchemaContractError(CompilerError):
    """Raised when the catalog lacks tables or columns the query shape needs."""

    code = "SCHEMA_CONTRACT_VIOLATION"

    def __init__(self, missing: list[str]) -> None:
        super().__init__(
            "Schema catalog does not satisfy the query contract. "
            f"Missing: {', '.join(missing)}",
            details={"missing": list(missing)},
        )
        self.missing = list(missing)


class InvalidQuestionError(CompilerError):
    """Raised for an empty question or an out-of-vocabulary explicit override."""

    code = "INVALID_QUESTION"


class UnsafeSQLError(CompilerError):
    """Raised when compiled SQL fails the final safety gate."""

    code = "UNSAFE_SQL"

    def __init__(self, violations: list[str]) -> None:
        super().__init__(
            "Compiled SQL failed safety checks: " + "; ".join(violations),
            details={"violations": list(violations)},
        )
        self.violations = list(violations)


class VocabularyError(CompilerError):
    """Raised when the query vocabulary file is malformed."""

    code = "VOCABULARY_INVALID"
