"""
Validates a schema catalog against the compiler's declared schema contract.

Checks performed:
  1. The catalog describes at least one table
  2. The fact table (metrics) exists
  3. The dimension table (departments) exists
  4. Every column the generated SQL references exists on its table
     (join key, filter, projection, ordering, and growth columns)
"""
from __future__ import annotations

from src.catalog.schema import SchemaCatalog
from src.governance.vocabulary_loader import SchemaContract, load_vocabulary


def missing_dependencies(
    catalog: SchemaCatalog,
    contract: SchemaContract | None = None,
) -> list[str]:
    """Return the ``table`` / ``table.column`` entries the catalog lacks.

    An empty list means the catalog satisfies the contract.
    """
    if contract is None:
        contract = load_vocabulary().schema

    missing: list[str] = []
    for table_name, columns in contract.required_columns().items():
        table = catalog.table(table_name)
        if table is None:
            missing.append(table_name)
            continue
        for col in columns:
            if table.column(col) is None:
                missing.append(f"{table_name}.{col}")
    return missing


def validate_catalog(
    catalog: SchemaCatalog,
    contract: SchemaContract | None = None,
) -> list[str]:
    """Return a list of human-readable contract violations (empty = valid)."""
    if not catalog.tables:
        return [f"Schema '{catalog.schema_name}' describes no tables."]

    errors: list[str] = []
    for entry in missing_dependencies(catalog, contract):
        if "." in entry:
            table, col = entry.split(".", 1)
            errors.append(f"Column '{col}' is missing from table '{table}'.")
        else:
            errors.append(f"Required table '{entry}' is not in the schema catalog.")
    return errors
