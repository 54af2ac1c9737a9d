"""Shared pytest fixtures: schema catalogs in the shapes the compiler accepts."""
from __future__ import annotations

import pytest

from src.catalog.schema import SchemaCatalog
from src.governance.vocabulary_loader import Vocabulary, load_vocabulary

DISCOVERY_PAYLOAD = {
    "schema_name": "public",
    "tables": [
        {
            "table_name": "departments",
            "table_type": "BASE TABLE",
            "columns": [
                {"column_name": "id", "data_type": "integer", "is_nullable": False, "is_primary_key": True},
                {"column_name": "name", "data_type": "character varying", "is_nullable": False, "is_primary_key": False},
                {"column_name": "code", "data_type": "character varying", "is_nullable": False, "is_primary_key": False},
            ],
        },
        {
            "table_name": "metrics",
            "table_type": "BASE TABLE",
            "columns": [
                {"column_name": "id", "data_type": "integer", "is_nullable": False, "is_primary_key": True},
                {"column_name": "department_id", "data_type": "integer", "is_nullable": True, "is_primary_key": False},
                {"column_name": "metric_name", "data_type": "character varying", "is_nullable": False, "is_primary_key": False},
                {"column_name": "metric_value", "data_type": "numeric", "is_nullable": True, "is_primary_key": False},
                {"column_name": "metric_date", "data_type": "date", "is_nullable": False, "is_primary_key": False},
                {"column_name": "monthly_change_percent", "data_type": "numeric", "is_nullable": True, "is_primary_key": False},
            ],
        },
    ],
    "total_tables": 2,
}


@pytest.fixture(scope="session")
def discovery_payload() -> dict:
    return DISCOVERY_PAYLOAD


@pytest.fixture(scope="session")
def catalog() -> SchemaCatalog:
    """Catalog covering the metrics/departments contract."""
    return SchemaCatalog.from_discovery(DISCOVERY_PAYLOAD)


@pytest.fixture(scope="session")
def vocabulary() -> Vocabulary:
    return load_vocabulary()
