"""
Schema catalog -- the read-only description of the target database that the
compiler consumes.

The catalog is produced upstream by a schema-discovery step.  Two input
shapes are accepted at the boundary:

  discovery payload  -- ``{"schema_name", "tables": [{"table_name",
                        "columns": [{"column_name", "data_type",
                        "is_nullable", "is_primary_key"}]}]}``
  SQLAlchemy MetaData -- e.g. the result of ``MetaData().reflect(engine)``
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import MetaData


@dataclass(frozen=True)
class Column:
    name: str
    type: str = ""
    nullable: bool = True
    is_primary_key: bool = False


@dataclass(frozen=True)
class Table:
    name: str
    columns: tuple[Column, ...] = field(default_factory=tuple)

    def column(self, name: str) -> Column | None:
        """Case-insensitive column lookup."""
        lowered = name.lower()
        return next((c for c in self.columns if c.name.lower() == lowered), None)

    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]


@dataclass(frozen=True)
class SchemaCatalog:
    """Ordered, immutable list of tables."""

    tables: tuple[Table, ...] = field(default_factory=tuple)
    schema_name: str = "public"

    def table(self, name: str) -> Table | None:
        """Case-insensitive table lookup; accepts ``schema.table`` too."""
        lowered = name.lower()
        bare = lowered.rsplit(".", 1)[-1]
        for t in self.tables:
            tname = t.name.lower()
            if tname == lowered or tname.rsplit(".", 1)[-1] == bare:
                return t
        return None

    def table_names(self) -> list[str]:
        return [t.name for t in self.tables]

    def to_dict(self) -> dict[str, Any]:
        """Return the catalog as a discovery-shaped dict (for diagnostics)."""
        return {
            "schema_name": self.schema_name,
            "total_tables": len(self.tables),
            "tables": [
                {
                    "table_name": t.name,
                    "columns": [
                        {
                            "column_name": c.name,
                            "data_type": c.type,
                            "is_nullable": c.nullable,
                            "is_primary_key": c.is_primary_key,
                        }
                        for c in t.columns
                    ],
                }
                for t in self.tables
            ],
        }

    # ── Constructors ─────────────────────────────────

    @classmethod
    def from_discovery(cls, payload: Mapping[str, Any]) -> SchemaCatalog:
        """Parse a schema-discovery payload.

        Both the discovery spelling (``table_name`` / ``column_name`` /
        ``data_type`` / ``is_nullable``) and the short spelling (``name`` /
        ``type`` / ``nullable``) are accepted.
        """
        tables = tuple(_parse_table(t) for t in payload.get("tables") or [])
        return cls(tables=tables, schema_name=payload.get("schema_name") or "public")

    @classmethod
    def from_metadata(cls, metadata: MetaData, schema_name: str = "public") -> SchemaCatalog:
        """Build a catalog from SQLAlchemy table metadata."""
        tables = []
        for sa_table in metadata.sorted_tables:
            columns = tuple(
                Column(
                    name=col.name,
                    type=str(col.type).lower(),
                    nullable=bool(col.nullable),
                    is_primary_key=bool(col.primary_key),
                )
                for col in sa_table.columns
            )
            tables.append(Table(name=sa_table.name, columns=columns))
        return cls(tables=tuple(tables), schema_name=schema_name)


def _parse_column(raw: Mapping[str, Any]) -> Column:
    nullable = raw.get("is_nullable", raw.get("nullable", True))
    if isinstance(nullable, str):
        # information_schema reports 'YES' / 'NO'
        nullable = nullable.strip().upper() in ("YES", "TRUE")
    return Column(
        name=raw.get("column_name") or raw["name"],
        type=str(raw.get("data_type", raw.get("type", ""))),
        nullable=bool(nullable),
        is_primary_key=bool(raw.get("is_primary_key", raw.get("primary_key", False))),
    )


def _parse_table(raw: Mapping[str, Any]) -> Table:
    return Table(
        name=raw.get("table_name") or raw["name"],
        columns=tuple(_parse_column(c) for c in raw.get("columns") or []),
    )


def coerce_catalog(schema: Any) -> SchemaCatalog | None:
    """Normalise any accepted schema input to a :class:`SchemaCatalog`.

    Returns ``None`` when *schema* is ``None``; the caller decides whether
    absence is an error.
    """
    if schema is None or isinstance(schema, SchemaCatalog):
        return schema
    if isinstance(schema, MetaData):
        return SchemaCatalog.from_metadata(schema)
    if isinstance(schema, Mapping):
        return SchemaCatalog.from_discovery(schema)
    raise TypeError(f"Unsupported schema description: {type(schema).__name__}")
