"""
Offline metadata provider.

Serves catalog metadata from memory, typically loaded from a YAML file, so
change queries can be synthesized without a database connection.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import yaml

from temporal_changes.models import CatalogTable

logger = logging.getLogger(__name__)

DEFAULT_SERVER_VERSION = "Microsoft SQL Server 2019 (RTM) - 15.0.2000.5 (X64)"


class InMemoryCatalog:
    """
    Metadata provider holding CatalogTable objects in memory.

    Lookups are case-insensitive, as on a default SQL Server collation.

    YAML format:

        server_version: "Microsoft SQL Server 2019 ..."
        tables:
          - schema: dbo
            name: Person
            columns:
              - {name: PersonId, type_name: int, is_primary_key: true}
              - {name: FirstName, type_name: nvarchar, max_length: 100}
              - {name: ValidFrom, type_name: datetime2, scale: 7, generated_always_type: 1}
              - {name: ValidTo, type_name: datetime2, scale: 7, generated_always_type: 2}
            foreign_keys:
              - {parent_column: ModifiedById, referenced_table: AppUser, referenced_column: AppUserId}
    """

    def __init__(
        self,
        tables: Optional[Iterable[CatalogTable]] = None,
        server_version: str = DEFAULT_SERVER_VERSION,
        connection: Optional[Any] = None,
    ):
        self._server_version = server_version
        self._tables: Dict[Tuple[str, str], CatalogTable] = {}
        self._connection = connection
        for table in tables or []:
            self.add_table(table)

    def add_table(self, table: CatalogTable) -> CatalogTable:
        """Register a table, assigning an object id when it has none."""
        if not table.object_id:
            table.object_id = 1000 + len(self._tables) + 1
        self._tables[(table.schema.lower(), table.name.lower())] = table
        return table

    @property
    def connection(self) -> Any:
        """Connection used to execute synthesized queries, if one was supplied."""
        if self._connection is None:
            raise RuntimeError("InMemoryCatalog has no database connection; use debug mode")
        return self._connection

    @property
    def tables(self) -> List[CatalogTable]:
        return list(self._tables.values())

    def server_version(self) -> str:
        return self._server_version

    def get_table(self, schema: str, table_name: str) -> Optional[CatalogTable]:
        """Get table by schema and name (case-insensitive)."""
        table = self._tables.get((schema.lower(), table_name.lower()))
        if table is None:
            logger.warning(f"Table not found: {schema}.{table_name}")
            return None

        for fk in table.foreign_keys:
            if fk.referenced_object_id is None:
                referenced = self._tables.get(
                    (fk.referenced_schema.lower(), fk.referenced_table.lower())
                )
                if referenced is not None:
                    fk.referenced_object_id = referenced.object_id
        return table

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "server_version": self._server_version,
            "tables": [t.to_dict() for t in self._tables.values()],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> InMemoryCatalog:
        """Create from dictionary."""
        catalog = cls(server_version=data.get("server_version", DEFAULT_SERVER_VERSION))
        for i, tdata in enumerate(data.get("tables", []), start=1):
            catalog.add_table(CatalogTable.from_dict(tdata, object_id=tdata.get("object_id", 1000 + i)))
        return catalog

    @classmethod
    def from_yaml(cls, path: Path) -> InMemoryCatalog:
        """Load a catalog from a YAML file."""
        path = Path(path)
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        catalog = cls.from_dict(data)
        logger.info(f"Loaded {len(catalog.tables)} tables from {path}")
        return catalog

    def save_yaml(self, path: Path) -> None:
        """Write the catalog to a YAML file."""
        with open(Path(path), "w") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)
