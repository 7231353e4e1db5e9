"""
Metadata provider interface.

Anything that answers these calls can feed the resolver and classifier:
SqlServerCatalog reads a live database, InMemoryCatalog serves YAML.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

from temporal_changes.models import CatalogTable


@runtime_checkable
class CatalogProvider(Protocol):
    """Source of table metadata and, optionally, a connection to run queries on."""

    def server_version(self) -> str:
        """Return the engine's @@VERSION string."""
        ...

    def get_table(self, schema: str, table_name: str) -> Optional[CatalogTable]:
        """Return the table, or None when it does not exist."""
        ...

    @property
    def connection(self) -> Any:
        """DB-API connection the synthesized query is executed on."""
        ...
