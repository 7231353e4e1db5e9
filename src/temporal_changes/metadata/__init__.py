"""
Metadata providers for SQL Server catalogs.

A provider exposes server_version(), get_table(schema, name) and, when it
can execute queries, a DB-API connection property.
"""

from temporal_changes.metadata.provider import CatalogProvider
from temporal_changes.metadata.catalog import InMemoryCatalog
from temporal_changes.metadata.sqlserver import SqlServerCatalog

__all__ = [
    "CatalogProvider",
    "InMemoryCatalog",
    "SqlServerCatalog",
]
