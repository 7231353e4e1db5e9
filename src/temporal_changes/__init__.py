"""
Temporal Changes - Column-level change reports for SQL Server temporal tables

Synthesizes a T-SQL query over a system-versioned table's full history that
lists, per row and per column, every value change with its old value, new
value, time and (optionally) who made it.

Features:
- Catalog-driven: key, period and column types read from sys.* views
- Attribution through one foreign key to a user/person lookup table
- Column ignore and masking lists, human-readable column labels
- Offline mode from a YAML catalog, and offline replay over pandas frames
"""

__version__ = "0.1.0"
__author__ = "Temporal Changes Contributors"

from temporal_changes.errors import (
    TemporalChangesError,
    CapabilityError,
    ValidationError,
    TableNotFoundError,
    SynthesisError,
    TableNotTemporalError,
)

from temporal_changes.models import (
    CatalogColumn,
    CatalogTable,
    ForeignKeyEdge,
    TableRef,
    TableTree,
    ColumnInfo,
    ResultLabels,
    ChangeRequest,
    SortOrder,
)

from temporal_changes.metadata import CatalogProvider, InMemoryCatalog, SqlServerCatalog
from temporal_changes.naming import format_column_name
from temporal_changes.resolver import TableResolver
from temporal_changes.classifier import ColumnClassifier
from temporal_changes.synthesizer import QuerySynthesizer, synthesize
from temporal_changes.dispatcher import (
    ChangePlan,
    get_changes,
    get_changes_sql,
    plan_changes,
)

from temporal_changes.replay import changes_from_versions


__all__ = [
    # Errors
    "TemporalChangesError",
    "CapabilityError",
    "ValidationError",
    "TableNotFoundError",
    "SynthesisError",
    "TableNotTemporalError",
    # Core models
    "CatalogColumn",
    "CatalogTable",
    "ForeignKeyEdge",
    "TableRef",
    "TableTree",
    "ColumnInfo",
    "ResultLabels",
    "ChangeRequest",
    "SortOrder",
    # Metadata providers
    "InMemoryCatalog",
    "CatalogProvider",
    "SqlServerCatalog",
    # Pipeline
    "format_column_name",
    "TableResolver",
    "ColumnClassifier",
    "QuerySynthesizer",
    "synthesize",
    "ChangePlan",
    "plan_changes",
    "get_changes",
    "get_changes_sql",
    "changes_from_versions",
]
