"""
Entry points: check the engine, build the change query, then either return
its text (debug) or execute it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Union

from temporal_changes.classifier import ColumnClassifier
from temporal_changes.errors import CapabilityError
from temporal_changes.metadata.provider import CatalogProvider
from temporal_changes.models import ChangeRequest, ColumnInfo, TableTree
from temporal_changes.resolver import TableResolver
from temporal_changes.synthesizer import QuerySynthesizer

logger = logging.getLogger(__name__)


# Releases without LAG(), OPENJSON or THROW support
UNSUPPORTED_VERSIONS = (
    "Microsoft SQL Server 2000",
    "Microsoft SQL Server 2005",
    "Microsoft SQL Server 2008",
    "Microsoft SQL Server 2012",
    "Microsoft SQL Server 2014",
)


def check_engine_capability(version: str) -> None:
    """
    Raise CapabilityError unless the engine is SQL Server 2016 or later
    (including Azure SQL Database and Managed Instance).

    Args:
        version: The @@VERSION string of the host engine
    """
    for unsupported in UNSUPPORTED_VERSIONS:
        if unsupported.lower() in (version or "").lower():
            raise CapabilityError(
                f"SQL Server 2016 or greater is required, found: {unsupported}"
            )


@dataclass
class ChangePlan:
    """Everything produced for one change query."""
    request: ChangeRequest
    tree: TableTree
    columns: List[ColumnInfo]
    sql: str

    @property
    def tracked_columns(self) -> List[ColumnInfo]:
        primary = self.tree.primary
        return [c for c in self.columns if primary and c.table_id == primary.table_id and c.is_tracked]

    @property
    def headers(self) -> List[str]:
        return self.request.labels.headers(include_changed_by=self.request.has_changed_by)


def plan_changes(provider: CatalogProvider, request: ChangeRequest) -> ChangePlan:
    """
    Check, resolve, classify and synthesize.

    The capability and parameter checks run before any table metadata is
    read, so a failing call does no catalog work.
    """
    check_engine_capability(provider.server_version())
    request.validate()

    tree = TableResolver(provider).resolve(request.table, request.changed_by_column)
    columns = ColumnClassifier(provider).classify(
        tree,
        ignore_columns=request.ignore_columns,
        mask_columns=request.mask_columns,
        format_names=request.format_names,
        preserve_adjacent_caps=request.preserve_adjacent_caps,
    )
    sql = QuerySynthesizer(tree, columns, request).render()
    return ChangePlan(request=request, tree=tree, columns=columns, sql=sql)


def get_changes_sql(provider: CatalogProvider, request: ChangeRequest) -> str:
    """Return the generated query text without executing it."""
    return plan_changes(provider, request).sql


def execute_query(sql: str, connection: Any):
    """Execute generated text and return the result as a pandas DataFrame."""
    import pandas as pd

    return pd.read_sql(sql, connection)


def get_changes(
    provider: CatalogProvider,
    request: ChangeRequest,
    connection: Optional[Any] = None,
) -> Union[str, Any]:
    """
    Produce the change report for one temporal table.

    Args:
        provider: Metadata provider (SqlServerCatalog or InMemoryCatalog)
        request: Change query parameters
        connection: DB-API connection to execute on; defaults to the provider's

    Returns:
        The query text when request.debug is set, otherwise a DataFrame whose
        columns are the configured result labels
    """
    plan = plan_changes(provider, request)
    if request.debug:
        return plan.sql

    conn = connection if connection is not None else provider.connection
    logger.info(f"Executing change query for {plan.tree.primary.full_name}")
    df = execute_query(plan.sql, conn)
    logger.info(f"Found {len(df)} changes")
    return df
