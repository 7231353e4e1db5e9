"""
SQL Server catalog provider using pyodbc.

Reads table, column, primary key, foreign key, trigger and description
metadata from the sys.* catalog views.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from temporal_changes.models import (
    CatalogColumn,
    CatalogTable,
    ForeignKeyEdge,
)

logger = logging.getLogger(__name__)


TABLE_QUERY = """
    SELECT
        T.object_id,
        S.name AS schema_name,
        T.name AS table_name,
        CAST(EP.value AS nvarchar(MAX)) AS description,
        CASE WHEN EXISTS (
            SELECT * FROM sys.triggers AS TG WHERE TG.parent_id = T.object_id
        ) THEN 1 ELSE 0 END AS has_triggers
    FROM sys.tables AS T
    INNER JOIN sys.schemas AS S ON T.schema_id = S.schema_id
    LEFT OUTER JOIN sys.extended_properties AS EP
        ON EP.major_id = T.object_id
        AND EP.minor_id = 0
        AND EP.class = 1
        AND EP.name = 'MS_Description'
    WHERE S.name = ? AND T.name = ?
"""

COLUMN_QUERY = """
    SELECT
        C.column_id,
        C.name,
        TP.name AS type_name,
        C.user_type_id,
        C.max_length,
        C.precision,
        C.scale,
        C.is_nullable,
        C.is_identity,
        C.is_computed,
        C.generated_always_type,
        CASE WHEN PK.column_id IS NOT NULL THEN 1 ELSE 0 END AS is_primary_key,
        CAST(EP.value AS nvarchar(MAX)) AS description
    FROM sys.columns AS C
    INNER JOIN sys.types AS TP ON TP.user_type_id = C.user_type_id
    LEFT OUTER JOIN sys.extended_properties AS EP
        ON EP.major_id = C.object_id
        AND EP.minor_id = C.column_id
        AND EP.class = 1
        AND EP.name = 'MS_Description'
    LEFT OUTER JOIN (
        SELECT IC.object_id, IC.column_id
        FROM sys.indexes AS I
        INNER JOIN sys.index_columns AS IC
            ON I.object_id = IC.object_id
            AND I.index_id = IC.index_id
        WHERE I.is_primary_key = 1
    ) AS PK
        ON PK.object_id = C.object_id
        AND PK.column_id = C.column_id
    WHERE C.object_id = ?
    ORDER BY C.column_id
"""

FOREIGN_KEY_QUERY = """
    SELECT
        FK.name AS constraint_name,
        C.name AS parent_column,
        SR.name AS referenced_schema,
        TR.name AS referenced_table,
        CR.name AS referenced_column,
        TR.object_id AS referenced_object_id
    FROM sys.foreign_key_columns AS FKC
    INNER JOIN sys.foreign_keys AS FK ON FK.object_id = FKC.constraint_object_id
    INNER JOIN sys.columns AS C
        ON C.object_id = FKC.parent_object_id
        AND C.column_id = FKC.parent_column_id
    INNER JOIN sys.tables AS TR ON TR.object_id = FKC.referenced_object_id
    INNER JOIN sys.schemas AS SR ON SR.schema_id = TR.schema_id
    INNER JOIN sys.columns AS CR
        ON CR.object_id = FKC.referenced_object_id
        AND CR.column_id = FKC.referenced_column_id
    WHERE FKC.parent_object_id = ?
    ORDER BY FK.name, FKC.constraint_column_id
"""


class SqlServerCatalog:
    """
    Metadata provider backed by a live SQL Server connection.

    Uses SQL Server catalog views:
    - sys.tables / sys.schemas
    - sys.columns / sys.types
    - sys.indexes / sys.index_columns (primary key membership)
    - sys.foreign_keys / sys.foreign_key_columns
    - sys.triggers
    - sys.extended_properties (MS_Description)
    """

    def __init__(self, connection_string: Optional[str] = None, connection: Optional[Any] = None):
        """
        Initialize provider with an ODBC connection string or an open connection.

        Args:
            connection_string: ODBC connection string
                (Driver={ODBC Driver 18 for SQL Server};Server=...;Database=...)
            connection: Existing DB-API connection to reuse
        """
        self.connection_string = connection_string
        self._conn = connection
        self._owns_conn = connection is None

    def connect(self) -> None:
        """Establish database connection."""
        import pyodbc

        if not self.connection_string:
            raise ValueError("No connection string configured")
        self._conn = pyodbc.connect(self.connection_string)
        self._owns_conn = True
        logger.info("Connected to SQL Server")

    def disconnect(self) -> None:
        """Close database connection if this provider opened it."""
        if self._conn is not None and self._owns_conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        if self._conn is None:
            self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()

    @property
    def connection(self) -> Any:
        """Open DB-API connection, connecting on first use."""
        if self._conn is None:
            self.connect()
        return self._conn

    def server_version(self) -> str:
        """Return @@VERSION of the connected server."""
        cursor = self.connection.cursor()
        try:
            cursor.execute("SELECT @@VERSION")
            row = cursor.fetchone()
        finally:
            cursor.close()
        return row[0] if row else ""

    def get_table(self, schema: str, table_name: str) -> Optional[CatalogTable]:
        """
        Get metadata for a specific table.

        Args:
            schema: Schema name
            table_name: Table name

        Returns:
            CatalogTable or None if table not found
        """
        cursor = self.connection.cursor()
        try:
            cursor.execute(TABLE_QUERY, schema, table_name)
            row = cursor.fetchone()
            if not row:
                logger.warning(f"Table not found: {schema}.{table_name}")
                return None

            object_id, schema_db, table_db, description, has_triggers = row
            columns = self._get_columns(cursor, object_id)
            foreign_keys = self._get_foreign_keys(cursor, object_id)
        finally:
            cursor.close()

        logger.debug(
            f"Loaded {schema_db}.{table_db}: {len(columns)} columns, "
            f"{len(foreign_keys)} foreign key columns"
        )
        return CatalogTable(
            object_id=object_id,
            schema=schema_db,
            name=table_db,
            columns=columns,
            foreign_keys=foreign_keys,
            description=description or "",
            has_triggers=bool(has_triggers),
        )

    def _get_columns(self, cursor, object_id: int) -> List[CatalogColumn]:
        """Get column metadata for a table in column_id order."""
        cursor.execute(COLUMN_QUERY, object_id)

        columns = []
        for row in cursor.fetchall():
            (
                column_id, name, type_name, user_type_id, max_length, precision,
                scale, is_nullable, is_identity, is_computed, generated_always_type,
                is_primary_key, description,
            ) = row
            columns.append(CatalogColumn(
                column_id=column_id,
                name=name,
                type_name=type_name,
                user_type_id=user_type_id,
                max_length=max_length,
                precision=precision,
                scale=scale,
                is_nullable=bool(is_nullable),
                is_identity=bool(is_identity),
                is_computed=bool(is_computed),
                generated_always_type=generated_always_type or 0,
                is_primary_key=bool(is_primary_key),
                description=description or "",
            ))

        return columns

    def _get_foreign_keys(self, cursor, object_id: int) -> List[ForeignKeyEdge]:
        """Get FK column pairs where the table is the referencing side."""
        cursor.execute(FOREIGN_KEY_QUERY, object_id)

        return [
            ForeignKeyEdge(
                name=row[0],
                parent_column=row[1],
                referenced_schema=row[2],
                referenced_table=row[3],
                referenced_column=row[4],
                referenced_object_id=row[5],
            )
            for row in cursor.fetchall()
        ]
