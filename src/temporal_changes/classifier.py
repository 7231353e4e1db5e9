"""
Column classification.

Loads the columns of every resolved table and tags each with its role in
the change query: key, period boundary, identity, computed, referenced,
ignored or masked.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Set

from temporal_changes.metadata.provider import CatalogProvider
from temporal_changes.models import (
    CatalogColumn,
    CatalogTable,
    ColumnInfo,
    TableRef,
    TableTree,
)
from temporal_changes.naming import format_column_name, remove_whitespace

logger = logging.getLogger(__name__)


# sys.types.user_type_id groups that carry a length/precision suffix
DECIMAL_TYPE_IDS = {106, 108}            # decimal, numeric
FRACTIONAL_TIME_TYPE_IDS = {41, 42, 43}  # time, datetime2, datetimeoffset
BYTE_LENGTH_TYPE_IDS = {165, 167, 173, 175}  # varbinary, varchar, binary, char
UNICODE_LENGTH_TYPE_IDS = {231, 239}     # nvarchar, nchar

PERIOD_START = 1
PERIOD_END = 2


def normalize_type_name(type_name: str) -> str:
    """Map the deprecated timestamp type name onto rowversion."""
    return "rowversion" if type_name.lower() == "timestamp" else type_name


def type_signature(column: CatalogColumn) -> str:
    """
    Build the declared type of a column, e.g. "decimal(18, 2)",
    "datetime2(7)", "nvarchar(50)" or "varbinary(MAX)".
    """
    name = normalize_type_name(column.type_name)
    type_id = column.user_type_id

    if type_id in DECIMAL_TYPE_IDS:
        return f"{name}({column.precision}, {column.scale})"
    if type_id in FRACTIONAL_TIME_TYPE_IDS:
        return f"{name}({column.scale})"
    if type_id in BYTE_LENGTH_TYPE_IDS:
        length = "MAX" if column.max_length == -1 else str(column.max_length)
        return f"{name}({length})"
    if type_id in UNICODE_LENGTH_TYPE_IDS:
        length = "MAX" if column.max_length == -1 else str(column.max_length // 2)
        return f"{name}({length})"
    return name


class ColumnClassifier:
    """
    Produces the ordered ColumnInfo list for a resolved TableTree.

    Columns come out in (table resolution order, catalog column order).
    Primary key columns are never ignored or masked, whatever the lists say.
    """

    def __init__(self, provider: Optional[CatalogProvider] = None):
        self.provider = provider

    def classify(
        self,
        tree: TableTree,
        ignore_columns: Iterable[str] = (),
        mask_columns: Iterable[str] = (),
        format_names: bool = True,
        preserve_adjacent_caps: bool = True,
    ) -> List[ColumnInfo]:
        """
        Classify every column of every resolved table.

        Args:
            tree: Resolved tables
            ignore_columns: Column names excluded from the output
            mask_columns: Column names whose values are redacted
            format_names: Format labels with the name formatter
            preserve_adjacent_caps: Keep runs of capitals together in labels

        Returns:
            List of ColumnInfo
        """
        ignore = {remove_whitespace(c).lower() for c in ignore_columns}
        mask = {remove_whitespace(c).lower() for c in mask_columns}

        columns: List[ColumnInfo] = []
        for ref in tree:
            catalog_table = self._catalog_table(ref)
            if catalog_table is None:
                continue
            referenced = self._referenced_columns(tree, ref)
            for col in sorted(catalog_table.columns, key=lambda c: c.column_id):
                columns.append(self._classify_column(
                    col,
                    ref,
                    column_id=len(columns) + 1,
                    is_referenced=col.name.lower() in referenced,
                    format_names=format_names,
                    preserve_adjacent_caps=preserve_adjacent_caps,
                ))

        primary = tree.primary
        for info in columns:
            if info.is_primary_key:
                continue
            info.is_ignored = info.cleaned_name.lower() in ignore
            info.is_masked = info.cleaned_name.lower() in mask

        self._log_unmatched("ignore", ignore, columns, primary)
        self._log_unmatched("mask", mask, columns, primary)

        logger.info(
            f"Classified {len(columns)} columns across {len(tree)} tables "
            f"({sum(c.is_tracked for c in columns if primary and c.table_id == primary.table_id)} tracked)"
        )
        return columns

    def _catalog_table(self, ref: TableRef) -> Optional[CatalogTable]:
        if ref.catalog is not None:
            return ref.catalog
        if self.provider is None:
            return None
        ref.catalog = self.provider.get_table(ref.schema, ref.name)
        return ref.catalog

    @staticmethod
    def _referenced_columns(tree: TableTree, ref: TableRef) -> Set[str]:
        """Columns of ref that another resolved table was joined through."""
        return {
            child.parent_column.lower()
            for child in tree.children_of(ref)
            if child.parent_column
        }

    @staticmethod
    def _classify_column(
        col: CatalogColumn,
        ref: TableRef,
        column_id: int,
        is_referenced: bool,
        format_names: bool,
        preserve_adjacent_caps: bool,
    ) -> ColumnInfo:
        return ColumnInfo(
            column_id=column_id,
            table_id=ref.table_id,
            table_alias=ref.alias,
            catalog_column_id=col.column_id,
            name=col.name,
            cleaned_name=remove_whitespace(col.name),
            label=format_column_name(
                col.name,
                enabled=format_names,
                preserve_adjacent_caps=preserve_adjacent_caps,
            ),
            type_name=normalize_type_name(col.type_name),
            type_signature=type_signature(col),
            is_nullable=col.is_nullable,
            description=col.description,
            is_primary_key=col.is_primary_key,
            is_period_start=col.generated_always_type == PERIOD_START,
            is_period_end=col.generated_always_type == PERIOD_END,
            is_identity=col.is_identity,
            is_computed=col.is_computed,
            is_referenced=is_referenced,
        )

    @staticmethod
    def _log_unmatched(
        kind: str,
        names: Set[str],
        columns: List[ColumnInfo],
        primary: Optional[TableRef],
    ) -> None:
        if not names or primary is None:
            return
        known = {c.cleaned_name.lower() for c in columns if c.table_id == primary.table_id}
        for name in sorted(names - known):
            logger.debug(f"{kind} column {name!r} not found on {primary.full_name}; ignored")
