"""
Table resolution and alias allocation.

Resolves the temporal table being diffed and, optionally, the lookup table
reached through one foreign key that names who made each change.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from temporal_changes.errors import TableNotFoundError, ValidationError
from temporal_changes.metadata.provider import CatalogProvider
from temporal_changes.models import (
    DEFAULT_SCHEMA,
    CatalogTable,
    ForeignKeyEdge,
    TableRef,
    TableRole,
    TableTree,
)

logger = logging.getLogger(__name__)


def _split_identifier_parts(name: str) -> List[str]:
    """Split a dotted name, honouring [bracket] and "double quote" quoting."""
    parts: List[str] = []
    current: List[str] = []
    closing = None
    chars = iter(name)
    for ch in chars:
        if closing is not None:
            if ch == closing:
                following = next(chars, None)
                if following == closing:
                    current.append(ch)
                    continue
                closing = None
                if following is None:
                    break
                ch = following
            else:
                current.append(ch)
                continue
        if ch == ".":
            parts.append("".join(current))
            current = []
        elif ch == "[":
            closing = "]"
        elif ch == '"':
            closing = '"'
        else:
            current.append(ch)
    if closing is not None:
        raise ValidationError(f"Unterminated quoted identifier in {name!r}")
    parts.append("".join(current))
    return parts


def split_table_name(name: str) -> Tuple[str, str]:
    """
    Split "SchemaName.TableName" into its parts.

    A bare table name defaults to the dbo schema. Bracketed parts such as
    "[sales].[Order Line]" are unquoted.
    """
    if not name or not name.strip():
        raise ValidationError("A table name in the form SchemaName.TableName is required")
    parts = [p.strip() for p in _split_identifier_parts(name.strip())]
    if any(not p for p in parts) or len(parts) > 2:
        raise ValidationError(f"Invalid table name: {name!r}. Expected SchemaName.TableName")
    if len(parts) == 1:
        return DEFAULT_SCHEMA, parts[0]
    return parts[0], parts[1]


def alias_base_key(table_name: str) -> str:
    """
    Derive the alias base key of a table name.

    Keeps only the ASCII capitals and digits ("PersonAddress" -> "PA",
    "Order2Line" -> "O2L"). A name without any falls back to its first
    character, upper-cased ("person" -> "P").
    """
    key = "".join(ch for ch in table_name if "A" <= ch <= "Z" or "0" <= ch <= "9")
    if key:
        return key
    return table_name[:1].upper()


def allocate_aliases(table_names: List[str]) -> List[str]:
    """
    Allocate one alias per table name, in the given order.

    The first table with a given base key gets the key itself; later ones
    get the key plus a counter starting at 0: P, P0, P1, ...
    """
    seen: Dict[str, int] = defaultdict(int)
    aliases = []
    for name in table_names:
        key = alias_base_key(name)
        occurrence = seen[key]
        seen[key] += 1
        aliases.append(key if occurrence == 0 else f"{key}{occurrence - 1}")
    return aliases


class TableResolver:
    """
    Resolves the tables taking part in one change query.

    The primary table is the temporal table itself. The attribution table
    is whatever the named foreign key column on the primary table
    references; it is optional and silently skipped when no such foreign
    key exists.
    """

    def __init__(self, provider: CatalogProvider):
        self.provider = provider

    def resolve(
        self,
        schema_table: str,
        attribution_column: Optional[str] = None,
    ) -> TableTree:
        """
        Resolve tables and allocate aliases.

        Args:
            schema_table: Target table as SchemaName.TableName
            attribution_column: FK column on the target naming who changed the row

        Returns:
            TableTree with the primary table and, if found, the attribution table

        Raises:
            TableNotFoundError: if the target table is not in the catalog
        """
        schema, table_name = split_table_name(schema_table)
        logger.info(f"Resolving tables for {schema}.{table_name}")

        catalog_table = self.provider.get_table(schema, table_name)
        if catalog_table is None:
            raise TableNotFoundError(schema, table_name)

        tree = TableTree()
        primary = tree.add(self._to_ref(catalog_table, TableRole.PRIMARY, depth=0))

        if attribution_column:
            self._resolve_attribution(tree, primary, catalog_table, attribution_column)

        for ref, alias in zip(tree, allocate_aliases([t.name for t in tree])):
            ref.alias = alias

        logger.debug(
            "Resolved tables: "
            + ", ".join(f"{t.full_name} AS {t.alias} ({t.role.value})" for t in tree)
        )
        return tree

    def _resolve_attribution(
        self,
        tree: TableTree,
        primary: TableRef,
        catalog_table: CatalogTable,
        attribution_column: str,
    ) -> None:
        """Add the table referenced by the attribution FK column, if any."""
        edge = self._find_edge(catalog_table, attribution_column)
        if edge is None:
            logger.debug(
                f"No foreign key on {primary.full_name}.{attribution_column}; "
                "attribution table skipped"
            )
            return

        referenced = self.provider.get_table(edge.referenced_schema, edge.referenced_table)
        if referenced is None:
            logger.warning(
                f"Referenced table {edge.referenced_schema}.{edge.referenced_table} "
                "not found; attribution table skipped"
            )
            return

        ref = self._to_ref(referenced, TableRole.ATTRIBUTION, depth=primary.depth + 1)
        ref.parent_id = primary.table_id
        ref.parent_column = edge.parent_column
        ref.referenced_column = edge.referenced_column
        tree.add(ref)

    @staticmethod
    def _find_edge(table: CatalogTable, column_name: str) -> Optional[ForeignKeyEdge]:
        """First FK column pair whose parent column matches (case-insensitive)."""
        wanted = column_name.lower()
        return next(
            (fk for fk in table.foreign_keys if fk.parent_column.lower() == wanted),
            None,
        )

    @staticmethod
    def _to_ref(table: CatalogTable, role: TableRole, depth: int) -> TableRef:
        return TableRef(
            object_id=table.object_id,
            schema=table.schema,
            name=table.name,
            role=role,
            depth=depth,
            description=table.description,
            has_triggers=table.has_triggers,
            catalog=table,
        )
