"""
Change query synthesis.

Builds the T-SQL that lists, per row and per tracked column, the old and
new value at every version where the value changed. The query is assembled
from independent fragments:

    source      FROM <table> FOR SYSTEM_TIME ALL [JOIN attribution] [WHERE key]
    pairing     CTE select list: key, time, changed by, New<col>/Old<col> via LAG
    unpivot     CROSS APPLY (VALUES ...) turning column pairs into rows
    projection  outer select list with masking / null rendering
    filter      EXISTS (SELECT new EXCEPT SELECT old), first versions dropped
    ordering    ORDER BY changed time ASC|DESC
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from temporal_changes.errors import SynthesisError, TableNotTemporalError, ValidationError
from temporal_changes.models import (
    MAX_IDENTIFIER_LENGTH,
    ChangeRequest,
    ColumnInfo,
    SortOrder,
    TableRef,
    TableTree,
)
from temporal_changes.quoting import literal_list, qualify, quote_identifier, quote_literal

logger = logging.getLogger(__name__)

CTE_NAME = "Temporal"
CTE_ALIAS = "T"
UNPIVOT_ALIAS = "CA"
VERSION_NUMBER = "VersionNumber"
MASK_MARKER = "****"
UNKNOWN_MARKER = "[UNKNOWN]"
TEXT_TYPE = "nvarchar(MAX)"
HEADER = "/* Generated by temporal_changes */"


class FragmentKind(str, Enum):
    """The building blocks of a change query."""
    SOURCE = "source"
    PAIRING = "pairing"
    UNPIVOT = "unpivot"
    PROJECTION = "projection"
    FILTER = "filter"
    ORDERING = "ordering"


@dataclass(frozen=True)
class SqlFragment:
    """A piece of generated T-SQL."""
    kind: FragmentKind
    text: str

    def __str__(self) -> str:
        return self.text


def _as_text(expression: str) -> str:
    return f"CAST({expression} AS {TEXT_TYPE})"


def _value_alias(prefix: str, column: ColumnInfo) -> str:
    """CTE column name for one side of a pair, e.g. NewFirstName."""
    name = prefix + column.name
    if len(name) > MAX_IDENTIFIER_LENGTH:
        name = f"{prefix}#{column.column_id}"
    return name


class QuerySynthesizer:
    """
    Assembles a change query from a resolved TableTree and its columns.

    Example:
        synthesizer = QuerySynthesizer(tree, columns, request)
        sql = synthesizer.render()
    """

    def __init__(self, tree: TableTree, columns: List[ColumnInfo], request: ChangeRequest):
        primary = tree.primary
        if primary is None:
            raise SynthesisError("No primary table resolved")

        self.tree = tree
        self.request = request
        self.labels = request.labels
        self.order = SortOrder.parse(request.order)
        self.primary: TableRef = primary
        self.attribution: Optional[TableRef] = tree.attribution

        own = [c for c in columns if c.table_id == primary.table_id]
        self.columns = columns
        self.key_columns = [c for c in own if c.is_primary_key]
        if not self.key_columns:
            raise SynthesisError(f"{primary.full_name} has no primary key")

        period_start = next((c for c in own if c.is_period_start), None)
        if period_start is None:
            raise TableNotTemporalError(
                f"{primary.full_name} has no period start column; is it system-versioned?"
            )
        self.period_start = period_start
        self.tracked = [c for c in own if c.is_tracked]
        self.masked = [c for c in own if c.is_masked]

        skipped = [c.name for c in own if not c.is_comparable]
        if skipped:
            logger.info(f"Columns excluded by type: {', '.join(skipped)}")

        self._check_label_collisions()

    # ------------------------------------------------------------------
    # Shared expressions
    # ------------------------------------------------------------------

    def _col(self, column: ColumnInfo) -> str:
        return column.qualified

    def _cte(self, name: str) -> str:
        return qualify(CTE_ALIAS, name)

    def _ca(self, name: str) -> str:
        return qualify(UNPIVOT_ALIAS, name)

    def _window(self) -> str:
        partition = ", ".join(self._col(c) for c in self.key_columns)
        return f"OVER (PARTITION BY {partition} ORDER BY {self._col(self.period_start)} ASC)"

    def _key_expression(self) -> str:
        if len(self.key_columns) == 1:
            return self._col(self.key_columns[0])
        parts = f", {quote_literal(', ')}, ".join(_as_text(self._col(c)) for c in self.key_columns)
        return f"CONCAT({parts})"

    def _changed_by_expression(self) -> str:
        """The attribution value, read from the lookup table when it has the column."""
        name = self.request.changed_by_value_column
        wanted = name.lower()
        candidates = [self.attribution, self.primary] if self.attribution else [self.primary]
        for ref in candidates:
            if any(c.table_id == ref.table_id and c.name.lower() == wanted for c in self.columns):
                return _as_text(qualify(ref.alias, name))
        owner = candidates[0]
        logger.warning(f"Changed-by column {name!r} not found on {owner.full_name}")
        return _as_text(qualify(owner.alias, name))

    def _key_values(self) -> List[str]:
        value = self.request.primary_key_value
        if isinstance(value, list):
            values = value
        elif len(self.key_columns) > 1:
            values = [v.strip() for v in value.split(",")]
        else:
            values = [value]
        if len(values) != len(self.key_columns):
            raise ValidationError(
                f"Expected {len(self.key_columns)} primary key values "
                f"({', '.join(c.name for c in self.key_columns)}), got {len(values)}"
            )
        return values

    def _check_label_collisions(self) -> None:
        reserved = {VERSION_NUMBER.lower()}
        for column in self.tracked:
            reserved.add(_value_alias("New", column).lower())
            reserved.add(_value_alias("Old", column).lower())
        clashes = [label for label in self.labels.to_dict().values() if label.lower() in reserved]
        if clashes:
            raise ValidationError(
                f"Result labels clash with generated column names: {', '.join(clashes)}"
            )

    # ------------------------------------------------------------------
    # Fragments
    # ------------------------------------------------------------------

    def source_fragment(self) -> SqlFragment:
        """Versioned source over all history, attribution join and key filter."""
        lines = [
            "        FROM",
            f"            {qualify(self.primary.schema, self.primary.name)} "
            f"FOR SYSTEM_TIME ALL AS {quote_identifier(self.primary.alias)}",
        ]
        if self.attribution is not None:
            ref = self.attribution
            lines.append(
                f"        LEFT OUTER JOIN {qualify(ref.schema, ref.name)} AS {quote_identifier(ref.alias)}"
                f" ON {qualify(self.primary.alias, ref.parent_column)}"
                f" = {qualify(ref.alias, ref.referenced_column)}"
            )
        if self.request.primary_key_value is not None:
            conditions = [
                f"{self._col(c)} = {quote_literal(v)}"
                for c, v in zip(self.key_columns, self._key_values())
            ]
            lines.append("        WHERE")
            lines.append("            " + "\n            AND ".join(conditions))
        return SqlFragment(FragmentKind.SOURCE, "\n".join(lines))

    def pairing_fragment(self) -> SqlFragment:
        """CTE select list pairing each value with its LAG over the key partition."""
        window = self._window()
        items = [
            f"{quote_identifier(self.labels.key)} = {self._key_expression()}",
            f"{quote_identifier(self.labels.changed_time)} = {self._col(self.period_start)}",
        ]
        if self.request.has_changed_by:
            items.append(
                f"{quote_identifier(self.labels.changed_by)} = {self._changed_by_expression()}"
            )
        if not self.request.include_initial_versions:
            items.append(f"{quote_identifier(VERSION_NUMBER)} = ROW_NUMBER() {window}")
        for column in self.tracked:
            items.append(f"{quote_identifier(_value_alias('New', column))} = {self._col(column)}")
            items.append(
                f"{quote_identifier(_value_alias('Old', column))} = "
                f"LAG({self._col(column)}, 1, NULL) {window}"
            )
        text = "             " + "\n            ,".join(items)
        return SqlFragment(FragmentKind.PAIRING, text)

    def unpivot_fragment(self) -> SqlFragment:
        """CROSS APPLY turning each New/Old pair into a (label, new, old) row."""
        rows = [
            f"({quote_literal(c.label)}, "
            f"{_as_text(self._cte(_value_alias('New', c)))}, "
            f"{_as_text(self._cte(_value_alias('Old', c)))})"
            for c in self.tracked
        ]
        if not rows:
            logger.warning(f"No comparable columns left on {self.primary.full_name}")
            rows = [f"({_as_text('NULL')}, {_as_text('NULL')}, {_as_text('NULL')})"]

        names = ", ".join(
            quote_identifier(n)
            for n in (self.labels.column, self.labels.new_value, self.labels.old_value)
        )
        text = (
            "CROSS APPLY (\n"
            "    VALUES\n"
            "         " + "\n        ,".join(rows) + "\n"
            f") AS {quote_identifier(UNPIVOT_ALIAS)} ({names})"
        )
        return SqlFragment(FragmentKind.UNPIVOT, text)

    def projection_fragment(self) -> SqlFragment:
        """Outer select list; masks values or renders absent values as empty text."""
        items = [
            f"{quote_identifier(self.labels.key)} = {self._cte(self.labels.key)}",
            f"{quote_identifier(self.labels.column)} = {self._ca(self.labels.column)}",
        ]
        if self.masked:
            mask_list = literal_list(dict.fromkeys(c.label for c in self.masked))
            for label in (self.labels.old_value, self.labels.new_value):
                items.append(
                    f"{quote_identifier(label)} = CASE WHEN {self._ca(self.labels.column)} IN ({mask_list})"
                    f" THEN {quote_literal(MASK_MARKER)} ELSE {self._ca(label)} END"
                )
        else:
            for label in (self.labels.old_value, self.labels.new_value):
                items.append(f"{quote_identifier(label)} = ISNULL({self._ca(label)}, N'')")
        if self.request.has_changed_by:
            items.append(
                f"{quote_identifier(self.labels.changed_by)} = "
                f"ISNULL({self._cte(self.labels.changed_by)}, {quote_literal(UNKNOWN_MARKER)})"
            )
        items.append(
            f"{quote_identifier(self.labels.changed_time)} = {self._cte(self.labels.changed_time)}"
        )
        return SqlFragment(FragmentKind.PROJECTION, "     " + "\n    ,".join(items))

    def filter_fragment(self) -> SqlFragment:
        """Keep rows whose old and new differ, null-aware, skipping first versions."""
        new = qualify(UNPIVOT_ALIAS, self.labels.new_value)
        old = qualify(UNPIVOT_ALIAS, self.labels.old_value)
        conditions = [f"EXISTS (SELECT {new} EXCEPT SELECT {old})"]
        if not self.request.include_initial_versions:
            conditions.append(f"{self._cte(VERSION_NUMBER)} > 1")
        return SqlFragment(FragmentKind.FILTER, "WHERE\n    " + "\n    AND ".join(conditions))

    def ordering_fragment(self) -> SqlFragment:
        return SqlFragment(
            FragmentKind.ORDERING,
            f"ORDER BY\n    {self._cte(self.labels.changed_time)} {self.order.value};",
        )

    def fragments(self) -> List[SqlFragment]:
        return [
            self.source_fragment(),
            self.pairing_fragment(),
            self.unpivot_fragment(),
            self.projection_fragment(),
            self.filter_fragment(),
            self.ordering_fragment(),
        ]

    def render(self) -> str:
        """Concatenate the fragments into the final query text."""
        source, pairing, unpivot, projection, filter_, ordering = self.fragments()
        sql = "\n".join([
            HEADER,
            f"WITH {quote_identifier(CTE_NAME)}",
            "  AS (",
            "        SELECT",
            pairing.text,
            source.text,
            "  )",
            "SELECT",
            projection.text,
            "FROM",
            f"    {quote_identifier(CTE_NAME)} AS {quote_identifier(CTE_ALIAS)}",
            unpivot.text,
            filter_.text,
            ordering.text,
        ])
        logger.debug(f"Synthesized {len(sql.splitlines())} lines for {self.primary.full_name}")
        return sql


def synthesize(tree: TableTree, columns: List[ColumnInfo], request: ChangeRequest) -> str:
    """Render the change query for already resolved and classified metadata."""
    return QuerySynthesizer(tree, columns, request).render()
