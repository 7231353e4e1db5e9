"""
Core data models for the temporal_changes package.

Defines the catalog rows returned by metadata providers, the per-run table
tree and column list, and the request/label objects that drive synthesis.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

import yaml

from temporal_changes.errors import ValidationError


# SQL Server sys.types.user_type_id values for the built-in types
SQL_SERVER_TYPE_IDS = {
    "image": 34,
    "text": 35,
    "uniqueidentifier": 36,
    "date": 40,
    "time": 41,
    "datetime2": 42,
    "datetimeoffset": 43,
    "tinyint": 48,
    "smallint": 52,
    "int": 56,
    "smalldatetime": 58,
    "real": 59,
    "money": 60,
    "datetime": 61,
    "float": 62,
    "sql_variant": 98,
    "ntext": 99,
    "bit": 104,
    "decimal": 106,
    "numeric": 108,
    "smallmoney": 122,
    "bigint": 127,
    "hierarchyid": 128,
    "geometry": 129,
    "geography": 130,
    "varbinary": 165,
    "varchar": 167,
    "binary": 173,
    "char": 175,
    "timestamp": 189,
    "rowversion": 189,
    "nvarchar": 231,
    "nchar": 239,
    "xml": 241,
    "sysname": 256,
}

# Types whose values are never compared (binary, legacy large objects, row
# versioning, spatial)
NON_COMPARABLE_TYPES = frozenset({
    "image",
    "text",
    "ntext",
    "rowversion",
    "binary",
    "varbinary",
    "geography",
    "geometry",
})

DEFAULT_SCHEMA = "dbo"
MAX_IDENTIFIER_LENGTH = 128


class TableRole(str, Enum):
    """Role of a resolved table within one synthesis run."""
    PRIMARY = "primary"
    ATTRIBUTION = "attribution"


class SortOrder(str, Enum):
    """Direction of the final ORDER BY on the changed time."""
    ASC = "ASC"
    DESC = "DESC"

    @classmethod
    def parse(cls, value: Union[str, SortOrder]) -> SortOrder:
        """Parse ASC/DESC (case-insensitive); anything else is a validation error."""
        if isinstance(value, SortOrder):
            return value
        text = str(value).strip().upper() if value is not None else ""
        try:
            return cls(text)
        except ValueError:
            raise ValidationError(
                f"Order parameter is not valid: {value!r}. Can only be ASC or DESC."
            ) from None


def parse_column_list(value: Union[None, str, List[str]]) -> List[str]:
    """
    Normalize an ignore/mask column list.

    Accepts None, a Python list, or a JSON array string such as
    '["FirstName","LastName"]'. Whitespace inside each name is removed so
    that entries compare against cleaned column names.
    """
    if value is None:
        return []
    if isinstance(value, str):
        if not value.strip():
            return []
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Column list is not valid JSON: {e}") from e
    if not isinstance(value, (list, tuple)):
        raise ValidationError(f"Column list must be a JSON array, got {type(value).__name__}")
    return ["".join(str(v).split()) for v in value if v is not None]


@dataclass
class CatalogColumn:
    """A column row as reported by the catalog (sys.columns and friends)."""
    column_id: int
    name: str
    type_name: str
    user_type_id: Optional[int] = None
    max_length: int = 0  # bytes, -1 for MAX
    precision: int = 0
    scale: int = 0
    is_nullable: bool = True
    is_identity: bool = False
    is_computed: bool = False
    generated_always_type: int = 0  # 1 = period start, 2 = period end
    is_primary_key: bool = False
    description: str = ""

    def __post_init__(self):
        if self.user_type_id is None:
            self.user_type_id = SQL_SERVER_TYPE_IDS.get(self.type_name.lower(), 0)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "column_id": self.column_id,
            "name": self.name,
            "type_name": self.type_name,
            "user_type_id": self.user_type_id,
            "max_length": self.max_length,
            "precision": self.precision,
            "scale": self.scale,
            "is_nullable": self.is_nullable,
            "is_identity": self.is_identity,
            "is_computed": self.is_computed,
            "generated_always_type": self.generated_always_type,
            "is_primary_key": self.is_primary_key,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], column_id: int = 0) -> CatalogColumn:
        """Create from dictionary."""
        return cls(
            column_id=data.get("column_id", column_id),
            name=data["name"],
            type_name=data.get("type_name", data.get("type", "nvarchar")),
            user_type_id=data.get("user_type_id"),
            max_length=data.get("max_length", 0),
            precision=data.get("precision", 0),
            scale=data.get("scale", 0),
            is_nullable=data.get("is_nullable", data.get("nullable", True)),
            is_identity=data.get("is_identity", False),
            is_computed=data.get("is_computed", False),
            generated_always_type=data.get("generated_always_type", 0),
            is_primary_key=data.get("is_primary_key", False),
            description=data.get("description", ""),
        )


@dataclass
class ForeignKeyEdge:
    """One column pair of a foreign key from a table to a referenced table."""
    name: str
    parent_column: str
    referenced_schema: str
    referenced_table: str
    referenced_column: str
    referenced_object_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "parent_column": self.parent_column,
            "referenced_schema": self.referenced_schema,
            "referenced_table": self.referenced_table,
            "referenced_column": self.referenced_column,
            "referenced_object_id": self.referenced_object_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ForeignKeyEdge:
        """Create from dictionary."""
        return cls(
            name=data.get("name", f"FK_{data['parent_column']}"),
            parent_column=data["parent_column"],
            referenced_schema=data.get("referenced_schema", DEFAULT_SCHEMA),
            referenced_table=data["referenced_table"],
            referenced_column=data["referenced_column"],
            referenced_object_id=data.get("referenced_object_id"),
        )


@dataclass
class CatalogTable:
    """A user table as reported by the catalog."""
    object_id: int
    schema: str
    name: str
    columns: List[CatalogColumn] = field(default_factory=list)
    foreign_keys: List[ForeignKeyEdge] = field(default_factory=list)
    description: str = ""
    has_triggers: bool = False

    @property
    def full_name(self) -> str:
        """Return schema-qualified table name."""
        return f"{self.schema}.{self.name}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "object_id": self.object_id,
            "schema": self.schema,
            "name": self.name,
            "columns": [c.to_dict() for c in self.columns],
            "foreign_keys": [fk.to_dict() for fk in self.foreign_keys],
            "description": self.description,
            "has_triggers": self.has_triggers,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], object_id: int = 0) -> CatalogTable:
        """Create from dictionary."""
        return cls(
            object_id=data.get("object_id", object_id),
            schema=data.get("schema", DEFAULT_SCHEMA),
            name=data["name"],
            columns=[
                CatalogColumn.from_dict(c, column_id=i)
                for i, c in enumerate(data.get("columns", []), start=1)
            ],
            foreign_keys=[ForeignKeyEdge.from_dict(fk) for fk in data.get("foreign_keys", [])],
            description=data.get("description", ""),
            has_triggers=data.get("has_triggers", False),
        )


@dataclass
class TableRef:
    """A table resolved for one synthesis run."""
    object_id: int
    schema: str
    name: str
    role: TableRole
    depth: int = 0
    table_id: int = 0
    alias: str = ""
    parent_id: Optional[int] = None
    parent_column: Optional[str] = None  # column on the parent table
    referenced_column: Optional[str] = None  # column on this table
    description: str = ""
    has_triggers: bool = False
    catalog: Optional[CatalogTable] = field(default=None, repr=False, compare=False)

    @property
    def full_name(self) -> str:
        """Return schema-qualified table name."""
        return f"{self.schema}.{self.name}"


@dataclass
class TableTree:
    """
    Ordered collection of the tables resolved for one run.

    Tables are keyed by a synthetic id assigned in resolution order. Parent
    links and depth describe how each table was reached from the primary
    table; only one hop is resolved today.
    """
    tables: List[TableRef] = field(default_factory=list)

    def add(self, ref: TableRef) -> TableRef:
        """Append a table and assign its synthetic id."""
        if ref.role == TableRole.PRIMARY and self.primary is not None:
            raise ValueError("A run can only have one primary table")
        if ref.role == TableRole.ATTRIBUTION and self.attribution is not None:
            raise ValueError("A run can only have one attribution table")
        ref.table_id = len(self.tables) + 1
        self.tables.append(ref)
        return ref

    def __iter__(self) -> Iterator[TableRef]:
        return iter(self.tables)

    def __len__(self) -> int:
        return len(self.tables)

    @property
    def primary(self) -> Optional[TableRef]:
        return next((t for t in self.tables if t.role == TableRole.PRIMARY), None)

    @property
    def attribution(self) -> Optional[TableRef]:
        return next((t for t in self.tables if t.role == TableRole.ATTRIBUTION), None)

    def get(self, table_id: int) -> Optional[TableRef]:
        """Get table by synthetic id."""
        return next((t for t in self.tables if t.table_id == table_id), None)

    def by_object_id(self, object_id: int) -> List[TableRef]:
        """Get every resolved occurrence of a catalog object."""
        return [t for t in self.tables if t.object_id == object_id]

    def children_of(self, ref: TableRef) -> List[TableRef]:
        """Get tables reached from ref via one foreign key."""
        return [t for t in self.tables if t.parent_id == ref.table_id]


@dataclass
class ColumnInfo:
    """A classified column of a resolved table."""
    column_id: int
    table_id: int
    table_alias: str
    catalog_column_id: int
    name: str
    cleaned_name: str
    label: str
    type_name: str
    type_signature: str
    is_nullable: bool = True
    description: str = ""
    is_primary_key: bool = False
    is_period_start: bool = False
    is_period_end: bool = False
    is_identity: bool = False
    is_computed: bool = False
    is_referenced: bool = False
    is_ignored: bool = False
    is_masked: bool = False

    @property
    def is_comparable(self) -> bool:
        """False for binary, legacy large object, row versioning and spatial types."""
        return self.type_name.lower() not in NON_COMPARABLE_TYPES

    @property
    def is_tracked(self) -> bool:
        """True when the column takes part in the old/new comparison."""
        return (
            self.is_comparable
            and not self.is_ignored
            and not self.is_primary_key
            and not self.is_period_start
            and not self.is_period_end
        )

    @property
    def qualified(self) -> str:
        """Bracket-quoted [alias].[column] reference."""
        from temporal_changes.quoting import qualify

        return qualify(self.table_alias, self.name)

    @property
    def nullability(self) -> str:
        return "NULL" if self.is_nullable else "NOT NULL"


@dataclass
class ResultLabels:
    """Header names of the result columns."""
    key: str = "Identifier"
    column: str = "Field Name"
    old_value: str = "Old Value"
    new_value: str = "New Value"
    changed_by: str = "Changed By"
    changed_time: str = "Changed Time"

    def validate(self) -> None:
        """Labels must be non-empty, distinct and fit a SQL Server identifier."""
        values = list(self.to_dict().values())
        for name, value in self.to_dict().items():
            if not value or not str(value).strip():
                raise ValidationError(f"Result label '{name}' cannot be empty")
            if len(value) > MAX_IDENTIFIER_LENGTH:
                raise ValidationError(
                    f"Result label '{name}' exceeds {MAX_IDENTIFIER_LENGTH} characters"
                )
        lowered = [v.lower() for v in values]
        duplicates = sorted({v for v in values if lowered.count(v.lower()) > 1})
        if duplicates:
            raise ValidationError(f"Result labels must be distinct: {', '.join(duplicates)}")

    def headers(self, include_changed_by: bool = False) -> List[str]:
        """Return result column headers in output order."""
        headers = [self.key, self.column, self.old_value, self.new_value]
        if include_changed_by:
            headers.append(self.changed_by)
        headers.append(self.changed_time)
        return headers

    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary for serialization."""
        return {
            "key": self.key,
            "column": self.column,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "changed_by": self.changed_by,
            "changed_time": self.changed_time,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ResultLabels:
        """Create from dictionary, keeping defaults for missing keys."""
        defaults = cls()
        return cls(**{k: data.get(k) or v for k, v in defaults.to_dict().items()})


@dataclass
class ChangeRequest:
    """Parameters of one change query."""
    table: str
    primary_key_value: Union[None, str, List[str]] = None  # list for composite keys
    changed_by_column: Optional[str] = None
    changed_by_value_column: Optional[str] = None
    ignore_columns: List[str] = field(default_factory=list)
    mask_columns: List[str] = field(default_factory=list)
    format_names: bool = True
    preserve_adjacent_caps: bool = True
    labels: ResultLabels = field(default_factory=ResultLabels)
    order: SortOrder = SortOrder.DESC
    include_initial_versions: bool = False
    debug: bool = False

    def __post_init__(self):
        self.ignore_columns = parse_column_list(self.ignore_columns)
        self.mask_columns = parse_column_list(self.mask_columns)
        if isinstance(self.labels, dict):
            self.labels = ResultLabels.from_dict(self.labels)
        if isinstance(self.primary_key_value, (list, tuple)):
            self.primary_key_value = [str(v) for v in self.primary_key_value] or None
        elif self.primary_key_value is not None:
            self.primary_key_value = str(self.primary_key_value) or None

    def validate(self) -> None:
        """Check every parameter that can be checked without the catalog."""
        if not self.table or not self.table.strip():
            raise ValidationError("A table name in the form SchemaName.TableName is required")
        self.order = SortOrder.parse(self.order)
        self.labels.validate()
        for name in (self.changed_by_column, self.changed_by_value_column):
            if name is not None and len(name) > MAX_IDENTIFIER_LENGTH:
                raise ValidationError(f"Column name exceeds {MAX_IDENTIFIER_LENGTH} characters: {name}")

    @property
    def has_changed_by(self) -> bool:
        return bool(self.changed_by_value_column)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "table": self.table,
            "primary_key_value": self.primary_key_value,
            "changed_by_column": self.changed_by_column,
            "changed_by_value_column": self.changed_by_value_column,
            "ignore_columns": list(self.ignore_columns),
            "mask_columns": list(self.mask_columns),
            "format_names": self.format_names,
            "preserve_adjacent_caps": self.preserve_adjacent_caps,
            "labels": self.labels.to_dict(),
            "order": SortOrder.parse(self.order).value,
            "include_initial_versions": self.include_initial_versions,
            "debug": self.debug,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ChangeRequest:
        """Create from dictionary."""
        return cls(
            table=data["table"],
            primary_key_value=data.get("primary_key_value"),
            changed_by_column=data.get("changed_by_column"),
            changed_by_value_column=data.get("changed_by_value_column"),
            ignore_columns=data.get("ignore_columns"),
            mask_columns=data.get("mask_columns"),
            format_names=data.get("format_names", True),
            preserve_adjacent_caps=data.get("preserve_adjacent_caps", True),
            labels=ResultLabels.from_dict(data.get("labels") or {}),
            order=data.get("order", SortOrder.DESC),
            include_initial_versions=data.get("include_initial_versions", False),
            debug=data.get("debug", False),
        )

    @classmethod
    def from_yaml(cls, path: Path, **overrides: Any) -> ChangeRequest:
        """Load a request from a YAML options file; non-None overrides win."""
        path = Path(path)
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls.from_dict(data)
