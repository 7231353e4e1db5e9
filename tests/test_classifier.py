"""Tests for column classification."""

import pytest

from temporal_changes.classifier import ColumnClassifier, normalize_type_name, type_signature
from temporal_changes.metadata import InMemoryCatalog
from temporal_changes.models import CatalogColumn, CatalogTable
from temporal_changes.resolver import TableResolver


class TestTypeSignature:
    """Tests for type_signature."""

    @pytest.mark.parametrize("column,expected", [
        (CatalogColumn(1, "A", "decimal", precision=18, scale=2), "decimal(18, 2)"),
        (CatalogColumn(1, "A", "numeric", precision=9, scale=0), "numeric(9, 0)"),
        (CatalogColumn(1, "A", "datetime2", scale=7), "datetime2(7)"),
        (CatalogColumn(1, "A", "time", scale=3), "time(3)"),
        (CatalogColumn(1, "A", "varchar", max_length=50), "varchar(50)"),
        (CatalogColumn(1, "A", "varbinary", max_length=-1), "varbinary(MAX)"),
        (CatalogColumn(1, "A", "nvarchar", max_length=100), "nvarchar(50)"),
        (CatalogColumn(1, "A", "nchar", max_length=20), "nchar(10)"),
        (CatalogColumn(1, "A", "nvarchar", max_length=-1), "nvarchar(MAX)"),
        (CatalogColumn(1, "A", "int"), "int"),
        (CatalogColumn(1, "A", "datetime"), "datetime"),
        (CatalogColumn(1, "A", "timestamp"), "rowversion"),
    ])
    def test_signature(self, column, expected):
        assert type_signature(column) == expected

    def test_normalize_timestamp(self):
        assert normalize_type_name("TIMESTAMP") == "rowversion"
        assert normalize_type_name("int") == "int"


class TestColumnClassifier:
    """Tests for ColumnClassifier."""

    def classify(self, catalog, attribution=None, **kwargs):
        tree = TableResolver(catalog).resolve("dbo.Person", attribution)
        return tree, ColumnClassifier(catalog).classify(tree, **kwargs)

    def by_name(self, columns):
        return {c.name: c for c in columns}

    def test_order_and_ids(self, catalog):
        _, columns = self.classify(catalog, "ModifiedById")

        assert [c.column_id for c in columns] == list(range(1, len(columns) + 1))
        assert [c.name for c in columns][:2] == ["PersonId", "FirstName"]
        assert [c.name for c in columns][-2:] == ["AppUserId", "UserName"]
        assert {c.table_alias for c in columns} == {"P", "AU"}

    def test_flags(self, catalog):
        _, columns = self.classify(catalog, "ModifiedById")
        cols = self.by_name(columns)

        assert cols["PersonId"].is_primary_key
        assert cols["PersonId"].is_identity
        assert cols["ValidFrom"].is_period_start
        assert cols["ValidTo"].is_period_end
        assert cols["ModifiedById"].is_referenced
        assert not cols["FirstName"].is_referenced
        assert not cols["Photo"].is_comparable
        assert cols["FirstName"].type_signature == "nvarchar(50)"
        assert cols["FirstName"].nullability == "NULL"
        assert cols["PersonId"].nullability == "NOT NULL"

    def test_tracked_columns(self, catalog):
        _, columns = self.classify(catalog)
        tracked = [c.name for c in columns if c.is_tracked]
        assert tracked == ["FirstName", "LastName", "SSN", "ModifiedById"]

    def test_labels(self, catalog):
        _, columns = self.classify(catalog)
        cols = self.by_name(columns)
        assert cols["FirstName"].label == "First Name"
        assert cols["ModifiedById"].label == "Modified By Id"
        assert cols["SSN"].label == "SSN"

    def test_labels_unformatted(self, catalog):
        _, columns = self.classify(catalog, format_names=False)
        assert self.by_name(columns)["FirstName"].label == "FirstName"

    def test_ignore_and_mask(self, catalog):
        _, columns = self.classify(
            catalog,
            ignore_columns=["First Name", "Missing"],
            mask_columns=["SSN"],
        )
        cols = self.by_name(columns)
        assert cols["FirstName"].is_ignored
        assert not cols["FirstName"].is_tracked
        assert cols["SSN"].is_masked
        assert cols["SSN"].is_tracked

    def test_primary_key_never_ignored_or_masked(self, catalog):
        _, columns = self.classify(catalog, ignore_columns=["PersonId"], mask_columns=["PersonId"])
        key = self.by_name(columns)["PersonId"]
        assert not key.is_ignored
        assert not key.is_masked

    def test_catalog_loaded_from_provider(self, catalog):
        tree = TableResolver(catalog).resolve("dbo.Person")
        tree.primary.catalog = None
        columns = ColumnClassifier(catalog).classify(tree)
        assert len(columns) == 8

    def test_ignore_and_mask_ignore_case(self, catalog):
        _, columns = self.classify(catalog, ignore_columns=["firstname"], mask_columns=["ssn", "LASTNAME"])
        cols = self.by_name(columns)
        assert cols["FirstName"].is_ignored
        assert cols["SSN"].is_masked
        assert cols["LastName"].is_masked

    @pytest.mark.parametrize("type_name", ["text", "ntext", "image", "timestamp", "geography"])
    def test_large_object_and_binary_types_not_tracked(self, type_name):
        catalog = InMemoryCatalog([CatalogTable(
            object_id=1,
            schema="dbo",
            name="Doc",
            columns=[
                CatalogColumn(1, "DocId", "int", is_primary_key=True),
                CatalogColumn(2, "Body", type_name, max_length=16),
                CatalogColumn(3, "ValidFrom", "datetime2", scale=7, generated_always_type=1),
            ],
        )])
        tree = TableResolver(catalog).resolve("dbo.Doc")
        body = ColumnClassifier(catalog).classify(tree)[1]

        assert body.name == "Body"
        assert not body.is_comparable
        assert not body.is_tracked
