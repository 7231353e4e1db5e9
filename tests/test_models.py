"""Tests for core data models."""

import pytest

from temporal_changes.errors import ValidationError
from temporal_changes.models import (
    CatalogColumn,
    CatalogTable,
    ChangeRequest,
    ResultLabels,
    SortOrder,
    TableRef,
    TableRole,
    TableTree,
    parse_column_list,
)


class TestSortOrder:
    """Tests for SortOrder."""

    @pytest.mark.parametrize("value,expected", [
        ("ASC", SortOrder.ASC),
        ("desc", SortOrder.DESC),
        ("  Asc ", SortOrder.ASC),
        (SortOrder.DESC, SortOrder.DESC),
    ])
    def test_parse(self, value, expected):
        assert SortOrder.parse(value) == expected

    @pytest.mark.parametrize("value", ["", "up", None, "ASCENDING"])
    def test_invalid(self, value):
        with pytest.raises(ValidationError):
            SortOrder.parse(value)


class TestParseColumnList:
    """Tests for parse_column_list."""

    def test_json_array(self):
        assert parse_column_list('["FirstName", "Last Name"]') == ["FirstName", "LastName"]

    def test_list_and_none(self):
        assert parse_column_list(["SSN"]) == ["SSN"]
        assert parse_column_list(None) == []
        assert parse_column_list("  ") == []

    def test_invalid_json(self):
        with pytest.raises(ValidationError):
            parse_column_list("[FirstName")

    def test_not_an_array(self):
        with pytest.raises(ValidationError):
            parse_column_list('{"a": 1}')


class TestCatalogModels:
    """Tests for catalog rows."""

    def test_type_id_filled(self):
        assert CatalogColumn(1, "Name", "nvarchar").user_type_id == 231
        assert CatalogColumn(1, "Amount", "DECIMAL").user_type_id == 106
        assert CatalogColumn(1, "Odd", "mytype").user_type_id == 0

    def test_table_serialization(self):
        table = CatalogTable.from_dict({
            "schema": "sales",
            "name": "Orders",
            "columns": [
                {"name": "OrderId", "type": "int", "is_primary_key": True, "nullable": False},
                {"name": "Total", "type_name": "decimal", "precision": 18, "scale": 2},
            ],
            "foreign_keys": [
                {"parent_column": "CustomerId", "referenced_table": "Customer", "referenced_column": "Id"},
            ],
        }, object_id=7)

        assert table.object_id == 7
        assert table.full_name == "sales.Orders"
        assert [c.column_id for c in table.columns] == [1, 2]
        assert table.columns[0].is_nullable is False
        assert table.foreign_keys[0].referenced_schema == "dbo"

        restored = CatalogTable.from_dict(table.to_dict())
        assert restored == table


class TestTableTree:
    """Tests for TableTree."""

    def test_ids_assigned_in_order(self):
        tree = TableTree()
        a = tree.add(TableRef(object_id=1, schema="dbo", name="A", role=TableRole.PRIMARY))
        b = tree.add(TableRef(object_id=2, schema="dbo", name="B", role=TableRole.ATTRIBUTION, parent_id=1))

        assert (a.table_id, b.table_id) == (1, 2)
        assert tree.get(2) is b
        assert tree.children_of(a) == [b]

    def test_single_primary(self):
        tree = TableTree()
        tree.add(TableRef(object_id=1, schema="dbo", name="A", role=TableRole.PRIMARY))
        with pytest.raises(ValueError):
            tree.add(TableRef(object_id=2, schema="dbo", name="B", role=TableRole.PRIMARY))


class TestResultLabels:
    """Tests for ResultLabels."""

    def test_defaults(self):
        labels = ResultLabels()
        assert labels.headers() == ["Identifier", "Field Name", "Old Value", "New Value", "Changed Time"]
        assert labels.headers(include_changed_by=True)[4] == "Changed By"

    def test_from_dict_keeps_defaults(self):
        labels = ResultLabels.from_dict({"key": "Person", "old_value": None})
        assert labels.key == "Person"
        assert labels.old_value == "Old Value"

    @pytest.mark.parametrize("overrides", [
        {"key": " "},
        {"old_value": "Field Name"},
        {"new_value": "x" * 129},
    ])
    def test_invalid(self, overrides):
        labels = ResultLabels(**overrides)
        with pytest.raises(ValidationError):
            labels.validate()


class TestChangeRequest:
    """Tests for ChangeRequest."""

    def test_defaults(self):
        request = ChangeRequest(table="dbo.Person")
        assert request.order == SortOrder.DESC
        assert request.format_names is True
        assert request.preserve_adjacent_caps is True
        assert request.include_initial_versions is False
        assert request.has_changed_by is False

    def test_normalization(self):
        request = ChangeRequest(
            table="dbo.Person",
            primary_key_value=42,
            ignore_columns='["First Name"]',
            labels={"key": "Person"},
        )
        assert request.primary_key_value == "42"
        assert request.ignore_columns == ["FirstName"]
        assert request.labels.key == "Person"
        assert request.labels.column == "Field Name"

    def test_empty_key_value_means_all(self):
        assert ChangeRequest(table="t", primary_key_value="").primary_key_value is None
        assert ChangeRequest(table="t", primary_key_value=[]).primary_key_value is None

    def test_validate(self):
        request = ChangeRequest(table="dbo.Person", order="asc")
        request.validate()
        assert request.order == SortOrder.ASC

        with pytest.raises(ValidationError):
            ChangeRequest(table=" ").validate()
        with pytest.raises(ValidationError):
            ChangeRequest(table="t", changed_by_column="x" * 129).validate()

    def test_dict_round_trip(self):
        request = ChangeRequest(
            table="dbo.Person",
            primary_key_value=["1", "2"],
            mask_columns=["SSN"],
            order="ASC",
        )
        restored = ChangeRequest.from_dict(request.to_dict())
        assert restored.to_dict() == request.to_dict()

    def test_from_yaml_with_overrides(self, tmp_path):
        path = tmp_path / "options.yaml"
        path.write_text(
            "table: dbo.Person\n"
            "mask_columns: [SSN]\n"
            "order: ASC\n"
            "labels:\n"
            "  key: Person\n"
        )
        request = ChangeRequest.from_yaml(path, primary_key_value="5", order=None)

        assert request.table == "dbo.Person"
        assert request.mask_columns == ["SSN"]
        assert request.primary_key_value == "5"
        assert request.order == "ASC"
        assert request.labels.key == "Person"
