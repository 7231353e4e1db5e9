"""Tests for table resolution and alias allocation."""

import pytest

from temporal_changes.errors import TableNotFoundError, ValidationError
from temporal_changes.metadata import InMemoryCatalog
from temporal_changes.models import CatalogColumn, CatalogTable, ForeignKeyEdge, TableRole
from temporal_changes.resolver import (
    TableResolver,
    alias_base_key,
    allocate_aliases,
    split_table_name,
)


class TestSplitTableName:
    """Tests for split_table_name."""

    def test_schema_and_table(self):
        assert split_table_name("sales.Orders") == ("sales", "Orders")

    def test_default_schema(self):
        assert split_table_name("Orders") == ("dbo", "Orders")

    def test_bracketed(self):
        assert split_table_name("[sales].[Order Line]") == ("sales", "Order Line")
        assert split_table_name("[odd]]name].[t.1]") == ("odd]name", "t.1")

    @pytest.mark.parametrize("bad", ["", "   ", "a.b.c", ".Orders", "dbo.", "[dbo.Orders"])
    def test_invalid(self, bad):
        with pytest.raises(ValidationError):
            split_table_name(bad)


class TestAliases:
    """Tests for alias allocation."""

    @pytest.mark.parametrize("name,key", [
        ("Person", "P"),
        ("PersonAddress", "PA"),
        ("Order2Line", "O2L"),
        ("person", "P"),
        ("_x", "_"),
    ])
    def test_base_key(self, name, key):
        assert alias_base_key(name) == key

    def test_unique_names_keep_base_key(self):
        assert allocate_aliases(["Person", "AppUser"]) == ["P", "AU"]

    def test_collisions_get_counter_from_zero(self):
        assert allocate_aliases(["Person", "Post", "Place"]) == ["P", "P0", "P1"]

    def test_self_reference(self):
        assert allocate_aliases(["Person", "Person"]) == ["P", "P0"]

    def test_aliases_are_unique(self):
        names = ["Person", "PersonAddress", "Post", "PhoneArea", "person"]
        aliases = allocate_aliases(names)
        assert len(set(aliases)) == len(names)


class TestTableResolver:
    """Tests for TableResolver."""

    def test_primary_only(self, catalog):
        tree = TableResolver(catalog).resolve("dbo.Person")

        assert len(tree) == 1
        assert tree.primary.name == "Person"
        assert tree.primary.alias == "P"
        assert tree.primary.table_id == 1
        assert tree.primary.depth == 0
        assert tree.attribution is None

    def test_attribution_found(self, catalog):
        tree = TableResolver(catalog).resolve("dbo.Person", "modifiedbyid")

        ref = tree.attribution
        assert ref is not None
        assert ref.role == TableRole.ATTRIBUTION
        assert ref.name == "AppUser"
        assert ref.alias == "AU"
        assert ref.depth == 1
        assert ref.parent_id == tree.primary.table_id
        assert ref.parent_column == "ModifiedById"
        assert ref.referenced_column == "AppUserId"
        assert tree.children_of(tree.primary) == [ref]

    def test_attribution_without_fk_is_skipped(self, catalog):
        tree = TableResolver(catalog).resolve("dbo.Person", "FirstName")
        assert len(tree) == 1
        assert tree.attribution is None

    def test_attribution_missing_table_is_skipped(self):
        table = CatalogTable(
            object_id=1,
            schema="dbo",
            name="Item",
            columns=[CatalogColumn(1, "ItemId", "int", is_primary_key=True)],
            foreign_keys=[ForeignKeyEdge("FK_Item_Gone", "OwnerId", "dbo", "Gone", "GoneId")],
        )
        tree = TableResolver(InMemoryCatalog([table])).resolve("Item", "OwnerId")
        assert len(tree) == 1

    def test_self_referencing_attribution(self):
        person = CatalogTable(
            object_id=1,
            schema="dbo",
            name="Person",
            columns=[
                CatalogColumn(1, "PersonId", "int", is_primary_key=True),
                CatalogColumn(2, "EditedBy", "int"),
            ],
            foreign_keys=[ForeignKeyEdge("FK_Person_Person", "EditedBy", "dbo", "Person", "PersonId")],
        )
        tree = TableResolver(InMemoryCatalog([person])).resolve("dbo.Person", "EditedBy")

        assert [t.alias for t in tree] == ["P", "P0"]
        assert tree.primary.object_id == tree.attribution.object_id
        assert len(tree.by_object_id(1)) == 2

    def test_table_not_found(self, catalog):
        with pytest.raises(TableNotFoundError) as exc_info:
            TableResolver(catalog).resolve("dbo.Missing")
        assert exc_info.value.table == "Missing"
        assert "dbo.Missing" in str(exc_info.value)

    def test_case_insensitive_lookup(self, catalog):
        tree = TableResolver(catalog).resolve("DBO.person")
        assert tree.primary.name == "Person"
