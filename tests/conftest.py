"""Shared fixtures: a small temporal schema served from memory."""

import pytest

from temporal_changes.metadata import InMemoryCatalog
from temporal_changes.models import CatalogColumn, CatalogTable, ForeignKeyEdge


def person_table() -> CatalogTable:
    return CatalogTable(
        object_id=0,
        schema="dbo",
        name="Person",
        description="People",
        columns=[
            CatalogColumn(1, "PersonId", "int", is_nullable=False, is_identity=True, is_primary_key=True),
            CatalogColumn(2, "FirstName", "nvarchar", max_length=100),
            CatalogColumn(3, "LastName", "nvarchar", max_length=100),
            CatalogColumn(4, "SSN", "char", max_length=11),
            CatalogColumn(5, "Photo", "varbinary", max_length=-1),
            CatalogColumn(6, "ModifiedById", "int"),
            CatalogColumn(7, "ValidFrom", "datetime2", scale=7, is_nullable=False, generated_always_type=1),
            CatalogColumn(8, "ValidTo", "datetime2", scale=7, is_nullable=False, generated_always_type=2),
        ],
        foreign_keys=[
            ForeignKeyEdge(
                name="FK_Person_AppUser",
                parent_column="ModifiedById",
                referenced_schema="dbo",
                referenced_table="AppUser",
                referenced_column="AppUserId",
            ),
        ],
    )


def app_user_table() -> CatalogTable:
    return CatalogTable(
        object_id=0,
        schema="dbo",
        name="AppUser",
        columns=[
            CatalogColumn(1, "AppUserId", "int", is_nullable=False, is_primary_key=True),
            CatalogColumn(2, "UserName", "nvarchar", max_length=512),
        ],
    )


@pytest.fixture
def catalog():
    """Catalog with dbo.Person (temporal) and dbo.AppUser."""
    return InMemoryCatalog([person_table(), app_user_table()])
