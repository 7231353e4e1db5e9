"""
Exception hierarchy for temporal_changes.

Fatal conditions (capability, validation) are raised before any catalog
metadata is read. Recoverable anomalies are logged, not raised.
"""


class TemporalChangesError(Exception):
    """Base exception for all temporal_changes errors."""


class CapabilityError(TemporalChangesError):
    """The host engine cannot run the synthesized query (LAG, OPENJSON, THROW)."""


class ValidationError(TemporalChangesError):
    """A caller-supplied parameter is invalid."""


class TableNotFoundError(ValidationError):
    """The requested schema.table does not exist in the catalog."""

    def __init__(self, schema: str, table: str):
        self.schema = schema
        self.table = table
        super().__init__(f"Table not found: {schema}.{table}")


class SynthesisError(TemporalChangesError):
    """The resolved metadata cannot support a change query."""


class TableNotTemporalError(SynthesisError):
    """The primary table has no period start column."""
