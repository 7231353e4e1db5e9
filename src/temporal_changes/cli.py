"""
Command-line interface for temporal_changes.

Provides changes, describe and replay commands for temporal table change
reports.
"""

from __future__ import annotations

import functools
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.syntax import Syntax
from rich.table import Table

from temporal_changes import __version__
from temporal_changes.errors import TemporalChangesError, ValidationError
from temporal_changes.models import ChangeRequest

console = Console()


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with Rich handler."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def request_options(func):
    """Options shared by every command that builds a ChangeRequest."""
    options = [
        click.argument("table"),
        click.option("--conn", type=str, default=None,
                     help="ODBC connection string for SQL Server"),
        click.option("--catalog", type=click.Path(exists=True, path_type=Path), default=None,
                     help="YAML catalog file for metadata; without --conn nothing is executed"),
        click.option("--options", "options_file", type=click.Path(exists=True, path_type=Path),
                     default=None, help="YAML file with request options; flags override it"),
        click.option("--key", "primary_key_value", type=str, default=None,
                     help="Only show changes for this primary key value (comma-separated for composite keys)"),
        click.option("--changed-by-column", type=str, default=None,
                     help="FK column on the table pointing at the user/person table (e.g. ModifiedById)"),
        click.option("--changed-by-value", "changed_by_value_column", type=str, default=None,
                     help="Column holding the name of who changed the row (e.g. UserName)"),
        click.option("--ignore", type=str, multiple=True,
                     help='Column to leave out; repeat, or pass a JSON array like \'["A","B"]\''),
        click.option("--mask", type=str, multiple=True,
                     help="Column whose values are shown as ****; repeat or pass a JSON array"),
        click.option("--format-names/--no-format-names", default=None,
                     help="Add spaces before capitals in column labels (default on)"),
        click.option("--preserve-caps/--no-preserve-caps", "preserve_adjacent_caps", default=None,
                     help='Keep runs of capitals together, "TPSReport" -> "TPS Report" (default on)'),
        click.option("--label-key", type=str, default=None, help="Header for the key column"),
        click.option("--label-column", type=str, default=None, help="Header for the column name column"),
        click.option("--label-old", type=str, default=None, help="Header for the old value column"),
        click.option("--label-new", type=str, default=None, help="Header for the new value column"),
        click.option("--label-changed-by", type=str, default=None, help="Header for the changed by column"),
        click.option("--label-changed-time", type=str, default=None, help="Header for the changed time column"),
        click.option("--order", type=str, default=None, help="ASC or DESC (default DESC)"),
        click.option("--include-inserts/--no-include-inserts", "include_initial_versions", default=None,
                     help="Also report values of each row's first version"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _column_list(values: Tuple[str, ...]) -> Any:
    """Repeated option values, or a single JSON array string."""
    if not values:
        return None
    if len(values) == 1 and values[0].lstrip().startswith("["):
        return values[0]
    return list(values)


def build_request(table: str, options_file: Optional[Path] = None, **params: Any) -> ChangeRequest:
    """Merge an options file with command-line values into a ChangeRequest."""
    labels = {
        "key": params.pop("label_key", None),
        "column": params.pop("label_column", None),
        "old_value": params.pop("label_old", None),
        "new_value": params.pop("label_new", None),
        "changed_by": params.pop("label_changed_by", None),
        "changed_time": params.pop("label_changed_time", None),
    }
    params["ignore_columns"] = _column_list(params.pop("ignore", ()) or ())
    params["mask_columns"] = _column_list(params.pop("mask", ()) or ())

    data: Dict[str, Any] = {}
    if options_file:
        import yaml

        with open(options_file, "r") as f:
            data = yaml.safe_load(f) or {}

    data["table"] = table
    data.update({k: v for k, v in params.items() if v is not None})
    file_labels = data.get("labels") or {}
    data["labels"] = {**file_labels, **{k: v for k, v in labels.items() if v is not None}}
    return ChangeRequest.from_dict(data)


def open_provider(conn: Optional[str], catalog: Optional[Path]):
    """Return the metadata provider selected on the command line."""
    if catalog:
        from temporal_changes.metadata import InMemoryCatalog
        return InMemoryCatalog.from_yaml(catalog)
    if conn:
        from temporal_changes.metadata import SqlServerCatalog
        return SqlServerCatalog(conn)
    raise click.UsageError("Provide --conn or --catalog")


def handle_errors(func):
    """Print library errors in red and exit with status 1."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except TemporalChangesError as e:
            console.print(f"[red]Error: {escape(str(e))}[/red]")
            sys.exit(1)
    return wrapper


@click.group()
@click.version_option(version=__version__, prog_name="temporal-changes")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
def cli(verbose: bool) -> None:
    """
    Temporal Changes - column-level change reports for SQL Server temporal tables

    Generates a query that lists old and new values of every column that
    changed, per row and per version, and optionally runs it.
    """
    setup_logging(verbose)


@cli.command()
@request_options
@click.option("--debug", is_flag=True, help="Print the generated query instead of executing it")
@click.option("--output", type=click.Path(path_type=Path), default=None,
              help="Write results (CSV) or, with --debug, the query text to this file")
@handle_errors
def changes(
    table: str,
    conn: Optional[str],
    catalog: Optional[Path],
    options_file: Optional[Path],
    debug: bool,
    output: Optional[Path],
    **params: Any,
) -> None:
    """
    Show column changes recorded for a temporal table.

    Examples:

        # Run against a database
        temporal-changes changes dbo.Person \\
            --conn "Driver={ODBC Driver 18 for SQL Server};Server=.;Database=App;Trusted_Connection=yes"

        # One record, with who changed it, masking SSN
        temporal-changes changes dbo.Person --conn "..." --key 42 \\
            --changed-by-column ModifiedById --changed-by-value UserName --mask SSN

        # Offline: print the query synthesized from a YAML catalog
        temporal-changes changes dbo.Person --catalog catalog.yaml --debug
    """
    from temporal_changes.dispatcher import execute_query, plan_changes

    request = build_request(table, options_file, **params)
    request.debug = request.debug or debug
    if catalog and not conn and not request.debug:
        console.print("[yellow]Offline catalog: printing the query instead of executing it[/yellow]")
        request.debug = True

    provider = open_provider(None if catalog else conn, catalog)
    # Metadata from the catalog file, execution on the live server
    executor = open_provider(conn, None) if catalog and conn else provider
    try:
        plan = plan_changes(provider, request)

        if request.debug:
            if output:
                Path(output).write_text(plan.sql + "\n")
                console.print(f"[green]Query written to: {output}[/green]")
            else:
                console.print(Syntax(plan.sql, "sql", word_wrap=True))
            return

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task(f"Querying changes of {plan.tree.primary.full_name}...", total=None)
            df = execute_query(plan.sql, executor.connection)
            progress.update(task, completed=True)
    finally:
        for opened in (provider, executor):
            if hasattr(opened, "disconnect"):
                opened.disconnect()

    if output:
        df.to_csv(output, index=False)
        console.print(f"[green]Saved {len(df)} changes to: {output}[/green]")
        return

    _print_frame(df, title=f"Changes in {plan.tree.primary.full_name}")


@cli.command()
@request_options
@handle_errors
def describe(
    table: str,
    conn: Optional[str],
    catalog: Optional[Path],
    options_file: Optional[Path],
    **params: Any,
) -> None:
    """
    Show how a table's columns are classified for the change report.

    Example:

        temporal-changes describe dbo.Person --catalog catalog.yaml --ignore Notes
    """
    from temporal_changes.dispatcher import plan_changes

    request = build_request(table, options_file, **params)
    provider = open_provider(None if catalog else conn, catalog)
    try:
        plan = plan_changes(provider, request)
    finally:
        if hasattr(provider, "disconnect"):
            provider.disconnect()

    tables_table = Table(title="Resolved Tables")
    tables_table.add_column("Alias", style="cyan")
    tables_table.add_column("Table", style="green")
    tables_table.add_column("Role", style="yellow")
    tables_table.add_column("Depth", justify="right")
    tables_table.add_column("Joined On", style="magenta")
    tables_table.add_column("Triggers")
    tables_table.add_column("Description")

    for ref in plan.tree:
        joined = f"{ref.parent_column} = {ref.referenced_column}" if ref.parent_column else "-"
        tables_table.add_row(
            ref.alias,
            ref.full_name,
            ref.role.value,
            str(ref.depth),
            joined,
            "yes" if ref.has_triggers else "no",
            escape(ref.description or "-"),
        )
    console.print(tables_table)

    columns_table = Table(title="Columns")
    columns_table.add_column("Alias", style="cyan")
    columns_table.add_column("Column", style="green")
    columns_table.add_column("Label", style="yellow")
    columns_table.add_column("Type")
    columns_table.add_column("Nullable")
    columns_table.add_column("Flags", style="magenta")
    columns_table.add_column("Tracked", justify="center")

    tracked = {c.column_id for c in plan.tracked_columns}
    for col in plan.columns:
        flags = [
            name for name, on in (
                ("PK", col.is_primary_key),
                ("period start", col.is_period_start),
                ("period end", col.is_period_end),
                ("identity", col.is_identity),
                ("computed", col.is_computed),
                ("referenced", col.is_referenced),
                ("ignored", col.is_ignored),
                ("masked", col.is_masked),
                ("not comparable", not col.is_comparable),
            ) if on
        ]
        columns_table.add_row(
            col.table_alias,
            col.name,
            col.label,
            col.type_signature,
            col.nullability,
            ", ".join(flags) or "-",
            "[green]yes[/green]" if col.column_id in tracked else "-",
        )
    console.print(columns_table)
    console.print(f"Tracked columns: {len(tracked)}")


@cli.command()
@request_options
@click.option("--versions", type=click.Path(exists=True, path_type=Path), required=True,
              help="CSV or Parquet file with one row per version (e.g. a FOR SYSTEM_TIME ALL export)")
@click.option("--output", type=click.Path(path_type=Path), default=None,
              help="Write the change report (CSV) to this file")
@handle_errors
def replay(
    table: str,
    conn: Optional[str],
    catalog: Optional[Path],
    options_file: Optional[Path],
    versions: Path,
    output: Optional[Path],
    **params: Any,
) -> None:
    """
    Build the change report offline from exported version rows.

    Example:

        temporal-changes replay dbo.Person --catalog catalog.yaml --versions person_history.csv
    """
    import pandas as pd

    from temporal_changes.dispatcher import plan_changes
    from temporal_changes.replay import changes_from_versions

    request = build_request(table, options_file, **params)
    provider = open_provider(None if catalog else conn, catalog)
    try:
        plan = plan_changes(provider, request)
    finally:
        if hasattr(provider, "disconnect"):
            provider.disconnect()

    period_start = next(
        c.name for c in plan.columns
        if c.table_id == plan.tree.primary.table_id and c.is_period_start
    )
    if versions.suffix == ".parquet":
        df = pd.read_parquet(versions)
    else:
        df = pd.read_csv(versions)
        if period_start in df.columns:
            try:
                df[period_start] = pd.to_datetime(df[period_start])
            except (ValueError, TypeError) as e:
                raise ValidationError(f"Column {period_start} does not hold timestamps: {e}") from e

    result = changes_from_versions(df, plan)

    if output:
        result.to_csv(output, index=False)
        console.print(f"[green]Saved {len(result)} changes to: {output}[/green]")
        return

    _print_frame(result, title=f"Changes in {plan.tree.primary.full_name}")


def _print_frame(df, title: str) -> None:
    """Render a result DataFrame as a rich table."""
    if df.empty:
        console.print("[yellow]No changes found.[/yellow]")
        return

    result_table = Table(title=title)
    for name in df.columns:
        result_table.add_column(escape(str(name)))
    for row in df.itertuples(index=False):
        result_table.add_row(*["" if v is None else escape(str(v)) for v in row])
    console.print(result_table)
    console.print(f"{len(df)} changes")


if __name__ == "__main__":
    cli()
