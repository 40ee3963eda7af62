#!/usr/bin/env python3
"""
Command-line interface for the CSV autoloader.

Usage:
    python -m app.console import data/orders.csv
    python -m app.console schema
    python -m app.console check-db
"""

import argparse
import sys
from typing import Optional, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from .core.config import settings
from .core.logging_config import configure_logging
from .db.session import check_connection, checkout_connection
from .domain.imports.catalog import load_column_catalog
from .domain.imports.errors import CsvImportError
from .domain.imports.pipeline import run_csv_import


class AutoloaderConsole:
    """Thin rich front-end over the import pipeline and schema catalog."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def run_import(self, path: str, batch_size: Optional[int] = None) -> int:
        try:
            # Local files belong to the user; only staged uploads are deleted.
            result = run_csv_import(path, batch_size=batch_size, delete_file=False)
        except CsvImportError as e:
            self.console.print(Panel(f"[red]❌ {e.message}[/red]", title="Import failed", border_style="red"))
            return 1

        summary = Table(show_header=False)
        summary.add_column("Field", style="cyan", no_wrap=True)
        summary.add_column("Value", style="white")
        summary.add_row("Table", result.table_name)
        summary.add_row("Rows read", str(result.rows_read))
        summary.add_row("New rows", str(result.rows_inserted))
        summary.add_row("Batches", str(result.batches_flushed))
        summary.add_row("Conflict key", ", ".join(result.conflict_columns) or "(none)")
        if len(result.candidate_tables) > 1:
            summary.add_row("Other matching tables", ", ".join(result.candidate_tables[1:]))

        self.console.print(Panel(f"[green]✅ {result.message}[/green]", title="Import Result", border_style="green"))
        self.console.print(summary)
        return 0

    def show_schema(self) -> int:
        try:
            with checkout_connection() as conn:
                catalog = load_column_catalog(conn, settings.database_schema)
        except (CsvImportError, SQLAlchemyError) as e:
            self.console.print(f"[red]❌ {e}[/red]")
            return 1

        if not catalog:
            self.console.print(f"[yellow]No tables found in schema '{settings.database_schema}'[/yellow]")
            return 0

        for table_name in catalog.table_names():
            # Titles wrap to the table width, so the name goes on its own line.
            self.console.print(f"[bold]Table: {table_name}[/bold]")
            table = Table()
            table.add_column("Column", style="cyan")
            for column_name in catalog[table_name].values():
                table.add_row(column_name)
            self.console.print(table)
        return 0

    def check_db(self) -> int:
        try:
            check_connection()
        except Exception as e:
            self.console.print(f"[red]❌ Connection error: {e}[/red]")
            return 1
        self.console.print("[green]✅ Successfully connected![/green]")
        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Import CSV files into the table matching their headers")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL for this run")
    subparsers = parser.add_subparsers(dest="command", required=True)

    import_parser = subparsers.add_parser("import", help="Import a local CSV file")
    import_parser.add_argument("path", help="Path to the CSV file")
    import_parser.add_argument("--batch-size", type=int, default=None, help="Rows per INSERT statement")

    subparsers.add_parser("schema", help="List tables and columns that CSV headers can match")
    subparsers.add_parser("check-db", help="Verify the database connection")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level or settings.log_level)

    console = AutoloaderConsole()
    if args.command == "import":
        return console.run_import(args.path, batch_size=args.batch_size)
    if args.command == "schema":
        return console.show_schema()
    return console.check_db()


if __name__ == "__main__":
    sys.exit(main())
