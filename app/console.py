#!/usr/bin/env python3
"""
Console interface for bulk user imports.
Runs a CSV import against the configured database and renders the summary.
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .core.config import settings
from .core.logging_config import configure_logging
from .domain.imports.errors import ImportPipelineError, ImportTimeoutError
from .domain.imports.orchestrator import run_import
from .domain.imports.records import ImportConfig, ImportSummary, default_import_config
from .domain.imports.workers import UserCreator


class ImportConsole:
    """Runs one import and prints the outcome."""

    def __init__(self, create_user: UserCreator, console: Optional[Console] = None):
        self.create_user = create_user
        self.console = console or Console()

    def print_summary(self, summary: ImportSummary) -> None:
        if summary.failure_count == 0:
            style, title = "green", "✅ Import completed"
        elif summary.success_count == 0:
            style, title = "red", "❌ Import failed"
        else:
            style, title = "yellow", "⚠️  Import partially completed"

        self.console.print(Panel(
            f"Total records: {summary.total_records}\n"
            f"[green]Succeeded: {summary.success_count}[/green]\n"
            f"[red]Failed: {summary.failure_count}[/red]\n"
            f"[yellow]Skipped duplicates: {len(summary.skipped)}[/yellow]\n"
            f"[dim]Processing time: {summary.processing_time}[/dim]",
            title=title,
            border_style=style,
        ))

        if summary.skipped:
            skipped_table = Table(title="Skipped duplicate rows")
            skipped_table.add_column("Line", style="dim", justify="right")
            skipped_table.add_column("Username", style="white")
            skipped_table.add_column("Email", style="white")
            skipped_table.add_column("Reason", style="yellow")
            for row in summary.skipped:
                skipped_table.add_row(str(row.line_number), row.username, row.email, row.reason)
            self.console.print(skipped_table)

        failed = sorted(summary.failed_outcomes, key=lambda outcome: outcome.record.line_number)
        if not failed:
            return

        table = Table(title="Failed rows")
        table.add_column("Line", style="dim", justify="right")
        table.add_column("Username", style="white")
        table.add_column("Email", style="white")
        table.add_column("Error", style="red")
        for outcome in failed:
            table.add_row(
                str(outcome.record.line_number),
                outcome.record.username,
                outcome.record.email,
                outcome.error or "",
            )
        self.console.print(table)

    def run(self, path: Path, config: ImportConfig) -> int:
        """Import ``path`` and return a process exit code."""
        try:
            content = path.read_bytes()
        except OSError as e:
            self.console.print(f"[red]❌ Could not read {path}: {escape(str(e))}[/red]")
            return 1

        try:
            with self.console.status(f"[bold green]Importing users from {path.name}...", spinner="dots"):
                summary = run_import(content, self.create_user, config)
        except ImportTimeoutError as e:
            self.console.print(f"[red]❌ {escape(str(e))}[/red]")
            if e.summary is not None:
                self.print_summary(e.summary)
            return 1
        except ImportPipelineError as e:
            self.console.print(f"[red]❌ {escape(str(e))}[/red]")
            return 1

        self.print_summary(summary)
        return 0 if summary.failure_count == 0 else 1


def build_parser() -> argparse.ArgumentParser:
    defaults = default_import_config()
    parser = argparse.ArgumentParser(
        description="Bulk user import - create users from a CSV file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Expected header: username,email,password,role  (role is 'manager' or 'member')

Examples:
  %(prog)s users.csv
  %(prog)s users.csv --workers 10 --timeout 120
        """
    )
    parser.add_argument('csv_file', type=Path, help='CSV file to import')
    parser.add_argument(
        '--workers',
        type=int,
        default=defaults.worker_count,
        help=f'Number of concurrent workers (default: {defaults.worker_count})'
    )
    parser.add_argument(
        '--batch-size',
        type=int,
        default=defaults.batch_size,
        help=f'Capacity of the record queue (default: {defaults.batch_size})'
    )
    parser.add_argument(
        '--max-records',
        type=int,
        default=defaults.max_records,
        help=f'Maximum rows to import, 0 for no limit (default: {defaults.max_records})'
    )
    parser.add_argument(
        '--timeout',
        type=float,
        default=defaults.timeout_seconds,
        help=f'Overall timeout in seconds (default: {defaults.timeout_seconds:g})'
    )
    parser.add_argument(
        '--allow-duplicates',
        action='store_true',
        help='Keep rows that repeat a username or email from earlier in the file'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Log every record as the workers process it'
    )
    return parser


def main(argv: Optional[List[str]] = None, create_user: Optional[UserCreator] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    if args.verbose:
        configure_logging(settings.log_level, "DEBUG", force=True)
    else:
        configure_logging(settings.log_level, settings.import_worker_log_level)
    console = Console()

    try:
        config = ImportConfig(
            worker_count=args.workers,
            batch_size=args.batch_size,
            timeout_seconds=args.timeout,
            max_records=args.max_records,
            skip_duplicates=not args.allow_duplicates,
        )
    except ValueError as e:
        console.print(f"[red]❌ Invalid options: {e}[/red]")
        return 2

    if create_user is None:
        from .db.models import create_users_table
        from .domain.users.service import UserService

        create_users_table()
        create_user = UserService().create_user

    return ImportConsole(create_user, console).run(args.csv_file, config)


if __name__ == "__main__":
    sys.exit(main())
