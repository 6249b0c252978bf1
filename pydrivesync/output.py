"""Console output for the command line interface."""

import json
import sys
from typing import Any, Optional

from rich.console import Console
from rich.table import Table


class OutputFormatter:
    """Writes user facing messages, tables and JSON documents.

    Status messages go to stderr so that ``--json`` output on stdout stays
    machine readable.
    """

    def __init__(
        self,
        json_output: bool = False,
        quiet: bool = False,
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
    ):
        """Initialize output formatter.

        Args:
            json_output: Emit JSON documents instead of human readable text
            quiet: Suppress informational messages
            console: Console for regular output (stdout)
            err_console: Console for status messages (stderr)
        """
        self.json_output = json_output
        self.quiet = quiet
        self.console = console or Console()
        self.err_console = err_console or Console(stderr=True)

    def info(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.err_console.print(message, highlight=False)

    def success(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.err_console.print(f"[green]{message}[/green]", highlight=False)

    def warning(self, message: str) -> None:
        if not self.json_output:
            self.err_console.print(f"[yellow]{message}[/yellow]", highlight=False)

    def error(self, message: str) -> None:
        """Print an error message. Errors are shown even in quiet mode."""
        self.err_console.print(f"[red]Error:[/red] {message}", highlight=False)

    def print(self, message: str = "") -> None:
        if not self.quiet and not self.json_output:
            self.console.print(message, highlight=False)

    def output_json(self, data: Any) -> None:
        """Write a JSON document to stdout."""
        sys.stdout.write(json.dumps(data, indent=2, default=str))
        sys.stdout.write("\n")
        sys.stdout.flush()

    def print_summary(self, title: str, items: list[tuple[str, Any]]) -> None:
        """Show a titled list of key/value pairs."""
        if self.json_output:
            self.output_json({key: value for key, value in items})
            return
        if self.quiet:
            return

        table = Table(title=title, show_header=False, box=None)
        table.add_column("Key", style="bold")
        table.add_column("Value")
        for key, value in items:
            table.add_row(key, str(value))
        self.console.print(table)
