"""Rich console output for the command line."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from dependents_tester.types import RunReport, Status

STATUS_STYLES = {
    Status.PASS: "green",
    Status.WARN: "yellow",
    Status.FAIL: "red",
    Status.SKIP: "dim",
    Status.UNKNOWN: "magenta",
}


class TUI:
    """Text User Interface for dependents-tester (non-interactive)."""

    def __init__(self, console: Console | None = None) -> None:
        """Initialize TUI.

        Args:
            console: Console to print to. Defaults to stderr so that the
                TAP stream on stdout stays machine-readable.
        """
        self.console = console or Console(stderr=True)

    def show_success(self, message: str) -> None:
        """Show success message.

        Args:
            message: Success message.
        """
        self.console.print(f"[green]✓[/green] {escape(message)}")

    def show_error(self, message: str) -> None:
        """Show error message.

        Args:
            message: Error message.
        """
        self.console.print(f"[red]✗[/red] {escape(message)}")

    def show_warning(self, message: str) -> None:
        """Show warning message.

        Args:
            message: Warning message.
        """
        self.console.print(f"[yellow]![/yellow] {escape(message)}")

    def show_info(self, message: str) -> None:
        """Show info message.

        Args:
            message: Info message.
        """
        self.console.print(f"[blue]i[/blue] {escape(message)}")

    def show_dependents(self, package: str, names: list[str]) -> None:
        """Display the dependents selected for testing.

        Args:
            package: Target package.
            names: Selected dependent distribution names.
        """
        if not names:
            self.show_warning(f"No dependents found for {package}")
            return

        table = Table(title=f"Dependents of {escape(package)}")
        table.add_column("#", justify="right", style="dim")
        table.add_column("Distribution", style="cyan")
        for number, name in enumerate(names, start=1):
            table.add_row(str(number), escape(name))
        self.console.print(table)

    def show_summary(self, report: RunReport) -> None:
        """Display a table of outcomes and the final tally.

        Args:
            report: Finished run report.
        """
        table = Table(title="Results")
        table.add_column("Status")
        table.add_column("Distribution", style="cyan")
        table.add_column("Release")
        table.add_column("Author", style="dim")
        table.add_column("Note", style="dim")

        for outcome in report.outcomes:
            style = STATUS_STYLES[outcome.status]
            table.add_row(
                f"[{style}]{outcome.status.value}[/{style}]",
                escape(outcome.name),
                escape(outcome.base_id or "-"),
                escape(outcome.author_id or "-"),
                escape(outcome.reason or ""),
            )
        self.console.print(table)

        tally = (
            f"{report.passed} passed, {report.failed} failed, "
            f"{report.skipped} skipped of {report.planned}"
        )
        if report.ok:
            self.show_success(tally)
        else:
            self.show_error(tally)
