"""CLI commands using Typer."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

if TYPE_CHECKING:
    from dependents_tester.context import RunContext

import typer
from pydantic import ValidationError

from dependents_tester import __version__
from dependents_tester.console import TUI
from dependents_tester.context import create_context
from dependents_tester.errors import DependentsTesterError, OrchestrationError
from dependents_tester.orchestrator import Orchestrator, select_dependents
from dependents_tester.reporter import Reporter
from dependents_tester.settings import RunSettings

app = typer.Typer(
    name="dependents-tester",
    help="Build and test the distributions that depend on a package",
    no_args_is_help=True,
)

tui = TUI()


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        tui.console.print(f"dependents-tester v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
    debug: Annotated[bool, typer.Option("--debug", help="Log debug messages to stderr")] = False,
) -> None:
    """Build and test the distributions that depend on a package."""
    if debug:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


# ============================================================================
# Shared options
# ============================================================================

ProcessesOption = Annotated[
    int | None,
    typer.Option("--processes", "-j", min=1, help="Worker processes (>1 runs in parallel)"),
]
LogDirOption = Annotated[
    Path | None,
    typer.Option("--log-dir", "-l", help="Existing directory for status/error/prereq logs"),
]
IndexOption = Annotated[
    str | None,
    typer.Option("--index", "-i", help="'metacpan' or path to a static YAML index"),
]
IndexVerboseOption = Annotated[
    bool, typer.Option("--index-verbose", "-v", help="Show upstream tool output")
]
KeepRootOption = Annotated[
    bool,
    typer.Option("--keep-install-root", help="Leave installed prerequisites behind"),
]
ExcludeOption = Annotated[
    str | None,
    typer.Option("--exclude", "-x", help="Regex of distribution names to skip"),
]


def _load_settings(**overrides: Any) -> RunSettings:
    """Merge command-line overrides over environment settings.

    Args:
        **overrides: Option values; None and False leave the environment
            value in place.

    Returns:
        Validated RunSettings.

    Raises:
        typer.Exit: If the configuration is invalid.
    """
    values = {key: value for key, value in overrides.items() if value not in (None, False)}
    try:
        return RunSettings(**values)
    except ValidationError as e:
        for error in e.errors():
            location = ".".join(str(part) for part in error["loc"])
            tui.show_error(f"Invalid configuration {location}: {error['msg']}")
        raise typer.Exit(1) from e


def _open_context(settings: RunSettings, context: RunContext | None) -> RunContext:
    if context is not None:
        return context
    try:
        return create_context(settings)
    except DependentsTesterError as e:
        tui.show_error(str(e))
        raise typer.Exit(1) from e


def _run(ctx: RunContext, names: list[str]) -> None:
    """Test names and exit non-zero if any assertion failed.

    Args:
        ctx: Run context.
        names: Names to test.
    """
    settings = ctx.settings
    reporter = Reporter.create(settings.log_dir, settings.run_id, locked=settings.parallel)
    try:
        report = Orchestrator(ctx, reporter).run(names)
    except OrchestrationError as e:
        tui.show_error(str(e))
        raise typer.Exit(1) from e

    tui.show_summary(report)
    if not report.ok:
        raise typer.Exit(1)


def _find_dependents(ctx: RunContext, package: str, exclude: str | None) -> list[str]:
    try:
        found = ctx.index.reverse_dependents(package)
    except DependentsTesterError as e:
        tui.show_error(f"Cannot list dependents of {package}: {e}")
        raise typer.Exit(1) from e
    return select_dependents(found, exclude)


# ============================================================================
# Commands
# ============================================================================


@app.command("all")
def test_all(
    package: Annotated[str, typer.Argument(help="Module whose dependents are tested")],
    exclude: ExcludeOption = None,
    processes: ProcessesOption = None,
    log_dir: LogDirOption = None,
    index: IndexOption = None,
    index_verbose: IndexVerboseOption = False,
    keep_install_root: KeepRootOption = False,
    _context=None,
) -> None:
    """Test every distribution that depends on PACKAGE."""
    settings = _context.settings if _context else _load_settings(
        exclude=exclude,
        processes=processes,
        log_dir=log_dir,
        index=index,
        index_verbose=index_verbose,
        keep_install_root=keep_install_root,
    )
    ctx = _open_context(settings, _context)
    try:
        names = _find_dependents(ctx, package, exclude or settings.exclude)
        if not names:
            tui.show_warning(f"No dependents found for {package}")
        _run(ctx, names)
    finally:
        if _context is None:
            ctx.close()


@app.command("modules")
def test_modules(
    names: Annotated[list[str], typer.Argument(help="Modules or distributions to test")],
    processes: ProcessesOption = None,
    log_dir: LogDirOption = None,
    index: IndexOption = None,
    index_verbose: IndexVerboseOption = False,
    keep_install_root: KeepRootOption = False,
    _context=None,
) -> None:
    """Test the given modules or distributions."""
    settings = _context.settings if _context else _load_settings(
        processes=processes,
        log_dir=log_dir,
        index=index,
        index_verbose=index_verbose,
        keep_install_root=keep_install_root,
    )
    ctx = _open_context(settings, _context)
    try:
        _run(ctx, list(names))
    finally:
        if _context is None:
            ctx.close()


@app.command("dependents")
def list_dependents(
    package: Annotated[str, typer.Argument(help="Module whose dependents are listed")],
    exclude: ExcludeOption = None,
    index: IndexOption = None,
    _context=None,
) -> None:
    """List the distributions that would be tested for PACKAGE."""
    settings = _context.settings if _context else _load_settings(exclude=exclude, index=index)
    ctx = _open_context(settings, _context)
    try:
        names = _find_dependents(ctx, package, exclude or settings.exclude)
        tui.show_dependents(package, names)
    finally:
        if _context is None:
            ctx.close()


if __name__ == "__main__":
    app()
