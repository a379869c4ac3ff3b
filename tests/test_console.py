"""Tests for console output and output sinks."""

from __future__ import annotations

import pickle

import pytest
from rich.console import Console

from dependents_tester.console import TUI
from dependents_tester.sinks import ConsoleSink, NullSink, make_sink
from dependents_tester.types import Outcome, RunReport, Status


@pytest.fixture
def console() -> Console:
    """Create a recording console."""
    return Console(record=True, width=120, color_system=None)


@pytest.fixture
def tui(console: Console) -> TUI:
    """Create a TUI on the recording console."""
    return TUI(console=console)


class TestTUI:
    """Tests for TUI messages and tables."""

    def test_messages(self, tui: TUI, console: Console) -> None:
        """Test the message helpers print their text."""
        tui.show_success("done")
        tui.show_error("broken")
        tui.show_warning("careful")
        tui.show_info("note")

        text = console.export_text()
        for message in ("done", "broken", "careful", "note"):
            assert message in text

    def test_show_dependents(self, tui: TUI, console: Console) -> None:
        """Test dependents are listed in a table."""
        tui.show_dependents("Target", ["Foo-Bar", "Baz-Qux"])

        text = console.export_text()
        assert "Dependents of Target" in text
        assert "Foo-Bar" in text
        assert "Baz-Qux" in text

    def test_show_dependents_empty(self, tui: TUI, console: Console) -> None:
        """Test an empty list is a warning."""
        tui.show_dependents("Target", [])

        assert "No dependents found for Target" in console.export_text()

    def test_show_summary(self, tui: TUI, console: Console) -> None:
        """Test the summary table and tally."""
        report = RunReport(
            outcomes=[
                Outcome(
                    name="Good::Dist",
                    status=Status.PASS,
                    base_id="Good-Dist-1.00",
                    author_id="AUTHORID",
                ),
                Outcome(name="Missing::Dist", status=Status.UNKNOWN, reason="not indexed"),
            ],
            passed=1,
            skipped=1,
        )

        tui.show_summary(report)

        text = console.export_text()
        assert "Good-Dist-1.00" in text
        assert "not indexed" in text
        assert "1 passed, 0 failed, 1 skipped of 2" in text

    def test_show_summary_literal_brackets(self, tui: TUI, console: Console) -> None:
        """Test tool text that looks like markup is printed verbatim."""
        report = RunReport(
            outcomes=[
                Outcome(
                    name="Odd::Dist",
                    status=Status.SKIP,
                    reason="make: *** [/usr/lib/perl5/Makefile] Error 2 [/bold]",
                ),
            ],
            skipped=1,
        )

        tui.show_summary(report)
        tui.show_error("Cannot list dependents of Target: [/x] oops")

        text = console.export_text()
        assert "[/usr/lib/perl5/Makefile] Error 2 [/bold]" in text
        assert "[/x] oops" in text


class TestSinks:
    """Tests for output sinks."""

    def test_make_sink(self) -> None:
        """Test verbosity selects the sink."""
        assert isinstance(make_sink(False), NullSink)
        assert isinstance(make_sink(True), ConsoleSink)

    def test_console_sink_writes_diagnostics(self, console: Console) -> None:
        """Test each output line becomes a diagnostic line."""
        sink = ConsoleSink(console)

        sink.write("Checking if your kit is complete...\nLooks good [ok]\n")

        assert console.export_text().splitlines() == [
            "# Checking if your kit is complete...",
            "# Looks good [ok]",
        ]

    def test_console_sink_pickles_without_console(self, console: Console) -> None:
        """Test the console is dropped when pickling."""
        copy = pickle.loads(pickle.dumps(ConsoleSink(console)))

        assert copy._console is None
        assert isinstance(copy.console, Console)
