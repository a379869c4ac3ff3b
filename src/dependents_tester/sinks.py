"""Output sinks for upstream tool chatter.

Generation and install steps of prerequisites, and archive downloads from
the index, produce a lot of output nobody wants to see in a normal run.
Components receive an explicit sink instead of redirecting global streams.
"""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape


class NullSink:
    """Discards everything written to it."""

    def write(self, text: str) -> None:
        """Drop text."""
        pass


class ConsoleSink:
    """Writes upstream output to stderr as dimmed diagnostics.

    The console is created lazily and not pickled, so the sink can travel
    to worker processes with the run context.
    """

    def __init__(self, console: Console | None = None) -> None:
        """Initialize the sink.

        Args:
            console: Console to write to. Defaults to a stderr console.
        """
        self._console = console

    @property
    def console(self) -> Console:
        if self._console is None:
            self._console = Console(stderr=True)
        return self._console

    def __getstate__(self) -> dict:
        return {"_console": None}

    def write(self, text: str) -> None:
        """Print text, one diagnostic line per output line."""
        for line in text.splitlines():
            self.console.print(f"[dim]# {escape(line)}[/dim]", highlight=False)


def make_sink(verbose: bool) -> NullSink | ConsoleSink:
    """Select the sink for the verbosity setting.

    Args:
        verbose: Whether upstream output should be shown.

    Returns:
        ConsoleSink when verbose, NullSink otherwise.
    """
    return ConsoleSink() if verbose else NullSink()
