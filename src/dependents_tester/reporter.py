"""Test-plan output and run logs.

Every outcome turns into exactly one TAP assertion and one status-log line.
Failures and warnings are mirrored into the error log with the full test
output; installed and unresolvable prerequisites go to the prereq log.
"""

from __future__ import annotations

import fcntl
import logging
import os
import sys
from pathlib import Path
from typing import TextIO

from dependents_tester.types import Outcome, RunReport, Status

logger = logging.getLogger(__name__)

LOG_TYPES = ("status", "error", "prereq")

# Separates the summary from the captured output in the error log
SEPARATOR = "-" * 50


def one_line(text: str) -> str:
    """Fold text onto a single line for the status log and TAP stream."""
    return " ".join(line.strip() for line in text.splitlines() if line.strip())


class TestPlan:
    """Minimal TAP producer.

    Attributes:
        passed: Assertions that passed.
        failed: Assertions that failed.
        skipped: Assertions recorded as skipped.
    """

    __test__ = False

    def __init__(self, stream: TextIO | None = None) -> None:
        """Initialize the plan.

        Args:
            stream: Where TAP lines go. Defaults to stdout.
        """
        self.stream = stream or sys.stdout
        self.planned: int | None = None
        self.passed = 0
        self.failed = 0
        self.skipped = 0

    @property
    def count(self) -> int:
        return self.passed + self.failed + self.skipped

    def plan(self, tests: int) -> None:
        """Declare how many assertions will follow."""
        self.planned = tests
        self._emit(f"1..{tests}")

    def ok(self, passed: bool, description: str) -> bool:
        """Record a pass/fail assertion.

        Returns:
            The passed flag, for chaining.
        """
        number = self.count + 1
        if passed:
            self.passed += 1
            self._emit(f"ok {number} - {description}")
        else:
            self.failed += 1
            self._emit(f"not ok {number} - {description}")
        return passed

    def skip(self, reason: str) -> None:
        """Record a skipped assertion."""
        self.skipped += 1
        self._emit(f"ok {self.count} # skip {reason}")

    def _emit(self, line: str) -> None:
        self.stream.write(line + "\n")
        self.stream.flush()


class LockedFileHandler(logging.FileHandler):
    """File handler holding an exclusive flock while writing a record.

    Used when several worker processes append to the same log file.
    """

    def emit(self, record: logging.LogRecord) -> None:
        if self.stream is None:
            self.stream = self._open()
        fcntl.flock(self.stream.fileno(), fcntl.LOCK_EX)
        try:
            super().emit(record)
        finally:
            fcntl.flock(self.stream.fileno(), fcntl.LOCK_UN)


class LogSinks:
    """The three append-only logs of a run (status, error, prereq)."""

    def __init__(self, log_dir: Path | None, run_id: str, locked: bool = False) -> None:
        """Open the run logs.

        Args:
            log_dir: Directory for log files; None discards all log output.
            run_id: Identifier embedded in the log file names.
            locked: Use flock-protected handlers for multi-process runs.
        """
        self.log_dir = log_dir
        self.run_id = run_id
        self.loggers: dict[str, logging.Logger] = {}
        for log_type in LOG_TYPES:
            run_logger = logging.getLogger(f"dependents_tester.run.{run_id}.{log_type}")
            run_logger.setLevel(logging.INFO)
            run_logger.propagate = False
            for handler in list(run_logger.handlers):
                run_logger.removeHandler(handler)
                handler.close()
            run_logger.addHandler(self._make_handler(log_type, locked))
            self.loggers[log_type] = run_logger

    def filename(self, log_type: str) -> Path | None:
        """Path of a log file, or None when logs are discarded."""
        if self.log_dir is None:
            return None
        return self.log_dir / f"dependents-tester-{self.run_id}-{log_type}.log"

    def _make_handler(self, log_type: str, locked: bool) -> logging.Handler:
        path = self.filename(log_type)
        if path is None:
            return logging.NullHandler()
        handler_class = LockedFileHandler if locked else logging.FileHandler
        handler = handler_class(path, mode="a", encoding="utf-8")
        handler.terminator = ""
        handler.setFormatter(logging.Formatter("%(message)s"))
        return handler

    def status(self, text: str) -> None:
        self.loggers["status"].info(text)

    def error(self, text: str) -> None:
        self.loggers["error"].info(text)

    def prereq(self, text: str) -> None:
        self.loggers["prereq"].info(text)

    def close(self) -> None:
        """Flush and release all handlers."""
        for run_logger in self.loggers.values():
            for handler in list(run_logger.handlers):
                run_logger.removeHandler(handler)
                handler.close()


class Reporter:
    """Turns outcomes into test-plan assertions and log lines.

    The reporter lives in the parent process and is the only writer of the
    test plan and the run logs.
    """

    def __init__(self, plan: TestPlan, logs: LogSinks) -> None:
        """Initialize the reporter.

        Args:
            plan: Test plan receiving one assertion per outcome.
            logs: Run log sinks.
        """
        self.plan = plan
        self.logs = logs
        self.outcomes: list[Outcome] = []

    @classmethod
    def create(
        cls,
        log_dir: Path | None,
        run_id: str | None = None,
        locked: bool = False,
        stream: TextIO | None = None,
    ) -> Reporter:
        """Factory method for production instantiation.

        Args:
            log_dir: Directory for log files, or None.
            run_id: Run identifier. Defaults to the process id.
            locked: Use flock-protected log handlers.
            stream: Destination of TAP output.

        Returns:
            Configured Reporter.
        """
        return cls(
            plan=TestPlan(stream),
            logs=LogSinks(log_dir, run_id or str(os.getpid()), locked=locked),
        )

    def report(self, outcome: Outcome) -> None:
        """Record one outcome.

        Args:
            outcome: Result for one requested distribution.
        """
        self.outcomes.append(outcome)

        for installed in outcome.installed:
            self.logs.prereq(f"Installing {installed.prereq} for {installed.for_dist}\n")
        for unresolved in outcome.unresolved:
            self.logs.prereq(f"Could not resolve {unresolved.prereq} for {unresolved.for_dist}\n")

        if outcome.status.is_skip:
            reason = one_line(outcome.reason or f"{outcome.name} was skipped")
            status_line = f"{outcome.status.value}: {outcome.name} ({reason})"
            self.logs.status(f"{status_line}\n")
            self.plan.skip(reason)
            if outcome.output:
                self._error_block(status_line, outcome.output)
            return

        summary = one_line(outcome.summary)
        self.logs.status(f"{summary}\n")
        self.plan.ok(outcome.passed, f"{outcome.name} passed all tests")

        if outcome.status is Status.PASS:
            self.logs.error(f"{summary}\n\n")
        else:
            self._error_block(summary, outcome.output)

    def _error_block(self, summary: str, output: str) -> None:
        self.logs.error(f"{summary}\n")
        self.logs.error(SEPARATOR)
        self.logs.error("\n")
        self.logs.error(f"{output}\n")

    def finish(self) -> RunReport:
        """Close the logs and tally the run.

        Returns:
            RunReport with every reported outcome.
        """
        if self.plan.planned is not None and self.plan.count != self.plan.planned:
            logger.warning(
                "Planned %d assertions but reported %d", self.plan.planned, self.plan.count
            )
        self.logs.close()
        return RunReport(
            outcomes=list(self.outcomes),
            passed=self.plan.passed,
            failed=self.plan.failed,
            skipped=self.plan.skipped,
        )
