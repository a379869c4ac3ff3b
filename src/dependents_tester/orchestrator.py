"""Drive requested distributions through install, build and test.

Sequential runs report outcomes in input order. Parallel runs hand each
name to a worker process end-to-end and report outcomes in the order they
arrive, which is not the input order. The parent process is the only
consumer of results and the only writer of the test plan and logs.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from concurrent.futures import Executor, ProcessPoolExecutor, as_completed
from concurrent.futures.process import BrokenProcessPool
from typing import TYPE_CHECKING

from dependents_tester.errors import (
    NotResolvableError,
    OrchestrationError,
    PackageIndexError,
    PrereqInstallError,
)
from dependents_tester.reporter import Reporter
from dependents_tester.runner import classify
from dependents_tester.types import Outcome, RunReport, Status

if TYPE_CHECKING:
    from dependents_tester.context import RunContext

logger = logging.getLogger(__name__)

# Distributions that only bundle other distributions are never tested
ALWAYS_EXCLUDED = re.compile(r"^(?:Task|Bundle)")

ExecutorFactory = Callable[[int], Executor]


def select_dependents(names: Iterable[str], exclude: str | None = None) -> list[str]:
    """Filter a dependent list.

    Args:
        names: Distribution names from the index.
        exclude: Optional regex; matching names are dropped.

    Returns:
        Names in original order without duplicates, Task/Bundle names and
        names matching exclude.
    """
    exclude_re = re.compile(exclude) if exclude else None
    selected: list[str] = []
    for name in names:
        if ALWAYS_EXCLUDED.match(name):
            continue
        if exclude_re is not None and exclude_re.search(name):
            continue
        if name not in selected:
            selected.append(name)
    return selected


def dist_to_module(name: str) -> str:
    """Convert a distribution name (Foo-Bar) to a module name (Foo::Bar)."""
    return name.replace("-", "::")


def process_distribution(context: RunContext, name: str) -> Outcome:
    """Resolve, install prerequisites for, build and test one name.

    This is the unit of work a worker owns end-to-end. Nothing raised by
    the index, the installer or the runner escapes; every path ends in an
    Outcome.

    Args:
        context: RunContext of the run (a pickled copy in worker processes).
        name: Requested module or distribution name.

    Returns:
        Outcome for the name.
    """
    name = dist_to_module(name)
    state = context.state
    first_log_entry = len(state.log)

    try:
        dist = context.index.resolve(name)
    except NotResolvableError as e:
        logger.warning("%s", e)
        return Outcome(name=name, status=Status.UNKNOWN, reason=str(e))
    except PackageIndexError as e:
        logger.warning("Index lookup for %s failed: %s", name, e)
        return Outcome(name=name, status=Status.SKIP, reason=str(e))
    if dist is None:
        return Outcome(
            name=name,
            status=Status.UNKNOWN,
            reason=f"Could not find {name} on the package index",
        )

    try:
        if dist.source_dir is None:
            context.index.fetch(dist, context.work_dir)
        context.installer.ensure_installed(dist, state)
    except PrereqInstallError as e:
        logger.warning("Skipping %s: %s", name, e)
        return Outcome(
            name=name,
            status=Status.SKIP,
            reason=f"Prerequisites of {name} could not be installed: {e}",
            output=e.output,
            base_id=dist.base_id,
            author_id=dist.author_id,
            installed=state.log[first_log_entry:],
            unresolved=[e.unresolved] if e.unresolved else [],
        )
    except PackageIndexError as e:
        logger.warning("Skipping %s: %s", name, e)
        return Outcome(
            name=name,
            status=Status.SKIP,
            reason=f"Prerequisites of {name} could not be installed: {e}",
            base_id=dist.base_id,
            author_id=dist.author_id,
            installed=state.log[first_log_entry:],
        )

    result = context.runner.run_tests(dist.source_dir)
    status = classify(result)
    return Outcome(
        name=name,
        status=status,
        summary=f"{status.value}: {name} - {dist.base_id} - {dist.author_id}",
        output=result.output,
        stderr=result.stderr,
        base_id=dist.base_id,
        author_id=dist.author_id,
        installed=state.log[first_log_entry:],
    )


def _process_pool(workers: int) -> Executor:
    return ProcessPoolExecutor(max_workers=workers)


class Orchestrator:
    """Runs requested names sequentially or across a worker pool."""

    def __init__(
        self,
        context: RunContext,
        reporter: Reporter,
        executor_factory: ExecutorFactory = _process_pool,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            context: RunContext shared by (or copied to) every worker.
            reporter: Reporter receiving every outcome.
            executor_factory: Builds the worker pool for a worker count.
        """
        self.context = context
        self.reporter = reporter
        self.executor_factory = executor_factory

    def run(self, names: list[str]) -> RunReport:
        """Test every name and report exactly one outcome for each.

        Args:
            names: Requested module or distribution names.

        Returns:
            RunReport with the final tally.

        Raises:
            OrchestrationError: If the worker pool dies.
        """
        self.reporter.plan.plan(len(names))
        workers = self.context.settings.processes

        if workers > 1 and names:
            pool = self._start_pool(workers)
            if pool is not None:
                self._run_parallel(pool, names)
                return self.reporter.finish()

        self._run_sequential(names)
        return self.reporter.finish()

    def _start_pool(self, workers: int) -> Executor | None:
        try:
            return self.executor_factory(workers)
        except (ImportError, NotImplementedError, OSError) as e:
            logger.warning(
                "Cannot run %d worker processes (%s); running sequentially", workers, e
            )
            return None

    def _run_sequential(self, names: list[str]) -> None:
        for name in names:
            try:
                outcome = process_distribution(self.context, name)
            except Exception as e:
                logger.exception("Unexpected error while testing %s", name)
                outcome = _crashed(name, e)
            self.reporter.report(outcome)

    def _run_parallel(self, pool: Executor, names: list[str]) -> None:
        with pool:
            try:
                futures = {
                    pool.submit(process_distribution, self.context, name): name
                    for name in names
                }
                for future in as_completed(futures):
                    try:
                        outcome = future.result()
                    except BrokenProcessPool:
                        raise
                    except Exception as e:
                        logger.exception("Worker failed while testing %s", futures[future])
                        outcome = _crashed(dist_to_module(futures[future]), e)
                    self.reporter.report(outcome)
            except BrokenProcessPool as e:
                raise OrchestrationError(f"Worker pool died: {e}") from e


def _crashed(name: str, error: Exception) -> Outcome:
    """Outcome for a distribution whose processing raised unexpectedly."""
    return Outcome(
        name=dist_to_module(name),
        status=Status.FAIL,
        summary=f"FAIL: {dist_to_module(name)} (error: {error})",
        output=f"{type(error).__name__}: {error}",
        reason=str(error),
    )