"""Build and test a distribution's source directory."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from pathlib import Path

from dependents_tester.buildsystems import BuildSystem, detect_build_system
from dependents_tester.errors import BuildError
from dependents_tester.process import run_command, working_directory
from dependents_tester.protocols import CommandExecutor
from dependents_tester.types import Status, TestRunResult

logger = logging.getLogger(__name__)

# Harness summary line printed when every test passed
PASS_PATTERN = re.compile(r"^Result: PASS\s*$", re.MULTILINE)

# Printed by the toolchain for distributions without a t/ directory
NO_TESTS_PATTERN = re.compile(r"^No tests defined", re.MULTILINE)

# A lot of distributions cargo-cult a diag() that looks like this:
#
#   # Testing Foo::Bar 0.01, Perl 5.00801, /usr/bin/perl
#
# On its own it says nothing about the test run.
TESTING_BANNER = re.compile(r"# Testing [\w:]+ [^\n]+\n?")


def filter_stderr_noise(stderr: str) -> str:
    """Drop stderr that consists solely of the "# Testing ..." banner.

    Args:
        stderr: Stderr-only capture of a test run.

    Returns:
        Empty string for the lone banner, otherwise stderr unchanged.
    """
    if TESTING_BANNER.fullmatch(stderr):
        return ""
    return stderr


def tests_passed(returncode: int, output: str) -> bool:
    """Decide whether a test command succeeded.

    A clean exit is not enough on its own: the output must be empty or
    carry a recognized success marker.

    Args:
        returncode: Exit status of the test command.
        output: Combined output of the test command.

    Returns:
        True if the run counts as passed.
    """
    if returncode != 0:
        return False
    if not output.strip():
        return True
    return bool(PASS_PATTERN.search(output) or NO_TESTS_PATTERN.search(output))


tests_passed.__test__ = False  # type: ignore[attr-defined]


def classify(result: TestRunResult) -> Status:
    """Map a test run to PASS, WARN or FAIL.

    Args:
        result: Test run with stderr already noise-filtered.

    Returns:
        WARN when tests passed but wrote to stderr.
    """
    if not result.passed:
        return Status.FAIL
    return Status.WARN if result.stderr else Status.PASS


class BuildTestRunner:
    """Runs the build step and the test suite of a distribution."""

    def __init__(
        self,
        executor: CommandExecutor = run_command,
        env: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            executor: Command executor.
            env: Environment for every command (inherits os.environ if None).
        """
        self.executor = executor
        self.env = env

    def run_tests(self, source_dir: Path) -> TestRunResult:
        """Build and test the distribution in source_dir.

        The working directory is scoped to source_dir for the duration of
        the call. A failing generation or build step short-circuits with
        its output as the failure reason; tests are then never run.

        Args:
            source_dir: Unpacked distribution source.

        Returns:
            TestRunResult with noise-filtered stderr.
        """
        source_dir = source_dir.resolve()
        build_system = detect_build_system(source_dir)
        with working_directory(source_dir):
            try:
                self._build(build_system, source_dir)
            except BuildError as e:
                return TestRunResult(passed=False, output=e.output, stderr=e.stderr)
            result = self.executor(build_system.test_command(), env=self.env)

        passed = tests_passed(result.returncode, result.output)
        logger.debug("Tests in %s %s", source_dir, "passed" if passed else "failed")
        return TestRunResult(
            passed=passed,
            output=result.output,
            stderr=filter_stderr_noise(result.stderr),
        )

    def _build(self, build_system: BuildSystem, source_dir: Path) -> None:
        """Generate the build script if needed, then build.

        Raises:
            BuildError: If either step fails.
        """
        steps = []
        if not build_system.is_generated(source_dir):
            steps.append(build_system.generate_command())
        steps.append(build_system.build_command())

        for command in steps:
            result = self.executor(command, env=self.env)
            if not result.ok:
                logger.debug("%s failed in %s", " ".join(command), source_dir)
                raise BuildError(result.output, result.stderr)
