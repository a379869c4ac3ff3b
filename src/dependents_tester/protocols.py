"""Protocol definitions for core abstractions.

This module defines abstract interfaces (Protocols) for the collaborators
of a run. Designing to interfaces enables:
- Loose coupling between the orchestrator and its collaborators
- Easy substitution of test doubles (no perl, make or network in tests)
- Clear contracts for alternative package indexes

All concrete implementations satisfy these protocols structurally (duck typing).
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from dependents_tester.types import CommandResult, Phase, PrereqRequirement

if TYPE_CHECKING:
    from dependents_tester.installer import InstallationState
    from dependents_tester.types import Distribution, TestRunResult


@runtime_checkable
class PackageIndex(Protocol):
    """Protocol for package index queries.

    Implementations resolve names to distributions, list reverse
    dependencies, and unpack distribution sources on demand.
    """

    def reverse_dependents(self, package: str) -> list[str]:
        """List distributions declaring a package as a prerequisite.

        Args:
            package: Module name of the target package.

        Returns:
            Distribution names (e.g. Foo-Bar).
        """
        ...

    def resolve(self, name: str) -> Distribution | None:
        """Resolve a module name to its current distribution.

        Args:
            name: Module name (e.g. Foo::Bar).

        Returns:
            Distribution, or None if the name is unknown.

        Raises:
            AmbiguousNameError: If the name maps to several distributions.
            PackageIndexError: If the index could not be queried.
        """
        ...

    def declared_prereqs(self, dist: Distribution, phase: Phase) -> list[PrereqRequirement]:
        """List prerequisites a distribution declares for a phase.

        Args:
            dist: Resolved distribution.
            phase: Lifecycle phase.

        Returns:
            Declared requirements in declaration order.
        """
        ...

    def fetch(self, dist: Distribution, dest_dir: Path) -> Path:
        """Unpack a distribution's source and attach it.

        Args:
            dist: Resolved distribution.
            dest_dir: Directory to unpack into.

        Returns:
            The attached source directory.

        Raises:
            PackageIndexError: If the source could not be obtained.
        """
        ...


@runtime_checkable
class PrereqProbe(Protocol):
    """Protocol for checking whether a prerequisite is already available."""

    def is_satisfied(self, requirement: PrereqRequirement, state: InstallationState) -> bool:
        """Check a requirement against the system and the installation root.

        Args:
            requirement: Declared prerequisite.
            state: Installation state of the run.

        Returns:
            True if nothing needs installing.
        """
        ...


@runtime_checkable
class CommandExecutor(Protocol):
    """Protocol for running external commands in the current directory."""

    def __call__(
        self, command: list[str], env: Mapping[str, str] | None = None
    ) -> CommandResult:
        """Run a command and capture its output.

        Args:
            command: Program and arguments.
            env: Full environment for the child.

        Returns:
            CommandResult; execution failures are captured, not raised.
        """
        ...


@runtime_checkable
class OutputSink(Protocol):
    """Protocol for destinations of upstream tool output."""

    def write(self, text: str) -> None:
        """Consume a chunk of output.

        Args:
            text: Output text, possibly several lines.
        """
        ...


@runtime_checkable
class DistributionRunner(Protocol):
    """Protocol for building and testing a source directory."""

    def run_tests(self, source_dir: Path) -> TestRunResult:
        """Build and test a distribution.

        Args:
            source_dir: Unpacked distribution source.

        Returns:
            TestRunResult with pass flag and captured output.
        """
        ...


@runtime_checkable
class FileSystem(Protocol):
    """Protocol for the directory and archive operations of a run."""

    def exists(self, path: Path) -> bool:
        """Check if a path exists."""
        ...

    def is_dir(self, path: Path) -> bool:
        """Check if a path is a directory."""
        ...

    def mkdir(self, path: Path, parents: bool = False, exist_ok: bool = False) -> None:
        """Create a directory."""
        ...

    def make_temp_dir(self, prefix: str, parent: Path | None = None) -> Path:
        """Create a fresh temporary directory, under parent if given."""
        ...

    def rmtree(self, path: Path) -> None:
        """Remove a directory tree."""
        ...

    def copytree(self, src: Path, dst: Path) -> None:
        """Copy a directory tree."""
        ...

    def extract_archive(self, archive: Path, dest_dir: Path) -> Path:
        """Extract a source archive and return its top-level directory."""
        ...
