"""Base build system implementation with shared behavior.

Both supported toolchains run the same lifecycle: generate a build script
from a generator file, build, then test or install. They vary only in file
names and in how each step is spelled on the command line.

Pattern: Template Method - base class defines the lifecycle, subclasses
provide the command spellings.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from dependents_tester.types import BuildKind

# Interpreter used to run generator files
PERL = "perl"


class BaseBuildSystem(ABC):
    """Base class for build system implementations."""

    kind: BuildKind
    generator_file: str
    script: str

    @abstractmethod
    def build_command(self) -> list[str]:
        """Command that builds the distribution."""
        ...

    @abstractmethod
    def test_command(self) -> list[str]:
        """Command that runs the test suite."""
        ...

    @abstractmethod
    def install_command(self) -> list[str]:
        """Command that installs without running tests."""
        ...

    def generate_command(self) -> list[str]:
        """Command that turns the generator file into a build script."""
        return [PERL, self.generator_file]

    def is_generated(self, source_dir: Path) -> bool:
        """Check whether the build script already exists.

        Args:
            source_dir: Distribution source directory.

        Returns:
            True if the generated script is present.
        """
        return (source_dir / self.script).is_file()

    def applies_to(self, source_dir: Path) -> bool:
        """Check whether the source directory ships this generator file."""
        return (source_dir / self.generator_file).is_file()
