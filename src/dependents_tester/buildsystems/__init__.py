"""Build system implementations."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

from dependents_tester.types import BuildKind

from .base import BaseBuildSystem
from .make import MakeBuildSystem
from .script import ScriptBuildSystem


@runtime_checkable
class BuildSystem(Protocol):
    """Protocol defining the interface for build system implementations.

    New toolchains can be supported by registering another implementation
    without touching the installer or runner.
    """

    kind: BuildKind
    generator_file: str
    script: str

    def generate_command(self) -> list[str]:
        """Command that turns the generator file into a build script."""
        raise NotImplementedError

    def build_command(self) -> list[str]:
        """Command that builds the distribution."""
        raise NotImplementedError

    def test_command(self) -> list[str]:
        """Command that runs the test suite."""
        raise NotImplementedError

    def install_command(self) -> list[str]:
        """Command that installs without running tests."""
        raise NotImplementedError

    def is_generated(self, source_dir: Path) -> bool:
        """Check whether the build script already exists."""
        raise NotImplementedError


__all__ = [
    "BaseBuildSystem",
    "BuildSystem",
    "MakeBuildSystem",
    "ScriptBuildSystem",
    "detect_build_system",
    "get_build_system",
]


BUILD_SYSTEMS: dict[BuildKind, type[BuildSystem]] = {
    BuildKind.SCRIPT: ScriptBuildSystem,
    BuildKind.MAKE: MakeBuildSystem,
}


def get_build_system(kind: BuildKind | str) -> BuildSystem:
    """Get a build system instance by kind.

    Args:
        kind: Build kind (script, make).

    Returns:
        BuildSystem instance.

    Raises:
        ValueError: If the kind is not supported.
    """
    try:
        key = BuildKind(kind)
    except ValueError:
        raise ValueError(
            f"Unknown build system: {kind}. Supported: {[k.value for k in BUILD_SYSTEMS]}"
        ) from None
    return BUILD_SYSTEMS[key]()


def detect_build_system(source_dir: Path) -> BuildSystem:
    """Pick the build system for a source directory.

    A Build.PL generator wins; anything else is assumed to be MakeMaker.

    Args:
        source_dir: Distribution source directory.

    Returns:
        BuildSystem instance.
    """
    if ScriptBuildSystem().applies_to(source_dir):
        return get_build_system(BuildKind.SCRIPT)
    return get_build_system(BuildKind.MAKE)
