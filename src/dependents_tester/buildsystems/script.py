"""Module::Build style build system (Build.PL)."""

from __future__ import annotations

from dependents_tester.buildsystems.base import BaseBuildSystem
from dependents_tester.types import BuildKind


class ScriptBuildSystem(BaseBuildSystem):
    """Build system driven by a generated ./Build script."""

    kind = BuildKind.SCRIPT
    generator_file = "Build.PL"
    script = "Build"

    def build_command(self) -> list[str]:
        return ["./Build"]

    def test_command(self) -> list[str]:
        return ["./Build", "test"]

    def install_command(self) -> list[str]:
        return ["./Build", "install"]
