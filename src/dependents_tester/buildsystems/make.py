"""ExtUtils::MakeMaker style build system (Makefile.PL)."""

from __future__ import annotations

from dependents_tester.buildsystems.base import BaseBuildSystem
from dependents_tester.types import BuildKind


class MakeBuildSystem(BaseBuildSystem):
    """Build system driven by a generated Makefile."""

    kind = BuildKind.MAKE
    generator_file = "Makefile.PL"
    script = "Makefile"

    def build_command(self) -> list[str]:
        return ["make"]

    def test_command(self) -> list[str]:
        return ["make", "test"]

    def install_command(self) -> list[str]:
        return ["make", "install"]
