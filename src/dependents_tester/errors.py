"""Exception taxonomy for dependents tester."""

from __future__ import annotations

from dependents_tester.types import UnresolvedPrereq


class DependentsTesterError(Exception):
    """Base class for all dependents tester errors."""

    pass


class NotResolvableError(DependentsTesterError):
    """A name does not map to a current distribution on the index."""

    def __init__(self, name: str, message: str | None = None) -> None:
        self.name = name
        super().__init__(message or f"Could not find {name} on the package index")


class AmbiguousNameError(NotResolvableError):
    """A name maps to more than one distribution."""

    def __init__(self, name: str, candidates: list[str]) -> None:
        self.candidates = candidates
        super().__init__(
            name,
            f"Cannot resolve {name} to a single distribution "
            f"(candidates: {', '.join(candidates)})",
        )


class PackageIndexError(DependentsTesterError):
    """The package index could not be queried or returned bad metadata."""

    pass


class PrereqInstallError(DependentsTesterError):
    """A prerequisite failed to resolve, generate or install.

    Attributes:
        dist_id: Distribution whose prerequisite tree failed.
        reason: One-line cause.
        prereq: Name of the failing prerequisite, if any.
        output: Captured tool output of the failing step.
        unresolved: The prerequisite the index could not resolve, if that
            is what failed.
    """

    def __init__(
        self,
        dist_id: str,
        reason: str,
        prereq: str | None = None,
        output: str = "",
        unresolved: UnresolvedPrereq | None = None,
    ) -> None:
        self.dist_id = dist_id
        self.reason = reason
        self.prereq = prereq
        self.output = output
        self.unresolved = unresolved
        super().__init__(f"{dist_id}: {reason}")


class BuildError(DependentsTesterError):
    """Build-script generation or build step failed before tests could run."""

    def __init__(self, output: str, stderr: str = "") -> None:
        self.output = output
        self.stderr = stderr
        super().__init__("build step failed")


class OrchestrationError(DependentsTesterError):
    """A worker pool could not be started or died underneath the run."""

    pass
