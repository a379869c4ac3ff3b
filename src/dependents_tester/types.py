"""Shared data types for dependents tester."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

__all__ = [
    "BuildKind",
    "CommandResult",
    "Distribution",
    "InstalledPrereq",
    "Outcome",
    "Phase",
    "PrereqRequirement",
    "RunReport",
    "Status",
    "TestRunResult",
    "UnresolvedPrereq",
]

# Name of the pseudo-dependency on the runtime itself
RUNTIME_PREREQ = "perl"


class Status(str, Enum):
    """Classified result of building and testing one distribution."""

    PASS = "PASS"
    WARN = "WARN"
    FAIL = "FAIL"
    SKIP = "SKIP"
    UNKNOWN = "UNKNOWN"

    @property
    def counts_as_pass(self) -> bool:
        """WARN still passes: tests succeeded but wrote to stderr."""
        return self in (Status.PASS, Status.WARN)

    @property
    def is_skip(self) -> bool:
        """True for outcomes recorded as skipped assertions."""
        return self in (Status.SKIP, Status.UNKNOWN)


class Phase(str, Enum):
    """Point in the build lifecycle a prerequisite must be satisfied by."""

    CONFIGURE = "configure"
    BUILD_TEST = "build/test"


class BuildKind(str, Enum):
    """Build system flavor, inferred from the generator file present."""

    SCRIPT = "script"
    MAKE = "make"


@dataclass(frozen=True)
class PrereqRequirement:
    """A declared prerequisite of a distribution.

    Whether the requirement is satisfied is computed by a PrereqProbe
    against the current installation root; it is never stored here.

    Attributes:
        name: Module name (e.g. Foo::Bar).
        phase: Lifecycle phase the module is needed for.
        version: Minimum version, "0" for any.
    """

    name: str
    phase: Phase
    version: str = "0"

    def __post_init__(self) -> None:
        """Validate invariants."""
        if not self.name:
            raise ValueError("prerequisite name cannot be empty")

    @property
    def is_runtime(self) -> bool:
        """True for the pseudo-dependency on the runtime itself."""
        return self.name == RUNTIME_PREREQ


@dataclass
class Distribution:
    """A releasable unit of packaged source resolved from the index.

    Attributes:
        name: Distribution name (e.g. Good-Dist).
        base_id: Canonical release id (e.g. Good-Dist-1.00).
        author_id: Releasing author id.
        download_url: Where the release archive lives (None for local sources).
        prereqs: Declared prerequisites keyed by phase.
        source_dir: Unpacked source, attached once by the index client.
    """

    name: str
    base_id: str
    author_id: str
    download_url: str | None = None
    prereqs: dict[Phase, list[PrereqRequirement]] = field(default_factory=dict)
    source_dir: Path | None = None

    def __post_init__(self) -> None:
        """Validate invariants."""
        if not self.name:
            raise ValueError("name cannot be empty")
        if not self.base_id:
            raise ValueError("base_id cannot be empty")
        if not self.author_id:
            raise ValueError("author_id cannot be empty")

    @property
    def id(self) -> str:
        """Identity used for visited-set bookkeeping."""
        return self.base_id

    def attach_source(self, path: Path) -> None:
        """Attach the unpacked source directory.

        Args:
            path: Directory holding the distribution source.

        Raises:
            ValueError: If a source directory was already attached.
        """
        if self.source_dir is not None:
            raise ValueError(f"{self.base_id} already has a source directory")
        self.source_dir = path

    @property
    def build_kind(self) -> BuildKind:
        """Build system inferred from the attached source directory.

        Raises:
            ValueError: If no source directory is attached yet.
        """
        if self.source_dir is None:
            raise ValueError(f"{self.base_id} has no source directory")
        if (self.source_dir / "Build.PL").is_file():
            return BuildKind.SCRIPT
        return BuildKind.MAKE


@dataclass
class CommandResult:
    """Captured result of one external command.

    A command that could not be executed at all has returncode -1 and the
    error text as its output.
    """

    command: list[str]
    returncode: int
    output: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclass
class TestRunResult:
    """Result of building and testing one source directory."""

    __test__ = False

    passed: bool
    output: str = ""
    stderr: str = ""


@dataclass(frozen=True)
class InstalledPrereq:
    """A prerequisite installed into the installation root."""

    prereq: str
    for_dist: str


@dataclass(frozen=True)
class UnresolvedPrereq:
    """A prerequisite the package index could not resolve."""

    prereq: str
    for_dist: str


@dataclass
class Outcome:
    """Result of attempting one requested distribution.

    Attributes:
        name: Requested name.
        status: Classified status.
        summary: Status line, e.g. "PASS: Foo::Bar - Foo-Bar-1.00 - AUTHOR".
        output: Combined stdout and stderr of the test step.
        stderr: Stderr-only capture, after noise filtering.
        reason: Why the distribution was skipped or failed early.
        base_id: Release id when resolved.
        author_id: Author id when resolved.
        installed: Prerequisites installed while handling this distribution.
        unresolved: Prerequisites that could not be resolved on the index.
    """

    name: str
    status: Status
    summary: str = ""
    output: str = ""
    stderr: str = ""
    reason: str | None = None
    base_id: str | None = None
    author_id: str | None = None
    installed: list[InstalledPrereq] = field(default_factory=list)
    unresolved: list[UnresolvedPrereq] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Validate invariants."""
        if not self.name:
            raise ValueError("name cannot be empty")
        if self.status.is_skip and not self.reason:
            raise ValueError(f"{self.status.value} outcome requires a reason")

    @property
    def passed(self) -> bool:
        return self.status.counts_as_pass


@dataclass
class RunReport:
    """Aggregated result of a whole run."""

    outcomes: list[Outcome] = field(default_factory=list)
    passed: int = 0
    failed: int = 0
    skipped: int = 0

    @property
    def planned(self) -> int:
        return self.passed + self.failed + self.skipped

    @property
    def ok(self) -> bool:
        """True when every assertion passed or was skipped."""
        return self.failed == 0
