"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
import yaml

from dependents_tester.index import StaticIndex
from dependents_tester.installer import InstallationState, PrereqInstaller
from dependents_tester.types import CommandResult, PrereqRequirement


class RecordingExecutor:
    """Executor double that records commands instead of running them.

    `respond` may return a CommandResult for a (command, cwd) pair; anything
    it does not answer succeeds with empty output.
    """

    def __init__(
        self,
        respond: Callable[[tuple[str, ...], Path], CommandResult | None] | None = None,
    ) -> None:
        self.respond = respond
        self.calls: list[tuple[tuple[str, ...], Path]] = []
        self.envs: list[Mapping[str, str] | None] = []

    def __call__(
        self, command: list[str], env: Mapping[str, str] | None = None
    ) -> CommandResult:
        key = tuple(command)
        cwd = Path.cwd()
        self.calls.append((key, cwd))
        self.envs.append(env)
        if self.respond is not None:
            result = self.respond(key, cwd)
            if result is not None:
                return result
        return CommandResult(command=list(command), returncode=0)

    @property
    def commands(self) -> list[tuple[str, ...]]:
        return [command for command, _ in self.calls]

    def installs(self) -> list[str]:
        """Directory names in which an install command ran."""
        return [
            cwd.name
            for command, cwd in self.calls
            if command in (("make", "install"), ("./Build", "install"))
        ]


class UnsatisfiedProbe:
    """Probe double: every requirement except the runtime needs installing."""

    def __init__(self) -> None:
        self.checked: list[str] = []

    def is_satisfied(self, requirement: PrereqRequirement, state: InstallationState) -> bool:
        self.checked.append(requirement.name)
        return requirement.is_runtime


@pytest.fixture
def recording_executor() -> RecordingExecutor:
    """Executor double where every command succeeds silently."""
    return RecordingExecutor()


@pytest.fixture
def unsatisfied_probe() -> UnsatisfiedProbe:
    """Probe double that never finds anything installed."""
    return UnsatisfiedProbe()


@pytest.fixture
def install_state(tmp_path: Path) -> InstallationState:
    """Installation state rooted in a temporary directory."""
    root = tmp_path / "root"
    root.mkdir()
    return InstallationState(root=root)


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    """Directory distribution sources are unpacked into."""
    path = tmp_path / "work"
    path.mkdir()
    return path


def _dist_entry(
    name: str,
    prereqs: dict[str, dict[str, Any]] | None = None,
    version: str = "1.00",
    author: str = "AUTHORID",
    provides: list[str] | None = None,
    build: str = "make",
) -> dict[str, Any]:
    return {
        "name": name,
        "version": version,
        "author": author,
        "provides": provides or [name.replace("-", "::")],
        "prereqs": prereqs or {},
        "build": build,
    }


@pytest.fixture
def make_static_index(tmp_path: Path) -> Callable[..., StaticIndex]:
    """Factory writing a static YAML index plus source directories.

    Each source directory gets a Makefile.PL, or a Build.PL when the entry
    has build="script".
    """

    def factory(*entries: dict[str, Any]) -> StaticIndex:
        index_dir = tmp_path / "index"
        sources = index_dir / "sources"
        sources.mkdir(parents=True, exist_ok=True)
        distributions = []
        for entry in entries:
            entry = dict(entry)
            build = entry.pop("build", "make")
            source = sources / f"{entry['name']}-{entry['version']}"
            source.mkdir(exist_ok=True)
            generator = "Build.PL" if build == "script" else "Makefile.PL"
            (source / generator).write_text("# generator\n")
            entry["source"] = f"sources/{source.name}"
            distributions.append(entry)
        index_file = index_dir / "index.yaml"
        index_file.write_text(yaml.safe_dump({"distributions": distributions}))
        return StaticIndex.from_file(index_file)

    return factory


@pytest.fixture
def dist_entry() -> Callable[..., dict[str, Any]]:
    """Build one static index entry."""
    return _dist_entry


@pytest.fixture
def make_installer(
    work_dir: Path,
    recording_executor: RecordingExecutor,
    unsatisfied_probe: UnsatisfiedProbe,
) -> Callable[[StaticIndex], PrereqInstaller]:
    """Factory for an installer wired to test doubles."""

    def factory(index: StaticIndex) -> PrereqInstaller:
        return PrereqInstaller(
            index=index,
            probe=unsatisfied_probe,
            executor=recording_executor,
            sink=MagicMock(),
            work_dir=work_dir,
        )

    return factory
