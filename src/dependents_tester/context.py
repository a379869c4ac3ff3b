"""Run context for dependency injection.

This module separates object creation from object use. One RunContext is
created per invocation and handed to every component, replacing hidden
process-wide state (installation root, log handles, toolchain config).

Dependencies are typed using Protocols (abstract interfaces) rather than
concrete implementations, so tests can inject doubles without inheritance.
The context is picklable so that it can be shipped to worker processes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from dependents_tester.installer import InstallationState, PrereqInstaller
from dependents_tester.protocols import (
    DistributionRunner,
    FileSystem,
    OutputSink,
    PackageIndex,
)
from dependents_tester.settings import RunSettings

logger = logging.getLogger(__name__)


def _default_filesystem() -> FileSystem:
    """Create the default filesystem implementation."""
    from dependents_tester.filesystem import RealFileSystem
    return RealFileSystem()


@dataclass
class RunContext:
    """Container for the collaborators of one run.

    Attributes:
        settings: Run settings.
        index: Package index client.
        installer: Prerequisite installer.
        runner: Build/test runner.
        state: Installation root and visited-set bookkeeping.
        sink: Destination for upstream tool output.
        work_dir: Where distribution sources are unpacked.
        owns_work_dir: Remove work_dir on close (it was created for this run).
    """

    settings: RunSettings
    index: PackageIndex
    installer: PrereqInstaller
    runner: DistributionRunner
    state: InstallationState
    sink: OutputSink
    work_dir: Path
    owns_work_dir: bool = False
    filesystem: FileSystem = field(default_factory=_default_filesystem)

    def close(self) -> None:
        """Release temporary directories.

        The installation root is kept when settings.keep_install_root is
        set, so that what got installed can be inspected afterwards.
        """
        if self.settings.keep_install_root:
            logger.info("Leaving installation root at %s", self.state.root)
        elif self.filesystem.exists(self.state.root):
            self.filesystem.rmtree(self.state.root)
        if self.owns_work_dir and self.filesystem.exists(self.work_dir):
            self.filesystem.rmtree(self.work_dir)

    def __enter__(self) -> RunContext:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def create_context(
    settings: RunSettings,
    filesystem: FileSystem | None = None,
) -> RunContext:
    """Factory for run dependencies.

    Creates the installation root and work directory and wires all
    services. Use this in production code. For tests, construct RunContext
    directly with test doubles.

    Args:
        settings: Run settings.
        filesystem: Override filesystem (for testing).

    Returns:
        Configured RunContext.
    """
    from dependents_tester.filesystem import RealFileSystem
    from dependents_tester.index import create_index
    from dependents_tester.runner import BuildTestRunner
    from dependents_tester.sinks import make_sink

    fs = filesystem or RealFileSystem()
    sink = make_sink(settings.index_verbose)

    root = fs.make_temp_dir("dependents-tester-root-")
    state = InstallationState(root=root)
    logger.debug("Installation root is %s", root)

    if settings.work_dir is not None:
        fs.mkdir(settings.work_dir, parents=True, exist_ok=True)
        work_dir = settings.work_dir
        owns_work_dir = False
    else:
        work_dir = fs.make_temp_dir("dependents-tester-work-")
        owns_work_dir = True

    try:
        index = create_index(settings, sink, filesystem=fs)
    except Exception:
        fs.rmtree(root)
        if owns_work_dir:
            fs.rmtree(work_dir)
        raise
    installer = PrereqInstaller.create(index=index, work_dir=work_dir, sink=sink)
    runner = BuildTestRunner(env=state.build_env())

    return RunContext(
        settings=settings,
        index=index,
        installer=installer,
        runner=runner,
        state=state,
        sink=sink,
        work_dir=work_dir,
        owns_work_dir=owns_work_dir,
        filesystem=fs,
    )
