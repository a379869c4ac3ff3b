"""Recursive prerequisite installation into an isolated root."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from dependents_tester.buildsystems import BuildSystem, get_build_system
from dependents_tester.errors import (
    NotResolvableError,
    PackageIndexError,
    PrereqInstallError,
)
from dependents_tester.process import run_command, scoped_environ, working_directory
from dependents_tester.protocols import CommandExecutor, OutputSink, PackageIndex, PrereqProbe
from dependents_tester.sinks import NullSink
from dependents_tester.types import (
    CommandResult,
    Distribution,
    InstalledPrereq,
    Phase,
    PrereqRequirement,
    UnresolvedPrereq,
)

logger = logging.getLogger(__name__)

# Phases walked in order for every distribution
PHASES = (Phase.CONFIGURE, Phase.BUILD_TEST)


@dataclass
class InstallationState:
    """Installation root and bookkeeping shared by a run's installs.

    Attributes:
        root: Isolated directory prerequisites are installed into.
        visited: Distribution ids already handled or in progress.
        in_progress: Ids on the current recursion stack.
        installed: Ids installed into the root.
        failed: Ids whose subtree failed, mapped to the reason.
        log: Installed prerequisites, in installation order.
    """

    root: Path
    visited: set[str] = field(default_factory=set)
    in_progress: set[str] = field(default_factory=set)
    installed: set[str] = field(default_factory=set)
    failed: dict[str, str] = field(default_factory=dict)
    log: list[InstalledPrereq] = field(default_factory=list)

    @property
    def perl5lib(self) -> Path:
        """Library directory inside the installation root."""
        return self.root / "lib" / "perl5"

    def install_env(self) -> dict[str, str]:
        """Toolchain overrides directing installs at the root.

        The toolchain only accepts the install location as ambient
        configuration, so this is applied via scoped_environ.
        """
        return {
            "PERL_MM_OPT": f"INSTALL_BASE={self.root}",
            "PERL_MB_OPT": f"--install_base {self.root}",
        }

    def build_env(self, base: Mapping[str, str] | None = None) -> dict[str, str]:
        """Environment for generation, build and test commands.

        Args:
            base: Environment to extend. Defaults to os.environ.

        Returns:
            Environment with the root on PERL5LIB and prompting disabled.
        """
        env = dict(os.environ if base is None else base)
        existing = env.get("PERL5LIB")
        env["PERL5LIB"] = f"{existing}{os.pathsep}{self.perl5lib}" if existing else str(self.perl5lib)
        env["PERL_AUTOINSTALL"] = "--defaultdeps"
        env["PERL_MM_USE_DEFAULT"] = "1"
        return env


class PerlPrereqProbe:
    """Checks prerequisites by asking perl to load them."""

    def __init__(self, executor: CommandExecutor = run_command) -> None:
        """Initialize the probe.

        Args:
            executor: Command executor.
        """
        self.executor = executor

    def is_satisfied(self, requirement: PrereqRequirement, state: InstallationState) -> bool:
        if requirement.is_runtime:
            return True
        if requirement.version in ("", "0"):
            code = f"use {requirement.name} ();"
        else:
            code = f"use {requirement.name} {requirement.version} ();"
        result = self.executor(["perl", "-e", code], env=state.build_env())
        return result.ok


class PrereqInstaller:
    """Ensures a distribution's declared prerequisites are installed.

    Follows Separate Use from Creation: constructor requires all dependencies.
    Use factory method `create()` for production instantiation with defaults.
    """

    def __init__(
        self,
        index: PackageIndex,
        probe: PrereqProbe,
        executor: CommandExecutor,
        sink: OutputSink,
        work_dir: Path,
    ) -> None:
        """Initialize installer with required dependencies.

        Args:
            index: Package index used to resolve prerequisite names.
            probe: Decides which requirements are already satisfied.
            executor: Runs generation and install commands.
            sink: Receives upstream tool output.
            work_dir: Where prerequisite sources are unpacked.
        """
        self.index = index
        self.probe = probe
        self.executor = executor
        self.sink = sink
        self.work_dir = work_dir

    @classmethod
    def create(
        cls,
        index: PackageIndex,
        work_dir: Path,
        probe: PrereqProbe | None = None,
        executor: CommandExecutor | None = None,
        sink: OutputSink | None = None,
    ) -> PrereqInstaller:
        """Factory method for production instantiation.

        Args:
            index: Package index.
            work_dir: Where prerequisite sources are unpacked.
            probe: Optional probe (perl-based if not provided).
            executor: Optional executor (subprocess-based if not provided).
            sink: Optional output sink (discarding if not provided).

        Returns:
            Configured PrereqInstaller instance.
        """
        executor = executor or run_command
        return cls(
            index=index,
            probe=probe or PerlPrereqProbe(executor),
            executor=executor,
            sink=sink or NullSink(),
            work_dir=work_dir,
        )

    def ensure_installed(self, dist: Distribution, state: InstallationState) -> None:
        """Install every unsatisfied prerequisite of a distribution.

        Depth-first: each prerequisite's own prerequisites are installed
        before it is installed (without running its tests). A distribution
        already visited in this run is treated as handled, unless its
        subtree failed, in which case the failure is raised again.

        Args:
            dist: Distribution with an attached source directory.
            state: Installation state shared across the run.

        Raises:
            PrereqInstallError: If anything in the subtree fails.
        """
        if dist.id in state.failed:
            raise PrereqInstallError(
                dist.id, f"failed earlier in this run: {state.failed[dist.id]}"
            )
        if dist.id in state.visited:
            logger.debug("%s already handled", dist.id)
            return
        state.visited.add(dist.id)
        state.in_progress.add(dist.id)
        try:
            self._generate(dist, state)
            for phase in PHASES:
                for requirement in self.index.declared_prereqs(dist, phase):
                    self._install_prereq(dist, requirement, state)
        except PrereqInstallError as e:
            state.failed[dist.id] = e.reason
            raise
        finally:
            state.in_progress.discard(dist.id)

    def _generate(self, dist: Distribution, state: InstallationState) -> None:
        """Run the build-script generation step for a distribution."""
        if dist.source_dir is None:
            raise PrereqInstallError(dist.id, "source directory was never fetched")

        build_system = get_build_system(dist.build_kind)
        command = build_system.generate_command()
        with scoped_environ(state.install_env()), working_directory(dist.source_dir):
            result = self._run(command, state)
        if not result.ok:
            raise PrereqInstallError(
                dist.id,
                f"{' '.join(command)} exited with {result.returncode}",
                output=result.output,
            )

    def _install_prereq(
        self,
        for_dist: Distribution,
        requirement: PrereqRequirement,
        state: InstallationState,
    ) -> None:
        if requirement.is_runtime:
            return
        if self.probe.is_satisfied(requirement, state):
            return

        unresolved = UnresolvedPrereq(prereq=requirement.name, for_dist=for_dist.id)
        try:
            prereq = self.index.resolve(requirement.name)
        except (NotResolvableError, PackageIndexError) as e:
            logger.error("Cannot resolve %s for %s: %s", requirement.name, for_dist.id, e)
            raise PrereqInstallError(
                for_dist.id, str(e), requirement.name, unresolved=unresolved
            ) from e
        if prereq is None:
            logger.error("Cannot resolve %s for %s", requirement.name, for_dist.id)
            raise PrereqInstallError(
                for_dist.id,
                f"Could not find prerequisite {requirement.name} on the package index",
                requirement.name,
                unresolved=unresolved,
            )

        if prereq.id in state.failed:
            raise PrereqInstallError(
                for_dist.id,
                f"prerequisite {prereq.id} failed earlier in this run: {state.failed[prereq.id]}",
                requirement.name,
            )
        if prereq.id in state.installed or prereq.id in state.in_progress:
            logger.debug("Skipping %s for %s: already handled", prereq.id, for_dist.id)
            return

        if prereq.source_dir is None:
            try:
                self.index.fetch(prereq, self.work_dir)
            except PackageIndexError as e:
                raise PrereqInstallError(for_dist.id, str(e), requirement.name) from e

        try:
            self.ensure_installed(prereq, state)
            self._install(prereq, state)
        except PrereqInstallError as e:
            state.failed.setdefault(prereq.id, e.reason)
            raise PrereqInstallError(
                for_dist.id,
                f"prerequisite {e.dist_id} failed: {e.reason}",
                requirement.name,
                output=e.output,
                unresolved=e.unresolved,
            ) from e

        state.installed.add(prereq.id)
        state.log.append(InstalledPrereq(prereq=prereq.id, for_dist=for_dist.id))
        logger.info("Installed %s for %s", prereq.id, for_dist.id)

    def _install(self, dist: Distribution, state: InstallationState) -> None:
        """Install a prepared distribution into the root, skipping its tests."""
        if dist.source_dir is None:
            raise PrereqInstallError(dist.id, "source directory was never fetched")
        build_system: BuildSystem = get_build_system(dist.build_kind)
        with scoped_environ(state.install_env()), working_directory(dist.source_dir):
            if not build_system.is_generated(dist.source_dir):
                command = build_system.generate_command()
                result = self._run(command, state)
                if not result.ok:
                    raise PrereqInstallError(
                        dist.id,
                        f"{' '.join(command)} exited with {result.returncode}",
                        output=result.output,
                    )
            command = build_system.install_command()
            result = self._run(command, state)
        if not result.ok:
            raise PrereqInstallError(
                dist.id,
                f"{' '.join(command)} exited with {result.returncode}",
                output=result.output,
            )

    def _run(self, command: list[str], state: InstallationState) -> CommandResult:
        result = self.executor(command, env=state.build_env())
        if result.output:
            self.sink.write(result.output)
        return result
