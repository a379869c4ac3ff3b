"""Package index backed by a local YAML file.

Useful for offline runs, private darkpans and fixtures. The file lists
distributions with the modules they provide, where their source lives and
the prerequisites they declare:

    distributions:
      - name: Good-Dist
        version: "1.00"
        author: AUTHORID
        provides: [Good::Dist]
        source: sources/Good-Dist-1.00.tar.gz
        prereqs:
          configure: {ExtUtils::MakeMaker: 0}
          build/test: {Foo::Bar: "1.2"}

Relative source paths are taken relative to the YAML file.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from dependents_tester.errors import AmbiguousNameError, PackageIndexError
from dependents_tester.filesystem import ArchiveError, RealFileSystem
from dependents_tester.protocols import FileSystem
from dependents_tester.types import Distribution, Phase, PrereqRequirement

logger = logging.getLogger(__name__)


class StaticDistribution(BaseModel):
    """One distribution entry of a static index file."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    version: str
    author: str
    provides: list[str] = Field(default_factory=list)
    source: str | None = None
    prereqs: dict[Phase, dict[str, Any]] = Field(default_factory=dict)

    @property
    def base_id(self) -> str:
        return f"{self.name}-{self.version}"

    @property
    def modules(self) -> list[str]:
        """Provided modules, defaulting to the module named like the dist."""
        return self.provides or [self.name.replace("-", "::")]


class StaticIndexFile(BaseModel):
    """Top level of a static index file."""

    distributions: list[StaticDistribution] = Field(default_factory=list)


class StaticIndex:
    """Package index loaded from a YAML file."""

    def __init__(
        self,
        entries: list[StaticDistribution],
        base_dir: Path,
        filesystem: FileSystem,
    ) -> None:
        """Initialize the index.

        Args:
            entries: Distribution entries.
            base_dir: Directory relative source paths are resolved against.
            filesystem: Filesystem abstraction.

        Note:
            Prefer using factory method `from_file()` for construction.
        """
        self.entries = entries
        self.base_dir = base_dir
        self.fs = filesystem
        self._by_module: dict[str, list[StaticDistribution]] = {}
        for entry in entries:
            for module in entry.modules:
                self._by_module.setdefault(module, []).append(entry)

    @classmethod
    def from_file(cls, path: Path, filesystem: FileSystem | None = None) -> StaticIndex:
        """Load a static index from a YAML file.

        Args:
            path: Path to the YAML file.
            filesystem: Optional filesystem abstraction.

        Returns:
            Configured StaticIndex.

        Raises:
            PackageIndexError: If the file is missing or malformed.
        """
        if not path.is_file():
            raise PackageIndexError(f"Static index not found: {path}")
        try:
            data = yaml.safe_load(path.read_text()) or {}
            parsed = StaticIndexFile.model_validate(data)
        except (yaml.YAMLError, ValidationError) as e:
            raise PackageIndexError(f"Invalid static index {path}: {e}") from e
        return cls(parsed.distributions, path.parent, filesystem or RealFileSystem())

    def reverse_dependents(self, package: str) -> list[str]:
        """List distributions whose prerequisites mention any module of the
        distribution providing `package`."""
        providers = self._by_module.get(package, [])
        modules = {package}
        for provider in providers:
            modules.update(provider.modules)
        provider_names = {p.name for p in providers}

        dependents = []
        for entry in self.entries:
            if entry.name in provider_names:
                continue
            declared = {m for reqs in entry.prereqs.values() for m in reqs}
            if declared & modules:
                dependents.append(entry.name)
        return dependents

    def resolve(self, name: str) -> Distribution | None:
        matches = self._by_module.get(name, [])
        if not matches:
            logger.debug("%s is not in the static index", name)
            return None
        if len({m.name for m in matches}) > 1:
            raise AmbiguousNameError(name, sorted(m.base_id for m in matches))
        entry = matches[0]
        source = self._source_path(entry)
        return Distribution(
            name=entry.name,
            base_id=entry.base_id,
            author_id=entry.author,
            download_url=str(source) if source else None,
            prereqs={
                phase: [
                    PrereqRequirement(module, phase, str(version or 0))
                    for module, version in reqs.items()
                ]
                for phase, reqs in entry.prereqs.items()
            },
        )

    def declared_prereqs(self, dist: Distribution, phase: Phase) -> list[PrereqRequirement]:
        return list(dist.prereqs.get(phase, []))

    def fetch(self, dist: Distribution, dest_dir: Path) -> Path:
        """Copy or extract the distribution source into dest_dir."""
        if dist.source_dir is not None:
            return dist.source_dir
        if not dist.download_url:
            raise PackageIndexError(f"No source recorded for {dist.base_id}")

        source = Path(dist.download_url)
        if not self.fs.exists(source):
            raise PackageIndexError(f"Source for {dist.base_id} not found: {source}")

        # Every fetch gets its own directory; workers share dest_dir
        self.fs.mkdir(dest_dir, parents=True, exist_ok=True)
        target = self.fs.make_temp_dir(f"{dist.base_id}-", dest_dir) / dist.base_id
        if self.fs.is_dir(source):
            self.fs.copytree(source, target)
            source_dir = target
        else:
            try:
                source_dir = self.fs.extract_archive(source, target)
            except ArchiveError as e:
                raise PackageIndexError(str(e)) from e

        dist.attach_source(source_dir)
        return source_dir

    def _source_path(self, entry: StaticDistribution) -> Path | None:
        if not entry.source:
            return None
        path = Path(entry.source)
        return path if path.is_absolute() else self.base_dir / path
