"""Package index adapters."""

from __future__ import annotations

from pathlib import Path

from dependents_tester.protocols import FileSystem, OutputSink, PackageIndex
from dependents_tester.settings import METACPAN_INDEX, RunSettings

from .metacpan import MetaCPANIndex
from .static import StaticIndex

__all__ = [
    "MetaCPANIndex",
    "StaticIndex",
    "create_index",
]


def create_index(
    settings: RunSettings,
    sink: OutputSink,
    filesystem: FileSystem | None = None,
) -> PackageIndex:
    """Create the index selected by the settings.

    Args:
        settings: Run settings; `index` is "metacpan" or a YAML file path.
        sink: Destination for upstream chatter.
        filesystem: Optional filesystem abstraction.

    Returns:
        PackageIndex implementation.
    """
    if settings.index == METACPAN_INDEX:
        return MetaCPANIndex.create(settings.index_url, filesystem=filesystem, sink=sink)
    return StaticIndex.from_file(Path(settings.index), filesystem=filesystem)
