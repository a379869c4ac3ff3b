"""Directory and archive operations used while unpacking sources.

Indexes and the run context go through this layer to create the
installation root, copy or extract distribution sources and clean up.
"""

from __future__ import annotations

import shutil
import tarfile
import tempfile
import zipfile
from pathlib import Path


class ArchiveError(Exception):
    """Error while unpacking a source archive."""

    pass


class RealFileSystem:
    """Filesystem backed by pathlib, shutil, tempfile and the archive modules."""

    def exists(self, path: Path) -> bool:
        """Check if a path exists."""
        return path.exists()

    def is_dir(self, path: Path) -> bool:
        """Check if a path is a directory."""
        return path.is_dir()

    def mkdir(self, path: Path, parents: bool = False, exist_ok: bool = False) -> None:
        """Create a directory."""
        path.mkdir(parents=parents, exist_ok=exist_ok)

    def make_temp_dir(self, prefix: str, parent: Path | None = None) -> Path:
        """Create a fresh temporary directory, under parent if given."""
        return Path(tempfile.mkdtemp(prefix=prefix, dir=parent))

    def rmtree(self, path: Path) -> None:
        """Remove a directory tree."""
        shutil.rmtree(path)

    def copytree(self, src: Path, dst: Path) -> None:
        """Copy a directory tree."""
        shutil.copytree(src, dst)

    def extract_archive(self, archive: Path, dest_dir: Path) -> Path:
        """Extract a tarball or zip into dest_dir.

        Args:
            archive: Path to the archive.
            dest_dir: Directory to extract into.

        Returns:
            The single top-level directory of the archive, or dest_dir when
            the archive has no common top-level directory.

        Raises:
            ArchiveError: If the archive cannot be read or is unsafe.
        """
        dest_dir.mkdir(parents=True, exist_ok=True)
        try:
            if zipfile.is_zipfile(archive):
                with zipfile.ZipFile(archive) as zf:
                    names = zf.namelist()
                    for name in names:
                        if name.startswith("/") or ".." in Path(name).parts:
                            raise ArchiveError(f"Unsafe path in {archive.name}: {name}")
                    zf.extractall(dest_dir)
            else:
                with tarfile.open(archive) as tf:
                    names = tf.getnames()
                    tf.extractall(dest_dir, filter="data")
        except (tarfile.TarError, zipfile.BadZipFile, OSError) as e:
            raise ArchiveError(f"Cannot extract {archive.name}: {e}") from e

        roots = {Path(name).parts[0] for name in names if Path(name).parts}
        if len(roots) == 1:
            top = dest_dir / roots.pop()
            if top.is_dir():
                return top
        return dest_dir
