"""Tests for the YAML-backed package index."""

from __future__ import annotations

import tarfile
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import yaml

from dependents_tester.errors import AmbiguousNameError, PackageIndexError
from dependents_tester.index import StaticIndex
from dependents_tester.types import Phase, PrereqRequirement

IndexFactory = Callable[..., StaticIndex]
EntryFactory = Callable[..., dict[str, Any]]


class TestFromFile:
    """Tests for StaticIndex.from_file."""

    def test_missing_file(self, tmp_path: Path) -> None:
        """A missing index file is an index error."""
        with pytest.raises(PackageIndexError, match="not found"):
            StaticIndex.from_file(tmp_path / "index.yaml")

    def test_invalid_entry(self, tmp_path: Path) -> None:
        """Entries missing required fields are rejected."""
        path = tmp_path / "index.yaml"
        path.write_text(yaml.safe_dump({"distributions": [{"name": "Foo-Bar"}]}))

        with pytest.raises(PackageIndexError, match="Invalid"):
            StaticIndex.from_file(path)

    def test_unknown_phase(self, tmp_path: Path) -> None:
        """Only configure and build/test phases are accepted."""
        entry = {"name": "Foo-Bar", "version": "1", "author": "A", "prereqs": {"develop": {}}}
        path = tmp_path / "index.yaml"
        path.write_text(yaml.safe_dump({"distributions": [entry]}))

        with pytest.raises(PackageIndexError):
            StaticIndex.from_file(path)

    def test_empty_file(self, tmp_path: Path) -> None:
        """An empty file is an empty index."""
        path = tmp_path / "index.yaml"
        path.write_text("")

        assert StaticIndex.from_file(path).entries == []


class TestResolve:
    """Tests for name resolution."""

    def test_resolve_module(
        self, make_static_index: IndexFactory, dist_entry: EntryFactory
    ) -> None:
        """A provided module resolves to its distribution."""
        index = make_static_index(
            dist_entry(
                "Good-Dist",
                {"configure": {"ExtUtils::MakeMaker": "6.30"}, "build/test": {"Foo::Bar": 0}},
                provides=["Good::Dist", "Good::Dist::Util"],
            )
        )

        dist = index.resolve("Good::Dist::Util")

        assert dist is not None
        assert dist.name == "Good-Dist"
        assert dist.base_id == "Good-Dist-1.00"
        assert dist.author_id == "AUTHORID"
        assert index.declared_prereqs(dist, Phase.CONFIGURE) == [
            PrereqRequirement("ExtUtils::MakeMaker", Phase.CONFIGURE, "6.30")
        ]
        assert index.declared_prereqs(dist, Phase.BUILD_TEST) == [
            PrereqRequirement("Foo::Bar", Phase.BUILD_TEST, "0")
        ]

    def test_unknown_name(self, make_static_index: IndexFactory, dist_entry: EntryFactory) -> None:
        """Unknown names resolve to None."""
        index = make_static_index(dist_entry("Good-Dist"))

        assert index.resolve("Missing::Dist") is None

    def test_default_provides(self, tmp_path: Path) -> None:
        """Without provides the module named like the distribution is used."""
        path = tmp_path / "index.yaml"
        entry = {"name": "Foo-Bar", "version": "2.0", "author": "ME"}
        path.write_text(yaml.safe_dump({"distributions": [entry]}))

        dist = StaticIndex.from_file(path).resolve("Foo::Bar")

        assert dist is not None
        assert dist.base_id == "Foo-Bar-2.0"
        assert dist.download_url is None

    def test_ambiguous_name(
        self, make_static_index: IndexFactory, dist_entry: EntryFactory
    ) -> None:
        """A module provided by two distributions cannot be resolved."""
        index = make_static_index(
            dist_entry("Fork-One", provides=["Shared::Mod"]),
            dist_entry("Fork-Two", provides=["Shared::Mod"]),
        )

        with pytest.raises(AmbiguousNameError) as excinfo:
            index.resolve("Shared::Mod")

        assert excinfo.value.candidates == ["Fork-One-1.00", "Fork-Two-1.00"]


class TestReverseDependents:
    """Tests for reverse dependency listing."""

    def test_lists_dependents(
        self, make_static_index: IndexFactory, dist_entry: EntryFactory
    ) -> None:
        """Dependents on any module of the target distribution are listed."""
        index = make_static_index(
            dist_entry("Target", provides=["Target", "Target::Util"]),
            dist_entry("Uses-Main", {"build/test": {"Target": 0}}),
            dist_entry("Uses-Util", {"configure": {"Target::Util": 0}}),
            dist_entry("Unrelated", {"build/test": {"Other": 0}}),
        )

        assert index.reverse_dependents("Target") == ["Uses-Main", "Uses-Util"]

    def test_excludes_provider(
        self, make_static_index: IndexFactory, dist_entry: EntryFactory
    ) -> None:
        """The target distribution is not its own dependent."""
        index = make_static_index(
            dist_entry("Target", {"build/test": {"Target": 0}}),
        )

        assert index.reverse_dependents("Target") == []


class TestFetch:
    """Tests for source fetching."""

    def test_fetch_directory(
        self,
        make_static_index: IndexFactory,
        dist_entry: EntryFactory,
        work_dir: Path,
    ) -> None:
        """A source directory is copied and attached."""
        index = make_static_index(dist_entry("Good-Dist"))
        dist = index.resolve("Good::Dist")
        assert dist is not None

        source_dir = index.fetch(dist, work_dir)

        assert source_dir.name == "Good-Dist-1.00"
        assert source_dir.parent.parent == work_dir
        assert (source_dir / "Makefile.PL").is_file()
        assert dist.source_dir == source_dir

    def test_refetch_leaves_earlier_copy(
        self,
        make_static_index: IndexFactory,
        dist_entry: EntryFactory,
        work_dir: Path,
    ) -> None:
        """Fetching the same release twice never touches the first copy."""
        index = make_static_index(dist_entry("Good-Dist"))
        first = index.resolve("Good::Dist")
        second = index.resolve("Good::Dist")
        assert first is not None and second is not None
        first_dir = index.fetch(first, work_dir)
        (first_dir / "Makefile").write_text("generated")

        second_dir = index.fetch(second, work_dir)

        assert second_dir != first_dir
        assert (first_dir / "Makefile").read_text() == "generated"
        assert not (second_dir / "Makefile").exists()

    def test_fetch_tarball(self, tmp_path: Path, work_dir: Path) -> None:
        """A tarball is extracted to its top-level directory."""
        source = tmp_path / "Good-Dist-1.00"
        source.mkdir()
        (source / "Build.PL").write_text("")
        archive = tmp_path / "Good-Dist-1.00.tar.gz"
        with tarfile.open(archive, "w:gz") as tf:
            tf.add(source, arcname="Good-Dist-1.00")
        path = tmp_path / "index.yaml"
        entry = {
            "name": "Good-Dist",
            "version": "1.00",
            "author": "AUTHORID",
            "source": archive.name,
        }
        path.write_text(yaml.safe_dump({"distributions": [entry]}))
        index = StaticIndex.from_file(path)
        dist = index.resolve("Good::Dist")
        assert dist is not None

        source_dir = index.fetch(dist, work_dir)

        assert (source_dir / "Build.PL").is_file()
        assert source_dir.name == "Good-Dist-1.00"

    def test_fetch_already_attached(
        self,
        make_static_index: IndexFactory,
        dist_entry: EntryFactory,
        work_dir: Path,
        tmp_path: Path,
    ) -> None:
        """An attached source is returned without copying."""
        index = make_static_index(dist_entry("Good-Dist"))
        dist = index.resolve("Good::Dist")
        assert dist is not None
        dist.attach_source(tmp_path)

        assert index.fetch(dist, work_dir) == tmp_path
        assert list(work_dir.iterdir()) == []

    def test_fetch_without_source(self, tmp_path: Path, work_dir: Path) -> None:
        """Entries without a source cannot be fetched."""
        path = tmp_path / "index.yaml"
        entry = {"name": "Foo-Bar", "version": "1", "author": "A"}
        path.write_text(yaml.safe_dump({"distributions": [entry]}))
        index = StaticIndex.from_file(path)
        dist = index.resolve("Foo::Bar")
        assert dist is not None

        with pytest.raises(PackageIndexError, match="No source"):
            index.fetch(dist, work_dir)
