"""Package index client for the MetaCPAN API."""

from __future__ import annotations

import json
import logging
import shutil
import ssl
import urllib.error
import urllib.parse
import urllib.request
from pathlib import Path
from typing import Any

from dependents_tester.errors import PackageIndexError
from dependents_tester.filesystem import ArchiveError, RealFileSystem
from dependents_tester.protocols import FileSystem, OutputSink
from dependents_tester.settings import DEFAULT_INDEX_URL
from dependents_tester.sinks import NullSink
from dependents_tester.types import Distribution, Phase, PrereqRequirement

logger = logging.getLogger(__name__)

# MetaCPAN dependency phases folded into our two lifecycle phases
PHASE_MAP = {
    "configure": Phase.CONFIGURE,
    "build": Phase.BUILD_TEST,
    "test": Phase.BUILD_TEST,
    "runtime": Phase.BUILD_TEST,
}

# Page size for reverse dependency queries
PAGE_SIZE = 500

REQUEST_TIMEOUT = 30


class MetaCPANIndex:
    """Queries MetaCPAN for distributions and their prerequisites."""

    def __init__(
        self,
        base_url: str,
        filesystem: FileSystem,
        sink: OutputSink,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: API root, e.g. https://fastapi.metacpan.org/v1.
            filesystem: Filesystem abstraction used to unpack sources.
            sink: Destination for download chatter.

        Note:
            Prefer using factory method `create()` for construction.
        """
        self.base_url = base_url.rstrip("/")
        self.fs = filesystem
        self.sink = sink

    @classmethod
    def create(
        cls,
        base_url: str = DEFAULT_INDEX_URL,
        filesystem: FileSystem | None = None,
        sink: OutputSink | None = None,
    ) -> MetaCPANIndex:
        """Create a client with default collaborators.

        Args:
            base_url: API root. Defaults to the public MetaCPAN API.
            filesystem: Optional filesystem abstraction.
            sink: Optional output sink.

        Returns:
            Configured MetaCPANIndex.
        """
        return cls(base_url, filesystem or RealFileSystem(), sink or NullSink())

    def reverse_dependents(self, package: str) -> list[str]:
        """List distributions depending on the distribution of `package`."""
        module = self._get_json(f"/module/{urllib.parse.quote(package)}")
        if module is None:
            logger.warning("%s is not on MetaCPAN; no dependents", package)
            return []
        distribution = module.get("distribution")
        if not distribution:
            raise PackageIndexError(f"MetaCPAN returned no distribution for {package}")

        names: list[str] = []
        page = 1
        while True:
            data = self._get_json(
                f"/reverse_dependencies/dist/{urllib.parse.quote(distribution)}",
                {"page": page, "page_size": PAGE_SIZE},
            )
            releases = (data or {}).get("data", [])
            for release in releases:
                name = release.get("distribution")
                if name and name not in names:
                    names.append(name)
            total = (data or {}).get("total", 0)
            if not releases or page * PAGE_SIZE >= total:
                break
            page += 1

        logger.debug("%d reverse dependents for %s", len(names), distribution)
        return names

    def resolve(self, name: str) -> Distribution | None:
        module = self._get_json(f"/module/{urllib.parse.quote(name)}")
        if module is None:
            return None
        if not self._is_indexed(module, name):
            logger.debug("%s is not an indexed, authorized module", name)
            return None

        distribution = module.get("distribution")
        if not distribution:
            return None
        release = self._get_json(f"/release/{urllib.parse.quote(distribution)}")
        if release is None:
            return None

        return Distribution(
            name=distribution,
            base_id=release.get("name") or module.get("release") or distribution,
            author_id=release.get("author") or module.get("author") or "UNKNOWN",
            download_url=release.get("download_url"),
            prereqs=self._parse_dependencies(release.get("dependency", [])),
        )

    def declared_prereqs(self, dist: Distribution, phase: Phase) -> list[PrereqRequirement]:
        return list(dist.prereqs.get(phase, []))

    def fetch(self, dist: Distribution, dest_dir: Path) -> Path:
        """Download and unpack the release archive."""
        if dist.source_dir is not None:
            return dist.source_dir
        if not dist.download_url:
            raise PackageIndexError(f"No download URL for {dist.base_id}")

        # Every fetch gets its own directory; workers share dest_dir
        self.fs.mkdir(dest_dir, parents=True, exist_ok=True)
        fetch_dir = self.fs.make_temp_dir(f"{dist.base_id}-", dest_dir)
        archive = fetch_dir / Path(urllib.parse.urlparse(dist.download_url).path).name
        self.sink.write(f"Fetching {dist.download_url}\n")
        try:
            with urllib.request.urlopen(
                dist.download_url, timeout=REQUEST_TIMEOUT, context=ssl.create_default_context()
            ) as response, archive.open("wb") as out:
                shutil.copyfileobj(response, out)
        except (urllib.error.URLError, OSError) as e:
            raise PackageIndexError(f"Download of {dist.base_id} failed: {e}") from e

        try:
            source_dir = self.fs.extract_archive(archive, fetch_dir / dist.base_id)
        except ArchiveError as e:
            raise PackageIndexError(str(e)) from e

        self.sink.write(f"Unpacked {dist.base_id} into {source_dir}\n")
        dist.attach_source(source_dir)
        return source_dir

    def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any | None:
        """GET an API path and decode JSON.

        Returns:
            Decoded body, or None on HTTP 404.

        Raises:
            PackageIndexError: On any other failure.
        """
        url = f"{self.base_url}{path}"
        if params:
            url = f"{url}?{urllib.parse.urlencode(params)}"
        request = urllib.request.Request(url, headers={"Accept": "application/json"})
        logger.debug("GET %s", url)
        try:
            with urllib.request.urlopen(
                request, timeout=REQUEST_TIMEOUT, context=ssl.create_default_context()
            ) as response:
                return json.loads(response.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            if e.code == 404:
                return None
            raise PackageIndexError(f"MetaCPAN query {path} failed: HTTP {e.code}") from e
        except (urllib.error.URLError, OSError, ValueError) as e:
            raise PackageIndexError(f"MetaCPAN query {path} failed: {e}") from e

    def _is_indexed(self, module_doc: dict[str, Any], name: str) -> bool:
        entries = module_doc.get("module")
        if not entries:
            # Lookups by module name only return indexed files
            return True
        return any(
            entry.get("name") == name and entry.get("indexed", True) and entry.get("authorized", True)
            for entry in entries
        )

    def _parse_dependencies(
        self, dependencies: list[dict[str, Any]]
    ) -> dict[Phase, list[PrereqRequirement]]:
        prereqs: dict[Phase, list[PrereqRequirement]] = {}
        for dep in dependencies:
            if dep.get("relationship") != "requires":
                continue
            phase = PHASE_MAP.get(dep.get("phase", ""))
            module = dep.get("module")
            if phase is None or not module:
                continue
            requirement = PrereqRequirement(module, phase, str(dep.get("version") or 0))
            bucket = prereqs.setdefault(phase, [])
            if requirement not in bucket:
                bucket.append(requirement)
        return prereqs
