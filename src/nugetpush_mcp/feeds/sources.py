"""Package sources and NuGet.Config discovery."""

from __future__ import annotations

import logging
import os
import sys
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Union
from urllib.parse import urlparse

from ..errors import PackageSourceError

logger = logging.getLogger(__name__)

NUGET_ORG_SOURCE = "https://api.nuget.org/v3/index.json"
NUGET_CONFIG_NAME = "nuget.config"


@dataclass(frozen=True)
class PackageSource:
    """A named NuGet feed from NuGet.Config."""

    name: str
    source: str

    @property
    def is_local(self) -> bool:
        """Whether the source is a directory rather than an http(s) feed."""
        return urlparse(self.source).scheme not in ("http", "https")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {"name": self.name, "source": self.source, "isLocal": self.is_local}


@dataclass(frozen=True)
class OfflineFeed:
    """No remote feed selected; pushing is unavailable."""

    @property
    def is_offline(self) -> bool:
        return True

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {"kind": "offline"}


@dataclass(frozen=True)
class RemoteFeed:
    """A selected remote (http) feed."""

    source: PackageSource

    @property
    def is_offline(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {"kind": "remote", **self.source.to_dict()}


RemoteFeedRef = Union[OfflineFeed, RemoteFeed]

OFFLINE = OfflineFeed()


def _find_config_files(directory: Path) -> list[Path]:
    """NuGet.Config files in ``directory`` and its ancestors, closest first."""
    found: list[Path] = []
    for current in (directory, *directory.parents):
        try:
            entries = list(current.iterdir())
        except OSError:
            continue
        for entry in entries:
            if entry.name.lower() == NUGET_CONFIG_NAME and entry.is_file():
                found.append(entry)
    return found


def get_user_config_path() -> Path:
    """Location of the user-wide NuGet.Config."""
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / "NuGet" / "NuGet.Config"
    return Path.home() / ".nuget" / "NuGet" / "NuGet.Config"


def _read_config(path: Path) -> tuple[bool, list[PackageSource], set[str]]:
    """Parse one NuGet.Config file.

    Returns:
        Tuple of (clears inherited sources, sources, disabled source names)
    """
    try:
        root = ET.parse(path).getroot()
    except (ET.ParseError, OSError) as e:
        raise PackageSourceError(f"Invalid NuGet.Config {path}: {e}") from e

    clear = False
    sources: list[PackageSource] = []
    disabled: set[str] = set()

    package_sources = root.find("packageSources")
    if package_sources is not None:
        for element in package_sources:
            if element.tag == "clear":
                clear = True
                sources.clear()
            elif element.tag == "add":
                name = element.get("key")
                value = element.get("value")
                if not name or not value:
                    continue
                if urlparse(value).scheme not in ("http", "https") and not os.path.isabs(value):
                    value = os.path.normpath(os.path.join(path.parent, value))
                sources.append(PackageSource(name=name, source=value))

    disabled_sources = root.find("disabledPackageSources")
    if disabled_sources is not None:
        for element in disabled_sources.findall("add"):
            if (element.get("value") or "").lower() == "true" and element.get("key"):
                disabled.add(element.get("key", ""))

    return clear, sources, disabled


def load_package_sources(
    solution_directory: str,
    user_config: Path | None = None,
) -> list[PackageSource]:
    """Enabled package sources that apply to a solution directory.

    Configs closer to the solution take precedence; ``<clear/>`` drops the
    sources of configs further away.
    """
    configs = _find_config_files(Path(solution_directory).resolve())
    user_config = user_config if user_config is not None else get_user_config_path()
    if user_config.is_file() and user_config not in configs:
        configs.append(user_config)

    if not configs:
        logger.info("No NuGet.Config found, using nuget.org")
        return [PackageSource("nuget.org", NUGET_ORG_SOURCE)]

    merged: dict[str, PackageSource] = {}
    disabled: set[str] = set()
    # Apply from the most distant config to the closest one
    for config in reversed(configs):
        clear, sources, disabled_here = _read_config(config)
        if clear:
            merged.clear()
        for source in sources:
            merged.pop(source.name, None)
            merged[source.name] = source
        disabled |= disabled_here
        logger.debug(f"Read {len(sources)} package sources from {config}")

    return [s for name, s in merged.items() if name not in disabled]


def select_sources(
    sources: list[PackageSource],
    local_name: str | None = None,
    remote_name: str | None = None,
) -> tuple[PackageSource, RemoteFeedRef]:
    """Pick the local and remote sources for a solution.

    Without explicit names, the first local source and the first http
    source are used; a missing http source means offline mode. An empty
    ``remote_name`` selects offline mode explicitly.

    Raises:
        PackageSourceError: If no usable local source exists or a name is unknown
    """
    by_name = {s.name.lower(): s for s in sources}

    if local_name:
        local = by_name.get(local_name.lower())
        if local is None or not local.is_local:
            raise PackageSourceError(f"Local package source not found: {local_name}")
    else:
        local = next((s for s in sources if s.is_local), None)
        if local is None:
            raise PackageSourceError(
                "No local package source configured. Add a directory source to NuGet.Config."
            )

    remote: RemoteFeedRef = OFFLINE
    if remote_name:
        found = by_name.get(remote_name.lower())
        if found is None or found.is_local:
            raise PackageSourceError(f"Remote package source not found: {remote_name}")
        remote = RemoteFeed(found)
    elif remote_name is None:
        first_remote = next((s for s in sources if not s.is_local), None)
        if first_remote is not None:
            remote = RemoteFeed(first_remote)

    return local, remote
