"""Reading package metadata from .nupkg archives."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
import zipfile
from dataclasses import dataclass, field

from ..utils.version import NuGetVersion

logger = logging.getLogger(__name__)


@dataclass
class PackageMetadata:
    """Identity and dependency ids declared by a package's nuspec."""

    id: str
    version: NuGetVersion
    dependencies: set[str] = field(default_factory=set)


def _local_name(tag: str) -> str:
    """Tag without its XML namespace."""
    return tag.rsplit("}", 1)[-1]


def parse_nuspec(content: bytes) -> PackageMetadata:
    """Parse nuspec XML.

    Raises:
        ValueError: If the nuspec lacks an id or a valid version
    """
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise ValueError(f"Invalid nuspec: {e}") from e

    metadata = next((e for e in root if _local_name(e.tag) == "metadata"), None)
    if metadata is None:
        raise ValueError("nuspec has no metadata element")

    values = {_local_name(e.tag): (e.text or "").strip() for e in metadata}
    package_id = values.get("id")
    if not package_id:
        raise ValueError("nuspec has no package id")
    version = NuGetVersion.parse(values.get("version", ""))

    dependencies: set[str] = set()
    for element in metadata.iter():
        if _local_name(element.tag) == "dependency":
            dependency_id = element.get("id")
            if dependency_id:
                dependencies.add(dependency_id)

    return PackageMetadata(id=package_id, version=version, dependencies=dependencies)


def read_package_metadata(package_path: str) -> PackageMetadata:
    """Read the nuspec stored at the root of a .nupkg.

    Raises:
        ValueError: If the archive has no valid nuspec
        OSError: If the file cannot be read
    """
    try:
        with zipfile.ZipFile(package_path) as archive:
            nuspec_name = next(
                (n for n in archive.namelist() if "/" not in n and n.lower().endswith(".nuspec")),
                None,
            )
            if nuspec_name is None:
                raise ValueError(f"No nuspec in {package_path}")
            return parse_nuspec(archive.read(nuspec_name))
    except zipfile.BadZipFile as e:
        raise ValueError(f"Not a package archive: {package_path}") from e
