"""Local (directory) package feed."""

from __future__ import annotations

import logging
import os
import shutil

from ..solution.models import ClassLibrary
from ..utils.version import NuGetVersion
from .nuspec import read_package_metadata
from .sources import PackageSource

logger = logging.getLogger(__name__)

PACKAGE_EXTENSION = ".nupkg"
SYMBOLS_SUFFIX = ".symbols.nupkg"


class LocalFeed:
    """Hierarchical directory feed: ``<root>/<id lowercase>/<Id>.<version>.nupkg``."""

    def __init__(self, source: PackageSource):
        if not source.is_local:
            raise ValueError(f"Not a local package source: {source.source}")
        self._source = source

    @property
    def source(self) -> PackageSource:
        return self._source

    @property
    def root(self) -> str:
        return self._source.source

    def package_directory(self, project: ClassLibrary) -> str:
        return os.path.join(self.root, project.package_id.lower())

    def _version_from_file_name(self, project: ClassLibrary, file_name: str) -> NuGetVersion | None:
        prefix = project.package_id.lower() + "."
        lowered = file_name.lower()
        if not lowered.startswith(prefix) or not lowered.endswith(PACKAGE_EXTENSION):
            return None
        if lowered.endswith(SYMBOLS_SUFFIX):
            return None
        return NuGetVersion.from_string(file_name[len(prefix) : -len(PACKAGE_EXTENSION)])

    def get_versions(self, project: ClassLibrary) -> list[NuGetVersion]:
        """All versions of the project's package present in the feed."""
        directory = self.package_directory(project)
        if not os.path.isdir(directory):
            return []
        versions: list[NuGetVersion] = []
        for file_name in os.listdir(directory):
            version = self._version_from_file_name(project, file_name)
            if version is not None:
                versions.append(version)
            elif file_name.lower().endswith(PACKAGE_EXTENSION):
                logger.debug(f"Ignoring unrecognized package file {file_name}")
        return versions

    def get_latest_local_version(self, project: ClassLibrary) -> NuGetVersion | None:
        """Highest version of the project's package in the feed, if any."""
        versions = self.get_versions(project)
        return max(versions) if versions else None

    def get_package_dependencies(self, project: ClassLibrary, version: NuGetVersion) -> set[str]:
        """Package ids the given version of the package depends on."""
        path = os.path.join(self.package_directory(project), project.package_file_name(version))
        return read_package_metadata(path).dependencies

    def move_local_package(self, project: ClassLibrary, overwrite: bool) -> None:
        """Copy the freshly packed package (and symbols package) into the feed.

        Raises:
            FileNotFoundError: If the expected package files were not produced
            FileExistsError: If the version already exists and ``overwrite`` is False
        """
        package_name = project.package_file_name()
        package_path = os.path.join(project.package_output_path, package_name)
        if not os.path.isfile(package_path):
            raise FileNotFoundError(f"Could not find '{package_name}'.")

        files = [(package_path, package_name)]
        if project.include_symbols:
            symbols_name = project.package_file_name(symbols=True)
            symbols_path = os.path.join(project.package_output_path, symbols_name)
            if not os.path.isfile(symbols_path):
                raise FileNotFoundError(f"Could not find '{symbols_name}'.")
            files.append((symbols_path, symbols_name))

        target_directory = self.package_directory(project)
        os.makedirs(target_directory, exist_ok=True)
        for _, file_name in files:
            target = os.path.join(target_directory, file_name)
            if os.path.exists(target) and not overwrite:
                raise FileExistsError(f"'{file_name}' already exists in {self.root}.")

        for path, file_name in files:
            shutil.copyfile(path, os.path.join(target_directory, file_name))
        logger.info(f"Copied {package_name} to {target_directory}")
