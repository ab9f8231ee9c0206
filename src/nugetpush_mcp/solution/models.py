"""Solution, project and status models.

Project status lifecycle during a work session:
IDLE → WORKING → PACKED | PACK_ERROR | PUSHED | PUSH_ERROR | TEST_FAILED
  ↑                                   |
  └── recalculated from versions ─────┘
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..utils.version import NuGetVersion, VersionRange

if TYPE_CHECKING:
    from ..feeds.sources import PackageSource, RemoteFeedRef


class ProjectStatus(str, Enum):
    """Publication status of a class library."""

    UP_TO_DATE = "up_to_date"
    MISCONFIGURED = "misconfigured"
    OUTDATED = "outdated"
    NOT_READY = "not_ready"
    READY_TO_PUSH = "ready_to_push"
    READY_TO_PACK = "ready_to_pack"
    PENDING = "pending"
    PACKED = "packed"
    PUSHED = "pushed"
    TEST_FAILED = "test_failed"
    DEPENDENCY_ERROR = "dependency_error"
    PUSH_ERROR = "push_error"
    PACK_ERROR = "pack_error"
    PARSE_ERROR = "parse_error"
    IDLE = "idle"
    WORKING = "working"
    DIRTY = "dirty"


class RemotePackageVersionRequestState(str, Enum):
    """Knowledge of the latest version on the remote feed."""

    OFFLINE = "offline"
    LOADING = "loading"
    LOADED = "loaded"
    UNAUTHORIZED = "unauthorized"
    ERROR = "error"
    INDEXING = "indexing"


@dataclass(eq=False)
class TestProject:
    """Test project referencing one or more class libraries as packages."""

    __test__ = False  # not a pytest test class

    name: str
    project_path: str
    package_references: dict[str, VersionRange] = field(default_factory=dict)
    reference_errors: dict[str, str] = field(default_factory=dict)

    @property
    def project_directory(self) -> str:
        return os.path.dirname(self.project_path)

    def __str__(self) -> str:
        return self.name


@dataclass(eq=False)
class ClassLibrary:
    """A packable class library of the solution.

    Identity based equality: instances are used as graph nodes in
    ``dependencies`` and ``dependees`` sets.
    """

    name: str
    project_path: str
    package_id: str
    repository_root: str = ""
    description: str = ""
    package_output_path: str = ""
    package_version: NuGetVersion | None = None
    include_symbols: bool = False
    known_latest_local_version: NuGetVersion | None = None
    local_package_dependencies: set[str] = field(default_factory=set)
    known_latest_remote_version: NuGetVersion | None = None
    remote_state: RemotePackageVersionRequestState = RemotePackageVersionRequestState.OFFLINE
    dependencies: set[ClassLibrary] | None = field(default_factory=set)
    dependees: set[ClassLibrary] = field(default_factory=set)
    test_projects: set[TestProject] = field(default_factory=set)
    misconfigured_test_projects: set[TestProject] = field(default_factory=set)
    status: ProjectStatus = ProjectStatus.NOT_READY
    is_dirty: bool = False
    diagnostics: list[str] = field(default_factory=list)
    configuration_diagnostics: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.description:
            self.description = self.package_id
        if not self.package_output_path:
            self.package_output_path = os.path.join(self.project_directory, "bin", "Release")

    @property
    def project_directory(self) -> str:
        return os.path.dirname(self.project_path)

    @property
    def relative_project_path(self) -> str:
        """Project path relative to the repository root."""
        if not self.repository_root:
            return self.project_path
        try:
            return os.path.relpath(self.project_path, self.repository_root)
        except ValueError:
            # Different drive on Windows
            return self.project_path

    def package_file_name(self, version: NuGetVersion | None = None, symbols: bool = False) -> str:
        """File name of the package produced by ``dotnet pack``."""
        version = version or self.package_version
        if version is None:
            raise ValueError(f"Project {self.name} has no package version")
        extension = "snupkg" if symbols else "nupkg"
        return f"{self.package_id}.{version.to_normalized_string()}.{extension}"

    def add_diagnostic(self, message: str) -> None:
        """Append a message to the project's diagnostics."""
        self.diagnostics.append(message)

    def add_configuration_diagnostic(self, message: str) -> None:
        """Record a problem found while loading the solution.

        Kept across operations until the solution is reloaded.
        """
        self.configuration_diagnostics.append(message)
        self.diagnostics.append(message)

    def clear_diagnostics(self) -> None:
        self.diagnostics[:] = self.configuration_diagnostics

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "name": self.name,
            "packageId": self.package_id,
            "projectPath": self.relative_project_path,
            "status": self.status.value,
            "packageVersion": str(self.package_version) if self.package_version else None,
            "localVersion": (
                str(self.known_latest_local_version) if self.known_latest_local_version else None
            ),
            "remoteVersion": (
                str(self.known_latest_remote_version) if self.known_latest_remote_version else None
            ),
            "remoteState": self.remote_state.value,
            "dependencies": (
                sorted(d.name for d in self.dependencies) if self.dependencies is not None else None
            ),
            "dependees": sorted(d.name for d in self.dependees),
        }
        if self.is_dirty:
            result["dirty"] = True
        if self.local_package_dependencies:
            result["localPackageDependencies"] = sorted(self.local_package_dependencies)
        if self.test_projects:
            result["testProjects"] = sorted(t.name for t in self.test_projects)
        if self.misconfigured_test_projects:
            result["misconfiguredTestProjects"] = sorted(
                t.name for t in self.misconfigured_test_projects
            )
        if self.diagnostics:
            result["diagnostics"] = list(self.diagnostics)
        return result

    def __str__(self) -> str:
        return self.name


@dataclass
class Solution:
    """An opened solution (or solution filter) and its projects."""

    name: str
    path: str
    repository_root: str
    package_sources: list[PackageSource] = field(default_factory=list)
    local_source: PackageSource | None = None
    remote_source: RemoteFeedRef | None = None
    filter_path: str | None = None
    projects: list[ClassLibrary] = field(default_factory=list)
    test_projects: list[TestProject] = field(default_factory=list)
    invalid_projects: list[str] = field(default_factory=list)
    is_parsed: bool = False

    @property
    def directory(self) -> str:
        return os.path.dirname(self.path)

    def find_project(self, name: str) -> ClassLibrary | None:
        """Find a class library by project name or package id (case-insensitive)."""
        lowered = name.lower()
        for project in self.projects:
            if project.name.lower() == lowered or project.package_id.lower() == lowered:
                return project
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "path": self.path,
            "filterPath": self.filter_path,
            "repositoryRoot": self.repository_root,
            "localSource": self.local_source.to_dict() if self.local_source else None,
            "remoteSource": self.remote_source.to_dict() if self.remote_source else None,
            "packageSources": [s.to_dict() for s in self.package_sources],
            "projectCount": len(self.projects),
            "testProjectCount": len(self.test_projects),
            "invalidProjects": list(self.invalid_projects),
        }
