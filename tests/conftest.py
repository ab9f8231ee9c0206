"""Pytest fixtures for nugetpush-mcp tests."""

import os
import sys

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from nugetpush_mcp.solution.models import (  # noqa: E402
    ClassLibrary,
    RemotePackageVersionRequestState,
)
from nugetpush_mcp.utils.version import NuGetVersion  # noqa: E402


def _version(value):
    if value is None or isinstance(value, NuGetVersion):
        return value
    return NuGetVersion.parse(value)


@pytest.fixture
def make_project(tmp_path):
    """Factory for class libraries living under tmp_path.

    Versions are given as strings; ``remote_state`` defaults to LOADED.
    """

    def factory(
        name,
        version="1.0.0",
        local=None,
        remote=None,
        remote_state=RemotePackageVersionRequestState.LOADED,
        dependencies=(),
        **kwargs,
    ):
        project_dir = tmp_path / "src" / name
        project = ClassLibrary(
            name=name,
            project_path=str(project_dir / f"{name}.csproj"),
            package_id=kwargs.pop("package_id", name),
            repository_root=str(tmp_path),
            package_version=_version(version),
            known_latest_local_version=_version(local),
            known_latest_remote_version=_version(remote),
            remote_state=remote_state,
            **kwargs,
        )
        for dependency in dependencies:
            link(project, dependency)
        return project

    return factory


def link(project, dependency):
    """Make ``project`` depend on ``dependency`` (both edges)."""
    if project.dependencies is None:
        project.dependencies = set()
    project.dependencies.add(dependency)
    dependency.dependees.add(project)


@pytest.fixture
def depend():
    """Link a project to a dependency."""
    return link


@pytest.fixture
def sample_nuspec():
    """Minimal nuspec with one dependency group."""
    return b"""<?xml version="1.0" encoding="utf-8"?>
<package xmlns="http://schemas.microsoft.com/packaging/2013/05/nuspec.xsd">
  <metadata>
    <id>My.Lib</id>
    <version>1.2.0</version>
    <dependencies>
      <group targetFramework="net8.0">
        <dependency id="My.Core" version="1.0.0" exclude="Build,Analyzers" />
      </group>
    </dependencies>
  </metadata>
</package>
"""


@pytest.fixture
def service_index():
    """NuGet v3 service index exposing the flat container."""
    return {
        "version": "3.0.0",
        "resources": [
            {"@id": "https://feed.test/v3/registration/", "@type": "RegistrationsBaseUrl"},
            {"@id": "https://feed.test/v3-flatcontainer/", "@type": "PackageBaseAddress/3.0.0"},
        ],
    }
