"""Command policy - path validation and dotnet/git command lines.

Security measures:
- Paths canonicalized and confined to the repository root
- Symlinks, UNC and device paths rejected
- Push sources limited to http(s) URLs or existing directories
- API keys masked in displayed command lines
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final
from urllib.parse import urlparse

PACK_ARGUMENTS: Final[tuple[str, ...]] = (
    "-nologo",
    "-c",
    "Release",
    "-verbosity:quiet",
    "/p:IsPublishBuild=true",
    "/p:GeneratePackageOnBuild=false",
)

TEST_ARGUMENTS: Final[tuple[str, ...]] = ("-nologo", "-c", "Release", "-verbosity:quiet")

PROJECT_EXTENSIONS: Final[frozenset[str]] = frozenset({".csproj", ".vbproj", ".fsproj"})

PACKAGE_EXTENSIONS: Final[frozenset[str]] = frozenset({".nupkg", ".snupkg"})

SECRET_MASK: Final[str] = "***"


@dataclass
class CommandPolicy:
    """Validates inputs of external tool invocations.

    Validates:
    - Paths are within the repository root
    - No symlinks, UNC or device paths
    - Project and package files have the expected extension
    """

    workspace_root: str
    allow_unc_paths: bool = False

    def __post_init__(self) -> None:
        """Validate and canonicalize workspace root."""
        self.workspace_root = self._validate_path(self.workspace_root, context="workspace_root")

    def _validate_path(self, path: str, context: str = "path") -> str:
        """Validate and canonicalize a path.

        Raises:
            ValueError: If path is invalid or violates the policy
        """
        if not path:
            raise ValueError(f"Empty {context}")

        # Device paths (\\?\, \\.\) start with \\ too, check them first
        if path.startswith(("\\\\.\\", "\\\\?\\")):
            raise ValueError(f"Device paths not allowed in {context}: {path}")

        if path.startswith("\\\\") and not self.allow_unc_paths:
            raise ValueError(f"UNC paths not allowed in {context}: {path}")

        abs_path = os.path.abspath(path)

        if ".." in Path(path).parts:
            resolved = os.path.normpath(abs_path)
            if resolved != abs_path:
                raise ValueError(f"Path traversal detected in {context}: {path}")

        if os.path.islink(abs_path):
            raise ValueError(f"Symlink not allowed in {context}: {path}")

        return abs_path

    def _validate_in_workspace(self, path: str, context: str) -> str:
        validated = self._validate_path(path, context=context)
        try:
            common = os.path.commonpath([validated, self.workspace_root])
        except ValueError as e:
            # Different drives on Windows
            raise ValueError(f"{context} outside repository: {path}") from e
        if common != self.workspace_root:
            raise ValueError(f"{context} outside repository: {path}")
        return validated

    def validate_project_path(self, project_path: str) -> str:
        """Validate a project file path.

        Raises:
            ValueError: If the path is outside the repository or not a project file
        """
        validated = self._validate_in_workspace(project_path, "project_path")
        if os.path.splitext(validated)[1].lower() not in PROJECT_EXTENSIONS:
            raise ValueError(f"Not a project file: {project_path}")
        return validated

    def validate_package_path(self, package_path: str) -> str:
        """Validate a package file path; packages may live outside the repository."""
        validated = self._validate_path(package_path, context="package_path")
        if os.path.splitext(validated)[1].lower() not in PACKAGE_EXTENSIONS:
            raise ValueError(f"Not a package file: {package_path}")
        return validated

    def validate_source(self, source: str) -> str:
        """Validate a push source (feed URL or local directory)."""
        if not source:
            raise ValueError("Empty package source")
        parsed = urlparse(source)
        if parsed.scheme in ("http", "https"):
            if not parsed.netloc:
                raise ValueError(f"Invalid package source URL: {source}")
            return source
        validated = self._validate_path(source, context="source")
        if not os.path.isdir(validated):
            raise ValueError(f"Package source directory does not exist: {source}")
        return validated

    def get_pack_command(self, project_path: str) -> list[str]:
        """``dotnet pack`` command line for a class library."""
        return ["dotnet", "pack", self.validate_project_path(project_path), *PACK_ARGUMENTS]

    def get_test_command(self, project_path: str) -> list[str]:
        """``dotnet test`` command line for a test project."""
        return ["dotnet", "test", self.validate_project_path(project_path), *TEST_ARGUMENTS]

    def get_push_command(self, package_path: str, api_key: str, source: str) -> list[str]:
        """``dotnet nuget push`` command line."""
        if not api_key:
            raise ValueError("API key is required to push")
        return [
            "dotnet",
            "nuget",
            "push",
            self.validate_package_path(package_path),
            "--api-key",
            api_key,
            "--source",
            self.validate_source(source),
            "--interactive",
        ]

    @staticmethod
    def get_repository_root_command() -> list[str]:
        return ["git", "rev-parse", "--show-toplevel"]

    @staticmethod
    def get_status_command() -> list[str]:
        return ["git", "status", "--porcelain", "-uno"]

    @staticmethod
    def mask_secrets(command: list[str]) -> list[str]:
        """Copy of the command line with the API key masked."""
        masked = list(command)
        for i, arg in enumerate(masked[:-1]):
            if arg in ("--api-key", "-k"):
                masked[i + 1] = SECRET_MASK
        return masked
