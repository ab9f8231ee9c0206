"""Utility modules for nugetpush-mcp."""

from .config import Settings
from .project import configure_solution_locator, get_solution_path, parse_file_uri
from .version import NuGetVersion, VersionRange, is_newer, is_older

__all__ = [
    "get_solution_path",
    "configure_solution_locator",
    "parse_file_uri",
    "Settings",
    "NuGetVersion",
    "VersionRange",
    "is_newer",
    "is_older",
]
