"""Solution and project model."""

from .loader import SolutionLoader, create_solution
from .models import ClassLibrary, ProjectStatus, RemotePackageVersionRequestState, Solution, TestProject

__all__ = [
    "ClassLibrary",
    "ProjectStatus",
    "RemotePackageVersionRequestState",
    "Solution",
    "SolutionLoader",
    "TestProject",
    "create_solution",
]
