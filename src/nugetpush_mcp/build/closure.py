"""Dependency closure of a pack request."""

from __future__ import annotations

from collections import deque
from collections.abc import Collection, Iterable

from ..solution.models import ClassLibrary


def is_up_to_date_as_dependency(project: ClassLibrary) -> bool:
    """Whether the project's declared version already exists on a feed.

    Such a project can be consumed by its dependees without being packed.
    """
    version = project.package_version
    if version is None:
        return False
    return version == project.known_latest_local_version or version == project.known_latest_remote_version


def get_projects_to_build(requested: Iterable[ClassLibrary]) -> list[ClassLibrary]:
    """Expand requested projects with the dependencies that must be packed first.

    Breadth-first; each project is visited once. Dependencies that are up
    to date as a dependency are not added, and projects whose dependencies
    could not be resolved are not expanded.
    """
    result: list[ClassLibrary] = []
    seen: set[ClassLibrary] = set()
    queue: deque[ClassLibrary] = deque()

    for project in requested:
        if project not in seen:
            seen.add(project)
            result.append(project)
            queue.append(project)

    while queue:
        project = queue.popleft()
        if project.dependencies is None:
            continue
        for dependency in sorted(project.dependencies, key=lambda p: p.name):
            if dependency in seen or is_up_to_date_as_dependency(dependency):
                continue
            seen.add(dependency)
            result.append(dependency)
            queue.append(dependency)

    return result


def collect_dependees(project: ClassLibrary) -> list[ClassLibrary]:
    """All projects that depend on ``project``, directly or transitively.

    Iterative traversal; safe on cyclic graphs. ``project`` itself is only
    included when it sits on a cycle.
    """
    result: list[ClassLibrary] = []
    seen: set[ClassLibrary] = set()
    stack = list(project.dependees)

    while stack:
        dependee = stack.pop()
        if dependee in seen:
            continue
        seen.add(dependee)
        result.append(dependee)
        stack.extend(d for d in dependee.dependees if d not in seen)

    return result


def blocking_dependencies(
    project: ClassLibrary, pending: Collection[ClassLibrary] = ()
) -> list[ClassLibrary]:
    """Dependencies of ``project`` that are not up to date as a dependency or still ``pending``."""
    if project.dependencies is None:
        return []
    return sorted(
        (d for d in project.dependencies if d in pending or not is_up_to_date_as_dependency(d)),
        key=lambda p: p.name,
    )
