"""Project status computation and pack/push eligibility.

Status is derived from the declared package version and what is known
about the local and remote feeds. Rules are evaluated in order and the
first match wins.
"""

from __future__ import annotations

import os
from collections.abc import Iterable

from ..solution.models import ClassLibrary, ProjectStatus, RemotePackageVersionRequestState
from ..utils.version import is_newer, is_older

# Shared build configuration files; an uncommitted change to any of them
# affects every project in the repository.
SHARED_BUILD_FILES: frozenset[str] = frozenset(
    {
        "directory.build.props",
        "directory.build.targets",
        "directory.packages.props",
    }
)

# Remote states for which the latest remote version is considered known
_REMOTE_KNOWN_STATES = (
    RemotePackageVersionRequestState.LOADED,
    RemotePackageVersionRequestState.INDEXING,
)

_PACKABLE_STATUSES: frozenset[ProjectStatus] = frozenset(
    {ProjectStatus.READY_TO_PACK, ProjectStatus.PENDING}
)

_FORCE_PACKABLE_STATUSES: frozenset[ProjectStatus] = frozenset(
    {
        ProjectStatus.UP_TO_DATE,
        ProjectStatus.READY_TO_PUSH,
        ProjectStatus.PACKED,
        ProjectStatus.PUSHED,
        ProjectStatus.TEST_FAILED,
        ProjectStatus.PUSH_ERROR,
        ProjectStatus.PACK_ERROR,
    }
)


def recalculate_status(project: ClassLibrary) -> ProjectStatus:
    """Compute the status of a project from its version knowledge.

    Pure function of the project's fields; calling it twice on unchanged
    input returns the same value.
    """
    version = project.package_version
    local = project.known_latest_local_version
    remote = project.known_latest_remote_version

    if version is None:
        return ProjectStatus.NOT_READY

    if project.dependencies is None:
        return ProjectStatus.DEPENDENCY_ERROR

    if is_older(version, local) or is_older(version, remote):
        return ProjectStatus.OUTDATED

    if project.misconfigured_test_projects:
        return ProjectStatus.MISCONFIGURED

    if project.remote_state not in _REMOTE_KNOWN_STATES:
        if local is not None and version == local:
            return _dirty_or(project, ProjectStatus.UP_TO_DATE)
        return _dirty_or(project, ProjectStatus.PENDING)

    same_as_local = local is not None and version == local
    same_as_remote = remote is not None and version == remote
    if same_as_local and same_as_remote:
        return _dirty_or(project, ProjectStatus.UP_TO_DATE)

    newer_than_remote = is_newer(version, remote)
    if newer_than_remote and is_newer(version, local):
        return _dirty_or(project, ProjectStatus.PENDING)
    if newer_than_remote:
        return ProjectStatus.READY_TO_PUSH
    return _dirty_or(project, ProjectStatus.READY_TO_PACK)


def _dirty_or(project: ClassLibrary, status: ProjectStatus) -> ProjectStatus:
    return ProjectStatus.DIRTY if project.is_dirty else status


def status_can_pack(status: ProjectStatus, force: bool) -> bool:
    """Whether a project in the given status may be packed."""
    if status in _PACKABLE_STATUSES:
        return True
    if status in _FORCE_PACKABLE_STATUSES:
        return force
    return False


def is_path_under(path: str, directory: str) -> bool:
    """Whether a repository-relative or absolute path lies under ``directory``."""
    normalized_path = path.replace("\\", "/").rstrip("/").lower()
    normalized_dir = directory.replace("\\", "/").rstrip("/").lower()
    if not normalized_dir:
        return False
    return normalized_path == normalized_dir or normalized_path.startswith(normalized_dir + "/")


def touches_shared_build_files(uncommitted_changes: Iterable[str]) -> bool:
    """Whether any uncommitted change is a shared build configuration file."""
    for change in uncommitted_changes:
        file_name = change.replace("\\", "/").rsplit("/", 1)[-1].lower()
        if file_name in SHARED_BUILD_FILES:
            return True
    return False


def has_uncommitted_changes(project: ClassLibrary, uncommitted_changes: Iterable[str]) -> bool:
    """Whether any uncommitted change lies in the project directory.

    ``uncommitted_changes`` holds absolute paths or paths relative to the
    repository root, as reported by ``git status``.
    """
    directory = project.project_directory
    for change in uncommitted_changes:
        if project.repository_root and not os.path.isabs(change):
            change = os.path.join(project.repository_root, change)
        if is_path_under(change, directory):
            return True
    return False


def can_pack(
    project: ClassLibrary,
    uncommitted_changes: Iterable[str],
    force: bool,
) -> bool:
    """Whether a project may be packed now.

    Uncommitted changes to the project directory or to shared build
    configuration always block packing, whatever the status.
    """
    changes = list(uncommitted_changes)
    if touches_shared_build_files(changes):
        return False
    if has_uncommitted_changes(project, changes):
        return False
    return status_can_pack(recalculate_status(project), force)


def can_push(project: ClassLibrary, force: bool) -> bool:
    """Whether a project's package may be pushed to the remote feed."""
    if project.remote_state != RemotePackageVersionRequestState.LOADED:
        return False

    if force:
        return project.package_version is not None and project.known_latest_local_version is not None

    remote = project.known_latest_remote_version
    return remote is not None and is_newer(project.package_version, remote)
