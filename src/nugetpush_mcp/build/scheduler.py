"""Layered pack scheduler.

Drains the dependency closure of a pack request wave by wave:

    closure ──▶ idle ──▶ packable wave ──▶ WORKING ──▶ pack ──▶ PACKED
                  ▲                                        │
                  └──────── next wave ◀────────────────────┤
                                                           └──▶ PACK_ERROR
                                                                 └─▶ dependees: DEPENDENCY_ERROR

A project joins a wave once every dependency is up to date as a
dependency and no dependency is still waiting in this run. A freshly
packed dependency qualifies as soon as its package lands in the local
feed; a forced dependency that was already published still holds its
dependees back until its own pack has finished.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from typing import Protocol

from ..solution.models import ClassLibrary, ProjectStatus
from ..utils.version import is_newer
from .closure import (
    blocking_dependencies,
    collect_dependees,
    get_projects_to_build,
)
from .state import BuildResult, PackRunResult
from .status import can_pack, recalculate_status

logger = logging.getLogger(__name__)

StatusListener = Callable[[list[ClassLibrary]], None]


class Packer(Protocol):
    """Produces the package of a single project."""

    async def pack(self, project: ClassLibrary) -> bool: ...


class LocalPackageMover(Protocol):
    """Moves a freshly built package into the local feed."""

    def move_local_package(self, project: ClassLibrary, overwrite: bool) -> None: ...


class PackScheduler:
    """Packs a set of projects and their stale dependencies in dependency order."""

    def __init__(
        self,
        packer: Packer,
        local_feed: LocalPackageMover,
        max_parallel_packs: int = 1,
    ):
        """Initialize the scheduler.

        Args:
            packer: Pack collaborator (``dotnet pack``)
            local_feed: Local feed receiving the built packages
            max_parallel_packs: Upper bound of concurrent packs within a wave
        """
        self._packer = packer
        self._local_feed = local_feed
        self._max_parallel_packs = max(1, max_parallel_packs)
        self._listeners: list[StatusListener] = []

    def on_status_change(self, listener: StatusListener) -> None:
        """Register a listener called with the projects whose status changed."""
        self._listeners.append(listener)

    def _publish(self, projects: list[ClassLibrary]) -> None:
        if not projects:
            return
        for listener in self._listeners:
            try:
                listener(projects)
            except Exception:
                logger.exception("Status listener error")

    @staticmethod
    def _set_status(project: ClassLibrary, status: ProjectStatus) -> None:
        if project.status != status:
            logger.debug(f"{project.name}: {project.status.value} -> {status.value}")
            project.status = status

    async def run(
        self,
        requested: Iterable[ClassLibrary],
        uncommitted_changes: Iterable[str],
        force: bool,
    ) -> PackRunResult:
        """Pack the requested projects and whatever they need.

        Args:
            requested: Projects explicitly asked for
            uncommitted_changes: Paths reported by ``git status``
            force: Pack requested projects even if their status does not
                call for it; dependencies pulled in by the closure are
                never forced

        Returns:
            One result per project that was considered

        Raises:
            asyncio.CancelledError: If the work session is cancelled
        """
        requested = list(requested)
        requested_set = set(requested)
        changes = list(uncommitted_changes)
        result = PackRunResult()

        closure = get_projects_to_build(requested)
        idle: list[ClassLibrary] = []
        for project in closure:
            if can_pack(project, changes, force and project in requested_set):
                idle.append(project)
            elif project in requested_set:
                status = recalculate_status(project)
                project.add_diagnostic(
                    f"Project cannot be packed (status: {status.value}, "
                    "or it has uncommitted changes)."
                )
                logger.info(f"Skipping {project.name}: not packable")

        for project in idle:
            self._set_status(project, ProjectStatus.IDLE)
        self._publish(list(idle))
        logger.info(
            f"Pack run: {len(requested)} requested, {len(closure)} in closure, {len(idle)} packable"
        )

        while idle:
            packable = [p for p in idle if not blocking_dependencies(p, idle)]

            if not packable:
                # No progress possible: unsatisfiable or cyclic dependencies
                for project in idle:
                    missing = blocking_dependencies(project, idle)
                    self._set_status(project, ProjectStatus.DEPENDENCY_ERROR)
                    project.add_diagnostic(
                        "Dependencies could not be packed: "
                        + ", ".join(d.name for d in missing)
                    )
                    result.results.append(
                        BuildResult(project, failed=True, missing_dependencies=missing)
                    )
                logger.warning(
                    f"Dependency deadlock: {', '.join(p.name for p in idle)} cannot be packed"
                )
                self._publish(list(idle))
                idle.clear()
                break

            result.waves += 1
            for project in packable:
                idle.remove(project)
                self._set_status(project, ProjectStatus.WORKING)
            self._publish(packable)
            logger.info(f"Wave {result.waves}: packing {', '.join(p.name for p in packable)}")

            outcomes = await self._pack_wave(packable)

            changed: list[ClassLibrary] = []
            for project, succeeded in zip(packable, outcomes):
                if succeeded:
                    succeeded = self._move_to_local_feed(
                        project, overwrite=force and project in requested_set
                    )

                changed.append(project)
                if succeeded:
                    if is_newer(project.package_version, project.known_latest_local_version):
                        project.known_latest_local_version = project.package_version
                    self._set_status(project, ProjectStatus.PACKED)
                    result.results.append(BuildResult(project, failed=False))
                    continue

                self._set_status(project, ProjectStatus.PACK_ERROR)
                result.results.append(BuildResult(project, failed=True))
                for dependee in collect_dependees(project):
                    if dependee in idle:
                        idle.remove(dependee)
                        self._set_status(dependee, ProjectStatus.DEPENDENCY_ERROR)
                        dependee.add_diagnostic(f"Dependency {project.name} failed to pack.")
                        result.results.append(
                            BuildResult(dependee, failed=True, missing_dependencies=[project])
                        )
                        changed.append(dependee)

            self._publish(changed)

        return result

    async def _pack_wave(self, projects: list[ClassLibrary]) -> list[bool]:
        semaphore = asyncio.Semaphore(self._max_parallel_packs)

        async def pack_one(project: ClassLibrary) -> bool:
            async with semaphore:
                try:
                    return await self._packer.pack(project)
                except Exception as e:
                    logger.warning(f"Pack of {project.name} failed: {e}")
                    project.add_diagnostic(f"Pack failed: {e}")
                    return False

        return list(await asyncio.gather(*(pack_one(p) for p in projects)))

    def _move_to_local_feed(self, project: ClassLibrary, overwrite: bool) -> bool:
        try:
            self._local_feed.move_local_package(project, overwrite=overwrite)
            return True
        except Exception as e:
            logger.warning(f"Moving package of {project.name} to the local feed failed: {e}")
            project.add_diagnostic(f"Could not move package to local feed: {e}")
            return False
