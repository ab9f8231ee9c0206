"""Background refresh of remote versions that are still being indexed or failed to load."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from ..solution.models import ClassLibrary, ProjectStatus, RemotePackageVersionRequestState

logger = logging.getLogger(__name__)

REFRESHED_STATES = (
    RemotePackageVersionRequestState.INDEXING,
    RemotePackageVersionRequestState.ERROR,
    RemotePackageVersionRequestState.LOADING,
)


def needs_refresh(project: ClassLibrary) -> bool:
    """Whether the poller should query the remote feed for this project."""
    return (
        project.package_version is not None
        and project.remote_state in REFRESHED_STATES
        and project.status not in (ProjectStatus.IDLE, ProjectStatus.WORKING)
    )


class RemoteVersionPoller:
    """Periodically refreshes remote version knowledge outside of work sessions."""

    def __init__(
        self,
        get_projects: Callable[[], list[ClassLibrary]],
        refresh: Callable[[list[ClassLibrary]], Awaitable[None]],
        interval: float = 30.0,
    ):
        """Initialize the poller.

        Args:
            get_projects: Returns the projects of the open solution
            refresh: Refreshes the given projects (uncached) and publishes changes
            interval: Seconds between refreshes
        """
        self._get_projects = get_projects
        self._refresh = refresh
        self._interval = interval
        self._task: asyncio.Task[None] | None = None
        self._suspended = 0
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_suspended(self) -> bool:
        return self._suspended > 0

    def start(self) -> None:
        if self.is_running or self._interval <= 0:
            return
        self._task = asyncio.create_task(self._run())
        logger.debug(f"Remote version poller started ({self._interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.debug("Remote version poller stopped")

    def suspend(self) -> None:
        """Pause refreshing, e.g. for the duration of a work session."""
        self._suspended += 1

    async def pause(self) -> None:
        """Suspend and wait for a refresh that is already running to finish."""
        self.suspend()
        async with self._lock:
            pass

    def resume(self) -> None:
        if self._suspended > 0:
            self._suspended -= 1

    async def poll_once(self) -> int:
        """Refresh every project that needs it. Returns the number refreshed."""
        async with self._lock:
            if self.is_suspended:
                return 0
            projects = [p for p in self._get_projects() if needs_refresh(p)]
            if not projects:
                return 0
            logger.debug(f"Refreshing remote versions of {len(projects)} projects")
            await self._refresh(projects)
            return len(projects)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Remote version refresh failed")
