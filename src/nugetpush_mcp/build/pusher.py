"""Push executor: uploads packed projects to the remote feed."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Protocol

from ..errors import AuthenticationError, DeviceLoginCancelled
from ..solution.models import (
    ClassLibrary,
    ProjectStatus,
    RemotePackageVersionRequestState,
    TestProject,
)
from ..utils.version import is_newer
from .state import PushResult, PushRunResult
from .status import can_push, recalculate_status

logger = logging.getLogger(__name__)


class Uploader(Protocol):
    """Uploads the package of a project to the remote feed."""

    async def upload(self, project: ClassLibrary) -> bool: ...


class TestRunner(Protocol):
    """Runs a test project."""

    async def test(self, test_project: TestProject) -> bool: ...


class PushExecutor:
    """Pushes projects sequentially, stopping everything on an authentication failure."""

    def __init__(
        self,
        uploader: Uploader,
        test_runner: TestRunner | None = None,
        run_tests: bool = False,
    ):
        self._uploader = uploader
        self._test_runner = test_runner
        self._run_tests = run_tests and test_runner is not None
        self._listeners: list[Callable[[list[ClassLibrary]], None]] = []

    def on_status_change(self, listener: Callable[[list[ClassLibrary]], None]) -> None:
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

    async def run(self, projects: Iterable[ClassLibrary], force: bool) -> PushRunResult:
        """Push every project that can be pushed.

        Raises:
            DeviceLoginCancelled: If the user declined the device login
            asyncio.CancelledError: If the work session is cancelled
        """
        result = PushRunResult()
        queue: list[ClassLibrary] = []
        for project in projects:
            if can_push(project, force):
                queue.append(project)
            else:
                project.add_diagnostic(
                    f"Project cannot be pushed (status: {recalculate_status(project).value})."
                )

        for project in queue:
            project.status = ProjectStatus.WORKING
        self._publish(list(queue))

        for index, project in enumerate(queue):
            if self._run_tests and not await self._run_project_tests(project):
                project.status = ProjectStatus.TEST_FAILED
                result.results.append(
                    PushResult(project, success=False, message="Tests failed")
                )
                self._publish([project])
                continue

            logger.info(f"Pushing {project.package_id} {project.package_version}")
            try:
                pushed = await self._uploader.upload(project)
            except DeviceLoginCancelled:
                raise
            except AuthenticationError as e:
                logger.warning(f"Authentication failed while pushing {project.name}: {e}")
                project.status = ProjectStatus.PUSH_ERROR
                project.add_diagnostic(f"Authentication failed: {e}")
                result.authentication_failed = True
                result.results.append(PushResult(project, success=False, message=str(e)))
                self._abandon(queue[index + 1 :], result)
                self._publish(queue[index:])
                break
            except Exception as e:
                logger.warning(f"Push of {project.name} failed: {e}")
                project.add_diagnostic(f"Push failed: {e}")
                pushed = False

            if pushed:
                if is_newer(project.package_version, project.known_latest_remote_version):
                    project.known_latest_remote_version = project.package_version
                project.remote_state = RemotePackageVersionRequestState.INDEXING
                project.status = ProjectStatus.PUSHED
            else:
                project.status = ProjectStatus.PUSH_ERROR
            result.results.append(PushResult(project, success=pushed))
            self._publish([project])

        return result

    def _abandon(self, projects: list[ClassLibrary], result: PushRunResult) -> None:
        for project in projects:
            project.status = recalculate_status(project)
            project.add_diagnostic("Push skipped: authentication with the remote feed failed.")
            result.results.append(
                PushResult(project, success=False, skipped=True, message="Authentication failed")
            )

    async def _run_project_tests(self, project: ClassLibrary) -> bool:
        assert self._test_runner is not None
        for test_project in sorted(project.test_projects, key=lambda t: t.name):
            logger.info(f"Running tests of {test_project.name} before pushing {project.name}")
            try:
                passed = await self._test_runner.test(test_project)
            except Exception as e:
                logger.warning(f"Test run of {test_project.name} failed: {e}")
                passed = False
            if not passed:
                project.add_diagnostic(f"Test project {test_project.name} failed.")
                return False
        return True
