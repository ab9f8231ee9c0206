"""Work session controller - owns the open solution and runs one command at a time.

State machine:
IDLE → OPENING → READY ⇄ WORKING
  ↑_______________|  (close)

Every pack, push and refresh runs as a work session: a single cancellable
asyncio task. Starting a second session while one is running raises
SessionBusyError. The remote version poller is suspended for the duration
of every session.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable, Iterable
from pathlib import Path
from typing import Any

import httpx

from ..build.closure import get_projects_to_build, is_up_to_date_as_dependency
from ..build.dotnet import DotNet
from ..build.git import Git
from ..build.policy import CommandPolicy
from ..build.pusher import PushExecutor
from ..build.scheduler import PackScheduler
from ..build.state import PackRunResult, PushRunResult
from ..build.status import can_pack, can_push, has_uncommitted_changes, recalculate_status
from ..errors import (
    DeviceLoginCancelled,
    NoSolutionError,
    NuGetPushError,
    ProcessError,
    SessionBusyError,
    SolutionError,
)
from ..feeds.context import FeedContext, Prompter
from ..feeds.local import LocalFeed
from ..feeds.remote import connect_remote_feed
from ..feeds.sources import PackageSource, RemoteFeed, load_package_sources, select_sources
from ..feeds.store import PackageSourceStore, SolutionPackageSources
from ..solution.loader import SolutionLoader, create_solution
from ..solution.models import ClassLibrary, ProjectStatus, Solution
from ..utils.config import Settings
from .poller import RemoteVersionPoller
from .prompts import EnvironmentPrompter
from .state import Command, WorkOutcome, WorkSession, WorkState, WorkSummary

logger = logging.getLogger(__name__)

ProjectsListener = Callable[[list[ClassLibrary]], None]

_UNSETTLED = (ProjectStatus.IDLE, ProjectStatus.WORKING)


def _source_name(sources: list[PackageSource], stored: str | None) -> str | None:
    """Name of the source whose location was stored in the sidecar."""
    if stored is None:
        return None
    if stored == "":
        return ""
    for source in sources:
        if os.path.normcase(source.source.rstrip("/\\")) == os.path.normcase(stored.rstrip("/\\")):
            return source.name
    logger.warning(f"Stored package source no longer configured: {stored}")
    return None


class WorkSessionController:
    """Handles user commands against the open solution."""

    def __init__(
        self,
        settings: Settings | None = None,
        prompter: Prompter | None = None,
        git: Git | None = None,
        dotnet: DotNet | None = None,
        store: PackageSourceStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        user_config: Path | None = None,
    ):
        """Initialize the controller.

        Args:
            settings: Runtime configuration (from the environment by default)
            prompter: Answers credential, API key and device login prompts
            git: Git collaborator
            dotnet: dotnet CLI collaborator; created per solution when omitted
            store: Package source selection sidecar
            transport: httpx transport for the remote feed (tests)
            user_config: User-level NuGet.Config override
        """
        self._settings = settings or Settings.from_env()
        self._prompter = prompter or EnvironmentPrompter(
            api_key=self._settings.api_key,
            username=self._settings.username,
            password=self._settings.password,
        )
        self._git = git or Git()
        self._dotnet_override = dotnet
        self._dotnet: DotNet | None = dotnet
        self._store = store or PackageSourceStore(self._settings.sources_file)
        self._transport = transport
        self._user_config = user_config

        self._state = WorkState.IDLE
        self._solution: Solution | None = None
        self._feeds: FeedContext | None = None
        self._uncommitted_changes: set[str] = set()
        self._session: WorkSession | None = None
        self._task: asyncio.Task[Any] | None = None
        self._last_summary: WorkSummary | None = None
        self._state_listeners: list[Callable[[WorkState], None]] = []
        self._project_listeners: list[ProjectsListener] = []
        self._poller = RemoteVersionPoller(
            get_projects=lambda: list(self._solution.projects) if self._solution else [],
            refresh=self._poll_refresh,
            interval=self._settings.refresh_interval,
        )

    @property
    def state(self) -> WorkState:
        return self._state

    @property
    def solution(self) -> Solution | None:
        return self._solution

    @property
    def feeds(self) -> FeedContext | None:
        return self._feeds

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def poller(self) -> RemoteVersionPoller:
        return self._poller

    @property
    def is_busy(self) -> bool:
        return self._session is not None

    @property
    def current_session(self) -> WorkSession | None:
        return self._session

    @property
    def last_summary(self) -> WorkSummary | None:
        return self._last_summary

    @property
    def uncommitted_changes(self) -> set[str]:
        return set(self._uncommitted_changes)

    def require_solution(self) -> Solution:
        if self._solution is None:
            raise NoSolutionError("No solution is open. Call open_solution first.")
        return self._solution

    def on_state_change(self, listener: Callable[[WorkState], None]) -> None:
        """Register state change listener."""
        self._state_listeners.append(listener)

    def on_projects_changed(self, listener: ProjectsListener) -> None:
        """Register a listener called with projects whose status changed."""
        self._project_listeners.append(listener)

    def _set_state(self, new_state: WorkState) -> None:
        """Update state and notify listeners."""
        old_state = self._state
        self._state = new_state
        if old_state != new_state:
            logger.info(f"State changed: {old_state.value} -> {new_state.value}")
            for listener in self._state_listeners:
                try:
                    listener(new_state)
                except Exception:
                    logger.exception("State listener error")

    def _notify_projects(self, projects: list[ClassLibrary]) -> None:
        if not projects:
            return
        for listener in self._project_listeners:
            try:
                listener(projects)
            except Exception:
                logger.exception("Project listener error")

    # ============== Dispatch ==============

    async def dispatch(
        self,
        command: Command,
        projects: list[str] | None = None,
        **kwargs: Any,
    ) -> WorkSummary:
        """Run a command.

        Args:
            command: What to do
            projects: Project names or package ids for the *_SELECTED commands
            **kwargs: ``path``, ``local_source``, ``remote_source`` for OPEN_SOLUTION

        Raises:
            SessionBusyError: If a work session is already running
            NoSolutionError: If the command needs an open solution
            SolutionError: If a named project does not exist
        """
        if command == Command.CANCEL:
            cancelled = self.cancel()
            return WorkSummary(
                command,
                WorkOutcome.SUCCESS if cancelled else WorkOutcome.FAILED,
                "Cancellation requested." if cancelled else "No work is running.",
            )
        if command == Command.OPEN_SOLUTION:
            return await self.open_solution(
                kwargs["path"], kwargs.get("local_source"), kwargs.get("remote_source")
            )
        if command == Command.CLOSE_SOLUTION:
            return await self.close_solution()
        if command == Command.REFRESH:
            return await self.refresh()

        solution = self.require_solution()
        if command.is_selected:
            if not projects:
                raise SolutionError(f"{command.value} requires at least one project")
            selected = self.find_projects(projects)
        else:
            selected = list(solution.projects)

        if command.pushes and self._feeds is not None and self._feeds.is_offline:
            raise NuGetPushError("No remote package source is selected (offline mode).")

        if command in (Command.PACK_SELECTED, Command.PACK_ALL):
            return await self.pack(selected, force=command.is_selected, command=command)
        if command in (Command.PUSH_SELECTED, Command.PUSH_ALL):
            force = command.is_selected and len(selected) == 1
            return await self.push(selected, force=force, command=command)
        return await self.pack_and_push(
            selected,
            force=command.is_selected,
            push_force=command.is_selected and len(selected) == 1,
            command=command,
        )

    def find_projects(self, names: Iterable[str]) -> list[ClassLibrary]:
        """Resolve project names or package ids.

        Raises:
            SolutionError: If a name matches no class library
        """
        solution = self.require_solution()
        result: list[ClassLibrary] = []
        for name in names:
            project = solution.find_project(name)
            if project is None:
                raise SolutionError(f"Project not found: {name}")
            if project not in result:
                result.append(project)
        return result

    # ============== Work sessions ==============

    async def _run_session(
        self,
        command: Command,
        work: Callable[[], Awaitable[tuple[str, bool, dict[str, Any]]]],
        touched: Callable[[], list[ClassLibrary]],
    ) -> WorkSummary:
        """Run ``work`` as the single cancellable work session.

        ``work`` returns (message, any_failure, details).
        """
        if self._session is not None:
            raise SessionBusyError(
                f"{self._session.command.value} is still running. Cancel it or wait."
            )

        session = WorkSession(command)
        self._session = session
        try:
            await self._poller.pause()
        except asyncio.CancelledError:
            self._finish_session(session)
            raise
        self._set_state(WorkState.OPENING if command == Command.OPEN_SOLUTION else WorkState.WORKING)

        self._task = asyncio.create_task(work())
        try:
            message, any_failure, details = await self._task
            outcome = WorkOutcome.PARTIAL_FAILURE if any_failure else WorkOutcome.SUCCESS
        except asyncio.CancelledError:
            if not session.cancel_requested:
                self._finish_session(session)
                raise
            message, outcome, details = "Work was cancelled.", WorkOutcome.CANCELLED, {}
        except DeviceLoginCancelled as e:
            message, outcome, details = f"Work was cancelled: {e}", WorkOutcome.CANCELLED, {}
        except NuGetPushError as e:
            logger.warning(f"{command.value} failed: {e}")
            message, outcome, details = str(e), WorkOutcome.FAILED, {}
        except Exception as e:
            logger.exception(f"{command.value} failed")
            message, outcome, details = f"Unexpected error: {e}", WorkOutcome.FAILED, {}

        if command == Command.OPEN_SOLUTION and outcome in (
            WorkOutcome.FAILED,
            WorkOutcome.CANCELLED,
        ):
            await self._discard_solution()

        self._finish_session(session)
        projects = touched() if self._solution is not None else []
        summary = WorkSummary(
            command=command,
            outcome=outcome,
            message=message,
            projects=projects,
            duration_ms=session.elapsed_ms,
            details=details,
        )
        self._last_summary = summary
        logger.info(f"{command.value}: {outcome.value} ({message})")
        return summary

    def _finish_session(self, session: WorkSession) -> None:
        """Settle project statuses and release the session."""
        if self._solution is not None:
            settled = []
            for project in self._solution.projects:
                if project.status in _UNSETTLED:
                    project.status = recalculate_status(project)
                    settled.append(project)
            self._notify_projects(settled or list(self._solution.projects))

        if self._session is session:
            self._session = None
            self._task = None
        self._poller.resume()
        self._set_state(WorkState.READY if self._solution is not None else WorkState.IDLE)

    def cancel(self) -> bool:
        """Cancel the running work session.

        Already finished projects keep their new state; running subprocesses
        are killed.

        Returns:
            True if a session was running
        """
        if self._session is None or self._task is None or self._task.done():
            return False
        self._session.cancel_requested = True
        self._task.cancel()
        logger.info(f"Cancelling {self._session.command.value}")
        return True

    # ============== Solution lifecycle ==============

    async def open_solution(
        self,
        path: str,
        local_source: str | None = None,
        remote_source: str | None = None,
    ) -> WorkSummary:
        """Open a solution (.sln, .slnx) or solution filter (.slnf).

        Args:
            path: Solution file
            local_source: Name of the local package source (stored choice by default)
            remote_source: Name of the remote package source; "" for offline

        Raises:
            SolutionError: If a solution is already open
            SessionBusyError: If a work session is running
        """
        if self._solution is not None:
            raise SolutionError(
                f"Solution {self._solution.name} is already open. Close it first."
            )

        async def work() -> tuple[str, bool, dict[str, Any]]:
            solution = await self._load_solution(path, local_source, remote_source)
            return (
                f"Opened {solution.name}.",
                bool(solution.invalid_projects),
                {"availableActions": self.get_available_actions()},
            )

        summary = await self._run_session(
            Command.OPEN_SOLUTION, work, lambda: list(self.require_solution().projects)
        )
        if self._solution is not None:
            self._poller.start()
        return summary

    async def _load_solution(
        self,
        path: str,
        local_name: str | None,
        remote_name: str | None,
    ) -> Solution:
        solution = create_solution(path)
        repository_root = await self._git.get_repository_root(solution.directory)
        if repository_root is not None:
            solution.repository_root = repository_root
        self._solution = solution
        self._uncommitted_changes = await self._read_uncommitted_changes()

        solution.package_sources = load_package_sources(solution.directory, self._user_config)
        stored = self._store.get(solution.path)
        if local_name is None and stored is not None:
            local_name = _source_name(solution.package_sources, stored.local_package_source)
        if remote_name is None and stored is not None:
            remote_name = _source_name(solution.package_sources, stored.remote_package_source)

        local, remote = select_sources(solution.package_sources, local_name, remote_name)
        solution.local_source = local
        solution.remote_source = remote
        self._store.save(
            SolutionPackageSources(
                solution_path=solution.path,
                local_package_source=local.source,
                remote_package_source=remote.source.source if isinstance(remote, RemoteFeed) else "",
            )
        )

        SolutionLoader().load_projects(solution)

        dotnet = self._dotnet_override or DotNet(
            CommandPolicy(workspace_root=solution.repository_root),
            pack_timeout=self._settings.pack_timeout,
            test_timeout=self._settings.test_timeout,
            push_timeout=self._settings.push_timeout,
        )
        self._dotnet = dotnet

        connection = None
        if isinstance(remote, RemoteFeed):
            connection = await connect_remote_feed(
                remote.source,
                dotnet,
                self._prompter,
                timeout=self._settings.http_timeout,
                transport=self._transport,
            )
        self._feeds = FeedContext(LocalFeed(local), connection, self._prompter)

        await self._feeds.refresh_versions(solution.projects)
        self._update_statuses(solution.projects)
        return solution

    async def _read_uncommitted_changes(self) -> set[str]:
        solution = self.require_solution()
        try:
            return await self._git.get_uncommitted_changes(solution.repository_root)
        except ProcessError as e:
            logger.warning(f"Could not read uncommitted changes: {e}")
            return set()

    def _update_statuses(self, projects: Iterable[ClassLibrary]) -> None:
        for project in projects:
            project.is_dirty = has_uncommitted_changes(project, self._uncommitted_changes)
            project.status = recalculate_status(project)

    async def _discard_solution(self) -> None:
        await self._poller.stop()
        if self._feeds is not None:
            await self._feeds.close()
        self._feeds = None
        self._solution = None
        self._uncommitted_changes = set()
        self._dotnet = self._dotnet_override

    async def close_solution(self) -> WorkSummary:
        """Close the open solution.

        Raises:
            SessionBusyError: If a work session is running
        """
        if self._session is not None:
            raise SessionBusyError("Cannot close the solution while work is running.")
        solution = self.require_solution()
        await self._discard_solution()
        self._set_state(WorkState.IDLE)
        summary = WorkSummary(Command.CLOSE_SOLUTION, WorkOutcome.SUCCESS, f"Closed {solution.name}.")
        self._last_summary = summary
        return summary

    # ============== Pack / push ==============

    def _begin_request(self, projects: list[ClassLibrary], packs: bool) -> None:
        """Clear diagnostics of every project the new operation works on."""
        targets = get_projects_to_build(projects) if packs else projects
        for project in targets:
            project.clear_diagnostics()

    async def _pack(self, projects: list[ClassLibrary], force: bool) -> PackRunResult:
        assert self._feeds is not None and self._dotnet is not None
        self._uncommitted_changes = await self._read_uncommitted_changes()
        scheduler = PackScheduler(
            self._dotnet,
            self._feeds,
            max_parallel_packs=self._settings.max_parallel_packs,
        )
        scheduler.on_status_change(self._notify_projects)
        result = await scheduler.run(projects, self._uncommitted_changes, force)
        for project in result.packed:
            self._feeds.refresh_local_version(project)
        return result

    async def _push(self, projects: list[ClassLibrary], force: bool) -> PushRunResult:
        assert self._feeds is not None
        pusher = PushExecutor(self._feeds, self._dotnet, run_tests=self._settings.run_tests)
        pusher.on_status_change(self._notify_projects)
        return await pusher.run(projects, force)

    async def pack(
        self,
        projects: list[ClassLibrary],
        force: bool,
        command: Command = Command.PACK_SELECTED,
    ) -> WorkSummary:
        """Pack projects and the stale dependencies they need."""
        self.require_solution()
        touched: list[ClassLibrary] = list(projects)

        async def work() -> tuple[str, bool, dict[str, Any]]:
            self._begin_request(projects, packs=True)
            result = await self._pack(projects, force)
            touched.extend(p for p in (r.project for r in result.results) if p not in touched)
            return "Projects have been packed.", not result.success, {"pack": result.to_dict()}

        return await self._run_session(command, work, lambda: touched)

    async def push(
        self,
        projects: list[ClassLibrary],
        force: bool,
        command: Command = Command.PUSH_SELECTED,
    ) -> WorkSummary:
        """Push projects whose packages are newer than the remote feed."""
        self.require_solution()

        async def work() -> tuple[str, bool, dict[str, Any]]:
            self._begin_request(projects, packs=False)
            result = await self._push(projects, force)
            return "Projects have been pushed.", not result.success, {"push": result.to_dict()}

        return await self._run_session(command, work, lambda: list(projects))

    async def pack_and_push(
        self,
        projects: list[ClassLibrary],
        force: bool,
        push_force: bool,
        command: Command = Command.PACK_AND_PUSH_SELECTED,
    ) -> WorkSummary:
        """Pack projects, then push everything that was packed."""
        self.require_solution()
        touched: list[ClassLibrary] = list(projects)

        async def work() -> tuple[str, bool, dict[str, Any]]:
            self._begin_request(projects, packs=True)
            pack_result = await self._pack(projects, force)
            touched.extend(p for p in (r.project for r in pack_result.results) if p not in touched)
            details: dict[str, Any] = {"pack": pack_result.to_dict()}
            push_result = await self._push(pack_result.packed, push_force)
            details["push"] = push_result.to_dict()
            failed = not pack_result.success or not push_result.success
            return "Projects have been packed and pushed.", failed, details

        return await self._run_session(command, work, lambda: touched)

    # ============== Refresh ==============

    async def refresh(self) -> WorkSummary:
        """Re-read uncommitted changes and local/remote versions of every project."""
        solution = self.require_solution()

        async def work() -> tuple[str, bool, dict[str, Any]]:
            assert self._feeds is not None
            self._uncommitted_changes = await self._read_uncommitted_changes()
            await self._feeds.refresh_versions(solution.projects, use_cache=False)
            self._update_statuses(solution.projects)
            return "Versions have been refreshed.", False, {
                "availableActions": self.get_available_actions()
            }

        return await self._run_session(Command.REFRESH, work, lambda: list(solution.projects))

    async def _poll_refresh(self, projects: list[ClassLibrary]) -> None:
        if self._feeds is None or self._session is not None:
            return
        for project in projects:
            await self._feeds.refresh_remote_version(project, use_cache=False)
        changed = []
        for project in projects:
            if project.status in _UNSETTLED:
                continue
            status = recalculate_status(project)
            if status != project.status:
                project.status = status
                changed.append(project)
        self._notify_projects(changed)

    def set_api_key(self, api_key: str | None) -> None:
        """Replace the API key used for pushing."""
        set_key = getattr(self._prompter, "set_api_key", None)
        if set_key is not None:
            set_key(api_key)
        if self._feeds is not None:
            self._feeds.set_api_key(api_key)

    # ============== Queries ==============

    def get_available_actions(self) -> dict[str, bool]:
        """Which of the "all" commands would do anything right now."""
        if self._solution is None or self._session is not None:
            return {"packAll": False, "pushAll": False, "packAndPushAll": False}
        any_pack = any_push = any_pack_and_push = False
        for project in self._solution.projects:
            pushable = can_push(project, False)
            if can_pack(project, self._uncommitted_changes, False):
                any_pack = True
                any_pack_and_push = any_pack_and_push or pushable
            any_push = any_push or pushable
        return {"packAll": any_pack, "pushAll": any_push, "packAndPushAll": any_pack_and_push}

    def to_dict(self) -> dict[str, Any]:
        """Get controller status as dictionary."""
        result: dict[str, Any] = {
            "state": self._state.value,
            "solution": self._solution.to_dict() if self._solution else None,
            "session": (
                {
                    "command": self._session.command.value,
                    "elapsedMs": round(self._session.elapsed_ms, 2),
                    "cancelRequested": self._session.cancel_requested,
                }
                if self._session
                else None
            ),
            "lastSummary": self._last_summary.to_dict() if self._last_summary else None,
            "availableActions": self.get_available_actions(),
        }
        if self._feeds is not None and self._feeds.remote is not None:
            result["remoteConnection"] = self._feeds.remote.state.value
        return result

    def diagnostics(self) -> dict[str, list[str]]:
        """Diagnostics of every project that has some."""
        if self._solution is None:
            return {}
        return {p.name: list(p.diagnostics) for p in self._solution.projects if p.diagnostics}

    def up_to_date_dependencies(self, project: ClassLibrary) -> dict[str, bool]:
        """Whether each dependency of ``project`` is up to date as a dependency."""
        return {d.name: is_up_to_date_as_dependency(d) for d in (project.dependencies or ())}

    async def shutdown(self) -> None:
        """Cancel running work and release feeds."""
        if self.cancel() and self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                logger.debug("Work cancelled on shutdown")
            except Exception as e:
                logger.debug(f"Work failed during shutdown: {e}")
        if self._solution is not None:
            await self._discard_solution()
        self._set_state(WorkState.IDLE)
