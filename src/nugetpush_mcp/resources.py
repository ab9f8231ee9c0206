"""MCP Resources for solution and project state."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any

from pydantic import AnyUrl

if TYPE_CHECKING:
    from mcp.server.fastmcp import FastMCP

    from .session import WorkSessionController
    from .solution.models import ClassLibrary

logger = logging.getLogger(__name__)

SOLUTION_URI = "nugetpush://solution"
PROJECTS_URI = "nugetpush://projects"
DIAGNOSTICS_URI = "nugetpush://diagnostics"


class ResourceNotifier:
    """Sends resources/updated notifications to the most recent client session."""

    def __init__(self) -> None:
        self._session: Any | None = None
        self._pending: set[asyncio.Task[None]] = set()

    def bind(self, session: Any | None) -> None:
        """Remember the client session of the current tool call."""
        if session is not None:
            self._session = session

    async def notify(self, *uris: str) -> None:
        if self._session is None:
            return
        for uri in uris:
            try:
                await self._session.send_resource_updated(AnyUrl(uri))
            except Exception as e:
                # Notification failure shouldn't break the tool
                logger.debug(f"Could not notify {uri}: {e}")

    def projects_changed(self, projects: list[ClassLibrary]) -> None:
        """Project listener: schedule notifications without blocking the caller."""
        if self._session is None:
            return
        try:
            task = asyncio.get_running_loop().create_task(
                self.notify(PROJECTS_URI, DIAGNOSTICS_URI)
            )
        except RuntimeError:
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)


def register_resources(server: FastMCP, controller: WorkSessionController) -> None:
    """Register MCP resources."""

    @server.resource(SOLUTION_URI, mime_type="application/json")
    async def solution_resource() -> str:
        """Open solution, selected package sources and the work state (JSON).

        Updates when: a solution is opened or closed, work starts or finishes.
        """
        return json.dumps(controller.to_dict(), indent=2)

    @server.resource(PROJECTS_URI, mime_type="application/json")
    async def projects_resource() -> str:
        """Class libraries with status, versions and dependencies (JSON).

        Updates when: a pack wave or a push completes, versions are refreshed.
        """
        solution = controller.solution
        projects = sorted(solution.projects, key=lambda p: p.name) if solution else []
        return json.dumps([p.to_dict() for p in projects], indent=2)

    @server.resource(DIAGNOSTICS_URI, mime_type="application/json")
    async def diagnostics_resource() -> str:
        """Diagnostics per project and projects that failed to load (JSON)."""
        solution = controller.solution
        result = {
            "projects": controller.diagnostics(),
            "invalidProjects": list(solution.invalid_projects) if solution else [],
        }
        return json.dumps(result, indent=2)
