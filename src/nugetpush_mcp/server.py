"""MCP Server for packing and pushing the NuGet packages of a .NET solution."""

from __future__ import annotations

import logging

from mcp.server.fastmcp import Context, FastMCP

from .build.status import can_pack, can_push
from .resources import (
    DIAGNOSTICS_URI,
    PROJECTS_URI,
    SOLUTION_URI,
    ResourceNotifier,
    register_resources,
)
from .session import Command, WorkOutcome, WorkSessionController
from .solution.models import ProjectStatus
from .utils.config import Settings
from .utils.project import get_solution_path

logger = logging.getLogger(__name__)

# Global controller (single client mode)
_controller: WorkSessionController | None = None
_settings: Settings | None = None


def get_controller() -> WorkSessionController:
    """Get or create the work session controller.

    Note: Single client mode - one open solution at a time.
    """
    global _controller
    if _controller is None:
        _controller = WorkSessionController(_settings)
    return _controller


def create_server(settings: Settings | None = None) -> FastMCP:
    """Create and configure the MCP server.

    Args:
        settings: Runtime configuration; read from the environment when omitted.
    """
    global _settings
    _settings = settings
    mcp = FastMCP("nugetpush-mcp")
    controller = get_controller()
    notifier = ResourceNotifier()
    controller.on_projects_changed(notifier.projects_changed)

    async def notify_changed(ctx: Context) -> None:
        """Notify client that solution and project resources have changed."""
        notifier.bind(ctx.session)
        await notifier.notify(SOLUTION_URI, PROJECTS_URI, DIAGNOSTICS_URI)

    async def run_command(ctx: Context, command: Command, **kwargs) -> dict:
        notifier.bind(ctx.session)
        try:
            summary = await controller.dispatch(command, **kwargs)
            await notify_changed(ctx)
            return {"success": summary.outcome != WorkOutcome.FAILED, "data": summary.to_dict()}
        except Exception as e:
            return {"success": False, "error": str(e)}

    # ============== Solution Tools ==============

    @mcp.tool()
    async def open_solution(
        ctx: Context,
        path: str | None = None,
        local_source: str | None = None,
        remote_source: str | None = None,
    ) -> dict:
        """
        Open a .NET solution and compute the publication status of its class libraries.

        Reads every project once, connects to the package feeds and fetches the
        latest local and remote versions. Call this before any pack or push.

        SOURCE SELECTION: Package sources come from NuGet.Config. The choice is
        remembered per solution; pass names to change it. Pass remote_source=""
        to work offline (packing only).

        Args:
            path: .sln, .slnx or .slnf file, or a directory containing one.
                Defaults to the client root, NUGETPUSH_SOLUTION or --solution.
            local_source: Name of the directory package source receiving packages
            remote_source: Name of the http package source to push to ("" = offline)
        """
        try:
            solution_path = await get_solution_path(ctx, path)
            if solution_path is None:
                return {
                    "success": False,
                    "error": "No solution found. Provide a .sln/.slnx/.slnf path.",
                }
        except Exception as e:
            return {"success": False, "error": str(e)}
        return await run_command(
            ctx,
            Command.OPEN_SOLUTION,
            path=str(solution_path),
            local_source=local_source,
            remote_source=remote_source,
        )

    @mcp.tool()
    async def close_solution(ctx: Context) -> dict:
        """Close the open solution and disconnect from its package feeds."""
        return await run_command(ctx, Command.CLOSE_SOLUTION)

    @mcp.tool()
    async def list_projects(status: str | None = None) -> dict:
        """
        List the class libraries of the open solution.

        Each entry has status, declared package version, latest local and
        remote versions, dependencies and diagnostics.

        Args:
            status: Only list projects with this status (e.g. "ready_to_pack")
        """
        try:
            solution = controller.require_solution()
            projects = sorted(solution.projects, key=lambda p: p.name)
            if status:
                wanted = ProjectStatus(status.lower())
                projects = [p for p in projects if p.status == wanted]
            return {
                "success": True,
                "data": {
                    "projects": [p.to_dict() for p in projects],
                    "testProjects": sorted(t.name for t in solution.test_projects),
                    "invalidProjects": list(solution.invalid_projects),
                    "availableActions": controller.get_available_actions(),
                },
            }
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def get_project(name: str) -> dict:
        """
        Get one class library by project name or package id.

        Includes whether it can be packed or pushed right now and which of
        its dependencies are up to date in a feed.

        Args:
            name: Project name or package id (case-insensitive)
        """
        try:
            project = controller.find_projects([name])[0]
            data = project.to_dict()
            data["description"] = project.description
            data["canPack"] = can_pack(project, controller.uncommitted_changes, False)
            data["canPush"] = can_push(project, False)
            data["dependenciesUpToDate"] = controller.up_to_date_dependencies(project)
            return {"success": True, "data": data}
        except Exception as e:
            return {"success": False, "error": str(e)}

    # ============== Work Tools ==============

    @mcp.tool()
    async def pack_projects(ctx: Context, projects: list[str] | None = None) -> dict:
        """
        Pack class libraries with `dotnet pack` and copy them into the local feed.

        Dependencies that are not yet in a feed are packed first, wave by
        wave. A failed pack marks everything depending on it as
        dependency_error.

        SELECTED vs ALL: Named projects are packed even when already up to
        date (overwriting the local package). Without names, every project
        that needs packing is packed.

        Args:
            projects: Project names or package ids; omit to pack all
        """
        command = Command.PACK_SELECTED if projects else Command.PACK_ALL
        return await run_command(ctx, command, projects=projects)

    @mcp.tool()
    async def push_projects(ctx: Context, projects: list[str] | None = None) -> dict:
        """
        Push packed class libraries to the remote feed with `dotnet nuget push`.

        Only projects whose package version is newer than the remote one are
        pushed. A single named project may be pushed even if the package is
        new to the feed. An authentication failure stops all remaining pushes;
        use set_api_key and retry.

        Args:
            projects: Project names or package ids; omit to push all
        """
        command = Command.PUSH_SELECTED if projects else Command.PUSH_ALL
        return await run_command(ctx, command, projects=projects)

    @mcp.tool()
    async def pack_and_push_projects(ctx: Context, projects: list[str] | None = None) -> dict:
        """
        Pack class libraries, then push everything that was packed.

        Args:
            projects: Project names or package ids; omit for all
        """
        command = Command.PACK_AND_PUSH_SELECTED if projects else Command.PACK_AND_PUSH_ALL
        return await run_command(ctx, command, projects=projects)

    @mcp.tool()
    async def refresh_versions(ctx: Context) -> dict:
        """Re-read uncommitted changes and the latest local and remote versions."""
        return await run_command(ctx, Command.REFRESH)

    @mcp.tool()
    async def cancel_work(ctx: Context) -> dict:
        """
        Cancel the running pack/push work.

        Running dotnet processes are killed. Projects that already finished
        keep their new status.
        """
        return await run_command(ctx, Command.CANCEL)

    @mcp.tool()
    async def get_work_state() -> dict:
        """
        Get the controller state: open solution, running work, last summary.

        The user cannot see this directly - summarize important info for them.
        """
        try:
            return {"success": True, "data": controller.to_dict()}
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def set_api_key(api_key: str) -> dict:
        """
        Set the API key used to push to the remote feed.

        The key is kept in memory only. Use this after a push failed with an
        authentication error.

        Args:
            api_key: NuGet API key for the selected remote source
        """
        try:
            controller.set_api_key(api_key)
            return {"success": True, "data": {"apiKeySet": bool(api_key)}}
        except Exception as e:
            return {"success": False, "error": str(e)}

    # ============== Prompts (slash commands) ==============

    @mcp.prompt(
        name="publish",
        description="Workflow guide for packing and pushing NuGet packages",
    )
    def publish_prompt() -> list[dict]:
        """Start here when publishing packages of a solution."""
        return [
            {
                "role": "user",
                "content": """# NuGet Publish Workflow

## 1. Open the Solution
```
open_solution(path="path/to/App.sln")
```
Check `invalidProjects` and the per-project `diagnostics` and report them.

## 2. Review Statuses
```
list_projects()
```
- `ready_to_pack` / `pending`: version bumped, not packed yet
- `ready_to_push`: packed locally, newer than the remote feed
- `up_to_date`: nothing to do
- `outdated`: declared version is lower than a published one - the version must be bumped
- `misconfigured`: a test project references an incompatible version
- `dirty`: uncommitted changes - commit before packing
- `not_ready`: no explicit version (or uses project references)

## 3. Pack, then Push
```
pack_projects()                       # everything that needs packing
pack_projects(projects=["My.Lib"])    # force one project (and its stale dependencies)
push_projects()
pack_and_push_projects()
```

## 4. On Authentication Errors
```
set_api_key(api_key="...")
push_projects()
```

## 5. Long Running Work
```
get_work_state()
cancel_work()
```
""",
            }
        ]

    register_resources(mcp, controller)

    logger.info("NuGetPush MCP Server initialized")
    return mcp
