"""Tests for the MCP surface: tools, resources and notifications."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from nugetpush_mcp import server
from nugetpush_mcp.resources import (
    DIAGNOSTICS_URI,
    PROJECTS_URI,
    SOLUTION_URI,
    ResourceNotifier,
)
from nugetpush_mcp.utils.config import Settings


@pytest.fixture
def mcp(tmp_path, monkeypatch):
    """Server with a fresh controller."""
    monkeypatch.setattr(server, "_controller", None)
    return server.create_server(Settings(sources_file=tmp_path / "sources.json"))


class TestServerSurface:
    """Tests for registered tools, resources and prompts."""

    @pytest.mark.asyncio
    async def test_tools_registered(self, mcp):
        """Test every command is exposed as a tool."""
        names = {tool.name for tool in await mcp.list_tools()}
        assert {
            "open_solution",
            "close_solution",
            "list_projects",
            "get_project",
            "pack_projects",
            "push_projects",
            "pack_and_push_projects",
            "refresh_versions",
            "cancel_work",
            "get_work_state",
            "set_api_key",
        } <= names

    @pytest.mark.asyncio
    async def test_resources_have_mime_types(self, mcp):
        """Test resources are JSON with the nugetpush:// scheme."""
        resources = {str(r.uri).rstrip("/"): r for r in await mcp.list_resources()}
        assert set(resources) == {SOLUTION_URI, PROJECTS_URI, DIAGNOSTICS_URI}
        assert all(r.mimeType == "application/json" for r in resources.values())

    @pytest.mark.asyncio
    async def test_solution_resource_without_solution(self, mcp):
        """Test the solution resource reports the idle controller."""
        contents = list(await mcp.read_resource(SOLUTION_URI))
        data = json.loads(contents[0].content)
        assert data["state"] == "idle"
        assert data["solution"] is None
        assert data["availableActions"] == {
            "packAll": False,
            "pushAll": False,
            "packAndPushAll": False,
        }

    @pytest.mark.asyncio
    async def test_publish_prompt(self, mcp):
        """Test the workflow prompt is registered."""
        prompts = {p.name for p in await mcp.list_prompts()}
        assert "publish" in prompts

    def test_controller_is_shared(self, mcp):
        """Test create_server and get_controller use one controller."""
        assert server.get_controller() is server.get_controller()


class TestResourceNotifications:
    """Tests for resource update notifications."""

    @pytest.mark.asyncio
    async def test_notify_with_session(self):
        """Test notify sends one resources/updated per URI."""
        session = MagicMock()
        session.send_resource_updated = AsyncMock()
        notifier = ResourceNotifier()
        notifier.bind(session)

        await notifier.notify(SOLUTION_URI, PROJECTS_URI)

        assert session.send_resource_updated.await_count == 2
        sent = [str(c.args[0]).rstrip("/") for c in session.send_resource_updated.await_args_list]
        assert sent == [SOLUTION_URI, PROJECTS_URI]

    @pytest.mark.asyncio
    async def test_notify_without_session(self):
        """Test notify does nothing before a client session is bound."""
        notifier = ResourceNotifier()
        notifier.bind(None)
        await notifier.notify(SOLUTION_URI)

    @pytest.mark.asyncio
    async def test_notify_failure_ignored(self):
        """Test notification errors do not propagate."""
        session = MagicMock()
        session.send_resource_updated = AsyncMock(side_effect=RuntimeError("closed"))
        notifier = ResourceNotifier()
        notifier.bind(session)

        await notifier.notify(SOLUTION_URI)

    @pytest.mark.asyncio
    async def test_projects_changed_schedules_notification(self, make_project):
        """Test the project listener notifies projects and diagnostics."""
        session = MagicMock()
        session.send_resource_updated = AsyncMock()
        notifier = ResourceNotifier()
        notifier.bind(session)

        notifier.projects_changed([make_project("A")])
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        sent = [str(c.args[0]).rstrip("/") for c in session.send_resource_updated.await_args_list]
        assert sent == [PROJECTS_URI, DIAGNOSTICS_URI]

    def test_projects_changed_without_loop(self, make_project):
        """Test the listener is safe to call outside an event loop."""
        notifier = ResourceNotifier()
        notifier.bind(MagicMock())
        notifier.projects_changed([make_project("A")])
