"""Tests for solution discovery utilities."""

import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from nugetpush_mcp.utils import project as project_utils
from nugetpush_mcp.utils.project import (
    configure_solution_locator,
    find_solution,
    get_config,
    get_solution_path,
    parse_file_uri,
    resolve_solution_path,
)


@pytest.fixture(autouse=True)
def reset_config(monkeypatch):
    """Each test starts from the default locator configuration."""
    monkeypatch.setattr(project_utils, "_config", project_utils.SolutionLocatorConfig())


class TestParseFileUri:
    """Tests for parse_file_uri function."""

    def test_parse_unix_path(self):
        """Test parsing Unix file:// URI."""
        result = parse_file_uri("file:///home/user/project")
        if sys.platform != "win32":
            assert result == Path("/home/user/project")

    def test_parse_url_encoded_path(self):
        """Test parsing URL-encoded paths."""
        result = parse_file_uri("file:///home/user/my%20project")
        if sys.platform != "win32":
            assert result == Path("/home/user/my project")

    def test_parse_non_file_uri_returns_none(self):
        """Test that non-file:// URIs return None."""
        assert parse_file_uri("http://example.com") is None
        assert parse_file_uri("not a uri") is None


class TestFindSolution:
    """Tests for find_solution function."""

    def test_prefers_sln(self, tmp_path):
        """Test .sln wins over .slnx and .slnf in the same directory."""
        (tmp_path / "B.slnf").touch()
        (tmp_path / "A.slnx").touch()
        (tmp_path / "Z.sln").touch()
        assert find_solution(tmp_path) == (tmp_path / "Z.sln").resolve()

    def test_searches_upward(self, tmp_path):
        """Test the nearest ancestor with a solution is used."""
        (tmp_path / "App.sln").touch()
        nested = tmp_path / "src" / "Lib"
        nested.mkdir(parents=True)
        assert find_solution(nested) == (tmp_path / "App.sln").resolve()

    def test_resolve_solution_path(self, tmp_path):
        """Test files resolve to themselves and directories to their solution."""
        solution = tmp_path / "App.slnx"
        solution.touch()
        assert resolve_solution_path(solution) == solution.resolve()
        assert resolve_solution_path(tmp_path) == solution.resolve()
        assert resolve_solution_path(tmp_path / "missing.sln") is None


class TestGetSolutionPath:
    """Tests for get_solution_path priority order."""

    @pytest.mark.asyncio
    async def test_explicit_path(self, tmp_path):
        """Test an explicit path is used before anything else."""
        (tmp_path / "App.sln").touch()
        ctx = MagicMock()
        ctx.list_roots = AsyncMock()

        assert await get_solution_path(ctx, str(tmp_path)) == (tmp_path / "App.sln").resolve()
        ctx.list_roots.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_client_roots(self, tmp_path):
        """Test the first MCP root is searched for a solution."""
        (tmp_path / "App.sln").touch()
        root = MagicMock()
        root.uri = tmp_path.as_uri()
        ctx = MagicMock()
        ctx.list_roots = AsyncMock(return_value=[root])

        assert await get_solution_path(ctx) == (tmp_path / "App.sln").resolve()

    @pytest.mark.asyncio
    async def test_roots_unsupported_falls_back(self, tmp_path):
        """Test configured solution is used when roots fail."""
        (tmp_path / "App.sln").touch()
        configure_solution_locator(explicit_solution_path=tmp_path / "App.sln")
        ctx = MagicMock()
        ctx.list_roots = AsyncMock(side_effect=RuntimeError("roots not supported"))

        assert await get_solution_path(ctx) == (tmp_path / "App.sln").resolve()

    @pytest.mark.asyncio
    async def test_startup_cwd(self, tmp_path):
        """Test the startup CWD is searched when --solution-from-cwd was given."""
        (tmp_path / "App.slnf").touch()
        configure_solution_locator(use_solution_from_cwd=True, startup_cwd=tmp_path)

        assert get_config().use_solution_from_cwd
        assert await get_solution_path() == (tmp_path / "App.slnf").resolve()

    @pytest.mark.asyncio
    async def test_nothing_found(self, tmp_path):
        """Test None when no source gives a solution."""
        configure_solution_locator(startup_cwd=tmp_path)
        assert await get_solution_path() is None
