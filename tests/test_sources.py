"""Tests for package source discovery and selection."""

import os

import pytest

from nugetpush_mcp.errors import PackageSourceError
from nugetpush_mcp.feeds.sources import (
    NUGET_ORG_SOURCE,
    OFFLINE,
    PackageSource,
    RemoteFeed,
    load_package_sources,
    select_sources,
)

LOCAL = PackageSource("local", "/feeds/local")
OTHER_LOCAL = PackageSource("other", "/feeds/other")
REMOTE = PackageSource("feed", "https://feed.test/v3/index.json")
NUGET_ORG = PackageSource("nuget.org", NUGET_ORG_SOURCE)


def write_config(directory, body, name="NuGet.Config"):
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text(f'<?xml version="1.0" encoding="utf-8"?>\n<configuration>{body}</configuration>')
    return path


class TestPackageSource:
    """Tests for PackageSource."""

    def test_is_local(self):
        """Test http(s) sources are remote, everything else local."""
        assert LOCAL.is_local
        assert PackageSource("unc", "\\\\server\\packages").is_local
        assert not REMOTE.is_local
        assert not PackageSource("plain", "http://feed.test/nuget").is_local

    def test_to_dict(self):
        """Test serialization of sources and feed references."""
        assert REMOTE.to_dict() == {
            "name": "feed",
            "source": "https://feed.test/v3/index.json",
            "isLocal": False,
        }
        assert OFFLINE.to_dict() == {"kind": "offline"}
        assert RemoteFeed(REMOTE).to_dict()["kind"] == "remote"
        assert OFFLINE.is_offline
        assert not RemoteFeed(REMOTE).is_offline


class TestLoadPackageSources:
    """Tests for NuGet.Config discovery."""

    def test_reads_solution_config(self, tmp_path):
        """Test sources of a NuGet.Config beside the solution."""
        repo = tmp_path / "repo"
        write_config(
            repo,
            '<packageSources><add key="local" value="packages" />'
            '<add key="feed" value="https://feed.test/v3/index.json" /></packageSources>',
            name="nuget.config",
        )

        sources = load_package_sources(str(repo), user_config=tmp_path / "none.config")

        assert sources == [
            PackageSource("local", os.path.normpath(str(repo.resolve() / "packages"))),
            PackageSource("feed", "https://feed.test/v3/index.json"),
        ]

    def test_closer_config_wins_and_clear(self, tmp_path):
        """Test closer configs override and <clear/> drops inherited sources."""
        write_config(tmp_path / "outer", '<packageSources><add key="outer" value="https://outer.test/" /></packageSources>')
        repo = tmp_path / "outer" / "repo"
        write_config(repo, '<packageSources><clear /><add key="local" value="/feeds/local" /></packageSources>')
        write_config(
            repo / "src",
            '<packageSources><add key="feed" value="https://feed.test/v3/index.json" /></packageSources>',
        )

        sources = load_package_sources(str(repo / "src"), user_config=tmp_path / "none.config")

        assert [s.name for s in sources] == ["local", "feed"]

    def test_disabled_sources(self, tmp_path):
        """Test disabled sources are excluded."""
        write_config(
            tmp_path / "repo",
            '<packageSources><add key="local" value="/feeds/local" />'
            '<add key="feed" value="https://feed.test/" /></packageSources>'
            '<disabledPackageSources><add key="feed" value="true" /></disabledPackageSources>',
        )

        sources = load_package_sources(str(tmp_path / "repo"), user_config=tmp_path / "none.config")

        assert [s.name for s in sources] == ["local"]

    def test_user_config(self, tmp_path):
        """Test the user-wide config contributes sources."""
        user_config = write_config(
            tmp_path / "user", '<packageSources><add key="mine" value="/feeds/mine" /></packageSources>'
        )
        (tmp_path / "sln").mkdir()

        sources = load_package_sources(str(tmp_path / "sln"), user_config=user_config)

        assert [s.name for s in sources] == ["mine"]

    def test_defaults_to_nuget_org(self, tmp_path):
        """Test nuget.org is used when no config exists."""
        (tmp_path / "sln").mkdir()
        sources = load_package_sources(str(tmp_path / "sln"), user_config=tmp_path / "none.config")
        assert sources == [NUGET_ORG]

    def test_invalid_config(self, tmp_path):
        """Test malformed XML raises PackageSourceError."""
        (tmp_path / "repo").mkdir()
        (tmp_path / "repo" / "NuGet.Config").write_text("<configuration><packageSources>")

        with pytest.raises(PackageSourceError, match="Invalid NuGet.Config"):
            load_package_sources(str(tmp_path / "repo"), user_config=tmp_path / "none.config")


class TestSelectSources:
    """Tests for select_sources."""

    def test_defaults(self):
        """Test the first local and first http source are picked."""
        local, remote = select_sources([NUGET_ORG, LOCAL, OTHER_LOCAL, REMOTE])
        assert local == LOCAL
        assert remote == RemoteFeed(NUGET_ORG)

    def test_offline_without_http_source(self):
        """Test a missing http source means offline."""
        local, remote = select_sources([LOCAL])
        assert remote is OFFLINE

    def test_explicit_names(self):
        """Test names select sources case-insensitively."""
        local, remote = select_sources([NUGET_ORG, LOCAL, OTHER_LOCAL, REMOTE], "OTHER", "Feed")
        assert local == OTHER_LOCAL
        assert remote == RemoteFeed(REMOTE)

    def test_empty_remote_name_is_offline(self):
        """Test an empty remote name selects offline mode."""
        _, remote = select_sources([LOCAL, REMOTE], remote_name="")
        assert remote is OFFLINE

    def test_no_local_source(self):
        """Test a local source is required."""
        with pytest.raises(PackageSourceError, match="No local package source"):
            select_sources([REMOTE])

    def test_unknown_names(self):
        """Test unknown or wrong-kind names are rejected."""
        with pytest.raises(PackageSourceError, match="Local package source not found"):
            select_sources([LOCAL, REMOTE], local_name="feed")
        with pytest.raises(PackageSourceError, match="Remote package source not found"):
            select_sources([LOCAL, REMOTE], remote_name="missing")
