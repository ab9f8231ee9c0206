"""Tests for environment-based settings."""

from pathlib import Path

from nugetpush_mcp.utils.config import DEFAULT_SOURCES_FILE, Settings


class TestSettingsFromEnv:
    """Tests for Settings.from_env."""

    def test_defaults(self):
        """Test an empty environment gives the defaults."""
        settings = Settings.from_env({})

        assert settings.solution_path is None
        assert settings.sources_file == DEFAULT_SOURCES_FILE
        assert settings.pack_timeout == 600.0
        assert settings.test_timeout == 1200.0
        assert settings.push_timeout == 600.0
        assert settings.http_timeout == 30.0
        assert settings.max_parallel_packs == 1
        assert settings.refresh_interval == 30.0
        assert not settings.run_tests
        assert settings.api_key is None

    def test_values(self, tmp_path):
        """Test every variable is read."""
        settings = Settings.from_env(
            {
                "NUGETPUSH_SOLUTION": "/repo/App.sln",
                "NUGETPUSH_SOURCES_FILE": str(tmp_path / "sources.json"),
                "NUGETPUSH_PACK_TIMEOUT": "120",
                "NUGETPUSH_TEST_TIMEOUT": "300.5",
                "NUGETPUSH_PUSH_TIMEOUT": "60",
                "NUGETPUSH_HTTP_TIMEOUT": "5",
                "NUGETPUSH_MAX_PARALLEL_PACKS": "4",
                "NUGETPUSH_REFRESH_INTERVAL": "0",
                "NUGETPUSH_RUN_TESTS": "Yes",
                "NUGET_API_KEY": "key",
                "NUGETPUSH_USERNAME": "user",
                "NUGETPUSH_PASSWORD": "secret",
            }
        )

        assert settings.solution_path == "/repo/App.sln"
        assert settings.sources_file == Path(tmp_path / "sources.json")
        assert settings.pack_timeout == 120.0
        assert settings.test_timeout == 300.5
        assert settings.push_timeout == 60.0
        assert settings.http_timeout == 5.0
        assert settings.max_parallel_packs == 4
        assert settings.refresh_interval == 0.0
        assert settings.run_tests
        assert (settings.api_key, settings.username, settings.password) == ("key", "user", "secret")

    def test_invalid_values_fall_back(self):
        """Test unparsable numbers keep their defaults."""
        settings = Settings.from_env(
            {"NUGETPUSH_PACK_TIMEOUT": "soon", "NUGETPUSH_MAX_PARALLEL_PACKS": "many"}
        )
        assert settings.pack_timeout == 600.0
        assert settings.max_parallel_packs == 1

    def test_clamped_values(self):
        """Test parallelism is at least one and the interval never negative."""
        settings = Settings.from_env(
            {"NUGETPUSH_MAX_PARALLEL_PACKS": "0", "NUGETPUSH_REFRESH_INTERVAL": "-5"}
        )
        assert settings.max_parallel_packs == 1
        assert settings.refresh_interval == 0.0

    def test_os_environ(self, monkeypatch):
        """Test os.environ is used when no mapping is given."""
        monkeypatch.setenv("NUGETPUSH_RUN_TESTS", "1")
        assert Settings.from_env().run_tests
