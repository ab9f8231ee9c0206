"""Tests for CLI entry point - argument parsing and settings."""

from pathlib import Path

from nugetpush_mcp.__main__ import build_settings, parse_args


class TestParseArgs:
    """Tests for parse_args function."""

    def test_defaults(self):
        """Test no flags leaves every override unset."""
        args = parse_args([])
        assert args.solution is None
        assert not args.solution_from_cwd
        assert args.sources_file is None
        assert args.max_parallel_packs is None
        assert args.run_tests is None

    def test_flags(self):
        """Test every flag is parsed."""
        args = parse_args(
            [
                "--solution",
                "/repo/App.sln",
                "--sources-file",
                "/tmp/sources.json",
                "--max-parallel-packs",
                "3",
                "--run-tests",
            ]
        )
        assert args.solution == "/repo/App.sln"
        assert args.sources_file == "/tmp/sources.json"
        assert args.max_parallel_packs == 3
        assert args.run_tests is True

    def test_solution_from_cwd(self):
        """Test --solution-from-cwd flag."""
        assert parse_args(["--solution-from-cwd"]).solution_from_cwd


class TestBuildSettings:
    """Tests for build_settings function."""

    def test_environment_only(self):
        """Test environment values are kept without flags."""
        settings = build_settings(
            parse_args([]),
            {"NUGETPUSH_SOLUTION": "/env/App.sln", "NUGETPUSH_MAX_PARALLEL_PACKS": "2"},
        )
        assert settings.solution_path == "/env/App.sln"
        assert settings.max_parallel_packs == 2
        assert not settings.run_tests

    def test_flags_override_environment(self):
        """Test command line flags win over the environment."""
        args = parse_args(
            [
                "--solution",
                "/cli/App.sln",
                "--sources-file",
                "/cli/sources.json",
                "--max-parallel-packs",
                "0",
                "--run-tests",
            ]
        )
        settings = build_settings(
            args, {"NUGETPUSH_SOLUTION": "/env/App.sln", "NUGETPUSH_MAX_PARALLEL_PACKS": "4"}
        )

        assert settings.solution_path == "/cli/App.sln"
        assert settings.sources_file == Path("/cli/sources.json")
        assert settings.max_parallel_packs == 1
        assert settings.run_tests
