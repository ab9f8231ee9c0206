"""Server settings from environment variables."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_SOURCES_FILE = Path.home() / ".nugetpush" / "packagesources.json"

_TRUE_VALUES = ("1", "true", "yes", "on")


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    value = env.get(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={value!r}, using {default}")
        return default


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    value = env.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={value!r}, using {default}")
        return default


@dataclass
class Settings:
    """Runtime configuration.

    Environment variables:
        NUGETPUSH_SOLUTION: Solution (.sln/.slnx/.slnf) opened when no path is given
        NUGETPUSH_SOURCES_FILE: Package source selection sidecar
        NUGETPUSH_PACK_TIMEOUT: Seconds allowed for one ``dotnet pack``
        NUGETPUSH_TEST_TIMEOUT: Seconds allowed for one ``dotnet test``
        NUGETPUSH_PUSH_TIMEOUT: Seconds allowed for one ``dotnet nuget push``
        NUGETPUSH_HTTP_TIMEOUT: Seconds allowed for one feed request
        NUGETPUSH_MAX_PARALLEL_PACKS: Concurrent packs within a wave
        NUGETPUSH_REFRESH_INTERVAL: Seconds between remote version refreshes (0 disables)
        NUGETPUSH_RUN_TESTS: Run test projects before pushing
        NUGET_API_KEY: API key for the remote feed
        NUGETPUSH_USERNAME / NUGETPUSH_PASSWORD: Remote feed credentials
    """

    solution_path: str | None = None
    sources_file: Path = DEFAULT_SOURCES_FILE
    pack_timeout: float = 600.0
    test_timeout: float = 1200.0
    push_timeout: float = 600.0
    http_timeout: float = 30.0
    max_parallel_packs: int = 1
    refresh_interval: float = 30.0
    run_tests: bool = False
    api_key: str | None = None
    username: str | None = None
    password: str | None = None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        """Build settings from environment variables (``os.environ`` by default)."""
        env = os.environ if env is None else env
        sources_file = env.get("NUGETPUSH_SOURCES_FILE")
        return cls(
            solution_path=env.get("NUGETPUSH_SOLUTION") or None,
            sources_file=Path(sources_file) if sources_file else DEFAULT_SOURCES_FILE,
            pack_timeout=_get_float(env, "NUGETPUSH_PACK_TIMEOUT", 600.0),
            test_timeout=_get_float(env, "NUGETPUSH_TEST_TIMEOUT", 1200.0),
            push_timeout=_get_float(env, "NUGETPUSH_PUSH_TIMEOUT", 600.0),
            http_timeout=_get_float(env, "NUGETPUSH_HTTP_TIMEOUT", 30.0),
            max_parallel_packs=max(1, _get_int(env, "NUGETPUSH_MAX_PARALLEL_PACKS", 1)),
            refresh_interval=max(0.0, _get_float(env, "NUGETPUSH_REFRESH_INTERVAL", 30.0)),
            run_tests=env.get("NUGETPUSH_RUN_TESTS", "").lower() in _TRUE_VALUES,
            api_key=env.get("NUGET_API_KEY") or None,
            username=env.get("NUGETPUSH_USERNAME") or None,
            password=env.get("NUGETPUSH_PASSWORD") or None,
        )
