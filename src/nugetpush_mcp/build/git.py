"""git collaborator: repository root and uncommitted changes."""

from __future__ import annotations

import logging
import os

from ..errors import ProcessError
from .policy import CommandPolicy
from .process import ProcessRunner

logger = logging.getLogger(__name__)


def parse_porcelain_status(output: str, repository_root: str) -> set[str]:
    """Absolute paths of the changes listed by ``git status --porcelain``."""
    changes: set[str] = set()
    for line in output.splitlines():
        if len(line) < 4:
            continue
        path = line[3:]
        # Renames are reported as "old -> new"
        if " -> " in path:
            path = path.split(" -> ", 1)[1]
        path = path.strip().strip('"')
        changes.add(os.path.normpath(os.path.join(repository_root, path)))
    return changes


class Git:
    """Runs git queries for a working tree."""

    def __init__(self, runner: ProcessRunner | None = None, timeout: float = 60.0):
        self._runner = runner or ProcessRunner()
        self._timeout = timeout

    async def get_repository_root(self, directory: str) -> str | None:
        """Top-level directory of the repository containing ``directory``.

        Returns:
            Repository root, or None if the directory is not in a git repository
        """
        try:
            result = await self._runner.run(
                CommandPolicy.get_repository_root_command(), cwd=directory, timeout=self._timeout
            )
        except ProcessError as e:
            logger.warning(f"git unavailable: {e}")
            return None
        if not result.success:
            logger.info(f"{directory} is not in a git repository")
            return None
        lines = result.stdout.strip().splitlines()
        return os.path.normpath(lines[0]) if lines else None

    async def get_uncommitted_changes(self, repository_root: str) -> set[str]:
        """Tracked files with uncommitted changes, as absolute paths."""
        result = await self._runner.run(
            CommandPolicy.get_status_command(), cwd=repository_root, timeout=self._timeout
        )
        if not result.success:
            raise ProcessError(
                f"git status failed: {result.stderr.strip()}", exit_code=result.exit_code
            )
        changes = parse_porcelain_status(result.stdout, repository_root)
        logger.debug(f"{len(changes)} uncommitted changes in {repository_root}")
        return changes
