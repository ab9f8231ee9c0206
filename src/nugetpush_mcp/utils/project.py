"""Solution discovery utilities.

The solution to open is taken from, in order:
1. An explicit path passed to the tool
2. MCP Roots from the client (via Context.list_roots())
3. Environment variable (NUGETPUSH_SOLUTION)
4. Startup CWD (when --solution-from-cwd is used)

A directory resolves to the solution it contains.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import unquote, urlparse

if TYPE_CHECKING:
    from mcp.server.fastmcp import Context

logger = logging.getLogger(__name__)

SOLUTION_PATTERNS = ("*.sln", "*.slnx", "*.slnf")


@dataclass
class SolutionLocatorConfig:
    """Configuration for solution discovery."""

    startup_cwd: Path | None = None
    """CWD captured at server startup (when --solution-from-cwd is used)."""

    use_solution_from_cwd: bool = False
    """Whether --solution-from-cwd flag was provided."""

    explicit_solution_path: Path | None = None
    """Explicit solution path from --solution or NUGETPUSH_SOLUTION."""


_config: SolutionLocatorConfig = SolutionLocatorConfig()


def configure_solution_locator(
    *,
    use_solution_from_cwd: bool = False,
    explicit_solution_path: str | Path | None = None,
    startup_cwd: str | Path | None = None,
) -> None:
    """Configure solution discovery. Called once at server startup."""
    global _config
    _config = SolutionLocatorConfig(
        use_solution_from_cwd=use_solution_from_cwd,
        explicit_solution_path=Path(explicit_solution_path) if explicit_solution_path else None,
        startup_cwd=Path(startup_cwd) if startup_cwd else None,
    )
    logger.debug(
        f"Solution locator configured: use_cwd={use_solution_from_cwd}, "
        f"explicit={explicit_solution_path}, startup_cwd={startup_cwd}"
    )


def get_config() -> SolutionLocatorConfig:
    """Get current solution locator configuration."""
    return _config


def parse_file_uri(uri: str) -> Path | None:
    """Parse a file:// URI to a Path.

    Handles platform-specific path formats:
    - Unix: file:///home/user/repo → /home/user/repo
    - Windows: file:///C:/Users/repo → C:\\Users\\repo
    - Windows UNC: file://server/share → \\\\server\\share

    Returns:
        Path object if parsing succeeds, None otherwise
    """
    parsed = urlparse(str(uri))
    if parsed.scheme != "file":
        logger.warning(f"Not a file URI: {uri}")
        return None

    path_str = unquote(parsed.path)

    if sys.platform == "win32":
        # file:///C:/path → "/C:/path"
        if path_str.startswith("/") and len(path_str) > 2 and path_str[2] == ":":
            path_str = path_str[1:]
        if parsed.netloc:
            path_str = f"\\\\{parsed.netloc}{path_str}"

    path = Path(path_str)
    if not path.is_absolute():
        logger.warning(f"Parsed path is not absolute: {path}")
        return None
    return path


def find_solution(directory: Path) -> Path | None:
    """Solution file in ``directory`` or its nearest ancestor that has one.

    Within a directory .sln is preferred over .slnx, then .slnf; ties are
    broken alphabetically.
    """
    current = directory.resolve()

    def ancestors() -> Iterator[Path]:
        yield current
        yield from current.parents

    for candidate in ancestors():
        for pattern in SOLUTION_PATTERNS:
            matches = sorted(candidate.glob(pattern))
            if matches:
                return matches[0]
    return None


def resolve_solution_path(path: str | Path) -> Path | None:
    """A solution file path, or the solution found from a directory."""
    path = Path(path)
    if path.is_file():
        return path.resolve()
    if path.is_dir():
        return find_solution(path)
    return None


async def get_solution_path(ctx: Context | None = None, path: str | None = None) -> Path | None:
    """Determine the solution to open from the available sources.

    Args:
        ctx: MCP Context for accessing client-provided roots
        path: Explicit solution file or directory

    Returns:
        Path to the solution file, or None if not determinable
    """
    if path:
        resolved = resolve_solution_path(os.path.expanduser(path))
        if resolved is None:
            logger.warning(f"No solution found at {path}")
        return resolved

    config = get_config()

    if ctx is not None:
        try:
            roots = await ctx.list_roots()
            if roots:
                root = parse_file_uri(str(roots[0].uri))
                if root is not None and root.is_dir():
                    solution = find_solution(root)
                    if solution is not None:
                        logger.info(f"Using solution from MCP client root: {solution}")
                        return solution
            else:
                logger.info("MCP client did not provide any roots")
        except Exception as e:
            # Client may not support roots
            logger.info(f"Could not get roots from client: {e}")

    if config.explicit_solution_path is not None:
        resolved = resolve_solution_path(config.explicit_solution_path)
        if resolved is not None:
            logger.info(f"Using configured solution: {resolved}")
            return resolved
        logger.warning(f"Configured solution not valid: {config.explicit_solution_path}")

    if config.use_solution_from_cwd and config.startup_cwd is not None:
        solution = find_solution(config.startup_cwd)
        if solution is not None:
            logger.info(f"Using solution from CWD search: {solution}")
            return solution

    logger.warning("Could not determine the solution from any source")
    return None
