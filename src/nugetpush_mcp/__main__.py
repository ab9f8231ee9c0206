"""Entry point for nugetpush-mcp server."""

import argparse
import asyncio
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path

from .server import create_server, get_controller
from .utils.config import Settings
from .utils.project import configure_solution_locator, find_solution


def configure_logging() -> None:
    """Configure logging based on environment."""
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="NuGetPush MCP Server - Pack and push the NuGet packages of a .NET solution via MCP"
    )
    parser.add_argument(
        "--solution",
        type=str,
        default=None,
        help="Solution (.sln/.slnx/.slnf) opened when open_solution is called without a path. "
        "Overrides NUGETPUSH_SOLUTION.",
    )
    parser.add_argument(
        "--solution-from-cwd",
        action="store_true",
        default=False,
        help="Auto-detect the solution from the current working directory. "
        "Searches upward for .sln, .slnx or .slnf files. "
        "Cannot be used with --solution.",
    )
    parser.add_argument(
        "--sources-file",
        type=str,
        default=None,
        help="Package source selection file (default: ~/.nugetpush/packagesources.json).",
    )
    parser.add_argument(
        "--max-parallel-packs",
        type=int,
        default=None,
        help="Number of dotnet pack processes run concurrently within a wave.",
    )
    parser.add_argument(
        "--run-tests",
        action="store_true",
        default=None,
        help="Run the test projects of a class library before pushing it.",
    )
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace, env: dict[str, str] | None = None) -> Settings:
    """Environment settings overridden by command line flags."""
    settings = Settings.from_env(env)
    if args.solution:
        settings = replace(settings, solution_path=args.solution)
    if args.sources_file:
        settings = replace(settings, sources_file=Path(args.sources_file))
    if args.max_parallel_packs is not None:
        settings = replace(settings, max_parallel_packs=max(1, args.max_parallel_packs))
    if args.run_tests:
        settings = replace(settings, run_tests=True)
    return settings


async def main() -> None:
    """Main entry point."""
    configure_logging()
    logger = logging.getLogger(__name__)

    args = parse_args()

    if args.solution_from_cwd and args.solution is not None:
        logger.error("--solution-from-cwd cannot be used with --solution")
        sys.exit(1)

    settings = build_settings(args)
    configure_solution_locator(
        use_solution_from_cwd=args.solution_from_cwd,
        explicit_solution_path=settings.solution_path,
        startup_cwd=os.getcwd(),
    )
    if args.solution_from_cwd:
        detected = find_solution(Path.cwd())
        logger.info(f"Auto-detected solution: {detected}")

    logger.info(f"Starting NuGetPush MCP Server (solution: {settings.solution_path or 'not set'})...")

    mcp = create_server(settings)

    try:
        await mcp.run_stdio_async()
    except Exception:
        logger.exception("Server error")
        raise
    finally:
        await get_controller().shutdown()
        logger.info("Server stopped")


def run() -> None:
    """Run the server."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
