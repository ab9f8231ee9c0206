"""Async subprocess runner with bounded output capture."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from ..errors import ProcessError
from .state import CommandResult

logger = logging.getLogger(__name__)

# Output buffer limits
MAX_OUTPUT_BYTES: int = 5_000_000  # 5MB total
MAX_OUTPUT_LINE: int = 10_000  # 10KB per line

LineCallback = Callable[[str], Awaitable[None]]


class ProcessRunner:
    """Runs external tools without a shell and captures their output.

    The child process is killed when the awaiting task is cancelled or the
    timeout expires.
    """

    def __init__(self, default_timeout: float = 300.0):
        self._default_timeout = default_timeout

    async def run(
        self,
        command: list[str],
        cwd: str | None = None,
        timeout: float | None = None,
        on_stdout_line: LineCallback | None = None,
        display_command: list[str] | None = None,
    ) -> CommandResult:
        """Run a command to completion.

        Args:
            command: Command and arguments
            cwd: Working directory
            timeout: Timeout in seconds (runner default if None)
            on_stdout_line: Awaited for every stdout line as it arrives
            display_command: Command as shown in logs and results (secrets masked)

        Returns:
            Exit code and captured output

        Raises:
            ProcessError: If the tool cannot be started or times out
            asyncio.CancelledError: If cancelled
        """
        timeout = timeout if timeout is not None else self._default_timeout
        shown = display_command or command
        logger.info(f"Running: {' '.join(shown)}")
        start_time = time.perf_counter()

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
            )
        except OSError as e:
            raise ProcessError(f"Failed to start {command[0]}: {e}") from e

        stdout_lines: list[str] = []
        stderr_lines: list[str] = []

        async def read_stream(
            stream: asyncio.StreamReader | None,
            lines: list[str],
            callback: LineCallback | None,
        ) -> None:
            if stream is None:
                return
            byte_count = 0
            while True:
                line = await stream.readline()
                if not line:
                    break
                decoded = line.decode("utf-8", errors="replace")
                if len(decoded) > MAX_OUTPUT_LINE:
                    decoded = decoded[:MAX_OUTPUT_LINE] + "...[truncated]\n"
                lines.append(decoded)
                byte_count += len(decoded)
                # Drop old lines if buffer too large
                while byte_count > MAX_OUTPUT_BYTES and lines:
                    byte_count -= len(lines.pop(0))
                if callback is not None:
                    await callback(decoded.rstrip("\r\n"))

        try:
            await asyncio.wait_for(
                asyncio.gather(
                    read_stream(process.stdout, stdout_lines, on_stdout_line),
                    read_stream(process.stderr, stderr_lines, None),
                ),
                timeout=timeout,
            )
            await process.wait()
        except asyncio.TimeoutError as e:
            logger.warning(f"{' '.join(shown[:2])} timed out after {timeout}s")
            raise ProcessError(f"{' '.join(shown[:2])} timed out after {timeout}s") from e
        finally:
            if process.returncode is None:
                self._kill(process)
                await process.wait()

        duration = (time.perf_counter() - start_time) * 1000
        result = CommandResult(
            command=list(shown),
            exit_code=process.returncode or 0,
            stdout="".join(stdout_lines),
            stderr="".join(stderr_lines),
            duration_ms=duration,
        )
        logger.debug(f"{shown[0]} exited with {result.exit_code} in {duration:.0f}ms")
        return result

    @staticmethod
    def _kill(process: asyncio.subprocess.Process) -> None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
