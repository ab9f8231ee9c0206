"""dotnet CLI collaborator: pack, test and nuget push."""

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable

from ..solution.models import ClassLibrary, TestProject
from .policy import CommandPolicy
from .process import ProcessRunner
from .state import CommandResult

logger = logging.getLogger(__name__)

DEVICE_LOGIN_PATTERN = re.compile(
    r"To sign in, use a web browser to open the page (?P<url>https://\S+?) "
    r"and enter the code (?P<code>[A-Z\d]+) to authenticate\."
)

# Markers of a rejected API key or credential in push output
AUTHENTICATION_FAILURE_PATTERN = re.compile(
    r"\b(401|403)\b|unauthorized|forbidden|api key is invalid|authentication",
    re.IGNORECASE,
)

# Lines kept from raw output when a failed command yields no parsed diagnostics
FALLBACK_OUTPUT_LINES = 10

DeviceLoginCallback = Callable[[str, str], Awaitable[None]]


def is_authentication_failure(result: CommandResult) -> bool:
    """Whether a failed push was rejected because of credentials or API key."""
    if result.success:
        return False
    return bool(AUTHENTICATION_FAILURE_PATTERN.search(result.stdout + "\n" + result.stderr))


def record_output(project: ClassLibrary, result: CommandResult, action: str) -> None:
    """Append the outcome of a failed command to the project's diagnostics."""
    if result.success:
        return
    errors = result.errors
    if errors:
        for diagnostic in errors:
            project.add_diagnostic(diagnostic.to_message())
    else:
        output = (result.stdout + result.stderr).strip().splitlines()
        tail = output[-FALLBACK_OUTPUT_LINES:]
        if tail:
            project.add_diagnostic("\n".join(tail))
    project.add_diagnostic(f"{action} failed with exit code {result.exit_code}.")


class DotNet:
    """Runs dotnet CLI commands for projects of one repository."""

    def __init__(
        self,
        policy: CommandPolicy,
        runner: ProcessRunner | None = None,
        pack_timeout: float = 600.0,
        test_timeout: float = 1200.0,
        push_timeout: float = 600.0,
    ):
        self._policy = policy
        self._runner = runner or ProcessRunner()
        self._pack_timeout = pack_timeout
        self._test_timeout = test_timeout
        self._push_timeout = push_timeout

    async def pack(self, project: ClassLibrary) -> bool:
        """Pack a class library; failures are recorded on the project."""
        command = self._policy.get_pack_command(project.project_path)
        result = await self._runner.run(
            command, cwd=project.project_directory, timeout=self._pack_timeout
        )
        record_output(project, result, "dotnet pack")
        if result.success:
            logger.info(f"Packed {project.package_id} {project.package_version}")
        return result.success

    async def test(self, test_project: TestProject) -> bool:
        """Run a test project."""
        command = self._policy.get_test_command(test_project.project_path)
        result = await self._runner.run(
            command, cwd=test_project.project_directory, timeout=self._test_timeout
        )
        if not result.success:
            logger.warning(
                f"Tests of {test_project.name} failed ({len(result.errors)} errors)"
            )
        return result.success

    async def push(
        self,
        package_path: str,
        api_key: str,
        source: str,
        on_device_login: DeviceLoginCallback | None = None,
    ) -> CommandResult:
        """Push a package file.

        Args:
            package_path: .nupkg file to push
            api_key: Feed API key
            source: Feed URL or directory
            on_device_login: Awaited with (url, code) when the credential
                provider asks for a device login; may raise to abort

        Returns:
            Command result; the caller decides how to treat failures
        """
        command = self._policy.get_push_command(package_path, api_key, source)

        async def watch_line(line: str) -> None:
            match = DEVICE_LOGIN_PATTERN.search(line)
            if match and on_device_login is not None:
                logger.info(f"Device login requested (code {match.group('code')})")
                await on_device_login(match.group("url"), match.group("code"))

        return await self._runner.run(
            command,
            timeout=self._push_timeout,
            on_stdout_line=watch_line,
            display_command=self._policy.mask_secrets(command),
        )
