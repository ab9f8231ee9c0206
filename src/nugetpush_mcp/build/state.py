"""Pack/push result types and tool output parsing."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..solution.models import ClassLibrary


class BuildErrorSeverity(str, Enum):
    """MSBuild/NuGet diagnostic severity levels."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass
class BuildDiagnostic:
    """Parsed MSBuild or NuGet diagnostic."""

    severity: BuildErrorSeverity
    code: str
    message: str
    file: str | None = None
    line: int | None = None
    column: int | None = None

    def to_message(self) -> str:
        """One-line rendering used in project diagnostics."""
        location = ""
        if self.file:
            location = self.file
            if self.line is not None:
                location += f"({self.line},{self.column or 0})"
            location += ": "
        code = f"{self.code}: " if self.code else ""
        return f"{location}{self.severity.value} {code}{self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "severity": self.severity.value,
            "code": self.code,
            "message": self.message,
        }
        if self.file:
            result["file"] = self.file
        if self.line is not None:
            result["line"] = self.line
        if self.column is not None:
            result["column"] = self.column
        return result


# Format: path(line,col): severity code: message [project]
MSBUILD_DIAGNOSTIC_PATTERN = re.compile(
    r"^(?P<file>[^(]+)\((?P<line>\d+),(?P<col>\d+)\):\s*"
    r"(?P<severity>error|warning|info)\s+(?P<code>\w+):\s*"
    r"(?P<message>.+?)(?:\s+\[(?P<project>[^\]]+)\])?$",
    re.IGNORECASE,
)

# Format without location: severity code: message
MSBUILD_SIMPLE_PATTERN = re.compile(
    r"^(?P<severity>error|warning|info)\s+(?P<code>\w+):\s*(?P<message>.+)$",
    re.IGNORECASE,
)

# dotnet nuget push format: "error: message" / "warn : message"
NUGET_PATTERN = re.compile(
    r"^(?P<severity>error|warn(?:ing)?)\s*:\s*(?P<message>.+)$",
    re.IGNORECASE,
)


def parse_tool_output(output: str) -> list[BuildDiagnostic]:
    """Parse dotnet/MSBuild/NuGet console output into diagnostics."""
    diagnostics: list[BuildDiagnostic] = []

    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue

        match = MSBUILD_DIAGNOSTIC_PATTERN.match(line)
        if match:
            diagnostics.append(
                BuildDiagnostic(
                    severity=BuildErrorSeverity(match.group("severity").lower()),
                    code=match.group("code"),
                    message=match.group("message"),
                    file=match.group("file").strip(),
                    line=int(match.group("line")),
                    column=int(match.group("col")),
                )
            )
            continue

        match = MSBUILD_SIMPLE_PATTERN.match(line)
        if match:
            diagnostics.append(
                BuildDiagnostic(
                    severity=BuildErrorSeverity(match.group("severity").lower()),
                    code=match.group("code"),
                    message=match.group("message"),
                )
            )
            continue

        match = NUGET_PATTERN.match(line)
        if match:
            severity = match.group("severity").lower()
            diagnostics.append(
                BuildDiagnostic(
                    severity=(
                        BuildErrorSeverity.ERROR
                        if severity == "error"
                        else BuildErrorSeverity.WARNING
                    ),
                    code="",
                    message=match.group("message"),
                )
            )

    return diagnostics


@dataclass
class CommandResult:
    """Outcome of one external tool invocation."""

    command: list[str]
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    @property
    def diagnostics(self) -> list[BuildDiagnostic]:
        return parse_tool_output(self.stdout + "\n" + self.stderr)

    @property
    def errors(self) -> list[BuildDiagnostic]:
        """Get only error diagnostics."""
        return [d for d in self.diagnostics if d.severity == BuildErrorSeverity.ERROR]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "command": " ".join(self.command),
            "exitCode": self.exit_code,
            "durationMs": round(self.duration_ms, 2),
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }


@dataclass
class BuildResult:
    """Outcome of packing one project within a pack run."""

    project: ClassLibrary
    failed: bool
    missing_dependencies: list[ClassLibrary] = field(default_factory=list)

    @property
    def blocked(self) -> bool:
        """Whether the project was not packed because of its dependencies."""
        return bool(self.missing_dependencies)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "project": self.project.name,
            "failed": self.failed,
            "status": self.project.status.value,
        }
        if self.missing_dependencies:
            result["missingDependencies"] = [d.name for d in self.missing_dependencies]
        return result


@dataclass
class PackRunResult:
    """Accumulated results of a layered pack run."""

    results: list[BuildResult] = field(default_factory=list)
    waves: int = 0

    @property
    def packed(self) -> list[ClassLibrary]:
        return [r.project for r in self.results if not r.failed]

    @property
    def failed(self) -> list[ClassLibrary]:
        return [r.project for r in self.results if r.failed]

    @property
    def success(self) -> bool:
        return not any(r.failed for r in self.results)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "waves": self.waves,
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class PushResult:
    """Outcome of pushing one project."""

    project: ClassLibrary
    success: bool
    skipped: bool = False
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "project": self.project.name,
            "success": self.success,
            "status": self.project.status.value,
        }
        if self.skipped:
            result["skipped"] = True
        if self.message:
            result["message"] = self.message
        return result


@dataclass
class PushRunResult:
    """Accumulated results of a push run."""

    results: list[PushResult] = field(default_factory=list)
    authentication_failed: bool = False

    @property
    def pushed(self) -> list[ClassLibrary]:
        return [r.project for r in self.results if r.success]

    @property
    def success(self) -> bool:
        return all(r.success for r in self.results)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "success": self.success,
            "results": [r.to_dict() for r in self.results],
        }
        if self.authentication_failed:
            result["authenticationFailed"] = True
        return result
