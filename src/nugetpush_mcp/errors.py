"""Exceptions raised by the NuGet publishing workflow."""


class NuGetPushError(Exception):
    """Base exception for nugetpush errors."""

    pass


class SolutionError(NuGetPushError):
    """Raised when a solution cannot be opened or is used incorrectly."""

    pass


class NoSolutionError(NuGetPushError):
    """Raised when an operation requires an open solution."""

    pass


class ProjectParseError(NuGetPushError):
    """Raised when a project file cannot be read."""

    def __init__(self, project_path: str, message: str):
        super().__init__(f"{message} (Project = {project_path})")
        self.project_path = project_path


class PackageSourceError(NuGetPushError):
    """Raised when package sources are missing or misconfigured."""

    pass


class AuthenticationError(NuGetPushError):
    """Raised when the remote feed rejects the supplied credentials or API key."""

    pass


class DeviceLoginCancelled(NuGetPushError):
    """Raised when the user declines the device login prompt."""

    pass


class SessionBusyError(NuGetPushError):
    """Raised when a work session is started while another one is running."""

    pass


class ProcessError(NuGetPushError):
    """Raised when an external tool cannot be started or times out."""

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        self.exit_code = exit_code
