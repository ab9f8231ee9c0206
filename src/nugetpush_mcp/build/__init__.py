"""Pack and push orchestration for the class libraries of a solution.

Provides:
- Status machine deciding what can be packed or pushed
- Dependency closure and layered (wave by wave) pack scheduling
- Sequential push with authentication short-circuit
- dotnet and git process collaborators with argument validation
"""

from .closure import collect_dependees, get_projects_to_build, is_up_to_date_as_dependency
from .dotnet import DotNet
from .git import Git
from .policy import CommandPolicy
from .process import ProcessRunner
from .pusher import PushExecutor
from .scheduler import PackScheduler
from .state import BuildResult, CommandResult, PackRunResult, PushResult, PushRunResult
from .status import can_pack, can_push, recalculate_status, status_can_pack

__all__ = [
    "BuildResult",
    "CommandPolicy",
    "CommandResult",
    "DotNet",
    "Git",
    "PackRunResult",
    "PackScheduler",
    "ProcessRunner",
    "PushExecutor",
    "PushResult",
    "PushRunResult",
    "can_pack",
    "can_push",
    "collect_dependees",
    "get_projects_to_build",
    "is_up_to_date_as_dependency",
    "recalculate_status",
    "status_can_pack",
]
