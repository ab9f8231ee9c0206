"""Work session state: commands, outcomes and summaries."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..solution.models import ClassLibrary


class Command(str, Enum):
    """User intents handled by the work session controller."""

    OPEN_SOLUTION = "open_solution"
    CLOSE_SOLUTION = "close_solution"
    PACK_SELECTED = "pack_selected"
    PACK_ALL = "pack_all"
    PUSH_SELECTED = "push_selected"
    PUSH_ALL = "push_all"
    PACK_AND_PUSH_SELECTED = "pack_and_push_selected"
    PACK_AND_PUSH_ALL = "pack_and_push_all"
    REFRESH = "refresh"
    CANCEL = "cancel"

    @property
    def is_selected(self) -> bool:
        return self in (
            Command.PACK_SELECTED,
            Command.PUSH_SELECTED,
            Command.PACK_AND_PUSH_SELECTED,
        )

    @property
    def packs(self) -> bool:
        return self in (
            Command.PACK_SELECTED,
            Command.PACK_ALL,
            Command.PACK_AND_PUSH_SELECTED,
            Command.PACK_AND_PUSH_ALL,
        )

    @property
    def pushes(self) -> bool:
        return self in (
            Command.PUSH_SELECTED,
            Command.PUSH_ALL,
            Command.PACK_AND_PUSH_SELECTED,
            Command.PACK_AND_PUSH_ALL,
        )


class WorkState(str, Enum):
    """Controller states."""
    IDLE = "idle"  # No solution open
    OPENING = "opening"  # Loading solution and feeds
    READY = "ready"  # Solution open, no work running
    WORKING = "working"  # Pack/push session running


class WorkOutcome(str, Enum):
    """How a work session ended."""

    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class WorkSession:
    """One cancellation scope; at most one exists at a time."""

    command: Command
    started_at: float = field(default_factory=time.perf_counter)
    cancel_requested: bool = False

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.started_at) * 1000


@dataclass
class WorkSummary:
    """Result of one command."""

    command: Command
    outcome: WorkOutcome
    message: str = ""
    projects: list[ClassLibrary] = field(default_factory=list)
    duration_ms: float = 0.0
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.outcome == WorkOutcome.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "command": self.command.value,
            "outcome": self.outcome.value,
            "message": self.message,
            "durationMs": round(self.duration_ms, 2),
            "projects": {p.name: p.status.value for p in self.projects},
        }
        result.update(self.details)
        return result
