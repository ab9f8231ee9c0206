"""Work session management."""

from .manager import WorkSessionController
from .state import Command, WorkOutcome, WorkState, WorkSummary

__all__ = ["Command", "WorkOutcome", "WorkSessionController", "WorkState", "WorkSummary"]
