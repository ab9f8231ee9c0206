"""Tests for work session state types."""

import pytest

from nugetpush_mcp.session.state import Command, WorkOutcome, WorkSession, WorkSummary
from nugetpush_mcp.solution.models import ProjectStatus


class TestCommand:
    """Tests for Command classification."""

    @pytest.mark.parametrize(
        "command,selected,packs,pushes",
        [
            (Command.PACK_SELECTED, True, True, False),
            (Command.PACK_ALL, False, True, False),
            (Command.PUSH_SELECTED, True, False, True),
            (Command.PUSH_ALL, False, False, True),
            (Command.PACK_AND_PUSH_SELECTED, True, True, True),
            (Command.PACK_AND_PUSH_ALL, False, True, True),
            (Command.REFRESH, False, False, False),
            (Command.CANCEL, False, False, False),
        ],
    )
    def test_properties(self, command, selected, packs, pushes):
        """Test selected/packs/pushes flags of every command."""
        assert command.is_selected is selected
        assert command.packs is packs
        assert command.pushes is pushes

    def test_values(self):
        """Test commands are addressed by their string value."""
        assert Command("pack_all") is Command.PACK_ALL


class TestWorkSession:
    """Tests for WorkSession."""

    def test_elapsed(self):
        """Test elapsed time is non-negative and cancellation starts unset."""
        session = WorkSession(Command.REFRESH)
        assert session.elapsed_ms >= 0
        assert not session.cancel_requested


class TestWorkSummary:
    """Tests for WorkSummary."""

    def test_to_dict(self, make_project):
        """Test camelCase keys, project statuses and merged details."""
        project = make_project("A", status=ProjectStatus.PACKED)
        summary = WorkSummary(
            Command.PACK_ALL,
            WorkOutcome.PARTIAL_FAILURE,
            "Projects have been packed.",
            projects=[project],
            duration_ms=12.3456,
            details={"pack": {"waves": 1}},
        )

        assert summary.to_dict() == {
            "command": "pack_all",
            "outcome": "partial_failure",
            "message": "Projects have been packed.",
            "durationMs": 12.35,
            "projects": {"A": "packed"},
            "pack": {"waves": 1},
        }
        assert not summary.success

    def test_success(self):
        """Test only SUCCESS counts as success."""
        assert WorkSummary(Command.REFRESH, WorkOutcome.SUCCESS).success
        assert not WorkSummary(Command.REFRESH, WorkOutcome.CANCELLED).success
