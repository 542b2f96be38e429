"""Tests for the command line entry point; commands and the pool are patched."""
from unittest.mock import AsyncMock, patch

import followup
from engine.errors import FollowUpError


def test_command_disposes_engine():
    with patch("followup.run_sweep", new=AsyncMock()) as sweep, patch(
        "db.connection.dispose_engine", new=AsyncMock()
    ) as dispose:
        assert followup.main(["sweep", "--company", "acme"]) == 0
    sweep.assert_awaited_once_with("acme")
    dispose.assert_awaited_once()


def test_failing_command_still_disposes_engine():
    with patch(
        "followup.run_evaluate", new=AsyncMock(side_effect=FollowUpError("no such rule"))
    ), patch("db.connection.dispose_engine", new=AsyncMock()) as dispose:
        assert followup.main(["evaluate", "--company", "acme", "--no-ai"]) == 2
    dispose.assert_awaited_once()


def test_dispatch_due_exit_code_comes_from_command():
    with patch("followup.run_dispatch_due", new=AsyncMock(return_value=1)), patch(
        "db.connection.dispose_engine", new=AsyncMock()
    ):
        assert followup.main(["dispatch-due", "--company", "acme"]) == 1


def test_no_command_prints_help():
    with patch("db.connection.dispose_engine", new=AsyncMock()) as dispose:
        assert followup.main([]) == 1
    dispose.assert_not_awaited()
