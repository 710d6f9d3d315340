"""Integration tests for the `deliberation-api vote` CLI commands."""

import uuid
from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

from typer.testing import CliRunner

from deliberation_api.cli.app import app
from deliberation_api.lib.staged_voting import VoteNotFound, VoteNotReady
from deliberation_api.schemas.vote import StageStatusResponse

runner = CliRunner()

VOTE_ID = uuid.UUID("00000000-0000-0000-0000-0000000000aa")
OPTION_ID = uuid.UUID("00000000-0000-0000-0000-0000000000c1")


def _session_factory() -> MagicMock:
    mock_factory = MagicMock()
    mock_factory.return_value.__aenter__ = AsyncMock(return_value=AsyncMock())
    mock_factory.return_value.__aexit__ = AsyncMock(return_value=False)
    return mock_factory


def _db_patches():  # noqa: ANN202
    return (
        patch("deliberation_api.core.database.init_engine"),
        patch("deliberation_api.core.database.dispose_engine", new_callable=AsyncMock),
        patch("deliberation_api.core.database.get_session_factory", return_value=_session_factory()),
    )


class TestVoteStatus:
    def test_active_stage(self) -> None:
        report = StageStatusResponse(
            vote_id=VOTE_ID,
            status="open",
            active_stage=2,
            votable=True,
            checked_at=datetime(2026, 3, 1, 12, tzinfo=UTC),
        )
        init, dispose, factory = _db_patches()
        with (
            init,
            dispose,
            factory,
            patch(
                "deliberation_api.services.vote_service.get_stage_status",
                new_callable=AsyncMock,
                return_value=report,
            ),
        ):
            result = runner.invoke(app, ["vote", "status", "--vote-id", str(VOTE_ID)])

        assert result.exit_code == 0, result.output
        assert f"Vote {VOTE_ID}: open, stage 2, votable" in result.output

    def test_no_active_stage(self) -> None:
        report = StageStatusResponse(
            vote_id=VOTE_ID,
            status="closed",
            active_stage=None,
            votable=False,
            checked_at=datetime(2026, 3, 1, 12, tzinfo=UTC),
        )
        init, dispose, factory = _db_patches()
        with (
            init,
            dispose,
            factory,
            patch(
                "deliberation_api.services.vote_service.get_stage_status",
                new_callable=AsyncMock,
                return_value=report,
            ),
        ):
            result = runner.invoke(app, ["vote", "status", "--vote-id", str(VOTE_ID)])

        assert "closed, no active stage, not votable" in result.output

    def test_unknown_vote(self) -> None:
        init, dispose, factory = _db_patches()
        with (
            init,
            dispose,
            factory,
            patch(
                "deliberation_api.services.vote_service.get_stage_status",
                new_callable=AsyncMock,
                side_effect=VoteNotFound(f"Vote {VOTE_ID} not found."),
            ),
        ):
            result = runner.invoke(app, ["vote", "status", "--vote-id", str(VOTE_ID)])

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_invalid_vote_id(self) -> None:
        result = runner.invoke(app, ["vote", "status", "--vote-id", "abc"])
        assert result.exit_code != 0


class TestSetStatus:
    def test_opens_vote(self) -> None:
        vote = MagicMock(id=VOTE_ID, status="open")
        init, dispose, factory = _db_patches()
        with (
            init,
            dispose,
            factory,
            patch(
                "deliberation_api.services.vote_service.change_status",
                new_callable=AsyncMock,
                return_value=vote,
            ) as mock_change,
        ):
            result = runner.invoke(app, ["vote", "set-status", "--vote-id", str(VOTE_ID), "--status", "open"])

        assert result.exit_code == 0, result.output
        assert f"Vote {VOTE_ID} is now open" in result.output
        assert mock_change.await_args.args[1:] == (VOTE_ID, "open")

    def test_not_ready_lists_problems(self) -> None:
        error = VoteNotReady("Vote is not ready to open.", ["Stage 1 start time is not set."])
        init, dispose, factory = _db_patches()
        with (
            init,
            dispose,
            factory,
            patch(
                "deliberation_api.services.vote_service.change_status",
                new_callable=AsyncMock,
                side_effect=error,
            ),
        ):
            result = runner.invoke(app, ["vote", "set-status", "--vote-id", str(VOTE_ID), "--status", "open"])

        assert result.exit_code == 1
        assert "Status change failed (vote_not_ready)" in result.output
        assert "- Stage 1 start time is not set." in result.output


class TestReviseOption:
    def test_open_stage_edits_in_place(self) -> None:
        init, dispose, factory = _db_patches()
        with (
            init,
            dispose,
            factory,
            patch(
                "deliberation_api.services.option_service.revise_option",
                new_callable=AsyncMock,
                return_value=SimpleNamespace(id=OPTION_ID),
            ) as mock_revise,
        ):
            result = runner.invoke(
                app, ["vote", "revise-option", "--option-id", str(OPTION_ID), "--stage", "1", "--title", "Bike lanes"]
            )

        assert result.exit_code == 0, result.output
        assert f"Option {OPTION_ID} updated" in result.output
        assert mock_revise.await_args.args[1:] == (1, OPTION_ID)
        assert mock_revise.await_args.kwargs == {"title": "Bike lanes", "description": None}

    def test_closed_stage_reports_new_copy(self) -> None:
        copy_id = uuid.UUID("00000000-0000-0000-0000-0000000000c2")
        init, dispose, factory = _db_patches()
        with (
            init,
            dispose,
            factory,
            patch(
                "deliberation_api.services.option_service.revise_option",
                new_callable=AsyncMock,
                return_value=SimpleNamespace(id=copy_id),
            ),
        ):
            result = runner.invoke(
                app,
                ["vote", "revise-option", "--option-id", str(OPTION_ID), "--stage", "2", "--description", "Wider"],
            )

        assert result.exit_code == 0, result.output
        assert f"saved the revision as new option {copy_id}" in result.output

    def test_unknown_option(self) -> None:
        init, dispose, factory = _db_patches()
        with (
            init,
            dispose as mock_dispose,
            factory,
            patch(
                "deliberation_api.services.option_service.revise_option",
                new_callable=AsyncMock,
                side_effect=ValueError("Option not found."),
            ),
        ):
            result = runner.invoke(
                app, ["vote", "revise-option", "--option-id", str(OPTION_ID), "--stage", "1", "--title", "X"]
            )

        assert result.exit_code == 1
        assert "Option not found." in result.output
        mock_dispose.assert_awaited_once()

    def test_requires_a_change(self) -> None:
        result = runner.invoke(app, ["vote", "revise-option", "--option-id", str(OPTION_ID), "--stage", "1"])
        assert result.exit_code != 0
        assert "Nothing to change" in result.output
