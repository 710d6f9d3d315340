"""Integration tests for the `deliberation-api tally` CLI commands.

Database access and the tally service are mocked; these tests cover argument
handling, output, and exit codes.
"""

import uuid
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

from typer.testing import CliRunner

from deliberation_api.cli.app import app
from deliberation_api.lib.staged_voting import NoWinnerYet, StoreUnavailable, TallyFailed
from deliberation_api.schemas.tally import KnowledgeBreakdown, SweepItem, SweepResponse, TallyResponse, TallyRow

runner = CliRunner()

VOTE_ID = uuid.UUID("00000000-0000-0000-0000-0000000000aa")
WINNER_ID = uuid.UUID("00000000-0000-0000-0000-0000000000b1")
LOSER_ID = uuid.UUID("00000000-0000-0000-0000-0000000000b2")


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


def _tally(run: int = 1) -> TallyResponse:
    return TallyResponse(
        vote_id=VOTE_ID,
        stage=1,
        tally_run=run,
        winner_id=WINNER_ID,
        results=[
            TallyRow(
                choice_id=WINNER_ID,
                name="Bike lanes",
                total_votes=3,
                weighted_votes=3.0,
                knowledge_breakdown=KnowledgeBreakdown(bkq3=3),
                is_winner=True,
            ),
            TallyRow(
                choice_id=LOSER_ID,
                name="Street trees",
                total_votes=5,
                weighted_votes=0.0,
                knowledge_breakdown=KnowledgeBreakdown(bkq0=5),
            ),
        ],
    )


class TestTallyRun:
    def test_prints_ranked_rows(self) -> None:
        init, dispose, factory = _db_patches()
        with (
            init,
            dispose as mock_dispose,
            factory,
            patch(
                "deliberation_api.services.tally_service.run_tally",
                new_callable=AsyncMock,
                return_value=_tally(),
            ) as mock_run,
        ):
            result = runner.invoke(app, ["tally", "run", "--vote-id", str(VOTE_ID), "--stage", "1"])

        assert result.exit_code == 0, result.output
        assert f"Tally run 1 for stage 1: winner {WINNER_ID}" in result.output
        assert f"* {WINNER_ID}  Bike lanes  votes=3 weighted=3.000 bkq=[0,0,0,3]" in result.output
        assert "Street trees  votes=5 weighted=0.000 bkq=[5,0,0,0]" in result.output
        assert mock_run.await_args.args[1:] == (VOTE_ID, 1)
        mock_dispose.assert_awaited_once()

    def test_domain_error_exits_nonzero(self) -> None:
        init, dispose, factory = _db_patches()
        with (
            init,
            dispose as mock_dispose,
            factory,
            patch(
                "deliberation_api.services.tally_service.run_tally",
                new_callable=AsyncMock,
                side_effect=NoWinnerYet("Stage 1 has not produced a winner yet."),
            ),
        ):
            result = runner.invoke(app, ["tally", "run", "--vote-id", str(VOTE_ID), "--stage", "2"])

        assert result.exit_code == 1
        assert "Tally failed (no_winner_yet)" in result.output
        mock_dispose.assert_awaited_once()

    def test_rejected_run_shows_store_message(self) -> None:
        init, dispose, factory = _db_patches()
        with (
            init,
            dispose,
            factory,
            patch(
                "deliberation_api.services.tally_service.run_tally",
                new_callable=AsyncMock,
                side_effect=TallyFailed("duplicate key value violates unique constraint"),
            ),
        ):
            result = runner.invoke(app, ["tally", "run", "--vote-id", str(VOTE_ID), "--stage", "1"])

        assert result.exit_code == 1
        assert "Tally failed (tally_failed): duplicate key value violates unique constraint" in result.output

    def test_invalid_vote_id(self) -> None:
        result = runner.invoke(app, ["tally", "run", "--vote-id", "not-a-uuid", "--stage", "1"])
        assert result.exit_code != 0
        assert "Invalid vote ID" in result.output

    def test_stage_out_of_range(self) -> None:
        result = runner.invoke(app, ["tally", "run", "--vote-id", str(VOTE_ID), "--stage", "4"])
        assert result.exit_code == 2


class TestTallySweep:
    def test_reports_processed_and_closed(self) -> None:
        report = SweepResponse(
            timestamp=datetime(2026, 3, 1, 12, tzinfo=UTC),
            processed=1,
            results=[SweepItem(vote_id=VOTE_ID, stage=3, success=True, tally_run=1, winner_id=WINNER_ID)],
            closed_votes=[VOTE_ID],
        )
        init, dispose, factory = _db_patches()
        with (
            init,
            dispose,
            factory,
            patch(
                "deliberation_api.services.tally_service.auto_tally_sweep",
                new_callable=AsyncMock,
                return_value=report,
            ) as mock_sweep,
        ):
            result = runner.invoke(app, ["tally", "sweep", "--window", "600"])

        assert result.exit_code == 0, result.output
        assert "Processed 1 stage tally(ies), 0 failed" in result.output
        assert f"Closed vote {VOTE_ID}" in result.output
        assert mock_sweep.await_args.kwargs == {"window_seconds": 600}

    def test_failures_exit_nonzero(self) -> None:
        report = SweepResponse(
            timestamp=datetime(2026, 3, 1, 12, tzinfo=UTC),
            processed=2,
            results=[
                SweepItem(vote_id=VOTE_ID, stage=2, success=False, error="no winner"),
                SweepItem(vote_id=WINNER_ID, stage=1, success=True, tally_run=1),
            ],
        )
        init, dispose, factory = _db_patches()
        with (
            init,
            dispose,
            factory,
            patch(
                "deliberation_api.services.tally_service.auto_tally_sweep",
                new_callable=AsyncMock,
                return_value=report,
            ),
        ):
            result = runner.invoke(app, ["tally", "sweep"])

        assert result.exit_code == 1
        assert "Processed 2 stage tally(ies), 1 failed" in result.output
        assert f"vote {VOTE_ID} stage 2: no winner" in result.output

    def test_store_outage_exits_nonzero(self) -> None:
        init, dispose, factory = _db_patches()
        with (
            init,
            dispose as mock_dispose,
            factory,
            patch(
                "deliberation_api.services.tally_service.auto_tally_sweep",
                new_callable=AsyncMock,
                side_effect=StoreUnavailable("connection refused"),
            ),
        ):
            result = runner.invoke(app, ["tally", "sweep"])

        assert result.exit_code == 1
        assert "Sweep failed (store_unavailable): connection refused" in result.output
        mock_dispose.assert_awaited_once()


class TestTallyResults:
    def test_not_tallied(self) -> None:
        init, dispose, factory = _db_patches()
        with (
            init,
            dispose,
            factory,
            patch(
                "deliberation_api.services.tally_service.latest_results",
                new_callable=AsyncMock,
                return_value=None,
            ),
        ):
            result = runner.invoke(app, ["tally", "results", "--vote-id", str(VOTE_ID), "--stage", "1"])

        assert result.exit_code == 0
        assert "has not been tallied yet" in result.output

    def test_latest_run(self) -> None:
        init, dispose, factory = _db_patches()
        with (
            init,
            dispose,
            factory,
            patch(
                "deliberation_api.services.tally_service.latest_results",
                new_callable=AsyncMock,
                return_value=_tally(run=4),
            ),
        ):
            result = runner.invoke(app, ["tally", "results", "--vote-id", str(VOTE_ID), "--stage", "1"])

        assert result.exit_code == 0
        assert "Tally run 4 for stage 1" in result.output
        assert "Bike lanes" in result.output
