import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from playback_jobs import cli
from playback_jobs.jobs import runner


def test_run_job_dispatches_stats(db, reporter, monkeypatch):
    stats = AsyncMock(return_value={"total_users": 3})
    monkeypatch.setattr(runner, "run_stats_job", stats)

    assert asyncio.run(runner.run_job("stats", db, test_mode=True, reporter=reporter)) == {"total_users": 3}
    assert stats.call_args.kwargs == {"test_mode": True, "reporter": reporter}


def test_run_job_dispatches_cleanup_in_thread(db, reporter, monkeypatch):
    cleanup = MagicMock(return_value={"recordsDeleted": 2})
    monkeypatch.setattr(runner, "run_playback_cleanup", cleanup)

    summary = asyncio.run(runner.run_job("playback-cleanup", db, reporter=reporter, triggered_by="scheduler"))

    assert summary == {"recordsDeleted": 2}
    cleanup.assert_called_once_with(db, False, "scheduler", reporter)


def test_run_job_dispatches_monthly(db, reporter, monkeypatch):
    monthly = MagicMock(return_value={"notificationsCreated": 1})
    monkeypatch.setattr(runner, "run_monthly_stats", monthly)

    asyncio.run(runner.run_job("monthly-stats", db, test_mode=True, reporter=reporter))

    monthly.assert_called_once_with(db, True, None, True, reporter)


def test_run_job_unknown_name(db, reporter):
    with pytest.raises(ValueError, match="Unknown job: nightly"):
        asyncio.run(runner.run_job("nightly", db, reporter=reporter))


def test_parser_cleanup_options():
    args = cli.build_parser().parse_args(["--test-mode", "cleanup", "--days", "30", "--batch-size", "500"])
    assert args.command == "cleanup"
    assert args.test_mode is True
    assert (args.days, args.batch_size) == (30, 500)


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_cleanup_overrides_feed_settings(monkeypatch):
    # registered so the overrides written to os.environ are undone after the test
    monkeypatch.setenv("CLEANUP_DAYS", "60")
    monkeypatch.setenv("CLEANUP_BATCH_SIZE", "10000")
    args = cli.build_parser().parse_args(["cleanup", "--days", "30"])

    settings = cli.apply_cleanup_overrides(args)

    assert settings.days == 30
    assert settings.batch_size == 10000


@pytest.fixture
def cli_env(monkeypatch):
    monkeypatch.setattr(cli.config, "load_env", MagicMock())
    monkeypatch.setattr(cli, "get_database", MagicMock(return_value=MagicMock()))
    close = MagicMock()
    monkeypatch.setattr(cli, "close_connection", close)
    return close


def test_main_runs_cleanup_job(cli_env, monkeypatch, capsys):
    run_job = AsyncMock(return_value={"recordsDeleted": 0})
    monkeypatch.setattr(cli, "run_job", run_job)
    monkeypatch.setattr(cli, "apply_cleanup_overrides", MagicMock())

    assert cli.main(["--test-mode", "cleanup"]) == 0

    assert run_job.call_args.args[0] == "playback-cleanup"
    assert run_job.call_args.kwargs == {"test_mode": True, "triggered_by": "cli"}
    assert '"recordsDeleted": 0' in capsys.readouterr().out
    cli_env.assert_called_once()


def test_main_returns_1_on_failure(cli_env, monkeypatch):
    monkeypatch.setattr(cli, "run_job", AsyncMock(side_effect=RuntimeError("down")))

    assert cli.main(["stats"]) == 1
    cli_env.assert_called_once()
