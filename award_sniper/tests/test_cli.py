from unittest.mock import Mock

import pytest
from click.testing import CliRunner

from award_sniper import db
from award_sniper.cli import cli
from award_sniper.config import get_settings
from award_sniper.expander import SearchExpander
from award_sniper.formatting import NOT_FOUND
from award_sniper.models import SearchResult
from award_sniper.tasks import build_scheduler


@pytest.fixture
def db_file(tmp_path, monkeypatch):
    path = str(tmp_path / "cli.db")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SNIPER_DB", path)
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
    get_settings.cache_clear()
    yield path
    get_settings.cache_clear()


def test_search_command(db_file, monkeypatch):
    monkeypatch.setattr(
        SearchExpander, "run", lambda self, query, prefs: SearchResult(query=query, records=[])
    )

    result = CliRunner().invoke(cli, ["search", "EZE", "MAD", "2024-10"])

    assert result.exit_code == 0, result.output
    assert NOT_FOUND in result.output


def test_batch_runs_through_queue(db_file, tmp_path, monkeypatch):
    monkeypatch.setenv("QUEUE_COOLDOWN_S", "0")
    get_settings.cache_clear()
    monkeypatch.setattr(
        SearchExpander, "run", lambda self, query, prefs: SearchResult(query=query, records=[])
    )
    queries = tmp_path / "queries.txt"
    queries.write_text("EZE MAD 2024-10\n\nhola\n", encoding="utf-8")

    result = CliRunner().invoke(cli, ["batch", str(queries)])

    assert result.exit_code == 0, result.output
    assert "EZE MAD 2024-10: position 0" in result.output
    assert "hola: position 1" in result.output
    assert NOT_FOUND in result.output
    assert "hola: " in result.output


def test_search_command_rejects_bad_query(db_file):
    result = CliRunner().invoke(cli, ["search", "hola"])
    assert result.exit_code == 2


def test_prefs_and_reset(db_file):
    runner = CliRunner()

    result = runner.invoke(cli, ["prefs", "ana", "--max-results", "3", "--exclude-airline", "g3"])
    assert result.exit_code == 0, result.output
    stored = db.get_preferences("ana", db_path=db_file)
    assert stored.max_results == 3
    assert stored.airlines == ["G3"]

    result = runner.invoke(cli, ["reset", "ana"])
    assert result.exit_code == 0, result.output
    assert db.get_preferences("ana", db_path=db_file).max_results is None


def test_cron_add_and_rm(db_file):
    runner = CliRunner()

    result = runner.invoke(
        cli, ["cron", "add", "EZE", "MAD", "2024-10", "--user", "ana", "--chat", "1"]
    )
    assert result.exit_code == 0, result.output
    assert len(db.find_cron_jobs("ana", db_path=db_file)) == 1

    result = runner.invoke(cli, ["cron", "rm", "EZE", "MAD", "2024-10", "--user", "ana"])
    assert result.exit_code == 0, result.output
    assert "removed" in result.output
    assert db.find_cron_jobs("ana", db_path=db_file) == []


def test_cron_add_rejects_bad_expression(db_file):
    result = CliRunner().invoke(
        cli, ["cron", "add", "EZE", "MAD", "2024-10", "--user", "ana", "--chat", "1", "--cron", "daily"]
    )
    assert result.exit_code == 2


def test_cron_add_rejects_bad_query(db_file):
    result = CliRunner().invoke(cli, ["cron", "add", "hola", "--user", "ana", "--chat", "1"])

    assert result.exit_code == 2
    assert db.find_cron_jobs("ana", db_path=db_file) == []


def test_alert_ls_and_report_empty(db_file):
    runner = CliRunner()

    result = runner.invoke(cli, ["alert", "ls"])
    assert result.exit_code == 0, result.output
    assert "EZE" not in result.output

    result = runner.invoke(cli, ["report"])
    assert result.exit_code == 0, result.output
    assert "No searches recorded" in result.output


def test_serve_resyncs_store_on_interval(db_file, monkeypatch):
    monkeypatch.setenv("SYNC_INTERVAL_S", "15")
    get_settings.cache_clear()
    scheduler = build_scheduler("UTC")
    monkeypatch.setattr(scheduler, "start", Mock(side_effect=KeyboardInterrupt))
    monkeypatch.setattr("award_sniper.cli.build_scheduler", lambda timezone: scheduler)

    result = CliRunner().invoke(cli, ["serve"])

    assert result.exit_code == 0, result.output
    assert scheduler.get_job("dispatch-queue-tick") is not None
    assert scheduler.get_job("store-sync").trigger.interval.total_seconds() == 15
