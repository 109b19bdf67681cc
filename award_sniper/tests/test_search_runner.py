import sqlite3
from datetime import date

import pytest

from award_sniper import db
from award_sniper.dispatch_queue import DispatchQueue
from award_sniper.formatting import NOT_FOUND
from award_sniper.models import FlightRecord, Preferences, RoundTripRecord, SearchResult, TaxQuote
from award_sniper.query import QueryParseError
from award_sniper.search_runner import GENERIC_ERROR, SearchRunner

TAX = TaxQuote("12K", 12000, "$30K", 30000.0)


def make_record(origin, destination, day, price):
    return FlightRecord(origin, destination, price, None, date(2024, 10, day), tax=TAX)


class StubExpander:
    def __init__(self, records=None, error=None):
        self.records = records or []
        self.error = error
        self.calls = []

    def run(self, query, preferences):
        self.calls.append((query, preferences))
        if self.error:
            raise self.error
        return SearchResult(query=query, records=list(self.records))


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def send(self, chat_id, text):
        self.sent.append((chat_id, text))


@pytest.fixture
def db_file(tmp_path):
    path = str(tmp_path / "test.db")
    db.migrate(db_path=path)
    return path


def searches(db_file):
    conn = sqlite3.connect(db_file)
    rows = conn.execute(
        "SELECT requester, origin, destination, year, month, price FROM flight_searches"
    ).fetchall()
    conn.close()
    return rows


def test_search_renders_and_records(db_file):
    expander = StubExpander([make_record("EZE", "MAD", 5, 42000)])
    runner = SearchRunner(expander, db_file)

    result, text = runner.search("EZE MAD 2024-10", "ana")

    assert result.best_price == 42000
    assert "*42000 + 12K/$30K*" in text
    assert searches(db_file) == [("ana", "EZE", "MAD", 2024, 10, 42000)]


def test_search_uses_stored_preferences(db_file):
    db.save_preferences("ana", Preferences(max_results=2), db_path=db_file)
    expander = StubExpander()
    runner = SearchRunner(expander, db_file)

    _, text = runner.search("EZE MAD 2024-10", "ana")

    assert text == NOT_FOUND
    assert expander.calls[0][1].max_results == 2
    assert searches(db_file) == []


def test_round_trip_is_not_recorded(db_file):
    pair = RoundTripRecord(make_record("EZE", "MAD", 1, 40000), make_record("MAD", "EZE", 10, 30000))
    runner = SearchRunner(StubExpander([pair]), db_file)

    result, _ = runner.search("EZE MAD 2024-10-01 2024-10-20", "ana")

    assert result.best_price == 70000
    assert searches(db_file) == []


def test_search_rejects_bad_text(db_file):
    runner = SearchRunner(StubExpander(), db_file)
    with pytest.raises(QueryParseError):
        runner.search("hola", "ana")


def test_broken_store_falls_back_to_defaults(tmp_path):
    expander = StubExpander()
    runner = SearchRunner(expander, str(tmp_path / "missing" / "x.db"))

    assert runner.search_text("EZE MAD 2024-10", "ana") == NOT_FOUND
    assert expander.calls[0][1] == Preferences()


def test_submit_runs_through_queue(db_file):
    queue = DispatchQueue(cooldown=0)
    notifier = RecordingNotifier()
    runner = SearchRunner(StubExpander([make_record("EZE", "MAD", 5, 42000)]), db_file, queue=queue)
    try:
        ticket = runner.submit("EZE MAD 2024-10", "ana", 7, notifier)
        assert ticket.position == 0

        queue.tick().result(timeout=5)
    finally:
        queue.shutdown()

    assert len(notifier.sent) == 1
    assert notifier.sent[0][0] == 7
    assert "*42000 + 12K/$30K*" in notifier.sent[0][1]


def test_submit_reports_errors(db_file):
    queue = DispatchQueue(cooldown=0)
    notifier = RecordingNotifier()
    runner = SearchRunner(StubExpander(error=RuntimeError("boom")), db_file, queue=queue)
    try:
        runner.submit("hola", "ana", 7, notifier, wants_progress=False)
        queue.tick().result(timeout=5)
        runner.submit("EZE MAD 2024-10", "ana", 7, notifier, wants_progress=False)
        queue.tick().result(timeout=5)
    finally:
        queue.shutdown()

    assert notifier.sent[0][1].startswith("hola: ")
    assert notifier.sent[1] == (7, f"EZE MAD 2024-10: {GENERIC_ERROR}")


def test_submit_without_queue(db_file):
    runner = SearchRunner(StubExpander(), db_file)
    with pytest.raises(RuntimeError):
        runner.submit("EZE MAD 2024-10", "ana", 7, RecordingNotifier())
