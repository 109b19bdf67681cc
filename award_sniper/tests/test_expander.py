from datetime import date
from unittest.mock import Mock, patch

import pytest

from award_sniper.config import Settings
from award_sniper.expander import SearchExpander, expand, first_open_day
from award_sniper.models import ParameterSet, Preferences, RoundTripRecord, SearchKind, TaxQuote
from award_sniper.query import parse_query
from award_sniper.smiles_fetcher import SmilesFetcher, empty_response

REGIONS = {"EUROPA": ["MAD", "BCN"], "BRASIL": ["GRU", "GIG", "SSA"]}
TODAY = date(2024, 9, 1)


def make_response(params, miles):
    return {
        "requestedFlightSegmentList": [
            {
                "airports": {"departureAirportList": [{"code": params.origin}]},
                "flightList": [
                    {
                        "uid": f"{params.origin}-{params.departure_date}",
                        "cabin": "ECONOMIC",
                        "stops": 1,
                        "availableSeats": 4,
                        "duration": {"hours": 14},
                        "airline": {"code": "AR", "name": "Aerolineas"},
                        "departure": {
                            "date": f"{params.departure_date.isoformat()}T10:00:00",
                            "airport": {"code": params.origin},
                        },
                        "arrival": {"airport": {"code": params.destination}},
                        "fareList": [
                            {"type": "SMILES_CLUB", "miles": miles, "money": 0, "uid": "fare"}
                        ],
                    }
                ],
            }
        ]
    }


class FakeFetcher:
    def __init__(self, price, fail_on=None, no_tax=False):
        self.price = price
        self.fail_on = fail_on
        self.no_tax = no_tax
        self.fetched = []

    def fetch(self, params):
        self.fetched.append(params)
        if params.departure_date == self.fail_on:
            raise RuntimeError("boom")
        return make_response(params, self.price(params))

    def fetch_tax(self, flight_uid, fare_uid, smiles_and_money=False):
        if self.no_tax:
            return None
        return TaxQuote("12K", 12000, "$30K", 30000.0)


# ────────────────────────────────────────────────────────────────
# expand
# ────────────────────────────────────────────────────────────────


def test_single_whole_month():
    query = parse_query("EZE MAD 2024-10")
    params = expand(query, Preferences(), TODAY)
    assert len(params) == 31
    assert params[0].departure_date == date(2024, 10, 1)
    assert params[-1].departure_date == date(2024, 10, 31)
    assert all(p.origin == "EZE" and p.destination == "MAD" for p in params)


def test_single_day_range():
    query = parse_query("EZE MAD 2024-10 5 9")
    params = expand(query, Preferences(), TODAY)
    assert [p.departure_date.day for p in params] == [5, 6, 7, 8, 9]


def test_single_current_month_starts_today():
    query = parse_query("EZE MAD 2024-10")
    params = expand(query, Preferences(), date(2024, 10, 20))
    assert len(params) == 12
    assert params[0].departure_date == date(2024, 10, 20)


def test_past_month_is_empty():
    query = parse_query("EZE MAD 2024-08")
    assert expand(query, Preferences(), TODAY) == []
    assert first_open_day("2024-08", TODAY) == 32


def test_single_day():
    query = parse_query("EZE MAD 2024-10-15")
    params = expand(query, Preferences(), TODAY)
    assert [p.departure_date for p in params] == [date(2024, 10, 15)]


def test_multi_destination_product():
    query = parse_query("EZE EUROPA 2024-10 1 3", REGIONS)
    params = expand(query, Preferences(), TODAY)
    assert len(params) == 6
    assert {p.destination for p in params} == {"MAD", "BCN"}
    assert all(p.origin == "EZE" for p in params)


def test_multi_origin_fixed_day():
    query = parse_query("BRASIL EZE 2024-10-15", REGIONS)
    params = expand(query, Preferences(), TODAY)
    assert [p.origin for p in params] == ["GRU", "GIG", "SSA"]
    assert all(p.destination == "EZE" for p in params)
    assert all(p.departure_date == date(2024, 10, 15) for p in params)


def test_round_trip_windows():
    query = parse_query("EZE MAD 2024-10-01 2024-10-20 5 10 2 1")
    params = expand(query, Preferences(), TODAY)

    going = [p for p in params if p.origin == "EZE"]
    coming = [p for p in params if p.origin == "MAD"]
    assert going[0].departure_date == date(2024, 10, 1)
    assert going[-1].departure_date == date(2024, 10, 15)
    assert coming[0].departure_date == date(2024, 10, 6)
    assert coming[-1].departure_date == date(2024, 10, 20)
    assert len(going) == len(coming) == 15
    assert all(p.adults == 2 for p in going)
    assert all(p.adults == 1 for p in coming)


@pytest.mark.parametrize("non_gol, expected", [(None, True), (True, True), (False, False)])
def test_force_congener(non_gol, expected):
    query = parse_query("EZE MAD 2024-10-15")
    params = expand(query, Preferences(brasil_non_gol=non_gol), TODAY)
    assert params[0].force_congener is expected


# ────────────────────────────────────────────────────────────────
# SearchExpander
# ────────────────────────────────────────────────────────────────


def test_run_ranks_and_limits():
    fetcher = FakeFetcher(lambda p: 60000 - p.departure_date.day * 1000)
    expander = SearchExpander(fetcher, default_max_results=3, today=lambda: TODAY)

    result = expander.run(parse_query("EZE MAD 2024-10 1 10"), Preferences())

    assert len(fetcher.fetched) == 10
    assert [r.price for r in result.records] == [50000, 51000, 52000]
    assert result.records[0].departure_date == date(2024, 10, 10)
    assert result.records[0].airline == "Aerolineas"
    assert result.records[0].seats == 4
    assert result.departure_month == "10"


def test_run_uses_preference_limit():
    fetcher = FakeFetcher(lambda p: 40000)
    expander = SearchExpander(fetcher, today=lambda: TODAY)

    result = expander.run(parse_query("EZE MAD 2024-10"), Preferences(max_results=2))

    assert len(result.records) == 2


def test_failed_fetch_is_skipped():
    fetcher = FakeFetcher(lambda p: 40000, fail_on=date(2024, 10, 2))
    expander = SearchExpander(fetcher, today=lambda: TODAY)

    result = expander.run(parse_query("EZE MAD 2024-10 1 3"), Preferences())

    assert sorted(r.departure_day for r in result.records) == [1, 3]


def test_records_without_tax_are_dropped():
    fetcher = FakeFetcher(lambda p: 40000, no_tax=True)
    expander = SearchExpander(fetcher, today=lambda: TODAY)

    result = expander.run(parse_query("EZE MAD 2024-10 1 3"), Preferences())

    assert result.records == []


@patch("requests.get")
def test_bad_tax_payload_drops_only_that_flight(mock_get):
    def reply(url, params=None, headers=None, timeout=None):
        resp = Mock(status_code=200, text="")
        if url.endswith("/boardingtax"):
            miles = "N/A" if params["uid"] == "EZE-2024-10-01" else 12000
            resp.json.return_value = {
                "totals": {"totalBoardingTax": {"miles": miles, "money": 30000}}
            }
        else:
            leg = ParameterSet(
                params["originAirportCode"],
                params["destinationAirportCode"],
                date.fromisoformat(params["departureDate"]),
            )
            resp.json.return_value = make_response(leg, 40000)
        return resp

    mock_get.side_effect = reply
    fetcher = SmilesFetcher(Settings(SMILES_API_KEY="key", RETRY_DELAY_S=0))
    expander = SearchExpander(fetcher, today=lambda: TODAY)

    result = expander.run(parse_query("EZE MAD 2024-10 1 3"), Preferences())

    assert sorted(r.departure_day for r in result.records) == [2, 3]


def test_malformed_flights_are_dropped():
    class SloppyFetcher(FakeFetcher):
        def fetch(self, params):
            response = super().fetch(params)
            flight = response["requestedFlightSegmentList"][0]["flightList"][0]
            if params.departure_date.day == 1:
                flight["departure"]["date"] = "bad-date"
            if params.departure_date.day == 2:
                flight["fareList"][0]["miles"] = "N/A"
            return response

    expander = SearchExpander(SloppyFetcher(lambda p: 40000), today=lambda: TODAY)

    result = expander.run(parse_query("EZE MAD 2024-10 1 3"), Preferences())

    assert [r.departure_day for r in result.records] == [3]


def test_empty_responses_give_no_records():
    class EmptyFetcher(FakeFetcher):
        def fetch(self, params):
            return empty_response()

    expander = SearchExpander(EmptyFetcher(None), today=lambda: TODAY)
    result = expander.run(parse_query("EZE MAD 2024-10 1 3"), Preferences())
    assert result.records == []


def test_run_round_trip_pairs():
    def price(p):
        base = 10000 if p.origin == "EZE" else 20000
        return base + p.departure_date.day * 100

    fetcher = FakeFetcher(price)
    expander = SearchExpander(fetcher, default_max_results=10, today=lambda: TODAY)

    result = expander.run(parse_query("EZE MAD 2024-10-01 2024-10-10 3 5"), Preferences())

    assert result.query.kind is SearchKind.ROUND_TRIP
    assert len(result.records) == 10
    assert all(isinstance(r, RoundTripRecord) for r in result.records)
    assert all(3 <= r.gap_days <= 5 for r in result.records)
    totals = [r.total_price for r in result.records]
    assert totals == sorted(totals)
    assert totals[0] == 10100 + 20400
