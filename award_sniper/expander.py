"""Search-space expansion: one logical query -> many upstream requests."""

from __future__ import annotations

import calendar
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence

from .flight_filter import belongs_to_city, best_flight, rank, result_limit, validate
from .models import (
    FlightRecord,
    ParameterSet,
    Preferences,
    SearchKind,
    SearchQuery,
    SearchResult,
)
from .pair_engine import match, split_legs

logger = logging.getLogger(__name__)


# ────────────────────────────────────────────────────────────────
# Helpers
# ────────────────────────────────────────────────────────────────


def _year_month(departure: str) -> tuple[int, int]:
    year, month = departure[:7].split("-")
    return int(year), int(month)


def last_day_of_month(departure: str) -> int:
    year, month = _year_month(departure)
    return calendar.monthrange(year, month)[1]


def first_open_day(departure: str, today: date) -> int:
    """First day of the target month that has not already elapsed."""
    year, month = _year_month(departure)
    if (year, month) == (today.year, today.month):
        return today.day
    if (year, month) < (today.year, today.month):
        return last_day_of_month(departure) + 1
    return 1


def day_range(query: SearchQuery, today: date) -> List[date]:
    year, month = _year_month(query.departure)
    start = query.start_day if query.start_day else first_open_day(query.departure, today)
    end = query.end_day if query.end_day else last_day_of_month(query.departure)
    end = min(end, last_day_of_month(query.departure))
    return [date(year, month, day) for day in range(start, end + 1)]


def date_span(first: date, last: date) -> Iterator[date]:
    current = first
    while current <= last:
        yield current
        current += timedelta(days=1)


def _force_congener(preferences: Preferences) -> bool:
    if preferences.brasil_non_gol is None:
        return True
    return bool(preferences.brasil_non_gol)


# ────────────────────────────────────────────────────────────────
# Expansion
# ────────────────────────────────────────────────────────────────


def expand(
    query: SearchQuery, preferences: Preferences, today: Optional[date] = None
) -> List[ParameterSet]:
    """Return every upstream request needed to answer *query*."""
    today = today or date.today()
    congener = _force_congener(preferences)

    if query.kind is SearchKind.SINGLE:
        return [
            ParameterSet(
                query.origin,
                query.destination,
                day,
                adults=query.adults_going,
                force_congener=congener,
            )
            for day in day_range(query, today)
        ]

    if query.kind in (SearchKind.MULTI_DESTINATION, SearchKind.MULTI_ORIGIN):
        multiple_origin = query.kind is SearchKind.MULTI_ORIGIN
        cities = query.origins if multiple_origin else query.destinations
        if query.fixed_day:
            days = [date.fromisoformat(query.departure)]
        else:
            days = day_range(query, today)
        return [
            ParameterSet(
                city if multiple_origin else query.origin,
                query.destination if multiple_origin else city,
                day,
                adults=query.adults_going,
                force_congener=congener,
            )
            for city in cities
            for day in days
        ]

    if query.kind is SearchKind.ROUND_TRIP:
        if query.return_date is None or query.min_days is None:
            raise ValueError("round trip needs a return date and a minimum stay")
        departure = date.fromisoformat(query.departure)
        last_departure = query.return_date - timedelta(days=query.min_days)
        first_return = departure + timedelta(days=query.min_days)
        going = [
            ParameterSet(
                query.origin,
                query.destination,
                day,
                adults=query.adults_going,
                force_congener=congener,
            )
            for day in date_span(departure, last_departure)
        ]
        coming = [
            ParameterSet(
                query.destination,
                query.origin,
                day,
                adults=query.adults_coming,
                force_congener=congener,
            )
            for day in date_span(first_return, query.return_date)
        ]
        return going + coming

    raise ValueError(f"unsupported search kind: {query.kind}")


# ────────────────────────────────────────────────────────────────
# Execution
# ────────────────────────────────────────────────────────────────


def _departure_airport(response: Mapping[str, Any]) -> Optional[str]:
    segment = (response.get("requestedFlightSegmentList") or [{}])[0] or {}
    airports = (segment.get("airports") or {}).get("departureAirportList") or []
    if airports:
        return airports[0].get("code")
    for flight in segment.get("flightList") or []:
        return ((flight.get("departure") or {}).get("airport") or {}).get("code")
    return None


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class SearchExpander:
    """Run an expanded query against the fetcher and collect flight records."""

    def __init__(
        self,
        fetcher,
        *,
        default_max_results: int = 10,
        max_workers: int = 16,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.fetcher = fetcher
        self.default_max_results = default_max_results
        self.max_workers = max_workers
        self.today = today

    def run(self, query: SearchQuery, preferences: Preferences) -> SearchResult:
        params = expand(query, preferences, self.today())
        logger.info("Expanded %s into %d requests", query.text or query.kind.value, len(params))
        responses = self.fetch_all(params)
        records = [r for r in self.aggregate(responses, query, preferences) if validate(r)]
        limit = result_limit(preferences, self.default_max_results)

        if query.kind is SearchKind.ROUND_TRIP:
            outbound, inbound = split_legs(records, query.origin)
            pairs = match(outbound, inbound, query.min_days, query.max_days, query.origin)
            return SearchResult(query=query, records=list(pairs[:limit]))

        return SearchResult(
            query=query,
            records=list(rank(records, limit)),
            departure_month=query.year_month[5:7],
        )

    def fetch_all(self, params: Sequence[ParameterSet]) -> List[Dict[str, Any]]:
        """Fetch every parameter set concurrently and keep the ones that completed."""
        if not params:
            return []
        workers = max(1, min(self.max_workers, len(params)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fetch") as pool:
            futures = [pool.submit(self.fetcher.fetch, p) for p in params]
            responses = []
            for param, future in zip(params, futures):
                exc = future.exception()
                if exc is not None:
                    logger.error("fetch %s failed: %s", param.describe(), exc)
                    continue
                responses.append(future.result())
        return responses

    def aggregate(
        self,
        responses: Sequence[Mapping[str, Any]],
        query: SearchQuery,
        preferences: Preferences,
    ) -> List[FlightRecord]:
        """Map raw responses to flight records, looking up taxes concurrently."""
        if not responses:
            return []

        def cabin_for(response: Mapping[str, Any]) -> Optional[str]:
            if query.kind is not SearchKind.ROUND_TRIP:
                return query.cabin_going
            if belongs_to_city(_departure_airport(response), query.origin):
                return query.cabin_going
            return query.cabin_coming

        def build(response: Mapping[str, Any]) -> FlightRecord:
            segment = (response.get("requestedFlightSegmentList") or [{}])[0]
            flight, price, money, fare_uid = best_flight(
                segment, preferences, cabin_for(response)
            )
            departure = flight.get("departure") or {}
            arrival = flight.get("arrival") or {}
            raw_date = departure.get("date")
            tax = None
            if fare_uid:
                tax = self.fetcher.fetch_tax(
                    flight.get("uid"), fare_uid, preferences.smiles_and_money
                )
            return FlightRecord(
                origin=(departure.get("airport") or {}).get("code"),
                destination=(arrival.get("airport") or {}).get("code"),
                price=price,
                money=money,
                departure_date=date.fromisoformat(raw_date[:10]) if raw_date else None,
                stops=_to_int(flight.get("stops")),
                duration=_to_int((flight.get("duration") or {}).get("hours")),
                airline=(flight.get("airline") or {}).get("name"),
                seats=_to_int(flight.get("availableSeats")),
                tax=tax,
                fare_type=preferences.fare_type,
            )

        def to_record(response: Mapping[str, Any]) -> Optional[FlightRecord]:
            try:
                return build(response)
            except (TypeError, ValueError, AttributeError) as exc:
                logger.warning("Dropping malformed flight: %s", exc)
                return None

        workers = max(1, min(self.max_workers, len(responses)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="tax") as pool:
            records = list(pool.map(to_record, responses))
        return [r for r in records if r is not None]


__all__ = [
    "SearchExpander",
    "expand",
    "day_range",
    "first_open_day",
    "last_day_of_month",
]
