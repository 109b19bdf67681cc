from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from .config import CITY_AIRPORTS
from .models import NO_RESULT_PRICE, FlightRecord, Preferences

logger = logging.getLogger(__name__)


# ────────────────────────────────────────────────────────────────
# 1.  Wybór najlepszej taryfy w liście lotów
# ────────────────────────────────────────────────────────────────


def _passes_preferences(
    flight: Mapping[str, Any], preferences: Preferences, cabin: Optional[str]
) -> bool:
    if cabin and cabin.lower() != "all":
        if str(flight.get("cabin", "")).upper() != cabin.upper():
            return False

    airline_code = (flight.get("airline") or {}).get("code")
    if preferences.airlines and airline_code in preferences.airlines:
        return False

    if preferences.max_stops is not None:
        if int(flight.get("stops") or 0) > preferences.max_stops:
            return False

    if preferences.max_hours is not None:
        hours = (flight.get("duration") or {}).get("hours")
        if hours is not None and int(hours) > preferences.max_hours:
            return False

    return True


def best_flight(
    segment: Optional[Mapping[str, Any]],
    preferences: Preferences,
    cabin: Optional[str] = None,
) -> Tuple[Mapping[str, Any], int, Optional[float], Optional[str]]:
    """Return ``(flight, miles, money, fare_uid)`` of the cheapest matching fare.

    When nothing matches, the flight is empty and the price is
    ``NO_RESULT_PRICE``.
    """
    cabin = cabin or preferences.cabin_type
    best: Tuple[Mapping[str, Any], int, Optional[float], Optional[str]] = (
        {},
        NO_RESULT_PRICE,
        None,
        None,
    )
    for flight in (segment or {}).get("flightList") or []:
        try:
            if not _passes_preferences(flight, preferences, cabin):
                continue
        except (TypeError, ValueError):
            logger.warning("Skipping flight %s with malformed stops or duration", flight.get("uid"))
            continue
        for fare in flight.get("fareList") or []:
            if fare.get("type") != preferences.fare_type:
                continue
            try:
                miles = int(fare["miles"])
            except (KeyError, TypeError, ValueError):
                continue
            if miles < best[1]:
                best = (flight, miles, fare.get("money"), fare.get("uid"))
    return best


def belongs_to_city(airport: Optional[str], city: str) -> bool:
    """``True`` when *airport* is *city* or one of its metropolitan airports."""
    if not airport:
        return False
    return airport == city or airport in CITY_AIRPORTS.get(city, [])


# ────────────────────────────────────────────────────────────────
# 2.  Walidacja i ranking
# ────────────────────────────────────────────────────────────────


def validate(record: FlightRecord) -> bool:
    """A record is usable only with a real price and a known boarding tax."""
    return bool(
        record.price
        and record.price != NO_RESULT_PRICE
        and record.tax is not None
        and record.tax.miles
    )


def rank(records: Sequence[FlightRecord], limit: Optional[int]) -> List[FlightRecord]:
    """Sort *records* by price (stable) and keep the first *limit*."""
    ordered = sorted(records, key=lambda r: r.price)
    if limit is None:
        return ordered
    return ordered[: max(0, int(limit))]


def result_limit(preferences: Preferences, default: int) -> int:
    return int(preferences.max_results) if preferences.max_results else int(default)


__all__ = [
    "best_flight",
    "belongs_to_city",
    "validate",
    "rank",
    "result_limit",
]
