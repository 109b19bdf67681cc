"""Parse free-text searches like ``EZE MAD 2024-10`` into a ``SearchQuery``.

Accepted shapes::

    EZE MAD 2024-10 [start end] [cabin]            single, whole month or day range
    EZE MAD 2024-10-15 [cabin]                      single, one day
    EZE EUROPA 2024-10 [start end] | 2024-10-15     multi destination (month / fixed day)
    ARGENTINA MAD 2024-10 [start end] | 2024-10-15  multi origin (month / fixed day)
    EZE MAD 2024-10-01 2024-10-20 [min max] [adults_going adults_coming]
        [cabin_going cabin_coming]                  round trip
"""

from __future__ import annotations

import re
from datetime import date
from typing import List, Mapping, Optional, Sequence, Tuple

from .config import REGIONS
from .models import SearchKind, SearchQuery

AIRPORT_RE = re.compile(r"^[A-Z]{3}$")
MONTH_RE = re.compile(r"^\d{4}-\d{2}$")
DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
CABINS = {"ALL", "ECONOMIC", "PREMIUM_ECONOMIC", "BUSINESS", "FIRST"}

DEFAULT_MIN_DAYS = 7
DEFAULT_MAX_DAYS = 20


class QueryParseError(ValueError):
    """The search text does not match any supported shape."""


def _region(token: str, regions: Mapping[str, Sequence[str]]) -> Optional[Tuple[str, List[str]]]:
    for name, airports in regions.items():
        if name.upper() == token.upper():
            return name, list(airports)
    return None


def _date(token: str) -> date:
    try:
        return date.fromisoformat(token)
    except ValueError as exc:
        raise QueryParseError(f"invalid date: {token}") from exc


def _month(token: str) -> str:
    month = int(token[5:7])
    if not 1 <= month <= 12:
        raise QueryParseError(f"invalid month: {token}")
    return token


def _extras(tokens: Sequence[str], max_ints: int) -> Tuple[List[int], List[str]]:
    """Split trailing tokens into integers followed by cabin names."""
    ints: List[int] = []
    cabins: List[str] = []
    for tok in tokens:
        if tok.isdigit() and not cabins and len(ints) < max_ints:
            ints.append(int(tok))
        elif tok.upper() in CABINS and len(cabins) < 2:
            cabins.append(tok.upper())
        else:
            raise QueryParseError(f"unexpected token: {tok}")
    return ints, cabins


def _day_bounds(ints: List[int], departure: str) -> Tuple[Optional[int], Optional[int]]:
    if not ints:
        return None, None
    if len(ints) != 2:
        raise QueryParseError("a day range needs both a start and an end day")
    start, end = ints
    if not 1 <= start <= end <= 31:
        raise QueryParseError(f"invalid day range {start}-{end} for {departure}")
    return start, end


def parse_query(
    text: str,
    regions: Optional[Mapping[str, Sequence[str]]] = None,
    requester: Optional[str] = None,
) -> SearchQuery:
    regions = REGIONS if regions is None else regions
    tokens = text.strip().split()
    if len(tokens) < 3:
        raise QueryParseError(f"search too short: {text!r}")

    first, second = tokens[0].upper(), tokens[1].upper()
    when, rest = tokens[2], tokens[3:]
    first_region = _region(first, regions)
    second_region = _region(second, regions)

    if not (AIRPORT_RE.match(first) or first_region):
        raise QueryParseError(f"unknown origin: {first}")
    if not (AIRPORT_RE.match(second) or second_region):
        raise QueryParseError(f"unknown destination: {second}")
    if first_region and second_region:
        raise QueryParseError("only one side of the search can be a region")

    # round trip: two full dates
    if rest and DAY_RE.match(when) and DAY_RE.match(rest[0]):
        if first_region or second_region:
            raise QueryParseError("round trips need two airports")
        departure, return_date = _date(when), _date(rest[0])
        if return_date <= departure:
            raise QueryParseError("return date must be after departure date")
        ints, cabins = _extras(rest[1:], max_ints=4)
        if len(ints) in (1, 3):
            raise QueryParseError("stay bounds and passengers come in pairs")
        min_days, max_days = (ints[0], ints[1]) if ints else (DEFAULT_MIN_DAYS, DEFAULT_MAX_DAYS)
        if min_days > max_days:
            raise QueryParseError("minimum stay is longer than maximum stay")
        adults_going, adults_coming = (ints[2], ints[3]) if len(ints) == 4 else (1, 1)
        return SearchQuery(
            kind=SearchKind.ROUND_TRIP,
            origins=(first,),
            destinations=(second,),
            departure=departure.isoformat(),
            return_date=return_date,
            min_days=min_days,
            max_days=max_days,
            adults_going=adults_going,
            adults_coming=adults_coming,
            cabin_going=cabins[0] if cabins else None,
            cabin_coming=cabins[1] if len(cabins) > 1 else (cabins[0] if cabins else None),
            requester=requester,
            text=text.strip(),
        )

    if DAY_RE.match(when):
        day = _date(when)
        ints, cabins = _extras(rest, max_ints=0)
        departure = day.isoformat()
        start_day = end_day = day.day
        fixed_day = True
    elif MONTH_RE.match(when):
        departure = _month(when)
        ints, cabins = _extras(rest, max_ints=2)
        start_day, end_day = _day_bounds(ints, departure)
        fixed_day = False
    else:
        raise QueryParseError(f"invalid date: {when}")

    cabin = cabins[0] if cabins else None

    if first_region or second_region:
        region_name, airports = first_region or second_region
        multiple_origin = first_region is not None
        return SearchQuery(
            kind=SearchKind.MULTI_ORIGIN if multiple_origin else SearchKind.MULTI_DESTINATION,
            origins=tuple(airports) if multiple_origin else (first,),
            destinations=(second,) if multiple_origin else tuple(airports),
            departure=departure,
            start_day=None if fixed_day else start_day,
            end_day=None if fixed_day else end_day,
            fixed_day=fixed_day,
            cabin_going=cabin,
            requester=requester,
            region=region_name,
            text=text.strip(),
        )

    return SearchQuery(
        kind=SearchKind.SINGLE,
        origins=(first,),
        destinations=(second,),
        departure=departure[:7],
        start_day=start_day,
        end_day=end_day,
        cabin_going=cabin,
        requester=requester,
        text=text.strip(),
    )


__all__ = ["QueryParseError", "parse_query"]
