"""Plain-text rendering of search results.

Every result line carries its price inside a ``*...*`` span, starting with
the award price; ``alert_engine.extract_min_price`` reads it back from there.
"""

from __future__ import annotations

from typing import List

from .models import FlightRecord, RoundTripRecord, SearchKind, SearchResult

NOT_FOUND = "No se encontraron vuelos"


def _day_month(rec: FlightRecord) -> str:
    return rec.departure_date.strftime("%d/%m") if rec.departure_date else "?"


def _details(rec: FlightRecord) -> str:
    parts = []
    if rec.airline:
        parts.append(rec.airline)
    if rec.stops is not None:
        parts.append(f"{rec.stops} escalas")
    if rec.duration is not None:
        parts.append(f"{rec.duration}h")
    if rec.seats is not None:
        parts.append(f"{rec.seats} asientos")
    return " ".join(parts)


def _header(result: SearchResult) -> str:
    q = result.query
    if q.kind is SearchKind.MULTI_ORIGIN:
        return f"{q.region} {q.destination} {q.departure}"
    if q.kind is SearchKind.MULTI_DESTINATION:
        return f"{q.origin} {q.region} {q.departure}"
    if q.kind is SearchKind.ROUND_TRIP:
        return f"{q.origin} {q.destination} {q.departure} {q.return_date.isoformat()}"
    return f"{q.origin} {q.destination} {q.departure}"


def _flight_line(result: SearchResult, rec: FlightRecord) -> str:
    q = result.query
    if q.kind is SearchKind.MULTI_ORIGIN:
        label = f"{rec.origin} {_day_month(rec)}"
    elif q.kind is SearchKind.MULTI_DESTINATION:
        label = f"{rec.destination} {_day_month(rec)}"
    else:
        label = _day_month(rec)
    price = f"{rec.price} + {rec.tax.miles}/{rec.tax.money}"
    return f"✈️ [{label}]: *{price}* {_details(rec)}".rstrip()


def _round_trip_line(pair: RoundTripRecord) -> str:
    out, ret = pair.outbound, pair.inbound
    miles = (out.tax.miles_number + ret.tax.miles_number) // 1000
    money = int(out.tax.money_number + ret.tax.money_number) // 1000
    price = f"{pair.total_price} ({out.price} + {ret.price}) + {miles}K/${money}K"
    return (
        f"✈️ [{_day_month(out)} - {_day_month(ret)}]: *{price}*"
        f" IDA: {_details(out)} VUELTA: {_details(ret)}"
    )


def render(result: SearchResult) -> str:
    """Render *result*; an empty result is a single line with no line break."""
    if not result.records:
        return NOT_FOUND
    lines: List[str] = [_header(result)]
    for rec in result.records:
        if isinstance(rec, RoundTripRecord):
            lines.append(_round_trip_line(rec))
        else:
            lines.append(_flight_line(result, rec))
    return "\n".join(lines) + "\n"


__all__ = ["NOT_FOUND", "render"]
