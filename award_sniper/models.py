"""Data models used throughout the project."""

from __future__ import annotations

import enum
import sys
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

# Price reported when no fare in a flight list matched the preferences
NO_RESULT_PRICE = sys.maxsize


class SearchKind(str, enum.Enum):
    SINGLE = "single"
    MULTI_DESTINATION = "multi_destination"
    MULTI_ORIGIN = "multi_origin"
    ROUND_TRIP = "round_trip"


@dataclass(slots=True)
class SearchQuery:
    kind: SearchKind
    origins: Tuple[str, ...]
    destinations: Tuple[str, ...]
    departure: str  # YYYY-MM or YYYY-MM-DD
    start_day: Optional[int] = None
    end_day: Optional[int] = None
    fixed_day: bool = False
    return_date: Optional[date] = None
    min_days: Optional[int] = None
    max_days: Optional[int] = None
    adults_going: int = 1
    adults_coming: int = 1
    cabin_going: Optional[str] = None
    cabin_coming: Optional[str] = None
    requester: Optional[str] = None
    region: Optional[str] = None
    text: str = ""

    @property
    def origin(self) -> str:
        return self.origins[0]

    @property
    def destination(self) -> str:
        return self.destinations[0]

    @property
    def year_month(self) -> str:
        return self.departure[:7]


@dataclass(frozen=True, slots=True)
class ParameterSet:
    origin: str
    destination: str
    departure_date: date
    adults: int = 1
    children: int = 0
    infants: int = 0
    cabin_type: str = "all"
    force_congener: bool = True

    def to_query(self, currency: str, region_code: str) -> Dict[str, str]:
        """Return the upstream query string parameters."""
        return {
            "adults": str(self.adults),
            "cabinType": self.cabin_type,
            "children": str(self.children),
            "currencyCode": currency,
            "infants": str(self.infants),
            "isFlexibleDateChecked": "false",
            "tripType": "2",
            "forceCongener": "true" if self.force_congener else "false",
            "r": region_code,
            "originAirportCode": self.origin,
            "destinationAirportCode": self.destination,
            "departureDate": self.departure_date.isoformat(),
        }

    def describe(self) -> str:
        return f"{self.origin} {self.destination} {self.departure_date.isoformat()}"


@dataclass(slots=True)
class TaxQuote:
    miles: str
    miles_number: int
    money: str
    money_number: float


@dataclass(slots=True)
class FlightRecord:
    origin: Optional[str]
    destination: Optional[str]
    price: Optional[int]
    money: Optional[float]
    departure_date: Optional[date]
    stops: Optional[int] = None
    duration: Optional[int] = None
    airline: Optional[str] = None
    seats: Optional[int] = None
    tax: Optional[TaxQuote] = None
    fare_type: Optional[str] = None

    @property
    def departure_day(self) -> Optional[int]:
        return self.departure_date.day if self.departure_date else None


@dataclass(slots=True)
class RoundTripRecord:
    outbound: FlightRecord
    inbound: FlightRecord

    @property
    def gap_days(self) -> int:
        return (self.inbound.departure_date - self.outbound.departure_date).days

    @property
    def total_price(self) -> int:
        return self.outbound.price + self.inbound.price


@dataclass(slots=True)
class Preferences:
    max_results: Optional[int] = None
    cabin_type: Optional[str] = None
    airlines: List[str] = field(default_factory=list)  # excluded airline codes
    max_stops: Optional[int] = None
    max_hours: Optional[int] = None
    smiles_and_money: bool = False
    brasil_non_gol: Optional[bool] = None

    @property
    def fare_type(self) -> str:
        return "SMILES_MONEY_CLUB" if self.smiles_and_money else "SMILES_CLUB"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_results": self.max_results,
            "cabin_type": self.cabin_type,
            "airlines": list(self.airlines),
            "max_stops": self.max_stops,
            "max_hours": self.max_hours,
            "smiles_and_money": self.smiles_and_money,
            "brasil_non_gol": self.brasil_non_gol,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Preferences":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass(slots=True)
class SearchResult:
    query: SearchQuery
    records: List[Union[FlightRecord, RoundTripRecord]]
    departure_month: Optional[str] = None

    @property
    def best_price(self) -> Optional[int]:
        if not self.records:
            return None
        first = self.records[0]
        if isinstance(first, RoundTripRecord):
            return first.total_price
        return first.price


@dataclass(slots=True)
class QueueEntry:
    job: Callable[[], Any]
    chat_id: Optional[Union[int, str]]
    enqueued_at: float
    wants_progress: bool = False
    label: str = ""


@dataclass(slots=True)
class Alert:
    requester: str
    search: str
    cron: str
    chat_id: Union[int, str]
    previous_result: Optional[str] = None
    updated_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass(slots=True)
class CronJob:
    requester: str
    search: str
    cron: str
    chat_id: Union[int, str]
    updated_at: Optional[datetime] = None
    id: Optional[int] = None


__all__ = [
    "NO_RESULT_PRICE",
    "SearchKind",
    "SearchQuery",
    "ParameterSet",
    "TaxQuote",
    "FlightRecord",
    "RoundTripRecord",
    "Preferences",
    "SearchResult",
    "QueueEntry",
    "Alert",
    "CronJob",
]
