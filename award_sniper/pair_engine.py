# -*- coding: utf-8 -*-
"""
pair_engine – parowanie lotów tam i z powrotem w podróż RT.
Warunek pary:
  min_days <= (data powrotu - data wylotu) <= max_days
Wynik sortowany rosnąco po sumie cen (sortowanie stabilne).
"""

from __future__ import annotations

import logging
from typing import List, Sequence, Tuple

from .flight_filter import belongs_to_city
from .models import FlightRecord, RoundTripRecord

logger = logging.getLogger(__name__)


def split_legs(
    records: Sequence[FlightRecord], origin: str
) -> Tuple[List[FlightRecord], List[FlightRecord]]:
    """Rozdziela rekordy na wyloty (z *origin*) i powroty."""
    outbound: List[FlightRecord] = []
    inbound: List[FlightRecord] = []
    for rec in records:
        if belongs_to_city(rec.origin, origin):
            outbound.append(rec)
        else:
            inbound.append(rec)
    return outbound, inbound


def match(
    outbound: Sequence[FlightRecord],
    inbound: Sequence[FlightRecord],
    min_days: int,
    max_days: int,
    origin: str,
) -> List[RoundTripRecord]:
    """Buduje wszystkie pary mieszczące się w oknie pobytu."""
    pairs: List[RoundTripRecord] = []
    for out in outbound:
        if out.departure_date is None:
            continue
        for ret in inbound:
            if ret.departure_date is None:
                continue
            gap = (ret.departure_date - out.departure_date).days
            if min_days <= gap <= max_days:
                pairs.append(RoundTripRecord(outbound=out, inbound=ret))

    pairs.sort(key=lambda p: p.total_price)
    logger.debug(
        "PAIR %s %d out x %d in -> %d pairs (%d-%d days)",
        origin,
        len(outbound),
        len(inbound),
        len(pairs),
        min_days,
        max_days,
    )
    return pairs


__all__ = ["match", "split_legs"]
