from __future__ import annotations

import logging
from typing import Mapping, Optional, Sequence, Tuple

from . import db
from .config import REGIONS
from .dispatch_queue import DispatchQueue, QueueTicket
from .expander import SearchExpander
from .formatting import render
from .models import FlightRecord, Preferences, SearchKind, SearchResult
from .notifier import ChatId, Notifier
from .query import QueryParseError, parse_query

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Hubo un error, intentá de nuevo más tarde"


class SearchRunner:
    """Parse a search, run it and render the answer."""

    def __init__(
        self,
        expander: SearchExpander,
        db_path: str = db.DB_FILE,
        *,
        regions: Optional[Mapping[str, Sequence[str]]] = None,
        queue: Optional[DispatchQueue] = None,
    ) -> None:
        self.expander = expander
        self.db_path = db_path
        self.regions = REGIONS if regions is None else regions
        self.queue = queue

    def search(self, text: str, requester: Optional[str] = None) -> Tuple[SearchResult, str]:
        query = parse_query(text, self.regions, requester)
        prefs = self._preferences(requester)
        result = self.expander.run(query, prefs)
        self._record(result)
        return result, render(result)

    def search_text(self, text: str, requester: Optional[str] = None) -> str:
        return self.search(text, requester)[1]

    def submit(
        self,
        text: str,
        requester: Optional[str],
        chat_id: ChatId,
        notifier: Notifier,
        *,
        wants_progress: bool = True,
    ) -> QueueTicket:
        """Run the search through the dispatch queue and send the answer to *chat_id*."""
        if self.queue is None:
            raise RuntimeError("no dispatch queue configured")

        def job() -> None:
            try:
                answer = self.search_text(text, requester)
            except QueryParseError as exc:
                logger.info("Rejected search %r: %s", text, exc)
                answer = f"{text}: {exc}"
            except Exception:
                logger.exception("Search %r failed", text)
                answer = f"{text}: {GENERIC_ERROR}"
            notifier.send(chat_id, answer)

        return self.queue.enqueue(job, chat_id, wants_progress=wants_progress, label=text)

    # ──────────────────────────────────────────────────────────

    def _preferences(self, requester: Optional[str]) -> Preferences:
        try:
            return db.get_preferences(requester, db_path=self.db_path)
        except db.StoreError:
            logger.exception("Could not load preferences of %s", requester)
            return Preferences()

    def _record(self, result: SearchResult) -> None:
        if result.query.kind is SearchKind.ROUND_TRIP or not result.records:
            return
        best = result.records[0]
        if not isinstance(best, FlightRecord):
            return
        year, month = result.query.year_month.split("-")
        try:
            db.insert_search(
                result.query.requester,
                best.origin,
                best.destination,
                int(year),
                int(month),
                best.price,
                db_path=self.db_path,
            )
        except db.StoreError:
            logger.exception("Could not record search %s", result.query.text)


__all__ = ["SearchRunner", "GENERIC_ERROR"]
