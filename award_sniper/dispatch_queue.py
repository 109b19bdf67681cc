"""FIFO serializer for interactive search jobs.

Only one job runs at a time and a job starts only after ``cooldown`` seconds
have passed since the previous one finished.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Deque, List, Optional, Union

from .models import QueueEntry

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[Union[int, str], str], None]


@dataclass(frozen=True, slots=True)
class QueueTicket:
    position: int
    eta_seconds: float


class DispatchQueue:
    def __init__(
        self,
        cooldown: float = 65.0,
        tick_interval: float = 0.5,
        *,
        clock: Callable[[], float] = time.monotonic,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.cooldown = cooldown
        self.tick_interval = tick_interval
        self._clock = clock
        self._progress = progress
        self._pending: Deque[QueueEntry] = deque()
        self._lock = threading.Lock()
        self._in_flight: Optional[QueueEntry] = None
        self._last_finished: Optional[float] = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="dispatch")

    # ──────────────────────────────────────────────────────────

    def enqueue(
        self,
        job: Callable[[], Any],
        chat_id: Optional[Union[int, str]] = None,
        *,
        wants_progress: bool = False,
        label: str = "",
    ) -> QueueTicket:
        """Append *job* and return its 0-based position and estimated wait."""
        entry = QueueEntry(
            job=job,
            chat_id=chat_id,
            enqueued_at=self._clock(),
            wants_progress=wants_progress,
            label=label,
        )
        with self._lock:
            self._pending.append(entry)
            position = len(self._pending) - 1
            eta = position * self.cooldown + self._remaining_cooldown()
            busy = self._in_flight is not None
        ticket = QueueTicket(position=position, eta_seconds=eta)
        logger.info("Queued %s at position %d (eta %.0fs)", label or "job", position, eta)
        behind_others = position > 0 or busy or eta > 0
        if wants_progress and self._progress and chat_id is not None and behind_others:
            self._notify(
                chat_id,
                f"⏳ En cola: posición {position}, espera estimada {int(round(eta))}s",
            )
        return ticket

    def tick(self) -> Optional[Future]:
        """Dispatch the head job if the queue is idle and the cooldown is over."""
        with self._lock:
            if self._in_flight is not None or not self._pending:
                return None
            if self._remaining_cooldown() > 0:
                return None
            entry = self._pending.popleft()
            self._in_flight = entry
        logger.info("Dispatching %s", entry.label or "job")
        return self._executor.submit(self._run, entry)

    def start(self, scheduler) -> None:
        """Register :meth:`tick` as an interval job on an APScheduler scheduler."""
        scheduler.add_job(
            self.tick,
            "interval",
            seconds=self.tick_interval,
            id="dispatch-queue-tick",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    # ──────────────────────────────────────────────────────────

    def pending(self) -> List[QueueEntry]:
        with self._lock:
            return list(self._pending)

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._in_flight is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    # ──────────────────────────────────────────────────────────

    def _remaining_cooldown(self) -> float:
        if self._last_finished is None:
            return 0.0
        return max(0.0, self.cooldown - (self._clock() - self._last_finished))

    def _run(self, entry: QueueEntry) -> None:
        if entry.wants_progress and self._progress and entry.chat_id is not None:
            self._notify(entry.chat_id, f"🔎 Buscando vuelos para: *{entry.label}*")
        try:
            entry.job()
        except Exception:
            logger.exception("Queued job %s failed", entry.label or "job")
        finally:
            with self._lock:
                self._in_flight = None
                self._last_finished = self._clock()

    def _notify(self, chat_id: Union[int, str], text: str) -> None:
        try:
            self._progress(chat_id, text)
        except Exception:
            logger.exception("Could not send queue progress to %s", chat_id)


__all__ = ["DispatchQueue", "QueueTicket"]
