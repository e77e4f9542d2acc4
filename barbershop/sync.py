"""Keeping the in-memory snapshot fresh.

Two producers may be active at once: a poller that fires every few seconds
and a realtime listener fed by database change notifications. Neither one
touches data; both only mark the snapshot stale, and the next reader
refetches everything and recomputes from scratch.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable

from .entities import Appointment, Client, Service, utc_now

logger = logging.getLogger(__name__)

WATCHED_TABLES = frozenset({"appointments", "clients", "services"})


@dataclass(frozen=True)
class Snapshot:
    clients: tuple[Client, ...] = ()
    appointments: tuple[Appointment, ...] = ()
    services: tuple[Service, ...] = ()
    fetched_at: datetime = field(default_factory=utc_now)


class RefreshCoordinator:
    """Holds the latest snapshot and refetches it after an invalidation."""

    def __init__(self, fetch: Callable[[], Snapshot]) -> None:
        self._fetch = fetch
        self._lock = threading.Lock()
        self._snapshot: Snapshot | None = None
        self._dirty = True
        self.invalidations = 0

    @property
    def is_stale(self) -> bool:
        return self._dirty

    def invalidate(self, source: str) -> None:
        with self._lock:
            self._dirty = True
            self.invalidations += 1
        logger.debug("Snapshot invalidated by %s", source)

    def snapshot(self, fetch: Callable[[], Snapshot] | None = None) -> Snapshot:
        """Return the current snapshot, refetching first if it is stale.

        ``fetch`` overrides the loader for this call, e.g. to read through a
        request-scoped session.
        """
        with self._lock:
            if self._dirty or self._snapshot is None:
                # A failed fetch leaves the old snapshot and the dirty flag alone.
                self._snapshot = (fetch or self._fetch)()
                self._dirty = False
                logger.debug(
                    "Snapshot refreshed: %d clients, %d appointments",
                    len(self._snapshot.clients), len(self._snapshot.appointments),
                )
            return self._snapshot


class RealtimeListener:
    """Push producer: reacts to change payloads from the database."""

    def __init__(self, coordinator: RefreshCoordinator, tables: Iterable[str] = WATCHED_TABLES) -> None:
        self.coordinator = coordinator
        self.tables = frozenset(tables)

    def handle(self, payload: dict) -> bool:
        """Invalidate when the payload concerns a watched table.

        Accepts both ``{"table": ..., "eventType": ...}`` and the
        ``{"table": ..., "type": ...}`` webhook shape.
        """
        table = str(payload.get("table") or "").strip()
        event = payload.get("eventType") or payload.get("type") or "change"
        if table not in self.tables:
            return False
        self.coordinator.invalidate(f"realtime:{table}:{event}")
        return True


class PollingRefresher:
    """Poll producer: invalidates the snapshot every ``interval`` seconds."""

    def __init__(
        self,
        coordinator: RefreshCoordinator,
        interval: float,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.coordinator = coordinator
        self.interval = interval
        self.clock = clock
        self._last_poll: datetime | None = None
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def poll_once(self) -> bool:
        """Invalidate if the interval has elapsed since the previous poll."""
        now = self.clock()
        if self._last_poll is not None and (now - self._last_poll).total_seconds() < self.interval:
            return False
        self._last_poll = now
        self.coordinator.invalidate("poll")
        return True

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            self.poll_once()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="snapshot-poller", daemon=True)
        self._thread.start()
        logger.info("Snapshot polling every %ss", self.interval)

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval + 1)
            self._thread = None
