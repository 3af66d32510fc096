"""Background worker that closes abandoned purchase sessions."""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable

from .database import utcnow
from .errors import ConflictError
from .notifications import Notifier
from .orders import STATUS_REJECTED, OrderStore

LOGGER = logging.getLogger(__name__)


class AbandonedOrderSweeper(threading.Thread):
    """Rejects orders stuck in a buyer-owned step past the session timeout.

    Orders under admin review are never touched. The chat driver performs the
    same check lazily when the buyer writes again; this worker covers buyers
    who never come back.
    """

    def __init__(
        self,
        *,
        interval: float,
        timeout_minutes: int,
        orders: OrderStore,
        notifier: Notifier,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(daemon=True, name="abandoned-order-sweeper")
        self.interval = interval
        self.timeout = timedelta(minutes=timeout_minutes)
        self.orders = orders
        self.notifier = notifier
        self.clock = clock
        self._stop_event = threading.Event()

    def stop(self) -> None:
        self._stop_event.set()

    def run(self) -> None:  # pragma: no cover - background thread
        LOGGER.info("abandoned order sweeper started")
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception as exc:
                LOGGER.exception("sweeper tick failed: %s", exc)
            self._stop_event.wait(self.interval)
        LOGGER.info("abandoned order sweeper stopped")

    def tick(self) -> int:
        """Run one sweep; returns how many orders were closed."""

        stale = self.orders.find_stale(self.clock() - self.timeout)
        if not stale:
            return 0
        LOGGER.info("found %s abandoned orders", len(stale))
        closed = 0
        for order in stale:
            try:
                expired = self.orders.conditional_update(order.id, order.status, {"status": STATUS_REJECTED})
            except ConflictError:
                # buyer moved on between the query and the update
                continue
            closed += 1
            self.notifier.notify_expired(expired)
        return closed
