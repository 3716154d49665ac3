"""Domain service: Expiry Clock.

Derives the remaining time of each open quote window from the
repository's absolute ``quote_expiry``.  The clock never changes an
order; it is a read model the handlers consult before allowing an
action, and a source of ``QuoteWindowExpired`` signals.

Guarantees, for a fixed deadline:
- ``seconds_left`` never increases between reads and bottoms out at 0
- ``QuoteWindowExpired`` is emitted exactly once while the order is tracked

Time comes from an injected ``now`` callable, so nothing here depends on
wall-clock sleeps except the optional ``run()`` loop.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import datetime

from rxquote.domain.model.events import QuoteWindowExpired
from rxquote.domain.model.prescription_order import (
    WINDOWED_STATUSES,
    PrescriptionOrder,
    seconds_until,
    utc_now,
)

logger = logging.getLogger("rxquote.expiry_clock")

ExpiryCallback = Callable[[QuoteWindowExpired], None]


class ClockSubscription:
    """Handle returned by ``ExpiryClock.subscribe``.

    After ``cancel()`` the callback is never invoked again, even from a
    tick that is already dispatching.
    """

    def __init__(self, clock: ExpiryClock, order_id: str | None, callback: ExpiryCallback) -> None:
        self._clock = clock
        self.order_id = order_id
        self._callback = callback
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self.active = False
            self._clock._discard(self)

    def _deliver(self, event: QuoteWindowExpired) -> None:
        if self.active:
            self._callback(event)


class ExpiryClock:

    def __init__(
        self,
        now: Callable[[], datetime] = utc_now,
        tick_interval: float = 1.0,
    ) -> None:
        self._now = now
        self._tick_interval = tick_interval
        self._deadlines: dict[str, datetime | None] = {}
        self._last_reported: dict[str, int] = {}
        self._signalled: set[tuple[str, datetime | None]] = set()
        self._subscriptions: list[ClockSubscription] = []
        self._task: asyncio.Task | None = None

    def now(self) -> datetime:
        return self._now()

    # --- Tracking -------------------------------------------------------------

    def track(self, order: PrescriptionOrder) -> None:
        """Follow *order*'s window, or stop following it once the window is gone."""
        order_id = str(order.id)
        if order.status not in WINDOWED_STATUSES:
            self.untrack(order_id)
            return
        if order_id in self._deadlines and self._deadlines[order_id] == order.quote_expiry:
            return
        self._deadlines[order_id] = order.quote_expiry
        self._last_reported.pop(order_id, None)

    def untrack(self, order_id: str) -> None:
        self._deadlines.pop(order_id, None)
        self._last_reported.pop(order_id, None)
        self._signalled = {key for key in self._signalled if key[0] != order_id}

    def is_tracking(self, order_id: str) -> bool:
        return order_id in self._deadlines

    # --- Read model -----------------------------------------------------------

    def seconds_left(self, order_id: str) -> int:
        """Remaining whole seconds for a tracked order; 0 if untracked."""
        if order_id not in self._deadlines:
            return 0
        remaining = seconds_until(self._deadlines[order_id], self._now())
        last = self._last_reported.get(order_id)
        if last is not None and remaining > last:
            remaining = last
        self._last_reported[order_id] = remaining
        return remaining

    def seconds_left_for(self, order: PrescriptionOrder) -> int:
        """Track *order* and return its remaining time."""
        self.track(order)
        if self.is_tracking(str(order.id)):
            return self.seconds_left(str(order.id))
        return seconds_until(order.quote_expiry, self._now())

    # --- Signals --------------------------------------------------------------

    def subscribe(self, callback: ExpiryCallback, order_id: str | None = None) -> ClockSubscription:
        """Call *callback* when a window expires (only *order_id*'s, if given)."""
        subscription = ClockSubscription(self, order_id, callback)
        self._subscriptions.append(subscription)
        return subscription

    def tick(self) -> list[QuoteWindowExpired]:
        """Recompute every tracked window and emit newly expired ones."""
        emitted: list[QuoteWindowExpired] = []
        for order_id, deadline in list(self._deadlines.items()):
            if self.seconds_left(order_id) > 0:
                continue
            key = (order_id, deadline)
            if key in self._signalled:
                continue
            self._signalled.add(key)
            event = QuoteWindowExpired(order_id=order_id)
            logger.info("Quote window for order %s expired", order_id)
            emitted.append(event)
            self._dispatch(event)
        return emitted

    # --- Timer loop -----------------------------------------------------------

    async def run(self) -> None:
        while True:
            self.tick()
            await asyncio.sleep(self._tick_interval)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    # --- Internal helpers -----------------------------------------------------

    def _dispatch(self, event: QuoteWindowExpired) -> None:
        for subscription in list(self._subscriptions):
            if subscription.order_id not in (None, event.order_id):
                continue
            try:
                subscription._deliver(event)
            except Exception:
                logger.exception("Expiry listener failed for order %s", event.order_id)

    def _discard(self, subscription: ClockSubscription) -> None:
        with contextlib.suppress(ValueError):
            self._subscriptions.remove(subscription)
