"""Application service: Order Reconciler.

Polls one actor's prescription orders on a fixed interval and turns the
difference between consecutive fetches into typed events:

- ``NewOrderReceived`` once per order id, for orders first seen waiting.
  The seen ids are persisted, so a reload does not re-alert.
- ``OrderStatusChanged`` when an already seen order moves on, plus
  ``OrderConverted`` when it reaches CONVERTED.
- ``QuoteWindowLapsing`` once per window when it is about to close.
- ``QuoteWindowExpired`` forwarded from the expiry clock while running.
- ``OrderRejected`` once per manual upload the pharmacy turned down.
  The notified ids are persisted too, so a rejection that happened
  while nobody was watching is still reported on the next run.
- ``PollFailed`` when the repository is unreachable or refuses the
  fetch.  The loop carries on; the next tick simply tries again.

Observations that would move an order backwards within a quote round
are stale reads and are ignored, so a view never regresses.  Polling is
paused while a dialog needing user input is open.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from rxquote.domain.exceptions import DomainException
from rxquote.domain.model.events import (
    NewOrderReceived,
    OrderConverted,
    OrderEvent,
    OrderRejected,
    OrderStatusChanged,
    PollFailed,
    QuoteWindowExpired,
    QuoteWindowLapsing,
)
from rxquote.domain.model.prescription_order import (
    WINDOWED_STATUSES,
    Actor,
    OrderStatus,
    PrescriptionOrder,
    UploadMode,
)
from rxquote.domain.repository.quote_repository import QuoteRepository
from rxquote.domain.repository.seen_order_repository import SeenOrderRepository
from rxquote.domain.service.expiry_clock import ClockSubscription, ExpiryClock

logger = logging.getLogger("rxquote.reconciler")

DEFAULT_POLL_INTERVAL = 3.0
DEFAULT_LAPSE_WARNING_SECONDS = 60

OrderFetcher = Callable[[], Awaitable[list[PrescriptionOrder]]]
EventListener = Callable[[OrderEvent], None]


class OrderReconciler:

    def __init__(
        self,
        fetch: OrderFetcher,
        seen_repo: SeenOrderRepository,
        clock: ExpiryClock,
        interval: float = DEFAULT_POLL_INTERVAL,
        lapse_warning_seconds: int = DEFAULT_LAPSE_WARNING_SECONDS,
        rejection_notice_repo: SeenOrderRepository | None = None,
    ) -> None:
        self._fetch = fetch
        self._seen_repo = seen_repo
        self._clock = clock
        self._interval = interval
        self._lapse_warning_seconds = lapse_warning_seconds
        self._rejection_notice_repo = rejection_notice_repo

        self._orders: dict[str, PrescriptionOrder] = {}
        self._seen: set[str] = seen_repo.load()
        self._rejections_noticed: set[str] = (
            rejection_notice_repo.load() if rejection_notice_repo is not None else set()
        )
        self._lapse_warned: set[tuple[str, datetime | None]] = set()
        self._listeners: list[EventListener] = []
        self._pause_depth = 0
        self._lock = asyncio.Lock()
        self._task: asyncio.Task | None = None
        self._clock_subscription: ClockSubscription | None = None

    @classmethod
    def for_actor(
        cls,
        actor: Actor,
        quote_repo: QuoteRepository,
        seen_repo: SeenOrderRepository,
        clock: ExpiryClock,
        **kwargs,
    ) -> OrderReconciler:
        if actor is Actor.PHARMACY:
            fetch = quote_repo.list_orders_for_pharmacy
        else:
            fetch = quote_repo.list_orders_for_customer
        return cls(fetch, seen_repo, clock, **kwargs)

    # --- View model -----------------------------------------------------------

    @property
    def orders(self) -> list[PrescriptionOrder]:
        """Current view, newest first."""
        return sorted(self._orders.values(), key=lambda o: o.created_at, reverse=True)

    def get(self, order_id: str) -> PrescriptionOrder | None:
        return self._orders.get(order_id)

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        with contextlib.suppress(ValueError):
            self._listeners.remove(listener)

    # --- Pausing --------------------------------------------------------------

    @property
    def is_paused(self) -> bool:
        return self._pause_depth > 0

    def pause(self) -> None:
        self._pause_depth += 1

    def resume(self) -> None:
        self._pause_depth = max(0, self._pause_depth - 1)

    # --- Polling --------------------------------------------------------------

    async def poll_once(self) -> list[OrderEvent]:
        """Fetch, diff against the current view and emit the resulting events.

        Overlapping calls are serialized, so the seen set and the view
        have a single writer at a time.
        """
        async with self._lock:
            try:
                fetched = await self._fetch()
            except DomainException as exc:
                logger.warning("Order poll failed: %s", exc)
                return self._emit([PollFailed(reason=str(exc))])

            events = self._reconcile(fetched)
            events.extend(self._lapsing_windows())
            return self._emit(events)

    async def run(self) -> None:
        while True:
            if not self.is_paused:
                await self.poll_once()
            await asyncio.sleep(self._interval)

    def start(self) -> None:
        if self._clock_subscription is None:
            self._clock_subscription = self._clock.subscribe(self._on_window_expired)
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run())

    async def stop(self) -> None:
        if self._clock_subscription is not None:
            self._clock_subscription.cancel()
            self._clock_subscription = None
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    # --- Internal helpers -----------------------------------------------------

    def _reconcile(self, fetched: list[PrescriptionOrder]) -> list[OrderEvent]:
        events: list[OrderEvent] = []
        newly_seen: set[str] = set()
        fetched_ids: set[str] = set()

        for order in fetched:
            order_id = str(order.id)
            fetched_ids.add(order_id)
            previous = self._orders.get(order_id)

            if previous is not None and order.is_stale_compared_to(previous):
                logger.debug(
                    "Ignoring stale view of order %s (%s after %s)",
                    order_id,
                    order.status.value,
                    previous.status.value,
                )
                continue

            self._orders[order_id] = order
            self._clock.track(order)

            if order_id not in self._seen:
                newly_seen.add(order_id)
                if order.status is OrderStatus.WAITING_FOR_QUOTES:
                    events.append(NewOrderReceived(order=order))

            if previous is not None and previous.status is not order.status:
                events.append(
                    OrderStatusChanged(
                        order_id=order_id,
                        previous=previous.status,
                        current=order.status,
                    )
                )
                if order.status is OrderStatus.CONVERTED and order.converted_order_id:
                    events.append(
                        OrderConverted(order_id=order_id, new_order_id=order.converted_order_id)
                    )

        for order_id in set(self._orders) - fetched_ids:
            del self._orders[order_id]
            self._clock.untrack(order_id)
        self._lapse_warned = {
            key for key in self._lapse_warned
            if key[0] in self._orders and self._orders[key[0]].status in WINDOWED_STATUSES
        }

        if newly_seen:
            self._seen |= newly_seen
            self._seen_repo.add(newly_seen)

        events.extend(self._rejection_notices())
        return events

    def _rejection_notices(self) -> list[OrderEvent]:
        if self._rejection_notice_repo is None:
            return []
        events: list[OrderEvent] = []
        noticed: set[str] = set()
        for order_id, order in self._orders.items():
            if (
                order.status is OrderStatus.REJECTED
                and order.upload_mode is UploadMode.MANUAL
                and order_id not in self._rejections_noticed
            ):
                noticed.add(order_id)
                events.append(OrderRejected(order_id=order_id, reason=order.rejection_reason))
        if noticed:
            self._rejections_noticed |= noticed
            self._rejection_notice_repo.add(noticed)
        return events

    def _lapsing_windows(self) -> list[OrderEvent]:
        events: list[OrderEvent] = []
        for order_id, order in self._orders.items():
            if order.status not in WINDOWED_STATUSES:
                continue
            seconds_left = self._clock.seconds_left(order_id)
            if not 0 < seconds_left <= self._lapse_warning_seconds:
                continue
            key = (order_id, order.quote_expiry)
            if key in self._lapse_warned:
                continue
            self._lapse_warned.add(key)
            events.append(QuoteWindowLapsing(order_id=order_id, seconds_left=seconds_left))
        return events

    def _on_window_expired(self, event: QuoteWindowExpired) -> None:
        if event.order_id in self._orders:
            self._emit([event])

    def _emit(self, events: list[OrderEvent]) -> list[OrderEvent]:
        for event in events:
            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception:
                    logger.exception("Order event listener failed on %r", event)
        return events
