"""Application service: Quote Dialog.

Models a dialog open on one order, where a pharmacist fills in a quote
or a customer reviews one.  While open it:

- pauses the reconciler, so the order does not change under the user's hands
- listens to the expiry clock and closes itself when the window lapses

Once closed, by the user or by expiry, the dialog forwards nothing to the
repository and its clock subscription is gone.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from rxquote.application.dto import QuoteLineSpec
from rxquote.application.order_reconciler import OrderReconciler
from rxquote.application.respond_to_order import RespondToOrderHandler
from rxquote.application.submit_quote import SubmitQuoteHandler
from rxquote.domain.exceptions import (
    InvalidTransitionError,
    QuoteWindowExpiredError,
    ValidationError,
)
from rxquote.domain.model.events import QuoteWindowExpired
from rxquote.domain.model.prescription_order import (
    WINDOWED_STATUSES,
    OrderResponse,
    PrescriptionOrder,
)
from rxquote.domain.model.quote import QuoteMode
from rxquote.domain.service.expiry_clock import ClockSubscription, ExpiryClock

logger = logging.getLogger("rxquote.dialog")

EXPIRED_MESSAGE = "Quote window expired. You cannot submit a quote now."


class QuoteDialog:

    def __init__(
        self,
        order: PrescriptionOrder,
        clock: ExpiryClock,
        reconciler: OrderReconciler | None = None,
        on_close: Callable[[str], None] | None = None,
    ) -> None:
        self.order = order
        self.message = ""
        self._clock = clock
        self._reconciler = reconciler
        self._on_close = on_close
        self._subscription: ClockSubscription | None = None

    @property
    def order_id(self) -> str:
        return str(self.order.id)

    @property
    def is_open(self) -> bool:
        return self._subscription is not None

    @property
    def seconds_left(self) -> int:
        return self._clock.seconds_left(self.order_id) if self.is_open else 0

    # --- Lifecycle ------------------------------------------------------------

    def open(self) -> None:
        if self.is_open:
            return
        if self.order.status not in WINDOWED_STATUSES:
            raise InvalidTransitionError(
                f"Order {self.order_id} is {self.order.status.value}; nothing to respond to"
            )
        if self._clock.seconds_left_for(self.order) <= 0:
            raise QuoteWindowExpiredError(self.order_id)

        self._subscription = self._clock.subscribe(self._on_expired, order_id=self.order_id)
        if self._reconciler is not None:
            self._reconciler.pause()
        self.message = ""

    def close(self, message: str = "") -> None:
        if not self.is_open:
            return
        self._subscription.cancel()  # type: ignore[union-attr]
        self._subscription = None
        if self._reconciler is not None:
            self._reconciler.resume()
        self.message = message
        if self._on_close is not None:
            self._on_close(message)

    def __enter__(self) -> QuoteDialog:
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close(self.message)

    # --- Actions --------------------------------------------------------------

    async def submit_quote(
        self,
        handler: SubmitQuoteHandler,
        lines: list[QuoteLineSpec],
        mode: QuoteMode,
        message: str = "",
    ) -> PrescriptionOrder:
        self._require_open()
        try:
            self.order = await handler.handle(self.order_id, lines, mode, message)
        except QuoteWindowExpiredError:
            self.close(EXPIRED_MESSAGE)
            raise
        self.close("Quote submitted!")
        return self.order

    async def respond(
        self,
        handler: RespondToOrderHandler,
        response: OrderResponse,
        reason: str = "",
    ) -> PrescriptionOrder:
        self._require_open()
        try:
            self.order = await handler.handle(self.order_id, response, reason)
        except QuoteWindowExpiredError:
            self.close(EXPIRED_MESSAGE)
            raise
        self.close(
            "Order rejected." if response is OrderResponse.REJECTED else "Order confirmed."
        )
        return self.order

    # --- Internal helpers -----------------------------------------------------

    def _require_open(self) -> None:
        if self.is_open:
            return
        if self.message == EXPIRED_MESSAGE:
            raise QuoteWindowExpiredError(self.order_id)
        raise ValidationError("The dialog is closed")

    def _on_expired(self, event: QuoteWindowExpired) -> None:
        logger.info("Closing dialog for order %s: window expired", event.order_id)
        self.close(EXPIRED_MESSAGE)
