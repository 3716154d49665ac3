"""Application service: Accept Quote use case (customer side).

Accepts the latest quote together with the payment outcome reported by
the payment collaborator.  On an order that is already accepted, a
successful payment is recorded instead, so a payment confirmation
arriving after the acceptance still unlocks conversion.
"""

from __future__ import annotations

import logging

from rxquote.application.show_order import refetch_order
from rxquote.domain.exceptions import QuoteWindowExpiredError
from rxquote.domain.model.prescription_order import (
    DeliveryAddress,
    OrderStatus,
    PaymentConfirmation,
    PrescriptionOrder,
)
from rxquote.domain.repository.quote_repository import QuoteRepository
from rxquote.domain.service.expiry_clock import ExpiryClock

logger = logging.getLogger("rxquote.quotes")


class AcceptQuoteHandler:

    def __init__(self, quote_repo: QuoteRepository, clock: ExpiryClock) -> None:
        self._quote_repo = quote_repo
        self._clock = clock

    async def handle(
        self,
        order_id: str,
        payment: PaymentConfirmation,
        delivery_address: DeliveryAddress | None = None,
    ) -> PrescriptionOrder:
        order = await self._quote_repo.get_order(order_id)

        if order.status is OrderStatus.ACCEPTED:
            already_paid = order.payment is not None and order.payment.is_successful
            if payment.is_successful and not already_paid:
                await self._quote_repo.record_payment(order_id, payment.details)
                logger.info("Payment recorded for accepted order %s", order_id)
            return await refetch_order(self._quote_repo, order_id, order)

        order.check_can_accept(self._clock.seconds_left_for(order), delivery_address)

        try:
            await self._quote_repo.accept_quote(
                order_id,
                payment.status,
                payment.details,
                delivery_address=delivery_address,
            )
        except QuoteWindowExpiredError:
            self._clock.track(await refetch_order(self._quote_repo, order_id, order))
            raise

        updated = await refetch_order(self._quote_repo, order_id, order)
        self._clock.track(updated)
        return updated
