"""Application service: Respond To Order use case.

A pharmacy may only reject a waiting order; it accepts one by
submitting an accept-mode quote.  A customer may accept or reject the
quote it received (a rejection needs a reason) or withdraw a waiting
order.  Every response is barred once the window has closed.
"""

from __future__ import annotations

from rxquote.application.show_order import refetch_order
from rxquote.domain.exceptions import InvalidTransitionError, QuoteWindowExpiredError
from rxquote.domain.model.prescription_order import (
    Actor,
    OrderResponse,
    PrescriptionOrder,
)
from rxquote.domain.repository.quote_repository import QuoteRepository
from rxquote.domain.service.expiry_clock import ExpiryClock


class RespondToOrderHandler:

    def __init__(
        self,
        quote_repo: QuoteRepository,
        clock: ExpiryClock,
        actor: Actor,
    ) -> None:
        self._quote_repo = quote_repo
        self._clock = clock
        self._actor = actor

    async def handle(
        self,
        order_id: str,
        response: OrderResponse,
        reason: str = "",
    ) -> PrescriptionOrder:
        order = await self._quote_repo.get_order(order_id)
        seconds_left = self._clock.seconds_left_for(order)

        if response is OrderResponse.REJECTED:
            order.check_can_reject(self._actor, seconds_left, reason)
        elif self._actor is Actor.PHARMACY:
            raise InvalidTransitionError(
                "Pharmacies accept an order by submitting an accept quote"
            )
        else:
            order.check_can_accept(seconds_left)

        try:
            await self._quote_repo.respond_to_order(order_id, response, reason.strip())
        except QuoteWindowExpiredError:
            self._clock.track(await refetch_order(self._quote_repo, order_id, order))
            raise

        updated = await refetch_order(self._quote_repo, order_id, order)
        self._clock.track(updated)
        return updated
