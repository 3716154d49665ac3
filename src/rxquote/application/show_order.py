"""Application service: Show Order use case (query).

Also home of ``refetch_order``, the re-read every command performs after
asking the repository for a transition: the repository's recorded status
wins over anything the client assumed.
"""

from __future__ import annotations

import logging

from rxquote.application.dto import OrderDTO, QuoteLineDTO
from rxquote.domain.exceptions import NetworkError
from rxquote.domain.model.prescription_order import PrescriptionOrder
from rxquote.domain.model.value_objects import Money
from rxquote.domain.repository.quote_repository import QuoteRepository
from rxquote.domain.service.expiry_clock import ExpiryClock

logger = logging.getLogger("rxquote.orders")


class ShowOrderHandler:

    def __init__(self, quote_repo: QuoteRepository, clock: ExpiryClock) -> None:
        self._quote_repo = quote_repo
        self._clock = clock

    async def handle(self, order_id: str) -> OrderDTO:
        order = await self._quote_repo.get_order(order_id)
        return order_to_dto(order, self._clock.seconds_left_for(order))


async def refetch_order(
    quote_repo: QuoteRepository,
    order_id: str,
    last_seen: PrescriptionOrder,
) -> PrescriptionOrder:
    """Re-read *order_id*; fall back to *last_seen* if the repository is unreachable.

    The fallback is the last state actually observed, never an optimistic
    guess.  The next poll tick brings the view up to date.
    """
    try:
        return await quote_repo.get_order(order_id)
    except NetworkError as exc:
        logger.warning("Could not re-read order %s after update: %s", order_id, exc)
        return last_seen


def order_to_dto(order: PrescriptionOrder, seconds_left: int) -> OrderDTO:
    quote = order.latest_quote
    return OrderDTO(
        id=str(order.id),
        status=order.effective_status(seconds_left).value,
        seconds_left=seconds_left,
        pharmacy_id=order.assigned_pharmacy_id,
        quote_items=[
            QuoteLineDTO(
                label=line.label,
                brand=line.brand,
                quantity=line.quantity.value if line.quantity else None,
                price=str(line.price) if line.price is not None and line.available else None,
                available=line.available,
            )
            for line in (quote.items if quote else ())
        ],
        quote_total=str(quote.total if quote else Money.zero()),
        converted_order_id=order.converted_order_id,
    )
