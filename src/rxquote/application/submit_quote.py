"""Application service: Submit Quote use case (pharmacy side).

Steps:
1. Re-read the order and ask the expiry clock how long its window has.
2. Let the aggregate validate the quote; nothing is sent if it fails.
3. Send the quote, then re-read the order.  The repository's status is
   the answer, including when it says the window closed first.
"""

from __future__ import annotations

import logging

from rxquote.application.dto import QuoteLineSpec
from rxquote.application.show_order import refetch_order
from rxquote.domain.exceptions import QuoteWindowExpiredError
from rxquote.domain.model.prescription_order import PrescriptionOrder
from rxquote.domain.model.quote import QuoteMode
from rxquote.domain.repository.quote_repository import QuoteRepository
from rxquote.domain.service.expiry_clock import ExpiryClock

logger = logging.getLogger("rxquote.quotes")


class SubmitQuoteHandler:

    def __init__(self, quote_repo: QuoteRepository, clock: ExpiryClock) -> None:
        self._quote_repo = quote_repo
        self._clock = clock

    async def handle(
        self,
        order_id: str,
        lines: list[QuoteLineSpec],
        mode: QuoteMode,
        message: str = "",
    ) -> PrescriptionOrder:
        order = await self._quote_repo.get_order(order_id)
        seconds_left = self._clock.seconds_left_for(order)

        items = [spec.to_domain() for spec in lines]
        quote = order.check_can_submit_quote(
            items, mode, seconds_left, self._clock.now(), message
        )

        try:
            await self._quote_repo.submit_quote(
                order_id, list(quote.items), quote.mode, quote.message
            )
        except QuoteWindowExpiredError:
            logger.info("Repository closed the window of order %s first", order_id)
            self._clock.track(await refetch_order(self._quote_repo, order_id, order))
            raise

        updated = await refetch_order(self._quote_repo, order_id, order)
        self._clock.track(updated)
        logger.info(
            "Quote (%s, %d lines, %s) submitted for order %s",
            quote.mode.value,
            len(quote.items),
            quote.total,
            order_id,
        )
        return updated
