"""Application service: Convert Order use case (the order converter).

Turns an accepted, paid prescription order into a standalone payable
order exactly once.  The repository deduplicates by order id; this
handler only makes sure it does not ask again after a recorded success
and treats "already converted" as the answer it was looking for.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict

from rxquote.domain.exceptions import ConversionConflictError
from rxquote.domain.model.prescription_order import OrderStatus
from rxquote.domain.repository.cart_repository import CartRepository
from rxquote.domain.repository.quote_repository import QuoteRepository

logger = logging.getLogger("rxquote.converter")


class ConvertOrderHandler:

    def __init__(
        self,
        quote_repo: QuoteRepository,
        cart_repo: CartRepository | None = None,
    ) -> None:
        self._quote_repo = quote_repo
        self._cart_repo = cart_repo
        self._converted: dict[str, str] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def handle(self, order_id: str) -> str:
        """Return the id of the payable order created for *order_id*."""
        if order_id in self._converted:
            return self._converted[order_id]
        async with self._locks[order_id]:
            if order_id in self._converted:
                return self._converted[order_id]

            order = await self._quote_repo.get_order(order_id)
            if order.status is OrderStatus.CONVERTED and order.converted_order_id:
                return self._record(order_id, order.converted_order_id)

            order.check_can_convert()

            try:
                new_order_id = await self._quote_repo.convert_to_order(order_id)
            except ConversionConflictError as exc:
                logger.info(
                    "Order %s was already converted to %s", order_id, exc.existing_order_id
                )
                new_order_id = exc.existing_order_id

            return self._record(order_id, new_order_id)

    def _record(self, order_id: str, new_order_id: str) -> str:
        first_time = order_id not in self._converted
        self._converted[order_id] = new_order_id
        # waiters still holding the old lock find the recorded id
        self._locks.pop(order_id, None)
        if first_time and self._cart_repo is not None:
            cart = self._cart_repo.load()
            cart.clear()
            self._cart_repo.save(cart)
        logger.info("Order %s converted to payable order %s", order_id, new_order_id)
        return new_order_id
