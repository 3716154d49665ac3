"""Application service: Create Prescription Order use case.

The customer's cart seeds the list of requested medicines, and for a
manual upload the cart's pharmacy is the default choice.  The request
is validated locally before the repository is contacted.
"""

from __future__ import annotations

import logging

from rxquote.domain.model.prescription_order import (
    DeliveryAddress,
    PrescriptionOrder,
    RequestedMedicine,
    UploadMode,
    clean_notes,
    validate_new_order,
)
from rxquote.domain.repository.cart_repository import CartRepository
from rxquote.domain.repository.quote_repository import QuoteRepository
from rxquote.domain.service.expiry_clock import ExpiryClock

logger = logging.getLogger("rxquote.orders")


class CreatePrescriptionOrderHandler:

    def __init__(
        self,
        quote_repo: QuoteRepository,
        cart_repo: CartRepository,
        clock: ExpiryClock,
    ) -> None:
        self._quote_repo = quote_repo
        self._cart_repo = cart_repo
        self._clock = clock

    async def handle(
        self,
        attachments: list[str],
        notes: str,
        address: DeliveryAddress | None,
        upload_mode: UploadMode = UploadMode.AUTO,
        chosen_pharmacy_id: str | None = None,
    ) -> PrescriptionOrder:
        cart = self._cart_repo.load()
        if upload_mode is UploadMode.MANUAL and not chosen_pharmacy_id:
            chosen_pharmacy_id = cart.bound_pharmacy_id

        validate_new_order(attachments, address, upload_mode, chosen_pharmacy_id)

        requested = [
            RequestedMedicine(
                name=item.name,
                quantity=item.quantity.value,
                brand=item.brand,
            )
            for item in cart.items
        ]

        order = await self._quote_repo.create_prescription_order(
            attachments=list(attachments),
            notes=clean_notes(notes),
            address=address,  # type: ignore[arg-type]
            upload_mode=upload_mode,
            chosen_pharmacy_id=chosen_pharmacy_id if upload_mode is UploadMode.MANUAL else None,
            medicines_requested=requested,
        )
        self._clock.track(order)
        logger.info(
            "Prescription order %s created, quote window closes at %s",
            order.id,
            order.quote_expiry,
        )
        return order
