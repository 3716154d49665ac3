"""Abstract contract of the remote quote repository.

The repository is the system of record for prescription orders: it is
the only writer of ``status`` and ``quote_expiry`` and applies every
transition transactionally.  Implementations raise the domain errors:
``QuoteWindowExpiredError`` and ``InvalidQuoteError`` for rejected
requests, ``ConversionConflictError`` when an order was already
converted, ``EntityNotFoundError`` for unknown ids and ``NetworkError``
for anything transient.  All calls are non-blocking coroutines.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from rxquote.domain.model.prescription_order import (
    DeliveryAddress,
    OrderResponse,
    PrescriptionOrder,
    RequestedMedicine,
    UploadMode,
)
from rxquote.domain.model.quote import QuoteLine, QuoteMode


class QuoteRepository(ABC):

    @abstractmethod
    async def create_prescription_order(
        self,
        attachments: list[str],
        notes: str,
        address: DeliveryAddress,
        upload_mode: UploadMode,
        chosen_pharmacy_id: str | None = None,
        medicines_requested: list[RequestedMedicine] | None = None,
    ) -> PrescriptionOrder:
        """Create an order and open its quote window."""

    @abstractmethod
    async def list_orders_for_pharmacy(self) -> list[PrescriptionOrder]:
        """Every prescription order routed to the signed-in pharmacy."""

    @abstractmethod
    async def list_orders_for_customer(self) -> list[PrescriptionOrder]:
        """Every prescription order of the signed-in customer."""

    @abstractmethod
    async def get_order(self, order_id: str) -> PrescriptionOrder:
        """A single order as currently recorded."""

    @abstractmethod
    async def submit_quote(
        self,
        order_id: str,
        items: list[QuoteLine],
        mode: QuoteMode,
        message: str = "",
    ) -> None:
        """Submit a pharmacy quote for a waiting order."""

    @abstractmethod
    async def respond_to_order(
        self,
        order_id: str,
        response: OrderResponse,
        reason: str = "",
    ) -> None:
        """Accept or reject an order (pharmacy) or its quote (customer)."""

    @abstractmethod
    async def accept_quote(
        self,
        order_id: str,
        payment_status: str,
        payment_details: dict,
        delivery_address: DeliveryAddress | None = None,
    ) -> None:
        """Accept the latest quote and record the payment outcome."""

    @abstractmethod
    async def record_payment(self, order_id: str, payment_details: dict) -> None:
        """Record a successful payment against an accepted order."""

    @abstractmethod
    async def convert_to_order(self, order_id: str) -> str:
        """Turn an accepted, paid order into a payable order; returns its id.

        Deduplicated by ``order_id``: repeating the call never creates a
        second order.
        """
