"""Typed change events raised while observing prescription orders.

Events are plain immutable records; views subscribe to them instead of
diffing order lists themselves.
"""

from __future__ import annotations

from dataclasses import dataclass

from rxquote.domain.model.prescription_order import OrderStatus, PrescriptionOrder


@dataclass(frozen=True)
class NewOrderReceived:
    """A waiting order this actor has never seen before (fires once per id)."""

    order: PrescriptionOrder

    @property
    def order_id(self) -> str:
        return str(self.order.id)


@dataclass(frozen=True)
class OrderStatusChanged:
    order_id: str
    previous: OrderStatus
    current: OrderStatus


@dataclass(frozen=True)
class QuoteWindowLapsing:
    """The open window of an order is about to close."""

    order_id: str
    seconds_left: int


@dataclass(frozen=True)
class QuoteWindowExpired:
    order_id: str


@dataclass(frozen=True)
class OrderConverted:
    order_id: str
    new_order_id: str


@dataclass(frozen=True)
class OrderRejected:
    """The pharmacy turned down a manual upload (fires once per id, ever)."""

    order_id: str
    reason: str = ""


@dataclass(frozen=True)
class PollFailed:
    """A poll tick could not reach the repository; the next tick retries."""

    reason: str


OrderEvent = (
    NewOrderReceived
    | OrderStatusChanged
    | QuoteWindowLapsing
    | QuoteWindowExpired
    | OrderConverted
    | OrderRejected
    | PollFailed
)
