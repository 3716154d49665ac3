"""Data Transfer Objects: plain containers that cross layer boundaries.

DTOs carry data between the presentation and application layers without
exposing domain internals to the outside world.
"""

from __future__ import annotations

from dataclasses import dataclass

from rxquote.domain.exceptions import InvalidQuoteError, ValidationError
from rxquote.domain.model.quote import QuoteLine
from rxquote.domain.model.value_objects import Money, Quantity


@dataclass(frozen=True)
class MedicineSpec:
    """Input: a medicine the customer tapped "add" on."""

    medicine_id: str
    pharmacy_id: str
    name: str
    price: str
    brand: str = ""


@dataclass(frozen=True)
class QuoteLineSpec:
    """Input: one row of the pharmacist's quote form, as typed."""

    medicine_name: str = ""
    brand: str = ""
    price: str | None = None
    quantity: int | None = None
    available: bool = True

    def to_domain(self) -> QuoteLine:
        try:
            price = Money.of(self.price) if self.price not in (None, "") else None
            quantity = Quantity(self.quantity) if self.quantity is not None else None
        except ValidationError as exc:
            raise InvalidQuoteError(
                f"{self.medicine_name or self.brand or 'Line'}: {exc}"
            ) from exc
        return QuoteLine(
            medicine_name=self.medicine_name.strip(),
            brand=self.brand.strip(),
            price=price,
            quantity=quantity,
            available=self.available,
        )


@dataclass(frozen=True)
class CartLineDTO:
    medicine_id: str
    name: str
    quantity: int
    unit_price: str  # formatted, e.g. "₹20.00"
    line_total: str


@dataclass(frozen=True)
class CartDTO:
    pharmacy_id: str | None
    items: list[CartLineDTO]
    total: str


@dataclass(frozen=True)
class QuoteLineDTO:
    label: str
    brand: str
    quantity: int | None
    price: str | None
    available: bool


@dataclass(frozen=True)
class OrderDTO:
    """Output: a prescription order as displayed to either actor."""

    id: str
    status: str
    seconds_left: int
    pharmacy_id: str | None
    quote_items: list[QuoteLineDTO]
    quote_total: str
    converted_order_id: str | None
