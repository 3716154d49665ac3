"""Quotes a pharmacy sends back for a prescription order."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from rxquote.domain.exceptions import InvalidQuoteError
from rxquote.domain.model.value_objects import Money, Quantity


class QuoteMode(Enum):
    ACCEPT = "accept"    # every requested medicine is available
    PARTIAL = "partial"  # availability may be mixed


@dataclass(frozen=True)
class QuoteLine:
    """One priced (or unavailable) medicine in a quote.

    Price and quantity are optional: an unavailable line in a
    partial quote only needs to name the medicine.
    """

    medicine_name: str = ""
    brand: str = ""
    price: Money | None = None
    quantity: Quantity | None = None
    available: bool = True

    @property
    def label(self) -> str:
        return self.medicine_name or self.brand

    @property
    def line_total(self) -> Money:
        if not self.available or self.price is None:
            return Money.zero()
        units = self.quantity.value if self.quantity is not None else 1
        return self.price * units


@dataclass(frozen=True)
class Quote:
    items: tuple[QuoteLine, ...]
    mode: QuoteMode
    submitted_at: datetime
    message: str = ""

    # --- Factory --------------------------------------------------------------

    @staticmethod
    def create(
        items: list[QuoteLine],
        mode: QuoteMode,
        submitted_at: datetime,
        message: str = "",
    ) -> Quote:
        """Build a quote, enforcing the line rules for its mode."""
        validate_quote_lines(items, mode)
        return Quote(
            items=tuple(items),
            mode=mode,
            submitted_at=submitted_at,
            message=message.strip(),
        )

    # --- Computed properties --------------------------------------------------

    @property
    def accepted_items(self) -> list[QuoteLine]:
        """Lines the customer actually receives."""
        return [line for line in self.items if line.available]

    @property
    def unavailable_items(self) -> list[QuoteLine]:
        return [line for line in self.items if not line.available]

    @property
    def total(self) -> Money:
        return Money.total(line.line_total for line in self.items)


def validate_quote_lines(items: list[QuoteLine], mode: QuoteMode) -> None:
    """Raise InvalidQuoteError if *items* cannot be sent as a *mode* quote.

    - every line names the medicine (``medicine_name`` or ``brand``)
    - ACCEPT: every line is available
    - every available line carries a price and a quantity
    """
    if not items:
        raise InvalidQuoteError("A quote must contain at least one medicine")

    for position, line in enumerate(items, start=1):
        if not (line.medicine_name.strip() or line.brand.strip()):
            raise InvalidQuoteError(
                f"Line {position}: medicine name or brand is required"
            )

    if mode is QuoteMode.ACCEPT and any(not line.available for line in items):
        raise InvalidQuoteError(
            "All medicines must be available to accept the order"
        )

    for position, line in enumerate(items, start=1):
        if not line.available:
            continue
        if line.price is None or line.quantity is None:
            raise InvalidQuoteError(
                f"Line {position} ({line.label}): price and quantity are "
                "required for available items"
            )
