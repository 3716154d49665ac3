"""JSON-file-backed implementation of CartRepository.

The whole cart lives in one file under a fixed name, together with the
pharmacy it is bound to.  Entries that could not have been produced by
the Cart aggregate (zero quantities, a foreign pharmacy) are repaired
on load rather than failing the whole cart.
"""

from __future__ import annotations

import json
import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path

from rxquote.domain.exceptions import ValidationError
from rxquote.domain.model.cart import Cart, CartItem
from rxquote.domain.model.value_objects import Money, Quantity
from rxquote.domain.repository.cart_repository import CartRepository

logger = logging.getLogger("rxquote.cart")

CART_FILE_NAME = "cart.json"


class JsonCartRepository(CartRepository):

    def __init__(self, file_path: Path) -> None:
        self._file_path = file_path
        self._ensure_file()

    # --- CartRepository interface ---------------------------------------------

    def load(self) -> Cart:
        raw = self._load_raw()
        items: list[CartItem] = []
        for record in raw.get("items", []):
            item = self._to_domain(record)
            if item is not None:
                items.append(item)
        return Cart.restore(items, raw.get("bound_pharmacy_id"))

    def save(self, cart: Cart) -> None:
        self._persist_raw(
            {
                "bound_pharmacy_id": cart.bound_pharmacy_id,
                "items": [self._to_raw(item) for item in cart.items],
            }
        )

    # --- Serialization --------------------------------------------------------

    @staticmethod
    def _to_raw(item: CartItem) -> dict:
        return {
            "medicine_id": item.medicine_id,
            "pharmacy_id": item.pharmacy_id,
            "name": item.name,
            "brand": item.brand,
            "price": str(item.price.amount),
            "currency": item.price.currency,
            "quantity": item.quantity.value,
        }

    @staticmethod
    def _to_domain(raw: dict) -> CartItem | None:
        try:
            return CartItem(
                medicine_id=raw["medicine_id"],
                pharmacy_id=raw["pharmacy_id"],
                name=raw.get("name", ""),
                brand=raw.get("brand", ""),
                price=Money(Decimal(str(raw["price"])), raw.get("currency", "INR")),
                quantity=Quantity(int(raw["quantity"])),
            )
        except (KeyError, TypeError, ValueError, InvalidOperation, ValidationError) as exc:
            logger.warning("Dropping unreadable cart line %r: %s", raw, exc)
            return None

    # --- File helpers ---------------------------------------------------------

    def _load_raw(self) -> dict:
        try:
            raw = json.loads(self._file_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Cart file %s is corrupt; starting with an empty cart", self._file_path)
            return {}
        return raw if isinstance(raw, dict) else {}

    def _persist_raw(self, raw: dict) -> None:
        self._file_path.write_text(
            json.dumps(raw, indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
        )

    def _ensure_file(self) -> None:
        if not self._file_path.exists():
            self._file_path.parent.mkdir(parents=True, exist_ok=True)
            self._file_path.write_text("{}", encoding="utf-8")
