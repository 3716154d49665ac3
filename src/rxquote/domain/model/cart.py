"""Cart aggregate: the customer's pending items from a single pharmacy.

Invariants, checked after every mutation:
- every item shares ``bound_pharmacy_id``
- every item has a quantity of at least 1 (a line at 0 is removed)
- ``bound_pharmacy_id`` is set exactly when the cart is non-empty
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace

from rxquote.domain.exceptions import PharmacyMismatchError, ValidationError
from rxquote.domain.model.value_objects import Money, Quantity

logger = logging.getLogger("rxquote.cart")


@dataclass(frozen=True)
class CartItem:
    medicine_id: str
    pharmacy_id: str
    name: str
    price: Money
    quantity: Quantity = Quantity(1)
    brand: str = ""

    @property
    def line_total(self) -> Money:
        return self.price * self.quantity.value


@dataclass
class Cart:
    """Aggregate root for the customer's cart.

    Use ``Cart.restore()`` to rebuild a persisted cart; it repairs
    entries that would break the invariants instead of rejecting the
    whole cart.
    """

    items: list[CartItem] = field(default_factory=list)
    bound_pharmacy_id: str | None = None

    # --- Mutations ------------------------------------------------------------

    def add_item(self, item: CartItem) -> CartItem:
        """Add one unit of *item*, binding the cart to its pharmacy if empty.

        Raises PharmacyMismatchError without touching the cart when the
        item belongs to a different pharmacy than the bound one.
        """
        if not item.medicine_id or not item.pharmacy_id:
            raise ValidationError(
                "Medicine or pharmacy not specified. "
                "Please select a valid medicine with pharmacy."
            )

        if self.is_empty:
            added = replace(item, quantity=Quantity(1))
            self.bound_pharmacy_id = item.pharmacy_id
            self.items = [added]
            self._assert_invariants()
            return added

        if item.pharmacy_id != self.bound_pharmacy_id:
            raise PharmacyMismatchError(
                bound_pharmacy_id=self.bound_pharmacy_id,  # type: ignore[arg-type]
                attempted_pharmacy_id=item.pharmacy_id,
            )

        index = self._index_of(item.medicine_id)
        if index is None:
            added = replace(item, quantity=Quantity(1))
            self.items.append(added)
        else:
            existing = self.items[index]
            added = replace(existing, quantity=existing.quantity.increment())
            self.items[index] = added

        self._assert_invariants()
        return added

    def remove_one(self, medicine_id: str) -> None:
        """Decrement a line by one unit; the line disappears at zero."""
        index = self._require_index(medicine_id)
        existing = self.items[index]
        if existing.quantity.value == 1:
            del self.items[index]
        else:
            self.items[index] = replace(
                existing, quantity=Quantity(existing.quantity.value - 1)
            )
        self._unbind_if_empty()
        self._assert_invariants()

    def remove_all(self, medicine_id: str) -> None:
        """Remove a line outright regardless of its quantity."""
        index = self._require_index(medicine_id)
        del self.items[index]
        self._unbind_if_empty()
        self._assert_invariants()

    def change_quantity(self, medicine_id: str, quantity: int) -> None:
        """Set a line's quantity, clamped to a minimum of one."""
        index = self._require_index(medicine_id)
        self.items[index] = replace(self.items[index], quantity=Quantity(max(1, quantity)))
        self._assert_invariants()

    def clear(self) -> None:
        self.items = []
        self.bound_pharmacy_id = None

    # --- Computed properties --------------------------------------------------

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def total(self) -> Money:
        return Money.total(item.line_total for item in self.items)

    @property
    def unit_count(self) -> int:
        return sum(item.quantity.value for item in self.items)

    def find(self, medicine_id: str) -> CartItem | None:
        index = self._index_of(medicine_id)
        return None if index is None else self.items[index]

    # --- Reconstitution -------------------------------------------------------

    @staticmethod
    def restore(items: list[CartItem], bound_pharmacy_id: str | None) -> Cart:
        """Rebuild a cart from storage, dropping lines that break the invariants.

        The stored binding wins; without one, the first item's pharmacy
        becomes the binding.  Duplicate medicine lines are merged.
        """
        if bound_pharmacy_id is None and items:
            bound_pharmacy_id = items[0].pharmacy_id

        kept: list[CartItem] = []
        for item in items:
            if item.pharmacy_id != bound_pharmacy_id:
                logger.warning(
                    "Dropping cart line %s from pharmacy %s (cart bound to %s)",
                    item.medicine_id,
                    item.pharmacy_id,
                    bound_pharmacy_id,
                )
                continue
            for i, other in enumerate(kept):
                if other.medicine_id == item.medicine_id:
                    kept[i] = replace(
                        other,
                        quantity=Quantity(other.quantity.value + item.quantity.value),
                    )
                    break
            else:
                kept.append(item)

        cart = Cart(items=kept, bound_pharmacy_id=bound_pharmacy_id if kept else None)
        cart._assert_invariants()
        return cart

    # --- Internal helpers -----------------------------------------------------

    def _index_of(self, medicine_id: str) -> int | None:
        for i, item in enumerate(self.items):
            if item.medicine_id == medicine_id:
                return i
        return None

    def _require_index(self, medicine_id: str) -> int:
        index = self._index_of(medicine_id)
        if index is None:
            raise ValidationError(f"Medicine '{medicine_id}' is not in the cart")
        return index

    def _unbind_if_empty(self) -> None:
        if not self.items:
            self.bound_pharmacy_id = None

    def _assert_invariants(self) -> None:
        if self.items and self.bound_pharmacy_id is None:
            raise AssertionError("Non-empty cart has no bound pharmacy")
        if not self.items and self.bound_pharmacy_id is not None:
            raise AssertionError("Empty cart is still bound to a pharmacy")
        for item in self.items:
            if item.pharmacy_id != self.bound_pharmacy_id:
                raise AssertionError(
                    f"Cart line {item.medicine_id} belongs to {item.pharmacy_id}, "
                    f"cart is bound to {self.bound_pharmacy_id}"
                )
            if item.quantity.value < 1:
                raise AssertionError(f"Cart line {item.medicine_id} has no units")
