"""Abstract durable store for the customer's cart.

Defined in the domain layer so the domain never depends on
infrastructure.  The cart and its bound pharmacy survive reloads.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from rxquote.domain.model.cart import Cart


class CartRepository(ABC):

    @abstractmethod
    def load(self) -> Cart:
        """Return the persisted cart, or an empty one."""

    @abstractmethod
    def save(self, cart: Cart) -> None:
        """Persist the cart and its bound pharmacy."""
