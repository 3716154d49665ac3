"""Application service: Clear Cart use case.

Empties the cart and releases its pharmacy binding, e.g. after an
order was placed or when the customer wants to switch pharmacies.
"""

from __future__ import annotations

from rxquote.domain.repository.cart_repository import CartRepository


class ClearCartHandler:

    def __init__(self, cart_repo: CartRepository) -> None:
        self._cart_repo = cart_repo

    def handle(self) -> None:
        cart = self._cart_repo.load()
        cart.clear()
        self._cart_repo.save(cart)
