"""Application service: Add To Cart use case.

The Cart aggregate decides whether the medicine may join the cart; a
rejected add is never persisted.
"""

from __future__ import annotations

from rxquote.application.dto import CartDTO, MedicineSpec
from rxquote.application.show_cart import cart_to_dto
from rxquote.domain.model.cart import CartItem
from rxquote.domain.model.value_objects import Money
from rxquote.domain.repository.cart_repository import CartRepository


class AddToCartHandler:

    def __init__(self, cart_repo: CartRepository) -> None:
        self._cart_repo = cart_repo

    def handle(self, spec: MedicineSpec) -> CartDTO:
        cart = self._cart_repo.load()
        cart.add_item(
            CartItem(
                medicine_id=spec.medicine_id,
                pharmacy_id=spec.pharmacy_id,
                name=spec.name,
                price=Money.of(spec.price),
                brand=spec.brand,
            )
        )
        self._cart_repo.save(cart)
        return cart_to_dto(cart)
