"""Application service: Show Cart use case (query)."""

from __future__ import annotations

from rxquote.application.dto import CartDTO, CartLineDTO
from rxquote.domain.model.cart import Cart
from rxquote.domain.repository.cart_repository import CartRepository


class ShowCartHandler:

    def __init__(self, cart_repo: CartRepository) -> None:
        self._cart_repo = cart_repo

    def handle(self) -> CartDTO:
        return cart_to_dto(self._cart_repo.load())


def cart_to_dto(cart: Cart) -> CartDTO:
    return CartDTO(
        pharmacy_id=cart.bound_pharmacy_id,
        items=[
            CartLineDTO(
                medicine_id=item.medicine_id,
                name=item.name,
                quantity=item.quantity.value,
                unit_price=str(item.price),
                line_total=str(item.line_total),
            )
            for item in cart.items
        ],
        total=str(cart.total),
    )
