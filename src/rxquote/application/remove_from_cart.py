"""Application service: Remove From Cart use cases."""

from __future__ import annotations

from rxquote.application.dto import CartDTO
from rxquote.application.show_cart import cart_to_dto
from rxquote.domain.repository.cart_repository import CartRepository


class RemoveFromCartHandler:

    def __init__(self, cart_repo: CartRepository) -> None:
        self._cart_repo = cart_repo

    def handle(self, medicine_id: str, remove_all: bool = False) -> CartDTO:
        """Remove one unit of a medicine, or its whole line with *remove_all*."""
        cart = self._cart_repo.load()
        if remove_all:
            cart.remove_all(medicine_id)
        else:
            cart.remove_one(medicine_id)
        self._cart_repo.save(cart)
        return cart_to_dto(cart)


class ChangeQuantityHandler:

    def __init__(self, cart_repo: CartRepository) -> None:
        self._cart_repo = cart_repo

    def handle(self, medicine_id: str, quantity: int) -> CartDTO:
        cart = self._cart_repo.load()
        cart.change_quantity(medicine_id, quantity)
        self._cart_repo.save(cart)
        return cart_to_dto(cart)
