"""CLI commands for the customer's cart."""

from __future__ import annotations

import click

from rxquote.application.add_to_cart import AddToCartHandler
from rxquote.application.clear_cart import ClearCartHandler
from rxquote.application.dto import CartDTO, MedicineSpec
from rxquote.application.remove_from_cart import ChangeQuantityHandler, RemoveFromCartHandler
from rxquote.application.show_cart import ShowCartHandler
from rxquote.domain.exceptions import DomainException
from rxquote.infrastructure.bootstrap import cart_repository


def _display_cart(dto: CartDTO) -> None:
    if not dto.items:
        click.echo("Cart is empty.")
        return
    click.echo(f"Pharmacy: {dto.pharmacy_id}")
    click.echo(f"  {'Medicine':<24} {'Qty':>5} {'Price':>10} {'Total':>10}")
    click.echo(f"  {'-'*51}")
    for item in dto.items:
        click.echo(
            f"  {item.name:<24} {item.quantity:>5} {item.unit_price:>10} {item.line_total:>10}"
        )
    click.echo(f"  {'-'*51}")
    click.echo(f"  {'Cart Total':<31} {dto.total:>20}")


@click.command("add")
@click.option("--medicine-id", required=True, help="Medicine ID.")
@click.option("--pharmacy-id", required=True, help="Pharmacy selling the medicine.")
@click.option("--name", required=True, help="Medicine name.")
@click.option("--price", required=True, help="Unit price (e.g. 20.00).")
@click.option("--brand", default="", help="Brand name.")
def cart_add(medicine_id: str, pharmacy_id: str, name: str, price: str, brand: str) -> None:
    """Add one unit of a medicine to the cart."""
    handler = AddToCartHandler(cart_repo=cart_repository())
    spec = MedicineSpec(
        medicine_id=medicine_id,
        pharmacy_id=pharmacy_id,
        name=name,
        price=price,
        brand=brand,
    )

    try:
        dto = handler.handle(spec)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    _display_cart(dto)


@click.command("remove")
@click.option("--medicine-id", required=True, help="Medicine ID.")
@click.option("--all", "remove_all", is_flag=True, default=False, help="Remove the whole line.")
def cart_remove(medicine_id: str, remove_all: bool) -> None:
    """Remove one unit (or the whole line) of a medicine."""
    handler = RemoveFromCartHandler(cart_repo=cart_repository())

    try:
        dto = handler.handle(medicine_id, remove_all=remove_all)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    _display_cart(dto)


@click.command("quantity")
@click.option("--medicine-id", required=True, help="Medicine ID.")
@click.option("--quantity", required=True, type=int, help="New quantity (minimum 1).")
def cart_quantity(medicine_id: str, quantity: int) -> None:
    """Set the quantity of a medicine already in the cart."""
    handler = ChangeQuantityHandler(cart_repo=cart_repository())

    try:
        dto = handler.handle(medicine_id, quantity)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    _display_cart(dto)


@click.command("clear")
def cart_clear() -> None:
    """Empty the cart and release its pharmacy."""
    ClearCartHandler(cart_repo=cart_repository()).handle()
    click.echo("Cart cleared.")


@click.command("show")
def cart_show() -> None:
    """Show the cart."""
    _display_cart(ShowCartHandler(cart_repo=cart_repository()).handle())
