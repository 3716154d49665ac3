import click

from rxquote.infrastructure.bootstrap import configure_logging
from rxquote.infrastructure.cli.cart_commands import (
    cart_add,
    cart_clear,
    cart_quantity,
    cart_remove,
    cart_show,
)
from rxquote.infrastructure.cli.order_commands import (
    order_accept,
    order_convert,
    order_create,
    order_quote,
    order_respond,
    order_show,
    order_watch,
)


@click.group()
def cli() -> None:
    """rxquote: prescription quotes and single-pharmacy cart"""
    configure_logging()


@cli.group()
def cart() -> None:
    """Manage the cart."""


@cli.group()
def order() -> None:
    """Manage prescription orders."""


# Register subcommands
cart.add_command(cart_add)
cart.add_command(cart_clear)
cart.add_command(cart_quantity)
cart.add_command(cart_remove)
cart.add_command(cart_show)
order.add_command(order_accept)
order.add_command(order_convert)
order.add_command(order_create)
order.add_command(order_quote)
order.add_command(order_respond)
order.add_command(order_show)
order.add_command(order_watch)
