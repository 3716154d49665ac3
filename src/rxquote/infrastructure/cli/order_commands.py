"""CLI commands for prescription orders and their quotes."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import click

from rxquote.application.accept_quote import AcceptQuoteHandler
from rxquote.application.convert_order import ConvertOrderHandler
from rxquote.application.create_prescription_order import CreatePrescriptionOrderHandler
from rxquote.application.dto import OrderDTO, QuoteLineSpec
from rxquote.application.respond_to_order import RespondToOrderHandler
from rxquote.application.show_order import ShowOrderHandler, order_to_dto
from rxquote.application.submit_quote import SubmitQuoteHandler
from rxquote.domain.exceptions import DomainException
from rxquote.domain.model.events import (
    NewOrderReceived,
    OrderConverted,
    OrderEvent,
    OrderRejected,
    OrderStatusChanged,
    PollFailed,
    QuoteWindowExpired,
    QuoteWindowLapsing,
)
from rxquote.domain.model.prescription_order import (
    Actor,
    DeliveryAddress,
    OrderResponse,
    PaymentConfirmation,
    UploadMode,
)
from rxquote.domain.model.quote import QuoteMode
from rxquote.infrastructure.bootstrap import (
    cart_repository,
    expiry_clock,
    order_reconciler,
    quote_repository,
)
from rxquote.infrastructure.http.http_quote_repository import HttpQuoteRepository

T = TypeVar("T")

ACTOR_CHOICE = click.Choice([a.value for a in Actor])


def _run(action: Callable[[HttpQuoteRepository], Awaitable[T]]) -> T:
    """Run *action* against a fresh repository and map domain errors for click."""

    async def _main() -> T:
        async with quote_repository() as repo:
            return await action(repo)

    try:
        return asyncio.run(_main())
    except DomainException as exc:
        raise click.ClickException(str(exc))


def _format_countdown(seconds_left: int) -> str:
    return f"{seconds_left // 60}:{seconds_left % 60:02d}"


def _display_order(dto: OrderDTO) -> None:
    click.echo(f"Order {dto.id}  (status={dto.status})")
    if dto.pharmacy_id:
        click.echo(f"Pharmacy: {dto.pharmacy_id}")
    if dto.status in ("waiting_for_quotes", "quoted"):
        click.echo(f"Time left: {_format_countdown(dto.seconds_left)}")
    if dto.converted_order_id:
        click.echo(f"Payable order: {dto.converted_order_id}")
    if not dto.quote_items:
        return

    click.echo()
    click.echo(f"  {'Medicine':<24} {'Brand':<14} {'Qty':>5} {'Price':>10} {'Status':>12}")
    click.echo(f"  {'-'*69}")
    for line in dto.quote_items:
        click.echo(
            f"  {line.label:<24} {line.brand or '-':<14} {line.quantity or '-':>5} "
            f"{line.price or '-':>10} {'Available' if line.available else 'Unavailable':>12}"
        )
    click.echo(f"  {'-'*69}")
    click.echo(f"  {'Quote Total':<45} {dto.quote_total:>22}")


def _describe_event(event: OrderEvent) -> str:
    if isinstance(event, NewOrderReceived):
        return f"New prescription order {event.order_id}"
    if isinstance(event, OrderStatusChanged):
        return f"Order {event.order_id}: {event.previous.value} -> {event.current.value}"
    if isinstance(event, QuoteWindowLapsing):
        return f"Order {event.order_id}: {_format_countdown(event.seconds_left)} left to respond"
    if isinstance(event, QuoteWindowExpired):
        return f"Order {event.order_id}: quote window expired"
    if isinstance(event, OrderConverted):
        return f"Order {event.order_id} converted to payable order {event.new_order_id}"
    if isinstance(event, OrderRejected):
        suffix = f": {event.reason}" if event.reason else ""
        return f"Pharmacy rejected order {event.order_id}{suffix}"
    if isinstance(event, PollFailed):
        return f"Could not refresh orders ({event.reason}); retrying"
    return repr(event)


def _parse_quote_item(raw: str, available: bool) -> QuoteLineSpec:
    """Parse 'Name:Qty:Price' (or 'Name[:Qty]' for an unavailable medicine)."""
    parts = [p.strip() for p in raw.split(":")]
    name = parts[0]
    try:
        quantity = int(parts[1]) if len(parts) > 1 and parts[1] else None
    except ValueError:
        raise click.BadParameter(f"Invalid quantity '{parts[1]}' for medicine '{name}'.")
    if available:
        if len(parts) != 3:
            raise click.BadParameter(
                f"Invalid item format '{raw}'. Expected 'Medicine:Qty:Price'."
            )
        return QuoteLineSpec(medicine_name=name, quantity=quantity, price=parts[2])
    return QuoteLineSpec(medicine_name=name, quantity=quantity, available=False)


# --- Customer ---------------------------------------------------------------


@click.command("create")
@click.option("--attachment", "attachments", multiple=True, required=True, help="Prescription file URL.")
@click.option("--notes", default="", help="Notes for the pharmacist.")
@click.option("--address-id", required=True, help="Saved address ID.")
@click.option("--address", "address_line", required=True, help="Delivery address.")
@click.option("--lat", required=True, type=float, help="Address latitude.")
@click.option("--lng", required=True, type=float, help="Address longitude.")
@click.option("--mode", type=click.Choice([m.value for m in UploadMode]), default="auto", show_default=True)
@click.option("--pharmacy", "pharmacy_id", default=None, help="Pharmacy ID for a manual upload.")
def order_create(
    attachments: tuple[str, ...],
    notes: str,
    address_id: str,
    address_line: str,
    lat: float,
    lng: float,
    mode: str,
    pharmacy_id: str | None,
) -> None:
    """Upload a prescription and open its quote window."""
    clock = expiry_clock()
    address = DeliveryAddress(id=address_id, line=address_line, lat=lat, lng=lng)

    async def action(repo: HttpQuoteRepository):
        handler = CreatePrescriptionOrderHandler(repo, cart_repository(), clock)
        return await handler.handle(
            list(attachments), notes, address, UploadMode(mode), pharmacy_id
        )

    order = _run(action)
    _display_order(order_to_dto(order, clock.seconds_left_for(order)))


@click.command("show")
@click.option("--id", "order_id", required=True, help="Order ID to display.")
def order_show(order_id: str) -> None:
    """Show an order and its latest quote."""
    clock = expiry_clock()
    _display_order(_run(lambda repo: ShowOrderHandler(repo, clock).handle(order_id)))


@click.command("accept")
@click.option("--id", "order_id", required=True, help="Order ID.")
@click.option("--payment-id", required=True, help="Payment reference from the payment gateway.")
def order_accept(order_id: str, payment_id: str) -> None:
    """Accept the latest quote with a confirmed payment."""
    clock = expiry_clock()
    payment = PaymentConfirmation.paid({"paymentId": payment_id})

    order = _run(lambda repo: AcceptQuoteHandler(repo, clock).handle(order_id, payment))
    click.echo(f"Order {order_id} is {order.status.value}.")


@click.command("convert")
@click.option("--id", "order_id", required=True, help="Accepted order ID.")
def order_convert(order_id: str) -> None:
    """Turn an accepted, paid order into a payable order."""
    new_order_id = _run(
        lambda repo: ConvertOrderHandler(repo, cart_repository()).handle(order_id)
    )
    click.echo(f"Order {order_id} converted. Track it as order {new_order_id}.")


# --- Both actors ------------------------------------------------------------


@click.command("respond")
@click.option("--id", "order_id", required=True, help="Order ID.")
@click.option("--as", "actor", type=ACTOR_CHOICE, required=True, help="Who is responding.")
@click.option("--response", type=click.Choice([r.value for r in OrderResponse]), required=True)
@click.option("--reason", default="", help="Reason (required when a customer rejects).")
def order_respond(order_id: str, actor: str, response: str, reason: str) -> None:
    """Accept or reject an order."""
    clock = expiry_clock()

    async def action(repo: HttpQuoteRepository):
        handler = RespondToOrderHandler(repo, clock, Actor(actor))
        return await handler.handle(order_id, OrderResponse(response), reason)

    order = _run(action)
    click.echo(f"Order {order_id} is {order.status.value}.")


@click.command("watch")
@click.option("--as", "actor", type=ACTOR_CHOICE, required=True, help="Whose orders to watch.")
@click.option("--once", is_flag=True, default=False, help="Poll a single time and exit.")
def order_watch(actor: str, once: bool) -> None:
    """Poll orders and print what changes."""
    clock = expiry_clock()

    async def action(repo: HttpQuoteRepository) -> None:
        reconciler = order_reconciler(Actor(actor), repo, clock)
        reconciler.add_listener(lambda event: click.echo(_describe_event(event)))
        await reconciler.poll_once()
        for order in reconciler.orders:
            click.echo(
                f"  {order.id}  {order.effective_status(clock.seconds_left(str(order.id))).value}"
            )
        if once:
            return
        clock.start()
        reconciler.start()
        try:
            await asyncio.Event().wait()
        finally:
            await reconciler.stop()
            await clock.stop()

    try:
        _run(action)
    except KeyboardInterrupt:
        click.echo("Stopped.")


# --- Pharmacy ---------------------------------------------------------------


@click.command("quote")
@click.option("--id", "order_id", required=True, help="Order ID to quote.")
@click.option("--mode", type=click.Choice([m.value for m in QuoteMode]), required=True)
@click.option("--item", "items", multiple=True, help="Available medicine as 'Name:Qty:Price'.")
@click.option("--unavailable", multiple=True, help="Unavailable medicine as 'Name[:Qty]'.")
@click.option("--message", default="", help="Note for the customer.")
def order_quote(
    order_id: str,
    mode: str,
    items: tuple[str, ...],
    unavailable: tuple[str, ...],
    message: str,
) -> None:
    """Submit a quote for a waiting order."""
    lines = [_parse_quote_item(raw, available=True) for raw in items]
    lines += [_parse_quote_item(raw, available=False) for raw in unavailable]
    clock = expiry_clock()

    async def action(repo: HttpQuoteRepository):
        handler = SubmitQuoteHandler(repo, clock)
        return await handler.handle(order_id, lines, QuoteMode(mode), message)

    order = _run(action)
    click.echo("Quote submitted!")
    _display_order(order_to_dto(order, clock.seconds_left_for(order)))
