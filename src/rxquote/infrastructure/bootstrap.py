"""Composition root: wires concrete implementations to domain interfaces.

This is the only place in the codebase that knows about *all* layers
and reads the settings.  Every other module depends only on
abstractions.
"""

from __future__ import annotations

import logging

from rxquote.application.order_reconciler import OrderReconciler
from rxquote.domain.model.prescription_order import Actor
from rxquote.domain.service.expiry_clock import ExpiryClock
from rxquote.infrastructure.config import get_settings
from rxquote.infrastructure.http.http_quote_repository import HttpQuoteRepository
from rxquote.infrastructure.persistence.json_cart_repository import (
    CART_FILE_NAME,
    JsonCartRepository,
)
from rxquote.infrastructure.persistence.json_seen_order_repository import (
    JsonSeenOrderRepository,
)


def configure_logging() -> None:
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def cart_repository() -> JsonCartRepository:
    return JsonCartRepository(get_settings().data_dir / CART_FILE_NAME)


def seen_order_repository(actor: Actor) -> JsonSeenOrderRepository:
    return JsonSeenOrderRepository(
        get_settings().data_dir / f"seen_orders_{actor.value}.json"
    )


def rejection_notice_repository() -> JsonSeenOrderRepository:
    return JsonSeenOrderRepository(get_settings().data_dir / "rejection_notices.json")


def quote_repository() -> HttpQuoteRepository:
    settings = get_settings()
    return HttpQuoteRepository(
        base_url=settings.api_base_url,
        token=settings.api_token,
        timeout=settings.request_timeout_seconds,
    )


def expiry_clock() -> ExpiryClock:
    return ExpiryClock(tick_interval=get_settings().tick_interval_seconds)


def order_reconciler(
    actor: Actor,
    quote_repo: HttpQuoteRepository,
    clock: ExpiryClock,
) -> OrderReconciler:
    settings = get_settings()
    return OrderReconciler.for_actor(
        actor,
        quote_repo,
        seen_order_repository(actor),
        clock,
        interval=settings.poll_interval_seconds,
        lapse_warning_seconds=settings.lapse_warning_seconds,
        rejection_notice_repo=(
            rejection_notice_repository() if actor is Actor.CUSTOMER else None
        ),
    )
