"""Integration tests for the CreatePrescriptionOrder use case."""

import asyncio

import pytest

from rxquote.application.add_to_cart import AddToCartHandler
from rxquote.application.create_prescription_order import CreatePrescriptionOrderHandler
from rxquote.application.dto import MedicineSpec
from rxquote.domain.exceptions import ValidationError
from rxquote.domain.model.prescription_order import (
    DeliveryAddress,
    OrderStatus,
    RequestedMedicine,
    UploadMode,
)
from rxquote.domain.service.expiry_clock import ExpiryClock
from tests.fakes import HOME, FakeCartRepository, FakeClock, FakeQuoteRepository


def _setup():
    now = FakeClock()
    quote_repo = FakeQuoteRepository(now)
    cart_repo = FakeCartRepository()
    clock = ExpiryClock(now=now)
    handler = CreatePrescriptionOrderHandler(quote_repo, cart_repo, clock)
    return handler, quote_repo, cart_repo, clock


class TestCreatePrescriptionOrder:

    def test_creates_waiting_order_with_open_window(self):
        handler, quote_repo, _, clock = _setup()

        order = asyncio.run(handler.handle(["scan.jpg"], "Fever since Monday", HOME))

        assert order.status == OrderStatus.WAITING_FOR_QUOTES
        assert order.assigned_pharmacy_id == "ph-1"
        assert clock.seconds_left(order.id) == 900
        assert quote_repo.stored(order.id).notes == "Fever since Monday"

    def test_cart_seeds_requested_medicines(self):
        handler, _, cart_repo, _ = _setup()
        AddToCartHandler(cart_repo).handle(
            MedicineSpec("m1", "ph-7", "Paracetamol", "20.00", brand="Crocin")
        )

        order = asyncio.run(handler.handle(["scan.jpg"], "", HOME))

        assert order.medicines_requested == [RequestedMedicine("Paracetamol", 1, "Crocin")]

    def test_manual_upload_defaults_to_cart_pharmacy(self):
        handler, _, cart_repo, _ = _setup()
        AddToCartHandler(cart_repo).handle(MedicineSpec("m1", "ph-7", "Paracetamol", "20.00"))

        order = asyncio.run(
            handler.handle(["scan.jpg"], "", HOME, upload_mode=UploadMode.MANUAL)
        )

        assert order.assigned_pharmacy_id == "ph-7"

    def test_manual_upload_without_any_pharmacy_rejected(self):
        handler, quote_repo, _, _ = _setup()

        with pytest.raises(ValidationError, match="Choose a pharmacy"):
            asyncio.run(handler.handle(["scan.jpg"], "", HOME, upload_mode=UploadMode.MANUAL))

        assert quote_repo.calls["create_prescription_order"] == 0

    def test_address_without_location_rejected_before_upload(self):
        handler, quote_repo, _, _ = _setup()

        with pytest.raises(ValidationError, match="location pin"):
            asyncio.run(handler.handle(["scan.jpg"], "", DeliveryAddress("a", "No pin")))

        assert quote_repo.calls["create_prescription_order"] == 0
