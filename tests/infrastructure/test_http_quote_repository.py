"""Tests for the HTTP quote repository against a mocked backend."""

import asyncio
import json
from datetime import datetime, timezone

import httpx
import pytest

from rxquote.domain.exceptions import (
    ConversionConflictError,
    DomainException,
    EntityNotFoundError,
    InvalidQuoteError,
    InvalidTransitionError,
    NetworkError,
    QuoteWindowExpiredError,
    ValidationError,
)
from rxquote.domain.model.prescription_order import (
    OrderResponse,
    OrderStatus,
    RequestedMedicine,
    UploadMode,
)
from rxquote.domain.model.quote import QuoteLine, QuoteMode
from rxquote.domain.model.value_objects import Money, Quantity
from rxquote.infrastructure.http.http_quote_repository import HttpQuoteRepository
from tests.fakes import HOME

RAW_ORDER = {
    "_id": "65a1f0",
    "status": "quoted",
    "pharmacy": {"_id": "ph-1", "name": "Apollo Pharmacy"},
    "prescriptionUrl": "https://files.example/rx.jpg",
    "notes": "Fever since Monday",
    "uploadType": "auto",
    "address": {"id": "addr-1", "formatted": "12 MG Road", "lat": 12.97, "lng": 77.59},
    "quoteExpiry": "2025-01-06T10:17:00.000Z",
    "quotes": [
        {
            "items": [
                {
                    "medicineName": "Paracetamol 650mg",
                    "brand": "Dolo",
                    "price": 20,
                    "quantity": 2,
                    "available": True,
                },
                {"medicineName": "Amoxicillin 500mg", "quantity": 1, "available": False},
            ],
            "mode": "partial",
            "submittedAt": "2025-01-06T10:02:00Z",
        }
    ],
    "createdAt": "2025-01-06T10:00:00Z",
}


def _call(handler, method: str, *args, **kwargs):
    async def go():
        repo = HttpQuoteRepository(
            "http://api.test/", token="tok", transport=httpx.MockTransport(handler)
        )
        async with repo:
            return await getattr(repo, method)(*args, **kwargs)

    return asyncio.run(go())


def _respond(status: int, body=None):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json=body)

    return handler


class TestReading:

    def test_get_order_parses_backend_payload(self):
        order = _call(_respond(200, RAW_ORDER), "get_order", "65a1f0")

        assert order.id == "65a1f0"
        assert order.status == OrderStatus.QUOTED
        assert order.assigned_pharmacy_id == "ph-1"
        assert order.attachments == ["https://files.example/rx.jpg"]
        assert order.quote_expiry == datetime(2025, 1, 6, 10, 17, tzinfo=timezone.utc)
        assert order.delivery_address.has_location

        quote = order.latest_quote
        assert quote.mode == QuoteMode.PARTIAL
        assert quote.total == Money.of("40")
        assert [line.label for line in quote.unavailable_items] == ["Amoxicillin 500mg"]

    def test_user_rejection_wins_over_status(self):
        raw = dict(RAW_ORDER, userResponse="rejected")
        order = _call(_respond(200, raw), "get_order", "65a1f0")
        assert order.status == OrderStatus.REJECTED

    def test_backend_status_aliases(self):
        raw = dict(RAW_ORDER, status="pending", quotes=[])
        order = _call(_respond(200, raw), "get_order", "65a1f0")
        assert order.status == OrderStatus.WAITING_FOR_QUOTES

    def test_list_skips_unreadable_orders(self):
        listing = [RAW_ORDER, {"_id": "bad", "status": "teleported"}, {"status": "quoted"}]
        orders = _call(_respond(200, listing), "list_orders_for_pharmacy")
        assert [o.id for o in orders] == ["65a1f0"]

    def test_customer_orders_endpoint(self):
        seen = []

        def handler(request):
            seen.append(request.url.path)
            return httpx.Response(200, json=[])

        assert _call(handler, "list_orders_for_customer") == []
        assert seen == ["/api/prescriptions/user-orders"]

    def test_sends_bearer_token(self):
        seen = []

        def handler(request):
            seen.append(request.headers["Authorization"])
            return httpx.Response(200, json=[])

        _call(handler, "list_orders_for_pharmacy")
        assert seen == ["Bearer tok"]


class TestWriting:

    def test_create_order_body(self):
        sent = []

        def handler(request):
            sent.append((request.url.path, json.loads(request.content)))
            return httpx.Response(201, json=dict(RAW_ORDER, status="waiting_for_quotes", quotes=[]))

        order = _call(
            handler,
            "create_prescription_order",
            ["https://files.example/rx.jpg"],
            "Urgent",
            HOME,
            UploadMode.MANUAL,
            chosen_pharmacy_id="ph-7",
            medicines_requested=[RequestedMedicine("Paracetamol", 2, "Dolo")],
        )

        path, body = sent[0]
        assert path == "/api/prescriptions/order"
        assert body["uploadType"] == "manual"
        assert body["chosenPharmacyId"] == "ph-7"
        assert body["address"]["lat"] == 12.97
        assert body["medicinesRequested"] == [{"name": "Paracetamol", "quantity": 2, "brand": "Dolo"}]
        assert order.status == OrderStatus.WAITING_FOR_QUOTES

    def test_submit_quote_body(self):
        sent = []

        def handler(request):
            sent.append((request.url.path, json.loads(request.content)))
            return httpx.Response(200, json={"message": "Quote submitted"})

        lines = [
            QuoteLine(medicine_name="Paracetamol 650mg", price=Money.of("20"), quantity=Quantity(2)),
            QuoteLine(medicine_name="Amoxicillin 500mg", available=False),
        ]
        _call(handler, "submit_quote", "65a1f0", lines, QuoteMode.PARTIAL, "Rest tomorrow")

        path, body = sent[0]
        assert path == "/api/prescriptions/quote/65a1f0"
        assert body["mode"] == "partial"
        assert body["message"] == "Rest tomorrow"
        assert body["quote"][0]["price"] == 20.0
        assert body["quote"][1] == {
            "medicineName": "Amoxicillin 500mg",
            "brand": "",
            "price": None,
            "quantity": None,
            "available": False,
        }

    def test_respond_sends_reason(self):
        sent = []

        def handler(request):
            sent.append(json.loads(request.content))
            return httpx.Response(200, json={})

        _call(handler, "respond_to_order", "65a1f0", OrderResponse.REJECTED, "Too costly")
        assert sent == [{"response": "rejected", "reason": "Too costly"}]

    def test_accept_sends_payment(self):
        sent = []

        def handler(request):
            sent.append((request.url.path, json.loads(request.content)))
            return httpx.Response(200, json={})

        _call(handler, "accept_quote", "65a1f0", "paid", {"paymentId": "pay_1"})
        assert sent == [
            (
                "/api/prescriptions/65a1f0/accept",
                {"paymentStatus": "paid", "paymentDetails": {"paymentId": "pay_1"}},
            )
        ]

    def test_convert_returns_new_order_id(self):
        assert _call(_respond(200, {"orderId": "ord-77"}), "convert_to_order", "65a1f0") == "ord-77"

    def test_convert_without_order_id_is_a_failure(self):
        with pytest.raises(NetworkError, match="no order id"):
            _call(_respond(200, {}), "convert_to_order", "65a1f0")


class TestErrorMapping:

    def test_window_expired_code(self):
        handler = _respond(409, {"code": "window_expired", "message": "Too late"})
        with pytest.raises(QuoteWindowExpiredError):
            _call(handler, "submit_quote", "65a1f0", [], QuoteMode.ACCEPT)

    def test_expired_message(self):
        handler = _respond(400, {"message": "Quote window expired"})
        with pytest.raises(QuoteWindowExpiredError):
            _call(handler, "respond_to_order", "65a1f0", OrderResponse.REJECTED)

    def test_already_converted(self):
        handler = _respond(409, {"code": "already_converted", "orderId": "ord-77"})
        with pytest.raises(ConversionConflictError) as exc_info:
            _call(handler, "convert_to_order", "65a1f0")
        assert exc_info.value.existing_order_id == "ord-77"

    def test_other_conflict_is_invalid_transition(self):
        handler = _respond(409, {"message": "Order already accepted"})
        with pytest.raises(InvalidTransitionError):
            _call(handler, "respond_to_order", "65a1f0", OrderResponse.ACCEPTED)

    def test_unprocessable_quote(self):
        handler = _respond(422, {"message": "Price is required"})
        with pytest.raises(InvalidQuoteError, match="Price is required"):
            _call(handler, "submit_quote", "65a1f0", [], QuoteMode.ACCEPT)

    def test_not_found(self):
        with pytest.raises(EntityNotFoundError):
            _call(_respond(404, {"message": "Not found"}), "get_order", "nope")

    def test_unauthorized(self):
        with pytest.raises(DomainException, match="Not authorized"):
            _call(_respond(401, {"message": "Token expired"}), "list_orders_for_pharmacy")

    def test_server_error_is_retryable(self):
        with pytest.raises(NetworkError) as exc_info:
            _call(_respond(503, {"message": "Unavailable"}), "list_orders_for_pharmacy")
        assert exc_info.value.retryable

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        with pytest.raises(NetworkError, match="timed out"):
            _call(handler, "get_order", "65a1f0")

    def test_connection_refused(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(NetworkError, match="Could not reach"):
            _call(handler, "list_orders_for_customer")


class TestMalformedPayloads:

    def test_non_json_body_is_a_network_failure(self):
        def handler(request):
            return httpx.Response(200, text="<html>gateway</html>")

        with pytest.raises(NetworkError, match="Unreadable response"):
            _call(handler, "list_orders_for_pharmacy")

    def test_listing_that_is_not_a_list_is_a_network_failure(self):
        with pytest.raises(NetworkError, match="Expected a list"):
            _call(_respond(200, {"orders": []}), "list_orders_for_customer")

    def test_non_object_entries_skipped(self):
        listing = [None, "65a1f0", 7, RAW_ORDER]
        orders = _call(_respond(200, listing), "list_orders_for_pharmacy")
        assert [o.id for o in orders] == ["65a1f0"]

    def test_unknown_upload_type_is_a_validation_error(self):
        raw = {"_id": "x", "status": "quoted", "uploadType": "whatsapp"}
        with pytest.raises(ValidationError, match="Unreadable order payload x"):
            _call(_respond(200, raw), "get_order", "x")

    @pytest.mark.parametrize(
        "changes",
        [
            {"quoteExpiry": "next tuesday"},
            {"medicinesRequested": [{"name": "Paracetamol", "quantity": "two"}]},
            {"quotes": [{"items": [], "mode": "haggle"}]},
            {"quotes": [{"items": [{"medicineName": "Dolo", "price": 20, "quantity": "2x"}]}]},
        ],
    )
    def test_bad_fields_become_validation_errors(self, changes):
        raw = dict(RAW_ORDER, **changes)
        with pytest.raises(ValidationError):
            _call(_respond(200, raw), "get_order", "65a1f0")

    def test_listing_skips_orders_with_bad_fields(self):
        listing = [dict(RAW_ORDER, _id="bad", uploadType="whatsapp"), RAW_ORDER]
        orders = _call(_respond(200, listing), "list_orders_for_pharmacy")
        assert [o.id for o in orders] == ["65a1f0"]
