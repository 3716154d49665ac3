"""Integration tests for the RespondToOrder and AcceptQuote use cases."""

import asyncio

import pytest

from rxquote.application.accept_quote import AcceptQuoteHandler
from rxquote.application.respond_to_order import RespondToOrderHandler
from rxquote.domain.exceptions import (
    InvalidTransitionError,
    QuoteWindowExpiredError,
    ValidationError,
)
from rxquote.domain.model.prescription_order import (
    Actor,
    OrderResponse,
    OrderStatus,
    PaymentConfirmation,
)
from rxquote.domain.model.quote import QuoteLine, QuoteMode
from rxquote.domain.model.value_objects import Money, Quantity
from rxquote.domain.service.expiry_clock import ExpiryClock
from tests.fakes import T0, FakeClock, FakeQuoteRepository, make_order


def _setup(quoted: bool = True):
    now = FakeClock()
    customer_repo = FakeQuoteRepository(now, actor=Actor.CUSTOMER)
    order = make_order()
    if quoted:
        order.submit_quote(
            [QuoteLine(medicine_name="Paracetamol", price=Money.of("10"), quantity=Quantity(2))],
            QuoteMode.ACCEPT,
            T0,
        )
    customer_repo.seed(order)
    clock = ExpiryClock(now=now)
    return now, customer_repo, clock


class TestPharmacyResponse:

    def test_pharmacy_rejects_waiting_order(self):
        now, repo, clock = _setup(quoted=False)
        pharmacy_repo = repo.for_actor(Actor.PHARMACY)
        handler = RespondToOrderHandler(pharmacy_repo, clock, Actor.PHARMACY)

        order = asyncio.run(handler.handle("rx-1", OrderResponse.REJECTED))

        assert order.status == OrderStatus.REJECTED
        assert not clock.is_tracking("rx-1")

    def test_pharmacy_cannot_accept_without_quote(self):
        _, repo, clock = _setup(quoted=False)
        handler = RespondToOrderHandler(repo.for_actor(Actor.PHARMACY), clock, Actor.PHARMACY)

        with pytest.raises(InvalidTransitionError, match="accept quote"):
            asyncio.run(handler.handle("rx-1", OrderResponse.ACCEPTED))

        assert repo.calls["respond_to_order"] == 0

    def test_rejection_after_deadline_refused(self):
        now, repo, clock = _setup(quoted=False)
        handler = RespondToOrderHandler(repo.for_actor(Actor.PHARMACY), clock, Actor.PHARMACY)
        now.advance(15 * 60)

        with pytest.raises(QuoteWindowExpiredError):
            asyncio.run(handler.handle("rx-1", OrderResponse.REJECTED))

        assert repo.calls["respond_to_order"] == 0


class TestCustomerResponse:

    def test_customer_rejects_with_reason(self):
        _, repo, clock = _setup()
        handler = RespondToOrderHandler(repo, clock, Actor.CUSTOMER)

        order = asyncio.run(handler.handle("rx-1", OrderResponse.REJECTED, "Found it cheaper"))

        assert order.status == OrderStatus.REJECTED
        assert order.rejection_reason == "Found it cheaper"

    def test_customer_rejection_without_reason_refused(self):
        _, repo, clock = _setup()
        handler = RespondToOrderHandler(repo, clock, Actor.CUSTOMER)

        with pytest.raises(ValidationError, match="Reason is required"):
            asyncio.run(handler.handle("rx-1", OrderResponse.REJECTED))

        assert repo.calls["respond_to_order"] == 0

    def test_customer_accepts_quote(self):
        _, repo, clock = _setup()
        handler = RespondToOrderHandler(repo, clock, Actor.CUSTOMER)

        order = asyncio.run(handler.handle("rx-1", OrderResponse.ACCEPTED))

        assert order.status == OrderStatus.ACCEPTED

    def test_concurrent_accept_and_reject_only_one_lands(self):
        _, repo, clock = _setup()
        accept = AcceptQuoteHandler(repo, clock)
        reject = RespondToOrderHandler(repo, clock, Actor.CUSTOMER)

        async def race():
            return await asyncio.gather(
                accept.handle("rx-1", PaymentConfirmation.paid({"paymentId": "pay_1"})),
                reject.handle("rx-1", OrderResponse.REJECTED, "Changed my mind"),
                return_exceptions=True,
            )

        accepted, rejected = asyncio.run(race())

        assert accepted.status == OrderStatus.ACCEPTED
        assert isinstance(rejected, InvalidTransitionError)
        assert repo.stored("rx-1").status == OrderStatus.ACCEPTED


class TestAcceptQuote:

    def test_accept_records_payment(self):
        _, repo, clock = _setup()
        handler = AcceptQuoteHandler(repo, clock)

        order = asyncio.run(handler.handle("rx-1", PaymentConfirmation.paid({"paymentId": "pay_1"})))

        assert order.status == OrderStatus.ACCEPTED
        assert order.payment.is_successful
        assert order.payment.details == {"paymentId": "pay_1"}

    def test_accept_after_acceptance_window_refused(self):
        now, repo, clock = _setup()
        now.advance(15 * 60 + 1)

        with pytest.raises(QuoteWindowExpiredError):
            asyncio.run(AcceptQuoteHandler(repo, clock).handle("rx-1", PaymentConfirmation.paid()))

        assert repo.calls["accept_quote"] == 0

    def test_late_payment_recorded_on_accepted_order(self):
        _, repo, clock = _setup()
        handler = AcceptQuoteHandler(repo, clock)
        asyncio.run(handler.handle("rx-1", PaymentConfirmation(status="pending")))

        order = asyncio.run(handler.handle("rx-1", PaymentConfirmation.paid({"paymentId": "pay_2"})))

        assert order.payment.is_successful
        assert repo.calls["record_payment"] == 1

    def test_repeated_payment_not_recorded_twice(self):
        _, repo, clock = _setup()
        handler = AcceptQuoteHandler(repo, clock)
        asyncio.run(handler.handle("rx-1", PaymentConfirmation.paid()))
        asyncio.run(handler.handle("rx-1", PaymentConfirmation.paid()))

        assert repo.calls["accept_quote"] == 1
        assert repo.calls["record_payment"] == 0

    def test_waiting_order_cannot_be_accepted(self):
        _, repo, clock = _setup(quoted=False)

        with pytest.raises(InvalidTransitionError):
            asyncio.run(AcceptQuoteHandler(repo, clock).handle("rx-1", PaymentConfirmation.paid()))
