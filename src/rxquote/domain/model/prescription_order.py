"""PrescriptionOrder aggregate: the quote negotiation state machine.

Lifecycle::

    WAITING_FOR_QUOTES --quote--> QUOTED --accept--> ACCEPTED --convert--> CONVERTED
           |                        |
           +------reject------------+------> REJECTED
           +------window lapses-----+------> EXPIRED

The quote repository is the only writer of ``status`` and
``quote_expiry``.  Clients call the ``check_can_*`` guards before
asking the repository for a transition; those guards never mutate.
The mutating transitions (``submit_quote``, ``reject`` ...) are what an
authoritative store applies, each one re-running the same guard.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum

from rxquote.domain.exceptions import (
    InvalidTransitionError,
    QuoteWindowExpiredError,
    ValidationError,
)
from rxquote.domain.model.quote import Quote, QuoteLine, QuoteMode


class OrderStatus(Enum):
    WAITING_FOR_QUOTES = "waiting_for_quotes"
    QUOTED = "quoted"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CONVERTED = "converted"


TERMINAL_STATUSES = frozenset(
    {OrderStatus.REJECTED, OrderStatus.EXPIRED, OrderStatus.CONVERTED}
)

# Statuses bounded by ``quote_expiry``.  An ACCEPTED order has left the
# negotiation window; only conversion remains.
WINDOWED_STATUSES = frozenset({OrderStatus.WAITING_FOR_QUOTES, OrderStatus.QUOTED})

_PROGRESS = {
    OrderStatus.WAITING_FOR_QUOTES: 0,
    OrderStatus.QUOTED: 1,
    OrderStatus.ACCEPTED: 2,
    OrderStatus.REJECTED: 3,
    OrderStatus.EXPIRED: 3,
    OrderStatus.CONVERTED: 3,
}


class UploadMode(Enum):
    AUTO = "auto"      # repository routes the order to a nearby pharmacy
    MANUAL = "manual"  # customer picked the pharmacy


class OrderResponse(Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class Actor(Enum):
    PHARMACY = "pharmacy"
    CUSTOMER = "customer"


# ---------------------------------------------------------------------------
# Constants for business rules
# ---------------------------------------------------------------------------
QUOTE_WINDOW = timedelta(minutes=15)
ACCEPTANCE_WINDOW = timedelta(minutes=15)
MAX_ATTACHMENTS = 10
MAX_NOTES_LENGTH = 500


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def seconds_until(deadline: datetime | None, now: datetime) -> int:
    """Whole seconds from *now* to *deadline*, never negative.

    A missing deadline counts as already passed.
    """
    if deadline is None:
        return 0
    return max(0, math.floor((deadline - now).total_seconds()))


@dataclass(frozen=True)
class DeliveryAddress:
    id: str
    line: str
    lat: float | None = None
    lng: float | None = None

    @property
    def has_location(self) -> bool:
        return self.lat is not None and self.lng is not None


@dataclass(frozen=True)
class RequestedMedicine:
    """A medicine the customer asked for, usually carried over from the cart."""

    name: str
    quantity: int = 1
    brand: str = ""


@dataclass(frozen=True)
class PaymentConfirmation:
    """What the payment collaborator reported for an order."""

    status: str
    details: dict = field(default_factory=dict, compare=False)

    @property
    def is_successful(self) -> bool:
        return self.status == "paid"

    @staticmethod
    def paid(details: dict | None = None) -> PaymentConfirmation:
        return PaymentConfirmation(status="paid", details=dict(details or {}))


def validate_new_order(
    attachments: list[str],
    address: DeliveryAddress | None,
    upload_mode: UploadMode,
    chosen_pharmacy_id: str | None,
) -> None:
    """Raise ValidationError if a prescription order request is malformed."""
    if not attachments:
        raise ValidationError("At least one prescription attachment is required")
    if len(attachments) > MAX_ATTACHMENTS:
        raise ValidationError(f"Maximum {MAX_ATTACHMENTS} attachments per order")
    if address is None or not address.has_location:
        raise ValidationError(
            "Please select a delivery address with location pin"
        )
    if upload_mode is UploadMode.MANUAL and not chosen_pharmacy_id:
        raise ValidationError("Choose a pharmacy for a manual upload")


def clean_notes(notes: str) -> str:
    return (notes or "").strip()[:MAX_NOTES_LENGTH]


@dataclass
class PrescriptionOrder:
    """Aggregate root for one prescription's negotiation.

    The ``__init__`` is intentionally simple so repositories can
    reconstitute observed orders without re-validating.
    """

    id: str | None
    attachments: list[str]
    status: OrderStatus = OrderStatus.WAITING_FOR_QUOTES
    notes: str = ""
    upload_mode: UploadMode = UploadMode.AUTO
    assigned_pharmacy_id: str | None = None
    delivery_address: DeliveryAddress | None = None
    medicines_requested: list[RequestedMedicine] = field(default_factory=list)
    quote_expiry: datetime | None = None
    quotes: list[Quote] = field(default_factory=list)
    payment: PaymentConfirmation | None = None
    converted_order_id: str | None = None
    rejection_reason: str = ""
    created_at: datetime = field(default_factory=utc_now)

    # --- Factory (used by the authoritative store for NEW orders) -------------

    @staticmethod
    def create(
        attachments: list[str],
        notes: str,
        address: DeliveryAddress | None,
        upload_mode: UploadMode,
        assigned_pharmacy_id: str | None,
        now: datetime,
        medicines_requested: list[RequestedMedicine] | None = None,
    ) -> PrescriptionOrder:
        validate_new_order(attachments, address, upload_mode, assigned_pharmacy_id)
        return PrescriptionOrder(
            id=None,
            attachments=list(attachments),
            notes=clean_notes(notes),
            upload_mode=upload_mode,
            assigned_pharmacy_id=assigned_pharmacy_id,
            delivery_address=address,
            medicines_requested=list(medicines_requested or []),
            quote_expiry=now + QUOTE_WINDOW,
            created_at=now,
        )

    # --- Read model -----------------------------------------------------------

    def seconds_left(self, now: datetime) -> int:
        return seconds_until(self.quote_expiry, now)

    def effective_status(self, seconds_left: int) -> OrderStatus:
        """Status as it should be rendered.

        A windowed order whose deadline has passed renders as EXPIRED even
        before the repository's sweep records it.  Advisory only.
        """
        if self.status in WINDOWED_STATUSES and seconds_left <= 0:
            return OrderStatus.EXPIRED
        return self.status

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def latest_quote(self) -> Quote | None:
        return self.quotes[-1] if self.quotes else None

    @property
    def quote_round(self) -> int:
        return len(self.quotes)

    def is_stale_compared_to(self, seen: PrescriptionOrder) -> bool:
        """True if this observation is older than *seen* for the same order.

        Within a quote round an order only moves forward, and a terminal
        status never changes.  A fetch that contradicts either came from
        a stale read.
        """
        if seen.is_terminal:
            return self.status != seen.status
        if self.quote_round > seen.quote_round:
            return False
        if self.quote_round < seen.quote_round:
            return True
        return _PROGRESS[self.status] < _PROGRESS[seen.status]

    # --- Guards (pure; run before any repository call) ------------------------

    def check_can_submit_quote(
        self,
        items: list[QuoteLine],
        mode: QuoteMode,
        seconds_left: int,
        now: datetime,
        message: str = "",
    ) -> Quote:
        """Validate a pharmacy quote and return it, without changing the order."""
        self._require_status({OrderStatus.WAITING_FOR_QUOTES}, "submit a quote")
        self._require_open_window(seconds_left)
        return Quote.create(items, mode, submitted_at=now, message=message)

    def check_can_reject(self, actor: Actor, seconds_left: int, reason: str = "") -> None:
        if actor is Actor.PHARMACY:
            self._require_status({OrderStatus.WAITING_FOR_QUOTES}, "reject")
        else:
            self._require_status(WINDOWED_STATUSES, "reject")
        self._require_open_window(seconds_left)
        if actor is Actor.CUSTOMER and not reason.strip():
            raise ValidationError("Reason is required for rejection")

    def check_can_accept(
        self,
        seconds_left: int,
        delivery_address: DeliveryAddress | None = None,
    ) -> None:
        self._require_status({OrderStatus.QUOTED}, "accept the quote")
        self._require_open_window(seconds_left)
        if (delivery_address or self.delivery_address) is None:
            raise ValidationError("Select a delivery address before accepting")
        quote = self.latest_quote
        if quote is None or not quote.accepted_items:
            raise ValidationError("The quote has no available medicines to accept")

    def check_can_convert(self) -> None:
        if self.status is OrderStatus.CONVERTED:
            return
        self._require_status({OrderStatus.ACCEPTED}, "convert")
        if self.payment is None or not self.payment.is_successful:
            raise ValidationError(
                f"Payment for order {self.id} has not been confirmed"
            )

    # --- Transitions (authoritative) ------------------------------------------

    def submit_quote(
        self,
        items: list[QuoteLine],
        mode: QuoteMode,
        now: datetime,
        message: str = "",
    ) -> Quote:
        """WAITING_FOR_QUOTES -> QUOTED; opens the acceptance window."""
        quote = self.check_can_submit_quote(
            items, mode, self.seconds_left(now), now, message
        )
        self.quotes.append(quote)
        self.status = OrderStatus.QUOTED
        self.quote_expiry = now + ACCEPTANCE_WINDOW
        return quote

    def reject(self, actor: Actor, now: datetime, reason: str = "") -> None:
        """WAITING_FOR_QUOTES|QUOTED -> REJECTED."""
        self.check_can_reject(actor, self.seconds_left(now), reason)
        self.status = OrderStatus.REJECTED
        self.rejection_reason = reason.strip()

    def accept(
        self,
        now: datetime,
        payment: PaymentConfirmation | None = None,
        delivery_address: DeliveryAddress | None = None,
    ) -> None:
        """QUOTED -> ACCEPTED, optionally recording the payment at once."""
        self.check_can_accept(self.seconds_left(now), delivery_address)
        if delivery_address is not None:
            self.delivery_address = delivery_address
        self.status = OrderStatus.ACCEPTED
        if payment is not None:
            self.payment = payment

    def record_payment(self, payment: PaymentConfirmation) -> None:
        self._require_status({OrderStatus.ACCEPTED}, "record a payment")
        self.payment = payment

    def mark_converted(self, new_order_id: str) -> str:
        """ACCEPTED -> CONVERTED.  Returns the payable order's id.

        Converting an already converted order returns the recorded id
        instead of failing.
        """
        self.check_can_convert()
        if self.status is OrderStatus.CONVERTED:
            return self.converted_order_id  # type: ignore[return-value]
        self.status = OrderStatus.CONVERTED
        self.converted_order_id = new_order_id
        return new_order_id

    def expire(self, now: datetime) -> bool:
        """Record expiry if the window has lapsed.  Returns True if it did."""
        if self.status in WINDOWED_STATUSES and self.seconds_left(now) == 0:
            self.status = OrderStatus.EXPIRED
            return True
        return False

    # --- Internal helpers -----------------------------------------------------

    def _require_status(self, allowed: set[OrderStatus] | frozenset, action: str) -> None:
        if self.status not in allowed:
            raise InvalidTransitionError(
                f"Cannot {action}: order {self.id} is {self.status.value}"
            )

    def _require_open_window(self, seconds_left: int) -> None:
        if seconds_left <= 0:
            raise QuoteWindowExpiredError(str(self.id))
