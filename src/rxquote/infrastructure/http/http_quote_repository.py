"""HTTP implementation of QuoteRepository.

Talks to the prescriptions API of the ordering backend.  Every call has
a bounded timeout; transport failures and server errors surface as
``NetworkError`` instead of silently turning into empty results.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

import httpx

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
    DeliveryAddress,
    OrderResponse,
    OrderStatus,
    PaymentConfirmation,
    PrescriptionOrder,
    RequestedMedicine,
    UploadMode,
)
from rxquote.domain.model.quote import Quote, QuoteLine, QuoteMode
from rxquote.domain.model.value_objects import Money, Quantity
from rxquote.domain.repository.quote_repository import QuoteRepository

logger = logging.getLogger("rxquote.http")

DEFAULT_TIMEOUT_SECONDS = 10.0

# The backend has used several names for the same lifecycle points.
WIRE_STATUSES = {
    "pending": OrderStatus.WAITING_FOR_QUOTES,
    "waiting_for_quotes": OrderStatus.WAITING_FOR_QUOTES,
    "quoted": OrderStatus.QUOTED,
    "accepted": OrderStatus.ACCEPTED,
    "confirmed": OrderStatus.ACCEPTED,
    "rejected": OrderStatus.REJECTED,
    "cancelled": OrderStatus.REJECTED,
    "expired": OrderStatus.EXPIRED,
    "converted": OrderStatus.CONVERTED,
}


class HttpQuoteRepository(QuoteRepository):

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HttpQuoteRepository:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # --- QuoteRepository interface --------------------------------------------

    async def create_prescription_order(
        self,
        attachments: list[str],
        notes: str,
        address: DeliveryAddress,
        upload_mode: UploadMode,
        chosen_pharmacy_id: str | None = None,
        medicines_requested: list[RequestedMedicine] | None = None,
    ) -> PrescriptionOrder:
        body = {
            "prescriptionUrl": attachments[0] if attachments else None,
            "attachments": attachments,
            "notes": notes,
            "uploadType": upload_mode.value,
            "address": self._address_to_raw(address),
            "medicinesRequested": [
                {"name": m.name, "quantity": m.quantity, "brand": m.brand}
                for m in medicines_requested or []
            ],
        }
        if chosen_pharmacy_id:
            body["chosenPharmacyId"] = chosen_pharmacy_id
        data = await self._request("POST", "/api/prescriptions/order", json=body)
        return self._to_domain(data)

    async def list_orders_for_pharmacy(self) -> list[PrescriptionOrder]:
        data = await self._request("GET", "/api/prescriptions/pharmacy-orders")
        return self._to_domain_list(data)

    async def list_orders_for_customer(self) -> list[PrescriptionOrder]:
        data = await self._request("GET", "/api/prescriptions/user-orders")
        return self._to_domain_list(data)

    async def get_order(self, order_id: str) -> PrescriptionOrder:
        data = await self._request(
            "GET", f"/api/prescriptions/order/{order_id}", order_id=order_id
        )
        return self._to_domain(data)

    async def submit_quote(
        self,
        order_id: str,
        items: list[QuoteLine],
        mode: QuoteMode,
        message: str = "",
    ) -> None:
        body = {
            "quote": [self._line_to_raw(line) for line in items],
            "mode": mode.value,
            "message": message,
        }
        await self._request(
            "POST",
            f"/api/prescriptions/quote/{order_id}",
            json=body,
            order_id=order_id,
            invalid_error=InvalidQuoteError,
        )

    async def respond_to_order(
        self,
        order_id: str,
        response: OrderResponse,
        reason: str = "",
    ) -> None:
        body = {"response": response.value}
        if reason:
            body["reason"] = reason
        await self._request(
            "POST", f"/api/prescriptions/respond/{order_id}", json=body, order_id=order_id
        )

    async def accept_quote(
        self,
        order_id: str,
        payment_status: str,
        payment_details: dict,
        delivery_address: DeliveryAddress | None = None,
    ) -> None:
        body = {"paymentStatus": payment_status, "paymentDetails": payment_details}
        if delivery_address is not None:
            body["address"] = self._address_to_raw(delivery_address)
        await self._request(
            "POST", f"/api/prescriptions/{order_id}/accept", json=body, order_id=order_id
        )

    async def record_payment(self, order_id: str, payment_details: dict) -> None:
        await self._request(
            "POST",
            f"/api/orders/{order_id}/payment-success",
            json={"paymentDetails": payment_details},
            order_id=order_id,
        )

    async def convert_to_order(self, order_id: str) -> str:
        data = await self._request(
            "POST", f"/api/prescriptions/{order_id}/convert-to-order", json={}, order_id=order_id
        )
        new_order_id = (data or {}).get("orderId")
        if not new_order_id:
            raise NetworkError(f"Conversion of order {order_id} returned no order id")
        return str(new_order_id)

    # --- Transport ------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        json: dict | None = None,
        order_id: str = "",
        invalid_error: type[ValidationError] = ValidationError,
    ):
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.TimeoutException as exc:
            logger.warning("%s %s timed out", method, path)
            raise NetworkError(f"Request timed out: {method} {path}") from exc
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise NetworkError(f"Could not reach the server: {exc}") from exc

        if response.is_success:
            if not response.content:
                return None
            try:
                return response.json()
            except ValueError as exc:
                logger.warning("%s %s answered a non-JSON body", method, path)
                raise NetworkError(f"Unreadable response from the server: {method} {path}") from exc

        self._raise_for_error(response, order_id, invalid_error)

    @staticmethod
    def _raise_for_error(
        response: httpx.Response,
        order_id: str,
        invalid_error: type[ValidationError],
    ) -> None:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        code = str(body.get("code", ""))
        message = str(body.get("message") or body.get("error") or response.reason_phrase)
        status = response.status_code

        logger.warning("Server answered %s for order %s: %s", status, order_id or "-", message)

        if code == "already_converted" or (status == 409 and body.get("orderId")):
            raise ConversionConflictError(order_id, str(body.get("orderId", "")))
        if code == "window_expired" or (status in (400, 409, 410) and "expired" in message.lower()):
            raise QuoteWindowExpiredError(order_id)
        if status == 404:
            raise EntityNotFoundError(f"Order {order_id} not found")
        if status == 409:
            raise InvalidTransitionError(message)
        if status in (400, 422):
            raise invalid_error(message)
        if status in (401, 403):
            raise DomainException(f"Not authorized: {message}")
        raise NetworkError(f"Server error {status}: {message}")

    # --- Serialization --------------------------------------------------------

    @staticmethod
    def _address_to_raw(address: DeliveryAddress) -> dict:
        return {
            "id": address.id,
            "formatted": address.line,
            "lat": address.lat,
            "lng": address.lng,
        }

    @staticmethod
    def _line_to_raw(line: QuoteLine) -> dict:
        return {
            "medicineName": line.medicine_name,
            "brand": line.brand,
            "price": float(line.price.amount) if line.price is not None else None,
            "quantity": line.quantity.value if line.quantity is not None else None,
            "available": line.available,
        }

    def _to_domain_list(self, data) -> list[PrescriptionOrder]:
        if data is None:
            return []
        if not isinstance(data, list):
            raise NetworkError(f"Expected a list of orders, got {type(data).__name__}")
        orders: list[PrescriptionOrder] = []
        for raw in data:
            try:
                orders.append(self._to_domain(raw))
            except ValidationError as exc:
                order_id = raw.get("_id") if isinstance(raw, dict) else None
                logger.warning("Skipping unreadable order %s: %s", order_id, exc)
        return orders

    @classmethod
    def _to_domain(cls, raw: dict) -> PrescriptionOrder:
        if not isinstance(raw, dict) or not raw.get("_id"):
            raise ValidationError("Order payload has no id")
        try:
            return cls._order_from_raw(raw)
        except (ValueError, TypeError, AttributeError) as exc:
            raise ValidationError(f"Unreadable order payload {raw['_id']}: {exc}") from exc

    @classmethod
    def _order_from_raw(cls, raw: dict) -> PrescriptionOrder:
        wire_status = str(raw.get("status") or "waiting_for_quotes").lower()
        if raw.get("userResponse") == "rejected":
            wire_status = "rejected"
        try:
            status = WIRE_STATUSES[wire_status]
        except KeyError:
            raise ValidationError(f"Unknown order status {wire_status!r}") from None

        pharmacy = raw.get("pharmacy") or raw.get("assignedPharmacy")
        if isinstance(pharmacy, dict):
            pharmacy = pharmacy.get("_id")

        payment = None
        if raw.get("paymentStatus"):
            payment = PaymentConfirmation(
                status=str(raw["paymentStatus"]),
                details=raw.get("paymentDetails") or {},
            )

        attachments = list(raw.get("attachments") or [])
        if not attachments and raw.get("prescriptionUrl"):
            attachments = [raw["prescriptionUrl"]]

        return PrescriptionOrder(
            id=str(raw["_id"]),
            attachments=attachments,
            status=status,
            notes=raw.get("notes") or "",
            upload_mode=UploadMode(raw.get("uploadType") or "auto"),
            assigned_pharmacy_id=str(pharmacy) if pharmacy else None,
            delivery_address=cls._address_to_domain(raw.get("address")),
            medicines_requested=[
                RequestedMedicine(
                    name=m.get("name", ""),
                    quantity=int(m.get("quantity") or 1),
                    brand=m.get("brand") or "",
                )
                for m in raw.get("medicinesRequested") or []
            ],
            quote_expiry=_parse_datetime(raw.get("quoteExpiry")),
            quotes=[cls._quote_to_domain(q) for q in raw.get("quotes") or []],
            payment=payment,
            converted_order_id=raw.get("convertedOrderId"),
            rejection_reason=raw.get("rejectionReason") or "",
            created_at=_parse_datetime(raw.get("createdAt")) or datetime.now(timezone.utc),
        )

    @staticmethod
    def _address_to_domain(raw: dict | None) -> DeliveryAddress | None:
        if not raw:
            return None
        return DeliveryAddress(
            id=str(raw.get("id") or raw.get("_id") or ""),
            line=raw.get("formatted") or raw.get("addressLine") or "",
            lat=raw.get("lat"),
            lng=raw.get("lng"),
        )

    @staticmethod
    def _quote_to_domain(raw: dict) -> Quote:
        lines = []
        for item in raw.get("items") or []:
            try:
                price = (
                    Money(Decimal(str(item["price"])))
                    if item.get("price") not in (None, "")
                    else None
                )
            except InvalidOperation as exc:
                raise ValidationError(f"Invalid quote price {item.get('price')!r}") from exc
            quantity = Quantity(int(item["quantity"])) if item.get("quantity") else None
            lines.append(
                QuoteLine(
                    medicine_name=item.get("medicineName") or item.get("name") or "",
                    brand=item.get("brand") or "",
                    price=price,
                    quantity=quantity,
                    available=item.get("available") is not False,
                )
            )
        return Quote(
            items=tuple(lines),
            mode=QuoteMode(raw.get("mode") or "partial"),
            submitted_at=_parse_datetime(raw.get("submittedAt") or raw.get("createdAt"))
            or datetime.now(timezone.utc),
            message=raw.get("message") or "",
        )


def _parse_datetime(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed) as an aware UTC datetime."""
    if not value:
        return None
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
