"""
T-Bank (Tinkoff) acquiring API v2 client: Init, GetState, Cancel.

Every request is signed with the terminal password (see signing.py). Amounts
are integers in kopecks on the wire. The client never retries Init on its own:
a retried Init may charge the customer twice.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import NamedTuple

import httpx

from tgshop.core.config import DEFAULT_TINKOFF_API_URL, settings, tinkoff_urls
from tgshop.core.errors import (
    ConfigurationError,
    GatewayUnavailable,
    PaymentRejected,
    SignatureInvalid,
    ValidationError,
)
from tgshop.services.canonical import SIGNATURE_FIELD
from tgshop.services.signing import Signer, SigningConvention

log = logging.getLogger("tgshop.payments.tinkoff")

GATEWAY_NAME = "tinkoff"

TAXATION_MODES = {"osn", "usn_income", "usn_income_outcome", "envd", "esn", "patent"}
TAX_CATEGORIES = {"none", "vat0", "vat5", "vat7", "vat10", "vat20", "vat105", "vat107", "vat110", "vat120"}


def to_minor_units(amount: float | int | str | Decimal) -> int:
    """Rubles to kopecks, rounded half-up on the decimal value (29990.1 -> 2999010)."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass
class CustomerContact:
    id: str | None = None
    email: str | None = None
    phone: str | None = None

    @property
    def has_contact(self) -> bool:
        return bool(self.email or self.phone)


@dataclass
class CheckoutOrder:
    """What the gateway needs to know about a local order for one payment attempt."""

    reference: str  # OrderId on the wire, unique per attempt
    amount: int  # kopecks
    description: str = ""


@dataclass
class LineItem:
    """Cart line as supplied by the caller. `amount` is accepted but never trusted."""

    name: str
    price: int  # unit price, kopecks
    quantity: int = 1
    tax: str = "none"
    sku: str | None = None
    amount: int | None = None


@dataclass
class ReceiptLine:
    name: str
    price: int
    quantity: int
    amount: int
    tax: str = "none"
    sku: str | None = None

    @classmethod
    def from_item(cls, item: LineItem) -> ReceiptLine:
        return cls(
            name=item.name,
            price=item.price,
            quantity=item.quantity,
            amount=round(item.price * item.quantity),
            tax=item.tax,
            sku=item.sku or None,
        )

    def as_payload(self) -> dict:
        body = {
            "Name": self.name,
            "Price": self.price,
            "Quantity": self.quantity,
            "Amount": self.amount,
            "Tax": self.tax,
        }
        if self.sku:
            body["Ean13"] = self.sku
        return body


@dataclass
class Receipt:
    """Itemized receipt for fiscal reporting; the gateway requires Email or Phone with it."""

    taxation: str
    items: list[ReceiptLine]
    email: str | None = None
    phone: str | None = None

    def as_payload(self) -> dict:
        body: dict = {
            "Taxation": self.taxation,
            "Items": [line.as_payload() for line in self.items],
        }
        if self.email:
            body["Email"] = self.email
        if self.phone:
            body["Phone"] = self.phone
        return body


@dataclass
class PaymentRequest:
    terminal_key: str
    amount: int
    order_reference: str
    description: str
    success_url: str
    fail_url: str
    notification_url: str
    customer: CustomerContact = field(default_factory=CustomerContact)
    receipt: Receipt | None = None
    signature: str | None = None

    def unsigned_payload(self) -> dict:
        body = {
            "TerminalKey": self.terminal_key,
            "Amount": self.amount,
            "OrderId": self.order_reference,
            "Description": self.description,
            "SuccessURL": self.success_url,
            "FailURL": self.fail_url,
            "NotificationURL": self.notification_url,
            "CustomerKey": self.customer.id or self.order_reference,
        }
        if self.customer.email:
            body["Email"] = self.customer.email
        if self.customer.phone:
            body["Phone"] = self.customer.phone
        if self.receipt is not None:
            body["Receipt"] = self.receipt.as_payload()
        return body

    def as_payload(self) -> dict:
        body = self.unsigned_payload()
        if self.signature:
            body[SIGNATURE_FIELD] = self.signature
        return body


class InitResult(NamedTuple):
    payment_id: str
    payment_url: str
    order_reference: str
    amount: int
    status: str


class PaymentState(NamedTuple):
    payment_id: str
    order_reference: str | None
    status: str
    amount: int | None


class CancelResult(NamedTuple):
    payment_id: str
    status: str
    original_amount: int | None
    new_amount: int | None


def format_receipt_items(order_items: Iterable[Mapping]) -> list[LineItem]:
    """Cart lines stored in major units ({"name", "price", "quantity", "sku"}) -> LineItem in kopecks."""
    return [
        LineItem(
            name=str(item.get("name") or "Item")[:128],
            price=to_minor_units(item.get("price") or 0),
            quantity=int(item.get("quantity") or 1),
            tax=item.get("tax") or "none",
            sku=item.get("sku") or None,
        )
        for item in order_items
    ]


def receipt_total(line_items: Iterable[LineItem]) -> int:
    """Sum of receipt line amounts, i.e. what Amount must equal when a receipt is sent."""
    return sum(ReceiptLine.from_item(item).amount for item in line_items)


def _is_kopecks(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_success(data: Mapping) -> bool:
    return data.get("Success") in (True, "true", "True")


def _rejection(data: Mapping, fallback: str) -> PaymentRejected:
    message = data.get("Message") or data.get("ErrorMessage") or data.get("Details") or fallback
    error_code = data.get("ErrorCode")
    return PaymentRejected(
        str(message),
        error_code=str(error_code) if error_code is not None else None,
        details=data.get("Details"),
    )


class TinkoffClient:
    """Signed calls to the acquiring API. Construct once per use and pass it where needed."""

    def __init__(
        self,
        terminal_key: str,
        password: str,
        *,
        api_url: str = DEFAULT_TINKOFF_API_URL,
        success_url: str = "",
        fail_url: str = "",
        notification_url: str = "",
        signing_convention: SigningConvention | str = SigningConvention.PASSWORD_FIELD,
        strict_response_verification: bool = False,
        timeout: float = 15.0,
        taxation: str = "usn_income",
        http_client: httpx.Client | None = None,
    ):
        if not (terminal_key or "").strip() or not (password or "").strip():
            raise ConfigurationError("TINKOFF_TERMINAL_KEY and TINKOFF_PASSWORD must be set.")
        try:
            convention = SigningConvention(signing_convention)
        except ValueError as e:
            raise ConfigurationError(f"Unknown signing convention: {signing_convention!r}") from e
        if taxation not in TAXATION_MODES:
            raise ConfigurationError(f"Unknown taxation mode: {taxation!r}")
        if not timeout or timeout <= 0:
            raise ConfigurationError("Gateway timeout must be a positive number of seconds.")

        self.terminal_key = terminal_key.strip()
        self.signer = Signer(password.strip(), convention)
        self.api_url = (api_url or DEFAULT_TINKOFF_API_URL).rstrip("/") + "/"
        self.success_url = success_url
        self.fail_url = fail_url
        self.notification_url = notification_url
        self.strict_response_verification = strict_response_verification
        self.timeout = timeout
        self.taxation = taxation
        self._owns_http = http_client is None
        self._http = http_client or httpx.Client(timeout=timeout)

    @classmethod
    def from_settings(cls, http_client: httpx.Client | None = None) -> TinkoffClient:
        return cls(
            settings.tinkoff_terminal_key,
            settings.tinkoff_password,
            api_url=settings.tinkoff_api_url,
            signing_convention=settings.tinkoff_signing_convention,
            strict_response_verification=settings.tinkoff_strict_response_verification,
            timeout=settings.tinkoff_timeout_seconds,
            taxation=settings.tinkoff_taxation,
            http_client=http_client,
            **tinkoff_urls(),
        )

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> TinkoffClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ---------- Init ----------

    def build_init_request(
        self,
        order: CheckoutOrder,
        customer: CustomerContact,
        line_items: Sequence[LineItem],
    ) -> PaymentRequest:
        """Validate and sign an Init request. Raises before any network I/O."""
        if not _is_kopecks(order.amount) or order.amount <= 0:
            raise ValidationError("Payment amount must be a positive number of kopecks.")
        if not order.reference:
            raise ValidationError("Order reference is required.")
        if not line_items:
            raise ValidationError("Order has no items.")
        for item in line_items:
            if not _is_kopecks(item.quantity) or item.quantity <= 0:
                raise ValidationError(f"Quantity must be a positive integer: {item.name!r}")
            if not _is_kopecks(item.price) or item.price < 0:
                raise ValidationError(f"Price must be a non-negative number of kopecks: {item.name!r}")
            if item.tax not in TAX_CATEGORIES:
                raise ValidationError(f"Unknown tax category {item.tax!r} for {item.name!r}")
        if not (self.success_url and self.fail_url and self.notification_url):
            raise ConfigurationError("Success, failure and notification URLs must be configured.")

        receipt = None
        if customer.has_contact:
            lines = [ReceiptLine.from_item(item) for item in line_items]
            lines_total = sum(line.amount for line in lines)
            # The gateway refuses receipts that do not add up to Amount
            if lines_total != order.amount:
                raise ValidationError(
                    f"Receipt total {lines_total} differs from payment amount {order.amount}."
                )
            receipt = Receipt(self.taxation, lines, email=customer.email, phone=customer.phone)
        else:
            log.info("No customer email/phone, receipt omitted (order_reference=%s)", order.reference)

        request = PaymentRequest(
            terminal_key=self.terminal_key,
            amount=order.amount,
            order_reference=order.reference,
            description=order.description or f"Order #{order.reference}",
            success_url=self.success_url,
            fail_url=self.fail_url,
            notification_url=self.notification_url,
            customer=customer,
            receipt=receipt,
        )
        request.signature = self.signer.sign(request.unsigned_payload())
        return request

    def init_payment(
        self,
        order: CheckoutOrder,
        customer: CustomerContact,
        line_items: Sequence[LineItem],
    ) -> InitResult:
        request = self.build_init_request(order, customer, line_items)
        data = self._post("Init", request.as_payload())
        if not _is_success(data):
            rejection = _rejection(data, "Payment was not created.")
            log.error(
                "Tinkoff Init rejected: order_reference=%s code=%s message=%s details=%s",
                order.reference,
                rejection.error_code,
                rejection.message,
                rejection.details,
            )
            raise rejection
        self._check_response_token("Init", data)
        payment_id = data.get("PaymentId")
        if not payment_id:
            raise GatewayUnavailable("Init response has no PaymentId.")
        log.info(
            "Tinkoff Init ok: order_reference=%s payment_id=%s amount=%s",
            order.reference,
            payment_id,
            order.amount,
        )
        return InitResult(
            payment_id=str(payment_id),
            payment_url=data.get("PaymentURL") or "",
            order_reference=str(data.get("OrderId") or order.reference),
            amount=int(data.get("Amount") or order.amount),
            status=str(data.get("Status") or "NEW"),
        )

    # ---------- GetState / Cancel ----------

    def get_status(self, payment_id: str | int) -> PaymentState:
        if not payment_id:
            raise ValidationError("PaymentId is required.")
        body = self.signer.signed({"TerminalKey": self.terminal_key, "PaymentId": str(payment_id)})
        data = self._post("GetState", body)
        if not _is_success(data):
            raise _rejection(data, "Could not get payment status.")
        self._check_response_token("GetState", data)
        amount = data.get("Amount")
        return PaymentState(
            payment_id=str(data.get("PaymentId") or payment_id),
            order_reference=data.get("OrderId"),
            status=str(data.get("Status") or ""),
            amount=int(amount) if amount is not None else None,
        )

    def cancel(
        self,
        payment_id: str | int,
        amount: int | None = None,
        *,
        original_amount: int | None = None,
    ) -> CancelResult:
        """Cancel or refund a payment; `amount` (kopecks) makes it a partial refund."""
        if not payment_id:
            raise ValidationError("PaymentId is required.")
        fields: dict = {"TerminalKey": self.terminal_key, "PaymentId": str(payment_id)}
        if amount is not None:
            if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
                raise ValidationError("Refund amount must be a positive number of kopecks.")
            if original_amount is not None and amount > original_amount:
                raise ValidationError(f"Refund amount {amount} exceeds payment amount {original_amount}.")
            fields["Amount"] = amount
        data = self._post("Cancel", self.signer.signed(fields))
        if not _is_success(data):
            rejection = _rejection(data, "Payment was not cancelled.")
            log.error("Tinkoff Cancel rejected: payment_id=%s message=%s", payment_id, rejection.message)
            raise rejection
        self._check_response_token("Cancel", data)
        log.info("Tinkoff Cancel ok: payment_id=%s amount=%s status=%s", payment_id, amount, data.get("Status"))
        return CancelResult(
            payment_id=str(data.get("PaymentId") or payment_id),
            status=str(data.get("Status") or ""),
            original_amount=data.get("OriginalAmount"),
            new_amount=data.get("NewAmount"),
        )

    def verify_notification(self, payload: Mapping) -> bool:
        return self.signer.verify(payload)

    # ---------- transport ----------

    def _post(self, method: str, body: dict) -> dict:
        url = self.api_url + method
        try:
            response = self._http.post(url, json=body, timeout=self.timeout)
        except httpx.TimeoutException as e:
            log.warning("Tinkoff %s timed out after %.1fs", method, self.timeout)
            raise GatewayUnavailable(f"Tinkoff {method}: timeout") from e
        except httpx.HTTPError as e:
            log.warning("Tinkoff %s transport error: %s", method, e)
            raise GatewayUnavailable(f"Tinkoff {method}: {e}") from e
        if not response.is_success:
            log.error("Tinkoff %s HTTP %s: %s", method, response.status_code, response.text[:500])
            raise GatewayUnavailable(f"Tinkoff {method}: HTTP {response.status_code}")
        try:
            data = response.json()
        except ValueError as e:
            raise GatewayUnavailable(f"Tinkoff {method}: response is not JSON") from e
        if not isinstance(data, dict):
            raise GatewayUnavailable(f"Tinkoff {method}: unexpected response shape")
        return data

    def _check_response_token(self, method: str, data: Mapping) -> None:
        if not data.get(SIGNATURE_FIELD):
            if self.strict_response_verification:
                raise SignatureInvalid(f"Tinkoff {method} response is not signed.")
            # Some terminal configurations never sign responses
            log.warning("Tinkoff %s response has no Token, accepted without verification", method)
            return
        if not self.signer.verify(data):
            log.error("Tinkoff %s response Token mismatch", method)
            raise SignatureInvalid(f"Tinkoff {method} response token mismatch.")
