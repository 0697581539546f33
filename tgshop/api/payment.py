"""Checkout, payment status, gateway webhook and admin cancel/refund."""
import json
import logging
import secrets

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse

from tgshop.api.deps import (
    get_gateway_client,
    get_optional_gateway_client,
    get_payment_store,
    get_reconciler,
    require_admin,
)
from tgshop.core.config import settings
from tgshop.core.errors import (
    ConfigurationError,
    GatewayUnavailable,
    PaymentError,
    PaymentRejected,
    SignatureInvalid,
    ValidationError,
)
from tgshop.core.rate_limit import limiter
from tgshop.models import OrderStatus, PaymentRecord, PaymentStatus
from tgshop.schemas import CancelPaymentRequest, CreatePaymentRequest
from tgshop.services.payment_store import PaymentStore
from tgshop.services.reconciler import ReconcileOutcome, StatusReconciler, map_gateway_status
from tgshop.services.telegram_notify import format_payment_message, notify_operator
from tgshop.services.tinkoff import (
    GATEWAY_NAME,
    CheckoutOrder,
    CustomerContact,
    TinkoffClient,
    format_receipt_items,
    receipt_total,
    to_minor_units,
)

log = logging.getLogger("tgshop.payments")

router = APIRouter(prefix="/api/payment", tags=["payment"])
pages_router = APIRouter(prefix="/payment", tags=["payment"])

_CHECKOUT_LIMIT = f"{settings.rate_limit_checkout_per_minute}/minute"

_HTTP_STATUS = {
    ValidationError: 400,
    PaymentRejected: 400,
    ConfigurationError: 503,
    GatewayUnavailable: 502,
    SignatureInvalid: 502,
}


def _http_error(e: PaymentError) -> HTTPException:
    status_code = next((code for cls, code in _HTTP_STATUS.items() if isinstance(e, cls)), 500)
    if isinstance(e, PaymentRejected):
        detail = e.message
    elif isinstance(e, SignatureInvalid):
        detail = "Payment gateway response could not be verified."
    elif isinstance(e, GatewayUnavailable):
        detail = "Payment gateway is unavailable, please try again later."
    else:
        detail = str(e)
    return HTTPException(status_code=status_code, detail=detail)


def _record_view(record: PaymentRecord) -> dict:
    return {
        "payment_record_id": record.id,
        "payment_id": record.gateway_payment_id,
        "order_reference": record.order_reference,
        "status": record.status,
        "amount": record.amount,
        "currency": record.currency,
        "payment_url": record.payment_url,
        "created_at": record.created_at.isoformat() if record.created_at else None,
        "completed_at": record.completed_at.isoformat() if record.completed_at else None,
    }


@router.post("/create")
@limiter.limit(_CHECKOUT_LIMIT)
def create_payment(
    request: Request,
    body: CreatePaymentRequest,
    store: PaymentStore = Depends(get_payment_store),
    client: TinkoffClient = Depends(get_gateway_client),
):
    """Start a gateway payment for a pending order and return the hosted payment page URL."""
    order = store.get_order(body.order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found.")
    if order.status != OrderStatus.PENDING.value:
        raise HTTPException(status_code=409, detail=f"Order is already {order.status}.")

    customer = CustomerContact(
        id=(body.customer.id or order.user_id or None),
        email=(body.customer.email or "").strip() or None,
        phone=(body.customer.phone or "").strip() or None,
    )
    line_items = format_receipt_items(order.items or [])
    # Amount must equal the receipt total, which rounds per unit price
    amount = receipt_total(line_items) if line_items else to_minor_units(order.total)
    if amount != to_minor_units(order.total):
        log.info("order_id=%s charged %s kopecks from line items, order total is %s", order.id, amount, order.total)
    checkout = CheckoutOrder(
        reference=f"{order.id}-{secrets.token_hex(4)}",
        amount=amount,
        description=body.description or f"Order #{order.id}",
    )
    try:
        result = client.init_payment(checkout, customer, line_items)
    except PaymentError as e:
        raise _http_error(e)

    record_id = store.create_payment_record(
        order.id,
        GATEWAY_NAME,
        checkout.amount,
        settings.currency,
        order_reference=checkout.reference,
        payer_email=customer.email,
        payer_phone=customer.phone,
        gateway_payment_id=result.payment_id,
        payment_url=result.payment_url,
        message=f"Init: {result.status}",
    )
    store.commit()
    return {
        "success": True,
        "payment_id": result.payment_id,
        "payment_url": result.payment_url,
        "payment_record_id": record_id,
        "order_reference": checkout.reference,
    }


@router.get("/order/{order_id}")
@limiter.limit(_CHECKOUT_LIMIT)
def order_payment_status(
    request: Request,
    order_id: int,
    refresh: bool = False,
    store: PaymentStore = Depends(get_payment_store),
    client: TinkoffClient | None = Depends(get_optional_gateway_client),
):
    """Local payment view for an order; refresh=true asks the gateway for the latest payment first."""
    order = store.get_order(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found.")
    records = store.list_payment_records(order_id)
    refresh_error = None
    if refresh and records and records[0].gateway_payment_id:
        latest = records[0]
        if client is None:
            refresh_error = "Payments are not configured."
        elif latest.status in (PaymentStatus.PENDING.value, PaymentStatus.PROCESSING.value):
            try:
                StatusReconciler(store, client).poll(latest.gateway_payment_id)
            except (GatewayUnavailable, PaymentRejected) as e:
                log.warning("Status refresh failed for order_id=%s: %s", order_id, e)
                refresh_error = str(e)
            order = store.get_order(order_id)
            records = store.list_payment_records(order_id)
    return {
        "order_id": order.id,
        "order_status": order.status,
        "payments": [_record_view(r) for r in records],
        "refresh_error": refresh_error,
    }


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    reconciler: StatusReconciler = Depends(get_reconciler),
):
    """
    Gateway notification URL. The gateway retries until it gets 200 with body OK,
    so anything structurally valid and signed is acknowledged, whatever the outcome.
    """
    try:
        payload = json.loads(await request.body())
    except (UnicodeDecodeError, ValueError):
        log.warning("Webhook body is not JSON")
        return PlainTextResponse("Bad request", status_code=400)
    if not isinstance(payload, dict):
        return PlainTextResponse("Bad request", status_code=400)

    result = reconciler.handle_notification(payload)
    if result.outcome is ReconcileOutcome.INVALID:
        return PlainTextResponse("Bad request", status_code=400)
    if result.outcome is ReconcileOutcome.REJECTED:
        return PlainTextResponse("Invalid token", status_code=403)
    if result.order_confirmed:
        record = reconciler.store.get_payment_record(result.payment_record_id)
        background_tasks.add_task(
            notify_operator,
            format_payment_message(result.order_id, record.amount, record.gateway_payment_id),
        )
    return PlainTextResponse("OK", status_code=200)


@router.post("/{payment_record_id}/cancel", dependencies=[Depends(require_admin)])
def cancel_payment(
    payment_record_id: int,
    body: CancelPaymentRequest | None = None,
    store: PaymentStore = Depends(get_payment_store),
    client: TinkoffClient = Depends(get_gateway_client),
):
    """Cancel an unpaid payment or refund a paid one (partially when amount is given)."""
    record = store.get_payment_record(payment_record_id)
    if not record:
        raise HTTPException(status_code=404, detail="Payment not found.")
    if not record.gateway_payment_id:
        raise HTTPException(status_code=409, detail="Payment has no gateway PaymentId.")
    amount = body.amount if body else None
    try:
        result = client.cancel(record.gateway_payment_id, amount, original_amount=record.amount)
    except PaymentError as e:
        raise _http_error(e)
    reconciled = StatusReconciler(store, client).apply(
        payment_record_id,
        map_gateway_status(result.status),
        f"{result.status} (Cancel{f' {amount}' if amount else ''})",
    )
    return {
        "success": True,
        "payment_id": result.payment_id,
        "gateway_status": result.status,
        "status": reconciled.status.value if reconciled.status else None,
        "original_amount": result.original_amount,
        "new_amount": result.new_amount,
    }


@pages_router.get("/success")
def payment_success(orderId: str | None = None):
    """Gateway SuccessURL. The order is confirmed by the webhook, not by this redirect."""
    return {"success": True, "order_id": orderId, "message": "Payment accepted. The order will be confirmed shortly."}


@pages_router.get("/failure")
def payment_failure(orderId: str | None = None):
    return {"success": False, "order_id": orderId, "message": "Payment was not completed."}
