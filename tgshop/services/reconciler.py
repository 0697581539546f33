"""
Payment status reconciliation: gateway notifications and GetState polls are
mapped onto the local status lattice and applied at most once.

    pending -> processing -> completed | failed
    pending -> completed | failed
    completed -> refunded

Notifications may arrive duplicated or out of order; anything that would move a
payment backwards is logged and dropped.
"""
import logging
from collections.abc import Mapping
from enum import Enum
from typing import NamedTuple

from tgshop.core.errors import ConcurrentUpdate, IllegalTransition, SignatureInvalid
from tgshop.models import PaymentStatus
from tgshop.services.payment_store import PaymentStore
from tgshop.services.tinkoff import GATEWAY_NAME, TinkoffClient

log = logging.getLogger("tgshop.payments.reconciler")

# Gateway Status -> local status; anything not listed is still in flight
GATEWAY_STATUS_MAP = {
    "NEW": PaymentStatus.PENDING,
    "CONFIRMED": PaymentStatus.COMPLETED,
    "COMPLETED": PaymentStatus.COMPLETED,
    "REJECTED": PaymentStatus.FAILED,
    "CANCELED": PaymentStatus.FAILED,
    "CANCELLED": PaymentStatus.FAILED,
    "REVERSED": PaymentStatus.FAILED,
    "AUTH_FAIL": PaymentStatus.FAILED,
    "DEADLINE_EXPIRED": PaymentStatus.FAILED,
    "REFUNDED": PaymentStatus.REFUNDED,
    "PARTIAL_REFUNDED": PaymentStatus.REFUNDED,
}

_RANK = {
    PaymentStatus.PENDING: 0,
    PaymentStatus.PROCESSING: 1,
    PaymentStatus.COMPLETED: 2,
    PaymentStatus.FAILED: 2,
    PaymentStatus.REFUNDED: 3,
}
_FINAL = {PaymentStatus.COMPLETED, PaymentStatus.FAILED, PaymentStatus.REFUNDED}


def map_gateway_status(gateway_status: object) -> PaymentStatus:
    return GATEWAY_STATUS_MAP.get(str(gateway_status or "").strip().upper(), PaymentStatus.PROCESSING)


def is_legal_transition(current: PaymentStatus, new: PaymentStatus) -> bool:
    if new is PaymentStatus.REFUNDED:
        return current is PaymentStatus.COMPLETED
    if current in _FINAL:
        return False
    return _RANK[new] > _RANK[current]


def check_transition(current: PaymentStatus, new: PaymentStatus) -> None:
    if not is_legal_transition(current, new):
        raise IllegalTransition(current.value, new.value)


class ReconcileOutcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"  # already in that status
    DROPPED = "dropped"  # illegal regression
    REJECTED = "rejected"  # Token check failed
    UNKNOWN = "unknown"  # no local payment with that PaymentId
    INVALID = "invalid"  # payload missing PaymentId/Status


class ReconcileResult(NamedTuple):
    outcome: ReconcileOutcome
    status: PaymentStatus | None = None
    payment_record_id: int | None = None
    order_id: int | None = None
    order_confirmed: bool = False  # this call moved the order to confirmed


class StatusReconciler:
    MAX_ATTEMPTS = 3

    def __init__(self, store: PaymentStore, client: TinkoffClient, gateway_name: str = GATEWAY_NAME):
        self.store = store
        self.client = client
        self.gateway_name = gateway_name

    def handle_notification(self, payload: Mapping) -> ReconcileResult:
        """Webhook entry point. Nothing is written unless the Token verifies."""
        payment_id = payload.get("PaymentId")
        gateway_status = payload.get("Status")
        if not payment_id or not isinstance(gateway_status, str) or not gateway_status.strip():
            log.warning("Notification without PaymentId/Status ignored: keys=%s", sorted(payload))
            return ReconcileResult(ReconcileOutcome.INVALID)
        if not self.client.verify_notification(payload):
            log.warning(
                "Notification rejected, bad Token: payment_id=%s status=%s order_id=%s",
                payment_id,
                gateway_status,
                payload.get("OrderId"),
            )
            return ReconcileResult(ReconcileOutcome.REJECTED)

        record = self.store.get_payment_record_by_gateway_id(self.gateway_name, str(payment_id))
        if record is None:
            log.warning("Notification for unknown payment_id=%s status=%s", payment_id, gateway_status)
            return ReconcileResult(ReconcileOutcome.UNKNOWN)

        amount = payload.get("Amount")
        if amount is not None and amount != record.amount and gateway_status not in ("PARTIAL_REFUNDED", "REFUNDED"):
            log.warning(
                "Notification amount %s differs from recorded %s: payment_id=%s",
                amount,
                record.amount,
                payment_id,
            )
        message = f"{gateway_status} (notification)"
        if payload.get("ErrorCode") not in (None, "0", 0):
            message += f" ErrorCode={payload.get('ErrorCode')}"
        return self.apply(record.id, map_gateway_status(gateway_status), message)

    def poll(self, gateway_payment_id: str) -> ReconcileResult:
        """Ask GetState and reconcile. GatewayUnavailable / PaymentRejected propagate to the caller."""
        record = self.store.get_payment_record_by_gateway_id(self.gateway_name, str(gateway_payment_id))
        if record is None:
            return ReconcileResult(ReconcileOutcome.UNKNOWN)
        record_id = record.id
        try:
            state = self.client.get_status(gateway_payment_id)
        except SignatureInvalid as e:
            log.warning("GetState for payment_id=%s ignored: %s", gateway_payment_id, e)
            return ReconcileResult(ReconcileOutcome.REJECTED, payment_record_id=record_id)
        return self.apply(record_id, map_gateway_status(state.status), f"{state.status} (GetState)")

    def apply(self, payment_record_id: int, new_status: PaymentStatus, message: str | None = None) -> ReconcileResult:
        """
        Event, status and order confirmation are written in one transaction, guarded
        by the record's version. A lost race is rolled back and re-evaluated.
        """
        new_status = PaymentStatus(new_status)
        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            record = self.store.get_payment_record(payment_record_id)
            if record is None:
                return ReconcileResult(ReconcileOutcome.UNKNOWN)
            current = PaymentStatus(record.status)
            order_id = record.order_id
            if current is new_status:
                log.info("Duplicate status %s for payment_record_id=%s", new_status.value, payment_record_id)
                return ReconcileResult(ReconcileOutcome.DUPLICATE, current, payment_record_id, order_id)
            try:
                check_transition(current, new_status)
            except IllegalTransition as e:
                log.warning("Dropped %s for payment_record_id=%s", e, payment_record_id)
                return ReconcileResult(ReconcileOutcome.DROPPED, current, payment_record_id, order_id)

            try:
                self.store.append_status_event(payment_record_id, new_status, message)
                if not self.store.update_payment_status(payment_record_id, new_status, expected_version=record.version):
                    self.store.rollback()
                    log.info(
                        "payment_record_id=%s changed concurrently (attempt %s), re-reading",
                        payment_record_id,
                        attempt,
                    )
                    continue
                confirmed = False
                if new_status is PaymentStatus.COMPLETED:
                    confirmed = self.store.mark_order_confirmed(order_id)
                self.store.commit()
            except Exception:
                self.store.rollback()
                raise
            log.info(
                "payment_record_id=%s %s -> %s (order_id=%s confirmed=%s)",
                payment_record_id,
                current.value,
                new_status.value,
                order_id,
                confirmed,
            )
            return ReconcileResult(ReconcileOutcome.APPLIED, new_status, payment_record_id, order_id, confirmed)
        raise ConcurrentUpdate(f"payment_record_id={payment_record_id} is being updated concurrently")
