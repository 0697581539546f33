"""Order/payment persistence used by checkout and reconciliation. Callers own commit()."""
from datetime import datetime

from sqlalchemy import update
from sqlmodel import Session, select

from tgshop.models import Order, OrderStatus, PaymentRecord, PaymentStatus, PaymentStatusEvent


class PaymentStore:
    def __init__(self, db: Session):
        self.db = db

    # ---------- payment records ----------

    def create_payment_record(
        self,
        order_id: int,
        gateway_name: str,
        amount: int,
        currency: str,
        *,
        order_reference: str,
        payer_email: str | None = None,
        payer_phone: str | None = None,
        gateway_payment_id: str | None = None,
        payment_url: str | None = None,
        message: str | None = None,
    ) -> int:
        """New record in `pending` plus its first audit event. Returns the record id."""
        record = PaymentRecord(
            order_id=order_id,
            gateway_name=gateway_name,
            gateway_payment_id=gateway_payment_id,
            order_reference=order_reference,
            amount=amount,
            currency=currency,
            status=PaymentStatus.PENDING.value,
            payer_email=payer_email,
            payer_phone=payer_phone,
            payment_url=payment_url,
        )
        self.db.add(record)
        self.db.flush()
        self.append_status_event(record.id, PaymentStatus.PENDING, message or "Payment created")
        return record.id

    def get_payment_record(self, payment_record_id: int) -> PaymentRecord | None:
        return self.db.get(PaymentRecord, payment_record_id)

    def get_payment_record_by_gateway_id(self, gateway_name: str, gateway_payment_id: str) -> PaymentRecord | None:
        stmt = select(PaymentRecord).where(
            PaymentRecord.gateway_name == gateway_name,
            PaymentRecord.gateway_payment_id == gateway_payment_id,
        )
        return self.db.exec(stmt).first()

    def list_payment_records(self, order_id: int) -> list[PaymentRecord]:
        stmt = select(PaymentRecord).where(PaymentRecord.order_id == order_id).order_by(PaymentRecord.id.desc())
        return list(self.db.exec(stmt).all())

    def update_payment_status(
        self,
        payment_record_id: int,
        new_status: PaymentStatus,
        *,
        expected_version: int,
    ) -> bool:
        """
        Compare-and-set on the version column. False means another writer got there
        first and nothing was changed. completed_at follows status == completed.
        """
        now = datetime.utcnow()
        stmt = (
            update(PaymentRecord)
            .where(PaymentRecord.id == payment_record_id, PaymentRecord.version == expected_version)
            .values(
                status=new_status.value,
                version=PaymentRecord.version + 1,
                updated_at=now,
                completed_at=now if new_status is PaymentStatus.COMPLETED else None,
            )
        )
        result = self.db.connection().execute(stmt)
        if result.rowcount != 1:
            return False
        cached = self.db.get(PaymentRecord, payment_record_id)
        if cached is not None:
            self.db.expire(cached)
        return True

    # ---------- audit trail ----------

    def append_status_event(self, payment_record_id: int, status: PaymentStatus, message: str | None = None) -> None:
        self.db.add(PaymentStatusEvent(payment_record_id=payment_record_id, status=status.value, message=message))

    def list_status_events(self, payment_record_id: int) -> list[PaymentStatusEvent]:
        stmt = (
            select(PaymentStatusEvent)
            .where(PaymentStatusEvent.payment_record_id == payment_record_id)
            .order_by(PaymentStatusEvent.id)
        )
        return list(self.db.exec(stmt).all())

    # ---------- orders ----------

    def get_order(self, order_id: int) -> Order | None:
        return self.db.get(Order, order_id)

    def mark_order_confirmed(self, order_id: int) -> bool:
        """pending -> confirmed. False when the order is missing or already past pending."""
        order = self.db.get(Order, order_id)
        if order is None or order.status != OrderStatus.PENDING.value:
            return False
        now = datetime.utcnow()
        order.status = OrderStatus.CONFIRMED.value
        order.confirmed_at = now
        order.updated_at = now
        self.db.add(order)
        return True

    # ---------- transaction ----------

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
