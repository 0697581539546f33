from datetime import datetime
from enum import Enum

from sqlmodel import Field, SQLModel


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentRecord(SQLModel, table=True):
    """One gateway payment attempt for an order; an order may have several (retries)."""

    id: int | None = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="shoporder.id", index=True)
    gateway_name: str = Field(default="tinkoff", index=True)
    gateway_payment_id: str | None = Field(default=None, index=True)  # PaymentId, known after Init
    order_reference: str = Field(unique=True, index=True)  # OrderId sent to the gateway
    amount: int  # minor units (kopecks)
    currency: str = "RUB"
    status: str = Field(default=PaymentStatus.PENDING.value, index=True)
    payer_email: str | None = None
    payer_phone: str | None = None
    payment_url: str | None = None
    # Optimistic lock: bumped on every status update
    version: int = 1
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: datetime | None = None  # set iff status == completed


class PaymentStatusEvent(SQLModel, table=True):
    """Append-only audit trail of payment status transitions."""

    id: int | None = Field(default=None, primary_key=True)
    payment_record_id: int = Field(foreign_key="paymentrecord.id", index=True)
    status: str
    message: str | None = None
    occurred_at: datetime = Field(default_factory=datetime.utcnow)
