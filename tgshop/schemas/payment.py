from pydantic import BaseModel, Field


class CustomerInfo(BaseModel):
    id: str | None = None
    email: str | None = None
    phone: str | None = None


class CreatePaymentRequest(BaseModel):
    """Checkout: start a gateway payment for an existing order."""
    order_id: int
    customer: CustomerInfo = Field(default_factory=CustomerInfo)
    description: str | None = None


class CancelPaymentRequest(BaseModel):
    """Admin: full cancel, or partial refund when amount (kopecks) is given."""
    amount: int | None = Field(default=None, gt=0)
