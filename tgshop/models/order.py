from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Order(SQLModel, table=True):
    """Cart checked out from the Mini-App; Telegram user fields come from initDataUnsafe.user."""

    __tablename__ = "shoporder"

    id: int | None = Field(default=None, primary_key=True)
    user_id: str | None = Field(default=None, index=True)
    user_first_name: str | None = None
    user_last_name: str | None = None
    user_username: str | None = None
    # [{"product_id", "name", "price", "quantity", "sku"}], price in major units
    items: list[dict] = Field(default_factory=list, sa_column=Column(JSON))
    total: float
    status: str = Field(default=OrderStatus.PENDING.value, index=True)
    confirmed_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
