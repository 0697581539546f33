from pydantic import BaseModel, ConfigDict, Field


class OrderItem(BaseModel):
    id: int | None = None
    name: str
    price: float = Field(ge=0)
    quantity: int = Field(default=1, ge=1)
    sku: str | None = None


class OrderData(BaseModel):
    items: list[OrderItem]
    total: float | None = None  # informational; the server recomputes it


class TelegramUser(BaseModel):
    """Subset of Telegram WebApp initDataUnsafe.user."""
    id: int | str | None = None
    first_name: str | None = None
    last_name: str | None = None
    username: str | None = None


class CreateOrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_data: OrderData = Field(alias="orderData")
    user_info: TelegramUser | None = Field(default=None, alias="userInfo")
