from .order import CreateOrderRequest, OrderData, OrderItem, TelegramUser
from .payment import CancelPaymentRequest, CreatePaymentRequest, CustomerInfo
from .product import ProductIn

__all__ = [
    "CancelPaymentRequest",
    "CreateOrderRequest",
    "CreatePaymentRequest",
    "CustomerInfo",
    "OrderData",
    "OrderItem",
    "ProductIn",
    "TelegramUser",
]
