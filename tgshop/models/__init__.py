from .order import Order, OrderStatus
from .payment import PaymentRecord, PaymentStatus, PaymentStatusEvent
from .product import Product

__all__ = [
    "Order",
    "OrderStatus",
    "PaymentRecord",
    "PaymentStatus",
    "PaymentStatusEvent",
    "Product",
]
