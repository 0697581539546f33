import logging
from decimal import Decimal

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from sqlmodel import Session

from tgshop.core.config import settings
from tgshop.core.database import get_db
from tgshop.core.rate_limit import limiter
from tgshop.models import Order
from tgshop.schemas import CreateOrderRequest
from tgshop.services.telegram_notify import format_order_message, notify_operator, send_telegram_message

log = logging.getLogger("tgshop.orders")

router = APIRouter(prefix="/api", tags=["orders"])
_ORDER_LIMIT = f"{settings.rate_limit_per_minute}/minute"

CUSTOMER_CONFIRMATION = "✅ Your order has been accepted! We will contact you shortly."


@router.post("/order")
@limiter.limit(_ORDER_LIMIT)
def create_order(
    request: Request,
    body: CreateOrderRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """Cart checkout from the Mini-App: order is stored, operator and customer are notified."""
    items = body.order_data.items
    if not items:
        raise HTTPException(status_code=400, detail="Invalid order data.")
    total = sum((Decimal(str(item.price)) * item.quantity for item in items), Decimal("0"))
    if body.order_data.total is not None and Decimal(str(body.order_data.total)) != total:
        log.info("Client total %s replaced with computed %s", body.order_data.total, total)
    user = body.user_info
    order = Order(
        user_id=str(user.id) if user and user.id is not None else None,
        user_first_name=user.first_name if user else None,
        user_last_name=user.last_name if user else None,
        user_username=user.username if user else None,
        items=[
            {"product_id": item.id, "name": item.name, "price": item.price, "quantity": item.quantity, "sku": item.sku}
            for item in items
        ],
        total=float(total),
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    log.info("Order created: order_id=%s total=%s items=%s", order.id, order.total, len(items))

    user_info = user.model_dump() if user else None
    background_tasks.add_task(notify_operator, format_order_message(order.id, order.items, order.total, user_info))
    if user and user.id:
        background_tasks.add_task(send_telegram_message, user.id, CUSTOMER_CONFIRMATION)
    return {"success": True, "message": "Order placed successfully!", "order_id": order.id, "total": order.total}
