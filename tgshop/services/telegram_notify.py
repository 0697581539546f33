"""Operator/customer notifications through the Telegram Bot API (sendMessage). Best effort."""
import html
import logging
from collections.abc import Mapping

import httpx

from tgshop.core.config import settings

log = logging.getLogger("tgshop.telegram")

TELEGRAM_API_URL = "https://api.telegram.org"
SEND_TIMEOUT_SECONDS = 10.0


def format_price(value: float | int) -> str:
    """29990 -> '29 990 ₽', 10.5 -> '10,50 ₽' (ru-RU style)."""
    amount = float(value or 0)
    if amount.is_integer():
        text = f"{amount:,.0f}"
    else:
        text = f"{amount:,.2f}".replace(".", "#")
    return text.replace(",", " ").replace("#", ",") + " ₽"


def format_order_message(order_id: int | None, items: list[Mapping], total: float, user_info: Mapping | None) -> str:
    lines = [f"<b>🛒 New order{f' #{order_id}' if order_id else ''}!</b>", ""]
    if user_info:
        lines.append("<b>Customer:</b>")
        if user_info.get("first_name"):
            lines.append(f"First name: {html.escape(str(user_info['first_name']))}")
        if user_info.get("last_name"):
            lines.append(f"Last name: {html.escape(str(user_info['last_name']))}")
        if user_info.get("username"):
            lines.append(f"Username: @{html.escape(str(user_info['username']))}")
        if user_info.get("id"):
            lines.append(f"ID: {user_info['id']}")
        lines.append("")
    lines.append("<b>Items:</b>")
    for index, item in enumerate(items, start=1):
        price = float(item.get("price") or 0)
        quantity = int(item.get("quantity") or 1)
        lines.append(f"{index}. {html.escape(str(item.get('name') or ''))}")
        lines.append(f"   Quantity: {quantity} pcs.")
        lines.append(f"   Price: {format_price(price)}")
        lines.append(f"   Sum: {format_price(price * quantity)}")
        lines.append("")
    lines.append(f"<b>💰 Total: {format_price(total)}</b>")
    return "\n".join(lines)


def format_payment_message(order_id: int, amount_minor: int, gateway_payment_id: str | None) -> str:
    return (
        f"<b>✅ Order #{order_id} paid</b>\n"
        f"Amount: {format_price(amount_minor / 100)}\n"
        f"PaymentId: {html.escape(gateway_payment_id or '-')}"
    )


def send_telegram_message(chat_id: str | int, text: str, parse_mode: str = "HTML") -> bool:
    token = settings.bot_token
    if not token:
        log.warning("BOT_TOKEN not configured; message to chat %s not sent", chat_id)
        return False
    try:
        response = httpx.post(
            f"{TELEGRAM_API_URL}/bot{token}/sendMessage",
            json={"chat_id": chat_id, "text": text, "parse_mode": parse_mode},
            timeout=SEND_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
    except httpx.HTTPError as e:
        log.warning("Telegram sendMessage to chat %s failed: %s", chat_id, e)
        return False
    log.info("Telegram message sent to chat %s", chat_id)
    return True


def notify_operator(text: str) -> bool:
    if not settings.admin_chat_id:
        log.info("ADMIN_CHAT_ID not set; operator notification skipped")
        return False
    return send_telegram_message(settings.admin_chat_id, text)
