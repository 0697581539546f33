import hmac
from collections.abc import Iterator

from fastapi import Depends, Header, HTTPException, status
from sqlmodel import Session

from tgshop.core.config import is_tinkoff_configured, settings
from tgshop.core.database import get_db
from tgshop.core.errors import ConfigurationError
from tgshop.services.payment_store import PaymentStore
from tgshop.services.reconciler import StatusReconciler
from tgshop.services.tinkoff import TinkoffClient


def get_gateway_client() -> Iterator[TinkoffClient]:
    """A client built from settings for this request; 503 when the terminal is not configured."""
    if not is_tinkoff_configured():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payments are not available. Check TINKOFF_TERMINAL_KEY and TINKOFF_PASSWORD.",
        )
    try:
        client = TinkoffClient.from_settings()
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    try:
        yield client
    finally:
        client.close()


def get_optional_gateway_client() -> Iterator[TinkoffClient | None]:
    """Same as get_gateway_client, but None instead of 503 (read-only views)."""
    if not is_tinkoff_configured():
        yield None
        return
    try:
        client = TinkoffClient.from_settings()
    except ConfigurationError:
        yield None
        return
    try:
        yield client
    finally:
        client.close()


def get_payment_store(db: Session = Depends(get_db)) -> PaymentStore:
    return PaymentStore(db)


def get_reconciler(
    store: PaymentStore = Depends(get_payment_store),
    client: TinkoffClient = Depends(get_gateway_client),
) -> StatusReconciler:
    return StatusReconciler(store, client)


def require_admin(x_admin_secret: str | None = Header(None, alias="X-Admin-Secret")) -> None:
    """Shared-secret check for the admin API (constant-time compare)."""
    expected = settings.admin_secret
    if not expected:
        raise HTTPException(status_code=503, detail="Admin API is not configured (ADMIN_SECRET is empty).")
    if not hmac.compare_digest((x_admin_secret or "").encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=403, detail="Forbidden.")
