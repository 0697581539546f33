"""Pytest fixtures: test client, in-memory SQLite, fake T-Bank gateway over httpx.MockTransport."""
import itertools
import json
import os

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Must be set before tgshop is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("TINKOFF_TERMINAL_KEY", "TestTerminalDEMO")
os.environ.setdefault("TINKOFF_PASSWORD", "test-terminal-password")
os.environ.setdefault("ADMIN_SECRET", "test-admin-secret")
os.environ.setdefault("BASE_URL", "https://shop.example.com")
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "1000")
os.environ.setdefault("RATE_LIMIT_CHECKOUT_PER_MINUTE", "1000")
# No real Telegram calls from tests
os.environ["BOT_TOKEN"] = ""
os.environ["ADMIN_CHAT_ID"] = ""

from tgshop.api.deps import get_gateway_client, get_optional_gateway_client  # noqa: E402
from tgshop.main import app  # noqa: E402
from tgshop.services.signing import sign  # noqa: E402
from tgshop.services.tinkoff import TinkoffClient  # noqa: E402

TERMINAL_KEY = "TestTerminalDEMO"
PASSWORD = "test-terminal-password"
ADMIN_SECRET = "test-admin-secret"

# PaymentIds stay unique across tests sharing the in-memory database
_payment_ids = itertools.count(700001)


class FakeGateway:
    """Answers Init/GetState/Cancel like the acquiring API; records every request body."""

    def __init__(self):
        self.requests: list[tuple[str, dict]] = []
        self.responses: dict = {}
        self.states: dict[str, str] = {}

    def calls(self, method: str) -> list[dict]:
        return [body for name, body in self.requests if name == method]

    def handler(self, request: httpx.Request) -> httpx.Response:
        method = request.url.path.rstrip("/").rsplit("/", 1)[-1]
        body = json.loads(request.content or b"{}")
        self.requests.append((method, body))
        custom = self.responses.get(method)
        if custom is not None:
            return custom(body) if callable(custom) else custom
        return getattr(self, f"_{method.lower()}")(body)

    def _init(self, body: dict) -> httpx.Response:
        payment_id = str(next(_payment_ids))
        self.states[payment_id] = "NEW"
        return httpx.Response(
            200,
            json={
                "Success": True,
                "ErrorCode": "0",
                "TerminalKey": body["TerminalKey"],
                "Status": "NEW",
                "PaymentId": payment_id,
                "OrderId": body["OrderId"],
                "Amount": body["Amount"],
                "PaymentURL": f"https://securepay.tinkoff.ru/new/{payment_id}",
            },
        )

    def _getstate(self, body: dict) -> httpx.Response:
        payment_id = body["PaymentId"]
        return httpx.Response(
            200,
            json={
                "Success": True,
                "ErrorCode": "0",
                "TerminalKey": body["TerminalKey"],
                "Status": self.states.get(payment_id, "NEW"),
                "PaymentId": payment_id,
                "OrderId": "1",
                "Amount": 1000,
            },
        )

    def _cancel(self, body: dict) -> httpx.Response:
        payment_id = body["PaymentId"]
        status = "PARTIAL_REFUNDED" if "Amount" in body else "REFUNDED"
        if self.states.get(payment_id) in ("NEW", None):
            status = "CANCELED"
        self.states[payment_id] = status
        return httpx.Response(
            200,
            json={
                "Success": True,
                "ErrorCode": "0",
                "TerminalKey": body["TerminalKey"],
                "Status": status,
                "PaymentId": payment_id,
                "OrderId": "1",
                "OriginalAmount": 2999000,
                "NewAmount": 2999000 - body.get("Amount", 2999000),
            },
        )


def make_tinkoff_client(gateway: FakeGateway, **overrides) -> TinkoffClient:
    terminal_key = overrides.pop("terminal_key", TERMINAL_KEY)
    password = overrides.pop("password", PASSWORD)
    options = {
        "success_url": "https://shop.example.com/payment/success",
        "fail_url": "https://shop.example.com/payment/failure",
        "notification_url": "https://shop.example.com/api/payment/webhook",
        "http_client": httpx.Client(transport=httpx.MockTransport(gateway.handler)),
    }
    options.update(overrides)
    return TinkoffClient(terminal_key, password, **options)


def signed_notification(**fields) -> dict:
    """Webhook body as the gateway would send it, Token included."""
    payload = {"TerminalKey": TERMINAL_KEY, "Success": True, "ErrorCode": "0", **fields}
    payload["Token"] = sign(payload, PASSWORD)
    return payload


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def tinkoff(gateway):
    return make_tinkoff_client(gateway)


@pytest.fixture
def session():
    """Fresh database per test for store/reconciler tests."""
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    with Session(engine) as s:
        yield s


@pytest.fixture(scope="function")
def client(gateway):
    """TestClient with the gateway dependency wired to FakeGateway."""

    def _gateway_client():
        yield make_tinkoff_client(gateway)

    app.dependency_overrides[get_gateway_client] = _gateway_client
    app.dependency_overrides[get_optional_gateway_client] = _gateway_client
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return {"X-Admin-Secret": ADMIN_SECRET}
