"""Checkout -> gateway Init -> signed webhook -> confirmed order, through the HTTP API."""
import httpx
from fastapi.testclient import TestClient

from conftest import FakeGateway, signed_notification


def _place_order(client: TestClient, price=29990, quantity=1) -> int:
    r = client.post(
        "/api/order",
        json={
            "orderData": {"items": [{"id": 1, "name": "Phone", "price": price, "quantity": quantity}]},
            "userInfo": {"id": 12345, "first_name": "Ivan"},
        },
    )
    assert r.status_code == 200
    return r.json()["order_id"]


def _start_payment(client: TestClient, order_id: int, **customer) -> dict:
    r = client.post("/api/payment/create", json={"order_id": order_id, "customer": customer})
    assert r.status_code == 200, r.text
    return r.json()


def test_checkout_sends_amount_in_kopecks(client: TestClient, gateway: FakeGateway):
    order_id = _place_order(client)
    j = _start_payment(client, order_id, email="buyer@example.com")
    assert j["success"] is True
    assert j["payment_url"].startswith("https://securepay.tinkoff.ru/")
    assert j["order_reference"].startswith(f"{order_id}-")

    (sent,) = gateway.calls("Init")
    assert sent["Amount"] == 2999000
    assert sent["OrderId"] == j["order_reference"]
    assert sent["CustomerKey"] == "12345"
    assert sent["Receipt"]["Email"] == "buyer@example.com"
    assert sent["Receipt"]["Items"] == [{"Name": "Phone", "Price": 2999000, "Quantity": 1, "Amount": 2999000, "Tax": "none"}]

    r = client.get(f"/api/payment/order/{order_id}")
    assert r.status_code == 200
    view = r.json()
    assert view["order_status"] == "pending"
    (payment,) = view["payments"]
    assert payment["status"] == "pending"
    assert payment["amount"] == 2999000
    assert payment["payment_id"] == j["payment_id"]


def test_checkout_without_contact_omits_receipt(client: TestClient, gateway: FakeGateway):
    order_id = _place_order(client, price=100, quantity=3)
    _start_payment(client, order_id)
    (sent,) = gateway.calls("Init")
    assert sent["Amount"] == 30000
    assert "Receipt" not in sent


def test_sub_kopeck_prices_charge_the_receipt_total(client: TestClient, gateway: FakeGateway):
    r = client.post("/api/order", json={"orderData": {"items": [{"name": "Gum", "price": 10.005, "quantity": 3}]}})
    order_id = r.json()["order_id"]
    j = _start_payment(client, order_id, email="buyer@example.com")

    (sent,) = gateway.calls("Init")
    assert sent["Amount"] == 3003
    assert sum(item["Amount"] for item in sent["Receipt"]["Items"]) == sent["Amount"]
    view = client.get(f"/api/payment/order/{order_id}").json()
    assert view["payments"][0]["amount"] == 3003
    assert view["payments"][0]["payment_id"] == j["payment_id"]


def test_webhook_confirms_order(client: TestClient, admin_headers):
    order_id = _place_order(client)
    j = _start_payment(client, order_id, email="buyer@example.com")

    notification = signed_notification(
        PaymentId=j["payment_id"], OrderId=j["order_reference"], Status="CONFIRMED", Amount=2999000
    )
    r = client.post("/api/payment/webhook", json=notification)
    assert r.status_code == 200
    assert r.text == "OK"

    view = client.get(f"/api/payment/order/{order_id}").json()
    assert view["order_status"] == "confirmed"
    assert view["payments"][0]["status"] == "completed"
    assert view["payments"][0]["completed_at"]

    # gateway retries are acknowledged without a second event
    r = client.post("/api/payment/webhook", json=notification)
    assert r.status_code == 200
    events = client.get(f"/admin/payments/{j['payment_record_id']}/events", headers=admin_headers).json()
    assert [e["status"] for e in events] == ["pending", "completed"]


def test_webhook_with_bad_token_is_refused(client: TestClient):
    order_id = _place_order(client)
    j = _start_payment(client, order_id)
    notification = signed_notification(PaymentId=j["payment_id"], Status="CONFIRMED", Amount=2999000)
    notification["Token"] = notification["Token"][:-1] + ("0" if notification["Token"][-1] != "0" else "1")

    r = client.post("/api/payment/webhook", json=notification)
    assert r.status_code == 403
    view = client.get(f"/api/payment/order/{order_id}").json()
    assert view["order_status"] == "pending"
    assert view["payments"][0]["status"] == "pending"


def test_webhook_rejects_malformed_body(client: TestClient):
    r = client.post("/api/payment/webhook", content=b"not json", headers={"Content-Type": "application/json"})
    assert r.status_code == 400
    r = client.post("/api/payment/webhook", json=["a", "b"])
    assert r.status_code == 400
    r = client.post("/api/payment/webhook", json={"Status": "CONFIRMED"})
    assert r.status_code == 400


def test_webhook_with_non_string_status_is_bad_request(client: TestClient):
    order_id = _place_order(client)
    j = _start_payment(client, order_id)
    r = client.post("/api/payment/webhook", json=signed_notification(PaymentId=j["payment_id"], Status=5))
    assert r.status_code == 400
    assert client.get(f"/api/payment/order/{order_id}").json()["payments"][0]["status"] == "pending"


def test_webhook_for_unknown_payment_is_acknowledged(client: TestClient):
    r = client.post("/api/payment/webhook", json=signed_notification(PaymentId="1", Status="CONFIRMED"))
    assert r.status_code == 200
    assert r.text == "OK"


def test_out_of_order_webhook_does_not_regress(client: TestClient):
    order_id = _place_order(client)
    j = _start_payment(client, order_id)
    for status in ("CONFIRMED", "NEW", "AUTHORIZED"):
        r = client.post("/api/payment/webhook", json=signed_notification(PaymentId=j["payment_id"], Status=status))
        assert r.status_code == 200
    view = client.get(f"/api/payment/order/{order_id}").json()
    assert view["payments"][0]["status"] == "completed"


def test_refresh_polls_gateway(client: TestClient, gateway: FakeGateway):
    order_id = _place_order(client)
    j = _start_payment(client, order_id)
    gateway.states[j["payment_id"]] = "CONFIRMED"
    view = client.get(f"/api/payment/order/{order_id}", params={"refresh": "true"}).json()
    assert view["refresh_error"] is None
    assert view["order_status"] == "confirmed"
    assert view["payments"][0]["status"] == "completed"
    assert len(gateway.calls("GetState")) == 1


def test_create_payment_errors(client: TestClient, gateway: FakeGateway):
    r = client.post("/api/payment/create", json={"order_id": 987654})
    assert r.status_code == 404

    order_id = _place_order(client)
    j = _start_payment(client, order_id)
    client.post("/api/payment/webhook", json=signed_notification(PaymentId=j["payment_id"], Status="CONFIRMED"))
    r = client.post("/api/payment/create", json={"order_id": order_id})
    assert r.status_code == 409
    assert len(gateway.calls("Init")) == 1


def test_gateway_rejection_surfaces_message(client: TestClient, gateway: FakeGateway):
    gateway.responses["Init"] = httpx.Response(200, json={"Success": False, "ErrorCode": "8", "Message": "Терминал заблокирован"})
    order_id = _place_order(client)
    r = client.post("/api/payment/create", json={"order_id": order_id})
    assert r.status_code == 400
    assert r.json()["error"] == "Терминал заблокирован"
    assert client.get(f"/api/payment/order/{order_id}").json()["payments"] == []


def test_gateway_outage_is_502(client: TestClient, gateway: FakeGateway):
    gateway.responses["Init"] = httpx.Response(503, text="Service Unavailable")
    order_id = _place_order(client)
    r = client.post("/api/payment/create", json={"order_id": order_id})
    assert r.status_code == 502


def test_admin_refund(client: TestClient, gateway: FakeGateway, admin_headers):
    order_id = _place_order(client)
    j = _start_payment(client, order_id)
    gateway.states[j["payment_id"]] = "CONFIRMED"
    client.post("/api/payment/webhook", json=signed_notification(PaymentId=j["payment_id"], Status="CONFIRMED"))

    record_id = j["payment_record_id"]
    r = client.post(f"/api/payment/{record_id}/cancel", json={})
    assert r.status_code == 403

    r = client.post(f"/api/payment/{record_id}/cancel", json={"amount": 99999999}, headers=admin_headers)
    assert r.status_code == 400
    assert gateway.calls("Cancel") == []

    r = client.post(f"/api/payment/{record_id}/cancel", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["gateway_status"] == "REFUNDED"
    assert r.json()["status"] == "refunded"
    view = client.get(f"/api/payment/order/{order_id}").json()
    assert view["payments"][0]["status"] == "refunded"
    assert view["payments"][0]["completed_at"] is None


def test_payment_return_pages(client: TestClient):
    r = client.get("/payment/success", params={"orderId": "5-abcd"})
    assert r.status_code == 200
    assert r.json()["success"] is True
    r = client.get("/payment/failure")
    assert r.json()["success"] is False
