import json
from decimal import Decimal

from sqlalchemy.exc import OperationalError

from chatbot.services.conversation import messages
from chatbot.services.sessions import SessionStore


def _start(client, device_id=None):
    payload = {"deviceId": device_id} if device_id else {}
    resp = client.post("/api/chat/init", json=payload)
    assert resp.status_code == 200
    return resp.json()


def _say(client, device_id, message):
    resp = client.post("/api/chat/message", json={"deviceId": device_id, "message": message})
    assert resp.status_code == 200
    return resp.json()


def _place_order(client, device_id, *items):
    _say(client, device_id, "1")
    for item in items:
        _say(client, device_id, str(item))
    _say(client, device_id, "0")
    _say(client, device_id, "99")
    return _say(client, device_id, "2")


# =============================================================================
# CHAT
# =============================================================================

def test_init_generates_device_id_and_greets(client):
    data = _start(client)

    assert len(data["deviceId"]) == 36
    assert data["state"] == "main_menu"
    assert data["message"] == messages.main_menu_text()


def test_init_with_existing_device_resets_to_main_menu(client):
    _start(client, "dev-a")
    assert _say(client, "dev-a", "1")["state"] == "ordering"

    data = _start(client, "dev-a")

    assert data["deviceId"] == "dev-a"
    assert data["state"] == "main_menu"
    assert _say(client, "dev-a", "97")["state"] == "viewing_cart"


def test_init_without_body(client):
    resp = client.post("/api/chat/init")

    assert resp.status_code == 200
    assert resp.json()["state"] == "main_menu"


def test_message_walks_menu_and_persists_state(client):
    _start(client, "dev-b")

    menu = _say(client, "dev-b", "1")
    assert menu["state"] == "ordering"
    assert "📋 Our Menu" in menu["message"]
    assert "orderId" not in menu
    assert "requiresPayment" not in menu

    added = _say(client, "dev-b", "3")
    assert added["state"] == "ordering"
    assert added["message"].startswith("✅ Chapman added to cart!")

    _say(client, "dev-b", "0")
    cart = _say(client, "dev-b", "97")
    assert cart["state"] == "viewing_cart"
    assert "1. Chapman x1 - ₦800" in cart["message"]


def test_message_accepts_numeric_json(client):
    _start(client, "dev-c")
    resp = client.post("/api/chat/message", json={"deviceId": "dev-c", "message": 1})

    assert resp.status_code == 200
    assert resp.json()["state"] == "ordering"


def test_message_from_unknown_device_creates_session(client):
    data = _say(client, "never-initialized", "abc")

    assert data["state"] == "main_menu"
    assert data["message"].startswith(messages.INVALID_NUMBER)


def test_message_missing_fields_is_rejected(client):
    assert client.post("/api/chat/message", json={"message": "1"}).status_code == 422
    assert client.post("/api/chat/message", json={"deviceId": "dev-x"}).status_code == 422


def test_empty_checkout_stays_at_main_menu(client):
    _start(client, "dev-d")
    data = _say(client, "dev-d", "99")

    assert data["state"] == "main_menu"
    assert data["message"].startswith(messages.NOTHING_TO_CHECKOUT)


def test_pay_now_returns_payment_directive(client):
    _start(client, "dev-e")
    data = _place_order(client, "dev-e", 1, 4)

    assert data["state"] == "payment_pending"
    assert data["requiresPayment"] is True
    assert isinstance(data["orderId"], int)
    assert float(data["amount"]) == 3150.50

    reminder = _say(client, "dev-e", "hello")
    assert reminder["state"] == "payment_pending"
    assert "orderId" not in reminder


def test_scheduled_order_flow(client):
    _start(client, "dev-f")
    _say(client, "dev-f", "1")
    _say(client, "dev-f", "2")
    _say(client, "dev-f", "0")
    _say(client, "dev-f", "99")
    assert _say(client, "dev-f", "1")["state"] == "scheduling"

    past = _say(client, "dev-f", "2000-01-01 10:00")
    assert (past["state"], past["message"]) == ("scheduling", messages.PAST_SCHEDULE)

    bad = _say(client, "dev-f", "next friday")
    assert (bad["state"], bad["message"]) == ("scheduling", messages.INVALID_DATE_FORMAT)

    placed = _say(client, "dev-f", "2099-12-24 18:30")
    assert placed["state"] == "payment_pending"
    assert placed["requiresPayment"] is True

    order = client.get(f"/api/orders/{placed['orderId']}").json()
    assert order["status"] == "scheduled"
    assert order["scheduledFor"].startswith("2099-12-24T17:30")


# =============================================================================
# ORDERS
# =============================================================================

def test_order_history_endpoint(client):
    _start(client, "dev-g")
    first = _place_order(client, "dev-g", 1)
    _say(client, "dev-g", "0")
    second = _place_order(client, "dev-g", 2, 2)

    data = client.get("/api/orders", params={"deviceId": "dev-g"}).json()

    assert data["total"] == 2
    assert [o["id"] for o in data["orders"]] == [second["orderId"], first["orderId"]]
    newest = data["orders"][0]
    assert newest["paymentStatus"] == "pending"
    assert [(i["menuItemId"], i["itemName"], i["quantity"]) for i in newest["items"]] == [(2, "Fried Rice", 2)]
    assert Decimal(newest["items"][0]["price"]) == Decimal("2300")
    assert Decimal(newest["totalAmount"]) == Decimal("4600")


def test_order_history_requires_device_id(client):
    assert client.get("/api/orders").status_code == 422


def test_unknown_order_is_404(client):
    resp = client.get("/api/orders/9999")

    assert resp.status_code == 404
    assert resp.json()["success"] is False
    assert resp.json()["error"] == "Order #9999 not found"


# =============================================================================
# PAYMENT
# =============================================================================

def test_payment_initialize_and_verify_releases_session(client):
    _start(client, "dev-h")
    order = _place_order(client, "dev-h", 3)

    init = client.post(
        "/api/payment/initialize",
        json={"orderId": order["orderId"], "email": "ada@example.com", "deviceId": "dev-h"},
    )
    assert init.status_code == 200
    reference = init.json()["reference"]
    assert reference in init.json()["authorizationUrl"]

    verify = client.get(f"/api/payment/verify/{reference}")
    assert verify.status_code == 200
    assert verify.json()["success"] is True
    assert verify.json()["orderId"] == order["orderId"]

    # Repeat verification is harmless
    assert client.get(f"/api/payment/verify/{reference}").json()["success"] is True

    stored = client.get(f"/api/orders/{order['orderId']}").json()
    assert stored["paymentStatus"] == "paid"
    assert stored["paymentReference"] == reference

    assert _say(client, "dev-h", "97")["state"] == "viewing_cart"

    again = client.post(
        "/api/payment/initialize",
        json={"orderId": order["orderId"], "email": "ada@example.com"},
    )
    assert again.status_code == 400
    assert again.json()["error"] == "Order already paid"


def test_payment_initialize_validation(client):
    assert client.post(
        "/api/payment/initialize", json={"orderId": 1, "email": "not-an-email"}
    ).status_code == 422
    assert client.post(
        "/api/payment/initialize", json={"orderId": 4242, "email": "ada@example.com"}
    ).status_code == 404


def test_payment_verify_unknown_reference(client):
    data = client.get("/api/payment/verify/ORDER-1-0-000000").json()

    assert data["success"] is False
    assert data["status"] == "not_found"


def test_payment_webhook(client):
    _start(client, "dev-i")
    order = _place_order(client, "dev-i", 1)

    payload = {
        "event": "charge.success",
        "data": {
            "reference": "ref-webhook",
            "amount": 250000,
            "metadata": {"order_id": order["orderId"], "device_id": "dev-i"},
        },
    }
    resp = client.post("/api/payment/webhook", content=json.dumps(payload))
    assert resp.status_code == 200
    assert resp.json() == {"received": True}

    assert client.get(f"/api/orders/{order['orderId']}").json()["paymentStatus"] == "paid"
    assert client.post("/api/payment/webhook", content=b"garbage").status_code == 400


# =============================================================================
# SYSTEM
# =============================================================================

def test_health_reports_database(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json()["database"] == "healthy"
    assert resp.json()["payment_service"] == "healthy"


def test_root(client):
    assert "documentation" in client.get("/").json()


def test_storage_failure_is_retryable_503(client, monkeypatch):
    async def locked(self, device_id):
        raise OperationalError("INSERT INTO sessions", {}, Exception("database is locked"))

    monkeypatch.setattr(SessionStore, "get_or_create", locked)

    resp = client.post("/api/chat/message", json={"deviceId": "dev-z", "message": "1"})

    assert resp.status_code == 503
    assert resp.json() == {
        "success": False,
        "error": "Storage operation failed",
        "detail": None,
        "retryable": True,
    }
