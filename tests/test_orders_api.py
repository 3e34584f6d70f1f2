"""Order endpoints exercised through the FastAPI app."""
import httpx

from models.log import Log
from models.notification import Notification
from services import notifications


def _checkout(client, headers, address_id, method="COD", coupon_code=None):
    payload = {"address_id": address_id, "payment_method": method}
    if coupon_code:
        payload["coupon_code"] = coupon_code
    return client.post("/orders", json=payload, headers=headers)


def test_place_cod_order(client, db, store, fill_cart, sink, auth_headers):
    fill_cart(store.customer_id, (store.milk_id, 4), (store.rice_id, 2))

    response = _checkout(client, auth_headers("asha@example.com"), store.home_id, coupon_code="SAVE20")

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "CONFIRMED"
    assert body["payment_status"] == "PENDING"
    assert body["total"] == 500.0
    assert body["payment_session"] is None
    assert sink.types() == [notifications.ORDER_PLACED]

    audit = db.query(Log).filter(Log.action == "ORDER_PLACE").one()
    assert audit.status == "SUCCESS"
    assert audit.meta["order_id"] == body["order_id"]
    assert audit.order_id == body["order_id"]


def test_rejection_carries_code_and_is_audited(client, db, store, fill_cart, auth_headers):
    fill_cart(store.customer_id, (store.milk_id, 4))

    response = _checkout(client, auth_headers("asha@example.com"), store.far_id)

    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "ADDRESS_NOT_SERVICEABLE"
    audit = db.query(Log).filter(Log.action == "ORDER_PLACE").one()
    assert audit.status == "FAIL"
    assert audit.meta["code"] == "ADDRESS_NOT_SERVICEABLE"


def test_coupon_rejection_keeps_its_code(client, db, store, fill_cart, auth_headers):
    fill_cart(store.customer_id, (store.milk_id, 4))

    response = _checkout(client, auth_headers("asha@example.com"), store.home_id, coupon_code="SAVE20")

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["code"] == "COUPON_BELOW_MINIMUM"
    assert detail["coupon_code"] == "SAVE20"
    assert detail["shortfall"] == 300.0
    audit = db.query(Log).filter(Log.action == "ORDER_PLACE").one()
    assert audit.meta["code"] == "COUPON_BELOW_MINIMUM"
    assert audit.meta["coupon_code"] == "SAVE20"


def test_wallet_shortfall_is_payment_required(client, store, fill_cart, auth_headers):
    fill_cart(store.customer_id, (store.milk_id, 4))

    response = _checkout(client, auth_headers("asha@example.com"), store.home_id, method="WALLET")

    assert response.status_code == 402
    assert response.json()["detail"] == {
        "code": "INSUFFICIENT_WALLET_BALANCE",
        "message": "Insufficient wallet balance",
        "balance": 0.0,
        "required": 230.0,
    }


def test_online_checkout_and_confirmation(client, store, fill_cart, gateway, sink, auth_headers):
    headers = auth_headers("asha@example.com")
    fill_cart(store.customer_id, (store.milk_id, 4))

    response = _checkout(client, headers, store.home_id, method="ONLINE")

    assert response.status_code == 201
    placed = response.json()
    assert placed["status"] == "PENDING"
    session = placed["payment_session"]
    assert session["amount"] == 23000
    assert session["client_token"] == "rzp_test_key"

    confirm = client.post(f"/orders/{placed['order_id']}/payment/confirm", headers=headers, json={
        "gateway_order_id": session["session_id"],
        "gateway_payment_id": "pay_123",
        "signature": gateway.sign(session["session_id"], "pay_123"),
    })

    assert confirm.status_code == 200
    assert confirm.json()["status"] == "CONFIRMED"
    assert confirm.json()["payment_status"] == "PAID"
    assert [t["status"] for t in confirm.json()["timeline"]] == ["PENDING", "CONFIRMED"]
    assert sink.types() == [notifications.AWAITING_PAYMENT, notifications.PAYMENT_CONFIRMED]


def test_failed_confirmation_returns_400(client, store, fill_cart, auth_headers):
    headers = auth_headers("asha@example.com")
    fill_cart(store.customer_id, (store.milk_id, 4))
    placed = _checkout(client, headers, store.home_id, method="ONLINE").json()

    response = client.post(f"/orders/{placed['order_id']}/payment/confirm", headers=headers, json={
        "gateway_order_id": placed["payment_session"]["session_id"],
        "gateway_payment_id": "pay_123",
        "signature": "bad",
    })

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "PAYMENT_VERIFICATION_FAILED"
    order = client.get(f"/orders/{placed['order_id']}", headers=headers).json()
    assert order["status"] == "CANCELLED"
    assert order["payment_status"] == "FAILED"


def test_payment_cancel_endpoint(client, store, fill_cart, auth_headers):
    headers = auth_headers("asha@example.com")
    fill_cart(store.customer_id, (store.milk_id, 4))
    placed = _checkout(client, headers, store.home_id, method="ONLINE").json()

    response = client.post(f"/orders/{placed['order_id']}/payment/cancel", headers=headers)

    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"
    cart = client.get("/cart", headers=headers).json()
    assert [item["qty"] for item in cart["items"]] == [4]


def test_gateway_timeout_is_504(client, store, fill_cart, gateway, auth_headers):
    gateway.error = httpx.ConnectTimeout("no answer")
    fill_cart(store.customer_id, (store.milk_id, 4))

    response = _checkout(client, auth_headers("asha@example.com"), store.home_id, method="ONLINE")

    assert response.status_code == 504
    assert response.json()["detail"]["code"] == "GATEWAY_TIMEOUT"


def test_order_listing_and_detail(client, store, fill_cart, auth_headers):
    headers = auth_headers("asha@example.com")
    fill_cart(store.customer_id, (store.milk_id, 4))
    order_id = _checkout(client, headers, store.home_id).json()["order_id"]

    page = client.get("/orders", headers=headers).json()
    assert page["total"] == 1
    assert page["items"][0]["id"] == order_id
    assert page["items"][0]["shipping_address"]["postal_code"] == "560034"

    assert client.get("/orders", params={"status": "DELIVERED"}, headers=headers).json()["total"] == 0

    # Other customers cannot see it
    response = client.get(f"/orders/{order_id}", headers=auth_headers("ravi@example.com"))
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "ORDER_NOT_FOUND"


def test_customer_cancel_endpoint(client, store, fill_cart, auth_headers):
    headers = auth_headers("asha@example.com")
    fill_cart(store.customer_id, (store.milk_id, 4))
    order_id = _checkout(client, headers, store.home_id).json()["order_id"]

    response = client.post(f"/orders/{order_id}/cancel", headers=headers)

    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"
    assert client.post(f"/orders/{order_id}/cancel", headers=headers).status_code == 409


def test_orders_require_a_token(client, store):
    assert client.get("/orders").status_code in (401, 403)

    bad = {"Authorization": "Bearer not-a-token"}
    assert client.get("/orders", headers=bad).status_code == 401


def test_admin_status_update(client, store, fill_cart, auth_headers):
    fill_cart(store.customer_id, (store.milk_id, 4))
    order_id = _checkout(client, auth_headers("asha@example.com"), store.home_id).json()["order_id"]

    forbidden = client.patch(f"/admin/orders/{order_id}/status", json={"status": "PROCESSING"},
                             headers=auth_headers("asha@example.com"))
    assert forbidden.status_code == 403

    admin = auth_headers("admin@example.com")
    response = client.patch(f"/admin/orders/{order_id}/status", json={"status": "PROCESSING"}, headers=admin)
    assert response.status_code == 200
    assert response.json()["status"] == "PROCESSING"

    skipped = client.patch(f"/admin/orders/{order_id}/status", json={"status": "DELIVERED"}, headers=admin)
    assert skipped.status_code == 409
    assert skipped.json()["detail"]["code"] == "INVALID_STATUS_TRANSITION"


def test_admin_reclaim_endpoint(client, store, auth_headers):
    response = client.post("/admin/orders/reclaim", headers=auth_headers("admin@example.com"))

    assert response.status_code == 200
    assert response.json() == {"reclaimed_order_ids": []}


def test_database_sink_writes_in_app_notifications(db, store):
    sink = notifications.DatabaseNotificationSink()

    notifications.emit_safely(sink, store.customer_id, notifications.ORDER_PLACED,
                              {"order_id": 1, "order_number": "KT2401010ABCDE"})

    row = db.query(Notification).one()
    assert row.title == "Order Placed Successfully"
    assert "KT2401010ABCDE" in row.message


def test_sink_failures_are_swallowed(store):
    class BrokenSink(notifications.NotificationSink):
        def emit(self, user_id, type_, payload):
            raise RuntimeError("smtp down")

    notifications.emit_safely(BrokenSink(), store.customer_id, notifications.ORDER_PLACED, {})
