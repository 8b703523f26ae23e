import httpx
import pytest

from storefront.api import StaticTokenAuthenticator, create_app
from storefront.cart import AddToCart
from tests.conftest import ADMIN, BUYER, OTHER_BUYER, SELLER, coupon_draft, fill_cart, ok

TOKENS = {"buyer": BUYER, "other": OTHER_BUYER, "seller": SELLER, "admin": ADMIN}


@pytest.fixture
async def client(store):
    app = create_app(store, StaticTokenAuthenticator(TOKENS))
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def create_order(client, store, **body):
    await fill_cart(store)
    payload = {"shipping_address_id": "addr-b1", "payment_method": "cod", **body}
    return await client.post("/orders", json=payload, headers=auth("buyer"))


async def test_requests_need_a_token(client):
    response = await client.get("/orders")
    assert response.status_code == 401
    assert response.json()["code"] == "UNAUTHENTICATED"

    response = await client.get("/orders", headers=auth("forged"))
    assert response.status_code == 401
    assert response.json()["code"] == "INVALID_TOKEN"


async def test_place_order(client, store):
    response = await create_order(client, store)

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Order created successfully"
    order = body["result"]
    assert order["status"] == "paid"
    assert order["total"] == "49.00"
    assert order["items"][0]["price"] == "20.00"


async def test_place_order_with_a_bad_coupon(client, store):
    response = await create_order(client, store, coupon_code="NOPE")

    assert response.status_code == 400
    assert response.json() == {"message": "Coupon not found or inactive", "code": "COUPON_NOT_FOUND"}


async def test_malformed_body_is_a_validation_error(client):
    response = await client.post("/orders", json={"payment_method": "barter"}, headers=auth("buyer"))

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


async def test_empty_cart(client):
    response = await client.post(
        "/orders",
        json={"shipping_address_id": "addr-b1", "payment_method": "cod"},
        headers=auth("buyer"),
    )

    assert response.status_code == 400
    assert response.json()["code"] == "EMPTY_CART"


async def test_order_access_and_transitions(client, store):
    order_id = (await create_order(client, store)).json()["result"]["id"]

    assert (await client.get(f"/orders/{order_id}", headers=auth("other"))).status_code == 403
    assert (await client.get("/orders/nope", headers=auth("admin"))).status_code == 404

    response = await client.post(
        f"/orders/{order_id}/ship", json={"tracking_number": "TRK-1"}, headers=auth("buyer")
    )
    assert response.status_code == 403

    response = await client.post(
        f"/orders/{order_id}/ship", json={"tracking_number": "TRK-1"}, headers=auth("seller")
    )
    assert response.status_code == 200
    assert response.json()["result"]["status"] == "shipped"

    response = await client.post(f"/orders/{order_id}/cancel", headers=auth("buyer"))
    assert response.status_code == 400
    assert response.json()["code"] == "ORDER_NOT_CANCELLABLE"

    response = await client.post(f"/orders/{order_id}/deliver", headers=auth("buyer"))
    assert response.json()["result"]["status"] == "delivered"


async def test_list_orders(client, store):
    await create_order(client, store)

    response = await client.get("/orders", params={"limit": 5}, headers=auth("buyer"))

    body = response.json()["result"]
    assert len(body["orders"]) == 1
    assert body["pagination"] == {"total": 1, "page": 1, "limit": 5, "total_pages": 1}

    seller_view = await client.get("/orders", params={"as_seller": "true"}, headers=auth("seller"))
    assert seller_view.json()["result"]["pagination"]["total"] == 1


async def test_paypal_flow(client, store):
    order_id = (await create_order(client, store, payment_method="paypal")).json()["result"]["id"]

    response = await client.post(
        f"/orders/{order_id}/payment",
        json={"return_url": "https://shop.test/ok", "cancel_url": "https://shop.test/no"},
        headers=auth("buyer"),
    )
    assert response.status_code == 200
    provider_order_id = response.json()["result"]["provider_order_id"]

    response = await client.post(
        "/payments/webhook",
        json={
            "event_type": "PAYMENT.CAPTURE.COMPLETED",
            "resource": {"provider_order_id": provider_order_id, "payment_id": "CAP-1"},
        },
    )
    assert response.status_code == 200

    response = await client.post(f"/orders/{order_id}/capture", headers=auth("buyer"))
    assert response.json()["result"]["status"] == "paid"


async def test_webhook_always_acknowledges(client):
    for payload in (b"not json", b'{"event_type": "SOMETHING"}'):
        response = await client.post(
            "/payments/webhook", content=payload, headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 200
        assert response.json()["message"] == "Webhook received"


async def test_cart_quote_and_coupon_check(client, store):
    ok(await store.coupons.create_coupon(coupon_draft()))
    await fill_cart(store, "b1", AddToCart("p1", 2))

    quote = (await client.get("/cart/quote", params={"coupon_code": "SAVE10"}, headers=auth("buyer"))).json()
    assert quote["result"]["totals"]["total"] == "45.00"
    assert quote["result"]["coupon_code"] == "SAVE10"

    response = await client.post("/coupons/validate", json={"code": "save10"}, headers=auth("buyer"))
    assert response.json()["message"] == "Coupon is valid"
    assert response.json()["result"]["discount_amount"] == "4.00"

    response = await client.post("/coupons/validate", json={"code": "GONE"}, headers=auth("buyer"))
    assert response.json()["message"] == "Coupon not found or inactive"
    assert response.json()["result"]["valid"] is False


async def test_seller_inventory(client):
    response = await client.get(
        "/inventory/seller", params={"sort": "quantity", "order": "asc"}, headers=auth("seller")
    )

    assert response.status_code == 200
    body = response.json()["result"]
    assert [(i["product_id"], i["name"], i["available"]) for i in body["items"]] == [
        ("p1", "Mug", 10),
        ("p3", "Lamp", 10),
    ]
    assert body["pagination"] == {"total": 2, "page": 1, "limit": 20, "total_pages": 1}

    assert (await client.get("/inventory/seller", headers=auth("buyer"))).status_code == 403
