import pytest
from storefront.kv import keys
from storefront.kv.utils import serialize
from storefront.orders.models import OrderStatus
from storefront.common.custom_exceptions import KVUnavailableError
from storefront.orders.repository import append_order_to_index, list_recent_orders, read_order
from tests.conftest import ADMIN_PASSWORD, url_prefix

orders_path = f"{url_prefix}/admin/orders"

# 2025-10-01 .. 2025-10-03 UTC
DAY_1 = 1759320000
DAY_2 = DAY_1 + 86400
DAY_3 = DAY_2 + 86400


async def seed_orders(kv, *orders):
    for order in orders:
        await kv.set(keys.order(order["id"]), serialize(order))
        await kv.lpush(keys.ORDERS_INDEX, order["id"])


def order_row(order_id, created, status="paid", email="buyer@example.com", **extra):
    row = {"id": order_id, "slug": "ring", "email": email, "created": created, "quantity": 1,
           "items": [{"slug": "ring", "quantity": 1}], "status": status}
    row.update(extra)
    return row


@pytest.mark.asyncio
async def test_admin_routes_require_session(ac_client, settings):
    resp = await ac_client.get(orders_path)
    assert resp.status_code == 401
    assert resp.json() == {"ok": False, "error": "Unauthorized"}


@pytest.mark.asyncio
async def test_login_rejects_wrong_password(ac_client, settings):
    resp = await ac_client.post(f"{url_prefix}/admin/auth/login", json={"password": "nope"})
    assert resp.status_code == 401
    assert "laem_admin_session" not in resp.cookies


@pytest.mark.asyncio
async def test_login_is_rate_limited(ac_client, settings, monkeypatch):
    monkeypatch.setattr(settings, "RATE_LIMIT_LOGIN_MAX", 1)
    await ac_client.post(f"{url_prefix}/admin/auth/login", data={"password": "nope"})
    resp = await ac_client.post(f"{url_prefix}/admin/auth/login", data={"password": ADMIN_PASSWORD})
    assert resp.status_code == 429
    assert resp.json() == {"ok": False, "error": "Too many login attempts. Try again shortly."}
    assert resp.headers["x-ratelimit-remaining"] == "0"


@pytest.mark.asyncio
async def test_logout_clears_session(admin_client):
    assert (await admin_client.get(orders_path)).status_code == 200
    await admin_client.post(f"{url_prefix}/admin/auth/logout")
    assert (await admin_client.get(orders_path)).status_code == 401


@pytest.mark.asyncio
async def test_cross_origin_writes_are_refused(admin_client):
    resp = await admin_client.post(f"{orders_path}/resolve", json={"orderId": "x"},
                                   headers={"origin": "https://evil.example"})
    assert resp.status_code == 403
    assert resp.json()["error"] == "Invalid origin"


@pytest.mark.asyncio
async def test_list_orders_filters_and_pages(admin_client, kv):
    await seed_orders(
        kv,
        order_row("cs_1", DAY_1),
        order_row("cs_2", DAY_2, status="shipped"),
        order_row("cs_3", DAY_3, status="stock_conflict", email=None, customerEmail="legacy@example.com"),
    )
    await kv.lpush(keys.ORDERS_INDEX, "cs_missing")

    resp = await admin_client.get(orders_path, params={"limit": 2})
    data = resp.json()
    assert data["ok"] is True
    assert [row["id"] for row in data["rows"]] == ["cs_3", "cs_2"]
    assert data["pagination"] == {"page": 1, "limit": 2, "total": 3, "totalPages": 2}
    assert data["rows"][0]["customer_email"] == "legacy@example.com"
    assert data["rows"][0]["payment_status"] == "stock_conflict"
    assert data["rows"][0]["stripe_dashboard_url"] == "https://dashboard.stripe.com/test/checkout/sessions/cs_3"

    page_2 = (await admin_client.get(orders_path, params={"limit": 2, "page": 9})).json()
    assert page_2["pagination"]["page"] == 2
    assert [row["id"] for row in page_2["rows"]] == ["cs_1"]

    shipped = (await admin_client.get(orders_path, params={"status": "shipped"})).json()
    assert [row["id"] for row in shipped["rows"]] == ["cs_2"]

    ranged = (await admin_client.get(orders_path, params={"from": "2025-10-02", "to": "2025-10-02"})).json()
    assert [row["id"] for row in ranged["rows"]] == ["cs_2"]


@pytest.mark.asyncio
async def test_list_orders_rejects_bad_dates(admin_client):
    bad = await admin_client.get(orders_path, params={"from": "10/01/2025"})
    assert bad.status_code == 400
    assert bad.json()["error"] == "Invalid date filter"

    inverted = await admin_client.get(orders_path, params={"from": "2025-10-03", "to": "2025-10-01"})
    assert inverted.status_code == 400


@pytest.mark.asyncio
async def test_ship_paid_order(admin_client, kv, sent_emails):
    await seed_orders(kv, order_row("cs_1", DAY_1))
    payload = {"orderId": "cs_1", "carrier": "DHL", "trackingNumber": "JD0001",
               "trackingUrl": "https://track.example/JD0001"}

    resp = await admin_client.post(f"{orders_path}/ship", json=payload)
    assert resp.json() == {"ok": True}

    order = await read_order("cs_1")
    assert order.status == OrderStatus.SHIPPED
    assert order.shipping.tracking_number == "JD0001"
    assert sent_emails[0]["to"] == "buyer@example.com"
    assert "JD0001" in sent_emails[0]["text"]

    again = await admin_client.post(f"{orders_path}/ship", json=payload)
    assert again.json() == {"ok": True, "already": True}
    assert len(sent_emails) == 1


@pytest.mark.asyncio
async def test_ship_refuses_conflicted_orders(admin_client, kv):
    await seed_orders(kv, order_row("cs_c", DAY_1, status="stock_conflict"),
                      order_row("cs_r", DAY_1, status="conflict_resolved"))
    payload = {"carrier": "DHL", "trackingNumber": "1", "trackingUrl": "https://t"}

    for order_id in ("cs_c", "cs_r"):
        resp = await admin_client.post(f"{orders_path}/ship", json={**payload, "orderId": order_id})
        assert resp.status_code == 409

    missing = await admin_client.post(f"{orders_path}/ship", json={**payload, "orderId": "nope"})
    assert missing.status_code == 404
    invalid = await admin_client.post(f"{orders_path}/ship", json={"orderId": "cs_c"})
    assert invalid.status_code == 400


@pytest.mark.asyncio
async def test_resolve_stock_conflict(admin_client, kv):
    await seed_orders(kv, order_row("cs_c", DAY_1, status="stock_conflict"), order_row("cs_p", DAY_1))

    resp = await admin_client.post(f"{orders_path}/resolve", data={"orderId": " cs_c ", "note": " refunded "})
    assert resp.json() == {"ok": True}
    order = await read_order("cs_c")
    assert order.status == OrderStatus.CONFLICT_RESOLVED
    assert order.conflict_resolution.note == "refunded"

    again = await admin_client.post(f"{orders_path}/resolve", json={"orderId": "cs_c"})
    assert again.json() == {"ok": True, "already": True}

    paid = await admin_client.post(f"{orders_path}/resolve", json={"orderId": "cs_p"})
    assert paid.status_code == 409

    empty = await admin_client.post(f"{orders_path}/resolve", json={"orderId": "  "})
    assert empty.status_code == 400


@pytest.mark.asyncio
async def test_list_recent_orders_skips_duplicates_and_missing(kv):
    await seed_orders(kv, order_row("cs_1", DAY_1), order_row("cs_2", DAY_2))
    await kv.lpush(keys.ORDERS_INDEX, "cs_2", "cs_gone")

    rows = await list_recent_orders(10)
    assert [row.id for row in rows] == ["cs_2", "cs_1"]
    assert [row.id for row in await list_recent_orders(1)] == []


@pytest.mark.asyncio
async def test_list_orders_reports_unreachable_kv(admin_client, kv):
    kv.transport_down = True

    resp = await admin_client.get(orders_path)

    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "KV_UNAVAILABLE"


@pytest.mark.asyncio
async def test_order_index_writes_report_unreachable_kv(kv):
    kv.transport_down = True
    with pytest.raises(KVUnavailableError):
        await append_order_to_index("cs_1")
    with pytest.raises(KVUnavailableError):
        await list_recent_orders(5)
