import pytest
from storefront.inventory.models import StockRequest
from storefront.orders.models import OrderStatus
from storefront.orders.repository import list_orders_page
from storefront.orders.utils import (WebhookSignatureError, clamp_page_limit, encode_stripe_form,
                                     normalize_order, parse_cart_metadata, parse_date_filter,
                                     parse_status_filter, stripe_dashboard_url, verify_stripe_signature)
from tests.conftest import sign_payload


def test_normalize_order_reads_legacy_rows():
    order = normalize_order({
        "id": "cs_1", "customerEmail": "a@b.c", "createdAt": 1700000000.9, "amountTotal": 2400,
        "payment_status": "shipped", "quantity": 0,
        "shipping": {"carrier": "DHL", "trackingNumber": "1", "trackingUrl": "https://t", "shippedAt": 1700000100},
        "conflictResolution": {"note": "refund", "resolvedAt": 1700000200},
    })
    assert order.email == "a@b.c"
    assert order.created == 1700000000
    assert order.amount_total == 2400
    assert order.status == OrderStatus.SHIPPED
    assert order.quantity == 1
    assert order.shipping.tracking_url == "https://t"
    assert order.conflict_resolution.note == "refund"


def test_normalize_order_edge_cases():
    assert normalize_order({"slug": "ring"}) is None
    assert normalize_order(None) is None

    order = normalize_order({"id": "cs_1", "status": "weird", "shipping": {"carrier": "DHL"}})
    assert order.status == OrderStatus.PAID
    assert order.shipping is None

    resolved = normalize_order({"id": "cs_2", "status": "conflict_resolved"})
    assert resolved.status == OrderStatus.CONFLICT_RESOLVED


def test_parse_cart_metadata_skips_malformed_entries():
    assert parse_cart_metadata("ring:2, chain:1.5,bad,:3,hook:0,pin:x") == [
        StockRequest(slug="ring", quantity=2),
        StockRequest(slug="chain", quantity=1),
    ]
    assert parse_cart_metadata(None) == []


def test_filters_and_limits():
    assert clamp_page_limit("500") == 50
    assert clamp_page_limit("0") == 1
    assert clamp_page_limit("abc") == 25
    assert parse_status_filter("conflict_resolved") == "conflict_resolved"
    assert parse_status_filter("bogus") == "all"
    assert parse_date_filter("2025-10-02") == 1759363200
    assert parse_date_filter("2025-10-02", end_of_day=True) == 1759363200 + 86399
    assert parse_date_filter("") is None
    with pytest.raises(ValueError):
        parse_date_filter("2025-13-40")


def test_stripe_dashboard_url_modes():
    assert stripe_dashboard_url("cs_1", "sk_test_x") == "https://dashboard.stripe.com/test/checkout/sessions/cs_1"
    assert stripe_dashboard_url("cs_1", "sk_live_x") == "https://dashboard.stripe.com/checkout/sessions/cs_1"
    assert stripe_dashboard_url("cs_1", None) == "https://dashboard.stripe.com/checkout/sessions/cs_1"


def test_encode_stripe_form_nests_with_brackets():
    assert encode_stripe_form({
        "mode": "payment",
        "line_items": [{"price": "price_1", "quantity": 2,
                        "adjustable_quantity": {"enabled": True, "minimum": 1}}],
        "metadata": {"slug": "ring"},
        "skip": None,
    }) == [
        ("mode", "payment"),
        ("line_items[0][price]", "price_1"),
        ("line_items[0][quantity]", "2"),
        ("line_items[0][adjustable_quantity][enabled]", "true"),
        ("line_items[0][adjustable_quantity][minimum]", "1"),
        ("metadata[slug]", "ring"),
    ]


def test_verify_stripe_signature():
    body = b'{"id":"evt_1"}'
    header = sign_payload(body, secret="whsec_x", timestamp=1700000000)

    verify_stripe_signature(body, header, "whsec_x", 300, now_ts=1700000100)

    with pytest.raises(WebhookSignatureError):
        verify_stripe_signature(body + b" ", header, "whsec_x", 300, now_ts=1700000100)
    with pytest.raises(WebhookSignatureError):
        verify_stripe_signature(body, header, "whsec_x", 300, now_ts=1700001000)
    with pytest.raises(WebhookSignatureError):
        verify_stripe_signature(body, "garbage", "whsec_x", 300)


@pytest.mark.asyncio
async def test_list_orders_page_on_empty_index(kv):
    page = await list_orders_page(limit=10, page=3)
    assert (page.rows, page.total, page.page, page.total_pages) == ([], 0, 1, 1)
