import hashlib
import hmac
import time
from typing import Optional
import orjson
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from asgi_lifespan import LifespanManager
from storefront.config.admin_config import admin_config
from storefront.config.settings import config_settings
from storefront.kv import keys
from storefront.kv._kv import get_kv, set_kv
from storefront.kv.scripts import forget_loaded_scripts
from storefront.kv.utils import serialize
from storefront.main import app
from storefront.rate_limiting.utils import reset_in_memory_counters
from tests.mocks.mock_kv import MockKV

url_prefix = "/api/v1"

ADMIN_PASSWORD = "test-admin-token"
WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture(autouse=True)
def kv():
    fake = MockKV()
    previous = get_kv()
    set_kv(fake)
    forget_loaded_scripts()
    reset_in_memory_counters()
    try:
        yield fake
    finally:
        set_kv(previous)
        forget_loaded_scripts()
        reset_in_memory_counters()


@pytest.fixture
def settings(monkeypatch):
    """Provider secrets present, outbound calls stubbed per test."""
    monkeypatch.setattr(config_settings, "STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr(config_settings, "STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setattr(config_settings, "SITE_URL", "https://laem.test/")
    monkeypatch.setattr(config_settings, "RESEND_API_KEY", "re_test")
    monkeypatch.setattr(config_settings, "EMAIL_FROM", "LAEM <orders@laem.test>")
    monkeypatch.setattr(config_settings, "INVENTORY_ALERT_EMAIL", "owner@laem.test")
    monkeypatch.setattr(config_settings, "LOW_STOCK_THRESHOLD", 2)
    monkeypatch.setattr(admin_config, "ADMIN_TOKEN", ADMIN_PASSWORD)
    monkeypatch.setattr(admin_config, "ADMIN_SESSION_SECRET", None)
    return config_settings


@pytest.fixture
def sent_emails(monkeypatch):
    sent = []

    async def fake_post_email(payload, api_key):
        sent.append(payload)
        return {"id": f"email_{len(sent)}"}

    monkeypatch.setattr("storefront.emails.services.post_email", fake_post_email)
    return sent


@pytest.fixture
def stripe_calls(monkeypatch):
    """Records processor requests; checkout creation answers with a hosted url."""
    calls = []

    async def fake_stripe_request(method, path, *, params=None, form=None, idempotency_key=None):
        calls.append({"method": method, "path": path, "params": params, "form": form})
        if path.endswith("/line_items"):
            return {"data": [{"quantity": 2}, {"quantity": 1}]}
        return {"id": "cs_test_created", "url": "https://checkout.stripe.test/c/cs_test_created"}

    monkeypatch.setattr("storefront.orders.services.stripe_request", fake_stripe_request)
    return calls


@pytest_asyncio.fixture
async def ac_client():
    async with LifespanManager(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac


@pytest_asyncio.fixture
async def admin_client(ac_client, settings):
    resp = await ac_client.post(f"{url_prefix}/admin/auth/login", json={"password": ADMIN_PASSWORD})
    assert resp.status_code == 200
    return ac_client


def make_product(slug, stock=5, **overrides):
    product = {
        "slug": slug,
        "title": slug.replace("-", " ").title(),
        "subtitle": "Solid silver.",
        "description": "",
        "price_cents": 24000,
        "stock": stock,
        "archived": False,
        "published": True,
        "auto_archive_on_zero": False,
        "images": [],
    }
    product.update(overrides)
    return product


async def seed_products(kv, *products, counters=True):
    """Write catalog rows and direct keys; counters=False leaves stock keys unseeded."""
    await kv.set(keys.PRODUCTS, serialize(list(products)))
    for product in products:
        await kv.set(keys.product(product["slug"]), serialize(product))
        if counters:
            await kv.set(keys.stock(product["slug"]), product["stock"])


def sign_payload(body: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    timestamp = int(time.time()) if timestamp is None else timestamp
    signature = hmac.new(secret.encode(), f"{timestamp}.".encode() + body, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def checkout_completed_event(session_id="cs_test_1", metadata=None, payment_status="paid",
                             email="buyer@example.com", amount_total=48000) -> bytes:
    session = {
        "id": session_id,
        "object": "checkout.session",
        "payment_status": payment_status,
        "metadata": metadata or {},
        "customer_details": {"email": email},
        "created": 1760000000,
        "amount_total": amount_total,
        "currency": "usd",
    }
    return orjson.dumps({"id": "evt_1", "type": "checkout.session.completed", "data": {"object": session}})
