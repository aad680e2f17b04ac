import pytest
from starlette.requests import Request
from storefront.kv import keys
from storefront.rate_limiting.rate_limit_fixed_window import fixed_window_allow
from storefront.rate_limiting.utils import client_ip_from_request, current_bucket


def make_request(headers: dict) -> Request:
    raw = [(k.lower().encode(), v.encode()) for k, v in headers.items()]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw})


@pytest.mark.parametrize("headers,expected", [
    ({"x-real-ip": " 1.1.1.1 ", "x-forwarded-for": "2.2.2.2"}, "1.1.1.1"),
    ({"cf-connecting-ip": "3.3.3.3"}, "3.3.3.3"),
    ({"fly-client-ip": "4.4.4.4"}, "4.4.4.4"),
    ({"x-forwarded-for": "5.5.5.5, 10.0.0.1"}, "5.5.5.5"),
    ({"x-forwarded-for": " , 10.0.0.1"}, "unknown"),
    ({}, "unknown"),
])
def test_client_ip_from_request(headers, expected):
    assert client_ip_from_request(make_request(headers)) == expected


def test_current_bucket_retry_after():
    bucket, retry_after = current_bucket(60, now_ms=120_500)
    assert bucket == 2
    assert retry_after == 60

    _, retry_after = current_bucket(60, now_ms=179_999)
    assert retry_after == 1


@pytest.mark.asyncio
async def test_fixed_window_counts_per_namespace_and_ip(kv):
    results = [await fixed_window_allow("checkout", "1.1.1.1", 2, 60) for _ in range(3)]

    assert [r.ok for r in results] == [True, True, False]
    assert [r.remaining for r in results] == [1, 0, 0]
    assert (await fixed_window_allow("admin-login", "1.1.1.1", 2, 60)).ok
    assert (await fixed_window_allow("checkout", "2.2.2.2", 2, 60)).ok

    counter_keys = [k for k in kv.data if k.startswith("ratelimit:checkout:1.1.1.1:")]
    assert len(counter_keys) == 1
    # window plus grace period
    assert 60_000 < await kv.pttl(counter_keys[0]) <= 65_000


@pytest.mark.asyncio
async def test_fixed_window_without_scripting_uses_incr(kv):
    kv.scripting_enabled = False
    first = await fixed_window_allow("checkout", "1.1.1.1", 1, 60)
    second = await fixed_window_allow("checkout", "1.1.1.1", 1, 60)

    assert first.ok and not second.ok
    key = next(k for k in kv.data if k.startswith("ratelimit:"))
    assert await kv.pttl(key) > 0


@pytest.mark.asyncio
async def test_fixed_window_falls_back_to_memory_when_kv_down(kv):
    kv.transport_down = True
    results = [await fixed_window_allow("checkout", "1.1.1.1", 2, 60) for _ in range(3)]
    assert [r.ok for r in results] == [True, True, False]


def test_rate_limit_key_is_sanitized():
    assert keys.rate_limit("admin login", "::1/evil", 7) == "ratelimit:admin_login:::1_evil:7"
