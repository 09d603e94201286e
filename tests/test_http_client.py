# tests/test_http_client.py
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import asyncio
import copy
import json

import aiohttp
import pytest
from aioresponses import aioresponses, CallbackResult

from infra.http_client import HttpClient, _mask, cookie_header, order_page_body
from ledger.errors import HttpError, InvalidResponse, NetworkError, TransportError
from ledger.models import OrderCount

BASE = "https://blinkit.com"
HISTORY = f"{BASE}/v1/layout/order_history"


def test_order_page_body_rules():
    assert order_page_body(1, 0) is None
    assert order_page_body(2, 0) == {"page": 2, "page_size": 0}
    assert order_page_body(1, 20) == {"page": 1, "page_size": 20}


def test_mask_and_cookie_header():
    assert _mask("tok-abcdef123456") == "tok-********3456"
    assert _mask("short") == "*****"
    assert cookie_header({"a": "1", "b": "2"}) == "a=1; b=2"


@pytest.mark.asyncio
async def test_first_page_sends_session_headers_and_empty_body(http_client: HttpClient):
    seen = {}

    def _capture(url, **kwargs):
        seen.update(kwargs)
        return CallbackResult(status=200, body=b'{"is_success": true}')

    with aioresponses() as m:
        m.post(HISTORY, callback=_capture)
        body = await http_client.fetch_order_page(1, 0)

    assert body == b'{"is_success": true}'
    assert seen["data"] is None
    headers = seen["headers"]
    assert headers["access_token"] == "tok-abcdef123456"
    assert headers["auth_key"] == "authkey-1"
    assert headers["device_id"] == "device-1"
    assert headers["session_uuid"] == "session-1"
    assert headers["lat"] == "28.600000"
    assert headers["lon"] == "77.200000"
    assert headers["app_client"] == "consumer_web"
    assert headers["platform"] == "desktop_web"
    assert headers["referer"] == f"{BASE}/account/orders"
    assert "rn_bundle_version" not in headers
    assert headers["user-agent"].startswith("Mozilla/5.0")
    cookies = dict(p.split("=", 1) for p in headers["Cookie"].split("; "))
    assert cookies["__cf_bm"] == "cfvalue"
    assert cookies["gr_1_deviceId"] == "device-1"
    assert cookies["gr_1_locality"] == "Connaught+Place"


@pytest.mark.asyncio
async def test_later_pages_send_page_body(http_client: HttpClient):
    seen = {}

    def _capture(url, **kwargs):
        seen.update(kwargs)
        return CallbackResult(status=200, body=b"{}")

    with aioresponses() as m:
        m.post(HISTORY, callback=_capture)
        await http_client.fetch_order_page(2, 0)

    assert json.loads(seen["data"]) == {"page": 2, "page_size": 0}


@pytest.mark.asyncio
async def test_malformed_body_is_passed_through(http_client: HttpClient):
    with aioresponses() as m:
        m.post(HISTORY, status=200, body=b"<html>challenge</html>")
        assert await http_client.fetch_order_page(1, 0) == b"<html>challenge</html>"


@pytest.mark.asyncio
async def test_non_2xx_raises_http_error_without_retry(http_client: HttpClient):
    with aioresponses() as m:
        m.post(HISTORY, status=503, body=b"busy")
        m.post(HISTORY, status=200, body=b"{}")
        with pytest.raises(HttpError) as ei:
            await http_client.fetch_order_page(1, 0)
    assert ei.value.status == 503
    assert isinstance(ei.value, TransportError)
    assert ei.value.payload == "busy"


@pytest.mark.asyncio
@pytest.mark.parametrize("exc", [aiohttp.ClientConnectionError("boom"), asyncio.TimeoutError()])
async def test_network_failures_raise_network_error(http_client: HttpClient, exc):
    with aioresponses() as m:
        m.post(HISTORY, exception=exc)
        with pytest.raises(NetworkError):
            await http_client.fetch_order_page(1, 0)


@pytest.mark.asyncio
async def test_retry_when_configured(test_cfg, sample_session, monkeypatch):
    cfg = copy.deepcopy(test_cfg)
    cfg["retries"]["rest_max_attempts"] = 3
    async with HttpClient(cfg, sample_session) as client:
        monkeypatch.setattr(client, "_sleep_backoff", lambda attempt: asyncio.sleep(0))
        with aioresponses() as m:
            m.post(HISTORY, status=429)
            m.post(HISTORY, status=500)
            m.post(HISTORY, status=200, body=b"ok")
            assert await client.fetch_order_page(1, 0) == b"ok"


@pytest.mark.asyncio
async def test_order_count(http_client: HttpClient):
    payload = {"data": {"user:42": {"order_traits_realtime": {
        "delivered_orders": 87, "live_orders": 1, "cancelled_orders": 2}}}}
    with aioresponses() as m:
        m.get(f"{BASE}/v1/order_count", payload=payload)
        counts = await http_client.order_count()
    assert counts == OrderCount(delivered=87, live=1, cancelled=2)


@pytest.mark.asyncio
async def test_fetch_auth_key(http_client: HttpClient):
    with aioresponses() as m:
        m.get(f"{BASE}/v2/accounts/auth_key/", payload={"success": True, "auth_key": "fresh"})
        assert await http_client.fetch_auth_key() == "fresh"

    with aioresponses() as m:
        m.get(f"{BASE}/v2/accounts/auth_key/", payload={"success": False})
        with pytest.raises(InvalidResponse):
            await http_client.fetch_auth_key()


@pytest.mark.asyncio
async def test_missing_cloudflare_cookie_is_bootstrapped(test_cfg, sample_session):
    session = sample_session.model_copy(update={"cookies": {}})
    async with HttpClient(test_cfg, session) as client:
        with aioresponses() as m:
            m.get(f"{BASE}/", status=200, body=b"<html></html>",
                  headers={"Set-Cookie": "__cf_bm=fresh-cf; Path=/; HttpOnly"})
            m.post(HISTORY, status=200, body=b"{}")
            await client.fetch_order_page(1, 0)

        assert client.session.cookies["__cf_bm"] == "fresh-cf"
        assert client.session.cookies["gr_1_accessToken"] == "tok-abcdef123456"


@pytest.mark.asyncio
async def test_bootstrap_network_failure(test_cfg, sample_session):
    session = sample_session.model_copy(update={"cookies": {}})
    async with HttpClient(test_cfg, session) as client:
        with aioresponses() as m:
            m.get(f"{BASE}/", exception=aiohttp.ClientConnectionError("dns"))
            with pytest.raises(NetworkError):
                await client.fetch_order_page(1, 0)
