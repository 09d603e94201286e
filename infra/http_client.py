# infra/http_client.py
from __future__ import annotations

import asyncio
import json
import logging
import random
from typing import Any, Dict, Mapping, Optional

import aiohttp

from datafeed.decoder import decode_auth_key, decode_order_count
from ledger.errors import HttpError, NetworkError
from ledger.models import OrderCount, Session
from ledger.services.endpoints import Endpoints, make_endpoints_from_cfg
from ledger.services.session_service import populate_derived_cookies
from utils.logger import logger as default_logger

JSON_SEPARATORS = (",", ":")
CF_COOKIE = "__cf_bm"
HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


def _json_dumps_compact(obj: Any) -> str:
    return json.dumps(obj, separators=JSON_SEPARATORS, ensure_ascii=False)


def _mask(s: Optional[str]) -> str:
    if not s:
        return ""
    if len(s) <= 8:
        return "*" * len(s)
    return s[:4] + "*" * (len(s) - 8) + s[-4:]


def cookie_header(cookies: Mapping[str, str]) -> str:
    return "; ".join(f"{k}={v}" for k, v in cookies.items())


def order_page_body(page: int, page_size: int) -> Optional[Dict[str, int]]:
    # the web app posts an empty body for the first default-sized page
    if page_size > 0 or page > 1:
        return {"page": page, "page_size": page_size}
    return None


class HttpClient:
    """
    Replays a captured browser session against the site's JSON endpoints.

    Bodies are returned as raw bytes; decoding is the caller's job. Non-2xx responses
    raise HttpError, connection failures and timeouts raise NetworkError.
    """

    def __init__(self,
                 cfg: Mapping[str, Any],
                 session: Session,
                 logger: Optional[logging.Logger] = None,
                 *,
                 timeout_ms: Optional[int] = None,
                 http_session: Optional[aiohttp.ClientSession] = None,
                 ) -> None:
        self.cfg = cfg
        self.log = logger or default_logger
        self.session = session
        self.ep: Endpoints = make_endpoints_from_cfg(cfg)
        self.http = http_session
        self._owned_session = http_session is None

        timeouts_cfg = cfg.get("timeouts", {})
        retries_cfg = cfg.get("retries", {})
        self.timeout_ms = int(timeout_ms or timeouts_cfg.get("rest_ms", 20000))
        self.bootstrap_timeout_ms = int(timeouts_cfg.get("bootstrap_ms", 15000))
        self.max_attempts = max(1, int(retries_cfg.get("rest_max_attempts", 1)))
        self.backoff_ms = int(retries_cfg.get("backoff_ms", 200))

        self.log.debug(
            f"HttpClient init base_url={self.ep.base_url} token={_mask(session.access_token)} "
            f"max_attempts={self.max_attempts}"
        )

    # ---- async context manager ----------------------------------------------------
    def _new_http_session(self) -> aiohttp.ClientSession:
        timeout = aiohttp.ClientTimeout(total=self.timeout_ms / 1000.0)
        # cookies are sent explicitly from the Session, never from a jar
        return aiohttp.ClientSession(
            timeout=timeout,
            raise_for_status=False,
            trust_env=True,
            cookie_jar=aiohttp.DummyCookieJar(),
        )

    async def __aenter__(self) -> "HttpClient":
        if self._owned_session and (self.http is None or self.http.closed):
            self.http = self._new_http_session()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owned_session and self.http is not None and not self.http.closed:
            await self.http.close()

    def _ensure_http(self) -> aiohttp.ClientSession:
        if self.http is None or self.http.closed:
            self.http = self._new_http_session()
            self._owned_session = True
        return self.http

    # ---- headers / cookies --------------------------------------------------------
    @property
    def user_agent(self) -> str:
        return self.session.user_agent or self.ep.user_agent

    def _session_headers(self) -> Dict[str, str]:
        s = self.session
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "app_client": "consumer_web",
            "platform": "desktop_web",
            "x-age-consent-granted": "false",
            "origin": self.ep.base_url,
            "referer": self.ep.referer,
        }
        optional = {
            "access_token": s.access_token,
            "auth_key": s.auth_key,
            "device_id": s.device_id,
            "session_uuid": s.session_uuid,
            "lat": f"{s.lat:f}" if s.lat else "",
            "lon": f"{s.lon:f}" if s.lon else "",
            "web_app_version": s.web_app_version,
            "app_version": s.app_version,
            "rn_bundle_version": s.rn_bundle_version,
        }
        headers.update({k: v for k, v in optional.items() if v})
        headers["user-agent"] = self.user_agent
        if s.cookies:
            headers["Cookie"] = cookie_header(s.cookies)
        return headers

    async def ensure_cookies(self) -> None:
        """Seed gr_1_* cookies and fetch the Cloudflare cookie if the session lacks it."""
        self.session = populate_derived_cookies(self.session)
        if CF_COOKIE in self.session.cookies:
            return
        await self._bootstrap_cookies()
        self.session = populate_derived_cookies(self.session)

    async def _bootstrap_cookies(self) -> None:
        url = self.ep.url("/")
        headers = {"User-Agent": self.user_agent, "Accept": HTML_ACCEPT}
        timeout = aiohttp.ClientTimeout(total=self.bootstrap_timeout_ms / 1000.0)
        try:
            async with self._ensure_http().get(url, headers=headers, timeout=timeout) as resp:
                await resp.read()
                fresh = {name: morsel.value for name, morsel in resp.cookies.items()}
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(f"cookie bootstrap failed: {e}") from e
        if fresh:
            self.session = self.session.model_copy(update={"cookies": {**self.session.cookies, **fresh}})
        self.log.debug(f"Bootstrapped cookies: {sorted(fresh)}")

    # ---- request core -------------------------------------------------------------
    async def request(
            self,
            method: str,
            path: str,
            *,
            json_body: Optional[Mapping[str, Any]] = None,
            headers: Optional[Mapping[str, str]] = None,
            retry: bool = True,
        ) -> bytes:
        """
        Send one request and return the raw body.
        Retries 5xx/429 and network errors only while attempts remain
        (retries.rest_max_attempts, default 1 = no retry).
        """
        method = method.upper()
        url = self.ep.url(path)
        body_str = _json_dumps_compact(json_body) if json_body is not None else None
        req_headers = self._session_headers()
        if headers:
            req_headers.update(headers)

        attempt = 0
        while True:
            attempt += 1
            try:
                async with self._ensure_http().request(
                    method,
                    url,
                    data=body_str,
                    headers=req_headers,
                ) as resp:
                    body = await resp.read()
                    status = resp.status
                    if status < 200 or status >= 300:
                        if retry and (status >= 500 or status == 429) and attempt < self.max_attempts:
                            self.log.warning(f"{method} {path} -> HTTP {status}, retrying...")
                            await self._sleep_backoff(attempt)
                            continue
                        text = body.decode("utf-8", errors="replace")
                        raise HttpError(status, f"{path} request failed: {resp.reason or status}", text[:512])
                    return body
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                if retry and attempt < self.max_attempts:
                    self.log.warning(f"Network error: {e!r} when requesting {url}, retrying...")
                    await self._sleep_backoff(attempt)
                    continue
                raise NetworkError(f"{method} {path} failed: {e!r}") from e

    async def _sleep_backoff(self, attempt: int) -> None:
        base = self.backoff_ms * (2 ** (attempt - 1))
        jitter = random.randint(0, self.backoff_ms)
        await asyncio.sleep((base + jitter) / 1000.0)

    # ---- endpoints ----------------------------------------------------------------
    async def fetch_order_page(self, page: int, page_size: int) -> bytes:
        await self.ensure_cookies()
        body = order_page_body(page, page_size)
        self.log.debug(f"POST {self.ep.order_history} page={page} page_size={page_size} body={body is not None}")
        return await self.request("POST", self.ep.order_history, json_body=body)

    async def order_count(self) -> OrderCount:
        await self.ensure_cookies()
        raw = await self.request("GET", self.ep.order_count)
        return decode_order_count(raw, self.session.user_id)

    async def fetch_auth_key(self) -> str:
        headers = {"referer": self.ep.url("/")}
        raw = await self.request("GET", self.ep.auth_key, headers=headers)
        return decode_auth_key(raw)
