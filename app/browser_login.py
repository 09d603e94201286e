# app/browser_login.py
"""
Interactive login: opens a visible Chromium window on the site, waits for the user to
sign in and pick an address, then reads the session out of browser storage.
"""
from __future__ import annotations

import asyncio
import tempfile
import time
from typing import Any, Dict, Mapping, Optional

from infra.http_client import HttpClient
from ledger.errors import InvalidResponse, LedgerError, TransportError
from ledger.models import Session
from ledger.services.endpoints import make_endpoints_from_cfg
from ledger.services.session_service import SITE_DOMAIN, StorageSnapshot, session_from_storage
from utils.logger import logger
from utils.time import local_now

_READ_STORAGE_JS = """
() => {
  const ls = (k) => { const v = localStorage.getItem(k); return v === null ? "" : v; };
  const ss = (k) => { const v = sessionStorage.getItem(k); return v === null ? "" : v; };
  return {
    auth: ls("auth"),
    auth_key: ls("authKey"),
    device_id: ls("deviceId"),
    location: ls("location"),
    useragent: ls("useragent"),
    user: ls("user"),
    session_id: ss("sessionId"),
    browser_ua: navigator.userAgent || "",
    app_version: String(window.__APP_VERSION__ || window.app_version || ""),
    rn_bundle_version: String(window.__RN_BUNDLE_VERSION__ || window.rn_bundle_version || ""),
    document_cookie: document.cookie || "",
  };
}
"""


class LoginTimeout(LedgerError):
    """The user did not finish logging in before the deadline."""


async def read_snapshot(context: Any, page: Any, base_url: str) -> StorageSnapshot:
    values: Dict[str, str] = await page.evaluate(_READ_STORAGE_JS)
    jar = await context.cookies([base_url + "/"])
    cookies = {c["name"]: c["value"] for c in jar if SITE_DOMAIN in c.get("domain", "")}
    return StorageSnapshot(cookies=cookies, **{k: str(v or "") for k, v in values.items()})


async def _fill_auth_key(cfg: Mapping[str, Any], session: Session) -> Session:
    if session.auth_key or not session.cookies:
        return session
    try:
        async with HttpClient(cfg, session) as client:
            key = await client.fetch_auth_key()
    except (TransportError, InvalidResponse) as e:
        logger.warning(f"Could not fetch auth key: {e}")
        return session
    return session.model_copy(update={"auth_key": key})


async def capture_session(cfg: Mapping[str, Any]) -> Session:
    """Drive a headful browser until an access token shows up or login.timeout_s elapses."""
    # imported lazily so the rest of the CLI works without browser binaries
    from playwright.async_api import Error as PlaywrightError, async_playwright

    ep = make_endpoints_from_cfg(cfg)
    login_cfg = cfg.get("login", {})
    timeout_s = float(login_cfg.get("timeout_s", 480))
    poll_s = float(login_cfg.get("poll_s", 2.0))

    session: Optional[Session] = None
    with tempfile.TemporaryDirectory(prefix="blink-ledger-chrome-") as profile_dir:
        async with async_playwright() as p:
            context = await p.chromium.launch_persistent_context(user_data_dir=profile_dir, headless=False)
            try:
                page = context.pages[0] if context.pages else await context.new_page()
                await page.goto(ep.url("/"), wait_until="domcontentloaded", timeout=45000)

                print("A browser window is open. Please log in to Blinkit and select an address.")
                print("Waiting for login to complete...")

                deadline = time.monotonic() + timeout_s
                while session is None:
                    if time.monotonic() > deadline:
                        raise LoginTimeout("login timed out")
                    try:
                        snap = await read_snapshot(context, page, ep.base_url)
                    except PlaywrightError as e:
                        # page navigating mid-read
                        logger.debug(f"Storage read failed, retrying: {e}")
                    else:
                        session = session_from_storage(snap, now=local_now())
                    if session is None:
                        await asyncio.sleep(poll_s)
            finally:
                await context.close()

    logger.info("Browser session captured")
    return await _fill_auth_key(cfg, session)
