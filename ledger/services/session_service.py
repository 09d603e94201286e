# ledger/services/session_service.py
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union
from urllib.parse import quote_plus

from pydantic import BaseModel, ConfigDict, ValidationError

from ledger.errors import ConfigError
from ledger.models import Session
from utils.fileio import atomic_write_json
from utils.logger import logger
from utils.time import rfc3339

SITE_DOMAIN = "blinkit.com"


class SessionService:
    """Reads and writes the captured session as {"session": {...}} (mode 0600)."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> Optional[Session]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise ConfigError(f"cannot read session file {self.path}: {e}") from e
        try:
            doc = json.loads(text) if text.strip() else {}
            raw = doc.get("session") if isinstance(doc, dict) else None
            return Session.model_validate(raw) if raw else None
        except (ValueError, ValidationError) as e:
            raise ConfigError(f"corrupt session file {self.path}: {e}") from e

    def save(self, session: Session) -> None:
        try:
            atomic_write_json(self.path, {"session": session.model_dump(mode="json")})
        except OSError as e:
            raise ConfigError(f"cannot write session file {self.path}: {e}") from e
        logger.debug(f"Session saved to {self.path}")

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise ConfigError(f"cannot remove session file {self.path}: {e}") from e


def populate_derived_cookies(session: Session) -> Session:
    """Return a copy whose cookies include the gr_1_* values the site derives from session fields."""
    cookies = dict(session.cookies)
    derived = {
        "gr_1_accessToken": quote_plus(session.access_token) if session.access_token else "",
        "gr_1_deviceId": session.device_id,
        "gr_1_lat": f"{session.lat:f}" if session.lat else "",
        "gr_1_lon": f"{session.lon:f}" if session.lon else "",
        "gr_1_locality": quote_plus(session.locality) if session.locality else "",
        "gr_1_landmark": quote_plus(session.landmark) if session.landmark else "",
    }
    for name, value in derived.items():
        if value and name not in cookies:
            cookies[name] = value
    return session.model_copy(update={"cookies": cookies})


def status_line(session: Optional[Session]) -> str:
    if session is None or not session.logged_in:
        return "Not logged in."
    phone = session.phone or "(phone unknown)"
    updated = rfc3339(session.updated_at) if session.updated_at else "unknown"
    return f"Logged in as {phone}. Last updated {updated}."


# ---- browser storage -> Session ------------------------------------------------------

@dataclass
class StorageSnapshot:
    """Raw values read from the logged-in page (localStorage, sessionStorage, cookies)."""
    auth: str = ""            # localStorage.auth
    auth_key: str = ""        # localStorage.authKey
    device_id: str = ""       # localStorage.deviceId
    location: str = ""        # localStorage.location
    useragent: str = ""       # localStorage.useragent
    user: str = ""            # localStorage.user
    session_id: str = ""      # sessionStorage.sessionId
    browser_ua: str = ""      # navigator.userAgent
    app_version: str = ""     # window.__APP_VERSION__
    rn_bundle_version: str = ""
    document_cookie: str = ""
    cookies: Dict[str, str] = field(default_factory=dict)  # browser cookie jar for the site


class _AuthPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")
    accessToken: Optional[str] = None
    phoneNumber: Optional[str] = None


class _Coords(BaseModel):
    model_config = ConfigDict(extra="ignore")
    lat: Optional[float] = None
    lon: Optional[float] = None
    locality: Optional[str] = None
    landmark: Optional[str] = None


class _LocationPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")
    coords: Optional[_Coords] = None


class _UserAgentPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")
    appVersion: Optional[Union[int, float, str]] = None
    uaString: Optional[str] = None


class _UserPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: Optional[int] = None


def _parse_optional(model, raw: str):
    raw = (raw or "").strip()
    if not raw:
        return None
    try:
        return model.model_validate_json(raw)
    except ValidationError as e:
        logger.debug(f"Ignoring unreadable {model.__name__}: {e.error_count()} error(s)")
        return None


def _split_cookie_header(raw: str) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for part in (raw or "").split(";"):
        name, sep, value = part.strip().partition("=")
        name = name.strip()
        if sep and name:
            out[name] = value.strip()
    return out


def _float_or_none(v: Any) -> Optional[float]:
    try:
        return float(v)
    except (TypeError, ValueError):
        return None


def session_from_storage(snap: StorageSnapshot, now: Optional[datetime] = None) -> Optional[Session]:
    """
    Build a Session from browser storage, or None while no access token is present yet.
    Unreadable optional blobs (location, user agent, user) are skipped.
    """
    auth = _parse_optional(_AuthPayload, snap.auth)
    if auth is None or not auth.accessToken:
        return None

    fields: Dict[str, Any] = {
        "access_token": auth.accessToken,
        "phone": auth.phoneNumber or "",
        "auth_key": snap.auth_key.strip(),
        "device_id": snap.device_id.strip(),
        "session_uuid": snap.session_id.strip(),
    }

    loc = _parse_optional(_LocationPayload, snap.location)
    if loc is not None and loc.coords is not None:
        fields["lat"] = loc.coords.lat or 0.0
        fields["lon"] = loc.coords.lon or 0.0
        fields["locality"] = (loc.coords.locality or "").strip()
        fields["landmark"] = (loc.coords.landmark or "").strip()

    user = _parse_optional(_UserPayload, snap.user)
    if user is not None and user.id:
        fields["user_id"] = str(user.id)

    web_version = ""
    ua = _parse_optional(_UserAgentPayload, snap.useragent)
    if ua is not None:
        if ua.appVersion not in (None, ""):
            web_version = str(ua.appVersion)
        if ua.uaString:
            fields["user_agent"] = ua.uaString
    if not fields.get("user_agent") and snap.browser_ua:
        fields["user_agent"] = snap.browser_ua

    app_version = web_version or snap.app_version
    rn_bundle = snap.rn_bundle_version or web_version
    fields["web_app_version"] = web_version or app_version
    fields["app_version"] = app_version
    fields["rn_bundle_version"] = rn_bundle

    cookies = dict(snap.cookies)
    cookies.update(_split_cookie_header(snap.document_cookie))
    fields["cookies"] = cookies

    if not fields.get("lat") or not fields.get("lon"):
        for key, cookie in (("lat", "gr_1_lat"), ("lon", "gr_1_lon")):
            val = _float_or_none(cookies.get(cookie))
            if val is not None:
                fields[key] = val

    fields["updated_at"] = now
    return populate_derived_cookies(Session(**fields))
