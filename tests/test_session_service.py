# tests/test_session_service.py
import json
import os
import stat
import sys
from datetime import datetime, timezone

import pytest

from ledger.errors import ConfigError
from ledger.models import Session
from ledger.services.session_service import (
    SessionService,
    StorageSnapshot,
    populate_derived_cookies,
    session_from_storage,
    status_line,
)

UPDATED = datetime(2025, 10, 19, 19, 56, tzinfo=timezone.utc)


@pytest.fixture
def svc(tmp_path):
    return SessionService(tmp_path / "app" / "config.json")


def test_load_missing_is_none(svc):
    assert svc.load() is None


def test_save_load_clear(svc, sample_session):
    svc.save(sample_session)
    assert svc.load() == sample_session
    doc = json.loads(svc.path.read_text(encoding="utf-8"))
    assert doc["session"]["access_token"] == "tok-abcdef123456"

    svc.clear()
    assert svc.load() is None
    svc.clear()


@pytest.mark.skipif(sys.platform.startswith("win"), reason="POSIX permissions")
def test_session_file_is_private(svc, sample_session):
    svc.save(sample_session)
    assert stat.S_IMODE(os.stat(svc.path).st_mode) == 0o600


def test_corrupt_session_file_raises(svc):
    svc.path.parent.mkdir(parents=True)
    svc.path.write_text("{oops", encoding="utf-8")
    with pytest.raises(ConfigError):
        svc.load()


def test_go_style_zero_timestamp_loads_as_unknown(svc):
    svc.path.parent.mkdir(parents=True)
    svc.path.write_text(json.dumps({"session": {
        "access_token": "t", "updated_at": "0001-01-01T00:00:00Z", "cookies": {"a": "b"},
    }}), encoding="utf-8")
    session = svc.load()
    assert session.updated_at is None
    assert session.cookies == {"a": "b"}


def test_populate_derived_cookies_fills_only_missing():
    session = Session(
        access_token="a b/c", device_id="dev", lat=12.5, lon=0.0,
        locality="MG Road", cookies={"gr_1_deviceId": "kept"},
    )
    out = populate_derived_cookies(session)
    assert out.cookies == {
        "gr_1_deviceId": "kept",
        "gr_1_accessToken": "a+b%2Fc",
        "gr_1_lat": "12.500000",
        "gr_1_locality": "MG+Road",
    }
    assert session.cookies == {"gr_1_deviceId": "kept"}


def test_status_line():
    assert status_line(None) == "Not logged in."
    assert status_line(Session()) == "Not logged in."
    assert status_line(Session(access_token="t", phone="98765", updated_at=UPDATED)) == (
        "Logged in as 98765. Last updated 2025-10-19T19:56:00+00:00."
    )
    assert status_line(Session(access_token="t", updated_at=UPDATED)).startswith(
        "Logged in as (phone unknown)."
    )


def test_session_from_storage_waits_for_token():
    assert session_from_storage(StorageSnapshot()) is None
    assert session_from_storage(StorageSnapshot(auth='{"phoneNumber": "1"}')) is None
    assert session_from_storage(StorageSnapshot(auth="not json")) is None


def test_session_from_storage_full_snapshot():
    snap = StorageSnapshot(
        auth='{"accessToken": "tok", "phoneNumber": "98765"}',
        auth_key=" ak ",
        device_id="dev",
        location='{"coords": {"lat": 28.61, "lon": 77.2, "locality": " CP ", "landmark": "Gate 2"}}',
        useragent='{"appVersion": 1008010016, "uaString": "UA/1.0"}',
        user='{"id": 4242}',
        session_id="sid",
        browser_ua="Browser/2.0",
        document_cookie="gr_1_locality=CP; __cf_bm=cf; broken",
        cookies={"_ga": "GA1"},
    )
    s = session_from_storage(snap, now=UPDATED)

    assert (s.access_token, s.phone, s.auth_key, s.device_id, s.session_uuid) == (
        "tok", "98765", "ak", "dev", "sid")
    assert (s.lat, s.lon, s.locality, s.landmark) == (28.61, 77.2, "CP", "Gate 2")
    assert s.user_id == "4242"
    assert s.user_agent == "UA/1.0"
    assert (s.web_app_version, s.app_version, s.rn_bundle_version) == ("1008010016",) * 3
    assert s.cookies["_ga"] == "GA1"
    assert s.cookies["__cf_bm"] == "cf"
    assert s.cookies["gr_1_locality"] == "CP"
    assert s.cookies["gr_1_accessToken"] == "tok"
    assert "broken" not in s.cookies
    assert s.updated_at == UPDATED


def test_session_from_storage_falls_back_to_browser_values():
    snap = StorageSnapshot(
        auth='{"accessToken": "tok"}',
        browser_ua="Browser/2.0",
        app_version="77",
        document_cookie="gr_1_lat=19.07; gr_1_lon=72.87",
    )
    s = session_from_storage(snap)
    assert s.user_agent == "Browser/2.0"
    assert (s.app_version, s.web_app_version, s.rn_bundle_version) == ("77", "77", "")
    assert (s.lat, s.lon) == (19.07, 72.87)
