# tests/conftest.py
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import logging
from datetime import datetime, timezone

import yaml
import pytest
import pytest_asyncio

from datafeed.storage import LedgerStore
from infra.http_client import HttpClient
from ledger.models import Session

# reference clock used across decoder / pipeline tests
NOW = datetime(2025, 12, 20, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def test_cfg():
    def load_cfg():
        with open(Path(__file__).resolve().parents[1] / "config.yaml", "r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    return load_cfg()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def sample_session():
    return Session(
        access_token="tok-abcdef123456",
        auth_key="authkey-1",
        device_id="device-1",
        session_uuid="session-1",
        lat=28.6,
        lon=77.2,
        locality="Connaught Place",
        web_app_version="1008010016",
        app_version="52434332",
        phone="9999999999",
        user_id="42",
        cookies={"__cf_bm": "cfvalue"},
    )


@pytest_asyncio.fixture
async def http_client(test_cfg, sample_session):
    """
    HttpClient as an async context manager so the aiohttp session is always closed.
    """
    logger = logging.getLogger("HttpClientTest")
    async with HttpClient(test_cfg, sample_session, logger=logger) as client:
        yield client


@pytest.fixture
def ledger_store(tmp_path):
    return LedgerStore(tmp_path / "ledger" / "orders.json")
