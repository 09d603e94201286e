# infra/__init__.py
from __future__ import annotations

from typing import Protocol

from infra.http_client import HttpClient


# ========== transport port: the sync pipeline depends on this, not on HttpClient ==========
class OrderPagePort(Protocol):
    async def fetch_order_page(self, page: int, page_size: int) -> bytes: ...


__all__ = ["HttpClient", "OrderPagePort"]
