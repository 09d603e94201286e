# datafeed/pipeline.py
from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, TypeVar

from datafeed.decoder import decode_order_page
from datafeed.storage import LedgerStore
from infra import OrderPagePort
from ledger.errors import InvalidResponse, LedgerIOError, SyncCancelled, SyncError, TransportError
from ledger.models import Order
from ledger.services.reconcile_service import merge_orders
from utils.logger import logger
from utils.time import local_now

T = TypeVar("T")


@dataclass
class PageProgress:
    page: int
    pages: int
    fetched: int
    new: int


@dataclass
class SyncReport:
    pages_fetched: int
    fetched: int
    new: int
    total: int
    last_page: int


class SyncPipeline:
    """
    Sequential page loop: fetch -> decode -> merge -> report -> (save).

    Stops after the first page that decodes to nothing. Waits `sleep_ms` between pages
    but never after the last one. A set stop_event aborts the in-flight fetch or the
    pacing wait with SyncCancelled; nothing is saved for that page.
    """

    def __init__(self,
                 transport: OrderPagePort,
                 store: LedgerStore,
                 *,
                 pages: int = 1,
                 page_size: int = 0,
                 sleep_ms: int = 350,
                 persist_each_page: bool = True,
                 clock: Callable[[], datetime] = local_now,
                 on_progress: Optional[Callable[[PageProgress], None]] = None,
                 ) -> None:
        self.transport = transport
        self.store = store
        self.pages = max(1, int(pages))
        self.page_size = max(0, int(page_size))
        self.sleep_ms = max(0, int(sleep_ms))
        self.persist_each_page = persist_each_page
        self.clock = clock
        self.on_progress = on_progress
        self._sleep = asyncio.sleep

    @classmethod
    def from_cfg(cls, cfg: dict, transport: OrderPagePort, store: LedgerStore, *,
                 pages: Optional[int] = None,
                 page_size: Optional[int] = None,
                 sleep_ms: Optional[int] = None,
                 on_progress: Optional[Callable[[PageProgress], None]] = None,
                 ) -> "SyncPipeline":
        sync_cfg = cfg.get("sync", {})
        return cls(
            transport,
            store,
            pages=sync_cfg.get("pages", 1) if pages is None else pages,
            page_size=sync_cfg.get("page_size", 0) if page_size is None else page_size,
            sleep_ms=sync_cfg.get("sleep_ms", 350) if sleep_ms is None else sleep_ms,
            persist_each_page=bool(sync_cfg.get("persist_each_page", True)),
            on_progress=on_progress,
        )

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> SyncReport:
        ledger: List[Order] = self.store.load()
        logger.info(f"Sync start: {len(ledger)} stored orders, up to {self.pages} page(s)")

        last_page = 0
        fetched_total = new_total = 0
        saved = True
        for page in range(1, self.pages + 1):
            try:
                raw = await self._interruptible(
                    self.transport.fetch_order_page(page, self.page_size), stop_event, last_page
                )
                orders = decode_order_page(raw, self.clock())
            except (TransportError, InvalidResponse) as e:
                logger.error(f"Page {page} failed: {e}")
                raise SyncError(last_page, e, None if saved else ledger) from e

            if not orders:
                last_page = page
                logger.info(f"Page {page} was empty, no more history")
                if self.on_progress is not None:
                    self.on_progress(PageProgress(page, self.pages, 0, 0))
                break

            merged = merge_orders(ledger, orders)
            ledger = merged.orders
            saved = False
            last_page = page
            fetched_total += len(orders)
            new_total += merged.new_count
            logger.debug(f"Page {page}: fetched={len(orders)} new={merged.new_count} total={len(ledger)}")
            if self.on_progress is not None:
                self.on_progress(PageProgress(page, self.pages, len(orders), merged.new_count))

            if self.persist_each_page:
                self._save(ledger, last_page)
                saved = True

            if page < self.pages and self.sleep_ms > 0:
                await self._interruptible(self._sleep(self.sleep_ms / 1000.0), stop_event, last_page)

        if not saved:
            self._save(ledger, last_page)

        report = SyncReport(
            pages_fetched=last_page,
            fetched=fetched_total,
            new=new_total,
            total=len(ledger),
            last_page=last_page,
        )
        logger.info(f"Sync complete: {report}")
        return report

    def _save(self, ledger: List[Order], last_page: int) -> None:
        try:
            self.store.save(ledger)
        except LedgerIOError as e:
            logger.error(f"Ledger save failed after page {last_page}: {e}")
            raise SyncError(last_page, e, ledger) from e

    @staticmethod
    async def _interruptible(aw: Awaitable[T], stop_event: Optional[asyncio.Event], last_page: int) -> T:
        """Await `aw`, abandoning it with SyncCancelled as soon as stop_event is set."""
        if stop_event is None:
            return await aw
        if stop_event.is_set():
            if asyncio.iscoroutine(aw):
                aw.close()
            raise SyncCancelled(last_page)

        work = asyncio.ensure_future(aw)
        stopper = asyncio.ensure_future(stop_event.wait())
        try:
            await asyncio.wait({work, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopper.cancel()
            if not work.done():
                work.cancel()
                with contextlib.suppress(Exception, asyncio.CancelledError):
                    await work
        if work.cancelled():
            raise SyncCancelled(last_page)
        return work.result()
