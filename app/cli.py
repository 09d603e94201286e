# app/cli.py
"""
blink-ledger command line.

    blink-ledger auth login|status|logout
    blink-ledger version
    blink-ledger sync [--pages N] [--page-size N] [--sleep-ms N]
    blink-ledger orders
    blink-ledger stats
    blink-ledger count
"""
from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from typing import Any, Dict, List, Optional

from app.browser_login import capture_session
from datafeed.pipeline import PageProgress, SyncPipeline
from datafeed.storage import LedgerStore
from infra.http_client import HttpClient
from ledger import __version__
from ledger.errors import LedgerError, SyncCancelled, SyncError
from ledger.models import Session
from ledger.services.session_service import SessionService, status_line
from ledger.services.stats_service import build_summary, format_orders_table, format_summary
from utils.config import ledger_path, load_cfg, session_path
from utils.logger import logger
from utils.time import local_now

NO_ORDERS = "No orders stored yet. Run 'blink-ledger sync'."


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="blink-ledger", description="Unofficial Blinkit order ledger")
    parser.add_argument("--config", default=None, help="path to config.yaml")
    sub = parser.add_subparsers(dest="command", required=True)

    auth = sub.add_parser("auth", help="manage the captured browser session")
    auth.add_argument("action", choices=["login", "status", "logout"])

    sub.add_parser("version", help="print the version")

    sync = sub.add_parser("sync", help="fetch order history into the local ledger")
    sync.add_argument("--pages", type=int, default=None, help="max pages to fetch")
    sync.add_argument("--page-size", type=int, default=None, help="page size if supported by the API")
    sync.add_argument("--sleep-ms", type=int, default=None, help="sleep between pages (ms)")

    sub.add_parser("orders", help="print stored orders")
    sub.add_parser("stats", help="print yearly/monthly totals")
    sub.add_parser("count", help="print live order counts from the site")
    return parser


# ---- helpers ---------------------------------------------------------------------

def _require_session(cfg: Dict[str, Any]) -> Session:
    session = SessionService(session_path(cfg)).load()
    if session is None or not session.logged_in:
        raise LedgerError("not logged in; run 'blink-ledger auth login'")
    return session


def _print_progress(p: PageProgress) -> None:
    print(f"Page {p.page}/{p.pages}: fetched {p.fetched} orders, new {p.new}", flush=True)


def _install_stop_handlers(stop_event: asyncio.Event) -> None:
    def _graceful(*_):
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _graceful)
        except NotImplementedError:
            pass  # Windows


# ---- commands --------------------------------------------------------------------

def cmd_auth(args: argparse.Namespace, cfg: Dict[str, Any]) -> int:
    svc = SessionService(session_path(cfg))
    if args.action == "login":
        session = asyncio.run(capture_session(cfg))
        svc.save(session)
        print("Login captured and saved.")
    elif args.action == "status":
        print(status_line(svc.load()))
    else:
        svc.clear()
        print("Logged out (local session cleared).")
    return 0


async def _run_sync(args: argparse.Namespace, cfg: Dict[str, Any], session: Session) -> int:
    stop_event = asyncio.Event()
    _install_stop_handlers(stop_event)
    store = LedgerStore(ledger_path(cfg))
    async with HttpClient(cfg, session) as client:
        pipeline = SyncPipeline.from_cfg(
            cfg, client, store,
            pages=args.pages,
            page_size=args.page_size,
            sleep_ms=args.sleep_ms,
            on_progress=_print_progress,
        )
        report = await pipeline.run(stop_event)
    print(f"Sync complete. Stored {report.total} orders.")
    return 0


def cmd_sync(args: argparse.Namespace, cfg: Dict[str, Any]) -> int:
    session = _require_session(cfg)
    try:
        return asyncio.run(_run_sync(args, cfg, session))
    except SyncCancelled as e:
        print(f"Sync interrupted after page {e.last_page}.", file=sys.stderr)
        return 130
    except SyncError as e:
        if e.ledger is not None:
            logger.error(f"{len(e.ledger)} merged orders were not saved")
        raise


def cmd_orders(args: argparse.Namespace, cfg: Dict[str, Any]) -> int:
    orders = LedgerStore(ledger_path(cfg)).load()
    print(format_orders_table(orders) if orders else NO_ORDERS)
    return 0


def cmd_stats(args: argparse.Namespace, cfg: Dict[str, Any]) -> int:
    orders = LedgerStore(ledger_path(cfg)).load()
    if not orders:
        print(NO_ORDERS)
        return 0
    print(format_summary(build_summary(orders), generated_at=local_now()))
    return 0


async def _run_count(cfg: Dict[str, Any], session: Session) -> int:
    async with HttpClient(cfg, session) as client:
        counts = await client.order_count()
    print(f"Delivered: {counts.delivered}, live: {counts.live}, cancelled: {counts.cancelled}")
    return 0


def cmd_count(args: argparse.Namespace, cfg: Dict[str, Any]) -> int:
    return asyncio.run(_run_count(cfg, _require_session(cfg)))


COMMANDS = {
    "auth": cmd_auth,
    "sync": cmd_sync,
    "orders": cmd_orders,
    "stats": cmd_stats,
    "count": cmd_count,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command == "version":
        print(__version__)
        return 0
    try:
        cfg = load_cfg(args.config)
        return COMMANDS[args.command](args, cfg)
    except LedgerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
