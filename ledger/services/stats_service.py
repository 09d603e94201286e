# ledger/services/stats_service.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional

import pandas as pd

from ledger.models import Order
from utils.time import fmt_minute, rfc3339

RUPEE = "₹"
ITEMS_WIDTH = 60


@dataclass
class Bucket:
    label: str
    count: int
    amount: int


@dataclass
class Summary:
    total_orders: int = 0
    total_amount: int = 0
    yearly: List[Bucket] = field(default_factory=list)
    monthly: List[Bucket] = field(default_factory=list)


def _buckets(df: pd.DataFrame, label_col: str) -> List[Bucket]:
    if df.empty:
        return []
    agg = (
        df.groupby(label_col, sort=True)
          .agg(count=("amount", "size"), amount=("amount", "sum"))
          .reset_index()
    )
    return [Bucket(str(r[label_col]), int(r["count"]), int(r["amount"])) for _, r in agg.iterrows()]


def build_summary(orders: Iterable[Order]) -> Summary:
    """
    Totals cover every order; yearly ("YYYY") and monthly ("YYYY-MM") buckets cover dated
    orders only, in the offset each date was recorded with. Labels ascend.
    """
    orders = list(orders)
    dated = [
        {"year": o.date.strftime("%Y"), "month": o.date.strftime("%Y-%m"), "amount": o.amount_rupees}
        for o in orders if o.date is not None
    ]
    df = pd.DataFrame(dated, columns=["year", "month", "amount"])
    return Summary(
        total_orders=len(orders),
        total_amount=sum(o.amount_rupees for o in orders),
        yearly=_buckets(df, "year"),
        monthly=_buckets(df, "month"),
    )


def format_summary(summary: Summary, generated_at: Optional[datetime] = None) -> str:
    lines = [f"Total: {summary.total_orders} orders, {RUPEE}{summary.total_amount}"]
    for title, buckets in (("Yearly:", summary.yearly), ("Monthly:", summary.monthly)):
        if buckets:
            lines.append(title)
            lines.extend(f"  {b.label}: {b.count} orders, {RUPEE}{b.amount}" for b in buckets)
    if generated_at is not None:
        lines.append(f"Generated at {rfc3339(generated_at)}")
    return "\n".join(lines)


def format_orders_table(orders: Iterable[Order]) -> str:
    lines = ["DATE | AMOUNT | ORDER ID | ITEMS"]
    for o in orders:
        items = ", ".join(o.items)
        if len(items) > ITEMS_WIDTH:
            items = items[:ITEMS_WIDTH - 3] + "..."
        lines.append(f"{fmt_minute(o.date)} | {RUPEE}{o.amount_rupees} | {o.id} | {items}")
    return "\n".join(lines)
