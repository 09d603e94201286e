# ledger/services/reconcile_service.py
from dataclasses import dataclass
from itertools import count
from typing import Dict, Iterable, List, Tuple

from ledger.models import Order, OrderKey, Synthetic, order_key


@dataclass
class MergeResult:
    orders: List[Order]
    new_count: int


def _sort_key(order: Order) -> Tuple[int, float]:
    # dated first, newest first; undated last
    if order.date is None:
        return (1, 0.0)
    return (0, -order.date.timestamp())


def merge_orders(existing: Iterable[Order], incoming: Iterable[Order]) -> MergeResult:
    """
    Fold one decoded batch into the ledger.

    Existing records win on key collision; each incoming record with an unseen key is
    added and counted as new. Keyless records on either side get a Synthetic key from a
    single counter for this call, so they always survive untouched. The result is sorted
    by date descending with a stable sort (undated records last, ties in merge order).
    """
    ordinals = count()
    merged: Dict[OrderKey, Order] = {}

    def key_of(order: Order) -> OrderKey:
        key = order_key(order)
        return key if key is not None else Synthetic(next(ordinals))

    for order in existing:
        merged.setdefault(key_of(order), order)

    new_count = 0
    for order in incoming:
        key = key_of(order)
        if key in merged:
            continue
        merged[key] = order
        new_count += 1

    orders = sorted(merged.values(), key=_sort_key)
    return MergeResult(orders=orders, new_count=new_count)
