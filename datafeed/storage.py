# datafeed/storage.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable, List, Union

from pydantic import ValidationError

from ledger.errors import LedgerIOError
from ledger.models import Order
from utils.fileio import atomic_write_json
from utils.logger import logger


class LedgerStore:
    """
    Whole-file JSON snapshot of the ledger.

    A missing file is an empty ledger. Every save replaces the file atomically, so a
    crash mid-write leaves the previous snapshot intact.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> List[Order]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as e:
            raise LedgerIOError(f"cannot read ledger {self.path}: {e}") from e

        if not text.strip():
            return []
        try:
            rows = json.loads(text)
        except ValueError as e:
            raise LedgerIOError(f"corrupt ledger {self.path}: {e}") from e
        if not isinstance(rows, list):
            raise LedgerIOError(f"corrupt ledger {self.path}: expected a JSON array")
        try:
            orders = [Order.model_validate(r) for r in rows]
        except ValidationError as e:
            raise LedgerIOError(f"corrupt ledger {self.path}: {e.error_count()} invalid record field(s)") from e
        logger.debug(f"Loaded {len(orders)} orders from {self.path}")
        return orders

    def save(self, orders: Iterable[Order]) -> None:
        records = [o.to_record() for o in orders]
        try:
            atomic_write_json(self.path, records)
        except OSError as e:
            raise LedgerIOError(f"cannot write ledger {self.path}: {e}") from e
        logger.debug(f"Saved {len(records)} orders to {self.path}")
