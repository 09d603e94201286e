# ledger/models.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from utils.time import fmt_minute

# Go's zero time.Time, written by older snapshots for unknown dates
_ZERO_DATE_PREFIX = "0001-01-01"


class Order(BaseModel):
    """One purchase/delivery event. Immutable once decoded."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = ""
    cart_id: str = ""
    status: str = ""
    title: str = ""
    amount_rupees: int = 0          # whole rupees; 0 = not observed
    date: Optional[datetime] = None  # None = unknown / unparsable
    raw_date: str = ""
    items: Tuple[str, ...] = ()

    @field_validator("id", "cart_id", "status", "title", "raw_date", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return "" if v is None else v

    @field_validator("amount_rupees", mode="before")
    @classmethod
    def _none_to_zero(cls, v):
        return 0 if v is None else v

    @field_validator("items", mode="before")
    @classmethod
    def _none_to_tuple(cls, v):
        return () if v is None else v

    @field_validator("date", mode="before")
    @classmethod
    def _zero_date(cls, v):
        if v is None or v == "":
            return None
        if isinstance(v, str) and v.startswith(_ZERO_DATE_PREFIX):
            return None
        if isinstance(v, datetime) and v.year == 1 and v.month == 1 and v.day == 1:
            return None
        return v

    def has_signal(self) -> bool:
        """False for a tentative record with nothing observed at all."""
        return bool(
            self.id or self.cart_id or self.date is not None or self.amount_rupees
            or self.title or self.raw_date or self.items
        )

    def to_record(self) -> Dict[str, Any]:
        """Snapshot form: id always present, other empty fields omitted."""
        dumped = self.model_dump(mode="json", exclude_defaults=True)
        dumped.pop("id", None)
        return {"id": self.id, **dumped}


class Session(BaseModel):
    """Values captured from a logged-in browser, replayed as request headers/cookies."""
    model_config = ConfigDict(extra="ignore")

    access_token: str = ""
    auth_key: str = ""
    device_id: str = ""
    session_uuid: str = ""
    lat: float = 0.0
    lon: float = 0.0
    locality: str = ""
    landmark: str = ""
    web_app_version: str = ""
    app_version: str = ""
    rn_bundle_version: str = ""
    user_agent: str = ""
    phone: str = ""
    user_id: str = ""
    cookies: Dict[str, str] = Field(default_factory=dict)
    updated_at: Optional[datetime] = None

    @field_validator("updated_at", mode="before")
    @classmethod
    def _zero_updated(cls, v):
        if v is None or v == "" or (isinstance(v, str) and v.startswith(_ZERO_DATE_PREFIX)):
            return None
        return v

    @property
    def logged_in(self) -> bool:
        return bool(self.access_token)


@dataclass
class OrderCount:
    delivered: int = 0
    live: int = 0
    cancelled: int = 0


# ---- identity keys ---------------------------------------------------------------
# One variant per keying rule. Dataclass equality also compares the class, so keys of
# different variants never collide even when their payloads look alike.

@dataclass(frozen=True)
class ById:
    id: str

    def __str__(self) -> str:
        return f"id:{self.id}"


@dataclass(frozen=True)
class ByCart:
    cart_id: str

    def __str__(self) -> str:
        return f"cart:{self.cart_id}"


@dataclass(frozen=True)
class Composite:
    """
    Fallback identity when no id or cart id was observed.

    Known limitation: two distinct orders sharing date (to the minute), amount, title,
    raw date text and items collapse into one ledger entry (e.g. identical reorders
    placed within the same minute). The payload carries nothing stronger to tell them
    apart.
    """
    date: str
    amount: int
    title: str
    raw_date: str
    items: Tuple[str, ...]

    def __str__(self) -> str:
        return ":".join(["fallback", self.date, str(self.amount), self.title, self.raw_date, "|".join(self.items)])


@dataclass(frozen=True)
class Synthetic:
    """Call-scoped key for records with no observable identity at all."""
    ordinal: int

    def __str__(self) -> str:
        return f"synthetic:{self.ordinal}"


OrderKey = Union[ById, ByCart, Composite, Synthetic]


def _key_date(dt: Optional[datetime]) -> str:
    if dt is None:
        return ""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return fmt_minute(dt)


def order_key(order: Order) -> Optional[OrderKey]:
    """Derive the identity key, or None when the record has nothing to key on."""
    if order.id:
        return ById(order.id)
    if order.cart_id:
        return ByCart(order.cart_id)
    if order.date is not None or order.amount_rupees != 0 or order.title or order.raw_date or order.items:
        return Composite(
            date=_key_date(order.date),
            amount=order.amount_rupees,
            title=order.title,
            raw_date=order.raw_date,
            items=tuple(order.items),
        )
    return None


def same_identity(a: Order, b: Order) -> bool:
    """Pure identity check consistent with order_key. Keyless records match nothing."""
    key_a = order_key(a)
    return key_a is not None and key_a == order_key(b)
