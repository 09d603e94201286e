# datafeed/decoder.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ValidationError

from datafeed.handlers import HeaderVariant, ItemsVariant, decode_widget
from datafeed.parsers import parse_amount_rupees, parse_date, parse_deeplink
from ledger.enums import WidgetType
from ledger.errors import InvalidResponse, UnparsableAmount, UnparsableDate
from ledger.models import Order, OrderCount
from utils.logger import logger


class CommonAttributes(BaseModel):
    order_id: Optional[str] = None
    order_status: Optional[str] = None
    deeplink: Optional[str] = None


class Tracking(BaseModel):
    common_attributes: Optional[CommonAttributes] = None


class Snippet(BaseModel):
    # only the tag is checked up front, other widgets may carry any payload
    widget_type: Any = None
    data: Any = None
    tracking: Any = None


class SnippetList(BaseModel):
    snippets: Optional[List[Snippet]] = None


class OrderHistoryEnvelope(BaseModel):
    is_success: bool = False
    response: Optional[SnippetList] = None


class SubNode(BaseModel):
    widget_type: Optional[str] = None
    data: Any = None


class ContainerData(BaseModel):
    items: Optional[List[SubNode]] = None


def decode_order_page(raw: Union[bytes, str], now: datetime) -> List[Order]:
    """
    Decode one order_history response body into orders, in snippet order.

    Raises InvalidResponse when the body is not JSON, does not match the envelope,
    or does not report success. Field-level date/amount failures only blank the field.
    """
    try:
        env = OrderHistoryEnvelope.model_validate_json(raw)
    except ValidationError as e:
        raise InvalidResponse(f"malformed order_history payload: {e.errors()[0]['msg']}") from e
    if not env.is_success:
        raise InvalidResponse("order_history response not successful")

    snippets = env.response.snippets if env.response and env.response.snippets else []
    orders: List[Order] = []
    for sn in snippets:
        if sn.widget_type != WidgetType.ORDER_CONTAINER.value:
            continue
        order = _decode_container(sn, now)
        if order is not None and order.has_signal():
            orders.append(order)
    return orders


def _decode_container(sn: Snippet, now: datetime) -> Optional[Order]:
    try:
        data = ContainerData.model_validate(sn.data if sn.data is not None else {})
    except ValidationError as e:
        logger.debug(f"Skipping order container with unexpected shape: {e.error_count()} error(s)")
        return None

    fields: dict = {}
    attrs = _tracking_attributes(sn.tracking)
    if attrs is not None:
        order_id, cart_id = parse_deeplink(attrs.deeplink, attrs.order_id or "")
        fields.update(id=order_id, status=attrs.order_status or "", cart_id=cart_id)

    items: List[str] = []
    for node in data.items or []:
        variant = decode_widget(node.widget_type or "", node.data)
        if isinstance(variant, HeaderVariant):
            fields["title"] = variant.title
            fields["raw_date"] = variant.raw_date
            try:
                fields["date"] = parse_date(variant.raw_date, now)
            except UnparsableDate as e:
                logger.debug(f"Order date left unknown: {e}")
            try:
                fields["amount_rupees"] = parse_amount_rupees(variant.amount_text)
            except UnparsableAmount as e:
                logger.debug(f"Order amount left unknown: {e}")
        elif isinstance(variant, ItemsVariant):
            items.extend(variant.items)

    return Order(items=tuple(items), **fields)


def _tracking_attributes(raw: Any) -> Optional[CommonAttributes]:
    if raw is None:
        return None
    try:
        return Tracking.model_validate(raw).common_attributes
    except ValidationError as e:
        logger.debug(f"Ignoring order tracking block with unexpected shape: {e.error_count()} error(s)")
        return None


# ---- small auxiliary endpoints -----------------------------------------------------

class OrderTraits(BaseModel):
    delivered_orders: int = 0
    live_orders: int = 0
    cancelled_orders: int = 0


class UserCounts(BaseModel):
    order_traits_realtime: Optional[OrderTraits] = None


class OrderCountEnvelope(BaseModel):
    data: Optional[Dict[str, Optional[UserCounts]]] = None


class AuthKeyEnvelope(BaseModel):
    success: bool = False
    auth_key: Optional[str] = None


def decode_order_count(raw: Union[bytes, str], user_id: str = "") -> OrderCount:
    """Pick the "user:<user_id>" entry when present, else the first entry."""
    try:
        env = OrderCountEnvelope.model_validate_json(raw)
    except ValidationError as e:
        raise InvalidResponse(f"malformed order_count payload: {e.errors()[0]['msg']}") from e
    if not env.data:
        raise InvalidResponse("missing order_count data")

    entry = env.data.get(f"user:{user_id}") if user_id else None
    if entry is None:
        entry = next(iter(env.data.values()))
    traits = (entry.order_traits_realtime if entry else None) or OrderTraits()
    return OrderCount(
        delivered=traits.delivered_orders,
        live=traits.live_orders,
        cancelled=traits.cancelled_orders,
    )


def decode_auth_key(raw: Union[bytes, str]) -> str:
    try:
        env = AuthKeyEnvelope.model_validate_json(raw)
    except ValidationError as e:
        raise InvalidResponse(f"malformed auth_key payload: {e.errors()[0]['msg']}") from e
    if not env.success or not env.auth_key:
        raise InvalidResponse("auth_key missing in response")
    return env.auth_key
