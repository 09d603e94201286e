# datafeed/handlers.py
"""
Tagged-variant decoding of the nested widgets inside an order container.

Each widget node is {"widget_type": <tag>, "data": {...}}. The tag is inspected first
and only the matching payload shape is validated. Unknown tags decode to NoopVariant.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ValidationError

from ledger.enums import WidgetType
from utils.logger import logger


# ---- payload shapes ----------------------------------------------------------------

class TextNode(BaseModel):
    text: Optional[str] = None


def _txt(node: Optional[TextNode]) -> str:
    if node is None or node.text is None:
        return ""
    return node.text


class HeaderData(BaseModel):
    title: Optional[TextNode] = None
    subtitle: Optional[TextNode] = None                  # date text
    left_underlined_subtitle: Optional[TextNode] = None  # amount text


class AccessibleImage(BaseModel):
    accessibility_text: Optional[TextNode] = None


class ListEntryData(BaseModel):
    image: Optional[AccessibleImage] = None


class ListEntry(BaseModel):
    data: Optional[ListEntryData] = None


class HorizontalListData(BaseModel):
    horizontal_item_list: Optional[List[ListEntry]] = None


# ---- variants ----------------------------------------------------------------------

@dataclass(frozen=True)
class HeaderVariant:
    title: str
    raw_date: str
    amount_text: str


@dataclass(frozen=True)
class ItemsVariant:
    items: Tuple[str, ...]


@dataclass(frozen=True)
class NoopVariant:
    widget_type: str


WidgetVariant = Union[HeaderVariant, ItemsVariant, NoopVariant]

WidgetDecoder = Callable[[Any], WidgetVariant]
widget_registry: Dict[str, WidgetDecoder] = {}


def register_widget(widget_type: str):
    def decorator(fn: WidgetDecoder):
        widget_registry[widget_type] = fn
        return fn
    return decorator


@register_widget(WidgetType.HEADER.value)
def handle_header(data: Any) -> HeaderVariant:
    header = HeaderData.model_validate(data)
    return HeaderVariant(
        title=_txt(header.title),
        raw_date=_txt(header.subtitle),
        amount_text=_txt(header.left_underlined_subtitle),
    )


@register_widget(WidgetType.HORIZONTAL_LIST.value)
def handle_horizontal_list(data: Any) -> ItemsVariant:
    lst = HorizontalListData.model_validate(data)
    names: List[str] = []
    for entry in lst.horizontal_item_list or []:
        image = entry.data.image if entry.data else None
        name = _txt(image.accessibility_text if image else None).strip()
        if name:
            names.append(name)
    return ItemsVariant(items=tuple(names))


def decode_widget(widget_type: str, data: Any) -> WidgetVariant:
    fn = widget_registry.get(widget_type)
    if fn is None:
        return NoopVariant(widget_type)
    try:
        return fn(data)
    except ValidationError as e:
        logger.debug(f"Skipping malformed {widget_type} widget: {e.error_count()} error(s)")
        return NoopVariant(widget_type)
