# ledger/enums.py
from enum import Enum


class WidgetType(str, Enum):
    ORDER_CONTAINER = "order_history_container_vr"
    HEADER = "image_text_vr_type_header"
    HORIZONTAL_LIST = "horizontal_list"
