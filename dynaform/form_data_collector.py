"""
Conversion between value-map values and Streamlit widget values.
Widgets want native objects (date, float, DataFrame); the value map keeps
JSON-like values (ISO date strings, strings, lists).
"""

import logging
from datetime import date, datetime
from typing import Any, List, Optional

import pandas as pd
from dateutil import parser

from .field_types import FieldType
from .models import FieldDescriptor

logger = logging.getLogger(__name__)

ARRAY_COLUMN = "value"


def parse_date(value: Any) -> Optional[date]:
    """
    Parse a stored date value for st.date_input.

    Args:
        value: ISO string, date or datetime

    Returns:
        date object, or None when the value is empty or unparseable
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return parser.parse(value).date()
        except (ValueError, OverflowError) as e:
            logger.warning(f"Failed to parse date string '{value}': {e}")
            return None
    logger.warning(f"Unexpected date value type: {type(value)}")
    return None


def format_date(value: Any) -> str:
    """Format a widget date as YYYY-MM-DD; empty string when unset."""
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, str):
        parsed = parse_date(value)
        return parsed.strftime("%Y-%m-%d") if parsed else ''
    return ''


def _coerce_number(value: Any) -> Optional[float]:
    if value is None or value == '':
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.warning(f"Could not convert '{value}' to a number")
        return None
    return None if pd.isna(number) else number


def _coerce_item(item_type: FieldType, value: Any) -> Any:
    """Coerce one array element taken from the editor."""
    if item_type == FieldType.NUMBER:
        return _coerce_number(value)
    if item_type == FieldType.DATE:
        return format_date(value)
    if item_type in (FieldType.SWITCH, FieldType.CHECKBOX):
        return bool(value)
    return str(value)


def array_frame(descriptor: FieldDescriptor, value: Any) -> pd.DataFrame:
    """
    Build the data_editor frame for an array field.

    Args:
        descriptor: Array field descriptor
        value: Current list value

    Returns:
        Single-column DataFrame; an empty object column when there are no items
    """
    items = list(value) if isinstance(value, (list, tuple)) else []
    if descriptor.item_type == FieldType.DATE:
        items = [parse_date(item) for item in items]
    if not items:
        return pd.DataFrame({ARRAY_COLUMN: pd.Series(dtype="object")})
    return pd.DataFrame({ARRAY_COLUMN: items})


def frame_to_list(descriptor: FieldDescriptor, frame: Any) -> List[Any]:
    """
    Read the edited items back from a data_editor result.

    Rows left empty (NaN or None) are dropped.
    """
    if isinstance(frame, pd.DataFrame):
        raw_values = frame[ARRAY_COLUMN].tolist() if ARRAY_COLUMN in frame else []
    elif isinstance(frame, (list, tuple)):
        raw_values = list(frame)
    else:
        return []

    items = []
    for raw_value in raw_values:
        if raw_value is None or (not isinstance(raw_value, (list, dict)) and pd.isna(raw_value)):
            continue
        if isinstance(raw_value, str) and raw_value.strip() == '':
            continue
        item = _coerce_item(descriptor.item_type, raw_value)
        if item is not None:
            items.append(item)
    return items


def to_widget_value(descriptor: FieldDescriptor, value: Any) -> Any:
    """
    Convert a value-map value into what the field's widget expects.

    Args:
        descriptor: Field descriptor
        value: Value from the value map

    Returns:
        Widget-native value
    """
    field_type = descriptor.type

    if field_type == FieldType.DATE:
        return parse_date(value)
    if field_type == FieldType.NUMBER:
        return _coerce_number(value)
    if field_type == FieldType.SWITCH or (field_type == FieldType.CHECKBOX and not descriptor.multiple):
        return bool(value)
    if field_type == FieldType.CHECKBOX:
        return [str(v) for v in value] if isinstance(value, (list, tuple, set)) else []
    if field_type in (FieldType.SELECT, FieldType.RADIO):
        return None if value in (None, '') else str(value)
    if field_type == FieldType.ARRAY:
        return array_frame(descriptor, value)
    if field_type in (FieldType.FILE, FieldType.GROUP):
        return value
    return '' if value is None else str(value)


def from_widget_value(descriptor: FieldDescriptor, raw: Any) -> Any:
    """
    Convert a raw widget value into its value-map form.

    Args:
        descriptor: Field descriptor
        raw: Value read from the widget or session state

    Returns:
        Value-map value
    """
    field_type = descriptor.type

    if field_type == FieldType.DATE:
        return format_date(raw)
    if field_type == FieldType.NUMBER:
        return _coerce_number(raw)
    if field_type == FieldType.SWITCH or (field_type == FieldType.CHECKBOX and not descriptor.multiple):
        return bool(raw)
    if field_type == FieldType.CHECKBOX:
        return [str(v) for v in raw] if isinstance(raw, (list, tuple, set)) else []
    if field_type in (FieldType.SELECT, FieldType.RADIO):
        return '' if raw is None else str(raw)
    if field_type == FieldType.ARRAY:
        return frame_to_list(descriptor, raw)
    if field_type == FieldType.FILE:
        # Uploaded files stay opaque; an empty multi-upload means no file
        if isinstance(raw, list) and not raw:
            return None
        return raw
    if field_type == FieldType.GROUP:
        return raw if isinstance(raw, dict) else {}
    return '' if raw is None else str(raw)
