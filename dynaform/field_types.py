"""
Field type catalog for dynamic forms.
Defines the closed set of field kinds and the groupings used by schema derivation.
"""

from enum import Enum
from typing import Any, FrozenSet, Union
import logging

logger = logging.getLogger(__name__)


class FieldType(str, Enum):
    """Closed set of supported field kinds."""
    TEXT = "text"
    TEXTAREA = "textarea"
    NUMBER = "number"
    EMAIL = "email"
    TEL = "tel"
    DATE = "date"
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    SWITCH = "switch"
    FILE = "file"
    PASSWORD = "password"
    URL = "url"
    GROUP = "group"
    ARRAY = "array"

    def __str__(self) -> str:
        return self.value


# Types whose required flag injects a minimum length of one
STRING_TYPES: FrozenSet[FieldType] = frozenset({
    FieldType.TEXT,
    FieldType.TEXTAREA,
    FieldType.EMAIL,
    FieldType.PASSWORD,
    FieldType.URL,
    FieldType.TEL,
    FieldType.DATE,
})

# Types that carry an option list
CHOICE_TYPES: FrozenSet[FieldType] = frozenset({
    FieldType.SELECT,
    FieldType.RADIO,
    FieldType.CHECKBOX,
})

# Types that are never made optional when not required
NEVER_OPTIONAL_TYPES: FrozenSet[FieldType] = frozenset({
    FieldType.SWITCH,
    FieldType.CHECKBOX,
})


def coerce_field_type(value: Any) -> Union[FieldType, str]:
    """
    Map a raw type value onto FieldType.

    Unknown values are returned unchanged so the renderer can show a
    diagnostic placeholder for that field only.

    Args:
        value: Raw type value from a configuration

    Returns:
        FieldType member, or the original string for unknown types
    """
    if isinstance(value, FieldType):
        return value
    try:
        return FieldType(str(value).strip().lower())
    except ValueError:
        logger.warning(f"Unknown field type '{value}', field will render as a placeholder")
        return str(value)


def is_known_type(value: Any) -> bool:
    """Return True if value is a member of the closed type set."""
    return isinstance(value, FieldType)
