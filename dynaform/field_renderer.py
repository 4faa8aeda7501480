"""
Field renderer for dynamic forms.

Maps a field descriptor, its current value and its current error onto a
Control: a UI-toolkit-neutral description of the interactive widget to show.
Dispatch goes through one table keyed by FieldType; the table is checked for
completeness at import time. Unknown types produce a diagnostic placeholder
instead of raising, so one malformed descriptor only affects its own field.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
import logging

from .field_types import FieldType
from .models import FieldDescriptor, ValueMap

logger = logging.getLogger(__name__)


class ControlKind:
    """Control kind constants."""
    TEXT_INPUT = "text_input"
    TEXT_AREA = "text_area"
    NUMBER_INPUT = "number_input"
    DATE_INPUT = "date_input"
    SELECTBOX = "selectbox"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    CHECKBOX_GROUP = "checkbox_group"
    TOGGLE = "toggle"
    FILE_UPLOADER = "file_uploader"
    GROUP = "group"
    ARRAY_EDITOR = "array_editor"
    UNKNOWN = "unknown"


SELECT_PLACEHOLDER = "Please select"
DEFAULT_TEXTAREA_ROWS = 4


@dataclass(frozen=True)
class Control:
    """
    Description of one rendered field.

    Attributes:
        name: Field name; change events are keyed by it
        kind: One of the ControlKind constants
        label: Display label
        value: Current bound value
        error: Current error message, if any
        help_text: Help text, shown only while there is no error
        placeholder: Placeholder text
        disabled: Whether the control is disabled
        required: Whether to mark the label as required
        label_position: "above", or "inline" when the label sits next to the control
        props: Kind-specific properties (min, max, step, options, rows, ...)
        children: Child controls of a group
        message: Diagnostic text for unknown field types
    """
    name: str
    kind: str
    label: str
    value: Any = None
    error: Optional[str] = None
    help_text: Optional[str] = None
    placeholder: Optional[str] = None
    disabled: bool = False
    required: bool = False
    label_position: str = "above"
    props: Dict[str, Any] = field(default_factory=dict)
    children: Tuple['Control', ...] = ()
    columns: Optional[int] = None
    class_name: Optional[str] = None
    message: Optional[str] = None

    @property
    def has_error(self) -> bool:
        return bool(self.error)

    @property
    def show_help(self) -> bool:
        return bool(self.help_text) and not self.error


def _base(descriptor: FieldDescriptor, value: Any, error: Optional[str]) -> Dict[str, Any]:
    """Decorations shared by every control kind."""
    return {
        'name': descriptor.name,
        'label': descriptor.display_label,
        'value': value,
        'error': error,
        'help_text': descriptor.help_text,
        'placeholder': descriptor.placeholder,
        'disabled': descriptor.disabled,
        'required': descriptor.required,
        'columns': descriptor.columns,
        'class_name': descriptor.class_name,
    }


def _options(descriptor: FieldDescriptor) -> List[Dict[str, Any]]:
    return [
        {'label': option.label, 'value': option.value, 'disabled': descriptor.disabled or option.disabled}
        for option in descriptor.options
    ]


def _render_text_input(descriptor: FieldDescriptor, value: Any, error: Optional[str]) -> Control:
    """Single-line input for text, email, tel, url and password."""
    props = {'input_type': str(descriptor.type)}
    if descriptor.max_length:
        props['max_chars'] = descriptor.max_length
    if descriptor.pattern:
        props['pattern'] = descriptor.pattern
    return Control(kind=ControlKind.TEXT_INPUT, props=props, **_base(descriptor, value, error))


def _render_text_area(descriptor: FieldDescriptor, value: Any, error: Optional[str]) -> Control:
    props = {'rows': descriptor.rows or DEFAULT_TEXTAREA_ROWS}
    if descriptor.max_length:
        props['max_chars'] = descriptor.max_length
    return Control(kind=ControlKind.TEXT_AREA, props=props, **_base(descriptor, value, error))


def _render_number_input(descriptor: FieldDescriptor, value: Any, error: Optional[str]) -> Control:
    props = {'min': descriptor.min, 'max': descriptor.max, 'step': descriptor.step}
    return Control(kind=ControlKind.NUMBER_INPUT, props=props, **_base(descriptor, value, error))


def _render_date_input(descriptor: FieldDescriptor, value: Any, error: Optional[str]) -> Control:
    base = _base(descriptor, value, error)
    base['placeholder'] = None
    return Control(kind=ControlKind.DATE_INPUT, **base)


def _render_selectbox(descriptor: FieldDescriptor, value: Any, error: Optional[str]) -> Control:
    props = {'options': _options(descriptor), 'empty_label': SELECT_PLACEHOLDER}
    return Control(kind=ControlKind.SELECTBOX, props=props, **_base(descriptor, value, error))


def _render_radio(descriptor: FieldDescriptor, value: Any, error: Optional[str]) -> Control:
    return Control(kind=ControlKind.RADIO, props={'options': _options(descriptor)}, **_base(descriptor, value, error))


def _render_checkbox(descriptor: FieldDescriptor, value: Any, error: Optional[str]) -> Control:
    """Checkbox group when multiple, otherwise a single boolean checkbox."""
    props = {'options': _options(descriptor)}
    if descriptor.multiple:
        selected = list(value) if isinstance(value, (list, tuple, set)) else []
        return Control(kind=ControlKind.CHECKBOX_GROUP, props=props, **_base(descriptor, selected, error))
    return Control(kind=ControlKind.CHECKBOX, props=props, **_base(descriptor, bool(value), error))


def _render_toggle(descriptor: FieldDescriptor, value: Any, error: Optional[str]) -> Control:
    # The switch label sits beside the control instead of above it
    return Control(kind=ControlKind.TOGGLE, label_position="inline", **_base(descriptor, bool(value), error))


def _render_file_uploader(descriptor: FieldDescriptor, value: Any, error: Optional[str]) -> Control:
    props = {'accept': descriptor.accept, 'multiple': descriptor.multiple}
    return Control(kind=ControlKind.FILE_UPLOADER, props=props, **_base(descriptor, value, error))


def _render_group(descriptor: FieldDescriptor, value: Any, error: Optional[str]) -> Control:
    """Composite control; children are bound to the group's dict value."""
    group_value = value if isinstance(value, dict) else {}
    children = tuple(
        render_field(child, group_value.get(child.name), None)
        for child in descriptor.visible_children(group_value)
    )
    return Control(kind=ControlKind.GROUP, children=children, **_base(descriptor, group_value, error))


def _render_array_editor(descriptor: FieldDescriptor, value: Any, error: Optional[str]) -> Control:
    items = list(value) if isinstance(value, (list, tuple)) else []
    props = {'item_type': str(descriptor.item_type)}
    if descriptor.max_length:
        props['max_chars'] = descriptor.max_length
    return Control(kind=ControlKind.ARRAY_EDITOR, props=props, **_base(descriptor, items, error))


def _render_unknown(descriptor: FieldDescriptor, value: Any, error: Optional[str]) -> Control:
    logger.warning(f"Rendering placeholder for field '{descriptor.name}' with unknown type '{descriptor.type}'")
    return Control(
        kind=ControlKind.UNKNOWN,
        message=f"Unknown field type: {descriptor.type}",
        **_base(descriptor, value, error)
    )


_RENDERERS: Dict[FieldType, Callable[[FieldDescriptor, Any, Optional[str]], Control]] = {
    FieldType.TEXT: _render_text_input,
    FieldType.EMAIL: _render_text_input,
    FieldType.TEL: _render_text_input,
    FieldType.URL: _render_text_input,
    FieldType.PASSWORD: _render_text_input,
    FieldType.TEXTAREA: _render_text_area,
    FieldType.NUMBER: _render_number_input,
    FieldType.DATE: _render_date_input,
    FieldType.SELECT: _render_selectbox,
    FieldType.RADIO: _render_radio,
    FieldType.CHECKBOX: _render_checkbox,
    FieldType.SWITCH: _render_toggle,
    FieldType.FILE: _render_file_uploader,
    FieldType.GROUP: _render_group,
    FieldType.ARRAY: _render_array_editor,
}

_unhandled = set(FieldType) - set(_RENDERERS)
if _unhandled:
    raise RuntimeError(f"No renderer registered for field types: {sorted(str(t) for t in _unhandled)}")


def render_field(descriptor: FieldDescriptor, value: Any = None, error: Optional[str] = None) -> Control:
    """
    Describe the control for one field.

    Args:
        descriptor: Field descriptor
        value: Current bound value
        error: Current error message for the field

    Returns:
        Control description; never raises for unknown field types
    """
    renderer = _RENDERERS.get(descriptor.type) if descriptor.is_known_type else None
    if renderer is None:
        return _render_unknown(descriptor, value, error)
    return renderer(descriptor, value, error)


def render_fields(
    fields: Iterable[FieldDescriptor],
    values: ValueMap,
    errors: Optional[Dict[str, str]] = None
) -> List[Control]:
    """Describe the controls for a sequence of fields."""
    errors = errors or {}
    return [render_field(f, values.get(f.name), errors.get(f.name)) for f in fields]
