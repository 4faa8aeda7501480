"""
Schema derivation for dynamic forms.
Builds Pydantic models from field descriptors so the same declarative
configuration drives both rendering and validation.
"""

import re
from functools import lru_cache
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple, Type
from urllib.parse import urlparse

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, create_model
from pydantic_core import PydanticCustomError
import logging

from .field_types import FieldType, NEVER_OPTIONAL_TYPES, STRING_TYPES
from .models import FieldDescriptor, ValueMap
from .rules import FieldRule, annotate, pattern_check

logger = logging.getLogger(__name__)

MODEL_CACHE_SIZE = 64

# Pairs of (child name, child layout); the child layout is None unless the child is a group
GroupLayout = Tuple[Tuple[str, Any], ...]

EMAIL_PATTERN = re.compile(
    r"^(?!\.)(?!.*\.\.)([A-Za-z0-9_'+\-\.]*)[A-Za-z0-9_+-]@([A-Za-z0-9][A-Za-z0-9\-]*\.)+[A-Za-z]{2,}$"
)


def _check_email(v):
    if v is not None and not EMAIL_PATTERN.match(v):
        raise PydanticCustomError('invalid_email', "Enter a valid email address")
    return v


def _check_url(v):
    if v is not None:
        parsed = urlparse(v)
        if not parsed.scheme or not parsed.netloc:
            raise PydanticCustomError('invalid_url', "Enter a valid URL")
    return v


def _blank_to_none(v):
    # Optional fields accept an empty input as absence
    if isinstance(v, str) and v == '':
        return None
    return v


def get_field_type(descriptor: FieldDescriptor, layout: Optional[GroupLayout] = None) -> Any:
    """
    Map a descriptor's field type to its base Python type.

    Args:
        descriptor: Field descriptor
        layout: Visible children of a group field; None keeps every child

    Returns:
        Python type for the field, before constraints are applied
    """
    field_type = descriptor.type

    if field_type == FieldType.NUMBER:
        return float

    elif field_type == FieldType.CHECKBOX:
        return List[str] if descriptor.multiple else bool

    elif field_type == FieldType.SWITCH:
        return bool

    elif field_type == FieldType.FILE:
        return Any

    elif field_type == FieldType.GROUP:
        return create_nested_model(descriptor.fields, f"Group_{descriptor.name}", layout)

    elif field_type == FieldType.ARRAY:
        item_type = descriptor.item_type
        if item_type in (FieldType.ARRAY, FieldType.GROUP):
            item_type = FieldType.TEXT
        item = descriptor.model_copy(update={'type': item_type, 'required': False, 'multiple': False})
        return List[_constrained_type(item)]

    # text, textarea, tel, password, date, select, radio, email, url and unknown types
    return str


def create_validators_for_field(descriptor: FieldDescriptor) -> list:
    """
    Create format validators for a field based on its type and pattern.

    Returns:
        List of after-validator callables
    """
    validators = []
    field_type = descriptor.type

    if field_type == FieldType.EMAIL:
        validators.append(_check_email)
    elif field_type == FieldType.URL:
        validators.append(_check_url)

    if descriptor.pattern and _is_string_typed(descriptor):
        validators.append(pattern_check(descriptor.pattern))

    return validators


_NON_STRING_TYPES = frozenset({
    FieldType.NUMBER, FieldType.CHECKBOX, FieldType.SWITCH, FieldType.FILE, FieldType.GROUP, FieldType.ARRAY,
})


def _is_string_typed(descriptor: FieldDescriptor) -> bool:
    return descriptor.type not in _NON_STRING_TYPES


def _constrained_type(descriptor: FieldDescriptor, required: bool = False, layout: Optional[GroupLayout] = None) -> Any:
    """Base type plus constraints and format validators, without optionality."""
    base_type = get_field_type(descriptor, layout)
    constraints: Dict[str, Any] = {}

    if descriptor.type == FieldType.NUMBER:
        if descriptor.min is not None:
            constraints['ge'] = descriptor.min
        if descriptor.max is not None:
            constraints['le'] = descriptor.max

    elif base_type is str:
        if descriptor.max_length:
            constraints['max_length'] = descriptor.max_length
        if required and descriptor.type in STRING_TYPES:
            constraints['min_length'] = 1

    elif required and (descriptor.type == FieldType.ARRAY or (descriptor.type == FieldType.CHECKBOX and descriptor.multiple)):
        constraints['min_length'] = 1

    metadata = []
    if constraints:
        metadata.append(Field(**constraints))
    metadata.extend(AfterValidator(v) for v in create_validators_for_field(descriptor))

    return annotate(base_type, *metadata)


def derive_rule(descriptor: FieldDescriptor, layout: Optional[GroupLayout] = None) -> FieldRule:
    """
    Derive the validation rule for one field.

    An explicit ``validation`` override is used verbatim. Otherwise the rule is
    inferred from the field type, then required-ness is applied: string types
    gain a minimum length of one, a multiple checkbox must have at least one
    entry, and every other non-required field except switch and checkbox
    becomes optional. Required has no further effect on switch, number, select
    and radio.

    Args:
        descriptor: Field descriptor
        layout: For a group, the children to validate (see group_layout)

    Returns:
        FieldRule for the field
    """
    if descriptor.validation is not None:
        return descriptor.validation

    field_type = descriptor.type
    kwargs: Dict[str, Any] = {'description': descriptor.display_label}

    if field_type == FieldType.FILE:
        # Opaque value, validation is left to the caller
        return FieldRule(Any, Field(default=None, **kwargs), name=descriptor.name)

    annotation = _constrained_type(descriptor, required=descriptor.required, layout=layout)

    if field_type == FieldType.SWITCH or (field_type == FieldType.CHECKBOX and not descriptor.multiple):
        # An untouched toggle reads as off
        kwargs['default'] = False
    elif field_type == FieldType.CHECKBOX and not descriptor.required:
        kwargs['default_factory'] = list
    elif not descriptor.required and field_type not in NEVER_OPTIONAL_TYPES:
        annotation = annotate(Optional[annotation], BeforeValidator(_blank_to_none))
        kwargs['default'] = None

    return FieldRule(annotation, Field(**kwargs), name=descriptor.name)


def has_conditional_children(descriptor: FieldDescriptor) -> bool:
    """True if any child of a group, at any depth, has a visibility predicate."""
    return any(
        child.show_when is not None or (child.type == FieldType.GROUP and has_conditional_children(child))
        for child in descriptor.fields
    )


def group_layout(descriptor: FieldDescriptor, value: Any) -> GroupLayout:
    """
    Describe which children of a group are visible for its current value.

    Child predicates see the group's own dict value, as when rendering.

    Args:
        descriptor: Group field descriptor
        value: Current group value

    Returns:
        Hashable layout usable as a model cache key
    """
    group_value = value if isinstance(value, dict) else {}
    layout = []
    for child in descriptor.visible_children(group_value):
        if child.type == FieldType.GROUP and child.validation is None:
            layout.append((child.name, group_layout(child, group_value.get(child.name))))
        else:
            layout.append((child.name, None))
    return tuple(layout)


def create_nested_model(
    fields: List[FieldDescriptor],
    model_name: str,
    layout: Optional[GroupLayout] = None
) -> Type[BaseModel]:
    """
    Create a nested Pydantic model for group fields.

    Args:
        fields: Child descriptors of the group
        model_name: Name for the nested model
        layout: Children to include; None includes every child

    Returns:
        Pydantic model class for the group value
    """
    if layout is None:
        nested_fields = {field.name: derive_rule(field).as_field() for field in fields}
    else:
        children = {field.name: field for field in fields}
        nested_fields = {name: derive_rule(children[name], child_layout).as_field() for name, child_layout in layout}
    return create_model(model_name, __config__=ConfigDict(extra='ignore'), **nested_fields)


def create_model_from_fields(fields: Iterable[FieldDescriptor], model_name: str = "DynamicForm") -> Type[BaseModel]:
    """
    Create a Pydantic model from an ordered list of field descriptors.

    Duplicate names are not detected: the last descriptor with a given name wins.

    Args:
        fields: Field descriptors
        model_name: Name for the generated model class

    Returns:
        Pydantic model class
    """
    model_fields = {}
    for field in fields:
        model_fields[field.name] = derive_rule(field).as_field()

    try:
        dynamic_model = create_model(model_name, __config__=ConfigDict(extra='ignore'), **model_fields)
        logger.debug(f"Created dynamic model '{model_name}' with {len(model_fields)} fields")
        return dynamic_model
    except Exception as e:
        logger.error(f"Failed to create model '{model_name}': {e}")
        raise


def _format_number(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _message_for(error: Dict[str, Any], label: str, descriptor: Optional[FieldDescriptor]) -> str:
    """Turn one Pydantic error into a field-aware message."""
    error_type = error.get('type', '')
    ctx = error.get('ctx') or {}
    field_type = descriptor.type if descriptor is not None else None
    if error_type.endswith('_type') and error.get('input', '') is None:
        # A cleared widget reports None for a required field
        error_type = 'missing'

    if error_type == 'missing':
        if field_type == FieldType.CHECKBOX and descriptor.multiple:
            return f"Please select at least one option for {label}"
        return f"{label} is required"

    if error_type == 'string_too_short':
        if ctx.get('min_length') == 1:
            return f"{label} is required"
        return f"Enter at least {ctx.get('min_length')} characters"

    if error_type == 'too_short':
        if field_type == FieldType.ARRAY:
            return f"Add at least one item to {label}"
        if ctx.get('min_length', 1) == 1:
            return f"Please select at least one option for {label}"
        return f"Select at least {ctx.get('min_length')} options for {label}"

    if error_type == 'string_too_long':
        return f"Enter at most {ctx.get('max_length')} characters"

    if error_type == 'greater_than_equal':
        return f"Enter a value of at least {_format_number(ctx.get('ge'))}"

    if error_type == 'less_than_equal':
        return f"Enter a value of at most {_format_number(ctx.get('le'))}"

    if error_type in ('float_parsing', 'float_type', 'int_parsing', 'int_type', 'finite_number'):
        return f"{label} must be a number"

    if error_type in ('bool_parsing', 'bool_type'):
        return f"{label} must be on or off"

    if error_type == 'string_type':
        return f"{label} must be text"

    if error_type == 'list_type':
        return f"{label} must be a list of values"

    if error_type in ('model_type', 'model_attributes_type', 'dict_type'):
        return f"{label} must be a group of values"

    return error.get('msg', 'Invalid value')


def format_error(error: Dict[str, Any], descriptor: Optional[FieldDescriptor]) -> str:
    """
    Build a human-readable message for a Pydantic error on a field.

    Errors nested inside group and array values are described relative to the
    child field or item that failed.

    Args:
        error: One entry of ValidationError.errors()
        descriptor: Descriptor of the top-level field the error belongs to

    Returns:
        Message string
    """
    loc = tuple(error.get('loc', ()))
    if descriptor is None:
        return _message_for(error, str(loc[0]) if loc else 'Value', None)

    if len(loc) > 1 and descriptor.validation is None:
        if descriptor.type == FieldType.GROUP:
            child = next((f for f in reversed(descriptor.fields) if f.name == loc[1]), None)
            return format_error({**error, 'loc': loc[1:]}, child)
        if descriptor.type == FieldType.ARRAY and isinstance(loc[1], int):
            return f"Item {loc[1] + 1}: {_message_for(error, 'Item', None)}"

    return _message_for(error, descriptor.display_label, descriptor)


def filter_to_fields(data: Dict[str, Any], field_names: Set[str]) -> Tuple[Dict[str, Any], List[str]]:
    """
    Filter a data dict to only keys present in field_names and return extras.

    Args:
        data: input data dictionary
        field_names: set of allowed field names

    Returns:
        Tuple of (filtered_dict, extras_list)
        - filtered_dict: {k: v for k in field_names if k in data}
        - extras_list: sorted list of keys present in data but not in field_names
    """
    if not isinstance(data, dict):
        return {}, []

    filtered = {k: v for k, v in data.items() if k in field_names}
    extras = sorted(set(data.keys()) - set(field_names))
    return filtered, extras


class DerivedValidator:
    """
    Structural validator derived from a field list.

    Rules are derived once at construction. Models for a subset of fields
    (the fields visible at submit time, plus the visible children of groups
    with conditional children) are built on first use and kept in a bounded
    LRU cache.
    """

    def __init__(self, fields: Iterable[FieldDescriptor], model_name: str = "DynamicForm"):
        self.model_name = model_name
        self._descriptors: Dict[str, FieldDescriptor] = {}
        self._rules: Dict[str, FieldRule] = {}
        for field in fields:
            self._descriptors[field.name] = field
            self._rules[field.name] = derive_rule(field)
        self._conditional_groups = {
            name for name, descriptor in self._descriptors.items()
            if descriptor.type == FieldType.GROUP and descriptor.validation is None
            and has_conditional_children(descriptor)
        }
        self._model_for = lru_cache(maxsize=MODEL_CACHE_SIZE)(self._build_model)
        logger.info(f"Derived validator '{model_name}' with {len(self._rules)} rules")

    @property
    def keys(self) -> Set[str]:
        return set(self._rules)

    @property
    def rules(self) -> Dict[str, FieldRule]:
        return dict(self._rules)

    @property
    def model(self) -> Type[BaseModel]:
        """Model covering every field."""
        return self._model_for(frozenset(self._rules), ())

    def _build_model(self, names: FrozenSet[str], layouts: Tuple[Tuple[str, GroupLayout], ...]) -> Type[BaseModel]:
        layout_by_name = dict(layouts)
        model_fields = {}
        for name, rule in self._rules.items():
            if name not in names:
                continue
            if name in layout_by_name:
                rule = derive_rule(self._descriptors[name], layout_by_name[name])
            model_fields[name] = rule.as_field()
        logger.debug(f"Built model '{self.model_name}' for {len(model_fields)} visible fields")
        return create_model(self.model_name, __config__=ConfigDict(extra='ignore'), **model_fields)

    def validate(self, values: ValueMap, visible: Optional[Iterable[str]] = None) -> Dict[str, str]:
        """
        Validate a value map.

        Group children hidden by their own ``show_when`` are not validated.

        Args:
            values: Current value map
            visible: Names to validate; defaults to every field. Names without
                a rule are ignored.

        Returns:
            Mapping of field name to its first error message; empty when valid
        """
        names = self.keys if visible is None else set(visible) & self.keys
        data, _ = filter_to_fields(values or {}, names)
        layouts = tuple(sorted(
            (name, group_layout(self._descriptors[name], data.get(name)))
            for name in names if name in self._conditional_groups
        ))
        model_class = self._model_for(frozenset(names), layouts)

        try:
            model_class.model_validate(data)
            return {}
        except ValidationError as e:
            errors: Dict[str, str] = {}
            for error in e.errors():
                loc = error.get('loc', ())
                if not loc:
                    continue
                name = str(loc[0])
                if name not in errors:
                    errors[name] = format_error(error, self._descriptors.get(name))
            return errors

    def is_valid(self, values: ValueMap, visible: Optional[Iterable[str]] = None) -> bool:
        return not self.validate(values, visible)


def derive_validator(fields: Iterable[FieldDescriptor], model_name: str = "DynamicForm") -> DerivedValidator:
    """Derive the structural validator for a field list."""
    return DerivedValidator(list(fields), model_name)
