"""
Form definition loading for dynaform.

Form definitions are YAML files describing a FormConfig. Declarative forms are
used where a Python definition would pass a callable:

    fields:
      - name: country
        type: select
        options: [{label: Japan, value: jp}, {label: Other, value: other}]
      - name: otherCountry
        type: text
        show_when: {field: country, equals: other}
      - name: postalCode
        type: text
        validation: {rule: postal_code}

``show_when`` accepts one condition or a list of conditions that must all
hold. A condition names a field and one of ``equals``, ``not_equals``, ``in``
or ``truthy``.
"""

import yaml
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union
import logging

from pydantic import ValidationError

from .exceptions import FormDefinitionError
from .models import FieldDescriptor, FormConfig, ValueMap
from .rules import FieldRule, get_rule

logger = logging.getLogger(__name__)

CONDITION_OPERATORS = ('equals', 'not_equals', 'in', 'truthy')


@dataclass(frozen=True)
class FieldCondition:
    """Visibility predicate comparing one field of the value map."""
    field: str
    operator: str = 'truthy'
    operand: Any = True

    def __call__(self, values: ValueMap) -> bool:
        value = values.get(self.field)
        if self.operator == 'equals':
            return value == self.operand
        if self.operator == 'not_equals':
            return value != self.operand
        if self.operator == 'in':
            return value in self.operand
        return bool(value) == bool(self.operand)


@dataclass(frozen=True)
class AllConditions:
    """Visibility predicate that holds when every condition holds."""
    conditions: Tuple[FieldCondition, ...]

    def __call__(self, values: ValueMap) -> bool:
        return all(condition(values) for condition in self.conditions)


def build_condition(raw: Any, source: str = "<form>") -> Union[FieldCondition, AllConditions]:
    """
    Build a visibility predicate from its declarative form.

    Args:
        raw: Condition mapping, or a list of them
        source: Form definition the condition came from, for error messages

    Returns:
        Callable predicate over the value map

    Raises:
        FormDefinitionError: If the condition is malformed
    """
    if isinstance(raw, list):
        return AllConditions(tuple(build_condition(item, source) for item in raw))

    if not isinstance(raw, dict) or not isinstance(raw.get('field'), str):
        raise FormDefinitionError(source, f"show_when must name a 'field': {raw!r}")

    operators = [op for op in CONDITION_OPERATORS if op in raw]
    if len(operators) > 1:
        raise FormDefinitionError(source, f"show_when may use only one of {', '.join(CONDITION_OPERATORS)}: {raw!r}")
    if not operators:
        return FieldCondition(raw['field'])

    operator = operators[0]
    operand = raw[operator]
    if operator == 'in':
        if not isinstance(operand, (list, tuple)):
            raise FormDefinitionError(source, f"show_when 'in' expects a list: {raw!r}")
        operand = tuple(operand)
    return FieldCondition(raw['field'], operator, operand)


def build_rule(raw: Any, source: str = "<form>") -> FieldRule:
    """
    Resolve a declarative validation override to a FieldRule.

    Accepts a preset name, or a mapping with ``rule`` plus preset arguments.
    """
    if isinstance(raw, FieldRule):
        return raw
    if isinstance(raw, str):
        name, kwargs = raw, {}
    elif isinstance(raw, dict) and isinstance(raw.get('rule'), str):
        kwargs = dict(raw)
        name = kwargs.pop('rule')
    else:
        raise FormDefinitionError(source, f"validation must be a rule name or {{rule: ...}}: {raw!r}")

    try:
        return get_rule(name, **kwargs)
    except KeyError as e:
        raise FormDefinitionError(source, str(e.args[0]), e) from e
    except TypeError as e:
        raise FormDefinitionError(source, f"Invalid arguments for rule '{name}': {e}", e) from e


def _field_data(raw: Any, source: str) -> Dict[str, Any]:
    """Translate one declarative field mapping into FieldDescriptor input."""
    if not isinstance(raw, dict):
        raise FormDefinitionError(source, f"Each field must be a mapping, got {type(raw).__name__}")

    data = dict(raw)
    if 'default' in data and 'defaultValue' not in data and 'default_value' not in data:
        data['default_value'] = data.pop('default')

    for key in ('show_when', 'showWhen'):
        if key in data and data[key] is not None:
            data['show_when'] = build_condition(data.pop(key), source)

    if data.get('validation') is not None:
        data['validation'] = build_rule(data['validation'], source)

    if 'fields' in data:
        if not isinstance(data['fields'], list):
            raise FormDefinitionError(source, f"'fields' of group '{data.get('name')}' must be a list")
        data['fields'] = [FieldDescriptor.model_validate(_field_data(child, source)) for child in data['fields']]

    return data


def build_form(definition: Any, source: str = "<form>") -> FormConfig:
    """
    Build a FormConfig from a parsed form definition.

    Unknown keys are ignored and unknown field types are kept, so they render
    as placeholders. Duplicate names are not detected.

    Args:
        definition: Parsed YAML mapping
        source: Name of the definition, for error messages

    Returns:
        FormConfig

    Raises:
        FormDefinitionError: If the definition is not a mapping with a list of
            field mappings, or a field cannot be built
    """
    if not isinstance(definition, dict):
        raise FormDefinitionError(source, "top level must be a mapping")
    if not isinstance(definition.get('fields'), list):
        raise FormDefinitionError(source, "missing 'fields' list")

    try:
        fields = [FieldDescriptor.model_validate(_field_data(raw, source)) for raw in definition['fields']]
        settings = {k: v for k, v in definition.items() if k != 'fields'}
        return FormConfig.model_validate({**settings, 'fields': fields})
    except ValidationError as e:
        raise FormDefinitionError(source, str(e), e) from e


def load_form(form_path: Union[str, Path]) -> FormConfig:
    """
    Load a form definition from a YAML file.

    Args:
        form_path: Path to the YAML file

    Returns:
        FormConfig

    Raises:
        FormDefinitionError: If the file cannot be read or parsed, or does not
            describe a form
    """
    form_path = Path(form_path)
    try:
        with open(form_path, 'r', encoding='utf-8') as f:
            definition = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f"YAML parsing error in {form_path}: {e}")
        raise FormDefinitionError(form_path, "YAML parsing error", e) from e
    except (IOError, OSError) as e:
        logger.error(f"Failed to read form definition {form_path}: {e}")
        raise FormDefinitionError(form_path, "file could not be read", e) from e

    form = build_form(definition, str(form_path))
    logger.info(f"Loaded form definition {form_path} with {len(form.fields)} fields")
    return form


def list_forms(directory: Union[str, Path]) -> List[str]:
    """
    List form definition files in a directory.

    Returns:
        Sorted file names; empty when the directory does not exist
    """
    directory = Path(directory)
    if not directory.is_dir():
        logger.warning(f"Forms directory not found: {directory}")
        return []

    form_files = []
    for pattern in ['*.yaml', '*.yml']:
        form_files.extend([f.name for f in directory.glob(pattern)])
    return sorted(form_files)


def get_form_info(form_path: Union[str, Path]) -> Optional[Dict[str, Any]]:
    """
    Summarize a form definition for display.

    Returns:
        Dictionary with title, field count, required fields and field types,
        or None if the form cannot be loaded
    """
    try:
        form = load_form(form_path)
    except FormDefinitionError as e:
        logger.error(f"Could not summarize form {form_path}: {e}")
        return None

    return {
        "title": form.title or Path(form_path).stem.replace('_', ' ').title(),
        "description": form.description or '',
        "field_count": len(form.fields),
        "required_fields": [f.name for f in form.fields if f.required],
        "field_types": {f.name: str(f.type) for f in form.fields},
    }
