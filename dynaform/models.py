"""
Declarative models for dynamic forms.

FieldDescriptor describes one form field (type, label, constraints, options,
visibility predicate); FormConfig groups an ordered field list with the
form-level settings. Both are immutable once built.
"""

from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .field_types import FieldType, coerce_field_type, is_known_type
from .rules import FieldRule

ValueMap = Dict[str, Any]
VisibilityPredicate = Callable[[ValueMap], bool]


class FieldOption(BaseModel):
    """One (label, value) choice for select, radio and checkbox fields."""

    model_config = ConfigDict(frozen=True)

    label: str
    value: Union[str, int, float]
    disabled: bool = False


class FieldDescriptor(BaseModel):
    """
    Declarative description of one form field.

    Unknown ``type`` values are kept as the raw string rather than rejected, so
    a single malformed descriptor degrades only its own field.
    """

    model_config = ConfigDict(
        frozen=True,
        arbitrary_types_allowed=True,
        populate_by_name=True,
        extra='ignore',
    )

    name: str
    type: Union[FieldType, str] = Field(default=FieldType.TEXT, union_mode='left_to_right')
    label: str = ""
    required: bool = False

    options: List[FieldOption] = Field(default_factory=list)
    multiple: bool = False

    min: Optional[float] = None
    max: Optional[float] = None
    step: Optional[float] = None
    max_length: Optional[int] = Field(default=None, alias='maxLength')
    rows: Optional[int] = None
    pattern: Optional[str] = None

    validation: Optional[FieldRule] = None
    default_value: Any = Field(default=None, alias='defaultValue')
    show_when: Optional[VisibilityPredicate] = Field(default=None, alias='showWhen')

    placeholder: Optional[str] = None
    help_text: Optional[str] = Field(default=None, alias='helpText')
    disabled: bool = False
    accept: Optional[str] = None

    columns: Optional[int] = None
    class_name: Optional[str] = Field(default=None, alias='className')

    # Composite types
    fields: List['FieldDescriptor'] = Field(default_factory=list)
    item_type: FieldType = Field(default=FieldType.TEXT, alias='itemType')

    @field_validator('type', mode='before')
    @classmethod
    def _coerce_type(cls, v):
        return coerce_field_type(v)

    @field_validator('options', mode='before')
    @classmethod
    def _coerce_options(cls, v):
        if v is None:
            return []
        options = []
        for item in v:
            if isinstance(item, (str, int, float)):
                options.append({'label': str(item), 'value': item})
            elif isinstance(item, (tuple, list)) and len(item) == 2:
                options.append({'label': str(item[0]), 'value': item[1]})
            else:
                options.append(item)
        return options

    @property
    def field_type(self) -> Union[FieldType, str]:
        return self.type

    @property
    def is_known_type(self) -> bool:
        return is_known_type(self.type)

    @property
    def display_label(self) -> str:
        """Label to show, falling back to a title-cased name."""
        return self.label or self.name.replace('_', ' ').title()

    @property
    def has_default(self) -> bool:
        """True when a default value was supplied, even if it is None."""
        return 'default_value' in self.model_fields_set

    @property
    def option_values(self) -> List[Any]:
        return [option.value for option in self.options]

    def is_visible(self, values: ValueMap) -> bool:
        """Evaluate the visibility predicate; fields without one are always visible."""
        if self.show_when is None:
            return True
        return bool(self.show_when(values))

    def visible_children(self, value: Any) -> List['FieldDescriptor']:
        """Children of a group that are visible for the group's dict value."""
        group_value = value if isinstance(value, dict) else {}
        return [child for child in self.fields if child.is_visible(group_value)]

    def prune_hidden(self, value: Any) -> Any:
        """Drop the entries of hidden children from a group value, at any depth."""
        if self.type != FieldType.GROUP or not isinstance(value, dict):
            return value
        return {
            child.name: child.prune_hidden(value[child.name])
            for child in self.visible_children(value)
            if child.name in value
        }


FieldDescriptor.model_rebuild()


class AddressLookupSettings(BaseModel):
    """Which fields a postal code lookup reads from and fills in."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra='ignore')

    postal_field: str = Field(alias='postalField')
    prefecture_field: str = Field(default='prefecture', alias='prefectureField')
    city_field: str = Field(default='city', alias='cityField')
    town_field: str = Field(default='town', alias='townField')

    @property
    def target_fields(self) -> Dict[str, str]:
        """Address part name to the field it fills."""
        return {'prefecture': self.prefecture_field, 'city': self.city_field, 'town': self.town_field}


class FormConfig(BaseModel):
    """A complete form: ordered fields plus form-level settings."""

    model_config = ConfigDict(
        frozen=True,
        arbitrary_types_allowed=True,
        populate_by_name=True,
        extra='ignore',
    )

    fields: List[FieldDescriptor]
    title: Optional[str] = None
    description: Optional[str] = None
    submit_text: str = Field(default="Submit", alias='submitText')
    reset_text: str = Field(default="Reset", alias='resetText')
    show_reset: bool = Field(default=False, alias='showReset')
    columns: int = Field(default=1, ge=1, le=4)
    submit_timeout: Optional[float] = Field(default=None, alias='submitTimeout', gt=0)
    address_lookup: Optional[AddressLookupSettings] = Field(default=None, alias='addressLookup')

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    def get_field(self, name: str) -> Optional[FieldDescriptor]:
        """Return the last descriptor with this name, matching derived-map semantics."""
        found = None
        for field in self.fields:
            if field.name == name:
                found = field
        return found
