"""
Validation rules for dynamic form fields.

A FieldRule is the unit the schema builder places into the generated Pydantic
model: an annotation (optionally carrying constraints and validators through
``Annotated``) plus the FieldInfo holding the default. Callers can hand a
FieldRule to a field descriptor as its ``validation`` override, which replaces
type-based inference for that field entirely.

The presets at the bottom are reusable collaborators for common locale-specific
inputs (postal codes, katakana names, mobile numbers, passwords).
"""

import re
from typing import Annotated, Any, Callable, Dict, Iterable, Optional, Sequence

from pydantic import AfterValidator, Field, TypeAdapter, ValidationError
from pydantic.fields import FieldInfo
from pydantic_core import PydanticCustomError
import logging

logger = logging.getLogger(__name__)


def annotate(annotation: Any, *metadata: Any) -> Any:
    """Wrap annotation in Annotated with the given metadata, if any."""
    if not metadata:
        return annotation
    return Annotated[(annotation,) + tuple(metadata)]


class FieldRule:
    """A single field's validation rule: annotation plus FieldInfo."""

    def __init__(self, annotation: Any, field_info: Optional[FieldInfo] = None, name: Optional[str] = None):
        self.annotation = annotation
        self.field_info = field_info if field_info is not None else Field()
        self.name = name or getattr(annotation, '__name__', 'rule')
        self._adapter: Optional[TypeAdapter] = None

    @classmethod
    def of(cls, annotation: Any, *validators: Callable[[Any], Any], **field_kwargs) -> 'FieldRule':
        """
        Build a rule from an annotation, after-validators and Field kwargs.

        Args:
            annotation: Base Python type (str, float, List[str], ...)
            *validators: Callables run after type validation; they raise
                PydanticCustomError or ValueError to reject a value
            **field_kwargs: Passed to pydantic.Field (default, min_length, ge, ...)

        Returns:
            FieldRule instance
        """
        wrapped = annotate(annotation, *[AfterValidator(v) for v in validators])
        return cls(wrapped, Field(**field_kwargs))

    def as_field(self) -> tuple:
        """Return the (annotation, FieldInfo) pair accepted by create_model."""
        return self.annotation, self.field_info

    @property
    def is_required(self) -> bool:
        return self.field_info.is_required()

    def check(self, value: Any) -> Optional[str]:
        """
        Validate a single value against this rule.

        Defaults are not applied; the value is checked as given.

        Returns:
            First error message, or None when the value is valid
        """
        if self._adapter is None:
            self._adapter = TypeAdapter(self.annotation)
        try:
            self._adapter.validate_python(value)
            return None
        except ValidationError as e:
            errors = e.errors()
            return errors[0].get('msg') if errors else str(e)

    def __repr__(self) -> str:
        return f"FieldRule({self.name!r}, required={self.is_required})"


def predicate_rule(
    predicate: Callable[[Any], bool],
    message: str,
    annotation: Any = str,
    **field_kwargs
) -> FieldRule:
    """
    Build a rule that rejects values for which predicate returns False.

    Args:
        predicate: Callable returning True for acceptable values
        message: Message reported when the predicate fails
        annotation: Base type checked before the predicate
        **field_kwargs: Passed to pydantic.Field

    Returns:
        FieldRule instance
    """
    def _check(v):
        if not predicate(v):
            raise PydanticCustomError('predicate', message)
        return v

    rule = FieldRule.of(annotation, _check, **field_kwargs)
    rule.name = getattr(predicate, '__name__', 'predicate')
    return rule


def pattern_check(pattern: str, message: Optional[str] = None) -> Callable[[Any], Any]:
    """Return an after-validator that requires a full regex match."""
    compiled = re.compile(pattern)
    text = message or f"Value must match pattern: {pattern}"

    def _check(v):
        if v is not None and not compiled.fullmatch(str(v)):
            raise PydanticCustomError('pattern_mismatch', text)
        return v

    return _check


def pattern_rule(pattern: str, message: Optional[str] = None, required_message: Optional[str] = None) -> FieldRule:
    """
    Build a required string rule enforcing a regex.

    An empty string is reported with required_message when given, otherwise
    with the pattern message.
    """
    def _not_blank(v):
        if required_message and v == '':
            raise PydanticCustomError('required', required_message)
        return v

    rule = FieldRule.of(str, _not_blank, pattern_check(pattern, message))
    rule.name = 'pattern'
    return rule


def choice_rule(choices: Sequence[Any], message: Optional[str] = None) -> FieldRule:
    """Build a rule requiring the value to be one of choices."""
    allowed = list(choices)
    text = message or f"Value must be one of: {allowed}"

    def _check(v):
        if v not in allowed:
            raise PydanticCustomError('invalid_choice', text)
        return v

    rule = FieldRule.of(Any, _check)
    rule.name = 'choice'
    return rule


# ---------------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------------

POSTAL_CODE_PATTERN = r"\d{3}-\d{4}"
KATAKANA_PATTERN = r"[ァ-ヶー\s]+"
MOBILE_PATTERN = r"0[789]0\d{8}"


def postal_code_rule() -> FieldRule:
    """Postal code in 000-0000 form."""
    return pattern_rule(
        POSTAL_CODE_PATTERN,
        "Enter the postal code in 000-0000 format",
        required_message="Postal code is required",
    )


def katakana_rule(label: str = "This field") -> FieldRule:
    """Full-width katakana text, up to 20 characters."""
    def _check(v):
        if v == '':
            raise PydanticCustomError('required', f"{label} is required")
        if not re.fullmatch(KATAKANA_PATTERN, v):
            raise PydanticCustomError('pattern_mismatch', f"{label} must be written in katakana")
        if len(v) > 20:
            raise PydanticCustomError('katakana_too_long', f"{label} must be 20 characters or fewer")
        return v

    rule = FieldRule.of(str, _check)
    rule.name = 'katakana'
    return rule


def mobile_rule() -> FieldRule:
    """Japanese mobile number, 11 digits, hyphens ignored."""
    def _check(v):
        cleaned = v.replace('-', '')
        if not cleaned:
            raise PydanticCustomError('required', "Mobile number is required")
        if not re.fullmatch(MOBILE_PATTERN, cleaned):
            raise PydanticCustomError(
                'pattern_mismatch', "Enter an 11 digit mobile number (e.g. 09012345678)"
            )
        return v

    rule = FieldRule.of(str, _check)
    rule.name = 'mobile'
    return rule


def strong_password_rule(min_length: int = 8) -> FieldRule:
    """Password with upper and lower case letters and a digit."""
    def _check(v):
        if len(v) < min_length:
            raise PydanticCustomError('password_too_short', f"Password must be at least {min_length} characters")
        if not (re.search(r"[a-z]", v) and re.search(r"[A-Z]", v) and re.search(r"\d", v)):
            raise PydanticCustomError(
                'weak_password', "Password must contain upper and lower case letters and a number"
            )
        return v

    rule = FieldRule.of(str, _check)
    rule.name = 'strong_password'
    return rule


def terms_agreement_rule() -> FieldRule:
    """A switch or checkbox that must be turned on."""
    def _check(v):
        if v is not True:
            raise PydanticCustomError('must_agree', "You must agree to the terms")
        return v

    rule = FieldRule.of(bool, _check, default=False)
    rule.name = 'terms_agreement'
    return rule


_PRESETS: Dict[str, Callable[..., FieldRule]] = {
    'postal_code': postal_code_rule,
    'katakana': katakana_rule,
    'mobile': mobile_rule,
    'strong_password': strong_password_rule,
    'terms_agreement': terms_agreement_rule,
    'pattern': pattern_rule,
    'choice': choice_rule,
}


def available_rules() -> Iterable[str]:
    """Names accepted by get_rule."""
    return sorted(_PRESETS)


def get_rule(name: str, **kwargs) -> FieldRule:
    """
    Build a preset rule by name.

    Args:
        name: Preset name (see available_rules)
        **kwargs: Arguments forwarded to the preset factory

    Raises:
        KeyError: If no preset has that name
    """
    if name not in _PRESETS:
        raise KeyError(f"Unknown validation rule '{name}'. Available: {', '.join(available_rules())}")
    return _PRESETS[name](**kwargs)
