"""
Form controller for dynamic forms.

Owns the value map of one form session, recomputes field visibility after
every change, validates the visible fields on submit and drives the external
submit and change callbacks.

State machine per session::

    idle -> validating -> submitting -> idle
                       -> idle (with errors)

No state is terminal. While a submit is in flight further submits are
rejected with SubmitStatus.BUSY.
"""

import asyncio
import copy
import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from .diff_utils import calculate_changes
from .error_handler import ErrorHandler, ErrorType
from .field_renderer import Control, render_fields
from .models import FieldDescriptor, FormConfig, ValueMap
from .schema_builder import DerivedValidator, derive_validator

logger = logging.getLogger(__name__)

SubmitCallback = Callable[[ValueMap], Any]
ChangeCallback = Callable[[ValueMap], None]

SUBMITTING_TEXT = "Submitting..."


class FormState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    SUBMITTING = "submitting"


class SubmitStatus(str, Enum):
    SUCCESS = "success"
    INVALID = "invalid"
    FAILED = "failed"
    BUSY = "busy"


@dataclass
class SubmitResult:
    """
    Outcome of one submit attempt.

    Attributes:
        status: How the attempt ended
        values: Visible values that were validated (and passed to the callback)
        errors: Per-field messages when status is INVALID
        outcome: Whatever the submit callback returned
        message: User-friendly message when status is FAILED or BUSY
    """
    status: SubmitStatus
    values: ValueMap = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)
    outcome: Any = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == SubmitStatus.SUCCESS


class FormController:
    """Interactive session over one form configuration."""

    def __init__(
        self,
        config: Union[FormConfig, Iterable[FieldDescriptor]],
        on_submit: Optional[SubmitCallback] = None,
        on_change: Optional[ChangeCallback] = None,
        model_name: str = "DynamicForm",
        submit_timeout: Optional[float] = None
    ):
        """
        Args:
            config: FormConfig, or a plain list of field descriptors
            on_submit: Called with the visible values after successful validation;
                may be a coroutine function
            on_change: Called with a copy of the full value map after every change
            model_name: Name of the derived Pydantic model
            submit_timeout: Seconds to wait for the submit callback; overrides
                the config value. None waits indefinitely.
        """
        if not isinstance(config, FormConfig):
            config = FormConfig(fields=list(config))
        self.config = config
        self.model_name = model_name
        self.on_submit = on_submit
        self.on_change = on_change
        self.submit_timeout = submit_timeout if submit_timeout is not None else config.submit_timeout

        self._validator = derive_validator(config.fields, model_name)
        self._defaults = self._seed_defaults(config.fields)
        self._values: ValueMap = copy.deepcopy(self._defaults)
        self._errors: Dict[str, str] = {}
        self._state = FormState.IDLE
        self._submit_attempted = False
        self._last_submit_error: Optional[Exception] = None
        self._visible: List[FieldDescriptor] = []
        self._recompute_visibility()

    @staticmethod
    def _seed_defaults(fields: Iterable[FieldDescriptor]) -> ValueMap:
        """Defaults from each descriptor that supplied one; others stay absent."""
        defaults = {}
        for descriptor in fields:
            if descriptor.has_default:
                defaults[descriptor.name] = copy.deepcopy(descriptor.default_value)
        return defaults

    @property
    def fields(self) -> List[FieldDescriptor]:
        return list(self.config.fields)

    @property
    def validator(self) -> DerivedValidator:
        return self._validator

    @property
    def defaults(self) -> ValueMap:
        return copy.deepcopy(self._defaults)

    @property
    def values(self) -> ValueMap:
        return dict(self._values)

    @property
    def errors(self) -> Dict[str, str]:
        return dict(self._errors)

    @property
    def state(self) -> FormState:
        return self._state

    @property
    def is_submitting(self) -> bool:
        return self._state == FormState.SUBMITTING

    @property
    def submit_label(self) -> str:
        return SUBMITTING_TEXT if self.is_submitting else self.config.submit_text

    @property
    def last_submit_error(self) -> Optional[Exception]:
        return self._last_submit_error

    @property
    def visible_fields(self) -> List[FieldDescriptor]:
        return list(self._visible)

    @property
    def visible_names(self) -> List[str]:
        return [descriptor.name for descriptor in self._visible]

    def get_value(self, name: str, default: Any = None) -> Any:
        return self._values.get(name, default)

    def _recompute_visibility(self) -> None:
        """Re-evaluate every visibility predicate against the whole value map."""
        snapshot = dict(self._values)
        self._visible = [descriptor for descriptor in self.config.fields if descriptor.is_visible(snapshot)]

    def _after_change(self) -> None:
        self._recompute_visibility()
        if self._submit_attempted:
            # Errors follow the values once the user has tried to submit
            self._errors = self._validator.validate(self._values, self.visible_names)
        if self.on_change is not None:
            self.on_change(dict(self._values))

    def set_value(self, name: str, value: Any) -> None:
        """
        Update one field and notify the change callback.

        Args:
            name: Field name
            value: New bound value
        """
        if name not in self._validator.keys:
            logger.debug(f"Setting value for undeclared field '{name}'")
        self._values[name] = value
        self._after_change()

    def set_values(self, values: Dict[str, Any]) -> None:
        """Apply several updates in order, as if each were its own change event."""
        for name, value in values.items():
            self.set_value(name, value)

    def reset(self) -> None:
        """Restore the seeded defaults and clear errors."""
        self._values = copy.deepcopy(self._defaults)
        self._errors = {}
        self._submit_attempted = False
        logger.info(f"Form '{self.model_name}' reset to defaults")
        self._after_change()

    def set_fields(self, fields: Iterable[FieldDescriptor]) -> bool:
        """
        Replace the field list, re-deriving the validator only if it changed.

        Values of fields that survive the change are kept; new fields are seeded
        from their defaults.

        Returns:
            True if the field list changed
        """
        fields = list(fields)
        if fields == list(self.config.fields):
            return False

        self.config = self.config.model_copy(update={'fields': fields})
        self._validator = derive_validator(fields, self.model_name)
        self._defaults = self._seed_defaults(fields)

        names = {descriptor.name for descriptor in fields}
        values = copy.deepcopy(self._defaults)
        values.update({k: v for k, v in self._values.items() if k in names})
        self._values = values
        self._errors = {}
        logger.info(f"Field list of '{self.model_name}' changed, validator re-derived")
        self._recompute_visibility()
        return True

    def changed_fields(self) -> List[str]:
        """Names of fields whose current value differs from the seeded default."""
        return list(calculate_changes(self._defaults, self._values))

    @property
    def is_dirty(self) -> bool:
        return bool(self.changed_fields())

    def validate(self) -> Dict[str, str]:
        """Validate the currently visible fields and store the errors."""
        self._recompute_visibility()
        self._errors = self._validator.validate(self._values, self.visible_names)
        return dict(self._errors)

    def visible_values(self) -> ValueMap:
        """The value map restricted to currently visible fields."""
        return {
            descriptor.name: descriptor.prune_hidden(self._values[descriptor.name])
            for descriptor in self._visible
            if descriptor.name in self._values
        }

    async def _invoke_submit(self, values: ValueMap) -> Any:
        outcome = self.on_submit(values)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        return outcome

    async def submit(self) -> SubmitResult:
        """
        Validate the visible fields and, if valid, call the submit callback.

        Visibility is evaluated fresh at submit time, so a hidden field is
        skipped even when it is required. Failures of the callback are
        reported and never propagate; the controller always ends up idle.

        Returns:
            SubmitResult describing the outcome
        """
        if self._state != FormState.IDLE:
            logger.warning(f"Submit of '{self.model_name}' rejected: form is {self._state.value}")
            return SubmitResult(SubmitStatus.BUSY, message="The form is already being submitted.")

        self._state = FormState.VALIDATING
        self._submit_attempted = True
        logger.info(f"Submitting form '{self.model_name}'")

        try:
            errors = self.validate()
            values = self.visible_values()
        except Exception as e:
            # A raising override validator or visibility predicate
            self._state = FormState.IDLE
            self._last_submit_error = e
            message = ErrorHandler.report(e, f"validation of '{self.model_name}'", ErrorType.VALIDATION)
            return SubmitResult(SubmitStatus.FAILED, message=message)

        if errors:
            self._state = FormState.IDLE
            logger.info(f"Validation failed for '{self.model_name}': {sorted(errors)}")
            return SubmitResult(SubmitStatus.INVALID, values=values, errors=errors)

        self._state = FormState.SUBMITTING
        self._last_submit_error = None
        try:
            if self.on_submit is None:
                outcome = None
            elif self.submit_timeout is not None:
                outcome = await asyncio.wait_for(self._invoke_submit(values), timeout=self.submit_timeout)
            else:
                outcome = await self._invoke_submit(values)
        except asyncio.TimeoutError as e:
            error = TimeoutError(f"Submit callback did not finish within {self.submit_timeout}s")
            error.__cause__ = e
            return self._submit_failed(error, values)
        except Exception as e:
            return self._submit_failed(e, values)
        finally:
            self._state = FormState.IDLE

        logger.info(f"Form '{self.model_name}' submitted successfully")
        return SubmitResult(SubmitStatus.SUCCESS, values=values, outcome=outcome)

    def _submit_failed(self, error: Exception, values: ValueMap) -> SubmitResult:
        self._last_submit_error = error
        message = ErrorHandler.report(error, f"submit of '{self.model_name}'", ErrorType.SUBMISSION)
        return SubmitResult(SubmitStatus.FAILED, values=values, message=message)

    def submit_sync(self) -> SubmitResult:
        """Run submit() to completion from synchronous code."""
        return asyncio.run(self.submit())

    def render(self) -> List[Control]:
        """One control per visible field, bound to current values and errors."""
        return render_fields(self._visible, self._values, self._errors)
