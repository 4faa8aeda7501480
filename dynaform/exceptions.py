"""
Exception classes for form definition and configuration errors.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union


class DynaformError(Exception):
    """
    Base exception for dynaform errors.

    Attributes:
        message: Error message
        context: Additional context information
        recovery_suggestions: List of suggested recovery actions
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None,
                 recovery_suggestions: Optional[List[str]] = None):
        self.message = message
        self.context = context or {}
        self.recovery_suggestions = recovery_suggestions or []
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


class FormDefinitionError(DynaformError):
    """
    Raised when a form definition file cannot be turned into a FormConfig.

    This covers unreadable files, YAML syntax errors, a top level that is not a
    mapping, a missing ``fields`` list and unknown validation presets.
    """

    def __init__(self, source: Union[str, Path], reason: str,
                 original_error: Optional[Exception] = None):
        self.source = str(source)
        self.reason = reason
        self.original_error = original_error

        context = {'source': self.source}
        if original_error is not None:
            context['original_error_type'] = type(original_error).__name__
            context['original_error_message'] = str(original_error)

        recovery_suggestions = [
            "Check that the form definition is a YAML mapping with a 'fields' list",
            "Verify YAML syntax is correct",
            "Check that every 'validation.rule' names a known rule preset",
        ]

        super().__init__(f"Invalid form definition {self.source}: {reason}", context, recovery_suggestions)
