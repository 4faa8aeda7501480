"""
Session state management for the dynaform Streamlit app.
Keeps one FormController per form, the last submission and lookup errors in
st.session_state so they survive Streamlit reruns.
"""

import streamlit as st
from typing import Any, Callable, Dict, Iterable, Optional
from datetime import datetime
import logging

from .form_controller import FormController, SubmitResult

logger = logging.getLogger(__name__)

WIDGET_KEY_PREFIX = "field_"


def widget_key(field_name: str) -> str:
    """Session-state key of the widget bound to a field."""
    return f"{WIDGET_KEY_PREFIX}{field_name}"


class SessionManager:
    """Manages Streamlit session state for dynamic forms."""

    @staticmethod
    def initialize():
        """Initialize session state variables; existing keys are left alone."""
        defaults = {
            'current_form': None,
            'controllers': {},
            'last_submission': None,
            'lookup_errors': {},
            'session_id': None,
        }

        for key, default_value in defaults.items():
            if key not in st.session_state:
                st.session_state[key] = default_value

        if not st.session_state['session_id']:
            st.session_state['session_id'] = f"session_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
            logger.info(f"Session initialized: {st.session_state['session_id']}")

    @staticmethod
    def get_current_form() -> Optional[str]:
        """Get the name of the form being shown."""
        return st.session_state.get('current_form')

    @staticmethod
    def set_current_form(form_name: Optional[str]):
        """Switch forms; lookup errors and the last submission belong to the old form."""
        old_form = st.session_state.get('current_form')
        if old_form != form_name:
            logger.info(f"Form transition: {old_form} -> {form_name}")
            st.session_state['current_form'] = form_name
            st.session_state['lookup_errors'] = {}
            st.session_state['last_submission'] = None
            SessionManager.clear_widget_state()

    @staticmethod
    def get_controller(form_name: str, factory: Callable[[], FormController]) -> FormController:
        """
        Get the controller for a form, creating it on first use.

        Args:
            form_name: Key of the form
            factory: Builds the controller when none is stored yet

        Returns:
            The session's FormController for this form
        """
        controllers = st.session_state.get('controllers')
        if controllers is None:
            controllers = {}
            st.session_state['controllers'] = controllers
        if form_name not in controllers:
            controllers[form_name] = factory()
            logger.info(f"Created controller for form '{form_name}'")
        return controllers[form_name]

    @staticmethod
    def clear_widget_state(field_names: Optional[Iterable[str]] = None):
        """
        Remove widget values so widgets re-read the controller on the next run.

        Args:
            field_names: Fields whose widgets (including group children and
                checkbox options) are cleared; all field widgets when omitted
        """
        roots = None if field_names is None else [widget_key(name) for name in field_names]

        def _is_stale(key) -> bool:
            if not isinstance(key, str):
                return False
            if roots is None:
                return key.startswith(WIDGET_KEY_PREFIX)
            return any(key == root or key.startswith(f"{root}__") for root in roots)

        stale = [key for key in list(st.session_state.keys()) if _is_stale(key)]
        for key in stale:
            del st.session_state[key]
        if stale:
            logger.debug(f"Cleared {len(stale)} widget values")

    @staticmethod
    def get_last_submission() -> Optional[Dict[str, Any]]:
        return st.session_state.get('last_submission')

    @staticmethod
    def set_last_submission(form_name: str, result: SubmitResult):
        """Record the outcome of the latest submit for display after rerun."""
        st.session_state['last_submission'] = {
            'form': form_name,
            'status': result.status.value,
            'values': dict(result.values),
            'errors': dict(result.errors),
            'message': result.message,
            'timestamp': datetime.now().isoformat(),
        }

    @staticmethod
    def clear_last_submission():
        st.session_state['last_submission'] = None

    @staticmethod
    def get_lookup_error(field_name: str) -> Optional[str]:
        return (st.session_state.get('lookup_errors') or {}).get(field_name)

    @staticmethod
    def set_lookup_error(field_name: str, message: Optional[str]):
        """Set or clear the lookup error shown under a field."""
        errors = dict(st.session_state.get('lookup_errors') or {})
        if message:
            errors[field_name] = message
        else:
            errors.pop(field_name, None)
        st.session_state['lookup_errors'] = errors

    @staticmethod
    def get_session_id() -> Optional[str]:
        return st.session_state.get('session_id')
