"""
Main Streamlit application for dynaform.
Renders the YAML form definitions under the configured forms directory as
interactive, validated forms.
"""

import streamlit as st
import os
from pathlib import Path
import logging
from typing import Any, Dict

from dynaform.address_lookup import AddressLookupClient
from dynaform.config_loader import configure_logging, get_config_value, load_config, validate_config
from dynaform.error_handler import ErrorHandler, ErrorType
from dynaform.exceptions import FormDefinitionError
from dynaform.form_controller import FormController
from dynaform.form_loader import get_form_info, list_forms, load_form
from dynaform.models import FormConfig
from dynaform.session_manager import SessionManager
from dynaform.streamlit_view import FormRenderer

# Load configuration early and configure logging from it
config = load_config()
configure_logging(config)
logger = logging.getLogger(__name__)
logger.info(f"Starting app version: {get_config_value('app', 'version', 'Unknown', config)}")

st.set_page_config(
    page_title=get_config_value('ui', 'page_title', 'Dynamic Forms', config),
    page_icon="📝",
    layout=get_config_value('ui', 'layout', 'centered', config),
)

FORMS_DIR = Path(get_config_value('forms', 'directory', 'forms', config))


@st.cache_resource(show_spinner=False)
def _load_form_with_mtime(path: str, mtime: float) -> FormConfig:
    """Load a form definition with mtime as cache key for hot-reload."""
    return load_form(path)


def get_form(form_name: str) -> FormConfig:
    """Load a form from the forms directory, reloading when the file changes."""
    path = FORMS_DIR / form_name
    return _load_form_with_mtime(str(path), os.path.getmtime(path))


def handle_submit(values: Dict[str, Any]) -> Dict[str, Any]:
    """Submit callback for the demo app: log the values and echo them back."""
    logger.info(f"Received submission with fields: {sorted(values)}")
    return values


def build_controller(form_name: str, form: FormConfig) -> FormController:
    """Create the session's controller for a form."""
    return FormController(
        form,
        on_submit=handle_submit,
        model_name=Path(form_name).stem.title().replace('_', ''),
        submit_timeout=get_config_value('submission', 'timeout', None, config),
    )


def render_sidebar(form_names):
    """Render form selection and session status."""
    with st.sidebar:
        st.header("Forms")

        current = SessionManager.get_current_form()
        if current not in form_names:
            default_form = get_config_value('forms', 'default_form', None, config)
            current = default_form if default_form in form_names else form_names[0]

        selected = st.radio(
            "Select form:",
            options=form_names,
            format_func=lambda name: (get_form_info(FORMS_DIR / name) or {}).get('title', name),
            index=form_names.index(current),
        )
        SessionManager.set_current_form(selected)

        st.divider()
        st.caption(f"Session: {SessionManager.get_session_id()}")

    return selected


def render_status(controller: FormController):
    """Show live values, dirty fields and the last submission."""
    with st.expander("📋 Current values", expanded=False):
        st.json(controller.values)
        changed = controller.changed_fields()
        if changed:
            st.caption(f"Changed from defaults: {', '.join(changed)}")
        else:
            st.caption("No changes from defaults")

    last_submission = SessionManager.get_last_submission()
    if last_submission and last_submission.get('status') == 'success':
        with st.expander("📨 Last submission", expanded=True):
            st.caption(last_submission['timestamp'])
            st.json(last_submission['values'])


def main():
    """Main application entry point."""
    SessionManager.initialize()

    if not validate_config(config):
        st.warning("⚠️ Some configuration settings are invalid, using defaults where necessary.")

    form_names = list_forms(FORMS_DIR)
    if not form_names:
        st.error(f"No form definitions found in '{FORMS_DIR}'.")
        st.stop()

    form_name = render_sidebar(form_names)

    try:
        form = get_form(form_name)
    except FormDefinitionError as e:
        ErrorHandler.handle_error(e, f"loading form '{form_name}'", ErrorType.CONFIGURATION, show_details=True)
        st.stop()

    controller = SessionManager.get_controller(form_name, lambda: build_controller(form_name, form))
    if controller.set_fields(form.fields):
        SessionManager.clear_widget_state()

    lookup_client = AddressLookupClient.from_config(config) if form.address_lookup else None
    result = FormRenderer.render_form(controller, form_name, lookup_client)
    if result is not None:
        SessionManager.set_last_submission(form_name, result)

    render_status(controller)


if __name__ == "__main__":
    main()
