"""
Streamlit rendering for dynamic forms.

Turns the Control descriptions produced by a FormController into Streamlit
widgets. Every widget is keyed ``field_<name>`` and reports changes back into
the controller through its on_change callback, so visibility is recomputed on
every change rather than only when the form is submitted.
"""

import streamlit as st
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

from .address_lookup import AddressLookupClient
from .error_handler import ErrorHandler, ErrorType
from .field_renderer import Control, ControlKind
from .form_controller import FormController, SubmitResult, SubmitStatus
from .form_data_collector import array_frame, frame_to_list, from_widget_value, to_widget_value
from .models import AddressLookupSettings, FieldDescriptor
from .session_manager import SessionManager, widget_key

logger = logging.getLogger(__name__)

LOOKUP_BUTTON_TEXT = "Look up address"


def _file_types(accept: Optional[str]) -> Optional[List[str]]:
    """Extensions from an accept string such as '.pdf,.png,image/*'."""
    if not accept:
        return None
    extensions = [part.strip().lstrip('.') for part in accept.split(',') if part.strip().startswith('.')]
    return extensions or None


def _as_float(value: Any) -> Optional[float]:
    return float(value) if value is not None else None


class FormRenderer:
    """Renders a FormController as Streamlit widgets."""

    @staticmethod
    def render_form(
        controller: FormController,
        form_name: str,
        lookup_client: Optional[AddressLookupClient] = None
    ) -> Optional[SubmitResult]:
        """
        Render the whole form: fields, address lookup and buttons.

        Args:
            controller: Form controller holding the session's values
            form_name: Key used for the button widgets
            lookup_client: Client used when the form configures an address lookup

        Returns:
            SubmitResult when the submit button was pressed on this run, else None
        """
        config = controller.config
        if config.title:
            st.subheader(config.title)
        if config.description:
            st.caption(config.description)

        FormRenderer._render_fields(controller, controller.visible_fields, controller.render(), config.columns)

        settings = config.address_lookup
        if settings is not None and lookup_client is not None and settings.postal_field in controller.visible_names:
            st.button(
                LOOKUP_BUTTON_TEXT,
                key=f"{form_name}_lookup",
                on_click=FormRenderer._on_lookup,
                args=(controller, settings, lookup_client),
            )

        return FormRenderer._render_buttons(controller, form_name)

    @staticmethod
    def _render_fields(
        controller: FormController,
        descriptors: List[FieldDescriptor],
        controls: List[Control],
        columns: int = 1,
        parent: Tuple[str, ...] = ()
    ) -> None:
        """Render controls, laid out in a grid when columns > 1."""
        grid = st.columns(columns) if columns > 1 else None
        for index, (descriptor, control) in enumerate(zip(descriptors, controls)):
            if grid is not None:
                with grid[index % columns]:
                    FormRenderer._render_control(controller, descriptor, control, parent)
            else:
                FormRenderer._render_control(controller, descriptor, control, parent)

    @staticmethod
    def _render_control(
        controller: FormController,
        descriptor: FieldDescriptor,
        control: Control,
        parent: Tuple[str, ...] = ()
    ) -> None:
        """Render one control with its error and help decorations."""
        key = widget_key("__".join(parent + (control.name,)))
        renderer = _WIDGETS.get(control.kind, FormRenderer._render_unknown)

        try:
            renderer(controller, descriptor, control, key, parent)
        except Exception as e:
            ErrorHandler.handle_error(e, f"rendering field '{control.name}'", ErrorType.RENDER)
            return

        if control.error:
            st.error(control.error)
        elif control.show_help:
            st.caption(control.help_text)

        if not parent:
            lookup_error = SessionManager.get_lookup_error(control.name)
            if lookup_error:
                st.warning(lookup_error)

    @staticmethod
    def _label(control: Control) -> str:
        return f"{control.label} *" if control.required else control.label

    @staticmethod
    def _seed(key: str, descriptor: FieldDescriptor, value: Any) -> None:
        """Initialize the widget's session value from the controller once."""
        if key not in st.session_state:
            st.session_state[key] = to_widget_value(descriptor, value)

    @staticmethod
    def _apply(controller: FormController, descriptor: FieldDescriptor, value: Any, parent: Tuple[str, ...]) -> None:
        """Write a converted widget value into the controller."""
        if not parent:
            controller.set_value(descriptor.name, value)
            return
        root = dict(controller.get_value(parent[0]) or {})
        node = root
        for part in parent[1:]:
            child = dict(node.get(part) or {})
            node[part] = child
            node = child
        node[descriptor.name] = value
        controller.set_value(parent[0], root)

    @staticmethod
    def _on_widget_change(controller: FormController, descriptor: FieldDescriptor, key: str, parent: Tuple[str, ...]) -> None:
        raw = st.session_state.get(key)
        FormRenderer._apply(controller, descriptor, from_widget_value(descriptor, raw), parent)

    @staticmethod
    def _callback_kwargs(controller: FormController, descriptor: FieldDescriptor, key: str, parent: Tuple[str, ...]) -> Dict[str, Any]:
        return {
            'key': key,
            'on_change': FormRenderer._on_widget_change,
            'args': (controller, descriptor, key, parent),
        }

    @staticmethod
    def _render_text_input(controller, descriptor, control, key, parent):
        FormRenderer._seed(key, descriptor, control.value)
        st.text_input(
            FormRenderer._label(control),
            max_chars=control.props.get('max_chars'),
            type="password" if control.props.get('input_type') == 'password' else "default",
            placeholder=control.placeholder,
            disabled=control.disabled,
            **FormRenderer._callback_kwargs(controller, descriptor, key, parent)
        )

    @staticmethod
    def _render_text_area(controller, descriptor, control, key, parent):
        FormRenderer._seed(key, descriptor, control.value)
        st.text_area(
            FormRenderer._label(control),
            height=max(68, control.props.get('rows', 4) * 24 + 20),
            max_chars=control.props.get('max_chars'),
            placeholder=control.placeholder,
            disabled=control.disabled,
            **FormRenderer._callback_kwargs(controller, descriptor, key, parent)
        )

    @staticmethod
    def _render_number_input(controller, descriptor, control, key, parent):
        FormRenderer._seed(key, descriptor, control.value)
        st.number_input(
            FormRenderer._label(control),
            min_value=_as_float(control.props.get('min')),
            max_value=_as_float(control.props.get('max')),
            step=_as_float(control.props.get('step')),
            placeholder=control.placeholder,
            disabled=control.disabled,
            **FormRenderer._callback_kwargs(controller, descriptor, key, parent)
        )

    @staticmethod
    def _render_date_input(controller, descriptor, control, key, parent):
        FormRenderer._seed(key, descriptor, control.value)
        st.date_input(
            FormRenderer._label(control),
            disabled=control.disabled,
            **FormRenderer._callback_kwargs(controller, descriptor, key, parent)
        )

    @staticmethod
    def _option_labels(control: Control) -> Dict[str, str]:
        return {str(option['value']): option['label'] for option in control.props.get('options', [])}

    @staticmethod
    def _render_selectbox(controller, descriptor, control, key, parent):
        FormRenderer._seed(key, descriptor, control.value)
        labels = FormRenderer._option_labels(control)
        empty_label = control.props.get('empty_label', '')
        st.selectbox(
            FormRenderer._label(control),
            options=[None] + list(labels),
            format_func=lambda v: empty_label if v is None else labels.get(v, v),
            disabled=control.disabled,
            **FormRenderer._callback_kwargs(controller, descriptor, key, parent)
        )

    @staticmethod
    def _render_radio(controller, descriptor, control, key, parent):
        FormRenderer._seed(key, descriptor, control.value)
        labels = FormRenderer._option_labels(control)
        st.radio(
            FormRenderer._label(control),
            options=list(labels),
            format_func=lambda v: labels.get(v, v),
            disabled=control.disabled,
            **FormRenderer._callback_kwargs(controller, descriptor, key, parent)
        )

    @staticmethod
    def _render_checkbox(controller, descriptor, control, key, parent):
        FormRenderer._seed(key, descriptor, control.value)
        st.checkbox(
            FormRenderer._label(control),
            disabled=control.disabled,
            **FormRenderer._callback_kwargs(controller, descriptor, key, parent)
        )

    @staticmethod
    def _on_checkbox_group_change(controller, descriptor, option_keys, parent):
        selected = [value for value, option_key in option_keys.items() if st.session_state.get(option_key)]
        FormRenderer._apply(controller, descriptor, selected, parent)

    @staticmethod
    def _render_checkbox_group(controller, descriptor, control, key, parent):
        """One checkbox per option; the bound value is the list of checked option values."""
        st.markdown(f"**{FormRenderer._label(control)}**")
        selected = set(to_widget_value(descriptor, control.value))
        options = control.props.get('options', [])
        option_keys = {str(option['value']): f"{key}__{index}" for index, option in enumerate(options)}

        for option in options:
            value = str(option['value'])
            option_key = option_keys[value]
            if option_key not in st.session_state:
                st.session_state[option_key] = value in selected
            st.checkbox(
                option['label'],
                key=option_key,
                disabled=option['disabled'],
                on_change=FormRenderer._on_checkbox_group_change,
                args=(controller, descriptor, option_keys, parent),
            )

    @staticmethod
    def _render_toggle(controller, descriptor, control, key, parent):
        FormRenderer._seed(key, descriptor, control.value)
        st.toggle(
            FormRenderer._label(control),
            disabled=control.disabled,
            **FormRenderer._callback_kwargs(controller, descriptor, key, parent)
        )

    @staticmethod
    def _render_file_uploader(controller, descriptor, control, key, parent):
        # File uploader values cannot be set through session state
        st.file_uploader(
            FormRenderer._label(control),
            type=_file_types(control.props.get('accept')),
            accept_multiple_files=bool(control.props.get('multiple')),
            disabled=control.disabled,
            **FormRenderer._callback_kwargs(controller, descriptor, key, parent)
        )

    @staticmethod
    def _render_group(controller, descriptor, control, key, parent):
        """Nested fields bound to one dict value."""
        group_value = control.value if isinstance(control.value, dict) else {}
        children = descriptor.visible_children(group_value)
        with st.container(border=True):
            st.markdown(f"**{FormRenderer._label(control)}**")
            FormRenderer._render_fields(controller, children, list(control.children), 1, parent + (descriptor.name,))

    @staticmethod
    def _render_array_editor(controller, descriptor, control, key, parent):
        """Editable single-column table; empty rows are dropped."""
        st.markdown(f"**{FormRenderer._label(control)}**")
        edited = st.data_editor(
            array_frame(descriptor, control.value),
            num_rows="dynamic",
            hide_index=True,
            width="stretch",
            disabled=control.disabled,
            key=key,
        )
        items = frame_to_list(descriptor, edited)
        if items != list(control.value or []):
            FormRenderer._apply(controller, descriptor, items, parent)

    @staticmethod
    def _render_unknown(controller, descriptor, control, key, parent):
        st.warning(control.message or f"Unknown field type: {descriptor.type}")

    @staticmethod
    def _on_lookup(controller: FormController, settings: AddressLookupSettings, client: AddressLookupClient) -> None:
        """Fill the address fields from the postal code, or record a field-scoped error."""
        postal_code = controller.get_value(settings.postal_field) or ''
        result = client.lookup_sync(postal_code)
        if not result.found:
            SessionManager.set_lookup_error(settings.postal_field, result.error)
            return

        updates = {settings.postal_field: result.postal_code}
        for part, field_name in settings.target_fields.items():
            updates[field_name] = result.address.as_values()[part]
        controller.set_values(updates)
        SessionManager.set_lookup_error(settings.postal_field, None)
        SessionManager.clear_widget_state(list(updates))

    @staticmethod
    def _on_reset(controller: FormController) -> None:
        controller.reset()
        SessionManager.clear_widget_state()
        SessionManager.clear_last_submission()

    @staticmethod
    def _render_buttons(controller: FormController, form_name: str) -> Optional[SubmitResult]:
        """Render submit and reset buttons and run the submit when clicked."""
        config = controller.config
        button_columns = st.columns([1, 1, 4]) if config.show_reset else [st.container()]

        with button_columns[0]:
            submitted = st.button(
                controller.submit_label,
                key=f"{form_name}_submit",
                type="primary",
                disabled=controller.is_submitting,
            )

        if config.show_reset:
            with button_columns[1]:
                st.button(
                    config.reset_text,
                    key=f"{form_name}_reset",
                    on_click=FormRenderer._on_reset,
                    args=(controller,),
                )

        if not submitted:
            return None

        result = controller.submit_sync()
        FormRenderer.display_result(controller, result)
        return result

    @staticmethod
    def display_result(controller: FormController, result: SubmitResult) -> None:
        """Show the outcome of a submit."""
        if result.status == SubmitStatus.SUCCESS:
            st.success("✅ Form submitted successfully")
        elif result.status == SubmitStatus.INVALID:
            labels = {f.name: f.display_label for f in controller.fields}
            ErrorHandler.display_field_errors(result.errors, labels)
        elif result.status == SubmitStatus.FAILED:
            st.error(result.message)
        else:
            st.warning(result.message)


_WIDGETS: Dict[str, Callable[..., None]] = {
    ControlKind.TEXT_INPUT: FormRenderer._render_text_input,
    ControlKind.TEXT_AREA: FormRenderer._render_text_area,
    ControlKind.NUMBER_INPUT: FormRenderer._render_number_input,
    ControlKind.DATE_INPUT: FormRenderer._render_date_input,
    ControlKind.SELECTBOX: FormRenderer._render_selectbox,
    ControlKind.RADIO: FormRenderer._render_radio,
    ControlKind.CHECKBOX: FormRenderer._render_checkbox,
    ControlKind.CHECKBOX_GROUP: FormRenderer._render_checkbox_group,
    ControlKind.TOGGLE: FormRenderer._render_toggle,
    ControlKind.FILE_UPLOADER: FormRenderer._render_file_uploader,
    ControlKind.GROUP: FormRenderer._render_group,
    ControlKind.ARRAY_EDITOR: FormRenderer._render_array_editor,
    ControlKind.UNKNOWN: FormRenderer._render_unknown,
}


def render_form(controller: FormController, form_name: str, lookup_client: Optional[AddressLookupClient] = None) -> Optional[SubmitResult]:
    """Convenience function to render a form."""
    return FormRenderer.render_form(controller, form_name, lookup_client)
