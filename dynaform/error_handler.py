"""
Error handling utilities for dynamic forms.
Classifies errors, logs them, and turns them into user-friendly messages for
the Streamlit UI.
"""

import streamlit as st
import logging
import traceback
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class ErrorType:
    """Error type constants."""
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    SUBMISSION = "submission"
    RENDER = "render"
    SYSTEM = "system"


class ErrorHandler:
    """Error reporting and display for dynamic forms."""

    @staticmethod
    def report(error: Exception, context: str, error_type: str = ErrorType.SYSTEM) -> str:
        """
        Log an error and return the message to show the user.

        Does not touch the UI, so it is safe to call from non-UI code.

        Args:
            error: The exception that occurred
            context: Context where the error occurred
            error_type: Type of error (from ErrorType constants)

        Returns:
            User-friendly message
        """
        logger.error(f"Error in {context}: {str(error)}", exc_info=error)
        return ErrorHandler._get_user_friendly_message(error, error_type)

    @staticmethod
    def handle_error(
        error: Exception,
        context: str,
        error_type: str = ErrorType.SYSTEM,
        user_message: Optional[str] = None,
        show_details: bool = False
    ) -> None:
        """
        Report an error and display it in the UI.

        Args:
            error: The exception that occurred
            context: Context where the error occurred
            error_type: Type of error (from ErrorType constants)
            user_message: Custom user-friendly message
            show_details: Whether to show technical details
        """
        friendly = ErrorHandler.report(error, context, error_type)
        ErrorHandler._display_error(user_message or friendly, error, context, show_details)

    @staticmethod
    def _get_user_friendly_message(error: Exception, error_type: str) -> str:
        """Generate user-friendly error messages based on error type."""
        error_messages = {
            ErrorType.CONFIGURATION: {
                FileNotFoundError: "📋 The form definition could not be found.",
                KeyError: "📋 A required form setting is missing. Please check the form definition.",
                ValueError: "📋 The form definition contains invalid values.",
                "default": "📋 The form configuration could not be loaded."
            },

            ErrorType.VALIDATION: {
                ValueError: "✅ Some fields are not valid. Please check your input and try again.",
                TypeError: "✅ A field has the wrong kind of value. Please check your input.",
                "default": "✅ Validation error occurred. Please review your input and try again."
            },

            ErrorType.SUBMISSION: {
                TimeoutError: "⏱️ Submitting the form took too long. Please try again.",
                ConnectionError: "🌐 The form could not be sent. Please check your connection and try again.",
                "default": "📨 The form could not be submitted. Please try again."
            },

            ErrorType.RENDER: {
                "default": "🧩 This field could not be displayed."
            },

            ErrorType.SYSTEM: {
                MemoryError: "💻 System is running low on memory. Please try again or contact support.",
                ImportError: "💻 Required system component is missing. Please contact support.",
                "default": "💻 System error occurred. Please try again or contact support."
            }
        }

        error_type_messages = error_messages.get(error_type, error_messages[ErrorType.SYSTEM])

        for exception_type, message in error_type_messages.items():
            if exception_type != "default" and isinstance(error, exception_type):
                return message

        return error_type_messages.get("default", "An unexpected error occurred.")

    @staticmethod
    def _display_error(
        user_message: str,
        error: Exception,
        context: str,
        show_details: bool = False
    ) -> None:
        """Display error message to user with optional technical details."""
        st.error(user_message)

        suggestions = getattr(error, 'recovery_suggestions', None)
        if suggestions:
            st.info("💡 **Troubleshooting:**")
            for suggestion in suggestions:
                st.info(f"• {suggestion}")

        if show_details:
            with st.expander("🔍 Technical Details"):
                st.write(f"**Error Type:** {type(error).__name__}")
                st.write(f"**Context:** {context}")
                st.write(f"**Error Message:** {str(error)}")
                st.code(''.join(traceback.format_exception(type(error), error, error.__traceback__)))

    @staticmethod
    def display_field_errors(errors: Dict[str, str], labels: Optional[Dict[str, str]] = None) -> None:
        """Show a summary of per-field validation errors."""
        if not errors:
            return
        labels = labels or {}
        st.error("Please fix the following errors:")
        for name, message in errors.items():
            st.error(f"  • {labels.get(name, name)}: {message}")
