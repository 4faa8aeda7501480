"""
Unit tests for form_controller module.
"""

import asyncio
from unittest.mock import MagicMock, patch

import pytest

from dynaform.form_controller import (
    FormController,
    FormState,
    SUBMITTING_TEXT,
    SubmitStatus,
)
from dynaform.models import FieldDescriptor, FormConfig
from dynaform.rules import predicate_rule


def _field(**kwargs) -> FieldDescriptor:
    return FieldDescriptor.model_validate(kwargs)


@pytest.fixture
def country_fields():
    """The country / otherCountry pair with a visibility predicate."""
    return [
        _field(name="country", type="select", required=True, options=["jp", "other"], default_value="jp"),
        _field(name="otherCountry", type="text", required=True,
               show_when=lambda values: values.get("country") == "other"),
    ]


@pytest.fixture
def contact_config():
    return FormConfig(
        fields=[
            _field(name="name", type="text", required=True, default_value=""),
            _field(name="email", type="email", required=True, default_value=""),
            _field(name="newsletter", type="switch", default_value=False),
            _field(name="tags", type="checkbox", multiple=True, options=["a", "b"], default_value=["a"]),
        ],
        submit_text="Send",
    )


class TestVisibility:
    """Test visibility recomputation."""

    def test_fields_without_predicate_always_visible(self, contact_config):
        """Test fields without show_when are visible for any values."""
        controller = FormController(contact_config)

        assert controller.visible_names == ["name", "email", "newsletter", "tags"]

    def test_visibility_follows_predicate(self, country_fields):
        """Test a field is visible exactly when its predicate holds."""
        controller = FormController(country_fields)
        assert controller.visible_names == ["country"]

        controller.set_value("country", "other")
        assert controller.visible_names == ["country", "otherCountry"]

        controller.set_value("country", "jp")
        assert controller.visible_names == ["country"]

    def test_visibility_consistency_across_value_maps(self, country_fields):
        """Test visible set membership matches the predicate for many value maps."""
        controller = FormController(country_fields)
        predicate = country_fields[1].show_when

        for country in ["jp", "other", "", None, "OTHER"]:
            controller.set_value("country", country)
            expected = predicate(controller.values)
            assert ("otherCountry" in controller.visible_names) == expected

    def test_predicate_sees_whole_value_map(self):
        """Test predicates receive every value, including hidden fields."""
        seen = []

        def predicate(values):
            seen.append(dict(values))
            return True

        controller = FormController([
            _field(name="a", default_value=1),
            _field(name="b", show_when=predicate),
        ])
        controller.set_value("a", 2)

        assert seen[-1] == {"a": 2}

    def test_render_only_visible_fields(self, country_fields):
        """Test render returns one control per visible field."""
        controller = FormController(country_fields)

        assert [c.name for c in controller.render()] == ["country"]


class TestValues:
    """Test value updates, change callbacks and reset."""

    def test_defaults_seeded(self, contact_config):
        """Test the value map starts from the declared defaults."""
        controller = FormController(contact_config)

        assert controller.values == {"name": "", "email": "", "newsletter": False, "tags": ["a"]}

    def test_fields_without_default_are_absent(self):
        """Test fields without a default are not in the initial value map."""
        controller = FormController([_field(name="a"), _field(name="b", default_value=None)])

        assert controller.values == {"b": None}
        assert controller.get_value("a", "missing") == "missing"

    def test_change_callback_receives_copy(self, contact_config):
        """Test on_change gets the full value map after each change."""
        on_change = MagicMock()
        controller = FormController(contact_config, on_change=on_change)

        controller.set_value("name", "Taro")

        payload = on_change.call_args[0][0]
        assert payload["name"] == "Taro"
        payload["name"] = "changed"
        assert controller.get_value("name") == "Taro"

    def test_set_values_in_order(self, country_fields):
        """Test several updates apply in order with one callback each."""
        on_change = MagicMock()
        controller = FormController(country_fields, on_change=on_change)

        controller.set_values({"country": "other", "otherCountry": "France"})

        assert on_change.call_count == 2
        assert controller.values == {"country": "other", "otherCountry": "France"}

    def test_reset_restores_defaults(self, contact_config):
        """Test reset returns the value map to the seeded defaults."""
        controller = FormController(contact_config)
        original = controller.values

        controller.set_value("name", "Taro")
        controller.set_value("tags", ["a", "b"])
        controller.set_value("extra", 1)
        controller.values["tags"].append("mutated")
        controller.submit_sync()
        controller.reset()

        assert controller.values == original
        assert controller.errors == {}
        assert not controller.is_dirty

    def test_reset_does_not_share_default_objects(self, contact_config):
        """Test mutating a value in place does not change the defaults."""
        controller = FormController(contact_config)
        controller.get_value("tags").append("b")

        controller.reset()

        assert controller.get_value("tags") == ["a"]

    def test_reset_notifies_change(self, contact_config):
        """Test reset calls the change callback."""
        on_change = MagicMock()
        controller = FormController(contact_config, on_change=on_change)

        controller.reset()

        on_change.assert_called_once()

    def test_changed_fields(self, contact_config):
        """Test changed fields are reported against the defaults."""
        controller = FormController(contact_config)
        controller.set_value("name", "Taro")
        controller.set_value("tags", ["a"])

        assert controller.changed_fields() == ["name"]
        assert controller.is_dirty


class TestSubmit:
    """Test the submit state machine."""

    def test_valid_submit_calls_callback(self, contact_config):
        """Test a valid form calls on_submit with the visible values."""
        on_submit = MagicMock(return_value="saved")
        controller = FormController(contact_config, on_submit=on_submit)
        controller.set_values({"name": "Taro", "email": "taro@example.com"})

        result = controller.submit_sync()

        assert result.ok
        assert result.status == SubmitStatus.SUCCESS
        assert result.outcome == "saved"
        on_submit.assert_called_once_with(
            {"name": "Taro", "email": "taro@example.com", "newsletter": False, "tags": ["a"]}
        )
        assert controller.state == FormState.IDLE

    def test_invalid_submit_skips_callback(self, contact_config):
        """Test validation errors block the callback and are stored."""
        on_submit = MagicMock()
        controller = FormController(contact_config, on_submit=on_submit)
        controller.set_value("email", "bad")

        result = controller.submit_sync()

        assert result.status == SubmitStatus.INVALID
        assert result.errors == {"name": "Name is required", "email": "Enter a valid email address"}
        assert controller.errors == result.errors
        on_submit.assert_not_called()
        assert controller.state == FormState.IDLE

    def test_errors_follow_values_after_submit_attempt(self, contact_config):
        """Test errors are revalidated on change once a submit was attempted."""
        controller = FormController(contact_config)
        controller.set_value("email", "bad")
        assert controller.errors == {}

        controller.submit_sync()
        controller.set_value("name", "Taro")

        assert "name" not in controller.errors
        assert "email" in controller.errors

    def test_hidden_required_field_is_skipped(self, country_fields):
        """Test a hidden required field does not block submission."""
        on_submit = MagicMock()
        controller = FormController(country_fields, on_submit=on_submit)
        controller.set_value("country", "other")
        controller.set_value("otherCountry", "")
        controller.set_value("country", "jp")

        result = controller.submit_sync()

        assert result.ok
        on_submit.assert_called_once_with({"country": "jp"})

    def test_visible_required_field_is_checked(self, country_fields):
        """Test the same field is validated once it becomes visible."""
        controller = FormController(country_fields)
        controller.set_value("country", "other")

        result = controller.submit_sync()

        assert result.status == SubmitStatus.INVALID
        assert result.errors == {"otherCountry": "Othercountry is required"}

    def test_hidden_group_child_is_skipped(self):
        """Test a required group child hidden by its predicate neither blocks nor leaks into the submit."""
        on_submit = MagicMock()
        controller = FormController([
            _field(name="contact", type="group", fields=[
                {"name": "more", "type": "switch"},
                {"name": "detail", "type": "text", "label": "Detail", "required": True,
                 "show_when": lambda values: values.get("more") is True},
            ]),
        ], on_submit=on_submit)
        controller.set_value("contact", {"more": False, "detail": "stale"})

        result = controller.submit_sync()

        assert result.ok
        on_submit.assert_called_once_with({"contact": {"more": False}})

        controller.set_value("contact", {"more": True})
        result = controller.submit_sync()

        assert result.status == SubmitStatus.INVALID
        assert result.errors == {"contact": "Detail is required"}

    def test_raising_validator_returns_to_idle(self):
        """Test an exception escaping validation is reported and the next submit works."""
        rule = predicate_rule(lambda v: v.startswith("a"), "Must start with a", annotation=object)
        on_submit = MagicMock(return_value="ok")
        controller = FormController([_field(name="code", type="text", validation=rule)], on_submit=on_submit)
        controller.set_value("code", None)

        first = controller.submit_sync()

        assert first.status == SubmitStatus.FAILED
        assert first.message == "✅ Validation error occurred. Please review your input and try again."
        assert isinstance(controller.last_submit_error, AttributeError)
        assert controller.state == FormState.IDLE
        on_submit.assert_not_called()

        controller.reset()
        controller.set_value("code", "abc")
        second = controller.submit_sync()

        assert second.ok
        assert second.outcome == "ok"

    def test_raising_predicate_returns_to_idle(self):
        """Test a visibility predicate that raises at submit does not leave the form busy."""
        broken = {"raise": False}

        def predicate(values):
            if broken["raise"]:
                raise KeyError("missing")
            return True

        controller = FormController([_field(name="a", type="text", show_when=predicate)])
        broken["raise"] = True

        first = controller.submit_sync()
        broken["raise"] = False
        second = controller.submit_sync()

        assert first.status == SubmitStatus.FAILED
        assert controller.state == FormState.IDLE
        assert second.ok

    def test_failing_callback_returns_to_idle(self, contact_config):
        """Test an exception from on_submit is reported and the next submit works."""
        calls = []

        def on_submit(values):
            calls.append(values)
            if len(calls) == 1:
                raise ConnectionError("backend down")
            return "ok"

        controller = FormController(contact_config, on_submit=on_submit)
        controller.set_values({"name": "Taro", "email": "taro@example.com"})

        with patch("dynaform.form_controller.ErrorHandler.report", return_value="could not submit") as mock_report:
            first = controller.submit_sync()

        assert first.status == SubmitStatus.FAILED
        assert first.message == "could not submit"
        assert isinstance(controller.last_submit_error, ConnectionError)
        assert controller.state == FormState.IDLE
        assert not controller.is_submitting
        mock_report.assert_called_once()

        second = controller.submit_sync()
        assert second.ok
        assert second.outcome == "ok"
        assert controller.last_submit_error is None

    def test_failure_message_is_user_friendly(self, contact_config):
        """Test the failure message comes from the error handler."""
        controller = FormController(contact_config, on_submit=MagicMock(side_effect=RuntimeError("boom")))
        controller.set_values({"name": "Taro", "email": "taro@example.com"})

        result = controller.submit_sync()

        assert result.message == "📨 The form could not be submitted. Please try again."

    def test_async_callback(self, contact_config):
        """Test coroutine callbacks are awaited."""
        async def on_submit(values):
            await asyncio.sleep(0)
            return values["name"]

        controller = FormController(contact_config, on_submit=on_submit)
        controller.set_values({"name": "Taro", "email": "taro@example.com"})

        result = controller.submit_sync()

        assert result.ok
        assert result.outcome == "Taro"

    def test_submit_timeout(self, contact_config):
        """Test a callback that exceeds the timeout fails with a timeout message."""
        async def on_submit(values):
            await asyncio.sleep(1)

        controller = FormController(contact_config, on_submit=on_submit, submit_timeout=0.01)
        controller.set_values({"name": "Taro", "email": "taro@example.com"})

        result = controller.submit_sync()

        assert result.status == SubmitStatus.FAILED
        assert isinstance(controller.last_submit_error, TimeoutError)
        assert "took too long" in result.message
        assert controller.state == FormState.IDLE

    def test_timeout_from_config(self):
        """Test the config timeout applies when none is passed."""
        config = FormConfig(fields=[_field(name="a")], submit_timeout=2.5)

        assert FormController(config).submit_timeout == 2.5
        assert FormController(config, submit_timeout=1).submit_timeout == 1

    def test_no_callback(self, contact_config):
        """Test submitting without a callback succeeds once valid."""
        controller = FormController(contact_config)
        controller.set_values({"name": "Taro", "email": "taro@example.com"})

        result = controller.submit_sync()

        assert result.ok
        assert result.outcome is None

    def test_concurrent_submit_is_busy(self, contact_config):
        """Test a second submit while one is in flight is rejected."""
        async def scenario():
            release = asyncio.Event()
            labels = []

            async def on_submit(values):
                labels.append(controller.submit_label)
                await release.wait()
                return "done"

            controller = FormController(contact_config, on_submit=on_submit)
            controller.set_values({"name": "Taro", "email": "taro@example.com"})

            first = asyncio.ensure_future(controller.submit())
            await asyncio.sleep(0)
            assert controller.is_submitting
            second = await controller.submit()
            release.set()
            return controller, labels, await first, second

        controller, labels, first, second = asyncio.run(scenario())

        assert labels == [SUBMITTING_TEXT]
        assert second.status == SubmitStatus.BUSY
        assert first.ok
        assert controller.submit_label == "Send"


class TestSetFields:
    """Test replacing the field list."""

    def test_unchanged_fields_keep_validator(self, contact_config):
        """Test an equal field list does not re-derive."""
        controller = FormController(contact_config)
        validator = controller.validator

        assert controller.set_fields(list(contact_config.fields)) is False
        assert controller.validator is validator

    def test_changed_fields_rederive(self, contact_config):
        """Test a new field list re-derives and keeps surviving values."""
        controller = FormController(contact_config)
        controller.set_value("name", "Taro")

        changed = controller.set_fields([
            _field(name="name", type="text", required=True, default_value=""),
            _field(name="age", type="number", default_value=20),
        ])

        assert changed is True
        assert controller.validator.keys == {"name", "age"}
        assert controller.values == {"name": "Taro", "age": 20}
        assert controller.visible_names == ["name", "age"]
        assert controller.config.submit_text == "Send"
