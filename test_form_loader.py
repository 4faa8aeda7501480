"""
Tests for form definition loading.
"""

from pathlib import Path

import pytest

from dynaform.exceptions import FormDefinitionError
from dynaform.field_types import FieldType
from dynaform.form_controller import FormController
from dynaform.form_loader import (
    AllConditions,
    FieldCondition,
    build_condition,
    build_form,
    build_rule,
    get_form_info,
    list_forms,
    load_form,
)
from dynaform.rules import FieldRule, get_rule

FORMS_DIR = Path(__file__).parent / "forms"


def _write(tmp_path, name, content):
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    return path


class TestBuildCondition:
    """Test declarative visibility conditions."""

    def test_equals(self):
        """Test an equals condition."""
        condition = build_condition({"field": "country", "equals": "other"})

        assert condition == FieldCondition("country", "equals", "other")
        assert condition({"country": "other"})
        assert not condition({"country": "jp"})
        assert not condition({})

    def test_not_equals(self):
        """Test a not_equals condition."""
        condition = build_condition({"field": "plan", "not_equals": "free"})

        assert condition({"plan": "pro"})
        assert not condition({"plan": "free"})

    def test_in(self):
        """Test an in condition converts its list to a tuple."""
        condition = build_condition({"field": "plan", "in": ["pro", "team"]})

        assert condition.operand == ("pro", "team")
        assert condition({"plan": "team"})
        assert not condition({"plan": "free"})

    def test_truthy_default(self):
        """Test a bare field name checks truthiness."""
        condition = build_condition({"field": "subscribe"})

        assert condition({"subscribe": True})
        assert not condition({"subscribe": False})
        assert not condition({})

    def test_truthy_false(self):
        """Test truthy: false shows the field while the other is off."""
        condition = build_condition({"field": "subscribe", "truthy": False})

        assert condition({})
        assert not condition({"subscribe": True})

    def test_list_means_all(self):
        """Test a list of conditions must all hold."""
        condition = build_condition([
            {"field": "country", "equals": "other"},
            {"field": "subscribe"},
        ])

        assert isinstance(condition, AllConditions)
        assert condition({"country": "other", "subscribe": True})
        assert not condition({"country": "other", "subscribe": False})

    @pytest.mark.parametrize("raw", [
        "country",
        {"equals": "other"},
        {"field": "country", "equals": "a", "not_equals": "b"},
        {"field": "country", "in": "jp"},
    ])
    def test_malformed(self, raw):
        """Test malformed conditions raise FormDefinitionError."""
        with pytest.raises(FormDefinitionError):
            build_condition(raw, "test.yaml")


class TestBuildRule:
    """Test resolving validation overrides."""

    def test_by_name(self):
        """Test a preset name resolves to its rule."""
        assert build_rule("postal_code").name == "pattern"
        assert build_rule("mobile").name == "mobile"

    def test_with_arguments(self):
        """Test mapping arguments are forwarded to the preset."""
        rule = build_rule({"rule": "strong_password", "min_length": 10})

        assert rule.check("Secret123") == "Password must be at least 10 characters"

    def test_existing_rule_passes_through(self):
        """Test a FieldRule is used as given."""
        rule = get_rule("mobile")

        assert build_rule(rule) is rule

    def test_unknown_rule(self):
        """Test an unknown preset is a form definition error."""
        with pytest.raises(FormDefinitionError, match="Unknown validation rule 'zip'"):
            build_rule("zip", "test.yaml")

    def test_bad_arguments(self):
        """Test unexpected preset arguments are a form definition error."""
        with pytest.raises(FormDefinitionError, match="Invalid arguments for rule 'mobile'"):
            build_rule({"rule": "mobile", "country": "jp"}, "test.yaml")

    def test_wrong_shape(self):
        """Test a non-string, non-mapping override is rejected."""
        with pytest.raises(FormDefinitionError):
            build_rule(42, "test.yaml")


class TestBuildForm:
    """Test building a FormConfig from parsed YAML."""

    def test_fields_and_settings(self):
        """Test fields and form-level settings are read."""
        form = build_form({
            "title": "Signup",
            "submit_text": "Go",
            "show_reset": True,
            "columns": 2,
            "fields": [
                {"name": "email", "type": "email", "required": True, "default": "a@b.com"},
                {"name": "other", "type": "text", "show_when": {"field": "email", "truthy": True}},
                {"name": "postal", "type": "text", "validation": {"rule": "postal_code"}},
            ],
        })

        assert form.title == "Signup"
        assert form.submit_text == "Go"
        assert form.show_reset
        assert form.columns == 2
        assert form.field_names == ["email", "other", "postal"]
        assert form.fields[0].default_value == "a@b.com"
        assert form.fields[0].has_default
        assert isinstance(form.fields[1].show_when, FieldCondition)
        assert isinstance(form.fields[2].validation, FieldRule)

    def test_camel_case_keys(self):
        """Test camelCase keys are accepted."""
        form = build_form({
            "submitText": "Send",
            "fields": [
                {"name": "bio", "type": "textarea", "maxLength": 10, "helpText": "Short",
                 "showWhen": {"field": "x"}},
            ],
        })

        assert form.submit_text == "Send"
        assert form.fields[0].max_length == 10
        assert form.fields[0].help_text == "Short"
        assert form.fields[0].show_when is not None

    def test_group_children(self):
        """Test group children are built recursively."""
        form = build_form({"fields": [
            {"name": "contact", "type": "group", "fields": [
                {"name": "email", "type": "email", "default": "x@y.z"},
                {"name": "phone", "type": "tel", "show_when": {"field": "email"}},
            ]},
        ]})

        children = form.fields[0].fields
        assert [c.name for c in children] == ["email", "phone"]
        assert children[0].default_value == "x@y.z"
        assert isinstance(children[1].show_when, FieldCondition)

    def test_unknown_type_kept(self):
        """Test unknown field types are kept rather than rejected."""
        form = build_form({"fields": [{"name": "rating", "type": "stars"}]})

        assert form.fields[0].type == "stars"
        assert not form.fields[0].is_known_type

    def test_address_lookup_settings(self):
        """Test the address lookup section is read."""
        form = build_form({
            "address_lookup": {"postal_field": "zip", "town_field": "street"},
            "fields": [{"name": "zip"}],
        })

        assert form.address_lookup.postal_field == "zip"
        assert form.address_lookup.target_fields == {"prefecture": "prefecture", "city": "city", "town": "street"}

    @pytest.mark.parametrize("definition,reason", [
        (["not", "a", "mapping"], "top level must be a mapping"),
        ({"title": "x"}, "missing 'fields' list"),
        ({"fields": ["email"]}, "Each field must be a mapping"),
        ({"fields": [{"type": "text"}]}, "name"),
        ({"fields": [{"name": "g", "type": "group", "fields": "x"}]}, "must be a list"),
        ({"columns": 9, "fields": []}, "columns"),
    ])
    def test_invalid_definitions(self, definition, reason):
        """Test invalid definitions raise FormDefinitionError with a reason."""
        with pytest.raises(FormDefinitionError) as exc_info:
            build_form(definition, "bad.yaml")

        assert reason in str(exc_info.value)
        assert exc_info.value.source == "bad.yaml"


class TestLoadForm:
    """Test loading definitions from disk."""

    def test_load_form(self, tmp_path):
        """Test a YAML file is loaded into a FormConfig."""
        path = _write(tmp_path, "simple.yaml", """
title: Simple
fields:
  - name: name
    type: text
    required: true
""")

        form = load_form(path)

        assert form.title == "Simple"
        assert form.fields[0].type == FieldType.TEXT

    def test_yaml_error(self, tmp_path):
        """Test invalid YAML is reported with recovery suggestions."""
        path = _write(tmp_path, "broken.yaml", "fields: [unclosed\n")

        with pytest.raises(FormDefinitionError) as exc_info:
            load_form(path)

        assert "YAML parsing error" in str(exc_info.value)
        assert exc_info.value.recovery_suggestions
        assert exc_info.value.context["source"] == str(path)

    def test_missing_file(self, tmp_path):
        """Test a missing file is a form definition error."""
        with pytest.raises(FormDefinitionError, match="file could not be read"):
            load_form(tmp_path / "missing.yaml")

    def test_list_forms(self, tmp_path):
        """Test only YAML files are listed, sorted."""
        _write(tmp_path, "b.yaml", "fields: []")
        _write(tmp_path, "a.yml", "fields: []")
        _write(tmp_path, "notes.txt", "x")

        assert list_forms(tmp_path) == ["a.yml", "b.yaml"]
        assert list_forms(tmp_path / "missing") == []

    def test_get_form_info(self, tmp_path):
        """Test the summary of a form."""
        path = _write(tmp_path, "user_signup.yaml", """
fields:
  - {name: email, type: email, required: true}
  - {name: age, type: number}
""")

        info = get_form_info(path)

        assert info["title"] == "User Signup"
        assert info["field_count"] == 2
        assert info["required_fields"] == ["email"]
        assert info["field_types"] == {"email": "email", "age": "number"}

    def test_get_form_info_invalid(self, tmp_path):
        """Test an invalid form has no summary."""
        assert get_form_info(_write(tmp_path, "bad.yaml", "- a\n- b\n")) is None


class TestBundledForms:
    """Test the form definitions shipped in forms/."""

    @pytest.mark.parametrize("name", list_forms(FORMS_DIR))
    def test_bundled_form_loads(self, name):
        """Test every bundled form loads and drives a controller."""
        form = load_form(FORMS_DIR / name)
        controller = FormController(form)

        assert controller.validator.keys == set(form.field_names)
        assert controller.render()

    def test_registration_other_country(self):
        """Test the registration form shows otherCountry only for 'other'."""
        controller = FormController(load_form(FORMS_DIR / "registration.yaml"))

        assert "otherCountry" not in controller.visible_names
        controller.set_value("country", "other")
        assert "otherCountry" in controller.visible_names

    def test_registration_submit(self):
        """Test a complete registration validates."""
        controller = FormController(load_form(FORMS_DIR / "registration.yaml"))
        controller.set_values({
            "username": "taro_01",
            "email": "taro@example.com",
            "password": "Secret123",
            "age": 30,
            "country": "jp",
            "interests": ["tech"],
            "terms": False,
        })

        result = controller.submit_sync()

        assert result.errors == {"terms": "You must agree to the terms"}

        controller.set_value("terms", True)
        assert controller.submit_sync().ok
