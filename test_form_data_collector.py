from datetime import date, datetime

import numpy as np
import pandas as pd
import pytest

import dynaform.form_data_collector as form_data_collector
from dynaform.models import FieldDescriptor


def _field(**kwargs) -> FieldDescriptor:
    return FieldDescriptor.model_validate(kwargs)


@pytest.mark.parametrize("value,expected", [
    ("2024-01-15", date(2024, 1, 15)),
    ("15 Jan 2024", date(2024, 1, 15)),
    (datetime(2024, 1, 15, 10, 30), date(2024, 1, 15)),
    (date(2024, 1, 15), date(2024, 1, 15)),
    ("", None),
    (None, None),
    ("not a date", None),
    (42, None),
])
def test_parse_date(value, expected):
    assert form_data_collector.parse_date(value) == expected


def test_format_date():
    assert form_data_collector.format_date(date(2024, 1, 5)) == "2024-01-05"
    assert form_data_collector.format_date(datetime(2024, 1, 5, 9, 0)) == "2024-01-05"
    assert form_data_collector.format_date("2024/01/05") == "2024-01-05"
    assert form_data_collector.format_date(None) == ""


def test_widget_values_for_scalar_fields():
    number = _field(name="age", type="number")
    switch = _field(name="terms", type="switch")
    select = _field(name="country", type="select", options=["jp"])
    text = _field(name="name", type="text")

    assert form_data_collector.to_widget_value(number, "30") == 30.0
    assert form_data_collector.to_widget_value(number, None) is None
    assert form_data_collector.to_widget_value(number, "abc") is None
    assert form_data_collector.to_widget_value(switch, None) is False
    assert form_data_collector.to_widget_value(select, "") is None
    assert form_data_collector.to_widget_value(select, "jp") == "jp"
    assert form_data_collector.to_widget_value(text, None) == ""
    assert form_data_collector.to_widget_value(text, 5) == "5"


def test_widget_values_back_to_value_map():
    date_field = _field(name="visited", type="date")
    select = _field(name="country", type="select", options=["jp"])
    checkboxes = _field(name="tags", type="checkbox", multiple=True, options=["a", "b"])
    upload = _field(name="doc", type="file", multiple=True)
    group = _field(name="contact", type="group")

    assert form_data_collector.from_widget_value(date_field, date(2024, 2, 1)) == "2024-02-01"
    assert form_data_collector.from_widget_value(date_field, None) == ""
    assert form_data_collector.from_widget_value(select, None) == ""
    assert form_data_collector.from_widget_value(checkboxes, ("a", "b")) == ["a", "b"]
    assert form_data_collector.from_widget_value(checkboxes, "a") == []
    assert form_data_collector.from_widget_value(upload, []) is None
    assert form_data_collector.from_widget_value(group, None) == {}


def test_array_frame_empty_and_filled():
    descriptor = _field(name="tags", type="array")

    empty = form_data_collector.array_frame(descriptor, None)
    assert list(empty.columns) == [form_data_collector.ARRAY_COLUMN]
    assert empty.empty
    assert empty[form_data_collector.ARRAY_COLUMN].dtype == object

    filled = form_data_collector.array_frame(descriptor, ["a", "b"])
    assert filled[form_data_collector.ARRAY_COLUMN].tolist() == ["a", "b"]


def test_array_frame_dates_are_parsed():
    descriptor = _field(name="days", type="array", itemType="date")

    frame = form_data_collector.array_frame(descriptor, ["2024-01-01"])

    assert frame[form_data_collector.ARRAY_COLUMN].tolist() == [date(2024, 1, 1)]


def test_frame_to_list_drops_empty_rows():
    descriptor = _field(name="tags", type="array")
    frame = pd.DataFrame({form_data_collector.ARRAY_COLUMN: ["a", None, np.nan, "  ", "b"]})

    assert form_data_collector.frame_to_list(descriptor, frame) == ["a", "b"]


def test_frame_to_list_numbers():
    descriptor = _field(name="scores", type="array", itemType="number")
    frame = pd.DataFrame({form_data_collector.ARRAY_COLUMN: [1, np.nan, 2.5]})

    assert form_data_collector.frame_to_list(descriptor, frame) == [1.0, 2.5]


def test_frame_to_list_other_inputs():
    descriptor = _field(name="tags", type="array")

    assert form_data_collector.frame_to_list(descriptor, ["x", ""]) == ["x"]
    assert form_data_collector.frame_to_list(descriptor, pd.DataFrame({"other": [1]})) == []
    assert form_data_collector.frame_to_list(descriptor, "nope") == []
