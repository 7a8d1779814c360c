import pytest

from formflow.schemas import (
    CheckboxField,
    DateField,
    DropdownField,
    RadioField,
    SwitchField,
    TableField,
    TextareaField,
    TextField,
)
from formflow.validation import (
    PATTERN_MISMATCH,
    REQUIRED,
    SELECT_ONE,
    validate_field,
    validate_fields,
)


def test_min_length_boundary():
    field = TextField(id="code", minLength=3)
    assert validate_field(field, "ab") == "Minimum 3 characters required"
    assert validate_field(field, "abc") is None


def test_disabled_field_is_exempt():
    field = TextField(id="code", minLength=3, required=True, disabled=True)
    assert validate_field(field, "ab") is None
    assert validate_field(field, None) is None


def test_length_and_pattern_only_checked_when_present():
    field = TextField(id="code", minLength=3, maxLength=5, pattern=r"^[A-Z]+$")
    assert validate_field(field, "") is None
    assert validate_field(field, None) is None
    assert validate_field(field, "ABCDEF") == "Maximum 5 characters allowed"
    assert validate_field(field, "abc") == PATTERN_MISMATCH
    assert validate_field(field, "ABC") is None


def test_invalid_pattern_is_rejected_at_configuration_time():
    with pytest.raises(ValueError):
        TextField(id="code", pattern="([")


def test_required_non_choice_fields():
    for field in (TextField(id="a", required=True), TextareaField(id="b", required=True), DateField(id="c", required=True)):
        assert validate_field(field, None) == REQUIRED
        assert validate_field(field, "") == REQUIRED
    assert validate_field(TableField(id="t", required=True), []) == REQUIRED
    assert validate_field(TableField(id="t", required=True), [{}]) is None


def test_switch_false_is_a_value():
    assert validate_field(SwitchField(id="s", required=True), False) is None
    assert validate_field(SwitchField(id="s", required=True), None) == REQUIRED


def test_dropdown_selection():
    single = DropdownField(id="d", required=True)
    assert validate_field(single, None) == REQUIRED
    assert validate_field(single, {}) == SELECT_ONE
    assert validate_field(single, {"id": "x", "label": "X"}) is None

    multi = DropdownField(id="m", required=True, allowMultiple=True)
    assert validate_field(multi, []) == REQUIRED
    assert validate_field(multi, [{"id": "x"}]) is None

    assert validate_field(DropdownField(id="o"), None) is None


def test_radio_and_checkbox_selection():
    assert validate_field(RadioField(id="r", required=True), {}) == SELECT_ONE
    assert validate_field(RadioField(id="r", required=True), {"id": "x"}) is None
    assert validate_field(CheckboxField(id="c", required=True), []) == REQUIRED
    assert validate_field(CheckboxField(id="c", required=True), [{"id": "x"}]) is None


def test_required_choice_fields_report_required_first():
    for field in (
        DropdownField(id="d", required=True),
        DropdownField(id="m", required=True, allowMultiple=True),
        RadioField(id="r", required=True),
        CheckboxField(id="c", required=True),
    ):
        assert validate_field(field, None) == REQUIRED


def test_validate_fields_collects_per_field_messages():
    fields = [
        TextField(id="name", required=True),
        TextField(id="code", minLength=3),
        RadioField(id="choice"),
    ]
    errors = validate_fields(fields, {"code": "ab"})
    assert errors == {"name": REQUIRED, "code": "Minimum 3 characters required"}
