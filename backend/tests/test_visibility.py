import pytest

from formflow.errors import DependencyCycleError
from formflow.schemas import CheckboxField, Column, Dependency, DropdownField, Section, SwitchField, TextField
from formflow.visibility import (
    check_edges,
    dependency_candidates,
    is_cell_visible,
    is_visible,
    visible_fields,
)


def _text(field_id, depends=None, value="*"):
    dep = Dependency(fieldId=depends, value=value) if depends else None
    return TextField(id=field_id, label=field_id.upper(), dependency=dep)


def test_no_dependency_is_visible():
    a = _text("a")
    assert is_visible(a, [a], {})


def test_any_value_semantics():
    a = _text("a")
    b = _text("b", depends="a")
    siblings = [a, b]
    assert not is_visible(b, siblings, {})
    assert not is_visible(b, siblings, {"a": ""})
    assert not is_visible(b, siblings, {"a": None})
    assert not is_visible(b, siblings, {"a": {}})
    assert not is_visible(b, siblings, {"a": []})
    assert is_visible(b, siblings, {"a": "anything"})
    assert is_visible(b, siblings, {"a": {"id": "x"}})


def test_chained_dependency():
    a = _text("a")
    b = _text("b", depends="a", value="v1")
    c = _text("c", depends="b", value="v2")
    siblings = [a, b, c]
    assert is_visible(c, siblings, {"a": "v1", "b": "v2"})
    assert not is_visible(c, siblings, {"a": "other", "b": "v2"})
    assert not is_visible(c, siblings, {"a": "v1", "b": "other"})


def test_missing_target_fails_open():
    b = _text("b", depends="gone", value="v1")
    assert is_visible(b, [b], {})


def test_target_in_other_section_is_not_found():
    a = _text("a")
    b = _text("b", depends="a", value="v1")
    # only siblings are searched, so b fails open here
    assert is_visible(b, [b], {"a": "nope"})


def test_object_value_matches_id_or_label():
    a = DropdownField(id="a", options=[{"id": "us", "label": "United States"}])
    b = _text("b", depends="a", value="us")
    c = _text("c", depends="a", value="United States")
    env = {"a": {"id": "us", "label": "United States"}}
    assert is_visible(b, [a, b, c], env)
    assert is_visible(c, [a, b, c], env)
    assert not is_visible(b, [a, b, c], {"a": {"id": "ca", "label": "Canada"}})


def test_checkbox_target_matches_any_selected_id():
    a = CheckboxField(id="a", options=[{"id": "x", "label": "X"}, {"id": "y", "label": "Y"}])
    b = _text("b", depends="a", value="y")
    star = _text("star", depends="a")
    siblings = [a, b, star]
    assert is_visible(b, siblings, {"a": [{"id": "x"}, {"id": "y"}]})
    assert not is_visible(b, siblings, {"a": [{"id": "x"}]})
    assert is_visible(star, siblings, {"a": [{"id": "x"}]})
    assert not is_visible(star, siblings, {"a": []})


def test_switch_target_exact_match():
    a = SwitchField(id="a")
    b = _text("b", depends="a", value=True)
    assert is_visible(b, [a, b], {"a": True})
    assert not is_visible(b, [a, b], {"a": False})


def test_cycle_in_stored_schema_does_not_recurse_forever():
    a = _text("a", depends="b", value="x")
    b = _text("b", depends="a", value="x")
    # revisits are treated as visible, the value check still applies
    assert is_visible(a, [a, b], {"a": "x", "b": "x"})
    assert not is_visible(a, [a, b], {"a": "x", "b": "y"})


def test_visible_fields_keeps_order():
    a = _text("a")
    b = _text("b", depends="a", value="show")
    c = _text("c")
    section = Section(id="s1", fields=[a, b, c])
    assert [f.id for f in visible_fields(section, {})] == ["a", "c"]
    assert [f.id for f in visible_fields(section, {"a": "show"})] == ["a", "b", "c"]


def test_cell_visibility_is_row_scoped():
    col = Column(id="city", type="dropdown", dependency=Dependency(fieldId="country"))
    assert not is_cell_visible(col, {})
    assert not is_cell_visible(col, {"country": ""})
    assert is_cell_visible(col, {"country": "US"})

    exact = Column(id="zip", dependency=Dependency(fieldId="country", value="US"))
    assert is_cell_visible(exact, {"country": {"id": "US", "label": "United States"}})
    assert not is_cell_visible(exact, {"country": "CA"})


def test_cell_visibility_has_no_fail_open():
    col = Column(id="zip", dependency=Dependency(fieldId="not-a-column", value="US"))
    assert not is_cell_visible(col, {"country": "US"})


def test_dependency_candidates_exclude_cycles():
    a = _text("a")
    b = _text("b", depends="a")
    c = _text("c", depends="b")
    fields = [a, b, c]
    assert [f.id for f in dependency_candidates(fields, "a")] == []
    assert [f.id for f in dependency_candidates(fields, "b")] == ["a"]
    assert [f.id for f in dependency_candidates(fields, "c")] == ["a", "b"]


def test_depends_on_edges_count_for_cycles():
    a = _text("a")
    b = DropdownField(id="b", apiConfig={"url": "https://api.test", "dependsOn": ["a"]})
    assert [f.id for f in dependency_candidates([a, b], "a")] == []
    with pytest.raises(DependencyCycleError):
        check_edges([a, b], "a", ["b"])
    check_edges([a, b], "b", ["a"])
