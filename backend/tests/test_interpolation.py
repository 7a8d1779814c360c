from formflow.interpolation import blank_params, interpolate, interpolate_url, is_empty, placeholders


def test_object_value_prefers_label():
    env = {"f": {"id": "x1", "label": "Foo"}}
    assert interpolate({"k": "${f}"}, env) == {"k": "Foo"}
    assert interpolate({"k": "${f.id}"}, env) == {"k": "x1"}


def test_object_value_falls_back_to_id_then_value():
    assert interpolate({"k": "${f}"}, {"f": {"id": "x1"}}) == {"k": "x1"}
    assert interpolate({"k": "${f}"}, {"f": {"value": 7}}) == {"k": 7}
    assert interpolate({"k": "${f}"}, {"f": {"other": 1}}) == {"k": ""}
    assert interpolate({"k": "${f.missing}"}, {"f": {"id": "x1"}}) == {"k": ""}


def test_absent_value_becomes_empty_string():
    assert interpolate({"k": "${nope}"}, {}) == {"k": ""}
    assert interpolate({"k": "${nope.id}"}, {"nope": None}) == {"k": ""}


def test_array_value():
    env = {"tags": [{"id": "a", "label": "Alpha"}, {"id": "b"}, "raw"]}
    # no prop: each element's label ?? id ?? value ?? element, kept as an array
    assert interpolate({"k": "${tags}"}, env) == {"k": ["Alpha", "b", "raw"]}
    # prop: taken from the first element only
    assert interpolate({"k": "${tags.id}"}, env) == {"k": "a"}
    assert interpolate({"k": "${tags.id}"}, {"tags": []}) == {"k": ""}


def test_literals_and_non_strings_pass_through():
    params = {"lit": "plain", "partial": "prefix ${f}", "num": 5, "flag": True}
    assert interpolate(params, {"f": "x"}) == params


def test_primitive_passes_through():
    assert interpolate({"k": "${n}"}, {"n": 42}) == {"k": 42}
    assert interpolate({"k": "${b}"}, {"b": False}) == {"k": False}


def test_hyphenated_field_ids():
    assert interpolate({"k": "${field-1}"}, {"field-1": "v"}) == {"k": "v"}


def test_interpolate_url():
    url = "https://api.test/${country}/cities?limit=${limit}&x=${missing}"
    assert interpolate_url(url, {"country": "US", "limit": 10}) == "https://api.test/US/cities?limit=10&x="


def test_interpolate_url_ignores_structured_values():
    assert interpolate_url("/a/${sel}", {"sel": {"id": "x"}}) == "/a/"
    assert interpolate_url("/a/${on}", {"on": True}) == "/a/true"


def test_placeholders_and_blank_params():
    params = {"a": "${country}", "b": "${state.id}", "c": "fixed", "d": "${country}"}
    assert placeholders(params) == ["country", "state"]
    assert blank_params(params) == {"a": "", "b": "", "c": "fixed", "d": ""}


def test_is_empty():
    assert is_empty(None)
    assert is_empty("")
    assert is_empty({})
    assert is_empty([])
    assert not is_empty(0)
    assert not is_empty(False)
    assert not is_empty("x")
    assert not is_empty({"id": 1})
