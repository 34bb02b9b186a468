from app.services.discovery.parsing import extract_json_object, iter_json_arrays, optional_text


def _first_array(raw):
    return next(iter_json_arrays(raw), None)


def test_array_is_found_inside_prose_and_code_fences():
    raw = 'I searched widely.\n```json\n[{"name": "Ada", "firm": "Loom [Ventures]"}]\n```\nDone.'

    assert _first_array(raw) == [{"name": "Ada", "firm": "Loom [Ventures]"}]


def test_array_skips_non_json_brackets_before_the_payload():
    raw = 'Sources [see note]. Result: [{"name": "Ada"}] and trailing ] noise'

    assert _first_array(raw) == [{"name": "Ada"}]


def test_arrays_are_yielded_in_order_of_appearance():
    raw = 'I ran searches [1] and [2] and found:\n[{"name": "Ada Park"}]'

    assert list(iter_json_arrays(raw)) == [[1], [2], [{"name": "Ada Park"}]]


def test_array_returns_none_when_absent_or_broken():
    assert _first_array("no investors here") is None
    assert _first_array('[{"name": "Ada",}') is None
    assert _first_array(None) is None


def test_object_handles_braces_inside_strings():
    raw = 'Profile: {"name": "Ada", "thesis": "backs {hard} tech \\"deep\\""} end'

    assert extract_json_object(raw) == {"name": "Ada", "thesis": 'backs {hard} tech "deep"'}


def test_object_skips_undecodable_candidates():
    raw = "{not json} then {\"fit_score\": 70}"

    assert extract_json_object(raw) == {"fit_score": 70}


def test_optional_text_normalizes_placeholders():
    assert optional_text("  Loom Ventures ") == "Loom Ventures"
    assert optional_text("null") is None
    assert optional_text("Unknown") is None
    assert optional_text("") is None
    assert optional_text(True) is None
    assert optional_text(42) == "42"
