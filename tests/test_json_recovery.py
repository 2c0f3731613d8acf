import json

import pytest

from backend.app.json_recovery import (
    clean_json_text,
    extract_first_object,
    recover_json,
    strip_code_fences,
    strip_trailing_commas,
)


def test_strip_code_fences_json_tag():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'


def test_strip_code_fences_bare_and_uppercase():
    assert strip_code_fences('```JSON {"a": 1}```') == '{"a": 1}'
    assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'


def test_strip_code_fences_leaves_plain_text_alone():
    assert strip_code_fences('{"a": 1}') == '{"a": 1}'


def test_extract_first_object_skips_surrounding_prose():
    text = 'Sure! Here is the analysis: {"a": {"b": 2}} Hope that helps {"c": 3}'
    assert extract_first_object(text) == '{"a": {"b": 2}}'


def test_extract_first_object_ignores_braces_inside_strings():
    text = 'x {"msg": "use } and { freely", "n": 1} y'
    assert json.loads(extract_first_object(text)) == {"msg": "use } and { freely", "n": 1}


def test_extract_first_object_without_braces_is_identity():
    assert extract_first_object("no json here") == "no json here"


def test_strip_trailing_commas():
    assert strip_trailing_commas('{"a": [1, 2,], "b": 3,}') == '{"a": [1, 2], "b": 3}'
    assert strip_trailing_commas('{"a": 1,\n  }') == '{"a": 1\n  }'


def test_recover_fenced_json_with_trailing_commas():
    original = {
        "overall_score": 64,
        "factors": {"hook_strength": 70, "media_boost": 0},
        "detailed_reasons": ["one", "two"],
    }
    noisy = (
        "Here you go:\n```json\n"
        '{\n  "overall_score": 64,\n  "factors": {"hook_strength": 70, "media_boost": 0,},\n'
        '  "detailed_reasons": ["one", "two",],\n}\n```'
    )
    assert recover_json(noisy) == original


def test_clean_json_text_is_pure():
    text = '  ```json\n{"a": 1,}\n```  '
    assert clean_json_text(text) == clean_json_text(text) == '{"a": 1}'


def test_recover_json_raises_on_prose():
    with pytest.raises(json.JSONDecodeError):
        recover_json("I think this post will do quite well overall.")


def test_recover_json_raises_on_truncated_object():
    with pytest.raises(json.JSONDecodeError):
        recover_json('{"overall_score": 70, "factors": {"hook')
