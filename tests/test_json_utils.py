# tests/test_json_utils.py
import pytest

from magic_order.utils.json_utils import extract_json_from_response, try_parse_json


def test_fenced_block_with_json_tag():
    text = 'Claro, aquí está:\n```json\n[{"a": 1}]\n```\nSaludos'
    assert extract_json_from_response(text) == '[{"a": 1}]'


def test_unclosed_fence_markers_are_removed():
    text = '```json\n[{"a": 1}]'
    assert extract_json_from_response(text) == '[{"a": 1}]'


def test_typographic_quotes_are_normalized():
    text = "[{“name”: “Ana”, ‘x’: 1}]"
    assert extract_json_from_response(text) == "[{\"name\": \"Ana\", 'x': 1}]"


def test_newline_runs_collapse_to_single_space():
    text = '[\n{"a": 1},\n\n{"b": 2}\n]'
    assert extract_json_from_response(text) == '[ {"a": 1}, {"b": 2} ]'


def test_array_is_located_inside_surrounding_text():
    text = 'Resultado: [{"client": {"name": "Ana"}}] espero que sirva'
    assert extract_json_from_response(text) == '[{"client": {"name": "Ana"}}]'


def test_text_without_array_is_returned_trimmed():
    assert extract_json_from_response("   no hay pedidos  ") == "no hay pedidos"


def test_empty_and_none_input():
    assert extract_json_from_response("") == ""
    assert extract_json_from_response(None) == ""


def test_try_parse_json_success():
    result = try_parse_json('[{"a": 1}]')
    assert result.success
    assert result.data == [{"a": 1}]
    assert result.error is None


def test_try_parse_json_failure_does_not_raise():
    result = try_parse_json('[{"a": 1,]')
    assert not result.success
    assert result.data is None
    assert result.error is not None


@pytest.mark.parametrize("text", [
    'Claro, aquí está:\n```json\n[{"a": 1}]\n```\nSaludos',
    '```json\n[{"a": 1}]',
    '[\n{"a": 1},\n\n{"b": 2}\n]',
    'Resultado: [{"client": {"name": "Ana"}}] espero que sirva',
    "[{“name”: “Ana”}]",
    "no hay pedidos",
])
def test_extract_is_idempotent(text):
    once = extract_json_from_response(text)
    assert extract_json_from_response(once) == once


def test_curly_apostrophe_in_value_stays_valid_json():
    text = '```json\n[{"client": {"name": "Ana"}, "notes": "para el cumple de Ana’s"}]\n```'

    result = try_parse_json(extract_json_from_response(text))

    assert result.success
    assert result.data[0]["notes"] == "para el cumple de Ana's"
