"""Tests for tolerant JSON parsing of model output."""

import pytest

from takeoff_ai.utils.json_parser import parse_json_safely, strip_code_fences


def test_strip_code_fences():
    assert strip_code_fences('```json\n{"items": []}\n```') == '{"items": []}'


@pytest.mark.parametrize(
    "text,expected",
    [
        ('{"items": []}', {"items": []}),
        ('```json\n{"items": [1]}\n```', {"items": [1]}),
        ('{"items": [1, 2,],}', {"items": [1, 2]}),
        ('Here is the takeoff:\n{"items": [1]}\nLet me know.', {"items": [1]}),
        ("[1, 2]", [1, 2]),
    ],
)
def test_parse_json_safely(text, expected):
    assert parse_json_safely(text) == expected


def test_concatenated_documents_are_merged():
    text = '{"items": [{"name": "a"}], "analysis": []}\n{"items": [{"name": "b"}]}'

    assert parse_json_safely(text) == {"items": [{"name": "a"}, {"name": "b"}], "analysis": []}


def test_concatenated_arrays_are_flattened():
    assert parse_json_safely("[1]\n[2, 3]") == [1, 2, 3]


@pytest.mark.parametrize("text", ["", "   ", "no json here", "{broken"])
def test_unrecoverable_text(text):
    assert parse_json_safely(text) is None
