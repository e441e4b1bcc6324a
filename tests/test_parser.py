import json

import pytest

from docintel.errors import PARSE_ERROR, ExtractionFailure
from docintel.parser import parse_model_output, strip_code_fences

PAYLOAD = {"documentType": "receipt", "confidence": 0.7, "rawText": "Total 450"}
PLAIN = json.dumps(PAYLOAD)


def test_plain_json_is_parsed():
    assert parse_model_output(PLAIN) == PAYLOAD


@pytest.mark.parametrize(
    "wrapped",
    [
        f"```json\n{PLAIN}\n```",
        f"```\n{PLAIN}\n```",
        f"```JSON\n{PLAIN}\n```",
        f"  \n```json{PLAIN}```\n\n",
        f"```json\n{PLAIN}",
        f"{PLAIN}\n```",
    ],
)
def test_fenced_json_matches_unfenced(wrapped):
    assert parse_model_output(wrapped) == parse_model_output(PLAIN)


@pytest.mark.parametrize(
    "text",
    [PLAIN, f"```json\n{PLAIN}\n```", f"```\n{PLAIN}```", "   spaced   "],
)
def test_strip_code_fences_is_idempotent(text):
    once = strip_code_fences(text)
    assert strip_code_fences(once) == once


def test_unparseable_content_keeps_original_text():
    content = "  Sorry, I could not read this document.  "
    with pytest.raises(ExtractionFailure) as excinfo:
        parse_model_output(content)
    assert excinfo.value.code == PARSE_ERROR
    assert excinfo.value.status_code == 500
    assert excinfo.value.raw_content == content


def test_leading_prose_is_not_recovered():
    content = f"Here is the extraction:\n```json\n{PLAIN}\n```"
    with pytest.raises(ExtractionFailure) as excinfo:
        parse_model_output(content)
    assert excinfo.value.raw_content == content


def test_non_object_json_is_a_parse_error():
    with pytest.raises(ExtractionFailure) as excinfo:
        parse_model_output("```json\n[1, 2, 3]\n```")
    assert excinfo.value.code == PARSE_ERROR
    assert excinfo.value.raw_content == "```json\n[1, 2, 3]\n```"


@pytest.mark.parametrize(
    "content",
    [
        '{"documentType": "invoice", "confidence": NaN}',
        '```json\n{"extractedFields": {"amount": {"total": Infinity}}}\n```',
        '{"confidence": -Infinity}',
    ],
)
def test_non_standard_constants_are_parse_errors(content):
    with pytest.raises(ExtractionFailure) as excinfo:
        parse_model_output(content)
    assert excinfo.value.code == PARSE_ERROR
    assert excinfo.value.raw_content == content
