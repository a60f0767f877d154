import json

import pytest

from mcp_bridge.classifier import classify_line
from mcp_bridge.normalizer import normalize
from mcp_bridge.transport_models import (
    ErrorKind,
    NormalizationFailure,
    NormalizedRequest,
    PassThrough,
)


def _envelope(**params):
    return json.dumps({"jsonrpc": "2.0", "id": "req-1", "method": "mcp.invoke", "params": params})


@pytest.mark.parametrize("text", ["A red bicycle", "  padded prompt  ", "sunset, 4k, highly detailed", "x"])
def test_plain_text_becomes_prompt(text):
    outcome = normalize(classify_line(text.strip()))
    assert isinstance(outcome, NormalizedRequest)
    assert outcome.parameters == {"prompt": text.strip()}
    assert outcome.tool_name == "generateImage"
    assert outcome.correlation_id


def test_plain_text_ids_are_distinct():
    first = normalize(classify_line("same prompt"))
    second = normalize(classify_line("same prompt"))
    assert first.correlation_id != second.correlation_id


def test_text_that_looks_like_broken_json_is_a_parse_error():
    outcome = normalize(classify_line('{"prompt": "cat"'))
    assert isinstance(outcome, NormalizationFailure)
    assert outcome.kind is ErrorKind.PARSE_ERROR


def test_envelope_for_image_tool_extracts_parameters():
    outcome = normalize(classify_line(_envelope(tool="generateImage", parameters={"prompt": "owl", "width": 640})))
    assert isinstance(outcome, NormalizedRequest)
    assert outcome.correlation_id == "req-1"
    assert outcome.parameters == {"prompt": "owl", "width": 640}
    assert outcome.is_retry is False


def test_envelope_for_unknown_tool_is_method_not_found():
    outcome = normalize(classify_line(_envelope(tool="doesNotExist", parameters={})))
    assert isinstance(outcome, NormalizationFailure)
    assert outcome.kind is ErrorKind.METHOD_NOT_FOUND
    assert outcome.correlation_id == "req-1"
    assert "doesNotExist" in outcome.message


def test_other_methods_pass_through_verbatim():
    line = '{"jsonrpc":"2.0","id":"7","method":"tools/list"}'
    outcome = normalize(classify_line(line))
    assert isinstance(outcome, PassThrough)
    assert outcome.raw == line
    assert outcome.correlation_id == "7"


def test_placeholder_key_is_promoted_to_prompt():
    outcome = normalize(classify_line(_envelope(tool="generateImage", parameters={"random_string": "a fox"})))
    assert outcome.parameters == {"prompt": "a fox"}


def test_placeholder_key_is_dropped_next_to_real_parameters():
    outcome = normalize(
        classify_line(_envelope(tool="generateImage", parameters={"random_string": "x", "prompt": "a fox"}))
    )
    assert outcome.parameters == {"prompt": "a fox"}


def test_retry_hint_from_id_or_params():
    by_id = normalize(
        classify_line('{"jsonrpc":"2.0","id":"abc-retry-2","method":"mcp.invoke","params":{"tool":"generateImage","parameters":{"prompt":"p"}}}')
    )
    by_flag = normalize(classify_line(_envelope(tool="generateImage", retry=True, parameters={"prompt": "p"})))
    assert by_id.is_retry is True
    assert by_flag.is_retry is True


def test_loose_json_keeps_all_top_level_parameters():
    outcome = normalize(classify_line('{"prompt":"cat","seed":42}'))
    assert isinstance(outcome, NormalizedRequest)
    assert outcome.parameters == {"prompt": "cat", "seed": 42}


def test_loose_json_with_parameters_object():
    outcome = normalize(classify_line('{"id":"mine","parameters":{"prompt":"dog","steps":8}}'))
    assert outcome.correlation_id == "mine"
    assert outcome.parameters == {"prompt": "dog", "steps": 8}


def test_loose_json_with_params_is_completed_into_an_envelope():
    outcome = normalize(classify_line('{"params":{"tool":"generateImage","parameters":{"prompt":"eel"}}}'))
    assert isinstance(outcome, NormalizedRequest)
    assert outcome.parameters == {"prompt": "eel"}

    unknown = normalize(classify_line('{"id":"z","params":{"tool":"other"}}'))
    assert isinstance(unknown, NormalizationFailure)
    assert unknown.kind is ErrorKind.METHOD_NOT_FOUND


@pytest.mark.parametrize("line", ['{"width": 512}', "[1, 2]", '"just a string"', "null"])
def test_loose_json_without_usable_parameters_fails(line):
    outcome = normalize(classify_line(line))
    assert isinstance(outcome, NormalizationFailure)
    assert outcome.kind is ErrorKind.INVALID_REQUEST


def test_loose_pass_through_is_forwarded_as_a_completed_envelope():
    outcome = normalize(classify_line('{"method":"ping","params":{}}'))
    assert isinstance(outcome, PassThrough)
    forwarded = json.loads(outcome.raw)
    assert forwarded["jsonrpc"] == "2.0"
    assert forwarded["method"] == "ping"
    assert forwarded["id"] == outcome.correlation_id


@pytest.mark.parametrize("request_id", [7, 0, 2.5])
def test_numeric_ids_are_kept_as_numbers(request_id):
    envelope = json.dumps(
        {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": "mcp.invoke",
            "params": {"tool": "generateImage", "parameters": {"prompt": "owl"}},
        }
    )
    outcome = normalize(classify_line(envelope))
    assert isinstance(outcome, NormalizedRequest)
    assert outcome.correlation_id == request_id
    assert type(outcome.correlation_id) is type(request_id)

    loose = normalize(classify_line(json.dumps({"id": request_id, "prompt": "owl"})))
    assert loose.correlation_id == request_id
