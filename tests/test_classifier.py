from mcp_bridge.classifier import classify_line, is_envelope
from mcp_bridge.transport_models import Envelope, LooseJSON, PlainText


def test_full_jsonrpc_request_is_an_envelope():
    line = '{"jsonrpc":"2.0","id":"a1","method":"mcp.invoke","params":{"tool":"generateImage"}}'
    classified = classify_line(line)
    assert isinstance(classified, Envelope)
    assert classified.request_id == "a1"
    assert classified.method == "mcp.invoke"
    assert classified.raw == line


def test_json_missing_envelope_fields_is_loose():
    assert isinstance(classify_line('{"prompt": "cat"}'), LooseJSON)
    assert isinstance(classify_line('{"jsonrpc":"2.0","method":"mcp.invoke"}'), LooseJSON)
    assert isinstance(classify_line('{"jsonrpc":"1.0","id":"1","method":"x"}'), LooseJSON)
    assert isinstance(classify_line("[1, 2, 3]"), LooseJSON)
    assert isinstance(classify_line("42"), LooseJSON)


def test_non_json_is_plain_text():
    classified = classify_line("A red bicycle")
    assert isinstance(classified, PlainText)
    assert classified.text == "A red bicycle"
    assert isinstance(classify_line("{broken"), PlainText)


def test_is_envelope_requires_id_and_method():
    assert is_envelope({"jsonrpc": "2.0", "id": "1", "method": "m"})
    assert is_envelope({"jsonrpc": "2.0", "id": 0, "method": "m"})
    assert not is_envelope({"jsonrpc": "2.0", "id": None, "method": "m"})
    assert not is_envelope({"jsonrpc": "2.0", "id": True, "method": "m"})
    assert not is_envelope({"jsonrpc": "2.0", "id": "", "method": "m"})
    assert not is_envelope({"jsonrpc": "2.0", "id": "1", "method": None})
    assert not is_envelope(["jsonrpc", "2.0"])


def test_numeric_envelope_id_keeps_its_type():
    classified = classify_line('{"jsonrpc":"2.0","id":7,"method":"mcp.invoke"}')
    assert isinstance(classified, Envelope)
    assert classified.request_id == 7
