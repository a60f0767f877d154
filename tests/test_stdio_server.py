import asyncio
import base64
import io
import json
import os
from pathlib import Path

import pytest

from backend_stub import PNG_BASE64, FakeDrawThings, fast_config
from mcp_bridge.dedup import DuplicateSuppressor
from mcp_bridge.stdio_server import BridgeServer


def _lines(stdout: io.StringIO):
    return [json.loads(line) for line in stdout.getvalue().splitlines() if line.strip()]


async def _run(config, text, **kwargs):
    stdout = io.StringIO()
    server = BridgeServer(config, stdin=io.StringIO(text), stdout=stdout, **kwargs)
    assert await asyncio.wait_for(server.run(), timeout=10) == 0
    return server, stdout


@pytest.mark.asyncio
async def test_plain_text_prompt_produces_image_and_saved_file(tmp_path):
    async with FakeDrawThings() as backend:
        _, stdout = await _run(fast_config(backend.port, images_dir=str(tmp_path)), "A red bicycle\n")

    (message,) = _lines(stdout)
    assert message["jsonrpc"] == "2.0"
    content = message["result"]["content"][0]
    assert content == {"type": "image", "data": PNG_BASE64, "mimeType": "image/png"}
    saved = Path(message["result"]["imageSavedPath"])
    assert saved.parent == tmp_path
    assert saved.read_bytes() == base64.b64decode(PNG_BASE64)
    assert backend.generate_calls[0]["prompt"] == "A red bicycle"


@pytest.mark.asyncio
async def test_loose_json_parameters_reach_backend(tmp_path):
    async with FakeDrawThings() as backend:
        _, stdout = await _run(
            fast_config(backend.port, images_dir=str(tmp_path)),
            '{"prompt": "cat", "seed": 42}\n',
        )

    assert "result" in _lines(stdout)[0]
    sent = backend.generate_calls[0]
    assert sent["prompt"] == "cat"
    assert sent["seed"] == 42
    assert sent["width"] == 512


@pytest.mark.asyncio
async def test_envelope_request_echoes_id(tmp_path):
    envelope = {
        "jsonrpc": "2.0",
        "id": "req-7",
        "method": "mcp.invoke",
        "params": {"tool": "generateImage", "parameters": {"prompt": "a lighthouse", "steps": 8}},
    }
    async with FakeDrawThings() as backend:
        _, stdout = await _run(fast_config(backend.port, images_dir=str(tmp_path)), json.dumps(envelope) + "\n")

    (message,) = _lines(stdout)
    assert message["id"] == "req-7"
    assert backend.generate_calls[0]["steps"] == 8


@pytest.mark.asyncio
async def test_unknown_tool_is_rejected_without_generation(tmp_path):
    envelope = {"jsonrpc": "2.0", "id": "x1", "method": "mcp.invoke", "params": {"tool": "upscale"}}
    async with FakeDrawThings() as backend:
        _, stdout = await _run(fast_config(backend.port, images_dir=str(tmp_path)), json.dumps(envelope) + "\n")

    (message,) = _lines(stdout)
    assert message["id"] == "x1"
    assert message["error"]["code"] == -32601
    assert "upscale" in message["error"]["data"]
    assert backend.generate_calls == []


@pytest.mark.asyncio
async def test_repeated_envelope_id_answers_once(tmp_path):
    envelope = json.dumps(
        {
            "jsonrpc": "2.0",
            "id": "same",
            "method": "mcp.invoke",
            "params": {"tool": "generateImage", "parameters": {"prompt": "a fox"}},
        }
    )
    async with FakeDrawThings() as backend:
        _, stdout = await _run(fast_config(backend.port, images_dir=str(tmp_path)), f"{envelope}\n{envelope}\n")

    assert len(_lines(stdout)) == 1
    assert len(backend.generate_calls) == 1


@pytest.mark.asyncio
async def test_same_prompt_in_quick_succession_generates_once(tmp_path):
    async with FakeDrawThings() as backend:
        _, stdout = await _run(
            fast_config(backend.port, images_dir=str(tmp_path)),
            "A red bicycle\n  a RED bicycle \n",
        )

    assert len(_lines(stdout)) == 1
    assert len(backend.generate_calls) == 1


@pytest.mark.asyncio
async def test_same_prompt_after_window_generates_again(tmp_path):
    now = [100.0]
    suppressor = DuplicateSuppressor(window_seconds=2.0, clock=lambda: now[0])
    stdout = io.StringIO()
    async with FakeDrawThings() as backend:
        server = BridgeServer(
            fast_config(backend.port, images_dir=str(tmp_path)),
            stdin=io.StringIO(""),
            stdout=stdout,
            suppressor=suppressor,
        )
        first = server.handle_line("A red bicycle")
        await first
        now[0] += 3.0
        second = server.handle_line("A red bicycle")
        await second

    assert len(backend.generate_calls) == 2
    assert len(_lines(stdout)) == 2
    assert server.lifecycle.completed == 2


@pytest.mark.asyncio
async def test_retry_flag_bypasses_prompt_window(tmp_path):
    async with FakeDrawThings() as backend:
        _, stdout = await _run(
            fast_config(backend.port, images_dir=str(tmp_path)),
            'a fox\n{"id": "retry-1", "prompt": "a fox"}\n',
        )

    assert len(backend.generate_calls) == 2
    assert [m["id"] for m in _lines(stdout)].count("retry-1") == 1


@pytest.mark.asyncio
async def test_non_invoke_envelope_is_forwarded_verbatim(tmp_path):
    raw = '{"jsonrpc":"2.0","id":"p1","method":"ping"}'
    async with FakeDrawThings() as backend:
        _, stdout = await _run(fast_config(backend.port, images_dir=str(tmp_path)), raw + "\n")

    assert stdout.getvalue() == raw + "\n"
    assert backend.generate_calls == []


@pytest.mark.asyncio
async def test_loose_pass_through_line_is_completed_before_forwarding(tmp_path):
    async with FakeDrawThings() as backend:
        _, stdout = await _run(fast_config(backend.port, images_dir=str(tmp_path)), '{"method":"ping","params":{}}\n')

    (message,) = _lines(stdout)
    assert message["jsonrpc"] == "2.0"
    assert message["method"] == "ping"
    assert message["id"]
    assert backend.generate_calls == []


@pytest.mark.asyncio
async def test_numeric_ids_are_echoed_with_their_type(tmp_path):
    image = json.dumps(
        {
            "jsonrpc": "2.0",
            "id": 7,
            "method": "mcp.invoke",
            "params": {"tool": "generateImage", "parameters": {"prompt": "an owl"}},
        }
    )
    unknown = json.dumps({"jsonrpc": "2.0", "id": 0, "method": "mcp.invoke", "params": {"tool": "upscale"}})
    async with FakeDrawThings() as backend:
        _, stdout = await _run(fast_config(backend.port, images_dir=str(tmp_path)), f"{image}\n{unknown}\n")

    by_id = {message["id"]: message for message in _lines(stdout)}
    assert set(by_id) == {7, 0}
    assert "result" in by_id[7]
    assert by_id[0]["error"]["code"] == -32601


@pytest.mark.asyncio
async def test_malformed_json_reports_parse_error(tmp_path):
    async with FakeDrawThings() as backend:
        _, stdout = await _run(fast_config(backend.port, images_dir=str(tmp_path)), "{bad\n")

    (message,) = _lines(stdout)
    assert message["error"]["code"] == -32700
    assert isinstance(message["id"], str) and message["id"]
    assert backend.generate_calls == []


@pytest.mark.asyncio
async def test_backend_client_error_is_reported(tmp_path):
    async with FakeDrawThings(responses=[(422, {"detail": "bad sampler"})]) as backend:
        _, stdout = await _run(fast_config(backend.port, images_dir=str(tmp_path)), "a castle\n")

    (message,) = _lines(stdout)
    assert message["error"]["code"] == -32003
    assert "bad sampler" in message["error"]["data"]
    assert list(tmp_path.iterdir()) == []


class _ExplodingClient:
    async def generate(self, parameters):
        raise RuntimeError("boom")


@pytest.mark.asyncio
async def test_unexpected_client_error_becomes_internal_error(tmp_path):
    server, stdout = await _run(
        fast_config(1, images_dir=str(tmp_path)),
        '{"jsonrpc": "2.0", "id": "r1", "method": "mcp.invoke", '
        '"params": {"tool": "generateImage", "parameters": {"prompt": "x"}}}\n',
        client=_ExplodingClient(),
    )

    (message,) = _lines(stdout)
    assert message["id"] == "r1"
    assert message["error"]["code"] == -32603
    assert "boom" in message["error"]["data"]
    assert server.lifecycle.in_flight == 0


@pytest.mark.asyncio
async def test_idle_standalone_bridge_exits_after_delay(tmp_path):
    read_fd, write_fd = os.pipe()
    stdout = io.StringIO()
    try:
        async with FakeDrawThings() as backend:
            config = fast_config(
                backend.port,
                images_dir=str(tmp_path),
                pipe_mode=False,
                exit_delay_seconds=0.05,
            )
            with open(read_fd, "rb", buffering=0) as stdin:
                os.write(write_fd, b"A red bicycle\n")
                server = BridgeServer(config, stdin=stdin, stdout=stdout)
                assert await asyncio.wait_for(server.run(), timeout=10) == 0
    finally:
        os.close(write_fd)

    assert server.stopped
    assert len(_lines(stdout)) == 1


class _BrokenStdout(io.StringIO):
    def write(self, text):
        raise BrokenPipeError(32, "Broken pipe")


@pytest.mark.asyncio
async def test_closed_stdout_stops_the_bridge(tmp_path):
    read_fd, write_fd = os.pipe()
    try:
        with open(read_fd, "rb", buffering=0) as stdin:
            os.write(write_fd, b"{bad\n")
            server = BridgeServer(fast_config(1, images_dir=str(tmp_path)), stdin=stdin, stdout=_BrokenStdout())
            assert await asyncio.wait_for(server.run(), timeout=10) == 0
    finally:
        os.close(write_fd)

    assert server.stopped
    assert server.emitter.pipe_closed
