import asyncio
import io
import os

import pytest

from mcp_bridge.line_reader import LineReader


@pytest.mark.asyncio
async def test_reads_lines_from_in_memory_stream():
    reader = LineReader(io.StringIO("first\r\n\nsecond"))
    assert await reader.readline() == "first"
    assert await reader.readline() == ""
    assert await reader.readline() == "second"
    assert await reader.readline() is None


@pytest.mark.asyncio
async def test_reads_lines_from_a_pipe():
    read_fd, write_fd = os.pipe()
    os.write(write_fd, "a red bicycle\n{\"prompt\": \"café\"}\n".encode("utf-8"))
    os.close(write_fd)
    with open(read_fd, "rb", buffering=0) as stream:
        reader = LineReader(stream)
        assert await reader.readline() == "a red bicycle"
        assert await reader.readline() == '{"prompt": "café"}'
        assert await reader.readline() is None


@pytest.mark.asyncio
async def test_over_long_line_is_skipped_even_when_split_across_writes():
    read_fd, write_fd = os.pipe()
    with open(read_fd, "rb", buffering=0) as stream:
        reader = LineReader(stream, limit=1024)
        pending = asyncio.ensure_future(reader.readline())
        os.write(write_fd, b'{"prompt": "' + b"x" * 3000)
        await asyncio.sleep(0.05)
        os.write(write_fd, b'TAIL-OF-LONG-LINE"}\nhello\n')
        os.close(write_fd)

        assert await asyncio.wait_for(pending, timeout=5) == "hello"
        assert await reader.readline() is None


@pytest.mark.asyncio
async def test_over_long_complete_line_is_skipped():
    read_fd, write_fd = os.pipe()
    os.write(write_fd, b"y" * 3000 + b"\nok\n")
    os.close(write_fd)
    with open(read_fd, "rb", buffering=0) as stream:
        reader = LineReader(stream, limit=1024)
        assert await reader.readline() == "ok"
        assert await reader.readline() is None


@pytest.mark.asyncio
async def test_over_long_line_is_skipped_in_thread_mode():
    reader = LineReader(io.StringIO("z" * 50 + "\nshort\n"), limit=10)
    assert await reader.readline() == "short"
    assert await reader.readline() is None
