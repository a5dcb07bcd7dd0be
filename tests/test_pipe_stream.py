"""
Tests for tailing named pipes.

Covers:
  - Opening with no writer present
  - Writer stalls longer than the read deadline
  - EOF when the last writer closes
  - Partial-line flush on stop and on EOF
  - Shared shutdown
  - Read errors
"""

from __future__ import annotations

import asyncio
import os

import pytest

pytestmark = pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="named pipes need POSIX")

READ_TIMEOUT = 0.02


@pytest.fixture
def pipe_env(env):
    """Same as ``env`` but woken on a short timer instead of by hand."""
    from tailer.waker import TimedWaker

    env.waker = TimedWaker(0.01)
    return env


@pytest.fixture
def fifo(tmp_path):
    path = tmp_path / "app.fifo"
    os.mkfifo(path)
    return path


def _start(env, path):
    from tailer.factory import create_pipe_stream

    return create_pipe_stream(
        env.shutdown, env.group, env.waker, str(path), None, env.lines,
        metrics=env.metrics, read_timeout=READ_TIMEOUT,
    )


def _open_writer(path):
    return os.open(path, os.O_WRONLY | os.O_NONBLOCK)


async def _next_line(env, timeout=5.0):
    line = await asyncio.wait_for(env.lines.get(), timeout=timeout)
    return line.line


class TestPipeStream:
    @pytest.mark.asyncio
    async def test_opens_without_writer(self, pipe_env, fifo):
        stream = _start(pipe_env, fifo)
        await asyncio.sleep(10 * READ_TIMEOUT)
        assert not stream.is_complete()

        stream.stop()
        await asyncio.wait_for(pipe_env.group.wait(), timeout=5.0)
        assert stream.is_complete()

    @pytest.mark.asyncio
    async def test_resumes_after_writer_stall(self, pipe_env, fifo):
        from monitoring.metrics_collector import LOG_ERRORS

        stream = _start(pipe_env, fifo)
        writer = _open_writer(fifo)
        try:
            os.write(writer, b"first\n")
            assert await _next_line(pipe_env) == "first"

            # Quiet for several read deadlines.
            await asyncio.sleep(10 * READ_TIMEOUT)
            assert not stream.is_complete()

            os.write(writer, b"second\n")
            assert await _next_line(pipe_env) == "second"
        finally:
            os.close(writer)

        await asyncio.wait_for(pipe_env.group.wait(), timeout=5.0)
        assert stream.is_complete()
        assert pipe_env.metrics.get(LOG_ERRORS, str(fifo)) == 0

    @pytest.mark.asyncio
    async def test_eof_flushes_partial_line(self, pipe_env, fifo):
        stream = _start(pipe_env, fifo)
        writer = _open_writer(fifo)
        os.write(writer, b"a\nb")
        os.close(writer)

        await asyncio.wait_for(pipe_env.group.wait(), timeout=5.0)

        assert [l.line for l in pipe_env.lines.drain_nowait()] == ["a", "b"]
        assert stream.is_complete()

    @pytest.mark.asyncio
    async def test_stop_flushes_partial_line(self, pipe_env, fifo):
        stream = _start(pipe_env, fifo)
        created = stream.last_read_time()
        writer = _open_writer(fifo)
        try:
            os.write(writer, b"tail")
            while stream.last_read_time() == created:
                await asyncio.sleep(READ_TIMEOUT)

            stream.stop()
            stream.stop()
            await asyncio.wait_for(pipe_env.group.wait(), timeout=5.0)
        finally:
            os.close(writer)

        assert [l.line for l in pipe_env.lines.drain_nowait()] == ["tail"]
        assert stream.is_complete()

    @pytest.mark.asyncio
    async def test_shared_shutdown_completes_stream(self, pipe_env, fifo):
        stream = _start(pipe_env, fifo)
        pipe_env.shutdown.set()
        await asyncio.wait_for(pipe_env.group.wait(), timeout=5.0)
        assert stream.is_complete()

    @pytest.mark.asyncio
    async def test_regular_file_rejected(self, pipe_env, tmp_path):
        from core.exceptions import UnsupportedSourceError

        path = tmp_path / "plain.log"
        path.write_text("")
        with pytest.raises(UnsupportedSourceError):
            _start(pipe_env, path)

    @pytest.mark.asyncio
    async def test_read_error_ends_stream(self, pipe_env, fifo, monkeypatch):
        from monitoring.metrics_collector import LOG_ERRORS
        from tailer.pipe_stream import PipeStream

        chunks = iter([b"a\nb"])

        def flaky_read(self, fh):
            for chunk in chunks:
                return chunk
            raise OSError(5, "Input/output error")

        monkeypatch.setattr(PipeStream, "_read_with_deadline", flaky_read)
        stream = _start(pipe_env, fifo)
        await asyncio.wait_for(pipe_env.group.wait(), timeout=5.0)

        assert stream.is_complete()
        assert [l.line for l in pipe_env.lines.drain_nowait()] == ["a", "b"]
        assert pipe_env.metrics.get(LOG_ERRORS, str(fifo)) == 1
