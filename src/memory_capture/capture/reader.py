"""Hook payload reader.

The calling tool environment writes one JSON object to stdin and may or may
not close the pipe promptly, so reading is bounded by a hard deadline.
"""

from __future__ import annotations

import asyncio
import codecs
import json
import os
import stat
import sys
from typing import IO, Any, Protocol

from memory_capture.capture.models import HookEvent, event_from_payload
from memory_capture.constants import STDIN_TIMEOUT_SECONDS
from memory_capture.logging import get_logger

log = get_logger("memory_capture.capture.reader")

READ_CHUNK_SIZE = 64 * 1024


class ByteStream(Protocol):
    """Anything with an awaitable ``read`` that returns b"" at EOF."""

    async def read(self, n: int = -1) -> bytes: ...


class StdinStream(ByteStream, Protocol):
    """A ``ByteStream`` that owns an OS-level resource until closed."""

    def close(self) -> None: ...


class _EmptyStream:
    """Stands in for a closed, detached, or interactive stdin."""

    async def read(self, n: int = -1) -> bytes:
        return b""

    def close(self) -> None:
        pass


class _FileStream:
    """Blocking reads in a worker thread.

    Used for regular files and character devices such as /dev/null, which
    the event loop cannot watch.
    """

    def __init__(self, raw: IO[bytes]) -> None:
        self._raw = raw

    async def read(self, n: int = -1) -> bytes:
        return await asyncio.to_thread(self._raw.read, n)

    def close(self) -> None:
        self._raw.close()


class _PipeStream:
    """A pipe or socket read through an event loop transport."""

    def __init__(self, reader: asyncio.StreamReader, transport: asyncio.ReadTransport) -> None:
        self._reader = reader
        self._transport = transport

    async def read(self, n: int = -1) -> bytes:
        return await self._reader.read(n)

    def close(self) -> None:
        self._transport.close()


def _stdin_fd(stdin: Any) -> int | None:
    """Return the descriptor behind ``stdin``, or None if there is no usable one."""
    if stdin is None:
        return None
    try:
        if stdin.isatty():
            return None
        return stdin.fileno()
    except (AttributeError, OSError, ValueError):
        return None


async def open_stdin_reader() -> StdinStream:
    """Wrap the process stdin as an async byte stream.

    Pipes and sockets are watched by the event loop. Regular files and
    devices are read in a worker thread. A missing or terminal stdin gives
    an empty stream. The descriptor itself is never closed; callers close
    the returned stream to release the wrapper.
    """
    fd = _stdin_fd(sys.stdin)
    if fd is None:
        return _EmptyStream()
    try:
        mode = os.fstat(fd).st_mode
    except OSError:
        return _EmptyStream()

    if not (stat.S_ISFIFO(mode) or stat.S_ISSOCK(mode)):
        return _FileStream(open(fd, "rb", closefd=False))

    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    pipe = open(fd, "rb", buffering=0, closefd=False)
    transport, _ = await loop.connect_read_pipe(
        lambda: asyncio.StreamReaderProtocol(reader), pipe
    )
    return _PipeStream(reader, transport)


async def read_stdin(stream: ByteStream, timeout: float = STDIN_TIMEOUT_SECONDS) -> str:
    """Accumulate UTF-8 text until EOF or until ``timeout`` seconds pass.

    Whatever has arrived when the deadline hits is returned; a slow or
    never-closing writer costs at most ``timeout`` seconds.

    Returns:
        The trimmed text, or an empty string if nothing was read.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    chunks: list[str] = []

    async def _accumulate() -> None:
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                chunks.append(decoder.decode(b"", final=True))
                return
            chunks.append(decoder.decode(chunk))

    try:
        await asyncio.wait_for(_accumulate(), timeout=timeout)
    except TimeoutError:
        log.debug("stdin_read_deadline", timeout=timeout, received=sum(map(len, chunks)))

    return "".join(chunks).strip()


def decode_event(raw: str) -> HookEvent | None:
    """Decode a raw hook payload.

    Returns None for empty input, invalid JSON, or anything that is not a
    JSON object. Malformed input is expected and not reported.
    """
    if not raw:
        return None
    try:
        payload = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    return event_from_payload(payload)
