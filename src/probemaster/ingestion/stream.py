"""Byte-stream line reader.

Reads newline-delimited UTF-8 text from a byte transport (a serial bridge,
a TCP socket...) and hands complete lines to a callback, strictly in order,
yielding to the event loop between lines so bursty input cannot starve the
poll loops.
"""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import logging
import re
from collections.abc import Awaitable, Callable
from typing import Protocol

from probemaster.exceptions import ProbeMasterStreamBusyError

_logger = logging.getLogger(__name__)

_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")

STATUS_CONNECTED = "Connected"
STATUS_DISCONNECTED = "Disconnected"
STATUS_BUSY = "Port already in use"


class ByteTransport(Protocol):
    """Structural interface for a bidirectional byte stream (allows test doubles)."""

    @property
    def is_open(self) -> bool: ...

    @property
    def locked(self) -> bool:
        """Another reader currently holds the stream."""
        ...

    async def open(self) -> None: ...

    async def close(self) -> None: ...

    async def read(self) -> bytes:
        """Next chunk of bytes; ``b""`` at end of stream."""
        ...

    async def write(self, data: bytes) -> None: ...


class TcpByteTransport:
    """:class:`ByteTransport` over a TCP connection, e.g. a serial-to-network bridge."""

    def __init__(self, host: str, port: int, *, chunk_size: int = 4096) -> None:
        self._host = host
        self._port = port
        self._chunk_size = chunk_size
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None

    @property
    def is_open(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    @property
    def locked(self) -> bool:
        # Each instance owns its own connection.
        return False

    async def open(self) -> None:
        self._reader, self._writer = await asyncio.open_connection(self._host, self._port)
        _logger.info("Connected to %s:%s", self._host, self._port)

    async def close(self) -> None:
        writer = self._writer
        self._reader = None
        self._writer = None
        if writer is not None:
            writer.close()
            with contextlib.suppress(ConnectionError):
                await writer.wait_closed()

    async def read(self) -> bytes:
        if self._reader is None:
            return b""
        return await self._reader.read(self._chunk_size)

    async def write(self, data: bytes) -> None:
        if self._writer is None:
            raise ConnectionError("transport is not open")
        self._writer.write(data)
        await self._writer.drain()


class LineSplitter:
    """Incremental decoder that splits on CR, LF or CRLF.

    Invalid UTF-8 is replaced rather than raised. Blank lines are dropped;
    an unterminated tail stays buffered until more data arrives or
    :meth:`flush` is called at close.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[str]:
        self._buffer += self._decoder.decode(chunk)
        *complete, self._buffer = _LINE_BREAK_RE.split(self._buffer)
        return [line.strip() for line in complete if line.strip()]

    def flush(self) -> str | None:
        tail = (self._buffer + self._decoder.decode(b"", final=True)).strip()
        self._buffer = ""
        return tail or None


class StreamReader:
    """Owns the read loop over one :class:`ByteTransport`.

    Parameters
    ----------
    transport : ByteTransport
        Stream to read from and write commands to.
    on_line : callable
        ``await on_line(line)`` per complete line. Exceptions are logged and
        the loop continues with the next line.
    yield_interval : float
        Sleep between lines.
    retries, retry_delay
        Bounded wait while the transport is locked by another reader.
    on_status : callable, optional
        Receives user-facing status text (``"Connected"``,
        ``"Port already in use"``...).
    """

    def __init__(
        self,
        transport: ByteTransport,
        on_line: Callable[[str], Awaitable[None]],
        *,
        yield_interval: float = 0.0,
        retries: int = 3,
        retry_delay: float = 0.2,
        on_status: Callable[[str], None] | None = None,
    ) -> None:
        self._transport = transport
        self._on_line = on_line
        self._yield_interval = yield_interval
        self._retries = retries
        self._retry_delay = retry_delay
        self._on_status = on_status
        self._task: asyncio.Task[None] | None = None
        self._write_lock = asyncio.Lock()
        self.status: str = STATUS_DISCONNECTED

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _set_status(self, status: str) -> None:
        self.status = status
        if self._on_status is not None:
            try:
                self._on_status(status)
            except Exception:
                _logger.exception("Status listener failed")

    async def start(self) -> None:
        """Open the transport and start reading.

        Raises
        ------
        ProbeMasterStreamBusyError
            The transport stayed locked through every retry.
        """
        await self._cancel_reader()
        for attempt in range(self._retries + 1):
            if not self._transport.locked:
                break
            if attempt == self._retries:
                self._set_status(STATUS_BUSY)
                raise ProbeMasterStreamBusyError(STATUS_BUSY)
            _logger.debug("Stream locked, retrying in %.1fs", self._retry_delay)
            await asyncio.sleep(self._retry_delay)

        if not self._transport.is_open:
            await self._transport.open()
        self._set_status(STATUS_CONNECTED)
        self._task = asyncio.create_task(self._read_loop(), name="probemaster-stream-reader")

    async def stop(self) -> None:
        """Cancel the reader first, then close the transport."""
        await self._cancel_reader()
        try:
            await self._transport.close()
        except Exception:
            _logger.warning("Closing the byte transport failed", exc_info=True)
        self._set_status(STATUS_DISCONNECTED)

    async def _cancel_reader(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def send_command(self, command: str) -> None:
        """Write ``command`` terminated by CRLF; writes are serialized."""
        async with self._write_lock:
            await self._transport.write(f"{command}\r\n".encode())
        _logger.debug("Sent command %r", command)

    async def _deliver(self, line: str) -> None:
        try:
            await self._on_line(line)
        except Exception:
            _logger.warning("Line handler failed for %r", line, exc_info=True)

    async def _read_loop(self) -> None:
        splitter = LineSplitter()
        try:
            while True:
                chunk = await self._transport.read()
                if not chunk:
                    break
                for line in splitter.feed(chunk):
                    await self._deliver(line)
                    await asyncio.sleep(self._yield_interval)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            _logger.warning("Stream read failed: %s", exc)
            self._set_status(f"Read error: {exc}")
            return
        tail = splitter.flush()
        if tail is not None:
            await self._deliver(tail)
        self._set_status(STATUS_DISCONNECTED)
