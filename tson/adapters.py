"""
Source and sink adapters.

Every decode origin is reduced to a single str before a codec sees it,
and every encode destination to a single Sink (anything with a
``write(str)`` method). Byte boundaries, in both directions, use UTF-8
without a byte-order mark: no BOM is written, and a BOM in the input is
neither required nor stripped.

Decode origins accepted by to_text():

- None and str (returned as is)
- bytes, bytearray, memoryview
- text streams (io.TextIOBase, or any object whose read() returns str)
- byte streams (io.BufferedIOBase, io.RawIOBase, or any object whose
  read() returns bytes)
- httpx.Response (body drained, response released)
- httpx.Request (executed through a Transport, then as above)

Caller-supplied streams are drained but never rewound or closed.
"""

from __future__ import annotations

import codecs
import io
import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Protocol

import httpx

from tson.transport import Transport

logger = logging.getLogger(__name__)

UTF8 = "utf-8"


class Sink(Protocol):
    """An incremental write destination."""

    def write(self, text: str) -> Any:
        ...


# =============================================================================
# Byte Streams
# =============================================================================


class Utf8StreamSink:
    """
    Sink that encodes text to UTF-8 (no BOM) onto a binary stream.

    The wrapped stream is flushed by flush() but never closed.
    """

    def __init__(self, stream, encoding: str = UTF8):
        self.stream = stream
        self._encoder = codecs.getincrementalencoder(encoding)()

    def write(self, text: str) -> int:
        data = self._encoder.encode(text)
        if data:
            self.stream.write(data)
        return len(text)

    def flush(self) -> None:
        tail = self._encoder.encode("", final=True)
        if tail:
            self.stream.write(tail)
        flush = getattr(self.stream, "flush", None)
        if flush is not None:
            flush()


class WriterSink:
    """
    Sink over a duck-typed writer that may take either str or bytes.

    The first write tries str. If the writer rejects it with TypeError,
    this and every later write goes through a Utf8StreamSink instead.
    """

    def __init__(self, writer, encoding: str = UTF8):
        self.writer = writer
        self.encoding = encoding
        self._byte_sink: Optional[Utf8StreamSink] = None
        self._accepts_text = False

    def write(self, text: str) -> int:
        if self._byte_sink is not None:
            return self._byte_sink.write(text)
        if self._accepts_text:
            self.writer.write(text)
            return len(text)
        try:
            self.writer.write(text)
        except TypeError:
            logger.debug("%s rejected str, writing UTF-8 bytes", type(self.writer).__name__)
            self._byte_sink = Utf8StreamSink(self.writer, self.encoding)
            return self._byte_sink.write(text)
        self._accepts_text = True
        return len(text)

    def flush(self) -> None:
        if self._byte_sink is not None:
            self._byte_sink.flush()

class ResponseBodyStream(io.RawIOBase):
    """
    Read-only raw stream over the decoded body of an httpx.Response.

    Closing the stream closes the underlying chunk iterator. close() is
    idempotent, so the body is released exactly once.
    """

    def __init__(self, response: httpx.Response):
        super().__init__()
        self._chunks = response.iter_bytes()
        self._pending = b""

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        while not self._pending:
            try:
                self._pending = next(self._chunks)
            except StopIteration:
                return 0
        size = min(len(buffer), len(self._pending))
        buffer[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        return size

    def close(self) -> None:
        if not self.closed:
            self._chunks.close()
            self._pending = b""
        super().close()


def _is_byte_stream(obj) -> bool:
    return isinstance(obj, (io.BufferedIOBase, io.RawIOBase))


# =============================================================================
# Decode Origins
# =============================================================================


def read_text_stream(reader) -> str:
    """Drain a text stream from its current position."""
    return reader.read()


def read_byte_stream(stream, encoding: str = UTF8) -> str:
    """Drain a byte stream from its current position and decode it."""
    data = stream.read()
    if data is None:
        # Non-blocking raw streams return None when nothing is available
        data = b""
    return bytes(data).decode(encoding)


@contextmanager
def response_body(response: httpx.Response) -> Iterator[ResponseBodyStream]:
    """Yield the body of a response as a byte stream, closed on exit."""
    body = ResponseBodyStream(response)
    try:
        yield body
    finally:
        body.close()


def read_response(response: httpx.Response, encoding: str = UTF8) -> str:
    """
    Drain and decode a response body, then release the response.

    The body is released before the response, and each exactly once,
    even if reading or decoding raises.
    """
    try:
        with response_body(response) as body:
            return read_byte_stream(body, encoding)
    finally:
        response.close()


def read_request(
    request: httpx.Request,
    transport: Transport,
    encoding: str = UTF8,
) -> str:
    """Execute a request through a transport and return its body text."""
    with transport.open_response(request) as response:
        with response_body(response) as body:
            text = read_byte_stream(body, encoding)
    logger.debug("Read %d characters from %s %s", len(text), request.method, request.url)
    return text


def to_text(
    origin,
    transport: Optional[Transport] = None,
    encoding: str = UTF8,
) -> Optional[str]:
    """
    Reduce a decode origin to its JSON text.

    Args:
        origin: Any of the origins listed in the module docstring.
        transport: Required when origin is an httpx.Request.
        encoding: Encoding for byte origins (always BOM-less UTF-8 in
            practice, see JsonConfig).

    Returns:
        The text payload, or None if origin is None.

    Raises:
        TypeError: If origin is not a supported origin.
    """
    if origin is None or isinstance(origin, str):
        return origin
    if isinstance(origin, (bytes, bytearray, memoryview)):
        return bytes(origin).decode(encoding)
    if isinstance(origin, httpx.Response):
        return read_response(origin, encoding)
    if isinstance(origin, httpx.Request):
        if transport is None:
            raise TypeError("Reading an httpx.Request requires a transport")
        return read_request(origin, transport, encoding)
    if isinstance(origin, io.TextIOBase):
        return read_text_stream(origin)
    if _is_byte_stream(origin):
        return read_byte_stream(origin, encoding)

    # Duck-typed readers: decide by what read() returns
    read = getattr(origin, "read", None)
    if callable(read):
        data = read()
        if isinstance(data, str):
            return data
        if isinstance(data, (bytes, bytearray)):
            return bytes(data).decode(encoding)
        raise TypeError(
            f"{type(origin).__name__}.read() returned {type(data).__name__}, "
            "expected str or bytes"
        )

    raise TypeError(f"Cannot read JSON text from {type(origin).__name__}")


# =============================================================================
# Encode Destinations
# =============================================================================


@contextmanager
def open_sink(destination=None, encoding: str = UTF8) -> Iterator[Sink]:
    """
    Yield a Sink for an encode destination.

    - None: a fresh io.StringIO; read the result with getvalue().
    - byte stream: a Utf8StreamSink, flushed when the block exits normally.
    - text stream: the stream itself.
    - any other object with write(): a WriterSink, which sends str or
      UTF-8 bytes depending on what the object accepts.

    Destinations are never closed.

    Raises:
        TypeError: If destination cannot be written to.
    """
    if destination is None:
        yield io.StringIO()
        return
    if _is_byte_stream(destination):
        sink = Utf8StreamSink(destination, encoding)
        yield sink
        sink.flush()
        return
    if isinstance(destination, io.TextIOBase):
        yield destination
        return
    if callable(getattr(destination, "write", None)):
        sink = WriterSink(destination, encoding)
        yield sink
        sink.flush()
        return
    raise TypeError(f"Cannot write JSON text to {type(destination).__name__}")


__all__ = [
    "ResponseBodyStream",
    "Sink",
    "Utf8StreamSink",
    "WriterSink",
    "open_sink",
    "read_byte_stream",
    "read_request",
    "read_response",
    "read_text_stream",
    "response_body",
    "to_text",
]
