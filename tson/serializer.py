"""
Serialization dispatch for the tson library.

JsonSerializer is the single entry point that every public function goes
through. For each call it:

1. Short-circuits absent values: None and callables are never written,
   empty text is never parsed.
2. Classifies the declared type (see tson.classify). Polymorphic types
   (Any, object, abstract classes, Protocols, unions) are replaced by the
   runtime type of the value, inside a dynamic-write scope
   (see tson.context).
3. Adapts the origin or destination to a str payload or a Sink
   (see tson.adapters).
4. Delegates to the codec for the actual encoding or decoding
   (see tson.codec).

Decoding never enters a dynamic-write scope. It only ever uses the type
the caller supplied; reading a discriminator back is the codec's job.
"""

from __future__ import annotations

import io
import logging
import threading
from typing import Any, Optional

import httpx

from tson.adapters import (
    Sink,
    Utf8StreamSink,
    open_sink,
    read_byte_stream,
    read_request,
    read_response,
    read_text_stream,
    to_text,
)
from tson.classify import classify, is_encodable, zero_value
from tson.codec import Codec, PydanticCodec
from tson.config import DEFAULT_CONFIG, JsonConfig
from tson.context import WriteContext, current_context, dynamic_write_scope
from tson.transport import HttpTransport, Transport

logger = logging.getLogger(__name__)


class JsonSerializer:
    """
    Dispatches values to a codec across strings, streams and HTTP bodies.

    A serializer is stateless between calls apart from the codec's caches,
    and is safe to share between threads.

    Attributes:
        config: The JsonConfig shared with the default codec and transport.
        codec: The Codec that resolves read and write functions.
        transport: The Transport used by deserialize_request().

    Example:
        >>> serializer = JsonSerializer()
        >>> serializer.serialize_to_string({"a": 1})
        '{"a":1}'
        >>> serializer.deserialize_from_string('{"a":1}', dict[str, int])
        {'a': 1}

    Polymorphic Example:
        >>> text = serializer.serialize_to_string(Circle(radius=2.0), Shape)
        >>> text
        '{"__type":"shapes.Circle","radius":2.0}'
        >>> serializer.deserialize_from_string(text, Shape)
        Circle(radius=2.0)
    """

    def __init__(
        self,
        codec: Optional[Codec] = None,
        transport: Optional[Transport] = None,
        config: Optional[JsonConfig] = None,
    ):
        self.config = config or DEFAULT_CONFIG
        self.codec = codec or PydanticCodec(self.config)
        self.transport = transport or HttpTransport(config=self.config)
        self._owns_transport = transport is None

    def close(self) -> None:
        """Close the transport if this serializer created it."""
        if self._owns_transport:
            self.transport.close()

    def __enter__(self) -> "JsonSerializer":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # =========================================================================
    # Encoding
    # =========================================================================

    def write(self, sink: Sink, value, tp=None) -> bool:
        """
        Write a value to a sink.

        Args:
            sink: Any object with a write(str) method.
            value: The value to write.
            tp: The declared type of value. If omitted, the runtime type
                is used directly. If polymorphic, the runtime type is used
                inside a dynamic-write scope.

        Returns:
            False if the value is not encodable and nothing was written.
        """
        if not is_encodable(value):
            return False

        if tp is None:
            self._dispatch(sink, value, type(value), current_context())
            return True

        token = classify(tp)
        with dynamic_write_scope(token.polymorphic) as context:
            if token.polymorphic:
                logger.debug(
                    "Declared type %r resolved to runtime type %s",
                    tp, type(value).__qualname__,
                )
            self._dispatch(sink, value, token.resolve(value), context)
        return True

    def _dispatch(self, sink: Sink, value, tp, context: WriteContext) -> None:
        if tp is str:
            # Strings need no structural encoding
            self.codec.write_string(sink, value)
            return
        write_fn = self.codec.resolve_write_fn(tp)
        write_fn(sink, value, context)

    def serialize_to_string(self, value, tp=None) -> Optional[str]:
        """
        Serialize a value to JSON text.

        Returns:
            The JSON text, or None if value is None or a callable.
        """
        if not is_encodable(value):
            return None
        buffer = io.StringIO()
        self.write(buffer, value, tp)
        return buffer.getvalue()

    def serialize_to_writer(self, value, writer, tp=None) -> None:
        """Serialize a value onto a text stream. Writes nothing for absent values."""
        if not is_encodable(value):
            return
        self.write(writer, value, tp)

    def serialize_to_stream(self, value, stream, tp=None) -> None:
        """
        Serialize a value onto a byte stream as UTF-8 without a BOM.

        The stream is flushed before returning but not closed. Writes
        nothing for absent values.
        """
        if not is_encodable(value):
            return
        sink = Utf8StreamSink(stream, self.config.encoding)
        self.write(sink, value, tp)
        sink.flush()

    def serialize(self, value, destination=None, tp=None) -> Optional[str]:
        """
        Serialize a value to any destination.

        Args:
            value: The value to write.
            destination: None to return a string, a byte stream, a text
                stream, or any object with write() taking str or bytes.
            tp: The declared type of value.

        Returns:
            The JSON text if destination is None, otherwise None.
        """
        if destination is None:
            return self.serialize_to_string(value, tp)
        if not is_encodable(value):
            return None
        with open_sink(destination, self.config.encoding) as sink:
            self.write(sink, value, tp)
        return None

    # =========================================================================
    # Decoding
    # =========================================================================

    def deserialize_from_string(self, text: Optional[str], tp=Any):
        """
        Parse JSON text into a value of type tp.

        Empty or absent text returns zero_value(tp) (0 for int, None for
        most types) without consulting the codec.
        """
        if not text:
            return zero_value(tp)
        parse_fn = self.codec.resolve_parse_fn(tp)
        return parse_fn(text)

    def deserialize_from_reader(self, reader, tp=Any):
        """Drain a text stream and parse it."""
        return self.deserialize_from_string(read_text_stream(reader), tp)

    def deserialize_from_stream(self, stream, tp=Any):
        """Drain a byte stream, decode it as UTF-8 and parse it."""
        text = read_byte_stream(stream, self.config.encoding)
        return self.deserialize_from_string(text, tp)

    def deserialize_response(self, response: httpx.Response, tp=Any):
        """
        Parse the body of an HTTP response.

        The body and then the response are released exactly once, even
        if reading fails.
        """
        text = read_response(response, self.config.encoding)
        return self.deserialize_from_string(text, tp)

    def deserialize_request(self, request, tp=Any):
        """
        Execute a request through the transport and parse the response body.

        Args:
            request: An httpx.Request, or a URL string for a GET request.
            tp: The type to parse the body into.

        Raises:
            httpx.HTTPStatusError: For error statuses.
            httpx.TransportError: If the request could not be sent.
        """
        if isinstance(request, (str, httpx.URL)):
            request = httpx.Request("GET", request)
        text = read_request(request, self.transport, self.config.encoding)
        return self.deserialize_from_string(text, tp)

    def deserialize(self, origin, tp=Any):
        """
        Parse JSON from any supported origin.

        See tson.adapters.to_text for the accepted origins. A str origin is
        JSON text, never a URL.
        """
        text = to_text(origin, self.transport, self.config.encoding)
        return self.deserialize_from_string(text, tp)


# =============================================================================
# Default Serializer
# =============================================================================

_default_serializer: Optional[JsonSerializer] = None
_default_lock = threading.Lock()


def get_default_serializer() -> JsonSerializer:
    """Return the serializer used by the module-level functions in tson."""
    global _default_serializer
    if _default_serializer is None:
        with _default_lock:
            if _default_serializer is None:
                _default_serializer = JsonSerializer()
    return _default_serializer


def set_default_serializer(serializer: Optional[JsonSerializer]) -> None:
    """
    Replace the default serializer. None restores a fresh default on next use.

    The previous default is closed, which releases an HTTP client it created.
    Transports passed in by the caller are left open.
    """
    global _default_serializer
    with _default_lock:
        previous, _default_serializer = _default_serializer, serializer
    if previous is not None and previous is not serializer:
        previous.close()
