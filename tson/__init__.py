"""
tson - typed JSON serialization dispatch.

This library picks the right JSON codec for a value from its declared
type, and falls back to the value's runtime type when the declared type
is too generic to dispatch on:

- typing.Any and object
- Abstract classes (abc.ABC subclasses, classes with abstract methods)
- typing.Protocol classes
- Unions (Optional[X], X | Y)

Values written under their runtime type carry a type discriminator, so
they can be read back into the right subclass. The same dispatch works
for strings, text streams, byte streams (UTF-8, no BOM) and HTTP
responses.

Basic Usage:
    >>> import tson
    >>>
    >>> text = tson.serialize_to_string({"key": [1, 2, 3]})
    >>> tson.deserialize_from_string(text, dict[str, list[int]])
    {'key': [1, 2, 3]}

Polymorphic Values:
    >>> from abc import ABC
    >>> from dataclasses import dataclass
    >>>
    >>> class Shape(ABC):
    ...     pass
    >>>
    >>> @tson.register_type
    ... @dataclass
    ... class Circle(Shape):
    ...     radius: float
    >>>
    >>> text = tson.serialize_to_string(Circle(2.0), Shape)
    >>> text
    '{"__type":"__main__.Circle","radius":2.0}'
    >>> tson.deserialize_from_string(text, Shape)
    Circle(radius=2.0)

Streams and HTTP:
    >>> with open("shapes.json", "wb") as f:
    ...     tson.serialize_to_stream([Circle(1.0)], f, list[Circle])
    >>>
    >>> import httpx
    >>> user = tson.deserialize_request(
    ...     httpx.Request("GET", "https://api.example.test/users/1"), User
    ... )

Absent Values:
    None and callables serialize to None (or write nothing). Empty text
    deserializes to the zero value of the type (0 for int, None for most
    types) without invoking any codec.

Module-level functions use a shared default JsonSerializer. Create your
own to use a different codec, transport or JsonConfig.
"""

import logging
from typing import Any

from tson.classify import needs_runtime_resolution, zero_value
from tson.codec import (
    Codec,
    PydanticCodec,
    register_parser,
    register_type,
    register_writer,
)
from tson.config import DEFAULT_CONFIG, JsonConfig
from tson.context import WriteContext, dynamic_write_scope, is_writing_dynamic
from tson.errors import CodecResolutionError, TsonError, UnknownTypeError
from tson.serializer import (
    JsonSerializer,
    get_default_serializer,
    set_default_serializer,
)
from tson.transport import HttpTransport, Transport

logging.getLogger(__name__).addHandler(logging.NullHandler())


def serialize(value, destination=None, tp=None):
    """
    Serialize a value to a string, or onto a stream.

    Args:
        value: Any value the codec can describe.
        destination: None to return a string; otherwise a byte stream
            (written as UTF-8) or a text stream.
        tp: Optional declared type. Polymorphic types make the value
            carry a type discriminator.

    Returns:
        The JSON text if destination is None, otherwise None.
    """
    return get_default_serializer().serialize(value, destination, tp)


def serialize_to_string(value, tp=None):
    """
    Serialize a value to JSON text.

    Returns None for None and for callables.

    Example:
        >>> serialize_to_string([1, 2, 3])
        '[1,2,3]'
        >>> serialize_to_string(None) is None
        True
    """
    return get_default_serializer().serialize_to_string(value, tp)


def serialize_to_writer(value, writer, tp=None):
    """Serialize a value onto a text stream."""
    get_default_serializer().serialize_to_writer(value, writer, tp)


def serialize_to_stream(value, stream, tp=None):
    """Serialize a value onto a byte stream as UTF-8 without a BOM, then flush."""
    get_default_serializer().serialize_to_stream(value, stream, tp)


def deserialize(origin, tp=None):
    """
    Deserialize JSON from a string, bytes, stream or HTTP request/response.

    Args:
        origin: JSON text, bytes, a text or byte stream, an httpx.Response,
            or an httpx.Request to execute.
        tp: The type to parse into. Defaults to Any (plain JSON data, or
            the discriminated type if the payload names one).

    Returns:
        The parsed value.
    """
    return get_default_serializer().deserialize(origin, _any(tp))


def deserialize_from_string(text, tp=None):
    """
    Parse JSON text.

    Example:
        >>> deserialize_from_string('{"a": 1}', dict[str, int])
        {'a': 1}
        >>> deserialize_from_string("", int)
        0
    """
    return get_default_serializer().deserialize_from_string(text, _any(tp))


def deserialize_from_reader(reader, tp=None):
    """Drain a text stream and parse it."""
    return get_default_serializer().deserialize_from_reader(reader, _any(tp))


def deserialize_from_stream(stream, tp=None):
    """Drain a byte stream as UTF-8 and parse it."""
    return get_default_serializer().deserialize_from_stream(stream, _any(tp))


def deserialize_response(response, tp=None):
    """Parse the body of an httpx.Response and release it."""
    return get_default_serializer().deserialize_response(response, _any(tp))


def deserialize_request(request, tp=None):
    """Execute an httpx.Request (or GET a URL) and parse the response body."""
    return get_default_serializer().deserialize_request(request, _any(tp))


def _any(tp):
    return Any if tp is None else tp


__all__ = [
    # Core API
    "serialize",
    "serialize_to_string",
    "serialize_to_writer",
    "serialize_to_stream",
    "deserialize",
    "deserialize_from_string",
    "deserialize_from_reader",
    "deserialize_from_stream",
    "deserialize_response",
    "deserialize_request",
    "JsonSerializer",
    "get_default_serializer",
    "set_default_serializer",
    # Registration
    "register_type",
    "register_writer",
    "register_parser",
    # Dispatch
    "Codec",
    "PydanticCodec",
    "Transport",
    "HttpTransport",
    "WriteContext",
    "dynamic_write_scope",
    "is_writing_dynamic",
    "needs_runtime_resolution",
    "zero_value",
    # Configuration
    "JsonConfig",
    "DEFAULT_CONFIG",
    # Errors
    "TsonError",
    "CodecResolutionError",
    "UnknownTypeError",
]
