"""
Codec capability for the tson dispatcher.

The dispatcher does not know how to write or parse any particular shape.
It asks a Codec for functions:

- resolve_write_fn(tp) -> write_fn(sink, value, context)
- resolve_parse_fn(tp) -> parse_fn(text)
- write_string(sink, text), the escaping primitive used for str values

PydanticCodec is the default implementation. It looks in the
registration tables first and otherwise builds functions from a cached
pydantic.TypeAdapter, so anything pydantic can describe (primitives,
collections, dataclasses, TypedDicts, BaseModels, enums, datetimes, ...)
works out of the box.

Type Discriminators:
    When a value is written under a dynamic-write context (its declared
    type was Any, an abstract class or a Protocol) and it dumps to a JSON
    object, the codec writes the type's name as the first member:

        {"__type": "shapes.Circle", "radius": 2.0}

    Parsing into a polymorphic type reads that member back, resolves it
    through register_type() names first and then through loaded modules
    (or modules imported under allowed_type_modules), and validates
    the remaining members against the resolved class.

Custom codecs for specific types:
    >>> from tson import register_writer, register_parser
    >>>
    >>> def write_point(sink, point, context):
    ...     sink.write(f"[{point.x},{point.y}]")
    >>>
    >>> register_writer(Point, write_point)
    >>> register_parser(Point, lambda text: Point(*json.loads(text)))
"""

from __future__ import annotations

import importlib
import logging
import sys
from typing import Any, Callable, Optional, Protocol, get_args

from pydantic import PydanticSchemaGenerationError, PydanticUndefinedAnnotation, TypeAdapter
from pydantic_core import from_json, to_json

from tson.adapters import Sink
from tson.classify import (
    is_builtin_type,
    is_interface,
    is_union,
    is_universal,
    needs_runtime_resolution,
    qualified_name,
    unwrap_annotated,
)
from tson.config import DEFAULT_CONFIG, JsonConfig
from tson.context import STATIC, WriteContext
from tson.errors import CodecResolutionError, UnknownTypeError

logger = logging.getLogger(__name__)

WriteFn = Callable[[Sink, Any, WriteContext], None]
ParseFn = Callable[[str], Any]


class Codec(Protocol):
    """The capability the dispatcher consumes."""

    def resolve_write_fn(self, tp) -> WriteFn:
        ...

    def resolve_parse_fn(self, tp) -> ParseFn:
        ...

    def write_string(self, sink: Sink, text: str) -> None:
        ...


# =============================================================================
# Registration Tables
# =============================================================================

# Exact-type overrides, checked before any TypeAdapter is built.
writer_table: dict[Any, WriteFn] = {}
parser_table: dict[Any, ParseFn] = {}

# Discriminator name -> class, and the reverse for writing.
type_registry: dict[str, type] = {}
_registered_names: dict[type, str] = {}


def register_writer(python_type, write_fn: WriteFn) -> None:
    """
    Register a write function for one or more types.

    Args:
        python_type: A type, or a tuple of types sharing the writer.
        write_fn: Called as write_fn(sink, value, context). It must write
            one complete JSON value to sink.
    """
    if isinstance(python_type, tuple):
        for t in python_type:
            writer_table[t] = write_fn
    else:
        writer_table[python_type] = write_fn


def register_parser(python_type, parse_fn: ParseFn) -> None:
    """
    Register a parse function for one or more types.

    Args:
        python_type: A type, or a tuple of types sharing the parser.
        parse_fn: Called as parse_fn(text) with non-empty JSON text.
    """
    if isinstance(python_type, tuple):
        for t in python_type:
            parser_table[t] = parse_fn
    else:
        parser_table[python_type] = parse_fn


def register_type(cls: type, name: Optional[str] = None) -> type:
    """
    Register a class under a discriminator name.

    Registered classes are resolved from their name without importing
    anything, and are exempt from JsonConfig.allowed_type_modules. The
    name defaults to 'module.QualName'. Returns cls, so it also works as
    a class decorator.

    Example:
        >>> @register_type
        ... @dataclass
        ... class Circle(Shape):
        ...     radius: float
        >>>
        >>> register_type(Square, "Square")
    """
    name = name or qualified_name(cls)
    type_registry[name] = cls
    _registered_names[cls] = name
    return cls


def type_name(cls: type) -> str:
    """Return the discriminator name written for a class."""
    return _registered_names.get(cls) or qualified_name(cls)


def _lookup(table: dict, tp):
    try:
        return table.get(tp)
    except TypeError:
        # Unhashable type forms (e.g. Annotated with list metadata)
        return None


def write_string(sink: Sink, text: str) -> None:
    """Write text as an escaped, quoted JSON string."""
    sink.write(to_json(text).decode())


# =============================================================================
# Pydantic Codec
# =============================================================================


class PydanticCodec:
    """
    Codec backed by pydantic TypeAdapters.

    Adapters are built once per type and cached on the codec. Building an
    adapter for a type pydantic cannot describe raises
    CodecResolutionError; validation errors from parsing propagate as
    pydantic.ValidationError.

    Attributes:
        config: JsonConfig supplying the discriminator key and the
            modules discriminators may be imported from.
    """

    def __init__(self, config: Optional[JsonConfig] = None):
        self.config = config or DEFAULT_CONFIG
        self._adapters: dict[Any, TypeAdapter] = {}

    def adapter(self, tp) -> TypeAdapter:
        """Return the cached TypeAdapter for a type, building it if needed."""
        try:
            return self._adapters[tp]
        except KeyError:
            pass
        except TypeError:
            return self._build_adapter(tp)
        adapter = self._build_adapter(tp)
        self._adapters[tp] = adapter
        return adapter

    def _build_adapter(self, tp) -> TypeAdapter:
        logger.debug("Building TypeAdapter for %r", tp)
        try:
            return TypeAdapter(tp)
        except (PydanticSchemaGenerationError, PydanticUndefinedAnnotation) as e:
            raise CodecResolutionError(tp, str(e)) from e

    # -------------------------------------------------------------------------
    # Writing
    # -------------------------------------------------------------------------

    def resolve_write_fn(self, tp) -> WriteFn:
        registered = _lookup(writer_table, tp)
        if registered is not None:
            return registered

        adapter = self.adapter(tp)
        type_key = self.config.type_key
        emit_type_info = self.config.emit_type_info

        def write(sink: Sink, value, context: WriteContext = STATIC) -> None:
            if not (emit_type_info and context.dynamic) or is_builtin_type(type(value)):
                sink.write(adapter.dump_json(value, by_alias=True).decode())
                return

            data = adapter.dump_python(value, mode="json", by_alias=True)
            if isinstance(data, dict):
                # Discriminator is always the first member
                data = {
                    type_key: type_name(type(value)),
                    **{k: v for k, v in data.items() if k != type_key},
                }
            sink.write(to_json(data).decode())

        return write

    def write_string(self, sink: Sink, text: str) -> None:
        write_string(sink, text)

    # -------------------------------------------------------------------------
    # Parsing
    # -------------------------------------------------------------------------

    def resolve_parse_fn(self, tp) -> ParseFn:
        registered = _lookup(parser_table, tp)
        if registered is not None:
            return registered
        if needs_runtime_resolution(tp):
            return self._polymorphic_parse_fn(tp)
        return self.adapter(tp).validate_json

    def _polymorphic_parse_fn(self, tp) -> ParseFn:
        type_key = self.config.type_key

        def parse(text: str):
            data = from_json(text)
            if isinstance(data, dict) and type_key in data:
                cls = self.resolve_type(data[type_key], tp)
                members = {k: v for k, v in data.items() if k != type_key}
                return self.adapter(cls).validate_python(members)
            if is_universal(tp):
                return data
            if is_union(tp):
                return self.adapter(tp).validate_python(data)
            raise CodecResolutionError(
                tp, f"payload has no '{type_key}' member naming a concrete type"
            )

        return parse

    def resolve_type(self, name, base=None) -> type:
        """
        Resolve a discriminator name to a class.

        Args:
            name: The discriminator value read from the payload.
            base: The declared type the class must conform to. Any/object
                accept every class; Protocols are structural and accept
                every class.

        Raises:
            UnknownTypeError: If the name is unknown, its module is not
                allowed, or the class does not conform to base.
        """
        if not isinstance(name, str) or not name:
            raise UnknownTypeError(str(name), "discriminator must be a non-empty string")

        cls = type_registry.get(name)
        if cls is None:
            cls = self._import_type(name)

        if base is not None and not _conforms(cls, base):
            raise UnknownTypeError(name, f"not a subtype of {_describe(base)}")

        logger.debug("Resolved discriminator %r to %r", name, cls)
        return cls

    def _import_type(self, name: str) -> type:
        parts = name.split(".")
        allowed_any = False

        # Longest loadable module prefix wins; the rest is the qualname
        for i in range(len(parts) - 1, 0, -1):
            module_name = ".".join(parts[:i])
            if not self.config.allows_module(module_name):
                continue
            allowed_any = True
            obj = self._load_module(module_name)
            if obj is None:
                continue
            try:
                for attr in parts[i:]:
                    obj = getattr(obj, attr)
            except AttributeError:
                continue
            if isinstance(obj, type):
                return obj

        if len(parts) > 1 and not allowed_any:
            raise UnknownTypeError(name, "module is not in allowed_type_modules")
        raise UnknownTypeError(
            name,
            "not registered and not loaded. "
            f"Registered types: {sorted(type_registry)}",
        )

    def _load_module(self, module_name: str):
        # Without an allow-list a payload may only name modules that are
        # already loaded. Importing runs module code.
        if self.config.allowed_type_modules is None:
            return sys.modules.get(module_name)
        try:
            return importlib.import_module(module_name)
        except ImportError:
            return None


def _conforms(cls: type, base) -> bool:
    base = unwrap_annotated(base)
    if is_universal(base) or is_interface(base):
        return True
    if is_union(base):
        return any(_conforms(cls, arg) for arg in get_args(base))
    return isinstance(base, type) and issubclass(cls, base)


def _describe(tp) -> str:
    return getattr(tp, "__qualname__", None) or repr(tp)


__all__ = [
    "Codec",
    "ParseFn",
    "PydanticCodec",
    "WriteFn",
    "parser_table",
    "register_parser",
    "register_type",
    "register_writer",
    "type_name",
    "type_registry",
    "write_string",
    "writer_table",
]
