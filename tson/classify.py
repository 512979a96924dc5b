"""
Type classification for serialization dispatch.

The dispatcher needs one decision per call: does the declared (static)
type carry enough information to pick a codec, or must it defer to the
runtime type of the value? This module makes that decision once, at the
API boundary, and returns a TypeToken:

- CONCRETE: a class or typing construct a codec can be resolved for
  directly (int, list[int], a dataclass, a pydantic model, ...).
- POLYMORPHIC: typing.Any, object, an abstract class, a Protocol, or a
  union. The value's own type is used instead, inside a dynamic-write
  scope (see tson.context).

It also answers the write-path capability query "is this value
encodable at all?" and the read-path question "what is the zero value of
this type?".
"""

from __future__ import annotations

import abc
import decimal
import enum
import functools
import inspect
import types
from dataclasses import dataclass
from typing import Annotated, Any, Union, get_args, get_origin


# =============================================================================
# Type Tokens
# =============================================================================


class TypeKind(enum.Enum):
    """Whether a static type can be dispatched on directly."""

    CONCRETE = "concrete"
    POLYMORPHIC = "polymorphic"


@dataclass(frozen=True)
class TypeToken:
    """
    A static type resolved once at the API boundary.

    Attributes:
        kind: CONCRETE or POLYMORPHIC.
        type: The static type as supplied by the caller.
    """

    kind: TypeKind
    type: Any

    @property
    def polymorphic(self) -> bool:
        return self.kind is TypeKind.POLYMORPHIC

    def resolve(self, value) -> Any:
        """Return the type to dispatch on for this value."""
        if self.polymorphic:
            return type(value)
        return self.type


# =============================================================================
# Classification
# =============================================================================

_UNION_ORIGINS = (Union, types.UnionType)


def unwrap_annotated(tp):
    # Annotated[X, ...] classifies as X
    if get_origin(tp) is Annotated:
        return get_args(tp)[0]
    return tp


def is_universal(tp) -> bool:
    """Check if a type is the universal placeholder (Any or object)."""
    tp = unwrap_annotated(tp)
    return tp is Any or tp is object


def is_abstract(tp) -> bool:
    """
    Check if a type is an abstract class.

    A class is abstract if it still has unimplemented abstract methods,
    or if it names abc.ABC as a direct base (a marker base with no
    abstract methods of its own).
    """
    tp = unwrap_annotated(tp)
    if not isinstance(tp, type):
        return False
    return inspect.isabstract(tp) or abc.ABC in tp.__bases__


def is_interface(tp) -> bool:
    """Check if a type is a typing.Protocol class."""
    tp = unwrap_annotated(tp)
    return isinstance(tp, type) and bool(getattr(tp, "_is_protocol", False))


def is_union(tp) -> bool:
    """Check if a type is a union, including Optional[X] and X | Y."""
    return get_origin(unwrap_annotated(tp)) in _UNION_ORIGINS


def needs_runtime_resolution(tp) -> bool:
    """
    Decide whether dispatch must defer to the value's runtime type.

    Returns True for the universal placeholder (Any, object), abstract
    classes, Protocol classes and unions. Never raises: anything this
    function does not recognise is treated as concrete.

    Example:
        >>> needs_runtime_resolution(Any)
        True
        >>> needs_runtime_resolution(list[int])
        False
    """
    try:
        return (
            is_universal(tp)
            or is_abstract(tp)
            or is_interface(tp)
            or is_union(tp)
        )
    except Exception:
        return False


def classify(tp) -> TypeToken:
    """Resolve a static type to a TypeToken."""
    if needs_runtime_resolution(tp):
        return TypeToken(TypeKind.POLYMORPHIC, tp)
    return TypeToken(TypeKind.CONCRETE, tp)


# =============================================================================
# Value Capabilities
# =============================================================================

# Callables are behaviour, not data. They are skipped on the write path
# exactly like None.
_NON_ENCODABLE_TYPES = (
    types.FunctionType,
    types.BuiltinFunctionType,
    types.MethodType,
    types.MethodWrapperType,
    types.WrapperDescriptorType,
    types.MethodDescriptorType,
    types.ClassMethodDescriptorType,
    functools.partial,
    classmethod,
    staticmethod,
)


def is_encodable(value) -> bool:
    """
    Check if a value can be written at all.

    None and function-like callables (functions, lambdas, methods,
    builtins, partials) are not encodable. Instances of classes that
    happen to define __call__ are still data and are encodable.
    """
    if value is None:
        return False
    return not isinstance(value, _NON_ENCODABLE_TYPES)


# Types whose zero value is not None.
_VALUE_TYPES = (bool, int, float, complex, decimal.Decimal)


def zero_value(tp):
    """
    Return the "no value" result for a type.

    Scalar value types get their default instance (0, 0.0, False,
    Decimal('0')), everything else gets None.

    Example:
        >>> zero_value(int)
        0
        >>> zero_value(list[int]) is None
        True
    """
    tp = unwrap_annotated(tp)
    if isinstance(tp, type) and tp in _VALUE_TYPES:
        return tp()
    return None


def qualified_name(cls: type) -> str:
    """Return 'module.QualName' for a class."""
    return f"{cls.__module__}.{cls.__qualname__}"


def is_builtin_type(cls) -> bool:
    """Check if a class comes from the builtins module."""
    return getattr(cls, "__module__", None) == "builtins"


__all__ = [
    "TypeKind",
    "TypeToken",
    "classify",
    "is_abstract",
    "is_builtin_type",
    "is_encodable",
    "is_interface",
    "is_union",
    "is_universal",
    "needs_runtime_resolution",
    "qualified_name",
    "unwrap_annotated",
    "zero_value",
]
