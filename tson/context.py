"""
Dynamic-write context for serialization dispatch.

When the declared type of a value is too generic to dispatch on (Any, an
abstract class, a Protocol), the dispatcher serializes the value under
its runtime type instead. Codecs need to know when that happened, for
example to write a type discriminator next to the payload so the value
can be read back into the right subclass.

That fact travels two ways:

1. Explicitly, as a WriteContext passed to every write function
   (``write_fn(sink, value, context)``). Codecs should prefer this.
2. Ambiently, through a ContextVar mirror read with is_writing_dynamic(),
   for nested custom writers that never receive the context argument.

Context variables are private to each thread and each asyncio task, so
two concurrent serializations never observe each other's flag. Scopes
restore the previous value on exit, so nesting is safe at any depth.
"""

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, TypeVar

R = TypeVar("R")


@dataclass(frozen=True)
class WriteContext:
    """
    Per-call state handed to codec write functions.

    Attributes:
        dynamic: True while the value is being written under its runtime
            type because the declared type was polymorphic.
    """

    dynamic: bool = False


STATIC = WriteContext(dynamic=False)
DYNAMIC = WriteContext(dynamic=True)

_WRITING_DYNAMIC: contextvars.ContextVar[bool] = contextvars.ContextVar(
    "tson_writing_dynamic", default=False
)


def is_writing_dynamic() -> bool:
    """Return True inside a dynamic-write scope of the current thread/task."""
    return _WRITING_DYNAMIC.get()


def current_context() -> WriteContext:
    """Return the WriteContext matching the ambient flag."""
    return DYNAMIC if _WRITING_DYNAMIC.get() else STATIC


@contextmanager
def dynamic_write_scope(should_enter: bool) -> Iterator[WriteContext]:
    """
    Mark the enclosed block as writing under runtime-type dispatch.

    If should_enter is False this does nothing and yields the current
    context. Otherwise the ambient flag is set for the duration of the
    block and restored to its previous value on exit, whether the block
    returns or raises.

    Example:
        >>> with dynamic_write_scope(True) as context:
        ...     assert context.dynamic and is_writing_dynamic()
        >>> is_writing_dynamic()
        False
    """
    if not should_enter:
        yield current_context()
        return

    token = _WRITING_DYNAMIC.set(True)
    try:
        yield DYNAMIC
    finally:
        _WRITING_DYNAMIC.reset(token)


def with_dynamic_write_scope(should_enter: bool, body: Callable[[], R]) -> R:
    """Run body() inside dynamic_write_scope(should_enter) and return its result."""
    with dynamic_write_scope(should_enter):
        return body()


__all__ = [
    "DYNAMIC",
    "STATIC",
    "WriteContext",
    "current_context",
    "dynamic_write_scope",
    "is_writing_dynamic",
    "with_dynamic_write_scope",
]
