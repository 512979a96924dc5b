"""
Exception classes for the tson library.

Absent values (``None``, empty text) and non-encodable values (functions,
methods) are not errors: they short-circuit to "no value". Everything
else that goes wrong in a codec, a validator or the HTTP transport
propagates to the caller unchanged, after any scoped resources are
released.
"""


class TsonError(Exception):
    """Base exception class for all tson exceptions."""

    pass


class CodecResolutionError(TsonError, TypeError):
    """
    Raised when the codec cannot produce a read or write function for a type.

    Example:
        >>> class Opaque:
        ...     def __init__(self, handle):
        ...         self.handle = handle
        >>> serialize_to_string(Opaque(3))
        CodecResolutionError: No JSON codec for type Opaque: ...
    """

    def __init__(self, tp, reason: str = ""):
        self.type = tp
        self.reason = reason
        name = getattr(tp, "__qualname__", None) or repr(tp)
        message = f"No JSON codec for type {name}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class UnknownTypeError(TsonError, ValueError):
    """
    Raised when a type discriminator cannot be resolved to an allowed type.

    This covers names that are not registered and cannot be imported,
    modules outside ``JsonConfig.allowed_type_modules``, and types that
    are not a subtype of the declared abstract type.
    """

    def __init__(self, type_name: str, reason: str):
        self.type_name = type_name
        self.reason = reason
        super().__init__(f"Cannot resolve type '{type_name}': {reason}")
