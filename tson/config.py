"""
Configuration for tson serializers.

A JsonConfig is a frozen value shared by a JsonSerializer, its codec and
its transport. Use DEFAULT_CONFIG unless you need a different
discriminator key, want to restrict which modules a discriminator may
import from, or need a different HTTP timeout.

    >>> from tson import JsonSerializer
    >>> from tson.config import JsonConfig
    >>>
    >>> config = JsonConfig(
    ...     type_key="$type",
    ...     allowed_type_modules=frozenset({'myapp.models'}),
    ... )
    >>> serializer = JsonSerializer(config=config)
"""

from __future__ import annotations

import codecs
from dataclasses import dataclass, field
from typing import FrozenSet, Optional


@dataclass(frozen=True)
class JsonConfig:
    """
    Configuration for serialization dispatch.

    Attributes:
        type_key: Name of the JSON member that carries the type
            discriminator written under dynamic-write conditions.
        emit_type_info: If False, no discriminator is written even when
            the value was dispatched on its runtime type.
        allowed_type_modules: Module prefixes a discriminator may be
            imported from. None imports nothing and only searches
            modules that are already loaded. Types registered with
            register_type are always allowed.
        timeout: Timeout in seconds for the default HTTP transport.
        encoding: Text encoding for byte streams and HTTP bodies. Only
            BOM-less UTF-8 is accepted.

    Example:
        >>> config = JsonConfig(emit_type_info=False)
        >>> serialize_to_string(shape, Shape)  # no "__type" member
    """

    type_key: str = "__type"
    emit_type_info: bool = True
    allowed_type_modules: Optional[FrozenSet[str]] = None
    timeout: float = 30.0
    encoding: str = field(default="utf-8")

    def __post_init__(self):
        if not self.type_key:
            raise ValueError("type_key must be a non-empty string")
        # utf-8-sig, utf-16 and utf-32 all carry a byte-order mark
        if codecs.lookup(self.encoding).name != "utf-8":
            raise ValueError(
                f"Unsupported encoding '{self.encoding}'. "
                "Byte streams are always UTF-8 without a byte-order mark."
            )

    def allows_module(self, module: str) -> bool:
        """
        Check whether a discriminator may import from this module.

        Parent packages match their submodules, so allowing 'myapp'
        allows 'myapp.models.shapes'.
        """
        if self.allowed_type_modules is None:
            return True
        parts = module.split(".")
        for i in range(1, len(parts) + 1):
            if ".".join(parts[:i]) in self.allowed_type_modules:
                return True
        return False


DEFAULT_CONFIG = JsonConfig()
