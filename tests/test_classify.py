"""Tests for static type classification and value capabilities."""

import decimal
import functools
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Annotated, Any, Optional, Protocol, Union

import pytest

from tson.classify import (
    TypeKind,
    classify,
    is_abstract,
    is_encodable,
    is_interface,
    is_union,
    is_universal,
    needs_runtime_resolution,
    qualified_name,
    zero_value,
)


# ============================================================================
# Module-level types
# ============================================================================


class MarkerBase(ABC):
    """Abstract only by naming ABC as a base."""


class Reader:
    pass


class AbstractReader(Reader, ABC):
    @abstractmethod
    def read(self) -> str:
        ...


class FileReader(AbstractReader):
    def read(self) -> str:
        return "contents"


class Named(Protocol):
    name: str


class Person(Named):
    name = "ada"


@dataclass
class Point(MarkerBase):
    x: int
    y: int


class CallableRecord:
    def __call__(self):
        return 1


# ============================================================================
# Tests
# ============================================================================


class TestNeedsRuntimeResolution:
    """Which declared types defer to the runtime type."""

    def test_universal(self):
        assert needs_runtime_resolution(Any)
        assert needs_runtime_resolution(object)
        assert is_universal(Any)
        assert not is_universal(int)

    def test_abstract_classes(self):
        assert needs_runtime_resolution(MarkerBase)
        assert needs_runtime_resolution(AbstractReader)
        assert is_abstract(AbstractReader)

    def test_concrete_subclasses(self):
        assert not needs_runtime_resolution(FileReader)
        assert not needs_runtime_resolution(Point)
        assert not needs_runtime_resolution(Reader)

    def test_protocols(self):
        assert needs_runtime_resolution(Named)
        assert is_interface(Named)
        # Explicit implementations of a protocol are ordinary classes
        assert not is_interface(Person)
        assert not needs_runtime_resolution(Person)

    def test_unions(self):
        assert needs_runtime_resolution(Optional[int])
        assert needs_runtime_resolution(Union[int, str])
        assert needs_runtime_resolution(int | str)
        assert is_union(Point | None)

    def test_concrete_types(self):
        for tp in (int, float, bool, str, bytes, list, dict, list[int], dict[str, int], tuple[int, str]):
            assert not needs_runtime_resolution(tp), tp

    def test_annotated_classifies_inner_type(self):
        assert needs_runtime_resolution(Annotated[MarkerBase, "meta"])
        assert not needs_runtime_resolution(Annotated[int, "meta"])

    def test_total_on_non_types(self):
        assert needs_runtime_resolution(None) is False
        assert needs_runtime_resolution(42) is False
        assert needs_runtime_resolution("Point") is False


class TestClassify:
    def test_concrete_token(self):
        token = classify(Point)
        assert token.kind is TypeKind.CONCRETE
        assert not token.polymorphic
        assert token.resolve(Point(1, 2)) is Point

    def test_polymorphic_token_resolves_runtime_type(self):
        token = classify(MarkerBase)
        assert token.kind is TypeKind.POLYMORPHIC
        assert token.resolve(Point(1, 2)) is Point
        assert classify(Any).resolve("text") is str


class TestIsEncodable:
    def test_absent(self):
        assert not is_encodable(None)

    def test_callables_are_not_data(self):
        assert not is_encodable(lambda: 1)
        assert not is_encodable(len)
        assert not is_encodable("abc".upper)
        assert not is_encodable(FileReader().read)
        assert not is_encodable(functools.partial(int, "3"))
        assert not is_encodable(qualified_name)

    def test_unbound_builtin_methods(self):
        assert not is_encodable(str.upper)
        assert not is_encodable(list.append)
        assert not is_encodable(dict.__dict__["fromkeys"])
        assert not is_encodable(object.__init__)

    def test_data(self):
        for value in (0, "", False, [], {}, Point(1, 2), CallableRecord()):
            assert is_encodable(value), value


class TestZeroValue:
    def test_value_types(self):
        assert zero_value(int) == 0
        assert zero_value(float) == 0.0
        assert zero_value(bool) is False
        assert zero_value(decimal.Decimal) == decimal.Decimal("0")
        assert zero_value(Annotated[int, "meta"]) == 0

    @pytest.mark.parametrize("tp", [str, list[int], dict, Point, Any, MarkerBase, Optional[int]])
    def test_reference_types(self, tp):
        assert zero_value(tp) is None


def test_qualified_name():
    assert qualified_name(Point) == f"{Point.__module__}.Point"
    assert qualified_name(decimal.Decimal) == "decimal.Decimal"
