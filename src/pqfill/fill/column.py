# src/pqfill/fill/column.py
"""
Per-field accumulators whose shape mirrors a TypeSpec.

  PrimitiveBuffer   flat list of checked scalars
  ListBuffer        d levels of offsets over a Primitive or Struct element buffer
  StructBuffer      one child buffer per declared field + an instance counter

Every buffer follows the same protocol: ``check(value)`` validates one unit
without touching state, ``append(value)`` stores an already-checked unit,
``to_array()`` materializes the accumulated units as one Arrow array and
``clear()`` drains the buffer while keeping its shape.
"""
from __future__ import annotations

import math
import numbers
from typing import Any, Callable, Dict, Iterator, List, Mapping, Sequence, Tuple, Union

import pyarrow as pa

from ..core.errors import FillTypeError
from .typespec import ListType, Primitive, PrimitiveKind, StructType, TypeSpec

Shape = Union[int, Tuple["Shape", ...]]


class ColumnBuffer:
    """Common protocol. ``len(buf)`` is the number of units appended since the last clear."""

    __slots__ = ("path", "spec")

    def __init__(self, path: str, spec: TypeSpec) -> None:
        self.path = path
        self.spec = spec

    def check(self, value: Any) -> None:
        raise NotImplementedError

    def append(self, value: Any) -> None:
        raise NotImplementedError

    def fill(self, value: Any) -> None:
        self.check(value)
        self.append(value)

    def to_array(self) -> pa.Array:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError

    def __len__(self) -> int:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.path!r}, {self.spec.describe()}, units={len(self)})"


# ============================== primitives ====================================

class PrimitiveBuffer(ColumnBuffer):
    __slots__ = ("_values",)

    def __init__(self, path: str, spec: Primitive) -> None:
        super().__init__(path, spec)
        self._values: List[Any] = []

    def check(self, value: Any) -> None:
        check_scalar(value, self.spec.kind, self.path)

    def append(self, value: Any) -> None:
        self._values.append(value)

    def to_array(self) -> pa.Array:
        return pa.array(self._values, type=self.spec.arrow_type())

    def clear(self) -> None:
        self._values.clear()

    def __len__(self) -> int:
        return len(self._values)


def check_scalar(value: Any, kind: PrimitiveKind, path: str) -> None:
    if kind is PrimitiveKind.BOOL:
        if not _is_bool(value):
            raise FillTypeError(f"expected bool, got {_type_name(value)}", path=path)
        return
    if _is_bool(value):
        raise FillTypeError(f"expected {kind.value}, got bool", path=path)
    if kind.is_integer:
        if not isinstance(value, numbers.Integral):
            raise FillTypeError(f"expected {kind.value}, got {_type_name(value)}", path=path)
        lo, hi = kind.int_range()
        if not lo <= int(value) <= hi:
            raise FillTypeError(f"{int(value)} is out of range for {kind.value}", path=path)
        return
    # floats: integers are refused so positional swaps of int/float fields surface
    if isinstance(value, numbers.Integral) or not isinstance(value, numbers.Real):
        raise FillTypeError(f"expected {kind.value}, got {_type_name(value)}", path=path)
    limit = kind.float_max()
    if limit is not None and math.isfinite(value) and abs(value) > limit:
        raise FillTypeError(f"{value} is out of range for {kind.value}", path=path)


def _is_bool(value: Any) -> bool:
    # numpy.bool_ is not a subclass of bool
    return isinstance(value, bool) or type(value).__name__ in ("bool_", "bool")


def _type_name(value: Any) -> str:
    return type(value).__name__


# ============================== nested sequences ==============================

def is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def check_nested(value: Any, depth: int, path: str, leaf_check: Callable[[Any], None]) -> None:
    """Validate ``value`` as ``depth`` levels of sequences whose leaves pass ``leaf_check``."""
    if not is_sequence(value):
        raise FillTypeError(
            f"expected a {depth}-level nested list, got {_type_name(value)}", path=path
        )
    if depth == 1:
        for leaf in value:
            leaf_check(leaf)
        return
    for sub in value:
        check_nested(sub, depth - 1, path, leaf_check)


def iter_leaves(value: Sequence[Any], depth: int) -> Iterator[Any]:
    if depth == 1:
        yield from value
        return
    for sub in value:
        yield from iter_leaves(sub, depth - 1)


def nested_shape(value: Sequence[Any], depth: int) -> Shape:
    """Sub-list lengths of ``value``: an int at depth 1, nested tuples above."""
    if depth == 1:
        return len(value)
    return tuple(nested_shape(sub, depth - 1) for sub in value)


# ============================== lists =========================================

class ListBuffer(ColumnBuffer):
    """
    ``dimension`` levels of offsets layered over an element buffer.

    offsets[0] has one boundary per appended unit (row) and indexes into the
    entries of level 1; the innermost level indexes into the element buffer.
    """

    __slots__ = ("dimension", "element", "_offsets")

    def __init__(self, path: str, spec: ListType, element: ColumnBuffer) -> None:
        super().__init__(path, spec)
        self.dimension = spec.dimension
        self.element = element
        self._offsets: List[List[int]] = [[0] for _ in range(self.dimension)]

    def check(self, value: Any) -> None:
        check_nested(value, self.dimension, self.path, self.element.check)

    def append(self, value: Any) -> None:
        self._append_level(value, 0)

    def _append_level(self, seq: Sequence[Any], level: int) -> None:
        offsets = self._offsets[level]
        offsets.append(offsets[-1] + len(seq))
        if level == self.dimension - 1:
            for leaf in seq:
                self.element.append(leaf)
            return
        for sub in seq:
            self._append_level(sub, level + 1)

    def to_array(self) -> pa.Array:
        arr = self.element.to_array()
        for level in reversed(range(self.dimension)):
            arr = pa.ListArray.from_arrays(pa.array(self._offsets[level], type=pa.int32()), arr)
        return arr

    def clear(self) -> None:
        for offsets in self._offsets:
            del offsets[1:]
        self.element.clear()

    def __len__(self) -> int:
        return len(self._offsets[0]) - 1


# ============================== structs =======================================

class StructBuffer(ColumnBuffer):
    """
    One child buffer per declared field. A struct_t (positional sequence or
    name → value mapping) covers only the non-struct fields; struct-bearing
    children are owned here but filled through their own dotted path.
    """

    __slots__ = ("children", "_value_names", "_count")

    def __init__(self, path: str, spec: StructType, children: Dict[str, ColumnBuffer]) -> None:
        super().__init__(path, spec)
        self.children = children
        self._value_names = tuple(name for name, _ in spec.value_fields())
        self._count = 0

    @property
    def value_names(self) -> Tuple[str, ...]:
        return self._value_names

    def check(self, value: Any) -> None:
        for name, item in self._items(value):
            self.children[name].check(item)

    def append(self, value: Any) -> None:
        for name, item in self._items(value):
            self.children[name].append(item)
        self._count += 1

    def _items(self, value: Any) -> List[Tuple[str, Any]]:
        names = self.value_names
        if isinstance(value, Mapping):
            keys = tuple(value.keys())
            if keys != names:
                raise FillTypeError(
                    f"struct fields must be {list(names)} in declared order, got {list(keys)}",
                    path=self.path,
                )
            return [(n, value[n]) for n in names]
        if not is_sequence(value):
            raise FillTypeError(
                f"expected a struct value ({len(names)} fields), got {_type_name(value)}", path=self.path
            )
        if len(value) != len(names):
            raise FillTypeError(
                f"struct takes {len(names)} values {list(names)}, got {len(value)}", path=self.path
            )
        return list(zip(names, value))

    def to_array(self) -> pa.Array:
        fields = [pa.field(name, spec.arrow_type()) for name, spec in self.spec.fields]
        arrays = [self.children[name].to_array() for name, _ in self.spec.fields]
        return pa.StructArray.from_arrays(arrays, fields=fields)

    def clear(self) -> None:
        for child in self.children.values():
            child.clear()
        self._count = 0

    def __len__(self) -> int:
        return self._count


# ============================== construction ==================================

def build_buffer(path: str, spec: TypeSpec) -> ColumnBuffer:
    """Allocate the buffer for ``spec`` and, recursively, all of its children."""
    if isinstance(spec, Primitive):
        return PrimitiveBuffer(path, spec)
    if isinstance(spec, ListType):
        return ListBuffer(path, spec, build_buffer(path, spec.element))
    children = {name: build_buffer(f"{path}.{name}", child) for name, child in spec.fields}
    return StructBuffer(path, spec, children)
