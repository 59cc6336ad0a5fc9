# src/pqfill/fill/typespec.py
"""
Closed type model for layout fields.

A TypeSpec is one of:
  - Primitive(kind)                  scalar column
  - ListType(element, dimension)     1..3 collapsed list levels over a
                                     Primitive or Struct element
  - StructType(fields)               ordered (name, TypeSpec) pairs

Struct nesting is capped: a top-level Struct (or the element Struct of a
top-level list) may hold Struct / list-of-Struct fields, but those inner
Structs may only hold non-struct fields.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple, Union

import pyarrow as pa


MAX_LIST_DIMENSION = 3
MAX_STRUCT_DEPTH = 2
FLOAT32_MAX = 3.4028234663852886e38


class PrimitiveKind(str, Enum):
    BOOL = "bool"
    INT8 = "int8"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    UINT8 = "uint8"
    UINT16 = "uint16"
    UINT32 = "uint32"
    UINT64 = "uint64"
    FLOAT32 = "float32"
    FLOAT64 = "float64"

    @property
    def is_integer(self) -> bool:
        return self in _INT_RANGES

    def int_range(self) -> Tuple[int, int]:
        return _INT_RANGES[self]

    def float_max(self) -> Optional[float]:
        """Largest finite magnitude the column can hold; None for float64."""
        return FLOAT32_MAX if self is PrimitiveKind.FLOAT32 else None

    def arrow_type(self) -> pa.DataType:
        return _ARROW_TYPES[self]()


_INT_RANGES: Dict[PrimitiveKind, Tuple[int, int]] = {
    PrimitiveKind.INT8: (-(2**7), 2**7 - 1),
    PrimitiveKind.INT16: (-(2**15), 2**15 - 1),
    PrimitiveKind.INT32: (-(2**31), 2**31 - 1),
    PrimitiveKind.INT64: (-(2**63), 2**63 - 1),
    PrimitiveKind.UINT8: (0, 2**8 - 1),
    PrimitiveKind.UINT16: (0, 2**16 - 1),
    PrimitiveKind.UINT32: (0, 2**32 - 1),
    PrimitiveKind.UINT64: (0, 2**64 - 1),
}

_ARROW_TYPES = {
    PrimitiveKind.BOOL: pa.bool_,
    PrimitiveKind.INT8: pa.int8,
    PrimitiveKind.INT16: pa.int16,
    PrimitiveKind.INT32: pa.int32,
    PrimitiveKind.INT64: pa.int64,
    PrimitiveKind.UINT8: pa.uint8,
    PrimitiveKind.UINT16: pa.uint16,
    PrimitiveKind.UINT32: pa.uint32,
    PrimitiveKind.UINT64: pa.uint64,
    PrimitiveKind.FLOAT32: pa.float32,
    PrimitiveKind.FLOAT64: pa.float64,
}

# Layout spellings → kind. "float"/"double" follow the C-style names.
PRIMITIVE_NAMES: Dict[str, PrimitiveKind] = {k.value: k for k in PrimitiveKind}
PRIMITIVE_NAMES["float"] = PrimitiveKind.FLOAT32
PRIMITIVE_NAMES["double"] = PrimitiveKind.FLOAT64


@dataclass(frozen=True)
class Primitive:
    kind: PrimitiveKind

    def arrow_type(self) -> pa.DataType:
        return self.kind.arrow_type()

    def describe(self) -> str:
        return self.kind.value


@dataclass(frozen=True)
class StructType:
    fields: Tuple[Tuple[str, "TypeSpec"], ...]

    def arrow_type(self) -> pa.DataType:
        return pa.struct([pa.field(name, spec.arrow_type()) for name, spec in self.fields])

    def describe(self) -> str:
        inner = ", ".join(f"{name}: {spec.describe()}" for name, spec in self.fields)
        return f"struct<{inner}>"

    def value_fields(self) -> Tuple[Tuple[str, "TypeSpec"], ...]:
        """Fields carried by a struct_t: everything that is not struct-bearing."""
        return tuple((n, s) for n, s in self.fields if not is_struct_bearing(s))

    def nested_fields(self) -> Tuple[Tuple[str, "TypeSpec"], ...]:
        """Struct / list-of-struct fields, filled through their own dotted path."""
        return tuple((n, s) for n, s in self.fields if is_struct_bearing(s))


@dataclass(frozen=True)
class ListType:
    element: Union[Primitive, StructType]
    dimension: int = 1

    def __post_init__(self) -> None:
        if not 1 <= self.dimension <= MAX_LIST_DIMENSION:
            raise ValueError(f"list dimension must be in 1..{MAX_LIST_DIMENSION}, got {self.dimension}")
        if isinstance(self.element, ListType):
            raise ValueError("list element must be collapsed into the dimension, not nested")

    def arrow_type(self) -> pa.DataType:
        t = self.element.arrow_type()
        for _ in range(self.dimension):
            t = pa.list_(t)
        return t

    def describe(self) -> str:
        out = self.element.describe()
        for _ in range(self.dimension):
            out = f"list[{out}]"
        return out


TypeSpec = Union[Primitive, ListType, StructType]


def is_struct_bearing(spec: TypeSpec) -> bool:
    if isinstance(spec, StructType):
        return True
    return isinstance(spec, ListType) and isinstance(spec.element, StructType)


def struct_depth(spec: TypeSpec) -> int:
    """Number of struct levels on the deepest path through ``spec``."""
    if isinstance(spec, Primitive):
        return 0
    if isinstance(spec, ListType):
        return struct_depth(spec.element)
    return 1 + max((struct_depth(s) for _, s in spec.fields), default=0)


def arrow_schema(fields: Tuple[Tuple[str, TypeSpec], ...], metadata=None) -> pa.Schema:
    return pa.schema(
        [pa.field(name, spec.arrow_type()) for name, spec in fields],
        metadata=metadata,
    )
