import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from pqfill.core.errors import FillTypeError
from pqfill.fill.column import ListBuffer, PrimitiveBuffer, StructBuffer, build_buffer, check_scalar, nested_shape
from pqfill.fill.typespec import ListType, Primitive, PrimitiveKind, StructType


def _struct(*fields):
    return StructType(tuple(fields))


def test_check_scalar_accepts_matching_kinds():
    check_scalar(True, PrimitiveKind.BOOL, "b")
    check_scalar(-128, PrimitiveKind.INT8, "i")
    check_scalar(2**64 - 1, PrimitiveKind.UINT64, "u")
    check_scalar(10.5, PrimitiveKind.FLOAT32, "f")
    check_scalar(3.4e38, PrimitiveKind.FLOAT32, "f")
    check_scalar(float("inf"), PrimitiveKind.FLOAT32, "f")
    check_scalar(1e300, PrimitiveKind.FLOAT64, "d")


@pytest.mark.parametrize(
    "value, kind",
    [
        (1, PrimitiveKind.BOOL),
        (True, PrimitiveKind.INT32),
        (128, PrimitiveKind.INT8),
        (-1, PrimitiveKind.UINT16),
        (1.0, PrimitiveKind.INT64),
        (42, PrimitiveKind.FLOAT64),
        ("1", PrimitiveKind.INT32),
        (None, PrimitiveKind.FLOAT32),
        (1e300, PrimitiveKind.FLOAT32),
        (-3.5e38, PrimitiveKind.FLOAT32),
    ],
)
def test_check_scalar_rejects_mismatches(value, kind):
    with pytest.raises(FillTypeError):
        check_scalar(value, kind, "col")


def test_primitive_buffer_materializes_and_clears():
    buf = PrimitiveBuffer("col", Primitive(PrimitiveKind.INT32))
    for v in (1, 2, 3):
        buf.fill(v)
    assert len(buf) == 3
    arr = buf.to_array()
    assert str(arr.type) == "int32"
    assert arr.to_pylist() == [1, 2, 3]
    buf.clear()
    assert len(buf) == 0


def test_list_buffer_keeps_empty_sublists_and_row_boundaries():
    buf = build_buffer("hits", ListType(Primitive(PrimitiveKind.UINT32), 2))
    assert isinstance(buf, ListBuffer)
    buf.fill([[42], [19, 27, 32]])
    buf.fill([])
    buf.fill([[], [72, 101]])
    assert len(buf) == 3
    assert buf.to_array().to_pylist() == [[[42], [19, 27, 32]], [], [[], [72, 101]]]


def test_list_buffer_three_dimensions():
    buf = build_buffer("cube", ListType(Primitive(PrimitiveKind.INT16), 3))
    buf.fill([[[1, 2], []], [[3]]])
    buf.fill([[]])
    assert buf.to_array().to_pylist() == [[[[1, 2], []], [[3]]], [[]]]


def test_list_buffer_rejects_wrong_depth_without_mutating():
    buf = build_buffer("hits", ListType(Primitive(PrimitiveKind.UINT32), 2))
    buf.fill([[1]])
    with pytest.raises(FillTypeError, match="nested list"):
        buf.fill([1, 2])
    with pytest.raises(FillTypeError):
        buf.fill([[1, -2]])
    with pytest.raises(FillTypeError):
        buf.fill("abc")
    assert len(buf) == 1
    assert buf.to_array().to_pylist() == [[[1]]]


def test_list_buffer_clear_keeps_shape():
    buf = build_buffer("xs", ListType(Primitive(PrimitiveKind.FLOAT64), 1))
    buf.fill([1.0, 2.0])
    buf.clear()
    buf.fill([3.0])
    assert buf.to_array().to_pylist() == [[3.0]]


def test_struct_positional_order_is_enforced():
    spec = _struct(("field0", Primitive(PrimitiveKind.INT32)), ("field1", Primitive(PrimitiveKind.FLOAT32)))
    buf = build_buffer("s", spec)
    with pytest.raises(FillTypeError) as exc:
        buf.fill((10.5, 42))
    assert exc.value.path == "s.field0"
    assert len(buf) == 0
    buf.fill((42, 10.5))
    assert buf.to_array().to_pylist() == [{"field0": 42, "field1": 10.5}]


def test_struct_mapping_fill_requires_declared_order():
    spec = _struct(("a", Primitive(PrimitiveKind.INT8)), ("b", Primitive(PrimitiveKind.BOOL)))
    buf = build_buffer("s", spec)
    buf.fill({"a": 1, "b": True})
    with pytest.raises(FillTypeError, match="declared order"):
        buf.fill({"b": False, "a": 2})
    with pytest.raises(FillTypeError, match="takes 2 values"):
        buf.fill((1,))
    assert buf.to_array().to_pylist() == [{"a": 1, "b": True}]


def test_struct_value_excludes_struct_bearing_fields():
    inner = _struct(("x", Primitive(PrimitiveKind.INT64)))
    spec = _struct(("a", Primitive(PrimitiveKind.INT8)), ("inner", inner))
    buf = build_buffer("s", spec)
    assert isinstance(buf, StructBuffer)
    assert buf.value_names == ("a",)
    buf.fill((7,))
    buf.children["inner"].fill((99,))
    assert buf.to_array().to_pylist() == [{"a": 7, "inner": {"x": 99}}]


def test_list_of_struct_buffer():
    spec = ListType(_struct(("x", Primitive(PrimitiveKind.FLOAT64)), ("tags", ListType(Primitive(PrimitiveKind.UINT8)))))
    buf = build_buffer("hits", spec)
    buf.fill([(1.5, [1, 2]), (2.5, [])])
    buf.fill([])
    assert buf.to_array().to_pylist() == [
        [{"x": 1.5, "tags": [1, 2]}, {"x": 2.5, "tags": []}],
        [],
    ]


def test_nested_shape():
    assert nested_shape([[1], [2, 3], []], 2) == (1, 2, 0)
    assert nested_shape([1, 2], 1) == 2
