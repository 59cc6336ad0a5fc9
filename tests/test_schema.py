import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from pqfill.core.errors import SchemaError
from pqfill.fill.schema import load_layout, parse_layout
from pqfill.fill.typespec import ListType, Primitive, PrimitiveKind, StructType, struct_depth


NESTED_LAYOUT = {
    "fields": [
        {"name": "col", "type": "int32"},
        {"name": "hits", "type": "list", "contains": {"type": "list", "contains": {"type": "uint32"}}},
        {
            "name": "outer",
            "type": "struct",
            "fields": [
                {"name": "a", "type": "float"},
                {"name": "inner", "type": "struct", "fields": [{"name": "b", "type": "double"}]},
                {
                    "name": "items",
                    "type": "list",
                    "contains": {"type": "struct", "fields": [{"name": "c", "type": "bool"}]},
                },
            ],
        },
    ]
}


def test_parse_primitive_column():
    assert parse_layout({"fields": [{"name": "col", "type": "int32"}]}) == (
        ("col", Primitive(PrimitiveKind.INT32)),
    )


def test_parse_is_idempotent():
    assert parse_layout(NESTED_LAYOUT) == parse_layout(json.loads(json.dumps(NESTED_LAYOUT)))


def test_nested_lists_collapse_into_dimension():
    fields = dict(parse_layout(NESTED_LAYOUT))
    assert fields["hits"] == ListType(Primitive(PrimitiveKind.UINT32), 2)


def test_float_and_double_aliases():
    outer = dict(parse_layout(NESTED_LAYOUT))["outer"]
    assert isinstance(outer, StructType)
    names = dict(outer.fields)
    assert names["a"] == Primitive(PrimitiveKind.FLOAT32)
    assert names["inner"] == StructType((("b", Primitive(PrimitiveKind.FLOAT64)),))
    assert struct_depth(outer) == 2


def test_struct_value_and_nested_fields_are_split():
    outer = dict(parse_layout(NESTED_LAYOUT))["outer"]
    assert [n for n, _ in outer.value_fields()] == ["a"]
    assert [n for n, _ in outer.nested_fields()] == ["inner", "items"]


def test_third_struct_level_rejected():
    layout = {
        "fields": [
            {
                "name": "outer",
                "type": "struct",
                "fields": [
                    {
                        "name": "inner",
                        "type": "struct",
                        "fields": [{"name": "deep", "type": "struct", "fields": [{"name": "x", "type": "int8"}]}],
                    }
                ],
            }
        ]
    }
    with pytest.raises(SchemaError) as exc:
        parse_layout(layout)
    assert exc.value.path == "outer.inner.deep"


def test_list_of_struct_counts_as_struct_level():
    layout = {
        "fields": [
            {
                "name": "events",
                "type": "list",
                "contains": {
                    "type": "struct",
                    "fields": [
                        {
                            "name": "inner",
                            "type": "struct",
                            "fields": [
                                {
                                    "name": "deep",
                                    "type": "list",
                                    "contains": {"type": "struct", "fields": [{"name": "x", "type": "int8"}]},
                                }
                            ],
                        }
                    ],
                },
            }
        ]
    }
    with pytest.raises(SchemaError, match="struct nested"):
        parse_layout(layout)


def test_list_of_four_levels_rejected():
    contains = {"type": "int32"}
    for _ in range(4):
        contains = {"type": "list", "contains": contains}
    with pytest.raises(SchemaError, match="at most 3"):
        parse_layout({"fields": [{"name": "deep", **contains}]})


@pytest.mark.parametrize(
    "fields, message",
    [
        ([{"type": "int32"}], "name"),
        ([{"name": "", "type": "int32"}], "name"),
        ([{"name": "x"}], "type"),
        ([{"name": "x", "type": "string"}], "unknown type"),
        ([{"name": "x", "type": "list"}], "contains"),
        ([{"name": "x", "type": "list", "contains": {}}], "must not be empty"),
        ([{"name": "x", "type": "struct"}], "fields"),
        ([{"name": "x", "type": "struct", "fields": []}], "must not be empty"),
        ([{"name": "x", "type": "int8"}, {"name": "x", "type": "int16"}], "duplicate"),
        ([{"name": "a.b", "type": "int8"}], "'.'"),
        (["x"], "must be an object"),
    ],
)
def test_malformed_fields_rejected(fields, message):
    with pytest.raises(SchemaError, match=message):
        parse_layout({"fields": fields})


def test_layout_must_be_object_with_fields():
    with pytest.raises(SchemaError):
        parse_layout([])
    with pytest.raises(SchemaError, match="fields"):
        parse_layout({})
    with pytest.raises(SchemaError, match="must not be empty"):
        parse_layout({"fields": []})


def test_schema_error_is_a_value_error():
    with pytest.raises(ValueError):
        parse_layout({"fields": [{"name": "x", "type": "nope"}]})


def test_load_layout_from_json_text_and_file(tmp_path):
    text = json.dumps(NESTED_LAYOUT)
    path = tmp_path / "layout.json"
    path.write_text(text, encoding="utf-8")
    assert load_layout(text) == load_layout(path) == parse_layout(NESTED_LAYOUT)


def test_load_layout_rejects_bad_json(tmp_path):
    with pytest.raises(SchemaError, match="not valid JSON"):
        load_layout("{fields: ")
    with pytest.raises(SchemaError, match="cannot read"):
        load_layout(tmp_path / "missing.json")
