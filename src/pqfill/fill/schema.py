# src/pqfill/fill/schema.py
"""
Layout parsing: JSON-like value tree → validated (name, TypeSpec) forest.

    {"fields": [
        {"name": "col", "type": "int32"},
        {"name": "hits", "type": "list", "contains": {"type": "list", "contains": {"type": "uint32"}}},
        {"name": "obj", "type": "struct", "fields": [...]},
    ]}
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Mapping, Sequence, Set, Tuple, Union

from ..core.errors import SchemaError
from .typespec import (
    MAX_LIST_DIMENSION,
    MAX_STRUCT_DEPTH,
    PRIMITIVE_NAMES,
    ListType,
    Primitive,
    StructType,
    TypeSpec,
)

Layout = Tuple[Tuple[str, TypeSpec], ...]
LayoutSource = Union[Mapping[str, Any], str, Path]


def load_layout(source: LayoutSource) -> Layout:
    """Parse a layout given as a mapping, a JSON document string, or a path to a JSON file."""
    if isinstance(source, Path):
        try:
            text = source.read_text(encoding="utf-8")
        except OSError as e:
            raise SchemaError(f"cannot read layout file {source}: {e}") from e
        return parse_layout(_decode(text))
    if isinstance(source, str):
        return parse_layout(_decode(source))
    return parse_layout(source)


def parse_layout(layout: Any) -> Layout:
    """Validate ``{"fields": [...]}`` and return one (name, TypeSpec) per top-level column."""
    if not isinstance(layout, Mapping):
        raise SchemaError(f"layout must be a JSON object, got {type(layout).__name__}")
    if "fields" not in layout:
        raise SchemaError('layout is missing the "fields" array')
    return _parse_fields(layout["fields"], parent="", depth=0)


# ----------------------------- internals --------------------------------------

def _decode(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise SchemaError(f"layout is not valid JSON: {e}") from e


def _parse_fields(fields: Any, *, parent: str, depth: int) -> Layout:
    where = parent or "<root>"
    if not isinstance(fields, Sequence) or isinstance(fields, (str, bytes)):
        raise SchemaError('"fields" must be an array', path=where)
    if not fields:
        raise SchemaError('"fields" must not be empty', path=where)

    out: List[Tuple[str, TypeSpec]] = []
    seen: Set[str] = set()
    for idx, obj in enumerate(fields):
        if not isinstance(obj, Mapping):
            raise SchemaError(f"field #{idx} must be an object", path=where)
        name = obj.get("name")
        if not isinstance(name, str) or not name:
            raise SchemaError(f'field #{idx} needs a non-empty string "name"', path=where)
        path = f"{parent}.{name}" if parent else name
        if "." in name:
            raise SchemaError("field names must not contain '.'", path=path)
        if name in seen:
            raise SchemaError("duplicate field name", path=path)
        seen.add(name)
        out.append((name, _parse_type(obj, path=path, depth=depth)))
    return tuple(out)


def _parse_type(obj: Mapping[str, Any], *, path: str, depth: int, dimension: int = 0) -> TypeSpec:
    type_name = obj.get("type")
    if not isinstance(type_name, str) or not type_name:
        raise SchemaError('missing string "type"', path=path)

    if type_name in PRIMITIVE_NAMES:
        prim = Primitive(PRIMITIVE_NAMES[type_name])
        return ListType(prim, dimension) if dimension else prim

    if type_name == "list":
        if dimension >= MAX_LIST_DIMENSION:
            raise SchemaError(f"lists nest at most {MAX_LIST_DIMENSION} levels deep", path=path)
        contains = obj.get("contains")
        if not isinstance(contains, Mapping):
            raise SchemaError('list requires a "contains" object', path=path)
        if not contains:
            raise SchemaError('"contains" must not be empty', path=path)
        return _parse_type(contains, path=path, depth=depth, dimension=dimension + 1)

    if type_name == "struct":
        if depth >= MAX_STRUCT_DEPTH:
            raise SchemaError(
                f"struct nested more than {MAX_STRUCT_DEPTH} levels deep is not supported", path=path
            )
        if "fields" not in obj:
            raise SchemaError('struct requires a "fields" array', path=path)
        struct = StructType(_parse_fields(obj["fields"], parent=path, depth=depth + 1))
        return ListType(struct, dimension) if dimension else struct

    raise SchemaError(f"unknown type {type_name!r}", path=path)
