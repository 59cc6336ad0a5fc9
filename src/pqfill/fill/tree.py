# src/pqfill/fill/tree.py
"""
BufferTree: every ColumnBuffer of a dataset, addressed by dotted path.

Addressable nodes are the top-level columns plus every struct / list-of-struct
field of a struct (``outer.inner``). The path index is built once and is the
only lookup table used by fill and by the end-of-row alignment walk.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import pyarrow as pa

from ..core.errors import AlignmentError, FillTypeError
from .column import (
    ColumnBuffer,
    ListBuffer,
    Shape,
    StructBuffer,
    build_buffer,
    check_nested,
    iter_leaves,
    nested_shape,
)
from .schema import Layout
from .typespec import is_struct_bearing

logger = logging.getLogger(__name__)


@dataclass
class _Node:
    """
    Bookkeeping for one addressable path.

    ``carrier`` is the number of list levels around the parent struct: a fill
    on a carried node supplies one unit per parent struct instance, wrapped in
    that many levels of lists.
    """
    path: str
    buffer: ColumnBuffer
    parent: Optional[str]
    carrier: int
    instance_depth: int       # list levels from a row value down to struct instances
    filled: int = 0
    carried_shape: Optional[Shape] = None
    instance_shape: Optional[Shape] = None


class BufferTree:
    def __init__(self, layout: Layout) -> None:
        self.layout = layout
        self.columns: Dict[str, ColumnBuffer] = {}
        self._nodes: Dict[str, _Node] = {}
        self._rows = 0
        for name, spec in layout:
            buf = build_buffer(name, spec)
            self.columns[name] = buf
            self._index(name, buf, parent=None, carrier=0)

    def _index(self, path: str, buf: ColumnBuffer, *, parent: Optional[str], carrier: int) -> None:
        dim = buf.dimension if isinstance(buf, ListBuffer) else 0
        node = _Node(path=path, buffer=buf, parent=parent, carrier=carrier, instance_depth=carrier + dim)
        self._nodes[path] = node
        if not is_struct_bearing(buf.spec):
            return
        struct = _struct_buffer(buf)
        for child_name, _ in struct.spec.nested_fields():
            self._index(
                f"{path}.{child_name}",
                struct.children[child_name],
                parent=path,
                carrier=node.instance_depth,
            )

    # ----------------------------- introspection ------------------------------

    @property
    def paths(self) -> Tuple[str, ...]:
        return tuple(self._nodes)

    @property
    def rows_buffered(self) -> int:
        """Completed rows held since the last clear."""
        return self._rows

    @property
    def row_open(self) -> bool:
        """True when the current row has received at least one fill."""
        return any(n.filled for n in self._nodes.values())

    def buffer(self, path: str) -> ColumnBuffer:
        return self._node(path).buffer

    # ----------------------------- filling ------------------------------------

    def fill(self, path: str, value: Any) -> None:
        """Append one unit at ``path``. Nothing is stored when the value is rejected."""
        node = self._node(path)
        buf = node.buffer
        if node.carrier:
            check_nested(value, node.carrier, path, buf.check)
            for leaf in iter_leaves(value, node.carrier):
                buf.append(leaf)
            node.carried_shape = nested_shape(value, node.carrier)
        else:
            buf.check(value)
            buf.append(value)
        if node.instance_depth and is_struct_bearing(buf.spec):
            node.instance_shape = nested_shape(value, node.instance_depth)
        node.filled += 1

    def end_row(self) -> None:
        """Close the current row; every addressable path must have been filled exactly once."""
        counts = {path: n.filled for path, n in self._nodes.items() if n.filled != 1}
        if counts:
            missing = sorted(p for p, c in counts.items() if c == 0)
            repeated = sorted(p for p, c in counts.items() if c > 1)
            parts: List[str] = []
            if missing:
                parts.append(f"not filled: {missing}")
            if repeated:
                parts.append(f"filled more than once: {repeated}")
            raise AlignmentError(
                f"row {self._rows} is misaligned ({'; '.join(parts)})", counts=counts
            )

        for node in self._nodes.values():
            if node.carrier and node.parent is not None:
                expected = self._nodes[node.parent].instance_shape
                if node.carried_shape != expected:
                    raise AlignmentError(
                        f"row {self._rows}: {node.path} was filled for {node.carried_shape} struct "
                        f"instances but {node.parent} holds {expected}",
                        counts={node.path: len(node.buffer), node.parent: len(self._nodes[node.parent].buffer)},
                    )

        for node in self._nodes.values():
            node.filled = 0
            node.carried_shape = None
            node.instance_shape = None
        self._rows += 1

    # ----------------------------- flush --------------------------------------

    def to_table(self, schema: pa.Schema) -> pa.Table:
        """Materialize every top-level column into one Arrow table (one row group)."""
        arrays = [self.columns[name].to_array() for name, _ in self.layout]
        logger.debug("materialized %d rows across %d columns", self._rows, len(arrays))
        return pa.Table.from_arrays(arrays, schema=schema)

    def clear(self) -> None:
        for buf in self.columns.values():
            buf.clear()
        self._rows = 0

    # ----------------------------- internals ----------------------------------

    def _node(self, path: str) -> _Node:
        try:
            return self._nodes[path]
        except KeyError:
            raise FillTypeError(
                f"no such column path (known: {', '.join(self._nodes)})", path=path
            ) from None


def _struct_buffer(buf: ColumnBuffer) -> StructBuffer:
    if isinstance(buf, ListBuffer):
        return buf.element  # type: ignore[return-value]
    return buf  # type: ignore[return-value]
