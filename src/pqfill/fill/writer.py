# src/pqfill/fill/writer.py
"""
Public entry point: a schema-driven, row-oriented writer for Parquet files.

    w = Writer()
    w.set_layout({"fields": [{"name": "col", "type": "int32"}]})
    w.set_dataset_name("example")
    w.initialize()
    for v in (1, 2, 3):
        w.fill("col", v)
        w.end_row()
    w.finish()

Lifecycle: UNCONFIGURED → LAYOUT_SET → INITIALIZED → FILLING → FINALIZED.
Any fill/alignment/sink error is fatal: the sink is closed as-is, the writer
moves to FAILED and refuses further calls.
"""
from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import pyarrow as pa

from ..core.config import WriterConfig
from ..core.errors import AlignmentError, LifecycleError, PqFillError
from .schema import Layout, LayoutSource, load_layout
from .sink import ParquetSink
from .tree import BufferTree
from .typespec import arrow_schema

logger = logging.getLogger(__name__)

METADATA_KEY = b"metadata"
DATASET_KEY = b"dataset"


class WriterState(str, Enum):
    UNCONFIGURED = "unconfigured"
    LAYOUT_SET = "layout_set"
    INITIALIZED = "initialized"
    FILLING = "filling"
    FINALIZED = "finalized"
    FAILED = "failed"


_CONFIGURABLE = (WriterState.UNCONFIGURED, WriterState.LAYOUT_SET)
_FILLABLE = (WriterState.INITIALIZED, WriterState.FILLING)


class Writer:
    def __init__(
        self,
        dataset_name: Optional[str] = None,
        *,
        config: Optional[WriterConfig] = None,
        output_dir: Optional[Union[str, Path]] = None,
    ) -> None:
        self.config = config or WriterConfig()
        self.output_dir = Path(output_dir if output_dir is not None else self.config.output_dir)
        self._flush_rows = int(self.config.flush_rows)
        self._state = WriterState.UNCONFIGURED
        self._dataset_name: Optional[str] = None
        self._layout: Optional[Layout] = None
        self._metadata: Optional[Dict[str, Any]] = None
        self._schema: Optional[pa.Schema] = None
        self._tree: Optional[BufferTree] = None
        self._sink: Optional[ParquetSink] = None
        if dataset_name is not None:
            self.set_dataset_name(dataset_name)

    # ----------------------------- introspection ------------------------------

    @property
    def state(self) -> WriterState:
        return self._state

    @property
    def dataset_name(self) -> Optional[str]:
        return self._dataset_name

    @property
    def layout(self) -> Optional[Layout]:
        return self._layout

    @property
    def schema(self) -> Optional[pa.Schema]:
        """Arrow schema handed to the sink; available after initialize()."""
        return self._schema

    @property
    def rows_buffered(self) -> int:
        return self._tree.rows_buffered if self._tree is not None else 0

    @property
    def rows_written(self) -> int:
        return self._sink.rows_written if self._sink is not None else 0

    @property
    def row_groups_written(self) -> int:
        return self._sink.row_groups_written if self._sink is not None else 0

    @property
    def files(self) -> List[Path]:
        return self._sink.files if self._sink is not None else []

    # ----------------------------- configuration ------------------------------

    def set_layout(self, layout: LayoutSource) -> None:
        self._require(_CONFIGURABLE, "set_layout")
        self._layout = load_layout(layout)
        self._state = WriterState.LAYOUT_SET

    def set_dataset_name(self, name: str) -> None:
        self._require(_CONFIGURABLE, "set_dataset_name")
        if not isinstance(name, str) or not name.strip():
            raise ValueError("dataset name must be a non-empty string")
        if "/" in name or "\\" in name:
            raise ValueError(f"dataset name must not contain path separators: {name!r}")
        self._dataset_name = name

    def set_metadata(self, metadata: Union[Mapping[str, Any], str]) -> None:
        """Store a JSON object verbatim for the file's key-value metadata."""
        self._require(_CONFIGURABLE, "set_metadata")
        if isinstance(metadata, str):
            try:
                metadata = json.loads(metadata)
            except json.JSONDecodeError as e:
                raise ValueError(f"metadata is not valid JSON: {e}") from e
        if not isinstance(metadata, Mapping):
            raise ValueError(f"metadata must be a JSON object, got {type(metadata).__name__}")
        # round-trip now so unserializable values fail here rather than at initialize
        self._metadata = json.loads(json.dumps(dict(metadata)))

    def set_flush_rows(self, n: int) -> None:
        """Rows per row group; a flush runs whenever this many rows are buffered."""
        self._require(_CONFIGURABLE, "set_flush_rows")
        if int(n) < 1:
            raise ValueError(f"flush threshold must be >= 1, got {n}")
        self._flush_rows = int(n)

    # ----------------------------- lifecycle ----------------------------------

    def initialize(self) -> None:
        self._require((WriterState.LAYOUT_SET,), "initialize")
        if self._dataset_name is None:
            raise LifecycleError("initialize() requires a dataset name", state=self._state.value)

        kv = {DATASET_KEY: self._dataset_name.encode("utf-8")}
        if self._metadata is not None:
            kv[METADATA_KEY] = json.dumps(self._metadata).encode("utf-8")
        self._schema = arrow_schema(self._layout, metadata=kv)
        self._tree = BufferTree(self._layout)
        self._sink = ParquetSink(self.output_dir, self._dataset_name, self._schema, self.config)
        self._sink.open()
        self._state = WriterState.INITIALIZED
        logger.debug(
            "initialized %s: %d columns, %d addressable paths, flush every %d rows",
            self._dataset_name,
            len(self._layout),
            len(self._tree.paths),
            self._flush_rows,
        )

    def fill(self, path: str, value: Any) -> None:
        """Append one unit (scalar, nested list or struct value) at a dotted column path."""
        self._require(_FILLABLE, "fill")
        self._guarded(self._tree.fill, path, value)
        self._state = WriterState.FILLING

    def end_row(self) -> None:
        self._require(_FILLABLE, "end_row")
        self._guarded(self._tree.end_row)
        self._state = WriterState.FILLING
        if self._tree.rows_buffered >= self._flush_rows:
            self._guarded(self._flush)

    def flush(self) -> None:
        """Write every complete buffered row as a row group now."""
        self._require(_FILLABLE, "flush")
        if self._tree.row_open:
            raise LifecycleError(
                "flush() needs the pending row closed with end_row() first", state=self._state.value
            )
        self._guarded(self._flush)

    def finish(self) -> None:
        """Flush what is buffered, close the file(s) and finalize. Only valid once."""
        self._require(_FILLABLE, "finish")
        self._guarded(self._flush)
        self._guarded(self._sink.close)
        self._state = WriterState.FINALIZED
        logger.info(
            "finished %s: %d rows in %d row groups across %d file(s)",
            self._dataset_name,
            self._sink.rows_written,
            self._sink.row_groups_written,
            len(self._sink.files),
        )

    def close(self) -> None:
        """Release the sink when finish() was never called. Buffered rows are dropped."""
        if self._sink is not None and self._state in _FILLABLE:
            logger.warning(
                "closing %s without finish(); %d buffered rows discarded",
                self._dataset_name,
                self.rows_buffered,
            )
            self._sink.abort()
            self._state = WriterState.FAILED

    def __enter__(self) -> "Writer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None and self._state in _FILLABLE:
            self.finish()
        else:
            self.close()

    def __del__(self) -> None:
        if getattr(self, "_sink", None) is not None and getattr(self, "_state", None) in _FILLABLE:
            self.close()

    # ----------------------------- internals ----------------------------------

    def _flush(self) -> None:
        if self._tree.row_open:
            raise AlignmentError("a partially filled row is pending; call end_row() before flushing")
        if self._tree.rows_buffered == 0:
            return
        table = self._tree.to_table(self._schema)
        self._sink.write_row_group(table)
        self._tree.clear()

    def _guarded(self, fn, *args) -> None:
        try:
            fn(*args)
        except (PqFillError, pa.ArrowException) as e:
            logger.error("%s: fatal %s, aborting write session: %s", self._dataset_name, type(e).__name__, e)
            self._state = WriterState.FAILED
            if self._sink is not None:
                self._sink.abort()
            raise

    def _require(self, allowed, op: str) -> None:
        if self._state not in allowed:
            raise LifecycleError(
                f"{op}() is not allowed here; expected one of {[s.value for s in allowed]}",
                state=self._state.value,
            )
