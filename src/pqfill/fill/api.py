# src/pqfill/fill/api.py
from __future__ import annotations

import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from ..core.config import WriterConfig
from .schema import LayoutSource
from .sink import receipt_path
from .writer import Writer


@dataclass(frozen=True)
class WriteSummary:
    dataset_name: str
    rows: int
    row_groups: int
    files: Tuple[str, ...]
    wall_ms: int


def write_dataset(
    layout: LayoutSource,
    rows: Iterable[Mapping[str, Any]],
    *,
    dataset_name: str,
    config: Optional[WriterConfig] = None,
    metadata: Optional[Mapping[str, Any]] = None,
) -> WriteSummary:
    """
    Drive a Writer over row mappings of ``dotted path → value``.

    Keys are filled in mapping order, then the row is closed. Any error
    aborts the session and propagates.
    """
    t0 = time.time()
    writer = Writer(dataset_name, config=config)
    writer.set_layout(layout)
    if metadata is not None:
        writer.set_metadata(metadata)
    writer.initialize()
    with writer:
        for row in rows:
            for path, value in row.items():
                writer.fill(path, value)
            writer.end_row()

    return WriteSummary(
        dataset_name=dataset_name,
        rows=writer.rows_written,
        row_groups=writer.row_groups_written,
        files=tuple(str(p) for p in writer.files),
        wall_ms=int((time.time() - t0) * 1000),
    )


def load_receipt(out_dir: Path, dataset_name: str) -> Dict[str, Any]:
    """Re-read the receipt written on finish (requires ``write_receipt``)."""
    path = receipt_path(Path(out_dir), dataset_name)
    if not path.exists():
        return {}
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return {}
