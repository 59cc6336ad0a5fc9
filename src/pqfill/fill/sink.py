# src/pqfill/fill/sink.py
from __future__ import annotations

import hashlib
import json
import logging
import time
from pathlib import Path
from typing import Dict, List, Optional

import pyarrow as pa
import pyarrow.parquet as pq

from ..core.config import WriterConfig
from ..core.errors import SinkError

logger = logging.getLogger(__name__)


class ParquetSink:
    """
    Row-group sink over ``pyarrow.parquet.ParquetWriter`` with:
      - deterministic file names: <dataset>_<index:05>.parquet
      - optional rotation every ``rows_per_file`` rows (tables are split exactly)
      - verified close (row count read back from the footer)
      - optional JSON receipt with BLAKE2b integrity hashes
    """

    def __init__(self, out_dir: Path, dataset_name: str, schema: pa.Schema, config: WriterConfig) -> None:
        self.out_dir = Path(out_dir)
        self.dataset_name = dataset_name
        self.schema = schema
        self.config = config
        self._pq_write_kwargs = config.parquet_kwargs()

        self._writer: Optional[pq.ParquetWriter] = None
        self._path: Optional[Path] = None
        self._file_idx = 0
        self._file_rows = 0
        self._rows_total = 0
        self._row_groups = 0
        self._files: List[Path] = []
        self._rows_per_file: Dict[str, int] = {}
        self._transaction_log: List[str] = []
        self._closed = False

    # ----------------------------- state --------------------------------------

    @property
    def files(self) -> List[Path]:
        return list(self._files)

    @property
    def rows_written(self) -> int:
        return self._rows_total

    @property
    def row_groups_written(self) -> int:
        return self._row_groups

    # ----------------------------- lifecycle ----------------------------------

    def open(self) -> None:
        if self._closed:
            raise SinkError(f"sink for {self.dataset_name!r} is already closed")
        if self._writer is None:
            self.out_dir.mkdir(parents=True, exist_ok=True)
            self._open_next()

    def write_row_group(self, table: pa.Table) -> None:
        """Append ``table`` as one row group, rotating files when the row budget is reached."""
        if self._writer is None:
            raise SinkError(f"sink for {self.dataset_name!r} is not open")
        limit = self.config.rows_per_file
        offset = 0
        while offset < table.num_rows:
            if limit is not None and self._file_rows >= limit:
                self._close_current()
                self._open_next()
            take = table.num_rows - offset
            if limit is not None:
                take = min(take, limit - self._file_rows)
            self._write(table.slice(offset, take))
            offset += take

    def close(self) -> None:
        """Close the current file, verify it and (optionally) write the receipt."""
        if self._closed:
            return
        self._close_current()
        self._closed = True
        if self.config.write_receipt:
            self._write_receipt()

    def abort(self) -> None:
        """Close without verification or receipt; whatever was written stays on disk."""
        if self._closed:
            return
        self._closed = True
        writer, self._writer = self._writer, None
        if writer is not None:
            writer.close()
            self._transaction_log.append(f"aborted:{self._path.name if self._path else '-'}")
            logger.warning("aborted %s after %d rows; file is incomplete", self._path, self._file_rows)

    # ----------------------------- internals ----------------------------------

    def _file_path(self, idx: int) -> Path:
        return self.out_dir / f"{self.dataset_name}_{idx:05}.parquet"

    def _open_next(self) -> None:
        path = self._file_path(self._file_idx)
        try:
            self._writer = pq.ParquetWriter(path, self.schema, **self._pq_write_kwargs)
        except (OSError, pa.ArrowException) as e:
            raise SinkError(f"cannot open {path}: {e}") from e
        self._path = path
        self._file_rows = 0
        self._files.append(path)
        self._file_idx += 1
        self._transaction_log.append(f"opened:{path.name}")
        logger.debug("opened %s", path)

    def _write(self, table: pa.Table) -> None:
        try:
            self._writer.write_table(table, row_group_size=max(1, table.num_rows))
        except (OSError, pa.ArrowException) as e:
            raise SinkError(f"failed writing row group to {self._path}: {e}") from e
        self._file_rows += table.num_rows
        self._rows_total += table.num_rows
        self._row_groups += 1
        logger.debug("wrote row group of %d rows to %s", table.num_rows, self._path)

    def _close_current(self) -> None:
        writer, self._writer = self._writer, None
        if writer is None:
            return
        path = self._path
        writer.close()
        self._rows_per_file[path.name] = self._file_rows
        self._transaction_log.append(f"closed:{path.name}")
        if self.config.verify_on_close:
            self._verify(path, self._file_rows)

    def _verify(self, path: Path, expected_rows: int) -> None:
        if not path.exists() or path.stat().st_size == 0:
            raise SinkError(f"failed to write {path}")
        written = pq.read_metadata(path).num_rows
        if written != expected_rows:
            raise SinkError(f"row count mismatch in {path.name}: expected {expected_rows}, got {written}")

    def _integrity_hashes(self) -> Dict[str, str]:
        hashes: Dict[str, str] = {}
        for path in self._files:
            with open(path, "rb") as f:
                hashes[path.name] = hashlib.blake2b(f.read(), digest_size=16).hexdigest()
        return hashes

    def _write_receipt(self) -> None:
        receipt = {
            "dataset": self.dataset_name,
            "rows": self._rows_total,
            "row_groups": self._row_groups,
            "files": {name: {"rows": rows} for name, rows in self._rows_per_file.items()},
            "compression": {"algorithm": self.config.compression, "level": self.config.compression_level},
            "schema": str(self.schema.remove_metadata()),
            "created_at_epoch": int(time.time()),
            "created_at_iso": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "transaction_log": self._transaction_log,
        }
        for name, digest in self._integrity_hashes().items():
            receipt["files"].setdefault(name, {})["blake2b"] = digest
        path = receipt_path(self.out_dir, self.dataset_name)
        path.write_text(json.dumps(receipt, indent=2), encoding="utf-8")
        logger.debug("wrote receipt %s", path)


def receipt_path(out_dir: Path, dataset_name: str) -> Path:
    return Path(out_dir) / f"{dataset_name}_receipt.json"
