"""Writer configuration and environment overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Optional


_TRUE_VALUES = {"1", "true", "yes", "on"}
_ENV_PREFIX = "PQFILL_"
_LEVELED_CODECS = {"zstd", "gzip", "brotli"}


def env_setting(name: str) -> Optional[str]:
    """Return the raw value of a setting from the environment, or None.

    Setting names map to environment variables using the pattern:
        writer.flush_rows → PQFILL_WRITER_FLUSH_ROWS
    """

    raw = os.getenv(_ENV_PREFIX + name.upper().replace(".", "_"))
    if raw is None or not raw.strip():
        return None
    return raw.strip()


def env_flag(name: str, default: bool = False) -> bool:
    raw = env_setting(name)
    if raw is None:
        return default
    return raw.lower() in _TRUE_VALUES


def env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = env_setting(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{_ENV_PREFIX}{name.upper()} must be an integer, got {raw!r}") from None


@dataclass(frozen=True)
class WriterConfig:
    """Knobs for buffering, row-group sizing and the Parquet sink."""
    output_dir: str = "."
    flush_rows: int = 10_000
    rows_per_file: Optional[int] = None
    compression: str = "zstd"
    compression_level: Optional[int] = 7
    use_dictionary: bool = True
    write_statistics: bool = True
    verify_on_close: bool = True
    write_receipt: bool = False

    def __post_init__(self) -> None:
        if int(self.flush_rows) < 1:
            raise ValueError(f"flush_rows must be >= 1, got {self.flush_rows}")
        if self.rows_per_file is not None and int(self.rows_per_file) < 1:
            raise ValueError(f"rows_per_file must be >= 1 or None, got {self.rows_per_file}")

    @classmethod
    def from_env(cls, base: Optional["WriterConfig"] = None) -> "WriterConfig":
        """Overlay PQFILL_* environment variables on ``base`` (or the defaults)."""
        cfg = base or cls()
        compression = env_setting("compression") or cfg.compression
        return replace(
            cfg,
            output_dir=env_setting("output_dir") or cfg.output_dir,
            flush_rows=env_int("flush_rows", cfg.flush_rows),
            rows_per_file=env_int("rows_per_file", cfg.rows_per_file),
            compression=compression,
            compression_level=env_int("compression_level", cfg.compression_level),
            verify_on_close=env_flag("verify_on_close", cfg.verify_on_close),
            write_receipt=env_flag("write_receipt", cfg.write_receipt),
        )

    def parquet_kwargs(self) -> dict:
        kwargs = dict(
            compression=self.compression,
            use_dictionary=self.use_dictionary,
            write_statistics=self.write_statistics,
        )
        if self.compression_level is not None and self.compression.lower() in _LEVELED_CODECS:
            kwargs["compression_level"] = int(self.compression_level)
        return kwargs
