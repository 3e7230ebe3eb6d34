"""Shared utilities for tabular record sources."""

from __future__ import annotations

import glob
import os
from pathlib import Path
from typing import Any, Iterable, Mapping

import pandas as pd

from g2phub.errors import InputLoadError

try:
    import duckdb
except ImportError:  # pragma: no cover - exercised only when dependency missing
    duckdb = None


TABLE_SUFFIXES: tuple[str, ...] = (
    ".csv",
    ".csv.gz",
    ".tsv",
    ".tsv.gz",
    ".txt",
    ".txt.gz",
    ".bed",
    ".bed.gz",
    ".parquet",
)

MISSING_TOKENS = {"", "nan", "none", "null", "na"}

_READ_ERRORS: tuple[type[BaseException], ...] = (OSError, ValueError, UnicodeDecodeError)
if duckdb is not None:
    _READ_ERRORS += (duckdb.Error,)


def _is_table_like(path: Path) -> bool:
    name = path.name.lower()
    return any(name.endswith(suffix) for suffix in TABLE_SUFFIXES)


def expand_input_paths(input_paths: str | Path | Iterable[str | Path]) -> list[Path]:
    """Expand file, directory, or glob inputs into concrete table paths."""

    if isinstance(input_paths, (str, Path)):
        items: list[str | Path] = [input_paths]
    else:
        items = list(input_paths)

    resolved: list[Path] = []
    for item in items:
        expanded_item = os.path.expandvars(os.path.expanduser(str(item)))
        item_path = Path(expanded_item)

        if item_path.is_dir():
            resolved.extend(
                sorted(
                    path
                    for path in item_path.iterdir()
                    if path.is_file() and _is_table_like(path)
                )
            )
            continue

        if item_path.exists():
            resolved.append(item_path)
            continue

        matches = [Path(path) for path in glob.glob(expanded_item)]
        resolved.extend(sorted(match for match in matches if _is_table_like(match)))

    return resolved


def _delimiter_for(path: Path) -> str:
    name = path.name.lower()
    if name.endswith((".csv", ".csv.gz")):
        return ","
    return "\t"


def read_table(
    path: Path,
    *,
    header: bool = True,
    comment: str | None = None,
    names: list[int] | None = None,
) -> pd.DataFrame:
    """Read a delimited or Parquet file into a string-typed frame.

    Parquet is read through DuckDB; delimited text goes through pandas with the
    delimiter implied by the file suffix.
    """

    if path.name.lower().endswith(".parquet"):
        if duckdb is None:
            raise RuntimeError("duckdb is not installed. Add it to requirements to read Parquet inputs.")
        connection = duckdb.connect()
        try:
            target = path.as_posix().replace("'", "''")
            return connection.execute(f"SELECT * FROM read_parquet('{target}')").df()
        finally:
            connection.close()

    return pd.read_csv(
        path,
        sep=_delimiter_for(path),
        header=0 if header else None,
        comment=comment,
        names=names,
        dtype=str,
        keep_default_na=False,
    )


def load_frames(
    location: str | Path,
    *,
    header: bool = True,
    comment: str | None = None,
    names: list[int] | None = None,
) -> list[tuple[Path, pd.DataFrame]]:
    """Read every table behind ``location``, raising ``InputLoadError`` on failure."""

    paths = expand_input_paths(location)
    if not paths:
        raise InputLoadError(f"No input files matched: {location}")

    frames = []
    for path in paths:
        try:
            frames.append((path, read_table(path, header=header, comment=comment, names=names)))
        except _READ_ERRORS as exc:
            raise InputLoadError(f"Could not read {path}: {exc}") from exc
    return frames


class TabularSourceMixin:
    """Common conversions for table-based record sources."""

    column_aliases: Mapping[str, str] = {}

    def _normalize_columns(self, frame: pd.DataFrame) -> pd.DataFrame:
        renamed = {}
        for column in frame.columns:
            key = str(column).strip()
            canonical = self.column_aliases.get(key.lower(), key.lower())
            renamed[column] = canonical
        return frame.rename(columns=renamed)

    @staticmethod
    def _require_columns(frame: pd.DataFrame, required: Iterable[str], path: Path) -> None:
        missing = [column for column in required if column not in frame.columns]
        if missing:
            raise InputLoadError(f"{path}: missing required columns: {', '.join(missing)}")

    @staticmethod
    def _to_string(value: Any) -> str | None:
        if value is None or pd.isna(value):
            return None

        cleaned = str(value).strip()
        if cleaned.lower() in MISSING_TOKENS:
            return None

        return cleaned

    @staticmethod
    def _to_int(value: Any, *, column: str, path: Path) -> int:
        cleaned = TabularSourceMixin._to_string(value)
        if cleaned is None:
            raise InputLoadError(f"{path}: missing value in column '{column}'")
        try:
            return int(float(cleaned)) if "." in cleaned or "e" in cleaned.lower() else int(cleaned)
        except ValueError as exc:
            raise InputLoadError(f"{path}: invalid integer in column '{column}': {value!r}") from exc

    @staticmethod
    def _to_float(value: Any, *, column: str, path: Path) -> float | None:
        cleaned = TabularSourceMixin._to_string(value)
        if cleaned is None:
            return None
        try:
            return float(cleaned)
        except ValueError as exc:
            raise InputLoadError(f"{path}: invalid number in column '{column}': {value!r}") from exc
