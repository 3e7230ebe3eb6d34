"""Hive-partitioned Parquet dataset store backed by DuckDB.

Layout under the destination directory::

    .metadata/descriptor.json     schema + partition strategy (written once)
    .metadata/commits.json        one entry per committed run
    .staging/<run id>/...         files of an in-flight run
    <name>=<value>/.../part-*.parquet

Each dask partition of a run writes its rows into ``.staging``; only the
commit moves files into the visible partition directories, so a failed run
leaves no rows behind.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import uuid
from collections import defaultdict
from contextlib import contextmanager, suppress
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Mapping

import dask.bag as db

from g2phub.config import WriteMode
from g2phub.errors import DatasetExistsError, SchemaConflictError, WriteCommitError
from g2phub.partitioning import PartitionStrategy, PartitionStrategyError
from g2phub.schema import DatasetSchema
from g2phub.storage.base import DatasetSink, DatasetStore

try:
    import duckdb
except ImportError:  # pragma: no cover - exercised only when dependency missing
    duckdb = None

logger = logging.getLogger(__name__)

DATASET_URI_PREFIX = "dataset:"
METADATA_DIR = ".metadata"
STAGING_DIR = ".staging"
DESCRIPTOR_FILE = "descriptor.json"
COMMITS_FILE = "commits.json"
FORMAT = "parquet"

_SQL_TYPES: dict[str, str] = {
    "string": "VARCHAR",
    "int64": "BIGINT",
    "float64": "DOUBLE",
}


def _require_duckdb() -> None:
    if duckdb is None:
        raise RuntimeError(
            "duckdb is not installed. Add it to requirements before writing association datasets."
        )


def strip_dataset_uri(destination: str | Path) -> Path:
    """Accept ``dataset:<path>`` URIs as well as plain paths."""

    text = str(destination)
    if text.startswith(DATASET_URI_PREFIX):
        text = text[len(DATASET_URI_PREFIX):]
    return Path(text)


def _sql_literal(path: Path) -> str:
    return "'" + path.as_posix().replace("'", "''") + "'"


def _select_typed(schema: DatasetSchema, relation: str) -> str:
    columns = ", ".join(
        f'CAST("{item.name}" AS {_SQL_TYPES[item.dtype]}) AS "{item.name}"'
        for item in schema.fields
    )
    return f"SELECT {columns} FROM {relation}"


@dataclass(frozen=True)
class DatasetDescriptor:
    """Schema and partition strategy fixed when a dataset is first declared."""

    schema: DatasetSchema
    strategy: PartitionStrategy
    format: str = FORMAT

    def compatible_with(self, other: "DatasetDescriptor") -> bool:
        return (
            self.format == other.format
            and self.schema.to_dict() == other.schema.to_dict()
            and self.strategy.to_dict() == other.strategy.to_dict()
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "format": self.format,
            "schema": self.schema.to_dict(),
            "partition_strategy": self.strategy.to_dict(),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "DatasetDescriptor":
        return cls(
            schema=DatasetSchema.from_dict(payload["schema"]),
            strategy=PartitionStrategy.from_dict(payload["partition_strategy"]),
            format=str(payload.get("format", FORMAT)),
        )


@dataclass(frozen=True)
class StagedFile:
    """One Parquet file written by a dask partition, awaiting commit."""

    partition: str
    filename: str
    rows: int


def _prune_empty_parents(path: Path, stop: Path) -> None:
    """Remove empty directories from ``path`` upwards, never touching ``stop``."""

    while path != stop and stop in path.parents:
        try:
            path.rmdir()
        except OSError:
            return
        path = path.parent


def _row_of(record: Any) -> dict[str, Any]:
    return record.to_row() if hasattr(record, "to_row") else dict(record)


def _write_partition(
    records: Iterator[Any],
    schema: DatasetSchema,
    strategy: PartitionStrategy,
    staging_root: Path,
) -> list[StagedFile]:
    """Validate, bucket and stage one dask partition of records."""

    buckets: dict[str, list[dict[str, Any]]] = defaultdict(list)
    for record in records:
        row = _row_of(record)
        schema.validate_row(row)
        buckets[strategy.partition_path(row)].append(row)

    if not buckets:
        return []

    staged: list[StagedFile] = []
    connection = duckdb.connect()
    try:
        for partition, rows in buckets.items():
            filename = f"part-{uuid.uuid4().hex}.parquet"
            target = staging_root / partition / filename
            target.parent.mkdir(parents=True, exist_ok=True)

            connection.register("partition_frame", schema.to_frame(rows))
            connection.execute(
                f"COPY ({_select_typed(schema, 'partition_frame')}) "
                f"TO {_sql_literal(target)} (FORMAT PARQUET)"
            )
            connection.unregister("partition_frame")
            staged.append(StagedFile(partition=partition, filename=filename, rows=len(rows)))
    except (OSError, duckdb.Error) as exc:
        raise WriteCommitError(
            f"Failed to stage partition files under {staging_root}: {exc}"
        ) from exc
    finally:
        connection.close()

    return staged


class ParquetDatasetSink(DatasetSink):
    """Stages one run's partition files and publishes them on commit."""

    def __init__(
        self,
        store: "ParquetDatasetStore",
        descriptor: DatasetDescriptor,
        run_id: str,
    ) -> None:
        self.store = store
        self.descriptor = descriptor
        self.run_id = run_id
        self.staging_root = store.root / STAGING_DIR / run_id
        self.staged: list[StagedFile] = []
        self.committed = False

    def write(self, records: db.Bag) -> int:
        if self.committed:
            raise WriteCommitError(f"Run {self.run_id} is already committed")

        staged = records.map_partitions(
            _write_partition,
            self.descriptor.schema,
            self.descriptor.strategy,
            self.staging_root,
        ).compute()
        self.staged.extend(staged)
        return sum(item.rows for item in staged)

    @property
    def partitions(self) -> dict[str, int]:
        counts: dict[str, int] = defaultdict(int)
        for item in self.staged:
            counts[item.partition] += item.rows
        return dict(counts)

    def commit(self) -> None:
        moved: list[Path] = []
        try:
            for item in self.staged:
                source = self.staging_root / item.partition / item.filename
                target = self.store.root / item.partition / item.filename
                target.parent.mkdir(parents=True, exist_ok=True)
                os.replace(source, target)
                moved.append(target)
            self.store.append_commit(
                {
                    "run_id": self.run_id,
                    "committed_at": datetime.now(timezone.utc).isoformat(),
                    "files": len(self.staged),
                    "records": sum(item.rows for item in self.staged),
                    "partitions": sorted(self.partitions),
                }
            )
        except OSError as exc:
            for target in moved:
                target.unlink(missing_ok=True)
                _prune_empty_parents(target.parent, self.store.root)
            raise WriteCommitError(
                f"Failed to commit run {self.run_id} to {self.store.root}: {exc}"
            ) from exc
        finally:
            self._discard_staging()

        self.committed = True
        logger.info(
            "Committed run %s: %d records in %d partitions",
            self.run_id,
            sum(item.rows for item in self.staged),
            len(self.partitions),
        )

    def _discard_staging(self) -> None:
        shutil.rmtree(self.staging_root, ignore_errors=True)
        with suppress(OSError):
            self.staging_root.parent.rmdir()

    def abort(self) -> None:
        self._discard_staging()
        self.staged = []


class ParquetDatasetStore(DatasetStore):
    """Partitioned Parquet dataset rooted at ``destination``."""

    def __init__(self, destination: str | Path) -> None:
        self.root = strip_dataset_uri(destination)

    @property
    def metadata_dir(self) -> Path:
        return self.root / METADATA_DIR

    @property
    def descriptor_path(self) -> Path:
        return self.metadata_dir / DESCRIPTOR_FILE

    @property
    def commits_path(self) -> Path:
        return self.metadata_dir / COMMITS_FILE

    def load_descriptor(self) -> DatasetDescriptor | None:
        """Return the persisted descriptor, or ``None`` when no dataset exists."""

        if not self.descriptor_path.exists():
            return None
        try:
            return DatasetDescriptor.from_dict(json.loads(self.descriptor_path.read_text()))
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise SchemaConflictError(
                f"Unreadable dataset descriptor at {self.descriptor_path}: {exc}"
            ) from exc

    def commits(self) -> list[dict[str, Any]]:
        if not self.commits_path.exists():
            return []
        return list(json.loads(self.commits_path.read_text()))

    def append_commit(self, entry: dict[str, Any]) -> None:
        entries = self.commits()
        entries.append(entry)
        tmp_path = self.commits_path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(entries, indent=2))
        os.replace(tmp_path, self.commits_path)

    def _has_foreign_content(self) -> bool:
        if not self.root.exists():
            return False
        if not self.root.is_dir():
            return True
        return any(not entry.name.startswith(".") for entry in self.root.iterdir())

    def _open_or_create(self, requested: DatasetDescriptor, mode: WriteMode) -> bool:
        """Create the descriptor, or validate an existing one. Returns True if created."""

        existing = self.load_descriptor()
        if existing is None:
            if self._has_foreign_content():
                raise SchemaConflictError(
                    f"Destination {self.root} holds data but no dataset descriptor"
                )
            self.metadata_dir.mkdir(parents=True, exist_ok=True)
            try:
                with self.descriptor_path.open("x") as stream:
                    json.dump(requested.to_dict(), stream, indent=2)
            except FileExistsError:
                # Another run declared the dataset in between; validate against it.
                return self._open_or_create(requested, mode)
            logger.info("Declared dataset at %s", self.root)
            return True

        if not existing.compatible_with(requested):
            raise SchemaConflictError(
                f"Dataset at {self.root} was declared with a different schema or partition strategy"
            )
        if WriteMode(mode) is WriteMode.CREATE:
            raise DatasetExistsError(
                f"Dataset already exists at {self.root}; use append mode to add records"
            )
        logger.info("Opened existing dataset at %s for append", self.root)
        return False

    def _drop_declaration(self) -> None:
        shutil.rmtree(self.metadata_dir, ignore_errors=True)
        shutil.rmtree(self.root / STAGING_DIR, ignore_errors=True)
        if self.root.exists() and not any(self.root.iterdir()):
            self.root.rmdir()

    @contextmanager
    def declare(
        self,
        schema: DatasetSchema,
        strategy: PartitionStrategy,
        mode: WriteMode = WriteMode.CREATE,
    ) -> Iterator[ParquetDatasetSink]:
        _require_duckdb()
        try:
            strategy.validate_against(schema)
        except PartitionStrategyError as exc:
            raise SchemaConflictError(str(exc)) from exc

        descriptor = DatasetDescriptor(schema=schema, strategy=strategy)
        created = self._open_or_create(descriptor, mode)

        run_id = f"{datetime.now(timezone.utc).strftime('%Y%m%dT%H%M%S')}-{uuid.uuid4().hex[:8]}"
        sink = ParquetDatasetSink(self, descriptor, run_id)
        try:
            yield sink
            sink.commit()
        except BaseException:
            sink.abort()
            if created:
                self._drop_declaration()
            raise

    def files(self) -> list[Path]:
        """Committed Parquet files, skipping metadata and staging directories."""

        if not self.root.exists():
            return []
        return sorted(
            path
            for path in self.root.rglob("*.parquet")
            if not any(part.startswith(".") for part in path.relative_to(self.root).parts)
        )

    def read_partitions(self) -> dict[str, list[dict[str, Any]]]:
        """Return committed rows grouped by partition path."""

        descriptor = self.load_descriptor()
        if descriptor is None:
            raise FileNotFoundError(f"No dataset declared at {self.root}")
        _require_duckdb()

        grouped: dict[str, list[dict[str, Any]]] = defaultdict(list)
        connection = duckdb.connect()
        try:
            for path in self.files():
                partition = path.parent.relative_to(self.root).as_posix()
                query = (
                    f"SELECT * FROM read_parquet({_sql_literal(path)}, hive_partitioning = false)"
                )
                frame = connection.execute(query).df()
                grouped[partition].extend(
                    descriptor.schema.coerce_row(row) for row in frame.to_dict(orient="records")
                )
        finally:
            connection.close()
        return dict(grouped)

    def read(self) -> list[dict[str, Any]]:
        return [row for rows in self.read_partitions().values() for row in rows]

    def partitions(self) -> dict[str, int]:
        """Map partition path to committed row count."""

        return {partition: len(rows) for partition, rows in self.read_partitions().items()}
