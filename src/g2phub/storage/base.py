"""Base classes for partitioned dataset stores."""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Any

import dask.bag as db

from g2phub.config import WriteMode
from g2phub.partitioning import PartitionStrategy
from g2phub.schema import DatasetSchema


class DatasetSink(ABC):
    """Accepts records for one run and commits them atomically."""

    @abstractmethod
    def write(self, records: db.Bag) -> int:
        """Stage every record into its partition and return the staged row count."""

    @abstractmethod
    def commit(self) -> None:
        """Publish staged partitions into the dataset."""

    @abstractmethod
    def abort(self) -> None:
        """Discard everything staged by this run."""


class DatasetStore(ABC):
    """Schema-governed, partitioned dataset at a destination."""

    @abstractmethod
    def declare(
        self,
        schema: DatasetSchema,
        strategy: PartitionStrategy,
        mode: WriteMode = WriteMode.CREATE,
    ) -> AbstractContextManager[DatasetSink]:
        """Declare or open the dataset; the sink commits on exit or aborts on error."""

    @abstractmethod
    def read(self) -> list[dict[str, Any]]:
        """Return every committed row."""
