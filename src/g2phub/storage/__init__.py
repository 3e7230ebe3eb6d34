"""Partitioned dataset stores for association output."""

from .base import DatasetSink, DatasetStore
from .parquet import DatasetDescriptor, ParquetDatasetSink, ParquetDatasetStore

__all__ = [
    "DatasetDescriptor",
    "DatasetSink",
    "DatasetStore",
    "ParquetDatasetSink",
    "ParquetDatasetStore",
]
