"""Base interface for genotype, phenotype and region sources."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any


class RecordSource(ABC):
    """Source that converts an input location into typed records."""

    name: str

    @abstractmethod
    def read(self) -> Iterable[Any]:
        """Yield records from the source location."""
