"""Phenotype tables -> ``PhenotypeRecord``."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

from g2phub.errors import InputLoadError
from g2phub.models import PhenotypeRecord
from g2phub.sources.base import RecordSource
from g2phub.sources.common import TabularSourceMixin, load_frames


class PhenotypeTableSource(RecordSource, TabularSourceMixin):
    """Read one phenotype observation per row (``sample_id``, ``phenotype``, ``value``)."""

    name = "phenotypes"
    required_columns: tuple[str, ...] = ("sample_id", "phenotype")
    column_aliases = {
        "sampleid": "sample_id",
        "sample": "sample_id",
        "iid": "sample_id",
        "trait": "phenotype",
        "phenotype_value": "value",
    }

    def __init__(self, location: str | Path) -> None:
        self.location = location

    def read(self) -> Iterator[PhenotypeRecord]:
        for path, frame in load_frames(self.location):
            frame = self._normalize_columns(frame)
            self._require_columns(frame, self.required_columns, path)

            for row in frame.to_dict(orient="records"):
                sample_id = self._to_string(row.get("sample_id"))
                phenotype = self._to_string(row.get("phenotype"))
                if sample_id is None or phenotype is None:
                    raise InputLoadError(f"{path}: phenotype row missing sample or phenotype: {row}")

                yield PhenotypeRecord(
                    sample_id=sample_id,
                    phenotype=phenotype,
                    value=self._to_float(row.get("value"), column="value", path=path),
                )
