"""Genotype call tables -> ``GenotypeRecord``."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

from g2phub.errors import InputLoadError
from g2phub.models import GenotypeRecord
from g2phub.sources.base import RecordSource
from g2phub.sources.common import TabularSourceMixin, load_frames


class GenotypeTableSource(RecordSource, TabularSourceMixin):
    """Read genotype calls from CSV/TSV/Parquet tables.

    One row per (sample, variant) call with ``sample_id``, ``contig``,
    ``start``, ``end`` (half-open, 0-based) and ``call`` columns.
    """

    name = "genotypes"
    required_columns: tuple[str, ...] = ("sample_id", "contig", "start", "end", "call")
    column_aliases = {
        "sampleid": "sample_id",
        "sample": "sample_id",
        "contigname": "contig",
        "chrom": "contig",
        "chr": "contig",
        "#chrom": "contig",
        "genotype": "call",
        "gt": "call",
        "variantid": "variant_id",
        "id": "variant_id",
        "rsid": "variant_id",
    }

    def __init__(self, location: str | Path) -> None:
        self.location = location

    def read(self) -> Iterator[GenotypeRecord]:
        for path, frame in load_frames(self.location):
            frame = self._normalize_columns(frame)
            self._require_columns(frame, self.required_columns, path)

            for row in frame.to_dict(orient="records"):
                sample_id = self._to_string(row.get("sample_id"))
                contig = self._to_string(row.get("contig"))
                call = self._to_string(row.get("call"))
                if sample_id is None or contig is None or call is None:
                    raise InputLoadError(f"{path}: genotype row missing sample, contig or call: {row}")

                try:
                    record = GenotypeRecord(
                        sample_id=sample_id,
                        contig=contig,
                        start=self._to_int(row.get("start"), column="start", path=path),
                        end=self._to_int(row.get("end"), column="end", path=path),
                        call=call,
                        variant_id=self._to_string(row.get("variant_id")),
                    )
                except ValueError as exc:
                    raise InputLoadError(f"{path}: {exc}") from exc
                yield record
