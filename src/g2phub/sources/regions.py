"""Region sets (BED or tables) -> ``Region``."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterator

from g2phub.errors import InputLoadError
from g2phub.models import Region
from g2phub.sources.base import RecordSource
from g2phub.sources.common import TabularSourceMixin, expand_input_paths, load_frames


_BED_HEADER_PREFIXES = ("track", "browser")

# BED has at most 12 columns; naming them all lets short lines pad with NA.
_BED_COLUMNS = list(range(12))


def _is_bed(path: Path) -> bool:
    return path.name.lower().endswith((".bed", ".bed.gz"))


class RegionSource(RecordSource, TabularSourceMixin):
    """Read genomic regions from BED files or ``contig,start,end[,name]`` tables."""

    name = "regions"
    required_columns: tuple[str, ...] = ("contig", "start", "end")
    column_aliases = {
        "chrom": "contig",
        "chr": "contig",
        "#chrom": "contig",
        "contigname": "contig",
        "chromstart": "start",
        "chromend": "end",
    }

    def __init__(self, location: str | Path) -> None:
        self.location = location

    def read(self) -> Iterator[Region]:
        paths = expand_input_paths(self.location)
        if not paths:
            raise InputLoadError(f"No region files matched: {self.location}")

        for path in paths:
            if _is_bed(path):
                yield from self._read_bed(path)
            else:
                yield from self._read_table(path)

    def _read_bed(self, path: Path) -> Iterator[Region]:
        for _, frame in load_frames(path, header=False, comment="#", names=_BED_COLUMNS):
            if frame.empty:
                continue
            for row in frame.itertuples(index=False):
                contig = self._to_string(row[0])
                if contig is None or contig.startswith(_BED_HEADER_PREFIXES):
                    continue
                name = self._to_string(row[3])
                yield self._region(path, contig, row[1], row[2], name)

    def _read_table(self, path: Path) -> Iterator[Region]:
        for _, frame in load_frames(path):
            frame = self._normalize_columns(frame)
            self._require_columns(frame, self.required_columns, path)
            for row in frame.to_dict(orient="records"):
                contig = self._to_string(row.get("contig"))
                if contig is None:
                    raise InputLoadError(f"{path}: region row missing contig: {row}")
                name = self._to_string(row.get("name"))
                yield self._region(path, contig, row.get("start"), row.get("end"), name)

    def _region(self, path: Path, contig: str, start: Any, end: Any, name: str | None) -> Region:
        try:
            return Region(
                contig=contig,
                start=self._to_int(start, column="start", path=path),
                end=self._to_int(end, column="end", path=path),
                name=name,
            )
        except ValueError as exc:
            raise InputLoadError(f"{path}: {exc}") from exc
