"""Canonical in-memory data models used by the association pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True)
class Region:
    """Half-open genomic interval ``[start, end)`` on a contig."""

    contig: str
    start: int
    end: int
    name: str | None = None

    def __post_init__(self) -> None:
        if self.start < 0:
            raise ValueError(f"Region start must be non-negative: {self.start}")
        if self.end < self.start:
            raise ValueError(f"Region end precedes start: {self.contig}:{self.start}-{self.end}")

    def overlaps(self, other: "Region") -> bool:
        """Return True when both intervals share at least one base."""

        return (
            self.contig == other.contig
            and max(self.start, other.start) < min(self.end, other.end)
        )

    def __str__(self) -> str:
        return f"{self.contig}:{self.start}-{self.end}"


@dataclass(frozen=True)
class GenotypeRecord:
    """One observed genotype call for a sample at a variant locus.

    ``call`` is opaque to the pipeline; only scorers interpret it.
    """

    sample_id: str
    contig: str
    start: int
    end: int
    call: str
    variant_id: str | None = None

    def __post_init__(self) -> None:
        if self.start < 0:
            raise ValueError(f"Genotype start must be non-negative: {self.start}")
        if self.end < self.start:
            raise ValueError(
                f"Genotype end precedes start for sample {self.sample_id}: "
                f"{self.contig}:{self.start}-{self.end}"
            )

    def region(self) -> Region:
        """Return the variant locus as a region."""

        return Region(self.contig, self.start, self.end)


@dataclass(frozen=True)
class PhenotypeRecord:
    """A phenotype observation for one sample."""

    sample_id: str
    phenotype: str
    value: float | None = None


@dataclass(frozen=True)
class JoinedPair:
    """A genotype and phenotype sharing a sample identifier."""

    genotype: GenotypeRecord
    phenotype: PhenotypeRecord

    def __post_init__(self) -> None:
        if self.genotype.sample_id != self.phenotype.sample_id:
            raise ValueError(
                "Joined pair sample mismatch: "
                f"{self.genotype.sample_id!r} != {self.phenotype.sample_id!r}"
            )

    @property
    def sample_id(self) -> str:
        return self.genotype.sample_id


@dataclass(frozen=True)
class AssociationRecord:
    """Scored association derived from exactly one joined pair."""

    sample_id: str
    contig: str
    start: int
    end: int
    variant_id: str | None
    call: str
    phenotype: str
    phenotype_value: float | None
    dosage: int | None
    score: float | None

    @classmethod
    def from_pair(
        cls,
        pair: JoinedPair,
        *,
        dosage: int | None = None,
        score: float | None = None,
    ) -> "AssociationRecord":
        genotype = pair.genotype
        phenotype = pair.phenotype
        return cls(
            sample_id=genotype.sample_id,
            contig=genotype.contig,
            start=genotype.start,
            end=genotype.end,
            variant_id=genotype.variant_id,
            call=genotype.call,
            phenotype=phenotype.phenotype,
            phenotype_value=phenotype.value,
            dosage=dosage,
            score=score,
        )

    def to_row(self) -> dict[str, Any]:
        """Serialize into a plain dict for storage backends."""

        return {
            "sample_id": self.sample_id,
            "contig": self.contig,
            "start": self.start,
            "end": self.end,
            "variant_id": self.variant_id,
            "call": self.call,
            "phenotype": self.phenotype,
            "phenotype_value": self.phenotype_value,
            "dosage": self.dosage,
            "score": self.score,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "AssociationRecord":
        return cls(**{name: row[name] for name in cls.__dataclass_fields__})
