import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from g2phub.models import (  # noqa: E402
    AssociationRecord,
    GenotypeRecord,
    JoinedPair,
    PhenotypeRecord,
    Region,
)


def test_region_overlap_is_half_open() -> None:
    region = Region("chr1", 100, 200)

    assert region.overlaps(Region("chr1", 150, 151))
    assert region.overlaps(Region("chr1", 199, 300))
    assert region.overlaps(Region("chr1", 50, 101))
    assert not region.overlaps(Region("chr1", 200, 250))
    assert not region.overlaps(Region("chr1", 50, 100))
    assert not region.overlaps(Region("chr2", 150, 151))


def test_empty_interval_overlaps_nothing() -> None:
    assert not Region("chr1", 150, 150).overlaps(Region("chr1", 100, 200))


def test_region_rejects_inverted_interval() -> None:
    with pytest.raises(ValueError):
        Region("chr1", 200, 100)

    with pytest.raises(ValueError):
        GenotypeRecord("S1", "chr1", -1, 5, "0/1")


def test_joined_pair_requires_matching_samples() -> None:
    genotype = GenotypeRecord("S1", "chr1", 10, 11, "0/1")

    with pytest.raises(ValueError, match="sample mismatch"):
        JoinedPair(genotype, PhenotypeRecord("S2", "ldl", 1.0))

    assert JoinedPair(genotype, PhenotypeRecord("S1", "ldl", 1.0)).sample_id == "S1"


def test_association_record_row_round_trip() -> None:
    pair = JoinedPair(
        GenotypeRecord("S1", "chr1", 10, 11, "1|1", variant_id="rs1"),
        PhenotypeRecord("S1", "ldl", 2.5),
    )

    record = AssociationRecord.from_pair(pair, dosage=2, score=5.0)
    row = record.to_row()

    assert row["variant_id"] == "rs1"
    assert row["phenotype_value"] == 2.5
    assert list(row) == [
        "sample_id",
        "contig",
        "start",
        "end",
        "variant_id",
        "call",
        "phenotype",
        "phenotype_value",
        "dosage",
        "score",
    ]
    assert AssociationRecord.from_row(row) == record
