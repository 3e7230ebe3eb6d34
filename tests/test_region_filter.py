import random
import sys
from collections import Counter
from pathlib import Path

import dask.bag as db
import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from g2phub.intervals import (  # noqa: E402
    BroadcastIntervalJoin,
    ShuffleIntervalJoin,
    bins_for,
    build_interval_join,
)
from g2phub.models import GenotypeRecord, Region  # noqa: E402
from g2phub.region_filter import RegionFilter  # noqa: E402


JOINS = [
    pytest.param(lambda: BroadcastIntervalJoin(bin_size=100), id="broadcast"),
    pytest.param(lambda: ShuffleIntervalJoin(bin_size=100, npartitions=3), id="shuffle"),
]


def _filter(join, genotypes, regions, npartitions=3):
    bag = db.from_sequence(genotypes, npartitions=npartitions)
    region_bag = db.from_sequence(regions, npartitions=2)
    return RegionFilter(join).filter(bag, region_bag).compute(scheduler="synchronous")


@pytest.mark.parametrize("make_join", JOINS)
def test_filter_keeps_only_overlapping_genotypes(make_join) -> None:
    inside = GenotypeRecord("S1", "chr1", 150, 151, "0/1")
    outside = GenotypeRecord("S1", "chr1", 500, 501, "0/1")
    other_contig = GenotypeRecord("S1", "chr2", 150, 151, "0/1")

    kept = _filter(make_join(), [inside, outside, other_contig], [Region("chr1", 100, 200)])

    assert kept == [inside]


@pytest.mark.parametrize("make_join", JOINS)
def test_filter_uses_half_open_boundaries(make_join) -> None:
    at_start = GenotypeRecord("S1", "chr1", 100, 101, "0/1")
    at_end = GenotypeRecord("S1", "chr1", 200, 201, "0/1")
    before = GenotypeRecord("S1", "chr1", 99, 100, "0/1")

    kept = _filter(make_join(), [at_start, at_end, before], [Region("chr1", 100, 200)])

    assert kept == [at_start]


@pytest.mark.parametrize("make_join", JOINS)
def test_filter_keeps_multiply_overlapping_genotype_once(make_join) -> None:
    deletion = GenotypeRecord("S1", "chr1", 90, 420, "0/1")
    regions = [Region("chr1", 100, 150), Region("chr1", 120, 130), Region("chr1", 300, 400)]

    kept = _filter(make_join(), [deletion], regions)

    assert kept == [deletion]


@pytest.mark.parametrize("make_join", JOINS)
def test_filter_preserves_duplicate_input_records(make_join) -> None:
    record = GenotypeRecord("S1", "chr1", 150, 151, "0/1")

    kept = _filter(make_join(), [record, record], [Region("chr1", 100, 200), Region("chr1", 140, 160)])

    assert kept == [record, record]


@pytest.mark.parametrize("make_join", JOINS)
def test_filter_with_empty_region_set_drops_everything(make_join) -> None:
    record = GenotypeRecord("S1", "chr1", 150, 151, "0/1")

    assert _filter(make_join(), [record], []) == []


@pytest.mark.parametrize("make_join", JOINS)
def test_filter_matches_naive_overlap(make_join) -> None:
    rng = random.Random(7)
    genotypes = []
    for index in range(200):
        start = rng.randrange(0, 2000)
        genotypes.append(
            GenotypeRecord(
                f"S{index % 5}",
                rng.choice(["chr1", "chr2"]),
                start,
                start + rng.randrange(0, 250),
                "0/1",
                variant_id=f"v{index}",
            )
        )
    regions = []
    for _ in range(15):
        start = rng.randrange(0, 2000)
        regions.append(Region(rng.choice(["chr1", "chr2"]), start, start + rng.randrange(1, 300)))

    kept = _filter(make_join(), genotypes, regions, npartitions=7)
    expected = [
        record
        for record in genotypes
        if any(region.overlaps(record.region()) for region in regions)
    ]

    assert Counter(kept) == Counter(expected)
    for record in kept:
        assert any(region.overlaps(record.region()) for region in regions)


def test_bins_for_spans_every_touched_bin() -> None:
    assert list(bins_for(Region("chr1", 90, 210), 100)) == [0, 1, 2]
    assert list(bins_for(Region("chr1", 100, 200), 100)) == [1]
    assert list(bins_for(Region("chr1", 100, 100), 100)) == []


def test_interval_join_reports_each_pair_once() -> None:
    left = db.from_sequence([(Region("chr1", 0, 1000), "wide")], npartitions=1)
    right = db.from_sequence([(Region("chr1", 50, 950), "long")], npartitions=1)

    for join in (BroadcastIntervalJoin(bin_size=100), ShuffleIntervalJoin(bin_size=100)):
        assert join.join(left, right).compute(scheduler="synchronous") == [("wide", "long")]


def test_build_interval_join_validates_inputs() -> None:
    assert isinstance(build_interval_join("shuffle", bin_size=10), ShuffleIntervalJoin)

    with pytest.raises(ValueError):
        build_interval_join("nested_loop")

    with pytest.raises(ValueError):
        BroadcastIntervalJoin(bin_size=0)
