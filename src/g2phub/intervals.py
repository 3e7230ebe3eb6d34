"""Distributed interval joins over dask bags.

Both sides of a join are bags of ``(Region, value)`` pairs. Regions are
bucketed into fixed-width genomic bins so each element is only compared with
elements sharing a bin, never with the whole other side. A pair that spans
several shared bins is reported only from the bin holding the start of the
intersection, so every overlapping pair is emitted exactly once.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import defaultdict
from operator import itemgetter
from typing import Any, Iterable

import dask
import dask.bag as db

from g2phub.config import DEFAULT_BIN_SIZE
from g2phub.models import Region

BinKey = tuple[str, int]


def bins_for(region: Region, bin_size: int) -> range:
    """Return the bin indices an interval touches (none for empty intervals)."""

    if region.end <= region.start:
        return range(0)
    return range(region.start // bin_size, (region.end - 1) // bin_size + 1)


def _owns_pair(left: Region, right: Region, bin_index: int, bin_size: int) -> bool:
    return (
        left.overlaps(right)
        and max(left.start, right.start) // bin_size == bin_index
    )


class IntervalJoin(ABC):
    """Join two keyed bags by interval overlap."""

    name: str

    def __init__(self, bin_size: int = DEFAULT_BIN_SIZE) -> None:
        if bin_size <= 0:
            raise ValueError(f"bin_size must be positive: {bin_size}")
        self.bin_size = bin_size

    @abstractmethod
    def join(self, left: db.Bag, right: db.Bag) -> db.Bag:
        """Return a bag of ``(left_value, right_value)`` for overlapping keys."""


def _build_index(
    left: Iterable[tuple[Region, Any]],
    bin_size: int,
) -> dict[BinKey, list[tuple[Region, Any]]]:
    index: dict[BinKey, list[tuple[Region, Any]]] = defaultdict(list)
    for region, value in left:
        for bin_index in bins_for(region, bin_size):
            index[(region.contig, bin_index)].append((region, value))
    return dict(index)


def _probe_partition(
    partition: Iterable[tuple[Region, Any]],
    index: dict[BinKey, list[tuple[Region, Any]]],
    bin_size: int,
) -> list[tuple[Any, Any]]:
    matches = []
    for region, value in partition:
        for bin_index in bins_for(region, bin_size):
            for left_region, left_value in index.get((region.contig, bin_index), ()):
                if _owns_pair(left_region, region, bin_index, bin_size):
                    matches.append((left_value, value))
    return matches


class BroadcastIntervalJoin(IntervalJoin):
    """Ship a binned index of the (small) left side to every right partition."""

    name = "broadcast"

    def join(self, left: db.Bag, right: db.Bag) -> db.Bag:
        index = dask.delayed(_build_index)(left, self.bin_size)
        return right.map_partitions(_probe_partition, index, self.bin_size)


def _explode_partition(
    partition: Iterable[tuple[Region, Any]],
    side: int,
    bin_size: int,
) -> list[tuple[BinKey, int, Region, Any]]:
    return [
        ((region.contig, bin_index), side, region, value)
        for region, value in partition
        for bin_index in bins_for(region, bin_size)
    ]


def _match_group(
    group: tuple[BinKey, list[tuple[BinKey, int, Region, Any]]],
    bin_size: int,
) -> list[tuple[Any, Any]]:
    (_, bin_index), items = group
    lefts = [(region, value) for _, side, region, value in items if side == 0]
    rights = [(region, value) for _, side, region, value in items if side == 1]
    return [
        (left_value, right_value)
        for left_region, left_value in lefts
        for right_region, right_value in rights
        if _owns_pair(left_region, right_region, bin_index, bin_size)
    ]


class ShuffleIntervalJoin(IntervalJoin):
    """Repartition both sides by ``(contig, bin)`` and match within each bin."""

    name = "shuffle"

    def __init__(self, bin_size: int = DEFAULT_BIN_SIZE, npartitions: int | None = None) -> None:
        super().__init__(bin_size)
        self.npartitions = npartitions

    def join(self, left: db.Bag, right: db.Bag) -> db.Bag:
        keyed = db.concat(
            [
                left.map_partitions(_explode_partition, 0, self.bin_size),
                right.map_partitions(_explode_partition, 1, self.bin_size),
            ]
        )
        grouped = keyed.groupby(itemgetter(0), npartitions=self.npartitions)
        return grouped.map(_match_group, self.bin_size).flatten()


def build_interval_join(
    strategy: str,
    *,
    bin_size: int = DEFAULT_BIN_SIZE,
    npartitions: int | None = None,
) -> IntervalJoin:
    """Create an interval join by strategy name."""

    if strategy == BroadcastIntervalJoin.name:
        return BroadcastIntervalJoin(bin_size)
    if strategy == ShuffleIntervalJoin.name:
        return ShuffleIntervalJoin(bin_size, npartitions=npartitions)
    raise ValueError(f"Unknown interval join strategy: {strategy}")
