"""Restrict genotype calls to a set of genomic regions."""

from __future__ import annotations

import logging
from operator import itemgetter
from typing import Any

import dask
import dask.bag as db

from g2phub.intervals import BroadcastIntervalJoin, IntervalJoin
from g2phub.models import GenotypeRecord, Region

logger = logging.getLogger(__name__)


def _tag_partition(partition: list[GenotypeRecord], partition_index: int) -> list[tuple[Any, Any]]:
    """Key each genotype by locus and attach a run-unique tag."""

    return [
        (record.region(), ((partition_index, position), record))
        for position, record in enumerate(partition)
    ]


def _key_region(region: Region) -> tuple[Region, Region]:
    return region, region


class RegionFilter:
    """Keep genotypes overlapping at least one region, each exactly once.

    The overlap computation is delegated to an ``IntervalJoin``. Because the
    join emits one row per matching region, genotypes are tagged with their
    (partition, position) before the join and deduplicated on that tag after
    it; identical genotype records in the input therefore keep their
    multiplicity.
    """

    def __init__(self, join: IntervalJoin | None = None, npartitions: int | None = None) -> None:
        self.interval_join = join or BroadcastIntervalJoin()
        self.npartitions = npartitions

    def filter(self, genotypes: db.Bag, regions: db.Bag) -> db.Bag:
        logger.info(
            "Filtering genotypes by region with %s interval join (bin size %d)",
            self.interval_join.name,
            self.interval_join.bin_size,
        )

        tagged = db.from_delayed(
            [
                dask.delayed(_tag_partition)(partition, partition_index)
                for partition_index, partition in enumerate(genotypes.to_delayed())
            ]
        )
        matched = self.interval_join.join(regions.map(_key_region), tagged)
        kept = matched.pluck(1).distinct(key=itemgetter(0)).pluck(1)
        return kept.repartition(self.npartitions or genotypes.npartitions)
