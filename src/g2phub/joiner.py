"""Sample-keyed equi-join between genotype calls and phenotypes."""

from __future__ import annotations

from dataclasses import dataclass, field
from operator import itemgetter
from typing import Any

import dask
import dask.bag as db

from g2phub.config import PhenotypeMultiplicity
from g2phub.errors import DuplicatePhenotypeError
from g2phub.models import GenotypeRecord, JoinedPair, PhenotypeRecord

_GENOTYPE = 0
_PHENOTYPE = 1


@dataclass(frozen=True)
class JoinCoverage:
    """Sample ids split by which side of the join they appear on."""

    matched: frozenset[str] = field(default_factory=frozenset)
    genotype_only: frozenset[str] = field(default_factory=frozenset)
    phenotype_only: frozenset[str] = field(default_factory=frozenset)


def _sample_id(record: GenotypeRecord | PhenotypeRecord) -> str:
    return record.sample_id


def _key_genotype(record: GenotypeRecord) -> tuple[str, int, Any]:
    return record.sample_id, _GENOTYPE, record


def _key_phenotype(record: PhenotypeRecord) -> tuple[str, int, Any]:
    return record.sample_id, _PHENOTYPE, record


def _pair_group(
    group: tuple[str, list[tuple[str, int, Any]]],
    policy: PhenotypeMultiplicity,
) -> list[JoinedPair]:
    sample_id, items = group
    genotypes = [record for _, side, record in items if side == _GENOTYPE]
    phenotypes = [record for _, side, record in items if side == _PHENOTYPE]

    if len(phenotypes) > 1 and policy is PhenotypeMultiplicity.REJECT:
        raise DuplicatePhenotypeError(
            f"Sample '{sample_id}' has {len(phenotypes)} phenotype records; "
            "deduplicate phenotypes or allow duplicates explicitly"
        )

    return [JoinedPair(genotype, phenotype) for genotype in genotypes for phenotype in phenotypes]


def _coverage(genotype_ids: set[str], phenotype_ids: set[str]) -> JoinCoverage:
    return JoinCoverage(
        matched=frozenset(genotype_ids & phenotype_ids),
        genotype_only=frozenset(genotype_ids - phenotype_ids),
        phenotype_only=frozenset(phenotype_ids - genotype_ids),
    )


class SampleJoiner:
    """Inner join genotypes and phenotypes on sample id.

    Both sides are shuffled by sample id. Every genotype of a sample is paired
    with that sample's phenotype; samples present on one side only are
    dropped. With ``PhenotypeMultiplicity.ALLOW`` a sample with several
    phenotypes yields the full per-sample cross product; the default
    ``REJECT`` raises ``DuplicatePhenotypeError`` instead.
    """

    def __init__(
        self,
        policy: PhenotypeMultiplicity = PhenotypeMultiplicity.REJECT,
        npartitions: int | None = None,
    ) -> None:
        self.policy = PhenotypeMultiplicity(policy)
        self.npartitions = npartitions

    def join(self, genotypes: db.Bag, phenotypes: db.Bag) -> db.Bag:
        keyed = db.concat([genotypes.map(_key_genotype), phenotypes.map(_key_phenotype)])
        grouped = keyed.groupby(itemgetter(0), npartitions=self.npartitions)
        return grouped.map(_pair_group, self.policy).flatten()

    def coverage(self, genotypes: db.Bag, phenotypes: db.Bag) -> JoinCoverage:
        """Compute which sample ids the inner join keeps and drops."""

        genotype_ids, phenotype_ids = dask.compute(
            genotypes.map(_sample_id).distinct(),
            phenotypes.map(_sample_id).distinct(),
        )
        return _coverage(set(genotype_ids), set(phenotype_ids))
