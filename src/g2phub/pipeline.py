"""Association pipeline orchestrator."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence

import dask
import dask.bag as db

from g2phub.config import PipelineConfig
from g2phub.errors import G2PError, InputLoadError, WriteCommitError
from g2phub.intervals import IntervalJoin, build_interval_join
from g2phub.joiner import SampleJoiner
from g2phub.partitioning import PartitionStrategy, PartitionStrategyLoader
from g2phub.region_filter import RegionFilter
from g2phub.schema import ASSOCIATION_SCHEMA, DatasetSchema
from g2phub.scoring import (
    AssociationScorer,
    ScorerRegistry,
    build_default_scorer_registry,
    score_pairs,
)
from g2phub.sources import RecordSource, SourceRegistry, build_default_source_registry
from g2phub.storage import DatasetStore, ParquetDatasetStore

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    """States of a pipeline run, in execution order."""

    START = "start"
    LOAD_INPUTS = "load_inputs"
    FILTER_REGIONS = "filter_regions"
    JOIN = "join"
    SCORE = "score"
    DECLARE_DATASET = "declare_dataset"
    WRITE = "write"
    DONE = "done"
    FAILED = "failed"


@dataclass
class AssociationRunReport:
    """Execution summary for a pipeline run."""

    destination: str
    stages: list[PipelineStage] = field(default_factory=list)
    genotype_records: int = 0
    phenotype_records: int = 0
    region_records: int | None = None
    filtered_genotype_records: int | None = None
    matched_samples: int = 0
    genotype_only_samples: int = 0
    phenotype_only_samples: int = 0
    association_records: int = 0
    partitions: dict[str, int] = field(default_factory=dict)
    error: str | None = None

    @property
    def stage(self) -> PipelineStage:
        return self.stages[-1] if self.stages else PipelineStage.START

    @property
    def succeeded(self) -> bool:
        return self.stage is PipelineStage.DONE

    def to_dict(self) -> dict[str, Any]:
        return {
            "destination": self.destination,
            "stage": self.stage.value,
            "stages": [stage.value for stage in self.stages],
            "genotype_records": self.genotype_records,
            "phenotype_records": self.phenotype_records,
            "region_records": self.region_records,
            "filtered_genotype_records": self.filtered_genotype_records,
            "matched_samples": self.matched_samples,
            "genotype_only_samples": self.genotype_only_samples,
            "phenotype_only_samples": self.phenotype_only_samples,
            "association_records": self.association_records,
            "partitions": dict(sorted(self.partitions.items())),
            "error": self.error,
        }


def _to_bag(records: Sequence[Any], npartitions: int) -> db.Bag:
    return db.from_sequence(records, npartitions=max(1, min(npartitions, len(records))))


class AssociationPipeline:
    """Load, filter, join, score and write associations in order.

    Every collaborator can be injected; anything left out is built from the
    config and the default registries. Loading is eager so input errors fail
    the run before any join work. Filtering, joining and scoring build lazy
    dask graphs that execute while the partitioned write runs, so a scoring
    failure aborts the write and nothing is committed.
    """

    def __init__(
        self,
        *,
        config: PipelineConfig,
        genotype_source: RecordSource | None = None,
        phenotype_source: RecordSource | None = None,
        region_source: RecordSource | None = None,
        scorer: AssociationScorer | None = None,
        interval_join: IntervalJoin | None = None,
        store: DatasetStore | None = None,
        schema: DatasetSchema = ASSOCIATION_SCHEMA,
        strategy: PartitionStrategy | None = None,
        source_registry: SourceRegistry | None = None,
        scorer_registry: ScorerRegistry | None = None,
    ) -> None:
        self.config = config
        sources = source_registry or build_default_source_registry()
        self.genotype_source = genotype_source or sources.create(
            "genotypes", location=config.genotypes
        )
        self.phenotype_source = phenotype_source or sources.create(
            "phenotypes", location=config.phenotypes
        )
        self.region_source = region_source
        if self.region_source is None and config.filters_regions:
            self.region_source = sources.create("regions", location=config.regions)

        scorers = scorer_registry or build_default_scorer_registry()
        self.scorer = scorer or scorers.create(config.scorer)
        self.interval_join = interval_join or build_interval_join(
            config.join_strategy,
            bin_size=config.bin_size,
            npartitions=config.npartitions,
        )
        self.store = store or ParquetDatasetStore(config.associations)
        self.schema = schema
        self.strategy = strategy
        self.report: AssociationRunReport | None = None

    @staticmethod
    def _enter(report: AssociationRunReport, stage: PipelineStage) -> None:
        report.stages.append(stage)
        logger.info("Stage: %s", stage.value)

    def _load(self, source: RecordSource, label: str) -> list[Any]:
        try:
            records = list(source.read())
        except InputLoadError:
            raise
        except (OSError, ValueError) as exc:
            raise InputLoadError(f"Could not load {label}: {exc}") from exc
        logger.info("Loaded %d %s records", len(records), label)
        return records

    def run(self) -> AssociationRunReport:
        report = self.report = AssociationRunReport(destination=str(self.config.associations))
        self._enter(report, PipelineStage.START)

        try:
            with dask.config.set(scheduler=self.config.scheduler):
                self._execute(report)
        except Exception as exc:
            failed_stage = report.stage
            report.error = str(exc)
            self._enter(report, PipelineStage.FAILED)
            logger.error("Pipeline failed during %s: %s", failed_stage.value, exc)
            raise

        self._enter(report, PipelineStage.DONE)
        return report

    def _execute(self, report: AssociationRunReport) -> None:
        config = self.config

        self._enter(report, PipelineStage.LOAD_INPUTS)
        genotypes = self._load(self.genotype_source, "genotype")
        phenotypes = self._load(self.phenotype_source, "phenotype")
        regions = None
        if self.region_source is not None:
            regions = self._load(self.region_source, "region")
        strategy = self.strategy or PartitionStrategyLoader().load(config.partitioning)

        report.genotype_records = len(genotypes)
        report.phenotype_records = len(phenotypes)
        genotype_bag = _to_bag(genotypes, config.npartitions)
        phenotype_bag = _to_bag(phenotypes, config.npartitions)

        if regions is not None:
            report.region_records = len(regions)
            self._enter(report, PipelineStage.FILTER_REGIONS)
            region_filter = RegionFilter(self.interval_join, npartitions=config.npartitions)
            # Materialize once; the count, the coverage check and the write all read it.
            genotype_bag = region_filter.filter(
                genotype_bag, _to_bag(regions, config.npartitions)
            ).persist()
            report.filtered_genotype_records = genotype_bag.count().compute()
            logger.info(
                "Region filter kept %d of %d genotype records",
                report.filtered_genotype_records,
                report.genotype_records,
            )

        self._enter(report, PipelineStage.JOIN)
        joiner = SampleJoiner(config.phenotype_multiplicity, npartitions=config.npartitions)
        coverage = joiner.coverage(genotype_bag, phenotype_bag)
        report.matched_samples = len(coverage.matched)
        report.genotype_only_samples = len(coverage.genotype_only)
        report.phenotype_only_samples = len(coverage.phenotype_only)
        if coverage.genotype_only or coverage.phenotype_only:
            logger.info(
                "Inner join drops %d samples without phenotypes and %d samples without genotypes",
                len(coverage.genotype_only),
                len(coverage.phenotype_only),
            )
        pairs = joiner.join(genotype_bag, phenotype_bag)

        self._enter(report, PipelineStage.SCORE)
        associations = score_pairs(pairs, self.scorer)

        self._enter(report, PipelineStage.DECLARE_DATASET)
        with self.store.declare(self.schema, strategy, config.write_mode) as sink:
            self._enter(report, PipelineStage.WRITE)
            try:
                report.association_records = sink.write(associations)
            except G2PError:
                raise
            except Exception as exc:
                raise WriteCommitError(f"Writing associations failed: {exc}") from exc
            report.partitions = dict(getattr(sink, "partitions", {}))
