"""Genotype/phenotype association pipeline.

This package provides the building blocks for loading genotype and phenotype
records, filtering genotypes by region, joining them by sample, scoring each
pair and writing the results into a partitioned Parquet dataset.
"""

from .config import PhenotypeMultiplicity, PipelineConfig, WriteMode
from .errors import (
    DatasetExistsError,
    DuplicatePhenotypeError,
    G2PError,
    InputLoadError,
    RecordSchemaError,
    SchemaConflictError,
    ScoringError,
    WriteCommitError,
)
from .intervals import BroadcastIntervalJoin, IntervalJoin, ShuffleIntervalJoin
from .joiner import JoinCoverage, SampleJoiner
from .models import AssociationRecord, GenotypeRecord, JoinedPair, PhenotypeRecord, Region
from .partitioning import PartitionStrategy, PartitionStrategyError, PartitionStrategyLoader
from .pipeline import AssociationPipeline, AssociationRunReport, PipelineStage
from .region_filter import RegionFilter
from .registry import PluginSpec
from .schema import ASSOCIATION_SCHEMA, DatasetSchema, SchemaField
from .scoring import (
    AssociationScorer,
    DosageScorer,
    FunctionScorer,
    IdentityScorer,
    ScorerRegistry,
    build_default_scorer_registry,
    score_pairs,
)
from .storage import ParquetDatasetStore

__all__ = [
    "ASSOCIATION_SCHEMA",
    "AssociationPipeline",
    "AssociationRecord",
    "AssociationRunReport",
    "AssociationScorer",
    "BroadcastIntervalJoin",
    "DatasetExistsError",
    "DatasetSchema",
    "DosageScorer",
    "DuplicatePhenotypeError",
    "FunctionScorer",
    "G2PError",
    "GenotypeRecord",
    "IdentityScorer",
    "InputLoadError",
    "IntervalJoin",
    "JoinCoverage",
    "JoinedPair",
    "ParquetDatasetStore",
    "PartitionStrategy",
    "PartitionStrategyError",
    "PartitionStrategyLoader",
    "PhenotypeMultiplicity",
    "PhenotypeRecord",
    "PipelineConfig",
    "PipelineStage",
    "PluginSpec",
    "RecordSchemaError",
    "Region",
    "RegionFilter",
    "SampleJoiner",
    "SchemaConflictError",
    "SchemaField",
    "ScorerRegistry",
    "ScoringError",
    "ShuffleIntervalJoin",
    "WriteCommitError",
    "WriteMode",
    "build_default_scorer_registry",
    "score_pairs",
]
