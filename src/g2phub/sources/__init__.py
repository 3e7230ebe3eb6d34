"""Record sources for genotype, phenotype and region inputs."""

from .base import RecordSource
from .common import expand_input_paths
from .genotypes import GenotypeTableSource
from .phenotypes import PhenotypeTableSource
from .regions import RegionSource
from .registry import SourceRegistry, build_default_source_registry

__all__ = [
    "RecordSource",
    "GenotypeTableSource",
    "PhenotypeTableSource",
    "RegionSource",
    "SourceRegistry",
    "build_default_source_registry",
    "expand_input_paths",
]
