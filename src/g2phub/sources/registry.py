"""Registry of built-in record sources."""

from __future__ import annotations

from g2phub.registry import PluginRegistry
from g2phub.sources.base import RecordSource
from g2phub.sources.genotypes import GenotypeTableSource
from g2phub.sources.phenotypes import PhenotypeTableSource
from g2phub.sources.regions import RegionSource


class SourceRegistry(PluginRegistry[RecordSource]):
    """Registry mapping source names to ``RecordSource`` classes."""

    kind = "source"


def build_default_source_registry() -> SourceRegistry:
    """Create a registry preloaded with the built-in table sources."""

    registry = SourceRegistry()
    registry.register(GenotypeTableSource.name, GenotypeTableSource)
    registry.register(PhenotypeTableSource.name, PhenotypeTableSource)
    registry.register(RegionSource.name, RegionSource)
    return registry
