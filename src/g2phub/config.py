"""Configuration contracts for association pipeline runs."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class PhenotypeMultiplicity(str, Enum):
    """How the sample joiner treats samples with several phenotype records."""

    REJECT = "reject"
    ALLOW = "allow"


class WriteMode(str, Enum):
    """Whether a run may open a dataset that already exists at the destination."""

    CREATE = "create"
    APPEND = "append"


JOIN_STRATEGIES: tuple[str, ...] = ("broadcast", "shuffle")

# Bag shuffles partition on the builtin hash, which is only stable inside one
# interpreter, so process-based schedulers are not offered.
SCHEDULERS: tuple[str, ...] = ("synchronous", "threads")

DEFAULT_BIN_SIZE = 100_000


@dataclass(frozen=True)
class PipelineConfig:
    """Inputs, output location and execution knobs for one pipeline run."""

    genotypes: str
    phenotypes: str
    associations: str
    partitioning: str
    regions: str | None = None
    scorer: str = "dosage"
    join_strategy: str = "broadcast"
    bin_size: int = DEFAULT_BIN_SIZE
    npartitions: int = 4
    phenotype_multiplicity: PhenotypeMultiplicity = PhenotypeMultiplicity.REJECT
    write_mode: WriteMode = WriteMode.CREATE
    scheduler: str = "threads"

    def __post_init__(self) -> None:
        if self.join_strategy not in JOIN_STRATEGIES:
            raise ValueError(
                f"Unknown join strategy '{self.join_strategy}'. "
                f"Available: {', '.join(JOIN_STRATEGIES)}"
            )
        if self.scheduler not in SCHEDULERS:
            raise ValueError(
                f"Unknown scheduler '{self.scheduler}'. Available: {', '.join(SCHEDULERS)}"
            )
        if self.bin_size <= 0:
            raise ValueError(f"bin_size must be positive: {self.bin_size}")
        if self.npartitions <= 0:
            raise ValueError(f"npartitions must be positive: {self.npartitions}")

        # Accept raw strings and normalize to enum members.
        object.__setattr__(
            self,
            "phenotype_multiplicity",
            PhenotypeMultiplicity(self.phenotype_multiplicity),
        )
        object.__setattr__(self, "write_mode", WriteMode(self.write_mode))

    @property
    def filters_regions(self) -> bool:
        return bool(self.regions)
