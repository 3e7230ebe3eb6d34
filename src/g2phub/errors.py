"""Error taxonomy for association pipeline runs."""

from __future__ import annotations


class G2PError(Exception):
    """Base class for failures that abort a pipeline run."""


class InputLoadError(G2PError):
    """A genotype, phenotype, region or partitioning input could not be loaded."""


class SchemaConflictError(G2PError):
    """The destination holds a dataset with an incompatible schema or partitioning."""


class DatasetExistsError(SchemaConflictError):
    """The destination already holds a dataset and the run did not ask to append."""


class DuplicatePhenotypeError(G2PError):
    """A sample carries more than one phenotype record while duplicates are rejected."""


class ScoringError(G2PError):
    """The scoring collaborator failed on a joined genotype/phenotype pair."""


class WriteCommitError(G2PError):
    """The dataset store failed while writing or committing partitions."""


class RecordSchemaError(WriteCommitError):
    """An association row does not conform to the declared output schema."""
