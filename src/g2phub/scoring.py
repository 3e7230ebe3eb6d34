"""Association scorers and the bag-level scoring step."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable

import dask.bag as db

from g2phub.errors import ScoringError
from g2phub.models import AssociationRecord, JoinedPair
from g2phub.registry import PluginRegistry

MISSING_ALLELE = "."


class AssociationScorer(ABC):
    """Turn one joined pair into zero or more association records.

    Scorers run independently per pair and must not keep cross-pair state or
    mutate their inputs.
    """

    name: str

    @abstractmethod
    def score(self, pair: JoinedPair) -> Iterable[AssociationRecord]:
        """Return association records for ``pair``."""


class IdentityScorer(AssociationScorer):
    """Emit exactly one unscored record per pair."""

    name = "identity"

    def score(self, pair: JoinedPair) -> Iterable[AssociationRecord]:
        return [AssociationRecord.from_pair(pair)]


def alt_dosage(call: str) -> int | None:
    """Count non-reference alleles in a VCF-style call such as ``0/1`` or ``1|1``.

    Missing alleles are ignored; a fully missing call returns ``None``.
    """

    alleles = call.replace("|", "/").split("/")
    called = [allele for allele in alleles if allele != MISSING_ALLELE]
    for allele in called:
        if not allele.isdigit():
            raise ValueError(f"Unparsable genotype call: {call!r}")
    if not called:
        return None
    return sum(1 for allele in called if allele != "0")


class DosageScorer(AssociationScorer):
    """Score a pair as alt-allele dosage times the phenotype value."""

    name = "dosage"

    def score(self, pair: JoinedPair) -> Iterable[AssociationRecord]:
        dosage = alt_dosage(pair.genotype.call)
        value = pair.phenotype.value
        score = None if dosage is None or value is None else dosage * value
        return [AssociationRecord.from_pair(pair, dosage=dosage, score=score)]


class FunctionScorer(AssociationScorer):
    """Adapt a plain ``pair -> iterable of records`` callable."""

    def __init__(
        self,
        func: Callable[[JoinedPair], Iterable[AssociationRecord]],
        name: str | None = None,
    ) -> None:
        self.func = func
        self.name = name or getattr(func, "__name__", "function")

    def score(self, pair: JoinedPair) -> Iterable[AssociationRecord]:
        return self.func(pair)


def _score_pair(pair: JoinedPair, scorer: AssociationScorer) -> list[AssociationRecord]:
    try:
        records = list(scorer.score(pair))
    except ScoringError:
        raise
    except Exception as exc:
        raise ScoringError(
            f"Scorer '{scorer.name}' failed for sample {pair.sample_id} "
            f"at {pair.genotype.region()}: {exc}"
        ) from exc

    for record in records:
        if not isinstance(record, AssociationRecord):
            raise ScoringError(
                f"Scorer '{scorer.name}' returned {type(record).__name__} "
                f"for sample {pair.sample_id}; expected AssociationRecord"
            )
    return records


def score_pairs(
    pairs: db.Bag,
    scorer: AssociationScorer | Callable[[JoinedPair], Iterable[AssociationRecord]],
) -> db.Bag:
    """Map ``scorer`` over every joined pair; failures become ``ScoringError``."""

    if not isinstance(scorer, AssociationScorer):
        scorer = FunctionScorer(scorer)
    return pairs.map(_score_pair, scorer).flatten()


class ScorerRegistry(PluginRegistry[AssociationScorer]):
    """Registry mapping scorer names to scorer classes."""

    kind = "scorer"


def build_default_scorer_registry() -> ScorerRegistry:
    """Create a registry preloaded with built-in scorers."""

    registry = ScorerRegistry()
    registry.register(IdentityScorer.name, IdentityScorer)
    registry.register(DosageScorer.name, DosageScorer)
    return registry
