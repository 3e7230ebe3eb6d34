"""Command-line entry point for association pipeline runs."""

from __future__ import annotations

import argparse
import json
import logging
import sys

from g2phub.config import (
    JOIN_STRATEGIES,
    SCHEDULERS,
    PhenotypeMultiplicity,
    PipelineConfig,
    WriteMode,
)
from g2phub.errors import G2PError
from g2phub.pipeline import AssociationPipeline
from g2phub.registry import PluginSpec
from g2phub.scoring import build_default_scorer_registry

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="g2phub",
        description="Compute genotype/phenotype associations into a partitioned Parquet dataset",
    )
    parser.add_argument("genotypes", metavar="GENOTYPES", help="The genotypes to process.")
    parser.add_argument("phenotypes", metavar="PHENOTYPES", help="The phenotypes to process.")
    parser.add_argument(
        "associations",
        metavar="ASSOCIATIONS",
        help="The location to save associations to.",
    )
    parser.add_argument(
        "partitioning",
        metavar="PARTITIONING",
        help="Partition strategy JSON file for the output dataset.",
    )
    parser.add_argument(
        "-regions",
        "--regions",
        dest="regions",
        default=None,
        help="The regions to filter genotypes by (BED or table). Skips filtering when absent.",
    )
    parser.add_argument("--scorer", default="dosage", help="Registered scorer name.")
    parser.add_argument(
        "--scorer-plugin",
        action="append",
        default=[],
        metavar="NAME=MODULE:CLASS",
        help="Register an additional scorer class before the run.",
    )
    parser.add_argument("--join-strategy", choices=JOIN_STRATEGIES, default="broadcast")
    parser.add_argument("--bin-size", type=int, default=100_000)
    parser.add_argument("--npartitions", type=int, default=4)
    parser.add_argument("--scheduler", choices=SCHEDULERS, default="threads")
    parser.add_argument(
        "--allow-duplicate-phenotypes",
        action="store_true",
        help="Pair every phenotype of a sample with its genotypes instead of failing.",
    )
    parser.add_argument(
        "--append",
        action="store_true",
        help="Append to an existing dataset with the same schema and partitioning.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser


def parse_scorer_plugin(raw: str) -> PluginSpec:
    name, sep, target = raw.partition("=")
    if not sep or not name.strip():
        raise ValueError(f"Scorer plugin must look like NAME=MODULE:CLASS, got '{raw}'")
    return PluginSpec.parse(name.strip(), target.strip())


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format=LOG_FORMAT)
    logger = logging.getLogger("g2phub.cli")

    try:
        config = PipelineConfig(
            genotypes=args.genotypes,
            phenotypes=args.phenotypes,
            associations=args.associations,
            partitioning=args.partitioning,
            regions=args.regions,
            scorer=args.scorer,
            join_strategy=args.join_strategy,
            bin_size=args.bin_size,
            npartitions=args.npartitions,
            phenotype_multiplicity=(
                PhenotypeMultiplicity.ALLOW
                if args.allow_duplicate_phenotypes
                else PhenotypeMultiplicity.REJECT
            ),
            write_mode=WriteMode.APPEND if args.append else WriteMode.CREATE,
            scheduler=args.scheduler,
        )
        scorer_registry = build_default_scorer_registry()
        for raw in args.scorer_plugin:
            scorer_registry.register_plugin(parse_scorer_plugin(raw))
        pipeline = AssociationPipeline(config=config, scorer_registry=scorer_registry)
    except (ValueError, KeyError, ImportError, AttributeError) as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    try:
        report = pipeline.run()
    except G2PError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 1

    print(json.dumps(report.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
