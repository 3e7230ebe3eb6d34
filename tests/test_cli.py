import csv
import json
import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from g2phub.cli import build_parser, main, parse_scorer_plugin  # noqa: E402


def _write_inputs(tmp_path: Path) -> dict[str, Path]:
    genotypes = tmp_path / "genotypes.csv"
    with genotypes.open("w", newline="") as stream:
        writer = csv.DictWriter(stream, fieldnames=["sampleId", "contigName", "start", "end", "GT"])
        writer.writeheader()
        writer.writerow({"sampleId": "S1", "contigName": "chr1", "start": 150, "end": 151, "GT": "0/1"})
        writer.writerow({"sampleId": "S2", "contigName": "chr1", "start": 500, "end": 501, "GT": "1/1"})

    phenotypes = tmp_path / "phenotypes.tsv"
    phenotypes.write_text("sample_id\tphenotype\tvalue\nS1\tldl\t2.0\nS2\tldl\t1.0\n")

    regions = tmp_path / "regions.bed"
    regions.write_text("chr1\t100\t200\n")

    partitioning = tmp_path / "partitioning.json"
    partitioning.write_text(
        json.dumps({"fields": [{"type": "range", "source": "start", "width": 1000}]})
    )
    return {
        "genotypes": genotypes,
        "phenotypes": phenotypes,
        "regions": regions,
        "partitioning": partitioning,
    }


def _run(*args: str) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, "scripts/run_associations.py", *args],
        cwd=ROOT,
        text=True,
        capture_output=True,
        check=False,
    )


def test_script_runs_pipeline_and_prints_report(tmp_path: Path) -> None:
    paths = _write_inputs(tmp_path)
    output = tmp_path / "associations"

    result = _run(
        str(paths["genotypes"]),
        str(paths["phenotypes"]),
        f"dataset:{output}",
        str(paths["partitioning"]),
        "-regions",
        str(paths["regions"]),
        "--scheduler",
        "synchronous",
    )

    assert result.returncode == 0, result.stderr
    report = json.loads(result.stdout)
    assert report["stage"] == "done"
    assert report["association_records"] == 1
    assert report["partitions"] == {"start_range=0": 1}
    assert (output / ".metadata" / "descriptor.json").exists()
    assert "Stage: write" in result.stderr


def test_script_exits_nonzero_on_pipeline_failure(tmp_path: Path) -> None:
    paths = _write_inputs(tmp_path)

    result = _run(
        str(tmp_path / "missing.csv"),
        str(paths["phenotypes"]),
        str(tmp_path / "associations"),
        str(paths["partitioning"]),
        "--scheduler",
        "synchronous",
    )

    assert result.returncode == 1
    assert "InputLoadError" in result.stderr
    assert result.stdout == ""


def test_main_returns_two_for_unknown_scorer(tmp_path: Path) -> None:
    paths = _write_inputs(tmp_path)

    code = main(
        [
            str(paths["genotypes"]),
            str(paths["phenotypes"]),
            str(tmp_path / "associations"),
            str(paths["partitioning"]),
            "--scorer",
            "nope",
        ]
    )

    assert code == 2
    assert not (tmp_path / "associations").exists()


def test_parser_defaults() -> None:
    args = build_parser().parse_args(["g", "p", "a", "s.json"])

    assert args.regions is None
    assert args.scorer == "dosage"
    assert args.join_strategy == "broadcast"
    assert args.scheduler == "threads"
    assert args.append is False
    assert args.allow_duplicate_phenotypes is False


def test_parse_scorer_plugin() -> None:
    spec = parse_scorer_plugin("custom=my_pkg.scorers:CustomScorer")

    assert (spec.name, spec.module, spec.class_name) == ("custom", "my_pkg.scorers", "CustomScorer")
