import json
import sys
from collections import Counter
from pathlib import Path

import dask
import dask.bag as db
import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from g2phub.config import WriteMode  # noqa: E402
from g2phub.errors import (  # noqa: E402
    DatasetExistsError,
    RecordSchemaError,
    SchemaConflictError,
    WriteCommitError,
)
from g2phub.models import AssociationRecord  # noqa: E402
from g2phub.partitioning import PartitionStrategy  # noqa: E402
from g2phub.schema import ASSOCIATION_SCHEMA, DatasetSchema, SchemaField  # noqa: E402
from g2phub.storage import ParquetDatasetStore  # noqa: E402


STRATEGY = PartitionStrategy.from_dict(
    [
        {"type": "identity", "source": "contig"},
        {"type": "hash", "source": "sample_id", "buckets": 4},
    ]
)


@pytest.fixture(autouse=True)
def synchronous_scheduler():
    with dask.config.set(scheduler="synchronous"):
        yield


def _record(sample_id: str, contig: str = "chr1", start: int = 100, **overrides) -> AssociationRecord:
    values = {
        "sample_id": sample_id,
        "contig": contig,
        "start": start,
        "end": start + 1,
        "variant_id": f"{contig}_{start}",
        "call": "0/1",
        "phenotype": "ldl",
        "phenotype_value": 1.5,
        "dosage": 1,
        "score": 1.5,
    }
    values.update(overrides)
    return AssociationRecord(**values)


def _records() -> list[AssociationRecord]:
    return [
        _record("S1"),
        _record("S2", "chr2", 500),
        _record("S3", "chr1", 900, variant_id=None, phenotype_value=None, dosage=None, score=None),
        _record("S1", "chr2", 700, call="1/1", dosage=2, score=3.0),
    ]


def _write(store, records, mode=WriteMode.CREATE, npartitions=2, strategy=STRATEGY) -> int:
    with store.declare(ASSOCIATION_SCHEMA, strategy, mode) as sink:
        return sink.write(db.from_sequence(records, npartitions=npartitions))


def test_write_and_read_round_trip(tmp_path: Path) -> None:
    store = ParquetDatasetStore(tmp_path / "associations")

    written = _write(store, _records())

    assert written == 4
    rows = store.read()
    assert Counter(AssociationRecord.from_row(row) for row in rows) == Counter(_records())
    assert store.read_partitions().keys() == store.partitions().keys()
    assert sum(store.partitions().values()) == 4


def test_partition_directories_follow_strategy(tmp_path: Path) -> None:
    store = ParquetDatasetStore(tmp_path / "associations")
    _write(store, _records())

    for partition, rows in store.read_partitions().items():
        for row in rows:
            assert partition == STRATEGY.partition_path(row)
            assert partition.startswith(f"contig={row['contig']}/sample_id_hash=")

    descriptor = json.loads(store.descriptor_path.read_text())
    assert descriptor["partition_strategy"] == STRATEGY.to_dict()
    assert descriptor["schema"] == ASSOCIATION_SCHEMA.to_dict()
    assert not (store.root / ".staging").exists()


def test_partition_contents_do_not_depend_on_input_order(tmp_path: Path) -> None:
    forward = ParquetDatasetStore(tmp_path / "forward")
    backward = ParquetDatasetStore(tmp_path / "backward")

    _write(forward, _records(), npartitions=3)
    _write(backward, list(reversed(_records())), npartitions=1)

    def by_partition(store):
        return {
            partition: Counter(tuple(sorted(row.items(), key=lambda item: item[0])) for row in rows)
            for partition, rows in store.read_partitions().items()
        }

    assert by_partition(forward) == by_partition(backward)


def test_dataset_uri_prefix_is_accepted(tmp_path: Path) -> None:
    store = ParquetDatasetStore(f"dataset:{tmp_path / 'associations'}")

    assert store.root == tmp_path / "associations"


def test_create_mode_refuses_existing_dataset(tmp_path: Path) -> None:
    store = ParquetDatasetStore(tmp_path / "associations")
    _write(store, _records())

    with pytest.raises(DatasetExistsError):
        _write(store, _records())

    assert len(store.read()) == 4


def test_append_mode_adds_records(tmp_path: Path) -> None:
    store = ParquetDatasetStore(tmp_path / "associations")
    _write(store, _records())

    _write(store, [_record("S9", "chr3", 42)], mode=WriteMode.APPEND)

    assert len(store.read()) == 5
    assert len(store.commits()) == 2
    assert "contig=chr3" in {partition.split("/")[0] for partition in store.partitions()}


def test_append_with_different_strategy_conflicts(tmp_path: Path) -> None:
    store = ParquetDatasetStore(tmp_path / "associations")
    _write(store, _records())
    other = PartitionStrategy.from_dict([{"type": "identity", "source": "phenotype"}])

    with pytest.raises(SchemaConflictError, match="different schema or partition strategy"):
        _write(store, _records(), mode=WriteMode.APPEND, strategy=other)


def test_append_with_different_schema_conflicts(tmp_path: Path) -> None:
    store = ParquetDatasetStore(tmp_path / "associations")
    _write(store, _records())
    narrower = DatasetSchema(
        name="association",
        fields=tuple(item for item in ASSOCIATION_SCHEMA.fields if item.name != "score"),
    )

    with pytest.raises(SchemaConflictError):
        with store.declare(narrower, STRATEGY, WriteMode.APPEND):
            pass


def test_strategy_must_reference_schema_columns(tmp_path: Path) -> None:
    store = ParquetDatasetStore(tmp_path / "associations")
    strategy = PartitionStrategy.from_dict([{"type": "identity", "source": "gene"}])

    with pytest.raises(SchemaConflictError, match="not a column"):
        _write(store, _records(), strategy=strategy)

    assert not store.root.exists()


def test_destination_with_foreign_files_conflicts(tmp_path: Path) -> None:
    root = tmp_path / "associations"
    root.mkdir()
    (root / "notes.txt").write_text("not a dataset")

    with pytest.raises(SchemaConflictError, match="no dataset descriptor"):
        _write(ParquetDatasetStore(root), _records())


def test_invalid_row_aborts_without_committing(tmp_path: Path) -> None:
    store = ParquetDatasetStore(tmp_path / "associations")
    records = _records() + [_record("S5", dosage="two")]

    with pytest.raises(RecordSchemaError, match="Column 'dosage' expects int64"):
        _write(store, records, npartitions=1)

    assert not store.root.exists()


def test_failure_inside_declare_keeps_previous_commits(tmp_path: Path) -> None:
    store = ParquetDatasetStore(tmp_path / "associations")
    _write(store, _records())

    with pytest.raises(RuntimeError, match="boom"):
        with store.declare(ASSOCIATION_SCHEMA, STRATEGY, WriteMode.APPEND) as sink:
            sink.write(db.from_sequence([_record("S9")], npartitions=1))
            raise RuntimeError("boom")

    assert len(store.read()) == 4
    assert len(store.commits()) == 1
    assert store.descriptor_path.exists()
    assert not (store.root / ".staging").exists()


def test_schema_field_rejects_unknown_dtype() -> None:
    with pytest.raises(ValueError, match="Unsupported dtype"):
        SchemaField("when", "timestamp")


def test_read_without_dataset_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        ParquetDatasetStore(tmp_path / "missing").read()


def test_failed_commit_rolls_back_partition_directories(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    store = ParquetDatasetStore(tmp_path / "associations")

    def refuse_commit(entry):
        raise OSError("disk full")

    monkeypatch.setattr(store, "append_commit", refuse_commit)
    with pytest.raises(WriteCommitError, match="disk full"):
        _write(store, _records())

    assert not store.root.exists()

    monkeypatch.undo()
    assert _write(store, _records()) == 4
    assert len(store.read()) == 4
