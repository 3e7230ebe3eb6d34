import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from g2phub.errors import RecordSchemaError  # noqa: E402
from g2phub.schema import ASSOCIATION_SCHEMA, DatasetSchema  # noqa: E402


def _row(**overrides):
    row = {
        "sample_id": "S1",
        "contig": "chr1",
        "start": 10,
        "end": 11,
        "variant_id": None,
        "call": "0/1",
        "phenotype": "ldl",
        "phenotype_value": 1.5,
        "dosage": 1,
        "score": 1.5,
    }
    row.update(overrides)
    return row


def test_validate_row_accepts_conforming_row() -> None:
    ASSOCIATION_SCHEMA.validate_row(_row())
    ASSOCIATION_SCHEMA.validate_row(_row(score=None, dosage=None, phenotype_value=None))


@pytest.mark.parametrize(
    "overrides",
    [
        {"sample_id": None},
        {"start": "10"},
        {"score": "high"},
        {"dosage": True},
    ],
)
def test_validate_row_rejects_wrong_types(overrides) -> None:
    with pytest.raises(RecordSchemaError):
        ASSOCIATION_SCHEMA.validate_row(_row(**overrides))


def test_validate_row_rejects_missing_and_extra_columns() -> None:
    row = _row()
    del row["score"]
    with pytest.raises(RecordSchemaError, match="Missing column 'score'"):
        ASSOCIATION_SCHEMA.validate_row(row)

    with pytest.raises(RecordSchemaError, match="Unexpected columns"):
        ASSOCIATION_SCHEMA.validate_row(_row(extra=1))


def test_to_frame_uses_schema_order_and_nullable_dtypes() -> None:
    frame = ASSOCIATION_SCHEMA.to_frame([_row(dosage=None)])

    assert list(frame.columns) == list(ASSOCIATION_SCHEMA.column_names)
    assert str(frame["dosage"].dtype) == "Int64"
    assert frame["dosage"].isna().all()


def test_schema_dict_round_trip() -> None:
    payload = ASSOCIATION_SCHEMA.to_dict()

    assert DatasetSchema.from_dict(payload) == ASSOCIATION_SCHEMA
    assert payload["fields"][0] == {"name": "sample_id", "type": "string", "nullable": False}


def test_coerce_row_maps_missing_markers_to_none() -> None:
    coerced = ASSOCIATION_SCHEMA.coerce_row(_row(score=float("nan"), dosage=2.0))

    assert coerced["score"] is None
    assert coerced["dosage"] == 2
    assert isinstance(coerced["dosage"], int)
