"""Fixed output schema enforced when association rows are written."""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import pandas as pd

from g2phub.errors import RecordSchemaError


# Pandas nullable extension dtypes keep integer/string nulls intact on the way
# into Parquet.
_PANDAS_DTYPES: dict[str, str] = {
    "string": "string",
    "int64": "Int64",
    "float64": "Float64",
}


@dataclass(frozen=True)
class SchemaField:
    """Name, storage type and nullability of one output column."""

    name: str
    dtype: str
    nullable: bool = True

    def __post_init__(self) -> None:
        if self.dtype not in _PANDAS_DTYPES:
            raise ValueError(
                f"Unsupported dtype '{self.dtype}' for field '{self.name}'. "
                f"Supported: {', '.join(sorted(_PANDAS_DTYPES))}"
            )

    def accepts(self, value: Any) -> bool:
        if value is None:
            return self.nullable
        if self.dtype == "string":
            return isinstance(value, str)
        if self.dtype == "int64":
            return isinstance(value, numbers.Integral) and not isinstance(value, bool)
        if isinstance(value, bool) or not isinstance(value, numbers.Real):
            return False
        return not math.isnan(value) or self.nullable


@dataclass(frozen=True)
class DatasetSchema:
    """Ordered set of fields a dataset accepts."""

    name: str
    fields: tuple[SchemaField, ...]

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(item.name for item in self.fields)

    def field(self, name: str) -> SchemaField:
        for item in self.fields:
            if item.name == name:
                return item
        raise KeyError(f"Unknown field '{name}' in schema '{self.name}'")

    def validate_row(self, row: Mapping[str, Any]) -> None:
        """Raise ``RecordSchemaError`` unless ``row`` matches the schema exactly."""

        unexpected = set(row) - set(self.column_names)
        if unexpected:
            raise RecordSchemaError(
                f"Unexpected columns for schema '{self.name}': {', '.join(sorted(unexpected))}"
            )

        for item in self.fields:
            if item.name not in row:
                raise RecordSchemaError(f"Missing column '{item.name}' for schema '{self.name}'")
            value = row[item.name]
            if not item.accepts(value):
                raise RecordSchemaError(
                    f"Column '{item.name}' expects {item.dtype}"
                    f"{'' if item.nullable else ' (non-null)'}, got {value!r}"
                )

    def coerce_row(self, row: Mapping[str, Any]) -> dict[str, Any]:
        """Convert a stored row (pandas/numpy scalars, NA markers) into Python values."""

        coerced: dict[str, Any] = {}
        for item in self.fields:
            value = row.get(item.name)
            if value is None or pd.isna(value):
                coerced[item.name] = None
            elif item.dtype == "string":
                coerced[item.name] = str(value)
            elif item.dtype == "int64":
                coerced[item.name] = int(value)
            else:
                coerced[item.name] = float(value)
        return coerced

    def to_frame(self, rows: Iterable[Mapping[str, Any]]) -> pd.DataFrame:
        """Build a frame with the schema's column order and dtypes."""

        frame = pd.DataFrame(list(rows), columns=list(self.column_names))
        return frame.astype({item.name: _PANDAS_DTYPES[item.dtype] for item in self.fields})

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "fields": [
                {"name": item.name, "type": item.dtype, "nullable": item.nullable}
                for item in self.fields
            ],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "DatasetSchema":
        return cls(
            name=str(payload["name"]),
            fields=tuple(
                SchemaField(
                    name=str(raw["name"]),
                    dtype=str(raw["type"]),
                    nullable=bool(raw.get("nullable", True)),
                )
                for raw in payload["fields"]
            ),
        )


ASSOCIATION_SCHEMA = DatasetSchema(
    name="association",
    fields=(
        SchemaField("sample_id", "string", nullable=False),
        SchemaField("contig", "string", nullable=False),
        SchemaField("start", "int64", nullable=False),
        SchemaField("end", "int64", nullable=False),
        SchemaField("variant_id", "string"),
        SchemaField("call", "string", nullable=False),
        SchemaField("phenotype", "string", nullable=False),
        SchemaField("phenotype_value", "float64"),
        SchemaField("dosage", "int64"),
        SchemaField("score", "float64"),
    ),
)
