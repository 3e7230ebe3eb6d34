"""Partition strategies that map association rows to dataset buckets.

A strategy is described by a JSON file (the ``PARTITIONING`` argument), for
example::

    [
        {"type": "identity", "source": "contig"},
        {"type": "hash", "source": "sample_id", "buckets": 8}
    ]

Each field contributes one ``name=value`` directory level to the partition
path of a row. Keys depend only on the row contents, never on input order.
"""

from __future__ import annotations

import hashlib
import json
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import quote

from jsonschema.validators import validator_for

from g2phub.errors import InputLoadError
from g2phub.schema import DatasetSchema


NULL_PARTITION = "__null__"

PARTITION_TYPES: tuple[str, ...] = ("identity", "hash", "range")

_FIELD_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["type", "source"],
    "properties": {
        "type": {"enum": list(PARTITION_TYPES)},
        "source": {"type": "string", "minLength": 1},
        "name": {"type": "string", "pattern": "^[A-Za-z_][A-Za-z0-9_]*$"},
        "buckets": {"type": "integer", "minimum": 1},
        "width": {"type": "number", "exclusiveMinimum": 0},
    },
    "additionalProperties": False,
    "allOf": [
        {"if": {"properties": {"type": {"const": "hash"}}}, "then": {"required": ["buckets"]}},
        {"if": {"properties": {"type": {"const": "range"}}}, "then": {"required": ["width"]}},
    ],
}

PARTITION_STRATEGY_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "oneOf": [
        {"type": "array", "items": _FIELD_SCHEMA, "minItems": 1},
        {
            "type": "object",
            "required": ["fields"],
            "properties": {"fields": {"type": "array", "items": _FIELD_SCHEMA, "minItems": 1}},
            "additionalProperties": False,
        },
    ],
}


class PartitionStrategyError(ValueError):
    """A partition strategy is inconsistent with itself or with a schema."""


def stable_hash(value: Any) -> int:
    """Process-independent hash used for hash partitioning."""

    digest = hashlib.md5(str(value).encode("utf-8")).hexdigest()
    return int(digest, 16)


@dataclass(frozen=True)
class PartitionField:
    """One level of a partition strategy."""

    kind: str
    source: str
    name: str
    buckets: int | None = None
    width: float | None = None

    def __post_init__(self) -> None:
        if self.kind not in PARTITION_TYPES:
            raise PartitionStrategyError(f"Unknown partition type: {self.kind}")
        if self.kind == "hash" and (self.buckets is None or self.buckets < 1):
            raise PartitionStrategyError(f"Hash partition '{self.name}' needs buckets >= 1")
        if self.kind == "range" and (self.width is None or self.width <= 0):
            raise PartitionStrategyError(f"Range partition '{self.name}' needs a positive width")

    def apply(self, value: Any) -> Any:
        """Return the bucket value for a source value.

        ``None`` stays ``None``; so does a non-finite value under a range field,
        which has no bucket.
        """

        if value is None:
            return None
        if self.kind == "identity":
            return value
        if self.kind == "hash":
            return stable_hash(value) % self.buckets
        if not math.isfinite(float(value)):
            return None
        bucket = round(math.floor(float(value) / self.width) * self.width, 9)
        return int(bucket) if float(bucket).is_integer() else bucket

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.kind, "source": self.source, "name": self.name}
        if self.buckets is not None:
            payload["buckets"] = self.buckets
        if self.width is not None:
            payload["width"] = self.width
        return payload


@dataclass(frozen=True)
class PartitionStrategy:
    """Ordered partition fields; a deterministic function row -> partition key."""

    fields: tuple[PartitionField, ...]

    def __post_init__(self) -> None:
        if not self.fields:
            raise PartitionStrategyError("A partition strategy needs at least one field")
        names = [item.name for item in self.fields]
        if len(names) != len(set(names)):
            raise PartitionStrategyError(f"Duplicate partition names: {names}")

    def partition_key(self, row: Mapping[str, Any]) -> tuple[tuple[str, Any], ...]:
        return tuple((item.name, item.apply(row.get(item.source))) for item in self.fields)

    def partition_path(self, row: Mapping[str, Any]) -> str:
        """Render the partition key of ``row`` as hive-style directories."""

        parts = []
        for name, value in self.partition_key(row):
            rendered = NULL_PARTITION if value is None else quote(str(value), safe="")
            parts.append(f"{name}={rendered}")
        return "/".join(parts)

    def validate_against(self, schema: DatasetSchema) -> None:
        """Ensure every partition source is a schema column of a compatible type."""

        for item in self.fields:
            try:
                column = schema.field(item.source)
            except KeyError as exc:
                raise PartitionStrategyError(
                    f"Partition source '{item.source}' is not a column of schema '{schema.name}'"
                ) from exc
            if item.kind == "range" and column.dtype not in {"int64", "float64"}:
                raise PartitionStrategyError(
                    f"Range partition '{item.name}' needs a numeric column, "
                    f"'{item.source}' is {column.dtype}"
                )

    def to_dict(self) -> dict[str, Any]:
        return {"fields": [item.to_dict() for item in self.fields]}

    @classmethod
    def from_dict(cls, payload: Any) -> "PartitionStrategy":
        raw_fields = payload["fields"] if isinstance(payload, Mapping) else payload
        parsed = []
        for raw in raw_fields:
            kind = str(raw["type"])
            source = str(raw["source"])
            default_name = source if kind == "identity" else f"{source}_{kind}"
            parsed.append(
                PartitionField(
                    kind=kind,
                    source=source,
                    name=str(raw.get("name", default_name)),
                    buckets=raw.get("buckets"),
                    width=raw.get("width"),
                )
            )
        return cls(fields=tuple(parsed))


class PartitionStrategyLoader:
    """Load and validate partition strategy JSON files."""

    def __init__(self) -> None:
        validator_cls = validator_for(PARTITION_STRATEGY_SCHEMA)
        validator_cls.check_schema(PARTITION_STRATEGY_SCHEMA)
        self._validator = validator_cls(PARTITION_STRATEGY_SCHEMA)

    def errors(self, payload: Any) -> list[str]:
        """Return every schema violation in ``payload`` as a readable message."""

        messages = []
        found = self._validator.iter_errors(payload)
        for err in sorted(found, key=lambda e: [str(part) for part in e.path]):
            path = "/" + "/".join(str(part) for part in err.path)
            messages.append(f"{path}: {err.message}")
        return messages

    def parse(self, payload: Any) -> PartitionStrategy:
        problems = self.errors(payload)
        if problems:
            raise PartitionStrategyError("Invalid partition strategy: " + "; ".join(problems))
        return PartitionStrategy.from_dict(payload)

    def load(self, path: str | Path) -> PartitionStrategy:
        """Load a strategy file; unreadable or invalid files are input errors."""

        path = Path(path)
        try:
            payload = json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as exc:
            raise InputLoadError(f"Could not read partition strategy {path}: {exc}") from exc

        try:
            return self.parse(payload)
        except PartitionStrategyError as exc:
            raise InputLoadError(f"{path}: {exc}") from exc
