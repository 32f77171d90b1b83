"""Field type inference for untyped sources (CSV, Excel, JSON, REST APIs)."""

import re
from collections import Counter
from datetime import date, datetime
from typing import Any, Dict, Iterable, List

from ..models.schema import FieldType, SourceField

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DATETIME_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}")
NUMBER_PATTERN = re.compile(r"^[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?$")

DEFAULT_SAMPLE_SIZE = 100


def classify_value(value: Any) -> FieldType:
    """Classify a single non-empty value."""
    if isinstance(value, bool):
        return FieldType.BOOLEAN
    if isinstance(value, (int, float)):
        return FieldType.NUMBER
    if isinstance(value, (dict, list)):
        return FieldType.JSON
    if isinstance(value, datetime):
        return FieldType.DATETIME
    if isinstance(value, date):
        return FieldType.DATE
    if isinstance(value, (bytes, bytearray)):
        return FieldType.BINARY

    text = str(value).strip()
    if DATE_PATTERN.match(text):
        return FieldType.DATE
    if DATETIME_PATTERN.match(text):
        return FieldType.DATETIME
    if NUMBER_PATTERN.match(text):
        return FieldType.NUMBER
    if text.lower() in ("true", "false"):
        return FieldType.BOOLEAN
    return FieldType.STRING


def infer_field_type(values: Iterable[Any], sample_size: int = DEFAULT_SAMPLE_SIZE) -> FieldType:
    """
    Infer a field type by majority vote over a sample of values.

    Nulls and empty strings are ignored. On a tie, the type counted first
    wins (Counter keeps insertion order). No usable values gives string.

    Args:
        values: Raw column values
        sample_size: Maximum number of values to inspect

    Returns:
        The most common FieldType
    """
    tally: Counter = Counter()
    for i, value in enumerate(values):
        if i >= sample_size:
            break
        if value is None or value == "":
            continue
        tally[classify_value(value)] += 1

    if not tally:
        return FieldType.STRING

    best_type, best_count = None, -1
    for field_type, count in tally.items():
        if count > best_count:
            best_type, best_count = field_type, count
    return best_type


def infer_fields(
    rows: List[Dict[str, Any]],
    columns: List[str],
    sample_size: int = DEFAULT_SAMPLE_SIZE
) -> List[SourceField]:
    """Build SourceField entries for each column from the first rows."""
    sample = rows[:sample_size]
    fields = []
    for column in columns:
        values = [row.get(column) for row in sample]
        fields.append(SourceField(
            name=column,
            type=infer_field_type(values, sample_size),
            nullable=any(v is None or v == "" for v in values) or not values,
        ))
    return fields
