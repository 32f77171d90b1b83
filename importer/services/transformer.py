"""Transformation engine for mapped field values."""

import re
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from dateutil import parser as date_parser

from ..models.execution import utcnow
from ..models.mapping import TransformKind, TransformRule

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

LEADING_INT = re.compile(r"^\s*[-+]?\d+")
LEADING_FLOAT = re.compile(r"^\s*[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?")


def is_empty(value: Any) -> bool:
    """None and the empty string count as missing values."""
    return value is None or value == ""


def get_field_value(record: Dict[str, Any], path: str) -> Any:
    """
    Read a field from a source row.

    Exact keys win (joined rows use "alias.field" keys); otherwise the
    path is followed through nested objects and list indexes.
    """
    if not path:
        return None
    if path in record:
        return record[path]

    value: Any = record
    for part in path.split("."):
        if value is None:
            return None
        if isinstance(value, dict):
            value = value.get(part)
        elif isinstance(value, list) and part.isdigit():
            idx = int(part)
            value = value[idx] if idx < len(value) else None
        else:
            return None
    return value


def _to_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = LEADING_FLOAT.match(str(value)) if value is not None else None
    return float(match.group(0)) if match else None


class TransformEngine:
    """
    Applies TransformRule instances to field values.

    Supports:
    - static values
    - named functions (case-insensitive, extensible via register_function)
    - lookup tables with defaults
    - concatenation of several source fields
    - splitting on a delimiter
    - date and number formatting templates

    Functions that read the current time use the injected clock.
    """

    def __init__(self, clock: Optional[Clock] = None):
        """
        Initialize the transform engine.

        Args:
            clock: Callable returning the current datetime
        """
        self.clock = clock or utcnow
        self._functions: Dict[str, Callable[[Any], Any]] = self._register_builtin_functions()
        self._handlers = {
            TransformKind.STATIC: self._transform_static,
            TransformKind.FUNCTION: self._transform_function,
            TransformKind.LOOKUP: self._transform_lookup,
            TransformKind.CONCATENATE: self._transform_concatenate,
            TransformKind.SPLIT: self._transform_split,
            TransformKind.FORMAT: self._transform_format,
        }

    def _register_builtin_functions(self) -> Dict[str, Callable[[Any], Any]]:
        """Register all built-in named functions (keys are lowercase)."""
        return {
            "lowercase": self._fn_lowercase,
            "tolowercase": self._fn_lowercase,
            "uppercase": self._fn_uppercase,
            "touppercase": self._fn_uppercase,
            "trim": self._fn_trim,
            "parseint": self._fn_parse_int,
            "parsefloat": self._fn_parse_float,
            "formatdate": self._fn_format_date,
            "formatcurrency": self._fn_format_currency,
            "slugify": self._fn_slugify,
            "now": self._fn_now,
            "today": self._fn_today,
        }

    def register_function(self, name: str, func: Callable[[Any], Any]) -> None:
        """Register a custom named function."""
        self._functions[name.lower()] = func

    def available_functions(self) -> list:
        return sorted(self._functions)

    def apply(self, value: Any, rule: Optional[TransformRule], record: Dict[str, Any]) -> Any:
        """
        Transform a value.

        Args:
            value: Value read from the source field (after default substitution)
            rule: Transformation to apply, or None for a direct copy
            record: The whole source row, for multi-field transforms

        Returns:
            The transformed value
        """
        if rule is None:
            return value
        handler = self._handlers.get(rule.type)
        if handler is None:
            logger.warning(f"Unknown transform type: {rule.type}, using direct copy")
            return value
        return handler(value, rule, record)

    # Transform kinds

    def _transform_static(self, value: Any, rule: TransformRule, record: Dict) -> Any:
        return rule.value

    def _transform_function(self, value: Any, rule: TransformRule, record: Dict) -> Any:
        if not rule.function:
            return value
        func = self._functions.get(rule.function.lower())
        if func is None:
            logger.debug(f"Unknown transform function {rule.function}, value left unchanged")
            return value
        return func(value)

    def _transform_lookup(self, value: Any, rule: TransformRule, record: Dict) -> Any:
        table = rule.lookup_table or {}
        key = str(value)
        if key in table and table[key] is not None:
            return table[key]
        if rule.lookup_default is not None:
            return rule.lookup_default
        return value

    def _transform_concatenate(self, value: Any, rule: TransformRule, record: Dict) -> Any:
        if not rule.source_fields:
            return value
        parts = [get_field_value(record, f) for f in rule.source_fields]
        separator = rule.separator if rule.separator is not None else " "
        return separator.join(str(p) for p in parts if not is_empty(p))

    def _transform_split(self, value: Any, rule: TransformRule, record: Dict) -> Any:
        if not isinstance(value, str) or not rule.delimiter:
            return value
        parts = value.split(rule.delimiter)
        index = rule.index or 0
        if 0 <= index < len(parts):
            return parts[index]
        return ""

    def _transform_format(self, value: Any, rule: TransformRule, record: Dict) -> Any:
        fmt = rule.format
        if not fmt or value is None:
            return value

        if any(token in fmt for token in ("YYYY", "MM", "DD")):
            parsed = self._parse_date(value)
            if parsed is not None:
                return (
                    fmt.replace("YYYY", f"{parsed.year:04d}")
                    .replace("MM", f"{parsed.month:02d}")
                    .replace("DD", f"{parsed.day:02d}")
                    .replace("HH", f"{parsed.hour:02d}")
                    .replace("mm", f"{parsed.minute:02d}")
                    .replace("ss", f"{parsed.second:02d}")
                )

        if "0,0" in fmt or "$" in fmt:
            num = _to_float(value)
            if num is not None:
                if "$" in fmt:
                    return f"${num:,.2f}"
                if num.is_integer():
                    return f"{int(num):,}"
                return f"{num:,.3f}".rstrip("0").rstrip(".")

        return value

    def _parse_date(self, value: Any) -> Optional[datetime]:
        if isinstance(value, datetime):
            return value
        try:
            return date_parser.parse(str(value))
        except (ValueError, OverflowError):
            return None

    # Named functions

    def _fn_lowercase(self, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value

    def _fn_uppercase(self, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    def _fn_trim(self, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    def _fn_parse_int(self, value: Any) -> int:
        if isinstance(value, bool):
            return 0
        if isinstance(value, (int, float)):
            return int(value)
        match = LEADING_INT.match(str(value)) if value is not None else None
        return int(match.group(0)) if match else 0

    def _fn_parse_float(self, value: Any) -> float:
        num = _to_float(value)
        return num if num is not None else 0

    def _fn_format_date(self, value: Any) -> Any:
        if is_empty(value):
            return value
        parsed = self._parse_date(value)
        if parsed is None:
            return value
        return parsed.date().isoformat()

    def _fn_format_currency(self, value: Any) -> Any:
        num = _to_float(value)
        if num is None:
            return value
        return f"${num:.2f}"

    def _fn_slugify(self, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")

    def _fn_now(self, value: Any) -> str:
        return self.clock().isoformat()

    def _fn_today(self, value: Any) -> str:
        return self.clock().date().isoformat()
