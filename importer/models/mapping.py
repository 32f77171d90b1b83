"""Field mapping, transformation and validation rule models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
import json

from ..exceptions import ConfigurationError


class TransformKind(str, Enum):
    """Supported transformation kinds."""
    STATIC = "static"
    FUNCTION = "function"
    LOOKUP = "lookup"
    CONCATENATE = "concatenate"
    SPLIT = "split"
    FORMAT = "format"


class ValidationKind(str, Enum):
    """Supported validation rule kinds."""
    REQUIRED = "required"
    MIN_LENGTH = "minLength"
    MAX_LENGTH = "maxLength"
    PATTERN = "pattern"
    RANGE = "range"
    ENUM = "enum"
    CUSTOM = "custom"


def _enum_value(enum_cls, raw: Any, label: str):
    try:
        return enum_cls(raw)
    except ValueError:
        raise ConfigurationError(f"Unsupported {label}: {raw}")


@dataclass
class TransformRule:
    """A transformation applied to a mapped value."""
    type: TransformKind
    value: Optional[Any] = None  # static
    function: Optional[str] = None  # function
    lookup_table: Dict[str, Any] = field(default_factory=dict)  # lookup
    lookup_default: Optional[Any] = None
    source_fields: List[str] = field(default_factory=list)  # concatenate
    separator: str = " "
    delimiter: Optional[str] = None  # split
    index: int = 0
    format: Optional[str] = None  # format

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation, omitting unset options."""
        result: Dict[str, Any] = {"type": self.type.value}
        if self.value is not None:
            result["value"] = self.value
        if self.function:
            result["function"] = self.function
        if self.lookup_table:
            result["lookup_table"] = self.lookup_table
        if self.lookup_default is not None:
            result["lookup_default"] = self.lookup_default
        if self.source_fields:
            result["source_fields"] = self.source_fields
            result["separator"] = self.separator
        if self.delimiter is not None:
            result["delimiter"] = self.delimiter
            result["index"] = self.index
        if self.format:
            result["format"] = self.format
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TransformRule":
        """Create from dictionary representation."""
        return cls(
            type=_enum_value(TransformKind, data.get("type"), "transform type"),
            value=data.get("value"),
            function=data.get("function"),
            lookup_table=data.get("lookup_table", data.get("lookupTable", {})) or {},
            lookup_default=data.get("lookup_default", data.get("lookupDefault")),
            source_fields=list(data.get("source_fields", data.get("sourceFields", [])) or []),
            separator=data.get("separator", " "),
            delimiter=data.get("delimiter", data.get("splitDelimiter")),
            index=int(data.get("index", data.get("splitIndex", 0)) or 0),
            format=data.get("format"),
        )


@dataclass
class ValidationRule:
    """A validation rule checked after transformation."""
    type: ValidationKind
    value: Optional[Any] = None  # minLength / maxLength
    min: Optional[float] = None
    max: Optional[float] = None
    pattern: Optional[str] = None
    enum_values: List[Any] = field(default_factory=list)
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"type": self.type.value}
        for key in ("value", "min", "max", "pattern", "message"):
            if getattr(self, key) is not None:
                result[key] = getattr(self, key)
        if self.enum_values:
            result["enum_values"] = self.enum_values
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ValidationRule":
        return cls(
            type=_enum_value(ValidationKind, data.get("type"), "validation type"),
            value=data.get("value"),
            min=data.get("min"),
            max=data.get("max"),
            pattern=data.get("pattern"),
            enum_values=list(data.get("enum_values", data.get("enumValues", [])) or []),
            message=data.get("message"),
        )


@dataclass
class FieldMapping:
    """Mapping between a source field and a target field."""
    source_field: str
    target_field: str
    transform: Optional[TransformRule] = None
    validation: List[ValidationRule] = field(default_factory=list)
    required: bool = False
    default_value: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        result: Dict[str, Any] = {
            "source_field": self.source_field,
            "target_field": self.target_field,
        }
        if self.transform:
            result["transform"] = self.transform.to_dict()
        if self.validation:
            result["validation"] = [r.to_dict() for r in self.validation]
        if self.required:
            result["required"] = self.required
        if self.default_value is not None:
            result["default_value"] = self.default_value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldMapping":
        """Create from dictionary representation."""
        transform = data.get("transform")
        validation = data.get("validation", data.get("validation_rules", [])) or []

        return cls(
            source_field=data.get("source_field", data.get("sourceField", "")),
            target_field=data.get("target_field", data.get("targetField", "")),
            transform=TransformRule.from_dict(transform) if transform else None,
            validation=[ValidationRule.from_dict(r) for r in validation],
            required=bool(data.get("required", False)),
            default_value=data.get("default_value", data.get("defaultValue")),
        )


@dataclass
class EntityMapping:
    """All field mappings for one target entity."""
    target_entity: str
    field_mappings: List[FieldMapping] = field(default_factory=list)
    name: str = ""
    description: str = ""

    def required_targets(self) -> List[str]:
        return [m.target_field for m in self.field_mappings if m.required]

    def validate(self) -> List[str]:
        """
        Check the mapping for configuration mistakes.

        Returns:
            List of problems; empty when the mapping is usable
        """
        problems = []
        if not self.target_entity:
            problems.append("Target entity is required")
        if not self.field_mappings:
            problems.append("At least one field mapping is required")

        seen = set()
        for i, fm in enumerate(self.field_mappings):
            if not fm.target_field:
                problems.append(f"Mapping {i} has no target field")
            elif fm.target_field in seen:
                problems.append(f"Target field {fm.target_field} is mapped more than once")
            seen.add(fm.target_field)

            uses_source = not (fm.transform and fm.transform.type in (
                TransformKind.STATIC, TransformKind.CONCATENATE
            ))
            if uses_source and not fm.source_field:
                problems.append(f"Mapping for {fm.target_field} has no source field")
            if fm.transform and fm.transform.type == TransformKind.CONCATENATE and not fm.transform.source_fields:
                problems.append(f"Concatenate transform for {fm.target_field} needs source_fields")
            if fm.transform and fm.transform.type == TransformKind.FUNCTION and not fm.transform.function:
                problems.append(f"Function transform for {fm.target_field} needs a function name")

        return problems

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "target_entity": self.target_entity,
            "description": self.description,
            "field_mappings": [m.to_dict() for m in self.field_mappings],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EntityMapping":
        return cls(
            target_entity=data.get("target_entity", data.get("targetEntity", "")),
            field_mappings=[
                FieldMapping.from_dict(fm) for fm in data.get("field_mappings", data.get("fieldMappings", [])) or []
            ],
            name=data.get("name", ""),
            description=data.get("description", ""),
        )

    @classmethod
    def from_json_file(cls, file_path: str) -> "EntityMapping":
        """Load mapping from JSON file."""
        with open(file_path, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data)

    def save_to_json(self, file_path: str) -> None:
        """Save mapping to JSON file."""
        with open(file_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)
