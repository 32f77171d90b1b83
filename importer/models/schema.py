"""Source schema and joined-table models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..exceptions import ConfigurationError


class FieldType(str, Enum):
    """Normalized field types shared by every source kind."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    JSON = "json"
    BINARY = "binary"


@dataclass
class SourceField:
    """A column of a source table."""
    name: str
    type: FieldType = FieldType.STRING
    nullable: bool = True
    max_length: Optional[int] = None
    is_primary_key: bool = False
    is_foreign_key: bool = False
    referenced_table: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.value,
            "nullable": self.nullable,
            "max_length": self.max_length,
            "is_primary_key": self.is_primary_key,
            "is_foreign_key": self.is_foreign_key,
            "referenced_table": self.referenced_table,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SourceField":
        return cls(
            name=data["name"],
            type=FieldType(data.get("type", "string")),
            nullable=data.get("nullable", True),
            max_length=data.get("max_length"),
            is_primary_key=data.get("is_primary_key", False),
            is_foreign_key=data.get("is_foreign_key", False),
            referenced_table=data.get("referenced_table"),
        )


@dataclass
class SourceTable:
    """A table (or sheet, file, endpoint) discovered in a source."""
    name: str
    fields: List[SourceField] = field(default_factory=list)
    record_count: int = 0

    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    def get_field(self, name: str) -> Optional[SourceField]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "fields": [f.to_dict() for f in self.fields],
            "record_count": self.record_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SourceTable":
        return cls(
            name=data["name"],
            fields=[SourceField.from_dict(f) for f in data.get("fields", [])],
            record_count=data.get("record_count", 0),
        )


@dataclass
class SourceSchema:
    """
    Normalized description of a source.

    Derived per connection test and never cached across executions.
    """
    tables: List[SourceTable] = field(default_factory=list)

    @property
    def total_records(self) -> int:
        return sum(t.record_count for t in self.tables)

    def table_names(self) -> List[str]:
        return [t.name for t in self.tables]

    def get_table(self, name: str) -> Optional[SourceTable]:
        for table in self.tables:
            if table.name == name:
                return table
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {"tables": [t.to_dict() for t in self.tables]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SourceSchema":
        return cls(tables=[SourceTable.from_dict(t) for t in data.get("tables", [])])


def _coerce(enum_cls, raw: str, label: str):
    try:
        return enum_cls(raw)
    except ValueError:
        raise ConfigurationError(f"Unsupported {label}: {raw}")


class JoinType(str, Enum):
    INNER = "inner"
    LEFT = "left"
    RIGHT = "right"
    FULL = "full"


class JoinOperator(str, Enum):
    EQ = "="
    NE = "!="
    GT = ">"
    LT = "<"
    GE = ">="
    LE = "<="
    LIKE = "LIKE"
    IN = "IN"


@dataclass
class JoinCondition:
    """Condition linking a primary-table field to a joined-table field."""
    source_field: str
    target_field: str
    operator: JoinOperator = JoinOperator.EQ

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_field": self.source_field,
            "target_field": self.target_field,
            "operator": self.operator.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JoinCondition":
        return cls(
            source_field=data.get("source_field", data.get("sourceField", "")),
            target_field=data.get("target_field", data.get("targetField", "")),
            operator=_coerce(JoinOperator, str(data.get("operator", "=")).upper(), "join operator"),
        )


@dataclass
class JoinedTable:
    """A table attached directly to the primary table."""
    table_name: str
    join_type: JoinType = JoinType.INNER
    join_conditions: List[JoinCondition] = field(default_factory=list)
    alias: Optional[str] = None

    @property
    def reference(self) -> str:
        """Name used to qualify this table's fields."""
        return self.alias or self.table_name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table_name": self.table_name,
            "join_type": self.join_type.value,
            "join_conditions": [c.to_dict() for c in self.join_conditions],
            "alias": self.alias,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JoinedTable":
        conditions = data.get("join_conditions", data.get("joinConditions", []))
        return cls(
            table_name=data.get("table_name", data.get("tableName", "")),
            join_type=_coerce(JoinType, str(data.get("join_type", data.get("joinType", "inner"))).lower(), "join type"),
            join_conditions=[JoinCondition.from_dict(c) for c in conditions],
            alias=data.get("alias") or None,
        )


@dataclass
class JoinedTableConfig:
    """
    A virtual table: one primary table plus joined tables in a star.

    Every joined table attaches to the primary table; joins between
    two joined tables are not modeled.
    """
    primary_table: str
    joined_tables: List[JoinedTable] = field(default_factory=list)
    name: str = ""
    selected_fields: List[str] = field(default_factory=list)
    where_conditions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "primary_table": self.primary_table,
            "joined_tables": [t.to_dict() for t in self.joined_tables],
            "selected_fields": list(self.selected_fields),
            "where_conditions": list(self.where_conditions),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JoinedTableConfig":
        joined = data.get("joined_tables", data.get("joinedTables", []))
        return cls(
            name=data.get("name", ""),
            primary_table=data.get("primary_table", data.get("primaryTable", "")),
            joined_tables=[JoinedTable.from_dict(t) for t in joined],
            selected_fields=list(data.get("selected_fields", data.get("selectedFields", []))),
            where_conditions=list(data.get("where_conditions", data.get("whereConditions", []))),
        )
