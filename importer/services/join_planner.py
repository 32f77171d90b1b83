"""Join planner: validates joined-table configurations and runs them as SQL."""

import logging
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..connectors.database import DatabaseConnector
from ..connectors.manager import ConnectionManager
from ..exceptions import ConnectorError, JoinConfigurationError, UnsupportedOperationError
from ..models.connection import ConnectionConfig
from ..models.schema import JoinedTableConfig, JoinOperator, JoinType, SourceSchema

logger = logging.getLogger(__name__)

JOIN_KEYWORDS = {
    JoinType.INNER: "INNER JOIN",
    JoinType.LEFT: "LEFT JOIN",
    JoinType.RIGHT: "RIGHT JOIN",
    JoinType.FULL: "FULL OUTER JOIN",
}

Quote = Callable[[str], str]


@dataclass
class JoinPreview:
    """Rows shown to the operator while designing a join."""
    rows: List[Dict[str, Any]]
    columns: List[str]
    approximate: bool = False
    message: str = ""
    total_rows: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rows": self.rows,
            "columns": self.columns,
            "approximate": self.approximate,
            "message": self.message,
            "total_rows": self.total_rows,
        }


@dataclass
class _Column:
    table_ref: str
    field: str
    label: str


@dataclass
class _Plan:
    columns: List[_Column] = field(default_factory=list)


def _render_condition(left: str, operator: JoinOperator, right: str) -> str:
    # IN takes a parenthesized list; a single column makes it a membership test on one value
    if operator == JoinOperator.IN:
        return f"{left} IN ({right})"
    return f"{left} {operator.value} {right}"


def _matches(row: Dict[str, Any], search: str) -> bool:
    needle = search.lower()
    return any(needle in str(v).lower() for v in row.values() if v is not None)


class JoinPlanner:
    """
    Turns a JoinedTableConfig into a joined row set.

    Supports:
    - Validation against the live source schema, reporting every problem at once
    - INNER, LEFT, RIGHT and FULL OUTER joins in a star around the primary table
    - Projection of selected fields or all fields; joined fields are labeled "ref.field"
    - Previews with a labeled approximation when the server-side join fails

    Import runs use execute(), which never approximates.
    """

    def __init__(self, connection_manager: ConnectionManager, rng: Optional[random.Random] = None):
        """
        Initialize the planner.

        Args:
            connection_manager: Manager used to reach the source
            rng: Random source for preview approximations
        """
        self.connection_manager = connection_manager
        self.rng = rng or random.Random()

    def validate(self, schema: SourceSchema, config: JoinedTableConfig) -> None:
        """
        Check a join configuration against a source schema.

        Raises:
            JoinConfigurationError: listing every problem found
        """
        problems: List[str] = []

        primary = schema.get_table(config.primary_table)
        if not config.primary_table:
            problems.append("Primary table is required")
        elif primary is None:
            problems.append(f"Primary table {config.primary_table} not found in source schema")

        if not config.joined_tables:
            problems.append("At least one joined table is required")

        known_fields: Dict[str, List[str]] = {}
        if primary is not None:
            known_fields[config.primary_table] = primary.field_names()

        seen_refs = {config.primary_table}
        for joined in config.joined_tables:
            ref = joined.reference
            table = schema.get_table(joined.table_name)
            if table is None:
                problems.append(f"Joined table {joined.table_name} not found in source schema")
            else:
                known_fields[ref] = table.field_names()

            if ref in seen_refs:
                problems.append(f"Table reference {ref} is used more than once; set an alias")
            seen_refs.add(ref)

            if not joined.join_conditions:
                problems.append(f"Joined table {ref} has no join conditions")
            for condition in joined.join_conditions:
                if not isinstance(condition.operator, JoinOperator):
                    problems.append(f"Unsupported join operator: {condition.operator}")
                if primary is not None and condition.source_field not in primary.field_names():
                    problems.append(
                        f"Field {condition.source_field} not found on primary table {config.primary_table}"
                    )
                if table is not None and condition.target_field not in table.field_names():
                    problems.append(f"Field {condition.target_field} not found on joined table {joined.table_name}")

        for selected in config.selected_fields:
            ref, _, name = selected.rpartition(".")
            ref = ref or config.primary_table
            if ref in known_fields and name not in known_fields[ref]:
                problems.append(f"Selected field {selected} not found")
            elif ref not in known_fields and ref not in seen_refs:
                problems.append(f"Selected field {selected} references unknown table {ref}")

        if problems:
            raise JoinConfigurationError(problems)

    def _plan(self, schema: SourceSchema, config: JoinedTableConfig) -> _Plan:
        plan = _Plan()
        if config.selected_fields:
            for selected in config.selected_fields:
                ref, _, name = selected.rpartition(".")
                if not ref or ref == config.primary_table:
                    plan.columns.append(_Column(config.primary_table, name, name))
                else:
                    plan.columns.append(_Column(ref, name, f"{ref}.{name}"))
            return plan

        for name in schema.get_table(config.primary_table).field_names():
            plan.columns.append(_Column(config.primary_table, name, name))
        for joined in config.joined_tables:
            for name in schema.get_table(joined.table_name).field_names():
                plan.columns.append(_Column(joined.reference, name, f"{joined.reference}.{name}"))
        return plan

    def build_query(
        self,
        config: JoinedTableConfig,
        schema: SourceSchema,
        quote: Quote,
        limit: Optional[int] = None
    ) -> str:
        """
        Build the SELECT statement for a validated configuration.

        Args:
            config: Joined table configuration
            schema: Schema the configuration was validated against
            quote: Validates and quotes one identifier for the target dialect
            limit: Bind a :limit parameter when set

        Returns:
            SQL text
        """
        plan = self._plan(schema, config)
        projection = ", ".join(
            f"{quote(c.table_ref)}.{quote(c.field)} AS {quote(c.label)}" for c in plan.columns
        )

        sql = f"SELECT {projection} FROM {quote(config.primary_table)}"
        for joined in config.joined_tables:
            target = quote(joined.table_name)
            if joined.alias:
                target += f" AS {quote(joined.alias)}"
            conditions = " AND ".join(
                _render_condition(
                    f"{quote(config.primary_table)}.{quote(c.source_field)}",
                    c.operator,
                    f"{quote(joined.reference)}.{quote(c.target_field)}",
                )
                for c in joined.join_conditions
            )
            sql += f" {JOIN_KEYWORDS[joined.join_type]} {target} ON {conditions}"

        if config.where_conditions:
            sql += " WHERE " + " AND ".join(f"({w})" for w in config.where_conditions)
        if limit is not None:
            sql += " LIMIT :limit"
        return sql

    def _database_connector(self, connection: ConnectionConfig) -> DatabaseConnector:
        if not connection.type.is_database:
            raise UnsupportedOperationError(
                f"Joins are only supported for database sources, not {connection.type.value}"
            )
        return self.connection_manager.get_connector(connection)

    def _run(
        self,
        connection: ConnectionConfig,
        config: JoinedTableConfig,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        connector = self._database_connector(connection)
        schema = connector.get_schema()
        self.validate(schema, config)
        params = {"limit": int(limit)} if limit is not None else None
        return connector.execute_built_query(
            lambda quote: self.build_query(config, schema, quote, limit),
            params,
        )

    def execute(self, connection: ConnectionConfig, config: JoinedTableConfig) -> List[Dict[str, Any]]:
        """
        Run a join for an import.

        Validates against a freshly read schema and runs the join on the
        server. Failures propagate.
        """
        rows = self._run(connection, config)
        logger.info(f"Join on {config.primary_table} returned {len(rows)} rows")
        return rows

    def preview(
        self,
        connection: ConnectionConfig,
        config: JoinedTableConfig,
        limit: int = 20,
        search: Optional[str] = None
    ) -> JoinPreview:
        """
        Preview a join.

        Configuration problems raise JoinConfigurationError. When the
        server-side join itself fails, an approximation built from randomly
        paired rows is returned instead, labeled as such.

        Args:
            connection: Source connection
            config: Joined table configuration
            limit: Maximum number of rows
            search: Keep rows with a value containing this text (case-insensitive)
        """
        try:
            rows = self._run(connection, config, None if search else limit)
            approximate = False
            message = ""
        except ConnectorError as e:
            if isinstance(e, UnsupportedOperationError):
                raise
            logger.warning(f"Join preview query failed, approximating: {e}")
            rows = self._approximate_join(connection, config, limit)
            approximate = True
            message = (
                f"Join query failed ({e}). These rows are an approximation built by pairing "
                f"rows at random and do not reflect the join conditions."
            )

        if search:
            rows = [r for r in rows if _matches(r, search)]
        rows = rows[:limit]

        columns: List[str] = []
        for row in rows:
            columns.extend(k for k in row if k not in columns)

        return JoinPreview(
            rows=rows,
            columns=columns,
            approximate=approximate,
            message=message or f"Showing {len(rows)} joined rows",
            total_rows=len(rows),
        )

    def _approximate_join(
        self,
        connection: ConnectionConfig,
        config: JoinedTableConfig,
        limit: int
    ) -> List[Dict[str, Any]]:
        manager = self.connection_manager
        primary_rows = manager.get_table_preview(connection, config.primary_table, limit)
        joined_rows = {
            joined.reference: manager.get_table_preview(connection, joined.table_name, limit)
            for joined in config.joined_tables
        }

        rows = []
        for primary in primary_rows:
            row = dict(primary)
            for ref, candidates in joined_rows.items():
                if not candidates:
                    continue
                partner = self.rng.choice(candidates)
                row.update({f"{ref}.{k}": v for k, v in partner.items()})
            rows.append(row)
        return rows
