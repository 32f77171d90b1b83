"""
Unit tests for the join planner against a SQLite source.
"""
import random
from unittest.mock import patch

import pytest

from importer.connectors import ConnectionManager
from importer.exceptions import JoinConfigurationError, QueryError, UnsupportedOperationError
from importer.models import CSVFileConnection, JoinedTableConfig, SQLiteConnection
from importer.services import JoinPlanner


def join_config(**overrides):
    data = {
        "primaryTable": "customers",
        "joinedTables": [{
            "tableName": "orders",
            "joinType": "left",
            "alias": "o",
            "joinConditions": [{"sourceField": "id", "targetField": "customer_id", "operator": "="}],
        }],
    }
    data.update(overrides)
    return JoinedTableConfig.from_dict(data)


@pytest.fixture()
def planner(settings):
    return JoinPlanner(ConnectionManager(settings), rng=random.Random(7))


@pytest.fixture()
def source(sqlite_source):
    return SQLiteConnection(file_path=sqlite_source)


class TestJoinValidation:
    """Test configuration checks against the schema."""

    def test_reports_every_problem(self, planner, source):
        config = JoinedTableConfig.from_dict({
            "primary_table": "customers",
            "joined_tables": [
                {
                    "table_name": "orders",
                    "join_conditions": [{"source_field": "uid", "target_field": "buyer_id"}],
                },
                {"table_name": "invoices", "join_conditions": []},
            ],
        })
        schema = planner.connection_manager.get_source_schema(source)

        with pytest.raises(JoinConfigurationError) as exc_info:
            planner.validate(schema, config)

        problems = exc_info.value.problems
        assert "Field uid not found on primary table customers" in problems
        assert "Field buyer_id not found on joined table orders" in problems
        assert "Joined table invoices not found in source schema" in problems
        assert "Joined table invoices has no join conditions" in problems

    def test_requires_a_joined_table(self, planner, source):
        schema = planner.connection_manager.get_source_schema(source)
        with pytest.raises(JoinConfigurationError, match="At least one joined table is required"):
            planner.validate(schema, join_config(joinedTables=[]))

    def test_execute_validates_against_fresh_schema(self, planner, source):
        config = join_config(joinedTables=[{
            "tableName": "orders",
            "joinConditions": [{"sourceField": "id", "targetField": "nope"}],
        }])
        with pytest.raises(JoinConfigurationError):
            planner.execute(source, config)

    def test_joins_need_a_database_source(self, planner, write_csv):
        config = CSVFileConnection(file_path=write_csv("id\n1\n"))
        with patch.object(ConnectionManager, "get_connector") as get_connector:
            with pytest.raises(UnsupportedOperationError, match="not FILE_CSV"):
                planner.execute(config, join_config())
        get_connector.assert_not_called()


class TestJoinExecution:
    """Test server-side joins."""

    def test_build_query_shape(self, planner, source):
        schema = planner.connection_manager.get_source_schema(source)
        sql = planner.build_query(join_config(), schema, lambda name: f'"{name}"', limit=5)

        assert sql.startswith('SELECT "customers"."id" AS "id"')
        assert '"o"."total" AS "o.total"' in sql
        assert 'LEFT JOIN "orders" AS "o" ON "customers"."id" = "o"."customer_id"' in sql
        assert sql.endswith("LIMIT :limit")

    def test_in_operator_renders_a_parenthesized_list(self, planner, source):
        schema = planner.connection_manager.get_source_schema(source)
        config = join_config(joinedTables=[{
            "tableName": "orders",
            "joinConditions": [{"sourceField": "id", "targetField": "customer_id", "operator": "in"}],
        }])
        sql = planner.build_query(config, schema, lambda name: f'"{name}"')

        assert 'ON "customers"."id" IN ("orders"."customer_id")' in sql

    def test_in_operator_runs_on_the_server(self, planner, source):
        """IN over a single column matches the same rows as equality."""
        config = join_config(joinedTables=[{
            "tableName": "orders",
            "joinConditions": [{"sourceField": "id", "targetField": "customer_id", "operator": "IN"}],
        }])
        rows = planner.execute(source, config)

        assert sorted(r["orders.id"] for r in rows) == [10, 11, 12]

    def test_left_join_rows(self, planner, source):
        rows = planner.execute(source, join_config())

        assert len(rows) == 4
        acme = [r for r in rows if r["name"] == "Acme"]
        assert sorted(r["o.id"] for r in acme) == [10, 11]
        initech = [r for r in rows if r["name"] == "Initech"][0]
        assert initech["o.id"] is None

    def test_inner_join_with_selected_fields_and_where(self, planner, source):
        config = join_config(
            joinedTables=[{
                "tableName": "orders",
                "joinType": "inner",
                "joinConditions": [{"sourceField": "id", "targetField": "customer_id"}],
            }],
            selectedFields=["name", "orders.total"],
            whereConditions=["orders.total > 50"],
        )
        rows = planner.execute(source, config)

        assert rows == [
            {"name": "Acme", "orders.total": 100.5},
            {"name": "Globex", "orders.total": 75},
        ]


class TestJoinPreview:
    """Test previews and the approximate fallback."""

    def test_preview_uses_real_join(self, planner, source):
        preview = planner.preview(source, join_config(), limit=2)

        assert preview.approximate is False
        assert len(preview.rows) == 2
        assert "o.customer_id" in preview.columns

    def test_preview_search(self, planner, source):
        preview = planner.preview(source, join_config(), search="globex")
        assert [r["name"] for r in preview.rows] == ["Globex"]

    def test_preview_falls_back_to_labeled_approximation(self, planner, source):
        """A failing join query yields randomly paired rows marked approximate."""
        with patch.object(JoinPlanner, "build_query", return_value="SELECT broken FROM nowhere"):
            preview = planner.preview(source, join_config(), limit=3)

        assert preview.approximate is True
        assert "approximation" in preview.message
        assert len(preview.rows) == 3
        assert all("o.id" in row for row in preview.rows)

    def test_preview_configuration_errors_are_not_approximated(self, planner, source):
        with pytest.raises(JoinConfigurationError):
            planner.preview(source, join_config(primaryTable="ghosts"))

    def test_execute_never_approximates(self, planner, source):
        with patch.object(JoinPlanner, "build_query", return_value="SELECT broken FROM nowhere"):
            with pytest.raises(QueryError):
                planner.execute(source, join_config())
