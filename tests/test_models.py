"""
Unit tests for configuration models, the loader registry and settings.
"""
import pytest

from importer.config import Settings
from importer.exceptions import ConfigurationError, InvalidStateTransition, UnknownEntityError
from importer.loaders import EntityLoaderRegistry
from importer.models import (
    AuthType,
    CSVFileConnection,
    EntityMapping,
    ImportExecution,
    ImportStatus,
    JoinedTableConfig,
    MySQLConnection,
    RestAPIConnection,
    SourceType,
    TransformKind,
    connection_from_dict,
)


class TestConnectionConfig:
    """Test connection config parsing."""

    def test_camel_case_keys_and_type_case(self):
        config = connection_from_dict({
            "type": "api_rest",
            "apiUrl": "https://api.test",
            "authType": "bearer",
            "apiKey": "secret",
            "unknown": "ignored",
        })
        assert isinstance(config, RestAPIConnection)
        assert config.auth_type == AuthType.BEARER
        assert config.type == SourceType.API_REST

    def test_database_defaults_and_masking(self):
        config = connection_from_dict({
            "type": "DATABASE_MYSQL",
            "host": "db",
            "database": "crm",
            "username": "root",
            "password": "pw",
        })
        assert isinstance(config, MySQLConnection)
        assert config.resolved_port == 3306
        assert config.to_dict()["password"] == "********"
        assert config.to_dict(include_secrets=True)["password"] == "pw"

    def test_missing_required_values(self):
        with pytest.raises(ConfigurationError):
            connection_from_dict({"type": "DATABASE_POSTGRESQL", "host": "db"})
        with pytest.raises(ConfigurationError):
            connection_from_dict({"type": "FILE_CSV"})
        with pytest.raises(ConfigurationError):
            connection_from_dict({"type": "FTP"})

    def test_file_table_name(self):
        assert CSVFileConnection(file_path="/data/Accounts 2024.csv").table_name == "Accounts 2024"

    def test_database_source_types(self):
        assert SourceType.DATABASE_POSTGRESQL.is_database
        assert SourceType.DATABASE_SQLITE.is_database
        assert not SourceType.FILE_CSV.is_database
        assert not SourceType.API_REST.is_database


class TestMappingModels:
    """Test mapping and join config parsing."""

    def test_entity_mapping_round_trip_via_file(self, tmp_path):
        mapping = EntityMapping.from_dict({
            "targetEntity": "user",
            "field_mappings": [
                {"sourceField": "mail", "targetField": "email", "required": True,
                 "transform": {"type": "function", "function": "lowercase"},
                 "validation": [{"type": "pattern", "pattern": "@"}]},
                {"target_field": "fullName",
                 "transform": {"type": "concatenate", "sourceFields": ["first", "last"]}},
            ],
        })
        path = tmp_path / "mapping.json"
        mapping.save_to_json(str(path))
        loaded = EntityMapping.from_json_file(str(path))

        assert loaded.validate() == []
        assert loaded.required_targets() == ["email"]
        assert loaded.field_mappings[1].transform.type == TransformKind.CONCATENATE

    def test_camel_case_mapping_keys(self):
        """Mappings saved by the web client use camelCase throughout."""
        mapping = EntityMapping.from_dict({
            "targetEntity": "user",
            "fieldMappings": [
                {"sourceField": "mail", "targetField": "domain",
                 "transform": {"type": "split", "splitDelimiter": "@", "splitIndex": 1}},
            ],
        })

        transform = mapping.field_mappings[0].transform
        assert mapping.target_entity == "user"
        assert transform.delimiter == "@"
        assert transform.index == 1

    def test_entity_mapping_problems(self):
        mapping = EntityMapping.from_dict({
            "target_entity": "user",
            "field_mappings": [
                {"source_field": "a", "target_field": "x"},
                {"source_field": "b", "target_field": "x"},
                {"target_field": "y"},
            ],
        })
        problems = mapping.validate()
        assert "Target field x is mapped more than once" in problems
        assert "Mapping for y has no source field" in problems

    def test_unsupported_transform_and_operator(self):
        with pytest.raises(ConfigurationError):
            EntityMapping.from_dict({
                "target_entity": "user",
                "field_mappings": [{"source_field": "a", "target_field": "b", "transform": {"type": "regex"}}],
            })
        with pytest.raises(ConfigurationError):
            JoinedTableConfig.from_dict({
                "primary_table": "a",
                "joined_tables": [{"table_name": "b", "join_conditions": [
                    {"source_field": "id", "target_field": "a_id", "operator": "<>"}
                ]}],
            })


class TestExecutionStateMachine:
    """Test status transitions."""

    def test_forward_transitions(self):
        execution = ImportExecution(target_entity="account")
        execution.transition(ImportStatus.RUNNING)
        execution.transition(ImportStatus.COMPLETED)
        assert execution.status.is_terminal

    def test_terminal_status_is_final(self):
        execution = ImportExecution(target_entity="account")
        execution.transition(ImportStatus.CANCELLED)
        with pytest.raises(InvalidStateTransition):
            execution.transition(ImportStatus.RUNNING)


class TestEntityLoaderRegistry:
    """Test entity handler registration."""

    def test_case_insensitive_lookup(self):
        registry = EntityLoaderRegistry()
        handler = lambda entity, data: "id-1"  # noqa: E731
        registry.register("TimeEntry", handler)

        assert registry.validate("timeentry") == "timeEntry"
        assert registry.save("TIMEENTRY", {"minutes": 30}) == "id-1"

    def test_resolve_binds_canonical_name(self):
        calls = []
        registry = EntityLoaderRegistry()
        registry.register("account", lambda entity, data: calls.append((entity, data)))

        save = registry.resolve("ACCOUNT")
        save({"accountName": "Acme"})
        assert calls == [("account", {"accountName": "Acme"})]

    def test_resolve_without_handler(self):
        with pytest.raises(UnknownEntityError):
            EntityLoaderRegistry().resolve("ticket")

    def test_unknown_entity(self):
        registry = EntityLoaderRegistry()
        with pytest.raises(UnknownEntityError, match="Unknown target entity: invoice"):
            registry.register("invoice", lambda entity, data: None)

    def test_extra_entities(self):
        registry = EntityLoaderRegistry(extra_entities=["invoice"])
        registry.register("invoice", lambda entity, data: None)
        assert "invoice" in registry.known_entities()


class TestSettings:
    """Test settings loading."""

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("IMPORTER_PROGRESS_INTERVAL", "25")
        monkeypatch.setenv("IMPORTER_LOG_LEVEL", "debug")
        monkeypatch.setenv("IMPORTER_ALLOWED_ORIGINS", "http://a.test, http://b.test")

        settings = Settings()
        assert settings.progress_interval == 25
        assert settings.log_level == "DEBUG"
        assert settings.origins == ["http://a.test", "http://b.test"]

    def test_invalid_log_level(self, monkeypatch):
        monkeypatch.setenv("IMPORTER_LOG_LEVEL", "chatty")
        with pytest.raises(ValueError):
            Settings()
