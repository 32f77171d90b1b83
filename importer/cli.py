"""Command line interface for the import pipeline."""

import argparse
import json
import logging
import sys
from typing import Any, Dict, Optional, Tuple

from .config import get_settings
from .connectors.manager import ConnectionManager
from .engine import ImportExecutionEngine, ImportRequest
from .exceptions import ImporterError
from .loaders import EntityLoaderRegistry, StagingTableLoader
from .logging_setup import setup_logging
from .models.connection import ConnectionConfig, connection_from_dict
from .models.execution import ImportExecution, ImportProgress, LogLevel
from .models.mapping import EntityMapping
from .models.schema import JoinedTableConfig
from .services.join_planner import JoinPlanner
from .store import ExecutionRepository, create_session_factory, create_store_engine, init_db

logger = logging.getLogger(__name__)


def main(argv=None):
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Data Import Tool - Import records from databases, files and REST APIs"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Test connection
    test_parser = subparsers.add_parser("test-connection", help="Test a source connection")
    test_parser.add_argument("--connection", required=True, help="Path to connection config JSON")

    # Schema
    schema_parser = subparsers.add_parser("schema", help="Show the schema of a source")
    schema_parser.add_argument("--connection", required=True, help="Path to connection config JSON")
    schema_parser.add_argument("--output", help="Output file path")

    # Table preview
    preview_parser = subparsers.add_parser("preview", help="Preview rows of a source table")
    preview_parser.add_argument("--connection", required=True, help="Path to connection config JSON")
    preview_parser.add_argument("--table", required=True, help="Table name")
    preview_parser.add_argument("--limit", type=int, help="Number of rows")

    # Join preview
    join_parser = subparsers.add_parser("join-preview", help="Preview a joined table")
    join_parser.add_argument("--connection", required=True, help="Path to connection config JSON")
    join_parser.add_argument("--join", required=True, help="Path to joined table config JSON")
    join_parser.add_argument("--limit", type=int, help="Number of rows")
    join_parser.add_argument("--search", help="Only show rows containing this text")

    # Validate mapping
    validate_parser = subparsers.add_parser("validate", help="Validate an entity mapping")
    validate_parser.add_argument("--mapping", required=True, help="Path to mapping file")

    # Run import
    run_parser = subparsers.add_parser("run", help="Run an import")
    run_parser.add_argument("--config", required=True, help="Path to import config JSON")
    run_parser.add_argument("--dry-run", action="store_true", help="Process records without saving")
    run_parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    # Execution logs
    logs_parser = subparsers.add_parser("logs", help="Show the log of an execution")
    logs_parser.add_argument("execution_id", help="Execution ID")
    logs_parser.add_argument("--level", choices=[level.value for level in LogLevel], help="Only this level")

    args = parser.parse_args(argv)

    setup_logging(verbose=getattr(args, "verbose", False))

    commands = {
        "test-connection": run_test_connection,
        "schema": run_schema,
        "preview": run_preview,
        "join-preview": run_join_preview,
        "validate": run_validation,
        "run": run_import,
        "logs": run_logs,
    }
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        return 1

    try:
        return command(args) or 0
    except ImporterError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


def _load_json(path: str) -> Any:
    with open(path) as f:
        return json.load(f)


def _load_connection(path: str) -> ConnectionConfig:
    return connection_from_dict(_load_json(path))


def _open_store() -> Tuple[ExecutionRepository, Any]:
    settings = get_settings()
    engine = create_store_engine(settings.database_url)
    init_db(engine)
    session_factory = create_session_factory(engine)
    return ExecutionRepository(session_factory), session_factory


def run_test_connection(args):
    """Test a connection and print what was found."""
    config = _load_connection(args.connection)
    result = ConnectionManager().test_connection(config)

    print(f"\n{'OK' if result.success else 'FAILED'}: {result.message}")
    print(f"Time: {result.connection_time_ms}ms")
    if result.schema:
        for table in result.schema.tables:
            print(f"  {table.name}: {len(table.fields)} fields, {table.record_count} records")
    return 0 if result.success else 1


def run_schema(args):
    """Print or save the schema of a source."""
    config = _load_connection(args.connection)
    schema = ConnectionManager().get_source_schema(config)
    output = schema.to_dict()

    if args.output:
        with open(args.output, 'w') as f:
            json.dump(output, f, indent=2)
        print(f"Schema saved to {args.output}")
    else:
        print(json.dumps(output, indent=2))


def run_preview(args):
    """Preview the first rows of a table."""
    config = _load_connection(args.connection)
    rows = ConnectionManager().get_table_preview(config, args.table, args.limit)
    for row in rows:
        print(json.dumps(row, default=str))
    print(f"\n{len(rows)} rows")


def run_join_preview(args):
    """Preview a joined table."""
    config = _load_connection(args.connection)
    join_config = JoinedTableConfig.from_dict(_load_json(args.join))

    planner = JoinPlanner(ConnectionManager())
    preview = planner.preview(
        config,
        join_config,
        limit=args.limit or get_settings().join_preview_limit,
        search=args.search,
    )

    if preview.approximate:
        print(f"WARNING: {preview.message}\n")
    print(" | ".join(preview.columns))
    print("-" * 40)
    for row in preview.rows:
        print(" | ".join(str(row.get(c, "")) for c in preview.columns))
    print(f"\n{len(preview.rows)} rows")


def run_validation(args):
    """Validate a mapping."""
    mapping = EntityMapping.from_json_file(args.mapping)

    print("\n=== Validating Mapping ===")
    problems = mapping.validate()
    try:
        EntityLoaderRegistry().canonical_name(mapping.target_entity)
    except ImporterError as e:
        problems.append(str(e))

    if not problems:
        print("\nMapping is valid!")
        return 0

    for problem in problems:
        print(f"  - {problem}")
    print(f"\nFound {len(problems)} validation errors")
    return 1


def _load_request(config_data: Dict[str, Any], dry_run: bool) -> ImportRequest:
    if config_data.get("mapping_file"):
        mapping = EntityMapping.from_json_file(config_data["mapping_file"])
    else:
        mapping = EntityMapping.from_dict(config_data.get("mapping", {}))

    joined = config_data.get("joined_table")
    return ImportRequest(
        connection=connection_from_dict(config_data.get("connection", {})),
        entity_mapping=mapping,
        table_name=config_data.get("table_name"),
        joined_table=JoinedTableConfig.from_dict(joined) if joined else None,
        dry_run=dry_run or bool(config_data.get("dry_run", False)),
    )


def _print_progress(progress: ImportProgress) -> None:
    print(
        f"  {progress.processed_records}/{progress.total_records} "
        f"({progress.percent_complete}%) - {progress.failed_records} failed"
    )


def run_import(args):
    """Run an import from a config file."""
    request = _load_request(_load_json(args.config), args.dry_run)
    repository, session_factory = _open_store()

    execution = ImportExecution(
        configuration_id=request.entity_mapping.name or None,
        target_entity=request.target_entity,
        dry_run=request.dry_run,
        executed_by="cli",
    )
    loader = StagingTableLoader(session_factory, execution_id=execution.id, dry_run=request.dry_run)
    engine = ImportExecutionEngine(
        ConnectionManager(),
        EntityLoaderRegistry.for_loader(loader),
        repository=repository,
    )

    engine.validate_request(request)
    repository.create(execution)
    result = engine.execute_import(execution, request, progress_callback=_print_progress)

    print("\n" + "=" * 60)
    print("DRY RUN COMPLETE" if request.dry_run else "IMPORT COMPLETE")
    print("=" * 60)
    print(f"Execution: {result.execution_id}")
    print(f"Status: {result.status.value}")
    print(f"Records Processed: {result.processed_records}/{result.total_records}")
    print(f"Succeeded: {result.successful_records}")
    print(f"Failed: {result.failed_records}")
    print(f"Skipped: {result.skipped_records}")
    print(f"Duration: {result.duration_ms}ms")
    for error in result.errors[:10]:
        where = f"record {error.record_index + 1}: " if error.record_index is not None else ""
        print(f"  - {where}{error.message}")
    if len(result.errors) > 10:
        print(f"  ... and {len(result.errors) - 10} more errors")

    return 0 if result.success else 1


def run_logs(args):
    """Print the audit log of an execution."""
    repository, _ = _open_store()
    execution = repository.get(args.execution_id)
    if execution is None:
        print(f"Execution not found: {args.execution_id}")
        return 1

    level: Optional[LogLevel] = LogLevel(args.level) if args.level else None
    print(f"Execution {execution.id} [{execution.status.value}] {execution.target_entity}")
    for log in repository.list_logs(execution.id, level):
        print(f"{log.timestamp.isoformat()} {log.level.value:<5} {log.message}")


if __name__ == "__main__":
    sys.exit(main())
