"""File connectors for CSV, Excel and JSON sources."""

import csv
import json
import logging
import time
from collections import OrderedDict
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from openpyxl import load_workbook

from .base import BaseConnector, ConnectionTestResult
from .inference import infer_fields
from ..exceptions import ConnectorError, QueryError, SourceNotFoundError
from ..models.connection import CSVFileConnection, ExcelFileConnection, FileConnection, JSONFileConnection
from ..models.schema import SourceSchema, SourceTable

logger = logging.getLogger(__name__)

# table name -> (columns, rows)
FileTables = Dict[str, Tuple[List[str], List[Dict[str, Any]]]]


def build_headers(raw: List[Any]) -> List[str]:
    """Normalize a header row: blank cells become ColumnN, duplicates get a suffix."""
    headers: List[str] = []
    for i, value in enumerate(raw, start=1):
        key = str(value).strip() if value is not None else ""
        key = key or f"Column{i}"
        base, n = key, 0
        while key in headers:
            n += 1
            key = f"{base}_{n}"
        headers.append(key)
    return headers


def positional_headers(count: int) -> List[str]:
    return [f"Column{i}" for i in range(1, count + 1)]


class FileConnector(BaseConnector):
    """
    Base class for file sources.

    Files are read completely into memory on every call; there is no
    streaming, so practical sources stay in the tens of thousands of rows.
    """

    config: FileConnection

    FORMAT_LABEL = "File"

    def _check_file(self) -> Path:
        path = Path(self.config.file_path)
        if not path.is_file():
            raise SourceNotFoundError(f"File not found: {self.config.file_path}")
        return path

    def _read_tables(self) -> FileTables:
        raise NotImplementedError

    def test_connection(self) -> ConnectionTestResult:
        started = time.monotonic()
        schema = self.get_schema()
        elapsed_ms = int((time.monotonic() - started) * 1000)

        total = schema.total_records
        return ConnectionTestResult(
            success=True,
            message=(
                f"{self.FORMAT_LABEL} file connection successful. "
                f"Found {len(schema.tables)} tables with {total} total records."
            ),
            connection_time_ms=elapsed_ms,
            schema=schema,
            record_count=total,
        )

    def get_schema(self) -> SourceSchema:
        tables = []
        for name, (columns, rows) in self._read_tables().items():
            tables.append(SourceTable(
                name=name,
                fields=infer_fields(rows, columns, self.settings.inference_sample_size),
                record_count=len(rows),
            ))
        return SourceSchema(tables=tables)

    def fetch_rows(self, table_name: Optional[str] = None) -> List[Dict[str, Any]]:
        tables = self._read_tables()
        if not tables:
            return []
        if table_name is None:
            table_name = next(iter(tables))
        if table_name not in tables:
            raise QueryError(
                f"Table {table_name} not found in {self.config.file_path}. "
                f"Available: {', '.join(tables)}"
            )
        rows = tables[table_name][1]
        logger.info(f"Read {len(rows)} rows from {self.config.file_path} ({table_name})")
        return rows


class CSVConnector(FileConnector):
    """
    Connector for delimited text files.

    Supports:
    - Header row or positional Column1..N names
    - Configurable delimiter and encoding
    - latin-1 fallback when the configured encoding fails
    """

    config: CSVFileConnection

    FORMAT_LABEL = "CSV"

    def _read_tables(self) -> FileTables:
        path = self._check_file()
        try:
            raw_rows = self._read_raw(path, self.config.encoding)
        except UnicodeDecodeError:
            logger.warning(f"{self.config.encoding} decode failed, trying latin-1 for {path}")
            raw_rows = self._read_raw(path, "latin-1")

        raw_rows = [r for r in raw_rows if any(cell.strip() for cell in r)]
        if not raw_rows:
            return OrderedDict([(self.config.table_name, ([], []))])

        if self.config.has_headers:
            columns = build_headers(raw_rows[0])
            body = raw_rows[1:]
        else:
            width = max(len(r) for r in raw_rows)
            columns = positional_headers(width)
            body = raw_rows

        rows = []
        for raw in body:
            padded = list(raw) + [""] * (len(columns) - len(raw))
            rows.append(dict(zip(columns, padded)))

        return OrderedDict([(self.config.table_name, (columns, rows))])

    def _read_raw(self, path: Path, encoding: str) -> List[List[str]]:
        with open(path, "r", encoding=encoding, newline="") as f:
            reader = csv.reader(f, delimiter=self.config.delimiter or ",")
            return [row for row in reader]


class ExcelConnector(FileConnector):
    """Connector for .xlsx workbooks; every sheet is a table."""

    config: ExcelFileConnection

    FORMAT_LABEL = "Excel"

    def _read_tables(self) -> FileTables:
        path = self._check_file()
        try:
            wb = load_workbook(path, read_only=True, data_only=True)
        except Exception as e:
            raise ConnectorError(f"Unable to open workbook {path}: {e}") from e

        tables: FileTables = OrderedDict()
        try:
            for sheet in wb.worksheets:
                values = [
                    [self._cell(v) for v in row]
                    for row in sheet.iter_rows(values_only=True)
                ]
                values = [r for r in values if any(v not in (None, "") for v in r)]
                if not values:
                    tables[sheet.title] = ([], [])
                    continue

                if self.config.has_headers:
                    columns = build_headers(self._trim(values[0]))
                    body = values[1:]
                else:
                    columns = positional_headers(max(len(self._trim(r)) for r in values))
                    body = values

                rows = [
                    {col: (r[i] if i < len(r) else None) for i, col in enumerate(columns)}
                    for r in body
                ]
                tables[sheet.title] = (columns, rows)
        finally:
            wb.close()

        return tables

    def _cell(self, value: Any) -> Any:
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, date):
            return value.isoformat()
        if isinstance(value, str):
            return value.strip()
        return value

    def _trim(self, row: List[Any]) -> List[Any]:
        """Drop trailing empty cells so header width matches real columns."""
        end = len(row)
        while end and row[end - 1] in (None, ""):
            end -= 1
        return row[:end]


class JSONConnector(FileConnector):
    """Connector for JSON files holding an array of objects."""

    config: JSONFileConnection

    FORMAT_LABEL = "JSON"

    def _read_tables(self) -> FileTables:
        path = self._check_file()
        try:
            with open(path, "r", encoding=self.config.encoding) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConnectorError(f"Invalid JSON in {path}: {e}") from e

        if not isinstance(data, list):
            raise ConnectorError("JSON file must contain an array of objects")

        rows = [item if isinstance(item, dict) else {"value": item} for item in data]
        return OrderedDict([(self.config.table_name, (self._columns_of(rows), rows))])
