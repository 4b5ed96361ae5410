"""Query results and the record scan performed by the CLI."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from .errors import QueryError


@dataclass(frozen=True, slots=True)
class QueryResult:
    """Normalized output of a single statement."""

    columns: tuple[str, ...]
    rows: tuple[tuple[object, ...], ...]
    status: str
    elapsed_ms: int
    row_count: int | None = None


@dataclass(frozen=True, slots=True)
class Record:
    """One `(id, name)` row of the placeholder query."""

    id: int
    name: str


@dataclass(frozen=True, slots=True)
class RowError:
    """A row that could not be decoded into a `Record`."""

    index: int
    row: tuple[object, ...]
    reason: str

    def __str__(self) -> str:
        return f"row {self.index}: {self.reason}"


@dataclass(frozen=True, slots=True)
class ScanResult:
    """Decoded records plus every row that failed to decode."""

    records: tuple[Record, ...]
    errors: tuple[RowError, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors


def select_records_statement(table: str) -> str:
    """Statement read by the CLI. Replace with real query logic as needed."""

    return f"SELECT id, name FROM {quote_identifier(table)} ORDER BY id"


def quote_identifier(name: str) -> str:
    if not name:
        raise QueryError("table name must not be empty")
    return "`" + name.replace("`", "``") + "`"


def scan_records(result: QueryResult) -> ScanResult:
    """Decode `(id, name)` rows, collecting failures instead of dropping them."""

    records: list[Record] = []
    errors: list[RowError] = []
    for index, row in enumerate(result.rows):
        try:
            records.append(_scan_row(row))
        except (TypeError, ValueError) as exc:
            errors.append(RowError(index=index, row=tuple(row), reason=str(exc)))
    return ScanResult(records=tuple(records), errors=tuple(errors))


def format_record(record: Record) -> str:
    return f"ID: {record.id}  Name: {record.name}"


def rows_to_result(
    description: Sequence[Sequence[object]] | None,
    rows: Iterable[Sequence[object]],
    *,
    elapsed_ms: int,
    affected: int | None = None,
) -> QueryResult:
    """Build a `QueryResult` from a DB-API cursor description and rows."""

    if description is None:
        return QueryResult(
            columns=(),
            rows=(),
            status=f"{affected} row(s) affected" if affected is not None else "OK",
            elapsed_ms=elapsed_ms,
            row_count=None,
        )
    columns = tuple(str(column[0]) for column in description)
    materialized = tuple(tuple(row) for row in rows)
    return QueryResult(
        columns=columns,
        rows=materialized,
        status=f"{len(materialized)} row(s)",
        elapsed_ms=elapsed_ms,
        row_count=len(materialized),
    )


def _scan_row(row: Sequence[object]) -> Record:
    if len(row) != 2:
        raise ValueError(f"expected 2 columns, got {len(row)}")
    raw_id, raw_name = row
    return Record(id=_scan_int(raw_id), name=_scan_text(raw_name))


def _scan_int(value: object) -> int:
    if isinstance(value, bool) or value is None:
        raise TypeError(f"id {value!r} is not an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, (bytes, bytearray)):
        value = bytes(value).decode("ascii")
    if isinstance(value, str):
        return int(value.strip())
    raise TypeError(f"id {value!r} is not an integer")


def _scan_text(value: object) -> str:
    if value is None:
        raise TypeError("name is NULL")
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8")
    raise TypeError(f"name {value!r} is not text")


__all__ = [
    "QueryResult",
    "Record",
    "RowError",
    "ScanResult",
    "format_record",
    "quote_identifier",
    "rows_to_result",
    "scan_records",
    "select_records_statement",
]
