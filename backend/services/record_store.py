"""
Record store emulating a remote table API over the key-value adapter.

Each collection lives under one key (`<namespace>_<collection>`) as a JSON
array in insertion order. Inserts assign an id and creation timestamp,
persist the whole collection, then resolve after a simulated round-trip.
Queries work on a snapshot taken when `select()` is called:

    result = await store.select("*").eq("user_id", uid).order("created_at").limit(10)
    result = await store.select().eq("id", record_id).single()

Reads never raise; they resolve to a `Result` envelope.
"""

import asyncio
import json
from collections.abc import Generator, Mapping
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar
from uuid import uuid4

from config.config import Settings, get_settings
from config.logging_config import get_logger
from database.kv_store import KeyValueStore
from models.models import Result
from models.records import Record

logger = get_logger(__name__)

RecordT = TypeVar("RecordT", bound=Mapping[str, Any])

GENERATED_FIELDS = ("id", "created_at")


def generate_id() -> str:
    """Opaque record/user identifier."""
    return uuid4().hex


def utc_timestamp() -> str:
    """Current time as ISO 8601 UTC with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_columns(columns: str | None) -> list[str] | None:
    """
    Parse a projection list such as `"id, patient_name"`.

    Returns None for `"*"` or an empty value, meaning every field.
    """
    if columns is None:
        return None
    names = [name.strip() for name in columns.split(",") if name.strip()]
    if not names or "*" in names:
        return None
    return names


def _project(row: Mapping[str, Any], columns: list[str] | None) -> dict[str, Any]:
    if columns is None:
        return dict(row)
    return {name: row[name] for name in columns if name in row}


def _sort_key(value: Any) -> tuple:
    # Rank by JSON type first so mixed-type columns never compare across types.
    if value is None:
        return (True, 0, 0)
    if isinstance(value, bool):
        return (False, 0, value)
    if isinstance(value, (int, float)):
        return (False, 1, value)
    if isinstance(value, str):
        return (False, 2, value)
    return (False, 3, json.dumps(value, sort_keys=True))


def _strict_equals(left: Any, right: Any) -> bool:
    # Booleans never equal numbers, unlike Python's default `True == 1`.
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


class QueryBuilder(Generic[RecordT]):
    """
    Chainable, lazily-resolved query over a collection snapshot.

    Chain methods narrow or reorder the working set in place and return
    the builder. Awaiting the builder (or `execute()`) resolves to every
    remaining row; `single()` resolves to the first row or None.
    Filters and sorts may use any field, projection applies on resolution.
    """

    def __init__(
        self,
        collection: str,
        rows: list[RecordT],
        columns: list[str] | None,
        delay: float,
    ):
        self.collection = collection
        self._rows = rows
        self._columns = columns
        self._delay = delay

    def eq(self, column: str, value: Any) -> "QueryBuilder[RecordT]":
        """Keep rows whose `column` strictly equals `value`."""
        self._rows = [
            row for row in self._rows
            if column in row and _strict_equals(row[column], value)
        ]
        return self

    def order(self, column: str, ascending: bool = False) -> "QueryBuilder[RecordT]":
        """
        Sort by `column`, descending unless `ascending` is set.

        Rows missing the field (or holding null) sort after every valued row
        in ascending order and before them in descending order. Values of
        different types group by type: booleans, numbers, strings, then
        arrays and objects.
        """
        self._rows.sort(
            key=lambda row: _sort_key(row.get(column)),
            reverse=not ascending,
        )
        return self

    def limit(self, count: int) -> "QueryBuilder[RecordT]":
        """Truncate the working set to the first `count` rows."""
        self._rows = self._rows[:count]
        return self

    async def single(self) -> Result[RecordT]:
        """Resolve to the first row, or None when nothing matched."""
        await asyncio.sleep(self._delay)
        row = _project(self._rows[0], self._columns) if self._rows else None
        logger.debug("Query resolved", collection=self.collection, mode="single", found=row is not None)
        return Result(data=row)

    async def execute(self) -> Result[list[RecordT]]:
        """Resolve to every row left in the working set."""
        await asyncio.sleep(self._delay)
        rows = [_project(row, self._columns) for row in self._rows]
        logger.debug("Query resolved", collection=self.collection, mode="all", count=len(rows))
        return Result(data=rows)

    def __await__(self) -> Generator[Any, None, Result[list[RecordT]]]:
        return self.execute().__await__()


class RecordStore(Generic[RecordT]):
    """
    A named collection of JSON records.

    Records are never updated or deleted here. Ids are unique within the
    collection and insertion order is preserved.
    """

    def __init__(
        self,
        name: str,
        kv: KeyValueStore,
        settings: Settings | None = None,
    ):
        self.name = name
        self.settings = settings or get_settings()
        self.key = f"{self.settings.storage_namespace}_{name}"
        self._kv = kv

    def _load(self) -> list[RecordT]:
        return self._kv.read(self.key) or []

    def select(self, columns: str | None = "*") -> QueryBuilder[RecordT]:
        """
        Begin a query over a snapshot of the collection.

        Args:
            columns: Comma-separated field names to return, or `"*"`.
        """
        return QueryBuilder(
            self.name,
            self._load(),
            parse_columns(columns),
            self.settings.query_delay,
        )

    def append(self, payload: Mapping[str, Any]) -> RecordT:
        """
        Add a record and persist the collection, without simulated latency.

        Generated `id` and `created_at` take precedence over caller-supplied
        values of the same name.
        """
        overridden = [name for name in GENERATED_FIELDS if name in payload]
        if overridden:
            logger.warning(
                "Ignoring caller-supplied generated fields",
                collection=self.name,
                fields=overridden,
            )

        record: Record = {
            **payload,
            "id": generate_id(),
            "created_at": utc_timestamp(),
        }
        rows = self._load()
        rows.append(record)
        self._kv.write(self.key, rows)

        logger.info("Record inserted", collection=self.name, record_id=record["id"])
        return record

    async def insert(
        self,
        payload: Mapping[str, Any],
        returning: str | None = "*",
    ) -> Result[RecordT]:
        """
        Insert a record and resolve to it after the simulated round-trip.

        The collection is persisted before the delay, so concurrent inserts
        never lose each other's rows.

        Args:
            payload: Caller fields for the new record.
            returning: Comma-separated fields of the new record to return.
        """
        try:
            record = self.append(payload)
        except (TypeError, ValueError) as e:
            logger.warning("Insert rejected", collection=self.name, error=str(e))
            return Result.failure(f"Record is not JSON serializable: {e}")

        await asyncio.sleep(self.settings.insert_delay)
        return Result(data=_project(record, parse_columns(returning)))
