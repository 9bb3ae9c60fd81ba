"""SQLite-backed document store client with CRUD, conditional writes and batched deletes.

Each collection is a table of JSON documents. Every record returned by this module
is the document's fields merged with its store metadata: ``id``, ``created``,
``updated`` and ``version``. ``version`` increases on every write and is what
optimistic read-modify-write transactions compare against.
"""

import asyncio
import json
import logging
import re
import threading
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from orgflow.core.config import constants, settings
from orgflow.core.errors import ErrorCode, NotFoundError, OrgflowError


logger = logging.getLogger(__name__)

_META_FIELDS = ("id", "created", "updated", "version")


class DatabaseError(OrgflowError, RuntimeError):
    """Storage operation failed."""

    code = ErrorCode.ERR_DATABASE


class RecordNotFoundError(NotFoundError):
    """Record does not exist in the collection."""


class VersionConflictError(DatabaseError):
    """Conditional write rejected because the document changed since it was read."""

    code = ErrorCode.ERR_CONFLICT


def _validate_collection_name(collection: str) -> None:
    """Validate that a collection name contains only alphanumeric characters and underscores."""
    if not re.match(r"^[a-zA-Z_][a-zA-Z0-9_]*$", collection):
        msg = f"Invalid collection name: {collection}. Only alphanumeric characters and underscores are allowed."
        raise ValueError(msg)


def _validate_field_name(field: str) -> None:
    """Validate that a document field name is a plain identifier."""
    if not re.match(r"^[a-zA-Z_][a-zA-Z0-9_]*$", field):
        msg = f"Invalid field name: {field}"
        raise ValueError(msg)


def sanitize_param(value: str | int | float | bool | None) -> str:
    """Escape a value as the body of a double-quoted filter literal (JSON string escaping)."""
    return json.dumps(str(value))[1:-1]


def new_record_id() -> str:
    """Generate a random document ID."""
    return uuid.uuid4().hex


def _now_iso() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def _encode_document(data: dict[str, Any]) -> str:
    """Serialize document fields, dropping store metadata."""
    document = {key: value for key, value in data.items() if key not in _META_FIELDS}
    return json.dumps(document, default=_json_default)


def _json_default(value: object) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    msg = f"Object of type {type(value).__name__} is not JSON serializable"
    raise TypeError(msg)


def _row_to_record(row: aiosqlite.Row | tuple) -> dict[str, Any]:
    """Merge a (id, data, version, created, updated) row into a record dict."""
    record_id, data, version, created, updated = row
    return {**json.loads(data), "id": record_id, "created": created, "updated": updated, "version": version}


def get_db_path(db_path: str | None = None) -> Path:
    """Get the resolved SQLite database file path."""
    path_str = db_path or settings.sqlite_db_path
    return Path(path_str).resolve()


# Filter parsing
#
# Filters use PocketBase-style syntax:
#   field = "value" && (a = "1" || b = "2")
#   assignee_ids ?= "user1"       (array contains)
#   retry_count > 0               (unquoted numbers and true/false are typed literals)
#
# Quoted values are JSON string literals, so sanitize_param() output decodes
# back to the original value, including quotes, backslashes and non-ASCII text.

FilterValue = str | int | float | bool

_COMPARISON_PATTERN = re.compile(
    r"""^(\w+)\s*(\?=|!=|>=|<=|=|>|<|~)\s*(?:"((?:\\.|[^"\\])*)"|(true|false|-?\d+(?:\.\d+)?))$""",
)


def _field_expression(field: str) -> str:
    """Map a document field to its SQL expression."""
    if field in _META_FIELDS:
        return field
    return f"json_extract(data, '$.{field}')"


def _parse_literal(quoted: str | None, bare: str | None) -> FilterValue:
    """Convert a filter literal to the Python value bound as a SQL parameter."""
    if quoted is not None:
        try:
            return json.loads(f'"{quoted}"')
        except json.JSONDecodeError as e:
            msg = f"Invalid filter syntax: bad string literal {quoted!r}"
            raise ValueError(msg) from e
    if bare in ("true", "false"):
        return bare == "true"
    if "." in bare:
        return float(bare)
    return int(bare)


def parse_comparison(comparison: str) -> tuple[str, str, FilterValue]:
    """Parse one ``field op literal`` comparison into (field, op, value)."""
    match = _COMPARISON_PATTERN.match(comparison.strip())
    if not match:
        msg = f"Invalid filter syntax: {comparison}"
        raise ValueError(msg)

    field, op, quoted, bare = match.groups()
    return field, op, _parse_literal(quoted, bare)


def split_filter(filter_query: str, separator: str) -> list[str]:
    """Split on a top-level ``&&`` or ``||``, ignoring parenthesized groups and quoted literals."""
    parts = []
    current = ""
    paren_depth = 0
    in_quote = False
    escaped = False
    index = 0

    while index < len(filter_query):
        char = filter_query[index]

        if in_quote:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_quote = False
        elif char == '"':
            in_quote = True
        elif char == "(":
            paren_depth += 1
        elif char == ")":
            paren_depth -= 1
        elif paren_depth == 0 and filter_query.startswith(separator, index):
            parts.append(current.strip())
            current = ""
            index += len(separator)
            continue

        current += char
        index += 1

    if current.strip():
        parts.append(current.strip())

    return parts


def _parse_single_comparison(comparison: str) -> tuple[str, FilterValue]:
    """Parse a single comparison expression into a SQL condition and parameter."""
    field, op, value = parse_comparison(comparison)

    if op == "?=":
        condition = f"EXISTS (SELECT 1 FROM json_each(data, '$.{field}') WHERE json_each.value = ?)"
        return condition, value

    if op == "~":
        escaped = str(value).replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        return f"{_field_expression(field)} LIKE ? ESCAPE '\\'", f"%{escaped}%"

    return f"{_field_expression(field)} {op} ?", value


def _parse_or_group(or_group: str) -> tuple[str, list[FilterValue]]:
    """Parse a parenthesized OR group into a SQL condition and parameters."""
    inner = or_group[1:-1]  # Remove parentheses
    or_conditions = []
    or_params = []

    for part in split_filter(inner, "||"):
        cond, value = _parse_single_comparison(part)
        or_conditions.append(cond)
        or_params.append(value)

    return f"({' OR '.join(or_conditions)})", or_params


def parse_filter(filter_query: str) -> tuple[str, list[FilterValue]]:
    """Parse filter syntax into a SQL WHERE clause and parameter list."""
    if not filter_query:
        return "", []

    conditions = []
    params: list[FilterValue] = []

    for part in split_filter(filter_query, "&&"):
        if part.startswith("(") and part.endswith(")"):
            cond, cond_params = _parse_or_group(part)
            conditions.append(cond)
            params.extend(cond_params)
        else:
            cond, value = _parse_single_comparison(part)
            conditions.append(cond)
            params.append(value)

    return " AND ".join(conditions), params


def _parse_sort(sort: str) -> str:
    """Translate "field" / "-field" into an ORDER BY clause."""
    if not sort:
        return "created ASC, id ASC"

    descending = sort.startswith("-")
    field = sort[1:] if descending else sort
    if not re.match(r"^[A-Za-z_][A-Za-z0-9_]*$", field):
        logger.warning("Invalid sort parameter, using default", extra={"sort": sort})
        return "created ASC, id ASC"

    direction = "DESC" if descending else "ASC"
    return f"{_field_expression(field)} {direction}, id ASC"


_db_connections: dict[tuple[int, int, str], aiosqlite.Connection] = {}
_db_lock = asyncio.Lock()


async def get_connection(*, db_path: str | None = None) -> aiosqlite.Connection:
    """Get or create a cached connection for the current thread, loop, and db path."""
    thread_id = threading.get_ident()
    loop = asyncio.get_running_loop()
    loop_id = id(loop)
    path = get_db_path(db_path)
    cache_key = (thread_id, loop_id, str(path))

    if cache_key in _db_connections:
        return _db_connections[cache_key]

    async with _db_lock:
        # Double-check after acquiring lock
        if cache_key in _db_connections:
            return _db_connections[cache_key]

        path.parent.mkdir(parents=True, exist_ok=True)

        conn = await aiosqlite.connect(str(path))
        await conn.execute("PRAGMA journal_mode = WAL")

        _db_connections[cache_key] = conn

        logger.info(
            "Created new SQLite connection",
            extra={"db_path": str(path), "thread_id": thread_id, "loop_id": loop_id},
        )
        return conn


async def close_connection(*, db_path: str | None = None) -> None:
    """Close the cached SQLite connection for the current thread, loop, and db path."""
    thread_id = threading.get_ident()
    loop_id = id(asyncio.get_running_loop())
    path = get_db_path(db_path)
    cache_key = (thread_id, loop_id, str(path))

    async with _db_lock:
        conn = _db_connections.pop(cache_key, None)
        if conn is None:
            return
        try:
            await conn.close()
            logger.info("Closed SQLite connection", extra={"db_path": str(path)})
        except Exception as e:
            logger.warning("Error closing SQLite connection", extra={"error": str(e), "db_path": str(path)})


async def init_db(*, db_path: str | None = None) -> None:
    """Initialize the document tables by delegating to schema.init_db()."""
    from orgflow.core import schema

    await schema.init_db(db_path=db_path)


async def create_record(
    *,
    collection: str,
    data: dict[str, Any],
    record_id: str | None = None,
) -> dict[str, Any]:
    """Insert a new document and return it with its assigned id."""
    _validate_collection_name(collection)
    record_id = record_id or new_record_id()
    now = _now_iso()

    try:
        conn = await get_connection()
        await conn.execute(
            f"INSERT INTO {collection} (id, data, version, created, updated) VALUES (?, ?, 1, ?, ?)",  # noqa: S608 - collection is validated
            (record_id, _encode_document(data), now, now),
        )
        await conn.commit()
    except Exception as e:
        logger.error("create_record_failed", extra={"collection": collection, "error": str(e)})
        msg = f"Failed to create record in {collection}: {e}"
        raise DatabaseError(msg) from e

    logger.info("Created record", extra={"collection": collection, "record_id": record_id})
    return await get_record(collection=collection, record_id=record_id)


async def set_record(*, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Create or fully overwrite the document with the given id."""
    _validate_collection_name(collection)
    now = _now_iso()

    try:
        conn = await get_connection()
        await conn.execute(
            f"INSERT INTO {collection} (id, data, version, created, updated) VALUES (?, ?, 1, ?, ?) "  # noqa: S608 - collection is validated
            "ON CONFLICT(id) DO UPDATE SET data = excluded.data, version = version + 1, updated = excluded.updated",
            (record_id, _encode_document(data), now, now),
        )
        await conn.commit()
    except Exception as e:
        logger.error("set_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        msg = f"Failed to set record in {collection}: {e}"
        raise DatabaseError(msg) from e

    logger.info("Set record", extra={"collection": collection, "record_id": record_id})
    return await get_record(collection=collection, record_id=record_id)


async def get_record(*, collection: str, record_id: str) -> dict[str, Any]:
    """Fetch a single record by ID, raising RecordNotFoundError if not found."""
    _validate_collection_name(collection)

    try:
        conn = await get_connection()
        cursor = await conn.execute(
            f"SELECT id, data, version, created, updated FROM {collection} WHERE id = ?",  # noqa: S608 - collection is validated
            (record_id,),
        )
        row = await cursor.fetchone()
    except Exception as e:
        logger.error("get_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        msg = f"Failed to get record from {collection}: {e}"
        raise DatabaseError(msg) from e

    if row is None:
        msg = f"Record not found in {collection}: {record_id}"
        raise RecordNotFoundError(msg)

    return _row_to_record(row)


async def update_record(
    *,
    collection: str,
    record_id: str,
    data: dict[str, Any],
    expected_version: int | None = None,
) -> dict[str, Any]:
    """Merge fields into a document and return the updated record.

    Top-level fields in ``data`` replace the stored ones; lists are replaced
    wholesale. When ``expected_version`` is given the write only happens if the
    stored version still matches, otherwise VersionConflictError is raised.
    """
    if not data:
        msg = "Empty update payload"
        raise ValueError(msg)

    _validate_collection_name(collection)
    query = (
        f"UPDATE {collection} SET data = json_patch(data, ?), version = version + 1, updated = ? WHERE id = ?"  # noqa: S608 - collection is validated
    )
    params: list[Any] = [_encode_document(data), _now_iso(), record_id]
    if expected_version is not None:
        query += " AND version = ?"
        params.append(expected_version)

    try:
        conn = await get_connection()
        cursor = await conn.execute(query, params)
        await conn.commit()
        rowcount = cursor.rowcount
    except Exception as e:
        logger.error("update_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        msg = f"Failed to update record in {collection}: {e}"
        raise DatabaseError(msg) from e

    if rowcount == 0:
        # Raises RecordNotFoundError when the document is gone
        current = await get_record(collection=collection, record_id=record_id)
        msg = (
            f"Version conflict on {collection}/{record_id}: "
            f"expected {expected_version}, found {current['version']}"
        )
        raise VersionConflictError(msg)

    logger.info("Updated record", extra={"collection": collection, "record_id": record_id})
    return await get_record(collection=collection, record_id=record_id)


async def increment_field(*, collection: str, record_id: str, field: str, amount: int | float) -> dict[str, Any]:
    """Atomically add ``amount`` to a numeric document field (missing counts as 0)."""
    _validate_collection_name(collection)
    _validate_field_name(field)

    try:
        conn = await get_connection()
        cursor = await conn.execute(
            f"UPDATE {collection} SET data = json_set(data, '$.{field}', "  # noqa: S608 - collection and field are validated
            f"COALESCE(json_extract(data, '$.{field}'), 0) + ?), version = version + 1, updated = ? WHERE id = ?",
            (amount, _now_iso(), record_id),
        )
        await conn.commit()
        rowcount = cursor.rowcount
    except Exception as e:
        logger.error(
            "increment_field_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)}
        )
        msg = f"Failed to increment {field} in {collection}: {e}"
        raise DatabaseError(msg) from e

    if rowcount == 0:
        msg = f"Record not found in {collection}: {record_id}"
        raise RecordNotFoundError(msg)

    logger.info("Incremented field", extra={"collection": collection, "record_id": record_id, "field": field})
    return await get_record(collection=collection, record_id=record_id)


async def delete_records(*, collection: str, record_ids: list[str]) -> int:
    """Delete documents in batches of CASCADE_BATCH_SIZE, each batch committed atomically.

    IDs that no longer exist are skipped, so repeating a call is a no-op.

    Returns:
        Number of documents actually deleted
    """
    _validate_collection_name(collection)
    unique_ids = list(dict.fromkeys(record_ids))
    deleted = 0

    for start in range(0, len(unique_ids), constants.CASCADE_BATCH_SIZE):
        batch = unique_ids[start : start + constants.CASCADE_BATCH_SIZE]
        placeholders = ", ".join("?" for _ in batch)
        try:
            conn = await get_connection()
            cursor = await conn.execute(
                f"DELETE FROM {collection} WHERE id IN ({placeholders})",  # noqa: S608 - collection is validated
                batch,
            )
            await conn.commit()
            deleted += cursor.rowcount
        except Exception as e:
            logger.error(
                "delete_records_failed",
                extra={"collection": collection, "batch_size": len(batch), "error": str(e)},
            )
            msg = f"Failed to delete records from {collection}: {e}"
            raise DatabaseError(msg) from e

    logger.info("Deleted records", extra={"collection": collection, "count": deleted})
    return deleted


async def list_records(
    *,
    collection: str,
    page: int = 1,
    per_page: int = 50,
    filter_query: str = "",
    sort: str = "",
) -> list[dict[str, Any]]:
    """List records with optional filtering, sorting, and pagination."""
    _validate_collection_name(collection)
    where_clause, params = parse_filter(filter_query)
    where_sql = f"WHERE {where_clause}" if where_clause else ""
    offset = (page - 1) * per_page

    query = (
        f"SELECT id, data, version, created, updated FROM {collection} {where_sql} "  # noqa: S608 - collection is validated
        f"ORDER BY {_parse_sort(sort)} LIMIT ? OFFSET ?"
    )

    try:
        conn = await get_connection()
        cursor = await conn.execute(query, [*params, per_page, offset])
        rows = await cursor.fetchall()
    except Exception as e:
        logger.error("list_records_failed", extra={"collection": collection, "error": str(e)})
        msg = f"Failed to list records from {collection}: {e}"
        raise DatabaseError(msg) from e

    records = [_row_to_record(row) for row in rows]
    logger.info("Listed records", extra={"collection": collection, "count": len(records)})
    return records


async def list_all_records(*, collection: str, filter_query: str = "", sort: str = "") -> list[dict[str, Any]]:
    """List every record matching the filter, following pages until exhausted."""
    records: list[dict[str, Any]] = []
    page = 1
    while True:
        batch = await list_records(
            collection=collection,
            page=page,
            per_page=constants.DEFAULT_PER_PAGE_LIMIT,
            filter_query=filter_query,
            sort=sort,
        )
        records.extend(batch)
        if len(batch) < constants.DEFAULT_PER_PAGE_LIMIT:
            return records
        page += 1


async def get_first_record(*, collection: str, filter_query: str) -> dict[str, Any] | None:
    """Return the first record matching the filter, or None."""
    records = await list_records(collection=collection, per_page=1, filter_query=filter_query)
    return records[0] if records else None
