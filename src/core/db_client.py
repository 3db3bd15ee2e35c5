"""SQLite database client wrapper with CRUD operations."""

import asyncio
import json
import logging
import re
import threading
from datetime import date, datetime
from pathlib import Path
from typing import Any, NoReturn

import aiosqlite

from src.core.config import constants, settings


logger = logging.getLogger(__name__)


class DatabaseError(RuntimeError):
    """Raised when a database operation fails."""


class DuplicateRecordError(DatabaseError):
    """Raised when a write violates a unique index."""


class RecordNotFoundError(KeyError):
    """Raised when a record lookup by ID finds nothing."""


def _validate_collection_name(collection: str) -> None:
    """Validate that a collection name contains only alphanumeric characters and underscores."""
    if not re.match(r"^[a-zA-Z_][a-zA-Z0-9_]*$", collection):
        msg = f"Invalid collection name: {collection}. Only alphanumeric characters and underscores are allowed."
        raise ValueError(msg)


def _validate_field_name(field: str) -> None:
    if not re.match(r"^[a-zA-Z_][a-zA-Z0-9_]*$", field):
        msg = f"Invalid field name: {field}"
        raise ValueError(msg)


def sanitize_param(value: str | int | float | bool | None) -> str:
    """Escape a value for safe embedding in filter queries via json.dumps."""
    return json.dumps(str(value))[1:-1]


def _convert_record_ids(record: dict[str, Any]) -> dict[str, Any]:
    """Convert integer ID and foreign key fields to strings for Pydantic compatibility."""
    converted = record.copy()
    for key, value in converted.items():
        if isinstance(value, int) and (key == "id" or key.endswith("_id")):
            converted[key] = str(value)
    return converted


def _to_db_value(val: Any) -> Any:
    if isinstance(val, datetime | date):
        return val.isoformat()
    if isinstance(val, dict | list):
        return json.dumps(val)
    return val


def get_db_path(db_path: str | None = None) -> Path:
    """Get the resolved SQLite database file path."""
    path_str = db_path or settings.sqlite_db_path
    return Path(path_str).resolve()


def _parse_value(value: str, *, is_like: bool = False) -> str | int | float | bool | None:
    """Parse a string value to the appropriate Python type for SQLite."""
    if is_like:
        return value.replace("%", "\\%").replace("_", "\\_")

    if value.isdigit():
        return int(value)
    if value.replace(".", "", 1).isdigit():
        return float(value)

    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False

    return value


def _get_sql_operator(op: str) -> str:
    """Map filter operator to SQL operator."""
    op_map = {
        "=": "=",
        "!=": "!=",
        ">": ">",
        "<": "<",
        ">=": ">=",
        "<=": "<=",
        "~": "LIKE",
    }
    sql_op = op_map.get(op)
    if not sql_op:
        msg = f"Unsupported operator: {op}"
        raise ValueError(msg)
    return sql_op


def _unescape(raw_value: str, *, quote: str) -> str:
    """Undo the escaping applied by sanitize_param (JSON string escapes)."""
    if quote == '"':
        try:
            return json.loads(f'"{raw_value}"')
        except json.JSONDecodeError as e:
            msg = f"Invalid escape sequence in filter value: {raw_value}"
            raise ValueError(msg) from e
    return re.sub(r"\\(.)", r"\1", raw_value)


def _parse_single_comparison(comparison: str) -> tuple[str, str | int | float | None]:
    """Parse a single comparison expression into a SQL condition and parameter."""
    match = re.match(
        r"""(\w+)\s*(!=|>=|<=|=|>|<|~)\s*(['"])((?:\\.|(?!\3).)*)\3\s*$""",
        comparison,
    )
    if not match:
        msg = f"Invalid filter syntax: {comparison}"
        raise ValueError(msg)

    field = match.group(1)
    op = match.group(2)
    raw_value = _unescape(match.group(4), quote=match.group(3))

    sql_op = _get_sql_operator(op)
    is_like = sql_op == "LIKE"
    value = _parse_value(raw_value, is_like=is_like)

    return f"{field} {sql_op} ?", value


def _split_top_level(text: str, separator: str) -> list[str]:
    """Split on ``separator`` outside quoted values and parenthesized groups."""
    parts = []
    start = 0
    depth = 0
    quote: str | None = None
    index = 0

    while index < len(text):
        char = text[index]
        if quote:
            if char == "\\":
                index += 2
                continue
            if char == quote:
                quote = None
        elif char in "\"'":
            quote = char
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        elif depth == 0 and text.startswith(separator, index):
            parts.append(text[start:index].strip())
            index += len(separator)
            start = index
            continue
        index += 1

    if text[start:].strip():
        parts.append(text[start:].strip())

    return parts


def _parse_or_group(or_group: str) -> tuple[str, list[str | int | float | None]]:
    """Parse a parenthesized OR group into a SQL condition and parameters."""
    or_conditions = []
    or_params = []

    for part in _split_top_level(or_group[1:-1], "||"):
        cond, value = _parse_single_comparison(part)
        or_conditions.append(cond)
        or_params.append(value)

    return f"({' OR '.join(or_conditions)})", or_params


def _split_and_conditions(filter_query: str) -> list[str]:
    """Split filter query by && while preserving quoted values and parenthesized groups."""
    return _split_top_level(filter_query, "&&")


def parse_filter(filter_query: str) -> tuple[str, list[str | int | float | None]]:
    """Parse filter syntax into a SQL WHERE clause and parameter list.

    Syntax: ``field = "value" && (field2 = "a" || field2 = "b")``.
    """
    if not filter_query:
        return "", []

    parts = _split_and_conditions(filter_query)
    conditions = []
    params = []

    for raw_part in parts:
        part = raw_part.strip()

        if part.startswith("(") and part.endswith(")"):
            cond, cond_params = _parse_or_group(part)
            conditions.append(cond)
            params.extend(cond_params)
        else:
            cond, value = _parse_single_comparison(part)
            conditions.append(cond)
            params.append(value)

    return " AND ".join(conditions), params


def _where(filter_query: str) -> tuple[str, list[Any]]:
    where_clause, params = parse_filter(filter_query)
    return (f"WHERE {where_clause}" if where_clause else ""), params


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
        await conn.execute("PRAGMA foreign_keys = ON")
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
        except aiosqlite.Error as e:
            logger.warning("Error closing SQLite connection", extra={"error": str(e), "db_path": str(path)})


async def init_db(*, db_path: str | None = None) -> None:
    """Initialize the database schema by delegating to schema.init_db()."""
    from src.core import schema  # noqa: PLC0415 - schema imports this module

    await schema.init_db(db_path=db_path)


def _raise_database_error(e: Exception, *, operation: str, collection: str) -> NoReturn:
    if isinstance(e, aiosqlite.IntegrityError) and "UNIQUE" in str(e).upper():
        logger.warning("%s_duplicate", operation, extra={"collection": collection, "error": str(e)})
        msg = f"Duplicate record in {collection}: {e}"
        raise DuplicateRecordError(msg) from e
    if isinstance(e, aiosqlite.OperationalError) and "no such table" in str(e):
        logger.error("Table not found", extra={"collection": collection})
        msg = f"Table '{collection}' does not exist. Call init_db() first."
        raise DatabaseError(msg) from e
    logger.error("%s_failed", operation, extra={"collection": collection, "error": str(e)})
    msg = f"Failed to {operation.replace('_', ' ')} in {collection}: {e}"
    raise DatabaseError(msg) from e


async def create_record(*, collection: str, data: dict[str, Any]) -> dict[str, Any]:
    """Insert a new record and return it with its assigned id.

    Raises:
        DuplicateRecordError: If the insert violates a unique index
        DatabaseError: For other failures
    """
    _validate_collection_name(collection)
    conn = await get_connection()
    try:
        columns = list(data.keys())
        for column in columns:
            _validate_field_name(column)
        columns_str = ", ".join(columns)
        placeholders_str = ", ".join("?" for _ in columns)
        values = [_to_db_value(data[key]) for key in columns]

        query = f"INSERT INTO {collection} ({columns_str}) VALUES ({placeholders_str})"  # noqa: S608 - names are validated
        cursor = await conn.execute(query, values)
        await conn.commit()
        record_id = cursor.lastrowid
    except aiosqlite.Error as e:
        _raise_database_error(e, operation="create_record", collection=collection)

    logger.info("Created record", extra={"collection": collection, "record_id": record_id})
    return await get_record(collection=collection, record_id=str(record_id))


async def get_record(*, collection: str, record_id: str) -> dict[str, Any]:
    """Fetch a single record by ID, raising RecordNotFoundError if not found."""
    _validate_collection_name(collection)
    try:
        numeric_id = int(record_id)
    except (TypeError, ValueError) as e:
        msg = f"Record not found in {collection}: {record_id}"
        raise RecordNotFoundError(msg) from e

    conn = await get_connection()
    try:
        query = f"SELECT * FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, (numeric_id,))
        row = await cursor.fetchone()
    except aiosqlite.Error as e:
        _raise_database_error(e, operation="get_record", collection=collection)

    if row is None:
        msg = f"Record not found in {collection}: {record_id}"
        raise RecordNotFoundError(msg)

    columns = [description[0] for description in cursor.description]
    record = dict(zip(columns, row, strict=True))

    logger.debug("Retrieved record", extra={"collection": collection, "record_id": record_id})
    return _convert_record_ids(record)


async def update_record(*, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Update a record by ID and return the updated record."""
    if not data:
        msg = "Empty update payload"
        raise ValueError(msg)

    _validate_collection_name(collection)
    for key in data:
        _validate_field_name(key)

    conn = await get_connection()
    try:
        set_clause = ", ".join(f"{key} = ?" for key in data)
        values = [_to_db_value(val) for val in data.values()]
        values.append(int(record_id))

        query = f"UPDATE {collection} SET {set_clause} WHERE id = ?"  # noqa: S608 - names are validated
        cursor = await conn.execute(query, values)
        await conn.commit()
    except aiosqlite.Error as e:
        _raise_database_error(e, operation="update_record", collection=collection)

    if cursor.rowcount == 0:
        msg = f"Record not found in {collection}: {record_id}"
        raise RecordNotFoundError(msg)

    logger.info("Updated record", extra={"collection": collection, "record_id": record_id})
    return await get_record(collection=collection, record_id=record_id)


async def update_records(*, collection: str, filter_query: str, data: dict[str, Any]) -> int:
    """Update every record matching the filter and return the number of rows changed."""
    if not data:
        msg = "Empty update payload"
        raise ValueError(msg)

    _validate_collection_name(collection)
    for key in data:
        _validate_field_name(key)

    where_clause, params = _where(filter_query)
    conn = await get_connection()
    try:
        set_clause = ", ".join(f"{key} = ?" for key in data)
        values = [_to_db_value(val) for val in data.values()] + params

        query = f"UPDATE {collection} SET {set_clause} {where_clause}"  # noqa: S608 - names are validated
        cursor = await conn.execute(query, values)
        await conn.commit()
    except aiosqlite.Error as e:
        _raise_database_error(e, operation="update_records", collection=collection)

    logger.info("Updated records", extra={"collection": collection, "count": cursor.rowcount})
    return cursor.rowcount


async def increment_field(*, collection: str, record_id: str, field: str, amount: int) -> dict[str, Any]:
    """Atomically add ``amount`` to a numeric field and return the updated record."""
    _validate_collection_name(collection)
    _validate_field_name(field)

    conn = await get_connection()
    try:
        query = f"UPDATE {collection} SET {field} = {field} + ? WHERE id = ?"  # noqa: S608 - names are validated
        cursor = await conn.execute(query, (amount, int(record_id)))
        await conn.commit()
    except aiosqlite.Error as e:
        _raise_database_error(e, operation="increment_field", collection=collection)

    if cursor.rowcount == 0:
        msg = f"Record not found in {collection}: {record_id}"
        raise RecordNotFoundError(msg)

    return await get_record(collection=collection, record_id=record_id)


async def delete_record(*, collection: str, record_id: str) -> None:
    """Delete a record by ID, raising RecordNotFoundError if not found."""
    _validate_collection_name(collection)
    conn = await get_connection()
    try:
        query = f"DELETE FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, (int(record_id),))
        await conn.commit()
    except aiosqlite.Error as e:
        _raise_database_error(e, operation="delete_record", collection=collection)

    if cursor.rowcount == 0:
        msg = f"Record not found in {collection}: {record_id}"
        raise RecordNotFoundError(msg)

    logger.info("Deleted record", extra={"collection": collection, "record_id": record_id})


async def delete_records(*, collection: str, filter_query: str) -> int:
    """Delete every record matching a (non-empty) filter and return the number removed."""
    if not filter_query:
        msg = "Refusing to delete without a filter"
        raise ValueError(msg)

    _validate_collection_name(collection)
    where_clause, params = _where(filter_query)
    conn = await get_connection()
    try:
        query = f"DELETE FROM {collection} {where_clause}"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, params)
        await conn.commit()
    except aiosqlite.Error as e:
        _raise_database_error(e, operation="delete_records", collection=collection)

    logger.info("Deleted records", extra={"collection": collection, "count": cursor.rowcount})
    return cursor.rowcount


async def list_records(
    *,
    collection: str,
    page: int = 1,
    per_page: int = constants.DEFAULT_PER_PAGE_LIMIT,
    filter_query: str = "",
    sort: str = "",
) -> list[dict[str, Any]]:
    """List records with optional filtering, sorting, and pagination."""
    _validate_collection_name(collection)
    where_clause, params = _where(filter_query)

    # Only allow: column_name [ASC|DESC]
    safe_sort = "id ASC"
    if sort:
        sort_pattern = re.match(r"^[A-Za-z_][A-Za-z0-9_]*\s*(ASC|DESC)?$", sort.strip(), re.IGNORECASE)
        if sort_pattern:
            safe_sort = sort.strip()
        else:
            logger.warning("Invalid sort parameter, using default", extra={"sort": sort})

    offset = (page - 1) * per_page
    conn = await get_connection()
    try:
        query = f"SELECT * FROM {collection} {where_clause} ORDER BY {safe_sort}, id ASC LIMIT ? OFFSET ?"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, [*params, per_page, offset])
        rows = await cursor.fetchall()
    except aiosqlite.Error as e:
        _raise_database_error(e, operation="list_records", collection=collection)

    columns = [description[0] for description in cursor.description]
    records = [_convert_record_ids(dict(zip(columns, row, strict=True))) for row in rows]

    logger.debug("Listed records", extra={"collection": collection, "count": len(records)})
    return records


async def get_first_record(*, collection: str, filter_query: str, sort: str = "") -> dict[str, Any] | None:
    """Return the first record matching the filter, or None."""
    records = await list_records(collection=collection, per_page=1, filter_query=filter_query, sort=sort)
    return records[0] if records else None


async def count_records(*, collection: str, filter_query: str = "") -> int:
    """Count records matching the filter."""
    _validate_collection_name(collection)
    where_clause, params = _where(filter_query)
    conn = await get_connection()
    try:
        query = f"SELECT COUNT(*) FROM {collection} {where_clause}"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, params)
        row = await cursor.fetchone()
    except aiosqlite.Error as e:
        _raise_database_error(e, operation="count_records", collection=collection)

    return int(row[0]) if row else 0
