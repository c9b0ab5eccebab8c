"""Database access layer using psycopg2.

Provides:
- get_conn(): Get a database connection from DATABASE_URL
- txn(): Context manager for short, safe transactions
- execute(): Parameterized query execution
- fetchone/fetchall: Query helpers
- insert_values(): Multi-row INSERT via execute_values
"""

import os
import re
from contextlib import contextmanager
from typing import Any, Iterator, Sequence

import psycopg2
from psycopg2.extensions import connection as PgConnection, cursor as PgCursor
from psycopg2.extras import execute_values

_URL_PASSWORD = re.compile(r"^[a-z][a-z0-9+.-]*://[^/@:]*:[^/@]*@", re.IGNORECASE)


def _dsn_has_password(dsn: str) -> bool:
    if "://" in dsn:
        return bool(_URL_PASSWORD.match(dsn))
    return any(part.startswith("password=") for part in dsn.split())


def get_conn() -> PgConnection:
    """Get a new database connection from DATABASE_URL.

    DB_PASSWORD is passed separately when the DSN itself carries no password
    (secret injected apart from the connection string).

    Returns:
        psycopg2 connection object.

    Raises:
        RuntimeError: If DATABASE_URL is not set.
        psycopg2.Error: On connection failure.
    """
    dsn = os.environ.get("DATABASE_URL")
    if not dsn:
        raise RuntimeError("DATABASE_URL environment variable not set")

    db_password = os.environ.get("DB_PASSWORD", "")
    if db_password and not _dsn_has_password(dsn):
        return psycopg2.connect(dsn, password=db_password)
    return psycopg2.connect(dsn)


@contextmanager
def txn(conn: PgConnection | None = None) -> Iterator[PgCursor]:
    """Context manager for a short, safe transaction.

    If conn is None, creates a new connection that is closed on exit.
    Commits on successful exit, rolls back on exception.

    Args:
        conn: Optional existing connection. If None, creates new one.

    Yields:
        Cursor for executing queries within the transaction.

    Example:
        with txn() as cur:
            cur.execute("UPDATE conversations SET updated_at = now() WHERE id = %s", (cid,))
    """
    owns_conn = conn is None
    if owns_conn:
        conn = get_conn()

    try:
        with conn.cursor() as cur:
            yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        if owns_conn:
            conn.close()


def execute(
    cur: PgCursor,
    query: str,
    params: Sequence[Any] | None = None,
) -> None:
    """Execute a parameterized query.

    Args:
        cur: Database cursor.
        query: SQL query with %s placeholders.
        params: Query parameters.
    """
    cur.execute(query, params)


def fetchone(
    cur: PgCursor,
    query: str,
    params: Sequence[Any] | None = None,
) -> tuple[Any, ...] | None:
    """Execute query and fetch one row.

    Args:
        cur: Database cursor.
        query: SQL query with %s placeholders.
        params: Query parameters.

    Returns:
        Single row tuple or None if no results.
    """
    cur.execute(query, params)
    return cur.fetchone()


def fetchall(
    cur: PgCursor,
    query: str,
    params: Sequence[Any] | None = None,
) -> list[tuple[Any, ...]]:
    """Execute query and fetch all rows.

    Args:
        cur: Database cursor.
        query: SQL query with %s placeholders.
        params: Query parameters.

    Returns:
        List of row tuples.
    """
    cur.execute(query, params)
    return cur.fetchall()


def insert_values(
    cur: PgCursor,
    query: str,
    rows: Sequence[Sequence[Any]],
    *,
    template: str | None = None,
    returning: bool = False,
) -> list[tuple[Any, ...]]:
    """Execute a multi-row INSERT with a single VALUES %s placeholder.

    Args:
        cur: Database cursor.
        query: INSERT statement containing exactly one ``VALUES %s``.
        rows: Row tuples to expand into the VALUES list.
        template: Optional per-row template (e.g. casts such as %s::jsonb).
        returning: If True, collect rows produced by a RETURNING clause.

    Returns:
        Rows produced by RETURNING (empty list when returning is False).
    """
    if not rows:
        return []
    result = execute_values(
        cur,
        query,
        rows,
        template=template,
        page_size=max(len(rows), 1),
        fetch=returning,
    )
    return list(result) if returning and result else []
