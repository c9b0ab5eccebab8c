"""Database URL helpers for Alembic migrations.

Kept apart from env.py so they can be tested without alembic.context.
DATABASE_URL may be a URL (postgres://, postgresql://) or a libpq
key=value DSN; DB_PASSWORD fills in a missing password in either form.
"""

from __future__ import annotations

import os
import shlex
from urllib.parse import quote_plus, urlparse, urlunparse

_DRIVER_SCHEME = "postgresql+psycopg2://"


def parse_libpq_dsn(dsn: str) -> dict[str, str]:
    """Parse a libpq key=value DSN; single-quoted values may contain spaces."""
    tokens: dict[str, str] = {}
    for part in shlex.split(dsn):
        key, sep, value = part.partition("=")
        if sep:
            tokens[key.strip()] = value
    return tokens


def libpq_dsn_to_url(dsn: str) -> str:
    """Convert a libpq DSN to a SQLAlchemy URL (TCP host or unix socket dir)."""
    tokens = parse_libpq_dsn(dsn)
    password = tokens.get("password") or os.environ.get("DB_PASSWORD", "")

    user = quote_plus(tokens.get("user", ""))
    dbname = quote_plus(tokens.get("dbname", ""))
    host = tokens.get("host", "localhost")
    port = tokens.get("port", "5432")
    credentials = f"{user}:{quote_plus(password)}"

    if host.startswith("/"):
        return f"{_DRIVER_SCHEME}{credentials}@/{dbname}?host={quote_plus(host)}"
    return f"{_DRIVER_SCHEME}{credentials}@{host}:{port}/{dbname}"


def _normalize_url(url: str) -> str:
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            url = _DRIVER_SCHEME + url[len(prefix):]
            break

    db_password = os.environ.get("DB_PASSWORD", "")
    parsed = urlparse(url)
    if db_password and not parsed.password:
        netloc = f"{quote_plus(parsed.username or '')}:{quote_plus(db_password)}@{parsed.hostname or ''}"
        if parsed.port:
            netloc += f":{parsed.port}"
        url = urlunparse(parsed._replace(netloc=netloc))
    return url


def get_database_url() -> str:
    """Return DATABASE_URL as a SQLAlchemy psycopg2 URL.

    Raises:
        RuntimeError: If DATABASE_URL is not set.
    """
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is required to run migrations")
    if "://" in url:
        return _normalize_url(url)
    return libpq_dsn_to_url(url)
