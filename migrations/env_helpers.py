"""Database URL helpers for Alembic migrations.

Kept apart from env.py so they can be tested without triggering
alembic.context at import time.

DATABASE_URL may be a URL (postgres://, postgresql://) or a libpq
key=value DSN, the same forms resortly.infra.db accepts. DB_PASSWORD is
injected when the DSN carries no password.
"""

from __future__ import annotations

import os

from psycopg2.extensions import parse_dsn
from sqlalchemy.engine import URL

_DRIVER = "postgresql+psycopg2"


def database_url_from_dsn(dsn: str, *, db_password: str | None = None) -> URL:
    """Build a SQLAlchemy URL from any DSN form libpq understands.

    A socket host (host=/cloudsql/...) is passed as a query parameter,
    which is how psycopg2 dialect URLs address Unix sockets.
    """
    for prefix in ("postgres://", _DRIVER + "://"):
        if dsn.startswith(prefix):
            dsn = "postgresql://" + dsn[len(prefix):]

    params = parse_dsn(dsn)
    password = params.pop("password", None) or db_password or None
    host = params.pop("host", None)
    port = params.pop("port", None)
    query: dict[str, str] = dict(params)
    username = query.pop("user", None)
    database = query.pop("dbname", None)

    if host and host.startswith("/"):
        query["host"] = host
        host = None

    return URL.create(
        _DRIVER,
        username=username,
        password=password,
        host=host,
        port=int(port) if port else None,
        database=database,
        query=query,
    )


def get_database_url() -> URL:
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is required to run migrations")
    return database_url_from_dsn(url, db_password=os.environ.get("DB_PASSWORD"))
