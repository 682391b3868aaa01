"""Database dialect selection, storage description and PostgreSQL server checks."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Mapping, Optional

from .versioning import Version, parse_version

log = logging.getLogger(__name__)

Query = Callable[[str], Any]

_VERSION_SQL = "SELECT version()"
_INFO_SQL = (
    "SELECT split_part(current_setting('server_version'), ' ', 1) as version,\n"
    "\tdate_trunc('second', current_timestamp - pg_postmaster_start_time()) as uptime, "
    "version() as full_version"
)

MIN_POSTGRES_VERSION = parse_version("10.0")

_POSTGRES_SCHEMES = ("postgres", "postgresql")
_TSDB_SCHEMES = ("tsdb", "timescale", "timescaledb")


class DialectType(str, enum.Enum):
    """Kind of database a DSN points at."""

    POSTGRES = "postgres"
    TSDB = "timescale"


class PostgresVersionError(RuntimeError):
    """Raised when the server version cannot be determined or is too old."""


@dataclass(frozen=True)
class DatabaseInfo:
    version: str
    uptime: timedelta
    full_version: str


@dataclass(frozen=True)
class Storage:
    """Where data is stored, and the executor for its dialect if one is known."""

    dsn: str
    dialect_executor: Optional[Any] = None


def parse_dialect_dsn(dsn: str) -> tuple[DialectType, str]:
    """Determine the dialect of a DSN.

    Only PostgreSQL is supported: an empty DSN, a timescale DSN and an unknown
    scheme are rejected with ValueError.
    """
    if not dsn:
        raise ValueError("missing DSN")
    scheme, sep, _ = dsn.partition("://")
    if not sep:
        # key=value form: host=... user=...
        return DialectType.POSTGRES, dsn
    scheme = scheme.lower()
    if scheme in _POSTGRES_SCHEMES:
        return DialectType.POSTGRES, dsn
    if scheme in _TSDB_SCHEMES:
        raise ValueError("history feature is removed")
    raise ValueError("unhandled dialect type")


def running_postgres_version(query: Query) -> Version:
    """Version of the server, taken from the second word of ``SELECT version()``."""
    result = str(query(_VERSION_SQL))
    fields = result.split()
    if len(fields) < 2:
        raise PostgresVersionError(f"failed to parse version: {result}")
    return parse_version(fields[1])


def validate_postgres_version(query: Query, want: Version = MIN_POSTGRES_VERSION) -> None:
    """Raise PostgresVersionError unless the server version is at least ``want``."""
    try:
        got = running_postgres_version(query)
    except Exception as err:  # the query function may raise anything
        raise PostgresVersionError(f"error getting PostgreSQL version: {err}") from err
    if got < want:
        raise PostgresVersionError(
            f"unsupported PostgreSQL version: {got}. (should be >= {want})"
        )


def _as_timedelta(value: Any) -> timedelta:
    if isinstance(value, timedelta):
        return value
    return timedelta(seconds=float(value))


def get_database_info(query: Query) -> DatabaseInfo:
    """Version, uptime and full version string of the server; ``unknown`` on failure."""
    try:
        row = query(_INFO_SQL)
        if isinstance(row, Mapping):
            version, uptime, full = row["version"], row["uptime"], row["full_version"]
        else:
            version, uptime, full = row
        return DatabaseInfo(str(version), _as_timedelta(uptime), str(full))
    except Exception as err:  # any failure yields the placeholder info
        log.debug("failed to read database info: %s", err)
        return DatabaseInfo("unknown", timedelta(0), "unknown")