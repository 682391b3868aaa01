"""Schema synchronisation of provider tables: sync states and dropping tables safely."""

from __future__ import annotations

import enum
import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional, Protocol, Sequence

from .diagnostics import Diagnostic, Diagnostics, DiagnosticType, Severity, from_error
from .registry import Provider
from .versioning import ProviderState

log = logging.getLogger(__name__)

_DROP_TABLE_SQL = "DROP TABLE IF EXISTS {} CASCADE"

_DEPENDENT_VIEWS_SQL = """
SELECT DISTINCT CONCAT(dependent_ns.nspname, '.', dependent_view.relname) as dependent_view
FROM pg_depend
JOIN pg_rewrite ON pg_depend.objid = pg_rewrite.oid
JOIN pg_class as dependent_view ON pg_rewrite.ev_class = dependent_view.oid
JOIN pg_class as source_table ON pg_depend.refobjid = source_table.oid
JOIN pg_attribute ON pg_depend.refobjid = pg_attribute.attrelid AND pg_depend.refobjsubid = pg_attribute.attnum
JOIN pg_namespace dependent_ns ON dependent_ns.oid = dependent_view.relnamespace
JOIN pg_namespace source_ns ON source_ns.oid = source_table.relnamespace
WHERE source_ns.nspname = current_schema() AND source_table.relname = $1 AND pg_attribute.attnum > 0 ORDER BY 1
"""


class QueryExecer(Protocol):
    def exec(self, sql: str, *args) -> None: ...

    def query(self, sql: str, *args) -> Sequence: ...


class SyncState(enum.IntEnum):
    """Outcome of synchronising a provider's schema."""

    INSTALLED = 1
    UPGRADED = 2
    DOWNGRADED = 3
    NO_CHANGE = 4

    def __str__(self) -> str:
        return {
            SyncState.INSTALLED: "Installed",
            SyncState.UPGRADED: "Upgraded",
            SyncState.DOWNGRADED: "Downgraded",
            SyncState.NO_CHANGE: "NoChange",
        }[self]


@dataclass
class SyncResult:
    state: SyncState
    old_version: str = ""
    new_version: str = ""


@dataclass(frozen=True)
class Table:
    """A resource table: its columns as (name, type) pairs and its child tables."""

    name: str
    columns: tuple[tuple[str, str], ...] = ()
    relations: tuple["Table", ...] = field(default_factory=tuple)

    def table_names(self) -> list[str]:
        """This table's name followed by those of all its descendants."""
        names = [self.name]
        for relation in self.relations:
            names.extend(relation.table_names())
        return names

    def signature(self) -> str:
        """A digest of the table definition; equal definitions give equal signatures."""
        description = {
            "name": self.name,
            "columns": [list(column) for column in self.columns],
            "relations": [relation.signature() for relation in self.relations],
        }
        encoded = json.dumps(description, sort_keys=True).encode()
        return hashlib.sha256(encoded).hexdigest()


def _quote(name: str) -> str:
    return json.dumps(name, ensure_ascii=False)


def drop_table_sql(name: str) -> str:
    return _DROP_TABLE_SQL.format(_quote(name))


def determine_sync_state(current: Optional[ProviderState], wanted: ProviderState) -> SyncState:
    """Compare the installed provider state with the one wanted."""
    if wanted.parsed_version is None:
        raise ValueError("wanted provider state has no parsed version")
    if current is None or current.parsed_version is None:
        return SyncState.INSTALLED
    if current.parsed_version == wanted.parsed_version:
        return SyncState.NO_CHANGE
    if current.parsed_version < wanted.parsed_version:
        return SyncState.UPGRADED
    return SyncState.DOWNGRADED


def resource_table_names(resource_tables: Mapping[str, Table]) -> dict[str, list[str]]:
    return {name: table.table_names() for name, table in resource_tables.items()}


def resource_signatures(resource_tables: Mapping[str, Table]) -> dict[str, str]:
    return {name: table.signature() for name, table in resource_tables.items()}


def safe_to_drop_table(db: QueryExecer, resource_name: str, table: str) -> Diagnostics:
    """Report an error if any view depends on ``table``."""
    try:
        rows = db.query(_DEPENDENT_VIEWS_SQL, table)
    except Exception as err:  # the database layer may raise anything
        return from_error(err, DiagnosticType.DATABASE, summary="error checking dependent views")

    views = [row[0] if isinstance(row, (tuple, list)) else row for row in rows]
    if not views:
        return Diagnostics()
    return Diagnostics(
        [
            Diagnostic(
                type=DiagnosticType.USER,
                severity=Severity.ERROR,
                summary=(
                    f"One or more views depend on table {_quote(table)}, which is about to be "
                    "dropped. Run with --force-drop to override this message, which will drop "
                    "ALL dependent views."
                ),
                details=", ".join(views),
                resource=resource_name,
            )
        ]
    )


def drop_provider_tables(
    db: QueryExecer,
    provider: Provider,
    table_names: Mapping[str, list[str]],
    cur_signatures: Optional[Mapping[str, str]],
    want_signatures: Optional[Mapping[str, str]],
    force: bool = False,
) -> Diagnostics:
    """Drop a provider's migration table and the tables of resources whose definition changed.

    Unless ``force`` is set, tables with dependent views are left in place and reported.
    """
    migration_table = f"{provider.source}_{provider.name}_schema_migrations"
    try:
        db.exec(drop_table_sql(migration_table))
    except Exception as err:
        return from_error(
            err, DiagnosticType.DATABASE, summary="drop table failed", resource=migration_table
        )

    diags = Diagnostics()
    for name, tables in table_names.items():
        if (
            cur_signatures is not None
            and want_signatures is not None
            and cur_signatures.get(name, "")
            and want_signatures.get(name, "") == cur_signatures.get(name, "")
        ):
            log.debug("keeping tables and all data of %s for provider %s", name, provider.name)
            continue

        log.debug("deleting tables and all relations of %s for provider %s", name, provider.name)
        for table in tables:
            if not force:
                diags = diags.add(safe_to_drop_table(db, name, table))
            if diags.has_errors():
                continue
            try:
                db.exec(drop_table_sql(table))
            except Exception as err:
                return diags.add(
                    from_error(
                        err, DiagnosticType.DATABASE, summary="drop table failed", resource=table
                    )
                )
    return diags