# cqcore

`cqcore` is a library for the core of a tool that collects cloud asset data
through provider plugins and stores it in PostgreSQL. It covers the pieces
around the plugins and around a fetch:

| Module | What it does |
| --- | --- |
| `cqcore.registry` | `Provider`, `ProviderBinary`, `Providers`, `RequiredProvider`; parsing provider names and sources |
| `cqcore.versioning` | `Version`, `parse_version`, `parse_semver`, `ProviderState`, `provider_from_registry` |
| `cqcore.hub` | `Hub`: provider binaries in a local plugin directory, update checks, download and checksum verification |
| `cqcore.manager` | `Manager`, `Plugin`, `Plugins`: tracking running plugins; `download` reporting failures as diagnostics |
| `cqcore.resources` | `normalize_resources`, `glob_resources`, `match_resource_glob` |
| `cqcore.sync` | `SyncState`, `SyncResult`, `Table`, `determine_sync_state`, `drop_provider_tables`, `safe_to_drop_table` |
| `cqcore.fetch` | `FetchStatus`, `ResourceFetchSummary`, `ProviderFetchSummary`, `FetchUpdate`, `FetchResponse` |
| `cqcore.purge` | `PurgeProviderDataResult`, `dry_run_query`, `last_update_cutoff` |
| `cqcore.updates` | `check_available_updates`, `managed_providers`, `normalize_schema_version` |
| `cqcore.version` | `check_core_update`: rate-limited check for a newer core release |
| `cqcore.postgres` | `parse_dialect_dsn`, `validate_postgres_version`, `get_database_info`, `Storage`, `DatabaseInfo` |
| `cqcore.diagnostics` | `Diagnostic`, `Diagnostics`, `Severity`, `DiagnosticType`, `SentryDiagnostic`, `from_error` |
| `cqcore.errors` | `classify_error`, `should_ignore_diag`, `is_cancellation`, `PgError` |

The package uses only the Python standard library and supports Python 3.10
and later.

## Provider names

A provider is named by its name alone, which places it in the default
`cloudquery` organisation, or as `organisation/name`; the organisation is
lower-cased:

```python
from cqcore.registry import RequiredProvider, parse_provider_name, parse_provider_source

parse_provider_name("aws")            # ("cloudquery", "aws")
parse_provider_name("my-org/custom")  # ("my-org", "custom")
parse_provider_source(RequiredProvider(name="custom", source="my-org"))  # ("my-org", "custom")
```

A name with more than one `/` raises `ValueError`.

## Versions

```python
from cqcore.versioning import parse_version, parse_semver

parse_version("v0.0.10") < parse_version("v0.0.11")  # True
parse_version("1.2.3-beta+build").prerelease()       # "beta"
str(parse_semver("9.5"))                             # "9.5.0"
```

Malformed text raises `VersionError`, a subclass of `ValueError`. Build
metadata is ignored when comparing.

## Choosing resources

`normalize_resources` takes the resources asked for, the resources to skip
and every resource the provider knows, and returns the sorted list to fetch:

```python
from cqcore.resources import ResourceSelectionError, normalize_resources

known = {"c1.res1", "c1.res2", "c2.res3", "c2.res4"}

normalize_resources(["c1.*", "c2.res4"], ["c1.res1"], known)
# ["c1.res2", "c2.res4"]

try:
    normalize_resources(["c1.res*"], [], known)
except ResourceSelectionError as exc:
    print(exc, "-", exc.details)
```

A lone `*` selects everything. Unknown resources, duplicates, empty names,
`*` mixed with explicit names, `*` in the skip list and any pattern other
than `*`, `prefix.*` or a full name raise `ResourceSelectionError`.

## Schema sync decisions

```python
from cqcore.registry import Provider
from cqcore.sync import determine_sync_state
from cqcore.versioning import provider_from_registry

installed = provider_from_registry(Provider("test", "v0.0.10", "cloudquery"))
wanted = provider_from_registry(Provider("test", "v0.0.11", "cloudquery"))
str(determine_sync_state(installed, wanted))  # "Upgraded"
str(determine_sync_state(None, wanted))       # "Installed"
```

`drop_provider_tables` takes any object with `exec(sql, *args)` and
`query(sql, *args)` methods. It drops the provider's migration table and
the tables of every resource whose `Table.signature()` changed; unless
`force` is set, tables that views depend on are kept and reported as
diagnostics.

## Fetch summaries

```python
from cqcore.fetch import FetchResponse, FetchStatus, ProviderFetchSummary

summary = ProviderFetchSummary(name="test", alias="test_alias", status=FetchStatus.FINISHED)
response = FetchResponse()
response.add(summary)
list(response.provider_fetch_summary)  # ["test(test_alias)"]
str(FetchStatus.CONFIGURE_FAILED)      # "configure_failed"
```

## Checking the database server

The checks take a function that runs a query and returns its result:

```python
from cqcore.postgres import PostgresVersionError, validate_postgres_version

validate_postgres_version(lambda sql: "PostgreSQL 12.5 on x86_64")  # passes
try:
    validate_postgres_version(lambda sql: "PostgreSQL 9.5 on x86_64")
except PostgresVersionError as exc:
    print(exc)  # unsupported PostgreSQL version: 9.5.0. (should be >= 10.0.0)
```

`parse_dialect_dsn` accepts PostgreSQL DSNs (URL or `key=value` form) and
raises `ValueError` for an empty DSN, a timescale DSN or an unknown scheme.

## Core update checks

```python
from cqcore.version import check_core_update

newer = check_core_update(".cq", now_unix=1_700_000_000, period=23 * 3600,
                          current_version="1.0.0",
                          get_latest_release=lambda owner, repo: "2.0.0")
```

The time and version last seen are kept in `.cq/last-update-check`, so the
release function is called at most once per period. A file whose content
starts with `disable` turns the check off.

## What the package does not do

- It has no command-line interface.
- It does not start provider plugins or speak their wire protocol.
  `Manager.create_plugin` calls a `launcher` you supply; without one it
  raises `RuntimeError`.
- It does not connect to a database. There is no state store for installed
  providers, fetch summaries or policy executions; the sync, purge and
  server checks produce SQL or take callables and objects you supply.
- It does not run a fetch against providers; `cqcore.fetch` only holds
  and summarises results.
- `Hub` does not know where releases live or check signatures by itself:
  it takes a `releases` object, a download base `url` and an optional
  `signature_validator`.
- Errors are classified and filtered, but nothing is sent to an error
  reporting service.

## Running the tests

Install the `test` extra and run `pytest` from the project directory.