import pytest

from cqcore.diagnostics import DiagnosticType
from cqcore.registry import Provider
from cqcore.sync import (
    SyncResult,
    SyncState,
    Table,
    determine_sync_state,
    drop_provider_tables,
    drop_table_sql,
    resource_signatures,
    resource_table_names,
    safe_to_drop_table,
)
from cqcore.versioning import provider_from_registry

PROVIDER = Provider(name="test", version="v0.0.10", source="cloudquery")
MIGRATION_TABLE = "cloudquery_test_schema_migrations"


class FakeDB:
    def __init__(self, views=None, fail_exec_on=None, fail_query=False):
        self.views = views or {}
        self.fail_exec_on = fail_exec_on
        self.fail_query = fail_query
        self.executed = []
        self.queried = []

    def exec(self, sql, *args):
        if self.fail_exec_on is not None and self.fail_exec_on in sql:
            raise RuntimeError("boom")
        self.executed.append(sql)

    def query(self, sql, *args):
        if self.fail_query:
            raise RuntimeError("query failed")
        self.queried.append(args[0])
        return [(v,) for v in self.views.get(args[0], [])]


def state(version):
    return provider_from_registry(Provider(name="test", version=version, source="cloudquery"))


def test_drop_table_sql_quotes_name():
    assert drop_table_sql("slow_resource") == 'DROP TABLE IF EXISTS "slow_resource" CASCADE'


@pytest.mark.parametrize(
    "current, wanted, expected_name",
    [
        (None, "v0.0.10", "Installed"),
        ("v0.0.10", "v0.0.11", "Upgraded"),
        ("v0.0.11", "v0.0.10", "Downgraded"),
        ("v0.0.10", "v0.0.10", "NoChange"),
    ],
)
def test_sync_state_names(current, wanted, expected_name):
    cur = state(current) if current is not None else None
    assert str(determine_sync_state(cur, state(wanted))) == expected_name


@pytest.mark.parametrize(
    "current, wanted, expected",
    [
        (None, "v0.0.10", SyncState.INSTALLED),
        ("v0.0.10", "v0.0.11", SyncState.UPGRADED),
        ("v0.0.11", "v0.0.10", SyncState.DOWNGRADED),
        ("v0.0.10", "v0.0.10", SyncState.NO_CHANGE),
        ("not-a-version", "v0.0.10", SyncState.INSTALLED),
    ],
)
def test_determine_sync_state(current, wanted, expected):
    cur = state(current) if current is not None else None
    assert determine_sync_state(cur, state(wanted)) is expected


def test_determine_sync_state_requires_wanted_version():
    with pytest.raises(ValueError):
        determine_sync_state(None, state("junk"))


def test_sync_result_defaults():
    result = SyncResult(state=SyncState.INSTALLED, new_version="v0.0.10")
    assert result == SyncResult(SyncState.INSTALLED, "", "v0.0.10")


def test_table_names_include_relations_depth_first():
    child = Table("parent_child", relations=(Table("parent_child_grand"),))
    table = Table("parent", relations=(child, Table("parent_other")))
    assert table.table_names() == ["parent", "parent_child", "parent_child_grand", "parent_other"]


def test_signature_is_stable_and_sensitive():
    a = Table("slow_resource", columns=(("some_bool", "bool"),))
    b = Table("slow_resource", columns=(("some_bool", "bool"),))
    c = Table("slow_resource", columns=(("some_bool", "text"),))
    assert a.signature() == b.signature()
    assert a.signature() != c.signature()


def test_resource_maps():
    tables = {"r": Table("t", columns=(("x", "int"),), relations=(Table("t_c"),))}
    assert resource_table_names(tables) == {"r": ["t", "t_c"]}
    assert resource_signatures(tables) == {"r": tables["r"].signature()}


def test_drop_drops_migration_then_tables():
    db = FakeDB()
    diags = drop_provider_tables(db, PROVIDER, {"r": ["t1", "t2"]}, None, None)
    assert not diags.has_diags()
    assert db.executed == [drop_table_sql(MIGRATION_TABLE), drop_table_sql("t1"), drop_table_sql("t2")]
    assert db.queried == ["t1", "t2"]


def test_drop_keeps_tables_with_matching_signatures():
    db = FakeDB()
    diags = drop_provider_tables(db, PROVIDER, {"r": ["t1"]}, {"r": "sig"}, {"r": "sig"})
    assert not diags.has_diags()
    assert db.executed == [drop_table_sql(MIGRATION_TABLE)]


def test_drop_with_force_skips_view_check():
    db = FakeDB(views={"t1": ["public.v1"]})
    diags = drop_provider_tables(db, PROVIDER, {"r": ["t1"]}, None, None, force=True)
    assert not diags.has_diags()
    assert db.queried == []
    assert drop_table_sql("t1") in db.executed


def test_drop_refuses_tables_with_dependent_views():
    db = FakeDB(views={"t1": ["public.v1", "public.v2"]})
    diags = drop_provider_tables(db, PROVIDER, {"r": ["t1"]}, None, None)
    assert diags.has_errors()
    assert diags[0].type is DiagnosticType.USER
    assert diags[0].resource == "r"
    assert diags[0].details == "public.v1, public.v2"
    assert drop_table_sql("t1") not in db.executed


def test_drop_migration_table_failure():
    db = FakeDB(fail_exec_on=MIGRATION_TABLE)
    diags = drop_provider_tables(db, PROVIDER, {"r": ["t1"]}, None, None)
    assert len(diags) == 1
    assert diags[0].type is DiagnosticType.DATABASE
    assert diags[0].resource == MIGRATION_TABLE
    assert diags[0].summary.startswith("drop table failed")


def test_drop_table_failure_stops():
    db = FakeDB(fail_exec_on='"t1"')
    diags = drop_provider_tables(db, PROVIDER, {"r": ["t1", "t2"]}, None, None)
    assert diags.has_errors()
    assert diags[-1].resource == "t1"
    assert drop_table_sql("t2") not in db.executed


def test_safe_to_drop_without_views():
    assert not safe_to_drop_table(FakeDB(), "r", "t1").has_diags()


def test_safe_to_drop_query_failure():
    diags = safe_to_drop_table(FakeDB(fail_query=True), "r", "t1")
    assert diags[0].type is DiagnosticType.DATABASE
    assert diags[0].summary.startswith("error checking dependent views")