from __future__ import annotations

from typing import List, Optional

import pytest

from miniorm.database import Database
from miniorm.errors import (
    ConfigurationError,
    ExecutionError,
    MiniOrmError,
    VersionMismatchError,
)
from miniorm.executor import TransactionalExecutor
from miniorm.infrastructure.database_type import DatabaseType
from miniorm.migrations import (
    ZERO_VERSION,
    CodeMigration,
    Migration,
    MigrationCollection,
    MigrationEngine,
    MigrationState,
    SimpleMigration,
    VersionStore,
    collect_migrations,
    content_id,
)

from conftest import FakePool


class InMemoryVersionStore(VersionStore):
    """Version marker kept in memory; written only when a migration commits."""

    def __init__(self, version: Optional[str] = None) -> None:
        super().__init__()
        self.version = version
        self.writes: List[str] = []

    def exists(self, conn) -> bool:
        return self.version is not None

    def initialize(self, conn) -> str:
        if self.version is None:
            self.version = ZERO_VERSION
        return self.version

    def read(self, conn) -> Optional[str]:
        return self.version

    def write(self, conn, version: str) -> None:
        self.writes.append(version)
        self.version = version


class _Collection:
    def __init__(self, *statements: str) -> None:
        self._statements = statements

    def migrations(self, database_type: DatabaseType) -> List[Migration]:
        return [SimpleMigration(s) for s in self._statements]


def _recording(ids: List[str], log: List[str], fail: Optional[str] = None) -> List[CodeMigration]:
    def _body(migration_id: str):
        def _run(conn) -> None:
            if migration_id == fail:
                raise RuntimeError(f"{migration_id} failed")
            log.append(migration_id)

        return _run

    return [CodeMigration(i, f"step {i}", _body(i)) for i in ids]


@pytest.fixture
def executor(fake_pool: FakePool) -> TransactionalExecutor:
    return TransactionalExecutor(fake_pool)


def test_fresh_database_applies_everything_in_order(
    executor: TransactionalExecutor, fake_pool: FakePool
) -> None:
    applied: List[str] = []
    store = InMemoryVersionStore()
    engine = MigrationEngine(executor, _recording(["a", "b", "c"], applied), store)

    report = engine.run()

    assert applied == ["a", "b", "c"]
    assert store.writes == ["a", "b", "c"]
    assert report.previous_version == ZERO_VERSION
    assert report.version == "c"
    assert report.applied == ["a", "b", "c"]
    assert report.state is MigrationState.UP_TO_DATE
    assert engine.state is MigrationState.UP_TO_DATE
    # one transaction to initialize plus one per migration
    assert fake_pool.events.count("commit") == 4


def test_resumes_after_recorded_version(executor: TransactionalExecutor) -> None:
    applied: List[str] = []
    store = InMemoryVersionStore("a")
    engine = MigrationEngine(executor, _recording(["a", "b", "c"], applied), store)

    report = engine.run()

    assert applied == ["b", "c"]
    assert report.previous_version == "a"
    assert engine.version == "c"


def test_up_to_date_run_writes_nothing(executor: TransactionalExecutor) -> None:
    applied: List[str] = []
    store = InMemoryVersionStore("c")
    engine = MigrationEngine(executor, _recording(["a", "b", "c"], applied), store)

    report = engine.run()

    assert applied == []
    assert store.writes == []
    assert report.applied == []
    assert report.version == "c"
    assert engine.state is MigrationState.UP_TO_DATE


def test_unknown_version_stops_before_applying(executor: TransactionalExecutor) -> None:
    applied: List[str] = []
    engine = MigrationEngine(
        executor, _recording(["a", "b"], applied), InMemoryVersionStore("gone")
    )

    with pytest.raises(VersionMismatchError) as exc_info:
        engine.run()

    assert exc_info.value.version == "gone"
    assert applied == []


def test_failed_migration_keeps_last_applied_version(
    executor: TransactionalExecutor, fake_pool: FakePool
) -> None:
    applied: List[str] = []
    store = InMemoryVersionStore()
    engine = MigrationEngine(executor, _recording(["a", "b", "c"], applied, fail="b"), store)

    with pytest.raises(ExecutionError) as exc_info:
        engine.run()

    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert applied == ["a"]
    assert store.version == "a"
    assert engine.version == "a"
    assert engine.state is MigrationState.APPLYING
    assert fake_pool.events.count("rollback") == 1
    assert fake_pool.checked_out == 0

    retry = MigrationEngine(executor, _recording(["a", "b", "c"], applied), store)
    assert retry.run().applied == ["b", "c"]
    assert applied == ["a", "b", "c"]


def test_current_version_reads_without_applying(executor: TransactionalExecutor) -> None:
    engine = MigrationEngine(executor, [], InMemoryVersionStore())
    assert engine.current_version() is None


@pytest.mark.parametrize(
    "ids,message",
    [
        (["a", "a"], "Duplicate migration id"),
        ([""], "must be 1 to 30 characters"),
        (["x" * 31], "must be 1 to 30 characters"),
        ([ZERO_VERSION], "reserved"),
    ],
)
def test_invalid_migration_ids_are_rejected(
    executor: TransactionalExecutor, ids: List[str], message: str
) -> None:
    with pytest.raises(ConfigurationError, match=message):
        MigrationEngine(executor, _recording(ids, []))


def test_simple_migration_id_is_stable_content_hash() -> None:
    statement = "CREATE TABLE person (id BIGSERIAL PRIMARY KEY, name TEXT NOT NULL)"
    migration = SimpleMigration(statement)

    assert migration.id == content_id(statement)
    assert migration.id == SimpleMigration(statement).id
    assert migration.id != SimpleMigration(statement + " ").id
    assert len(migration.id) == 16
    assert migration.description == statement[:40]


def test_simple_migration_accepts_stable_id() -> None:
    assert SimpleMigration("SELECT 1", stable_id="0001_init").id == "0001_init"


def test_simple_migration_executes_statement(fake_pool: FakePool) -> None:
    conn = fake_pool.getconn()
    SimpleMigration("CREATE INDEX person_name ON person (name)").execute(conn)
    assert fake_pool.statements == [("CREATE INDEX person_name ON person (name)", None)]


def test_collections_satisfy_protocols_and_concatenate() -> None:
    first = _Collection("CREATE TABLE a (x INT)")
    second = _Collection("CREATE TABLE b (x INT)", "CREATE TABLE c (x INT)")

    assert isinstance(first, MigrationCollection)
    migrations = collect_migrations([first, second], DatabaseType.POSTGRESQL)

    assert [m.description for m in migrations] == [
        "CREATE TABLE a (x INT)",
        "CREATE TABLE b (x INT)",
        "CREATE TABLE c (x INT)",
    ]
    assert all(isinstance(m, Migration) for m in migrations)


def test_version_store_creates_table_and_zero_row(fake_pool: FakePool) -> None:
    conn = fake_pool.getconn()
    store = VersionStore()

    assert store.initialize(conn) == ZERO_VERSION

    queries = [query for query, _ in fake_pool.statements]
    assert "information_schema.tables" in queries[0]
    assert fake_pool.statements[0][1] == ("migration",)
    assert queries[1] == 'CREATE TABLE "migration" ("version" VARCHAR(30) NOT NULL)'
    assert queries[2] == 'SELECT "version" FROM "migration"'
    assert fake_pool.statements[3] == (
        'INSERT INTO "migration" ("version") VALUES (%s)',
        (ZERO_VERSION,),
    )


def test_version_store_reads_existing_row(fake_pool: FakePool) -> None:
    fake_pool.select_results.extend([[(1,)], [("abc",)]])
    conn = fake_pool.getconn()

    assert VersionStore().initialize(conn) == "abc"
    assert len(fake_pool.statements) == 2


def test_version_store_read_before_creation(fake_pool: FakePool) -> None:
    assert VersionStore().read(fake_pool.getconn()) is None


def test_version_store_rejects_multiple_rows(fake_pool: FakePool) -> None:
    fake_pool.select_results.extend([[(1,)], [("a",), ("b",)]])

    with pytest.raises(MiniOrmError, match="does not contain a single row"):
        VersionStore().read(fake_pool.getconn())


def test_version_store_write_requires_single_row(fake_pool: FakePool) -> None:
    fake_pool.rowcount = 0

    with pytest.raises(MiniOrmError, match="does not contain a single row"):
        VersionStore().write(fake_pool.getconn(), "abc")


def test_database_migrate_uses_version_table(db: Database, fake_pool: FakePool) -> None:
    migration = SimpleMigration("CREATE TABLE tag (id BIGSERIAL PRIMARY KEY, label TEXT)")

    report = db.migrate([migration])

    assert report.applied == [migration.id]
    assert (migration.statement, None) in fake_pool.statements
    assert fake_pool.statements[-1] == (
        'UPDATE "migration" SET "version" = %s',
        (migration.id,),
    )
    assert fake_pool.checked_out == 0
