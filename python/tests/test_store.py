"""Tests for ArchiveStore: statement execution and fault conversion.

Tests cover:
- Successful selects and statements
- SQLAlchemy errors converted to faults (never raised)
- Connection vs. query classification
- Short-circuit while FAULTY, and rollback back to CLEAN
"""

import pytest
from sqlalchemy.exc import DisconnectionError, OperationalError

from logvault.errors import Fault, FaultKind
from logvault.services.fault_state import FaultState
from logvault.services.store import ArchiveStore, OpResult, classify_error
from tests.factories import pending_count
from tests.helpers import TRIPLE, fail_statement, record_statements


@pytest.fixture
def store(db_session) -> ArchiveStore:
    return ArchiveStore(db_session, FaultState())


INSERT_PENDING = """
    INSERT INTO pending_del (owner_id, peer_name_id, peer_server_id, date)
    VALUES (:owner_id, :peer_name_id, :peer_server_id, :date)
"""


class TestOpResult:
    """Tests for the OpResult value."""

    def test_success_is_truthy(self):
        result = OpResult.success(3)

        assert result
        assert result.value == 3
        assert result.fault is None

    def test_failure_is_falsy(self):
        fault = Fault(FaultKind.query, "boom")
        result = OpResult.failure(fault)

        assert not result
        assert result.fault == fault


class TestClassifyError:
    """Tests for SQLAlchemy error classification."""

    def test_disconnect_is_connection(self):
        assert classify_error(DisconnectionError("gone")) == FaultKind.connection

    def test_operational_error_is_query(self):
        exc = OperationalError("SELECT 1", {}, Exception("no such table"))
        assert classify_error(exc) == FaultKind.query

    def test_invalidated_connection_is_connection(self):
        exc = OperationalError(
            "SELECT 1", {}, Exception("server closed"), connection_invalidated=True
        )
        assert classify_error(exc) == FaultKind.connection


class TestStatements:
    """Tests for statement execution."""

    def test_execute_returns_rowcount(self, store, db_session):
        result = store.execute("set_pending_deletion", INSERT_PENDING, TRIPLE.params())

        assert result
        assert result.value == 1

    def test_select_scalar(self, store):
        result = store.select_scalar("one", "SELECT 1", {})

        assert result.value == 1

    def test_execute_autocommit_commits(self, store, db_session):
        store.execute_autocommit("set_pending_deletion", INSERT_PENDING, TRIPLE.params())
        db_session.rollback()

        assert pending_count(db_session, TRIPLE) == 1

    def test_missing_table_is_query_fault(self, store):
        result = store.select_rows("missing", 'SELECT * FROM "no_such_shard"', {})

        assert not result
        assert result.fault.kind == FaultKind.query
        assert result.fault.label == "missing"
        assert store.faults.is_faulty

    def test_injected_disconnect_is_connection_fault(self, store, monkeypatch):
        fail_statement(monkeypatch, "probe", connection=True)

        result = store.select_scalar("probe", "SELECT 1", {})

        assert result.fault.kind == FaultKind.connection
        assert store.faults.last_fault.kind == FaultKind.connection

    def test_fault_message_has_no_bound_values(self, store, monkeypatch):
        fail_statement(monkeypatch, "set_pending_deletion")

        result = store.execute("set_pending_deletion", INSERT_PENDING, TRIPLE.params())

        assert "2023-05-01" not in result.fault.message


class TestFaultyShortCircuit:
    """Tests for FAULTY behavior."""

    def test_faulty_store_does_not_touch_storage(self, store, monkeypatch):
        store.fail(Fault(FaultKind.query, "earlier failure", "earlier"))
        executed = record_statements(monkeypatch)

        results = [
            store.select_rows("a", "SELECT 1", {}),
            store.select_scalar("b", "SELECT 1", {}),
            store.execute("c", INSERT_PENDING, TRIPLE.params()),
            store.execute_autocommit("d", INSERT_PENDING, TRIPLE.params()),
            store.begin(),
            store.commit(),
        ]

        assert executed == []
        assert all(not result for result in results)
        assert all(result.fault.kind == FaultKind.faulty for result in results)

    def test_refusal_does_not_replace_original_fault(self, store):
        original = Fault(FaultKind.validation, "bad date", "date")
        store.fail(original)

        store.select_scalar("later", "SELECT 1", {})

        assert store.faults.last_fault == original

    def test_rollback_clears_fault_and_undoes_work(self, store, db_session):
        store.begin()
        store.execute("set_pending_deletion", INSERT_PENDING, TRIPLE.params())
        store.fail(Fault(FaultKind.query, "later step failed", "later"))

        assert store.rollback()

        assert not store.faults.is_faulty
        assert pending_count(db_session, TRIPLE) == 0

    def test_statements_work_after_rollback(self, store):
        store.fail(Fault(FaultKind.query, "boom"))
        store.rollback()

        assert store.select_scalar("one", "SELECT 1", {}).value == 1
