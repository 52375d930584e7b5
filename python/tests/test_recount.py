"""Tests for ConsistencyRecalculator.

Tests cover:
- recount counts live rows only
- reconcile: insert, update, and duplicate-row repair
- update rowcount mismatch becomes a consistency fault
- verify / repair of diverged stats
"""

import pytest

from logvault.errors import FaultKind
from logvault.services.fault_state import FaultState
from logvault.services.keys import Peer, Triple
from logvault.services.recount import ConsistencyRecalculator, ConsistencyReport
from logvault.services.routing import ShardRouter
from logvault.services.store import ArchiveStore, OpResult
from logvault.services.transactions import TransactionCoordinator
from tests.factories import insert_messages, insert_pending, insert_stats, stat_counts
from tests.helpers import OWNER_ID, PEER, TEST_HOST, TRIPLE


@pytest.fixture
def store(db_session) -> ArchiveStore:
    return ArchiveStore(db_session, FaultState())


@pytest.fixture
def recalculator(store) -> ConsistencyRecalculator:
    return ConsistencyRecalculator(store, ShardRouter(TEST_HOST), TransactionCoordinator(store))


class TestRecount:
    """Tests for recount()."""

    def test_counts_live_rows_only(self, recalculator, db_session):
        insert_messages(db_session, TRIPLE, 5)
        insert_messages(db_session, TRIPLE, 3, ext=1, start_ts=2_000_000_000.0)

        assert recalculator.recount(TRIPLE).value == 5

    def test_scoped_to_owner_and_peer(self, recalculator, db_session):
        insert_messages(db_session, TRIPLE, 2)
        insert_messages(db_session, Triple(OWNER_ID + 1, PEER, TRIPLE.date), 4)
        insert_messages(db_session, Triple(OWNER_ID, Peer(8, 3), TRIPLE.date), 6)

        assert recalculator.recount(TRIPLE).value == 2

    def test_empty_conversation_counts_zero(self, recalculator):
        assert recalculator.recount(TRIPLE).value == 0

    def test_missing_shard_is_query_fault(self, recalculator, store):
        result = recalculator.recount(Triple(OWNER_ID, PEER, "1999-01-01"))

        assert not result
        assert result.fault.kind == FaultKind.query
        assert store.faults.is_faulty


class TestReconcile:
    """Tests for the insert-vs-update decision."""

    def test_inserts_when_no_row(self, recalculator, db_session):
        result = recalculator.reconcile(TRIPLE, 5)

        assert result.value == "inserted"
        assert stat_counts(db_session, TRIPLE) == [5]

    def test_updates_single_row(self, recalculator, db_session):
        insert_stats(db_session, TRIPLE, 2)

        result = recalculator.reconcile(TRIPLE, 5)

        assert result.value == "updated"
        assert stat_counts(db_session, TRIPLE) == [5]

    def test_duplicate_rows_replaced_by_recount(self, recalculator, db_session):
        insert_stats(db_session, TRIPLE, 2)
        insert_stats(db_session, TRIPLE, 9)

        result = recalculator.reconcile(TRIPLE, 5)

        assert result.value == "repaired"
        assert stat_counts(db_session, TRIPLE) == [5]

    def test_update_rowcount_mismatch_is_consistency_fault(
        self, recalculator, store, db_session, monkeypatch
    ):
        """Probe saw one row but the update touched none (concurrent change)."""
        insert_stats(db_session, TRIPLE, 2)
        monkeypatch.setattr(store, "execute", lambda label, sql, params: OpResult.success(0))

        result = recalculator.reconcile(TRIPLE, 5)

        assert not result
        assert result.fault.kind == FaultKind.consistency
        assert store.faults.is_faulty


class TestVerify:
    """Tests for verify() and repair."""

    def test_consistent_live_conversation(self, recalculator, db_session):
        insert_messages(db_session, TRIPLE, 5)
        insert_stats(db_session, TRIPLE, 5)

        report = recalculator.verify(TRIPLE).value

        assert report.consistent
        assert report.live_count == 5
        assert report.stat_counts == [5]
        assert not report.repaired

    def test_divergence_reported_without_repair(self, recalculator, db_session):
        insert_messages(db_session, TRIPLE, 5)
        insert_stats(db_session, TRIPLE, 3)

        report = recalculator.verify(TRIPLE).value

        assert not report.consistent
        assert stat_counts(db_session, TRIPLE) == [3]

    def test_repair_overwrites_stats_with_recount(self, recalculator, db_session):
        insert_messages(db_session, TRIPLE, 5)
        insert_stats(db_session, TRIPLE, 3)

        report = recalculator.verify(TRIPLE, repair=True).value

        assert report.repaired
        assert report.consistent
        db_session.rollback()
        assert stat_counts(db_session, TRIPLE) == [5]

    def test_repair_inserts_missing_row(self, recalculator, db_session):
        insert_messages(db_session, TRIPLE, 4)

        report = recalculator.verify(TRIPLE, repair=True).value

        assert report.repaired
        assert stat_counts(db_session, TRIPLE) == [4]

    def test_trashed_conversation_is_not_repaired(self, recalculator, db_session):
        insert_messages(db_session, TRIPLE, 5)
        insert_pending(db_session, TRIPLE)

        report = recalculator.verify(TRIPLE, repair=True).value

        assert report.in_trash
        assert not report.consistent
        assert not report.repaired
        assert stat_counts(db_session, TRIPLE) == []


class TestConsistencyReport:
    """Tests for the consistency rule."""

    @pytest.mark.parametrize(
        "live,stats,in_trash,expected",
        [
            (5, [5], False, True),
            (5, [4], False, False),
            (0, [], False, True),
            (5, [], False, False),
            (5, [5, 5], False, False),
            (0, [], True, True),
            (0, [3], True, False),
            (2, [], True, False),
        ],
    )
    def test_consistent(self, live, stats, in_trash, expected):
        report = ConsistencyReport(TRIPLE, live, stats, in_trash)

        assert report.consistent is expected
