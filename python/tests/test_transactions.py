"""Tests for TransactionCoordinator.

Tests cover:
- All steps succeed -> commit, context carries step values
- First failing step stops the run and rolls back earlier steps
- Compensations run only after rollback, in reverse order
- The original fault is surfaced
"""

import pytest

from logvault.errors import Fault, FaultKind
from logvault.services.fault_state import FaultState
from logvault.services.store import ArchiveStore, OpResult
from logvault.services.transactions import Compensation, Step, TransactionCoordinator
from tests.factories import pending_count
from tests.helpers import TRIPLE

INSERT_PENDING = """
    INSERT INTO pending_del (owner_id, peer_name_id, peer_server_id, date)
    VALUES (:owner_id, :peer_name_id, :peer_server_id, :date)
"""


@pytest.fixture
def store(db_session) -> ArchiveStore:
    return ArchiveStore(db_session, FaultState())


@pytest.fixture
def coordinator(store) -> TransactionCoordinator:
    return TransactionCoordinator(store)


def _insert_pending(store: ArchiveStore):
    return lambda ctx: store.execute("set_pending_deletion", INSERT_PENDING, TRIPLE.params())


def _failing_step(store: ArchiveStore):
    return lambda ctx: store.fail(Fault(FaultKind.query, "step failed", "failing"))


class TestRunSuccess:
    """Tests for the all-steps-succeed path."""

    def test_commits_and_returns_context(self, coordinator, store, db_session):
        result = coordinator.run(
            "demo",
            [
                Step("set_pending_deletion", _insert_pending(store)),
                Step("double", lambda ctx: OpResult.success(ctx["set_pending_deletion"] * 2)),
            ],
        )

        assert result
        assert result.value == {"set_pending_deletion": 1, "double": 2}
        db_session.rollback()
        assert pending_count(db_session, TRIPLE) == 1

    def test_compensations_not_run_on_success(self, coordinator, store):
        calls = []

        result = coordinator.run(
            "demo",
            [Step("noop", lambda ctx: OpResult.success())],
            compensations=[
                Compensation("undo", lambda: calls.append("undo") or OpResult.success())
            ],
        )

        assert result
        assert calls == []


class TestRunFailure:
    """Tests for the failing-step path."""

    def test_rolls_back_earlier_steps(self, coordinator, store, db_session):
        result = coordinator.run(
            "demo",
            [
                Step("set_pending_deletion", _insert_pending(store)),
                Step("failing", _failing_step(store)),
            ],
        )

        assert not result
        assert pending_count(db_session, TRIPLE) == 0

    def test_later_steps_never_run(self, coordinator, store):
        ran = []

        coordinator.run(
            "demo",
            [
                Step("failing", _failing_step(store)),
                Step("after", lambda ctx: ran.append("after") or OpResult.success()),
            ],
        )

        assert ran == []

    def test_original_fault_surfaced_and_session_clean(self, coordinator, store):
        result = coordinator.run("demo", [Step("failing", _failing_step(store))])

        assert result.fault.kind == FaultKind.query
        assert result.fault.label == "failing"
        assert not store.faults.is_faulty

    def test_compensations_run_in_reverse_order(self, coordinator, store):
        calls = []

        def compensation(name):
            return Compensation(name, lambda: calls.append(name) or OpResult.success())

        coordinator.run(
            "demo",
            [Step("failing", _failing_step(store))],
            compensations=[compensation("first"), compensation("second")],
        )

        assert calls == ["second", "first"]

    def test_failed_compensation_leaves_session_faulty(self, coordinator, store):
        result = coordinator.run(
            "demo",
            [Step("failing", _failing_step(store))],
            compensations=[
                Compensation(
                    "undo", lambda: store.fail(Fault(FaultKind.query, "undo failed", "undo"))
                )
            ],
        )

        assert result.fault.label == "failing"
        assert store.faults.is_faulty
        assert store.faults.last_fault.label == "undo"

    def test_faulty_store_fails_at_begin(self, coordinator, store):
        store.fail(Fault(FaultKind.validation, "bad input", "date"))
        ran = []

        result = coordinator.run(
            "demo", [Step("step", lambda ctx: ran.append("step") or OpResult.success())]
        )

        assert not result
        assert result.fault.kind == FaultKind.faulty
        assert ran == []
        assert store.faults.is_faulty
        assert store.faults.last_fault.kind == FaultKind.validation
