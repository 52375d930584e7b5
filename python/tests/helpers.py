"""Test helpers for archive tests.

Provides:
- Shared scenario constants (owner, peer, day)
- Owner header generation for API requests
- Statement failure injection
"""

from collections.abc import Mapping
from typing import Any

import pytest
from sqlalchemy.exc import DisconnectionError, OperationalError

from logvault.middleware.owner import OWNER_HEADER
from logvault.services.keys import Peer, Triple
from logvault.services.store import ArchiveStore

TEST_HOST = "jabber.test.local"
TEST_DATE = "2023-05-01"
OWNER_ID = 42
PEER = Peer(7, 3)
TRIPLE = Triple(OWNER_ID, PEER, TEST_DATE)


def owner_headers(owner_id: int | str) -> dict[str, str]:
    """Return headers dict identifying the archive owner."""
    return {OWNER_HEADER: str(owner_id)}


def fail_statement(
    monkeypatch: pytest.MonkeyPatch, label: str, connection: bool = False
) -> list[str]:
    """Make every statement with the given label fail.

    Returns the list of labels that reached storage, in order, so tests
    can assert which statements ran.

    Args:
        monkeypatch: The test's monkeypatch fixture.
        label: Statement label to fail (e.g. "unset_pending_deletion").
        connection: Raise a disconnection instead of a statement error.
    """
    original = ArchiveStore._run
    executed: list[str] = []

    def _run(self: ArchiveStore, run_label: str, sql: str, params: Mapping[str, Any]):
        executed.append(run_label)
        if run_label == label:
            if connection:
                raise DisconnectionError("injected disconnect")
            raise OperationalError(sql, dict(params), Exception("injected failure"))
        return original(self, run_label, sql, params)

    monkeypatch.setattr(ArchiveStore, "_run", _run)
    return executed


def record_statements(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    """Record the labels of statements that reach storage, without failing any."""
    original = ArchiveStore._run
    executed: list[str] = []

    def _run(self: ArchiveStore, run_label: str, sql: str, params: Mapping[str, Any]):
        executed.append(run_label)
        return original(self, run_label, sql, params)

    monkeypatch.setattr(ArchiveStore, "_run", _run)
    return executed
