"""Storage boundary for archive sessions.

ArchiveStore is the only place that executes SQL for the archive services.
It owns three rules:

1. Statements are text() with bound parameters. Table names (which vary per
   shard) are quoted by the dialect before being placed in the statement.
2. SQLAlchemy errors are caught here, converted into a Fault, recorded on the
   session's FaultState, and returned as a failed OpResult. Nothing raises
   past this class.
3. While the session is FAULTY, every call fails immediately without
   contacting storage. rollback() is the exception: it always runs and
   returns the session to CLEAN.

Each statement carries a label (e.g. "set_pending_deletion") used in logs and
in the Fault, so a failure can be traced to the workflow step that caused it.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from sqlalchemy import text
from sqlalchemy.engine import CursorResult, RowMapping
from sqlalchemy.exc import (
    DBAPIError,
    DisconnectionError,
    InterfaceError,
    SQLAlchemyError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from logvault.errors import Fault, FaultKind
from logvault.logging import get_logger
from logvault.services.fault_state import FaultState
from logvault.services.routing import quote_table

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class OpResult(Generic[T]):
    """Outcome of an archive operation.

    Truthy on success. On failure, `fault` says why.
    """

    ok: bool
    value: T | None = None
    fault: Fault | None = None

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, value: T | None = None) -> "OpResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, fault: Fault) -> "OpResult[T]":
        return cls(ok=False, fault=fault)


def classify_error(exc: SQLAlchemyError) -> FaultKind:
    """Map a SQLAlchemy error to a fault kind."""
    if isinstance(exc, (DisconnectionError, InterfaceError, PoolTimeoutError)):
        return FaultKind.connection
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return FaultKind.connection
    return FaultKind.query


class ArchiveStore:
    """Executes archive statements on one database session."""

    def __init__(self, db: Session, faults: FaultState):
        self.db = db
        self.faults = faults

    # -------------------------------------------------------------------------
    # Fault handling
    # -------------------------------------------------------------------------

    def fail(self, fault: Fault) -> OpResult[Any]:
        """Record a fault on the session and return it as a failed result."""
        self.faults.mark_faulty(fault)
        return OpResult.failure(fault)

    def _refuse(self, label: str) -> OpResult[Any]:
        logger.debug("statement_refused", label=label)
        return OpResult.failure(
            Fault(FaultKind.faulty, "Session is faulty; roll back before retrying", label)
        )

    def _error(self, label: str, exc: SQLAlchemyError) -> OpResult[Any]:
        kind = classify_error(exc)
        logger.warning(
            "query_failed",
            label=label,
            fault_kind=kind.value,
            error_type=type(exc).__name__,
        )
        return self.fail(Fault(kind, f"Statement {label} failed", label))

    # -------------------------------------------------------------------------
    # Statement execution
    # -------------------------------------------------------------------------

    def quote(self, table_name: str) -> str:
        """Quote a table name for this session's dialect."""
        return quote_table(self.db, table_name)

    def _run(self, label: str, sql: str, params: Mapping[str, Any]) -> CursorResult:
        """Execute one statement. Raises SQLAlchemyError on failure."""
        return self.db.execute(text(sql), dict(params))

    def select_rows(
        self, label: str, sql: str, params: Mapping[str, Any]
    ) -> OpResult[Sequence[RowMapping]]:
        """Run a SELECT and return all rows as mappings."""
        if self.faults.is_faulty:
            return self._refuse(label)
        try:
            rows = self._run(label, sql, params).mappings().all()
        except SQLAlchemyError as exc:
            return self._error(label, exc)
        return OpResult.success(rows)

    def select_scalar(self, label: str, sql: str, params: Mapping[str, Any]) -> OpResult[Any]:
        """Run a SELECT returning a single value."""
        if self.faults.is_faulty:
            return self._refuse(label)
        try:
            value = self._run(label, sql, params).scalar()
        except SQLAlchemyError as exc:
            return self._error(label, exc)
        return OpResult.success(value)

    def execute(self, label: str, sql: str, params: Mapping[str, Any]) -> OpResult[int]:
        """Run an INSERT/UPDATE/DELETE and return the affected row count."""
        if self.faults.is_faulty:
            return self._refuse(label)
        try:
            result = self._run(label, sql, params)
        except SQLAlchemyError as exc:
            return self._error(label, exc)
        return OpResult.success(result.rowcount)

    def execute_autocommit(self, label: str, sql: str, params: Mapping[str, Any]) -> OpResult[int]:
        """Run a statement as its own unit of work, committed immediately.

        Used for message shard updates that sit outside the workflow
        transaction.
        """
        result = self.execute(label, sql, params)
        if not result:
            return result
        committed = self.commit()
        if not committed:
            return committed
        return result

    # -------------------------------------------------------------------------
    # Transaction primitives
    # -------------------------------------------------------------------------

    def begin(self) -> OpResult[None]:
        if self.faults.is_faulty:
            return self._refuse("begin")
        try:
            if not self.db.in_transaction():
                self.db.begin()
        except SQLAlchemyError as exc:
            return self._error("begin", exc)
        return OpResult.success()

    def commit(self) -> OpResult[None]:
        if self.faults.is_faulty:
            return self._refuse("commit")
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            return self._error("commit", exc)
        return OpResult.success()

    def rollback(self) -> OpResult[None]:
        """Roll back and return the session to CLEAN.

        Runs even while FAULTY. If the rollback itself fails the session
        cannot be trusted, so it is marked faulty again.
        """
        self.faults.clear()
        try:
            self.db.rollback()
        except SQLAlchemyError as exc:
            return self._error("rollback", exc)
        return OpResult.success()
