"""Transaction coordination for multi-statement archive workflows.

TransactionCoordinator.run() wraps an ordered list of steps in one
transaction:

    begin -> step 1 -> step 2 -> ... -> commit

The first step that fails stops the run: later steps never execute, the
transaction is rolled back, and Failure is returned. Steps inside the
transaction need no undo logic of their own because rollback covers them.

Some work cannot live inside the transaction (message shards may not take
part in it). A workflow that did such work before calling run() registers a
Compensation for it. Compensations run only after a rollback, in reverse
registration order, each as its own committed unit.

Steps share a context dict. Each successful step's value is stored under the
step name, so later steps can read earlier results.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from logvault.errors import FaultKind
from logvault.logging import get_logger
from logvault.services.store import ArchiveStore, OpResult

logger = get_logger(__name__)


@dataclass(frozen=True)
class Step:
    """One statement (or statement group) inside the transaction."""

    name: str
    action: Callable[[dict[str, Any]], OpResult[Any]]


@dataclass(frozen=True)
class Compensation:
    """Undo action for work performed outside the transaction."""

    name: str
    action: Callable[[], OpResult[Any]]


class TransactionCoordinator:
    """Runs steps atomically on an ArchiveStore."""

    def __init__(self, store: ArchiveStore):
        self.store = store

    def run(
        self,
        workflow: str,
        steps: Sequence[Step],
        compensations: Sequence[Compensation] = (),
    ) -> OpResult[dict[str, Any]]:
        """Execute steps in one transaction.

        Args:
            workflow: Name used in log events.
            steps: Ordered steps; each receives the shared context.
            compensations: Undo actions for pre-transaction work, run in
                reverse order if the transaction is rolled back.

        Returns:
            Success with the context dict, or Failure carrying the fault of
            the first failing step.
        """
        begun = self.store.begin()
        if not begun:
            if begun.fault.kind is FaultKind.faulty:
                # Already FAULTY before this workflow; only the caller may roll back
                return OpResult.failure(begun.fault)
            return self._abort(workflow, "begin", begun, compensations)

        context: dict[str, Any] = {}
        for step in steps:
            result = step.action(context)
            if not result:
                return self._abort(workflow, step.name, result, compensations)
            context[step.name] = result.value

        committed = self.store.commit()
        if not committed:
            return self._abort(workflow, "commit", committed, compensations)

        logger.debug("transaction_committed", workflow=workflow, steps=len(steps))
        return OpResult.success(context)

    def _abort(
        self,
        workflow: str,
        failed_step: str,
        result: OpResult[Any],
        compensations: Sequence[Compensation],
    ) -> OpResult[dict[str, Any]]:
        fault = result.fault
        logger.warning(
            "transaction_rolled_back",
            workflow=workflow,
            failed_step=failed_step,
            fault_kind=fault.kind.value if fault else None,
        )
        self.store.rollback()

        for compensation in reversed(compensations):
            outcome = compensation.action()
            if outcome:
                logger.info(
                    "compensation_applied", workflow=workflow, compensation=compensation.name
                )
            else:
                logger.error(
                    "compensation_failed",
                    workflow=workflow,
                    compensation=compensation.name,
                    fault_kind=outcome.fault.kind.value if outcome.fault else None,
                )

        # Surface the original fault; the rollback left the session CLEAN
        # unless a compensation failed.
        return OpResult.failure(fault) if fault else result
