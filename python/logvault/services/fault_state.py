"""Per-session fault state.

A session is either CLEAN or FAULTY. Any query, connection or validation
failure moves it to FAULTY; from then on every data operation fails without
touching storage. Only a rollback returns it to CLEAN, giving the caller a
clean slate to retry.

The state belongs to one ArchiveSession. It is never shared between
sessions or stored globally.
"""

from enum import Enum

from logvault.errors import Fault
from logvault.logging import get_logger

logger = get_logger(__name__)


class SessionState(str, Enum):
    """Session states."""

    clean = "clean"
    faulty = "faulty"


class FaultState:
    """Two-state machine tracking whether a session may keep working."""

    def __init__(self) -> None:
        self._state = SessionState.clean
        self._fault: Fault | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_faulty(self) -> bool:
        return self._state is SessionState.faulty

    @property
    def last_fault(self) -> Fault | None:
        """The fault that moved the session to FAULTY (None while CLEAN)."""
        return self._fault

    def mark_faulty(self, fault: Fault) -> None:
        """CLEAN -> FAULTY. The first fault is kept; later ones are only logged."""
        if self._state is SessionState.clean:
            self._state = SessionState.faulty
            self._fault = fault
        logger.warning(
            "session_faulty",
            fault_kind=fault.kind.value,
            fault_label=fault.label,
            fault_message=fault.message,
        )

    def clear(self) -> None:
        """FAULTY -> CLEAN. Called by rollback only."""
        if self._state is SessionState.faulty:
            logger.info("session_fault_cleared", fault_kind=self._fault.kind.value)
        self._state = SessionState.clean
        self._fault = None
