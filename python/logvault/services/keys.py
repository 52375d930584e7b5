"""Value keys identifying archive data.

A conversation-day is the triple (owner, peer, date). Peers are identified
by (peer_name_id, peer_server_id). All fields hold validated values.
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Peer:
    """Conversational counterpart."""

    name_id: int
    server_id: int


@dataclass(frozen=True)
class Triple:
    """One conversation-day: (owner, peer, date partition)."""

    owner_id: int
    peer: Peer
    date: str

    def params(self) -> dict[str, Any]:
        """Bound parameters shared by every triple-scoped statement."""
        return {
            "owner_id": self.owner_id,
            "peer_name_id": self.peer.name_id,
            "peer_server_id": self.peer.server_id,
            "date": self.date,
        }
