"""Archive services.

Route handlers and scripts use ArchiveSession. The other modules are the
pieces it wires together: validation, shard routing, fault state, the SQL
store, transaction coordination, recount, trash workflows and search.
"""

from logvault.services.archive import ArchiveSession
from logvault.services.keys import Peer, Triple
from logvault.services.store import OpResult

__all__ = [
    "ArchiveSession",
    "OpResult",
    "Peer",
    "Triple",
]
