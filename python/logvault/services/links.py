"""Saved links ("my links") into archived conversations.

A link row carries its own soft-delete marker (ext). Links for a peer are
hidden while the conversation is in trash; trash/restore matches them by
link prefix. Listings only show live links.
"""

from dataclasses import dataclass

from logvault.db.schema import MYLINKS_TABLE
from logvault.services.keys import Peer
from logvault.services.store import ArchiveStore, OpResult


@dataclass(frozen=True)
class MyLink:
    link_id: int
    peer: Peer
    link_date: str
    link: str
    description: str | None


class LinkService:
    """CRUD over jorge_mylinks for one owner."""

    def __init__(self, store: ArchiveStore):
        self.store = store

    def add(
        self, owner_id: int, peer: Peer, link_date: str, link: str, description: str | None
    ) -> OpResult[None]:
        result = self.store.execute_autocommit(
            "add_mylink",
            f"""
                INSERT INTO {MYLINKS_TABLE}
                    (owner_id, peer_name_id, peer_server_id, datat, link, description)
                VALUES
                    (:owner_id, :peer_name_id, :peer_server_id, :link_date, :link, :description)
            """,
            {
                "owner_id": owner_id,
                "peer_name_id": peer.name_id,
                "peer_server_id": peer.server_id,
                "link_date": link_date,
                "link": link,
                "description": description,
            },
        )
        return OpResult.success() if result else OpResult.failure(result.fault)

    def delete(self, owner_id: int, link_id: int) -> OpResult[int]:
        """Physically remove one link. Returns the number of rows deleted."""
        return self.store.execute_autocommit(
            "delete_mylink",
            f"DELETE FROM {MYLINKS_TABLE} WHERE owner_id = :owner_id AND id_link = :link_id",
            {"owner_id": owner_id, "link_id": link_id},
        )

    def list_live(self, owner_id: int) -> OpResult[list[MyLink]]:
        result = self.store.select_rows(
            "list_mylinks",
            f"""
                SELECT id_link, peer_name_id, peer_server_id, datat, link, description
                FROM {MYLINKS_TABLE}
                WHERE owner_id = :owner_id
                AND ext IS NULL
                ORDER BY datat DESC, id_link DESC
            """,
            {"owner_id": owner_id},
        )
        if not result:
            return result
        return OpResult.success(
            [
                MyLink(
                    link_id=row["id_link"],
                    peer=Peer(row["peer_name_id"], row["peer_server_id"]),
                    link_date=row["datat"],
                    link=row["link"],
                    description=row["description"],
                )
                for row in result.value
            ]
        )

    def count_live(self, owner_id: int) -> OpResult[int]:
        result = self.store.select_scalar(
            "count_mylinks",
            f"""
                SELECT count(id_link) FROM {MYLINKS_TABLE}
                WHERE owner_id = :owner_id AND ext IS NULL
            """,
            {"owner_id": owner_id},
        )
        if not result:
            return result
        return OpResult.success(int(result.value or 0))
