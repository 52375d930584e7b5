"""Tests for ranked archive search.

Tests cover:
- Ordering by score, ties broken by message time
- Result cap of 100 and the per-shard scan cap
- Owner and peer scoping
- Multi-day searches appending into one result set
- Trashed rows surfaced with their marker
"""

import pytest

from logvault.errors import FaultKind
from logvault.services.archive import ArchiveSession
from logvault.services.keys import Peer, Triple
from logvault.services.search import (
    SearchHit,
    SearchResultSet,
    hash_query,
    rank_expressions,
)
from tests.factories import BASE_TS, create_shard, insert_messages, seed_conversation
from tests.helpers import OWNER_ID, PEER, TEST_DATE, TEST_HOST, TRIPLE, record_statements

OTHER_DATE = "2023-05-02"


def _hit(score: float, ts: float) -> SearchHit:
    return SearchHit(
        ts=ts,
        time_slice=TEST_DATE,
        peer_name_id=7,
        peer_server_id=3,
        direction="to",
        body="x",
        score=score,
        ext=None,
    )


class TestSearchResultSet:
    def test_top_orders_by_score_then_time(self):
        results = SearchResultSet(limit=10)
        results.extend([_hit(1.0, 30.0), _hit(3.0, 20.0), _hit(1.0, 10.0)])

        assert [(hit.score, hit.ts) for hit in results.top()] == [
            (3.0, 20.0),
            (1.0, 10.0),
            (1.0, 30.0),
        ]

    def test_top_is_capped(self):
        results = SearchResultSet(limit=2)
        results.extend([_hit(float(i), float(i)) for i in range(5)])

        assert len(results) == 5
        assert [hit.score for hit in results.top()] == [4.0, 3.0]

    def test_keeps_only_best_hits_across_batches(self):
        results = SearchResultSet(limit=3)

        for batch in range(4):
            results.extend([_hit(float(batch * 10 + i), float(i)) for i in range(50)])
            assert len(results.top()) == 3

        assert len(results) == 200
        assert [hit.score for hit in results.top()] == [79.0, 78.0, 77.0]

    def test_ties_keep_earlier_message_across_batches(self):
        results = SearchResultSet(limit=1)
        results.extend([_hit(2.0, 50.0)])
        results.extend([_hit(2.0, 10.0), _hit(1.0, 1.0)])

        assert [hit.ts for hit in results.top()] == [10.0]


class TestRankExpressions:
    def test_postgresql_uses_ts_rank(self):
        score, predicate = rank_expressions("postgresql")

        assert score.startswith("ts_rank(")
        assert "@@" in predicate

    @pytest.mark.parametrize("dialect", ["mysql", "mariadb"])
    def test_mysql_uses_boolean_mode(self, dialect):
        score, predicate = rank_expressions(dialect)

        assert score == predicate
        assert "IN BOOLEAN MODE" in score

    def test_sqlite_uses_registered_function(self):
        score, predicate = rank_expressions("sqlite")

        assert score == "logvault_match(body, :query)"
        assert predicate == "logvault_match(body, :query) > 0"


def test_hash_query_does_not_leak_text():
    digest = hash_query("secret words")

    assert len(digest) == 12
    assert "secret" not in digest
    assert digest == hash_query("secret words")


class TestSearch:
    def test_ranked_by_score(self, archive, db_session):
        insert_messages(db_session, TRIPLE, 1, body="apple", start_ts=BASE_TS)
        insert_messages(db_session, TRIPLE, 1, body="apple apple apple", start_ts=BASE_TS + 10)
        insert_messages(db_session, TRIPLE, 1, body="apple apple", start_ts=BASE_TS + 20)
        insert_messages(db_session, TRIPLE, 1, body="banana", start_ts=BASE_TS + 30)

        hits = archive.search("apple", TEST_DATE).value

        assert [hit.score for hit in hits] == [3.0, 2.0, 1.0]
        assert [hit.body for hit in hits] == ["apple apple apple", "apple apple", "apple"]
        assert all(hit.time_slice == TEST_DATE for hit in hits)

    def test_result_cap(self, archive, db_session):
        insert_messages(db_session, TRIPLE, 150, body="match me")

        hits = archive.search("match", TEST_DATE).value

        assert len(hits) == 100
        assert archive.searcher.results is not None
        assert len(archive.searcher.results) == 150

    def test_result_cap_from_session_settings(self, db_session):
        archive = ArchiveSession(db_session, TEST_HOST, search_result_limit=5)
        archive.set_owner(OWNER_ID)
        insert_messages(db_session, TRIPLE, 8, body="match me")

        assert len(archive.search("match", TEST_DATE).value) == 5

    def test_shard_scan_cap_keeps_best_rows(self, db_session):
        archive = ArchiveSession(db_session, TEST_HOST, search_shard_limit=2)
        archive.set_owner(OWNER_ID)
        insert_messages(db_session, TRIPLE, 3, body="tea")
        insert_messages(db_session, TRIPLE, 1, body="tea tea tea", start_ts=BASE_TS + 100)
        insert_messages(db_session, TRIPLE, 1, body="tea tea", start_ts=BASE_TS + 200)

        hits = archive.search("tea", TEST_DATE).value

        assert [hit.score for hit in hits] == [3.0, 2.0]

    def test_scoped_to_owner(self, archive, db_session):
        insert_messages(db_session, TRIPLE, 2, body="shared word")
        insert_messages(db_session, Triple(OWNER_ID + 1, PEER, TEST_DATE), 3, body="shared word")

        assert len(archive.search("shared", TEST_DATE).value) == 2

    def test_scoped_to_peer(self, archive, db_session):
        other_peer = Peer(8, 3)
        insert_messages(db_session, TRIPLE, 2, body="ping")
        insert_messages(db_session, Triple(OWNER_ID, other_peer, TEST_DATE), 4, body="ping")

        everyone = archive.search("ping", TEST_DATE).value
        one_peer = archive.search("ping", TEST_DATE, other_peer.name_id, other_peer.server_id)

        assert len(everyone) == 6
        assert len(one_peer.value) == 4
        assert {hit.peer for hit in one_peer.value} == {other_peer}

    def test_trashed_rows_are_flagged(self, archive, db_session):
        insert_messages(db_session, TRIPLE, 1, body="kept")
        insert_messages(db_session, TRIPLE, 1, body="kept", ext=1, start_ts=BASE_TS + 5)

        hits = archive.search("kept", TEST_DATE).value

        assert sorted(hit.trashed for hit in hits) == [False, True]

    def test_blank_query_returns_nothing(self, archive, db_session, monkeypatch):
        insert_messages(db_session, TRIPLE, 3)
        executed = record_statements(monkeypatch)

        result = archive.search("   ", TEST_DATE)

        assert result
        assert result.value == []
        assert executed == []

    def test_no_match(self, archive, db_session):
        insert_messages(db_session, TRIPLE, 3)

        result = archive.search("absent", TEST_DATE)

        assert result
        assert result.value == []

    def test_missing_shard_fails(self, archive):
        result = archive.search("hello", "1999-01-01")

        assert not result
        assert result.fault.kind == FaultKind.query
        assert result.fault.label == "search_shard"
        assert archive.is_faulty()

    def test_invalid_date_fails_validation(self, archive):
        result = archive.search("hello", "yesterday")

        assert not result
        assert result.fault.kind == FaultKind.validation
        assert archive.is_faulty()


class TestSearchMany:
    @pytest.fixture
    def two_days(self, engine, db_session):
        create_shard(engine, OTHER_DATE)
        insert_messages(db_session, TRIPLE, 2, body="note")
        insert_messages(
            db_session, Triple(OWNER_ID, PEER, OTHER_DATE), 1, body="note note", start_ts=BASE_TS
        )

    def test_appends_across_days(self, archive, two_days):
        hits = archive.search_many("note", [TEST_DATE, OTHER_DATE]).value

        assert [hit.time_slice for hit in hits] == [OTHER_DATE, TEST_DATE, TEST_DATE]

    def test_new_search_discards_previous_results(self, archive, two_days):
        archive.search_many("note", [TEST_DATE, OTHER_DATE])
        hits = archive.search("note", OTHER_DATE).value

        assert len(hits) == 1
        assert len(archive.searcher.results) == 1

    def test_stops_at_first_failing_shard(self, archive, two_days, monkeypatch):
        executed = record_statements(monkeypatch)

        result = archive.search_many("note", [TEST_DATE, "1999-01-01", OTHER_DATE])

        assert not result
        assert executed == ["search_shard", "search_shard"]

    def test_search_archive_uses_days_with_stats(self, archive, engine, db_session):
        create_shard(engine, OTHER_DATE)
        seed_conversation(db_session, TRIPLE, 1, body="alpha")
        seed_conversation(db_session, Triple(OWNER_ID, PEER, OTHER_DATE), 1, body="alpha beta")

        hits = archive.search_archive("alpha").value

        assert {hit.time_slice for hit in hits} == {TEST_DATE, OTHER_DATE}

    def test_search_archive_without_days(self, archive):
        result = archive.search_archive("alpha")

        assert result
        assert result.value == []
