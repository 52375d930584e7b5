"""Tests for the SQLite ranked match function."""

import pytest
from sqlalchemy import text

from logvault.db.fulltext import SQLITE_MATCH_FUNCTION, match_score, parse_query_terms


class TestParseQueryTerms:
    def test_plain_terms(self):
        assert parse_query_terms("Hello World") == ([("hello", False), ("world", False)], [])

    def test_prefix_and_exclusion(self):
        required, excluded = parse_query_terms("+meet* -lunch")

        assert required == [("meet", True)]
        assert excluded == [("lunch", False)]

    def test_empty_query(self):
        assert parse_query_terms("") == ([], [])


class TestMatchScore:
    @pytest.mark.parametrize(
        "body,query,expected",
        [
            ("hello there", "hello", 1.0),
            ("Hello hello HELLO", "hello", 3.0),
            ("hello there", "there hello", 2.0),
            ("meeting at noon", "meet*", 1.0),
            ("meeting at noon", "meet", 0.0),
            ("lunch meeting", "meeting -lunch", 0.0),
            ("hello there", "goodbye", 0.0),
            (None, "hello", 0.0),
            ("hello", "", 0.0),
            ("hello", "-hello", 0.0),
        ],
    )
    def test_scores(self, body, query, expected):
        assert match_score(body, query) == expected

    def test_punctuation_is_not_part_of_words(self):
        assert match_score("hello, world!", "world") == 1.0


def test_function_registered_on_engine(engine):
    with engine.connect() as conn:
        score = conn.execute(
            text(f"SELECT {SQLITE_MATCH_FUNCTION}(:body, :query)"),
            {"body": "ping pong ping", "query": "ping"},
        ).scalar()

    assert score == 2.0
