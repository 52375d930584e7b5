"""Ranked text matching for SQLite.

PostgreSQL and MySQL rank natively (ts_rank / MATCH ... AGAINST). SQLite has
no ranked match outside FTS virtual tables, and message shards are plain
tables, so the engine registers `logvault_match(body, query)` on every new
connection. It follows MySQL boolean-mode conventions closely enough for the
archive's needs:

- terms are matched case-insensitively against word tokens of the body
- a trailing `*` makes a term a prefix match
- a leading `-` excludes rows containing the term
- a leading `+` is accepted and treated like a plain term

The score is the number of term occurrences in the body, 0.0 when the row
does not match.
"""

import re

SQLITE_MATCH_FUNCTION = "logvault_match"

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)
_QUERY_TERM_RE = re.compile(r"([+-]?)(\w+)(\*?)", re.UNICODE)


def parse_query_terms(query: str) -> tuple[list[tuple[str, bool]], list[tuple[str, bool]]]:
    """Split a boolean-mode query into (required, excluded) term lists.

    Each term is (lowercased word, is_prefix).
    """
    required: list[tuple[str, bool]] = []
    excluded: list[tuple[str, bool]] = []
    for sign, word, star in _QUERY_TERM_RE.findall(query or ""):
        term = (word.lower(), star == "*")
        if sign == "-":
            excluded.append(term)
        else:
            required.append(term)
    return required, excluded


def _occurrences(tokens: list[str], term: str, is_prefix: bool) -> int:
    if is_prefix:
        return sum(1 for token in tokens if token.startswith(term))
    return sum(1 for token in tokens if token == term)


def match_score(body: str | None, query: str | None) -> float:
    """Score a message body against a query (SQLite user function)."""
    if not body or not query:
        return 0.0

    required, excluded = parse_query_terms(query)
    if not required:
        return 0.0

    tokens = [token.lower() for token in _TOKEN_RE.findall(body)]
    for term, is_prefix in excluded:
        if _occurrences(tokens, term, is_prefix):
            return 0.0

    return float(sum(_occurrences(tokens, term, is_prefix) for term, is_prefix in required))


def register_sqlite_functions(dbapi_connection, connection_record) -> None:
    """Engine "connect" listener installing the match function."""
    dbapi_connection.create_function(SQLITE_MATCH_FUNCTION, 2, match_score, deterministic=True)
