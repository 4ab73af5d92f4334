"""Query file parsing.

Query files hold one query per line: ``query_id<TAB>text``.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path

from dataset_search.search.analyzers import Analyzer, StandardAnalyzer


logger = logging.getLogger(__name__)


class QueryFileError(ValueError):
    """Raised when a query file is missing or malformed."""


@dataclass(frozen=True)
class Query:
    """A query identifier with its raw text."""

    query_id: str
    text: str

    def terms(self, analyzer: Analyzer | None = None) -> tuple[str, ...]:
        """Return the ordered query terms, duplicates kept."""
        active = analyzer or StandardAnalyzer()
        return tuple(token.text for token in active(self.text))


def parse_query_line(line: str, *, line_number: int = 0) -> Query:
    query_id, sep, text = line.rstrip("\r\n").partition("\t")
    query_id = query_id.strip()
    if not sep or not query_id:
        msg = f"Line {line_number}: expected 'query_id<TAB>text', got {line.strip()!r}"
        raise QueryFileError(msg)
    return Query(query_id=query_id, text=text.strip())


def read_queries(path: str | Path) -> list[Query]:
    """Read all queries from ``path``; blank lines are skipped."""

    query_path = Path(path)
    if not query_path.is_file():
        msg = f"Query file not found: {query_path}"
        raise QueryFileError(msg)

    queries: list[Query] = []
    with query_path.open(encoding="utf-8") as handle:
        for line_number, line in enumerate(handle, start=1):
            if not line.strip():
                continue
            queries.append(parse_query_line(line, line_number=line_number))
    logger.info("Loaded %d queries from %s", len(queries), query_path)
    return queries
