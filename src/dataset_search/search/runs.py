"""Run file output in the TREC format used by evaluation tooling."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
import logging
from pathlib import Path

from dataset_search.search.models import RankedDocument


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunEntry:
    """One ranked dataset for one query."""

    query_id: str
    dataset_id: str
    rank: int
    score: float
    run_id: str


def format_run_line(entry: RunEntry) -> str:
    """``query_id Q0 dataset_id rank score run_id``, tab separated."""
    return f"{entry.query_id}\tQ0\t{entry.dataset_id}\t{entry.rank:d}\t{entry.score:.6f}\t{entry.run_id}"


def run_entries(query_id: str, ranked: Sequence[RankedDocument], run_id: str) -> list[RunEntry]:
    """Turn a ranking into run entries with 0-based ranks."""
    return [
        RunEntry(query_id=query_id, dataset_id=doc.dataset_id, rank=rank, score=doc.score, run_id=run_id)
        for rank, doc in enumerate(ranked)
    ]


def write_run(path: str | Path, entries: Iterable[RunEntry]) -> int:
    """Write ``entries`` to ``path`` and return the number of lines written."""

    run_path = Path(path)
    run_path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with run_path.open("w", encoding="utf-8") as handle:
        for entry in entries:
            handle.write(format_run_line(entry))
            handle.write("\n")
            count += 1
    logger.info("Wrote %d run lines to %s", count, run_path)
    return count
