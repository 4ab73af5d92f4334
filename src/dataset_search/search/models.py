"""Search result models."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RankedDocument:
    """A scored dataset produced by a ranker."""

    dataset_id: str
    score: float

    def sort_key(self) -> tuple[float, str]:
        """Score descending, then dataset id ascending."""
        return (-self.score, self.dataset_id)


@dataclass(frozen=True)
class FSDMScore:
    """FSDM score of one document with its weighted components."""

    total: float
    unigram: float = 0.0
    ordered: float = 0.0
    unordered: float = 0.0
