"""Disjunctive candidate retrieval over the statistics store.

Candidates are documents with at least one query term in at least one of the
searched fields. When ranked, a BM25F seed score orders them so the expensive
FSDM re-ranking only sees the most promising datasets.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Mapping, Sequence
import heapq
import logging

from dataset_search.search.profiles import FieldWeightProfile
from dataset_search.search.stats import FieldLengthStats, bm25, calculate_idf
from dataset_search.search.storage import IndexStatistics


logger = logging.getLogger(__name__)


class CandidateRetriever:
    """Return candidate dataset ids for a tokenized query."""

    def __init__(
        self,
        index: IndexStatistics,
        *,
        profile: FieldWeightProfile | None = None,
        k1: float = 1.2,
        b: float = 0.75,
    ) -> None:
        self.index = index
        self.field_boosts: Mapping[str, float] = dict(profile.weights) if profile else {}
        self.k1 = k1
        self.b = b
        self._length_stats: dict[str, FieldLengthStats] = {
            name: FieldLengthStats(
                field=name,
                total_terms=stats.sum_total_term_freq,
                document_count=stats.doc_count,
            )
            for name, stats in index.collection.items()
        }

    def retrieve(
        self,
        terms: Sequence[str],
        fields: Sequence[str],
        *,
        limit: int,
        ranked: bool = True,
    ) -> list[str]:
        """Return at most ``limit`` dataset ids matching any term in any field."""

        search_fields = self.index.schema.validate_fields(fields)
        if limit <= 0:
            return []
        unique_terms = list(dict.fromkeys(term for term in terms if term))
        if not unique_terms or not search_fields:
            return []

        if not ranked:
            matched: set[str] = set()
            for field_name in search_fields:
                for term in unique_terms:
                    matched.update(self.index.postings(field_name, term))
            return sorted(matched)[:limit]

        scores = self._seed_scores(unique_terms, search_fields)
        top = heapq.nsmallest(limit, scores.items(), key=lambda item: (-item[1], item[0]))
        logger.debug("Retrieved %d of %d matching candidates", len(top), len(scores))
        return [doc_id for doc_id, _score in top]

    def _seed_scores(self, terms: Sequence[str], fields: Sequence[str]) -> dict[str, float]:
        doc_scores: dict[str, float] = defaultdict(float)
        total_docs = max(self.index.doc_count, 1)
        for field_name in fields:
            stats = self._length_stats.get(field_name)
            if stats is None or stats.document_count == 0:
                continue
            avg_length = max(stats.average_length, 1e-9)
            field_boost = self.field_boosts.get(field_name, 1.0)
            for term in terms:
                postings = self.index.postings(field_name, term)
                if not postings:
                    continue
                idf = calculate_idf(len(postings), total_docs)
                for doc_id in postings:
                    tf = self.index.field_term_frequency(doc_id, field_name, term)
                    doc_length = self.index.field_length(doc_id, field_name)
                    weight = bm25(tf, doc_length, avg_length, k1=self.k1, b=self.b)
                    # Zero-boost fields still admit candidates
                    doc_scores[doc_id] += idf * weight * field_boost
        return doc_scores
