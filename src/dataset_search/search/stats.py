"""Statistical helpers for dataset scoring.

The functions here stay independent of the statistics store so they can be
unit tested in isolation. Dirichlet smoothing backs the FSDM scorer; the
BM25 helpers only seed the candidate ordering before re-ranking.
"""

from __future__ import annotations

from dataclasses import dataclass
import math


@dataclass(frozen=True)
class FieldLengthStats:
    """Aggregated term statistics for a field."""

    field: str
    total_terms: int
    document_count: int

    @property
    def average_length(self) -> float:
        if self.document_count == 0:
            return 0.0
        return self.total_terms / self.document_count


def dirichlet_prior(sum_total_term_freq: int, doc_count: int) -> float | None:
    """Return the Dirichlet prior mu for a field: average field length.

    ``None`` means the prior is undefined (no document has the field) and the
    field must be left out of scoring.
    """

    if doc_count <= 0:
        return None
    return sum_total_term_freq / doc_count


def dirichlet_probability(
    tf: float,
    collection_frequency: float,
    collection_length: float,
    doc_length: float,
    mu: float,
) -> float:
    """Dirichlet-smoothed probability of a term (or bigram) in a document field.

    ``(tf + mu * cf / |C|) / (|D| + mu)``. A zero collection length drops the
    background term rather than dividing by zero.
    """

    background = collection_frequency / collection_length if collection_length > 0 else 0.0
    denominator = doc_length + mu
    if denominator <= 0:
        return 0.0
    return (tf + mu * background) / denominator


def calculate_idf(doc_freq: int, total_docs: int, *, floor: float = 1e-6) -> float:
    """Return inverse document frequency with small-sample smoothing.

    The floor keeps common terms in tiny corpora at a near-zero weight
    instead of a negative one.
    """

    if total_docs <= 0:
        return 0.0
    df = max(0, min(doc_freq, total_docs))
    numerator = total_docs - df + 0.5
    denominator = df + 0.5
    ratio = max(numerator / denominator, floor)
    raw_idf = math.log(ratio + floor) + 1.0
    return max(raw_idf, floor)


def bm25(tf: int, doc_length: int, avg_doc_length: float, *, k1: float = 1.2, b: float = 0.75) -> float:
    """Compute the BM25 term weight without IDF.

    The length ratio is capped at 4x average so mined content fields with
    hundreds of thousands of values are not pushed to zero.
    """

    if tf <= 0:
        return 0.0
    max_length_ratio = 4.0
    raw_ratio = doc_length / max(avg_doc_length, 1e-9)
    normalized_length = min(raw_ratio, max_length_ratio)
    denominator = tf + k1 * (1 - b + b * normalized_length)
    return (tf * (k1 + 1)) / denominator
