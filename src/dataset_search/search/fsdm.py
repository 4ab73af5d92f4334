"""Fielded Sequential Dependence Model (FSDM) ranking.

For a query ``q1..qn`` and a document the score mixes three log-likelihood
components, each smoothed per field with a Dirichlet prior and combined across
fields with normalized profile weights:

* unigram (T): every query term on its own
* ordered (O): every adjacent query pair appearing adjacently in the field
* unordered (U): every adjacent query pair co-occurring in a sliding window

``FSDM = lambda_t * T + lambda_o * O + lambda_u * U``. Each per-term (or
per-pair) field mixture is floored with ``epsilon`` before taking the log, so
documents without any overlap score about ``n * log(epsilon)`` rather than
``-inf``.

Collection statistics needed by a query are computed once in a
``QueryContext`` and shared read-only by every candidate, which makes scoring
candidates in parallel safe.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
import logging
import math
from types import MappingProxyType

from dataset_search.search.models import FSDMScore, RankedDocument
from dataset_search.search.profiles import FieldWeightProfile
from dataset_search.search.stats import dirichlet_prior, dirichlet_probability
from dataset_search.search.storage import IndexStatistics


logger = logging.getLogger(__name__)

DEFAULT_LAMBDA_T = 0.8
DEFAULT_LAMBDA_O = 0.1
DEFAULT_LAMBDA_U = 0.1
DEFAULT_WINDOW_SIZE = 8
DEFAULT_EPSILON = 1e-100

FieldLengths = Sequence[tuple[str, int]]


def ordered_bigram_frequency(tokens: Sequence[str], first: str, second: str) -> int:
    """Count adjacent occurrences of the pair.

    An adjacency matches in either order, so in ``a b c b a`` both ``(a, b)``
    and ``(b, a)`` occur twice.
    """

    pair = {(first, second), (second, first)}
    return sum(1 for i in range(len(tokens) - 1) if (tokens[i], tokens[i + 1]) in pair)


def unordered_window_frequency(
    tokens: Sequence[str],
    first: str,
    second: str,
    window: int = DEFAULT_WINDOW_SIZE,
) -> int:
    """Count sliding windows of ``window`` tokens containing both terms.

    Only windows lying fully inside the sequence are considered, so a
    sequence shorter than ``window`` yields 0.
    """

    if window <= 0:
        raise ValueError("window must be positive")
    count = 0
    for start in range(len(tokens) - window + 1):
        span = tokens[start : start + window]
        if first in span and second in span:
            count += 1
    return count


@dataclass(frozen=True)
class QueryContext:
    """Per-query cache of weights and collection statistics.

    Only fields with a positive weight and a defined Dirichlet prior are
    listed in ``fields``.
    """

    terms: tuple[str, ...]
    fields: tuple[str, ...]
    weights: Mapping[str, float]
    priors: Mapping[str, float]
    collection_lengths: Mapping[str, int]
    term_frequencies: Mapping[tuple[str, str], int]
    pairs: tuple[tuple[str, str], ...] = ()

    def collection_frequency(self, field_name: str, term: str) -> int:
        return self.term_frequencies.get((field_name, term), 0)

    def bigram_collection_frequency(self, field_name: str, first: str, second: str) -> int:
        """Approximate joint frequency as the smaller unigram frequency."""
        return min(
            self.collection_frequency(field_name, first),
            self.collection_frequency(field_name, second),
        )


class FSDMScorer:
    """Score candidate datasets for a tokenized query."""

    def __init__(
        self,
        index: IndexStatistics,
        profile: FieldWeightProfile,
        *,
        lambda_t: float = DEFAULT_LAMBDA_T,
        lambda_o: float = DEFAULT_LAMBDA_O,
        lambda_u: float = DEFAULT_LAMBDA_U,
        window_size: int = DEFAULT_WINDOW_SIZE,
        epsilon: float = DEFAULT_EPSILON,
    ) -> None:
        if window_size <= 0:
            raise ValueError("window_size must be positive")
        self.index = index
        self.profile = profile
        self.lambda_t = lambda_t
        self.lambda_o = lambda_o
        self.lambda_u = lambda_u
        self.window_size = window_size
        self.epsilon = epsilon
        index.schema.validate_fields(profile.fields)

    def prepare(self, terms: Iterable[str]) -> QueryContext:
        """Gather the collection statistics ``terms`` needs."""

        query_terms = tuple(terms)
        weights = self.profile.normalized()
        fields: list[str] = []
        priors: dict[str, float] = {}
        lengths: dict[str, int] = {}
        frequencies: dict[tuple[str, str], int] = {}
        for field_name in self.profile.active_fields:
            stats = self.index.field_statistics(field_name)
            mu = dirichlet_prior(stats.sum_total_term_freq, stats.doc_count)
            if mu is None:
                logger.debug("Skipping field %s: no document has it", field_name)
                continue
            fields.append(field_name)
            priors[field_name] = mu
            lengths[field_name] = stats.sum_total_term_freq
            for term in query_terms:
                frequencies[(field_name, term)] = stats.term_frequencies.get(term, 0)

        return QueryContext(
            terms=query_terms,
            fields=tuple(fields),
            weights=MappingProxyType({name: weights[name] for name in fields}),
            priors=MappingProxyType(priors),
            collection_lengths=MappingProxyType(lengths),
            term_frequencies=MappingProxyType(frequencies),
            pairs=tuple(zip(query_terms, query_terms[1:])),
        )

    def document_fields(self, ctx: QueryContext, doc_id: str) -> list[tuple[str, int]]:
        """Scored fields the document has, with their lengths.

        A field the document lacks contributes nothing to its mixture.
        """
        present: list[tuple[str, int]] = []
        for field_name in ctx.fields:
            length = self.index.field_length(doc_id, field_name)
            if length > 0:
                present.append((field_name, length))
        return present

    def _smoothed(self, ctx: QueryContext, field_name: str, doc_length: int, tf: float, cf: float) -> float:
        probability = dirichlet_probability(
            tf,
            cf,
            ctx.collection_lengths[field_name],
            doc_length,
            ctx.priors[field_name],
        )
        return ctx.weights[field_name] * probability

    def unigram_score(self, ctx: QueryContext, doc_id: str, fields: FieldLengths | None = None) -> float:
        if fields is None:
            fields = self.document_fields(ctx, doc_id)
        score = 0.0
        for term in ctx.terms:
            mixture = 0.0
            for field_name, doc_length in fields:
                tf = self.index.field_term_frequency(doc_id, field_name, term)
                cf = ctx.collection_frequency(field_name, term)
                mixture += self._smoothed(ctx, field_name, doc_length, tf, cf)
            score += math.log(mixture + self.epsilon)
        return score

    def ordered_score(self, ctx: QueryContext, doc_id: str, fields: FieldLengths | None = None) -> float:
        if fields is None:
            fields = self.document_fields(ctx, doc_id)
        score = 0.0
        for first, second in ctx.pairs:
            mixture = 0.0
            for field_name, doc_length in fields:
                tokens = self.index.field_tokens(doc_id, field_name)
                tf = ordered_bigram_frequency(tokens, first, second)
                cf = ctx.bigram_collection_frequency(field_name, first, second)
                mixture += self._smoothed(ctx, field_name, doc_length, tf, cf)
            score += math.log(mixture + self.epsilon)
        return score

    def unordered_score(self, ctx: QueryContext, doc_id: str, fields: FieldLengths | None = None) -> float:
        if fields is None:
            fields = self.document_fields(ctx, doc_id)
        score = 0.0
        for first, second in ctx.pairs:
            mixture = 0.0
            for field_name, doc_length in fields:
                tokens = self.index.field_tokens(doc_id, field_name)
                tf = unordered_window_frequency(tokens, first, second, self.window_size)
                cf = ctx.bigram_collection_frequency(field_name, first, second)
                mixture += self._smoothed(ctx, field_name, doc_length, tf, cf)
            score += math.log(mixture + self.epsilon)
        return score

    def score_document(self, ctx: QueryContext, doc_id: str) -> FSDMScore:
        fields = self.document_fields(ctx, doc_id)
        unigram = self.unigram_score(ctx, doc_id, fields)
        ordered = self.ordered_score(ctx, doc_id, fields)
        unordered = self.unordered_score(ctx, doc_id, fields)
        total = self.lambda_t * unigram + self.lambda_o * ordered + self.lambda_u * unordered
        return FSDMScore(total=total, unigram=unigram, ordered=ordered, unordered=unordered)

    def score(
        self,
        terms: Sequence[str],
        candidates: Iterable[str],
        *,
        limit: int | None = None,
        max_workers: int = 1,
    ) -> list[RankedDocument]:
        """Rank ``candidates`` by FSDM score, best first, ties by dataset id."""

        known: list[str] = []
        for doc_id in dict.fromkeys(candidates):
            if doc_id in self.index:
                known.append(doc_id)
            else:
                logger.warning("Ignoring unknown candidate dataset %s", doc_id)
        if not known:
            return []

        ctx = self.prepare(terms)
        if max_workers > 1 and len(known) > 1:
            with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="fsdm") as pool:
                scores = list(pool.map(lambda doc_id: self.score_document(ctx, doc_id), known))
        else:
            scores = [self.score_document(ctx, doc_id) for doc_id in known]

        ranked = sorted(
            (
                RankedDocument(dataset_id=doc_id, score=result.total)
                for doc_id, result in zip(known, scores, strict=True)
            ),
            key=RankedDocument.sort_key,
        )
        if limit is not None:
            return ranked[: max(limit, 0)]
        return ranked
