"""Dataset search engine facade.

Wires analysis, the statistics store, candidate retrieval and FSDM re-ranking
behind one object configured from ``Settings``. The index is built (or loaded)
once; afterwards the engine is read-only and safe to share across threads.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
import logging
from pathlib import Path
import threading

from opentelemetry.trace import SpanKind

from dataset_search.config import ConfigurationError, Settings
from dataset_search.observability import (
    DOCUMENTS_SKIPPED,
    INDEX_BUILD_LATENCY,
    INDEX_DOC_COUNT,
    QUERY_COUNT,
    SEARCH_LATENCY,
    configure_logging,
    get_trace_context,
    set_trace_context,
    track_latency,
)
from dataset_search.observability.tracing import create_span
from dataset_search.search.analyzers import StandardAnalyzer, load_stopwords
from dataset_search.search.documents import DatasetContent, DatasetDocument, DatasetRecord, DocumentBuilder
from dataset_search.search.fsdm import FSDMScorer
from dataset_search.search.models import RankedDocument
from dataset_search.search.profiles import FieldWeightProfile, ProfileError, get_profile
from dataset_search.search.queries import Query
from dataset_search.search.retriever import CandidateRetriever
from dataset_search.search.runs import run_entries, write_run
from dataset_search.search.schema import create_dataset_schema
from dataset_search.search.storage import IndexStatistics, JsonIndexStore, build_index


logger = logging.getLogger(__name__)


def configure_observability(settings: Settings) -> None:
    """Install the root log handler described by ``settings``."""
    configure_logging(settings.log_level, json_output=settings.log_json)


def _build_analyzer(settings: Settings) -> StandardAnalyzer:
    if settings.stopwords_path is None:
        return StandardAnalyzer()
    try:
        return StandardAnalyzer(stopwords=load_stopwords(settings.stopwords_path))
    except FileNotFoundError as exc:
        raise ConfigurationError(str(exc)) from exc


class DatasetSearchEngine:
    """Rank datasets for free-text queries with FSDM."""

    def __init__(
        self,
        index: IndexStatistics,
        *,
        settings: Settings | None = None,
        analyzer: StandardAnalyzer | None = None,
    ) -> None:
        self.settings = settings or Settings()
        if index.doc_count == 0:
            raise ConfigurationError("Cannot search an empty corpus")
        self.index = index
        self.analyzer = analyzer or _build_analyzer(self.settings)
        self.profile = self._resolve_profile(None)
        INDEX_DOC_COUNT.labels(schema=index.schema.name).set(index.doc_count)

    # --- construction -----------------------------------------------------

    @classmethod
    def from_documents(
        cls,
        documents: Iterable[DatasetDocument],
        settings: Settings | None = None,
        *,
        analyzer: StandardAnalyzer | None = None,
    ) -> DatasetSearchEngine:
        """Build the index from analyzed documents."""

        settings = settings or Settings()
        configure_observability(settings)
        schema = create_dataset_schema(positional_content=settings.positional_content)
        with (
            create_span("index.build", attributes={"index.max_workers": settings.max_workers}) as span,
            track_latency(INDEX_BUILD_LATENCY, schema=schema.name),
        ):
            index = build_index(documents, schema=schema, max_workers=settings.max_workers)
            span.set_attribute("index.document_count", index.doc_count)
            span.set_attribute("index.skipped_count", len(index.skipped))
        if index.skipped:
            DOCUMENTS_SKIPPED.labels(stage="index").inc(len(index.skipped))
        return cls(index, settings=settings, analyzer=analyzer)

    @classmethod
    def from_records(
        cls,
        items: Iterable[tuple[DatasetRecord, Iterable[DatasetContent]]],
        settings: Settings | None = None,
    ) -> DatasetSearchEngine:
        """Analyze raw records and mined content, then build the index."""

        settings = settings or Settings()
        analyzer = _build_analyzer(settings)
        builder = DocumentBuilder(
            create_dataset_schema(positional_content=settings.positional_content),
            options=settings.ingestion_options(),
            analyzer=analyzer,
        )
        batch = builder.build_many(items)
        if batch.skipped:
            DOCUMENTS_SKIPPED.labels(stage="document").inc(len(batch.skipped))
            logger.warning("Skipped %d datasets while building documents", len(batch.skipped))
        return cls.from_documents(batch.documents, settings, analyzer=analyzer)

    @classmethod
    def from_index_file(
        cls,
        path: str | Path | None = None,
        settings: Settings | None = None,
    ) -> DatasetSearchEngine:
        """Load persisted statistics from ``path`` (default: ``settings.index_path``)."""

        settings = settings or Settings()
        configure_observability(settings)
        resolved = path if path is not None else settings.index_path
        if resolved is None:
            raise ConfigurationError("No index location configured (set DATASET_SEARCH_INDEX_PATH)")
        store = JsonIndexStore(resolved)
        if not store.exists():
            msg = f"Index file not found: {store.path}"
            raise ConfigurationError(msg)
        index = store.load()
        logger.info("Loaded index %s with %d documents", index.index_id, index.doc_count)
        return cls(index, settings=settings)

    def save(self, path: str | Path | None = None) -> Path:
        resolved = path if path is not None else self.settings.index_path
        if resolved is None:
            raise ConfigurationError("No index location configured (set DATASET_SEARCH_INDEX_PATH)")
        return JsonIndexStore(resolved).save(self.index)

    # --- search -------------------------------------------------------------

    def analyze(self, text: str) -> tuple[str, ...]:
        return tuple(self.analyzer.analyze(text))

    def _resolve_profile(self, profile: str | FieldWeightProfile | None) -> FieldWeightProfile:
        if isinstance(profile, FieldWeightProfile):
            return profile
        try:
            return get_profile(profile or self.settings.profile)
        except ProfileError as exc:
            raise ConfigurationError(str(exc)) from exc

    def _scorer(self, profile: FieldWeightProfile) -> FSDMScorer:
        return FSDMScorer(
            self.index,
            profile,
            lambda_t=self.settings.lambda_t,
            lambda_o=self.settings.lambda_o,
            lambda_u=self.settings.lambda_u,
            window_size=self.settings.window_size,
            epsilon=self.settings.epsilon,
        )

    def search(
        self,
        text: str,
        *,
        profile: str | FieldWeightProfile | None = None,
        n_hits: int | None = None,
        max_workers: int | None = None,
    ) -> list[RankedDocument]:
        """Return the top ``n_hits`` datasets for ``text``, best first."""

        active = self._resolve_profile(profile)
        limit = n_hits if n_hits is not None else self.settings.n_hits
        workers = max_workers if max_workers is not None else self.settings.max_workers
        with (
            create_span(
                "search.query",
                kind=SpanKind.INTERNAL,
                attributes={"search.query": text[:100], "search.profile": active.name, "search.n_hits": limit},
            ) as span,
            track_latency(SEARCH_LATENCY, profile=active.name),
        ):
            terms = self.analyze(text)
            if not terms:
                QUERY_COUNT.labels(profile=active.name, status="empty").inc()
                span.set_attribute("search.result_count", 0)
                return []

            retriever = CandidateRetriever(self.index, profile=active)
            candidates = retriever.retrieve(terms, active.active_fields, limit=self.settings.candidate_limit)
            span.set_attribute("search.candidate_count", len(candidates))
            ranked = self._scorer(active).score(terms, candidates, limit=limit, max_workers=workers)

            QUERY_COUNT.labels(profile=active.name, status="ok").inc()
            span.set_attribute("search.result_count", len(ranked))
            return ranked

    def search_batch(
        self,
        queries: Sequence[Query],
        *,
        profile: str | FieldWeightProfile | None = None,
        n_hits: int | None = None,
        cancel_event: threading.Event | None = None,
        max_workers: int | None = None,
    ) -> dict[str, list[RankedDocument]]:
        """Run ``queries`` in parallel.

        Setting ``cancel_event`` stops queries that have not started yet;
        those are absent from the result, as are queries that raised (logged).
        Results keep the input query order.
        """

        active = self._resolve_profile(profile)
        workers = max_workers if max_workers is not None else self.settings.max_workers
        parent_trace_id = get_trace_context()["trace_id"]

        def run(query: Query) -> list[RankedDocument] | None:
            if cancel_event is not None and cancel_event.is_set():
                return None
            set_trace_context(parent_trace_id, "", query_id=query.query_id)
            return self.search(query.text, profile=active, n_hits=n_hits, max_workers=1)

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="search-batch") as pool:
            futures = [(query, pool.submit(run, query)) for query in queries]
            results: dict[str, list[RankedDocument]] = {}
            cancelled = 0
            failed = 0
            for query, future in futures:
                try:
                    ranked = future.result()
                except Exception:
                    logger.exception("Query %s failed; leaving it out of the batch", query.query_id)
                    QUERY_COUNT.labels(profile=active.name, status="error").inc()
                    failed += 1
                    continue
                if ranked is None:
                    cancelled += 1
                    continue
                results[query.query_id] = ranked

        if cancelled:
            QUERY_COUNT.labels(profile=active.name, status="cancelled").inc(cancelled)
            logger.warning("Search batch cancelled: %d of %d queries not run", cancelled, len(queries))
        if failed:
            logger.warning("Search batch finished with %d of %d queries failed", failed, len(queries))
        return results

    def write_run(
        self,
        path: str | Path,
        results: Mapping[str, Sequence[RankedDocument]],
        *,
        run_id: str | None = None,
    ) -> int:
        """Write batch results as a run file; returns the number of lines."""

        rid = run_id or self.settings.run_id
        entries = [entry for query_id, ranked in results.items() for entry in run_entries(query_id, ranked, rid)]
        return write_run(path, entries)
