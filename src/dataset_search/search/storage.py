"""Index statistics storage for the dataset search stack.

The store is built once per corpus snapshot and is read-only afterwards. The
module provides:

* ``IndexWriter`` - accepts ``DatasetDocument`` values and produces an
  immutable ``IndexStatistics``.
* ``build_index`` - builds per-document term vectors on a thread pool, then
  reduces them in input order so the result is deterministic.
* ``IndexStatistics`` - answers per-document and per-field collection
  statistics queries; absent fields or terms yield zeros, never errors.
* ``JsonIndexStore`` - persists statistics as minified JSON.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, cast
from uuid import uuid4

import orjson

from dataset_search.search.documents import DatasetDocument
from dataset_search.search.schema import Schema, create_dataset_schema


logger = logging.getLogger(__name__)

_EMPTY_STORED: Mapping[str, str] = MappingProxyType({})


class StorageError(ValueError):
    """Raised when invalid documents or operations are encountered."""


@dataclass(frozen=True, slots=True)
class TermVector:
    """Term statistics of one field of one document.

    ``tokens`` is empty for frequency-only fields; ``length`` always equals the
    number of analyzed tokens.
    """

    frequencies: Mapping[str, int]
    tokens: tuple[str, ...] = ()
    length: int = 0

    @classmethod
    def from_tokens(cls, tokens: Sequence[str], *, positional: bool) -> TermVector:
        return cls(
            frequencies=MappingProxyType(dict(Counter(tokens))),
            tokens=tuple(tokens) if positional else (),
            length=len(tokens),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"f": dict(self.frequencies)}
        if self.tokens:
            data["t"] = list(self.tokens)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TermVector:
        frequencies = {str(term): int(count) for term, count in data.get("f", {}).items()}
        return cls(
            frequencies=MappingProxyType(frequencies),
            tokens=tuple(str(token) for token in data.get("t", ())),
            length=sum(frequencies.values()),
        )


@dataclass(frozen=True, slots=True)
class CollectionStatistics:
    """Aggregate statistics of one field across the corpus."""

    field: str
    sum_total_term_freq: int = 0
    doc_count: int = 0
    term_frequencies: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def average_length(self) -> float:
        if self.doc_count == 0:
            return 0.0
        return self.sum_total_term_freq / self.doc_count


DocumentVectors = Mapping[str, TermVector]


def build_term_vectors(document: DatasetDocument, schema: Schema) -> dict[str, TermVector]:
    """Return the term vectors of every non-empty field of ``document``."""

    if not document.dataset_id:
        msg = f"Document missing unique field '{schema.unique_field}'"
        raise StorageError(msg)
    unknown = [name for name in document.fields if name not in schema]
    if unknown:
        msg = f"Document {document.dataset_id} has unknown field(s) {unknown}"
        raise StorageError(msg)

    vectors: dict[str, TermVector] = {}
    for schema_field in schema:
        tokens = document.tokens(schema_field.name)
        if not tokens:
            continue
        vectors[schema_field.name] = TermVector.from_tokens(tokens, positional=schema_field.positional)
    return vectors


@dataclass(frozen=True, slots=True)
class IndexStatistics:
    """Immutable statistics over a corpus snapshot."""

    schema: Schema
    vectors: Mapping[str, DocumentVectors]
    collection: Mapping[str, CollectionStatistics]
    postings_index: Mapping[str, Mapping[str, tuple[str, ...]]]
    stored_fields: Mapping[str, Mapping[str, str]]
    skipped: tuple[str, ...] = ()
    index_id: str = field(default_factory=lambda: uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def doc_count(self) -> int:
        return len(self.vectors)

    @property
    def doc_ids(self) -> tuple[str, ...]:
        return tuple(self.vectors)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self.vectors

    def _vector(self, doc_id: str, field_name: str) -> TermVector | None:
        document = self.vectors.get(doc_id)
        if document is None:
            return None
        return document.get(field_name)

    def field_term_frequency(self, doc_id: str, field_name: str, term: str) -> int:
        vector = self._vector(doc_id, field_name)
        if vector is None:
            return 0
        return vector.frequencies.get(term, 0)

    def field_length(self, doc_id: str, field_name: str) -> int:
        vector = self._vector(doc_id, field_name)
        return vector.length if vector is not None else 0

    def field_tokens(self, doc_id: str, field_name: str) -> tuple[str, ...]:
        """Ordered tokens of a positional field; empty for frequency-only fields."""
        vector = self._vector(doc_id, field_name)
        return vector.tokens if vector is not None else ()

    def field_statistics(self, field_name: str) -> CollectionStatistics:
        stats = self.collection.get(field_name)
        if stats is None:
            return CollectionStatistics(field=field_name)
        return stats

    def collection_term_frequency(self, field_name: str, term: str) -> int:
        return self.field_statistics(field_name).term_frequencies.get(term, 0)

    def collection_field_length(self, field_name: str) -> int:
        return self.field_statistics(field_name).sum_total_term_freq

    def document_count(self, field_name: str) -> int:
        """Number of documents with at least one token in ``field_name``."""
        return self.field_statistics(field_name).doc_count

    def postings(self, field_name: str, term: str) -> tuple[str, ...]:
        """Return ids of documents containing ``term`` in ``field_name``."""
        return self.postings_index.get(field_name, {}).get(term, ())

    def document_frequency(self, field_name: str, term: str) -> int:
        return len(self.postings(field_name, term))

    def get_stored(self, doc_id: str) -> Mapping[str, str]:
        return self.stored_fields.get(doc_id, _EMPTY_STORED)

    def to_dict(self) -> dict[str, Any]:
        """Serialize with minimal keys: s=schema, v=vectors, d=docs, k=skipped, i=id, c=created."""
        return {
            "s": self.schema.to_dict(),
            "v": {
                doc_id: {field_name: vector.to_dict() for field_name, vector in fields.items()}
                for doc_id, fields in self.vectors.items()
            },
            "d": {doc_id: dict(stored) for doc_id, stored in self.stored_fields.items() if stored},
            "k": list(self.skipped),
            "i": self.index_id,
            "c": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> IndexStatistics:
        try:
            writer = IndexWriter(Schema.from_dict(data["s"]))
            raw_stored = data.get("d", {})
            for doc_id, fields in data["v"].items():
                vectors = {field_name: TermVector.from_dict(entry) for field_name, entry in fields.items()}
                writer.add_vectors(str(doc_id), vectors, stored=raw_stored.get(doc_id, {}))
            created_raw = data.get("c")
            created = (
                datetime.fromisoformat(created_raw) if isinstance(created_raw, str) else datetime.now(timezone.utc)
            )
        except StorageError:
            raise
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            msg = f"Malformed index payload: {exc}"
            raise StorageError(msg) from exc

        return writer.build(
            skipped=tuple(str(doc_id) for doc_id in data.get("k", ())),
            index_id=str(data.get("i") or uuid4().hex),
            created_at=created,
        )


class IndexWriter:
    """Collects documents and reduces them into ``IndexStatistics``."""

    def __init__(self, schema: Schema | None = None) -> None:
        self.schema = schema or create_dataset_schema()
        self._vectors: dict[str, dict[str, TermVector]] = {}
        self._stored: dict[str, dict[str, str]] = {}

    def __len__(self) -> int:
        return len(self._vectors)

    def add_document(self, document: DatasetDocument) -> str:
        vectors = build_term_vectors(document, self.schema)
        return self.add_vectors(document.dataset_id, vectors, stored=document.stored)

    def add_vectors(
        self,
        doc_id: str,
        vectors: Mapping[str, TermVector],
        *,
        stored: Mapping[str, str] | None = None,
    ) -> str:
        if doc_id in self._vectors:
            msg = f"Duplicate document for unique field '{self.schema.unique_field}': {doc_id}"
            raise StorageError(msg)
        unknown = [name for name in vectors if name not in self.schema]
        if unknown:
            msg = f"Document {doc_id} has unknown field(s) {unknown}"
            raise StorageError(msg)
        self._vectors[doc_id] = dict(vectors)
        allowed = {f.name for f in self.schema if f.stored}
        self._stored[doc_id] = {name: value for name, value in (stored or {}).items() if name in allowed}
        return doc_id

    def build(
        self,
        *,
        skipped: Sequence[str] = (),
        index_id: str | None = None,
        created_at: datetime | None = None,
    ) -> IndexStatistics:
        sum_ttf: dict[str, int] = dict.fromkeys(self.schema.field_names, 0)
        doc_counts: dict[str, int] = dict.fromkeys(self.schema.field_names, 0)
        term_frequencies: dict[str, Counter[str]] = {name: Counter() for name in self.schema.field_names}
        postings: dict[str, dict[str, list[str]]] = {name: {} for name in self.schema.field_names}

        for doc_id, fields in self._vectors.items():
            for field_name, vector in fields.items():
                if vector.length == 0:
                    continue
                sum_ttf[field_name] += vector.length
                doc_counts[field_name] += 1
                term_frequencies[field_name].update(vector.frequencies)
                field_postings = postings[field_name]
                for term in vector.frequencies:
                    field_postings.setdefault(term, []).append(doc_id)

        collection = {
            name: CollectionStatistics(
                field=name,
                sum_total_term_freq=sum_ttf[name],
                doc_count=doc_counts[name],
                term_frequencies=MappingProxyType(dict(term_frequencies[name])),
            )
            for name in self.schema.field_names
        }

        return IndexStatistics(
            schema=self.schema,
            vectors=MappingProxyType(
                {doc_id: MappingProxyType(dict(fields)) for doc_id, fields in self._vectors.items()}
            ),
            collection=MappingProxyType(collection),
            postings_index=MappingProxyType(
                {
                    name: MappingProxyType({term: tuple(ids) for term, ids in terms.items()})
                    for name, terms in postings.items()
                }
            ),
            stored_fields=MappingProxyType(
                {doc_id: MappingProxyType(stored) for doc_id, stored in self._stored.items()}
            ),
            skipped=tuple(skipped),
            index_id=index_id or uuid4().hex,
            created_at=created_at or datetime.now(timezone.utc),
        )


def _vectors_or_none(document: DatasetDocument, schema: Schema) -> dict[str, TermVector] | None:
    try:
        return build_term_vectors(document, schema)
    except StorageError as exc:
        logger.warning("Skipping dataset %s: %s", document.dataset_id, exc)
    except MemoryError:
        logger.error("Out of memory while indexing dataset %s; skipping", document.dataset_id)
    return None


def build_index(
    documents: Iterable[DatasetDocument],
    *,
    schema: Schema | None = None,
    max_workers: int = 1,
) -> IndexStatistics:
    """Build statistics for ``documents``.

    Term vectors are built independently per document (in parallel when
    ``max_workers`` > 1); the reduce runs in input order. Documents that fail
    are skipped and reported in ``IndexStatistics.skipped``.
    """

    schema = schema or create_dataset_schema()
    docs = list(documents)
    if max_workers > 1 and len(docs) > 1:
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="index-build") as pool:
            built = list(pool.map(lambda doc: _vectors_or_none(doc, schema), docs))
    else:
        built = [_vectors_or_none(doc, schema) for doc in docs]

    writer = IndexWriter(schema)
    skipped: list[str] = []
    for document, vectors in zip(docs, built, strict=True):
        if vectors is None:
            skipped.append(document.dataset_id)
            continue
        try:
            writer.add_vectors(document.dataset_id, vectors, stored=document.stored)
        except StorageError as exc:
            logger.warning("Skipping dataset %s: %s", document.dataset_id, exc)
            skipped.append(document.dataset_id)

    index = writer.build(skipped=skipped)
    logger.info("Built index %s with %d documents (%d skipped)", index.index_id, index.doc_count, len(skipped))
    return index


class JsonIndexStore:
    """Persist index statistics as a single minified JSON file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def save(self, index: IndexStatistics) -> Path:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_bytes(orjson.dumps(index.to_dict()))
        tmp_path.replace(self.path)
        logger.info("Saved index %s (%d documents) to %s", index.index_id, index.doc_count, self.path)
        return self.path

    def load(self) -> IndexStatistics:
        if not self.exists():
            msg = f"Index file not found: {self.path}"
            raise StorageError(msg)
        try:
            payload = cast("dict[str, Any]", orjson.loads(self.path.read_bytes()))
        except orjson.JSONDecodeError as exc:
            msg = f"Index file {self.path} is not valid JSON: {exc}"
            raise StorageError(msg) from exc
        if not isinstance(payload, dict):
            msg = f"Index file {self.path} does not contain an object"
            raise StorageError(msg)
        return IndexStatistics.from_dict(payload)
