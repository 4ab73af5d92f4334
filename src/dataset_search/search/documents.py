"""Dataset document construction.

Turns dataset metadata plus RDF-extracted content into immutable
``DatasetDocument`` values ready for indexing. A single construction path is
parameterized by ``IngestionOptions`` (which content sources to read, whether
to index and deduplicate classes, truncation and memory budgets) so callers do
not need one builder per indexing variant.

The builder only ever sees in-memory values. Reading metadata JSON or mined
RDF files from disk belongs to the ingestion collaborator.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
import logging
from types import MappingProxyType
from typing import Any

from dataset_search.search.analyzers import Analyzer, StandardAnalyzer, get_analyzer
from dataset_search.search.schema import (
    AUTHOR,
    CLASSES,
    DESCRIPTION,
    ENTITIES,
    LITERALS,
    PROPERTIES,
    TAGS,
    TITLE,
    Schema,
    create_dataset_schema,
)


logger = logging.getLogger(__name__)

CONTENT_SOURCES: tuple[str, ...] = ("jena", "rdflib", "lightrdf")
TAG_SEPARATOR = ":"

# Reference truncation for very large mined datasets
DEFAULT_MAX_VALUES_PER_FIELD = 100_000

_STORED_FIELD_LIMITS = {
    TITLE: 512,
    DESCRIPTION: 4096,
    AUTHOR: 512,
    TAGS: 1024,
}


class DocumentLoadError(RuntimeError):
    """Raised when a dataset record cannot be turned into a document."""


class DocumentTooLargeError(DocumentLoadError):
    """Raised when a document exceeds the configured token budget."""


@dataclass(frozen=True)
class DatasetRecord:
    """Dataset metadata as provided by the ingestion collaborator."""

    dataset_id: str
    title: str = ""
    description: str | None = None
    author: str | None = None
    tags: str | Sequence[str] | None = None

    def tag_values(self) -> list[str]:
        """Return tags as a list; string tags are colon-separated."""
        if self.tags is None:
            return []
        if isinstance(self.tags, str):
            raw = self.tags.split(TAG_SEPARATOR)
        else:
            raw = [str(tag) for tag in self.tags if tag is not None]
        return [tag.strip() for tag in raw if tag.strip()]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DatasetRecord:
        dataset_id = data.get("dataset_id")
        if dataset_id in (None, ""):
            raise DocumentLoadError("Dataset metadata missing dataset_id")
        return cls(
            dataset_id=str(dataset_id),
            title=data.get("title") or "",
            description=data.get("description"),
            author=data.get("author"),
            tags=data.get("tags"),
        )


@dataclass(frozen=True)
class DatasetContent:
    """RDF content mined from a dataset by one extraction tool."""

    source: str = "jena"
    entities: tuple[str, ...] = ()
    classes: tuple[str, ...] = ()
    literals: tuple[str, ...] = ()
    properties: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, source: str) -> DatasetContent:
        def values(key: str) -> tuple[str, ...]:
            raw = data.get(key) or ()
            return tuple(str(item) for item in raw if item is not None)

        return cls(
            source=source,
            entities=values(ENTITIES),
            classes=values(CLASSES),
            literals=values(LITERALS),
            properties=values(PROPERTIES),
        )

    def values_for(self, field_name: str) -> tuple[str, ...]:
        return getattr(self, field_name)


@dataclass(frozen=True)
class IngestionOptions:
    """Knobs that select how a record becomes a document."""

    include_classes: bool = True
    deduplicate_classes: bool = False
    content_sources: tuple[str, ...] = CONTENT_SOURCES
    max_values_per_field: int | None = DEFAULT_MAX_VALUES_PER_FIELD
    max_tokens_per_document: int | None = None

    def __post_init__(self) -> None:
        unknown = [source for source in self.content_sources if source not in CONTENT_SOURCES]
        if unknown:
            msg = f"Unknown content source(s) {unknown}. Available: {list(CONTENT_SOURCES)}"
            raise ValueError(msg)
        if self.max_values_per_field is not None and self.max_values_per_field < 1:
            raise ValueError("max_values_per_field must be positive")
        if self.max_tokens_per_document is not None and self.max_tokens_per_document < 1:
            raise ValueError("max_tokens_per_document must be positive")


@dataclass(frozen=True)
class DatasetDocument:
    """Analyzed dataset: field name -> ordered token sequence."""

    dataset_id: str
    fields: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    stored: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", MappingProxyType({k: tuple(v) for k, v in self.fields.items()}))
        object.__setattr__(self, "stored", MappingProxyType(dict(self.stored)))

    def tokens(self, field_name: str) -> tuple[str, ...]:
        """Return the field's tokens, empty when the field is absent."""
        return self.fields.get(field_name, ())

    @property
    def token_count(self) -> int:
        return sum(len(tokens) for tokens in self.fields.values())


@dataclass(frozen=True)
class DocumentBatch:
    """Outcome of building documents for many records."""

    documents: tuple[DatasetDocument, ...]
    skipped: tuple[str, ...]
    errors: tuple[str, ...]


class DocumentBuilder:
    """Build ``DatasetDocument`` values according to a schema and options."""

    def __init__(
        self,
        schema: Schema | None = None,
        *,
        options: IngestionOptions | None = None,
        analyzer: Analyzer | None = None,
    ) -> None:
        self.schema = schema or create_dataset_schema()
        self.options = options or IngestionOptions()
        self._default_analyzer: Analyzer = analyzer or StandardAnalyzer()
        self._analyzers: dict[str, Analyzer] = {
            f.name: (get_analyzer(f.analyzer_name) if f.analyzer_name else self._default_analyzer)
            for f in self.schema
        }

    def build(self, record: DatasetRecord, contents: Iterable[DatasetContent] = ()) -> DatasetDocument:
        """Analyze ``record`` and its mined ``contents`` into a document."""

        values = self._collect_values(record, list(contents))

        fields: dict[str, tuple[str, ...]] = {}
        stored: dict[str, str] = {}
        budget = self.options.max_tokens_per_document
        total_tokens = 0
        for schema_field in self.schema:
            raw_values = values.get(schema_field.name, [])
            if not raw_values:
                continue
            analyzer = self._analyzers[schema_field.name]
            tokens: list[str] = []
            for value in raw_values:
                tokens.extend(token.text for token in analyzer(value))
                if budget is not None and total_tokens + len(tokens) > budget:
                    msg = f"Dataset {record.dataset_id} exceeds token budget of {budget} in field '{schema_field.name}'"
                    raise DocumentTooLargeError(msg)
            total_tokens += len(tokens)
            if tokens:
                fields[schema_field.name] = tuple(tokens)
            if schema_field.stored:
                stored_value = _normalize_stored_value(schema_field.name, raw_values)
                if stored_value:
                    stored[schema_field.name] = stored_value

        return DatasetDocument(dataset_id=record.dataset_id, fields=fields, stored=stored)

    def build_many(self, items: Iterable[tuple[DatasetRecord, Iterable[DatasetContent]]]) -> DocumentBatch:
        """Build documents, skipping records that fail without aborting the batch."""

        documents: list[DatasetDocument] = []
        skipped: list[str] = []
        errors: list[str] = []
        for record, contents in items:
            try:
                documents.append(self.build(record, contents))
            except DocumentLoadError as exc:
                logger.warning("Skipping dataset %s: %s", record.dataset_id, exc)
                skipped.append(record.dataset_id)
                errors.append(f"{record.dataset_id}: {exc}")
            except MemoryError:
                logger.error("Out of memory while building dataset %s; skipping", record.dataset_id)
                skipped.append(record.dataset_id)
                errors.append(f"{record.dataset_id}: out of memory")
        return DocumentBatch(documents=tuple(documents), skipped=tuple(skipped), errors=tuple(errors))

    # --- internal helpers -------------------------------------------------

    def _collect_values(self, record: DatasetRecord, contents: list[DatasetContent]) -> dict[str, list[str]]:
        values: dict[str, list[str]] = {
            TITLE: [record.title] if record.title else [],
            DESCRIPTION: [record.description] if record.description else [],
            AUTHOR: [record.author] if record.author else [],
            TAGS: record.tag_values(),
        }

        by_source: dict[str, list[DatasetContent]] = {}
        for content in contents:
            by_source.setdefault(content.source, []).append(content)

        for field_name in (ENTITIES, CLASSES, LITERALS, PROPERTIES):
            if field_name == CLASSES and not self.options.include_classes:
                continue
            collected: list[str] = []
            for source in self.options.content_sources:
                for content in by_source.get(source, ()):
                    collected.extend(content.values_for(field_name))
            if field_name == CLASSES and self.options.deduplicate_classes:
                collected = list(dict.fromkeys(collected))
            limit = self.options.max_values_per_field
            if limit is not None and len(collected) > limit:
                logger.debug(
                    "Truncating %s for dataset %s from %d to %d values",
                    field_name,
                    record.dataset_id,
                    len(collected),
                    limit,
                )
                collected = collected[:limit]
            values[field_name] = collected

        return {name: vals for name, vals in values.items() if name in self.schema}


def _normalize_stored_value(field_name: str, values: list[str]) -> str:
    value = TAG_SEPARATOR.join(values) if len(values) > 1 else values[0]
    limit = _STORED_FIELD_LIMITS.get(field_name)
    if limit is not None and len(value) > limit:
        return value[:limit]
    return value
