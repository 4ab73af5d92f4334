"""
Schema definition for dataset indexing.

Defines the fields of a dataset document, inspired by Whoosh's schema module.
Every field is analyzed text; what differs is what the index keeps for it:

- positional: the ordered token sequence is kept alongside term frequencies,
  enabling adjacency and window statistics (ordered/unordered bigrams)
- stored: the raw value is kept for display
- multi_valued: the field accepts a list of values, each analyzed and appended
  to the field's token sequence in insertion order

Metadata fields (title, description, author, tags) are positional and stored.
Content fields extracted from RDF (entities, literals, classes, properties) are
frequency-only by default because they can be very large.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any


DATASET_ID = "dataset_id"
TITLE = "title"
DESCRIPTION = "description"
AUTHOR = "author"
TAGS = "tags"
ENTITIES = "entities"
LITERALS = "literals"
CLASSES = "classes"
PROPERTIES = "properties"

METADATA_FIELDS: tuple[str, ...] = (TITLE, DESCRIPTION, AUTHOR, TAGS)
CONTENT_FIELDS: tuple[str, ...] = (ENTITIES, LITERALS, CLASSES, PROPERTIES)
ALL_FIELDS: tuple[str, ...] = METADATA_FIELDS + CONTENT_FIELDS


@dataclass(frozen=True)
class DatasetField:
    """
    Analyzed text field of a dataset document.

    Args:
        name: Field name (e.g., "title", "entities")
        positional: Keep the ordered token sequence (default: True)
        stored: Store raw value for retrieval (default: True)
        multi_valued: Accept a list of values (default: False)
        analyzer_name: Name of analyzer to use (default: None = standard)
    """

    name: str
    positional: bool = True
    stored: bool = True
    multi_valued: bool = False
    analyzer_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize field definition to dict."""
        data: dict[str, Any] = {
            "name": self.name,
            "positional": self.positional,
            "stored": self.stored,
            "multi_valued": self.multi_valued,
        }
        if self.analyzer_name:
            data["analyzer_name"] = self.analyzer_name
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DatasetField:
        """Deserialize field definition from dict."""
        return cls(
            name=data["name"],
            positional=data.get("positional", True),
            stored=data.get("stored", True),
            multi_valued=data.get("multi_valued", False),
            analyzer_name=data.get("analyzer_name"),
        )


@dataclass(frozen=True)
class Schema:
    """
    Schema definition for a dataset index.

    Field order is significant: it fixes the iteration order used when
    aggregating statistics, which keeps scoring reproducible.

    Example:
        schema = Schema(
            fields=(
                DatasetField("title"),
                DatasetField("entities", positional=False, stored=False, multi_valued=True),
            ),
        )
    """

    fields: tuple[DatasetField, ...]
    unique_field: str = DATASET_ID
    name: str = "datasets"

    def __post_init__(self) -> None:
        """Validate schema after initialization."""
        names = [f.name for f in self.fields]
        if not names:
            raise ValueError("Schema requires at least one field")
        if len(set(names)) != len(names):
            msg = f"Duplicate field names in schema: {names}"
            raise ValueError(msg)
        if self.unique_field in names:
            msg = f"Unique field '{self.unique_field}' cannot also be an indexed field"
            raise ValueError(msg)

    def __getitem__(self, name: str) -> DatasetField:
        """Get field by name."""
        for schema_field in self.fields:
            if schema_field.name == name:
                return schema_field
        raise KeyError(name)

    def __contains__(self, name: object) -> bool:
        """Check if field exists."""
        return any(f.name == name for f in self.fields)

    def __iter__(self) -> Iterator[DatasetField]:
        """Iterate over fields."""
        return iter(self.fields)

    def __len__(self) -> int:
        """Return number of fields."""
        return len(self.fields)

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    @property
    def positional_fields(self) -> tuple[str, ...]:
        """Return names of fields that keep ordered token sequences."""
        return tuple(f.name for f in self.fields if f.positional)

    def validate_fields(self, names: Iterable[str]) -> tuple[str, ...]:
        """Return ``names`` as a tuple, rejecting any unknown field."""
        resolved = tuple(names)
        unknown = [name for name in resolved if name not in self]
        if unknown:
            msg = f"Unknown field(s) {unknown}. Available: {list(self.field_names)}"
            raise ValueError(msg)
        return resolved

    def to_dict(self) -> dict[str, Any]:
        """Serialize schema to dict."""
        return {
            "name": self.name,
            "unique_field": self.unique_field,
            "fields": [f.to_dict() for f in self.fields],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Schema:
        """Deserialize schema from dict."""
        return cls(
            fields=tuple(DatasetField.from_dict(f) for f in data["fields"]),
            unique_field=data.get("unique_field", DATASET_ID),
            name=data.get("name", "datasets"),
        )


def create_dataset_schema(*, positional_content: bool = False) -> Schema:
    """
    Create the schema for RDF dataset search.

    Fields:
    - title, description, author: metadata text (positional, stored)
    - tags: metadata keywords, multi-valued (positional, stored)
    - entities, literals, classes, properties: RDF content, multi-valued
      (frequency-only and not stored unless ``positional_content`` is set)
    """
    return Schema(
        name="datasets",
        unique_field=DATASET_ID,
        fields=(
            DatasetField(TITLE),
            DatasetField(DESCRIPTION),
            DatasetField(AUTHOR),
            DatasetField(TAGS, multi_valued=True),
            DatasetField(ENTITIES, positional=positional_content, stored=False, multi_valued=True),
            DatasetField(LITERALS, positional=positional_content, stored=False, multi_valued=True),
            DatasetField(CLASSES, positional=positional_content, stored=False, multi_valued=True),
            DatasetField(PROPERTIES, positional=positional_content, stored=False, multi_valued=True),
        ),
    )
