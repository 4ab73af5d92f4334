"""Field weight profiles.

A profile assigns a non-negative weight to each searched field. Scorers use
the weights normalized to sum to 1; fields with weight 0 are inactive and
contribute nothing.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
import math
from types import MappingProxyType

from dataset_search.search.schema import (
    ALL_FIELDS,
    AUTHOR,
    CLASSES,
    DESCRIPTION,
    ENTITIES,
    LITERALS,
    PROPERTIES,
    TAGS,
    TITLE,
)


class ProfileError(ValueError):
    """Raised for empty, malformed or unknown weight profiles."""


@dataclass(frozen=True)
class FieldWeightProfile:
    """Named, ordered mapping of field name to weight."""

    name: str
    weights: Mapping[str, float]

    def __post_init__(self) -> None:
        weights: dict[str, float] = {}
        for field_name, raw_weight in self.weights.items():
            if field_name not in ALL_FIELDS:
                msg = f"Profile '{self.name}' references unknown field '{field_name}'"
                raise ProfileError(msg)
            weight = float(raw_weight)
            if not math.isfinite(weight) or weight < 0:
                msg = f"Profile '{self.name}' has invalid weight {raw_weight!r} for field '{field_name}'"
                raise ProfileError(msg)
            weights[field_name] = weight
        if not any(weight > 0 for weight in weights.values()):
            msg = f"Profile '{self.name}' has no positive field weight"
            raise ProfileError(msg)
        object.__setattr__(self, "weights", MappingProxyType(weights))

    @property
    def fields(self) -> tuple[str, ...]:
        return tuple(self.weights)

    @property
    def active_fields(self) -> tuple[str, ...]:
        """Fields with a positive weight, in profile order."""
        return tuple(name for name, weight in self.weights.items() if weight > 0)

    def normalized(self) -> dict[str, float]:
        """Return weights of active fields scaled to sum to 1."""
        total = sum(self.weights.values())
        return {name: self.weights[name] / total for name in self.active_fields}

    def restricted_to(self, fields: Iterable[str], *, name: str | None = None) -> FieldWeightProfile:
        """Return a copy keeping only ``fields``."""
        keep = set(fields)
        return FieldWeightProfile(
            name=name or self.name,
            weights={k: v for k, v in self.weights.items() if k in keep},
        )


BM25_PROFILE = FieldWeightProfile(
    name="bm25",
    weights={
        TITLE: 1.0,
        DESCRIPTION: 0.9,
        AUTHOR: 0.9,
        TAGS: 0.6,
        CLASSES: 0.2,
        ENTITIES: 0.3,
        LITERALS: 0.1,
        PROPERTIES: 0.1,
    },
)

TFIDF_PROFILE = FieldWeightProfile(
    name="tfidf",
    weights={
        TITLE: 1.0,
        DESCRIPTION: 0.7,
        AUTHOR: 0.9,
        TAGS: 0.9,
        CLASSES: 0.8,
        ENTITIES: 0.5,
        LITERALS: 0.1,
        PROPERTIES: 0.4,
    },
)

LMD_PROFILE = FieldWeightProfile(
    name="lmd",
    weights={
        TITLE: 1.0,
        DESCRIPTION: 0.1,
        AUTHOR: 0.5,
        TAGS: 0.9,
        CLASSES: 0.1,
        ENTITIES: 0.1,
        LITERALS: 0.4,
        PROPERTIES: 0.6,
    },
)

# FSDM profiles reuse the LMD table, split by field family
FSDM_METADATA_PROFILE = LMD_PROFILE.restricted_to((TITLE, DESCRIPTION, AUTHOR, TAGS), name="fsdm-metadata")
FSDM_CONTENT_PROFILE = LMD_PROFILE.restricted_to((ENTITIES, LITERALS, CLASSES, PROPERTIES), name="fsdm-content")
FSDM_ALL_PROFILE = LMD_PROFILE.restricted_to(ALL_FIELDS, name="fsdm-all")

PROFILES: Mapping[str, FieldWeightProfile] = MappingProxyType(
    {
        profile.name: profile
        for profile in (
            BM25_PROFILE,
            TFIDF_PROFILE,
            LMD_PROFILE,
            FSDM_METADATA_PROFILE,
            FSDM_CONTENT_PROFILE,
            FSDM_ALL_PROFILE,
        )
    }
)

DEFAULT_PROFILE = FSDM_METADATA_PROFILE.name


def get_profile(name: str) -> FieldWeightProfile:
    """Return a built-in profile by name."""

    profile = PROFILES.get(name.lower())
    if profile is None:
        msg = f"Unknown weight profile '{name}'. Available: {sorted(PROFILES)}"
        raise ProfileError(msg)
    return profile
