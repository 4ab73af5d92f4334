"""Centralized configuration for dataset-search using Pydantic Settings."""

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from dataset_search.search.documents import CONTENT_SOURCES, IngestionOptions
from dataset_search.search.profiles import DEFAULT_PROFILE, PROFILES


class ConfigurationError(ValueError):
    """Raised when the engine cannot start with the given configuration."""


class Settings(BaseSettings):
    """Strictly typed configuration loaded from environment variables.

    Every variable carries the ``DATASET_SEARCH_`` prefix, e.g.
    ``DATASET_SEARCH_PROFILE=fsdm-all``.
    """

    model_config = SettingsConfigDict(
        env_prefix="DATASET_SEARCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",  # Ignore extra env vars not defined in model
    )

    # Locations
    index_path: Path | None = Field(default=None, description="JSON file holding persisted index statistics")
    stopwords_path: Path | None = Field(
        default=None, description="Stoplist with one word per line (default: built-in English list)"
    )

    # Ranking
    profile: str = Field(default=DEFAULT_PROFILE, description="Name of the field weight profile")
    n_hits: int = Field(default=10, ge=1, description="Number of ranked datasets returned per query")
    candidate_limit: int = Field(default=10, ge=1, description="Number of candidates re-ranked by FSDM")
    window_size: int = Field(default=8, ge=2, description="Unordered bigram window width in tokens")
    lambda_t: float = Field(default=0.8, ge=0.0, description="Weight of the unigram component")
    lambda_o: float = Field(default=0.1, ge=0.0, description="Weight of the ordered bigram component")
    lambda_u: float = Field(default=0.1, ge=0.0, description="Weight of the unordered bigram component")
    epsilon: float = Field(default=1e-100, gt=0.0, le=1e-6, description="Floor added before taking logs")
    max_workers: int = Field(default=1, ge=1, le=64, description="Worker threads for indexing and scoring")

    # Ingestion
    positional_content: bool = Field(
        default=False, description="Keep ordered token sequences for RDF content fields"
    )
    include_classes: bool = Field(default=True, description="Index the classes content field")
    deduplicate_classes: bool = Field(default=False, description="Drop repeated class labels before indexing")
    content_sources: str = Field(
        default=",".join(CONTENT_SOURCES), description="Comma-separated RDF content sources, in reading order"
    )
    max_values_per_field: int | None = Field(
        default=100_000, ge=1, description="Truncate content fields to this many values"
    )
    max_tokens_per_document: int | None = Field(
        default=None, ge=1, description="Skip documents with more analyzed tokens than this"
    )

    # Output
    run_id: str = Field(default="FSDM", min_length=1, description="Run identifier written to run files")

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=False, description="Emit JSON log lines instead of plain text")

    @model_validator(mode="after")
    def _check_ranking(self) -> "Settings":
        if self.profile.lower() not in PROFILES:
            raise ValueError(f"Unknown profile '{self.profile}'. Available: {sorted(PROFILES)}")
        if self.lambda_t + self.lambda_o + self.lambda_u <= 0:
            raise ValueError("At least one of LAMBDA_T, LAMBDA_O or LAMBDA_U must be positive")
        unknown = [source for source in self.get_content_sources() if source not in CONTENT_SOURCES]
        if unknown:
            raise ValueError(f"Unknown content source(s) {unknown}. Available: {list(CONTENT_SOURCES)}")
        return self

    def get_content_sources(self) -> list[str]:
        """Get list of RDF content sources (comma-separated)."""
        if not self.content_sources:
            return []
        return [source.strip().lower() for source in self.content_sources.split(",") if source.strip()]

    def ingestion_options(self) -> IngestionOptions:
        return IngestionOptions(
            include_classes=self.include_classes,
            deduplicate_classes=self.deduplicate_classes,
            content_sources=tuple(self.get_content_sources()),
            max_values_per_field=self.max_values_per_field,
            max_tokens_per_document=self.max_tokens_per_document,
        )
