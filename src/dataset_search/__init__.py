"""Dataset search: FSDM ranking of RDF dataset records."""

from dataset_search.config import ConfigurationError, Settings
from dataset_search.engine import DatasetSearchEngine


__all__ = ["ConfigurationError", "DatasetSearchEngine", "Settings"]
