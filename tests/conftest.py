"""Shared test fixtures and configuration."""

import logging
import os

import pytest

from dataset_search.search.documents import DatasetDocument


# Complete test environment that overrides the settings tests depend on
TEST_ENV = {
    "DATASET_SEARCH_PROFILE": "fsdm-all",
    "DATASET_SEARCH_N_HITS": "10",
    "DATASET_SEARCH_CANDIDATE_LIMIT": "10",
    "DATASET_SEARCH_MAX_WORKERS": "1",
    "DATASET_SEARCH_LOG_LEVEL": "info",
    "DATASET_SEARCH_RUN_ID": "test-run",
}


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Drop inherited DATASET_SEARCH_* variables and set test defaults."""
    for key in list(os.environ):
        if key.upper().startswith("DATASET_SEARCH_"):
            monkeypatch.delenv(key, raising=False)
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)


@pytest.fixture(autouse=True)
def restore_logging():
    """Undo root handler and logger level changes made by configure_logging."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    search_logger = logging.getLogger("dataset_search.search")
    search_level = search_logger.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    search_logger.setLevel(search_level)


@pytest.fixture
def debt_fund_documents():
    """Two-document corpus where A matches both query terms in two fields."""
    return [
        DatasetDocument(
            dataset_id="A",
            fields={"title": ("debt", "rescheduling"), "entities": ("debt", "fund")},
        ),
        DatasetDocument(
            dataset_id="B",
            fields={"title": ("fund", "management"), "entities": ()},
        ),
    ]


@pytest.fixture
def small_corpus():
    """A handful of analyzed documents spanning metadata and content fields."""
    return [
        DatasetDocument(
            dataset_id="d1",
            fields={
                "title": ("world", "bank", "debt", "statistics"),
                "description": ("external", "debt", "statistics", "by", "country"),
                "tags": ("finance", "debt"),
                "entities": ("world", "bank", "debt"),
            },
            stored={"title": "World Bank Debt Statistics"},
        ),
        DatasetDocument(
            dataset_id="d2",
            fields={
                "title": ("city", "bus", "routes"),
                "description": ("bus", "routes", "and", "stops"),
                "classes": ("route", "stop"),
            },
            stored={"title": "City Bus Routes"},
        ),
        DatasetDocument(
            dataset_id="d3",
            fields={
                "title": ("debt", "fund", "reports"),
                "author": ("ministry", "finance"),
                "literals": ("fund", "debt", "fund"),
            },
            stored={"title": "Debt Fund Reports"},
        ),
    ]
