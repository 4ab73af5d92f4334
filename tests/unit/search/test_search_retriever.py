"""Unit tests for disjunctive candidate retrieval."""

import pytest

from dataset_search.search.documents import DatasetDocument
from dataset_search.search.profiles import FieldWeightProfile
from dataset_search.search.retriever import CandidateRetriever
from dataset_search.search.storage import build_index


@pytest.fixture
def retriever(small_corpus):
    return CandidateRetriever(build_index(small_corpus))


@pytest.mark.unit
class TestRetrieve:
    def test_any_term_in_any_field_qualifies(self, retriever):
        result = retriever.retrieve(["bus", "ministry"], ["title", "author"], limit=10, ranked=False)

        assert result == ["d2", "d3"]

    def test_only_selected_fields_are_searched(self, retriever):
        assert retriever.retrieve(["route"], ["title"], limit=10) == []
        assert retriever.retrieve(["route"], ["classes"], limit=10) == ["d2"]

    def test_result_bounded_by_limit(self, retriever):
        assert len(retriever.retrieve(["debt"], ["title", "description"], limit=1)) == 1

    def test_non_positive_limit_returns_empty(self, retriever):
        assert retriever.retrieve(["debt"], ["title"], limit=0) == []
        assert retriever.retrieve(["debt"], ["title"], limit=-3) == []

    def test_no_terms_returns_empty(self, retriever):
        assert retriever.retrieve([], ["title"], limit=5) == []
        assert retriever.retrieve(["", ""], ["title"], limit=5) == []

    def test_unknown_field_raises(self, retriever):
        with pytest.raises(ValueError, match="Unknown field"):
            retriever.retrieve(["debt"], ["body"], limit=5)

    def test_unranked_order_is_dataset_id(self, retriever):
        assert retriever.retrieve(["debt"], ["title"], limit=10, ranked=False) == ["d1", "d3"]

    def test_ranked_prefers_more_matches(self, retriever):
        result = retriever.retrieve(["debt", "fund"], ["title", "literals"], limit=10)

        assert result[0] == "d3"
        assert set(result) == {"d1", "d3"}

    def test_ranked_ties_break_by_dataset_id(self):
        index = build_index(
            [
                DatasetDocument(dataset_id="b", fields={"title": ("debt",)}),
                DatasetDocument(dataset_id="a", fields={"title": ("debt",)}),
            ]
        )

        assert CandidateRetriever(index).retrieve(["debt"], ["title"], limit=2) == ["a", "b"]

    def test_profile_boost_orders_candidates(self):
        index = build_index(
            [
                DatasetDocument(dataset_id="a", fields={"tags": ("debt",)}),
                DatasetDocument(dataset_id="b", fields={"title": ("debt",)}),
            ]
        )
        profile = FieldWeightProfile(name="title-heavy", weights={"title": 1.0, "tags": 0.1})

        result = CandidateRetriever(index, profile=profile).retrieve(["debt"], ["title", "tags"], limit=2)

        assert result == ["b", "a"]
