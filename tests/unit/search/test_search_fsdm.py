"""Unit tests for FSDM scoring."""

import logging
import math

import pytest

from dataset_search.search.documents import DatasetDocument
from dataset_search.search.fsdm import (
    DEFAULT_EPSILON,
    FSDMScorer,
    ordered_bigram_frequency,
    unordered_window_frequency,
)
from dataset_search.search.profiles import FieldWeightProfile, get_profile
from dataset_search.search.schema import create_dataset_schema
from dataset_search.search.storage import build_index


TITLE_AND_ENTITIES = FieldWeightProfile(name="title-entities", weights={"title": 1.0, "entities": 1.0})


@pytest.fixture
def debt_fund_index(debt_fund_documents):
    return build_index(debt_fund_documents)


@pytest.mark.unit
class TestOrderedBigramFrequency:
    def test_counts_adjacency_in_either_order(self):
        tokens = ["a", "b", "c", "b", "a"]

        assert ordered_bigram_frequency(tokens, "a", "b") == 2
        assert ordered_bigram_frequency(tokens, "b", "a") == 2
        assert ordered_bigram_frequency(tokens, "a", "c") == 0

    def test_short_sequences(self):
        assert ordered_bigram_frequency([], "a", "b") == 0
        assert ordered_bigram_frequency(["a"], "a", "b") == 0


@pytest.mark.unit
class TestUnorderedWindowFrequency:
    def test_pair_at_window_edges_counts_once(self):
        tokens = ["x", "f1", "f2", "f3", "f4", "f5", "f6", "y"]

        assert unordered_window_frequency(tokens, "x", "y", 8) == 1

    def test_pair_further_apart_than_window(self):
        tokens = ["x", "f1", "f2", "f3", "f4", "f5", "f6", "f7", "y"]

        assert unordered_window_frequency(tokens, "x", "y", 8) == 0

    def test_sequence_shorter_than_window(self):
        assert unordered_window_frequency(["x", "y"], "x", "y", 8) == 0

    def test_every_full_window_is_counted(self):
        tokens = ["x", "y", "z"]

        assert unordered_window_frequency(tokens, "x", "y", 2) == 1
        assert unordered_window_frequency(tokens, "y", "z", 2) == 1
        assert unordered_window_frequency(tokens, "x", "z", 3) == 1

    def test_rejects_non_positive_window(self):
        with pytest.raises(ValueError, match="window"):
            unordered_window_frequency(["x"], "x", "y", 0)


@pytest.mark.unit
class TestComponents:
    def test_unigram_mixture(self, debt_fund_index):
        scorer = FSDMScorer(debt_fund_index, TITLE_AND_ENTITIES)
        ctx = scorer.prepare(["debt"])

        # title: (1 + 2 * 1/4) / (2 + 2) = 0.375, entities: (1 + 2 * 1/2) / (2 + 2) = 0.5
        assert scorer.unigram_score(ctx, "A") == pytest.approx(math.log(0.5 * 0.375 + 0.5 * 0.5))

    def test_field_missing_from_document_adds_nothing(self, debt_fund_index):
        scorer = FSDMScorer(debt_fund_index, TITLE_AND_ENTITIES)
        ctx = scorer.prepare(["debt"])

        assert scorer.unigram_score(ctx, "B") == pytest.approx(math.log(0.5 * 0.125))

    def test_ordered_uses_smaller_unigram_collection_frequency(self, debt_fund_index):
        scorer = FSDMScorer(debt_fund_index, TITLE_AND_ENTITIES)
        ctx = scorer.prepare(["debt", "fund"])

        assert ctx.pairs == (("debt", "fund"),)
        assert ctx.bigram_collection_frequency("title", "debt", "fund") == 1
        # frequency-only entities contribute smoothing mass only
        assert scorer.ordered_score(ctx, "A") == pytest.approx(math.log(0.5 * 0.125 + 0.5 * 0.25))

    def test_prepare_builds_adjacent_pairs_once(self, debt_fund_index):
        ctx = FSDMScorer(debt_fund_index, TITLE_AND_ENTITIES).prepare(["debt", "fund", "debt"])

        assert ctx.pairs == (("debt", "fund"), ("fund", "debt"))

    def test_document_fields_lists_present_scored_fields(self, debt_fund_index):
        scorer = FSDMScorer(debt_fund_index, TITLE_AND_ENTITIES)
        ctx = scorer.prepare(["debt"])

        assert scorer.document_fields(ctx, "A") == [("title", 2), ("entities", 2)]
        assert scorer.document_fields(ctx, "B") == [("title", 2)]

    def test_components_accept_precomputed_fields(self, debt_fund_index):
        scorer = FSDMScorer(debt_fund_index, TITLE_AND_ENTITIES)
        ctx = scorer.prepare(["debt", "fund"])
        fields = scorer.document_fields(ctx, "A")

        assert scorer.unigram_score(ctx, "A", fields) == scorer.unigram_score(ctx, "A")
        assert scorer.ordered_score(ctx, "A", fields) == scorer.ordered_score(ctx, "A")
        assert scorer.unordered_score(ctx, "A", fields) == scorer.unordered_score(ctx, "A")

    def test_single_term_query_has_no_pair_components(self, debt_fund_index):
        scorer = FSDMScorer(debt_fund_index, TITLE_AND_ENTITIES)
        result = scorer.score_document(scorer.prepare(["debt"]), "A")

        assert result.ordered == 0.0
        assert result.unordered == 0.0
        assert result.total == pytest.approx(0.8 * result.unigram)

    def test_total_is_weighted_sum(self, debt_fund_index):
        scorer = FSDMScorer(debt_fund_index, TITLE_AND_ENTITIES, lambda_t=0.5, lambda_o=0.3, lambda_u=0.2)
        result = scorer.score_document(scorer.prepare(["debt", "fund"]), "A")

        expected = 0.5 * result.unigram + 0.3 * result.ordered + 0.2 * result.unordered
        assert result.total == pytest.approx(expected)

    def test_positional_content_counts_bigrams(self, debt_fund_documents):
        index = build_index(debt_fund_documents, schema=create_dataset_schema(positional_content=True))
        scorer = FSDMScorer(index, TITLE_AND_ENTITIES)
        ctx = scorer.prepare(["debt", "fund"])

        # entities: (1 + 2 * 1/2) / (2 + 2) = 0.5
        assert scorer.ordered_score(ctx, "A") == pytest.approx(math.log(0.5 * 0.125 + 0.5 * 0.5))


@pytest.mark.unit
class TestScoringEdgeCases:
    def test_no_overlap_hits_epsilon_floor(self, debt_fund_index):
        scorer = FSDMScorer(debt_fund_index, TITLE_AND_ENTITIES)
        result = scorer.score_document(scorer.prepare(["zebra", "quokka"]), "A")

        floor = math.log(DEFAULT_EPSILON)
        assert result.unigram == pytest.approx(2 * floor)
        assert result.ordered == pytest.approx(floor)
        assert result.unordered == pytest.approx(floor)
        assert math.isfinite(result.total)

    def test_term_absent_from_collection_keeps_score_finite(self, debt_fund_index):
        scorer = FSDMScorer(debt_fund_index, TITLE_AND_ENTITIES)

        ranked = scorer.score(["debt", "zebra"], ["A", "B"])

        assert all(math.isfinite(doc.score) for doc in ranked)
        assert ranked[0].dataset_id == "A"

    def test_empty_query_scores_zero(self, debt_fund_index):
        scorer = FSDMScorer(debt_fund_index, TITLE_AND_ENTITIES)

        ranked = scorer.score([], ["B", "A"])

        assert [(doc.dataset_id, doc.score) for doc in ranked] == [("A", 0.0), ("B", 0.0)]

    def test_zero_weight_field_equals_omitting_it(self, debt_fund_index):
        with_zero = FieldWeightProfile(name="zero", weights={"title": 1.0, "entities": 0.0})
        title_only = FieldWeightProfile(name="title", weights={"title": 1.0})

        first = FSDMScorer(debt_fund_index, with_zero).score(["debt", "fund"], ["A", "B"])
        second = FSDMScorer(debt_fund_index, title_only).score(["debt", "fund"], ["A", "B"])

        assert first == second

    def test_field_without_documents_is_skipped(self, debt_fund_index):
        with_author = FieldWeightProfile(name="author", weights={"title": 1.0, "author": 1.0})
        scorer = FSDMScorer(debt_fund_index, with_author)

        ctx = scorer.prepare(["debt"])

        assert ctx.fields == ("title",)
        assert math.isfinite(scorer.score_document(ctx, "A").total)

    def test_unknown_candidates_are_skipped(self, debt_fund_index, caplog):
        scorer = FSDMScorer(debt_fund_index, TITLE_AND_ENTITIES)

        with caplog.at_level(logging.WARNING):
            ranked = scorer.score(["debt"], ["ghost", "A", "A"])

        assert [doc.dataset_id for doc in ranked] == ["A"]
        assert "ghost" in caplog.text

    def test_no_known_candidates(self, debt_fund_index):
        assert FSDMScorer(debt_fund_index, TITLE_AND_ENTITIES).score(["debt"], ["ghost"]) == []

    def test_rejects_non_positive_window(self, debt_fund_index):
        with pytest.raises(ValueError, match="window_size"):
            FSDMScorer(debt_fund_index, TITLE_AND_ENTITIES, window_size=0)


@pytest.mark.unit
class TestRanking:
    @pytest.mark.parametrize("profile", [TITLE_AND_ENTITIES, get_profile("fsdm-all")], ids=["title-entities", "all"])
    def test_document_matching_more_fields_ranks_first(self, debt_fund_index, profile):
        ranked = FSDMScorer(debt_fund_index, profile).score(["debt", "fund"], ["B", "A"])

        assert [doc.dataset_id for doc in ranked] == ["A", "B"]
        assert ranked[0].score > ranked[1].score

    def test_ties_break_by_dataset_id(self):
        index = build_index(
            [
                DatasetDocument(dataset_id="z", fields={"title": ("debt",)}),
                DatasetDocument(dataset_id="m", fields={"title": ("debt",)}),
            ]
        )

        ranked = FSDMScorer(index, get_profile("fsdm-metadata")).score(["debt"], ["z", "m"])

        assert [doc.dataset_id for doc in ranked] == ["m", "z"]
        assert ranked[0].score == ranked[1].score

    def test_limit_truncates(self, small_corpus):
        scorer = FSDMScorer(build_index(small_corpus), get_profile("fsdm-all"))

        assert len(scorer.score(["debt"], ["d1", "d2", "d3"], limit=2)) == 2
        assert scorer.score(["debt"], ["d1", "d2", "d3"], limit=0) == []

    def test_parallel_scoring_matches_sequential(self, small_corpus):
        scorer = FSDMScorer(build_index(small_corpus), get_profile("fsdm-all"))
        terms = ["debt", "fund", "statistics"]

        sequential = scorer.score(terms, ["d1", "d2", "d3"])
        parallel = scorer.score(terms, ["d1", "d2", "d3"], max_workers=4)

        assert parallel == sequential
        assert scorer.score(terms, ["d1", "d2", "d3"]) == sequential
