"""Unit tests for analyzer pipelines and filters."""

import pytest

from dataset_search.search import analyzers
from dataset_search.search.analyzers import (
    DEFAULT_STOPWORDS,
    AnalyzerPipeline,
    KeywordAnalyzer,
    LowercaseFilter,
    RegexTokenizer,
    StandardAnalyzer,
    StopFilter,
    Token,
    analyze,
    get_analyzer,
    load_stopwords,
)


@pytest.mark.unit
class TestToken:
    """Token helpers produce safe copies with metadata intact."""

    def test_copy_with_preserves_metadata(self):
        token = Token(text="Debt", position=2, start_char=10, end_char=14, attributes={"field": "title"})

        clone = token.copy_with(text="debt")
        clone.attributes["field"] = "tags"

        assert clone.text == "debt"
        assert clone.position == token.position
        assert token.text == "Debt"
        assert token.attributes["field"] == "title"


@pytest.mark.unit
class TestRegexTokenizer:
    """Regex tokenizer should emit positions and char offsets."""

    def test_emits_tokens_with_offsets(self):
        tokens = list(RegexTokenizer()("Debt, fund-management"))

        assert [t.text for t in tokens] == ["Debt", "fund", "management"]
        assert [t.position for t in tokens] == [0, 1, 2]
        assert tokens[1].start_char == 6
        assert tokens[1].end_char == 10

    def test_keeps_apostrophes_inside_words(self):
        tokens = list(RegexTokenizer()("don't stop"))

        assert [t.text for t in tokens] == ["don't", "stop"]


@pytest.mark.unit
class TestFilters:
    def test_lowercase_filter(self):
        tokens = LowercaseFilter()(RegexTokenizer()("World BANK"))

        assert [t.text for t in tokens] == ["world", "bank"]

    def test_stop_filter_uses_nltk_list_by_default(self):
        tokens = StopFilter()(RegexTokenizer()("the bank of england"))

        assert [t.text for t in tokens] == ["bank", "england"]

    def test_stop_filter_accepts_custom_words(self):
        tokens = StopFilter(["bank"])(RegexTokenizer()("the bank"))

        assert [t.text for t in tokens] == ["the"]

    def test_pipeline_renumbers_positions_after_filtering(self):
        pipeline = AnalyzerPipeline(RegexTokenizer(), [LowercaseFilter(), StopFilter()])

        tokens = pipeline("The Debt of the Fund")

        assert [(t.text, t.position) for t in tokens] == [("debt", 0), ("fund", 1)]


@pytest.mark.unit
class TestStandardAnalyzer:
    def test_lowercases_splits_and_drops_stopwords(self):
        assert StandardAnalyzer().analyze("Debt rescheduling for the Fund") == ["debt", "rescheduling", "fund"]

    def test_keeps_duplicates_and_order(self):
        assert StandardAnalyzer().analyze("fund debt fund") == ["fund", "debt", "fund"]

    def test_empty_text_yields_no_terms(self):
        assert StandardAnalyzer().analyze("") == []
        assert StandardAnalyzer().analyze("the of and") == []

    def test_is_deterministic(self):
        text = "Population census 2020, regional breakdown"

        assert StandardAnalyzer().analyze(text) == StandardAnalyzer().analyze(text)
        assert analyze(text) == analyze(text)

    def test_custom_stopwords_replace_defaults(self):
        analyzer = StandardAnalyzer(stopwords=["census"])

        assert analyzer.analyze("the census") == ["the"]


@pytest.mark.unit
class TestKeywordAnalyzer:
    def test_single_lowercased_token(self):
        tokens = KeywordAnalyzer()("  Open Data ")

        assert [t.text for t in tokens] == ["open data"]

    def test_blank_input(self):
        assert KeywordAnalyzer()("   ") == []


@pytest.mark.unit
class TestLoadStopwords:
    def test_reads_words_skipping_blanks_and_comments(self, tmp_path):
        path = tmp_path / "stop.txt"
        path.write_text("# english\nthe\n\n  of \n", encoding="utf-8")

        assert load_stopwords(path) == ["the", "of"]

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Stopword file not found"):
            load_stopwords(tmp_path / "missing.txt")


@pytest.mark.unit
class TestRegistry:
    def test_known_names(self):
        assert isinstance(get_analyzer(None), StandardAnalyzer)
        assert isinstance(get_analyzer("Standard"), StandardAnalyzer)
        assert isinstance(get_analyzer("keyword"), KeywordAnalyzer)

    def test_unknown_name_raises(self):
        with pytest.raises(ValueError, match="Unknown analyzer"):
            get_analyzer("stemming")

    def test_default_stopwords_are_lowercase(self):
        assert all(word == word.lower() for word in DEFAULT_STOPWORDS)
        assert "the" in analyzers.DEFAULT_STOPWORDS
