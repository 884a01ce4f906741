"""Tests for evaluation/text_metrics.py, the default metrics collaborator."""

import pytest

from promptlab.evaluation.text_metrics import (
    DEFAULT_METRICS,
    MetricContext,
    TextMetrics,
    flesch_reading_ease,
    json_validity,
    keyword_overlap,
    sentence_count,
    vocab_diversity,
    word_count,
)

SAMPLE = "The cat sat. The dog ran!"
EMPTY = MetricContext()


class TestIndividualMetrics:
    """Single-metric behaviour on small inputs."""

    def test_counts(self):
        assert word_count(SAMPLE, EMPTY) == 6
        assert sentence_count(SAMPLE, EMPTY) == 2

    def test_vocab_diversity(self):
        assert vocab_diversity(SAMPLE, EMPTY) == pytest.approx(5 / 6, abs=1e-4)
        assert vocab_diversity("", EMPTY) == 0.0

    def test_flesch_is_clipped(self):
        assert 0.0 <= flesch_reading_ease(SAMPLE, EMPTY) <= 100.0
        long_words = "Incomprehensibilities notwithstanding, institutionalization internationalizes."
        assert flesch_reading_ease(long_words, EMPTY) == 0.0
        assert flesch_reading_ease("", EMPTY) == 0.0

    def test_keyword_overlap_uses_input_data_first(self):
        ctx = MetricContext(prompt="unrelated words", input_data="cat dog")
        assert keyword_overlap(SAMPLE, ctx) == 1.0
        ctx = MetricContext(prompt="cat bird")
        assert keyword_overlap(SAMPLE, ctx) == 0.5
        assert keyword_overlap(SAMPLE, EMPTY) == 0.0

    def test_json_validity(self):
        assert json_validity('{"a": 1}', EMPTY) == 1.0
        assert json_validity('```json\n{"a": 1}\n```', EMPTY) == 1.0
        assert json_validity("not json", EMPTY) == 0.0


class TestTextMetrics:
    """Collaborator-level selection rules."""

    def test_defaults(self):
        result = TextMetrics().evaluate(SAMPLE)
        assert tuple(result) == DEFAULT_METRICS

    def test_selected_subset(self):
        result = TextMetrics().evaluate(SAMPLE, ["word_count"])
        assert result == {"word_count": 6}

    def test_unknown_metric_skipped(self):
        result = TextMetrics().evaluate(SAMPLE, ["word_count", "bogus"])
        assert result == {"word_count": 6}

    def test_supported_lists_all_metrics(self):
        supported = TextMetrics().supported()
        assert "keyword_overlap" in supported
        assert set(DEFAULT_METRICS) <= set(supported)

    def test_custom_metric_table(self):
        metrics = TextMetrics({"length": lambda text, ctx: len(text)}, defaults=("length",))
        assert metrics.evaluate("abc") == {"length": 3}
        assert metrics.supported() == ("length",)


class TestCatalog:
    """Metric descriptions served to clients choosing ``metrics``."""

    def test_every_builtin_metric_is_described(self):
        catalog = TextMetrics().catalog()
        assert [entry["id"] for entry in catalog] == list(TextMetrics().supported())
        defaults = {entry["id"] for entry in catalog if entry["is_default"]}
        assert defaults == set(DEFAULT_METRICS)
        assert all(entry["name"] and entry["description"] for entry in catalog)

    def test_custom_metric_gets_placeholder_entry(self):
        metrics = TextMetrics({"shout": lambda text, ctx: text.isupper()}, defaults=())
        assert metrics.catalog() == [{
            "id": "shout",
            "name": "shout",
            "category": "custom",
            "description": "",
            "is_default": False,
        }]
