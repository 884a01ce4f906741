"""
Text Metrics: default metrics collaborator for finished job output.

Computes a bag of named scores from the full accumulated output text.  The
formulas are intentionally lightweight approximations; callers treat the
result as opaque and only rely on it being a flat ``{name: value}`` dict.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

_WORD_RE = re.compile(r"[A-Za-z0-9']+")
_SENTENCE_RE = re.compile(r"[^.!?]+[.!?]*")
_VOWEL_GROUP_RE = re.compile(r"[aeiouy]+")


@dataclass(frozen=True)
class MetricContext:
    """Request context some metrics compare the output against."""

    prompt: Optional[str] = None
    input_data: Any = None

    def reference_text(self) -> str:
        """Reference for overlap metrics: ``input_data`` first, else the prompt."""
        if self.input_data:
            if isinstance(self.input_data, str):
                return self.input_data.strip()
            return json.dumps(self.input_data)
        return (self.prompt or "").strip()


class MetricsCollaborator(Protocol):
    """Anything that turns finished output text into a bag of scores."""

    def supported(self) -> Tuple[str, ...]:
        ...

    def catalog(self) -> List[Dict[str, Any]]:
        ...

    def evaluate(
        self,
        text: str,
        selected: Optional[Sequence[str]] = None,
        context: Optional[MetricContext] = None,
    ) -> Dict[str, Any]:
        ...


# ── Individual metrics ───────────────────────────────────────────────


def _words(text: str) -> list:
    return _WORD_RE.findall(text.lower())


def _sentences(text: str) -> list:
    return [s for s in (m.strip() for m in _SENTENCE_RE.findall(text)) if _WORD_RE.search(s)]


def _syllables(word: str) -> int:
    groups = _VOWEL_GROUP_RE.findall(word)
    count = len(groups)
    if word.endswith("e") and count > 1:
        count -= 1
    return max(count, 1)


def word_count(text: str, context: MetricContext) -> int:
    return len(_words(text))


def sentence_count(text: str, context: MetricContext) -> int:
    return len(_sentences(text))


def avg_words_per_sentence(text: str, context: MetricContext) -> float:
    lengths = np.array([len(_words(s)) for s in _sentences(text)], dtype=float)
    if lengths.size == 0:
        return 0.0
    return round(float(np.mean(lengths)), 2)


def vocab_diversity(text: str, context: MetricContext) -> float:
    """Type-token ratio in [0, 1]."""
    words = _words(text)
    if not words:
        return 0.0
    return round(float(np.unique(words).size) / len(words), 4)


def flesch_reading_ease(text: str, context: MetricContext) -> float:
    """Flesch reading ease, clipped to [0, 100]."""
    words = _words(text)
    sentences = _sentences(text)
    if not words or not sentences:
        return 0.0
    syllables = np.array([_syllables(w) for w in words], dtype=float)
    score = 206.835 - 1.015 * (len(words) / len(sentences)) - 84.6 * float(syllables.mean())
    return round(float(np.clip(score, 0.0, 100.0)), 2)


def keyword_overlap(text: str, context: MetricContext) -> float:
    """Share of distinct reference words that appear in the output."""
    reference = set(_words(context.reference_text()))
    if not reference:
        return 0.0
    produced = set(_words(text))
    return round(len(reference & produced) / len(reference), 4)


def json_validity(text: str, context: MetricContext) -> float:
    """1.0 when the (fence-stripped) output parses as JSON, else 0.0."""
    candidate = text.strip()
    if candidate.startswith("```"):
        candidate = candidate.strip("`")
        if candidate.lower().startswith("json"):
            candidate = candidate[4:]
    try:
        json.loads(candidate)
    except ValueError:
        return 0.0
    return 1.0


METRICS: Dict[str, Callable[[str, MetricContext], Any]] = {
    "word_count": word_count,
    "sentence_count": sentence_count,
    "avg_words_per_sentence": avg_words_per_sentence,
    "vocab_diversity": vocab_diversity,
    "flesch_reading_ease": flesch_reading_ease,
    "keyword_overlap": keyword_overlap,
    "json_validity": json_validity,
}

# id -> (display name, category, description)
METRIC_INFO: Dict[str, Tuple[str, str, str]] = {
    "word_count": ("Word Count", "structure", "Number of words in the output."),
    "sentence_count": ("Sentence Count", "structure", "Number of sentences in the output."),
    "avg_words_per_sentence": (
        "Average Words per Sentence", "readability", "Mean sentence length in words."
    ),
    "vocab_diversity": (
        "Vocabulary Diversity", "readability", "Distinct words divided by total words."
    ),
    "flesch_reading_ease": (
        "Flesch Reading Ease", "readability", "Flesch reading ease score from 0 to 100."
    ),
    "keyword_overlap": (
        "Keyword Overlap",
        "relevance",
        "Share of input data (or prompt) words that appear in the output.",
    ),
    "json_validity": ("JSON Validity", "format", "1 when the output parses as JSON, else 0."),
}

DEFAULT_METRICS: Tuple[str, ...] = (
    "flesch_reading_ease",
    "word_count",
    "sentence_count",
    "vocab_diversity",
)


class TextMetrics:
    """Registry-backed metrics collaborator."""

    def __init__(
        self,
        metrics: Optional[Dict[str, Callable[[str, MetricContext], Any]]] = None,
        defaults: Sequence[str] = DEFAULT_METRICS,
    ) -> None:
        self._metrics = dict(metrics if metrics is not None else METRICS)
        self._defaults = tuple(m for m in defaults if m in self._metrics)

    def supported(self) -> Tuple[str, ...]:
        return tuple(self._metrics)

    def catalog(self) -> List[Dict[str, Any]]:
        """One entry per supported metric, in registration order."""
        entries = []
        for metric_id in self._metrics:
            name, category, description = METRIC_INFO.get(metric_id, (metric_id, "custom", ""))
            entries.append({
                "id": metric_id,
                "name": name,
                "category": category,
                "description": description,
                "is_default": metric_id in self._defaults,
            })
        return entries

    def evaluate(
        self,
        text: str,
        selected: Optional[Sequence[str]] = None,
        context: Optional[MetricContext] = None,
    ) -> Dict[str, Any]:
        """Compute the selected metrics (or the defaults) for *text*.

        Unknown metric ids are skipped with a warning; they are rejected
        earlier, at job creation, so this only happens for stale records.
        """
        context = context or MetricContext()
        names = list(selected) if selected else list(self._defaults)
        results: Dict[str, Any] = {}
        for name in names:
            fn = self._metrics.get(name)
            if fn is None:
                logger.warning("Skipping unknown metric %r", name)
                continue
            results[name] = fn(text, context)
        return results
