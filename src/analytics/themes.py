"""
Keyword theme classification of free-text responses.

A response matches a theme when any of its stemmed words equals any of the
theme's stemmed keywords. Classification is non-exclusive; responses matching
no theme land in the Unclassified bucket.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple, Union
import logging

from src.analytics.text import extract_stems, stem
from src.models.results import ThemeResult, ThemeStats
from src.models.schemas import AnalysisContext, TextTheme

logger = logging.getLogger(__name__)


UNCLASSIFIED_THEME_NAME = "Unclassified"
MAX_EXAMPLES = 3

# Ordering key of a response: record index, or (record index, answer index)
Seq = Union[int, Tuple[int, int]]


def first_distinct(examples: Iterable[Tuple[Seq, str]], limit: int) -> List[Tuple[Seq, str]]:
    """Earliest ``limit`` examples (by sequence number) with distinct texts."""
    seen = set()
    selected = []
    for seq, text in sorted(examples):
        if text in seen:
            continue
        seen.add(text)
        selected.append((seq, text))
        if len(selected) == limit:
            break
    return selected


@dataclass
class ThemeAccumulator:
    """Running count and example texts for one theme bucket."""
    count: int = 0
    success_count: int = 0
    partial_count: int = 0
    examples: List[Tuple[Seq, str]] = field(default_factory=list)

    def add(self, seq: Seq, text: str, outcome: Optional[str] = None) -> None:
        self.count += 1
        if outcome == "yes":
            self.success_count += 1
        elif outcome == "partial":
            self.partial_count += 1
        if len(self.examples) < MAX_EXAMPLES and all(t != text for _, t in self.examples):
            self.examples.append((seq, text))

    def merge(self, other: "ThemeAccumulator") -> "ThemeAccumulator":
        return ThemeAccumulator(
            count=self.count + other.count,
            success_count=self.success_count + other.success_count,
            partial_count=self.partial_count + other.partial_count,
            examples=first_distinct(self.examples + other.examples, MAX_EXAMPLES),
        )

    def success_rate(self) -> float:
        """Full success counts 1.0, partial 0.5."""
        if self.count == 0:
            return 0.0
        return (self.success_count + self.partial_count * 0.5) / self.count


class ThemeClassifier:
    """
    Classifier over a snapshot of team themes.

    Only themes whose analysis context equals ``context`` take part; pass
    ``context=None`` to use every theme given.
    """

    def __init__(
        self,
        themes: Sequence[TextTheme],
        context: Optional[AnalysisContext] = None,
        track_success: bool = False,
    ):
        self.themes = [t for t in themes if context is None or t.analysis_context == context]
        self.context = context
        self.track_success = track_success
        self._keyword_stems = [
            frozenset(stem(keyword) for keyword in theme.keywords if keyword and keyword.strip())
            for theme in self.themes
        ]
        logger.debug(f"Theme classifier initialized with {len(self.themes)} themes (context={context})")

    def match(self, text: str) -> List[int]:
        """Indexes of every theme the text matches."""
        stems = set(extract_stems(text))
        if not stems:
            return []
        return [
            index for index, keyword_stems in enumerate(self._keyword_stems)
            if not stems.isdisjoint(keyword_stems)
        ]

    def new_accumulator(self) -> "ThemeSetAccumulator":
        return ThemeSetAccumulator(self)

    def classify(self, texts: Iterable[str]) -> ThemeStats:
        """Classify a sequence of responses in order."""
        acc = self.new_accumulator()
        for seq, text in enumerate(texts):
            acc.add(seq, text)
        return acc.result()


class ThemeSetAccumulator:
    """Accumulators for every theme of a classifier plus the Unclassified bucket."""

    def __init__(self, classifier: ThemeClassifier):
        self.classifier = classifier
        self.buckets = [ThemeAccumulator() for _ in classifier.themes]
        self.unclassified = ThemeAccumulator()
        self.total_responses = 0

    def add(self, seq: Seq, text: str, outcome: Optional[str] = None) -> None:
        self.total_responses += 1
        matched = self.classifier.match(text)
        for index in matched:
            self.buckets[index].add(seq, text, outcome)
        if not matched:
            self.unclassified.add(seq, text, outcome)

    def merge(self, other: "ThemeSetAccumulator") -> "ThemeSetAccumulator":
        merged = ThemeSetAccumulator(self.classifier)
        merged.buckets = [a.merge(b) for a, b in zip(self.buckets, other.buckets)]
        merged.unclassified = self.unclassified.merge(other.unclassified)
        merged.total_responses = self.total_responses + other.total_responses
        return merged

    def _to_result(self, acc: ThemeAccumulator, theme: Optional[TextTheme]) -> ThemeResult:
        return ThemeResult(
            kind="theme" if theme else "unclassified",
            theme=theme.name if theme else UNCLASSIFIED_THEME_NAME,
            theme_id=theme.id if theme else None,
            count=acc.count,
            examples=tuple(text for _, text in acc.examples),
            color=theme.color if theme else None,
            success_rate=acc.success_rate() if self.classifier.track_success else None,
        )

    def results(self) -> Tuple[ThemeResult, ...]:
        # Ties keep theme declaration order, Unclassified last
        ranked = [
            (acc.count, index, self._to_result(acc, theme))
            for index, (acc, theme) in enumerate(zip(self.buckets, self.classifier.themes))
            if acc.count > 0
        ]
        if self.unclassified.count > 0:
            ranked.append((self.unclassified.count, len(self.buckets), self._to_result(self.unclassified, None)))
        ranked.sort(key=lambda item: (-item[0], item[1]))
        return tuple(result for _, _, result in ranked)

    def result(self) -> ThemeStats:
        return ThemeStats(total_responses=self.total_responses, themes=self.results())
