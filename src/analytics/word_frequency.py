"""
Word frequency table over free-text responses (surface words, no stemming).
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Tuple

from src.analytics.text import extract_words
from src.analytics.themes import Seq
from src.models.results import SourceResponse, WordFrequencyEntry, WordFrequencyTable

MAX_SOURCE_RESPONSES = 5
DEFAULT_MAX_WORDS = 30


@dataclass
class WordAccumulator:
    first_seen: Tuple[Seq, int]
    count: int = 0
    sources: List[Tuple[Seq, str, datetime]] = field(default_factory=list)


class WordFrequencyAccumulator:
    """
    Global count per word plus up to five source responses per word.
    A response is attributed at most once per word however often it repeats it.
    """

    def __init__(self):
        self.words: Dict[str, WordAccumulator] = {}
        self.total_responses = 0

    def add(self, seq: Seq, text: str, submitted_at: datetime) -> None:
        self.total_responses += 1
        attributed = set()
        for position, word in enumerate(extract_words(text)):
            acc = self.words.get(word)
            if acc is None:
                acc = self.words[word] = WordAccumulator(first_seen=(seq, position))
            acc.count += 1
            if word not in attributed:
                attributed.add(word)
                if len(acc.sources) < MAX_SOURCE_RESPONSES:
                    acc.sources.append((seq, text, submitted_at))

    def merge(self, other: "WordFrequencyAccumulator") -> "WordFrequencyAccumulator":
        merged = WordFrequencyAccumulator()
        merged.total_responses = self.total_responses + other.total_responses
        for word in self.words.keys() | other.words.keys():
            left, right = self.words.get(word), other.words.get(word)
            if left is None or right is None:
                merged.words[word] = left or right
                continue
            sources = sorted(left.sources + right.sources, key=lambda source: source[0])
            merged.words[word] = WordAccumulator(
                first_seen=min(left.first_seen, right.first_seen),
                count=left.count + right.count,
                sources=sources[:MAX_SOURCE_RESPONSES],
            )
        return merged

    def entries(self, limit: int = DEFAULT_MAX_WORDS) -> Tuple[WordFrequencyEntry, ...]:
        """Top words by count; ties keep first-seen order."""
        ranked = sorted(self.words.items(), key=lambda item: (-item[1].count, item[1].first_seen))
        return tuple(
            WordFrequencyEntry(
                word=word,
                count=acc.count,
                source_responses=tuple(
                    SourceResponse(text=text, submitted_at=submitted_at)
                    for _, text, submitted_at in acc.sources
                ),
            )
            for word, acc in ranked[:limit]
        )

    def result(self, limit: int = DEFAULT_MAX_WORDS) -> WordFrequencyTable:
        return WordFrequencyTable(total_responses=self.total_responses, words=self.entries(limit))
