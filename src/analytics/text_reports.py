"""
Free-text reports: Top Tasks blockers, Discovery responses, and the feeds
that put a record's text answers into theme and word accumulators.
"""

from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from src.analytics.funnel import BLOCKER_FIELD_IDS, SUCCESS_FIELD_IDS, TASK_FIELD_IDS, UNKNOWN_TASK_LABEL
from src.analytics.themes import Seq, ThemeClassifier, ThemeSetAccumulator
from src.analytics.word_frequency import DEFAULT_MAX_WORDS, WordFrequencyAccumulator
from src.models.results import (
    BlockerStats,
    DiscoveryResponse,
    DiscoveryStats,
    RecentBlocker,
)
from src.models.schemas import (
    AnalysisContext,
    FeedbackRecord,
    SingleChoiceValue,
    SurveyType,
    TextTheme,
    TextValue,
)

MAX_RECENT_BLOCKERS = 10
MAX_DISCOVERY_WORDS = 50
MAX_RECENT_RESPONSES = 20
UNKNOWN_SUCCESS = "unknown"


def _text_answer(record: FeedbackRecord, field_ids) -> Optional[str]:
    answer = record.find_answer(field_ids)
    if answer is None or not isinstance(answer.value, TextValue):
        return None
    return answer.value.text


def _most_recent(items: Sequence[Tuple[Seq, object]], limit: int) -> List:
    # Newest first; equal timestamps keep record order
    ranked = sorted(items, key=lambda item: (-item[1].submitted_at.timestamp(), item[0]))
    return ranked[:limit]


class BlockerReportAccumulator:
    """Blocker texts from Top Tasks submissions, mergeable across partitions."""

    def __init__(self, classifier: ThemeClassifier, task_filter: Optional[str] = None):
        self.task_filter = task_filter
        self.words = WordFrequencyAccumulator()
        self.themes = classifier.new_accumulator()
        self.recent: List[Tuple[Seq, RecentBlocker]] = []
        self.total_blockers = 0

    def add(self, seq: Seq, record: FeedbackRecord) -> None:
        if record.survey_type != SurveyType.TOP_TASKS:
            return
        blocker = (_text_answer(record, BLOCKER_FIELD_IDS) or "").strip()
        if not blocker:
            return

        task = UNKNOWN_TASK_LABEL
        task_answer = record.find_answer(TASK_FIELD_IDS)
        if task_answer is not None and isinstance(task_answer.value, SingleChoiceValue):
            task = task_answer.question.option_label(task_answer.value.selected_option_id) or UNKNOWN_TASK_LABEL
        if self.task_filter is not None and task != self.task_filter:
            return

        self.total_blockers += 1
        self.words.add(seq, blocker, record.submitted_at)
        self.themes.add(seq, blocker)
        self.recent.append((seq, RecentBlocker(blocker=blocker, task=task, submitted_at=record.submitted_at)))
        if len(self.recent) > MAX_RECENT_BLOCKERS * 2:
            self.recent = _most_recent(self.recent, MAX_RECENT_BLOCKERS)

    def merge(self, other: "BlockerReportAccumulator") -> "BlockerReportAccumulator":
        merged = BlockerReportAccumulator(self.themes.classifier, self.task_filter)
        merged.words = self.words.merge(other.words)
        merged.themes = self.themes.merge(other.themes)
        merged.recent = _most_recent(self.recent + other.recent, MAX_RECENT_BLOCKERS)
        merged.total_blockers = self.total_blockers + other.total_blockers
        return merged

    def result(self, max_words: int = DEFAULT_MAX_WORDS) -> BlockerStats:
        return BlockerStats(
            total_blockers=self.total_blockers,
            word_frequency=self.words.entries(max_words),
            themes=self.themes.results(),
            recent_blockers=tuple(item for _, item in _most_recent(self.recent, MAX_RECENT_BLOCKERS)),
        )


class DiscoveryReportAccumulator:
    """Discovery answers (what the user came to do, and whether it worked)."""

    def __init__(self, classifier: ThemeClassifier):
        self.words = WordFrequencyAccumulator()
        self.themes = classifier.new_accumulator()
        self.recent: List[Tuple[Seq, DiscoveryResponse]] = []
        self.total_submissions = 0

    def add(self, seq: Seq, record: FeedbackRecord) -> None:
        if record.survey_type != SurveyType.DISCOVERY:
            return
        self.total_submissions += 1

        task = _text_answer(record, TASK_FIELD_IDS)
        if task is None:
            return

        success = UNKNOWN_SUCCESS
        success_answer = record.find_answer(SUCCESS_FIELD_IDS)
        if success_answer is not None and isinstance(success_answer.value, SingleChoiceValue):
            success = success_answer.value.selected_option_id
        blocker = _text_answer(record, BLOCKER_FIELD_IDS)

        self.words.add(seq, task, record.submitted_at)
        self.themes.add(seq, task, success)
        self.recent.append((seq, DiscoveryResponse(
            task=task,
            success=success,
            blocker=blocker,
            submitted_at=record.submitted_at,
        )))
        if len(self.recent) > MAX_RECENT_RESPONSES * 2:
            self.recent = _most_recent(self.recent, MAX_RECENT_RESPONSES)

    def merge(self, other: "DiscoveryReportAccumulator") -> "DiscoveryReportAccumulator":
        merged = DiscoveryReportAccumulator(self.themes.classifier)
        merged.words = self.words.merge(other.words)
        merged.themes = self.themes.merge(other.themes)
        merged.recent = _most_recent(self.recent + other.recent, MAX_RECENT_RESPONSES)
        merged.total_submissions = self.total_submissions + other.total_submissions
        return merged

    def result(self) -> DiscoveryStats:
        return DiscoveryStats(
            total_submissions=self.total_submissions,
            word_frequency=self.words.entries(MAX_DISCOVERY_WORDS),
            themes=self.themes.results(),
            recent_responses=tuple(item for _, item in _most_recent(self.recent, MAX_RECENT_RESPONSES)),
        )


def context_text_answers(record: FeedbackRecord, context: AnalysisContext) -> List[Tuple[int, str]]:
    """
    Non-blank text answers collected under an analysis context, with their answer positions.

    BLOCKER takes only blocker answers; GENERAL_FEEDBACK takes every other text answer.
    """
    want_blockers = context == AnalysisContext.BLOCKER
    return [
        (index, answer.value.text)
        for index, answer in enumerate(record.answers)
        if isinstance(answer.value, TextValue)
        and answer.value.text.strip()
        and (answer.field_id in BLOCKER_FIELD_IDS) == want_blockers
    ]


def theme_answer_feed(context: AnalysisContext) -> Callable[[ThemeSetAccumulator, int, FeedbackRecord], None]:
    """Partition feed classifying the text answers of one analysis context."""
    def feed(acc: ThemeSetAccumulator, seq: int, record: FeedbackRecord) -> None:
        for index, text in context_text_answers(record, context):
            acc.add((seq, index), text)
    return feed


def add_word_answers(acc: WordFrequencyAccumulator, seq: int, record: FeedbackRecord) -> None:
    """Feed every non-blank text answer of a record into a word accumulator."""
    for index, text in enumerate(record.texts):
        acc.add((seq, index), text, record.submitted_at)


def compute_blocker_stats(
    records: Iterable[FeedbackRecord],
    themes: Sequence[TextTheme],
    task: Optional[str] = None,
    max_words: int = DEFAULT_MAX_WORDS,
) -> BlockerStats:
    acc = BlockerReportAccumulator(ThemeClassifier(themes, AnalysisContext.BLOCKER), task_filter=task)
    for seq, record in enumerate(records):
        acc.add(seq, record)
    return acc.result(max_words)


def compute_discovery_stats(records: Iterable[FeedbackRecord], themes: Sequence[TextTheme]) -> DiscoveryStats:
    classifier = ThemeClassifier(themes, AnalysisContext.GENERAL_FEEDBACK, track_success=True)
    acc = DiscoveryReportAccumulator(classifier)
    for seq, record in enumerate(records):
        acc.add(seq, record)
    return acc.result()
