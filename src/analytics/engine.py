"""
Feedback analytics engine.

Every entry point takes an AggregationPredicate, fetches the matching records
once from the store and runs a single aggregation over them. Aggregations that
fold through a mergeable accumulator run partitioned when
``Settings.max_workers`` is above 1.
"""

from datetime import datetime
from typing import Callable, List, Optional, TypeVar
from zoneinfo import ZoneInfo
import logging

from src.analytics.funnel import TaskFunnelAccumulator
from src.analytics.partitioning import accumulate_partitioned
from src.analytics.priority import VoteTally
from src.analytics.ratings import compute_rating_stats
from src.analytics.ratings import rating_distribution as to_rating_distribution
from src.analytics.ratings import timeline as to_timeline
from src.analytics.surveys import compute_context_tag_facets, compute_survey_type_distribution
from src.analytics.text_reports import (
    BlockerReportAccumulator,
    DiscoveryReportAccumulator,
    add_word_answers,
    theme_answer_feed,
)
from src.analytics.themes import ThemeClassifier
from src.analytics.word_frequency import WordFrequencyAccumulator
from src.config.settings import Settings
from src.data_access.feedback_store import FeedbackStore
from src.models.results import (
    BlockerStats,
    ContextTagFacets,
    DiscoveryStats,
    PriorityVoteStats,
    RatingDistribution,
    RatingStats,
    SurveyTypeDistribution,
    TaskFunnelStats,
    ThemeStats,
    Timeline,
    WordFrequencyTable,
)
from src.models.schemas import AggregationPredicate, AnalysisContext, FeedbackRecord

logger = logging.getLogger(__name__)

A = TypeVar("A")


def _add_record(acc, seq: int, record: FeedbackRecord) -> None:
    acc.add(seq, record)


class FeedbackAnalyticsEngine:
    """Read-only analytics over a feedback store."""

    def __init__(self, store: FeedbackStore, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or Settings()
        self.tz = ZoneInfo(self.settings.stats_timezone)

    def _fetch(self, predicate: AggregationPredicate) -> List[FeedbackRecord]:
        records = self.store.fetch(predicate)
        logger.info(f"Aggregating {len(records)} records for team {predicate.team}")
        return records

    def _accumulate(
        self,
        records: List[FeedbackRecord],
        factory: Callable[[], A],
        feed: Callable[[A, int, FeedbackRecord], None] = _add_record,
    ) -> A:
        return accumulate_partitioned(
            records,
            factory,
            feed,
            max_workers=self.settings.max_workers,
            partition_size=self.settings.partition_size,
        )

    def rating_stats(self, predicate: AggregationPredicate, now: Optional[datetime] = None) -> RatingStats:
        return compute_rating_stats(self._fetch(predicate), predicate, self.settings, now=now)

    def rating_distribution(self, predicate: AggregationPredicate) -> RatingDistribution:
        return to_rating_distribution(self.rating_stats(predicate))

    def timeline(self, predicate: AggregationPredicate, now: Optional[datetime] = None) -> Timeline:
        return to_timeline(self.rating_stats(predicate, now=now))

    def task_funnel(self, predicate: AggregationPredicate) -> TaskFunnelStats:
        records = self._fetch(predicate)
        acc = self._accumulate(records, lambda: TaskFunnelAccumulator(task_filter=predicate.task, tz=self.tz))
        return acc.result()

    def blocker_stats(self, predicate: AggregationPredicate) -> BlockerStats:
        themes = self.store.themes_for_team(predicate.team, AnalysisContext.BLOCKER)
        classifier = ThemeClassifier(themes, AnalysisContext.BLOCKER)
        records = self._fetch(predicate)
        acc = self._accumulate(records, lambda: BlockerReportAccumulator(classifier, task_filter=predicate.task))
        return acc.result(self.settings.max_word_frequency)

    def discovery_stats(self, predicate: AggregationPredicate) -> DiscoveryStats:
        themes = self.store.themes_for_team(predicate.team, AnalysisContext.GENERAL_FEEDBACK)
        classifier = ThemeClassifier(themes, AnalysisContext.GENERAL_FEEDBACK, track_success=True)
        records = self._fetch(predicate)
        acc = self._accumulate(records, lambda: DiscoveryReportAccumulator(classifier))
        return acc.result()

    def theme_stats(
        self,
        predicate: AggregationPredicate,
        context: AnalysisContext = AnalysisContext.GENERAL_FEEDBACK,
    ) -> ThemeStats:
        """Classify the text answers collected under ``context`` in the matched records."""
        themes = self.store.themes_for_team(predicate.team, context)
        classifier = ThemeClassifier(themes, context)
        records = self._fetch(predicate)
        acc = self._accumulate(records, classifier.new_accumulator, theme_answer_feed(context))
        return acc.result()

    def word_frequency(self, predicate: AggregationPredicate, limit: Optional[int] = None) -> WordFrequencyTable:
        records = self._fetch(predicate)
        acc = self._accumulate(records, WordFrequencyAccumulator, add_word_answers)
        return acc.result(limit or self.settings.max_word_frequency)

    def priority_votes(self, predicate: AggregationPredicate) -> PriorityVoteStats:
        records = self._fetch(predicate)
        return self._accumulate(records, VoteTally).result()

    def survey_type_distribution(self, predicate: AggregationPredicate) -> SurveyTypeDistribution:
        return compute_survey_type_distribution(self._fetch(predicate))

    def context_tag_facets(self, predicate: AggregationPredicate) -> ContextTagFacets:
        return compute_context_tag_facets(self._fetch(predicate))
