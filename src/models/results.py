"""
Immutable result structures returned by the analytics engine.
All results are produced fresh per call and serialize with ``model_dump(mode="json")``.
"""

from datetime import datetime
from typing import Optional, Dict, Tuple, Literal

from src.models.schemas import FrozenModel, SurveyType


# ============================================
# Rating / overview statistics
# ============================================

class PrivacyInfo(FrozenModel):
    masked: bool
    reason: str
    threshold: int


class StatsPeriod(FrozenModel):
    from_date: Optional[str] = None
    to_date: Optional[str] = None
    days: int


class GroupStats(FrozenModel):
    count: int
    average_rating: Optional[float] = None


class RatingByDate(FrozenModel):
    average: float
    count: int


class RatingStats(FrozenModel):
    """Numeric aggregates for a record set.

    When ``masked`` is set the raw numbers are still present; callers are
    expected to suppress the granular breakdowns (see ``redacted``).
    """

    total_count: int
    count_with_text: int
    count_without_text: int
    low_rating_count: int
    by_rating: Dict[int, int]
    average_rating: Optional[float]
    by_app: Dict[str, int]
    by_survey_id: Dict[str, int]
    by_date: Dict[str, int]
    rating_by_date: Dict[str, RatingByDate]
    by_device: Dict[str, GroupStats]
    by_pathname: Dict[str, GroupStats]
    lowest_rating_paths: Dict[str, GroupStats]
    survey_type: Optional[SurveyType] = None
    period: StatsPeriod
    masked: bool = False
    privacy: Optional[PrivacyInfo] = None

    def redacted(self) -> "RatingStats":
        """Display-ready copy: granular breakdowns emptied when masked."""
        if not self.masked:
            return self
        return self.model_copy(update={
            "by_rating": {},
            "average_rating": None,
            "by_app": {},
            "by_survey_id": {},
            "by_date": {},
            "rating_by_date": {},
            "by_device": {},
            "by_pathname": {},
            "lowest_rating_paths": {},
        })


class RatingDistribution(FrozenModel):
    distribution: Dict[int, int]
    average: Optional[float]
    total: int


class TimelineEntry(FrozenModel):
    date: str
    count: int


class Timeline(FrozenModel):
    data: Tuple[TimelineEntry, ...]


# ============================================
# Task funnel
# ============================================

class TaskStats(FrozenModel):
    task: str
    total_count: int
    success_count: int
    partial_count: int
    failure_count: int
    success_rate: float
    formatted_success_rate: str
    blocker_counts: Dict[str, int]


class DailyStat(FrozenModel):
    total: int
    success: int


class TaskFunnelStats(FrozenModel):
    total_submissions: int
    tasks: Tuple[TaskStats, ...]
    daily_stats: Dict[str, DailyStat]
    question_text: Optional[str] = None


# ============================================
# Themes and word frequency
# ============================================

class ThemeResult(FrozenModel):
    """Per-theme classification outcome. ``kind`` distinguishes the catch-all bucket."""
    kind: Literal["theme", "unclassified"]
    theme: str
    theme_id: Optional[str] = None
    count: int
    examples: Tuple[str, ...]
    color: Optional[str] = None
    success_rate: Optional[float] = None


class ThemeStats(FrozenModel):
    total_responses: int
    themes: Tuple[ThemeResult, ...]


class SourceResponse(FrozenModel):
    text: str
    submitted_at: datetime


class WordFrequencyEntry(FrozenModel):
    word: str
    count: int
    source_responses: Tuple[SourceResponse, ...] = ()


class WordFrequencyTable(FrozenModel):
    total_responses: int
    words: Tuple[WordFrequencyEntry, ...]


# ============================================
# Priority votes
# ============================================

class TaskVote(FrozenModel):
    task_id: str
    task: str
    votes: int
    percentage: int


class PriorityVoteStats(FrozenModel):
    total_submissions: int
    total_votes: int
    tasks: Tuple[TaskVote, ...]
    long_neck_cutoff: int
    cumulative_percentage_at_5: int


# ============================================
# Survey overview
# ============================================

class SurveyTypeCount(FrozenModel):
    survey_type: SurveyType
    count: int
    percentage: int


class SurveyTypeDistribution(FrozenModel):
    total_surveys: int
    distribution: Tuple[SurveyTypeCount, ...]


class TagValueCount(FrozenModel):
    value: str
    count: int


class ContextTagFacets(FrozenModel):
    tags: Dict[str, Tuple[TagValueCount, ...]]


# ============================================
# Text reports
# ============================================

class RecentBlocker(FrozenModel):
    blocker: str
    task: str
    submitted_at: datetime


class BlockerStats(FrozenModel):
    total_blockers: int
    word_frequency: Tuple[WordFrequencyEntry, ...]
    themes: Tuple[ThemeResult, ...]
    recent_blockers: Tuple[RecentBlocker, ...]


class DiscoveryResponse(FrozenModel):
    task: str
    success: str
    blocker: Optional[str] = None
    submitted_at: datetime


class DiscoveryStats(FrozenModel):
    total_submissions: int
    word_frequency: Tuple[WordFrequencyEntry, ...]
    themes: Tuple[ThemeResult, ...]
    recent_responses: Tuple[DiscoveryResponse, ...]
