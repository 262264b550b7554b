"""
Numeric aggregation of feedback records: rating distribution, breakdowns by
app, survey, device, pathname and date, and the privacy masking policy.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo
import logging

import pandas as pd

from src.analytics.query import DEFAULT_TIMEZONE, calculate_days
from src.config.settings import Settings
from src.models.results import (
    GroupStats,
    PrivacyInfo,
    RatingByDate,
    RatingDistribution,
    RatingStats,
    StatsPeriod,
    Timeline,
    TimelineEntry,
)
from src.models.schemas import AggregationPredicate, FeedbackRecord

logger = logging.getLogger(__name__)


# Minimum number of responses required to show aggregated statistics
MIN_AGGREGATION_THRESHOLD = 5
MAX_GROUPS = 20
MIN_PATH_SAMPLES = 3
MAX_LOWEST_PATHS = 5
LOW_RATING_MAX = 2
DEFAULT_DAYS_BACK = 30

FRAME_COLUMNS = ["app", "survey_id", "date", "recent", "device", "pathname", "rating", "has_text"]


def should_mask(total_count: int, threshold: int = MIN_AGGREGATION_THRESHOLD) -> bool:
    """Small non-empty cohorts are masked; an empty cohort has nothing to leak."""
    return 0 < total_count < threshold


def calculate_average_rating(by_rating: Dict[int, int]) -> Optional[float]:
    """Mean rating weighted by count, None when there are no ratings."""
    total_count = sum(by_rating.values())
    if total_count == 0:
        return None
    return sum(rating * count for rating, count in by_rating.items()) / total_count


def records_to_frame(records: Sequence[FeedbackRecord], tz: ZoneInfo, cutoff: Optional[datetime]) -> pd.DataFrame:
    """One row per record with the columns the breakdowns group on."""
    rows = [
        {
            "app": record.app,
            "survey_id": record.survey_id,
            "date": record.submitted_at.astimezone(tz).date().isoformat(),
            "recent": cutoff is None or record.submitted_at >= cutoff,
            "device": record.context.device_type.value if record.context.device_type else None,
            "pathname": record.context.pathname,
            "rating": record.rating,
            "has_text": record.has_text,
        }
        for record in records
    ]
    df = pd.DataFrame(rows, columns=FRAME_COLUMNS)
    df["rating"] = pd.to_numeric(df["rating"], errors="coerce")
    return df


def _optional_float(value) -> Optional[float]:
    return None if pd.isna(value) else float(value)


def _top_counts(df: pd.DataFrame, column: str, limit: int = MAX_GROUPS) -> Dict[str, int]:
    counts = df.dropna(subset=[column]).groupby(column).size()
    counts = counts.sort_values(ascending=False, kind="stable").head(limit)
    return {str(key): int(value) for key, value in counts.items()}


def _group_stats(df: pd.DataFrame, column: str) -> pd.DataFrame:
    """Per-group row count and mean rating (mean ignores unrated rows)."""
    return (
        df.dropna(subset=[column])
        .groupby(column)
        .agg(count=("rating", "size"), average_rating=("rating", "mean"))
    )


def _to_group_stats(frame: pd.DataFrame) -> Dict[str, GroupStats]:
    return {
        str(key): GroupStats(count=int(row["count"]), average_rating=_optional_float(row["average_rating"]))
        for key, row in frame.iterrows()
    }


def compute_rating_stats(
    records: Sequence[FeedbackRecord],
    predicate: Optional[AggregationPredicate] = None,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> RatingStats:
    """
    Compute rating and breakdown statistics for a predicate-matched record set.

    Args:
        records: Records already filtered by the store
        predicate: The predicate the records were fetched with (drives the date window)
        settings: Application settings (timezone, threshold, default window)
        now: Reference time for the default date window

    Returns:
        RatingStats, flagged as masked for cohorts below the privacy threshold
    """
    tz = ZoneInfo(settings.stats_timezone if settings else DEFAULT_TIMEZONE)
    threshold = settings.min_aggregation_threshold if settings else MIN_AGGREGATION_THRESHOLD
    days_back = settings.default_days_back if settings else DEFAULT_DAYS_BACK
    now = now or datetime.now(timezone.utc)

    explicit_range = predicate is not None and predicate.has_explicit_range
    cutoff = None if explicit_range else now - timedelta(days=days_back)

    df = records_to_frame(records, tz, cutoff)
    total_count = len(df)
    count_with_text = int(df["has_text"].sum()) if total_count else 0

    rated = df.dropna(subset=["rating"])
    by_rating = {int(k): int(v) for k, v in rated["rating"].astype(int).value_counts().sort_index().items()}
    low_rating_count = sum(count for rating, count in by_rating.items() if rating <= LOW_RATING_MAX)

    window = df[df["recent"].astype(bool)]
    by_date = {str(k): int(v) for k, v in window.groupby("date").size().sort_index().items()}
    rated_window = window.dropna(subset=["rating"])
    rating_by_date = {
        str(day): RatingByDate(average=float(row["average"]), count=int(row["count"]))
        for day, row in rated_window.groupby("date")
        .agg(average=("rating", "mean"), count=("rating", "size"))
        .sort_index()
        .iterrows()
    }

    by_pathname = _group_stats(df, "pathname")
    by_pathname = by_pathname.sort_values("count", ascending=False, kind="stable").head(MAX_GROUPS)

    rated_paths = _group_stats(rated, "pathname")
    lowest_paths = rated_paths[rated_paths["count"] >= MIN_PATH_SAMPLES]
    lowest_paths = lowest_paths.sort_values("average_rating", ascending=True, kind="stable").head(MAX_LOWEST_PATHS)

    latest = max(records, key=lambda record: record.submitted_at) if records else None
    masked = should_mask(total_count, threshold)
    privacy = None
    if masked:
        privacy = PrivacyInfo(
            masked=True,
            reason=f"Only {total_count} responses, below the threshold of {threshold}. "
                   f"Statistics are hidden to protect respondent privacy.",
            threshold=threshold,
        )
        logger.info(f"Masking statistics for cohort of {total_count} (threshold {threshold})")

    period_from = _period_bound(predicate.from_date if predicate else None, predicate.start if predicate else None)
    period_to = _period_bound(predicate.to_date if predicate else None, predicate.end if predicate else None)

    return RatingStats(
        total_count=total_count,
        count_with_text=count_with_text,
        count_without_text=total_count - count_with_text,
        low_rating_count=low_rating_count,
        by_rating=by_rating,
        average_rating=calculate_average_rating(by_rating),
        by_app=_top_counts(df, "app"),
        by_survey_id=_top_counts(df, "survey_id"),
        by_date=by_date,
        rating_by_date=rating_by_date,
        by_device=_to_group_stats(_group_stats(df, "device")),
        by_pathname=_to_group_stats(by_pathname),
        lowest_rating_paths=_to_group_stats(lowest_paths),
        survey_type=latest.survey_type if latest else None,
        period=StatsPeriod(
            from_date=period_from,
            to_date=period_to,
            days=calculate_days(period_from, period_to, today=now.astimezone(tz).date(), default_days=days_back),
        ),
        masked=masked,
        privacy=privacy,
    )


def _period_bound(civil, instant) -> Optional[str]:
    if civil is not None:
        return civil.isoformat()
    if instant is not None:
        return instant.isoformat()
    return None


def rating_distribution(stats: RatingStats) -> RatingDistribution:
    return RatingDistribution(
        distribution=stats.by_rating,
        average=stats.average_rating,
        total=sum(stats.by_rating.values()),
    )


def timeline(stats: RatingStats) -> Timeline:
    entries: List[TimelineEntry] = [
        TimelineEntry(date=day, count=count) for day, count in sorted(stats.by_date.items())
    ]
    return Timeline(data=tuple(entries))
