"""Unit tests for rating statistics."""
import pytest
from datetime import datetime, timedelta, timezone

from src.analytics.ratings import (
    calculate_average_rating,
    compute_rating_stats,
    rating_distribution,
    should_mask,
    timeline,
)
from src.config.settings import Settings
from src.models.schemas import AggregationPredicate, DeviceType, SurveyType
from tests.factories import BASE_TIME, TEAM, make_record, rating_record

NOW = BASE_TIME + timedelta(hours=1)


def _records(ratings, **kwargs):
    return [
        rating_record(rating, record_id=f"fb{i:03d}", submitted_at=BASE_TIME - timedelta(days=i), **kwargs)
        for i, rating in enumerate(ratings)
    ]


class TestMasking:
    """Test the privacy masking policy."""

    @pytest.mark.parametrize("count,masked", [(0, False), (1, True), (3, True), (4, True), (5, False), (50, False)])
    def test_should_mask(self, count, masked):
        """Test small non-empty cohorts are masked."""
        assert should_mask(count) is masked

    def test_masked_stats_carry_privacy_info(self):
        """Test a cohort of four is flagged and explained."""
        stats = compute_rating_stats(_records([1, 2, 4, 5]), now=NOW)
        assert stats.masked
        assert stats.privacy.threshold == 5
        assert "4" in stats.privacy.reason

    def test_redacted_hides_breakdowns(self):
        """Test the redacted view keeps no per-group breakdowns."""
        stats = compute_rating_stats(_records([1, 2, 4]), now=NOW).redacted()
        assert stats.by_app == {}
        assert stats.by_date == {}
        assert stats.by_rating == {}

    def test_threshold_from_settings(self):
        """Test the threshold is configurable."""
        settings = Settings(min_aggregation_threshold=3)
        assert not compute_rating_stats(_records([4, 4, 4]), settings=settings, now=NOW).masked


class TestRatingStats:
    """Test rating aggregation."""

    def test_basic_scenario(self):
        """Test ratings 1, 2, 4, 5 with two texts."""
        records = _records([1, 2, 4, 5])
        records[0] = rating_record(1, record_id="fb000", text="Elendig", submitted_at=BASE_TIME)
        records[3] = rating_record(5, record_id="fb003", text="Supert", submitted_at=BASE_TIME - timedelta(days=3))

        stats = compute_rating_stats(records, now=NOW)

        assert stats.total_count == 4
        assert stats.average_rating == pytest.approx(3.0)
        assert stats.by_rating == {1: 1, 2: 1, 4: 1, 5: 1}
        assert stats.count_with_text == 2
        assert stats.count_without_text == 2
        assert stats.low_rating_count == 2

    def test_histogram_sums_to_rated_records(self):
        """Test every rated record lands in exactly one histogram bucket."""
        records = _records([3, 3, 4, 5, 1, 2, 5]) + [make_record(record_id="no-rating")]
        stats = compute_rating_stats(records, now=NOW)
        assert sum(stats.by_rating.values()) == 7
        assert stats.total_count == 8

    def test_empty_cohort(self):
        """Test no records means no average and no masking."""
        stats = compute_rating_stats([], now=NOW)
        assert stats.total_count == 0
        assert stats.average_rating is None
        assert not stats.masked
        assert stats.survey_type is None

    def test_by_date_uses_oslo_days(self):
        """Test records are grouped by Oslo civil date."""
        late_evening_utc = datetime(2025, 3, 9, 23, 30, tzinfo=timezone.utc)
        records = [rating_record(4, record_id=f"r{i}", submitted_at=late_evening_utc) for i in range(5)]
        stats = compute_rating_stats(records, now=NOW)
        assert stats.by_date == {"2025-03-10": 5}
        assert stats.rating_by_date["2025-03-10"].average == pytest.approx(4.0)

    def test_default_window_limits_by_date_only(self):
        """Test old records count in totals but not in the 30-day trend."""
        records = _records([4] * 5) + [rating_record(2, record_id="old", submitted_at=BASE_TIME - timedelta(days=60))]
        stats = compute_rating_stats(records, now=NOW)
        assert stats.total_count == 6
        assert sum(stats.by_date.values()) == 5

    def test_explicit_range_disables_default_window(self):
        """Test an explicit range keeps every fetched record in the trend."""
        predicate = AggregationPredicate(team=TEAM, start=BASE_TIME - timedelta(days=90))
        records = _records([4] * 5) + [rating_record(2, record_id="old", submitted_at=BASE_TIME - timedelta(days=60))]
        stats = compute_rating_stats(records, predicate=predicate, now=NOW)
        assert sum(stats.by_date.values()) == 6

    def test_breakdowns(self):
        """Test app, device and pathname breakdowns."""
        records = (
            _records([5, 5, 4], device_type=DeviceType.MOBILE, pathname="/soknad")
            + _records([1, 2, 1], device_type=DeviceType.DESKTOP, pathname="/status", app="other-app")
        )
        stats = compute_rating_stats(records, now=NOW)
        assert stats.by_app == {"app-test": 3, "other-app": 3}
        assert stats.by_device["mobile"].count == 3
        assert stats.by_device["desktop"].average_rating == pytest.approx(4 / 3)
        assert list(stats.lowest_rating_paths) == ["/status", "/soknad"]

    def test_lowest_paths_need_three_samples(self):
        """Test pathnames with fewer than three ratings are left out."""
        records = _records([5, 5, 5], pathname="/a") + _records([1, 1], pathname="/b")
        stats = compute_rating_stats(records, now=NOW)
        assert list(stats.lowest_rating_paths) == ["/a"]
        assert stats.by_pathname["/b"].count == 2

    def test_survey_type_from_latest_record(self):
        """Test the reported survey type is the most recent record's."""
        records = [
            rating_record(4, record_id="old", submitted_at=BASE_TIME - timedelta(days=1), survey_type=SurveyType.CUSTOM),
            rating_record(4, record_id="new", submitted_at=BASE_TIME),
        ]
        assert compute_rating_stats(records, now=NOW).survey_type == SurveyType.RATING

    def test_period(self):
        """Test the reported period echoes the civil bounds."""
        predicate = AggregationPredicate(
            team=TEAM,
            from_date=datetime(2025, 3, 1).date(),
            to_date=datetime(2025, 3, 10).date(),
            start=datetime(2025, 2, 28, 23, 0, tzinfo=timezone.utc),
            end=datetime(2025, 3, 10, 23, 0, tzinfo=timezone.utc),
        )
        stats = compute_rating_stats([], predicate=predicate, now=NOW)
        assert stats.period.from_date == "2025-03-01"
        assert stats.period.to_date == "2025-03-10"
        assert stats.period.days == 9


class TestDerivedViews:
    """Test distribution and timeline views."""

    def test_average_rating(self):
        """Test weighted average and the no-data case."""
        assert calculate_average_rating({1: 1, 5: 3}) == pytest.approx(4.0)
        assert calculate_average_rating({}) is None

    def test_distribution_and_timeline(self):
        """Test views derived from rating stats."""
        stats = compute_rating_stats(_records([1, 2, 4, 5, 5]), now=NOW)
        distribution = rating_distribution(stats)
        assert distribution.total == 5
        assert distribution.distribution[5] == 2

        entries = timeline(stats).data
        assert [e.date for e in entries] == sorted(e.date for e in entries)
        assert sum(e.count for e in entries) == 5
