"""Unit tests for the FeedbackAnalyticsEngine."""
import pytest
from datetime import timedelta
from unittest.mock import Mock

from src.analytics.engine import FeedbackAnalyticsEngine
from src.analytics.query import normalize_query
from src.config.settings import Settings
from src.data_access.feedback_store import InMemoryFeedbackStore
from src.models.schemas import AggregationPredicate, AnalysisContext, SurveyType
from tests.factories import (
    BASE_TIME,
    TEAM,
    discovery_record,
    make_theme,
    priority_record,
    rating_record,
    top_tasks_record,
)


@pytest.fixture
def records():
    """Create a mixed set of submissions for one team."""
    return [
        rating_record(5, record_id="fb001", text="Enkel søknad", survey_id="rating-1"),
        rating_record(1, record_id="fb002", text="BankID feilet hele tiden", survey_id="rating-1",
                      tags={"ytelse": "dagpenger"}),
        rating_record(4, record_id="fb003", survey_id="rating-1", tags={"ytelse": "aap"}),
        top_tasks_record("sok", "no", blocker="BankID feilet", record_id="fb004", survey_id="tasks"),
        top_tasks_record("status", "yes", record_id="fb005", survey_id="tasks"),
        discovery_record("Søke om dagpenger", "partial", record_id="fb006", survey_id="discovery"),
        priority_record(("sok",), record_id="fb007", survey_id="priority"),
        rating_record(3, record_id="fb008", team="other-team"),
    ]


@pytest.fixture
def themes():
    """Create themes for the test team."""
    return [
        make_theme("Innlogging", ["bankid"]),
        make_theme("Søknad", ["søknad", "søke"]),
        make_theme("Innlogging blokk", ["bankid"], context=AnalysisContext.BLOCKER),
    ]


@pytest.fixture
def engine(records, themes):
    """Create an engine over an in-memory store."""
    return FeedbackAnalyticsEngine(InMemoryFeedbackStore(records, themes), Settings())


@pytest.fixture
def predicate():
    return AggregationPredicate(team=TEAM)


class TestFeedbackAnalyticsEngine:
    """Test engine entry points over an in-memory store."""

    def test_rating_stats(self, engine, predicate):
        """Test rating stats cover only the predicate's team."""
        stats = engine.rating_stats(predicate, now=BASE_TIME)
        assert stats.total_count == 7
        assert stats.by_rating == {1: 1, 4: 1, 5: 1}
        assert stats.by_survey_id["rating-1"] == 3

    def test_rating_distribution_and_timeline(self, engine, predicate):
        """Test derived rating views."""
        distribution = engine.rating_distribution(predicate)
        assert distribution.total == 3
        assert distribution.average == pytest.approx(10 / 3)
        assert sum(e.count for e in engine.timeline(predicate, now=BASE_TIME).data) == 7

    def test_task_funnel_uses_predicate_task(self, engine):
        """Test the funnel with and without a task filter."""
        assert engine.task_funnel(AggregationPredicate(team=TEAM)).total_submissions == 2
        filtered = engine.task_funnel(AggregationPredicate(team=TEAM, task="Sjekke status"))
        assert [t.task for t in filtered.tasks] == ["Sjekke status"]

    def test_blocker_stats_use_blocker_themes(self, engine, predicate):
        """Test blocker themes come from the BLOCKER context."""
        stats = engine.blocker_stats(predicate)
        assert stats.total_blockers == 1
        assert [t.theme for t in stats.themes] == ["Innlogging blokk"]

    def test_discovery_stats(self, engine, predicate):
        """Test discovery success rates per theme."""
        stats = engine.discovery_stats(predicate)
        assert stats.total_submissions == 1
        assert stats.themes[0].theme == "Søknad"
        assert stats.themes[0].success_rate == pytest.approx(0.5)

    def test_theme_stats_over_general_text_answers(self, engine, predicate):
        """Test general feedback themes see every text answer except blockers."""
        stats = engine.theme_stats(predicate)
        assert stats.total_responses == 3
        counts = {t.theme: t.count for t in stats.themes}
        assert counts["Innlogging"] == 1
        assert counts["Søknad"] == 2
        assert all("BankID feilet" != example for t in stats.themes for example in t.examples)

    def test_theme_stats_in_blocker_context(self, engine, predicate):
        """Test blocker themes see only blocker answers."""
        stats = engine.theme_stats(predicate, AnalysisContext.BLOCKER)
        assert stats.total_responses == 1
        assert [(t.theme, t.examples) for t in stats.themes] == [("Innlogging blokk", ("BankID feilet",))]

    def test_blocker_only_record_not_in_general_themes(self, themes, predicate):
        """Test a lone blocker answer is never counted under a general feedback theme."""
        record = top_tasks_record("sok", "no", blocker="bankid feiler", record_id="fb001")
        engine = FeedbackAnalyticsEngine(InMemoryFeedbackStore([record], themes), Settings())
        assert engine.theme_stats(predicate, AnalysisContext.GENERAL_FEEDBACK).themes == ()

    def test_word_frequency(self, engine, predicate):
        """Test the word table over text answers."""
        table = engine.word_frequency(predicate)
        assert table.words[0].word == "bankid"
        assert table.words[0].count == 2
        assert len(engine.word_frequency(predicate, limit=1).words) == 1

    def test_priority_votes(self, engine, predicate):
        """Test priority votes."""
        stats = engine.priority_votes(predicate)
        assert stats.total_votes == 1
        assert stats.tasks[0].task == "Søke om dagpenger"

    def test_survey_overviews(self, engine, predicate):
        """Test survey type distribution and tag facets."""
        distribution = engine.survey_type_distribution(predicate)
        assert distribution.total_surveys == 4
        assert {d.survey_type for d in distribution.distribution} == {
            SurveyType.RATING, SurveyType.TOP_TASKS, SurveyType.DISCOVERY, SurveyType.TASK_PRIORITY
        }
        facets = engine.context_tag_facets(predicate)
        assert [v.value for v in facets.tags["ytelse"]] == ["aap", "dagpenger"]

    def test_segment_filter_from_query(self, engine):
        """Test a normalized segment query narrows the cohort."""
        predicate = normalize_query({"team": TEAM, "segment": "ytelse:dagpenger"})
        assert engine.rating_stats(predicate).total_count == 1

    def test_fetches_once_per_call(self, records, themes, predicate):
        """Test each entry point fetches from the store exactly once."""
        store = Mock(wraps=InMemoryFeedbackStore(records, themes))
        engine = FeedbackAnalyticsEngine(store, Settings())
        engine.blocker_stats(predicate)
        store.fetch.assert_called_once_with(predicate)
        store.themes_for_team.assert_called_once_with(TEAM, AnalysisContext.BLOCKER)


class TestPartitionedEngine:
    """Test the engine with partitioned execution enabled."""

    def test_partitioned_matches_sequential(self, records, themes, predicate):
        """Test results do not depend on the worker count."""
        many = [
            r.model_copy(update={"id": f"{r.id}-{i}", "submitted_at": BASE_TIME - timedelta(minutes=i)})
            for i in range(40)
            for r in records
        ]
        store = InMemoryFeedbackStore(many, themes)
        sequential = FeedbackAnalyticsEngine(store, Settings(max_workers=1))
        partitioned = FeedbackAnalyticsEngine(store, Settings(max_workers=4, partition_size=17))

        assert partitioned.task_funnel(predicate) == sequential.task_funnel(predicate)
        assert partitioned.theme_stats(predicate) == sequential.theme_stats(predicate)
        assert partitioned.word_frequency(predicate) == sequential.word_frequency(predicate)
        assert partitioned.priority_votes(predicate) == sequential.priority_votes(predicate)
        assert partitioned.blocker_stats(predicate) == sequential.blocker_stats(predicate)
        assert partitioned.discovery_stats(predicate) == sequential.discovery_stats(predicate)
