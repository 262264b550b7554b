# src/data_access/feedback_store.py
"""
Feedback record stores: PostgreSQL (production) and in-memory (tests, CLI files).
"""

import psycopg2
from typing import List, Optional, Protocol, Sequence, Tuple
import logging

from src.config.settings import Settings
from src.data_access.payload import parse_feedback_payload
from src.models.errors import PayloadError
from src.models.schemas import AggregationPredicate, AnalysisContext, FeedbackRecord, TextTheme

logger = logging.getLogger(__name__)


class FeedbackStore(Protocol):
    """What the analytics engine needs from storage."""

    def fetch(self, predicate: AggregationPredicate) -> List[FeedbackRecord]:
        ...

    def themes_for_team(self, team: str, context: Optional[AnalysisContext] = None) -> List[TextTheme]:
        ...


def build_feedback_query(predicate: AggregationPredicate) -> Tuple[str, list]:
    """
    SQL and parameters selecting the feedback rows a predicate matches.

    Segment pairs with a blank key or value are ignored.
    """
    query = """
        SELECT id, opprettet, feedback_json, team, app
        FROM feedback
        WHERE team = %s
    """
    params: list = [predicate.team]

    if predicate.app:
        query += " AND app = %s"
        params.append(predicate.app)

    if predicate.start:
        query += " AND opprettet >= %s"
        params.append(predicate.start)

    if predicate.end:
        query += " AND opprettet <= %s" if predicate.end_inclusive else " AND opprettet < %s"
        params.append(predicate.end)

    if predicate.survey_id:
        query += " AND feedback_json::jsonb->>'surveyId' = %s"
        params.append(predicate.survey_id)

    if predicate.device_type:
        query += " AND feedback_json::jsonb->'context'->>'deviceType' = %s"
        params.append(predicate.device_type)

    for key, value in predicate.segments:
        key, value = key.strip(), value.strip()
        if not key or not value:
            continue
        query += " AND feedback_json::jsonb->'context'->'tags'->>%s = %s"
        params.extend([key, value])

    query += " ORDER BY opprettet ASC, id ASC"
    return query, params


class PostgresFeedbackStore:
    """Reads feedback rows and text themes from PostgreSQL."""

    def __init__(self, config: Settings):
        self.config = config
        self.conn = None

    def connect(self) -> None:
        """Establish database connection."""
        self.conn = psycopg2.connect(
            host=self.config.postgres_host,
            port=self.config.postgres_port,
            database=self.config.postgres_database,
            user=self.config.postgres_username,
            password=self.config.postgres_password,
            sslmode=self.config.postgres_sslmode
        )

    def close(self) -> None:
        """Close database connection."""
        if self.conn:
            self.conn.close()

    def fetch(self, predicate: AggregationPredicate) -> List[FeedbackRecord]:
        """
        Fetch and parse every record matching the predicate.

        Rows whose payload cannot be parsed are logged and skipped.

        Args:
            predicate: Normalized filter

        Returns:
            Records in storage order (oldest first)
        """
        if not self.conn:
            self.connect()

        query, params = build_feedback_query(predicate)
        with self.conn.cursor() as cursor:
            cursor.execute(query, tuple(params))
            rows = cursor.fetchall()

        records = []
        skipped = 0
        for record_id, stored_at, feedback_json, team, app in rows:
            try:
                record = parse_feedback_payload(
                    feedback_json, record_id=record_id, team=team, app=app, stored_at=stored_at
                )
            except PayloadError as e:
                skipped += 1
                logger.warning(f"Skipping record {e.record_id}: {e}")
                continue
            # Submission time may differ from the storage timestamp the SQL filtered on
            if predicate.matches(record):
                records.append(record)

        logger.info(f"Fetched {len(records)} records for team {predicate.team} ({skipped} skipped)")
        return records

    def themes_for_team(self, team: str, context: Optional[AnalysisContext] = None) -> List[TextTheme]:
        """
        Text themes owned by a team, highest priority first.

        Args:
            team: Team name
            context: Optional analysis context to restrict to

        Returns:
            List of TextTheme
        """
        if not self.conn:
            self.connect()

        query = """
            SELECT id, team, name, keywords, color, priority, analysis_context
            FROM text_theme
            WHERE team = %s
        """
        params: list = [team]

        if context:
            query += " AND analysis_context = %s"
            params.append(context.value)

        query += " ORDER BY priority DESC, name ASC"

        with self.conn.cursor() as cursor:
            cursor.execute(query, tuple(params))
            rows = cursor.fetchall()

        return [
            TextTheme(
                id=str(theme_id),
                team=theme_team,
                name=name,
                keywords=tuple(keywords or ()),
                color=color,
                priority=priority or 0,
                analysis_context=analysis_context or AnalysisContext.GENERAL_FEEDBACK,
            )
            for theme_id, theme_team, name, keywords, color, priority, analysis_context in rows
        ]


class InMemoryFeedbackStore:
    """Store over an in-memory record list; filtering happens at the application edge."""

    def __init__(self, records: Sequence[FeedbackRecord] = (), themes: Sequence[TextTheme] = ()):
        self.records = list(records)
        self.themes = list(themes)

    def fetch(self, predicate: AggregationPredicate) -> List[FeedbackRecord]:
        records = [record for record in self.records if predicate.matches(record)]
        logger.info(f"Fetched {len(records)} of {len(self.records)} in-memory records for team {predicate.team}")
        return records

    def themes_for_team(self, team: str, context: Optional[AnalysisContext] = None) -> List[TextTheme]:
        themes = [
            theme for theme in self.themes
            if theme.team == team and (context is None or theme.analysis_context == context)
        ]
        # Stable sort keeps insertion order among equal priorities
        return sorted(themes, key=lambda theme: -theme.priority)
