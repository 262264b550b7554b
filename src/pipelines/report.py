# src/pipelines/report.py
"""
Command-line reports over feedback records.

Records come from a JSON file (a list of stored feedback payloads, each with
``id``, ``team`` and ``app`` alongside the usual payload keys) or, without
``--input``, from the PostgreSQL feedback store.
"""

import argparse
import json
import logging
from typing import Any, Dict, List, Optional

from src.analytics.engine import FeedbackAnalyticsEngine
from src.analytics.query import normalize_query
from src.config.settings import Settings
from src.data_access.feedback_store import FeedbackStore, InMemoryFeedbackStore, PostgresFeedbackStore
from src.data_access.payload import parse_feedback_payload
from src.models.errors import PayloadError
from src.models.schemas import AnalysisContext, FeedbackRecord, TextTheme

logger = logging.getLogger(__name__)

REPORTS = (
    "rating-stats",
    "rating-distribution",
    "timeline",
    "task-funnel",
    "blocker-stats",
    "discovery-stats",
    "theme-stats",
    "word-frequency",
    "priority-votes",
    "survey-types",
    "context-tags",
)


def load_records(path: str) -> List[FeedbackRecord]:
    """Parse a JSON file of feedback payloads, skipping malformed ones."""
    with open(path, encoding="utf-8") as f:
        payloads = json.load(f)

    records = []
    for index, payload in enumerate(payloads):
        # Non-object entries are rejected by the parser under their row id
        record_id = payload.get("id") if isinstance(payload, dict) else None
        try:
            records.append(parse_feedback_payload(payload, record_id=record_id or f"row-{index}"))
        except PayloadError as e:
            logger.warning(f"Skipping record {e.record_id}: {e}")
    logger.info(f"Loaded {len(records)} records from {path}")
    return records


def load_themes(path: Optional[str]) -> List[TextTheme]:
    if not path:
        return []
    with open(path, encoding="utf-8") as f:
        return [TextTheme.model_validate(theme) for theme in json.load(f)]


def run_report(engine: FeedbackAnalyticsEngine, report: str, params: Dict[str, Any], context: Optional[str] = None):
    """
    Run one named report.

    Args:
        engine: Analytics engine over the chosen store
        report: One of REPORTS
        params: Raw filter parameters (team, fromDate, toDate, app, ...)
        context: Analysis context for theme-stats

    Returns:
        The report result model
    """
    predicate = normalize_query(params, engine.settings)
    if report == "rating-stats":
        return engine.rating_stats(predicate)
    if report == "rating-distribution":
        return engine.rating_distribution(predicate)
    if report == "timeline":
        return engine.timeline(predicate)
    if report == "task-funnel":
        return engine.task_funnel(predicate)
    if report == "blocker-stats":
        return engine.blocker_stats(predicate)
    if report == "discovery-stats":
        return engine.discovery_stats(predicate)
    if report == "theme-stats":
        return engine.theme_stats(predicate, AnalysisContext(context or AnalysisContext.GENERAL_FEEDBACK.value))
    if report == "word-frequency":
        return engine.word_frequency(predicate)
    if report == "priority-votes":
        return engine.priority_votes(predicate)
    if report == "survey-types":
        return engine.survey_type_distribution(predicate)
    if report == "context-tags":
        return engine.context_tag_facets(predicate)
    raise ValueError(f"Unknown report: {report}")


def main(argv: Optional[List[str]] = None):
    """Main entry point for running a report with CLI arguments."""
    config = Settings()

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Parse command-line arguments
    parser = argparse.ArgumentParser(
        description='Compute feedback statistics for a team and print them as JSON.'
    )
    parser.add_argument('report', choices=REPORTS, help='Report to compute')
    parser.add_argument('--team', required=True, help='Team owning the feedback')
    parser.add_argument('--input', type=str, help='JSON file of feedback payloads (default: PostgreSQL)')
    parser.add_argument('--themes', type=str, help='JSON file of text themes (used with --input)')
    parser.add_argument('--from-date', type=str, help='Start date in YYYY-MM-DD format (or ISO timestamp)')
    parser.add_argument('--to-date', type=str, help='End date in YYYY-MM-DD format, inclusive (or ISO timestamp)')
    parser.add_argument('--app', type=str, help='App name, or "alle" for all apps')
    parser.add_argument('--survey-id', type=str, help='Survey id')
    parser.add_argument('--device-type', type=str, help='Device type (mobile, tablet, desktop)')
    parser.add_argument(
        '--segment',
        action='append',
        default=[],
        help='Context tag filter as key:value (repeatable)'
    )
    parser.add_argument('--task', type=str, help='Top Tasks task label to restrict to')
    parser.add_argument(
        '--context',
        choices=[c.value for c in AnalysisContext],
        help='Theme analysis context for theme-stats'
    )

    args = parser.parse_args(argv)

    params = {
        "team": args.team,
        "fromDate": args.from_date,
        "toDate": args.to_date,
        "app": args.app,
        "surveyId": args.survey_id,
        "deviceType": args.device_type,
        "segment": args.segment,
        "task": args.task,
    }

    store: FeedbackStore
    postgres_store = None
    if args.input:
        store = InMemoryFeedbackStore(load_records(args.input), load_themes(args.themes))
    else:
        store = postgres_store = PostgresFeedbackStore(config)

    try:
        result = run_report(FeedbackAnalyticsEngine(store, config), args.report, params, args.context)
    finally:
        if postgres_store is not None:
            postgres_store.close()

    print(json.dumps(result.model_dump(mode="json"), indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
