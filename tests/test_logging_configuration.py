"""
Tests for logging configuration: module loggers, levels and the CLI format.
"""
import logging
import io

from src.analytics.query import normalize_query
from src.data_access.payload import parse_feedback_payload


def _capture(logger_name, level=logging.INFO):
    """Attach a formatted handler to a logger and return its buffer."""
    log_capture = io.StringIO()
    handler = logging.StreamHandler(log_capture)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    logger.addHandler(handler)
    return log_capture, logger, handler


class TestLoggingConfiguration:
    """Test that analytics modules log through their module loggers."""

    def test_dropped_date_bound_is_logged_as_warning(self):
        """Test the query normalizer warns on an unparseable bound."""
        log_capture, logger, handler = _capture("src.analytics.query")
        try:
            normalize_query({"team": "flex", "toDate": "not-a-date"})
        finally:
            logger.removeHandler(handler)

        output = log_capture.getvalue()
        assert "src.analytics.query - WARNING - Ignoring unparseable toDate 'not-a-date'" in output

    def test_dropped_answer_names_the_record(self):
        """Test the payload parser names the record whose answer it drops."""
        log_capture, logger, handler = _capture("src.data_access.payload")
        try:
            parse_feedback_payload(
                {"submittedAt": "2025-03-10T12:00:00Z", "answers": [{"fieldId": "svar"}]},
                record_id="fb042",
                team="flex",
            )
        finally:
            logger.removeHandler(handler)

        output = log_capture.getvalue()
        assert "WARNING - Dropping malformed answer 0 in record fb042" in output

    def test_warning_level_suppresses_info(self):
        """Test raising a module logger to WARNING hides its INFO messages."""
        log_capture, logger, handler = _capture("src.data_access.feedback_store", level=logging.WARNING)
        try:
            logger.info("Fetched 10 records")
            logger.warning("Skipping record fb001")
        finally:
            logger.removeHandler(handler)

        output = log_capture.getvalue()
        assert "Fetched 10 records" not in output
        assert "Skipping record fb001" in output
