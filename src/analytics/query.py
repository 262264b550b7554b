"""
Normalization of raw filter parameters into an AggregationPredicate.

Civil dates are interpreted in the configured timezone (Europe/Oslo by default):
``fromDate`` maps to the start of that day and ``toDate`` to the exclusive start
of the following day. Unparseable bounds are dropped rather than failing the query.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Iterable, List, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo
import logging

from src.config.settings import Settings
from src.models.errors import QueryValidationError
from src.models.schemas import AggregationPredicate

logger = logging.getLogger(__name__)


# Sentinel meaning "no filter" for app and device type
FILTER_ALL = "alle"
DEFAULT_TIMEZONE = "Europe/Oslo"


def _first(params: Mapping[str, Any], *keys: str) -> Optional[Any]:
    for key in keys:
        value = params.get(key)
        if value is None:
            continue
        if isinstance(value, str):
            value = value.strip()
            if not value:
                continue
        return value
    return None


def parse_civil_date(value: str) -> Optional[date]:
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        return None


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse a full ISO-8601 timestamp; naive values are taken as UTC."""
    text = value.strip()
    if len(text) <= 10:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def start_of_day(day: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def parse_segments(raw: Any) -> Tuple[Tuple[str, str], ...]:
    """
    Parse segment filters given as ``"key:value"`` strings, ``(key, value)``
    pairs or a mapping. Entries with a blank key or value are discarded.
    """
    if raw is None:
        return ()
    if isinstance(raw, Mapping):
        items: Iterable[Any] = list(raw.items())
    elif isinstance(raw, str):
        items = [raw]
    else:
        items = raw

    segments: List[Tuple[str, str]] = []
    for item in items:
        if isinstance(item, str):
            if ":" not in item:
                continue
            key, value = item.split(":", 1)
        else:
            try:
                key, value = item
            except (TypeError, ValueError):
                continue
        key, value = str(key).strip(), str(value).strip()
        if key and value:
            segments.append((key, value))
    return tuple(segments)


def normalize_query(params: Mapping[str, Any], settings: Optional[Settings] = None) -> AggregationPredicate:
    """
    Build a canonical predicate from raw request parameters.

    Args:
        params: Raw filter parameters (camelCase or snake_case keys)
        settings: Application settings (supplies the civil timezone)

    Returns:
        AggregationPredicate with resolved instant bounds

    Raises:
        QueryValidationError: If no team is given
    """
    team = _first(params, "team")
    if not team:
        raise QueryValidationError("team is required")

    tz = ZoneInfo(settings.stats_timezone if settings else DEFAULT_TIMEZONE)

    app = _first(params, "app")
    device_type = _first(params, "deviceType", "device_type")

    from_date = to_date = None
    start = end = None
    end_inclusive = False

    raw_from = _first(params, "fromDate", "from_date", "from")
    if raw_from is not None:
        from_date = parse_civil_date(str(raw_from))
        if from_date is not None:
            start = start_of_day(from_date, tz)
        else:
            # Backward compatibility: full timestamps
            start = parse_timestamp(str(raw_from))
            if start is None:
                logger.warning(f"Ignoring unparseable fromDate '{raw_from}'")

    raw_to = _first(params, "toDate", "to_date", "to")
    if raw_to is not None:
        to_date = parse_civil_date(str(raw_to))
        if to_date is not None:
            end = start_of_day(to_date + timedelta(days=1), tz)
        else:
            end = parse_timestamp(str(raw_to))
            end_inclusive = end is not None
            if end is None:
                logger.warning(f"Ignoring unparseable toDate '{raw_to}'")

    return AggregationPredicate(
        team=team,
        app=None if app == FILTER_ALL else app,
        from_date=from_date,
        to_date=to_date,
        start=start,
        end=end,
        end_inclusive=end_inclusive,
        survey_id=_first(params, "surveyId", "survey_id"),
        device_type=None if device_type == FILTER_ALL else device_type,
        segments=parse_segments(_first(params, "segment", "segments")),
        task=_first(params, "task"),
    )


def calculate_days(
    from_date: Optional[str],
    to_date: Optional[str],
    today: Optional[date] = None,
    default_days: int = 30,
) -> int:
    """Number of days in the query period, at least 1."""
    today = today or date.today()
    try:
        start = date.fromisoformat(from_date[:10]) if from_date else today - timedelta(days=default_days)
        end = date.fromisoformat(to_date[:10]) if to_date else today
    except ValueError:
        return default_days
    return max((end - start).days, 1)
