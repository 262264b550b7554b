"""
Parsing of stored feedback JSON into typed records.

Stored payloads use the widget's camelCase keys (``surveyId``, ``fieldType``,
``selectedOptionId``...). Anything the analytics layer reads goes through
``parse_feedback_payload`` so aggregators only ever see validated records.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union
import json
import logging

from pydantic import ValidationError

from src.analytics.query import parse_timestamp
from src.models.errors import PayloadError
from src.models.schemas import (
    Answer,
    ChoiceOption,
    DateValue,
    DeviceType,
    FeedbackContext,
    FeedbackRecord,
    FieldType,
    MultiChoiceValue,
    Question,
    RatingValue,
    SingleChoiceValue,
    SurveyType,
    TextValue,
)

logger = logging.getLogger(__name__)

DEVICE_TYPES = frozenset(device.value for device in DeviceType)


def _parse_question(raw: Optional[Dict[str, Any]]) -> Question:
    if not raw:
        return Question()
    options = raw.get("options")
    return Question(
        label=raw.get("label") or "",
        description=raw.get("description"),
        options=tuple(
            ChoiceOption(id=str(option["id"]), label=str(option.get("label", "")))
            for option in options
        ) if options else None,
    )


def _parse_value(raw: Dict[str, Any]):
    value_type = raw.get("type")
    if value_type == "rating":
        return RatingValue(
            rating=raw["rating"],
            display_type=raw.get("ratingVariant") or raw.get("ratingDisplayType"),
            scale=raw.get("ratingScale"),
        )
    if value_type == "text":
        return TextValue(text=raw["text"])
    if value_type == "singleChoice":
        return SingleChoiceValue(selected_option_id=raw["selectedOptionId"])
    if value_type == "multiChoice":
        return MultiChoiceValue(selected_option_ids=tuple(raw.get("selectedOptionIds") or ()))
    if value_type == "date":
        return DateValue(date=raw["date"])
    raise ValueError(f"unknown answer value type {value_type!r}")


def parse_answer(raw: Dict[str, Any]) -> Answer:
    """Parse a single answer; raises ValueError / KeyError / ValidationError when malformed."""
    return Answer(
        field_id=raw["fieldId"],
        field_type=FieldType(raw["fieldType"]),
        question=_parse_question(raw.get("question")),
        value=_parse_value(raw["value"]),
    )


def _parse_context(raw: Optional[Dict[str, Any]]) -> FeedbackContext:
    if not raw:
        return FeedbackContext()
    tags = raw.get("tags") or {}
    return FeedbackContext(
        url=raw.get("url"),
        pathname=raw.get("pathname"),
        device_type=raw.get("deviceType") if raw.get("deviceType") in DEVICE_TYPES else None,
        tags={str(key): str(value) for key, value in tags.items() if value is not None},
    )


def _parse_survey_type(raw: Optional[str]) -> SurveyType:
    try:
        return SurveyType(raw) if raw else SurveyType.CUSTOM
    except ValueError:
        return SurveyType.CUSTOM


def parse_feedback_payload(
    payload: Union[str, Dict[str, Any]],
    record_id: Optional[str] = None,
    team: Optional[str] = None,
    app: Optional[str] = None,
    stored_at: Optional[datetime] = None,
) -> FeedbackRecord:
    """
    Parse a stored feedback payload into a FeedbackRecord.

    Row columns (id, team, app, storage timestamp) take precedence over the
    same keys inside the JSON. Individual malformed answers are dropped with a
    warning; a payload that cannot produce a record raises PayloadError.

    Args:
        payload: The feedback JSON, as text or an already decoded dict
        record_id: Row id
        team: Owning team column
        app: App column
        stored_at: Storage timestamp, used when the JSON has no submittedAt

    Returns:
        Validated FeedbackRecord
    """
    rid = record_id or "unknown"
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise PayloadError(rid, f"invalid JSON ({e.msg})") from e
    if not isinstance(payload, dict):
        raise PayloadError(rid, "payload is not a JSON object")

    rid = record_id or payload.get("id") or rid

    submitted_at = stored_at
    if payload.get("submittedAt"):
        submitted_at = parse_timestamp(str(payload["submittedAt"])) or stored_at
    if submitted_at is None:
        raise PayloadError(rid, "missing submission timestamp")

    answers: List[Answer] = []
    for index, raw_answer in enumerate(payload.get("answers") or []):
        try:
            answers.append(parse_answer(raw_answer))
        except (AttributeError, KeyError, TypeError, ValueError, ValidationError) as e:
            logger.warning(f"Dropping malformed answer {index} in record {rid}: {e}")

    try:
        return FeedbackRecord(
            id=str(rid),
            team=team or payload.get("team") or "",
            app=app or payload.get("app"),
            submitted_at=submitted_at,
            survey_id=payload.get("surveyId") or "unknown",
            survey_type=_parse_survey_type(payload.get("surveyType")),
            context=_parse_context(payload.get("context")),
            answers=tuple(answers),
        )
    except (AttributeError, TypeError, ValueError, ValidationError) as e:
        raise PayloadError(rid, str(e)) from e
