"""Builders for feedback records and themes used across the test suite."""
from datetime import datetime, timezone
from typing import Dict, Optional, Sequence, Tuple

from src.models.schemas import (
    AnalysisContext,
    Answer,
    ChoiceOption,
    DeviceType,
    FeedbackContext,
    FeedbackRecord,
    FieldType,
    MultiChoiceValue,
    Question,
    RatingValue,
    SingleChoiceValue,
    SurveyType,
    TextTheme,
    TextValue,
)

TEAM = "team-test"
BASE_TIME = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)

TASK_OPTIONS = (
    ChoiceOption(id="sok", label="Søke om dagpenger"),
    ChoiceOption(id="status", label="Sjekke status"),
    ChoiceOption(id="meldekort", label="Sende meldekort"),
)


def text_answer(field_id: str, text: str, label: str = "") -> Answer:
    return Answer(
        field_id=field_id,
        field_type=FieldType.TEXT,
        question=Question(label=label),
        value=TextValue(text=text),
    )


def choice_answer(field_id: str, option_id: str, options: Sequence[ChoiceOption] = (), label: str = "") -> Answer:
    return Answer(
        field_id=field_id,
        field_type=FieldType.SINGLE_CHOICE,
        question=Question(label=label, options=tuple(options) or None),
        value=SingleChoiceValue(selected_option_id=option_id),
    )


def make_record(
    record_id: str = "fb001",
    answers: Sequence[Answer] = (),
    submitted_at: datetime = BASE_TIME,
    survey_type: SurveyType = SurveyType.RATING,
    survey_id: str = "survey-1",
    app: Optional[str] = "app-test",
    team: str = TEAM,
    pathname: Optional[str] = None,
    device_type: Optional[DeviceType] = None,
    tags: Optional[Dict[str, str]] = None,
) -> FeedbackRecord:
    return FeedbackRecord(
        id=record_id,
        team=team,
        app=app,
        submitted_at=submitted_at,
        survey_id=survey_id,
        survey_type=survey_type,
        context=FeedbackContext(pathname=pathname, device_type=device_type, tags=tags or {}),
        answers=tuple(answers),
    )


def rating_record(rating: int, record_id: str = "fb001", text: Optional[str] = None, **kwargs) -> FeedbackRecord:
    answers = [
        Answer(
            field_id="svar",
            field_type=FieldType.RATING,
            question=Question(label="Hvordan opplevde du tjenesten?"),
            value=RatingValue(rating=rating),
        )
    ]
    if text is not None:
        answers.append(text_answer("feedback", text))
    return make_record(record_id=record_id, answers=answers, **kwargs)


def top_tasks_record(
    task_id: str,
    success: Optional[str] = None,
    blocker: Optional[str] = None,
    record_id: str = "fb001",
    **kwargs,
) -> FeedbackRecord:
    answers = [choice_answer("task", task_id, TASK_OPTIONS, label="Hva kom du hit for å gjøre?")]
    if success is not None:
        answers.append(choice_answer("taskSuccess", success))
    if blocker is not None:
        answers.append(text_answer("blocker", blocker))
    return make_record(record_id=record_id, answers=answers, survey_type=SurveyType.TOP_TASKS, **kwargs)


def discovery_record(
    task: str,
    success: Optional[str] = None,
    blocker: Optional[str] = None,
    record_id: str = "fb001",
    **kwargs,
) -> FeedbackRecord:
    answers = [text_answer("task", task)]
    if success is not None:
        answers.append(choice_answer("success", success))
    if blocker is not None:
        answers.append(text_answer("blocker", blocker))
    return make_record(record_id=record_id, answers=answers, survey_type=SurveyType.DISCOVERY, **kwargs)


def priority_record(
    selected: Tuple[str, ...],
    options: Sequence[ChoiceOption] = TASK_OPTIONS,
    record_id: str = "fb001",
    **kwargs,
) -> FeedbackRecord:
    answer = Answer(
        field_id="priority",
        field_type=FieldType.MULTI_CHOICE,
        question=Question(label="Hva er viktigst for deg?", options=tuple(options)),
        value=MultiChoiceValue(selected_option_ids=selected),
    )
    return make_record(record_id=record_id, answers=[answer], survey_type=SurveyType.TASK_PRIORITY, **kwargs)


def make_theme(
    name: str,
    keywords: Sequence[str],
    context: AnalysisContext = AnalysisContext.GENERAL_FEEDBACK,
    theme_id: Optional[str] = None,
    priority: int = 0,
    team: str = TEAM,
) -> TextTheme:
    return TextTheme(
        id=theme_id or name.lower(),
        team=team,
        name=name,
        keywords=tuple(keywords),
        priority=priority,
        analysis_context=context,
    )
