from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from datetime import date, datetime, timezone
from typing import Optional, List, Dict, Tuple, Union, Iterable, Literal, Annotated
from enum import Enum


class SurveyType(str, Enum):
    RATING = "rating"
    TOP_TASKS = "topTasks"
    DISCOVERY = "discovery"
    TASK_PRIORITY = "taskPriority"
    CUSTOM = "custom"


class FieldType(str, Enum):
    RATING = "RATING"
    TEXT = "TEXT"
    SINGLE_CHOICE = "SINGLE_CHOICE"
    MULTI_CHOICE = "MULTI_CHOICE"
    DATE = "DATE"


class DeviceType(str, Enum):
    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"


class AnalysisContext(str, Enum):
    GENERAL_FEEDBACK = "GENERAL_FEEDBACK"
    BLOCKER = "BLOCKER"


class RatingDisplayType(str, Enum):
    EMOJI = "emoji"
    THUMBS = "thumbs"
    STAR = "star"
    NPS = "nps"


# Scales each display variant supports
SUPPORTED_SCALES: Dict[RatingDisplayType, Tuple[int, ...]] = {
    RatingDisplayType.EMOJI: (5,),
    RatingDisplayType.THUMBS: (2,),
    RatingDisplayType.STAR: (3, 5, 7, 10),
    RatingDisplayType.NPS: (11,),
}


def is_valid_rating_combination(display_type: RatingDisplayType, scale: int) -> bool:
    return scale in SUPPORTED_SCALES[display_type]


def rating_bounds(display_type: RatingDisplayType, scale: int) -> Tuple[int, int]:
    """Inclusive (min, max) score for a display variant; NPS is 0-based."""
    if display_type == RatingDisplayType.NPS:
        return 0, scale - 1
    return 1, scale


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


# ============================================
# Answer values (tagged union on "type")
# ============================================

class RatingValue(FrozenModel):
    type: Literal["rating"] = "rating"
    rating: int
    display_type: Optional[RatingDisplayType] = None
    scale: Optional[int] = None

    @model_validator(mode="after")
    def check_bounds(self) -> "RatingValue":
        # Legacy payloads carry neither display type nor scale
        if self.display_type is None or self.scale is None:
            return self
        if not is_valid_rating_combination(self.display_type, self.scale):
            raise ValueError(
                f"Invalid combination: {self.display_type.name} does not support scale {self.scale}"
            )
        low, high = rating_bounds(self.display_type, self.scale)
        if not low <= self.rating <= high:
            raise ValueError(
                f"Rating {self.rating} out of bounds [{low}, {high}] for {self.display_type.name}"
            )
        return self


class TextValue(FrozenModel):
    type: Literal["text"] = "text"
    text: str


class SingleChoiceValue(FrozenModel):
    type: Literal["singleChoice"] = "singleChoice"
    selected_option_id: str


class MultiChoiceValue(FrozenModel):
    type: Literal["multiChoice"] = "multiChoice"
    selected_option_ids: Tuple[str, ...] = ()


class DateValue(FrozenModel):
    type: Literal["date"] = "date"
    date: str


AnswerValue = Annotated[
    Union[RatingValue, TextValue, SingleChoiceValue, MultiChoiceValue, DateValue],
    Field(discriminator="type"),
]

VALUE_TYPE_BY_FIELD_TYPE: Dict[FieldType, str] = {
    FieldType.RATING: "rating",
    FieldType.TEXT: "text",
    FieldType.SINGLE_CHOICE: "singleChoice",
    FieldType.MULTI_CHOICE: "multiChoice",
    FieldType.DATE: "date",
}


class ChoiceOption(FrozenModel):
    id: str
    label: str


class Question(FrozenModel):
    label: str = ""
    description: Optional[str] = None
    options: Optional[Tuple[ChoiceOption, ...]] = None

    def option_label(self, option_id: str) -> Optional[str]:
        for option in self.options or ():
            if option.id == option_id:
                return option.label
        return None


class Answer(FrozenModel):
    """One answered survey field."""
    field_id: str
    field_type: FieldType
    question: Question = Field(default_factory=Question)
    value: AnswerValue

    @model_validator(mode="after")
    def check_value_matches_field_type(self) -> "Answer":
        expected = VALUE_TYPE_BY_FIELD_TYPE[self.field_type]
        if self.value.type != expected:
            raise ValueError(
                f"Answer {self.field_id}: value type '{self.value.type}' does not match field type {self.field_type.value}"
            )
        return self


# ============================================
# Feedback records
# ============================================

class FeedbackContext(FrozenModel):
    """Browser metadata captured with a submission."""
    url: Optional[str] = None
    pathname: Optional[str] = None
    device_type: Optional[DeviceType] = None
    tags: Dict[str, str] = Field(default_factory=dict)


class FeedbackRecord(FrozenModel):
    """Structured feedback submission, read-only to the analytics engine."""

    id: str
    team: str
    app: Optional[str] = None
    submitted_at: datetime
    survey_id: str = "unknown"
    survey_type: SurveyType = SurveyType.CUSTOM
    context: FeedbackContext = Field(default_factory=FeedbackContext)
    answers: Tuple[Answer, ...] = ()

    @field_validator("submitted_at")
    @classmethod
    def ensure_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def find_answer(self, field_ids: Iterable[str]) -> Optional[Answer]:
        """First answer whose field id is one of ``field_ids``."""
        ids = {field_ids} if isinstance(field_ids, str) else set(field_ids)
        for answer in self.answers:
            if answer.field_id in ids:
                return answer
        return None

    @property
    def rating(self) -> Optional[int]:
        for answer in self.answers:
            if isinstance(answer.value, RatingValue):
                return answer.value.rating
        return None

    @property
    def has_text(self) -> bool:
        return any(
            isinstance(answer.value, TextValue) and answer.value.text.strip()
            for answer in self.answers
        )

    @property
    def texts(self) -> List[str]:
        """Non-blank free-text answers in answer order."""
        return [
            answer.value.text
            for answer in self.answers
            if isinstance(answer.value, TextValue) and answer.value.text.strip()
        ]


class TextTheme(FrozenModel):
    """Team-authored keyword group used to bucket free text."""
    id: str
    team: str
    name: str
    keywords: Tuple[str, ...] = ()
    color: Optional[str] = None
    priority: int = 0
    analysis_context: AnalysisContext = AnalysisContext.GENERAL_FEEDBACK


class AggregationPredicate(FrozenModel):
    """Canonical filter produced by the query normalizer.

    ``start`` is inclusive. ``end`` is exclusive for civil-date bounds and
    inclusive when it came from a full timestamp (``end_inclusive``).
    """

    team: str
    app: Optional[str] = None
    from_date: Optional[date] = None
    to_date: Optional[date] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    end_inclusive: bool = False
    survey_id: Optional[str] = None
    device_type: Optional[str] = None
    segments: Tuple[Tuple[str, str], ...] = ()
    task: Optional[str] = None

    @property
    def has_explicit_range(self) -> bool:
        return self.start is not None or self.end is not None

    def matches(self, record: FeedbackRecord) -> bool:
        """Application-edge filtering with the same semantics as the SQL store."""
        if record.team != self.team:
            return False
        if self.app is not None and record.app != self.app:
            return False
        if self.survey_id is not None and record.survey_id != self.survey_id:
            return False
        if self.start is not None and record.submitted_at < self.start:
            return False
        if self.end is not None:
            if self.end_inclusive and record.submitted_at > self.end:
                return False
            if not self.end_inclusive and record.submitted_at >= self.end:
                return False
        if self.device_type is not None:
            device = record.context.device_type
            if device is None or device.value != self.device_type:
                return False
        for key, value in self.segments:
            key, value = key.strip(), value.strip()
            if not key or not value:
                continue
            if record.context.tags.get(key) != value:
                return False
        return True
