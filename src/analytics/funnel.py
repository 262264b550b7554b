"""
Top Tasks funnel: per-task success/partial/failure tallies, blocker counts
and a daily success trend.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from src.analytics.query import DEFAULT_TIMEZONE
from src.models.results import DailyStat, TaskFunnelStats, TaskStats
from src.models.schemas import Answer, FeedbackRecord, SingleChoiceValue, SurveyType, TextValue

# Canonical field ids used by the Top Tasks widget presets
TASK_FIELD_IDS = frozenset({"task"})
SUCCESS_FIELD_IDS = ("taskSuccess", "success")
BLOCKER_FIELD_IDS = frozenset({"blocker"})

UNKNOWN_TASK_LABEL = "Unknown task"
SUCCESS, PARTIAL, FAILURE = "yes", "partial", "no"


def task_label(answer: Answer) -> str:
    """Display label of a task answer: option label for choices, raw text for free text."""
    value = answer.value
    if isinstance(value, SingleChoiceValue):
        return answer.question.option_label(value.selected_option_id) or value.selected_option_id
    if isinstance(value, TextValue):
        return value.text
    return UNKNOWN_TASK_LABEL


def task_outcome(record: FeedbackRecord) -> Optional[str]:
    for field_id in SUCCESS_FIELD_IDS:
        answer = record.find_answer(field_id)
        if answer is not None and isinstance(answer.value, SingleChoiceValue):
            return answer.value.selected_option_id
    return None


def blocker_value(record: FeedbackRecord) -> Optional[str]:
    answer = record.find_answer(BLOCKER_FIELD_IDS)
    if answer is None:
        return None
    if isinstance(answer.value, TextValue):
        return answer.value.text
    if isinstance(answer.value, SingleChoiceValue):
        return answer.value.selected_option_id
    return None


@dataclass
class TaskTally:
    first_seen: int
    total: int = 0
    success: int = 0
    partial: int = 0
    failure: int = 0
    blockers: Dict[str, int] = field(default_factory=dict)

    def merge(self, other: "TaskTally") -> "TaskTally":
        blockers = dict(self.blockers)
        for blocker, count in other.blockers.items():
            blockers[blocker] = blockers.get(blocker, 0) + count
        return TaskTally(
            first_seen=min(self.first_seen, other.first_seen),
            total=self.total + other.total,
            success=self.success + other.success,
            partial=self.partial + other.partial,
            failure=self.failure + other.failure,
            blockers=blockers,
        )

    def to_stats(self, task: str) -> TaskStats:
        success_rate = self.success / self.total if self.total > 0 else 0.0
        # Exact blocker strings; most frequent first
        blockers = sorted(self.blockers.items(), key=lambda item: (-item[1], item[0]))
        return TaskStats(
            task=task,
            total_count=self.total,
            success_count=self.success,
            partial_count=self.partial,
            failure_count=self.failure,
            success_rate=success_rate,
            formatted_success_rate=f"{round(success_rate * 100)}%",
            blocker_counts=dict(blockers),
        )


class TaskFunnelAccumulator:
    """Single-pass accumulator for Top Tasks records, mergeable across partitions."""

    def __init__(self, task_filter: Optional[str] = None, tz: Optional[ZoneInfo] = None):
        self.task_filter = task_filter
        self.tz = tz or ZoneInfo(DEFAULT_TIMEZONE)
        self.tasks: Dict[str, TaskTally] = {}
        self.daily: Dict[str, List[int]] = {}
        self.total_submissions = 0
        self.question: Optional[Tuple[int, str]] = None

    def add(self, seq: int, record: FeedbackRecord) -> None:
        if record.survey_type != SurveyType.TOP_TASKS:
            return
        task_answer = record.find_answer(TASK_FIELD_IDS)
        if task_answer is None:
            return
        label = task_label(task_answer)
        # Task filter applies before any tallying
        if self.task_filter is not None and label != self.task_filter:
            return

        self.total_submissions += 1
        if self.question is None:
            self.question = (seq, task_answer.question.label)

        outcome = task_outcome(record)

        day = record.submitted_at.astimezone(self.tz).date().isoformat()
        day_stat = self.daily.setdefault(day, [0, 0])
        day_stat[0] += 1
        if outcome == SUCCESS:
            day_stat[1] += 1

        tally = self.tasks.get(label)
        if tally is None:
            tally = self.tasks[label] = TaskTally(first_seen=seq)
        tally.total += 1
        if outcome == SUCCESS:
            tally.success += 1
        elif outcome == PARTIAL:
            tally.partial += 1
        elif outcome == FAILURE:
            tally.failure += 1

        if outcome in (PARTIAL, FAILURE):
            blocker = blocker_value(record)
            if blocker is not None and blocker.strip():
                tally.blockers[blocker] = tally.blockers.get(blocker, 0) + 1

    def merge(self, other: "TaskFunnelAccumulator") -> "TaskFunnelAccumulator":
        merged = TaskFunnelAccumulator(self.task_filter, self.tz)
        merged.total_submissions = self.total_submissions + other.total_submissions
        for label in self.tasks.keys() | other.tasks.keys():
            left, right = self.tasks.get(label), other.tasks.get(label)
            merged.tasks[label] = left.merge(right) if left and right else (left or right)
        for day in self.daily.keys() | other.daily.keys():
            left_day, right_day = self.daily.get(day, [0, 0]), other.daily.get(day, [0, 0])
            merged.daily[day] = [left_day[0] + right_day[0], left_day[1] + right_day[1]]
        questions = [q for q in (self.question, other.question) if q is not None]
        merged.question = min(questions) if questions else None
        return merged

    def result(self) -> TaskFunnelStats:
        ranked = sorted(self.tasks.items(), key=lambda item: (-item[1].total, item[1].first_seen))
        return TaskFunnelStats(
            total_submissions=self.total_submissions,
            tasks=tuple(tally.to_stats(label) for label, tally in ranked),
            daily_stats={
                day: DailyStat(total=total, success=success)
                for day, (total, success) in sorted(self.daily.items())
            },
            question_text=self.question[1] if self.question else None,
        )


def compute_task_funnel(
    records: Iterable[FeedbackRecord],
    task: Optional[str] = None,
    tz: Optional[ZoneInfo] = None,
) -> TaskFunnelStats:
    acc = TaskFunnelAccumulator(task_filter=task, tz=tz)
    for seq, record in enumerate(records):
        acc.add(seq, record)
    return acc.result()
