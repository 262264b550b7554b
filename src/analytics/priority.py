"""
Task priority votes and the "long neck" cutoff: the rank at which the
cumulative vote share first reaches 80%.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence, Tuple

from src.models.results import PriorityVoteStats, TaskVote
from src.models.schemas import FeedbackRecord, FieldType, MultiChoiceValue, SurveyType

PRIORITY_FIELD_ID = "priority"
LONG_NECK_THRESHOLD = 80
TOP_N = 5


def long_neck_cutoff(percentages: Sequence[int], threshold: int = LONG_NECK_THRESHOLD) -> int:
    """
    1-based count of items at which the running percentage first reaches
    ``threshold``; the full length when it never does.
    """
    cumulative = 0
    for index, percentage in enumerate(percentages, start=1):
        cumulative += percentage
        if cumulative >= threshold:
            return index
    return len(percentages)


@dataclass
class VoteTally:
    votes: Dict[str, int] = field(default_factory=dict)
    first_vote: Dict[str, int] = field(default_factory=dict)
    labels: Dict[str, Tuple[int, str]] = field(default_factory=dict)
    total_submissions: int = 0

    def add(self, seq: int, record: FeedbackRecord) -> None:
        if record.survey_type != SurveyType.TASK_PRIORITY:
            return
        self.total_submissions += 1

        answer = next(
            (a for a in record.answers if a.field_id == PRIORITY_FIELD_ID and a.field_type == FieldType.MULTI_CHOICE),
            None,
        )
        if answer is None or not isinstance(answer.value, MultiChoiceValue):
            return
        selected = answer.value.selected_option_ids
        if not selected:
            return

        # First-seen label wins
        for option in answer.question.options or ():
            self.labels.setdefault(option.id, (seq, option.label))

        for task_id in selected:
            self.votes[task_id] = self.votes.get(task_id, 0) + 1
            self.first_vote.setdefault(task_id, seq)

    def merge(self, other: "VoteTally") -> "VoteTally":
        merged = VoteTally(total_submissions=self.total_submissions + other.total_submissions)
        for task_id in self.votes.keys() | other.votes.keys():
            merged.votes[task_id] = self.votes.get(task_id, 0) + other.votes.get(task_id, 0)
            merged.first_vote[task_id] = min(
                seq for seq in (self.first_vote.get(task_id), other.first_vote.get(task_id)) if seq is not None
            )
        for option_id in self.labels.keys() | other.labels.keys():
            candidates = [c for c in (self.labels.get(option_id), other.labels.get(option_id)) if c is not None]
            merged.labels[option_id] = min(candidates)
        return merged

    def result(self) -> PriorityVoteStats:
        ranked = sorted(self.votes.items(), key=lambda item: (-item[1], self.first_vote[item[0]]))
        total_votes = sum(self.votes.values())

        tasks: List[TaskVote] = []
        for task_id, votes in ranked:
            percentage = round(votes / total_votes * 100) if total_votes > 0 else 0
            label = self.labels[task_id][1] if task_id in self.labels else task_id
            tasks.append(TaskVote(task_id=task_id, task=label, votes=votes, percentage=percentage))

        percentages = [task.percentage for task in tasks]
        return PriorityVoteStats(
            total_submissions=self.total_submissions,
            total_votes=total_votes,
            tasks=tuple(tasks),
            long_neck_cutoff=long_neck_cutoff(percentages),
            cumulative_percentage_at_5=sum(percentages[:TOP_N]),
        )


def compute_priority_votes(records: Iterable[FeedbackRecord]) -> PriorityVoteStats:
    tally = VoteTally()
    for seq, record in enumerate(records):
        tally.add(seq, record)
    return tally.result()
