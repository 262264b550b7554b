"""Survey-level overviews: survey type distribution and segment tag facets."""

from typing import Dict, Iterable

from src.models.results import ContextTagFacets, SurveyTypeCount, SurveyTypeDistribution, TagValueCount
from src.models.schemas import FeedbackRecord, SurveyType


def compute_survey_type_distribution(records: Iterable[FeedbackRecord]) -> SurveyTypeDistribution:
    """Count each distinct survey once, under the type it was first seen with."""
    seen: Dict[str, SurveyType] = {}
    counts: Dict[SurveyType, int] = {}
    for record in records:
        if record.survey_id in seen:
            continue
        seen[record.survey_id] = record.survey_type
        counts[record.survey_type] = counts.get(record.survey_type, 0) + 1

    total = len(seen)
    distribution = [
        SurveyTypeCount(
            survey_type=survey_type,
            count=count,
            percentage=count * 100 // total if total > 0 else 0,
        )
        for survey_type, count in counts.items()
    ]
    distribution.sort(key=lambda item: -item.count)
    return SurveyTypeDistribution(total_surveys=total, distribution=tuple(distribution))


def compute_context_tag_facets(records: Iterable[FeedbackRecord]) -> ContextTagFacets:
    """Values seen per segment tag key, most frequent first then alphabetical."""
    counts: Dict[str, Dict[str, int]] = {}
    for record in records:
        for key, value in record.context.tags.items():
            values = counts.setdefault(key, {})
            values[value] = values.get(value, 0) + 1

    return ContextTagFacets(tags={
        key: tuple(
            TagValueCount(value=value, count=count)
            for value, count in sorted(values.items(), key=lambda item: (-item[1], item[0]))
        )
        for key, values in sorted(counts.items())
    })
