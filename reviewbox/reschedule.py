from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence

import structlog

from reviewbox.errors import InvalidPattern, NotFound, OutOfRangeDate
from reviewbox.schedule import PatternLike, ScheduleGenerator
from reviewbox.schemas import OverduePolicy, ReviewDateSchema

logger = structlog.get_logger(__name__)


def editable_range(initial_scheduled_date: date, today: Optional[date] = None):
    """(earliest, latest) dates a review date may be rewound to"""
    today = today or date.today()
    return initial_scheduled_date, today - timedelta(days=1)


def validate_request_date(initial_scheduled_date: date, requested: date, today: Optional[date] = None) -> None:
    """
    Raise OutOfRangeDate unless initial_scheduled_date <= requested <= yesterday.

    A review date can only be moved into the past; today or later would look
    like an ordinary pending review.
    """
    earliest, latest = editable_range(initial_scheduled_date, today)
    if requested < earliest or requested > latest:
        raise OutOfRangeDate(requested, earliest, latest)


def _cascade(
    previous: date,
    reviews: Sequence[ReviewDateSchema],
    intervals: Dict[int, int],
    policy: OverduePolicy,
    today: date,
    completed_through_today: bool,
) -> List[ReviewDateSchema]:
    """Recompute each review from the one before it and resolve the overdue ones"""
    resolved = []
    for rd in reviews:
        if rd.step_number not in intervals:
            raise InvalidPattern(f"pattern has no step {rd.step_number}")
        due = previous + timedelta(days=intervals[rd.step_number])
        update = {"scheduled_date": due}

        if policy == OverduePolicy.COMPRESS_AS_COMPLETED:
            overdue = due <= today if completed_through_today else due < today
            if overdue:
                update["is_completed"] = True
        elif due < today:
            due = today
            update["scheduled_date"] = due

        resolved.append(rd.model_copy(update=update))
        previous = due
    return resolved


def _interval_map(pattern: PatternLike) -> Dict[int, int]:
    return {step.step_number: step.interval_days for step in ScheduleGenerator.validate_steps(pattern)}


def reschedule(
    schedule: Sequence[ReviewDateSchema],
    step_number: int,
    request_scheduled_date: date,
    pattern: PatternLike,
    policy: OverduePolicy,
    today: Optional[date] = None,
) -> List[ReviewDateSchema]:
    """
    Rewind one review date and cascade the change to every later step.

    Steps before the edited one are untouched and the edited step keeps its
    completion state. Each later step is recomputed as its interval after
    the step before it, then:

    - compress_as_completed: a recomputed date on or before today is
      marked completed and keeps its computed date
    - pin_to_today: a recomputed date before today is moved to today and
      its completion state is left alone; later steps follow from today

    Args:
        schedule: Current review dates of the item
        step_number: Step being edited
        request_scheduled_date: New date for that step
        pattern: Pattern (or steps) the schedule was generated from
        policy: Overdue policy for the cascaded steps
        today: Reference date (defaults to today)

    Returns:
        The complete updated schedule ordered by step number

    Raises:
        NotFound: the schedule has no such step
        OutOfRangeDate: the requested date is not in [initial date, yesterday]
        InvalidPattern: the pattern is malformed or does not cover the schedule
    """
    today = today or date.today()
    ordered = sorted(schedule, key=lambda rd: rd.step_number)

    index = next((i for i, rd in enumerate(ordered) if rd.step_number == step_number), None)
    if index is None:
        raise NotFound("review step", step_number)

    target = ordered[index]
    validate_request_date(target.initial_scheduled_date, request_scheduled_date, today)
    intervals = _interval_map(pattern)

    edited = target.model_copy(update={"scheduled_date": request_scheduled_date})
    cascaded = _cascade(request_scheduled_date, ordered[index + 1:], intervals, policy, today, True)

    logger.info(
        "review_date_rescheduled",
        step_number=step_number,
        request_scheduled_date=request_scheduled_date.isoformat(),
        policy=policy.value,
        cascaded_steps=len(cascaded),
        completed_steps=sum(1 for rd in cascaded if rd.is_completed),
    )
    return ordered[:index] + [edited] + cascaded


def resolve_overdue(
    schedule: Sequence[ReviewDateSchema],
    pattern: PatternLike,
    learned_date: date,
    policy: OverduePolicy,
    today: Optional[date] = None,
) -> List[ReviewDateSchema]:
    """
    Apply an overdue policy to a freshly generated schedule.

    Used when an item is created or re-activated with a learned date in the
    past. Only dates strictly before today count as overdue here; a review
    falling on today is simply due.
    """
    today = today or date.today()
    ordered = sorted(schedule, key=lambda rd: rd.step_number)
    return _cascade(learned_date, ordered, _interval_map(pattern), policy, today, False)
