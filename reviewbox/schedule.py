from datetime import date, timedelta
from typing import Iterable, List, Sequence, Union

from reviewbox.errors import InvalidPattern
from reviewbox.schemas import PatternModel, ReviewDateSchema, StepSchema

PatternLike = Union[PatternModel, Iterable[StepSchema]]


def pattern_steps(pattern: PatternLike) -> List[StepSchema]:
    """Steps of a pattern (or a bare step list) sorted by step number"""
    steps = pattern.steps if isinstance(pattern, PatternModel) else pattern
    return sorted(steps, key=lambda step: step.step_number)


class ScheduleGenerator:
    """
    Turns a pattern and a learned date into an item's ordered review dates.

    Step intervals are applied cumulatively: step k is due on
    learned_date + interval_1 + ... + interval_k, so every step is
    interval_days after the step before it.
    """

    @staticmethod
    def validate_steps(pattern: PatternLike) -> List[StepSchema]:
        """
        Check that a pattern's steps can drive a schedule.

        Returns:
            The steps ordered by step_number

        Raises:
            InvalidPattern: no steps, step numbers not 1..n without gaps or
                duplicates, or an interval below one day
        """
        steps = pattern_steps(pattern)
        if not steps:
            raise InvalidPattern("a pattern needs at least one step")

        for expected, step in enumerate(steps, start=1):
            if step.step_number != expected:
                raise InvalidPattern(
                    f"step numbers must run from 1 to {len(steps)} without gaps; "
                    f"found {step.step_number} where {expected} was expected"
                )
            if step.interval_days < 1:
                raise InvalidPattern(
                    f"step {step.step_number} has interval {step.interval_days}; intervals must be at least 1 day"
                )
        return steps

    @staticmethod
    def generate(pattern: PatternLike, learned_date: date) -> List[ReviewDateSchema]:
        """
        Generate one review date per pattern step.

        Args:
            pattern: PatternModel or list of steps
            learned_date: Day the item was learned

        Returns:
            Review date stubs (no ids yet) whose initial and current dates are equal
        """
        steps = ScheduleGenerator.validate_steps(pattern)

        schedule = []
        due = learned_date
        for step in steps:
            due = due + timedelta(days=step.interval_days)
            schedule.append(
                ReviewDateSchema(
                    step_number=step.step_number,
                    interval_days=step.interval_days,
                    initial_scheduled_date=due,
                    scheduled_date=due,
                )
            )
        return schedule

    @staticmethod
    def from_dates(pattern: PatternLike, scheduled_dates: Sequence[date]) -> List[ReviewDateSchema]:
        """
        Build review date stubs from dates computed by an authoritative source.

        Raises:
            InvalidPattern: the pattern is malformed, the number of dates does
                not match the number of steps, or the dates go backwards
        """
        steps = ScheduleGenerator.validate_steps(pattern)
        if len(scheduled_dates) != len(steps):
            raise InvalidPattern(
                f"pattern has {len(steps)} steps but {len(scheduled_dates)} dates were supplied"
            )

        schedule = [
            ReviewDateSchema(
                step_number=step.step_number,
                interval_days=step.interval_days,
                initial_scheduled_date=due,
                scheduled_date=due,
            )
            for step, due in zip(steps, scheduled_dates)
        ]
        if not ScheduleGenerator.is_ordered(schedule):
            raise InvalidPattern("supplied review dates are not in chronological order")
        return schedule

    @staticmethod
    def is_ordered(schedule: Sequence[ReviewDateSchema]) -> bool:
        """True when dates never decrease as step numbers increase"""
        ordered = sorted(schedule, key=lambda rd: rd.step_number)
        return all(a.scheduled_date <= b.scheduled_date for a, b in zip(ordered, ordered[1:]))

    @staticmethod
    def rebase(schedule: Sequence[ReviewDateSchema]) -> List[ReviewDateSchema]:
        """Make the current dates the new baseline (used when a schedule is first written)"""
        return [rd.model_copy(update={"initial_scheduled_date": rd.scheduled_date}) for rd in schedule]
