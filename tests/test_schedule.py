from datetime import date, timedelta

import pytest

from reviewbox.errors import InvalidPattern
from reviewbox.schedule import ScheduleGenerator
from reviewbox.schemas import StepSchema

from tests.helpers import pattern_model, steps

DAY0 = date(2024, 1, 1)


def test_cumulative_dates_for_1_3_7():
    schedule = ScheduleGenerator.generate(pattern_model(1, 1, 3, 7), DAY0)

    assert [rd.scheduled_date for rd in schedule] == [
        DAY0 + timedelta(days=1),
        DAY0 + timedelta(days=4),
        DAY0 + timedelta(days=11),
    ]


@pytest.mark.parametrize("intervals", [(1,), (2, 2), (1, 3, 7, 14, 30), (5, 1, 1)])
def test_one_ordered_review_per_step(intervals):
    schedule = ScheduleGenerator.generate(pattern_model(1, *intervals), DAY0)

    assert len(schedule) == len(intervals)
    assert [rd.step_number for rd in schedule] == list(range(1, len(intervals) + 1))
    assert ScheduleGenerator.is_ordered(schedule)
    assert all(rd.initial_scheduled_date == rd.scheduled_date for rd in schedule)
    assert not any(rd.is_completed for rd in schedule)
    assert all(rd.review_date_id is None for rd in schedule)


def test_accepts_bare_steps_in_any_order():
    shuffled = [StepSchema(step_number=2, interval_days=3), StepSchema(step_number=1, interval_days=1)]

    schedule = ScheduleGenerator.generate(shuffled, DAY0)

    assert [rd.step_number for rd in schedule] == [1, 2]
    assert schedule[1].scheduled_date == DAY0 + timedelta(days=4)


def test_empty_pattern_is_invalid():
    with pytest.raises(InvalidPattern):
        ScheduleGenerator.generate([], DAY0)


def test_step_numbers_must_be_contiguous():
    gap = [StepSchema(step_number=1, interval_days=1), StepSchema(step_number=3, interval_days=2)]
    with pytest.raises(InvalidPattern):
        ScheduleGenerator.generate(gap, DAY0)

    duplicate = [StepSchema(step_number=1, interval_days=1), StepSchema(step_number=1, interval_days=2)]
    with pytest.raises(InvalidPattern):
        ScheduleGenerator.validate_steps(duplicate)


def test_interval_must_be_positive():
    with pytest.raises(InvalidPattern) as exc:
        ScheduleGenerator.generate(steps(1, 0), DAY0)
    assert exc.value.field == "steps"


def test_from_dates_checks_shape_and_order():
    pattern = pattern_model(1, 1, 3)

    schedule = ScheduleGenerator.from_dates(pattern, [date(2024, 1, 2), date(2024, 1, 5)])
    assert [rd.step_number for rd in schedule] == [1, 2]

    with pytest.raises(InvalidPattern):
        ScheduleGenerator.from_dates(pattern, [date(2024, 1, 2)])
    with pytest.raises(InvalidPattern):
        ScheduleGenerator.from_dates(pattern, [date(2024, 1, 5), date(2024, 1, 2)])


def test_rebase_makes_current_dates_the_baseline():
    schedule = ScheduleGenerator.generate(pattern_model(1, 1, 3), DAY0)
    moved = [schedule[0].model_copy(update={"scheduled_date": date(2024, 2, 1)}), schedule[1]]

    rebased = ScheduleGenerator.rebase(moved)

    assert rebased[0].initial_scheduled_date == date(2024, 2, 1)
    assert rebased[1].initial_scheduled_date == schedule[1].scheduled_date
