from datetime import timedelta

import pytest

from reviewbox.errors import InvalidPattern, NotFound, OutOfRangeDate
from reviewbox.reschedule import editable_range, reschedule, resolve_overdue, validate_request_date
from reviewbox.schedule import ScheduleGenerator
from reviewbox.schemas import OverduePolicy

from tests.helpers import TODAY, days_ago, days_ahead, pattern_model

COMPRESS = OverduePolicy.COMPRESS_AS_COMPLETED
PIN = OverduePolicy.PIN_TO_TODAY


def schedule_for(pattern, learned):
    return ScheduleGenerator.generate(pattern, learned)


# --- bounds ---------------------------------------------------------------

def test_editable_range_is_initial_to_yesterday():
    assert editable_range(days_ago(9), TODAY) == (days_ago(9), days_ago(1))


@pytest.mark.parametrize("requested", [days_ago(9), days_ago(5), days_ago(1)])
def test_dates_inside_range_are_accepted(requested):
    validate_request_date(days_ago(9), requested, TODAY)


@pytest.mark.parametrize("requested", [days_ago(10), TODAY, days_ahead(1)])
def test_dates_outside_range_are_rejected(requested):
    with pytest.raises(OutOfRangeDate) as exc:
        validate_request_date(days_ago(9), requested, TODAY)
    assert exc.value.earliest == days_ago(9)
    assert exc.value.latest == days_ago(1)


def test_rejected_request_leaves_schedule_alone():
    pattern = pattern_model(1, 1, 1, 1)
    schedule = schedule_for(pattern, days_ago(10))
    before = [rd.model_copy() for rd in schedule]

    with pytest.raises(OutOfRangeDate):
        reschedule(schedule, 1, TODAY, pattern, COMPRESS, TODAY)

    assert schedule == before


def test_unknown_step():
    pattern = pattern_model(1, 1, 1)
    with pytest.raises(NotFound):
        reschedule(schedule_for(pattern, days_ago(10)), 5, days_ago(2), pattern, COMPRESS, TODAY)


def test_pattern_must_cover_the_schedule():
    schedule = schedule_for(pattern_model(1, 1, 1, 1), days_ago(10))
    with pytest.raises(InvalidPattern):
        reschedule(schedule, 1, days_ago(5), pattern_model(2, 1, 1), COMPRESS, TODAY)


# --- cascade and overdue policies -----------------------------------------

def test_compress_marks_cascaded_past_dates_completed():
    pattern = pattern_model(1, 1, 1, 1)
    # learned 05-10: 05-11, 05-12, 05-13
    schedule = schedule_for(pattern, days_ago(10))

    updated = reschedule(schedule, 1, days_ago(5), pattern, COMPRESS, TODAY)

    assert [rd.scheduled_date for rd in updated] == [days_ago(5), days_ago(4), days_ago(3)]
    assert [rd.is_completed for rd in updated] == [False, True, True]
    assert [rd.initial_scheduled_date for rd in updated] == [rd.initial_scheduled_date for rd in schedule]


def test_compress_counts_today_as_overdue():
    pattern = pattern_model(1, 1, 5)
    schedule = schedule_for(pattern, days_ago(10))

    updated = reschedule(schedule, 1, days_ago(5), pattern, COMPRESS, TODAY)

    assert updated[1].scheduled_date == TODAY
    assert updated[1].is_completed


def test_pin_moves_past_dates_to_today():
    pattern = pattern_model(1, 1, 1, 1)
    schedule = schedule_for(pattern, days_ago(10))

    updated = reschedule(schedule, 1, days_ago(5), pattern, PIN, TODAY)

    assert updated[0].scheduled_date == days_ago(5)
    assert updated[1].scheduled_date == TODAY
    # later steps follow from the pinned date
    assert updated[2].scheduled_date == days_ahead(1)
    assert not any(rd.is_completed for rd in updated)


def test_pin_leaves_completion_state_alone():
    pattern = pattern_model(1, 1, 1, 1)
    schedule = schedule_for(pattern, days_ago(10))
    schedule[2] = schedule[2].model_copy(update={"is_completed": True})

    updated = reschedule(schedule, 1, days_ago(5), pattern, PIN, TODAY)

    assert [rd.is_completed for rd in updated] == [False, False, True]


def test_cascaded_dates_never_before_today_under_pin():
    pattern = pattern_model(1, 2, 1, 1, 1)
    schedule = schedule_for(pattern, days_ago(20))

    updated = reschedule(schedule, 2, days_ago(15), pattern, PIN, TODAY)

    assert all(rd.scheduled_date >= TODAY for rd in updated[2:])


def test_future_cascade_is_not_completed():
    pattern = pattern_model(1, 2, 5, 10)
    # learned 05-10: 05-12, 05-17, 05-27
    schedule = schedule_for(pattern, days_ago(10))

    updated = reschedule(schedule, 2, days_ago(1), pattern, COMPRESS, TODAY)

    assert updated[2].scheduled_date == days_ago(1) + timedelta(days=10)
    assert not updated[2].is_completed


def test_earlier_steps_and_edited_completion_untouched():
    pattern = pattern_model(1, 1, 1, 1)
    schedule = schedule_for(pattern, days_ago(10))
    schedule[0] = schedule[0].model_copy(update={"is_completed": True})
    schedule[1] = schedule[1].model_copy(update={"is_completed": True})

    updated = reschedule(schedule, 2, days_ago(6), pattern, PIN, TODAY)

    assert updated[0] == schedule[0]
    assert updated[1].scheduled_date == days_ago(6)
    assert updated[1].is_completed


def test_bare_steps_are_accepted():
    pattern = pattern_model(1, 1, 1)
    schedule = schedule_for(pattern, days_ago(10))

    updated = reschedule(schedule, 1, days_ago(3), list(pattern.steps), COMPRESS, TODAY)

    assert updated[1].scheduled_date == days_ago(2)


# --- schedules generated in the past --------------------------------------

def test_resolve_overdue_compress_is_strict_about_today():
    pattern = pattern_model(1, 1, 3, 6)
    # learned 05-10: 05-11, 05-14, 05-20
    resolved = resolve_overdue(schedule_for(pattern, days_ago(10)), pattern, days_ago(10), COMPRESS, TODAY)

    assert [rd.is_completed for rd in resolved] == [True, True, False]
    assert resolved[2].scheduled_date == TODAY


def test_resolve_overdue_pin_restarts_from_today():
    pattern = pattern_model(1, 1, 3, 7)
    resolved = resolve_overdue(schedule_for(pattern, days_ago(10)), pattern, days_ago(10), PIN, TODAY)

    assert [rd.scheduled_date for rd in resolved] == [TODAY, days_ahead(3), days_ahead(10)]
    assert not any(rd.is_completed for rd in resolved)


def test_resolve_overdue_future_schedule_unchanged():
    pattern = pattern_model(1, 1, 3, 7)
    schedule = schedule_for(pattern, TODAY)

    assert resolve_overdue(schedule, pattern, TODAY, COMPRESS, TODAY) == schedule
    assert resolve_overdue(schedule, pattern, TODAY, PIN, TODAY) == schedule
