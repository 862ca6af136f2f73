from datetime import date, timedelta

from reviewbox.schemas import PatternModel, StepSchema

TODAY = date(2024, 5, 20)


def days_ago(n: int) -> date:
    return TODAY - timedelta(days=n)


def days_ahead(n: int) -> date:
    return TODAY + timedelta(days=n)


def steps(*intervals):
    return [StepSchema(step_number=i, interval_days=d) for i, d in enumerate(intervals, start=1)]


def pattern_model(pattern_id, *intervals, name=None) -> PatternModel:
    return PatternModel(id=pattern_id, name=name or f"p{pattern_id}", steps=tuple(steps(*intervals)))
