from sqlalchemy.orm import Session
from reviewbox.models import Item, Pattern, ReviewDate
from reviewbox.reschedule import resolve_overdue
from reviewbox.schedule import PatternLike, ScheduleGenerator
from reviewbox.schemas import OverduePolicy, PatternModel, ReviewDateSchema, StepSchema
from datetime import date
from typing import List, Optional

def item_schedule(item: Item) -> List[ReviewDateSchema]:
    """Current review dates of an item as schemas"""
    return [ReviewDateSchema.model_validate(rd) for rd in item.review_dates]

def regenerate_schedule(
    db: Session,
    item: Item,
    pattern: Pattern,
    policy: OverduePolicy,
    today: date
) -> None:
    """
    Replace an item's review dates with a fresh schedule from a pattern.

    Dates that are already past are resolved with the overdue policy and the
    result becomes the new baseline.
    """
    model = PatternModel.model_validate(pattern)
    generated = ScheduleGenerator.generate(model, item.learned_date)
    resolved = ScheduleGenerator.rebase(
        resolve_overdue(generated, model, item.learned_date, policy, today)
    )

    item.review_dates.clear()
    db.flush()
    item.review_dates.extend(
        ReviewDate(
            step_number=rd.step_number,
            interval_days=rd.interval_days,
            initial_scheduled_date=rd.initial_scheduled_date,
            scheduled_date=rd.scheduled_date,
            is_completed=rd.is_completed
        )
        for rd in resolved
    )
    item.pattern_id = pattern.id

def clear_schedule(db: Session, item: Item) -> None:
    """Remove every review date of an item"""
    item.review_dates.clear()
    db.flush()

def held_steps(item: Item) -> Optional[PatternLike]:
    """
    Steps an item's schedule follows.

    The intervals recorded on the review dates win over the item's pattern,
    which may have been edited since the schedule was generated.
    """
    if item.review_dates and all(rd.interval_days is not None for rd in item.review_dates):
        return [
            StepSchema(step_number=rd.step_number, interval_days=rd.interval_days)
            for rd in sorted(item.review_dates, key=lambda rd: rd.step_number)
        ]
    if item.pattern is not None:
        return PatternModel.model_validate(item.pattern)
    return None
