from sqlalchemy.orm import Session
from reviewbox.crud.item import require_item
from reviewbox.crud.pattern import require_pattern, to_pattern_model
from reviewbox.crud.schedule import held_steps, item_schedule
from reviewbox.errors import NotFound, ValidationError
from reviewbox.models import Box, Category, Item, Pattern, ReviewDate
from reviewbox.reschedule import reschedule
from reviewbox.schemas import (
    DailyReviewBox, DailyReviewCategory, DailyReviewDate, DailyReviewsResponse,
    ReviewDateToggle, ReviewDateUpdate, TargetWeight
)
from datetime import date
from typing import Dict, Optional
import structlog

logger = structlog.get_logger(__name__)

def _require_review_date(item: Item, review_date_id: int) -> ReviewDate:
    for rd in item.review_dates:
        if rd.id == review_date_id:
            return rd
    raise NotFound("review date", review_date_id)

def _set_completed(db: Session, item_id: int, review_date_id: int, toggle: ReviewDateToggle, completed: bool) -> Item:
    item = require_item(db, item_id)
    if item.is_finished:
        raise ValidationError("item_id", f"item {item_id} is finished")
    rd = _require_review_date(item, review_date_id)
    if rd.step_number != toggle.step_number:
        raise ValidationError(
            "step_number",
            f"review date {review_date_id} is step {rd.step_number}, not {toggle.step_number}"
        )
    rd.is_completed = completed
    db.commit()
    db.refresh(item)
    return item

def complete_review_date(db: Session, item_id: int, review_date_id: int, toggle: ReviewDateToggle) -> Item:
    """Mark one review date as completed"""
    return _set_completed(db, item_id, review_date_id, toggle, True)

def incomplete_review_date(db: Session, item_id: int, review_date_id: int, toggle: ReviewDateToggle) -> Item:
    """Mark one review date as not completed"""
    return _set_completed(db, item_id, review_date_id, toggle, False)

def update_review_date(
    db: Session,
    item_id: int,
    review_date_id: int,
    request: ReviewDateUpdate,
    today: date
) -> Item:
    """
    Rewind one review date of an item and cascade to the later steps.

    The request must describe the review date as it is stored (step number
    and initial date); otherwise the client is working from stale data.
    Without explicit steps in the request the cascade follows the intervals
    recorded with the schedule, so later edits to the pattern do not change it.
    """
    item = require_item(db, item_id)
    if item.is_finished:
        raise ValidationError("item_id", f"item {item_id} is finished")
    rd = _require_review_date(item, review_date_id)

    if rd.step_number != request.step_number:
        raise ValidationError("step_number", f"review date {review_date_id} is step {rd.step_number}")
    if rd.initial_scheduled_date != request.initial_scheduled_date:
        raise ValidationError("initial_scheduled_date", "review date has a different initial date")

    steps = request.pattern_steps or held_steps(item)
    if steps is None:
        if request.pattern_id is None:
            raise ValidationError("pattern_id", f"item {item_id} has no pattern")
        steps = to_pattern_model(require_pattern(db, request.pattern_id))

    updated = reschedule(
        item_schedule(item),
        rd.step_number,
        request.request_scheduled_date,
        steps,
        request.overdue_policy,
        today
    )

    by_step = {new.step_number: new for new in updated}
    for stored in item.review_dates:
        new = by_step[stored.step_number]
        stored.scheduled_date = new.scheduled_date
        stored.is_completed = new.is_completed

    db.commit()
    db.refresh(item)
    return item

def _daily_review(item: Item, rd: ReviewDate) -> DailyReviewDate:
    ordered = sorted(item.review_dates, key=lambda r: r.step_number)
    index = ordered.index(rd)
    return DailyReviewDate(
        review_date_id=rd.id,
        item_id=item.id,
        category_id=item.category_id,
        box_id=item.box_id,
        step_number=rd.step_number,
        initial_scheduled_date=rd.initial_scheduled_date,
        prev_scheduled_date=ordered[index - 1].scheduled_date if index > 0 else None,
        scheduled_date=rd.scheduled_date,
        next_scheduled_date=ordered[index + 1].scheduled_date if index + 1 < len(ordered) else None,
        is_completed=rd.is_completed,
        item_name=item.name,
        detail=item.detail,
        learned_date=item.learned_date
    )

def get_daily_review_dates(
    db: Session,
    today: date,
    category_id: Optional[int] = None,
    box_id: Optional[int] = None
) -> DailyReviewsResponse:
    """
    Get every review scheduled for today, grouped by location.

    With a category filter only that category is returned; with a box filter
    only that box.
    """
    query = db.query(ReviewDate, Item).join(Item, ReviewDate.item_id == Item.id).filter(
        ReviewDate.scheduled_date == today,
        Item.is_finished == False  # noqa: E712
    )
    if box_id is not None:
        query = query.filter(Item.box_id == box_id)
    elif category_id is not None:
        query = query.filter(Item.category_id == category_id)
    rows = query.order_by(Item.id, ReviewDate.step_number).all()

    categories: Dict[int, DailyReviewCategory] = {}
    boxes: Dict[int, DailyReviewBox] = {}
    user_level = []

    for rd, item in rows:
        review = _daily_review(item, rd)
        if item.category_id is None and item.box_id is None:
            user_level.append(review)
            continue

        if item.category_id not in categories:
            category = db.query(Category).filter(Category.id == item.category_id).one()
            categories[item.category_id] = DailyReviewCategory(category_id=category.id, category_name=category.name)
        group = categories[item.category_id]

        if item.box_id is None:
            group.unclassified_daily_review_dates_by_category.append(review)
            continue

        if item.box_id not in boxes:
            box = db.query(Box).filter(Box.id == item.box_id).one()
            pattern = db.query(Pattern).filter(Pattern.id == box.pattern_id).first() if box.pattern_id else None
            boxes[item.box_id] = DailyReviewBox(
                box_id=box.id,
                category_id=box.category_id,
                box_name=box.name,
                target_weight=TargetWeight(pattern.target_weight) if pattern else TargetWeight.UNSET
            )
            group.boxes.append(boxes[item.box_id])
        boxes[item.box_id].review_dates.append(review)

    logger.debug("daily_reviews_loaded", today=today.isoformat(), count=len(rows))
    return DailyReviewsResponse(
        categories=list(categories.values()),
        daily_review_dates_grouped_by_user=user_level
    )
