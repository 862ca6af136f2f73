from sqlalchemy import func
from sqlalchemy.orm import Session
from reviewbox.models import Box, Item, ReviewDate
from reviewbox.schemas import CountByBox, CountByCategory, SummaryCounts
from datetime import date
from typing import List

def _active_items(db: Session):
    return db.query(Item).filter(Item.is_finished == False)  # noqa: E712

def get_item_count_by_box(db: Session) -> List[CountByBox]:
    """Active item count per box"""
    rows = db.query(Box.category_id, Box.id, func.count(Item.id)).join(
        Item, Item.box_id == Box.id
    ).filter(Item.is_finished == False).group_by(Box.category_id, Box.id).all()  # noqa: E712
    return [CountByBox(category_id=c, box_id=b, count=n) for c, b, n in rows]

def get_unclassified_item_count_by_category(db: Session) -> List[CountByCategory]:
    """Active items per category that are not in a box"""
    rows = _active_items(db).with_entities(Item.category_id, func.count(Item.id)).filter(
        Item.category_id.isnot(None),
        Item.box_id.is_(None)
    ).group_by(Item.category_id).all()
    return [CountByCategory(category_id=c, count=n) for c, n in rows]

def get_unclassified_item_count(db: Session) -> int:
    """Active items with neither category nor box"""
    return _active_items(db).filter(Item.category_id.is_(None), Item.box_id.is_(None)).count()

def _due_today(db: Session, today: date):
    return db.query(ReviewDate).join(Item, ReviewDate.item_id == Item.id).filter(
        ReviewDate.scheduled_date == today,
        Item.is_finished == False  # noqa: E712
    )

def get_daily_review_count_by_box(db: Session, today: date) -> List[CountByBox]:
    """Today's reviews per box"""
    rows = _due_today(db, today).join(Box, Item.box_id == Box.id).with_entities(
        Box.category_id, Box.id, func.count(ReviewDate.id)
    ).group_by(Box.category_id, Box.id).all()
    return [CountByBox(category_id=c, box_id=b, count=n) for c, b, n in rows]

def get_daily_unclassified_review_count_by_category(db: Session, today: date) -> List[CountByCategory]:
    """Today's reviews per category for items not in a box"""
    rows = _due_today(db, today).filter(
        Item.category_id.isnot(None),
        Item.box_id.is_(None)
    ).with_entities(Item.category_id, func.count(ReviewDate.id)).group_by(Item.category_id).all()
    return [CountByCategory(category_id=c, count=n) for c, n in rows]

def get_daily_unclassified_review_count(db: Session, today: date) -> int:
    """Today's reviews of items with neither category nor box"""
    return _due_today(db, today).filter(Item.category_id.is_(None), Item.box_id.is_(None)).count()

def get_total_daily_review_count(db: Session, today: date) -> int:
    """All of today's reviews"""
    return _due_today(db, today).count()

def get_summary(db: Session, today: date) -> SummaryCounts:
    """Every summary count in one object"""
    return SummaryCounts(
        items_by_box=get_item_count_by_box(db),
        unclassified_items_by_category=get_unclassified_item_count_by_category(db),
        unclassified_items=get_unclassified_item_count(db),
        daily_reviews_by_box=get_daily_review_count_by_box(db, today),
        daily_unclassified_reviews_by_category=get_daily_unclassified_review_count_by_category(db, today),
        daily_unclassified_reviews=get_daily_unclassified_review_count(db, today),
        daily_reviews_total=get_total_daily_review_count(db, today)
    )
