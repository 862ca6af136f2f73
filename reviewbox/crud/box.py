from sqlalchemy.orm import Session
from reviewbox.compatibility import compatible
from reviewbox.crud.category import require_category
from reviewbox.crud.pattern import require_pattern, to_pattern_model
from reviewbox.crud.schedule import held_steps, regenerate_schedule
from reviewbox.errors import IncompatiblePattern, NotFound, ValidationError
from reviewbox.models import Box, Item
from reviewbox.schemas import BoxCreate, OverduePolicy
from datetime import date
from typing import List, Optional
import structlog

logger = structlog.get_logger(__name__)

def create_box(db: Session, category_id: int, box: BoxCreate) -> Box:
    """Create a box inside a category"""
    require_category(db, category_id)
    if not box.name.strip():
        raise ValidationError("name", "box name must not be empty")
    if box.pattern_id is not None:
        require_pattern(db, box.pattern_id)

    db_box = Box(category_id=category_id, name=box.name.strip(), pattern_id=box.pattern_id)
    db.add(db_box)
    db.commit()
    db.refresh(db_box)
    return db_box

def get_box(db: Session, box_id: int) -> Optional[Box]:
    """Get box by ID"""
    return db.query(Box).filter(Box.id == box_id).first()

def require_box(db: Session, box_id: int) -> Box:
    box = get_box(db, box_id)
    if box is None:
        raise NotFound("box", box_id)
    return box

def get_boxes(db: Session, category_id: int) -> List[Box]:
    """Get all boxes of a category"""
    return db.query(Box).filter(Box.category_id == category_id).order_by(Box.id).all()

def update_box(
    db: Session,
    box_id: int,
    box: BoxCreate,
    today: date,
    policy: OverduePolicy = OverduePolicy.COMPRESS_AS_COMPLETED
) -> Box:
    """
    Rename a box or change its pattern.

    A new pattern is applied to every active item in the box. Items without
    completed reviews get a regenerated schedule; items with completed
    reviews must already be compatible, otherwise nothing is changed.
    """
    db_box = require_box(db, box_id)
    if not box.name.strip():
        raise ValidationError("name", "box name must not be empty")

    new_pattern = require_pattern(db, box.pattern_id) if box.pattern_id is not None else None
    if new_pattern is not None and box.pattern_id != db_box.pattern_id:
        active = db.query(Item).filter(Item.box_id == box_id, Item.is_finished == False).all()  # noqa: E712
        new_model = to_pattern_model(new_pattern)

        for item in active:
            if not any(rd.is_completed for rd in item.review_dates):
                continue
            held = held_steps(item)
            if held is None or not compatible(held, new_model):
                logger.info("box_pattern_change_rejected", box_id=box_id, item_id=item.id)
                raise IncompatiblePattern(
                    item.id, box_id,
                    f"item {item.id} in box {box_id} has completed reviews incompatible with pattern {new_pattern.id}"
                )

        for item in active:
            if any(rd.is_completed for rd in item.review_dates):
                item.pattern_id = new_pattern.id
            else:
                regenerate_schedule(db, item, new_pattern, policy, today)

    db_box.name = box.name.strip()
    db_box.pattern_id = box.pattern_id
    db.commit()
    db.refresh(db_box)
    return db_box

def delete_box(db: Session, box_id: int) -> None:
    """Delete a box; its items stay in the category as unclassified"""
    db_box = require_box(db, box_id)
    db.query(Item).filter(Item.box_id == box_id).update({Item.box_id: None})
    db.delete(db_box)
    db.commit()
