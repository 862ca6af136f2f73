from sqlalchemy.orm import Session
from reviewbox.crud.box import require_box
from reviewbox.crud.category import require_category
from reviewbox.crud.pattern import get_patterns, require_pattern, to_pattern_model
from reviewbox.crud.schedule import clear_schedule, held_steps, regenerate_schedule
from reviewbox.compatibility import compatible
from reviewbox.errors import IncompatiblePattern, NotFound, ValidationError
from reviewbox.models import Box, Item
from reviewbox.placement import PlacementGate
from reviewbox.schemas import (
    BoxResponse, ItemCreate, ItemResponse, ItemUnfinish, ItemUpdate
)
from datetime import date
from typing import List, Optional, Tuple
import structlog

logger = structlog.get_logger(__name__)

def _validate_learned_date(learned_date: date, today: date) -> None:
    if learned_date > today:
        raise ValidationError("learned_date", "learned date cannot be in the future")

def _resolve_location(
    db: Session,
    category_id: Optional[int],
    box_id: Optional[int],
    category_given: bool = True
) -> Tuple[Optional[int], Optional[Box]]:
    """Validate a (category, box) pair; a box decides its own category"""
    if box_id is not None:
        box = require_box(db, box_id)
        if category_given and category_id is not None and category_id != box.category_id:
            raise ValidationError("box_id", f"box {box_id} does not belong to category {category_id}")
        return box.category_id, box
    if category_id is not None:
        require_category(db, category_id)
    return category_id, None

def create_item(db: Session, item: ItemCreate, today: date) -> Item:
    """
    Create an item and generate its schedule.

    A box bound to a pattern overrides the requested pattern.
    """
    if not item.name.strip():
        raise ValidationError("name", "item name must not be empty")
    _validate_learned_date(item.learned_date, today)

    category_id, box = _resolve_location(db, item.category_id, item.box_id)
    pattern_id = box.pattern_id if box is not None and box.pattern_id is not None else item.pattern_id
    pattern = require_pattern(db, pattern_id) if pattern_id is not None else None

    db_item = Item(
        category_id=category_id,
        box_id=box.id if box is not None else None,
        pattern_id=pattern_id,
        name=item.name.strip(),
        detail=item.detail,
        learned_date=item.learned_date,
        is_finished=False
    )
    db.add(db_item)
    db.flush()
    if pattern is not None:
        regenerate_schedule(db, db_item, pattern, item.overdue_policy, today)

    db.commit()
    db.refresh(db_item)
    logger.info("item_created", item_id=db_item.id, box_id=db_item.box_id, pattern_id=pattern_id)
    return db_item

def get_item(db: Session, item_id: int) -> Optional[Item]:
    """Get item by ID"""
    return db.query(Item).filter(Item.id == item_id).first()

def require_item(db: Session, item_id: int) -> Item:
    item = get_item(db, item_id)
    if item is None:
        raise NotFound("item", item_id)
    return item

def update_item(db: Session, item_id: int, patch: ItemUpdate, today: date) -> Item:
    """
    Apply a partial update to an active item.

    Moving into another box goes through the placement gate. The schedule is
    regenerated when the pattern changes structurally or the learned date
    changes. Every check runs before anything is written.
    """
    db_item = require_item(db, item_id)
    if db_item.is_finished:
        raise ValidationError("item_id", "finished items must be marked unfinished before editing")

    fields = patch.model_fields_set
    current = ItemResponse.model_validate(db_item)

    name = db_item.name
    if "name" in fields:
        if not patch.name or not patch.name.strip():
            raise ValidationError("name", "item name must not be empty")
        name = patch.name.strip()

    learned_date = db_item.learned_date
    if "learned_date" in fields and patch.learned_date is not None and patch.learned_date != db_item.learned_date:
        _validate_learned_date(patch.learned_date, today)
        if current.has_completed_reviews:
            raise ValidationError("learned_date", "learned date cannot change after reviews have been completed")
        learned_date = patch.learned_date

    target_box_id = patch.box_id if "box_id" in fields else db_item.box_id
    target_category_id = patch.category_id if "category_id" in fields else db_item.category_id
    category_id, box = _resolve_location(db, target_category_id, target_box_id, "category_id" in fields)

    gate = PlacementGate(to_pattern_model(p) for p in get_patterns(db))
    pattern_id = db_item.pattern_id
    regenerate = False
    if (box.id if box is not None else None) != db_item.box_id:
        decision = gate.check(current, BoxResponse.model_validate(box) if box is not None else None)
        pattern_id, regenerate = decision.pattern_id, decision.regenerate

    if "pattern_id" in fields and patch.pattern_id != pattern_id:
        if box is not None and box.pattern_id is not None:
            raise ValidationError("pattern_id", f"items in box {box.id} follow the box's pattern")
        if patch.pattern_id is None:
            pattern_id, regenerate = None, False
        else:
            requested = require_pattern(db, patch.pattern_id)
            if current.has_completed_reviews:
                held = held_steps(db_item)
                if held is None or not compatible(held, to_pattern_model(requested)):
                    raise IncompatiblePattern(
                        item_id, db_item.box_id,
                        f"item {item_id} has completed reviews; pattern {requested.id} is incompatible with its schedule"
                    )
            else:
                regenerate = True
            pattern_id = requested.id

    if learned_date != db_item.learned_date:
        regenerate = True

    db_item.name = name
    if "detail" in fields:
        db_item.detail = patch.detail
    db_item.learned_date = learned_date
    db_item.category_id = category_id
    db_item.box_id = box.id if box is not None else None
    db_item.pattern_id = pattern_id
    if regenerate and pattern_id is not None:
        regenerate_schedule(db, db_item, require_pattern(db, pattern_id), patch.overdue_policy, today)

    db.commit()
    db.refresh(db_item)
    logger.info(
        "item_updated",
        item_id=item_id,
        box_id=db_item.box_id,
        category_id=db_item.category_id,
        pattern_id=pattern_id,
        regenerated=regenerate
    )
    return db_item

def delete_item(db: Session, item_id: int) -> None:
    """Delete an item together with its schedule"""
    db_item = require_item(db, item_id)
    db.delete(db_item)
    db.commit()

def mark_item_finished(db: Session, item_id: int) -> Item:
    """Take an item out of the active set; its schedule is discarded"""
    db_item = require_item(db, item_id)
    clear_schedule(db, db_item)
    db_item.is_finished = True
    db.commit()
    db.refresh(db_item)
    return db_item

def mark_item_unfinished(db: Session, item_id: int, request: ItemUnfinish, today: date) -> Item:
    """Return a finished item to the active set with a fresh schedule"""
    db_item = require_item(db, item_id)
    if not db_item.is_finished:
        raise ValidationError("item_id", f"item {item_id} is not finished")
    _validate_learned_date(request.learned_date, today)

    category_id, box = _resolve_location(db, request.category_id, request.box_id)
    pattern_id = box.pattern_id if box is not None and box.pattern_id is not None else request.pattern_id
    pattern = require_pattern(db, pattern_id)

    db_item.category_id = category_id
    db_item.box_id = box.id if box is not None else None
    db_item.learned_date = request.learned_date
    db_item.is_finished = False
    regenerate_schedule(db, db_item, pattern, request.overdue_policy, today)

    db.commit()
    db.refresh(db_item)
    return db_item

def get_items_by_box(db: Session, box_id: int, finished: bool = False) -> List[Item]:
    """Get active (or finished) items of a box"""
    require_box(db, box_id)
    return db.query(Item).filter(
        Item.box_id == box_id,
        Item.is_finished == finished
    ).order_by(Item.id).all()

def get_unclassified_items(db: Session, finished: bool = False) -> List[Item]:
    """Get items with neither category nor box"""
    return db.query(Item).filter(
        Item.category_id.is_(None),
        Item.box_id.is_(None),
        Item.is_finished == finished
    ).order_by(Item.id).all()

def get_unclassified_items_by_category(db: Session, category_id: int, finished: bool = False) -> List[Item]:
    """Get items of a category that are not in any box"""
    require_category(db, category_id)
    return db.query(Item).filter(
        Item.category_id == category_id,
        Item.box_id.is_(None),
        Item.is_finished == finished
    ).order_by(Item.id).all()
