from sqlalchemy.orm import Session
from reviewbox.errors import NotFound, ValidationError
from reviewbox.models import Pattern, PatternStep, Box, Item
from reviewbox.schedule import ScheduleGenerator
from reviewbox.schemas import PatternCreate, PatternModel
from typing import List, Optional

def _validated_name(name: str) -> str:
    if not name or not name.strip():
        raise ValidationError("name", "pattern name must not be empty")
    return name.strip()

def create_pattern(db: Session, pattern: PatternCreate) -> Pattern:
    """Create a pattern with its steps"""
    name = _validated_name(pattern.name)
    steps = ScheduleGenerator.validate_steps(pattern.steps)

    db_pattern = Pattern(name=name, target_weight=pattern.target_weight.value)
    db_pattern.steps = [
        PatternStep(step_number=step.step_number, interval_days=step.interval_days)
        for step in steps
    ]
    db.add(db_pattern)
    db.commit()
    db.refresh(db_pattern)
    return db_pattern

def get_pattern(db: Session, pattern_id: int) -> Optional[Pattern]:
    """Get pattern by ID"""
    return db.query(Pattern).filter(Pattern.id == pattern_id).first()

def require_pattern(db: Session, pattern_id: int) -> Pattern:
    """Get pattern by ID or raise NotFound"""
    pattern = get_pattern(db, pattern_id)
    if pattern is None:
        raise NotFound("pattern", pattern_id)
    return pattern

def get_patterns(db: Session) -> List[Pattern]:
    """Get all patterns"""
    return db.query(Pattern).order_by(Pattern.id).all()

def update_pattern(db: Session, pattern_id: int, pattern: PatternCreate) -> Pattern:
    """
    Replace a pattern's name, weight and steps.

    Items keep the schedules they were generated with; patterns are templates.
    """
    db_pattern = require_pattern(db, pattern_id)
    name = _validated_name(pattern.name)
    steps = ScheduleGenerator.validate_steps(pattern.steps)

    db_pattern.name = name
    db_pattern.target_weight = pattern.target_weight.value
    db_pattern.steps = [
        PatternStep(step_number=step.step_number, interval_days=step.interval_days)
        for step in steps
    ]
    db.commit()
    db.refresh(db_pattern)
    return db_pattern

def delete_pattern(db: Session, pattern_id: int) -> None:
    """Delete a pattern and detach it from boxes and items"""
    db_pattern = require_pattern(db, pattern_id)
    db.query(Box).filter(Box.pattern_id == pattern_id).update({Box.pattern_id: None})
    db.query(Item).filter(Item.pattern_id == pattern_id).update({Item.pattern_id: None})
    db.delete(db_pattern)
    db.commit()

def to_pattern_model(pattern: Pattern) -> PatternModel:
    return PatternModel.model_validate(pattern)
