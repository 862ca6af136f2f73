from sqlalchemy.orm import Session
from reviewbox.errors import NotFound, ValidationError
from reviewbox.models import Category, Box, Item
from reviewbox.schemas import CategoryCreate
from typing import List, Optional

def create_category(db: Session, category: CategoryCreate) -> Category:
    """Create a new category"""
    if not category.name.strip():
        raise ValidationError("name", "category name must not be empty")
    db_category = Category(name=category.name.strip())
    db.add(db_category)
    db.commit()
    db.refresh(db_category)
    return db_category

def get_category(db: Session, category_id: int) -> Optional[Category]:
    """Get category by ID"""
    return db.query(Category).filter(Category.id == category_id).first()

def require_category(db: Session, category_id: int) -> Category:
    category = get_category(db, category_id)
    if category is None:
        raise NotFound("category", category_id)
    return category

def get_categories(db: Session) -> List[Category]:
    """Get all categories"""
    return db.query(Category).order_by(Category.id).all()

def update_category(db: Session, category_id: int, category: CategoryCreate) -> Category:
    """Rename a category"""
    db_category = require_category(db, category_id)
    if not category.name.strip():
        raise ValidationError("name", "category name must not be empty")
    db_category.name = category.name.strip()
    db.commit()
    db.refresh(db_category)
    return db_category

def delete_category(db: Session, category_id: int) -> None:
    """Delete a category and its boxes; its items become unclassified"""
    db_category = require_category(db, category_id)
    db.query(Item).filter(Item.category_id == category_id).update(
        {Item.category_id: None, Item.box_id: None}
    )
    db.query(Box).filter(Box.category_id == category_id).delete()
    db.delete(db_category)
    db.commit()
