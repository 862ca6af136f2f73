from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from reviewbox.database import Base

class Box(Base):
    """Container of items inside a category, optionally bound to a pattern"""
    __tablename__ = "boxes"

    id = Column(Integer, primary_key=True, index=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False)
    pattern_id = Column(Integer, ForeignKey("patterns.id"))  # canonical pattern for contained items
    name = Column(String, nullable=False)

    registered_at = Column(DateTime, default=datetime.utcnow)
    edited_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    category = relationship("Category", back_populates="boxes")
    pattern = relationship("Pattern")
    items = relationship("Item", back_populates="box")
