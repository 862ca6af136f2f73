from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from reviewbox.database import Base

class Item(Base):
    """Study item reviewed on a pattern-derived schedule"""
    __tablename__ = "items"

    id = Column(Integer, primary_key=True, index=True)
    category_id = Column(Integer, ForeignKey("categories.id"))
    box_id = Column(Integer, ForeignKey("boxes.id"))
    pattern_id = Column(Integer, ForeignKey("patterns.id"))

    name = Column(String, nullable=False)
    detail = Column(String)
    learned_date = Column(Date, nullable=False)
    is_finished = Column(Boolean, nullable=False, default=False)

    registered_at = Column(DateTime, default=datetime.utcnow)
    edited_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    box = relationship("Box", back_populates="items")
    category = relationship("Category")
    pattern = relationship("Pattern")
    review_dates = relationship(
        "ReviewDate",
        back_populates="item",
        order_by="ReviewDate.step_number",
        cascade="all, delete-orphan",
    )

    @property
    def item_id(self):
        return self.id

class ReviewDate(Base):
    """One scheduled review of an item, bound to a pattern step"""
    __tablename__ = "review_dates"

    id = Column(Integer, primary_key=True, index=True)
    item_id = Column(Integer, ForeignKey("items.id", ondelete="CASCADE"), nullable=False)
    step_number = Column(Integer, nullable=False)
    interval_days = Column(Integer, nullable=False)  # step interval the date was generated with

    initial_scheduled_date = Column(Date, nullable=False)  # baseline set at generation
    scheduled_date = Column(Date, nullable=False)
    is_completed = Column(Boolean, nullable=False, default=False)

    item = relationship("Item", back_populates="review_dates")

    @property
    def review_date_id(self):
        return self.id
