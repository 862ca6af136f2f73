from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from reviewbox.database import Base

class Pattern(Base):
    """Reusable template of day-offset review steps"""
    __tablename__ = "patterns"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    target_weight = Column(String, nullable=False, default="unset")  # heavy, normal, light, unset

    registered_at = Column(DateTime, default=datetime.utcnow)
    edited_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    steps = relationship(
        "PatternStep",
        back_populates="pattern",
        order_by="PatternStep.step_number",
        cascade="all, delete-orphan",
    )

class PatternStep(Base):
    """One step of a pattern"""
    __tablename__ = "pattern_steps"

    id = Column(Integer, primary_key=True, index=True)
    pattern_id = Column(Integer, ForeignKey("patterns.id", ondelete="CASCADE"), nullable=False)
    step_number = Column(Integer, nullable=False)  # 1-based, dense
    interval_days = Column(Integer, nullable=False)  # days after the previous step

    pattern = relationship("Pattern", back_populates="steps")
