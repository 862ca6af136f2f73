from pydantic import BaseModel
from typing import List, Optional, Tuple
from datetime import date, datetime
from enum import Enum

# Sentinel used wherever a box or category is absent
UNCLASSIFIED = "unclassified"

class TargetWeight(str, Enum):
    """Scheduling priority hint attached to a pattern"""
    HEAVY = "heavy"
    NORMAL = "normal"
    LIGHT = "light"
    UNSET = "unset"

class OverduePolicy(str, Enum):
    """How review dates pushed into the past are resolved"""
    COMPRESS_AS_COMPLETED = "compress_as_completed"
    PIN_TO_TODAY = "pin_to_today"

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

class StepSchema(BaseModel):
    """One pattern step: ordinal and interval in days"""
    step_number: int
    interval_days: int

    class Config:
        from_attributes = True
        frozen = True

class PatternModel(BaseModel):
    """Immutable review pattern"""
    id: Optional[int] = None
    name: str = ""
    target_weight: TargetWeight = TargetWeight.UNSET
    steps: Tuple[StepSchema, ...] = ()

    class Config:
        from_attributes = True
        frozen = True

    @property
    def ordered_steps(self) -> List[StepSchema]:
        return sorted(self.steps, key=lambda step: step.step_number)

    @property
    def intervals(self) -> Tuple[int, ...]:
        return tuple(step.interval_days for step in self.ordered_steps)

class PatternCreate(BaseModel):
    """Schema for creating or replacing a pattern"""
    name: str
    target_weight: TargetWeight = TargetWeight.UNSET
    steps: List[StepSchema]

# ---------------------------------------------------------------------------
# Categories and boxes
# ---------------------------------------------------------------------------

class CategoryCreate(BaseModel):
    """Schema for creating or renaming a category"""
    name: str

class CategoryResponse(CategoryCreate):
    """Schema for category response"""
    id: int
    registered_at: Optional[datetime] = None
    edited_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class BoxCreate(BaseModel):
    """Schema for creating or updating a box"""
    name: str
    pattern_id: Optional[int] = None

class BoxResponse(BoxCreate):
    """Schema for box response"""
    id: int
    category_id: int
    registered_at: Optional[datetime] = None
    edited_at: Optional[datetime] = None

    class Config:
        from_attributes = True

# ---------------------------------------------------------------------------
# Items and review dates
# ---------------------------------------------------------------------------

class ReviewDateSchema(BaseModel):
    """One scheduled review of an item"""
    review_date_id: Optional[int] = None
    step_number: int
    interval_days: Optional[int] = None
    initial_scheduled_date: date
    scheduled_date: date
    is_completed: bool = False

    class Config:
        from_attributes = True
        frozen = True

class ItemResponse(BaseModel):
    """Item as returned by the item service.

    Every field except ``item_id`` has a default so that partial server
    responses still parse; ``model_fields_set`` records what was sent.
    """
    item_id: int
    category_id: Optional[int] = None
    box_id: Optional[int] = None
    pattern_id: Optional[int] = None
    name: str = ""
    detail: Optional[str] = None
    learned_date: Optional[date] = None
    is_finished: bool = False
    registered_at: Optional[datetime] = None
    edited_at: Optional[datetime] = None
    review_dates: List[ReviewDateSchema] = []

    class Config:
        from_attributes = True

    @property
    def has_completed_reviews(self) -> bool:
        return any(rd.is_completed for rd in self.review_dates)

    @property
    def schedule_steps(self) -> Optional[List[StepSchema]]:
        """Steps the current schedule was generated with, or None if they were not recorded"""
        if not self.review_dates or any(rd.interval_days is None for rd in self.review_dates):
            return None
        return [
            StepSchema(step_number=rd.step_number, interval_days=rd.interval_days)
            for rd in sorted(self.review_dates, key=lambda rd: rd.step_number)
        ]

    def review_date(self, review_date_id: int) -> Optional[ReviewDateSchema]:
        for rd in self.review_dates:
            if rd.review_date_id == review_date_id:
                return rd
        return None

class ItemCreate(BaseModel):
    """Schema for creating an item"""
    category_id: Optional[int] = None
    box_id: Optional[int] = None
    pattern_id: Optional[int] = None
    name: str
    detail: Optional[str] = None
    learned_date: date
    overdue_policy: OverduePolicy = OverduePolicy.COMPRESS_AS_COMPLETED

class ItemUpdate(BaseModel):
    """Partial item update; only fields that were set are applied"""
    category_id: Optional[int] = None
    box_id: Optional[int] = None
    pattern_id: Optional[int] = None
    name: Optional[str] = None
    detail: Optional[str] = None
    learned_date: Optional[date] = None
    overdue_policy: OverduePolicy = OverduePolicy.COMPRESS_AS_COMPLETED

class ItemUnfinish(BaseModel):
    """Schema for returning a finished item to the active set"""
    category_id: Optional[int] = None
    box_id: Optional[int] = None
    pattern_id: int
    learned_date: date
    overdue_policy: OverduePolicy = OverduePolicy.COMPRESS_AS_COMPLETED

class ReviewDateToggle(BaseModel):
    """Schema for completing or un-completing one review date"""
    step_number: int

class ReviewDateUpdate(BaseModel):
    """Schema for rewinding one review date"""
    request_scheduled_date: date
    overdue_policy: OverduePolicy = OverduePolicy.COMPRESS_AS_COMPLETED
    pattern_id: Optional[int] = None
    pattern_steps: Optional[List[StepSchema]] = None
    learned_date: date
    initial_scheduled_date: date
    step_number: int
    category_id: Optional[int] = None
    box_id: Optional[int] = None

# ---------------------------------------------------------------------------
# Today's reviews
# ---------------------------------------------------------------------------

class DailyReviewDate(BaseModel):
    """Review due today, with its neighbours in the item's schedule"""
    review_date_id: int
    item_id: int
    category_id: Optional[int] = None
    box_id: Optional[int] = None
    step_number: int
    initial_scheduled_date: date
    prev_scheduled_date: Optional[date] = None
    scheduled_date: date
    next_scheduled_date: Optional[date] = None
    is_completed: bool
    item_name: str
    detail: Optional[str] = None
    learned_date: date

class DailyReviewBox(BaseModel):
    box_id: int
    category_id: int
    box_name: str
    target_weight: TargetWeight = TargetWeight.UNSET
    review_dates: List[DailyReviewDate] = []

class DailyReviewCategory(BaseModel):
    category_id: int
    category_name: str
    boxes: List[DailyReviewBox] = []
    unclassified_daily_review_dates_by_category: List[DailyReviewDate] = []

class DailyReviewsResponse(BaseModel):
    """Today's reviews grouped by category, box and unclassified"""
    categories: List[DailyReviewCategory] = []
    daily_review_dates_grouped_by_user: List[DailyReviewDate] = []

    def flatten(self) -> List[DailyReviewDate]:
        reviews = []
        for category in self.categories:
            for box in category.boxes:
                reviews.extend(box.review_dates)
            reviews.extend(category.unclassified_daily_review_dates_by_category)
        reviews.extend(self.daily_review_dates_grouped_by_user)
        return reviews

class DailyReviewFilters(BaseModel):
    category_id: Optional[int] = None
    box_id: Optional[int] = None

# ---------------------------------------------------------------------------
# Summary counts
# ---------------------------------------------------------------------------

class CountByBox(BaseModel):
    category_id: int
    box_id: int
    count: int

class CountByCategory(BaseModel):
    category_id: int
    count: int

class SummaryCounts(BaseModel):
    """Item and today's review counts per location"""
    items_by_box: List[CountByBox] = []
    unclassified_items_by_category: List[CountByCategory] = []
    unclassified_items: int = 0
    daily_reviews_by_box: List[CountByBox] = []
    daily_unclassified_reviews_by_category: List[CountByCategory] = []
    daily_unclassified_reviews: int = 0
    daily_reviews_total: int = 0
